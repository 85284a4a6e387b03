"""Utility helpers for deterministic serialisation of ledger payloads."""

from __future__ import annotations

import json
from typing import Any, Dict

from eth_utils import keccak


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Return *payload* as compact JSON with sorted keys."""

    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def canonical_hash(payload: Dict[str, Any]) -> bytes:
    """Return a keccak-256 hash of *payload* with stable JSON encoding."""

    return keccak(canonical_json(payload))


__all__ = ["canonical_hash", "canonical_json"]
