"""Merkle tree utilities."""

from __future__ import annotations

from typing import List, Sequence

from eth_utils import keccak


def compute_merkle_root(leaves: Sequence[bytes]) -> str:
    """Compute the Merkle root of already-hashed *leaves* (transaction hashes)."""

    if not leaves:
        return keccak(b"").hex()

    current_level: List[bytes] = [bytes(leaf) for leaf in leaves]
    while len(current_level) > 1:
        next_level: List[bytes] = []
        for i in range(0, len(current_level), 2):
            left = current_level[i]
            right = current_level[i + 1] if i + 1 < len(current_level) else left
            next_level.append(keccak(left + right))
        current_level = next_level

    return current_level[0].hex()


__all__ = ["compute_merkle_root"]
