"""Typed contract interface descriptors built from Solidity ABI definitions.

A :class:`ContractInterface` is validated once when it is constructed: every
method, event and constructor parameter must carry a parsable ABI type and
method/event names must be unique.  After that, encoding a call either
produces correct call data or fails with :class:`~reclothes.errors.EncodingError`
before anything reaches a ledger.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi import is_encodable
from eth_abi.exceptions import DecodingError, ParseError
from eth_abi.grammar import parse as parse_type
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from .errors import EncodingError
from .receipts import Log, Receipt


def _canonical_type(entry: Mapping[str, Any]) -> str:
    """Return the canonical ABI type of *entry*, expanding tuples."""

    kind = entry["type"]
    if kind.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in entry.get("components", []))
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def _is_dynamic(kind: str) -> bool:
    return kind in ("string", "bytes") or "[" in kind or kind.startswith("(")


def _normalise(kind: str, value: Any) -> Any:
    if kind == "address":
        return to_checksum_address(value)
    if kind == "address[]":
        return [to_checksum_address(item) for item in value]
    return value


@dataclass(frozen=True)
class Param:
    name: str
    type: str
    indexed: bool = False

    @classmethod
    def from_abi(cls, entry: Mapping[str, Any]) -> "Param":
        kind = _canonical_type(entry)
        try:
            parse_type(kind).validate()
        except (ParseError, ValueError) as exc:
            raise ValueError(f"Invalid ABI type {kind!r} for parameter {entry.get('name')!r}") from exc
        return cls(name=entry.get("name", ""), type=kind, indexed=bool(entry.get("indexed", False)))


@dataclass(frozen=True)
class MethodSpec:
    name: str
    inputs: Tuple[Param, ...]
    outputs: Tuple[Param, ...]
    mutability: str = "nonpayable"

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(param.type for param in self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    @property
    def read_only(self) -> bool:
        return self.mutability in ("view", "pure")


@dataclass(frozen=True)
class EventSpec:
    name: str
    inputs: Tuple[Param, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(param.type for param in self.inputs)})"

    @property
    def topic(self) -> bytes:
        return keccak(text=self.signature)


class ContractInterface:
    """Method and event descriptors of one contract, keyed by name."""

    def __init__(self, name: str, abi: Sequence[Mapping[str, Any]], bytecode: Union[str, bytes, None] = None) -> None:
        self.name = name
        self.abi = list(abi)
        self.bytecode = HexBytes(bytecode) if bytecode else None
        self.methods: Dict[str, MethodSpec] = {}
        self.events: Dict[str, EventSpec] = {}
        self.constructor: Tuple[Param, ...] = ()

        for entry in self.abi:
            kind = entry.get("type", "function")
            if kind == "function":
                spec = MethodSpec(
                    name=entry["name"],
                    inputs=tuple(Param.from_abi(item) for item in entry.get("inputs", [])),
                    outputs=tuple(Param.from_abi(item) for item in entry.get("outputs", [])),
                    mutability=entry.get("stateMutability", "nonpayable"),
                )
                if spec.name in self.methods:
                    raise ValueError(f"{name}: overloaded method {spec.name!r} is not supported")
                self.methods[spec.name] = spec
            elif kind == "event":
                event = EventSpec(
                    name=entry["name"],
                    inputs=tuple(Param.from_abi(item) for item in entry.get("inputs", [])),
                )
                if event.name in self.events:
                    raise ValueError(f"{name}: duplicate event {event.name!r}")
                self.events[event.name] = event
            elif kind == "constructor":
                self.constructor = tuple(Param.from_abi(item) for item in entry.get("inputs", []))

        self._by_selector = {spec.selector: spec for spec in self.methods.values()}
        self._by_topic = {event.topic: event for event in self.events.values()}

    def __repr__(self) -> str:
        return f"ContractInterface({self.name!r}, methods={len(self.methods)}, events={len(self.events)})"

    @classmethod
    def from_artifact(cls, path: Union[str, Path]) -> "ContractInterface":
        """Load a Truffle/Hardhat style JSON artifact (``abi`` + ``bytecode``)."""

        path = Path(path)
        with path.open("r", encoding="utf-8") as handle:
            artifact = json.load(handle)
        bytecode = artifact.get("bytecode")
        if isinstance(bytecode, dict):
            bytecode = bytecode.get("object")
        if bytecode in ("", "0x"):
            bytecode = None
        return cls(artifact.get("contractName", path.stem), artifact["abi"], bytecode)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------
    def method(self, name: str) -> MethodSpec:
        try:
            return self.methods[name]
        except KeyError as exc:
            raise EncodingError(f"{self.name} has no method {name!r}") from exc

    def _encode_args(self, label: str, params: Tuple[Param, ...], args: Sequence[Any]) -> bytes:
        if len(args) != len(params):
            raise EncodingError(f"{label} expects {len(params)} arguments, got {len(args)}")
        for position, (param, value) in enumerate(zip(params, args)):
            if not is_encodable(param.type, value):
                raise EncodingError(
                    f"{label}: argument {param.name or position!r} is not a valid {param.type}: {value!r}"
                )
        return abi_encode([param.type for param in params], list(args))

    def encode_call(self, method: str, args: Sequence[Any] = ()) -> bytes:
        """Return selector + encoded arguments for *method*."""

        spec = self.method(method)
        return spec.selector + self._encode_args(f"{self.name}.{method}", spec.inputs, args)

    def encode_constructor(self, args: Sequence[Any] = ()) -> bytes:
        return self._encode_args(f"{self.name}.constructor", self.constructor, args)

    def encode_deploy(self, bytecode: Union[bytes, str, None], args: Sequence[Any] = ()) -> bytes:
        code = HexBytes(bytecode) if bytecode else self.bytecode
        if not code:
            raise EncodingError(f"{self.name} has no bytecode to deploy")
        return bytes(code) + self.encode_constructor(args)

    def decode_call(self, data: bytes) -> Tuple[str, Tuple[Any, ...]]:
        """Split call data back into the method name and its arguments."""

        data = bytes(data)
        spec = self._by_selector.get(data[:4])
        if spec is None:
            raise EncodingError(f"{self.name}: unknown selector 0x{data[:4].hex()}")
        try:
            values = abi_decode([param.type for param in spec.inputs], data[4:])
        except DecodingError as exc:
            raise EncodingError(f"{self.name}.{spec.name}: malformed call data") from exc
        return spec.name, tuple(_normalise(param.type, value) for param, value in zip(spec.inputs, values))

    def decode_constructor(self, data: bytes) -> Tuple[Any, ...]:
        values = abi_decode([param.type for param in self.constructor], bytes(data))
        return tuple(_normalise(param.type, value) for param, value in zip(self.constructor, values))

    def encode_output(self, method: str, values: Sequence[Any]) -> bytes:
        spec = self.method(method)
        return abi_encode([param.type for param in spec.outputs], list(values))

    def decode_output(self, method: str, data: bytes, *, as_dict: bool = False) -> Any:
        """Decode the return data of *method*.

        A single output is returned bare, several as a tuple, or as a dict
        keyed by output name when *as_dict* is set.
        """

        spec = self.method(method)
        values = abi_decode([param.type for param in spec.outputs], bytes(data))
        values = tuple(_normalise(param.type, value) for param, value in zip(spec.outputs, values))
        if as_dict:
            return {param.name: value for param, value in zip(spec.outputs, values)}
        if len(values) == 1:
            return values[0]
        return values

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def event(self, name: str) -> EventSpec:
        try:
            return self.events[name]
        except KeyError as exc:
            raise EncodingError(f"{self.name} has no event {name!r}") from exc

    def encode_event(self, name: str, values: Sequence[Any], address: str) -> Log:
        """Build the log a contract emitting *name* with *values* would produce."""

        spec = self.event(name)
        if len(values) != len(spec.inputs):
            raise EncodingError(f"{self.name}.{name} expects {len(spec.inputs)} fields, got {len(values)}")
        topics: List[bytes] = [spec.topic]
        data_types: List[str] = []
        data_values: List[Any] = []
        for param, value in zip(spec.inputs, values):
            if param.indexed:
                encoded = abi_encode([param.type], [value])
                topics.append(keccak(encoded) if _is_dynamic(param.type) else encoded)
            else:
                data_types.append(param.type)
                data_values.append(value)
        return Log(address=to_checksum_address(address), topics=tuple(topics), data=abi_encode(data_types, data_values))

    def decode_event(self, name: str, log: Log) -> Dict[str, Any]:
        """Decode the fields of *log* as event *name*.

        Indexed dynamic fields are only available as their hash and are
        returned as the raw topic bytes.
        """

        spec = self.event(name)
        if not log.topics or log.topics[0] != spec.topic:
            raise EncodingError(f"log is not a {self.name}.{name} event")
        data_params = [param for param in spec.inputs if not param.indexed]
        data_values = iter(abi_decode([param.type for param in data_params], log.data))
        topics = iter(log.topics[1:])
        fields: Dict[str, Any] = {}
        for param in spec.inputs:
            if param.indexed:
                topic = next(topics)
                if _is_dynamic(param.type):
                    fields[param.name] = topic
                else:
                    fields[param.name] = _normalise(param.type, abi_decode([param.type], topic)[0])
            else:
                fields[param.name] = _normalise(param.type, next(data_values))
        return fields

    def find_event(self, receipt: Receipt, name: str) -> Optional[Dict[str, Any]]:
        """Return the first *name* event carried by *receipt*, if any."""

        topic = self.event(name).topic
        for log in receipt.logs:
            if log.topics and log.topics[0] == topic:
                return self.decode_event(name, log)
        return None

    def events_in(self, receipt: Receipt) -> List[Tuple[str, Dict[str, Any]]]:
        decoded = []
        for log in receipt.logs:
            spec = self._by_topic.get(log.topics[0]) if log.topics else None
            if spec is not None:
                decoded.append((spec.name, self.decode_event(spec.name, log)))
        return decoded


__all__ = ["ContractInterface", "EventSpec", "MethodSpec", "Param"]
