"""Minimal ABI helpers for event logs and view calls.

Events and functions are declared with human-readable signatures, e.g.
``EventSpec.parse("SlotsPurchased(address indexed participant, uint256 quantity)")``
or ``ViewFunction.parse("getRefundableAmount(address) returns (uint256)")``.
Parameter types are validated and canonicalized with the eth_abi type
grammar (tuples and arrays included); encoding and decoding go through
eth_abi, topic hashes and selectors through eth_utils.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import ABITypeError, DecodingError, EncodingError, ParseError
from eth_abi.grammar import BasicType, TupleType, normalize, parse as parse_type
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector

ZERO_ADDRESS = "0x" + "0" * 40
ZERO_HASH = "0x" + "0" * 64

_BYTES32_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
_NAME_RE = re.compile(r"^\s*(\w+)\s*\(")
_RETURNS_RE = re.compile(r"^\s*returns\s*\(")
# Value types are stored in topics as-is; everything else only as a hash.
_TOPIC_VALUE_BASES = frozenset({"address", "bool", "int", "uint", "bytes"})


class AbiDecodeError(ValueError):
    """Raised when ABI-encoded bytes do not match the expected types."""


class LogDecodeError(AbiDecodeError):
    """Raised when a raw log does not match its event declaration."""


def to_bytes(value: Any) -> bytes:
    """Coerce HexBytes, bytes or a hex string into bytes."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        return bytes.fromhex(text)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def to_hex(value: Any) -> str:
    """Lowercase 0x-prefixed hex for HexBytes, bytes or hex strings."""
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + to_bytes(value).hex()


def is_bytes32_hash(value: object) -> bool:
    """True when an on-chain string is a raw 32-byte hash rather than a URI."""
    return isinstance(value, str) and bool(_BYTES32_RE.match(value.strip()))


def is_zero_hash(value: object) -> bool:
    return isinstance(value, str) and value.lower() == ZERO_HASH


def is_zero_address(value: object) -> bool:
    return not value or (isinstance(value, str) and value.lower() == ZERO_ADDRESS)


def canonical_type(abi_type: str) -> str:
    """Validate an ABI type string and return its canonical form (``uint`` -> ``uint256``).

    Raises:
        ValueError: If the string is not a valid ABI type.
    """
    try:
        node = parse_type(normalize(abi_type))
        node.validate()
    except (ParseError, ABITypeError) as e:
        raise ValueError(f"Invalid ABI type {abi_type!r}: {e}") from e
    return node.to_type_str()


def _is_topic_value(abi_type: str) -> bool:
    node = parse_type(abi_type)
    if not isinstance(node, BasicType) or node.is_array:
        return False
    return node.base in _TOPIC_VALUE_BASES and not (node.base == "bytes" and node.sub is None)


def _normalize(abi_type: str, value: Any) -> Any:
    return _normalize_node(parse_type(abi_type), value)


def _normalize_node(node: Any, value: Any) -> Any:
    if node.is_array:
        return [_normalize_node(node.item_type, v) for v in value]
    if isinstance(node, TupleType):
        return tuple(_normalize_node(c, v) for c, v in zip(node.components, value, strict=True))
    if node.base == "address":
        return str(value).lower()
    if node.base == "bytes" and isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def _closing_paren(text: str, start: int) -> int:
    """Index of the parenthesis closing the one at ``start``."""
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise ValueError(f"Unbalanced parentheses in {text!r}")


def _split_params(params: str) -> list[str]:
    """Split a parameter list on top-level commas only."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in params:
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        depth += ch == "("
        depth -= ch == ")"
        current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def _parse_param(raw: str) -> tuple[str, list[str]]:
    """Split ``"<type> [modifiers...] [name]"`` into a canonical type and trailing words."""
    if raw.startswith("("):
        close_at = _closing_paren(raw, 0)
        components = [_parse_param(c)[0] for c in _split_params(raw[1:close_at])]
        suffix, _, words = raw[close_at + 1 :].partition(" ")
        abi_type = f"({','.join(components)}){suffix}"
        rest = words.split()
    else:
        abi_type, *rest = raw.split()
    return canonical_type(abi_type), rest


def _split_declaration(declaration: str) -> tuple[str, str, str]:
    """``"name(params) tail"`` -> ``(name, params, tail)``."""
    match = _NAME_RE.match(declaration)
    if match is None:
        raise ValueError(f"Invalid declaration: {declaration!r}")
    open_at = match.end() - 1
    close_at = _closing_paren(declaration, open_at)
    return match.group(1), declaration[open_at + 1 : close_at], declaration[close_at + 1 :]


@dataclass(frozen=True)
class EventParam:
    name: str
    abi_type: str
    indexed: bool


@dataclass(frozen=True)
class DecodedEvent:
    """A log decoded against its event declaration."""

    name: str
    args: dict[str, Any]
    address: str
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class EventSpec:
    """An event declaration: canonical signature, topic0 and parameter layout."""

    name: str
    params: tuple[EventParam, ...]
    signature: str = field(init=False)
    topic: str = field(init=False)

    def __post_init__(self) -> None:
        signature = f"{self.name}({','.join(p.abi_type for p in self.params)})"
        object.__setattr__(self, "signature", signature)
        object.__setattr__(self, "topic", "0x" + event_signature_to_log_topic(signature).hex())

    @classmethod
    def parse(cls, declaration: str) -> EventSpec:
        name, raw_params, tail = _split_declaration(declaration)
        if tail.strip():
            raise ValueError(f"Invalid event declaration: {declaration!r}")
        params: list[EventParam] = []
        for i, raw in enumerate(_split_params(raw_params)):
            abi_type, words = _parse_param(raw)
            rest = [w for w in words if w != "indexed"]
            params.append(EventParam(name=rest[0] if rest else f"arg{i}", abi_type=abi_type, indexed="indexed" in words))
        return cls(name=name, params=tuple(params))

    @property
    def data_types(self) -> list[str]:
        return [p.abi_type for p in self.params if not p.indexed]

    def decode_log(self, log: dict[str, Any]) -> DecodedEvent:
        """Decode a raw ``eth_getLogs`` entry.

        Raises:
            LogDecodeError: If the topics or data do not fit this event.
        """
        topics = list(log.get("topics") or [])
        if not topics or to_hex(topics[0]) != self.topic:
            raise LogDecodeError(f"Log is not a {self.name} event")

        indexed = [p for p in self.params if p.indexed]
        if len(topics) != len(indexed) + 1:
            raise LogDecodeError(
                f"{self.name}: expected {len(indexed) + 1} topics, got {len(topics)}"
            )

        args: dict[str, Any] = {}
        try:
            for param, topic in zip(indexed, topics[1:], strict=True):
                if _is_topic_value(param.abi_type):
                    (value,) = decode([param.abi_type], to_bytes(topic))
                    args[param.name] = _normalize(param.abi_type, value)
                else:
                    # Reference-typed indexed values are only available as their hash.
                    args[param.name] = to_hex(topic)

            data_params = [p for p in self.params if not p.indexed]
            if data_params:
                values = decode([p.abi_type for p in data_params], to_bytes(log.get("data") or b""))
                for param, value in zip(data_params, values, strict=True):
                    args[param.name] = _normalize(param.abi_type, value)
        except (DecodingError, ValueError, TypeError) as e:
            raise LogDecodeError(f"{self.name}: {e}") from e

        return DecodedEvent(
            name=self.name,
            args=args,
            address=str(log.get("address") or "").lower(),
            block_number=int(log["blockNumber"]),
            transaction_hash=to_hex(log["transactionHash"]),
            log_index=int(log.get("logIndex") or 0),
        )

    def encode_log(self, *, address: str, block_number: int, transaction_hash: str, log_index: int, **args: Any) -> dict[str, Any]:
        """Build a raw log for this event (used for fixtures and replays)."""
        topics = [self.topic]
        for param in self.params:
            if param.indexed:
                topics.append("0x" + encode([param.abi_type], [args[param.name]]).hex())
        data_params = [p for p in self.params if not p.indexed]
        data = encode([p.abi_type for p in data_params], [args[p.name] for p in data_params])
        return {
            "address": address,
            "topics": topics,
            "data": "0x" + data.hex(),
            "blockNumber": block_number,
            "transactionHash": transaction_hash,
            "logIndex": log_index,
        }


@dataclass(frozen=True)
class ViewFunction:
    """A read-only contract function: selector plus input/output types."""

    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]

    @classmethod
    def parse(cls, declaration: str) -> ViewFunction:
        name, raw_inputs, tail = _split_declaration(declaration)
        raw_outputs = ""
        if tail.strip():
            match = _RETURNS_RE.match(tail)
            if match is None:
                raise ValueError(f"Invalid function declaration: {declaration!r}")
            close_at = _closing_paren(tail, match.end() - 1)
            if tail[close_at + 1 :].strip():
                raise ValueError(f"Invalid function declaration: {declaration!r}")
            raw_outputs = tail[match.end() : close_at]
        return cls(
            name=name,
            inputs=tuple(_parse_param(p)[0] for p in _split_params(raw_inputs)),
            outputs=tuple(_parse_param(p)[0] for p in _split_params(raw_outputs)),
        )

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(self.signature).hex()

    def encode_call(self, *args: Any) -> str:
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.name} expects {len(self.inputs)} arguments, got {len(args)}")
        try:
            encoded = encode(list(self.inputs), list(args)) if self.inputs else b""
        except EncodingError as e:
            raise ValueError(f"{self.name}: {e}") from e
        return self.selector + encoded.hex()

    def decode_result(self, data: Any) -> Any:
        """Decode return data; a single output is returned unwrapped."""
        raw = to_bytes(data)
        if not raw:
            raise AbiDecodeError(f"{self.name}: empty return data")
        try:
            values = decode(list(self.outputs), raw)
        except DecodingError as e:
            raise AbiDecodeError(f"{self.name}: {e}") from e
        normalized = tuple(_normalize(t, v) for t, v in zip(self.outputs, values, strict=True))
        if len(normalized) == 1:
            return normalized[0]
        return normalized
