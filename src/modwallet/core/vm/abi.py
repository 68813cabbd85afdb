"""
ABI helpers for simulated contracts.

Selectors and encodings follow the Solidity ABI so that calldata produced
here is byte-identical to what an EVM toolchain would produce. Encoding and
decoding are delegated to eth-abi; keccak and selector derivation to
eth-utils.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Iterable, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from .exceptions import AbiDecodingError

SELECTOR_SIZE = 4


def split_types(type_list: str) -> list[str]:
    """
    Split a comma separated ABI type list, honouring tuple parentheses.

    >>> split_types("address,(uint256,uint256),bytes")
    ['address', '(uint256,uint256)', 'bytes']
    """
    types: list[str] = []
    depth = 0
    current = []
    for char in type_list:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"Unbalanced parentheses in type list: {type_list!r}")
        if char == "," and depth == 0:
            types.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if depth != 0:
        raise ValueError(f"Unbalanced parentheses in type list: {type_list!r}")
    tail = "".join(current).strip()
    if tail:
        types.append(tail)
    return types


def parse_signature(signature: str) -> tuple[str, list[str]]:
    """Return (name, input types) for a canonical function signature."""
    open_index = signature.find("(")
    if open_index <= 0 or not signature.endswith(")"):
        raise ValueError(f"Invalid function signature: {signature!r}")
    name = signature[:open_index]
    return name, split_types(signature[open_index + 1 : -1])


def selector_of(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def interface_id(signatures: Iterable[str]) -> bytes:
    """ERC-165 interface id: XOR of all function selectors."""
    value = reduce(
        lambda acc, sig: acc ^ int.from_bytes(selector_of(sig), "big"),
        signatures,
        0,
    )
    return value.to_bytes(SELECTOR_SIZE, "big")


@dataclass(frozen=True)
class AbiFunction:
    """
    A callable entry point described by its canonical signature.

    ``outputs`` lists the return types. A single output decodes to a bare value,
    several outputs decode to a tuple, no outputs decode to None.
    """

    signature: str
    outputs: tuple[str, ...] = ()
    name: str = field(init=False)
    inputs: tuple[str, ...] = field(init=False)
    selector: bytes = field(init=False)

    def __post_init__(self) -> None:
        name, inputs = parse_signature(self.signature)
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "inputs", tuple(inputs))
        object.__setattr__(self, "selector", selector_of(self.signature))

    def encode_call(self, *args: Any) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.signature} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        try:
            return self.selector + encode(list(self.inputs), list(args))
        except EncodingError as exc:
            raise ValueError(f"Cannot encode arguments for {self.signature}: {exc}") from exc

    def decode_arguments(self, calldata: bytes) -> tuple[Any, ...]:
        """Decode calldata (selector included) into positional arguments."""
        if calldata[:SELECTOR_SIZE] != self.selector:
            raise AbiDecodingError(
                f"Calldata selector 0x{calldata[:SELECTOR_SIZE].hex()} does not match {self.signature}"
            )
        return decode_values(self.inputs, calldata[SELECTOR_SIZE:], context=self.signature)

    def encode_result(self, value: Any) -> bytes:
        if not self.outputs:
            return b""
        values = [value] if len(self.outputs) == 1 else list(value)
        return encode(list(self.outputs), values)

    def decode_result(self, data: bytes) -> Any:
        if not self.outputs:
            return None
        values = decode_values(self.outputs, data, context=f"{self.signature} result")
        return values[0] if len(self.outputs) == 1 else values


def checksum_addresses(abi_type: str, value: Any) -> Any:
    """
    Checksum every ``address`` inside a decoded value of ``abi_type``.

    Walks arrays and tuples so that addresses coming out of calldata share
    the form the ledger uses for senders and storage keys.
    """
    abi_type = abi_type.strip()
    if abi_type.endswith("]"):
        element_type = abi_type[: abi_type.rindex("[")]
        return tuple(checksum_addresses(element_type, item) for item in value)
    if abi_type.startswith("("):
        member_types = split_types(abi_type[1:-1])
        return tuple(
            checksum_addresses(member_type, item) for member_type, item in zip(member_types, value)
        )
    if abi_type == "address":
        return to_checksum_address(value)
    return value


def decode_values(types: Sequence[str], data: bytes, context: str = "") -> tuple[Any, ...]:
    if not types:
        return ()
    try:
        values = decode(list(types), data)
    except (DecodingError, OverflowError, UnicodeDecodeError) as exc:
        raise AbiDecodingError(f"Cannot decode {context or types}: {exc}") from exc
    return tuple(checksum_addresses(abi_type, value) for abi_type, value in zip(types, values))


def encode_values(types: Sequence[str], values: Sequence[Any]) -> bytes:
    return encode(list(types), list(values))


__all__ = [
    "SELECTOR_SIZE",
    "AbiFunction",
    "checksum_addresses",
    "decode_values",
    "encode_values",
    "interface_id",
    "parse_signature",
    "selector_of",
    "split_types",
]
