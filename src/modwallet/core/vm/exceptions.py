"""
Execution-layer exception hierarchy.

Every hard failure raised while a message call is executing derives from
VMExecutionError. The ledger rolls back all state written by the failing call
before the exception leaves ``Ledger.call``, so raising is the only way a
contract aborts.

ContractError models a Solidity-style custom error: each subclass declares the
error signature (for example ``"InvalidRouter()"``) and the revert data is
``selector || abi.encode(args)``. Callers that only need to tell failures apart
compare ``selector`` values, the same way revert data is inspected on chain.
"""

from __future__ import annotations

from typing import Any, ClassVar

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector


class VMExecutionError(Exception):
    """Base class for every hard failure during contract execution."""


class ContractError(VMExecutionError):
    """
    Revert carrying a custom error.

    Subclasses set ``signature`` to the error's canonical signature. Arguments
    passed to the constructor are encoded against the parameter types of that
    signature when ``encode()`` is called.
    """

    signature: ClassVar[str] = "Error(string)"

    def __init__(self, *args: Any, message: str | None = None) -> None:
        self.args_values = args
        super().__init__(message or self._default_message())

    def _default_message(self) -> str:
        if not self.args_values:
            return self.error_name()
        rendered = ", ".join(
            f"0x{value.hex()}" if isinstance(value, bytes) else str(value)
            for value in self.args_values
        )
        return f"{self.error_name()}({rendered})"

    @classmethod
    def error_name(cls) -> str:
        return cls.signature.split("(", 1)[0]

    @classmethod
    def selector(cls) -> bytes:
        """First four bytes of keccak256 over the error signature."""
        return function_signature_to_4byte_selector(cls.signature)

    @classmethod
    def parameter_types(cls) -> list[str]:
        # Imported lazily: abi imports this module for its own errors.
        from .abi import parse_signature

        return parse_signature(cls.signature)[1]

    def encode(self) -> bytes:
        """Revert data as the ledger would report it."""
        types = self.parameter_types()
        if not types:
            return self.selector()
        return self.selector() + encode(types, list(self.args_values))


class Revert(ContractError):
    """Plain string revert (``require(cond, "message")``)."""

    signature = "Error(string)"

    def __init__(self, reason: str) -> None:
        super().__init__(reason, message=reason)
        self.reason = reason


class FunctionNotFound(ContractError):
    """No built-in method and no installed module owns the called selector."""

    signature = "FunctionNotFound(bytes4)"


class CallDepthExceeded(VMExecutionError):
    """Nested message calls exceeded the ledger's depth limit."""


class InsufficientBalance(ContractError):
    """Native value transfer larger than the sender's balance."""

    signature = "InsufficientBalance(uint256,uint256)"


class AbiDecodingError(VMExecutionError):
    """Calldata or return data could not be decoded against the ABI."""


__all__ = [
    "VMExecutionError",
    "ContractError",
    "Revert",
    "FunctionNotFound",
    "CallDepthExceeded",
    "InsufficientBalance",
    "AbiDecodingError",
]
