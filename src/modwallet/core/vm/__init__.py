"""
Simulated execution environment.

- Ledger: storage arenas, balances, message calls with rollback, events, clock
- Contract / ExecutionContext: stateless contract code and the context it runs in
- AbiFunction: Solidity ABI selectors and encoding
"""

from .abi import AbiFunction, interface_id, selector_of
from .contract import Contract, EventLog, ExecutionContext, external
from .exceptions import (
    AbiDecodingError,
    CallDepthExceeded,
    ContractError,
    FunctionNotFound,
    InsufficientBalance,
    Revert,
    VMExecutionError,
)
from .ledger import ZERO_ADDRESS, Ledger, normalize_address

__all__ = [
    "AbiDecodingError",
    "AbiFunction",
    "CallDepthExceeded",
    "Contract",
    "ContractError",
    "EventLog",
    "ExecutionContext",
    "FunctionNotFound",
    "InsufficientBalance",
    "Ledger",
    "Revert",
    "VMExecutionError",
    "ZERO_ADDRESS",
    "external",
    "interface_id",
    "normalize_address",
    "selector_of",
]
