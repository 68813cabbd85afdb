"""
Stateless contract base and execution context.

A Contract instance is code bound to an address. It holds no mutable state:
every read and write goes through the ExecutionContext handed to each call,
whose ``storage`` is a namespace inside some account's storage arena. A direct
call receives the contract's own namespace; a delegated call (module logic run
by a wallet) receives a namespace inside the *wallet's* arena, with
``address`` set to the wallet. The code cannot tell the difference, which is
exactly the delegatecall contract.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, MutableMapping, TypeVar

from .abi import SELECTOR_SIZE, AbiFunction
from .exceptions import FunctionNotFound, Revert

if TYPE_CHECKING:
    from .ledger import Ledger

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def external(function: AbiFunction) -> Callable[[F], F]:
    """Mark a method as reachable through calldata matching ``function``."""

    def decorate(method: F) -> F:
        method.__abi_function__ = function  # type: ignore[attr-defined]
        return method

    return decorate


@dataclass
class ExecutionContext:
    """
    Everything a piece of contract code may touch during one call.

    Attributes:
        ledger: Hosting ledger (clock, message calls, balances, events)
        address: Identity the code executes as (whose arena ``storage`` lives in)
        sender: Immediate caller (msg.sender)
        value: Native value attached to the call
        storage: Namespace of the executing identity's storage arena
        code_address: Address of the code actually running
    """

    ledger: Ledger
    address: str
    sender: str
    value: int
    storage: MutableMapping[str, Any]
    code_address: str = ""

    @property
    def timestamp(self) -> int:
        return self.ledger.timestamp

    def call(self, target: str, function: AbiFunction, *args: Any, value: int = 0) -> Any:
        """Message call from the executing identity; returns the decoded result."""
        data = function.encode_call(*args)
        result = self.ledger.call(self.address, target, data, value=value)
        return function.decode_result(result)

    def raw_call(self, target: str, data: bytes, value: int = 0) -> bytes:
        return self.ledger.call(self.address, target, data, value=value)

    def emit(self, name: str, **args: Any) -> None:
        self.ledger.emit(self.address, name, args)

    def delegate(self, code_address: str, storage: MutableMapping[str, Any]) -> ExecutionContext:
        """Context for running another contract's code as this identity."""
        return ExecutionContext(
            ledger=self.ledger,
            address=self.address,
            sender=self.sender,
            value=self.value,
            storage=storage,
            code_address=code_address,
        )

    def delegate_call(self, code_address: str, storage: MutableMapping[str, Any], data: bytes) -> bytes:
        """Run ``code_address``'s code on ``data`` as this identity, over ``storage``."""
        code = self.ledger.code_at(code_address)
        if code is None:
            raise Revert(f"Delegate call to {code_address} which has no code")
        return code.handle_call(self.delegate(code.address, storage), data)


class Contract:
    """
    Base class for simulated contracts.

    Subclasses expose entry points with ``@external(AbiFunction(...))``. Calls
    with empty calldata go to ``receive``; calldata whose selector no external
    method declares goes to ``fallback``.
    """

    _abi_methods: ClassVar[dict[bytes, tuple[AbiFunction, str]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        methods: dict[bytes, tuple[AbiFunction, str]] = {}
        for klass in reversed(cls.__mro__):
            for attr_name, attr in vars(klass).items():
                function = getattr(attr, "__abi_function__", None)
                if function is not None:
                    methods[function.selector] = (function, attr_name)
        cls._abi_methods = methods

    def __init__(self, address: str) -> None:
        self.address = address

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={self.address!r})"

    # ==================== Introspection ====================

    @classmethod
    def declared_selectors(cls) -> frozenset[bytes]:
        return frozenset(cls._abi_methods)

    # ==================== Dispatch ====================

    def constructor(self, ctx: ExecutionContext, *args: Any) -> None:
        """Runs once at deployment with the contract's own storage."""
        if args:
            raise Revert(f"{type(self).__name__} takes no constructor arguments")

    def handle_call(self, ctx: ExecutionContext, calldata: bytes) -> bytes:
        if not calldata:
            self.receive(ctx)
            return b""

        selector = bytes(calldata[:SELECTOR_SIZE])
        entry = self._abi_methods.get(selector)
        if entry is None:
            return self.fallback(ctx, calldata)

        function, attr_name = entry
        args = function.decode_arguments(calldata)
        result = getattr(self, attr_name)(ctx, *args)
        return function.encode_result(result)

    def receive(self, ctx: ExecutionContext) -> None:
        raise Revert(f"{type(self).__name__} does not accept plain value transfers")

    def fallback(self, ctx: ExecutionContext, calldata: bytes) -> bytes:
        logger.debug(
            "Unknown selector",
            extra={
                "event": "contract.function_not_found",
                "contract": self.address[:10],
                "selector": bytes(calldata[:SELECTOR_SIZE]).hex(),
            },
        )
        raise FunctionNotFound(bytes(calldata[:SELECTOR_SIZE]))


@dataclass(frozen=True)
class EventLog:
    """An event emitted by the executing identity during a call."""

    address: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    block_number: int = 0
    timestamp: int = 0


__all__ = ["Contract", "EventLog", "ExecutionContext", "external"]
