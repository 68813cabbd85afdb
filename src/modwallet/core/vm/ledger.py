"""
In-memory hosting ledger.

Provides the execution-environment primitives the wallet kernel relies on:

- a storage arena per address, partitioned into namespaces
- native-value balances and transfers
- message calls with selector dispatch and full rollback on failure
- an event log
- a block clock that only moves when told to

Every ``call`` runs inside a snapshot. If the callee raises, all storage,
balance, event and deployment changes made since the snapshot are undone
before the exception propagates, which gives every call the
all-or-nothing semantics of an EVM message call.

Namespace dictionaries and the dicts, lists and sets stored in them are
restored in place, never replaced, so execution contexts and containers held
by outer frames stay attached to live state after an inner call or a view is
rolled back.
"""

from __future__ import annotations

import copy
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, MutableMapping, TypeVar

from eth_utils import is_address, keccak, to_bytes, to_checksum_address

from .abi import AbiFunction
from .contract import Contract, EventLog, ExecutionContext
from .exceptions import CallDepthExceeded, InsufficientBalance, VMExecutionError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SELF_NAMESPACE = "self"
MAX_CALL_DEPTH = 1024
DEFAULT_CHAIN_ID = 31337

C = TypeVar("C", bound=Contract)


def normalize_address(address: str) -> str:
    """Checksum an address; raises ValueError for anything that is not one."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def _restore_in_place(live: dict[Any, Any], saved: dict[Any, Any]) -> None:
    """Make ``live`` equal to ``saved`` while keeping nested containers' identity."""
    for key in [key for key in live if key not in saved]:
        del live[key]
    for key, value in saved.items():
        current = live.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _restore_in_place(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            current[:] = value
        elif isinstance(current, set) and isinstance(value, set):
            current.clear()
            current.update(value)
        else:
            live[key] = value


@dataclass
class WorldState:
    """All mutable ledger state, kept together so it can be snapshotted."""

    storage: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    balances: dict[str, int] = field(default_factory=dict)
    events: list[EventLog] = field(default_factory=list)
    deploy_counters: dict[str, int] = field(default_factory=dict)


@dataclass
class _Snapshot:
    storage: dict[str, dict[str, dict[str, Any]]]
    balances: dict[str, int]
    event_count: int
    deploy_counters: dict[str, int]
    code_addresses: frozenset[str]


class Ledger:
    """
    Simulated ledger hosting contracts.

    Example:
        ledger = Ledger()
        token = ledger.deploy(ERC20Token, "USD Coin", "USDC", 6, deployer=alice)
        ledger.transact(alice, token.address, MINT, alice, 1_000)
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        timestamp: int | None = None,
        block_number: int = 1,
    ) -> None:
        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else int(timestamp)
        self.block_number = block_number
        self.state = WorldState()
        self._code: dict[str, Contract] = {}
        self._depth = 0

    # ==================== Accounts & Code ====================

    def account(self, label: str) -> str:
        """Deterministic externally-owned address for a label."""
        return to_checksum_address(keccak(text=f"modwallet.eoa:{label}")[-20:])

    def deploy(
        self,
        contract_cls: type[C],
        *args: Any,
        deployer: str = ZERO_ADDRESS,
        value: int = 0,
    ) -> C:
        """Create a contract at a fresh address and run its constructor."""
        deployer = normalize_address(deployer)
        address = self._next_contract_address(deployer)
        contract = contract_cls(address)

        with self.atomic():
            self._code[address] = contract
            if value:
                self._move_value(deployer, address, value)
            ctx = ExecutionContext(
                ledger=self,
                address=address,
                sender=deployer,
                value=value,
                storage=self.namespace(address, SELF_NAMESPACE),
                code_address=address,
            )
            contract.constructor(ctx, *args)

        logger.info(
            "Contract deployed",
            extra={
                "event": "ledger.contract_deployed",
                "contract": contract_cls.__name__,
                "address": address[:10],
                "deployer": deployer[:10],
            },
        )
        return contract

    def code_at(self, address: str) -> Contract | None:
        return self._code.get(normalize_address(address))

    def is_contract(self, address: str) -> bool:
        return self.code_at(address) is not None

    def _next_contract_address(self, deployer: str) -> str:
        counter = self.state.deploy_counters.get(deployer, 0)
        self.state.deploy_counters[deployer] = counter + 1
        seed = to_bytes(hexstr=deployer) + counter.to_bytes(32, "big")
        return to_checksum_address(keccak(seed)[-20:])

    # ==================== Storage Arena ====================

    def namespace(self, address: str, key: str) -> MutableMapping[str, Any]:
        """Namespace ``key`` inside ``address``'s storage arena (created on demand)."""
        arena = self.state.storage.setdefault(normalize_address(address), {})
        return arena.setdefault(key, {})

    def clear_namespace(self, address: str, key: str) -> None:
        arena = self.state.storage.get(normalize_address(address), {})
        if key in arena:
            arena[key].clear()

    def namespaces_of(self, address: str) -> list[str]:
        arena = self.state.storage.get(normalize_address(address), {})
        return [key for key, slots in arena.items() if slots]

    # ==================== Native Value ====================

    def balance_of(self, address: str) -> int:
        return self.state.balances.get(normalize_address(address), 0)

    def set_balance(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Balance cannot be negative")
        self.state.balances[normalize_address(address)] = amount

    def _move_value(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Value cannot be negative")
        available = self.state.balances.get(sender, 0)
        if available < amount:
            raise InsufficientBalance(available, amount)
        self.state.balances[sender] = available - amount
        self.state.balances[recipient] = self.state.balances.get(recipient, 0) + amount

    # ==================== Clock ====================

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time only moves forward")
        self.timestamp += int(seconds)
        self.block_number += 1
        return self.timestamp

    def set_timestamp(self, timestamp: int) -> None:
        if timestamp < self.timestamp:
            raise ValueError("Time only moves forward")
        self.timestamp = int(timestamp)
        self.block_number += 1

    # ==================== Events ====================

    def emit(self, address: str, name: str, args: dict[str, Any]) -> None:
        self.state.events.append(
            EventLog(
                address=normalize_address(address),
                name=name,
                args=dict(args),
                block_number=self.block_number,
                timestamp=self.timestamp,
            )
        )
        logger.debug(
            "Event emitted",
            extra={"event": "ledger.event", "address": address[:10], "event_name": name},
        )

    def events(self, name: str | None = None, address: str | None = None) -> list[EventLog]:
        wanted = normalize_address(address) if address else None
        return [
            log
            for log in self.state.events
            if (name is None or log.name == name) and (wanted is None or log.address == wanted)
        ]

    # ==================== Snapshots ====================

    def _take_snapshot(self) -> _Snapshot:
        # Copies every arena. Calls nest one snapshot per frame.
        return _Snapshot(
            storage=copy.deepcopy(self.state.storage),
            balances=dict(self.state.balances),
            event_count=len(self.state.events),
            deploy_counters=dict(self.state.deploy_counters),
            code_addresses=frozenset(self._code),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        for address, arena in self.state.storage.items():
            saved_arena = snapshot.storage.get(address, {})
            for key, slots in arena.items():
                _restore_in_place(slots, saved_arena.get(key, {}))
        for address, saved_arena in snapshot.storage.items():
            arena = self.state.storage.setdefault(address, {})
            for key, saved_slots in saved_arena.items():
                if key not in arena:
                    arena[key] = saved_slots

        self.state.balances.clear()
        self.state.balances.update(snapshot.balances)
        del self.state.events[snapshot.event_count:]
        self.state.deploy_counters.clear()
        self.state.deploy_counters.update(snapshot.deploy_counters)
        for address in set(self._code) - snapshot.code_addresses:
            del self._code[address]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run a block with all-or-nothing semantics."""
        snapshot = self._take_snapshot()
        try:
            yield
        except Exception:
            self._restore(snapshot)
            raise

    # ==================== Message Calls ====================

    def call(self, sender: str, target: str, data: bytes = b"", value: int = 0) -> bytes:
        """
        Execute a message call and return the raw return data.

        Calls to addresses without code only move value. Any exception rolls
        the ledger back to its state before the call and is re-raised.
        """
        with self.atomic():
            return self._message_call(sender, target, data, value)

    def _message_call(self, sender: str, target: str, data: bytes, value: int) -> bytes:
        sender = normalize_address(sender)
        target = normalize_address(target)
        if self._depth >= MAX_CALL_DEPTH:
            raise CallDepthExceeded(f"Call depth limit {MAX_CALL_DEPTH} reached")

        self._depth += 1
        try:
            if value:
                self._move_value(sender, target, value)
            contract = self._code.get(target)
            if contract is None:
                return b""
            ctx = ExecutionContext(
                ledger=self,
                address=target,
                sender=sender,
                value=value,
                storage=self.namespace(target, SELF_NAMESPACE),
                code_address=target,
            )
            return contract.handle_call(ctx, bytes(data))
        finally:
            self._depth -= 1

    def transact(
        self,
        sender: str,
        target: str,
        function: AbiFunction,
        *args: Any,
        value: int = 0,
    ) -> Any:
        """Send a transaction calling ``function``; returns the decoded result."""
        try:
            result = self.call(sender, target, function.encode_call(*args), value=value)
        except VMExecutionError as exc:
            logger.debug(
                "Transaction reverted",
                extra={
                    "event": "ledger.transaction_reverted",
                    "target": target[:10],
                    "function": function.signature,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise
        return function.decode_result(result)

    def view(self, target: str, function: AbiFunction, *args: Any, sender: str = ZERO_ADDRESS) -> Any:
        """Call ``function`` without persisting any effect."""
        # One snapshot covers both outcomes: the state is restored either way.
        snapshot = self._take_snapshot()
        try:
            result = self._message_call(sender, target, function.encode_call(*args), 0)
        finally:
            self._restore(snapshot)
        return function.decode_result(result)


__all__ = [
    "DEFAULT_CHAIN_ID",
    "Ledger",
    "MAX_CALL_DEPTH",
    "SELF_NAMESPACE",
    "WorldState",
    "ZERO_ADDRESS",
    "normalize_address",
]
