"""
ERC-4337 style entry point: the executor wallets trust.

``handleOps`` runs in two phases, as the reference entry point does:

1. Validation: for every operation, ask the wallet to validate the signature
   (paying any missing prefund) and consume the operation's nonce. Any
   rejection reverts the whole batch with ``FailedOp``.
2. Execution: call each wallet with its ``callData``. A failing call is
   recorded with ``UserOperationRevertReason`` and does not affect the others;
   its nonce stays consumed.

Deposits are tracked so prefunds have somewhere to go; no gas is metered.
"""

from __future__ import annotations

import logging
from typing import Any

from ..vm.abi import AbiFunction
from ..vm.contract import Contract, ExecutionContext, external
from ..vm.exceptions import ContractError, VMExecutionError
from .smart_wallet import CONSUME_NONCE, GET_NONCE, VALIDATE_USER_OP, ValidationCode
from .user_operation import USER_OPERATION_TYPE, UserOperation

logger = logging.getLogger(__name__)

HANDLE_OPS = AbiFunction(f"handleOps({USER_OPERATION_TYPE}[],address)")
GET_USER_OP_HASH = AbiFunction(f"getUserOpHash({USER_OPERATION_TYPE})", ("bytes32",))
ENTRY_POINT_GET_NONCE = AbiFunction("getNonce(address)", ("uint256",))
DEPOSIT_TO = AbiFunction("depositTo(address)")
BALANCE_OF = AbiFunction("balanceOf(address)", ("uint256",))


class FailedOp(ContractError):
    """Validation of the operation at ``opIndex`` failed; the batch reverts."""

    signature = "FailedOp(uint256,string)"

    @property
    def op_index(self) -> int:
        return self.args_values[0]

    @property
    def reason(self) -> str:
        return self.args_values[1]


class EntryPoint(Contract):
    """Executor for passkey wallets."""

    def constructor(self, ctx: ExecutionContext, *args: Any) -> None:
        super().constructor(ctx, *args)
        ctx.storage["deposits"] = {}

    def user_op_hash(self, ctx: ExecutionContext, op: UserOperation) -> bytes:
        return op.hash(ctx.address, ctx.ledger.chain_id)

    @external(GET_USER_OP_HASH)
    def get_user_op_hash(self, ctx: ExecutionContext, user_op: tuple) -> bytes:
        return self.user_op_hash(ctx, UserOperation.from_abi(user_op))

    @external(ENTRY_POINT_GET_NONCE)
    def get_nonce(self, ctx: ExecutionContext, sender: str) -> int:
        return ctx.call(sender, GET_NONCE)

    # ==================== Deposits ====================

    @external(DEPOSIT_TO)
    def deposit_to(self, ctx: ExecutionContext, account: str) -> None:
        deposits = ctx.storage["deposits"]
        deposits[account] = deposits.get(account, 0) + ctx.value
        ctx.emit("Deposited", account=account, total_deposit=deposits[account])

    @external(BALANCE_OF)
    def balance_of(self, ctx: ExecutionContext, account: str) -> int:
        return ctx.storage["deposits"].get(account, 0)

    def receive(self, ctx: ExecutionContext) -> None:
        self.deposit_to(ctx, ctx.sender)

    # ==================== Handle Ops ====================

    @external(HANDLE_OPS)
    def handle_ops(self, ctx: ExecutionContext, user_ops: list, beneficiary: str) -> None:
        """
        Validate then execute a batch of user operations.

        Raises:
            FailedOp: An operation failed validation or nonce consumption
        """
        ops = [UserOperation.from_abi(op) for op in user_ops]
        hashes = [self.user_op_hash(ctx, op) for op in ops]

        for index, (op, op_hash) in enumerate(zip(ops, hashes)):
            self._validate(ctx, index, op, op_hash)

        for op, op_hash in zip(ops, hashes):
            self._execute(ctx, op, op_hash)

        logger.info(
            "User operations handled",
            extra={
                "event": "entry_point.handle_ops",
                "count": len(ops),
                "beneficiary": beneficiary[:10],
            },
        )

    def _validate(self, ctx: ExecutionContext, index: int, op: UserOperation, op_hash: bytes) -> None:
        deposit = self.balance_of(ctx, op.sender)
        missing_funds = max(op.required_prefund() - deposit, 0)

        try:
            code = ctx.call(op.sender, VALIDATE_USER_OP, op.as_abi(), op_hash, missing_funds)
        except VMExecutionError as exc:
            raise FailedOp(index, f"AA23 reverted: {exc}") from exc
        if code != ValidationCode.VALID:
            logger.warning(
                "User operation signature rejected",
                extra={
                    "event": "entry_point.signature_rejected",
                    "sender": op.sender[:10],
                    "op_index": index,
                },
            )
            raise FailedOp(index, "AA24 signature error")

        try:
            ctx.call(op.sender, CONSUME_NONCE, op.nonce)
        except VMExecutionError as exc:
            raise FailedOp(index, "AA25 invalid account nonce") from exc

    def _execute(self, ctx: ExecutionContext, op: UserOperation, op_hash: bytes) -> None:
        success = True
        try:
            ctx.raw_call(op.sender, op.call_data)
        except VMExecutionError as exc:
            success = False
            revert_data = exc.encode() if isinstance(exc, ContractError) else b""
            ctx.emit(
                "UserOperationRevertReason",
                user_op_hash=op_hash,
                sender=op.sender,
                nonce=op.nonce,
                revert_reason=revert_data,
                error=exc,
            )
            logger.warning(
                "User operation execution reverted",
                extra={
                    "event": "entry_point.execution_reverted",
                    "sender": op.sender[:10],
                    "nonce": op.nonce,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

        ctx.emit(
            "UserOperationEvent",
            user_op_hash=op_hash,
            sender=op.sender,
            nonce=op.nonce,
            success=success,
        )
