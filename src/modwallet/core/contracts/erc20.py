"""
ERC20 Token Standard Implementation.

Asset contract the wallet and its modules move value through:
- Basic token operations (transfer, approve, transferFrom)
- Minting (owner only) and burning
- Metadata (name, symbol, decimals)
- Events (Transfer, Approval)

State lives in the contract's own storage namespace on the ledger:
``balances`` and ``allowances`` keyed by checksum address.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

from ..vm.abi import AbiFunction
from ..vm.contract import Contract, ExecutionContext, external
from ..vm.exceptions import Revert
from ..vm.ledger import ZERO_ADDRESS

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1

NAME = AbiFunction("name()", ("string",))
SYMBOL = AbiFunction("symbol()", ("string",))
DECIMALS = AbiFunction("decimals()", ("uint8",))
TOTAL_SUPPLY = AbiFunction("totalSupply()", ("uint256",))
BALANCE_OF = AbiFunction("balanceOf(address)", ("uint256",))
ALLOWANCE = AbiFunction("allowance(address,address)", ("uint256",))
TRANSFER = AbiFunction("transfer(address,uint256)", ("bool",))
APPROVE = AbiFunction("approve(address,uint256)", ("bool",))
TRANSFER_FROM = AbiFunction("transferFrom(address,address,uint256)", ("bool",))
MINT = AbiFunction("mint(address,uint256)", ("bool",))
BURN = AbiFunction("burn(uint256)", ("bool",))
OWNER = AbiFunction("owner()", ("address",))


class ERC20Token(Contract):
    """
    ERC20 token.

    Constructor arguments: ``name, symbol, decimals``. The deployer becomes
    the owner and is the only address allowed to mint.
    """

    def constructor(self, ctx: ExecutionContext, *args: Any) -> None:
        name, symbol, *rest = args
        decimals = rest[0] if rest else 18
        ctx.storage.update(
            name=name,
            symbol=symbol,
            decimals=decimals,
            owner=ctx.sender,
            total_supply=0,
            balances={},
            allowances={},
        )

    # ==================== View Functions ====================

    @external(NAME)
    def name(self, ctx: ExecutionContext) -> str:
        return ctx.storage["name"]

    @external(SYMBOL)
    def symbol(self, ctx: ExecutionContext) -> str:
        return ctx.storage["symbol"]

    @external(DECIMALS)
    def decimals(self, ctx: ExecutionContext) -> int:
        return ctx.storage["decimals"]

    @external(TOTAL_SUPPLY)
    def total_supply(self, ctx: ExecutionContext) -> int:
        return ctx.storage["total_supply"]

    @external(OWNER)
    def owner(self, ctx: ExecutionContext) -> str:
        return ctx.storage["owner"]

    @external(BALANCE_OF)
    def balance_of(self, ctx: ExecutionContext, account: str) -> int:
        return ctx.storage["balances"].get(account, 0)

    @external(ALLOWANCE)
    def allowance(self, ctx: ExecutionContext, owner: str, spender: str) -> int:
        return ctx.storage["allowances"].get(owner, {}).get(spender, 0)

    # ==================== State-Changing Functions ====================

    @external(TRANSFER)
    def transfer(self, ctx: ExecutionContext, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from the caller to ``recipient``.

        Raises:
            Revert: If the recipient is the zero address or the balance is short
        """
        self._validate_address(recipient, "recipient")
        self._move(ctx, ctx.sender, recipient, amount)
        return True

    @external(APPROVE)
    def approve(self, ctx: ExecutionContext, spender: str, amount: int) -> bool:
        self._validate_address(spender, "spender")
        allowances = ctx.storage["allowances"].setdefault(ctx.sender, {})
        allowances[spender] = amount
        ctx.emit("Approval", owner=ctx.sender, spender=spender, value=amount)
        return True

    @external(TRANSFER_FROM)
    def transfer_from(
        self, ctx: ExecutionContext, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using the caller's allowance over ``from_addr``.

        An allowance of ``UINT256_MAX`` is never decremented.
        """
        self._validate_address(to_addr, "recipient")

        current_allowance = self.allowance(ctx, from_addr, ctx.sender)
        if current_allowance < amount:
            raise Revert(f"ERC20: insufficient allowance ({current_allowance} < {amount})")

        if current_allowance != UINT256_MAX:
            ctx.storage["allowances"][from_addr][ctx.sender] = current_allowance - amount

        self._move(ctx, from_addr, to_addr, amount)
        return True

    # ==================== Minting & Burning ====================

    @external(MINT)
    def mint(self, ctx: ExecutionContext, to: str, amount: int) -> bool:
        if ctx.sender != ctx.storage["owner"]:
            raise Revert("ERC20: caller is not the owner")
        self._validate_address(to, "recipient")

        new_supply = ctx.storage["total_supply"] + amount
        if new_supply > UINT256_MAX:
            raise Revert("ERC20: total supply overflow")

        ctx.storage["total_supply"] = new_supply
        balances = ctx.storage["balances"]
        balances[to] = balances.get(to, 0) + amount
        ctx.emit("Transfer", sender=ZERO_ADDRESS, recipient=to, value=amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": ctx.storage["symbol"],
                "to": to[:10],
                "amount": amount,
                "new_supply": new_supply,
            },
        )
        return True

    @external(BURN)
    def burn(self, ctx: ExecutionContext, amount: int) -> bool:
        balances = ctx.storage["balances"]
        balance = balances.get(ctx.sender, 0)
        if balance < amount:
            raise Revert(f"ERC20: burn amount exceeds balance ({amount} > {balance})")
        balances[ctx.sender] = balance - amount
        ctx.storage["total_supply"] -= amount
        ctx.emit("Transfer", sender=ctx.sender, recipient=ZERO_ADDRESS, value=amount)
        return True

    # ==================== Internal ====================

    def _move(self, ctx: ExecutionContext, sender: str, recipient: str, amount: int) -> None:
        balances: MutableMapping[str, int] = ctx.storage["balances"]
        sender_balance = balances.get(sender, 0)
        if sender_balance < amount:
            raise Revert(
                f"ERC20: transfer amount exceeds balance ({amount} > {sender_balance})"
            )
        balances[sender] = sender_balance - amount
        balances[recipient] = balances.get(recipient, 0) + amount
        ctx.emit("Transfer", sender=sender, recipient=recipient, value=amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": ctx.storage["symbol"],
                "from": sender[:10],
                "to": recipient[:10],
                "amount": amount,
            },
        )

    @staticmethod
    def _validate_address(address: str, field: str) -> None:
        if address == ZERO_ADDRESS:
            raise Revert(f"ERC20: {field} is the zero address")
