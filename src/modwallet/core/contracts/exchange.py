"""
Constant-product exchange venue with a Uniswap V2 router interface.

The router holds one reserve pair per token pair and prices swaps with
``x * y = k`` after a 0.3% trading fee. Only the router surface the
recurring-buy module needs is implemented: liquidity provisioning, quotes and
``swapExactTokensForTokens`` along a multi-hop path.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

from ..vm.abi import AbiFunction
from ..vm.contract import Contract, ExecutionContext, external
from ..vm.exceptions import Revert
from . import erc20

logger = logging.getLogger(__name__)

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000

ADD_LIQUIDITY = AbiFunction("addLiquidity(address,address,uint256,uint256)")
GET_RESERVES = AbiFunction("getReserves(address,address)", ("uint256", "uint256"))
GET_AMOUNTS_OUT = AbiFunction("getAmountsOut(uint256,address[])", ("uint256[]",))
SWAP_EXACT_TOKENS_FOR_TOKENS = AbiFunction(
    "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)",
    ("uint256[]",),
)


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Output amount for ``amount_in`` against one pair, fee included."""
    if amount_in <= 0:
        raise Revert("UniswapV2Library: INSUFFICIENT_INPUT_AMOUNT")
    if reserve_in <= 0 or reserve_out <= 0:
        raise Revert("UniswapV2Library: INSUFFICIENT_LIQUIDITY")
    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def _pair_key(token_a: str, token_b: str) -> str:
    if token_a == token_b:
        raise Revert("UniswapV2Library: IDENTICAL_ADDRESSES")
    first, second = sorted((token_a, token_b), key=str.lower)
    return f"{first}:{second}"


class ExchangeRouter(Contract):
    """Uniswap V2 style router that is also its own pair storage."""

    def constructor(self, ctx: ExecutionContext, *args: Any) -> None:
        super().constructor(ctx, *args)
        ctx.storage["reserves"] = {}

    def _reserves(self, ctx: ExecutionContext, token_a: str, token_b: str) -> MutableMapping[str, int]:
        return ctx.storage["reserves"].setdefault(_pair_key(token_a, token_b), {token_a: 0, token_b: 0})

    @external(ADD_LIQUIDITY)
    def add_liquidity(
        self, ctx: ExecutionContext, token_a: str, token_b: str, amount_a: int, amount_b: int
    ) -> None:
        if amount_a <= 0 or amount_b <= 0:
            raise Revert("UniswapV2Router: INSUFFICIENT_AMOUNT")
        reserves = self._reserves(ctx, token_a, token_b)
        reserves[token_a] += amount_a
        reserves[token_b] += amount_b

        ctx.call(token_a, erc20.TRANSFER_FROM, ctx.sender, ctx.address, amount_a)
        ctx.call(token_b, erc20.TRANSFER_FROM, ctx.sender, ctx.address, amount_b)

        logger.info(
            "Liquidity added",
            extra={
                "event": "exchange.liquidity_added",
                "provider": ctx.sender[:10],
                "token_a": token_a[:10],
                "token_b": token_b[:10],
                "amount_a": amount_a,
                "amount_b": amount_b,
            },
        )

    @external(GET_RESERVES)
    def get_reserves(self, ctx: ExecutionContext, token_a: str, token_b: str) -> tuple[int, int]:
        reserves = ctx.storage["reserves"].get(_pair_key(token_a, token_b), {})
        return reserves.get(token_a, 0), reserves.get(token_b, 0)

    @external(GET_AMOUNTS_OUT)
    def get_amounts_out(self, ctx: ExecutionContext, amount_in: int, path: list[str]) -> list[int]:
        if len(path) < 2:
            raise Revert("UniswapV2Library: INVALID_PATH")
        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            reserve_in, reserve_out = self.get_reserves(ctx, token_in, token_out)
            amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out))
        return amounts

    @external(SWAP_EXACT_TOKENS_FOR_TOKENS)
    def swap_exact_tokens_for_tokens(
        self,
        ctx: ExecutionContext,
        amount_in: int,
        amount_out_min: int,
        path: list[str],
        to: str,
        deadline: int,
    ) -> list[int]:
        """
        Swap exactly ``amount_in`` of ``path[0]`` for as much ``path[-1]`` as
        the pools give, pulling the input from the caller's allowance.
        """
        if deadline < ctx.timestamp:
            raise Revert("UniswapV2Router: EXPIRED")
        amounts = self.get_amounts_out(ctx, amount_in, list(path))
        if amounts[-1] < amount_out_min:
            raise Revert("UniswapV2Router: INSUFFICIENT_OUTPUT_AMOUNT")

        ctx.call(path[0], erc20.TRANSFER_FROM, ctx.sender, ctx.address, amount_in)
        for (token_in, token_out), hop_in, hop_out in zip(zip(path, path[1:]), amounts, amounts[1:]):
            reserves = self._reserves(ctx, token_in, token_out)
            reserves[token_in] += hop_in
            reserves[token_out] -= hop_out
        ctx.call(path[-1], erc20.TRANSFER, to, amounts[-1])

        ctx.emit("Swap", sender=ctx.sender, amounts=list(amounts), to=to)
        logger.info(
            "Swap executed",
            extra={
                "event": "exchange.swap",
                "sender": ctx.sender[:10],
                "token_in": path[0][:10],
                "token_out": path[-1][:10],
                "amount_in": amount_in,
                "amount_out": amounts[-1],
            },
        )
        return amounts
