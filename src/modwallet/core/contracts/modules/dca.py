"""
Recurring buy (dollar-cost averaging) module.

Once installed on a wallet, anyone may call ``triggerBuy()`` on the wallet
address. Each call swaps ``amountIn`` of ``tokenIn`` for ``tokenOut`` through
a Uniswap V2 style router, at most once per period:

    period = (now - start) // (dayFrequency * 86400) + 1

Buys are only allowed inside ``[start, end]`` and only when the current
period is past ``lastPeriodExecuted``. A trigger records the *current* period,
so missed periods are skipped rather than caught up.

Install data is ``abi.encode(address router, address tokenIn, address
tokenOut, uint256 dayFrequency, uint256 amountIn, uint256 start, uint256
end)``. Installing grants the router an unlimited allowance over ``tokenIn``;
uninstalling resets it to zero.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from ...vm.abi import AbiFunction, decode_values, encode_values
from ...vm.contract import ExecutionContext, external
from ...vm.exceptions import ContractError
from ...vm.ledger import ZERO_ADDRESS
from .. import erc20
from ..exchange import SWAP_EXACT_TOKENS_FOR_TOKENS
from .base import Module

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

INIT_DATA_TYPES = ("address", "address", "address", "uint256", "uint256", "uint256", "uint256")
SETTINGS_TYPE = "(address,address[],uint256,uint256,uint256,uint256,uint256)"

TRIGGER_BUY = AbiFunction("triggerBuy()")
GET_SETTINGS = AbiFunction("getSettings()", (SETTINGS_TYPE,))


class InvalidRouter(ContractError):
    signature = "InvalidRouter()"


class InvalidToken(ContractError):
    signature = "InvalidToken()"


class InvalidDayFrequency(ContractError):
    signature = "InvalidDayFrequency()"


class InvalidAmountIn(ContractError):
    signature = "InvalidAmountIn()"


class InvalidTimeframe(ContractError):
    signature = "InvalidTimeframe()"


class BuyNotAllowed(ContractError):
    """Outside the buy window, or the current period already bought."""

    signature = "BuyNotAllowed()"


class RecurringBuyState(Enum):
    UNINSTALLED = "uninstalled"
    ARMED = "armed"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RecurringBuySettings:
    """Schedule stored in the module's namespace of a wallet."""

    router: str
    token_in: str
    token_out: str
    day_frequency: int
    amount_in: int
    start: int
    end: int
    last_period_executed: int = 0

    @classmethod
    def decode_init_data(cls, data: bytes) -> "RecurringBuySettings":
        return cls(*decode_values(INIT_DATA_TYPES, data, context="DCA init data"))

    def encode_init_data(self) -> bytes:
        return encode_values(
            INIT_DATA_TYPES,
            [
                self.router,
                self.token_in,
                self.token_out,
                self.day_frequency,
                self.amount_in,
                self.start,
                self.end,
            ],
        )

    @classmethod
    def from_abi(cls, value: tuple) -> "RecurringBuySettings":
        router, path, day_frequency, amount_in, start, end, last_period = value
        return cls(router, path[0], path[1], day_frequency, amount_in, start, end, last_period)

    def as_abi(self) -> tuple:
        return (
            self.router,
            [self.token_in, self.token_out],
            self.day_frequency,
            self.amount_in,
            self.start,
            self.end,
            self.last_period_executed,
        )

    @classmethod
    def load(cls, storage: Mapping[str, Any]) -> Optional["RecurringBuySettings"]:
        if "router" not in storage:
            return None
        return cls(**{f.name: storage[f.name] for f in dataclasses.fields(cls)})

    def store(self, storage: dict) -> None:
        storage.update(dataclasses.asdict(self))

    def validate(self, now: int) -> None:
        """Reject unusable schedules, in field order."""
        if self.router == ZERO_ADDRESS:
            raise InvalidRouter()
        if ZERO_ADDRESS in (self.token_in, self.token_out) or self.token_in == self.token_out:
            raise InvalidToken()
        if self.day_frequency == 0:
            raise InvalidDayFrequency()
        if self.amount_in == 0:
            raise InvalidAmountIn()
        if self.start < now or self.end <= self.start:
            raise InvalidTimeframe()

    @property
    def period_length(self) -> int:
        return self.day_frequency * SECONDS_PER_DAY

    def in_window(self, now: int) -> bool:
        return self.start <= now <= self.end

    def current_period(self, now: int) -> int:
        return (now - self.start) // self.period_length + 1

    def can_buy(self, now: int) -> bool:
        return self.in_window(now) and self.current_period(now) > self.last_period_executed

    def state_at(self, now: int) -> RecurringBuyState:
        return RecurringBuyState.ARMED if self.can_buy(now) else RecurringBuyState.EXHAUSTED


def state_at(settings: Optional[RecurringBuySettings], now: int) -> RecurringBuyState:
    if settings is None:
        return RecurringBuyState.UNINSTALLED
    return settings.state_at(now)


class DCA(Module):
    """Recurring buy module."""

    SELECTORS = (TRIGGER_BUY, GET_SETTINGS)

    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        settings = RecurringBuySettings.decode_init_data(data)
        settings.validate(ctx.timestamp)
        settings.store(ctx.storage)

        ctx.call(settings.token_in, erc20.APPROVE, settings.router, erc20.UINT256_MAX)

        logger.info(
            "Recurring buy configured",
            extra={
                "event": "dca.installed",
                "wallet": ctx.address[:10],
                "router": settings.router[:10],
                "token_in": settings.token_in[:10],
                "token_out": settings.token_out[:10],
                "day_frequency": settings.day_frequency,
                "amount_in": settings.amount_in,
                "start": settings.start,
                "end": settings.end,
            },
        )

    def on_uninstall(self, ctx: ExecutionContext) -> None:
        settings = RecurringBuySettings.load(ctx.storage)
        if settings is None:
            return
        ctx.call(settings.token_in, erc20.APPROVE, settings.router, 0)
        logger.info(
            "Recurring buy approval revoked",
            extra={"event": "dca.uninstalled", "wallet": ctx.address[:10]},
        )

    @external(TRIGGER_BUY)
    def trigger_buy(self, ctx: ExecutionContext) -> None:
        """
        Buy for the current period.

        Raises:
            BuyNotAllowed: Outside ``[start, end]`` or period already executed
        """
        settings = RecurringBuySettings.load(ctx.storage)
        now = ctx.timestamp
        if settings is None or not settings.can_buy(now):
            logger.debug(
                "Recurring buy rejected",
                extra={"event": "dca.buy_not_allowed", "wallet": ctx.address[:10], "now": now},
            )
            raise BuyNotAllowed()

        period = settings.current_period(now)
        ctx.storage["last_period_executed"] = period

        amounts = ctx.call(
            settings.router,
            SWAP_EXACT_TOKENS_FOR_TOKENS,
            settings.amount_in,
            0,
            [settings.token_in, settings.token_out],
            ctx.address,
            now,
        )

        ctx.emit("BuyTriggered", period=period, amount_in=settings.amount_in, amount_out=amounts[-1])
        logger.info(
            "Recurring buy executed",
            extra={
                "event": "dca.buy_triggered",
                "wallet": ctx.address[:10],
                "period": period,
                "amount_in": settings.amount_in,
                "amount_out": amounts[-1],
            },
        )

    @external(GET_SETTINGS)
    def get_settings(self, ctx: ExecutionContext) -> tuple:
        settings = RecurringBuySettings.load(ctx.storage)
        if settings is None:
            return RecurringBuySettings(ZERO_ADDRESS, ZERO_ADDRESS, ZERO_ADDRESS, 0, 0, 0, 0).as_abi()
        return settings.as_abi()
