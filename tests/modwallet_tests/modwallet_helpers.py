"""
Test doubles and helpers shared by the modwallet test suite.

Mock modules exercise the registry and dispatcher; ``sign_user_operation``
and ``dca_settings`` build signed operations and recurring-buy schedules.
"""

from modwallet.core.contracts.modules.base import ERC165_INTERFACE_ID, Module
from modwallet.core.contracts.modules.dca import RecurringBuySettings
from modwallet.core.contracts.user_operation import UserOperation
from modwallet.core.vm.abi import AbiFunction, decode_values
from modwallet.core.vm.contract import Contract, ExecutionContext, external
from modwallet.core.vm.exceptions import ContractError
from modwallet.core.webauthn import PasskeyCredential

START_TIME = 1_750_000_000

USDC_DECIMALS = 6
USDC_LIQUIDITY = 1_000_000 * 10**USDC_DECIMALS
WETH_LIQUIDITY = 500 * 10**18
WALLET_USDC = 10_000 * 10**USDC_DECIMALS
BUY_AMOUNT = 100 * 10**USDC_DECIMALS


# ==================== Mock Modules ====================

SET_VALUE = AbiFunction("setValue(uint256)")
GET_VALUE = AbiFunction("getValue()", ("uint256",))
WHO_AM_I = AbiFunction("whoAmI()", ("address", "address"))
FAIL = AbiFunction("fail()")
SET_OTHER = AbiFunction("setOther(uint256)")
GET_OTHER = AbiFunction("getOther()", ("uint256",))


class MockModuleError(ContractError):
    signature = "MockModuleError(uint256)"


class MockInstallError(ContractError):
    signature = "MockInstallError()"


class MockUninstallError(ContractError):
    signature = "MockUninstallError()"


class MockModule(Module):
    """Stores one value; install data optionally seeds it."""

    SELECTORS = (SET_VALUE, GET_VALUE, WHO_AM_I, FAIL)

    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        if data:
            (ctx.storage["value"],) = decode_values(["uint256"], data)

    @external(SET_VALUE)
    def set_value(self, ctx: ExecutionContext, value: int) -> None:
        ctx.storage["value"] = value
        ctx.emit("ValueSet", value=value)

    @external(GET_VALUE)
    def get_value(self, ctx: ExecutionContext) -> int:
        return ctx.storage.get("value", 0)

    @external(WHO_AM_I)
    def who_am_i(self, ctx: ExecutionContext) -> tuple:
        return ctx.address, ctx.sender

    @external(FAIL)
    def fail(self, ctx: ExecutionContext) -> None:
        ctx.storage["value"] = 999
        raise MockModuleError(7)


class OtherValueModule(Module):
    """Writes the same storage key as MockModule through different selectors."""

    SELECTORS = (SET_OTHER, GET_OTHER)

    @external(SET_OTHER)
    def set_other(self, ctx: ExecutionContext, value: int) -> None:
        ctx.storage["value"] = value

    @external(GET_OTHER)
    def get_other(self, ctx: ExecutionContext) -> int:
        return ctx.storage.get("value", 0)


class CollidingModule(Module):
    SELECTORS = (GET_OTHER, GET_VALUE)


class NoIntrospectionModule(Contract):
    """Has module hooks but no supportsInterface."""

    @external(AbiFunction("onInstall(bytes)"))
    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        pass


class InvalidModule(Contract):
    """Answers ERC-165 correctly but does not implement the module interface."""

    @external(AbiFunction("supportsInterface(bytes4)", ("bool",)))
    def supports_interface(self, ctx: ExecutionContext, interface: bytes) -> bool:
        return interface == ERC165_INTERFACE_ID


class PromiscuousModule(Module):
    """Claims to support every interface, including 0xffffffff."""

    def supports_interface(self, ctx: ExecutionContext, interface: bytes) -> bool:
        return True


class RevertingInstallModule(Module):
    SELECTORS = (SET_OTHER,)

    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        ctx.storage["partial"] = True
        raise MockInstallError()


class RevertingUninstallModule(Module):
    SELECTORS = (GET_OTHER,)

    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        ctx.storage["value"] = 5

    def on_uninstall(self, ctx: ExecutionContext) -> None:
        raise MockUninstallError()

    @external(GET_OTHER)
    def get_other(self, ctx: ExecutionContext) -> int:
        return ctx.storage.get("value", 0)


# ==================== Helpers ====================


def sign_user_operation(
    credential: PasskeyCredential,
    op: UserOperation,
    entry_point: str,
    chain_id: int,
    **signing_options,
) -> UserOperation:
    """Attach a passkey signature over the operation's hash."""
    op_hash = op.hash(entry_point, chain_id)
    return op.with_signature(credential.sign_user_op(op_hash, **signing_options).encode())


def dca_settings(router, token_in, token_out, start, **overrides) -> RecurringBuySettings:
    values = dict(
        router=router,
        token_in=token_in,
        token_out=token_out,
        day_frequency=1,
        amount_in=BUY_AMOUNT,
        start=start,
        end=start + 30 * 24 * 60 * 60,
    )
    values.update(overrides)
    return RecurringBuySettings(**values)
