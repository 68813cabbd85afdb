"""
Modular smart wallet (ERC-4337 account) authenticated by a passkey.

Provides:
- Passkey (WebAuthn, P-256) user-operation validation
- Strictly sequential nonces
- Runtime-installable modules that add new entry points to the wallet
- Ownership transfer to a new passkey
- Native value, ERC-721 and ERC-1155 reception

Only the configured entry point (the executor) may validate operations,
consume nonces, execute calls, manage modules or transfer ownership.
Selectors owned by installed modules are callable by anyone; the module code
runs as the wallet, over a storage namespace derived from the module address.

Validation has two tiers. Credential and timing problems (wrong key, bad
assertion, expired challenge) return ``ValidationCode.INVALID`` so the entry
point can decide what to do. Structural problems (undecodable signature,
wrong challenge length) raise ``MalformedSignature``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from ..crypto_utils import PublicPoint, is_on_curve
from ..vm.abi import AbiFunction, interface_id
from ..vm.contract import Contract, ExecutionContext, external
from ..vm.exceptions import ContractError, Revert, VMExecutionError
from ..vm.ledger import ZERO_ADDRESS, normalize_address
from ..webauthn import (
    CHALLENGE_VERSION,
    Challenge,
    PasskeySignature,
    verify_assertion,
)
from .modules.base import (
    ERC165_INTERFACE_ID,
    GET_SELECTORS,
    ON_INSTALL,
    ON_UNINSTALL,
    SUPPORTS_INTERFACE,
    module_namespace,
    require_module,
)
from .user_operation import USER_OPERATION_TYPE, UserOperation

logger = logging.getLogger(__name__)

VALIDATE_USER_OP = AbiFunction(
    f"validateUserOp({USER_OPERATION_TYPE},bytes32,uint256)", ("uint256",)
)
CONSUME_NONCE = AbiFunction("consumeNonce(uint256)")
EXECUTE = AbiFunction("execute(address,uint256,bytes)", ("bytes",))
EXECUTE_BATCH = AbiFunction("executeBatch(address[],uint256[],bytes[])", ("bytes[]",))
ADD_MODULE = AbiFunction("addModule(address,bytes)")
REMOVE_MODULE = AbiFunction("removeModule(address)")
IS_INSTALLED = AbiFunction("isInstalled(address)", ("bool",))
GET_INSTALLED_MODULES = AbiFunction("getInstalledModules()", ("address[]",))
GET_MODULE_FOR_SELECTOR = AbiFunction("getModuleForSelector(bytes4)", ("address",))
TRANSFER_OWNERSHIP = AbiFunction("transferOwnership((uint256,uint256))")
PUBLIC_KEY = AbiFunction("publicKey()", ("uint256", "uint256"))
ENTRY_POINT = AbiFunction("entryPoint()", ("address",))
GET_NONCE = AbiFunction("getNonce()", ("uint256",))
ON_ERC721_RECEIVED = AbiFunction(
    "onERC721Received(address,address,uint256,bytes)", ("bytes4",)
)
ON_ERC1155_RECEIVED = AbiFunction(
    "onERC1155Received(address,address,uint256,uint256,bytes)", ("bytes4",)
)
ON_ERC1155_BATCH_RECEIVED = AbiFunction(
    "onERC1155BatchReceived(address,address,uint256[],uint256[],bytes)", ("bytes4",)
)

ERC721_RECEIVER_INTERFACE_ID = ON_ERC721_RECEIVED.selector
ERC1155_RECEIVER_INTERFACE_ID = interface_id(
    [ON_ERC1155_RECEIVED.signature, ON_ERC1155_BATCH_RECEIVED.signature]
)
SUPPORTED_INTERFACES = frozenset(
    {ERC165_INTERFACE_ID, ERC721_RECEIVER_INTERFACE_ID, ERC1155_RECEIVER_INTERFACE_ID}
)

NO_ERROR_SELECTOR = b"\x00" * 4


# ==================== Errors ====================


class OnlyEntryPoint(ContractError):
    signature = "OnlyEntryPoint()"


class InvalidNonce(ContractError):
    signature = "InvalidNonce(uint256,uint256)"


class InvalidPublicKey(ContractError):
    signature = "InvalidPublicKey()"


class ModuleAlreadyInstalled(ContractError):
    signature = "ModuleAlreadyInstalled(address)"


class ModuleNotInstalled(ContractError):
    signature = "ModuleNotInstalled(address)"


class SelectorAlreadyRegistered(ContractError):
    signature = "SelectorAlreadyRegistered(bytes4)"


class InstallFailed(ContractError):
    """The module's install hook reverted; carries the inner error selector."""

    signature = "InstallFailed(bytes4)"


class UninstallFailed(ContractError):
    """The module's uninstall hook reverted; carries the inner error selector."""

    signature = "UninstallFailed(bytes4)"


def error_selector(exc: BaseException) -> bytes:
    if isinstance(exc, ContractError):
        return exc.selector()
    return NO_ERROR_SELECTOR


# ==================== Validation Result ====================


class ValidationCode(IntEnum):
    VALID = 0
    INVALID = 1


@dataclass(frozen=True)
class ValidationResult:
    """Soft outcome of a signature check."""

    code: ValidationCode
    reason: str = ""
    valid_until: int = 0

    @property
    def is_valid(self) -> bool:
        return self.code is ValidationCode.VALID


class ModularSmartWallet(Contract):
    """
    Passkey-authenticated modular account.

    Constructor arguments: ``entry_point`` address and the passkey public key
    as an ``(x, y)`` tuple.
    """

    def constructor(self, ctx: ExecutionContext, *args: Any) -> None:
        entry_point, public_key = args
        x, y = public_key
        if not is_on_curve(x, y):
            raise InvalidPublicKey()
        ctx.storage.update(
            entry_point=normalize_address(entry_point),
            public_key=(x, y),
            nonce=0,
            selectors={},
            modules=[],
        )
        if ctx.storage["entry_point"] == ZERO_ADDRESS:
            logger.warning(
                "Wallet deployed without an entry point",
                extra={"event": "wallet.no_entry_point", "wallet": ctx.address[:10]},
            )

    # ==================== Access Control ====================

    def _require_entry_point(self, ctx: ExecutionContext) -> None:
        if ctx.sender != ctx.storage["entry_point"]:
            logger.warning(
                "Rejected call from non entry point",
                extra={
                    "event": "wallet.only_entry_point",
                    "wallet": ctx.address[:10],
                    "caller": ctx.sender[:10],
                },
            )
            raise OnlyEntryPoint()

    # ==================== IAccount Interface (ERC-4337) ====================

    @external(VALIDATE_USER_OP)
    def validate_user_op(
        self,
        ctx: ExecutionContext,
        user_op: tuple,
        user_op_hash: bytes,
        missing_account_funds: int,
    ) -> int:
        """
        Validate a user operation's passkey signature and pay the prefund.

        Returns:
            ``ValidationCode`` as an integer

        Raises:
            OnlyEntryPoint: Caller is not the entry point
            MalformedSignature: Signature bytes are not a passkey assertion
        """
        self._require_entry_point(ctx)
        op = UserOperation.from_abi(user_op)
        result = self.check_signature(ctx, op.signature, user_op_hash)

        if missing_account_funds > 0:
            ctx.raw_call(ctx.sender, b"", value=missing_account_funds)

        return int(result.code)

    def check_signature(
        self, ctx: ExecutionContext, signature: bytes, user_op_hash: bytes
    ) -> ValidationResult:
        passkey_signature = PasskeySignature.decode(signature)
        challenge = Challenge.decode(passkey_signature.challenge)

        if challenge.version != CHALLENGE_VERSION:
            return self._rejected(ctx, "unsupported_challenge_version", challenge.valid_until)
        if challenge.is_expired(ctx.timestamp):
            return self._rejected(ctx, "signature_expired", challenge.valid_until)

        expected = challenge.for_operation(user_op_hash).encode()
        assertion = verify_assertion(passkey_signature, expected, self._public_key(ctx))
        if not assertion:
            return self._rejected(ctx, assertion.reason, challenge.valid_until)

        logger.debug(
            "Signature validation succeeded",
            extra={"event": "account.signature_validation_success", "wallet": ctx.address[:10]},
        )
        return ValidationResult(ValidationCode.VALID, valid_until=challenge.valid_until)

    @staticmethod
    def _rejected(ctx: ExecutionContext, reason: str, valid_until: int) -> ValidationResult:
        logger.warning(
            "Signature validation failed",
            extra={
                "event": "account.signature_validation_failed",
                "wallet": ctx.address[:10],
                "reason": reason,
            },
        )
        return ValidationResult(ValidationCode.INVALID, reason, valid_until)

    @external(CONSUME_NONCE)
    def consume_nonce(self, ctx: ExecutionContext, nonce: int) -> None:
        """Advance the nonce if ``nonce`` is exactly the current value."""
        self._require_entry_point(ctx)
        current = ctx.storage["nonce"]
        if nonce != current:
            logger.warning(
                "Nonce mismatch",
                extra={
                    "event": "wallet.invalid_nonce",
                    "wallet": ctx.address[:10],
                    "expected": current,
                    "provided": nonce,
                },
            )
            raise InvalidNonce(current, nonce)
        ctx.storage["nonce"] = current + 1

    # ==================== Execution ====================

    @external(EXECUTE)
    def execute(self, ctx: ExecutionContext, dest: str, value: int, data: bytes) -> bytes:
        self._require_entry_point(ctx)
        logger.debug(
            "Account executing call",
            extra={
                "event": "account.execute",
                "wallet": ctx.address[:10],
                "dest": dest[:10],
                "value": value,
            },
        )
        return ctx.raw_call(dest, data, value=value)

    @external(EXECUTE_BATCH)
    def execute_batch(
        self, ctx: ExecutionContext, dests: list, values: list, datas: list
    ) -> list[bytes]:
        self._require_entry_point(ctx)
        if len(dests) != len(values) or len(dests) != len(datas):
            raise Revert("Batch arrays length mismatch")
        return [
            ctx.raw_call(dest, data, value=value)
            for dest, value, data in zip(dests, values, datas)
        ]

    # ==================== Module Registry ====================

    @external(ADD_MODULE)
    def add_module(self, ctx: ExecutionContext, module: str, init_data: bytes) -> None:
        """
        Install ``module`` and run its install hook with ``init_data``.

        The selector table and module set are written before the hook runs;
        any failure rolls the whole installation back.

        Raises:
            OnlyEntryPoint: Caller is not the entry point
            UnsupportedModule: Module fails capability probing
            ModuleAlreadyInstalled: Module is already installed
            SelectorAlreadyRegistered: A selector is built in or owned by another module
            InstallFailed: The install hook reverted
        """
        self._require_entry_point(ctx)
        require_module(ctx, module)
        selectors: list[bytes] = list(ctx.ledger.view(module, GET_SELECTORS, sender=ctx.address))

        modules: list[str] = ctx.storage["modules"]
        if module in modules:
            raise ModuleAlreadyInstalled(module)

        table: dict[bytes, str] = ctx.storage["selectors"]
        built_in = type(self).declared_selectors()
        seen: set[bytes] = set()
        for selector in selectors:
            if selector in table or selector in built_in or selector in seen:
                logger.warning(
                    "Module selector collision",
                    extra={
                        "event": "wallet.selector_collision",
                        "wallet": ctx.address[:10],
                        "module_address": module[:10],
                        "selector": selector.hex(),
                        "owner": table.get(selector, ctx.address)[:10],
                    },
                )
                raise SelectorAlreadyRegistered(selector)
            seen.add(selector)

        for selector in selectors:
            table[selector] = module
        modules.append(module)

        namespace = ctx.ledger.namespace(ctx.address, module_namespace(module))
        try:
            ctx.delegate_call(module, namespace, ON_INSTALL.encode_call(init_data))
        except VMExecutionError as exc:
            logger.warning(
                "Module install hook failed",
                extra={
                    "event": "wallet.install_failed",
                    "wallet": ctx.address[:10],
                    "module_address": module[:10],
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise InstallFailed(error_selector(exc)) from exc

        ctx.emit("ModuleInstalled", module=module)
        logger.info(
            "Module installed",
            extra={
                "event": "wallet.module_installed",
                "wallet": ctx.address[:10],
                "module_address": module[:10],
                "selectors": [selector.hex() for selector in selectors],
            },
        )

    @external(REMOVE_MODULE)
    def remove_module(self, ctx: ExecutionContext, module: str) -> None:
        """
        Uninstall ``module``: drop its selectors, run its uninstall hook and
        wipe its storage namespace.

        Raises:
            OnlyEntryPoint: Caller is not the entry point
            ModuleNotInstalled: Module is not installed
            UninstallFailed: The uninstall hook reverted
        """
        self._require_entry_point(ctx)
        modules: list[str] = ctx.storage["modules"]
        if module not in modules:
            raise ModuleNotInstalled(module)

        table: dict[bytes, str] = ctx.storage["selectors"]
        owned = [selector for selector, owner in table.items() if owner == module]
        for selector in owned:
            del table[selector]
        modules.remove(module)

        key = module_namespace(module)
        namespace = ctx.ledger.namespace(ctx.address, key)
        try:
            ctx.delegate_call(module, namespace, ON_UNINSTALL.encode_call())
        except VMExecutionError as exc:
            logger.warning(
                "Module uninstall hook failed",
                extra={
                    "event": "wallet.uninstall_failed",
                    "wallet": ctx.address[:10],
                    "module_address": module[:10],
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise UninstallFailed(error_selector(exc)) from exc
        ctx.ledger.clear_namespace(ctx.address, key)

        ctx.emit("ModuleUninstalled", module=module)
        logger.info(
            "Module uninstalled",
            extra={
                "event": "wallet.module_uninstalled",
                "wallet": ctx.address[:10],
                "module_address": module[:10],
                "selectors": [selector.hex() for selector in owned],
            },
        )

    @external(IS_INSTALLED)
    def is_installed(self, ctx: ExecutionContext, module: str) -> bool:
        return module in ctx.storage["modules"]

    @external(GET_INSTALLED_MODULES)
    def get_installed_modules(self, ctx: ExecutionContext) -> list[str]:
        return list(ctx.storage["modules"])

    @external(GET_MODULE_FOR_SELECTOR)
    def get_module_for_selector(self, ctx: ExecutionContext, selector: bytes) -> str:
        return ctx.storage["selectors"].get(selector, ZERO_ADDRESS)

    def fallback(self, ctx: ExecutionContext, calldata: bytes) -> bytes:
        """Route an unknown selector to the module that owns it."""
        module = ctx.storage["selectors"].get(bytes(calldata[:4]))
        if module is None:
            return super().fallback(ctx, calldata)
        namespace = ctx.ledger.namespace(ctx.address, module_namespace(module))
        return ctx.delegate_call(module, namespace, calldata)

    # ==================== Ownership ====================

    @external(TRANSFER_OWNERSHIP)
    def transfer_ownership(self, ctx: ExecutionContext, new_public_key: tuple) -> None:
        """
        Replace the passkey. The old key cannot validate anything afterwards.

        Raises:
            OnlyEntryPoint: Caller is not the entry point
            InvalidPublicKey: Key is the zero point or not on P-256
        """
        self._require_entry_point(ctx)
        x, y = new_public_key
        if not is_on_curve(x, y):
            raise InvalidPublicKey()

        previous = ctx.storage["public_key"]
        ctx.storage["public_key"] = (x, y)
        ctx.emit("OwnershipTransferred", previous_key=previous, new_key=(x, y))
        logger.info(
            "Wallet ownership transferred",
            extra={"event": "wallet.ownership_transferred", "wallet": ctx.address[:10]},
        )

    # ==================== Views ====================

    def _public_key(self, ctx: ExecutionContext) -> PublicPoint:
        x, y = ctx.storage["public_key"]
        return x, y

    @external(PUBLIC_KEY)
    def public_key(self, ctx: ExecutionContext) -> tuple[int, int]:
        return self._public_key(ctx)

    @external(ENTRY_POINT)
    def entry_point(self, ctx: ExecutionContext) -> str:
        return ctx.storage["entry_point"]

    @external(GET_NONCE)
    def get_nonce(self, ctx: ExecutionContext) -> int:
        return ctx.storage["nonce"]

    # ==================== Reception ====================

    @external(SUPPORTS_INTERFACE)
    def supports_interface(self, ctx: ExecutionContext, interface: bytes) -> bool:
        return interface in SUPPORTED_INTERFACES

    @external(ON_ERC721_RECEIVED)
    def on_erc721_received(
        self, ctx: ExecutionContext, operator: str, from_: str, token_id: int, data: bytes
    ) -> bytes:
        return ON_ERC721_RECEIVED.selector

    @external(ON_ERC1155_RECEIVED)
    def on_erc1155_received(
        self,
        ctx: ExecutionContext,
        operator: str,
        from_: str,
        token_id: int,
        value: int,
        data: bytes,
    ) -> bytes:
        return ON_ERC1155_RECEIVED.selector

    @external(ON_ERC1155_BATCH_RECEIVED)
    def on_erc1155_batch_received(
        self,
        ctx: ExecutionContext,
        operator: str,
        from_: str,
        token_ids: list,
        values: list,
        data: bytes,
    ) -> bytes:
        return ON_ERC1155_BATCH_RECEIVED.selector

    def receive(self, ctx: ExecutionContext) -> None:
        logger.debug(
            "Native value received",
            extra={
                "event": "wallet.received",
                "wallet": ctx.address[:10],
                "from": ctx.sender[:10],
                "value": ctx.value,
            },
        )
