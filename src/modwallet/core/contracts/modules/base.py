"""
Installable module interface.

A module is stateless code the wallet runs as itself. It declares the
selectors it serves, and may provide install and uninstall hooks. The wallet
hands every module invocation an ExecutionContext whose ``storage`` is the
module's namespace inside the wallet's storage arena; ``module_namespace``
derives that namespace from the module address, so two modules never share
state and no module can reach the wallet's own fields.

Before trusting a module the wallet probes it: ERC-165 introspection first,
then the module interface id (``onInstall(bytes) ^ onUninstall() ^
getSelectors()``). ``probe_capabilities`` returns the result as a
``ModuleCapability`` flag set.
"""

from __future__ import annotations

import logging
from enum import Flag
from typing import ClassVar, Sequence

from eth_utils import keccak, to_bytes

from ...vm.abi import AbiFunction, interface_id
from ...vm.contract import Contract, ExecutionContext, external
from ...vm.exceptions import ContractError, VMExecutionError

logger = logging.getLogger(__name__)

SUPPORTS_INTERFACE = AbiFunction("supportsInterface(bytes4)", ("bool",))
ON_INSTALL = AbiFunction("onInstall(bytes)")
ON_UNINSTALL = AbiFunction("onUninstall()")
GET_SELECTORS = AbiFunction("getSelectors()", ("bytes4[]",))

ERC165_INTERFACE_ID = interface_id([SUPPORTS_INTERFACE.signature])
INVALID_INTERFACE_ID = b"\xff\xff\xff\xff"
MODULE_INTERFACE_ID = interface_id(
    [ON_INSTALL.signature, ON_UNINSTALL.signature, GET_SELECTORS.signature]
)

MODULE_STORAGE_SEED = b"modwallet.module.storage"


class ModuleCapability(Flag):
    NONE = 0
    INTROSPECTION = 1
    MODULE = 2

    @property
    def installable(self) -> bool:
        return ModuleCapability.INTROSPECTION | ModuleCapability.MODULE in self


class UnsupportedModule(ContractError):
    """The target cannot be installed as a module."""

    signature = "UnsupportedModule(address)"


class IntrospectionNotSupported(UnsupportedModule):
    signature = "IntrospectionNotSupported(address)"


class ModuleInterfaceNotSupported(UnsupportedModule):
    signature = "ModuleInterfaceNotSupported(address)"


def module_namespace(module: str) -> str:
    """Storage namespace of ``module`` inside any wallet's arena."""
    return "0x" + keccak(MODULE_STORAGE_SEED + to_bytes(hexstr=module)).hex()


def _supports(ctx: ExecutionContext, target: str, interface: bytes) -> bool:
    """
    ERC-165 query that treats any failure as "not supported".

    The query runs as a static call: whatever the target writes is discarded.
    """
    try:
        return bool(ctx.ledger.view(target, SUPPORTS_INTERFACE, interface, sender=ctx.address))
    except VMExecutionError:
        return False


def probe_capabilities(ctx: ExecutionContext, target: str) -> ModuleCapability:
    capabilities = ModuleCapability.NONE
    if _supports(ctx, target, ERC165_INTERFACE_ID) and not _supports(
        ctx, target, INVALID_INTERFACE_ID
    ):
        capabilities |= ModuleCapability.INTROSPECTION
        if _supports(ctx, target, MODULE_INTERFACE_ID):
            capabilities |= ModuleCapability.MODULE
    return capabilities


def require_module(ctx: ExecutionContext, target: str) -> ModuleCapability:
    """
    Probe ``target`` and reject it unless it is a module.

    Raises:
        IntrospectionNotSupported: ERC-165 is missing or answers incorrectly
        ModuleInterfaceNotSupported: ERC-165 works but the module interface is absent
    """
    capabilities = probe_capabilities(ctx, target)
    if ModuleCapability.INTROSPECTION not in capabilities:
        raise IntrospectionNotSupported(target)
    if ModuleCapability.MODULE not in capabilities:
        raise ModuleInterfaceNotSupported(target)
    return capabilities


class Module(Contract):
    """
    Base class for installable modules.

    Subclasses list the entry points they serve in ``SELECTORS`` and override
    ``on_install`` / ``on_uninstall``. Every method runs with the wallet as
    ``ctx.address`` and the module namespace as ``ctx.storage``.
    """

    SELECTORS: ClassVar[Sequence[AbiFunction]] = ()

    @external(SUPPORTS_INTERFACE)
    def supports_interface(self, ctx: ExecutionContext, interface: bytes) -> bool:
        return interface in (ERC165_INTERFACE_ID, MODULE_INTERFACE_ID)

    @external(GET_SELECTORS)
    def get_selectors(self, ctx: ExecutionContext) -> list[bytes]:
        return [function.selector for function in self.SELECTORS]

    @external(ON_INSTALL)
    def on_install(self, ctx: ExecutionContext, data: bytes) -> None:
        pass

    @external(ON_UNINSTALL)
    def on_uninstall(self, ctx: ExecutionContext) -> None:
        pass
