"""
modwallet contracts.

This module provides the contracts hosted on the ledger:
- ModularSmartWallet: passkey-authenticated ERC-4337 account with modules
- EntryPoint: executor validating and executing user operations
- Modules: installable wallet extensions (recurring buy)
- ERC20Token: fungible asset
- ExchangeRouter: constant-product exchange venue
"""

from .entry_point import EntryPoint, FailedOp
from .erc20 import ERC20Token
from .exchange import ExchangeRouter
from .modules import DCA, Module, RecurringBuySettings
from .smart_wallet import (
    InstallFailed,
    InvalidNonce,
    InvalidPublicKey,
    ModularSmartWallet,
    ModuleAlreadyInstalled,
    ModuleNotInstalled,
    OnlyEntryPoint,
    SelectorAlreadyRegistered,
    UninstallFailed,
    ValidationCode,
    ValidationResult,
)
from .user_operation import UserOperation

__all__ = [
    # Account
    "ModularSmartWallet",
    "ValidationCode",
    "ValidationResult",
    "OnlyEntryPoint",
    "InvalidNonce",
    "InvalidPublicKey",
    "ModuleAlreadyInstalled",
    "ModuleNotInstalled",
    "SelectorAlreadyRegistered",
    "InstallFailed",
    "UninstallFailed",
    # Executor
    "EntryPoint",
    "FailedOp",
    "UserOperation",
    # Modules
    "Module",
    "DCA",
    "RecurringBuySettings",
    # Collaborators
    "ERC20Token",
    "ExchangeRouter",
]
