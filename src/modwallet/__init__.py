"""
modwallet - Passkey-authenticated modular smart wallet

An ERC-4337 style account that validates user operations signed by a
WebAuthn passkey (P-256) and grows new entry points at runtime through
installable modules.

Main Components:
- Wallet: passkey validation, nonces, module registry, ownership transfer
- Modules: installable logic running in the wallet's storage context
- Recurring buy: example module buying on a fixed schedule
- Ledger: in-memory execution environment hosting the contracts
"""

__version__ = "0.1.0"
__author__ = "modwallet Development Team"

__all__ = []
