"""
modwallet Core Module

Core functionality for the modular wallet including:
- Execution environment (ledger, contracts, ABI)
- Passkey cryptography and WebAuthn assertions
- Wallet, entry point and module contracts
- Configuration, logging and deployment wiring
"""

__all__ = []
