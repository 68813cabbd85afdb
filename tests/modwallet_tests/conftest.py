"""
Shared fixtures for modwallet tests.

The ``executor`` fixture is a plain ledger account configured as the wallet's
entry point, so unit tests can drive executor-only methods directly. The
integration tests deploy a real EntryPoint instead.
"""

import pytest

from modwallet.core.contracts import erc20
from modwallet.core.contracts.erc20 import ERC20Token
from modwallet.core.contracts.exchange import ADD_LIQUIDITY, ExchangeRouter
from modwallet.core.contracts.modules.dca import DCA
from modwallet.core.contracts.smart_wallet import ADD_MODULE, ModularSmartWallet
from modwallet.core.vm.ledger import Ledger
from modwallet.core.webauthn import PasskeyCredential

from modwallet_helpers import (
    START_TIME,
    USDC_DECIMALS,
    USDC_LIQUIDITY,
    WALLET_USDC,
    WETH_LIQUIDITY,
    MockModule,
)


# ==================== Fixtures ====================


@pytest.fixture
def ledger():
    """Fresh ledger with a fixed clock."""
    return Ledger(timestamp=START_TIME)


@pytest.fixture
def deployer(ledger):
    return ledger.account("deployer")


@pytest.fixture
def executor(ledger):
    """Externally-owned account acting as the wallet's entry point."""
    return ledger.account("executor")


@pytest.fixture
def alice(ledger):
    return ledger.account("alice")


@pytest.fixture
def credential():
    return PasskeyCredential.from_seed(b"modwallet-test-passkey")


@pytest.fixture
def other_credential():
    return PasskeyCredential.from_seed(b"modwallet-other-passkey")


@pytest.fixture
def wallet(ledger, deployer, executor, credential):
    return ledger.deploy(ModularSmartWallet, executor, credential.public_key, deployer=deployer)


@pytest.fixture
def tokens(ledger, deployer):
    """(USDC, WETH) token pair, owned by the deployer."""
    usdc = ledger.deploy(ERC20Token, "USD Coin", "USDC", USDC_DECIMALS, deployer=deployer)
    weth = ledger.deploy(ERC20Token, "Wrapped Ether", "WETH", 18, deployer=deployer)
    return usdc, weth


@pytest.fixture
def router(ledger, deployer, tokens):
    """Exchange router with a funded USDC/WETH pool."""
    usdc, weth = tokens
    router = ledger.deploy(ExchangeRouter, deployer=deployer)
    for token, amount in ((usdc, USDC_LIQUIDITY), (weth, WETH_LIQUIDITY)):
        ledger.transact(deployer, token.address, erc20.MINT, deployer, amount)
        ledger.transact(deployer, token.address, erc20.APPROVE, router.address, amount)
    ledger.transact(
        deployer,
        router.address,
        ADD_LIQUIDITY,
        usdc.address,
        weth.address,
        USDC_LIQUIDITY,
        WETH_LIQUIDITY,
    )
    return router


@pytest.fixture
def funded_wallet(ledger, deployer, wallet, tokens):
    """Wallet holding USDC to spend."""
    usdc, _ = tokens
    ledger.transact(deployer, usdc.address, erc20.MINT, wallet.address, WALLET_USDC)
    return wallet


@pytest.fixture
def dca_module(ledger, deployer):
    return ledger.deploy(DCA, deployer=deployer)


@pytest.fixture
def mock_module(ledger, deployer):
    return ledger.deploy(MockModule, deployer=deployer)


@pytest.fixture
def install(ledger, executor, wallet):
    """Install a module on the wallet as the executor."""

    def _install(module, init_data: bytes = b""):
        return ledger.transact(executor, wallet.address, ADD_MODULE, module.address, init_data)

    return _install
