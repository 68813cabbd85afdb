"""
Deployment wiring for a modular wallet.

Deploys the wallet bound to the network's entry point together with the
recurring-buy module. On a local network without a configured entry point a
fresh EntryPoint is deployed first so the wallet has a working executor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from . import config
from .contracts.entry_point import EntryPoint
from .contracts.modules.dca import DCA
from .contracts.smart_wallet import ModularSmartWallet
from .crypto_utils import PublicPoint
from .vm.ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass
class WalletDeployment:
    """Addresses and handles produced by ``deploy_modular_wallet``."""

    network: str
    entry_point: str
    wallet: ModularSmartWallet
    dca_module: DCA
    entry_point_deployed: bool = False

    def addresses(self) -> dict[str, str]:
        return {
            "entryPoint": self.entry_point,
            "smartWallet": self.wallet.address,
            "dcaModule": self.dca_module.address,
        }


def deploy_modular_wallet(
    ledger: Ledger,
    public_key: PublicPoint,
    network: Optional[str] = None,
    deployer: Optional[str] = None,
    entry_points: Optional[dict[str, str]] = None,
) -> WalletDeployment:
    """
    Deploy a wallet and its modules on ``ledger``.

    Args:
        ledger: Ledger to deploy on
        public_key: Passkey public key ``(x, y)``
        network: Network name used to look up the entry point
        deployer: Deploying account (a labelled ledger account by default)
        entry_points: Network -> entry point map (read from configuration if omitted)

    Raises:
        ConfigurationError: A live network has no entry point configured
    """
    network = network or config.NETWORK
    deployer = deployer or ledger.account("deployer")

    entry_point = config.resolve_entry_point(network, entry_points)
    entry_point_deployed = False
    if entry_point is None:
        entry_point = ledger.deploy(EntryPoint, deployer=deployer).address
        entry_point_deployed = True
    elif not ledger.is_contract(entry_point):
        logger.warning(
            "Configured entry point has no code on this ledger",
            extra={
                "event": "deployment.entry_point_without_code",
                "network": network,
                "entry_point": entry_point[:10],
            },
        )

    wallet = ledger.deploy(ModularSmartWallet, entry_point, tuple(public_key), deployer=deployer)
    dca_module = ledger.deploy(DCA, deployer=deployer)

    deployment = WalletDeployment(
        network=network,
        entry_point=entry_point,
        wallet=wallet,
        dca_module=dca_module,
        entry_point_deployed=entry_point_deployed,
    )
    logger.info(
        "Modular wallet deployed",
        extra={
            "event": "deployment.completed",
            "network": network,
            "wallet": wallet.address[:10],
            "entry_point": entry_point[:10],
            "entry_point_deployed": entry_point_deployed,
        },
    )
    return deployment
