"""
Tests for asset reception and executor-driven calls.
"""

import pytest

from modwallet.core.contracts import erc20
from modwallet.core.contracts.modules.base import ERC165_INTERFACE_ID, SUPPORTS_INTERFACE
from modwallet.core.contracts.smart_wallet import (
    EXECUTE,
    EXECUTE_BATCH,
    ON_ERC1155_BATCH_RECEIVED,
    ON_ERC1155_RECEIVED,
    ON_ERC721_RECEIVED,
    OnlyEntryPoint,
)
from modwallet.core.vm.exceptions import Revert

from modwallet_helpers import WALLET_USDC


class TestInterfaces:
    @pytest.mark.parametrize(
        "interface",
        [ERC165_INTERFACE_ID, bytes.fromhex("150b7a02"), bytes.fromhex("4e2312e0")],
        ids=["erc165", "erc721-receiver", "erc1155-receiver"],
    )
    def test_supported(self, ledger, wallet, interface):
        assert ledger.view(wallet.address, SUPPORTS_INTERFACE, interface) is True

    @pytest.mark.parametrize("interface", ["ffffffff", "00000000", "deadbeef"])
    def test_unsupported(self, ledger, wallet, interface):
        assert ledger.view(wallet.address, SUPPORTS_INTERFACE, bytes.fromhex(interface)) is False


class TestReceiverHooks:
    def test_erc721(self, ledger, alice, wallet):
        result = ledger.transact(alice, wallet.address, ON_ERC721_RECEIVED, alice, alice, 1, b"")
        assert result == bytes.fromhex("150b7a02")

    def test_erc1155_single(self, ledger, alice, wallet):
        result = ledger.transact(
            alice, wallet.address, ON_ERC1155_RECEIVED, alice, alice, 1, 10, b""
        )
        assert result == bytes.fromhex("f23a6e61")

    def test_erc1155_batch(self, ledger, alice, wallet):
        result = ledger.transact(
            alice, wallet.address, ON_ERC1155_BATCH_RECEIVED, alice, alice, [1, 2], [10, 20], b""
        )
        assert result == bytes.fromhex("bc197c81")

    def test_native_value(self, ledger, alice, wallet):
        ledger.set_balance(alice, 10**18)
        ledger.call(alice, wallet.address, b"", value=10**17)
        assert ledger.balance_of(wallet.address) == 10**17
        assert ledger.balance_of(alice) == 9 * 10**17


class TestExecute:
    def test_token_transfer(self, ledger, executor, alice, funded_wallet, tokens):
        usdc, _ = tokens
        data = erc20.TRANSFER.encode_call(alice, 25)
        result = ledger.transact(executor, funded_wallet.address, EXECUTE, usdc.address, 0, data)

        assert erc20.TRANSFER.decode_result(result) is True
        assert ledger.view(usdc.address, erc20.BALANCE_OF, alice) == 25
        assert ledger.view(usdc.address, erc20.BALANCE_OF, funded_wallet.address) == WALLET_USDC - 25

    def test_native_transfer(self, ledger, executor, alice, wallet):
        ledger.set_balance(wallet.address, 1_000)
        result = ledger.transact(executor, wallet.address, EXECUTE, alice, 400, b"")
        assert result == b""
        assert ledger.balance_of(alice) == 400
        assert ledger.balance_of(wallet.address) == 600

    def test_inner_revert_propagates(self, ledger, executor, alice, wallet, tokens):
        usdc, _ = tokens
        data = erc20.TRANSFER.encode_call(alice, 1)
        with pytest.raises(Revert, match="exceeds balance"):
            ledger.transact(executor, wallet.address, EXECUTE, usdc.address, 0, data)

    def test_only_entry_point(self, ledger, alice, wallet):
        with pytest.raises(OnlyEntryPoint):
            ledger.transact(alice, wallet.address, EXECUTE, alice, 0, b"")


class TestExecuteBatch:
    def test_batch(self, ledger, executor, alice, funded_wallet, tokens):
        usdc, _ = tokens
        ledger.set_balance(funded_wallet.address, 50)
        results = ledger.transact(
            executor,
            funded_wallet.address,
            EXECUTE_BATCH,
            [usdc.address, alice],
            [0, 50],
            [erc20.TRANSFER.encode_call(alice, 10), b""],
        )

        assert len(results) == 2
        assert ledger.view(usdc.address, erc20.BALANCE_OF, alice) == 10
        assert ledger.balance_of(alice) == 50

    def test_length_mismatch(self, ledger, executor, alice, wallet):
        with pytest.raises(Revert, match="Batch arrays length mismatch"):
            ledger.transact(executor, wallet.address, EXECUTE_BATCH, [alice, alice], [0], [b"", b""])

    def test_failure_reverts_whole_batch(self, ledger, executor, alice, funded_wallet, tokens):
        usdc, _ = tokens
        with pytest.raises(Revert):
            ledger.transact(
                executor,
                funded_wallet.address,
                EXECUTE_BATCH,
                [usdc.address, usdc.address],
                [0, 0],
                [
                    erc20.TRANSFER.encode_call(alice, 10),
                    erc20.TRANSFER.encode_call(alice, WALLET_USDC),
                ],
            )
        assert ledger.view(usdc.address, erc20.BALANCE_OF, alice) == 0
        assert ledger.view(usdc.address, erc20.BALANCE_OF, funded_wallet.address) == WALLET_USDC

    def test_only_entry_point(self, ledger, alice, wallet):
        with pytest.raises(OnlyEntryPoint):
            ledger.transact(alice, wallet.address, EXECUTE_BATCH, [], [], [])
