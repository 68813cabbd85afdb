"""
Unit tests for ABI selectors, encoding and custom-error revert data.
"""

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address

from modwallet.core.contracts.modules.base import ERC165_INTERFACE_ID, MODULE_INTERFACE_ID
from modwallet.core.contracts.smart_wallet import (
    ERC1155_RECEIVER_INTERFACE_ID,
    ERC721_RECEIVER_INTERFACE_ID,
    InstallFailed,
    InvalidNonce,
)
from modwallet.core.vm.abi import (
    AbiFunction,
    checksum_addresses,
    interface_id,
    parse_signature,
    selector_of,
    split_types,
)
from modwallet.core.vm.exceptions import AbiDecodingError, FunctionNotFound, Revert


class TestSignatureParsing:
    def test_split_nested_tuples(self):
        assert split_types("address,(uint256,(bytes,bool)[]),bytes32") == [
            "address",
            "(uint256,(bytes,bool)[])",
            "bytes32",
        ]

    def test_split_empty(self):
        assert split_types("") == []

    @pytest.mark.parametrize("types", ["(uint256", "uint256)", "(a,(b)"])
    def test_unbalanced_parentheses(self, types):
        with pytest.raises(ValueError, match="Unbalanced"):
            split_types(types)

    def test_parse_signature(self):
        assert parse_signature("transferOwnership((uint256,uint256))") == (
            "transferOwnership",
            ["(uint256,uint256)"],
        )

    @pytest.mark.parametrize("signature", ["noParens", "(uint256)", "f(uint256"])
    def test_invalid_signature(self, signature):
        with pytest.raises(ValueError, match="Invalid function signature"):
            parse_signature(signature)


class TestSelectors:
    def test_erc20_transfer_selector(self):
        assert selector_of("transfer(address,uint256)").hex() == "a9059cbb"

    def test_known_interface_ids(self):
        assert ERC165_INTERFACE_ID.hex() == "01ffc9a7"
        assert ERC721_RECEIVER_INTERFACE_ID.hex() == "150b7a02"
        assert ERC1155_RECEIVER_INTERFACE_ID.hex() == "4e2312e0"

    def test_module_interface_id_is_xor_of_hooks(self):
        expected = (
            int.from_bytes(selector_of("onInstall(bytes)"), "big")
            ^ int.from_bytes(selector_of("onUninstall()"), "big")
            ^ int.from_bytes(selector_of("getSelectors()"), "big")
        )
        assert MODULE_INTERFACE_ID == expected.to_bytes(4, "big")

    def test_interface_id_of_nothing_is_zero(self):
        assert interface_id([]) == b"\x00" * 4


class TestAbiFunction:
    @pytest.fixture
    def transfer(self):
        return AbiFunction("transfer(address,uint256)", ("bool",))

    def test_metadata(self, transfer):
        assert transfer.name == "transfer"
        assert transfer.inputs == ("address", "uint256")
        assert transfer.selector.hex() == "a9059cbb"

    def test_encode_and_decode_arguments(self, transfer):
        recipient = "0x" + "ab" * 20
        calldata = transfer.encode_call(recipient, 5)
        assert calldata[:4] == transfer.selector
        decoded_recipient, amount = transfer.decode_arguments(calldata)
        assert decoded_recipient == to_checksum_address(recipient)
        assert amount == 5

    def test_wrong_argument_count(self, transfer):
        with pytest.raises(ValueError, match="expects 2 arguments"):
            transfer.encode_call("0x" + "ab" * 20)

    def test_unencodable_argument(self, transfer):
        with pytest.raises(ValueError, match="Cannot encode"):
            transfer.encode_call("not-an-address", 5)

    def test_selector_mismatch(self, transfer):
        with pytest.raises(AbiDecodingError, match="does not match"):
            transfer.decode_arguments(b"\x00\x00\x00\x00" + b"\x00" * 64)

    def test_truncated_calldata(self, transfer):
        with pytest.raises(AbiDecodingError):
            transfer.decode_arguments(transfer.selector + b"\x00" * 10)

    def test_results(self):
        assert AbiFunction("f()").decode_result(b"") is None
        single = AbiFunction("g()", ("uint256",))
        assert single.decode_result(single.encode_result(9)) == 9
        pair = AbiFunction("h()", ("uint256", "uint256"))
        assert pair.decode_result(pair.encode_result((1, 2))) == (1, 2)


class TestAddressChecksums:
    RAW = "0x" + "ab" * 20

    def test_nested_arguments(self):
        route = AbiFunction("route((address,uint256),address[],address[2])")
        calldata = route.encode_call((self.RAW, 1), [self.RAW, self.RAW], [self.RAW, self.RAW])

        pair, path, fixed = route.decode_arguments(calldata)
        expected = to_checksum_address(self.RAW)
        assert pair == (expected, 1)
        assert path == (expected, expected)
        assert fixed == (expected, expected)

    def test_results(self):
        owner = AbiFunction("owner()", ("address",))
        assert owner.decode_result(encode(["address"], [self.RAW])) == to_checksum_address(self.RAW)

    def test_tuple_arrays(self):
        value = ((self.RAW, (self.RAW,)), (self.RAW, ()))
        expected = to_checksum_address(self.RAW)
        assert checksum_addresses("(address,address[])[]", value) == (
            (expected, (expected,)),
            (expected, ()),
        )

    def test_other_types_untouched(self):
        assert checksum_addresses("uint256", 5) == 5
        assert checksum_addresses("bytes4[]", (b"\x01\x02\x03\x04",)) == (b"\x01\x02\x03\x04",)


class TestContractErrors:
    def test_revert_uses_error_string(self):
        error = Revert("nope")
        assert error.reason == "nope"
        assert str(error) == "nope"
        assert error.encode() == bytes.fromhex("08c379a0") + encode(["string"], ["nope"])

    def test_custom_error_encoding(self):
        error = InvalidNonce(3, 1)
        assert error.selector() == selector_of("InvalidNonce(uint256,uint256)")
        assert error.encode() == error.selector() + encode(["uint256", "uint256"], [3, 1])
        assert str(error) == "InvalidNonce(3, 1)"

    def test_bytes_arguments_rendered_as_hex(self):
        error = FunctionNotFound(b"\xde\xad\xbe\xef")
        assert str(error) == "FunctionNotFound(0xdeadbeef)"

    def test_error_carries_inner_selector(self):
        error = InstallFailed(b"\x12\x34\x56\x78")
        assert error.args_values == (b"\x12\x34\x56\x78",)
        assert error.encode()[:4] == selector_of("InstallFailed(bytes4)")
