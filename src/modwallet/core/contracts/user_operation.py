"""
ERC-4337 (v0.7 packed) UserOperation.

The struct an executor submits on a wallet's behalf. Gas and fee fields are
carried and hashed so signatures match what a real entry point would sign,
but no fee accounting happens beyond the prefund the entry point requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from eth_utils import keccak

from ..vm.abi import encode_values

USER_OPERATION_TYPE = "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"

ZERO_BYTES32 = b"\x00" * 32
UINT128_MAX = 2**128 - 1


def pack_uint128_pair(high: int, low: int) -> bytes:
    """``abi.encodePacked(uint128 high, uint128 low)``."""
    if not (0 <= high <= UINT128_MAX and 0 <= low <= UINT128_MAX):
        raise ValueError("Packed gas values must fit in uint128")
    return high.to_bytes(16, "big") + low.to_bytes(16, "big")


def unpack_uint128_pair(packed: bytes) -> tuple[int, int]:
    return int.from_bytes(packed[:16], "big"), int.from_bytes(packed[16:32], "big")


@dataclass
class UserOperation:
    """
    ERC-4337 UserOperation struct.

    Represents a user's intent to execute a transaction.
    This is what users sign instead of regular transactions.
    """

    sender: str  # Smart account address
    nonce: int  # Replay protection
    init_code: bytes = b""
    call_data: bytes = b""  # What to execute
    account_gas_limits: bytes = field(default=ZERO_BYTES32)  # verificationGasLimit || callGasLimit
    pre_verification_gas: int = 0
    gas_fees: bytes = field(default=ZERO_BYTES32)  # maxPriorityFeePerGas || maxFeePerGas
    paymaster_and_data: bytes = b""
    signature: bytes = b""  # ABI-encoded PasskeySignature

    @classmethod
    def create(
        cls,
        sender: str,
        nonce: int,
        call_data: bytes,
        verification_gas_limit: int = 0,
        call_gas_limit: int = 0,
        pre_verification_gas: int = 0,
        max_priority_fee_per_gas: int = 0,
        max_fee_per_gas: int = 0,
    ) -> "UserOperation":
        return cls(
            sender=sender,
            nonce=nonce,
            call_data=call_data,
            account_gas_limits=pack_uint128_pair(verification_gas_limit, call_gas_limit),
            pre_verification_gas=pre_verification_gas,
            gas_fees=pack_uint128_pair(max_priority_fee_per_gas, max_fee_per_gas),
        )

    @property
    def verification_gas_limit(self) -> int:
        return unpack_uint128_pair(self.account_gas_limits)[0]

    @property
    def call_gas_limit(self) -> int:
        return unpack_uint128_pair(self.account_gas_limits)[1]

    @property
    def max_fee_per_gas(self) -> int:
        return unpack_uint128_pair(self.gas_fees)[1]

    def required_prefund(self) -> int:
        gas = self.verification_gas_limit + self.call_gas_limit + self.pre_verification_gas
        return gas * self.max_fee_per_gas

    def as_abi(self) -> tuple:
        return (
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        )

    @classmethod
    def from_abi(cls, value: tuple) -> "UserOperation":
        return cls(*value)

    def pack(self) -> bytes:
        """Encode every field but the signature, hashing the dynamic ones."""
        return encode_values(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                self.sender,
                self.nonce,
                keccak(self.init_code),
                keccak(self.call_data),
                self.account_gas_limits,
                self.pre_verification_gas,
                self.gas_fees,
                keccak(self.paymaster_and_data),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """User operation hash the wallet's passkey signs."""
        return keccak(
            encode_values(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), entry_point, chain_id],
            )
        )

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=signature)
