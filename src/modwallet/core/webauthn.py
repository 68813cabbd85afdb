"""
WebAuthn passkey assertions for user-operation signatures.

A user operation is signed by a passkey (P-256) through the WebAuthn
``navigator.credentials.get`` ceremony. The relying-party challenge binds the
signature to one operation and an optional expiry:

    challenge = version (1 byte) || validUntil (uint48, big-endian) || userOpHash (32 bytes)

The authenticator signs ``authenticatorData || SHA-256(clientDataJSON)``, and
the operation's ``signature`` field carries the ABI encoding of
``PasskeySignature``:

    (bytes challenge, bytes authenticatorData, bool requireUserVerification,
     string clientDataJSON, uint256 challengeLocation,
     uint256 responseTypeLocation, uint256 r, uint256 s)

This module holds the on-account verification half and the off-chain signing
half (``PasskeyCredential``) used by tooling and tests.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import ec

from .crypto_utils import (
    PublicPoint,
    deterministic_private_key_from_seed,
    generate_p256_private_key,
    is_canonical_signature,
    public_point_from_private,
    sign_message,
    verify_signature,
)
from .vm.abi import decode_values, encode_values
from .vm.exceptions import AbiDecodingError, ContractError


CHALLENGE_VERSION = 1
CHALLENGE_LENGTH = 39
VALID_UNTIL_BYTES = 6
MAX_VALID_UNTIL = (1 << (8 * VALID_UNTIL_BYTES)) - 1

PASSKEY_SIGNATURE_TYPE = "(bytes,bytes,bool,string,uint256,uint256,uint256,uint256)"

# Authenticator data flags (WebAuthn Level 3, section 6.1)
AUTH_DATA_FLAG_UP = 0x01
AUTH_DATA_FLAG_UV = 0x04
AUTH_DATA_FLAG_BE = 0x08
AUTH_DATA_FLAG_BS = 0x10
AUTH_DATA_MIN_LENGTH = 37
AUTH_DATA_FLAGS_OFFSET = 32

RESPONSE_TYPE_GET = "webauthn.get"
DEFAULT_ORIGIN = "http://localhost:3000"

# rpIdHash for "localhost" followed by flags UP|UV and a zero sign counter
DEFAULT_AUTHENTICATOR_DATA = bytes.fromhex(
    "49960de5880e8c687434170f6476605b8fe4aeb9a28632c7995cf3ba831d97630500000000"
)


class MalformedSignature(ContractError):
    """The operation signature is not a decodable passkey assertion."""

    signature = "MalformedSignature()"


def base64url_encode(data: bytes) -> str:
    """Unpadded base64url, as browsers put challenges into clientDataJSON."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


# ==================== Challenge ====================


@dataclass(frozen=True)
class Challenge:
    """Relying-party challenge binding a signature to one user operation."""

    version: int
    valid_until: int
    user_op_hash: bytes

    def encode(self) -> bytes:
        if not 0 <= self.version <= 0xFF:
            raise ValueError("Challenge version must fit in one byte")
        if not 0 <= self.valid_until <= MAX_VALID_UNTIL:
            raise ValueError("validUntil must fit in 48 bits")
        if len(self.user_op_hash) != 32:
            raise ValueError("User operation hash must be 32 bytes")
        return (
            self.version.to_bytes(1, "big")
            + self.valid_until.to_bytes(VALID_UNTIL_BYTES, "big")
            + self.user_op_hash
        )

    @classmethod
    def decode(cls, data: bytes) -> "Challenge":
        if len(data) != CHALLENGE_LENGTH:
            raise MalformedSignature(
                message=f"Challenge must be {CHALLENGE_LENGTH} bytes, got {len(data)}"
            )
        return cls(
            version=data[0],
            valid_until=int.from_bytes(data[1 : 1 + VALID_UNTIL_BYTES], "big"),
            user_op_hash=bytes(data[1 + VALID_UNTIL_BYTES :]),
        )

    def for_operation(self, user_op_hash: bytes) -> "Challenge":
        """The same version and expiry, rebuilt around ``user_op_hash``."""
        return Challenge(self.version, self.valid_until, bytes(user_op_hash))

    def is_expired(self, now: int) -> bool:
        return self.valid_until != 0 and now > self.valid_until


# ==================== Signature Codec ====================


@dataclass(frozen=True)
class PasskeySignature:
    """Decoded contents of a user operation's ``signature`` field."""

    challenge: bytes
    authenticator_data: bytes
    require_user_verification: bool
    client_data_json: str
    challenge_location: int
    response_type_location: int
    r: int
    s: int

    def as_tuple(self) -> tuple:
        return (
            self.challenge,
            self.authenticator_data,
            self.require_user_verification,
            self.client_data_json,
            self.challenge_location,
            self.response_type_location,
            self.r,
            self.s,
        )

    def encode(self) -> bytes:
        return encode_values([PASSKEY_SIGNATURE_TYPE], [self.as_tuple()])

    @classmethod
    def decode(cls, data: bytes) -> "PasskeySignature":
        """
        Decode an ABI-encoded passkey signature.

        Raises:
            MalformedSignature: If the bytes are not a valid encoding
        """
        try:
            (values,) = decode_values([PASSKEY_SIGNATURE_TYPE], data, context="PasskeySignature")
        except AbiDecodingError as exc:
            raise MalformedSignature(message=f"Malformed passkey signature: {exc}") from exc
        return cls(*values)

    def with_s(self, s: int) -> "PasskeySignature":
        return PasskeySignature(*self.as_tuple()[:-1], s)

    @property
    def flags(self) -> int:
        if len(self.authenticator_data) <= AUTH_DATA_FLAGS_OFFSET:
            return 0
        return self.authenticator_data[AUTH_DATA_FLAGS_OFFSET]

    @property
    def message(self) -> bytes:
        """Bytes the authenticator signed."""
        client_data_hash = hashlib.sha256(self.client_data_json.encode("utf-8")).digest()
        return self.authenticator_data + client_data_hash


# ==================== Verification ====================


@dataclass(frozen=True)
class AssertionResult:
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


def _rejected(reason: str) -> AssertionResult:
    return AssertionResult(False, reason)


def expected_challenge_property(challenge: bytes) -> str:
    return f'"challenge":"{base64url_encode(challenge)}"'


def expected_type_property(response_type: str = RESPONSE_TYPE_GET) -> str:
    return f'"type":"{response_type}"'


def verify_assertion(
    signature: PasskeySignature,
    challenge: bytes,
    public_key: PublicPoint,
) -> AssertionResult:
    """
    Verify a WebAuthn assertion over ``challenge`` with ``public_key``.

    Checks, in order:
    1. authenticator data is long enough and carries the user-present flag
    2. user-verified flag when ``require_user_verification`` is set
    3. backup-state flag only alongside backup-eligible
    4. ``"type":"webauthn.get"`` at ``response_type_location``
    5. ``"challenge":"<base64url(challenge)>"`` at ``challenge_location``
    6. low-s P-256 signature over ``authenticatorData || SHA-256(clientDataJSON)``
    """
    auth_data = signature.authenticator_data
    if len(auth_data) < AUTH_DATA_MIN_LENGTH:
        return _rejected("authenticator_data_too_short")

    flags = signature.flags
    if not flags & AUTH_DATA_FLAG_UP:
        return _rejected("user_not_present")
    if signature.require_user_verification and not flags & AUTH_DATA_FLAG_UV:
        return _rejected("user_not_verified")
    if flags & AUTH_DATA_FLAG_BS and not flags & AUTH_DATA_FLAG_BE:
        return _rejected("backup_state_without_eligibility")

    client_data = signature.client_data_json.encode("utf-8")
    type_property = expected_type_property().encode("utf-8")
    if not client_data.startswith(type_property, signature.response_type_location):
        return _rejected("response_type_mismatch")

    challenge_property = expected_challenge_property(challenge).encode("utf-8")
    if not client_data.startswith(challenge_property, signature.challenge_location):
        return _rejected("challenge_mismatch")

    if not is_canonical_signature(signature.r, signature.s):
        return _rejected("non_canonical_signature")

    if not verify_signature(public_key, signature.message, signature.r, signature.s):
        return _rejected("signature_mismatch")

    return AssertionResult(True)


# ==================== Client Side ====================


def build_client_data_json(
    challenge: bytes,
    origin: str = DEFAULT_ORIGIN,
    cross_origin: bool = False,
    response_type: str = RESPONSE_TYPE_GET,
) -> str:
    """Serialize clientDataJSON exactly as a browser does (compact, ordered)."""
    return json.dumps(
        {
            "type": response_type,
            "challenge": base64url_encode(challenge),
            "origin": origin,
            "crossOrigin": cross_origin,
        },
        separators=(",", ":"),
    )


@dataclass
class PasskeyCredential:
    """
    Off-chain passkey able to produce user-operation signatures.

    Example:
        credential = PasskeyCredential.generate()
        signature = credential.sign_user_op(user_op_hash)
        op.signature = signature.encode()
    """

    private_key: ec.EllipticCurvePrivateKey
    authenticator_data: bytes = DEFAULT_AUTHENTICATOR_DATA
    origin: str = DEFAULT_ORIGIN

    @classmethod
    def generate(cls) -> "PasskeyCredential":
        return cls(generate_p256_private_key())

    @classmethod
    def from_seed(cls, seed: bytes) -> "PasskeyCredential":
        return cls(deterministic_private_key_from_seed(seed))

    @property
    def public_key(self) -> PublicPoint:
        return public_point_from_private(self.private_key)

    def sign_challenge(
        self,
        challenge: bytes,
        require_user_verification: bool = False,
        client_data_json: Optional[str] = None,
    ) -> PasskeySignature:
        client_data_json = client_data_json or build_client_data_json(challenge, self.origin)
        challenge_location = client_data_json.find('"challenge"')
        response_type_location = client_data_json.find('"type"')
        client_data_hash = hashlib.sha256(client_data_json.encode("utf-8")).digest()
        r, s = sign_message(self.private_key, self.authenticator_data + client_data_hash)
        return PasskeySignature(
            challenge=challenge,
            authenticator_data=self.authenticator_data,
            require_user_verification=require_user_verification,
            client_data_json=client_data_json,
            challenge_location=max(challenge_location, 0),
            response_type_location=max(response_type_location, 0),
            r=r,
            s=s,
        )

    def sign_user_op(
        self,
        user_op_hash: bytes,
        version: int = CHALLENGE_VERSION,
        valid_until: int = 0,
        require_user_verification: bool = False,
    ) -> PasskeySignature:
        challenge = Challenge(version, valid_until, bytes(user_op_hash)).encode()
        return self.sign_challenge(challenge, require_user_verification)


__all__ = [
    "AUTH_DATA_FLAG_BE",
    "AUTH_DATA_FLAG_BS",
    "AUTH_DATA_FLAG_UP",
    "AUTH_DATA_FLAG_UV",
    "AssertionResult",
    "CHALLENGE_LENGTH",
    "CHALLENGE_VERSION",
    "Challenge",
    "DEFAULT_AUTHENTICATOR_DATA",
    "MalformedSignature",
    "PASSKEY_SIGNATURE_TYPE",
    "PasskeyCredential",
    "PasskeySignature",
    "base64url_decode",
    "base64url_encode",
    "build_client_data_json",
    "verify_assertion",
]
