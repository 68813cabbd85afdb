"""Utility helpers for P-256 (secp256r1) passkey keys and signatures."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

_CURVE = ec.SECP256R1()

P256_P = int("FFFFFFFF00000001000000000000000000000000FFFFFFFFFFFFFFFFFFFFFFFF", 16)
P256_A = P256_P - 3
P256_B = int("5AC635D8AA3A93E7B3EBBD55769886BC651D06B0CC53B0F63BCE3C3E27D2604B", 16)
P256_N = int("FFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551", 16)
P256_N_DIV_2 = P256_N // 2

PublicPoint = tuple[int, int]


def _normalize_private_value(value: int) -> int:
    normalized = value % P256_N
    if normalized == 0:
        normalized = 1
    return normalized


def private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(_normalize_private_value(int(private_hex, 16)), _CURVE)


def deterministic_private_key_from_seed(seed: bytes) -> ec.EllipticCurvePrivateKey:
    if len(seed) < 32:
        seed = seed.ljust(32, b"\x00")
    private_value = _normalize_private_value(int.from_bytes(seed[:32], "big"))
    return ec.derive_private_key(private_value, _CURVE)


def generate_p256_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(_CURVE)


def private_key_to_pem(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def load_private_key_pem(pem: bytes) -> ec.EllipticCurvePrivateKey:
    private_key = serialization.load_pem_private_key(pem, password=None)
    if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
        private_key.curve, ec.SECP256R1
    ):
        raise ValueError("PEM does not contain a P-256 private key.")
    return private_key


def public_point(public_key: ec.EllipticCurvePublicKey) -> PublicPoint:
    numbers = public_key.public_numbers()
    return numbers.x, numbers.y


def public_point_from_private(private_key: ec.EllipticCurvePrivateKey) -> PublicPoint:
    return public_point(private_key.public_key())


def is_on_curve(x: int, y: int) -> bool:
    """
    Check that (x, y) is an affine point on P-256.

    The point at infinity (encoded as (0, 0)) is not a usable public key and
    returns False.
    """
    if not (0 <= x < P256_P and 0 <= y < P256_P):
        return False
    if x == 0 and y == 0:
        return False
    return (y * y - (x * x * x + P256_A * x + P256_B)) % P256_P == 0


def load_public_key_from_point(x: int, y: int) -> ec.EllipticCurvePublicKey:
    if not is_on_curve(x, y):
        raise ValueError("Public key is not a point on P-256.")
    return ec.EllipticCurvePublicNumbers(x, y, _CURVE).public_key()


def public_point_to_hex(point: PublicPoint) -> str:
    x, y = point
    return (x.to_bytes(32, "big") + y.to_bytes(32, "big")).hex()


def public_point_from_hex(public_hex: str) -> PublicPoint:
    raw = bytes.fromhex(public_hex.removeprefix("0x"))
    if len(raw) == 65 and raw[0] == 0x04:
        raw = raw[1:]
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    point = int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")
    if not is_on_curve(*point):
        raise ValueError("Public key is not a point on P-256.")
    return point


def _validate_signature_range(r: int, s: int) -> None:
    """
    Ensure signature components fall within the curve order.

    Raises:
        ValueError: If either component is out of range.
    """
    if not (1 <= r < P256_N):
        raise ValueError("Signature r component out of range.")
    if not (1 <= s < P256_N):
        raise ValueError("Signature s component out of range.")


def canonicalize_signature_components(r: int, s: int) -> tuple[int, int]:
    """
    Normalize signature components to canonical low-S form.

    Args:
        r: Signature r component
        s: Signature s component

    Returns:
        Tuple of canonical (r, s)
    """
    _validate_signature_range(r, s)
    if s > P256_N_DIV_2:
        s = P256_N - s
    return r, s


def is_canonical_signature(r: int, s: int) -> bool:
    """
    Check whether signature components are already canonical.

    Returns:
        True if components fall within range and have low-S form.
    """
    try:
        _validate_signature_range(r, s)
    except ValueError:
        return False
    return s <= P256_N_DIV_2


def sign_message(private_key: ec.EllipticCurvePrivateKey, message: bytes) -> tuple[int, int]:
    """Sign SHA-256(message) and return canonical (r, s)."""
    der_signature = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    return canonicalize_signature_components(r, s)


def verify_signature(point: PublicPoint, message: bytes, r: int, s: int) -> bool:
    """
    Verify (r, s) over SHA-256(message) with the P-256 key at ``point``.

    High-S signatures are rejected, not normalized.
    """
    if not is_canonical_signature(r, s):
        return False
    try:
        public_key = load_public_key_from_point(*point)
    except ValueError:
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False


def compressed_public_key(point: PublicPoint) -> str:
    compressed = load_public_key_from_point(*point).public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )
    return compressed.hex()
