"""
Property-based tests for passkey signatures, challenges and schedule math.

Uses Hypothesis for property-based testing with random inputs. Keys and the
reference assertion are built once at import time; signing is the slow part.
"""

from dataclasses import replace

from hypothesis import assume, given, settings, strategies as st

from modwallet.core.contracts.exchange import get_amount_out
from modwallet.core.contracts.modules.dca import SECONDS_PER_DAY, RecurringBuySettings
from modwallet.core.crypto_utils import (
    P256_N,
    P256_N_DIV_2,
    public_point_from_private,
    sign_message,
    verify_signature,
)
from modwallet.core.webauthn import (
    MAX_VALID_UNTIL,
    Challenge,
    PasskeyCredential,
    verify_assertion,
)

CREDENTIAL = PasskeyCredential.from_seed(b"modwallet-property-passkey")
PUBLIC_KEY = public_point_from_private(CREDENTIAL.private_key)
CHALLENGE = Challenge(1, 0, b"\x5a" * 32).encode()
ASSERTION = CREDENTIAL.sign_challenge(CHALLENGE)

ADDRESS = "0x" + "11" * 20
PRINTABLE = st.characters(min_codepoint=0x20, max_codepoint=0x7E)


class TestSignatureMalleability:
    @given(message=st.binary(max_size=256))
    @settings(max_examples=50, deadline=None)
    def test_signatures_are_low_s_and_twin_is_rejected(self, message):
        r, s = sign_message(CREDENTIAL.private_key, message)

        assert 1 <= s <= P256_N_DIV_2
        assert verify_signature(PUBLIC_KEY, message, r, s)
        assert not verify_signature(PUBLIC_KEY, message, r, P256_N - s)

    @given(message=st.binary(max_size=64), other=st.binary(max_size=64))
    @settings(max_examples=50, deadline=None)
    def test_signature_bound_to_message(self, message, other):
        assume(message != other)
        r, s = sign_message(CREDENTIAL.private_key, message)
        assert not verify_signature(PUBLIC_KEY, other, r, s)


class TestAssertionTampering:
    def test_reference_assertion_verifies(self):
        assert verify_assertion(ASSERTION, CHALLENGE, PUBLIC_KEY)

    @given(data=st.data())
    @settings(max_examples=200, deadline=None)
    def test_any_client_data_change_is_rejected(self, data):
        client_data = ASSERTION.client_data_json
        index = data.draw(st.integers(min_value=0, max_value=len(client_data) - 1))
        replacement = data.draw(PRINTABLE)
        assume(replacement != client_data[index])

        tampered = client_data[:index] + replacement + client_data[index + 1 :]
        result = verify_assertion(replace(ASSERTION, client_data_json=tampered), CHALLENGE, PUBLIC_KEY)
        assert not result

    @given(data=st.data())
    @settings(max_examples=100, deadline=None)
    def test_any_authenticator_data_change_is_rejected(self, data):
        auth_data = bytearray(ASSERTION.authenticator_data)
        index = data.draw(st.integers(min_value=0, max_value=len(auth_data) - 1))
        mask = data.draw(st.integers(min_value=1, max_value=0xFF))
        auth_data[index] ^= mask

        tampered = replace(ASSERTION, authenticator_data=bytes(auth_data))
        assert not verify_assertion(tampered, CHALLENGE, PUBLIC_KEY)

    @given(other=st.binary(min_size=32, max_size=32))
    @settings(max_examples=50, deadline=None)
    def test_assertion_bound_to_operation_hash(self, other):
        assume(other != b"\x5a" * 32)
        expected = Challenge(1, 0, other).encode()
        assert verify_assertion(ASSERTION, expected, PUBLIC_KEY).reason == "challenge_mismatch"


class TestChallengeLayout:
    @given(
        version=st.integers(min_value=0, max_value=0xFF),
        valid_until=st.integers(min_value=0, max_value=MAX_VALID_UNTIL),
        op_hash=st.binary(min_size=32, max_size=32),
    )
    def test_decode_inverts_encode(self, version, valid_until, op_hash):
        challenge = Challenge(version, valid_until, op_hash)
        encoded = challenge.encode()
        assert len(encoded) == 39
        assert Challenge.decode(encoded) == challenge

    @given(now=st.integers(min_value=0, max_value=2**64))
    def test_zero_valid_until_never_expires(self, now):
        assert not Challenge(1, 0, b"\x00" * 32).is_expired(now)

    @given(
        valid_until=st.integers(min_value=1, max_value=MAX_VALID_UNTIL),
        delta=st.integers(min_value=-(10**6), max_value=10**6),
    )
    def test_expiry_is_strictly_after_valid_until(self, valid_until, delta):
        now = max(valid_until + delta, 0)
        assert Challenge(1, valid_until, b"\x00" * 32).is_expired(now) == (now > valid_until)


class TestRecurringBuySchedule:
    @staticmethod
    def _schedule(day_frequency: int, start: int, last_period: int = 0) -> RecurringBuySettings:
        return RecurringBuySettings(
            router=ADDRESS,
            token_in=ADDRESS,
            token_out=ADDRESS,
            day_frequency=day_frequency,
            amount_in=1,
            start=start,
            end=start + 365 * SECONDS_PER_DAY,
            last_period_executed=last_period,
        )

    @given(
        day_frequency=st.integers(min_value=1, max_value=30),
        start=st.integers(min_value=0, max_value=2**40),
        offset=st.integers(min_value=0, max_value=365 * SECONDS_PER_DAY),
    )
    def test_period_numbering(self, day_frequency, start, offset):
        schedule = self._schedule(day_frequency, start)
        period = schedule.current_period(start + offset)
        assert period >= 1
        assert start + (period - 1) * schedule.period_length <= start + offset
        assert start + offset < start + period * schedule.period_length

    @given(
        day_frequency=st.integers(min_value=1, max_value=30),
        start=st.integers(min_value=0, max_value=2**40),
        offset=st.integers(min_value=0, max_value=300 * SECONDS_PER_DAY),
    )
    def test_one_buy_per_period(self, day_frequency, start, offset):
        now = start + offset
        schedule = self._schedule(day_frequency, start)
        assert schedule.can_buy(now)

        bought = replace(schedule, last_period_executed=schedule.current_period(now))
        assert not bought.can_buy(now)
        next_period_start = start + bought.last_period_executed * schedule.period_length
        assert not bought.can_buy(next_period_start - 1)
        if next_period_start <= schedule.end:
            assert bought.can_buy(next_period_start)


class TestSwapMath:
    @given(
        amount_in=st.integers(min_value=1, max_value=10**30),
        reserve_in=st.integers(min_value=1, max_value=10**30),
        reserve_out=st.integers(min_value=1, max_value=10**30),
    )
    def test_constant_product_never_decreases(self, amount_in, reserve_in, reserve_out):
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out)
        assert 0 <= amount_out < reserve_out
        assert (reserve_in + amount_in) * (reserve_out - amount_out) >= reserve_in * reserve_out
