"""Tests for TOTP service."""

from datetime import datetime, timedelta, timezone

import pyotp
import pytest

from superadmin.services.totp import (
    SecondFactorVerifier,
    generate_qr_uri,
    generate_totp_secret,
)

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
# Aligned to a 30 second step boundary
START = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def code_at(offset_steps: int, base: datetime = START) -> str:
    return pyotp.TOTP(SECRET).at(base + timedelta(seconds=30 * offset_steps))


def test_generate_totp_secret():
    """Test TOTP secret generation."""
    secret = generate_totp_secret()
    assert len(secret) == 32
    # Should be base32 encoded
    assert all(c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567" for c in secret)


def test_generate_qr_uri():
    """Test QR code URI generation."""
    uri = generate_qr_uri(SECRET, "superadmin", "Asterika-Admin")
    assert uri.startswith("otpauth://totp/")
    assert "Asterika-Admin" in uri
    assert "superadmin" in uri
    assert SECRET in uri


class TestSecondFactorVerifier:
    @pytest.fixture
    def clock(self) -> MutableClock:
        return MutableClock(START)

    @pytest.fixture
    def verifier(self, clock) -> SecondFactorVerifier:
        return SecondFactorVerifier(valid_window=1, clock=clock)

    @pytest.mark.parametrize("offset", [-1, 0, 1])
    def test_accepts_current_and_adjacent_steps(self, verifier, offset):
        assert verifier.verify(code_at(offset), SECRET) is True

    @pytest.mark.parametrize("offset", [-2, 2])
    def test_rejects_codes_two_steps_away(self, verifier, offset):
        assert verifier.verify(code_at(offset), SECRET) is False

    @pytest.mark.parametrize("code", [None, "", "abcdef", "12345", "1234567", "12 456"])
    def test_rejects_non_six_digit_input(self, verifier, code):
        assert verifier.verify(code, SECRET) is False

    def test_rejects_when_no_secret_is_provisioned(self, verifier):
        assert verifier.verify(code_at(0), "") is False

    def test_rejects_malformed_secret(self, verifier):
        assert verifier.verify("123456", "not base32 !!") is False

    def test_rejects_replay_of_accepted_code(self, verifier):
        code = code_at(0)

        assert verifier.verify(code, SECRET) is True
        assert verifier.verify(code, SECRET) is False

    def test_rejects_older_step_after_newer_one(self, verifier):
        assert verifier.verify(code_at(1), SECRET) is True
        assert verifier.verify(code_at(0), SECRET) is False

    def test_accepts_next_step_after_previous(self, verifier, clock):
        assert verifier.verify(code_at(0), SECRET) is True

        clock.now = START + timedelta(seconds=30)

        assert verifier.verify(code_at(1), SECRET) is True
