"""Tests for credential verification."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from superadmin.core.security import build_password_context, get_password_hash
from superadmin.services import credentials as credentials_module
from superadmin.services.credentials import Account, CredentialVerifier


@pytest.fixture(scope="module")
def context():
    return build_password_context(rounds=4)


@pytest.fixture(scope="module")
def verifier(context) -> CredentialVerifier:
    account = Account(
        username="superadmin",
        password_hash=get_password_hash("s3cret-Passphrase", context),
        role="superadmin",
    )
    return CredentialVerifier([account], context)


def test_correct_credentials_verify(verifier):
    assert verifier.verify("superadmin", "s3cret-Passphrase") is True


def test_wrong_password_fails(verifier):
    assert verifier.verify("superadmin", "s3cret-passphrase") is False


@pytest.mark.parametrize("username", ["Superadmin", "superadmin ", "super", "", "superadmin\x00"])
def test_username_match_is_exact(verifier, username):
    assert verifier.lookup(username) is None
    assert verifier.verify(username, "s3cret-Passphrase") is False


def test_unknown_username_still_runs_a_hash_check(verifier):
    with patch.object(credentials_module, "verify_password", wraps=credentials_module.verify_password) as spy:
        assert verifier.verify("nobody", "s3cret-Passphrase") is False

    spy.assert_called_once()


def test_unprovisioned_account_never_verifies(context):
    verifier = CredentialVerifier([Account("superadmin", "", "superadmin")], context)

    assert verifier.verify("superadmin", "") is False
    assert verifier.verify("superadmin", "anything") is False


def test_second_factor_flag_follows_secret():
    assert Account("a", "h", "r", totp_secret="JBSWY3DPEHPK3PXP").has_second_factor is True
    assert Account("a", "h", "r").has_second_factor is False


def test_from_settings_builds_single_account(context):
    settings = SimpleNamespace(
        SUPERADMIN_USERNAME="root-admin",
        SUPERADMIN_PASSWORD_HASH=get_password_hash("pw", context),
        SUPERADMIN_ROLE="superadmin",
        TOTP_SECRET="JBSWY3DPEHPK3PXP",
    )

    verifier = CredentialVerifier.from_settings(settings, context)

    account = verifier.lookup("root-admin")
    assert account is not None
    assert account.has_second_factor
    assert verifier.verify("root-admin", "pw") is True
