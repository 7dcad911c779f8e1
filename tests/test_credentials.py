"""Unit tests for auth/passwords.py, auth/tokens.py and auth/useragent.py.

Covers:
- hash_password() salts (two hashes of one password differ) and verifies
- verify_password() returns False on mismatch, raises HashingError on a malformed hash
- the 72-byte bcrypt ceiling is measured in UTF-8 bytes, not characters
- generate_token() yields 64 hex chars (256 bits) and does not repeat
- generate_token() surfaces an unavailable random source as EntropyError
- extract_bearer_token() strips the Bearer scheme (any case) and rejects empty values
- LoggingResetNotifier masks the address at INFO
- classify_user_agent() coarse device/platform buckets
"""

import logging
from unittest.mock import patch

import pytest

from auth.errors import EntropyError, HashingError, PasswordTooLong
from auth.notifier import LoggingResetNotifier
from auth.passwords import burn_verification, hash_password, password_fits, verify_password
from auth.tokens import extract_bearer_token, generate_token
from auth.useragent import classify_user_agent

# ---------------------------------------------------------------------------
# Credential hasher
# ---------------------------------------------------------------------------


class TestPasswordHashing:
    def test_hash_is_not_plaintext_and_verifies(self):
        hashed = hash_password("secret1")
        assert hashed != "secret1"
        assert hashed.startswith("$2")
        assert verify_password("secret1", hashed) is True

    def test_hash_is_salted(self):
        assert hash_password("secret1") != hash_password("secret1")

    def test_mismatch_is_false_not_an_error(self):
        assert verify_password("wrong", hash_password("secret1")) is False

    def test_malformed_hash_raises_hashing_error(self):
        with pytest.raises(HashingError):
            verify_password("secret1", "not-a-bcrypt-hash")

    def test_empty_hash_raises_hashing_error(self):
        with pytest.raises(HashingError):
            verify_password("secret1", "")

    def test_burn_verification_returns_nothing(self):
        assert burn_verification("anything") is None

    def test_limit_is_counted_in_bytes(self):
        assert password_fits("a" * 72)
        assert password_fits("é" * 36)
        assert not password_fits("é" * 37)
        assert not password_fits("é" * 72)

    def test_multibyte_password_at_the_limit_verifies(self):
        password = "é" * 36
        assert verify_password(password, hash_password(password)) is True

    def test_hashing_over_72_bytes_is_refused(self):
        with pytest.raises(PasswordTooLong):
            hash_password("é" * 72)

    def test_verifying_over_72_bytes_is_a_mismatch(self):
        hashed = hash_password("é" * 36)
        assert verify_password("é" * 72, hashed) is False
        assert burn_verification("é" * 72) is None


# ---------------------------------------------------------------------------
# Token generator
# ---------------------------------------------------------------------------


class TestTokenGenerator:
    def test_token_is_64_hex_chars(self):
        token = generate_token()
        assert len(token) == 64
        int(token, 16)  # raises if not hex

    def test_tokens_do_not_repeat(self):
        tokens = {generate_token() for _ in range(200)}
        assert len(tokens) == 200

    def test_unavailable_random_source_raises_entropy_error(self):
        with patch("auth.tokens.secrets.token_hex", side_effect=NotImplementedError("no urandom")):
            with pytest.raises(EntropyError):
                generate_token()


class TestBearerExtraction:
    def test_strips_bearer_prefix(self):
        assert extract_bearer_token("Bearer abc123") == "abc123"

    def test_bare_token_accepted(self):
        assert extract_bearer_token("abc123") == "abc123"

    @pytest.mark.parametrize("value", ["bearer abc123", "BEARER abc123", "  Bearer   abc123  "])
    def test_scheme_is_case_insensitive(self, value):
        assert extract_bearer_token(value) == "abc123"

    @pytest.mark.parametrize("value", [None, "", "   ", "Bearer ", "Bearer    ", "bearer"])
    def test_missing_token_is_none(self, value):
        assert extract_bearer_token(value) is None


# ---------------------------------------------------------------------------
# User-agent classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36",
            ("web", "windows"),
        ),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 Safari/605.1.15", ("web", "macos")),
        ("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0", ("web", "linux")),
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148",
            ("mobile", "ios"),
        ),
        ("Mozilla/5.0 (iPad; CPU OS 17_2 like Mac OS X) AppleWebKit/605.1.15", ("tablet", "ios")),
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36", ("mobile", "android")),
        ("Mozilla/5.0 (Linux; Android 13; SM-X710) AppleWebKit/537.36 Chrome/120.0 Safari/537.36", ("tablet", "android")),
        ("curl/8.4.0", ("bot", "unknown")),
        ("", ("unknown", "unknown")),
        (None, ("unknown", "unknown")),
    ],
)
def test_classify_user_agent(user_agent, expected):
    assert classify_user_agent(user_agent) == expected


# ---------------------------------------------------------------------------
# Reset notifier
# ---------------------------------------------------------------------------


def test_logging_notifier_masks_address_at_info(caplog):
    with caplog.at_level(logging.INFO, logger="gatekeeper.auth.notifier"):
        LoggingResetNotifier().send_reset("alice@example.com", "tok123")
    info = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert info == ["Password reset issued for a***@example.com"]
    assert "tok123" not in caplog.text
