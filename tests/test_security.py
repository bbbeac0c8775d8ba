"""Tests for signature and token verification."""

from unittest.mock import patch

import pytest

from eventgate.app.core.security import (
    compute_hmac_signature,
    extract_bearer_token,
    hash_key,
    timing_safe_compare,
    verify_bearer_token,
    verify_hmac_signature,
)

SECRET = "my-app-secret"
BODY = b'{"object":"page","entry":[{"id":"123","time":1700000000}]}'


class TestTimingSafeCompare:
    """Constant-time comparison."""

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ("abc", "abc", True),
            ("abc", "abd", False),
            ("abc", "abcd", False),
            ("", "", True),
            (b"abc", "abc", True),
            ("héllo", "héllo", True),
        ],
    )
    def test_compare(self, a, b, expected):
        assert timing_safe_compare(a, b) is expected

    def test_never_raises_on_bad_input(self):
        assert timing_safe_compare(None, "abc") is False


class TestComputeHmacSignature:
    """Signature computation."""

    def test_known_vector(self):
        """Test against the published HMAC-SHA256 example."""
        signature = compute_hmac_signature(
            "The quick brown fox jumps over the lazy dog", "key", "hex"
        )
        assert signature == "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"

    def test_wire_format_has_prefix(self):
        signature = compute_hmac_signature(BODY, SECRET)
        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_str_and_bytes_payloads_agree(self):
        assert compute_hmac_signature(BODY.decode(), SECRET) == compute_hmac_signature(BODY, SECRET)


class TestVerifyHmacSignature:
    """Signature verification."""

    def test_valid_signature(self):
        result = verify_hmac_signature(BODY, compute_hmac_signature(BODY, SECRET), SECRET)

        assert result.valid is True
        assert result.error is None

    def test_valid_bare_hex_signature(self):
        signature = compute_hmac_signature(BODY, SECRET, "hex")
        assert verify_hmac_signature(BODY, signature, SECRET, "hex").valid is True

    def test_wrong_secret(self):
        """Test that a signature made with another secret is rejected."""
        signature = compute_hmac_signature(BODY, "other-secret")
        result = verify_hmac_signature(BODY, signature, SECRET)

        assert result.valid is False
        assert result.error == "Signature does not match"

    def test_single_byte_change_in_payload(self):
        """Test that flipping one byte of the body invalidates the signature."""
        signature = compute_hmac_signature(BODY, SECRET)
        tampered = bytearray(BODY)
        tampered[10] ^= 0x01

        assert verify_hmac_signature(bytes(tampered), signature, SECRET).valid is False

    def test_single_char_change_in_signature(self):
        signature = compute_hmac_signature(BODY, SECRET)
        last = "0" if signature[-1] != "0" else "1"

        assert verify_hmac_signature(BODY, signature[:-1] + last, SECRET).valid is False

    @pytest.mark.parametrize(
        "payload,signature,secret,error",
        [
            (b"", "sha256=" + "0" * 64, SECRET, "Missing payload"),
            (None, "sha256=" + "0" * 64, SECRET, "Missing payload"),
            (BODY, "", SECRET, "Missing signature"),
            (BODY, None, SECRET, "Missing signature"),
            (BODY, "sha256=" + "0" * 64, "", "Missing secret"),
            (BODY, "0" * 64, SECRET, "Invalid signature format: missing 'sha256=' prefix"),
            (BODY, "sha1=" + "0" * 40, SECRET, "Invalid signature format: missing 'sha256=' prefix"),
            (BODY, "sha256=abc", SECRET, "Invalid signature format: expected 64 hex characters"),
            (BODY, "sha256=" + "z" * 64, SECRET, "Invalid signature format: expected 64 hex characters"),
        ],
    )
    def test_precondition_errors(self, payload, signature, secret, error):
        """Test that each failed precondition reports its own reason."""
        result = verify_hmac_signature(payload, signature, secret)

        assert result.valid is False
        assert result.error == error

    def test_crypto_failure_is_reported_not_raised(self):
        """Test that an exception inside HMAC computation fails closed."""
        with patch(
            "eventgate.app.core.security._compute_hmac", side_effect=RuntimeError("boom")
        ):
            result = verify_hmac_signature(BODY, "sha256=" + "0" * 64, SECRET)

        assert result.valid is False
        assert result.error == "Signature verification failed"

    def test_computed_signature_hidden_from_repr(self):
        result = verify_hmac_signature(BODY, compute_hmac_signature(BODY, SECRET), SECRET)
        assert result.computed_signature is not None
        assert result.computed_signature not in repr(result)


class TestBearerTokens:
    """Bearer token helpers."""

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc123", "abc123"),
            ("bearer abc123", "abc123"),
            ("Bearer   spaced  ", "spaced"),
            ("Basic abc123", None),
            ("Bearer", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_verify_bearer_token(self):
        assert verify_bearer_token("secret", "secret") is True
        assert verify_bearer_token("secret", "other") is False
        assert verify_bearer_token(None, "secret") is False

    def test_unset_expected_token_rejects_everything(self):
        assert verify_bearer_token("", "") is False
        assert verify_bearer_token("anything", "") is False

    def test_hash_key(self):
        """Test that hashed keys are stable, truncated and not the raw key."""
        hashed = hash_key("sync-token")

        assert hashed == hash_key("sync-token")
        assert len(hashed) == 32
        assert "sync-token" not in hashed
        assert len(hash_key("sync-token", length=16)) == 16
