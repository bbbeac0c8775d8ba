"""Signature and token verification primitives.

Everything here fails closed: a missing input, a malformed signature or an
error inside the crypto primitive is reported as an invalid result, never
as a pass.
"""

import hashlib
import hmac
import re
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from eventgate.app.core.logging import get_logger

logger = get_logger(__name__)

SignatureFormat = Literal["sha256=hex", "hex"]
BytesOrStr = Union[bytes, str]

SIGNATURE_PREFIX = "sha256="
SIGNATURE_HEADER = "x-hub-signature-256"

_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]{64}$")
_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass
class HmacVerificationResult:
    """Outcome of an HMAC signature check."""
    valid: bool
    error: Optional[str] = None
    computed_signature: Optional[str] = field(default=None, repr=False)


def _to_bytes(value: BytesOrStr) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def timing_safe_compare(a: BytesOrStr, b: BytesOrStr) -> bool:
    """Compare two values in constant time.

    Returns False for inputs of different length. Equal-length inputs are
    compared with hmac.compare_digest, whose running time does not depend
    on where the inputs first differ. Never raises.
    """
    try:
        a_bytes = _to_bytes(a)
        b_bytes = _to_bytes(b)
    except (AttributeError, UnicodeEncodeError):
        return False

    if len(a_bytes) != len(b_bytes):
        return False

    return hmac.compare_digest(a_bytes, b_bytes)


def _compute_hmac(payload: BytesOrStr, secret: BytesOrStr) -> str:
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def compute_hmac_signature(
    payload: BytesOrStr,
    secret: BytesOrStr,
    signature_format: SignatureFormat = "sha256=hex",
) -> str:
    """Compute an HMAC-SHA256 signature over the raw payload.

    Args:
        payload: Raw request body (str values are UTF-8 encoded)
        secret: Shared secret
        signature_format: "sha256=hex" for the webhook wire format,
            "hex" for a bare digest

    Returns:
        Lowercase hex digest, prefixed with "sha256=" for the wire format
    """
    signature = _compute_hmac(payload, secret)
    if signature_format == "sha256=hex":
        return f"{SIGNATURE_PREFIX}{signature}"
    return signature


def verify_hmac_signature(
    payload: Optional[BytesOrStr],
    signature: Optional[str],
    secret: Optional[BytesOrStr],
    signature_format: SignatureFormat = "sha256=hex",
) -> HmacVerificationResult:
    """Verify a provided signature against the raw payload.

    Preconditions are checked in order (payload, signature, secret, format)
    and each violation has its own error message. The digest comparison is
    constant time.
    """
    if not payload:
        return HmacVerificationResult(valid=False, error="Missing payload")

    if not signature:
        return HmacVerificationResult(valid=False, error="Missing signature")

    if not secret:
        return HmacVerificationResult(valid=False, error="Missing secret")

    provided = signature
    if signature_format == "sha256=hex":
        if not signature.startswith(SIGNATURE_PREFIX):
            return HmacVerificationResult(
                valid=False,
                error="Invalid signature format: missing 'sha256=' prefix",
            )
        provided = signature[len(SIGNATURE_PREFIX):]

    if not _HEX_DIGEST.match(provided):
        return HmacVerificationResult(
            valid=False,
            error="Invalid signature format: expected 64 hex characters",
        )

    try:
        computed = _compute_hmac(payload, secret)
    except Exception as e:
        logger.error(f"HMAC computation failed: {type(e).__name__}")
        return HmacVerificationResult(valid=False, error="Signature verification failed")

    valid = timing_safe_compare(computed, provided)
    return HmacVerificationResult(
        valid=valid,
        error=None if valid else "Signature does not match",
        computed_signature=computed,
    )


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Extract the token from an "Authorization: Bearer <token>" header."""
    if not auth_header:
        return None
    match = _BEARER.match(auth_header.strip())
    return match.group(1).strip() if match else None


def verify_bearer_token(token: Optional[str], expected_token: Optional[str]) -> bool:
    """Check a bearer token in constant time.

    An unset expected token never authenticates anyone.
    """
    if not token or not expected_token:
        return False
    return timing_safe_compare(token, expected_token)


def hash_key(raw_key: str, length: int = 32) -> str:
    """Hash a secret-bearing key so it can be used as a limiter key or logged.

    Uses 32 hex chars (128 bits) by default for collision resistance.
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()[:length]
