"""PKCE verifier/challenge generation (:rfc:`7636`) and CSRF state tokens.

The verifier is random bytes from :mod:`secrets`, base64url-encoded without
padding, so it only contains unreserved URL characters. The challenge is a
single SHA-256 pass over the verifier's ASCII bytes, base64url-encoded
without padding (the ``S256`` method).
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from clauth.exceptions import InvalidArgumentError
from clauth.models import PKCEPair

MIN_VERIFIER_BYTES = 32
"""32 random bytes encode to the 43-character minimum verifier length."""

MAX_VERIFIER_BYTES = 96
"""96 random bytes encode to the 128-character maximum verifier length."""


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def code_challenge_for(code_verifier: str) -> str:
    """Derive the S256 ``code_challenge`` for a verifier.

    Args:
        code_verifier: The plain verifier string.

    Returns:
        ``BASE64URL(SHA256(ASCII(code_verifier)))`` without padding.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce_pair(num_bytes: int = MIN_VERIFIER_BYTES) -> PKCEPair:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Args:
        num_bytes: Random bytes behind the verifier, between 32 and 96.

    Returns:
        A fresh :class:`~clauth.models.PKCEPair`.

    Raises:
        InvalidArgumentError: If *num_bytes* is out of range.
    """
    if not MIN_VERIFIER_BYTES <= num_bytes <= MAX_VERIFIER_BYTES:
        raise InvalidArgumentError(
            f"num_bytes must be between {MIN_VERIFIER_BYTES} and "
            f"{MAX_VERIFIER_BYTES}, got {num_bytes}"
        )
    code_verifier = _b64url(secrets.token_bytes(num_bytes))
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=code_challenge_for(code_verifier),
    )


def generate_state() -> str:
    """Return a fresh 256-bit URL-safe ``state`` value for CSRF protection."""
    return secrets.token_urlsafe(32)
