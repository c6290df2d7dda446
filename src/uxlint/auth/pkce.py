"""PKCE parameter generation (:rfc:`7636`).

Every authorization attempt gets a fresh verifier, challenge, and ``state``
value. Nothing here performs I/O; randomness comes from :mod:`secrets` only.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from uxlint.models import PKCEParameters

# 32 random bytes -> 43 base64url characters, the RFC 7636 minimum length
# and 256 bits of entropy.
_VERIFIER_BYTES = 32
_STATE_BYTES = 32


def code_challenge_s256(code_verifier: str) -> str:
    """Return ``BASE64URL(SHA256(code_verifier))`` without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_parameters() -> PKCEParameters:
    """Generate a PKCE verifier/challenge pair and an unguessable ``state``.

    ``token_urlsafe`` only emits ``[A-Za-z0-9_-]``, a subset of the
    unreserved characters allowed in a code verifier.

    Returns:
        A new :class:`~uxlint.models.PKCEParameters`.
    """
    code_verifier = secrets.token_urlsafe(_VERIFIER_BYTES)
    return PKCEParameters(
        code_verifier=code_verifier,
        code_challenge=code_challenge_s256(code_verifier),
        code_challenge_method="S256",
        state=secrets.token_urlsafe(_STATE_BYTES),
    )
