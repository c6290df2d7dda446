"""Deriving the signed-in :class:`~uxlint.models.UserProfile`.

When the token response carries an ID token, its signature is checked
against the provider's JWKS (located through OpenID discovery) and the
``iss``, ``aud``, ``exp`` and ``nbf`` claims are validated with PyJWT.
Without an ID token the user-info endpoint is queried when the provider
advertises one; otherwise a placeholder profile is used.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt

from uxlint.auth.http_client import OAuthHttpClient
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import OAuthConfig, TokenSet, UserProfile

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "PS256"]
_CLOCK_SKEW = 60


def minimal_profile() -> UserProfile:
    """Placeholder profile used when the provider offers no identity claims."""
    return UserProfile(id="unknown", email="unknown@uxlint.org", name="UXLint User")


def verify_id_token(
    id_token: str,
    jwks: dict[str, Any],
    issuer: str,
    audience: str,
) -> dict[str, Any]:
    """Verify an ID token and return its claims.

    Args:
        id_token: The compact-serialised JWT.
        jwks: The provider's JSON Web Key Set.
        issuer: Expected ``iss`` claim.
        audience: Expected ``aud`` claim (the OAuth client ID).

    Returns:
        The verified claims.

    Raises:
        AuthenticationError: ``INVALID_RESPONSE`` if the token is malformed,
            signed with an unknown key or disallowed algorithm, expired, not
            yet valid, or issued for another issuer or audience.
    """
    try:
        header = jwt.get_unverified_header(id_token)
        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise jwt.InvalidAlgorithmError(f"Algorithm {algorithm!r} is not allowed")

        key_set = jwt.PyJWKSet.from_dict(jwks)
        kid = header.get("kid")
        if kid is not None:
            try:
                signing_key = key_set[kid]
            except KeyError as exc:
                raise jwt.InvalidKeyError(f"No JWKS key matches kid {kid!r}") from exc
        elif len(key_set.keys) == 1:
            signing_key = key_set.keys[0]
        else:
            raise jwt.InvalidKeyError("ID token has no 'kid' and the JWKS holds several keys")

        claims: dict[str, Any] = jwt.decode(
            id_token,
            key=signing_key.key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            leeway=_CLOCK_SKEW,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.PyJWTError as exc:
        logger.warning("ID token verification failed: %s", type(exc).__name__)
        raise AuthenticationError(
            AuthErrorCode.INVALID_RESPONSE,
            f"ID token verification failed: {exc}",
            cause=exc,
        ) from exc
    return claims


def profile_from_claims(claims: dict[str, Any]) -> UserProfile:
    """Map OIDC standard claims onto a :class:`~uxlint.models.UserProfile`.

    Raises:
        AuthenticationError: ``INVALID_RESPONSE`` when ``sub`` is missing.
    """
    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError(
            AuthErrorCode.INVALID_RESPONSE, "Identity claims are missing 'sub'"
        )
    email = claims.get("email") or "unknown@uxlint.org"
    name = claims.get("name") or claims.get("preferred_username") or email
    return UserProfile(
        id=str(subject),
        email=str(email),
        name=str(name),
        organization=claims.get("organization") or claims.get("org"),
        picture=claims.get("picture"),
        email_verified=bool(claims.get("email_verified", False)),
    )


async def resolve_user_profile(
    tokens: TokenSet,
    config: OAuthConfig,
    http_client: OAuthHttpClient,
) -> UserProfile:
    """Build the profile for a freshly issued token set.

    Args:
        tokens: Tokens returned by the code exchange.
        config: OAuth configuration (client ID and discovery URL).
        http_client: Client used for discovery, JWKS, and user-info.

    Returns:
        The verified profile, or :func:`minimal_profile` when the provider
        exposes no identity information.

    Raises:
        AuthenticationError: When an ID token is present but cannot be
            verified, or discovery fails while an ID token must be checked.
    """
    if tokens.id_token:
        discovery = await http_client.get_openid_configuration(config.openid_configuration_url)
        jwks = await http_client.get_jwks(discovery.jwks_uri)
        claims = verify_id_token(
            tokens.id_token, jwks, issuer=discovery.issuer, audience=config.client_id
        )
        return profile_from_claims(claims)

    try:
        discovery = await http_client.get_openid_configuration(config.openid_configuration_url)
        if discovery.userinfo_endpoint:
            claims = await http_client.get_user_info(
                discovery.userinfo_endpoint, tokens.access_token
            )
            return profile_from_claims(claims)
    except AuthenticationError as exc:
        if exc.code is not AuthErrorCode.NETWORK_ERROR:
            raise
        logger.warning("Could not fetch user info, using placeholder profile: %s", exc.message)

    logger.info("No ID token or user-info endpoint; using placeholder profile")
    return minimal_profile()
