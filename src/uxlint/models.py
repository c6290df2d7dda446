"""Canonical Pydantic models shared across all uxlint modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Protocol values** -- produced during one OAuth flow and never persisted on
their own:
    :class:`PKCEParameters`, :class:`CallbackResult`, and
    :class:`OIDCConfiguration`.

**Session models** -- the unit of persistence, serialised as JSON with
camelCase keys into the platform credential store:
    :class:`TokenSet`, :class:`UserProfile`, :class:`SessionMetadata`, and
    :class:`AuthenticationSession`.

**Configuration models** -- loaded once per process by
:func:`~uxlint.config.load_oauth_config`:
    :class:`OAuthEndpoints` and :class:`OAuthConfig`.

All session and configuration models are frozen: a refreshed token set or
session is a new instance, never a mutated one.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Base for models persisted with camelCase keys.

    ``populate_by_name`` lets the same models validate snake_case input, so
    a raw OAuth token response (``access_token``, ``expires_in``, ...) can be
    fed straight into :class:`TokenSet`.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# --- Protocol values ---


class PKCEParameters(BaseModel):
    """PKCE values for a single authorization attempt (:rfc:`7636`).

    Created fresh by :func:`~uxlint.auth.pkce.generate_pkce_parameters`
    for every ``authorize()`` call and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(repr=False, min_length=43, max_length=128)
    code_challenge: str
    code_challenge_method: Literal["S256"] = "S256"
    state: str = Field(repr=False)


class CallbackResult(BaseModel):
    """Authorization code and state captured from the loopback redirect."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(repr=False)
    state: str = Field(repr=False)


class OIDCConfiguration(BaseModel):
    """Subset of an OpenID Provider's discovery document.

    Field names match the discovery JSON so the document can be validated
    directly. Unknown keys are ignored.
    """

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: Optional[str] = None
    response_types_supported: list[str] = Field(default_factory=list)
    grant_types_supported: list[str] = Field(default_factory=list)
    scopes_supported: list[str] = Field(default_factory=list)
    code_challenge_methods_supported: list[str] = Field(default_factory=list)


# --- Session models ---


class TokenSet(_CamelModel):
    """Tokens issued by the provider's token endpoint.

    Secrets are excluded from ``repr()`` so a stray log line or traceback
    never prints them.
    """

    access_token: str = Field(repr=False, min_length=1)
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int = Field(ge=0, description="Lifetime of the access token in seconds")
    refresh_token: str = Field(repr=False, min_length=1)
    id_token: Optional[str] = Field(default=None, repr=False)
    scope: str = Field(default="", description="Space-separated granted scopes")

    @field_validator("token_type", mode="before")
    @classmethod
    def _normalise_token_type(cls, value: Any) -> Any:
        # Providers commonly answer "bearer"; RFC 6749 says the value is case-insensitive.
        if isinstance(value, str) and value.lower() == "bearer":
            return "Bearer"
        return value

    @property
    def scopes(self) -> list[str]:
        """The granted scopes as a list."""
        return self.scope.split()


class UserProfile(_CamelModel):
    """The signed-in user, derived from ID-token claims or the user-info endpoint."""

    id: str
    email: str
    name: str
    organization: Optional[str] = None
    picture: Optional[str] = None
    email_verified: bool = False


class SessionMetadata(_CamelModel):
    """Issuance and expiry timestamps of a session (always timezone-aware UTC)."""

    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AuthenticationSession(_CamelModel):
    """The sole unit of persistence: user, tokens, and their timing.

    ``metadata.expires_at`` is always ``metadata.created_at +
    tokens.expires_in``; use :meth:`create` rather than building the
    metadata by hand.

    Example::

        session = AuthenticationSession.create(user=profile, tokens=tokens)
        if session.is_expired(buffer=300):
            ...
    """

    version: Literal[1] = 1
    user: UserProfile
    tokens: TokenSet
    metadata: SessionMetadata

    @classmethod
    def create(
        cls,
        user: UserProfile,
        tokens: TokenSet,
        now: Optional[datetime] = None,
    ) -> AuthenticationSession:
        """Build a session whose expiry is derived from the token issuance time.

        Args:
            user: The signed-in user.
            tokens: The freshly issued token set.
            now: Issuance time. Defaults to the current UTC time.

        Returns:
            A new :class:`AuthenticationSession`.
        """
        created_at = now or datetime.now(timezone.utc)
        return cls(
            user=user,
            tokens=tokens,
            metadata=SessionMetadata(
                created_at=created_at,
                expires_at=created_at + timedelta(seconds=tokens.expires_in),
            ),
        )

    def is_expired(self, buffer: float = 0.0, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when the session expires within *buffer* seconds.

        Args:
            buffer: Lead time in seconds before the actual expiry at which
                the session already counts as expired.
            now: Reference time. Defaults to the current UTC time.
        """
        reference = now or datetime.now(timezone.utc)
        return self.metadata.expires_at <= reference + timedelta(seconds=buffer)

    def to_json(self) -> str:
        """Serialise to the camelCase JSON stored in the credential store."""
        return self.model_dump_json(by_alias=True)


# --- Configuration models ---


class OAuthEndpoints(_CamelModel):
    """Paths of the provider endpoints, relative to :attr:`OAuthConfig.base_url`."""

    authorize_path: str = "/auth/v1/oauth/authorize"
    token_path: str = "/auth/v1/oauth/token"
    openid_configuration_path: str = "/.well-known/openid-configuration"


class OAuthConfig(_CamelModel):
    """Process-wide OAuth client configuration.

    Loaded once by :func:`~uxlint.config.load_oauth_config` and read-only
    thereafter.
    """

    client_id: str = ""
    base_url: str = "https://app.uxlint.org"
    endpoints: OAuthEndpoints = Field(default_factory=OAuthEndpoints)
    redirect_uri: str = "http://localhost:8080/callback"
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email", "uxlint:api"]
    )

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    @property
    def authorize_url(self) -> str:
        """Absolute URL of the authorization endpoint."""
        return self._url(self.endpoints.authorize_path)

    @property
    def token_url(self) -> str:
        """Absolute URL of the token endpoint."""
        return self._url(self.endpoints.token_path)

    @property
    def openid_configuration_url(self) -> str:
        """Absolute URL of the OpenID discovery document."""
        return self._url(self.endpoints.openid_configuration_path)
