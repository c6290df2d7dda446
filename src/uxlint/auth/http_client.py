"""Outbound OAuth HTTP calls: token exchange, refresh, and OIDC discovery.

:class:`OAuthHttpClient` is the only component that talks to the identity
provider over the network. Every request is bounded by a timeout and every
failure is wrapped in an :class:`~uxlint.exceptions.AuthenticationError`:

* transport failures, timeouts, non-2xx answers, and unparseable bodies
  become ``NETWORK_ERROR``;
* a refresh rejected with ``invalid_grant`` becomes ``REFRESH_FAILED`` so
  callers can tell "must log in again" apart from a transient outage;
* a well-formed answer with missing or invalid fields becomes
  ``INVALID_RESPONSE``.

Tests pass an :class:`httpx.MockTransport` as *transport*.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional

import httpx
from pydantic import ValidationError

from uxlint.auth.constants import HTTP_REQUEST_TIMEOUT
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import OIDCConfiguration, TokenSet

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Accept": "application/json"}


def _provider_error(response: httpx.Response) -> dict[str, Any]:
    """Extract ``error``/``error_description`` from an OAuth error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    return {key: body[key] for key in ("error", "error_description") if key in body}


class OAuthHttpClient:
    """Async client for the provider's token, discovery, and user-info endpoints.

    Args:
        timeout: Ceiling in seconds on each request, from connecting to the
            last byte of the body.
        transport: Optional :class:`httpx.AsyncBaseTransport`, mainly for
            tests.
    """

    def __init__(
        self,
        timeout: float = HTTP_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._timeout

    async def exchange_code_for_tokens(
        self,
        token_endpoint: str,
        client_id: str,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> TokenSet:
        """Exchange an authorization code for tokens (``authorization_code`` grant).

        Args:
            token_endpoint: Absolute token endpoint URL.
            client_id: The public OAuth client ID.
            code: Authorization code from the callback.
            redirect_uri: The exact redirect URI used in the authorization
                request.
            code_verifier: The PKCE verifier matching the challenge sent.

        Returns:
            The issued :class:`~uxlint.models.TokenSet`.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` or ``INVALID_RESPONSE``.
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        payload = await self._post_form(token_endpoint, data, operation="token exchange")
        tokens = self._parse_tokens(payload, operation="token exchange")
        logger.info("Exchanged authorization code for tokens (scope=%r)", tokens.scope)
        return tokens

    async def refresh_access_token(
        self,
        token_endpoint: str,
        client_id: str,
        refresh_token: str,
        scope: Optional[str] = None,
    ) -> TokenSet:
        """Obtain a new token set with a refresh token (``refresh_token`` grant).

        When the provider does not rotate the refresh token (omits it from
        the response), *refresh_token* is carried over into the result.

        Args:
            token_endpoint: Absolute token endpoint URL.
            client_id: The public OAuth client ID.
            refresh_token: The current refresh token.
            scope: Optional space-separated scope to request.

        Returns:
            The new :class:`~uxlint.models.TokenSet`.

        Raises:
            AuthenticationError: ``REFRESH_FAILED`` when the provider rejects
                the refresh token, ``NETWORK_ERROR`` or ``INVALID_RESPONSE``
                otherwise.
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "refresh_token": refresh_token,
        }
        if scope:
            data["scope"] = scope

        payload = await self._post_form(token_endpoint, data, operation="token refresh")
        if isinstance(payload, dict) and not payload.get("refresh_token"):
            payload = {**payload, "refresh_token": refresh_token}
        tokens = self._parse_tokens(payload, operation="token refresh")
        logger.info("Refreshed access token (expires_in=%d)", tokens.expires_in)
        return tokens

    async def get_openid_configuration(self, url: str) -> OIDCConfiguration:
        """Fetch and validate the provider's OpenID discovery document."""
        payload = await self._get_json(url, operation="OpenID discovery")
        try:
            return OIDCConfiguration.model_validate(payload)
        except ValidationError as exc:
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                "Invalid OpenID configuration document",
                cause=exc,
            ) from exc

    async def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        """Fetch the provider's JSON Web Key Set."""
        payload = await self._get_json(jwks_uri, operation="JWKS download")
        if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, "Invalid JWKS document: missing 'keys'"
            )
        return payload

    async def get_user_info(self, userinfo_endpoint: str, access_token: str) -> dict[str, Any]:
        """Fetch the user-info claims for *access_token*."""
        payload = await self._get_json(
            userinfo_endpoint,
            operation="user-info request",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not isinstance(payload, dict):
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE, "Invalid user-info response"
            )
        return payload

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _post_form(self, url: str, data: dict[str, str], *, operation: str) -> Any:
        async with self._client() as client:
            response = await self._send(
                client.post(url, data=data, headers=_JSON_HEADERS), operation
            )

        if response.is_success:
            return self._decode(response, operation)

        provider_error = _provider_error(response)
        context = {"status_code": response.status_code, **provider_error}
        if (
            data.get("grant_type") == "refresh_token"
            and provider_error.get("error") == "invalid_grant"
        ):
            logger.warning("Refresh token rejected by provider (invalid_grant)")
            raise AuthenticationError(
                AuthErrorCode.REFRESH_FAILED,
                "Refresh token is invalid or expired. Please log in again.",
                context=context,
            )

        logger.warning("%s failed with HTTP %d", operation.capitalize(), response.status_code)
        detail = provider_error.get("error_description") or provider_error.get("error")
        message = f"{operation.capitalize()} failed with status {response.status_code}"
        if detail:
            message += f": {detail}"
        raise AuthenticationError(AuthErrorCode.NETWORK_ERROR, message, context=context)

    async def _get_json(
        self,
        url: str,
        *,
        operation: str,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        async with self._client() as client:
            response = await self._send(
                client.get(url, headers={**_JSON_HEADERS, **(headers or {})}), operation
            )

        if not response.is_success:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"{operation.capitalize()} failed with status {response.status_code}",
                context={"status_code": response.status_code, **_provider_error(response)},
            )
        return self._decode(response, operation)

    async def _send(self, request: Awaitable[httpx.Response], operation: str) -> httpx.Response:
        # httpx timeouts apply per phase; a slowly dripping body would never trip them.
        try:
            return await asyncio.wait_for(request, self._timeout)
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            raise self._transport_error(exc, operation) from exc

    def _transport_error(self, exc: Exception, operation: str) -> AuthenticationError:
        if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
            logger.warning("%s timed out after %gs", operation.capitalize(), self._timeout)
            return AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"{operation.capitalize()} timed out after {self._timeout:g} seconds",
                context={"timeout": self._timeout},
                cause=exc,
            )
        logger.warning("%s failed: %s", operation.capitalize(), type(exc).__name__)
        return AuthenticationError(
            AuthErrorCode.NETWORK_ERROR,
            f"Network error during {operation}: {exc}",
            cause=exc,
        )

    @staticmethod
    def _decode(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise AuthenticationError(
                AuthErrorCode.NETWORK_ERROR,
                f"Malformed JSON in {operation} response",
                context={"status_code": response.status_code},
                cause=exc,
            ) from exc

    @staticmethod
    def _parse_tokens(payload: Any, operation: str) -> TokenSet:
        if not isinstance(payload, dict):
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                f"Unexpected {operation} response: expected a JSON object",
            )
        try:
            return TokenSet.model_validate(payload)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise AuthenticationError(
                AuthErrorCode.INVALID_RESPONSE,
                f"Invalid {operation} response (fields: {', '.join(fields) or 'unknown'})",
                cause=exc,
            ) from exc
