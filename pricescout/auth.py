from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import InvalidToken, ServiceUnavailable, Unauthorized

logger = logging.getLogger("pricescout.auth")

USER_ENDPOINT = "/auth/v1/user"


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header or raise Unauthorized."""
    if not authorization:
        raise Unauthorized("missing authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("authorization header is not a bearer token")
    return token


class AuthVerifier:
    """Validates bearer tokens against the external auth service's user endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.Client) -> None:
        self._settings = settings
        self._http = http_client

    def verify(self, authorization: Optional[str]) -> Dict[str, Any]:
        """Purpose: Resolve the caller's user record from a bearer token.
        Inputs/Outputs: Input is the raw Authorization header; output is the user dict
            returned by the auth service.
        Side Effects / State: One GET to <auth_url>/auth/v1/user.
        Dependencies: Uses Settings.auth_url/auth_anon_key and httpx.
        Failure Modes: Unauthorized when the header is absent or malformed;
            ServiceUnavailable when the auth service is not configured or unreachable;
            InvalidToken for any non-200 answer or a body that is not a JSON object.
        If Removed: Anyone could spend the gateway credits.
        Testing Notes: MockTransport returning 401 must yield InvalidToken.
        """
        token = extract_bearer_token(authorization)
        if not self._settings.auth_url or not self._settings.auth_anon_key:
            logger.error("auth service is not configured")
            raise ServiceUnavailable("auth service settings missing")

        try:
            response = self._http.get(
                f"{self._settings.auth_url}{USER_ENDPOINT}",
                headers={
                    "apikey": self._settings.auth_anon_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("auth service transport failure error=%s", exc)
            raise ServiceUnavailable(f"auth service unreachable: {exc}") from exc

        if response.status_code != 200:
            logger.info("token rejected status=%s", response.status_code)
            raise InvalidToken(f"auth service status {response.status_code}")
        try:
            user = response.json()
        except ValueError as exc:
            raise InvalidToken("auth service returned a non-JSON body") from exc
        if not isinstance(user, dict):
            raise InvalidToken("auth service returned an unexpected body")
        logger.debug("token accepted user=%s", user.get("id"))
        return user
