"""Authorization code exchange with the external platform."""

from __future__ import annotations

import httpx
import structlog

from hookgate.security.oauth.collaborators import InstallGrant
from hookgate.security.oauth.config import OAuthConfig

logger = structlog.get_logger()


class TokenExchangeError(RuntimeError):
    """Raised when the platform refuses or fails a code exchange."""


class PlatformTokenExchanger:
    """Exchanges an authorization code at the platform's token endpoint.

    The platform answers 200 with ``{"ok": false, "error": ...}`` on refusal,
    so both the HTTP status and the ``ok`` flag are checked.
    """

    def __init__(
        self,
        config: OAuthConfig,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.client_secret:
            raise ValueError("Token exchange requires a client_secret")
        self._config = config
        self._timeout = timeout
        self._client = client

    async def _post(self, data: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self._config.token_url, data=data)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._config.token_url, data=data)

    async def exchange(self, code: str) -> InstallGrant:
        """Exchange ``code`` for an access token.

        Raises:
            TokenExchangeError: On transport errors or a refused exchange.
        """
        data = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "code": code,
            "redirect_uri": self._config.redirect_uri,
        }

        try:
            response = await self._post(data)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint request failed: {type(e).__name__}") from e
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned invalid JSON") from e

        if not isinstance(payload, dict) or not payload.get("ok"):
            error = payload.get("error") if isinstance(payload, dict) else None
            logger.warning("Platform refused code exchange", error=error)
            raise TokenExchangeError(error or "OAuth exchange failed")

        team = payload.get("team") or {}
        access_token = payload.get("access_token")
        team_id = team.get("id") if isinstance(team, dict) else None
        if not access_token or not team_id:
            raise TokenExchangeError("Token response missing access_token or team")

        return InstallGrant(
            access_token=access_token,
            team_id=team_id,
            team_name=team.get("name"),
            bot_user_id=payload.get("bot_user_id"),
            scope=payload.get("scope"),
        )
