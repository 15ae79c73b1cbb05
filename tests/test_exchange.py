"""Tests for the platform code exchange."""

from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

from hookgate.security.oauth.config import OAuthConfig
from hookgate.security.oauth.exchange import PlatformTokenExchanger, TokenExchangeError

CONFIG = OAuthConfig(
    client_id="client-123",
    client_secret="secret-456",
    redirect_uri="https://app.example.com/authorize/callback",
)

SUCCESS = {
    "ok": True,
    "access_token": "xoxb-token",
    "scope": "chat:write,team:read",
    "bot_user_id": "B1",
    "team": {"id": "T1", "name": "Acme"},
}


def exchanger_for(handler) -> PlatformTokenExchanger:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PlatformTokenExchanger(CONFIG, client=client)


class TestPlatformTokenExchanger:
    """Tests for PlatformTokenExchanger."""

    @pytest.mark.asyncio
    async def test_successful_exchange(self):
        """Test a successful exchange posts credentials and returns a grant."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=SUCCESS)

        result = await exchanger_for(handler).exchange("code-789")

        assert result.access_token == "xoxb-token"
        assert result.team_id == "T1"
        assert result.team_name == "Acme"
        assert result.bot_user_id == "B1"
        assert result.scope == "chat:write,team:read"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://slack.com/api/oauth.v2.access"
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        assert form == {
            "client_id": "client-123",
            "client_secret": "secret-456",
            "code": "code-789",
            "redirect_uri": "https://app.example.com/authorize/callback",
        }

    @pytest.mark.asyncio
    async def test_platform_refusal(self):
        """Test ok=false raises with the platform's error code."""

        def handler(request):
            return httpx.Response(200, json={"ok": False, "error": "invalid_code"})

        with pytest.raises(TokenExchangeError, match="invalid_code"):
            await exchanger_for(handler).exchange("bad")

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test a non-2xx response raises TokenExchangeError."""

        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(TokenExchangeError, match="HTTPStatusError"):
            await exchanger_for(handler).exchange("code")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test connection failures raise TokenExchangeError."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(TokenExchangeError):
            await exchanger_for(handler).exchange("code")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test a non-JSON body raises TokenExchangeError."""

        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(TokenExchangeError, match="invalid JSON"):
            await exchanger_for(handler).exchange("code")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"ok": True, "team": {"id": "T1"}},
            {"ok": True, "access_token": "xoxb"},
            {"ok": True, "access_token": "xoxb", "team": "T1"},
            [],
        ],
    )
    async def test_incomplete_response(self, payload):
        """Test responses without a token or team raise TokenExchangeError."""

        def handler(request):
            return httpx.Response(200, content=json.dumps(payload).encode())

        with pytest.raises(TokenExchangeError):
            await exchanger_for(handler).exchange("code")

    def test_requires_client_secret(self):
        """Test the exchanger refuses a config without a client secret."""
        config = OAuthConfig(client_id="c", redirect_uri="https://app.example.com/cb")
        with pytest.raises(ValueError, match="client_secret"):
            PlatformTokenExchanger(config)
