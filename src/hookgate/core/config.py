"""Configuration types with environment variable support.

All settings can be configured via environment variables with the HOOKGATE_ prefix.
Example: HOOKGATE_SIGNING_SECRET=... sets the webhook signing secret.

Settings are read once at startup and handed to components at construction;
components never read the environment themselves.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from hookgate.security.oauth.config import DEFAULT_ENABLED_EVENTS, DEFAULT_SCOPES, OAuthConfig


_PARSERS = {
    ".yaml": ("YAML", yaml.YAMLError),
    ".yml": ("YAML", yaml.YAMLError),
    ".toml": ("TOML", tomllib.TOMLDecodeError),
}


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Read a server or members file into a mapping.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: If the file cannot be parsed or its top level is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    if path.suffix not in _PARSERS:
        raise ValueError(f"Unsupported config format: {path.suffix}")
    kind, error_type = _PARSERS[path.suffix]

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content) if kind == "YAML" else tomllib.loads(content)
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e
    except error_type as e:
        raise ValueError(f"Invalid {kind} in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}")
    return data


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Join nested section keys with underscores: ``oauth.client_id`` becomes ``oauth_client_id``."""
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


class HookgateConfig(BaseSettings):
    """Server configuration.

    Nested sections in a config file are flattened, so
    ``oauth: {client_id: ...}`` sets ``oauth_client_id``.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOOKGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind address for the HTTP server.",
    )
    port: int = Field(
        default=8080,
        description="Bind port for the HTTP server.",
    )
    log_level: str = Field(
        default="info",
        description="Log level (debug, info, warning, error).",
    )
    # Webhook verification
    signing_secret: str | None = Field(
        default=None,
        repr=False,
        description="Shared secret the platform signs webhook requests with.",
    )
    timestamp_header: str = Field(
        default="X-Signature-Timestamp",
        description="Header carrying the request timestamp.",
    )
    signature_header: str = Field(
        default="X-Signature",
        description="Header carrying the v0= request signature.",
    )
    handler_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on a single event handler call (seconds).",
    )
    # OAuth install flow
    oauth_client_id: str | None = Field(
        default=None,
        description="Platform OAuth client ID.",
    )
    oauth_client_secret: str | None = Field(
        default=None,
        repr=False,
        description="Platform OAuth client secret.",
    )
    oauth_redirect_uri: str | None = Field(
        default=None,
        description="Callback URL registered with the platform.",
    )
    oauth_authorize_url: str = Field(
        default="https://slack.com/oauth/v2/authorize",
        description="Platform authorization endpoint.",
    )
    oauth_token_url: str = Field(
        default="https://slack.com/api/oauth.v2.access",
        description="Platform code exchange endpoint.",
    )
    oauth_scopes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPES),
        description="Scopes requested at install.",
    )
    oauth_enabled_events: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENABLED_EVENTS),
        description="Notification events enabled on a new installation.",
    )
    state_secret: str | None = Field(
        default=None,
        repr=False,
        description="Key for signing OAuth state tokens.",
    )
    token_encryption_key: str | None = Field(
        default=None,
        repr=False,
        description="Key for encrypting stored access tokens.",
    )
    lookup_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on session and permission lookups (seconds).",
    )
    trust_session_header: bool = Field(
        default=False,
        description=(
            "Accept the signed-in user from session_header. Only safe behind an "
            "authenticating proxy that strips the header from client requests."
        ),
    )
    session_header: str = Field(
        default="X-User-Id",
        description="Header naming the signed-in user when trust_session_header is set.",
    )

    @property
    def oauth_enabled(self) -> bool:
        """Whether enough is configured to serve the install flow."""
        return bool(self.oauth_client_id and self.oauth_redirect_uri and self.state_secret)

    def oauth_config(self) -> OAuthConfig:
        """Build the install flow configuration.

        Raises:
            ValueError: If the client id or redirect URI is missing.
        """
        return OAuthConfig(
            client_id=self.oauth_client_id or "",
            client_secret=self.oauth_client_secret or "",
            redirect_uri=self.oauth_redirect_uri or "",
            authorize_url=self.oauth_authorize_url,
            token_url=self.oauth_token_url,
            scopes=tuple(self.oauth_scopes),
            enabled_events=tuple(self.oauth_enabled_events),
        )

    def to_display_dict(self) -> dict[str, Any]:
        """Export the configuration for display, with secrets masked."""
        result = self.model_dump()
        for name in ("signing_secret", "oauth_client_secret", "state_secret", "token_encryption_key"):
            result[name] = "***" if result.get(name) else None
        return result


_config: HookgateConfig | None = None


def get_config() -> HookgateConfig:
    """Get the global configuration instance.

    Returns a cached instance of HookgateConfig that reads from environment variables.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = HookgateConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
