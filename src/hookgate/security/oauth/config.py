"""OAuth install flow configuration.

Defines the fixed parameters of the external platform's authorization
redirect and the application paths the flow redirects users to.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_SCOPES: tuple[str, ...] = (
    "chat:write",
    "chat:write.public",
    "channels:read",
    "groups:read",
    "team:read",
)

DEFAULT_ENABLED_EVENTS: tuple[str, ...] = (
    "task.completed",
    "form.answered",
    "file.uploaded",
    "portal.first_visit",
    "space.status_changed",
)


@dataclass(frozen=True)
class OAuthConfig:
    """Configuration for the install flow.

    Scopes are fixed at construction and are not user-configurable per
    request. Paths are relative to the application's own origin.
    """

    client_id: str
    redirect_uri: str
    client_secret: str = field(default="", repr=False)
    authorize_url: str = "https://slack.com/oauth/v2/authorize"
    token_url: str = "https://slack.com/api/oauth.v2.access"
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    enabled_events: tuple[str, ...] = DEFAULT_ENABLED_EVENTS
    # Application paths
    login_path: str = "/login"
    onboarding_path: str = "/onboarding"
    settings_path: str = "/settings"
    integrations_tab: str = "integrations"

    def __post_init__(self):
        """Validate OAuth configuration."""
        if not self.client_id:
            raise ValueError("OAuthConfig requires a client_id")
        if not self.redirect_uri:
            raise ValueError("OAuthConfig requires a redirect_uri")
        if not self.scopes:
            raise ValueError("OAuthConfig requires at least one scope")
        # Lists from settings files become tuples so the config stays immutable
        object.__setattr__(self, "scopes", tuple(self.scopes))
        object.__setattr__(self, "enabled_events", tuple(self.enabled_events))

    @property
    def scope(self) -> str:
        """Scope parameter as sent to the authorize endpoint."""
        return ",".join(self.scopes)
