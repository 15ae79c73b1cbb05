"""OAuth install flow for the platform integration.

Core Philosophy: the redirect round trip carries its own signed context,
so nothing is stored server-side between the start and callback legs.

Example usage:

    from hookgate.security.oauth import (
        AuthorizationFlowController,
        InMemoryPermissionStore,
        OAuthConfig,
        StateTokenCodec,
    )

    controller = AuthorizationFlowController(
        config=OAuthConfig(
            client_id="...",
            redirect_uri="https://app.example.com/authorize/callback",
        ),
        codec=StateTokenCodec(secret=b"state-secret"),
        sessions=session_store,
        permissions=InMemoryPermissionStore(),
    )

    decision = await controller.start(request)
    raise web.HTTPFound(decision.redirect_url)
"""

from hookgate.security.oauth.collaborators import (
    HeaderSessionStore,
    Identity,
    InMemoryIntegrationStore,
    InMemoryPermissionStore,
    InstallGrant,
    Installation,
    IntegrationStore,
    Membership,
    PermissionStore,
    Role,
    SessionStore,
    TokenExchanger,
)
from hookgate.security.oauth.config import (
    DEFAULT_ENABLED_EVENTS,
    DEFAULT_SCOPES,
    OAuthConfig,
)
from hookgate.security.oauth.exchange import (
    PlatformTokenExchanger,
    TokenExchangeError,
)
from hookgate.security.oauth.flow import (
    INSTALLER_ROLES,
    AuthorizationFlowController,
    FlowDecision,
    FlowOutcome,
    LookupTimeoutError,
)
from hookgate.security.oauth.state import (
    STATE_TTL_SECONDS,
    AuthorizationContext,
    DecodeResult,
    DecodeStatus,
    StateTokenCodec,
)

__all__ = [
    # Flow
    "AuthorizationFlowController",
    "FlowDecision",
    "FlowOutcome",
    "INSTALLER_ROLES",
    "LookupTimeoutError",
    # Config
    "OAuthConfig",
    "DEFAULT_SCOPES",
    "DEFAULT_ENABLED_EVENTS",
    # State
    "AuthorizationContext",
    "DecodeResult",
    "DecodeStatus",
    "StateTokenCodec",
    "STATE_TTL_SECONDS",
    # Exchange
    "PlatformTokenExchanger",
    "TokenExchangeError",
    # Collaborators
    "Identity",
    "Membership",
    "Role",
    "InstallGrant",
    "Installation",
    "SessionStore",
    "PermissionStore",
    "TokenExchanger",
    "IntegrationStore",
    "HeaderSessionStore",
    "InMemoryPermissionStore",
    "InMemoryIntegrationStore",
]
