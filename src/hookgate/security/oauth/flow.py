"""Authorization flow for installing the platform integration.

This module provides the AuthorizationFlowController that handles:
- Deciding whether the signed-in user may start an install
- Issuing a signed state token bound to their organization
- Building the platform authorization redirect
- Handling the callback: state validation, code exchange, storage

Security features:
- Only organization owners and admins can install
- State is HMAC signed, so organization/user ids cannot be forged
- State expires after 10 minutes
- Callback requires the same signed-in user that started the flow
- Role is re-checked at callback time
- Access tokens are encrypted before storage
- Error redirects carry fixed codes, never provider or exception text
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar
from urllib.parse import urlencode

import structlog
from aiohttp import web

from hookgate.observability.metrics import AUTHORIZE_DECISIONS
from hookgate.security.encryption import TokenCipher
from hookgate.security.oauth.collaborators import (
    Identity,
    IntegrationStore,
    Installation,
    PermissionStore,
    Role,
    SessionStore,
    TokenExchanger,
)
from hookgate.security.oauth.config import OAuthConfig
from hookgate.security.oauth.state import DecodeStatus, StateTokenCodec

logger = structlog.get_logger()

T = TypeVar("T")

INSTALLER_ROLES = frozenset({Role.OWNER, Role.ADMIN})

DEFAULT_LOOKUP_TIMEOUT = 10.0


class LookupTimeoutError(TimeoutError):
    """Raised when a collaborator lookup exceeds its time bound."""


class FlowOutcome(Enum):
    """Decision reached by one leg of the flow."""

    # Start leg
    REDIRECT_TO_LOGIN = "redirect_to_login"
    REDIRECT_TO_ONBOARDING = "redirect_to_onboarding"
    REDIRECT_WITH_ERROR = "redirect_with_error"
    REDIRECT_TO_AUTHORIZE = "redirect_to_authorize"
    # Callback leg
    INSTALLED = "installed"
    CANCELLED = "cancelled"
    INVALID_REQUEST = "invalid_request"
    INVALID_STATE = "invalid_state"
    FAILED = "failed"


@dataclass(frozen=True)
class FlowDecision:
    """Where to send the browser, and why.

    ``state`` is set only when a state token was issued.
    """

    outcome: FlowOutcome
    redirect_url: str
    state: str | None = None


class AuthorizationFlowController:
    """Drives both legs of the install flow.

    Holds only immutable configuration; safe for concurrent requests.
    """

    def __init__(
        self,
        config: OAuthConfig,
        codec: StateTokenCodec,
        sessions: SessionStore,
        permissions: PermissionStore,
        exchanger: TokenExchanger | None = None,
        integrations: IntegrationStore | None = None,
        cipher: TokenCipher | None = None,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
    ):
        """Initialize the controller.

        Args:
            config: Fixed client id, scopes, endpoints and application paths
            codec: Signs and verifies state tokens
            sessions: Resolves the signed-in user
            permissions: Resolves organization membership and role
            exchanger: Exchanges authorization codes (callback leg)
            integrations: Persists installations (callback leg)
            cipher: Encrypts access tokens before storage (callback leg)
            lookup_timeout: Time bound for each collaborator call in seconds
        """
        self._config = config
        self._codec = codec
        self._sessions = sessions
        self._permissions = permissions
        self._exchanger = exchanger
        self._integrations = integrations
        self._cipher = cipher
        self._lookup_timeout = lookup_timeout

    async def _bounded(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, self._lookup_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Collaborator lookup timed out", lookup=what, timeout=self._lookup_timeout)
            raise LookupTimeoutError(f"{what} lookup timed out") from e

    def _settings_url(self, **params: str) -> str:
        return f"{self._config.settings_path}?{urlencode(params)}"

    def _callback_redirect(self, **params: str) -> str:
        return self._settings_url(tab=self._config.integrations_tab, **params)

    def build_authorize_url(self, state: str) -> str:
        """Build the platform authorization URL for a state token."""
        params = {
            "client_id": self._config.client_id,
            "scope": self._config.scope,
            "redirect_uri": self._config.redirect_uri,
            "state": state,
        }
        return f"{self._config.authorize_url}?{urlencode(params)}"

    def _decide(self, leg: str, decision: FlowDecision) -> FlowDecision:
        AUTHORIZE_DECISIONS.labels(leg=leg, outcome=decision.outcome.value).inc()
        return decision

    async def start(self, request: web.Request) -> FlowDecision:
        """Decide how to answer a request to start an install.

        Raises:
            LookupTimeoutError: If a collaborator lookup exceeds its bound.
        """
        identity = await self._bounded(self._sessions.get_current_user(request), "session")
        if identity is None:
            return self._decide(
                "start",
                FlowDecision(FlowOutcome.REDIRECT_TO_LOGIN, self._config.login_path),
            )

        membership = await self._bounded(
            self._permissions.get_membership(identity.user_id), "membership"
        )
        if membership is None:
            logger.info("Install attempted without organization", user=identity.user_id)
            return self._decide(
                "start",
                FlowDecision(FlowOutcome.REDIRECT_TO_ONBOARDING, self._config.onboarding_path),
            )

        if membership.role not in INSTALLER_ROLES:
            logger.warning(
                "Install attempted without admin role",
                user=identity.user_id,
                organization=membership.organization_id,
                role=membership.role.value,
            )
            return self._decide(
                "start",
                FlowDecision(
                    FlowOutcome.REDIRECT_WITH_ERROR,
                    self._settings_url(error="unauthorized"),
                ),
            )

        _, state = self._codec.issue(membership.organization_id, identity.user_id)
        logger.info(
            "Starting install flow",
            user=identity.user_id,
            organization=membership.organization_id,
        )
        return self._decide(
            "start",
            FlowDecision(
                FlowOutcome.REDIRECT_TO_AUTHORIZE,
                self.build_authorize_url(state),
                state=state,
            ),
        )

    async def complete(
        self,
        request: web.Request,
        query: Mapping[str, str],
    ) -> FlowDecision:
        """Handle the platform's redirect back after authorization.

        This method:
        1. Handles user cancellation and malformed callbacks
        2. Verifies the signed state token (signature and age)
        3. Requires the signed-in user to be the one who started the flow
        4. Re-checks that the user may still install for the organization
        5. Exchanges the code and stores the encrypted access token

        Raises:
            LookupTimeoutError: If a session or permission lookup exceeds its bound.
        """
        error = query.get("error")
        code = query.get("code")
        state = query.get("state")

        if error == "access_denied":
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.CANCELLED, self._callback_redirect(error="cancelled")),
            )

        if error:
            logger.warning("Platform returned authorization error", error=error[:64])

        if not code or not state:
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.INVALID_REQUEST, self._callback_redirect(error="invalid")),
            )

        decoded = self._codec.decode(state)
        if not decoded.valid or decoded.context is None:
            logger.warning("Rejected install state", status=decoded.status.value, reason=decoded.error)
            tag = "expired" if decoded.status is DecodeStatus.EXPIRED_TOKEN else "invalid_state"
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.INVALID_STATE, self._callback_redirect(error=tag)),
            )
        context = decoded.context

        identity: Identity | None = await self._bounded(
            self._sessions.get_current_user(request), "session"
        )
        if identity is None or identity.user_id != context.user_id:
            logger.warning(
                "Install callback from a different session",
                expected_user=context.user_id,
                signed_in=identity is not None,
            )
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.REDIRECT_TO_LOGIN, self._config.login_path),
            )

        role = await self._bounded(
            self._permissions.get_role(context.user_id, context.organization_id), "role"
        )
        if role not in INSTALLER_ROLES:
            logger.warning(
                "Installer lost admin role during flow",
                user=context.user_id,
                organization=context.organization_id,
            )
            return self._decide(
                "callback",
                FlowDecision(
                    FlowOutcome.REDIRECT_WITH_ERROR,
                    self._callback_redirect(error="unauthorized"),
                ),
            )

        if self._exchanger is None or self._integrations is None or self._cipher is None:
            logger.error("Install callback reached without exchange or storage configured")
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.FAILED, self._callback_redirect(error="failed")),
            )

        try:
            grant = await self._exchanger.exchange(code)
            installation = Installation(
                organization_id=context.organization_id,
                installed_by_user_id=context.user_id,
                team_id=grant.team_id,
                team_name=grant.team_name,
                bot_user_id=grant.bot_user_id,
                scope=grant.scope,
                encrypted_access_token=self._cipher.encrypt(grant.access_token),
                enabled_events=list(self._config.enabled_events),
            )
            await self._integrations.save_installation(installation)
        except Exception as e:
            # Exception text may carry provider responses; log the type only
            logger.error(
                "Install callback error",
                error_type=type(e).__name__,
                organization=context.organization_id,
            )
            return self._decide(
                "callback",
                FlowDecision(FlowOutcome.FAILED, self._callback_redirect(error="failed")),
            )

        logger.info(
            "Integration installed",
            organization=context.organization_id,
            team=grant.team_id,
            user=context.user_id,
        )
        return self._decide(
            "callback",
            FlowDecision(FlowOutcome.INSTALLED, self._callback_redirect(success="connected")),
        )
