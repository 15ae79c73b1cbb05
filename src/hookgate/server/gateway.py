"""HTTP transport for the verification layer.

Routes:
    POST /interactions          signed interactive component payloads
    POST /events                signed Events API payloads
    GET  /authorize/start       begin an integration install
    GET  /authorize/callback    platform redirect back after authorization
    GET  /health                liveness
    GET  /metrics               Prometheus exposition
"""

from __future__ import annotations

import structlog
from aiohttp import web

from hookgate.core.config import HookgateConfig
from hookgate.observability.metrics import generate_metrics, get_content_type
from hookgate.security.encryption import TokenCipher
from hookgate.security.oauth.collaborators import (
    HeaderSessionStore,
    InMemoryIntegrationStore,
    IntegrationStore,
    PermissionStore,
    SessionStore,
    TokenExchanger,
)
from hookgate.security.oauth.exchange import PlatformTokenExchanger
from hookgate.security.oauth.flow import (
    AuthorizationFlowController,
    FlowDecision,
    LookupTimeoutError,
)
from hookgate.security.oauth.state import StateTokenCodec
from hookgate.webhooks.dispatcher import InteractionDispatcher
from hookgate.webhooks.events import (
    EventRegistry,
    parse_event_callback,
    parse_interaction,
    url_verification,
)
from hookgate.webhooks.verifier import SignatureVerifier

logger = structlog.get_logger()


class GatewayServer:
    """Serves the webhook endpoints and the install flow."""

    def __init__(
        self,
        config: HookgateConfig,
        interactions: EventRegistry | None = None,
        events: EventRegistry | None = None,
        sessions: SessionStore | None = None,
        permissions: PermissionStore | None = None,
        integrations: IntegrationStore | None = None,
        exchanger: TokenExchanger | None = None,
    ):
        """Initialize the server.

        Args:
            config: Server configuration; the signing secret is required.
            interactions: Handlers for POST /interactions by payload type.
            events: Handlers for POST /events by inner event type.
            sessions: Resolves the signed-in user for the install flow. Without one
                the flow is disabled unless trust_session_header is set.
            permissions: Resolves organization role for the install flow.
            integrations: Stores completed installations.
            exchanger: Exchanges authorization codes, defaults to the platform endpoint.

        Raises:
            ValueError: If the signing secret is not configured.
        """
        if not config.signing_secret:
            raise ValueError("signing_secret is required (set HOOKGATE_SIGNING_SECRET)")

        self.config = config
        self._runner: web.AppRunner | None = None

        verifier = SignatureVerifier(
            secret=config.signing_secret,
            timestamp_header=config.timestamp_header,
            signature_header=config.signature_header,
        )

        events = events.copy() if events is not None else EventRegistry()
        if "url_verification" not in events:
            events.register("url_verification", url_verification)

        self.interactions = InteractionDispatcher(
            verifier=verifier,
            registry=interactions if interactions is not None else EventRegistry(),
            parser=parse_interaction,
            handler_timeout=config.handler_timeout,
            endpoint="interactions",
        )
        self.events = InteractionDispatcher(
            verifier=verifier,
            registry=events,
            parser=parse_event_callback,
            handler_timeout=config.handler_timeout,
            endpoint="events",
        )

        if sessions is None and config.trust_session_header and config.oauth_enabled:
            logger.warning(
                "Trusting client-supplied session header, run only behind an authenticating proxy",
                header=config.session_header,
            )
            sessions = HeaderSessionStore(config.session_header)

        self.flow: AuthorizationFlowController | None = None
        if config.oauth_enabled and sessions is None:
            logger.warning("OAuth configured but no session store provided")
        elif config.oauth_enabled and permissions is not None:
            oauth_config = config.oauth_config()
            if exchanger is None and oauth_config.client_secret:
                exchanger = PlatformTokenExchanger(oauth_config, timeout=config.lookup_timeout)
            cipher = (
                TokenCipher(config.token_encryption_key) if config.token_encryption_key else None
            )
            self.flow = AuthorizationFlowController(
                config=oauth_config,
                codec=StateTokenCodec(secret=config.state_secret or ""),
                sessions=sessions,
                permissions=permissions,
                exchanger=exchanger,
                integrations=integrations or InMemoryIntegrationStore(),
                cipher=cipher,
                lookup_timeout=config.lookup_timeout,
            )
        elif config.oauth_enabled:
            logger.warning("OAuth configured but no permission store provided")

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        app = web.Application()
        app.router.add_post("/interactions", self._handle_interactions)
        app.router.add_post("/events", self._handle_events)
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/metrics", self._handle_metrics)
        if self.flow is not None:
            app.router.add_get("/authorize/start", self._handle_authorize_start)
            app.router.add_get("/authorize/callback", self._handle_authorize_callback)
        else:
            logger.info("Install flow disabled (OAuth settings, session store or permission store missing)")
        return app

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()
        logger.info(
            "Gateway started",
            host=self.config.host,
            port=self.config.port,
            install_flow=self.flow is not None,
        )

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Gateway stopped")

    async def _handle_interactions(self, request: web.Request) -> web.Response:
        # Verification must see the body exactly as sent
        body = await request.read()
        response = await self.interactions.dispatch(body, request.headers)
        return web.json_response(response.body, status=response.status)

    async def _handle_events(self, request: web.Request) -> web.Response:
        body = await request.read()
        response = await self.events.dispatch(body, request.headers)
        return web.json_response(response.body, status=response.status)

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=generate_metrics(),
            headers={"Content-Type": get_content_type()},
        )

    def _redirect(self, decision: FlowDecision) -> web.HTTPFound:
        return web.HTTPFound(decision.redirect_url)

    async def _handle_authorize_start(self, request: web.Request) -> web.Response:
        assert self.flow is not None
        try:
            decision = await self.flow.start(request)
        except LookupTimeoutError:
            return web.json_response({"error": "Upstream lookup timed out"}, status=504)
        raise self._redirect(decision)

    async def _handle_authorize_callback(self, request: web.Request) -> web.Response:
        assert self.flow is not None
        try:
            decision = await self.flow.complete(request, request.query)
        except LookupTimeoutError:
            return web.json_response({"error": "Upstream lookup timed out"}, status=504)
        raise self._redirect(decision)
