"""
Login service: Google OAuth 2.0 / OpenID Connect authorization code flow.
"""

import asyncio
import contextlib
import json
from typing import Any, Awaitable, Optional

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from shared.base_service import BaseService
from shared.config import LoginConfig
from .authorize.redirect_builder import RedirectBuilder
from .callback.orchestrator import CallbackOrchestrator, CallbackOutcome
from .jwks.client import KeySetCache, KeySetResolver
from .provider.token_client import TokenExchangeClient
from .provider.userinfo_client import ProfileFetcher
from .validation.token_validator import IdTokenVerifier


class LoginService(BaseService):
    """Login service implementation."""

    def __init__(
        self,
        config: Optional[LoginConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        key_cache: Optional[KeySetCache] = None,
    ):
        super().__init__("login", config)

        # One outbound client for all provider calls; each call sets its own timeout
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()

        self.key_cache = key_cache or KeySetCache()
        self.key_resolver = KeySetResolver(
            self.config.oauth_jwks_uri,
            self.key_cache,
            http_client=self.http_client,
            timeout=self.config.jwks_timeout_seconds,
            min_refetch_interval=self.config.jwks_min_refetch_interval,
            cache_max_age=self.config.jwks_cache_max_age,
            metrics=self.metrics,
        )
        self.verifier = IdTokenVerifier(
            self.key_resolver,
            allowed_algorithms=self.config.oauth_allowed_algorithms,
            clock_skew_seconds=self.config.clock_skew_seconds,
        )
        self.token_client = TokenExchangeClient(
            self.config.oauth_token_endpoint,
            http_client=self.http_client,
            timeout=self.config.token_timeout_seconds,
            body_format=self.config.oauth_token_body_format,
        )
        self.profile_fetcher = ProfileFetcher(
            self.config.oauth_userinfo_endpoint,
            http_client=self.http_client,
            timeout=self.config.userinfo_timeout_seconds,
        )
        self.orchestrator = CallbackOrchestrator(
            self.token_client,
            self.verifier,
            self.profile_fetcher,
            client_id=self.config.google_oauth_client_id,
            client_secret=self.config.client_secret,
            redirect_uri=self.config.redirect_uri,
            issuer=self.config.oauth_issuer,
            metrics=self.metrics,
        )
        self.redirect_builder = RedirectBuilder(self.config)

        self._setup_login_routes()

    def _setup_login_routes(self):
        """Set up login-specific routes."""

        @self.app.get("/", response_class=PlainTextResponse)
        async def root():
            """Root endpoint."""
            return "Hello from the login service!"

        @self.app.get("/auth")
        async def authorize():
            """Start the login by redirecting to the provider's authorization endpoint."""
            url = self.redirect_builder.build()
            self.logger.info("Redirecting to authorization endpoint", url=url)
            return RedirectResponse(url, status_code=302)

        @self.app.get("/callback")
        async def callback(request: Request, code: Optional[str] = None):
            """Handle the provider's redirect back with an authorization code."""
            self.logger.info("Callback received", has_code=bool(code))

            outcome = await self._run_until_disconnected(request, self.orchestrator.handle(code))
            if outcome is None:
                return Response(status_code=499)
            if not outcome.succeeded:
                raise outcome.error

            return self._json(request, outcome.profile)

    async def _run_until_disconnected(self, request: Request, pipeline: Awaitable[CallbackOutcome]) -> Optional[CallbackOutcome]:
        """Run ``pipeline``, cancelling it if the caller goes away first."""
        task = asyncio.ensure_future(pipeline)
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.config.disconnect_poll_interval)
                if done:
                    return task.result()
                if await request.is_disconnected():
                    self.logger.warning("Client disconnected, abandoning callback")
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
                    return None
        except asyncio.CancelledError:
            task.cancel()
            raise

    @staticmethod
    def _json(request: Request, payload: Any) -> Response:
        if "pretty" in request.query_params:
            return Response(
                content=json.dumps(payload, indent=2, ensure_ascii=False),
                media_type="application/json"
            )
        return JSONResponse(payload)

    async def on_startup(self):
        if self.config.jwks_warmup_on_startup:
            await self.key_resolver.warmup()

    async def on_shutdown(self):
        if self._owns_http_client:
            await self.http_client.aclose()

    async def _check_dependencies(self):
        """Check login dependencies."""
        return {"jwks": await self.key_resolver.check_health()}


def create_app(config: Optional[LoginConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
    """Create FastAPI application."""
    service = LoginService(config, http_client=http_client)
    return service.app


if __name__ == "__main__":
    service = LoginService()
    service.run()
