"""
Mock identity provider exposing Google-style OAuth 2.0 / OIDC endpoints.

Signs real RS256 ID tokens so the login service's verification path runs
end to end. Serve it with uvicorn for manual testing, or mount it behind
``httpx.ASGITransport`` in tests.
"""

import json
import secrets
import time
from typing import Any, Dict, Optional, Set
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from shared.logging import get_logger
from shared.test_helpers import TestKeyPair, TestUser, create_id_token_claims, create_test_user, generate_key_pair


class MockIdentityProvider:
    """Mock identity provider implementation."""

    def __init__(
        self,
        client_id: str = "test-client-id.apps.googleusercontent.com",
        client_secret: str = "test-client-secret",
        redirect_uri: str = "http://localhost:8787/callback",
        issuer: str = "https://accounts.google.com",
        port: int = 8081,
    ):
        self.port = port
        self.logger = get_logger("mock.idp")
        self.app = FastAPI(title="Mock Identity Provider", version="1.0.0")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.issuer = issuer

        self.signing_key: TestKeyPair = generate_key_pair("mock-key-1")
        self.user: TestUser = create_test_user()

        # Issued codes map to the subject they authenticate; removed on use
        self.codes: Dict[str, str] = {}
        self.access_tokens: Dict[str, str] = {}

        # Knobs for tests
        self.omit_token_fields: Set[str] = set()
        self.claim_overrides: Dict[str, Any] = {}
        self.token_status: int = 200
        self.userinfo_status: int = 200

        # Request counters
        self.token_requests = 0
        self.jwks_requests = 0
        self.userinfo_requests = 0

        self._setup_routes()

    def issue_code(self, subject: Optional[str] = None) -> str:
        """Mint a single-use authorization code."""
        code = f"4/{secrets.token_urlsafe(24)}"
        self.codes[code] = subject or self.user.user_id
        return code

    def rotate_keys(self, kid: str = "mock-key-2") -> TestKeyPair:
        """Replace the signing key; the old key disappears from the JWKS."""
        self.signing_key = generate_key_pair(kid)
        return self.signing_key

    def jwks(self) -> Dict[str, Any]:
        return {"keys": [self.signing_key.public_jwk]}

    def _setup_routes(self):
        """Set up mock provider routes."""

        @self.app.get("/o/oauth2/v2/auth")
        async def authorize(
            response_type: str = Query(...),
            client_id: str = Query(...),
            redirect_uri: str = Query(...),
            scope: str = Query(...),
        ):
            """Authorization endpoint; auto-approves and redirects back with a code."""
            if response_type != "code":
                raise HTTPException(status_code=400, detail="unsupported_response_type")
            if client_id != self.client_id or redirect_uri != self.redirect_uri:
                raise HTTPException(status_code=400, detail="invalid_client")
            if "openid" not in scope.split():
                raise HTTPException(status_code=400, detail="invalid_scope")

            code = self.issue_code()
            return RedirectResponse(f"{redirect_uri}?{urlencode({'code': code})}", status_code=302)

        @self.app.post("/oauth2/v4/token")
        async def token_endpoint(request: Request):
            """Token endpoint for the authorization code grant (form or JSON body)."""
            self.token_requests += 1
            params = await self._read_token_request(request)

            if self.token_status != 200:
                return JSONResponse(status_code=self.token_status, content={"error": "server_error"})
            if params.get("grant_type") != "authorization_code":
                return self._token_error("unsupported_grant_type")
            if params.get("client_id") != self.client_id or params.get("client_secret") != self.client_secret:
                return self._token_error("invalid_client", status_code=401)
            if params.get("redirect_uri") != self.redirect_uri:
                return self._token_error("redirect_uri_mismatch")

            subject = self.codes.pop(params.get("code", ""), None)
            if subject is None:
                return self._token_error("invalid_grant")

            return self._generate_token_response(subject)

        @self.app.get("/oauth2/v3/certs")
        async def jwks_endpoint():
            """JWKS endpoint."""
            self.jwks_requests += 1
            return self.jwks()

        @self.app.get("/oauth2/v3/userinfo")
        async def userinfo_endpoint(authorization: Optional[str] = Header(None)):
            """User info endpoint."""
            self.userinfo_requests += 1
            if self.userinfo_status != 200:
                raise HTTPException(status_code=self.userinfo_status, detail="userinfo unavailable")
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing bearer token")

            subject = self.access_tokens.get(authorization[7:])
            if subject != self.user.user_id:
                raise HTTPException(status_code=401, detail="Invalid token")
            return self.user.profile()

    async def _read_token_request(self, request: Request) -> Dict[str, str]:
        body = await request.body()
        if request.headers.get("content-type", "").startswith("application/json"):
            payload = json.loads(body or b"{}")
            return {key: str(value) for key, value in payload.items()}
        return dict(parse_qsl(body.decode()))

    def _token_error(self, error: str, status_code: int = 400) -> JSONResponse:
        self.logger.warning("Mock token request rejected", error=error)
        return JSONResponse(status_code=status_code, content={"error": error})

    def _generate_token_response(self, subject: str) -> Dict[str, Any]:
        access_token = f"ya29.{secrets.token_urlsafe(32)}"
        self.access_tokens[access_token] = subject

        claims = create_id_token_claims(
            issuer=self.issuer,
            audience=self.client_id,
            subject=subject,
            email=self.user.email,
            name=self.user.name,
            at_hash=secrets.token_urlsafe(16),
        )
        claims.update(self.claim_overrides)

        response = {
            "access_token": access_token,
            "expires_in": 3599,
            "scope": "openid https://www.googleapis.com/auth/userinfo.email https://www.googleapis.com/auth/userinfo.profile",
            "token_type": "Bearer",
            "id_token": self.signing_key.sign(claims),
            "issued_at": int(time.time()),
        }
        for name in self.omit_token_fields:
            response.pop(name, None)
        return response


def create_app() -> FastAPI:
    return MockIdentityProvider().app


if __name__ == "__main__":
    import uvicorn

    provider = MockIdentityProvider()
    uvicorn.run(provider.app, host="0.0.0.0", port=provider.port)
