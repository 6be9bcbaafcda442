"""
Token endpoint client: authorization-code exchange.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import MissingIdTokenError, TokenExchangeFailedError
from shared.logging import get_logger
from ..models import TokenResponse


class TokenExchangeClient:
    """Exchanges a single-use authorization code for tokens.

    Never retries: the provider consumes the code on first use, so a second
    attempt with the same code can only fail.
    """

    def __init__(
        self,
        token_endpoint: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        body_format: str = "form",
    ):
        if body_format not in ("form", "json"):
            raise ValueError(f"Unsupported token request body format: {body_format}")

        self.token_endpoint = token_endpoint
        self.timeout = timeout
        self.body_format = body_format
        self.logger = get_logger("login.token_client")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def exchange(self, code: str, client_id: str, client_secret: str, redirect_uri: str) -> TokenResponse:
        """Exchange ``code`` at the token endpoint."""
        body = {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        encoded: Dict[str, Any] = {"json": body} if self.body_format == "json" else {"data": body}

        try:
            response = await self._client.post(self.token_endpoint, timeout=self.timeout, **encoded)
        except httpx.HTTPError as e:
            self.logger.error("Token endpoint unreachable", error=str(e), error_type=type(e).__name__)
            raise TokenExchangeFailedError(details={"reason": type(e).__name__}) from e

        if not response.is_success:
            self.logger.warning(
                "Token endpoint rejected authorization code",
                status_code=response.status_code,
                provider_error=self._provider_error(response)
            )
            raise TokenExchangeFailedError(details={"status_code": response.status_code})

        try:
            data = response.json()
        except ValueError as e:
            raise TokenExchangeFailedError(details={"reason": "invalid_json"}) from e
        if not isinstance(data, dict):
            raise TokenExchangeFailedError(details={"reason": "invalid_json"})

        # Field names only; token values never reach the log
        self.logger.info("Token response received", status_code=response.status_code, fields=sorted(data))

        if not isinstance(data.get("id_token"), str) or not data["id_token"]:
            raise MissingIdTokenError()

        try:
            return TokenResponse.model_validate(data)
        except ValueError as e:
            raise TokenExchangeFailedError(details={"reason": "invalid_fields"}) from e

    @staticmethod
    def _provider_error(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return payload["error"]
        return None
