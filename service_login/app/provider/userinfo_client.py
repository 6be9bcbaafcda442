"""
User-info endpoint client.
"""

from typing import Optional

import httpx

from shared.errors import ProfileFetchFailedError
from shared.logging import get_logger
from ..models import UserProfile


class ProfileFetcher:
    """Fetches the authenticated user's profile with the access token."""

    def __init__(
        self,
        userinfo_endpoint: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.userinfo_endpoint = userinfo_endpoint
        self.timeout = timeout
        self.logger = get_logger("login.userinfo_client")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, access_token: str) -> UserProfile:
        """Return the user-info payload exactly as the provider sent it."""
        try:
            response = await self._client.get(
                self.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            self.logger.error("User-info endpoint unreachable", error=str(e), error_type=type(e).__name__)
            raise ProfileFetchFailedError(details={"reason": type(e).__name__}) from e

        if not response.is_success:
            self.logger.warning("User-info request rejected", status_code=response.status_code)
            raise ProfileFetchFailedError(details={"status_code": response.status_code})

        try:
            profile = response.json()
        except ValueError as e:
            raise ProfileFetchFailedError(details={"reason": "invalid_json"}) from e
        if not isinstance(profile, dict):
            raise ProfileFetchFailedError(details={"reason": "invalid_json"})

        return profile
