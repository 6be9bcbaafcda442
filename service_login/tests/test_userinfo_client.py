"""
Unit tests for ProfileFetcher.
"""

import httpx
import pytest

from service_login.app.provider.userinfo_client import ProfileFetcher
from shared.errors import ProfileFetchFailedError
from shared.test_helpers import create_test_user

USERINFO_URL = "http://idp.test/oauth2/v3/userinfo"


def make_fetcher(handler) -> ProfileFetcher:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProfileFetcher(USERINFO_URL, http_client=http_client)


class TestProfileFetcher:
    """Test cases for ProfileFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_returns_payload_unchanged(self):
        """The profile is passed through exactly as the provider sent it."""
        profile = dict(create_test_user().profile(), locale="en", hd="example.com")
        seen = {}

        def handler(request):
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, json=profile)

        result = await make_fetcher(handler).fetch("ya29.access")

        assert result == profile
        assert seen["authorization"] == "Bearer ya29.access"

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        fetcher = make_fetcher(lambda request: httpx.Response(401, json={"error": "invalid_token"}))

        with pytest.raises(ProfileFetchFailedError) as exc_info:
            await fetcher.fetch("expired")

        assert exc_info.value.code == "ProfileFetchFailed"
        assert exc_info.value.details == {"status_code": 401}

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProfileFetchFailedError) as exc_info:
            await make_fetcher(handler).fetch("ya29.access")

        assert exc_info.value.details == {"reason": "ConnectError"}

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=["not", "a", "profile"]))

        with pytest.raises(ProfileFetchFailedError) as exc_info:
            await fetcher.fetch("ya29.access")

        assert exc_info.value.details == {"reason": "invalid_json"}

    @pytest.mark.asyncio
    async def test_configured_timeout_reaches_request(self):
        """The profile request carries the configured finite timeout."""
        seen = {}

        def handler(request):
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200, json=create_test_user().profile())

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        await ProfileFetcher(USERINFO_URL, http_client=http_client, timeout=4.0).fetch("ya29.access")

        assert seen["timeout"]["connect"] == 4.0
        assert seen["timeout"]["read"] == 4.0

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts surface as ProfileFetchFailed."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProfileFetchFailedError) as exc_info:
            await make_fetcher(handler).fetch("ya29.access")

        assert exc_info.value.details == {"reason": "ReadTimeout"}
