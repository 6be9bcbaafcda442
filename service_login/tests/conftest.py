"""
Shared fixtures for login service tests.
"""

import httpx
import pytest

from mocks.identity_provider.server import MockIdentityProvider
from shared.config import LoginConfig
from shared.test_helpers import generate_key_pair

CLIENT_ID = "test-client-id.apps.googleusercontent.com"
CLIENT_SECRET = "test-client-secret"
BASE_URL = "http://localhost:8787"
ISSUER = "https://accounts.google.com"
IDP_URL = "http://idp.test"
JWKS_URL = f"{IDP_URL}/oauth2/v3/certs"


@pytest.fixture(scope="session")
def key_pair():
    """RSA key published in the test key set."""
    return generate_key_pair("test-key-1")


@pytest.fixture(scope="session")
def foreign_key_pair():
    """RSA key that no key set ever publishes."""
    return generate_key_pair("test-key-1")


@pytest.fixture
def login_config():
    """Configuration pointing every provider endpoint at the mock IdP."""
    return LoginConfig(
        base_url=BASE_URL,
        google_oauth_client_id=CLIENT_ID,
        google_oauth_client_secret=CLIENT_SECRET,
        oauth_issuer=ISSUER,
        oauth_authorization_endpoint=f"{IDP_URL}/o/oauth2/v2/auth",
        oauth_token_endpoint=f"{IDP_URL}/oauth2/v4/token",
        oauth_userinfo_endpoint=f"{IDP_URL}/oauth2/v3/userinfo",
        oauth_jwks_uri=JWKS_URL,
        jwks_warmup_on_startup=False,
    )


@pytest.fixture
def mock_idp():
    """In-process identity provider."""
    return MockIdentityProvider(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=f"{BASE_URL}/callback",
        issuer=ISSUER,
    )


@pytest.fixture
def idp_http_client(mock_idp):
    """httpx client routed to the mock IdP app."""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=mock_idp.app))
