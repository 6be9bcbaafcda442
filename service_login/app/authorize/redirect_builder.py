"""
Authorization redirect URL construction.
"""

from typing import Iterable
from urllib.parse import quote, urlencode

from shared.config import DEFAULT_SCOPES, GOOGLE_OAUTH_ENDPOINT, LoginConfig
from shared.logging import get_logger
from ..models import AuthorizationRequest


def build_authorization_request(client_id: str, base_url: str, scopes: Iterable[str] = DEFAULT_SCOPES) -> AuthorizationRequest:
    return AuthorizationRequest(
        client_id=client_id,
        redirect_uri=f"{base_url.rstrip('/')}/callback",
        scopes=list(scopes),
    )


def build_authorization_url(
    client_id: str,
    base_url: str,
    scopes: Iterable[str] = DEFAULT_SCOPES,
    authorization_endpoint: str = GOOGLE_OAUTH_ENDPOINT,
) -> str:
    """Return the authorization endpoint URL for a ``response_type=code`` request.

    Pure function of its arguments: parameter order is fixed and every value
    is percent-encoded (spaces as ``%20``), so repeated calls are byte-identical.
    """
    request = build_authorization_request(client_id, base_url, scopes)
    query = urlencode(request.to_query_params(), quote_via=quote, safe="")
    return f"{authorization_endpoint}?{query}"


class RedirectBuilder:
    """Builds the login redirect from service configuration."""

    def __init__(self, config: LoginConfig):
        self.config = config
        self.logger = get_logger("login.redirect")
        self._state_warning_logged = False

    def authorization_request(self) -> AuthorizationRequest:
        return build_authorization_request(
            self.config.google_oauth_client_id,
            self.config.base_url,
            self.config.oauth_scopes,
        )

    def build(self) -> str:
        if not self._state_warning_logged:
            # No CSRF state/nonce is generated or checked on callback
            self.logger.warning("Authorization request carries no state parameter")
            self._state_warning_logged = True

        return build_authorization_url(
            self.config.google_oauth_client_id,
            self.config.base_url,
            self.config.oauth_scopes,
            self.config.oauth_authorization_endpoint,
        )
