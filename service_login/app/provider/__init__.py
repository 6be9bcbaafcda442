"""
Identity provider endpoint clients.

- token_client: authorization-code exchange at the token endpoint
- userinfo_client: profile retrieval at the user-info endpoint

Both take a shared ``httpx.AsyncClient`` and apply a per-call timeout.
"""

from .token_client import TokenExchangeClient
from .userinfo_client import ProfileFetcher

__all__ = ["TokenExchangeClient", "ProfileFetcher"]
