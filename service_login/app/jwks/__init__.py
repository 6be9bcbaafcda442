"""
JWKS client package.

Contains logic for retrieving and caching the identity provider's JSON Web
Key Set (JWKS) used to verify ID token signatures.

Key points:
- The cached set is replaced as a unit, never merged key by key.
- A miss on an unknown kid triggers one coalesced refetch, bounded by a
  minimum refetch interval so fabricated kids cannot hammer the IdP.
- Fetches use finite timeouts and sit behind a circuit breaker.
"""

from .client import KeySetCache, KeySetResolver

__all__ = ["KeySetCache", "KeySetResolver"]
