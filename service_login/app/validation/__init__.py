"""
Token validation package.

Verifies ID tokens returned by the identity provider's token endpoint:

- Reject any header algorithm outside the configured asymmetric allow-list.
- Resolve the signing key by kid through the JWKS resolver.
- Verify the signature before trusting any claim.
- Validate issuer, audience, expiry and issued-at, naming the failing claim.
"""

from .token_validator import IdTokenVerifier

__all__ = ["IdTokenVerifier"]
