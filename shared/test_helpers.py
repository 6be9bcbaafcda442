"""
Test helper functions and factory methods for the OIDC login service.
"""

import base64
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm


@dataclass
class TestUser:
    """Test user data."""
    __test__ = False

    user_id: str
    email: str
    name: str
    given_name: str = ""
    family_name: str = ""
    picture: str = ""
    email_verified: bool = True

    def profile(self) -> Dict[str, Any]:
        """User-info payload in Google's v3 shape."""
        return {
            "sub": self.user_id,
            "name": self.name,
            "given_name": self.given_name,
            "family_name": self.family_name,
            "picture": self.picture,
            "email": self.email,
            "email_verified": self.email_verified,
        }


@dataclass
class TestKeyPair:
    """RSA signing key with its public JWK."""
    __test__ = False

    kid: str
    private_key: rsa.RSAPrivateKey
    algorithm: str = "RS256"
    public_jwk: Dict[str, Any] = field(default_factory=dict)

    def sign(self, claims: Dict[str, Any], headers: Optional[Dict[str, Any]] = None) -> str:
        """Sign ``claims`` as a compact JWS carrying this key's kid."""
        return jwt.encode(
            claims,
            self.private_key,
            algorithm=self.algorithm,
            headers={"kid": self.kid, **(headers or {})},
        )


def generate_key_pair(kid: Optional[str] = None, algorithm: str = "RS256") -> TestKeyPair:
    """Generate a fresh 2048-bit RSA key pair."""
    kid = kid or f"test-key-{uuid.uuid4().hex[:8]}"
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    public_jwk.update({"kid": kid, "alg": algorithm, "use": "sig"})
    return TestKeyPair(kid=kid, private_key=private_key, algorithm=algorithm, public_jwk=public_jwk)


def jwks_document(*key_pairs: TestKeyPair) -> Dict[str, List[Dict[str, Any]]]:
    return {"keys": [pair.public_jwk for pair in key_pairs]}


def create_id_token_claims(
    issuer: str = "https://accounts.google.com",
    audience: Any = "test-client-id.apps.googleusercontent.com",
    subject: str = "110169484474386276334",
    expires_in: int = 3600,
    issued_at: Optional[float] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Claims of a Google-style ID token."""
    now = int(issued_at if issued_at is not None else time.time())
    claims = {
        "iss": issuer,
        "azp": audience if isinstance(audience, str) else audience[0],
        "aud": audience,
        "sub": subject,
        "email": "john.doe@example.com",
        "email_verified": True,
        "iat": now,
        "exp": now + expires_in,
    }
    claims.update(extra)
    return claims


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def create_unsigned_token(claims: Dict[str, Any], headers: Dict[str, Any]) -> str:
    """Build a compact token with arbitrary header and an empty signature."""
    header_segment = _b64url(json.dumps(headers).encode())
    payload_segment = _b64url(json.dumps(claims).encode())
    return f"{header_segment}.{payload_segment}."


def create_test_user(user_id: str = "110169484474386276334") -> TestUser:
    return TestUser(
        user_id=user_id,
        email="john.doe@example.com",
        name="John Doe",
        given_name="John",
        family_name="Doe",
        picture="https://lh3.googleusercontent.com/a/default-user",
    )
