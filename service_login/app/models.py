"""
Typed payloads exchanged with the identity provider.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict


class AuthorizationRequest(BaseModel):
    """Parameters of the initial authorization redirect."""

    response_type: str = "code"
    client_id: str
    redirect_uri: str
    scopes: List[str]

    def to_query_params(self) -> List[tuple]:
        return [
            ("response_type", self.response_type),
            ("client_id", self.client_id),
            ("redirect_uri", self.redirect_uri),
            ("scope", " ".join(self.scopes)),
        ]


class TokenResponse(BaseModel):
    """Token endpoint response. Only the fields the callback interprets are typed.

    Provider-defined fields (token_type, expires_in, scope, ...) ride along
    untyped as extras.
    """

    model_config = ConfigDict(extra="allow")

    id_token: str
    access_token: Optional[str] = None

    def __repr_args__(self):
        # Token values stay out of reprs and log lines
        for name, value in super().__repr_args__():
            if name in ("id_token", "access_token", "refresh_token") and value:
                yield name, "***"
            else:
                yield name, value


class SigningKey(BaseModel):
    """One verification key from the provider's JWKS."""

    model_config = ConfigDict(frozen=True)

    key_id: str
    key_type: str
    algorithm: Optional[str] = None
    use: Optional[str] = None
    jwk: Dict[str, Any]

    @classmethod
    def from_jwk(cls, data: Mapping[str, Any]) -> "SigningKey":
        return cls(
            key_id=data["kid"],
            key_type=data.get("kty", ""),
            algorithm=data.get("alg"),
            use=data.get("use"),
            jwk=dict(data),
        )


@dataclass(frozen=True)
class KeySetSnapshot:
    """Immutable view of one fetched key set."""

    keys: Mapping[str, SigningKey] = field(default_factory=lambda: MappingProxyType({}))
    fetched_at: Optional[float] = None
    generation: int = 0

    def get(self, key_id: str) -> Optional[SigningKey]:
        return self.keys.get(key_id)

    def __len__(self) -> int:
        return len(self.keys)


class VerifiedClaims(BaseModel):
    """Claims of an ID token whose signature and policy checks passed."""

    model_config = ConfigDict(extra="allow")

    iss: str
    aud: Union[str, List[str]]
    sub: str
    exp: float
    iat: Optional[float] = None

    @property
    def audiences(self) -> List[str]:
        return [self.aud] if isinstance(self.aud, str) else list(self.aud)


UserProfile = Dict[str, Any]
