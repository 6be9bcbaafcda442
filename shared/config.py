"""
Shared configuration management for the OIDC login service.
"""

from typing import Any, List

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


GOOGLE_OAUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_ENDPOINT = "https://www.googleapis.com/oauth2/v4/token"
GOOGLE_USERINFO_ENDPOINT = "https://www.googleapis.com/oauth2/v3/userinfo"
GOOGLE_OAUTH_JWKS_URI = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUER = "https://accounts.google.com"

DEFAULT_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    host: str = "0.0.0.0"
    port: int = 8787

    # Client registration
    base_url: str = Field(default="http://localhost:8787")
    google_oauth_client_id: str = Field(default="")
    google_oauth_client_secret: SecretStr = Field(default=SecretStr(""))


class LoginConfig(BaseConfig):
    """Identity provider endpoints and verification policy."""

    oauth_issuer: str = GOOGLE_ISSUER
    oauth_authorization_endpoint: str = GOOGLE_OAUTH_ENDPOINT
    oauth_token_endpoint: str = GOOGLE_OAUTH_TOKEN_ENDPOINT
    oauth_userinfo_endpoint: str = GOOGLE_USERINFO_ENDPOINT
    oauth_jwks_uri: str = GOOGLE_OAUTH_JWKS_URI
    oauth_scopes: List[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    oauth_allowed_algorithms: List[str] = Field(default_factory=lambda: ["RS256"])
    oauth_token_body_format: str = "form"

    # Outbound call timeouts (seconds)
    token_timeout_seconds: float = 10.0
    jwks_timeout_seconds: float = 5.0
    userinfo_timeout_seconds: float = 10.0

    # Key set cache policy (seconds)
    jwks_min_refetch_interval: float = 30.0
    jwks_cache_max_age: float = 600.0
    jwks_warmup_on_startup: bool = True

    # Tolerance applied to the iat claim (seconds)
    clock_skew_seconds: int = 120

    disconnect_poll_interval: float = 0.5

    @property
    def redirect_uri(self) -> str:
        """Callback URL registered with the provider."""
        return f"{self.base_url.rstrip('/')}/callback"

    @property
    def client_secret(self) -> str:
        return self.google_oauth_client_secret.get_secret_value()


def get_config(**overrides: Any) -> LoginConfig:
    """Get configuration, applying explicit overrides over the environment."""
    return LoginConfig(**overrides)
