"""
ID token verification for the login callback.
"""

import json
import time
from typing import Any, Callable, Dict, Iterable, Optional

from jose import jwk, jws, jwt
from jose.exceptions import JWKError, JWSError, JWTError
from pydantic import ValidationError

from shared.errors import (
    ClaimValidationFailedError,
    DisallowedAlgorithmError,
    InvalidSignatureError,
    MalformedTokenError,
)
from shared.logging import get_logger
from ..jwks.client import KeySetResolver
from ..models import VerifiedClaims


ASYMMETRIC_ALGORITHMS = frozenset({
    "RS256", "RS384", "RS512",
    "ES256", "ES384", "ES512",
})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class IdTokenVerifier:
    """Verifies OIDC ID tokens against the provider's rotating key set.

    The signing algorithm is taken from an explicit allow-list, never from
    the token alone, and the signature is checked before any claim is read.
    Claim failures name the offending claim in ``ClaimValidationFailedError``.
    """

    def __init__(
        self,
        key_resolver: KeySetResolver,
        *,
        allowed_algorithms: Iterable[str] = ("RS256",),
        clock_skew_seconds: int = 120,
        clock: Callable[[], float] = time.time,
    ):
        allowed = frozenset(allowed_algorithms)
        unsupported = allowed - ASYMMETRIC_ALGORITHMS
        if not allowed or unsupported:
            raise ValueError(
                f"Only asymmetric signing algorithms may be allowed, got {sorted(unsupported) or 'none'}"
            )

        self.key_resolver = key_resolver
        self.allowed_algorithms = allowed
        self.clock_skew_seconds = clock_skew_seconds
        self._clock = clock
        self.logger = get_logger("login.validator")

    async def verify(self, id_token: str, expected_issuer: str, expected_audience: str) -> VerifiedClaims:
        """Verify ``id_token`` and return its claims."""
        try:
            header = jwt.get_unverified_header(id_token)
        except JWTError as exc:
            raise MalformedTokenError(details={"reason": "header"}) from exc

        algorithm = header.get("alg")
        if algorithm not in self.allowed_algorithms:
            raise DisallowedAlgorithmError(details={"alg": str(algorithm)})

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedTokenError("ID token header missing key ID", details={"reason": "kid"})

        signing_key = await self.key_resolver.resolve(kid)
        if signing_key.algorithm and signing_key.algorithm != algorithm:
            raise DisallowedAlgorithmError(
                "ID token algorithm does not match its signing key",
                details={"alg": algorithm, "kid": kid}
            )

        payload = self._verify_signature(id_token, signing_key.jwk, algorithm, kid)
        claims = self._validate_claims(payload, expected_issuer, expected_audience)

        self.logger.info("ID token verified successfully", sub=claims.sub, kid=kid)
        return claims

    def _verify_signature(self, token: str, key_data: Dict[str, Any], algorithm: str, kid: str) -> Dict[str, Any]:
        # Structural problems surface here; afterwards any JWS error is a bad signature
        try:
            jws.get_unverified_claims(token)
        except JWSError as exc:
            raise MalformedTokenError(details={"reason": "segments"}) from exc

        try:
            key = jwk.construct(key_data, algorithm)
            raw_payload = jws.verify(token, key, algorithms=[algorithm])
        except (JWSError, JWKError) as exc:
            self.logger.warning("ID token signature rejected", kid=kid, error=str(exc))
            raise InvalidSignatureError(details={"kid": kid}) from exc

        try:
            payload = json.loads(raw_payload)
        except ValueError as exc:
            raise MalformedTokenError(details={"reason": "payload"}) from exc
        if not isinstance(payload, dict):
            raise MalformedTokenError(details={"reason": "payload"})
        return payload

    def _validate_claims(self, payload: Dict[str, Any], expected_issuer: str, expected_audience: str) -> VerifiedClaims:
        now = self._clock()

        if payload.get("iss") != expected_issuer:
            raise ClaimValidationFailedError("iss")

        audience = payload.get("aud")
        if isinstance(audience, str):
            audiences = [audience]
        elif isinstance(audience, list) and all(isinstance(item, str) for item in audience):
            audiences = audience
        else:
            raise ClaimValidationFailedError("aud")
        if expected_audience not in audiences:
            raise ClaimValidationFailedError("aud")
        if len(audiences) > 1 and payload.get("azp", expected_audience) != expected_audience:
            raise ClaimValidationFailedError("azp")

        expiry = payload.get("exp")
        if not _is_number(expiry) or now >= expiry:
            raise ClaimValidationFailedError("exp", "ID token has expired" if _is_number(expiry) else None)

        issued_at = payload.get("iat")
        if issued_at is not None:
            if not _is_number(issued_at) or issued_at > now + self.clock_skew_seconds:
                raise ClaimValidationFailedError("iat")

        try:
            return VerifiedClaims.model_validate(payload)
        except ValidationError as exc:
            claim = self._first_invalid_claim(exc) or "payload"
            raise ClaimValidationFailedError(claim) from exc

    @staticmethod
    def _first_invalid_claim(exc: ValidationError) -> Optional[str]:
        for error in exc.errors():
            if error.get("loc"):
                return str(error["loc"][0])
        return None


__all__ = ["IdTokenVerifier", "ASYMMETRIC_ALGORITHMS"]
