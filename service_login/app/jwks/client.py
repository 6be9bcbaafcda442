"""
JWKS key set resolver for the identity provider.
"""

import asyncio
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import KeySetUnavailableError, UnknownKeyIdError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import KeySetSnapshot, SigningKey


class KeySetCache:
    """Process-wide holder of the provider's current key set.

    The set is only ever replaced whole: ``replace`` builds a new immutable
    snapshot and swaps the reference, so readers see either the old set or
    the new one. ``lock`` serialises refetches; reads never take it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._snapshot = KeySetSnapshot()
        self.lock = asyncio.Lock()

    def snapshot(self) -> KeySetSnapshot:
        return self._snapshot

    def get(self, key_id: str) -> Optional[SigningKey]:
        return self._snapshot.get(key_id)

    def replace(self, keys: Iterable[SigningKey]) -> KeySetSnapshot:
        """Atomically install a freshly fetched key set."""
        mapping: Dict[str, SigningKey] = {}
        for key in keys:
            mapping.setdefault(key.key_id, key)
        snapshot = KeySetSnapshot(
            keys=MappingProxyType(mapping),
            fetched_at=self._clock(),
            generation=self._snapshot.generation + 1,
        )
        self._snapshot = snapshot
        return snapshot

    def clear(self):
        self._snapshot = KeySetSnapshot(generation=self._snapshot.generation + 1)


class KeySetResolver:
    """Resolves signing keys by key id, refetching the JWKS on a miss."""

    def __init__(
        self,
        jwks_url: str,
        cache: Optional[KeySetCache] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        min_refetch_interval: float = 30.0,
        cache_max_age: float = 600.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_url = jwks_url
        self.cache = cache if cache is not None else KeySetCache(clock=clock)
        self.timeout = timeout
        self.min_refetch_interval = min_refetch_interval
        self.cache_max_age = cache_max_age
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("login.jwks")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

        # Fails fast while the provider's JWKS endpoint keeps erroring
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            name="jwks",
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, key_id: str) -> SigningKey:
        """Return the signing key for ``key_id``."""
        snapshot = self.cache.snapshot()
        key = snapshot.get(key_id)
        if key is not None and not self._expired(snapshot):
            return key

        return await self._refresh_and_resolve(key_id, snapshot.generation)

    async def warmup(self) -> None:
        """Eagerly load the key set so the first callback does not pay the cost."""
        try:
            async with self.cache.lock:
                await self._fetch()
        except KeySetUnavailableError as exc:
            self.logger.warning("JWKS warmup failed", error=exc.code)

    async def check_health(self) -> str:
        """Return 'ok' if a usable key set is cached or can be fetched."""
        snapshot = self.cache.snapshot()
        if len(snapshot) and not self._expired(snapshot):
            return "ok"
        if self._throttled(snapshot):
            return "ok" if len(snapshot) else "error"
        try:
            async with self.cache.lock:
                snapshot = await self._fetch()
            return "ok" if len(snapshot) else "error"
        except KeySetUnavailableError:
            return "error"

    async def _refresh_and_resolve(self, key_id: str, seen_generation: int) -> SigningKey:
        async with self.cache.lock:
            snapshot = self.cache.snapshot()
            key = snapshot.get(key_id)

            # Another caller refreshed the set while we waited for the lock
            if snapshot.generation != seen_generation and key is not None:
                return key

            if self._throttled(snapshot):
                if key is not None:
                    return key
                self.logger.warning(
                    "Key set refetch throttled",
                    kid=key_id,
                    min_refetch_interval=self.min_refetch_interval
                )
                raise UnknownKeyIdError(details={"kid": key_id})

            snapshot = await self._fetch()

        key = snapshot.get(key_id)
        if key is None:
            self.logger.warning("Key not found after refresh", kid=key_id, keys_count=len(snapshot))
            raise UnknownKeyIdError(details={"kid": key_id})
        return key

    def _expired(self, snapshot: KeySetSnapshot) -> bool:
        if snapshot.fetched_at is None:
            return True
        return self._clock() - snapshot.fetched_at >= self.cache_max_age

    def _throttled(self, snapshot: KeySetSnapshot) -> bool:
        if snapshot.fetched_at is None:
            return False
        return self._clock() - snapshot.fetched_at < self.min_refetch_interval

    async def _fetch(self) -> KeySetSnapshot:
        """Download the full key set and replace the cache. Caller holds the lock."""
        start_time = time.time()
        try:
            keys = await self.circuit_breaker.call(self._download)
        except CircuitBreakerOpenException as exc:
            self._record_refresh("circuit_open", start_time)
            self.logger.error("JWKS fetch blocked by open circuit breaker")
            raise KeySetUnavailableError(details={"reason": "circuit_open"}) from exc
        except (httpx.HTTPError, ValueError) as exc:
            self._record_refresh("error", start_time)
            self.logger.error("Failed to fetch JWKS", error=str(exc), error_type=type(exc).__name__)
            raise KeySetUnavailableError(details={"reason": type(exc).__name__}) from exc

        snapshot = self.cache.replace(keys)
        self._record_refresh("ok", start_time)
        self.logger.info(
            "JWKS refreshed successfully",
            keys_count=len(snapshot),
            generation=snapshot.generation
        )
        return snapshot

    async def _download(self) -> List[SigningKey]:
        response = await self._client.get(self.jwks_url, timeout=self.timeout)
        response.raise_for_status()
        return self._parse_key_set(response.json())

    def _parse_key_set(self, payload: Any) -> List[SigningKey]:
        if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
            raise ValueError("JWKS response missing 'keys' array")

        keys: List[SigningKey] = []
        seen = set()
        for entry in payload["keys"]:
            if not isinstance(entry, dict) or not isinstance(entry.get("kid"), str):
                continue
            if entry.get("use", "sig") != "sig":
                continue
            if entry["kid"] in seen:
                self.logger.warning("Duplicate kid in JWKS, keeping first", kid=entry["kid"])
                continue
            try:
                key = SigningKey.from_jwk(entry)
            except ValidationError as exc:
                self.logger.warning("Skipping malformed JWKS entry", kid=entry["kid"], error_count=exc.error_count())
                continue
            seen.add(entry["kid"])
            keys.append(key)
        return keys

    def _record_refresh(self, status: str, start_time: float):
        if self.metrics is not None:
            self.metrics.record_jwks_refresh(status, time.time() - start_time)
