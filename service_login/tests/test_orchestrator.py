"""
Unit tests for the callback state machine.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from service_login.app.callback.orchestrator import (
    CallbackOrchestrator,
    CallbackState,
    FailureReason,
)
from service_login.app.models import TokenResponse, VerifiedClaims
from shared.errors import (
    ClaimValidationFailedError,
    KeySetUnavailableError,
    MissingIdTokenError,
    ProfileFetchFailedError,
    TokenExchangeFailedError,
    VerificationFailedError,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import create_test_user

CLIENT_ID = "test-client-id.apps.googleusercontent.com"
ISSUER = "https://accounts.google.com"
REDIRECT_URI = "http://localhost:8787/callback"

S = CallbackState


class TestCallbackOrchestrator:
    """Test cases for CallbackOrchestrator."""

    @pytest.fixture
    def profile(self):
        return create_test_user().profile()

    @pytest.fixture
    def token_client(self):
        client = AsyncMock()
        client.exchange.return_value = TokenResponse(
            id_token="header.payload.signature",
            access_token="ya29.access",
            token_type="Bearer",
        )
        return client

    @pytest.fixture
    def verifier(self):
        verifier = AsyncMock()
        verifier.verify.return_value = VerifiedClaims(
            iss=ISSUER,
            aud=CLIENT_ID,
            sub="110169484474386276334",
            exp=1_700_003_600,
            email_verified=True,
        )
        return verifier

    @pytest.fixture
    def profile_fetcher(self, profile):
        fetcher = AsyncMock()
        fetcher.fetch.return_value = profile
        return fetcher

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("login")

    @pytest.fixture
    def orchestrator(self, token_client, verifier, profile_fetcher, metrics):
        """Create CallbackOrchestrator with mocked collaborators."""
        return CallbackOrchestrator(
            token_client,
            verifier,
            profile_fetcher,
            client_id=CLIENT_ID,
            client_secret="test-client-secret",
            redirect_uri=REDIRECT_URI,
            issuer=ISSUER,
            metrics=metrics,
        )

    @pytest.mark.asyncio
    async def test_successful_callback(self, orchestrator, token_client, verifier, profile_fetcher, profile, metrics):
        """A valid code walks every stage and returns the profile."""
        outcome = await orchestrator.handle("4/valid")

        assert outcome.succeeded
        assert outcome.trail == [S.AWAITING_CODE, S.EXCHANGING, S.VERIFYING, S.FETCHING_PROFILE, S.DONE]
        assert outcome.profile == profile
        assert outcome.claims.sub == "110169484474386276334"
        assert outcome.error is None

        token_client.exchange.assert_awaited_once_with("4/valid", CLIENT_ID, "test-client-secret", REDIRECT_URI)
        verifier.verify.assert_awaited_once_with(
            "header.payload.signature",
            expected_issuer=ISSUER,
            expected_audience=CLIENT_ID,
        )
        profile_fetcher.fetch.assert_awaited_once_with("ya29.access")
        assert metrics.sample("callback_outcomes_total", result="done") == 1.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [None, ""])
    async def test_missing_code(self, orchestrator, token_client, verifier, profile_fetcher, code):
        """Without a code no outbound call is made."""
        outcome = await orchestrator.handle(code)

        assert outcome.state == S.FAILED
        assert outcome.reason == FailureReason.MISSING_CODE
        assert outcome.trail == [S.AWAITING_CODE, S.FAILED]
        assert outcome.error.message == "Authorization code not found"
        token_client.exchange.assert_not_called()
        verifier.verify.assert_not_called()
        profile_fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_token_exchange_failed(self, orchestrator, token_client, verifier, metrics):
        token_client.exchange.side_effect = TokenExchangeFailedError(details={"status_code": 400})

        outcome = await orchestrator.handle("4/used")

        assert outcome.reason == FailureReason.TOKEN_EXCHANGE_FAILED
        assert outcome.trail == [S.AWAITING_CODE, S.EXCHANGING, S.FAILED]
        verifier.verify.assert_not_called()
        assert metrics.sample("callback_outcomes_total", result="TokenExchangeFailed") == 1.0
        assert metrics.sample("errors_total", error_type="TokenExchangeFailed", service="login") == 1.0

    @pytest.mark.asyncio
    async def test_missing_id_token(self, orchestrator, token_client, verifier, profile_fetcher):
        """A token response without an ID token never reaches verification."""
        token_client.exchange.side_effect = MissingIdTokenError()

        outcome = await orchestrator.handle("4/valid")

        assert outcome.reason == FailureReason.MISSING_ID_TOKEN
        assert outcome.error.message == "Failed to obtain ID token"
        verifier.verify.assert_not_called()
        profile_fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_verification_failed(self, orchestrator, verifier, profile_fetcher):
        """Any verifier error becomes VerificationFailed carrying the cause."""
        verifier.verify.side_effect = ClaimValidationFailedError("aud")

        outcome = await orchestrator.handle("4/valid")

        assert outcome.reason == FailureReason.VERIFICATION_FAILED
        assert outcome.trail == [S.AWAITING_CODE, S.EXCHANGING, S.VERIFYING, S.FAILED]
        assert isinstance(outcome.error, VerificationFailedError)
        assert outcome.error.message == "ID Token verification failed"
        assert outcome.error.details == {"cause": "ClaimValidationFailed", "claim": "aud"}
        assert outcome.claims is None
        profile_fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_key_set_unavailable_is_verification_failure(self, orchestrator, verifier):
        verifier.verify.side_effect = KeySetUnavailableError(details={"reason": "circuit_open"})

        outcome = await orchestrator.handle("4/valid")

        assert outcome.reason == FailureReason.VERIFICATION_FAILED
        assert outcome.error.details["cause"] == "KeySetUnavailable"

    @pytest.mark.asyncio
    async def test_missing_access_token(self, orchestrator, token_client, profile_fetcher):
        """A verified token without an access token stops before the profile fetch."""
        token_client.exchange.return_value = TokenResponse(id_token="header.payload.signature")

        outcome = await orchestrator.handle("4/valid")

        assert outcome.reason == FailureReason.MISSING_ACCESS_TOKEN
        assert outcome.trail == [S.AWAITING_CODE, S.EXCHANGING, S.VERIFYING, S.FAILED]
        assert outcome.claims is not None
        profile_fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_profile_fetch_failed(self, orchestrator, profile_fetcher):
        profile_fetcher.fetch.side_effect = ProfileFetchFailedError(details={"status_code": 401})

        outcome = await orchestrator.handle("4/valid")

        assert outcome.reason == FailureReason.PROFILE_FETCH_FAILED
        assert outcome.trail[-2:] == [S.FETCHING_PROFILE, S.FAILED]
        assert outcome.profile is None

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, orchestrator, verifier):
        """Errors outside a stage's failure category are not converted."""
        verifier.verify.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await orchestrator.handle("4/valid")

    @pytest.mark.asyncio
    async def test_cancellation_abandons_pipeline(self, orchestrator, token_client, verifier):
        """Cancelling a run stops it at the in-flight call."""
        async def slow_exchange(*args):
            await asyncio.sleep(10)

        token_client.exchange.side_effect = slow_exchange
        task = asyncio.ensure_future(orchestrator.handle("4/valid"))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_independent_runs(self, orchestrator, token_client):
        """Concurrent callbacks do not share per-request state."""
        outcomes = await asyncio.gather(orchestrator.handle("4/a"), orchestrator.handle(None))

        assert outcomes[0].succeeded
        assert outcomes[1].reason == FailureReason.MISSING_CODE
        assert token_client.exchange.await_count == 1
