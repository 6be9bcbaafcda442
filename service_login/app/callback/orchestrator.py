"""
Callback pipeline: code exchange, ID token verification, profile fetch.

The pipeline is an explicit state machine::

    AWAITING_CODE -> EXCHANGING -> VERIFYING -> FETCHING_PROFILE -> DONE
          \\              \\             \\               \\
           +--------------+-------------+----------------+--> FAILED(reason)

Each stage returns either the next state or the error that ends the run.
A stage only catches its own failure category; anything else propagates.
Nothing is retried.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from shared.errors import (
    LoginFlowException,
    MissingAccessTokenError,
    MissingCodeError,
    MissingIdTokenError,
    ProfileFetchFailedError,
    TokenExchangeFailedError,
    VerificationError,
    VerificationFailedError,
)
from shared.logging import get_logger, set_subject
from shared.metrics import MetricsCollector
from ..models import TokenResponse, UserProfile, VerifiedClaims
from ..provider.token_client import TokenExchangeClient
from ..provider.userinfo_client import ProfileFetcher
from ..validation.token_validator import IdTokenVerifier


class CallbackState(str, Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING = "exchanging"
    VERIFYING = "verifying"
    FETCHING_PROFILE = "fetching_profile"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({CallbackState.DONE, CallbackState.FAILED})


class FailureReason(str, Enum):
    MISSING_CODE = "MissingCode"
    TOKEN_EXCHANGE_FAILED = "TokenExchangeFailed"
    MISSING_ID_TOKEN = "MissingIdToken"
    VERIFICATION_FAILED = "VerificationFailed"
    MISSING_ACCESS_TOKEN = "MissingAccessToken"
    PROFILE_FETCH_FAILED = "ProfileFetchFailed"


@dataclass
class CallbackContext:
    """Per-request data carried between stages."""

    code: Optional[str]
    tokens: Optional[TokenResponse] = None
    claims: Optional[VerifiedClaims] = None
    profile: Optional[UserProfile] = None


@dataclass
class CallbackOutcome:
    """Terminal result of one callback run."""

    state: CallbackState
    trail: List[CallbackState] = field(default_factory=list)
    profile: Optional[UserProfile] = None
    claims: Optional[VerifiedClaims] = None
    error: Optional[LoginFlowException] = None
    reason: Optional[FailureReason] = None

    @property
    def succeeded(self) -> bool:
        return self.state == CallbackState.DONE


Transition = Union[CallbackState, LoginFlowException]


class CallbackOrchestrator:
    """Runs the callback state machine for one authorization code."""

    def __init__(
        self,
        token_client: TokenExchangeClient,
        verifier: IdTokenVerifier,
        profile_fetcher: ProfileFetcher,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        issuer: str,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.token_client = token_client
        self.verifier = verifier
        self.profile_fetcher = profile_fetcher
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.issuer = issuer
        self.metrics = metrics
        self.logger = get_logger("login.callback")

        self._stages: Dict[CallbackState, Callable[[CallbackContext], Awaitable[Transition]]] = {
            CallbackState.AWAITING_CODE: self._await_code,
            CallbackState.EXCHANGING: self._exchange,
            CallbackState.VERIFYING: self._verify,
            CallbackState.FETCHING_PROFILE: self._fetch_profile,
        }

    async def handle(self, code: Optional[str]) -> CallbackOutcome:
        context = CallbackContext(code=code)
        state = CallbackState.AWAITING_CODE
        trail = [state]
        error: Optional[LoginFlowException] = None

        while state not in TERMINAL_STATES:
            result = await self._stages[state](context)
            if isinstance(result, LoginFlowException):
                self.logger.warning(
                    "Callback stage failed",
                    stage=state.value,
                    code=result.code,
                    details=result.details
                )
                error = result
                state = CallbackState.FAILED
            else:
                state = result
            trail.append(state)

        outcome = CallbackOutcome(
            state=state,
            trail=trail,
            profile=context.profile if state == CallbackState.DONE else None,
            claims=context.claims,
            error=error,
            reason=FailureReason(error.code) if error is not None else None,
        )
        self._record(outcome)
        return outcome

    async def _await_code(self, context: CallbackContext) -> Transition:
        if not context.code:
            return MissingCodeError()
        self.logger.info("Authorization code received", code_length=len(context.code))
        return CallbackState.EXCHANGING

    async def _exchange(self, context: CallbackContext) -> Transition:
        try:
            context.tokens = await self.token_client.exchange(
                context.code,
                self.client_id,
                self.client_secret,
                self.redirect_uri,
            )
        except (TokenExchangeFailedError, MissingIdTokenError) as e:
            return e
        return CallbackState.VERIFYING

    async def _verify(self, context: CallbackContext) -> Transition:
        try:
            context.claims = await self.verifier.verify(
                context.tokens.id_token,
                expected_issuer=self.issuer,
                expected_audience=self.client_id,
            )
        except VerificationError as e:
            return VerificationFailedError(e)

        set_subject(context.claims.sub)
        self.logger.info(
            "ID Token verified",
            iss=context.claims.iss,
            exp=context.claims.exp,
            email_verified=getattr(context.claims, "email_verified", None)
        )

        if not context.tokens.access_token:
            return MissingAccessTokenError()
        return CallbackState.FETCHING_PROFILE

    async def _fetch_profile(self, context: CallbackContext) -> Transition:
        try:
            context.profile = await self.profile_fetcher.fetch(context.tokens.access_token)
        except ProfileFetchFailedError as e:
            return e
        return CallbackState.DONE

    def _record(self, outcome: CallbackOutcome):
        if self.metrics is None:
            return
        result = outcome.reason.value if outcome.reason else outcome.state.value
        self.metrics.record_callback_outcome(result)
        if outcome.error is not None:
            self.metrics.record_error(outcome.error.code)
