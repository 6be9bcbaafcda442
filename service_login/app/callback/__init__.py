"""Callback handling state machine."""

from .orchestrator import (
    CallbackOrchestrator,
    CallbackOutcome,
    CallbackState,
    FailureReason,
)

__all__ = ["CallbackOrchestrator", "CallbackOutcome", "CallbackState", "FailureReason"]
