"""Per-call state owned by one session orchestrator."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SubmissionState(str, Enum):
    """Whether structured inspection data has been accepted on this call."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"


class TerminationState(str, Enum):
    """Call termination progress."""

    ACTIVE = "active"
    ENDING = "ending"
    CLOSED = "closed"


class CallContextError(Exception):
    """Raised when code attempts an illegal call context transition."""


class CallContext:
    """
    Mutable state of a single call.

    All mutation goes through the transition methods below so the call's
    invariants hold no matter how events arrive:

    - the call identifier and caller identity are set at most once
    - submission is monotonic; a later submission replaces the payload
    - the call can only start ending after a submission has been accepted
    """

    def __init__(self, caller_identity: Optional[str] = None):
        self._call_id: Optional[str] = None
        self._caller_identity: Optional[str] = caller_identity or None
        self.caller_name: Optional[str] = None
        self.is_ai_speaking: bool = False
        self._submission_state = SubmissionState.NOT_SUBMITTED
        self._submitted_payload: Optional[Dict[str, Any]] = None
        self._submitted_at: Optional[datetime] = None
        self._termination_state = TerminationState.ACTIVE
        self.termination_reason: Optional[str] = None

    @property
    def call_id(self) -> Optional[str]:
        return self._call_id

    @property
    def caller_identity(self) -> Optional[str]:
        return self._caller_identity

    @property
    def submission_state(self) -> SubmissionState:
        return self._submission_state

    @property
    def submitted_payload(self) -> Optional[Dict[str, Any]]:
        return self._submitted_payload

    @property
    def submitted_at(self) -> Optional[datetime]:
        return self._submitted_at

    @property
    def termination_state(self) -> TerminationState:
        return self._termination_state

    @property
    def is_returning_caller(self) -> bool:
        return bool(self.caller_name)

    def bind_call(self, call_id: str) -> None:
        """Attach the telephony-issued call identifier."""
        if not call_id:
            raise CallContextError("Call identifier must not be empty")
        if self._call_id is not None and self._call_id != call_id:
            raise CallContextError(
                f"Call already bound to {self._call_id}, cannot rebind to {call_id}"
            )
        self._call_id = call_id

    def set_caller_identity(self, caller_identity: Optional[str]) -> bool:
        """
        Record the caller identity if it is not yet known.

        Returns:
            True if the identity was recorded, False if it was already set
            or the given value is empty
        """
        if not caller_identity or self._caller_identity is not None:
            return False
        self._caller_identity = caller_identity
        return True

    def mark_ai_speaking(self) -> None:
        self.is_ai_speaking = True

    def clear_ai_speaking(self) -> bool:
        """Clear the speaking flag and report whether it was set."""
        was_speaking = self.is_ai_speaking
        self.is_ai_speaking = False
        return was_speaking

    def record_submission(self, payload: Dict[str, Any]) -> None:
        """Accept structured data, replacing any earlier submission."""
        if self._termination_state is TerminationState.CLOSED:
            raise CallContextError("Cannot record a submission on a closed call")
        self._submitted_payload = dict(payload)
        self._submitted_at = datetime.utcnow()
        self._submission_state = SubmissionState.SUBMITTED

    def begin_ending(self, reason: Optional[str] = None) -> bool:
        """
        Move the call from ACTIVE to ENDING.

        Returns:
            True if the call is now ending, False if no submission has been
            accepted yet or the call is not active
        """
        if self._submission_state is not SubmissionState.SUBMITTED:
            return False
        if self._termination_state is not TerminationState.ACTIVE:
            return False
        self._termination_state = TerminationState.ENDING
        self.termination_reason = reason
        return True

    def mark_closed(self) -> None:
        self._termination_state = TerminationState.CLOSED
        self.is_ai_speaking = False
