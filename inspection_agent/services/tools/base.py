"""Tool base types."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from inspection_agent.services.call_session.context import (
    CallContext,
    SubmissionState,
    TerminationState,
)
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.persistence.inspections import InspectionPersistenceService


class ToolNotFoundError(Exception):
    """Raised when a tool name cannot be resolved."""


class ToolProviderError(Exception):
    """Raised when an external tool provider fails to connect or respond."""


class ToolDescriptor(BaseModel):
    """A tool as advertised to the realtime backend."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_realtime_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolExecutionContext:
    """
    What a tool handler may see and change about the current call.

    Call state is exposed read-only. The only mutations allowed are the
    hooks below: recording a submission, remembering the caller's name and
    requesting termination. Termination itself is applied by the session
    after the tool result has been delivered.
    """

    def __init__(
        self,
        call_context: CallContext,
        inspections: InspectionPersistenceService,
        callers: CallerPersistenceService,
    ):
        self._call = call_context
        self.inspections = inspections
        self.callers = callers
        self.termination_requested = False
        self.termination_reason: Optional[str] = None

    @property
    def call_id(self) -> Optional[str]:
        return self._call.call_id

    @property
    def caller_identity(self) -> Optional[str]:
        return self._call.caller_identity

    @property
    def caller_name(self) -> Optional[str]:
        return self._call.caller_name

    @property
    def submission_state(self) -> SubmissionState:
        return self._call.submission_state

    @property
    def termination_state(self) -> TerminationState:
        return self._call.termination_state

    @property
    def submitted_payload(self) -> Optional[Dict[str, Any]]:
        payload = self._call.submitted_payload
        return dict(payload) if payload is not None else None

    @property
    def is_submitted(self) -> bool:
        return self._call.submission_state is SubmissionState.SUBMITTED

    def mark_submitted(self, payload: Dict[str, Any]) -> None:
        self._call.record_submission(payload)

    def remember_caller_name(self, caller_name: str) -> None:
        self._call.caller_name = caller_name

    def request_termination(self, reason: Optional[str] = None) -> bool:
        """Ask for the call to end. Refused until data has been submitted."""
        if not self.is_submitted:
            return False
        self.termination_requested = True
        self.termination_reason = reason
        return True


class Tool(ABC):
    """A locally implemented tool."""

    @property
    @abstractmethod
    def descriptor(self) -> ToolDescriptor:
        pass

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def execute(
        self, arguments: Dict[str, Any], context: ToolExecutionContext
    ) -> Dict[str, Any]:
        """Run the tool and return a JSON-serializable result."""
        pass
