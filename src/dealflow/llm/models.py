"""Pydantic models defining the classifier's structured I/O contract.

``ReplyAnalysis`` is the structured output schema sent to Claude.  A call
either yields an ``Analysis`` or a ``ClassificationFailure``; both are valid
inputs to the escalation policy.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from dealflow.domain.errors import ClassifierError, UnparseableResponseError
from dealflow.domain.models import Analysis


class ReplyAnalysis(Analysis):
    """Structured extraction from a creator's reply.

    Used with Anthropic structured outputs (client.messages.parse()) to
    guarantee schema-compliant classification of free-text replies.
    """


class FailureKind(StrEnum):
    """Why a classification produced no analysis."""

    UNAVAILABLE = "unavailable"
    UNPARSEABLE = "unparseable"
    TIMEOUT = "timeout"


class ClassificationFailure(BaseModel):
    """A classification that failed; always escalated by the policy."""

    kind: FailureKind = Field(description="Category of the failure")
    message: str = Field(default="", description="Error detail for the reviewer")

    @classmethod
    def from_error(cls, exc: ClassifierError) -> ClassificationFailure:
        """Build a failure record from a typed classifier error."""
        kind = (
            FailureKind.UNPARSEABLE
            if isinstance(exc, UnparseableResponseError)
            else FailureKind.UNAVAILABLE
        )
        return cls(kind=kind, message=str(exc))


ClassifierResult = Analysis | ClassificationFailure
