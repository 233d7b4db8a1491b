"""
Error taxonomy for workflow execution.

Every node executor failure is one of these. The executor catches them at
the per-node boundary, records the message into the node's execution state
and the run log, and stops descending from that node only.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for user-facing node failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(WorkflowError):
    """A required config field or credential is missing.

    Raised before any external call is attempted.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ExternalCallError(WorkflowError):
    """An HTTP, LLM or image endpoint returned a non-success response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EvaluationError(WorkflowError):
    """A condition expression or script failed to parse or run."""


class UnsupportedCapabilityError(WorkflowError):
    """The requested capability is not available locally (e.g. a non-JavaScript script)."""
