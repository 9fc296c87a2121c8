"""
errors.py — Domain error taxonomy for the report workflow.

Every failure carries a deterministic code so the HTTP layer can map it
to a status and clients can branch on it:

- RF_VALIDATION:          malformed input at creation (empty title, bad envelope)
- RF_INVALID_TRANSITION:  status change illegal for the actor or the stored status
- RF_NOT_FOUND:           report id does not exist (or is not visible)
- RF_FORBIDDEN:           actor may see the report but not perform the action
- RF_RENDER_DEGRADED:     a selected chart had no usable data (non-fatal)
"""

from typing import Any, Dict, Optional


class ReportFlowError(Exception):
    """Base class for all report workflow errors."""

    code: str = "RF_INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(ReportFlowError):
    code = "RF_VALIDATION"
    status_code = 422


class InvalidTransition(ReportFlowError):
    code = "RF_INVALID_TRANSITION"
    status_code = 409


class NotFound(ReportFlowError):
    code = "RF_NOT_FOUND"
    status_code = 404


class PermissionDenied(ReportFlowError):
    code = "RF_FORBIDDEN"
    status_code = 403


class RenderDegraded(ReportFlowError):
    """
    A selected chart section had no usable data.

    Never raised: the renderer records instances on ``Document.notices``
    and draws the empty-state placeholder instead.
    """

    code = "RF_RENDER_DEGRADED"
    status_code = 200

    def __init__(self, section_id: str, reason: str):
        super().__init__(f"Chart '{section_id}' rendered without data: {reason}",
                         {"section": section_id, "reason": reason})
        self.section_id = section_id
        self.reason = reason
