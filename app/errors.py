"""
Exception hierarchy for Test Plan Studio.

Every failure of an external collaborator (document extraction, the
generative model) surfaces as one of these, carrying a single user-facing
message. The reconciliation engine never raises.
"""

from typing import Any, Dict, Optional


class PlanStudioError(Exception):
    """Base exception class for all Test Plan Studio errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ExtractionError(PlanStudioError):
    """Raised when an uploaded document is unreadable, unsupported or empty."""

    status_code = 400

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message, "EXTRACTION_FAILED")
        self.file_name = file_name
        self.context.update({"file_name": file_name})


class GenerationError(PlanStudioError):
    """Raised when the model returns a missing or malformed plan set."""

    status_code = 502

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message, "GENERATION_FAILED")
        self.model = model
        self.context.update({"model": model})


class ImprovementError(PlanStudioError):
    """Raised when an improvement request fails; prior plans stay intact."""

    status_code = 502

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        plan_identifier: Optional[str] = None,
    ):
        super().__init__(message, "IMPROVEMENT_FAILED")
        self.model = model
        self.plan_identifier = plan_identifier
        self.context.update({"model": model, "plan_identifier": plan_identifier})


class NotFoundError(PlanStudioError):
    status_code = 404

    def __init__(self, message: str, **context: Any):
        super().__init__(message, "NOT_FOUND", context)


class ConflictError(PlanStudioError):
    """Raised when an action conflicts with an operation already in flight."""

    status_code = 409

    def __init__(self, message: str, **context: Any):
        super().__init__(message, "CONFLICT", context)
