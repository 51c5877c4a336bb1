"""
Shared error handling for the feed coordination services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class FeedServiceException(Exception):
    """Base exception for feed services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(FeedServiceException):
    """Requested entity does not exist."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details, status_code=404)


class ExternalServiceError(FeedServiceException):
    """Backend collaborator errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details, status_code=502)
        self.service = service


class MutationError(FeedServiceException):
    """An optimistic mutation was rejected remotely and rolled back."""

    def __init__(self, collection_key: str, message: str = "Mutation failed", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("collection_key", collection_key)
        super().__init__("MUTATION_FAILED", message, details, status_code=502)
        self.collection_key = collection_key


class FeedUpdateError(MutationError):
    """A post update (save, share) failed; carries a message suitable for end users."""

    code_name = "FEED_UPDATE_FAILED"

    def __init__(self, collection_key: str, user_message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(collection_key, user_message, details)
        self.code = self.code_name
        self.user_message = user_message


class ReactionUpdateError(FeedUpdateError):
    """Reaction toggle failed."""

    code_name = "REACTION_UPDATE_FAILED"


class InvariantViolationError(FeedServiceException):
    """Internal coordination bookkeeping is inconsistent (programming fault)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVARIANT_VIOLATION", message, details, status_code=500)
