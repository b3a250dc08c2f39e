"""
Error taxonomy for the interview service.

Every failure raised inside the service layer derives from
InterviewServiceError and carries the HTTP-style status code and the
business message reported back to callers.
"""


class InterviewServiceError(Exception):
    """Base class for all interview service failures."""

    error_type: str = "InterviewServiceError"
    status_code: int = 500
    default_business_message: str = "Internal server error"

    def __init__(
        self,
        message: str,
        business_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.business_message = business_message or self.default_business_message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(InterviewServiceError):
    """Malformed input."""

    error_type = "ValidationError"
    status_code = 400
    default_business_message = "Invalid request data"


class NotFoundError(InterviewServiceError):
    """A referenced application, job, interview or question does not exist."""

    error_type = "DataNotFoundError"
    status_code = 404
    default_business_message = "Requested data not found"


class ConflictError(InterviewServiceError):
    """The operation is not allowed in the current interview state."""

    error_type = "ConflictError"
    status_code = 409
    default_business_message = "Operation not allowed in the current state"


class UpstreamServiceError(InterviewServiceError):
    """The AI service or resume storage failed or returned unusable data."""

    error_type = "AIServiceError"
    status_code = 502
    default_business_message = "Upstream service error"


class InfrastructureError(InterviewServiceError):
    """The relational store or the resume cache failed."""

    error_type = "InfrastructureError"
    status_code = 500
    default_business_message = "Internal server error"
