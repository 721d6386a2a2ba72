"""
Custom exception classes for the client forms workflow.

Each class carries a stable ``error_code`` that the exception handlers in
``app.main`` render next to the human-readable message.
"""
from fastapi import HTTPException, status


class FormServiceError(HTTPException):
    """Base class for the failure kinds surfaced by the forms API."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "FORM_ERROR"
    default_detail = "The request could not be processed."

    def __init__(self, detail: str = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail
        )


class NotAuthorizedError(FormServiceError):
    """Raised when the caller has no law firm association"""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "NOT_AUTHORIZED"
    default_detail = "User is not associated with a law firm."


class NotFoundError(FormServiceError):
    """Raised when a client, template, client form or access token is unknown"""
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_detail = "Resource not found."


class FormExpiredError(FormServiceError):
    """Raised when a client form is accessed past its expiry date"""
    status_code = status.HTTP_410_GONE
    error_code = "FORM_EXPIRED"
    default_detail = "This form has expired."


class FormAlreadyCompletedError(FormServiceError):
    """Raised on resubmission of a completed form"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "FORM_ALREADY_COMPLETED"
    default_detail = "This form has already been completed."


class ConflictError(FormServiceError):
    """Raised when concurrent writes keep violating a uniqueness constraint"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    default_detail = "The form was modified concurrently. Please retry."


class FormValidationError(FormServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "VALIDATION_ERROR"
    default_detail = "The submitted data is invalid."


class UnexpectedError(FormServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "UNEXPECTED_ERROR"
    default_detail = "An unexpected error occurred."
