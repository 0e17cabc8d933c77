"""
Marketplace error taxonomy.

Domain rule violations raised by the services carry the HTTP status they map
to, so the exception handler in ``app.main`` can render them without knowing
about individual error types.
"""
from fastapi import status


class MarketplaceError(Exception):
    """Base class for all domain errors raised by the marketplace services"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Marketplace error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"


class AlreadyExistsError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class InvalidStateError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    error = "Invalid State"


class InvalidArgumentError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"


class ForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"


class ValidationFailedError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation Failed"


class MessagingError(MarketplaceError):
    """Raised when the event gateway could not hand a message to the transport"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Messaging Failure"


# Shift / request specific errors

class ShiftNotFoundError(NotFoundError):
    def __init__(self, exchange_shift_id: str):
        super().__init__(f"Exchange shift not found: {exchange_shift_id}")


class RequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str):
        super().__init__(f"Shift request not found: {request_id}")


class PostNotFoundError(NotFoundError):
    def __init__(self, post_id: str):
        super().__init__(f"Post not found: {post_id}")


class ShiftNotAcceptingRequestsError(InvalidStateError):
    def __init__(self, exchange_shift_id: str):
        super().__init__(f"Exchange shift {exchange_shift_id} is no longer accepting requests")


class RequestAlreadyExistsError(AlreadyExistsError):
    def __init__(self, exchange_shift_id: str):
        super().__init__(f"You have already submitted a request for exchange shift {exchange_shift_id}")


class CannotRequestOwnShiftError(InvalidArgumentError):
    def __init__(self):
        super().__init__("You cannot request your own shift")


class ShiftNotOwnedError(ForbiddenError):
    def __init__(self, exchange_shift_id: str):
        super().__init__(f"Exchange shift {exchange_shift_id} does not belong to you")


class ShiftCannotBeModifiedError(InvalidStateError):
    def __init__(self, exchange_shift_id: str, current_status: str):
        super().__init__(
            f"Exchange shift {exchange_shift_id} cannot be modified in status {current_status}"
        )


class RequestInvalidStateError(InvalidStateError):
    def __init__(self, request_id: str, current_status: str, expected_status: str):
        super().__init__(
            f"Shift request {request_id} is {current_status}, expected {expected_status}"
        )


class BusinessUnitAccessError(ForbiddenError):
    def __init__(self, business_unit_id: str):
        super().__init__(f"Access denied to business unit {business_unit_id}")
