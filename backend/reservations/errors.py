"""Error kinds raised by the reservation and payment services."""

from __future__ import annotations


class ReservationError(Exception):
    """Base error; carries the HTTP status and a stable machine code."""

    status_code = 400
    code = "error"
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_payload(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


class ValidationError(ReservationError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request."


class ConflictError(ReservationError):
    status_code = 409
    code = "conflict"
    default_message = "Listing is not available for these dates"


class NotFoundError(ReservationError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class SignatureError(ReservationError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Invalid webhook signature."


class InvalidStateError(ReservationError):
    status_code = 400
    code = "invalid_state"
    default_message = "This action is not allowed in the current state."


class ForbiddenError(ReservationError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action."


class InternalError(ReservationError):
    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong; please try again later."
