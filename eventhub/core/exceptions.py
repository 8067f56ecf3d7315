"""
Domain exception hierarchy.

Services raise these; the handlers registered in ``eventhub.main`` turn them
into the ``{success: false, message, errors?}`` response envelope.
"""

from typing import Any, Optional


class EventHubError(Exception):
    """Base class for all errors that map onto an API failure response."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(EventHubError):
    """Malformed or out-of-range input, rejected before domain logic runs."""

    status_code = 400
    default_message = "Validation errors"

    @classmethod
    def for_field(cls, field: str, message: str, value: Any = None) -> "ValidationFailed":
        return cls(message, errors=[{"field": field, "message": message, "value": value}])


class InvalidMembershipType(ValidationFailed):
    default_message = "Invalid membership type"

    def __init__(self, membership_type: Any):
        super().__init__(
            self.default_message,
            errors=[{"field": "membership_type", "message": self.default_message, "value": membership_type}],
        )
        self.membership_type = membership_type


class AuthenticationRequired(EventHubError):
    status_code = 401
    default_message = "Not authenticated"


class PermissionDenied(EventHubError):
    status_code = 403
    default_message = "Not authorized to perform this action"


class NotFound(EventHubError):
    status_code = 404
    default_message = "Resource not found"


class DomainError(EventHubError):
    """A business precondition did not hold; nothing was written."""

    status_code = 400


class DuplicateActiveMembership(DomainError):
    default_message = "You already have an active membership"


class InvalidStatusTransition(DomainError):
    default_message = "Invalid membership status transition"


class RefundNotAllowed(DomainError):
    default_message = "Transaction cannot be refunded"


class EventNotOpen(DomainError):
    default_message = "Event is not available for registration"


class EventFull(DomainError):
    default_message = "Event is full"


class AlreadyRegistered(DomainError):
    default_message = "You are already registered for this event"


class NotRegistered(DomainError):
    default_message = "You are not registered for this event"


class UnregisterWindowClosed(DomainError):
    default_message = "Cannot unregister less than 24 hours before the event"


class EventLocked(DomainError):
    default_message = "Cannot update completed or cancelled events"


class EventHasAttendees(DomainError):
    default_message = "Cannot delete event with registered attendees"


class EmailTaken(DomainError):
    default_message = "Email already exists"


class CannotDeactivateSelf(DomainError):
    default_message = "Cannot deactivate your own account"


class ConcurrentModificationError(EventHubError):
    """Another request changed the same record between our read and write."""

    status_code = 409
    default_message = "The record was modified by another request, please retry"
