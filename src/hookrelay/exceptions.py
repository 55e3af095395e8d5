"""HookRelay exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookRelayError for easy catching.

Duplicate event intake is deliberately absent: it is a defined outcome
(``EventStore.create`` returns None), not an error.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all HookRelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookrelay_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid input provided.

    Raised when intake or subscription input fails validation checks.
    No state is mutated when this is raised.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookRelayError):
    """Resource not found.

    Raised when an operation addresses an event, webhook or delivery
    attempt that doesn't exist.

    Attributes:
        resource_type: Type of resource (e.g., "event", "webhook").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: int | str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class InvalidStateError(HookRelayError):
    """Operation not allowed in the resource's current state.

    Raised, for example, when requeueing a delivery that already succeeded.
    """

    code: str = "invalid_state"


class QueueFullError(HookRelayError):
    """Delivery queue is saturated.

    Raised when intake cannot hand a new event to the delivery workers.
    """

    code: str = "queue_full"


class DeliveryError(HookRelayError):
    """Delivery pipeline failure not attributable to a single endpoint."""

    code: str = "delivery_error"


class ConfigurationError(HookRelayError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
