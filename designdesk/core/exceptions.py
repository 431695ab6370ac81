"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 422


class InvalidStateTransitionException(DomainException):
    """Raised when a lifecycle operation is attempted from the wrong state."""

    status_code = 409

    def __init__(
        self,
        operation: str,
        current_state: str,
        allowed_states: list,
        details: Optional[dict] = None
    ):
        self.operation = operation
        self.current_state = current_state
        self.allowed_states = list(allowed_states)
        super().__init__(
            f"Cannot {operation} from state '{current_state}' "
            f"(allowed: {', '.join(self.allowed_states)})",
            details or {
                "operation": operation,
                "current_state": current_state,
                "allowed_states": self.allowed_states,
            }
        )


class ConcurrentModificationException(DomainException):
    """Raised when an optimistic version check loses a race."""

    status_code = 409

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' was modified concurrently",
            {"resource_type": resource_type, "resource_id": resource_id}
        )


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Exception for notification sink failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notifier", message, details)


class WebhookVerificationException(ApplicationException):
    """Inbound webhook failed authentication; never persisted as a failure."""

    status_code = 401

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"Webhook verification failed for provider '{provider}': {reason}",
            {"provider": provider, "reason": reason}
        )
