"""Custom exception classes for the application."""

from typing import Any, Optional


class GenteProException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(GenteProException):
    """Resource not found."""

    pass


class UnknownCategory(NotFoundError):
    """Template catalog has no entries for the requested category."""

    pass


class ValidationError(GenteProException):
    """Validation error."""

    pass


class ConflictError(GenteProException):
    """Resource conflict (e.g., duplicate)."""

    pass


class ConcurrentModificationError(ConflictError):
    """A stage transition lost a race against another writer."""

    pass


class BusinessRuleError(GenteProException):
    """Business rule violation."""

    pass


class IntegrationError(GenteProException):
    """External integration error."""

    pass


class WebhookDeliveryError(IntegrationError):
    """Transient outbound delivery failure; safe to retry."""

    pass


class PermanentAutomationFailure(IntegrationError):
    """Automation execution failed after exhausting its retries."""

    pass
