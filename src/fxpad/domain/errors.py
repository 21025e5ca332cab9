# src/fxpad/domain/errors.py
"""
Domain Errors - Business Logic Exceptions

This module defines domain-specific exceptions that represent
business rule violations and domain errors. Services raise them internally
and convert them into result objects at their public boundary.
"""


class DomainError(Exception):
    """Base exception for domain errors."""
    pass


class InvalidRateError(DomainError):
    """Raised when a rate value is invalid (e.g., negative or zero)."""
    pass


class InvalidConfigurationError(DomainError):
    """Raised when user-entered settings are rejected before persistence."""
    pass


class RatesUnavailableError(DomainError):
    """Raised when no exchange-rate table could be obtained."""
    pass


class MissingPairRateError(DomainError):
    """Raised when the rate table lacks one side of a currency pair."""
    pass


class NotificationDeliveryError(DomainError):
    """Raised by notification centers when scheduling or delivery fails."""
    pass
