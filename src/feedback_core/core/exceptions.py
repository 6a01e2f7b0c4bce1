"""
Core Exceptions
================

Custom exceptions for the submission pipeline following clean architecture
principles.

Quota exhaustion is deliberately absent: a rejected admission is a result
(``AdmissionDecision.accepted is False``), not an error.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all library errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for invalid caller input (e.g. missing tenant or form id)."""


class ConfigurationError(ApplicationException):
    """
    Missing or invalid quota, rule or threshold definitions.

    Fatal to the call that hit it: no partial processing happens.
    """


class ContentionRetryable(RepositoryException):
    """
    A counter or alert store operation lost a race.

    Retried internally with bounded attempts, then surfaced to the caller
    as a transient failure.
    """

    def __init__(
        self,
        operation: str,
        attempts: int = 1,
        details: Optional[dict] = None
    ):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Storage contention during {operation} (attempts: {attempts})",
            details
        )


class ValidationIgnorable(DomainException):
    """
    Malformed attribute or text input.

    Raised only inside the classification engine and always absorbed into a
    safe default (predicate does not match, fallback persona).
    """


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class TicketServiceException(ExternalServiceException):
    """Exception for ticket creation failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Ticket Service", message, details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)
