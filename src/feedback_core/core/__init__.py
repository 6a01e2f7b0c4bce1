"""
Core Module
============

Shared core utilities and abstractions used across the pipeline.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from feedback_core.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ConfigurationError,
    ContentionRetryable,
    ValidationIgnorable,
    ExternalServiceException,
    TicketServiceException,
    LLMException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ConfigurationError",
    "ContentionRetryable",
    "ValidationIgnorable",
    "ExternalServiceException",
    "TicketServiceException",
    "LLMException",
]
