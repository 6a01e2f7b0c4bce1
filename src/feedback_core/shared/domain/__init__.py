"""Shared domain types."""

from feedback_core.shared.domain.entities import Submission

__all__ = ["Submission"]
