"""Errors raised by store implementations."""

from __future__ import annotations


class NotFoundError(RuntimeError):
    """Raised when an instance, template or conversation could not be located."""


class PersistenceError(RuntimeError):
    """Raised when the store rejects an operation."""
