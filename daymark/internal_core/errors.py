from __future__ import annotations

"""
Typed failure taxonomy shared by every Daymark module.

Design intent:
- Let callers tell bad input, thin data, storage faults, and integrity breaches apart.
- Keep messages human readable; the API passes them through as detail text.
"""


class DaymarkError(Exception):
    """Base class for all domain errors."""


class ValidationError(DaymarkError):
    """Input is malformed or a lifecycle precondition is not met."""


class InsufficientDataError(DaymarkError):
    """The requested analysis window holds no usable records."""


class StorageError(DaymarkError):
    """The record store could not read or write a collection."""


class IntegrityViolation(DaymarkError):
    """An operation would silently alter finalized or system-managed evidence."""
