"""Exceptions raised by the classroom services.

Every service failure is one of the four kinds below. The HTTP layer maps each
kind onto a status code; nothing in the services retries.
"""

from __future__ import annotations


class ClassroomError(Exception):
    """Base class for failures surfaced to the caller of a service action."""


class ValidationError(ClassroomError):
    """A required field is missing or malformed. Nothing was written."""


class NotFoundError(ClassroomError):
    """A referenced class, course, unit, lesson or quiz does not exist."""


class LimitExceededError(ClassroomError):
    """The student already used every allowed attempt for a quiz."""


class AuthError(ClassroomError):
    """Credentials were rejected or the selected role does not match."""
