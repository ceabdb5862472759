"""
Error taxonomy for coordination operations.

All errors are recoverable at the viewer level: the viewer surfaces them as a
dismissible notice and keeps its session. Nothing here is retried automatically.
"""

from typing import Optional


class ClassDeskError(Exception):
    """Base class for all ClassDesk errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClassDeskError):
    """A required field is missing or malformed; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(ClassDeskError):
    """
    A uniqueness or ownership constraint rejected the write.

    For thread locks, owner_id / owner_name name the SA currently holding it.
    """

    def __init__(
        self,
        message: str,
        owner_id: Optional[str] = None,
        owner_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.owner_id = owner_id
        self.owner_name = owner_name


class NotFoundError(ClassDeskError):
    """The course, thread, lock or message no longer exists."""


class PermissionDeniedError(ClassDeskError):
    """The viewer is acting outside its role."""


class TransientIOError(ClassDeskError):
    """Store, network or subscription failure. Surfaced once per attempt."""
