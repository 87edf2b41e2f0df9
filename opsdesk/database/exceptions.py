"""Custom exceptions for record accessors."""

from typing import Optional


GENERIC_BACKEND_MESSAGE = "Something went wrong. Please try again."


class OpsDeskError(Exception):
    """Base exception for accessor errors."""
    pass


class ValidationError(OpsDeskError):
    """Missing or invalid field value."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(OpsDeskError):
    """Record absent or soft-deleted."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.replace('_', ' ').capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ForbiddenError(OpsDeskError):
    """Current role lacks permission for the operation."""
    pass


class BackendError(OpsDeskError):
    """
    Opaque failure from the row store.

    `user_message` is what the caller may show; the original error text
    only goes to the server log.
    """

    def __init__(self, message: str, user_message: str = GENERIC_BACKEND_MESSAGE):
        super().__init__(message)
        self.user_message = user_message


class TreeIntegrityError(OpsDeskError):
    """A task tree holds the same node id more than once."""
    pass
