"""
Translation of row store failures into the accessor error taxonomy.

Raw database text is logged server-side only; callers see either a friendly
constraint message (ValidationError) or the generic BackendError message.
"""

import logging
import re
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database.exceptions import ValidationError, BackendError

logger = logging.getLogger(__name__)


_UNIQUE_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),
    re.compile(r"duplicate key value violates unique constraint.*Key \((\w+)\)", re.S),
)
_NOT_NULL_PATTERNS = (
    re.compile(r"NOT NULL constraint failed: \w+\.(\w+)"),
    re.compile(r'null value in column "(\w+)"'),
)
_FOREIGN_KEY_MARKERS = ("FOREIGN KEY constraint failed", "violates foreign key constraint")


def parse_integrity_error(error: IntegrityError) -> str:
    """Turn a constraint violation into a message that can be shown to users."""
    raw = str(error.orig) if error.orig is not None else str(error)

    for pattern in _UNIQUE_PATTERNS:
        match = pattern.search(raw)
        if match:
            return f"A record with this {match.group(1).replace('_', ' ')} already exists"

    for pattern in _NOT_NULL_PATTERNS:
        match = pattern.search(raw)
        if match:
            return f"{match.group(1).replace('_', ' ').capitalize()} is required"

    if any(marker in raw for marker in _FOREIGN_KEY_MARKERS):
        return "A referenced record does not exist"

    return "The record violates a data constraint"


@contextmanager
def backend_errors(context: str) -> Iterator[None]:
    """
    Wrap a unit of row store work.

    Usage:
        with backend_errors("create task"):
            async with self.db.session() as session:
                ...

    Wrapping the whole session block means failures raised at commit are
    translated too.
    """
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"Constraint violation during {context}: {e.orig}")
        raise ValidationError(parse_integrity_error(e)) from e
    except SQLAlchemyError as e:
        logger.error(f"CRITICAL: {context} failed: {e}", exc_info=True)
        raise BackendError(f"{context} failed: {e}") from e
    except OSError as e:
        # Connection refused / reset from the driver
        logger.error(f"CRITICAL: {context} failed, store unreachable: {e}", exc_info=True)
        raise BackendError(f"{context} failed: {e}") from e
