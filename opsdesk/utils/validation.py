"""
Runtime input validation at the accessor boundary.

Form payloads are untyped dicts; accessors run them through the pydantic
models in `opsdesk.models.api_validation` and get the taxonomy's
ValidationError on failure.
"""

import logging
from typing import Any, Dict, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..database.exceptions import ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_validation_error(error: PydanticValidationError) -> str:
    """First error as `field: message`, the way forms display it."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    message = first.get("msg", "Invalid value")
    # pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def parse_input(model: Type[ModelT], data: Union[ModelT, Dict[str, Any], None]) -> ModelT:
    """
    Validate `data` against `model`.

    Already-validated model instances are passed through unchanged.

    Raises:
        ValidationError: with the first failing field
    """
    if isinstance(data, model):
        return data
    if data is None:
        data = {}
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    if not isinstance(data, dict):
        raise ValidationError(f"Expected an object, got {type(data).__name__}")

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        message = format_validation_error(e)
        logger.debug(f"Rejected {model.__name__} input: {message}")
        raise ValidationError(message, field=field) from e


def contains_pattern(term: str) -> str:
    """LIKE pattern matching `term` anywhere, with its own wildcards escaped (escape char `\\`)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
