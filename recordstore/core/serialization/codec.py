"""
Record body codec.

Converts between in-memory record bodies (nested dicts, lists and scalars, or
Pydantic models) and canonical JSON text. Pure functions, no I/O, no schema
validation unless the caller passes an explicit hint.
"""

import json
from typing import Any

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from recordstore.core.errors import MalformedRecordData


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def serialize(body: Any) -> str:
    """
    Serialize a record body to canonical JSON text.

    Keys are sorted and separators compact, so serializing the same logical
    value twice yields identical text.

    Args:
        body: Nested JSON-compatible structure or Pydantic model

    Returns:
        Serialized JSON text

    Raises:
        MalformedRecordData: If the body holds values JSON cannot represent
            or is nested too deeply to encode
    """
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json")

    try:
        return json.dumps(
            body,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedRecordData(f"body is not serializable: {e}", operation="serialize") from e


def deserialize(text: str | None, schema_hint: Any = None) -> Any:
    """
    Deserialize record body text.

    Args:
        text: JSON text as produced by serialize()
        schema_hint: Optional Pydantic model class (or any type understood by
            pydantic.TypeAdapter) to validate the parsed structure into

    Returns:
        The parsed body, or an instance of schema_hint when given

    Raises:
        MalformedRecordData: If the text is missing, malformed or truncated,
            or does not match schema_hint
    """
    if text is None:
        raise MalformedRecordData("no record data to deserialize")
    if not isinstance(text, str):
        raise MalformedRecordData(f"record data must be text, got {type(text).__name__}")

    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedRecordData(f"invalid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedRecordData("invalid JSON: nesting too deep to decode") from e

    if schema_hint is None:
        return value

    try:
        return TypeAdapter(schema_hint).validate_python(value)
    except PydanticValidationError as e:
        raise MalformedRecordData(
            f"data does not match {getattr(schema_hint, '__name__', schema_hint)}: "
            f"{e.error_count()} validation error(s)"
        ) from e


def is_serializable(body: Any) -> bool:
    """Check whether a body can be written by serialize()."""
    try:
        serialize(body)
    except MalformedRecordData:
        return False
    return True
