"""
Input validation utilities for the record store.

Provides reusable checks for record ids, schema version tags and query
limits, applied at the store and CLI boundaries before any SQL is issued.
"""


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


def validate_record_id(record_id: int, field_name: str = "record_id") -> int:
    """
    Validate a record row id.

    Ids are integers. Ids that were never assigned (0, or any id not in the
    table) are valid input: update/delete on them are zero-affect no-ops.

    Args:
        record_id: The id to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated id

    Raises:
        ValidationError: If the id is not an integer or is negative

    Examples:
        >>> validate_record_id(42)
        42
        >>> validate_record_id("42")  # doctest: +SKIP
        ValidationError: record_id must be an integer, got str
    """
    # bool is an int subclass
    if isinstance(record_id, bool) or not isinstance(record_id, int):
        raise ValidationError(f"{field_name} must be an integer, got {type(record_id).__name__}")

    if record_id < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer, got {record_id}")

    return record_id


def validate_schema_version(schema_version: str, field_name: str = "schema_version") -> str:
    """
    Validate a schema version tag.

    The tag is opaque to the store; it only has to be a non-empty string of
    reasonable length.

    Args:
        schema_version: Schema version identifier (usually a UUID)
        field_name: Name of the field (for error messages)

    Returns:
        The validated tag (stripped of whitespace)

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_schema_version("v1")
        'v1'
        >>> validate_schema_version("  5a4b1c3e-0000-4000-8000-000000000000 ")
        '5a4b1c3e-0000-4000-8000-000000000000'
    """
    if not schema_version or not isinstance(schema_version, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    schema_version = schema_version.strip()

    if not schema_version:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if len(schema_version) > 255:
        raise ValidationError(f"{field_name} exceeds maximum length of 255 characters")

    return schema_version


def validate_limit(limit: int, field_name: str = "limit", max_limit: int = 10000) -> int:
    """
    Validate a limit parameter for listings.

    Args:
        limit: The limit value to validate
        field_name: Name of the field (for error messages)
        max_limit: Maximum allowed limit value

    Returns:
        The validated limit value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationError(f"{field_name} must be an integer, got {type(limit).__name__}")

    if limit <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {limit}")

    if limit > max_limit:
        raise ValidationError(f"{field_name} exceeds maximum of {max_limit}")

    return limit
