"""
Core data models for the record store.

All models use Pydantic for runtime validation and type safety.
"""

from .constant_fields import (
    ConstantFields,
    LightEnum,
    Location,
    TokenEnum,
    UnknownEnumToken,
    WeatherEnum,
)
from .record import Record, RecordSummary
from .results import AddResult, DeleteResult, LookupStatus, RecordLookup, UpdateResult

__all__ = [
    "ConstantFields",
    "Location",
    "TokenEnum",
    "WeatherEnum",
    "LightEnum",
    "UnknownEnumToken",
    "Record",
    "RecordSummary",
    "AddResult",
    "UpdateResult",
    "DeleteResult",
    "LookupStatus",
    "RecordLookup",
]
