"""
Constant metadata attached to every record regardless of its schema.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field, field_validator

from .timestamps import normalize


class UnknownEnumToken(BaseModel):
    """
    A stored enum token that is not part of the current closed token set.

    Returned from ``from_token`` lookups instead of raising, so readers can
    load the rest of a record and report the bad field separately.
    """

    enum_name: str
    token: str
    field_name: str | None = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        target = f" in field '{self.field_name}'" if self.field_name else ""
        return f"unknown {self.enum_name} token {self.token!r}{target}"


class TokenEnum(str, Enum):
    """Closed set of canonical string tokens."""

    @classmethod
    def from_token(cls, token: str) -> "TokenEnum | UnknownEnumToken":
        """
        Look up a member by its canonical token.

        Args:
            token: Stored token string

        Returns:
            The matching member, or UnknownEnumToken when the token is not in the set
        """
        for member in cls:
            if member.value == token:
                return member
        return UnknownEnumToken(enum_name=cls.__name__, token=str(token))

    def to_token(self) -> str:
        return self.value


class WeatherEnum(TokenEnum):
    CLEAR = "CLEAR"
    CLOUDY = "CLOUDY"
    FOG = "FOG"
    HAIL = "HAIL"
    PARTLY_CLOUDY = "PARTLY_CLOUDY"
    RAIN = "RAIN"
    SLEET = "SLEET"
    SNOW = "SNOW"
    THUNDERSTORM = "THUNDERSTORM"
    TORNADO = "TORNADO"
    WIND = "WIND"


class LightEnum(TokenEnum):
    DAY = "DAY"
    DAWN = "DAWN"
    DUSK = "DUSK"
    NIGHT = "NIGHT"


class Location(BaseModel):
    """Latitude/longitude pair; stored both-or-neither."""

    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)

    model_config = {"frozen": True}


class ConstantFields(BaseModel):
    """
    Fixed-shape metadata stored in dedicated columns beside the record body.

    Attributes:
        occurred_from: When the recorded event happened
        location: Where it happened (None when unknown, distinct from 0.0/0.0)
        weather: Weather condition token
        light: Light condition token

    Timestamps are normalized to aware datetimes with whole-second precision,
    matching what the store can persist.
    """

    occurred_from: datetime
    location: Location | None = None
    weather: WeatherEnum | None = None
    light: LightEnum | None = None

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "occurred_from": "2024-01-01T00:00:00+00:00",
                "occurred_to": "2024-01-01T00:00:00+00:00",
                "location": {"latitude": 14.5995, "longitude": 120.9842},
                "weather": "CLEAR",
                "light": "DAY",
            }
        },
    }

    @computed_field
    @property
    def occurred_to(self) -> datetime:
        """Always occurred_from; an occurred_to passed as input is ignored."""
        return self.occurred_from

    @field_validator("occurred_from")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return normalize(v)

    @classmethod
    def now(cls, **kwargs: Any) -> "ConstantFields":
        """Build constants for an event happening right now."""
        return cls(occurred_from=datetime.now().astimezone(), **kwargs)
