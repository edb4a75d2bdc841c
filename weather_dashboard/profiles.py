"""
User profile (display preferences) and the guest profile every anonymous request sees.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class TemperatureUnit(str, Enum):
    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"


class WindUnit(str, Enum):
    KMH = "kmh"
    KNOTS = "knots"
    MS = "ms"


@dataclass(frozen=True)
class Profile:
    user_id: str
    name: str
    temp_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    wind_unit: WindUnit = WindUnit.MS
    default_location: str = "Paros"
    is_authenticated: bool = False

    @property
    def is_guest(self) -> bool:
        return self.user_id == ""

    def to_api(self) -> dict[str, Any]:
        """JSON shape served by GET /api/profile."""
        return {
            "userId": self.user_id,
            "name": self.name,
            "isAuthenticated": self.is_authenticated,
            "tempUnit": self.temp_unit.value,
            "windUnit": self.wind_unit.value,
            "defaultLocation": self.default_location,
        }

    def to_document(self) -> dict[str, Any]:
        """JSON document stored in user_profiles.profile_data (user_id is the row key)."""
        return {
            "name": self.name,
            "tempUnit": self.temp_unit.value,
            "windUnit": self.wind_unit.value,
            "defaultLocation": self.default_location,
            "isAuthenticated": self.is_authenticated,
        }

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> "Profile":
        """
        Lenient parse of a stored document: unknown tempUnit -> celsius, unknown windUnit -> kmh,
        missing keys keep the guest defaults.
        """
        base = guest_profile()
        name = data.get("name")
        location = data.get("defaultLocation")
        authenticated = data.get("isAuthenticated")
        temp = data.get("tempUnit")
        wind = data.get("windUnit")
        return cls(
            user_id=user_id,
            name=name if isinstance(name, str) else base.name,
            temp_unit=_parse_temp(temp) if isinstance(temp, str) else base.temp_unit,
            wind_unit=_parse_wind(wind) if isinstance(wind, str) else base.wind_unit,
            default_location=location if isinstance(location, str) else base.default_location,
            is_authenticated=authenticated if isinstance(authenticated, bool) else base.is_authenticated,
        )

    def with_changes(self, **changes: Any) -> "Profile":
        return replace(self, **changes)


def _parse_temp(value: str) -> TemperatureUnit:
    return TemperatureUnit.FAHRENHEIT if value == TemperatureUnit.FAHRENHEIT.value else TemperatureUnit.CELSIUS


def _parse_wind(value: str) -> WindUnit:
    if value == WindUnit.KNOTS.value:
        return WindUnit.KNOTS
    if value == WindUnit.MS.value:
        return WindUnit.MS
    return WindUnit.KMH


def guest_profile() -> Profile:
    """Anonymous default; never persisted."""
    return Profile(
        user_id="",
        name="Guest",
        temp_unit=TemperatureUnit.CELSIUS,
        wind_unit=WindUnit.MS,
        default_location="Paros",
        is_authenticated=False,
    )


def new_user_profile(user_id: str, name: str) -> Profile:
    """First-login profile: the user's identity, the guest's preferences."""
    return guest_profile().with_changes(user_id=user_id, name=name, is_authenticated=True)
