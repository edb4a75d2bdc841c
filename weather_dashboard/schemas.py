"""
Request bodies. Field names follow the frontend's camelCase JSON.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from weather_dashboard.profiles import TemperatureUnit, WindUnit

MAX_NAME_LENGTH = 255
MAX_LOCATION_LENGTH = 255


class ProfileUpdate(BaseModel):
    """Partial profile edit; absent fields are left unchanged. Unknown keys (userId, ...) are ignored."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = Field(None, max_length=MAX_NAME_LENGTH)
    temp_unit: TemperatureUnit | None = Field(None, alias="tempUnit")
    wind_unit: WindUnit | None = Field(None, alias="windUnit")
    default_location: str | None = Field(None, alias="defaultLocation", max_length=MAX_LOCATION_LENGTH)

    def changes(self) -> dict[str, Any]:
        """Profile field -> new value, for the fields present in the request."""
        return self.model_dump(exclude_none=True)


class LegacyLoginRequest(BaseModel):
    user_id: str = Field(alias="userId", min_length=1, max_length=MAX_NAME_LENGTH)
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
