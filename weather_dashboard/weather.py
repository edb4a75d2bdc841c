"""
Client for the weather microservice. Responses are passed through to the browser unchanged.
"""
import logging
from typing import Any

import httpx

from weather_dashboard.config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

USER_AGENT = "Weather-Dashboard/1.0"


class WeatherServiceError(Exception):
    """The weather service could not be reached or did not answer 200."""


def _flag(value: bool) -> str:
    return "true" if value else "false"


class WeatherClient:
    def __init__(
        self,
        base_url: str,
        http: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout, follow_redirects=True)
        self._owns_http = http is None
        self.timeout = timeout

    def current(self, location: str, include_aqi: bool = False) -> Any:
        return self._get("/current", {"location": location, "include_aqi": _flag(include_aqi)})

    def forecast(
        self,
        location: str,
        days: int,
        include_aqi: bool = False,
        include_alerts: bool = False,
        include_hourly: bool = False,
    ) -> Any:
        return self._get(
            "/forecast",
            {
                "location": location,
                "days": days,
                "include_aqi": _flag(include_aqi),
                "include_alerts": _flag(include_alerts),
                "include_hourly": _flag(include_hourly),
            },
        )

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self._http.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Weather service request to %s failed: %s", url, e)
            raise WeatherServiceError(str(e)) from e
        if r.status_code != 200:
            logger.error("Weather service %s returned HTTP %d: %s", url, r.status_code, r.text[:500])
            raise WeatherServiceError(f"HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            logger.error("Weather service %s returned invalid JSON", url)
            raise WeatherServiceError("Invalid JSON from weather service") from e

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
