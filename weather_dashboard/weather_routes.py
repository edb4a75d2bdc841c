"""
Weather proxy: /api/weather/current and /api/weather/forecast, rate limited per client IP.
"""
from fastapi import APIRouter, Depends, HTTPException

from weather_dashboard.deps import Context, enforce_rate_limit
from weather_dashboard.weather import WeatherServiceError

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

MIN_FORECAST_DAYS = 1
MAX_FORECAST_DAYS = 14


def _flag(value: str | None) -> bool:
    return value is not None and value.lower() == "true"


@router.get("/api/weather/current")
def current_weather(
    ctx: Context,
    location: str | None = None,
    include_aqi: str | None = None,
):
    if not location:
        raise HTTPException(status_code=400, detail="Missing 'location' parameter")
    try:
        return ctx.weather.current(location, include_aqi=_flag(include_aqi))
    except WeatherServiceError:
        raise HTTPException(status_code=500, detail="Failed to fetch weather data")


@router.get("/api/weather/forecast")
def weather_forecast(
    ctx: Context,
    location: str | None = None,
    days: str | None = None,
    include_aqi: str | None = None,
    include_alerts: str | None = None,
    include_hourly: str | None = None,
):
    if not location or not days:
        raise HTTPException(status_code=400, detail="Missing 'location' or 'days' parameter")
    try:
        n_days = int(days)
    except ValueError:
        n_days = 0
    if not MIN_FORECAST_DAYS <= n_days <= MAX_FORECAST_DAYS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid days parameter (must be {MIN_FORECAST_DAYS}-{MAX_FORECAST_DAYS})",
        )
    try:
        return ctx.weather.forecast(
            location,
            n_days,
            include_aqi=_flag(include_aqi),
            include_alerts=_flag(include_alerts),
            include_hourly=_flag(include_hourly),
        )
    except WeatherServiceError:
        raise HTTPException(status_code=500, detail="Failed to fetch forecast data")
