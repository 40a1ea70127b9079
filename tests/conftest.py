from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from upwind.errors import ProviderError
from upwind.models import Booking, BookingStatus, Location, Student, TrainingLevel

FCM = Location(lat=44.827, lon=-93.457, name="Flying Cloud Airport (FCM)")
MIC = Location(lat=45.062, lon=-93.354, name="Crystal Airport (MIC)")

SM_IN_METERS = 1609.34
KTS_IN_MPH = 1 / 0.868976


def make_entries(
    start: datetime,
    days: int,
    *,
    visibility_sm: Optional[float] = 10.0,
    wind_kts: Optional[float] = 5.0,
    clouds: float = 10.0,
    descriptions: Sequence[str] = ("clear sky",),
    step_hours: int = 3,
) -> List[Dict[str, Any]]:
    """Forecast entries in the OpenWeather layout, every ``step_hours`` from ``start``."""

    entries = []
    moment = start
    end = start + timedelta(days=days)
    while moment < end:
        entry: Dict[str, Any] = {
            "dt": int(moment.timestamp()),
            "main": {"temp": 61.0},
            "clouds": {"all": clouds},
            "weather": [{"description": text} for text in descriptions],
        }
        if visibility_sm is not None:
            entry["visibility"] = visibility_sm * SM_IN_METERS
        if wind_kts is not None:
            entry["wind"] = {"deg": 270, "speed": wind_kts * KTS_IN_MPH}
        entries.append(entry)
        moment += timedelta(hours=step_hours)
    return entries


class FakeWeatherProvider:
    def __init__(
        self,
        forecasts: Dict[Tuple[float, float], Any],
        *,
        delay: float = 0.0,
        on_fetch: Optional[Callable[[float, float], None]] = None,
    ) -> None:
        self.forecasts = forecasts
        self.delay = delay
        self.on_fetch = on_fetch
        self.calls: List[Tuple[float, float]] = []

    async def fetch_current(self, lat: float, lon: float) -> Dict[str, Any]:
        entries = await self.fetch_forecast(lat, lon)
        return entries[0]

    async def fetch_forecast(self, lat: float, lon: float) -> List[Dict[str, Any]]:
        self.calls.append((lat, lon))
        if self.on_fetch:
            self.on_fetch(lat, lon)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.forecasts.get((lat, lon), [])
        if isinstance(result, Exception):
            raise result
        return result


class FakeAdvisoryProvider:
    def __init__(self, reply: str = "[]", *, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, request_text: str) -> str:
        self.prompts.append(request_text)
        if self.error:
            raise self.error
        return self.reply


def make_student(level: TrainingLevel = TrainingLevel.PRIVATE_PILOT, student_id: str = "s1") -> Student:
    return Student(id=student_id, name="Avery Lind", training_level=level, email="avery@example.com")


def make_booking(
    booking_id: str,
    scheduled_at: datetime,
    *,
    location: Location = FCM,
    status: BookingStatus = BookingStatus.SCHEDULED,
    student_id: str = "s1",
) -> Booking:
    return Booking(
        id=booking_id,
        student_id=student_id,
        scheduled_at=scheduled_at,
        departure_location=location,
        status=status,
        aircraft="N172SP",
        instructor="J. Ortiz",
    )


THREE_SUGGESTIONS = """Here are the options:
```json
[
  {"dateTime": "2024-06-05T15:00:00Z", "reasoning": "High pressure builds in.",
   "conditions": {"visibility": "10.0 sm", "winds": "180° at 6 kts", "sky": "Clear", "temperature": "68°F"},
   "benefits": "Smooth air for pattern work"},
  {"dateTime": "2024-06-06T14:00:00Z", "reasoning": "Front has passed.",
   "conditions": {"visibility": "8.0 sm", "winds": "300° at 10 kts", "sky": "Few clouds"},
   "tradeoffs": "Slight crosswind"},
  {"dateTime": "2024-06-07T16:00:00Z", "reasoning": "Best ceilings of the week.",
   "conditions": {"visibility": "9.0 sm", "winds": "Calm", "sky": "Scattered clouds"}}
]
```"""


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def forecast_start() -> datetime:
    return datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def provider_failure() -> ProviderError:
    return ProviderError("openweather responded with 503", provider="openweather", status_code=503)
