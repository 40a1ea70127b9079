from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .models import WeatherReading
from .services.flight_category import classify_flight_category

Converter = Callable[[Any], Any]

MPH_TO_KNOTS = 0.868976
METERS_PER_STATUTE_MILE = 1609.34


def _half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _descriptions(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    descriptions = []
    for item in value:
        description = item.get("description") if isinstance(item, Mapping) else None
        descriptions.append(description if isinstance(description, str) and description else "conditions")
    return descriptions


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    seconds = _as_float(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


@dataclass(frozen=True)
class FieldMapping:
    """Describes where a raw metric lives in a provider payload and how to coerce it."""

    path: Tuple[str, ...]
    converter: Optional[Converter] = None

    def extract(self, payload: Mapping[str, Any]) -> Any:
        value: Any = payload
        for key in self.path:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
        if self.converter:
            value = self.converter(value)
        return value


# OpenWeather 2.5 layout, shared by current conditions and forecast entries.
OPENWEATHER_MAPPING: Dict[str, FieldMapping] = {
    "temperature_f": FieldMapping(("main", "temp"), _as_float),
    "wind_direction_degrees": FieldMapping(("wind", "deg"), _as_float),
    "wind_speed_mph": FieldMapping(("wind", "speed"), _as_float),
    "visibility_meters": FieldMapping(("visibility",), _as_float),
    "cloud_coverage_percent": FieldMapping(("clouds", "all"), _as_float),
    "descriptions": FieldMapping(("weather",), _descriptions),
    "observed_at": FieldMapping(("dt",), _epoch_to_datetime),
}


@dataclass(frozen=True)
class RawWeatherRecord:
    """One provider weather record with every sub-field optional.

    Built once at the provider boundary; absent or malformed values become
    ``None`` here and are defaulted by :class:`WeatherNormalizer`.
    """

    temperature_f: Optional[float] = None
    wind_direction_degrees: Optional[float] = None
    wind_speed_mph: Optional[float] = None
    visibility_meters: Optional[float] = None
    cloud_coverage_percent: Optional[float] = None
    descriptions: List[str] = field(default_factory=list)
    observed_at: Optional[datetime] = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        mapping: Mapping[str, FieldMapping] = OPENWEATHER_MAPPING,
    ) -> "RawWeatherRecord":
        if not isinstance(payload, Mapping):
            return cls()
        values = {name: field_mapping.extract(payload) for name, field_mapping in mapping.items()}
        values["descriptions"] = values.get("descriptions") or []
        return cls(**values)


RawInput = Union[RawWeatherRecord, Mapping[str, Any]]


def format_winds(direction_degrees: Optional[float], speed_mph: Optional[float]) -> str:
    if direction_degrees is None or speed_mph is None:
        return "Calm"
    return f"{_half_up(direction_degrees)}° at {_half_up(speed_mph * MPH_TO_KNOTS)} kts"


def meters_to_statute_miles(meters: float) -> float:
    return meters / METERS_PER_STATUTE_MILE


def format_visibility(visibility_meters: Optional[float]) -> str:
    if visibility_meters is None:
        return "N/A"
    return f"{meters_to_statute_miles(visibility_meters):.1f} sm"


def build_sky_summary(descriptions: Sequence[str]) -> str:
    if not descriptions:
        return "Clear"
    return ", ".join(description[:1].upper() + description[1:] for description in descriptions)


class WeatherNormalizer:
    """Maps raw provider weather records into :class:`WeatherReading` objects.

    Never raises for missing optional fields: wind falls back to "Calm",
    visibility to "N/A", sky to "Clear" and temperature to 0.
    """

    def __init__(
        self,
        mapping: Mapping[str, FieldMapping] = OPENWEATHER_MAPPING,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._mapping = dict(mapping)
        self._clock = clock

    def to_record(self, raw: RawInput) -> RawWeatherRecord:
        if isinstance(raw, RawWeatherRecord):
            return raw
        return RawWeatherRecord.from_payload(raw, self._mapping)

    def normalize(self, raw: RawInput) -> WeatherReading:
        record = self.to_record(raw)

        visibility_miles = None
        if record.visibility_meters is not None:
            visibility_miles = meters_to_statute_miles(record.visibility_meters)

        calm = record.wind_direction_degrees is None or record.wind_speed_mph is None
        return WeatherReading(
            temperature_f=record.temperature_f if record.temperature_f is not None else 0.0,
            wind_summary=format_winds(record.wind_direction_degrees, record.wind_speed_mph),
            visibility_summary=format_visibility(record.visibility_meters),
            sky_summary=build_sky_summary(record.descriptions),
            flight_category=classify_flight_category(visibility_miles, record.cloud_coverage_percent),
            observed_at=record.observed_at or self._clock(),
            visibility_miles=visibility_miles,
            wind_speed_knots=None if calm else _half_up(record.wind_speed_mph * MPH_TO_KNOTS),
            wind_direction_degrees=None if calm else _half_up(record.wind_direction_degrees),
            cloud_coverage_percent=record.cloud_coverage_percent,
        )


DEFAULT_NORMALIZER = WeatherNormalizer()


def normalize_current(raw: RawInput) -> WeatherReading:
    return DEFAULT_NORMALIZER.normalize(raw)
