from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from upwind.logging import get_logger
from upwind.models import WeatherReading
from upwind.normalization import DEFAULT_NORMALIZER, RawInput, RawWeatherRecord, WeatherNormalizer

logger = get_logger(__name__)

MAX_FORECAST_DAYS = 7
ENTRIES_PER_DAY = 8  # 3-hour steps
AFTERNOON_START_HOUR = 15
AFTERNOON_END_HOUR = 21


def clamp_days(days: int) -> int:
    return min(max(int(days), 1), MAX_FORECAST_DAYS)


def _entries(raw: Union[Sequence[RawInput], Mapping[str, Any]]) -> Sequence[RawInput]:
    if isinstance(raw, Mapping):
        entries = raw.get("list")
        return entries if isinstance(entries, list) else []
    return raw


def _representative(records: List[RawWeatherRecord]) -> RawWeatherRecord:
    for record in records:
        if AFTERNOON_START_HOUR <= record.observed_at.hour <= AFTERNOON_END_HOUR:
            return record
    return records[len(records) // 2]


def summarize_forecast(
    raw: Union[Sequence[RawInput], Mapping[str, Any]],
    days: int,
    *,
    normalizer: Optional[WeatherNormalizer] = None,
) -> List[WeatherReading]:
    """Reduce dense forecast steps to one reading per UTC calendar day.

    Each day is represented by its first entry between 15:00 and 21:00 UTC,
    or by its middle entry when no afternoon step exists. At most ``days``
    readings (clamped to 1..7) are returned, in the order the dates first
    appear.
    """

    normalizer = normalizer or DEFAULT_NORMALIZER
    max_days = clamp_days(days)

    grouped: Dict[date, List[RawWeatherRecord]] = {}
    for entry in _entries(raw):
        record = normalizer.to_record(entry)
        if record.observed_at is None:
            logger.debug("forecast.entry_undated")
            continue
        grouped.setdefault(record.observed_at.date(), []).append(record)

    summaries: List[WeatherReading] = []
    for records in grouped.values():
        summaries.append(normalizer.normalize(_representative(records)))
        if len(summaries) >= max_days:
            break
    return summaries
