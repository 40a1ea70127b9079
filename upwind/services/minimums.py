from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Mapping, Optional, Union

from upwind.config import MinimumsSettings, app_config
from upwind.errors import ConfigurationError
from upwind.models import FlightCategory, Student, TrainingLevel, WeatherReading

_VISIBILITY_PATTERN = re.compile(r"([\d.]+)")
_WIND_PATTERN = re.compile(r"([\d.]+)\s*kts", re.IGNORECASE)
_CALM_PATTERN = re.compile(r"calm", re.IGNORECASE)

# Least to most permissive; allowed categories must never shrink along this order.
LEVEL_ORDER = (
    TrainingLevel.STUDENT_PILOT,
    TrainingLevel.PRIVATE_PILOT,
    TrainingLevel.INSTRUMENT_RATED,
)


@dataclass(frozen=True)
class MinimumsRule:
    min_visibility_miles: float
    max_wind_knots: float
    allowed_categories: FrozenSet[FlightCategory]

    @classmethod
    def from_settings(cls, settings: MinimumsSettings) -> "MinimumsRule":
        try:
            categories = frozenset(FlightCategory(value) for value in settings.allowed_categories)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown flight category in minimums: {exc}") from exc
        return cls(
            min_visibility_miles=float(settings.min_visibility_miles),
            max_wind_knots=float(settings.max_wind_knots),
            allowed_categories=categories,
        )


DEFAULT_RULES: Dict[TrainingLevel, MinimumsRule] = {
    TrainingLevel.STUDENT_PILOT: MinimumsRule(5, 15, frozenset({FlightCategory.VFR})),
    TrainingLevel.PRIVATE_PILOT: MinimumsRule(3, 20, frozenset({FlightCategory.VFR, FlightCategory.MVFR})),
    TrainingLevel.INSTRUMENT_RATED: MinimumsRule(1, 25, frozenset(FlightCategory)),
}


class MinimumsTable:
    """Per training level weather minimums."""

    def __init__(self, rules: Mapping[TrainingLevel, MinimumsRule]) -> None:
        missing = [level.value for level in LEVEL_ORDER if level not in rules]
        if missing:
            raise ConfigurationError(f"Minimums missing for training levels: {', '.join(missing)}")
        for lower, higher in zip(LEVEL_ORDER, LEVEL_ORDER[1:]):
            if not rules[lower].allowed_categories <= rules[higher].allowed_categories:
                raise ConfigurationError(
                    f"Allowed categories for {higher.value} must include those for {lower.value}"
                )
        self._rules: Dict[TrainingLevel, MinimumsRule] = dict(rules)

    @classmethod
    def from_settings(cls, settings: Mapping[str, MinimumsSettings]) -> "MinimumsTable":
        if not settings:
            return cls(DEFAULT_RULES)
        rules: Dict[TrainingLevel, MinimumsRule] = {}
        for level_name, level_settings in settings.items():
            try:
                level = TrainingLevel(level_name)
            except ValueError as exc:
                raise ConfigurationError(f"Unknown training level in minimums: {level_name}") from exc
            rules[level] = MinimumsRule.from_settings(level_settings)
        return cls(rules)

    def rule_for(self, level: TrainingLevel) -> MinimumsRule:
        return self._rules[level]


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def parse_visibility_miles(summary: str) -> Optional[float]:
    match = _VISIBILITY_PATTERN.search(summary or "")
    return _to_float(match.group(1)) if match else None


def parse_wind_speed_knots(summary: str) -> Optional[float]:
    if _CALM_PATTERN.search(summary or ""):
        return 0.0
    match = _WIND_PATTERN.search(summary or "")
    return _to_float(match.group(1)) if match else None


def _visibility(reading: WeatherReading) -> Optional[float]:
    if reading.visibility_miles is not None:
        return reading.visibility_miles
    return parse_visibility_miles(reading.visibility_summary)


def _wind_speed(reading: WeatherReading) -> Optional[float]:
    if reading.wind_speed_knots is not None:
        return float(reading.wind_speed_knots)
    return parse_wind_speed_knots(reading.wind_summary)


def passes_minimums(
    level: Union[TrainingLevel, Student],
    reading: WeatherReading,
    *,
    table: Optional[MinimumsTable] = None,
) -> bool:
    """Return True when ``reading`` is within the minimums for ``level``.

    Visibility and wind checks are skipped when the value cannot be
    determined; the flight category check always applies.
    """

    if isinstance(level, Student):
        level = level.training_level
    rule = (table or DEFAULT_TABLE).rule_for(level)

    visibility = _visibility(reading)
    wind_speed = _wind_speed(reading)

    visibility_ok = visibility is None or visibility >= rule.min_visibility_miles
    wind_ok = wind_speed is None or wind_speed <= rule.max_wind_knots
    category_ok = reading.flight_category in rule.allowed_categories
    return visibility_ok and wind_ok and category_ok


DEFAULT_TABLE = MinimumsTable.from_settings(app_config.minimums)
