from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class FlightCategory(str, Enum):
    VFR = "VFR"
    MVFR = "MVFR"
    IFR = "IFR"


class TrainingLevel(str, Enum):
    STUDENT_PILOT = "student-pilot"
    PRIVATE_PILOT = "private-pilot"
    INSTRUMENT_RATED = "instrument-rated"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ")


class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    WEATHER_CONFLICT = "weather-conflict"
    RESCHEDULED = "rescheduled"


def parse_timestamp(value: Any) -> datetime:
    """Read a datetime or ISO-8601 string; naive values are taken as UTC."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError("timestamp must be a datetime or ISO-8601 string")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class WeatherReading:
    """Canonical weather at one point in time.

    The summaries are display strings in aviation units (knots, statute
    miles). The numeric fields they were formatted from are kept alongside so
    minimums checks do not depend on re-parsing text; readings built by hand
    may leave them unset.
    """

    temperature_f: float
    wind_summary: str
    visibility_summary: str
    sky_summary: str
    flight_category: FlightCategory
    observed_at: datetime
    visibility_miles: Optional[float] = None
    wind_speed_knots: Optional[int] = None
    wind_direction_degrees: Optional[int] = None
    cloud_coverage_percent: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature_f,
            "winds": self.wind_summary,
            "visibility": self.visibility_summary,
            "sky": self.sky_summary,
            "conditions": self.flight_category.value,
            "timestamp": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float
    name: str = ""

    @property
    def key(self) -> str:
        return f"{self.lat},{self.lon}"

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lon": self.lon, "name": self.name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Location":
        return cls(lat=float(data["lat"]), lon=float(data["lon"]), name=data.get("name", ""))


@dataclass
class Student:
    """Roster entry for a pilot in training. Read-only to the scheduling core."""

    id: str
    name: str
    training_level: TrainingLevel
    email: str = ""
    hours_logged: Optional[float] = None
    hours_to_next_milestone: Optional[float] = None
    next_milestone: str = ""
    skills_needed: List[str] = field(default_factory=list)
    recent_cancellations: int = 0
    typical_availability: List[str] = field(default_factory=list)
    preferred_time_of_day: str = ""
    training_frequency: str = ""
    last_lesson_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "trainingLevel": self.training_level.value,
            "hoursLogged": self.hours_logged,
            "hoursToNextMilestone": self.hours_to_next_milestone,
            "nextMilestone": self.next_milestone,
            "skillsNeeded": list(self.skills_needed),
            "recentCancellations": self.recent_cancellations,
            "typicalAvailability": list(self.typical_availability),
            "preferredTimeOfDay": self.preferred_time_of_day,
            "trainingFrequency": self.training_frequency,
            "lastLessonDate": self.last_lesson_date.isoformat() if self.last_lesson_date else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Student":
        """Read a roster entry written with either snake_case or camelCase keys."""

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        last_lesson = pick("last_lesson_date", "lastLessonDate")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            training_level=TrainingLevel(pick("training_level", "trainingLevel")),
            email=data.get("email") or "",
            hours_logged=pick("hours_logged", "hoursLogged"),
            hours_to_next_milestone=pick("hours_to_next_milestone", "hoursToNextMilestone"),
            next_milestone=pick("next_milestone", "nextMilestone") or "",
            skills_needed=list(pick("skills_needed", "skillsNeeded") or []),
            recent_cancellations=int(pick("recent_cancellations", "recentCancellations") or 0),
            typical_availability=list(pick("typical_availability", "typicalAvailability") or []),
            preferred_time_of_day=pick("preferred_time_of_day", "preferredTimeOfDay") or "",
            training_frequency=pick("training_frequency", "trainingFrequency") or "",
            last_lesson_date=parse_timestamp(last_lesson) if last_lesson else None,
        )


@dataclass(frozen=True)
class Booking:
    """A scheduled flight lesson.

    Instances are never mutated; status and reschedule changes produce a new
    object so callers can detect updates by identity.
    """

    id: str
    student_id: str
    scheduled_at: datetime
    departure_location: Location
    status: BookingStatus = BookingStatus.SCHEDULED
    aircraft: str = ""
    instructor: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "departure_location": self.departure_location.to_dict(),
            "status": self.status.value,
            "aircraft": self.aircraft,
            "instructor": self.instructor,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Booking":
        return cls(
            id=str(data["id"]),
            student_id=str(data["student_id"]),
            scheduled_at=parse_timestamp(data["scheduled_at"]),
            departure_location=Location.from_dict(data["departure_location"]),
            status=BookingStatus(data.get("status", BookingStatus.SCHEDULED.value)),
            aircraft=data.get("aircraft", ""),
            instructor=data.get("instructor", ""),
        )


@dataclass(frozen=True)
class ConflictDescriptor:
    scheduled_at: datetime
    reason: str
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheduledDate": self.scheduled_at.isoformat(),
            "reason": self.reason,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class SuggestionConditions:
    visibility_summary: str = ""
    wind_summary: str = ""
    sky_summary: str = ""
    temperature_summary: Optional[str] = None


@dataclass(frozen=True)
class AdvisorySuggestion:
    """A candidate reschedule time proposed by the advisory provider.

    Advisory only. ``proposed_at`` is kept exactly as the provider wrote it;
    use :meth:`proposed_datetime` to interpret it.
    """

    proposed_at: str
    reasoning: str
    conditions: SuggestionConditions
    tradeoffs: Optional[str] = None
    benefits: Optional[str] = None

    def proposed_datetime(self) -> Optional[datetime]:
        try:
            return parse_timestamp(self.proposed_at)
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        conditions: Dict[str, Any] = {
            "visibility": self.conditions.visibility_summary,
            "winds": self.conditions.wind_summary,
            "sky": self.conditions.sky_summary,
        }
        if self.conditions.temperature_summary is not None:
            conditions["temperature"] = self.conditions.temperature_summary
        data: Dict[str, Any] = {
            "dateTime": self.proposed_at,
            "reasoning": self.reasoning,
            "conditions": conditions,
        }
        if self.tradeoffs is not None:
            data["tradeoffs"] = self.tradeoffs
        if self.benefits is not None:
            data["benefits"] = self.benefits
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdvisorySuggestion":
        # Provider output is passed through; missing keys become empty values.
        conditions = data.get("conditions")
        if not isinstance(conditions, Mapping):
            conditions = {}
        temperature = conditions.get("temperature")
        return cls(
            proposed_at=str(data.get("dateTime", "")),
            reasoning=str(data.get("reasoning", "")),
            conditions=SuggestionConditions(
                visibility_summary=str(conditions.get("visibility", "")),
                wind_summary=str(conditions.get("winds", "")),
                sky_summary=str(conditions.get("sky", "")),
                temperature_summary=str(temperature) if temperature is not None else None,
            ),
            tradeoffs=data.get("tradeoffs"),
            benefits=data.get("benefits"),
        )
