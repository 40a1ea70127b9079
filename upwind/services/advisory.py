from __future__ import annotations

import json
import re
import textwrap
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from upwind.errors import ParseError
from upwind.logging import get_logger
from upwind.models import AdvisorySuggestion, Booking, ConflictDescriptor, Student, WeatherReading
from upwind.services.llm_client import AdvisoryProvider

logger = get_logger(__name__)

SUGGESTION_COUNT = 3

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

DEFAULT_REASON = "Weather conditions exceed the student's minimums for safe flight."


def describe_conflict(student: Student, reading: Optional[WeatherReading]) -> str:
    if reading is None:
        return DEFAULT_REASON
    summary = ", ".join(
        [
            f"{reading.flight_category.value} conditions",
            f"visibility {reading.visibility_summary}",
            f"winds {reading.wind_summary}",
        ]
    )
    return f"Forecast shows {summary}, which violates {student.training_level.label} minimums."


def build_conflict(
    booking: Booking,
    student: Student,
    reading: Optional[WeatherReading],
    *,
    now: Optional[datetime] = None,
) -> ConflictDescriptor:
    now = now or datetime.now(timezone.utc)
    return ConflictDescriptor(
        scheduled_at=booking.scheduled_at,
        reason=describe_conflict(student, reading),
        notes=f"Generated on {now.isoformat()}",
    )


@dataclass(frozen=True)
class AdvisoryRequest:
    student: Student
    reading: WeatherReading
    conflict: ConflictDescriptor
    prompt: str


def _dump(value: Mapping[str, Any]) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def build_advisory_request(
    student: Student,
    reading: WeatherReading,
    conflict: ConflictDescriptor,
) -> AdvisoryRequest:
    prompt = textwrap.dedent(
        """
        You are an operations coordinator for a flight school. Based on the following context, craft exactly {count} rescheduling suggestions.
        Return ONLY a valid JSON array with objects containing keys: dateTime (ISO-8601 string), reasoning (string), conditions {{ visibility, winds, sky, temperature (optional) }}, tradeoffs (optional), benefits (optional).
        Do not write anything outside the JSON array.

        Student context:
        {student}

        Weather summary:
        {weather}

        Scheduling conflict:
        {conflict}

        Ensure each suggestion is practical, aligned with student needs, and references weather considerations.
        """
    ).strip()
    # Context is substituted after dedent so multi-line JSON does not break it.
    prompt = prompt.format(
        count=SUGGESTION_COUNT,
        student=_dump(student.to_dict()),
        weather=_dump(reading.to_dict()),
        conflict=_dump(conflict.to_dict()),
    )
    return AdvisoryRequest(student=student, reading=reading, conflict=conflict, prompt=prompt)


def extract_payload(reply: str) -> str:
    match = _FENCED_BLOCK.search(reply)
    if match and match.group(1):
        return match.group(1).strip()
    return reply.strip()


def parse_advisory_reply(reply: str) -> List[AdvisorySuggestion]:
    """Parse the provider's reply into suggestions.

    A fenced block (optionally tagged ``json``) wins over the surrounding
    text. Anything that is not a JSON array of objects raises
    :class:`ParseError` with an excerpt of the reply.
    """

    content = extract_payload(reply)
    try:
        data = json.loads(content)
    except ValueError as exc:
        logger.warning("advisory.parse_failed", error=str(exc), length=len(reply))
        raise ParseError("Advisory response was not valid JSON", raw_text=reply) from exc

    if not isinstance(data, list):
        logger.warning("advisory.parse_failed", error="not an array", length=len(reply))
        raise ParseError("Advisory response was not a JSON array", raw_text=reply)
    if not all(isinstance(item, Mapping) for item in data):
        logger.warning("advisory.parse_failed", error="non-object element", length=len(reply))
        raise ParseError("Advisory response contained non-object suggestions", raw_text=reply)
    return [AdvisorySuggestion.from_dict(item) for item in data]


async def request_advisory(
    student: Student,
    reading: WeatherReading,
    conflict: ConflictDescriptor,
    advisory_provider: AdvisoryProvider,
) -> List[AdvisorySuggestion]:
    """Ask the provider for reschedule options. Failures propagate to the caller."""

    request = build_advisory_request(student, reading, conflict)
    logger.info("advisory.request", student_id=student.id, scheduled_at=conflict.scheduled_at.isoformat())
    reply = await advisory_provider.complete(request.prompt)
    suggestions = parse_advisory_reply(reply)
    logger.info("advisory.complete", student_id=student.id, suggestions=len(suggestions))
    return suggestions
