from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from upwind.config import app_config
from upwind.errors import ConfigurationError, ParseError, ProviderError
from upwind.logging import get_logger, setup_logging, trace
from upwind.models import AdvisorySuggestion, Booking, Student, WeatherReading
from upwind.normalization import normalize_current
from upwind.roster import RosterStore
from upwind.scheduler import build_scheduler
from upwind.services.advisory import build_conflict, request_advisory
from upwind.services.conflicts import CancellationToken, ConflictScanner, accept_suggestion
from upwind.services.forecast import summarize_forecast
from upwind.services.llm_client import AdvisoryProvider, LLMClient
from upwind.services.weather import OpenWeatherProvider, WeatherProvider

setup_logging(app_config.logging)
logger = get_logger(__name__)

app = FastAPI(title="Upwind Scheduling API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class WeatherPayload(BaseModel):
    temperature: float
    winds: str
    visibility: str
    sky: str
    conditions: str
    timestamp: datetime


class LocationPayload(BaseModel):
    lat: float
    lon: float
    name: str = ""


class BookingPayload(BaseModel):
    id: str
    student_id: str
    scheduled_at: datetime
    departure_location: LocationPayload
    status: str
    aircraft: str = ""
    instructor: str = ""


class BookingsResponse(BaseModel):
    student_id: str
    changed: bool = False
    bookings: List[BookingPayload]


class SuggestionConditionsPayload(BaseModel):
    visibility: str
    winds: str
    sky: str
    temperature: Optional[str] = None


class SuggestionPayload(BaseModel):
    dateTime: str
    reasoning: str
    conditions: SuggestionConditionsPayload
    tradeoffs: Optional[str] = None
    benefits: Optional[str] = None


class SuggestionsResponse(BaseModel):
    booking_id: str
    reason: str
    suggestions: List[SuggestionPayload]


class RescheduleRequest(BaseModel):
    student_id: str
    booking_id: str


class AcceptRequest(BaseModel):
    proposed_at: str


roster = RosterStore.from_path(app_config.roster_path)
weather_provider: WeatherProvider = OpenWeatherProvider(forecast_days=app_config.scan.forecast_days)
advisory_provider: AdvisoryProvider = LLMClient()

# Latest scan per student; starting a new scan supersedes the previous one.
_scan_tokens: Dict[str, CancellationToken] = {}


@app.exception_handler(ConfigurationError)
async def _configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("api.configuration_error", error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Service is not configured", "details": str(exc)})


@app.exception_handler(ProviderError)
async def _provider_error(_: Request, exc: ProviderError) -> JSONResponse:
    logger.error("api.provider_error", provider=exc.provider, status_code=exc.status_code, error=str(exc))
    return JSONResponse(
        status_code=502,
        content={"error": "Upstream provider failed", "details": exc.detail if exc.detail is not None else str(exc)},
    )


@app.exception_handler(ParseError)
async def _parse_error(_: Request, exc: ParseError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"error": "Unable to generate rescheduling options", "details": str(exc)},
    )


def _weather_payload(reading: WeatherReading) -> WeatherPayload:
    return WeatherPayload(**reading.to_dict())


def _booking_payload(booking: Booking) -> BookingPayload:
    return BookingPayload(**booking.to_dict())


def _suggestion_payload(suggestion: AdvisorySuggestion) -> SuggestionPayload:
    return SuggestionPayload(**suggestion.to_dict())


def _require_student(student_id: str) -> Student:
    student = roster.get_student(student_id)
    if student is None:
        raise HTTPException(status_code=404, detail=f"Unknown student {student_id}")
    return student


def _cancel_scan(student_id: str) -> None:
    token = _scan_tokens.pop(student_id, None)
    if token is not None:
        token.cancel()


async def scan_student(student: Student) -> bool:
    _cancel_scan(student.id)
    token = CancellationToken()
    _scan_tokens[student.id] = token

    scanner = ConflictScanner(weather_provider, config=app_config.scan)
    try:
        with trace(student_id=student.id):
            bookings = await scanner.scan(student, roster.bookings_for(student.id), cancel_token=token)
    finally:
        if _scan_tokens.get(student.id) is token:
            del _scan_tokens[student.id]
    if token.cancelled:
        return False
    return roster.publish(student.id, bookings)


async def rescan_all() -> None:
    logger.info("rescan.start")
    for student in roster.students():
        try:
            await scan_student(student)
        except ConfigurationError as exc:
            logger.error("rescan.error", student_id=student.id, error=str(exc))
            return
    logger.info("rescan.complete")


@app.get("/weather/current", response_model=WeatherPayload)
async def get_current_weather(lat: float = Query(...), lon: float = Query(...)) -> WeatherPayload:
    raw = await weather_provider.fetch_current(lat, lon)
    return _weather_payload(normalize_current(raw))


@app.get("/weather/forecast", response_model=List[WeatherPayload])
async def get_forecast(
    lat: float = Query(...), lon: float = Query(...), days: int = Query(3)
) -> List[WeatherPayload]:
    raw = await weather_provider.fetch_forecast(lat, lon)
    return [_weather_payload(reading) for reading in summarize_forecast(raw, days)]


@app.get("/students/{student_id}/bookings", response_model=BookingsResponse)
def get_bookings(student_id: str) -> BookingsResponse:
    _require_student(student_id)
    bookings = roster.bookings_for(student_id)
    return BookingsResponse(student_id=student_id, bookings=[_booking_payload(b) for b in bookings])


@app.post("/students/{student_id}/scan", response_model=BookingsResponse)
async def post_scan(student_id: str) -> BookingsResponse:
    student = _require_student(student_id)
    changed = await scan_student(student)
    bookings = roster.bookings_for(student_id)
    return BookingsResponse(student_id=student_id, changed=changed, bookings=[_booking_payload(b) for b in bookings])


@app.post("/reschedule", response_model=SuggestionsResponse)
async def post_reschedule(body: RescheduleRequest) -> SuggestionsResponse:
    student = _require_student(body.student_id)
    booking = roster.find_booking(body.booking_id)
    if booking is None or booking.student_id != student.id:
        raise HTTPException(status_code=404, detail=f"Unknown booking {body.booking_id}")

    location = booking.departure_location
    forecast = summarize_forecast(
        await weather_provider.fetch_forecast(location.lat, location.lon),
        app_config.scan.forecast_days,
    )
    if not forecast:
        raise ProviderError("No forecast available for the departure location", provider="openweather")

    lesson_day = booking.scheduled_at.astimezone(timezone.utc).date()
    lesson_reading = next(
        (reading for reading in forecast if reading.observed_at.date() == lesson_day),
        forecast[0],
    )
    conflict = build_conflict(booking, student, lesson_reading)
    with trace(student_id=student.id, booking_id=booking.id):
        suggestions = await request_advisory(student, forecast[0], conflict, advisory_provider)
    return SuggestionsResponse(
        booking_id=booking.id,
        reason=conflict.reason,
        suggestions=[_suggestion_payload(suggestion) for suggestion in suggestions],
    )


@app.post("/bookings/{booking_id}/accept", response_model=BookingPayload)
def post_accept(booking_id: str, body: AcceptRequest) -> BookingPayload:
    booking = roster.find_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Unknown booking {booking_id}")
    try:
        updated = accept_suggestion(booking, body.proposed_at)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid proposed time: {exc}") from exc

    # A scan still in flight was computed from the pre-accept list.
    _cancel_scan(booking.student_id)
    bookings = [updated if item.id == booking_id else item for item in roster.bookings_for(booking.student_id)]
    roster.publish(booking.student_id, bookings)
    logger.info("booking.rescheduled", booking_id=booking_id, scheduled_at=updated.scheduled_at.isoformat())
    return _booking_payload(updated)


_scheduler = build_scheduler(rescan_all, app_config.scheduler)


@app.on_event("startup")
async def _start_scheduler() -> None:
    if _scheduler and not _scheduler.running:
        logger.info("scheduler.start")
        _scheduler.start()


@app.on_event("shutdown")
async def _stop_scheduler() -> None:
    if _scheduler and _scheduler.running:
        logger.info("scheduler.stop")
        _scheduler.shutdown()
    for provider in (weather_provider, advisory_provider):
        close = getattr(provider, "aclose", None)
        if close is not None:
            await close()
