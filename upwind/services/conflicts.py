from __future__ import annotations

import asyncio
import dataclasses
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from upwind.config import ScanConfig, app_config
from upwind.errors import ProviderError
from upwind.logging import get_logger
from upwind.models import Booking, BookingStatus, Location, Student, WeatherReading, parse_timestamp
from upwind.services.forecast import summarize_forecast
from upwind.services.minimums import MinimumsTable, passes_minimums
from upwind.services.weather import WeatherProvider

logger = get_logger(__name__)


class CancellationToken:
    """Flag shared between a scan and whoever may supersede it."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def _utc_date(value: datetime) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


class ConflictScanner:
    """Re-evaluates a student's near-term bookings against forecast weather.

    Bookings are never modified in place. The scan returns the input sequence
    itself when no status changes, and otherwise a new list in which only the
    bookings whose status changed are new objects.
    """

    def __init__(
        self,
        weather_provider: WeatherProvider,
        *,
        config: Optional[ScanConfig] = None,
        table: Optional[MinimumsTable] = None,
    ) -> None:
        self.weather_provider = weather_provider
        self.config = config or app_config.scan
        self.table = table

    def _day_offset(self, booking: Booking, today: date) -> int:
        return (_utc_date(booking.scheduled_at) - today).days

    def _in_window(self, booking: Booking, today: date) -> bool:
        return 0 <= self._day_offset(booking, today) < self.config.window_days

    async def _fetch_daily(self, location: Location, timeout: float) -> Optional[List[WeatherReading]]:
        try:
            raw = await asyncio.wait_for(
                self.weather_provider.fetch_forecast(location.lat, location.lon),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("scan.location_failed", location=location.key, error="timeout")
            return None
        except ProviderError as exc:
            logger.warning(
                "scan.location_failed",
                location=location.key,
                error=str(exc),
                status_code=exc.status_code,
            )
            return None
        try:
            return summarize_forecast(raw, self.config.forecast_days)
        except (TypeError, ValueError, OverflowError) as exc:
            logger.warning("scan.location_failed", location=location.key, error=f"unreadable forecast: {exc}")
            return None

    def _status_for(
        self,
        booking: Booking,
        student: Student,
        forecasts: Dict[str, Optional[List[WeatherReading]]],
    ) -> Optional[BookingStatus]:
        daily = forecasts.get(booking.departure_location.key)
        if daily is None:
            # Forecast unavailable; keep whatever status the booking had.
            return None
        target = _utc_date(booking.scheduled_at)
        reading = next((item for item in daily if _utc_date(item.observed_at) == target), None)
        if reading is not None and not passes_minimums(student, reading, table=self.table):
            return BookingStatus.WEATHER_CONFLICT
        return BookingStatus.SCHEDULED

    async def scan(
        self,
        student: Student,
        bookings: Sequence[Booking],
        *,
        now: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> Sequence[Booking]:
        now = now or datetime.now(timezone.utc)
        today = _utc_date(now)
        timeout = timeout if timeout is not None else self.config.fetch_timeout

        candidates = [
            booking
            for booking in bookings
            if booking.student_id == student.id and booking.status is not BookingStatus.RESCHEDULED
        ]
        in_window = [booking for booking in candidates if self._in_window(booking, today)]

        locations: Dict[str, Location] = {}
        for booking in in_window:
            locations.setdefault(booking.departure_location.key, booking.departure_location)

        logger.info(
            "scan.start",
            student_id=student.id,
            bookings=len(candidates),
            in_window=len(in_window),
            locations=len(locations),
        )

        if cancel_token and cancel_token.cancelled:
            logger.info("scan.cancelled", student_id=student.id)
            return bookings

        results = await asyncio.gather(*(self._fetch_daily(location, timeout) for location in locations.values()))
        forecasts = dict(zip(locations.keys(), results))

        if cancel_token and cancel_token.cancelled:
            logger.info("scan.cancelled", student_id=student.id)
            return bookings

        updated: List[Booking] = []
        changed = 0
        for booking in bookings:
            if booking.student_id != student.id or booking.status is BookingStatus.RESCHEDULED:
                updated.append(booking)
                continue
            if self._in_window(booking, today):
                status = self._status_for(booking, student, forecasts)
            else:
                status = BookingStatus.SCHEDULED
            if status is None or status is booking.status:
                updated.append(booking)
                continue
            updated.append(dataclasses.replace(booking, status=status))
            changed += 1

        logger.info("scan.complete", student_id=student.id, changed=changed)
        return updated if changed else bookings


async def scan_conflicts(
    student: Student,
    bookings: Sequence[Booking],
    weather_provider: WeatherProvider,
    *,
    now: Optional[datetime] = None,
    cancel_token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
    table: Optional[MinimumsTable] = None,
) -> Sequence[Booking]:
    scanner = ConflictScanner(weather_provider, table=table)
    return await scanner.scan(student, bookings, now=now, cancel_token=cancel_token, timeout=timeout)


def accept_suggestion(booking: Booking, proposed_at: Union[str, datetime]) -> Booking:
    """Move a booking to a human-accepted time; it is excluded from later scans."""

    return dataclasses.replace(
        booking,
        scheduled_at=parse_timestamp(proposed_at),
        status=BookingStatus.RESCHEDULED,
    )
