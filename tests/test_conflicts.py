import asyncio
import time
from datetime import timedelta

from conftest import (
    FCM,
    MIC,
    THREE_SUGGESTIONS,
    FakeAdvisoryProvider,
    FakeWeatherProvider,
    make_booking,
    make_entries,
    make_student,
)
from upwind.models import BookingStatus, TrainingLevel
from upwind.services.advisory import build_conflict, request_advisory
from upwind.services.conflicts import CancellationToken, accept_suggestion, scan_conflicts
from upwind.services.forecast import summarize_forecast


def _key(location):
    return (location.lat, location.lon)


def test_private_pilot_conflict_end_to_end(now, forecast_start):
    student = make_student(TrainingLevel.PRIVATE_PILOT)
    booking = make_booking("b1", now + timedelta(days=2, hours=3))
    raw = make_entries(forecast_start, 7, visibility_sm=2.5, wind_kts=22)
    provider = FakeWeatherProvider({_key(FCM): raw})

    updated = asyncio.run(scan_conflicts(student, [booking], provider, now=now))

    assert updated[0].status is BookingStatus.WEATHER_CONFLICT
    assert updated[0] is not booking
    assert booking.status is BookingStatus.SCHEDULED

    reading = summarize_forecast(raw, 7)[0]
    conflict = build_conflict(updated[0], student, reading, now=now)
    advisor = FakeAdvisoryProvider(THREE_SUGGESTIONS)

    suggestions = asyncio.run(request_advisory(student, reading, conflict, advisor))

    assert len(suggestions) == 3
    assert len(advisor.prompts) == 1


def test_rescan_is_idempotent_and_preserves_identity(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    bad_day = now + timedelta(days=1)
    good_day = now + timedelta(days=3)
    raw = make_entries(forecast_start, 7)
    # Day 2 of the forecast turns gusty.
    for entry in raw[8:16]:
        entry["wind"]["speed"] = 30.0
    provider = FakeWeatherProvider({_key(FCM): raw})
    bookings = [make_booking("b1", bad_day), make_booking("b2", good_day)]

    first = asyncio.run(scan_conflicts(student, bookings, provider, now=now))
    second = asyncio.run(scan_conflicts(student, first, provider, now=now))

    assert [b.status for b in first] == [BookingStatus.WEATHER_CONFLICT, BookingStatus.SCHEDULED]
    assert first[1] is bookings[1]
    assert second is first
    assert [b.status for b in second] == [b.status for b in first]


def test_one_fetch_per_location_and_window_rules(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    raw = make_entries(forecast_start, 7)
    provider = FakeWeatherProvider({_key(FCM): raw, _key(MIC): raw})
    bookings = [
        make_booking("past", now - timedelta(days=1), status=BookingStatus.WEATHER_CONFLICT),
        make_booking("soon", now + timedelta(days=1)),
        make_booking("later", now + timedelta(days=2)),
        make_booking("other-field", now + timedelta(days=2), location=MIC),
        make_booking("far", now + timedelta(days=7), status=BookingStatus.WEATHER_CONFLICT),
        make_booking("moved", now + timedelta(days=1), status=BookingStatus.RESCHEDULED),
        make_booking("someone-else", now + timedelta(days=1), student_id="s2",
                     status=BookingStatus.WEATHER_CONFLICT),
    ]

    updated = asyncio.run(scan_conflicts(student, bookings, provider, now=now))
    by_id = {booking.id: booking for booking in updated}

    assert sorted(provider.calls) == sorted([_key(FCM), _key(MIC)])
    assert by_id["past"].status is BookingStatus.SCHEDULED
    assert by_id["far"].status is BookingStatus.SCHEDULED
    assert by_id["moved"] is bookings[5]
    assert by_id["someone-else"] is bookings[6]
    assert by_id["soon"] is bookings[1]


def test_no_in_window_bookings_skips_fetching(now):
    student = make_student()
    booking = make_booking("far", now + timedelta(days=10), status=BookingStatus.WEATHER_CONFLICT)
    provider = FakeWeatherProvider({})

    updated = asyncio.run(scan_conflicts(student, [booking], provider, now=now))

    assert provider.calls == []
    assert updated[0].status is BookingStatus.SCHEDULED


def test_failed_location_leaves_its_bookings_alone(now, forecast_start, provider_failure):
    student = make_student(TrainingLevel.PRIVATE_PILOT)
    bad = make_entries(forecast_start, 7, wind_kts=24)
    provider = FakeWeatherProvider({_key(FCM): provider_failure, _key(MIC): bad})
    stuck = make_booking("fcm", now + timedelta(days=1), status=BookingStatus.WEATHER_CONFLICT)
    fresh = make_booking("mic", now + timedelta(days=1), location=MIC)

    updated = asyncio.run(scan_conflicts(student, [stuck, fresh], provider, now=now))

    assert updated[0] is stuck
    assert updated[1].status is BookingStatus.WEATHER_CONFLICT


def test_fetch_timeout_is_a_per_location_failure(now, forecast_start):
    student = make_student(TrainingLevel.PRIVATE_PILOT)
    provider = FakeWeatherProvider({_key(FCM): make_entries(forecast_start, 7, wind_kts=30)}, delay=0.5)
    booking = make_booking("b1", now + timedelta(days=1))
    bookings = [booking]

    updated = asyncio.run(scan_conflicts(student, bookings, provider, now=now, timeout=0.01))

    assert updated is bookings


def test_missing_forecast_day_counts_as_scheduled(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    provider = FakeWeatherProvider({_key(FCM): make_entries(forecast_start, 2, visibility_sm=1.0)})
    booking = make_booking("b1", now + timedelta(days=5), status=BookingStatus.WEATHER_CONFLICT)

    updated = asyncio.run(scan_conflicts(student, [booking], provider, now=now))

    assert updated[0].status is BookingStatus.SCHEDULED


def test_cancelled_scan_discards_results(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    token = CancellationToken()
    provider = FakeWeatherProvider(
        {_key(FCM): make_entries(forecast_start, 7, visibility_sm=1.0)},
        on_fetch=lambda lat, lon: token.cancel(),
    )
    bookings = [make_booking("b1", now + timedelta(days=1))]

    updated = asyncio.run(scan_conflicts(student, bookings, provider, now=now, cancel_token=token))

    assert updated is bookings
    assert bookings[0].status is BookingStatus.SCHEDULED


def test_already_cancelled_scan_does_not_fetch(now):
    token = CancellationToken()
    token.cancel()
    provider = FakeWeatherProvider({})
    bookings = [make_booking("b1", now + timedelta(days=1))]

    updated = asyncio.run(scan_conflicts(make_student(), bookings, provider, now=now, cancel_token=token))

    assert updated is bookings
    assert provider.calls == []


def test_accepted_suggestion_is_excluded_from_scans(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    booking = make_booking("b1", now + timedelta(days=1), status=BookingStatus.WEATHER_CONFLICT)

    moved = accept_suggestion(booking, "2024-06-05T15:00:00Z")

    assert moved.status is BookingStatus.RESCHEDULED
    assert moved.scheduled_at.isoformat() == "2024-06-05T15:00:00+00:00"
    assert moved.id == booking.id

    provider = FakeWeatherProvider({_key(FCM): make_entries(forecast_start, 7, visibility_sm=0.5)})
    updated = asyncio.run(scan_conflicts(student, [moved], provider, now=now))
    assert updated[0] is moved


def test_unreadable_forecast_only_fails_its_location(now, forecast_start):
    student = make_student(TrainingLevel.PRIVATE_PILOT)
    provider = FakeWeatherProvider({_key(FCM): None, _key(MIC): make_entries(forecast_start, 7, wind_kts=24)})
    stuck = make_booking("fcm", now + timedelta(days=1), status=BookingStatus.WEATHER_CONFLICT)
    fresh = make_booking("mic", now + timedelta(days=1), location=MIC)

    updated = asyncio.run(scan_conflicts(student, [stuck, fresh], provider, now=now))

    assert updated[0] is stuck
    assert updated[1].status is BookingStatus.WEATHER_CONFLICT


def test_overflowing_forecast_values_do_not_abort_the_scan(now, forecast_start):
    student = make_student(TrainingLevel.PRIVATE_PILOT)
    raw = make_entries(forecast_start, 7, wind_kts=24)
    raw[0]["wind"]["speed"] = float("inf")
    raw.append({"dt": 1e20, "wind": {"deg": 90, "speed": float("inf")}})
    provider = FakeWeatherProvider({_key(FCM): raw})
    booking = make_booking("b1", now + timedelta(days=1))

    updated = asyncio.run(scan_conflicts(student, [booking], provider, now=now))

    assert updated[0].status is BookingStatus.WEATHER_CONFLICT


def test_locations_are_fetched_concurrently(now, forecast_start):
    student = make_student(TrainingLevel.STUDENT_PILOT)
    raw = make_entries(forecast_start, 7)
    provider = FakeWeatherProvider({_key(FCM): raw, _key(MIC): raw}, delay=0.3)
    bookings = [
        make_booking("fcm", now + timedelta(days=1)),
        make_booking("mic", now + timedelta(days=1), location=MIC),
    ]

    started = time.perf_counter()
    asyncio.run(scan_conflicts(student, bookings, provider, now=now))
    elapsed = time.perf_counter() - started

    assert len(provider.calls) == 2
    assert elapsed < 0.55
