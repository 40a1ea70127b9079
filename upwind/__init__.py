"""Weather minimums checks and reschedule advice for flight lessons."""

from .errors import ConfigurationError, ParseError, ProviderError, UpwindError
from .models import (
    AdvisorySuggestion,
    Booking,
    BookingStatus,
    ConflictDescriptor,
    FlightCategory,
    Location,
    Student,
    TrainingLevel,
    WeatherReading,
)
from .normalization import DEFAULT_NORMALIZER, WeatherNormalizer, normalize_current
from .services.advisory import request_advisory
from .services.conflicts import CancellationToken, scan_conflicts
from .services.flight_category import classify_flight_category
from .services.forecast import summarize_forecast
from .services.minimums import passes_minimums

__all__ = [
    "AdvisorySuggestion",
    "Booking",
    "BookingStatus",
    "CancellationToken",
    "ConfigurationError",
    "ConflictDescriptor",
    "DEFAULT_NORMALIZER",
    "FlightCategory",
    "Location",
    "ParseError",
    "ProviderError",
    "Student",
    "TrainingLevel",
    "UpwindError",
    "WeatherNormalizer",
    "WeatherReading",
    "classify_flight_category",
    "normalize_current",
    "passes_minimums",
    "request_advisory",
    "scan_conflicts",
    "summarize_forecast",
]
