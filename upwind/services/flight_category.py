"""Coarse flight category from visibility and cloud cover.

This is an approximation of the aviation categories, not certified logic:
ceiling height is not modelled and total cloud coverage percent stands in
for it.
"""

from __future__ import annotations

from typing import Optional

from upwind.models import FlightCategory

IFR_VISIBILITY_MILES = 3.0
MVFR_VISIBILITY_MILES = 5.0
IFR_COVERAGE_PERCENT = 85.0
MVFR_COVERAGE_PERCENT = 60.0


def classify_flight_category(
    visibility_miles: Optional[float],
    cloud_coverage_percent: Optional[float] = None,
) -> FlightCategory:
    # Unknown visibility is reported as VFR, matching the provider-facing behaviour.
    if visibility_miles is None:
        return FlightCategory.VFR

    coverage = cloud_coverage_percent if cloud_coverage_percent is not None else 0.0

    if visibility_miles < IFR_VISIBILITY_MILES or coverage >= IFR_COVERAGE_PERCENT:
        return FlightCategory.IFR
    if visibility_miles < MVFR_VISIBILITY_MILES or coverage >= MVFR_COVERAGE_PERCENT:
        return FlightCategory.MVFR
    return FlightCategory.VFR
