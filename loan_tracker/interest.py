"""Interest accrual over a period with changing rates.

Interest is simple and prorated daily over a 365-day year:

    interest = principal * (rate / 100) * days / 365

The principal is constant inside a period (it only changes at payments, which
bound every period) but the rate may change several times, so the period is
walked in sub-intervals bounded by rate-segment starts and, under a floating
segment, by reference-rate observations.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Hashable, List, Optional, Sequence

from .data_models import InterestResult, InterestSegment, RateSegment, ReferenceRate
from .rates import RateCache, active_segment, effective_rate, next_change_date
from .utils import days_between, start_of_day

DAYS_PER_YEAR = Decimal(365)
TWO_PLACES = Decimal("0.01")


def format_rate_token(rate: Decimal, days: int) -> str:
    """Render one breakdown token, e.g. ``"2.50%(15)"``."""
    return f"{rate.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)}%({days})"


def accrue(
    period_start: date,
    period_end: date,
    principal: Decimal,
    sorted_rates: Sequence[RateSegment],
    sorted_reference_rates: Sequence[ReferenceRate],
    *,
    cache: Optional[RateCache] = None,
    loan_id: Hashable = None,
) -> InterestResult:
    """Return the interest accrued on ``principal`` over ``[period_start, period_end)``.

    Parameters
    ----------
    period_start, period_end: date
        Bounds of the period. An empty or inverted period accrues nothing.
    principal: Decimal
        The balance the interest is charged on.
    sorted_rates, sorted_reference_rates:
        Normalized rate schedule and reference-rate observations.
    cache: RateCache, optional
        Per-build cache for active-segment lookups.

    Returns
    -------
    InterestResult
        Total interest, one :class:`InterestSegment` per constant-rate
        sub-interval, and the breakdown string joining the segments as
        ``"R1%(d1)/R2%(d2)"``.
    """
    current = start_of_day(period_start)
    end = start_of_day(period_end)
    total = Decimal("0")
    segments: List[InterestSegment] = []

    while current < end:
        rate = effective_rate(
            current, sorted_rates, sorted_reference_rates, cache=cache, loan_id=loan_id
        )
        segment = active_segment(current, sorted_rates, cache=cache, loan_id=loan_id)
        boundary = next_change_date(
            current, end, sorted_rates, sorted_reference_rates, segment.is_float
        )
        if boundary <= current:
            # next_change_date never returns this for current < end; stop rather than spin
            boundary = end

        days = days_between(current, boundary)
        if days > 0:
            interest = principal * (rate / Decimal(100)) * Decimal(days) / DAYS_PER_YEAR
            total += interest
            segments.append(InterestSegment(rate=rate, days=days, interest=interest))

        current = boundary

    breakdown = "/".join(format_rate_token(s.rate, s.days) for s in segments)
    return InterestResult(total_interest=total, segments=segments, rate_breakdown=breakdown)
