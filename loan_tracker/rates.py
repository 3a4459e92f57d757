"""Rate resolution for piecewise loan rate schedules.

A loan's rate schedule is a list of segments, each active from its start date
until the next segment starts. Fixed segments carry an absolute annual rate;
floating segments carry a spread over the reference rate (MRR) prevailing on
the day in question. The functions here expect the segment and reference-rate
lists already normalized by :func:`normalize_rates` and
:func:`normalize_reference_rates` (days only, sorted ascending).
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from .data_models import RateSegment, ReferenceRate
from .utils import start_of_day

logger = logging.getLogger(__name__)


class RateCache:
    """Memoizes the active rate segment per ``(day, loan_id)``.

    A cache belongs to a single ledger computation: the builder creates one,
    clears it at the start of the build and passes it down. It is never shared
    between builds.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[date, Hashable], RateSegment] = {}

    def get(self, key: Tuple[date, Hashable]) -> Optional[RateSegment]:
        return self._entries.get(key)

    def set(self, key: Tuple[date, Hashable], segment: RateSegment) -> None:
        self._entries[key] = segment

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def normalize_rates(rates: Iterable[RateSegment]) -> List[RateSegment]:
    """Return copies of ``rates`` truncated to the day and sorted by start date.

    The sort is stable, so segments sharing a start date keep their list
    order and the later one wins during lookups. Such duplicates are logged
    but left in place.
    """
    normalized = sorted(
        (replace(r, start_date=start_of_day(r.start_date)) for r in rates),
        key=lambda r: r.start_date,
    )
    for prev, curr in zip(normalized, normalized[1:]):
        if prev.start_date == curr.start_date:
            logger.warning(
                "Rate segments share start date %s; the later one takes effect",
                curr.start_date.isoformat(),
            )
    return normalized


def normalize_reference_rates(reference_rates: Iterable[ReferenceRate]) -> List[ReferenceRate]:
    """Return copies of ``reference_rates`` truncated to the day and sorted by date."""
    return sorted(
        (replace(r, date=start_of_day(r.date)) for r in reference_rates),
        key=lambda r: r.date,
    )


def active_segment(
    point: date,
    sorted_rates: Sequence[RateSegment],
    *,
    cache: Optional[RateCache] = None,
    loan_id: Hashable = None,
) -> RateSegment:
    """Return the latest segment starting on or before ``point``.

    When ``point`` precedes every segment the earliest one is used.

    Raises
    ------
    ValueError
        If ``sorted_rates`` is empty.
    """
    if not sorted_rates:
        raise ValueError("Loan has no rate segments")
    key = (point, loan_id)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached
    idx = bisect_right(sorted_rates, point, key=lambda r: r.start_date)
    segment = sorted_rates[idx - 1] if idx > 0 else sorted_rates[0]
    if cache is not None:
        cache.set(key, segment)
    return segment


def active_reference_rate(
    point: date, sorted_reference_rates: Sequence[ReferenceRate]
) -> Optional[ReferenceRate]:
    """Return the latest reference-rate observation dated on or before ``point``."""
    idx = bisect_right(sorted_reference_rates, point, key=lambda r: r.date)
    return sorted_reference_rates[idx - 1] if idx > 0 else None


def effective_rate(
    point: date,
    sorted_rates: Sequence[RateSegment],
    sorted_reference_rates: Sequence[ReferenceRate],
    *,
    cache: Optional[RateCache] = None,
    loan_id: Hashable = None,
) -> Decimal:
    """Return the effective annual rate (percent) on ``point``.

    Fixed segments yield their value. Floating segments yield the prevailing
    reference rate plus the spread; without any observation on or before
    ``point`` the reference component is zero.
    """
    point = start_of_day(point)
    segment = active_segment(point, sorted_rates, cache=cache, loan_id=loan_id)
    if not segment.is_float:
        return segment.value
    reference = active_reference_rate(point, sorted_reference_rates)
    reference_value = reference.rate if reference is not None else Decimal("0")
    return reference_value + segment.value


def next_change_date(
    point: date,
    upper_bound: date,
    sorted_rates: Sequence[RateSegment],
    sorted_reference_rates: Sequence[ReferenceRate],
    is_float: bool,
) -> date:
    """Return the first day after ``point`` on which the rate may change.

    Candidates are the next segment start and, for floating segments, the next
    reference-rate observation. The result never exceeds ``upper_bound`` and
    is always later than ``point``; a candidate that fails to advance falls
    back to ``upper_bound``.
    """
    candidate = upper_bound
    idx = bisect_right(sorted_rates, point, key=lambda r: r.start_date)
    if idx < len(sorted_rates):
        candidate = sorted_rates[idx].start_date
    if is_float:
        ref_idx = bisect_right(sorted_reference_rates, point, key=lambda r: r.date)
        if ref_idx < len(sorted_reference_rates):
            candidate = min(candidate, sorted_reference_rates[ref_idx].date)
    if candidate > upper_bound:
        candidate = upper_bound
    if candidate <= point:
        candidate = upper_bound
    return candidate
