from __future__ import annotations

import uuid
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta

from .models import FREQUENCY_TYPES, EventOccurrence, GatheringPattern


class InvalidGatheringPattern(ValueError):
    pass


def _default_id() -> str:
    return str(uuid.uuid4())


def sunday_based_weekday(day: date) -> int:
    """Weekday number with Sunday as 0 and Saturday as 6."""
    return day.isoweekday() % 7


def validate_pattern(pattern: GatheringPattern) -> None:
    if pattern.frequency_type not in FREQUENCY_TYPES:
        raise InvalidGatheringPattern(f"Unknown frequency type: {pattern.frequency_type!r}")
    if pattern.interval < 1:
        raise InvalidGatheringPattern("interval must be at least 1")
    if not 0 <= pattern.day_of_week <= 6:
        raise InvalidGatheringPattern("day_of_week must be between 0 (Sunday) and 6 (Saturday)")


def first_gathering(pattern: GatheringPattern) -> date:
    cursor = pattern.start_date
    while sunday_based_weekday(cursor) != pattern.day_of_week:
        cursor += timedelta(days=1)
    return cursor


def _step(pattern: GatheringPattern) -> relativedelta:
    if pattern.frequency_type == "weeks":
        return relativedelta(weeks=pattern.interval)
    return relativedelta(months=pattern.interval)


def project_occurrences(
    pattern: GatheringPattern,
    count: int,
    existing: Iterable[EventOccurrence] = (),
    title_override: Optional[str] = None,
    id_factory: Callable[[], str] = _default_id,
) -> List[EventOccurrence]:
    """
    Project ``count`` gatherings of ``pattern`` onto the calendar.

    The first gathering is the first date on or after ``start_date`` falling on
    ``day_of_week``. Month steps use calendar arithmetic: the day of month is
    clamped to the end of shorter months and the clamped day carries into the
    following steps. Dates whose ``(date, title_override)`` pair is already
    scheduled are skipped; only newly created draft occurrences are returned.
    """

    validate_pattern(pattern)
    if count < 0:
        raise InvalidGatheringPattern("count must not be negative")

    taken: Set[Tuple[date, Optional[str]]] = {
        (occurrence.date, occurrence.title_override) for occurrence in existing
    }
    step = _step(pattern)
    cursor = first_gathering(pattern)
    created: List[EventOccurrence] = []

    for _ in range(count):
        key = (cursor, title_override)
        if key not in taken:
            taken.add(key)
            created.append(
                EventOccurrence(
                    id=id_factory(),
                    date=cursor,
                    title_override=title_override,
                    template_id=None,
                    status="draft",
                )
            )
        cursor = cursor + step

    return created
