"""
Calendar window: which trips run around a given date, and where they sit on
the continuous timeline.

Trip times are anchored to the local midnight of their service day. To draw a
late-evening trip continuously into the next morning (and a trip of
"tomorrow" that is already relevant tonight), three service days are shown at
once, each shifted by its own day offset:

  day - 1  →  -86400
  day      →       0
  day + 1  →  +86400

A trip that runs on several of these days appears once per day, each with its
own offset. That duplication is intentional.

Only calendar_dates "service added" records (exception_type = 1) decide
whether a trip runs; weekly calendar.txt patterns are not consulted.
"""

import logging
import math
from datetime import date, timedelta
from typing import Iterable, NamedTuple

from sqlalchemy import select as sa_select
from sqlalchemy.orm import Session

from db.models import ServiceCalendarDate, Trip as TripRow
from timetable.model import Trip

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60
SERVICE_ADDED = 1
WINDOW_DAYS = (-1, 0, 1)


class WindowEntry(NamedTuple):
    trip_id: int
    day_offset: int     # seconds: -86400, 0 or +86400
    highlighted: bool = False


def service_date_key(day: date) -> int:
    """YYYYMMDD integer used by calendar_dates."""
    return day.year * 10000 + day.month * 100 + day.day


def running_trip_ids(session: Session, day: date) -> set[int]:
    """Ids of trips whose service is added on `day`. An empty set is a valid answer."""
    rows = session.execute(
        sa_select(TripRow.trip_id)
        .join(ServiceCalendarDate, ServiceCalendarDate.service_id == TripRow.service_id)
        .where(
            ServiceCalendarDate.date == service_date_key(day),
            ServiceCalendarDate.exception_type == SERVICE_ADDED,
        )
    ).all()
    return {r[0] for r in rows}


def runs_on(session: Session, trip_id: int, day: date) -> bool:
    return trip_id in running_trip_ids(session, day)


def resolve_window(
    session: Session,
    day: date,
    trips: Iterable[Trip],
    highlighted_trip_id: int | None = None,
) -> list[WindowEntry]:
    """
    Bucket `trips` into the three-day window around `day`.

    Entries are ordered by bucket (yesterday, today, tomorrow), then by the
    order of `trips`. The highlighted trip gets an extra entry with
    highlighted=True right after its normal one, in every bucket it runs in.
    """
    candidates = list(trips)
    entries: list[WindowEntry] = []
    for shift in WINDOW_DAYS:
        running = running_trip_ids(session, day + timedelta(days=shift))
        offset = shift * DAY_SECONDS
        for trip in candidates:
            if trip.id not in running:
                continue
            entries.append(WindowEntry(trip.id, offset))
            if trip.id == highlighted_trip_id:
                entries.append(WindowEntry(trip.id, offset, highlighted=True))
    logger.debug("Window around %s: %d entries.", day, len(entries))
    return entries


def timeline(trip: Trip, day_offset: int) -> list[tuple[int, float]]:
    """
    (stop_id, timeline seconds) points of a trip drawn in one window bucket:
    arrival then departure for every visit, shifted by `day_offset`.

    Feeds that restart the clock at midnight instead of counting past 24:00
    make times go backwards; each backward step adds another day so the line
    stays continuous. Undefined (NaN) times pass through unchanged.
    """
    points: list[tuple[int, float]] = []
    offset = day_offset
    previous = trip.journey[0].arrival if trip.journey else 0
    for visit in trip.journey:
        for t in (visit.arrival, visit.departure):
            if t < previous:
                offset += DAY_SECONDS
            if not math.isnan(t):
                previous = t
            points.append((visit.stop_id, t + offset))
    return points
