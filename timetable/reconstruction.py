"""
Journey reconstruction: fills in times for visits that have no timetable record.

A trip's shape passes through many stations the train does not stop at; the
feed has no time for those points. Each run of unknown visits between two
known visits is timed by distance: the gap between the last known departure
and the next known arrival is spread over the run in proportion to the planar
distance travelled.

Example (equal spacing):
  A dep 0  →  B ?  →  C arr 100      gives   B = 50

Data defects are not raised: a run whose stations all share one coordinate
has no distance to spread over and gets NaN times, which callers render as
"no time". A trip whose first or last visit has no time cannot be anchored
and is rejected with ReconstructionError.
"""

import logging
import math
from typing import Mapping

from timetable.model import UNKNOWN_TIME, Journey, PlaceTime, Station, planar_distance

logger = logging.getLogger(__name__)


class ReconstructionError(ValueError):
    """A trip's visits cannot be turned into a time-resolved journey."""


def hms_to_seconds(hms: str | None) -> float:
    """
    Convert HH:MM[:SS] (possibly HH > 23) to seconds past midnight.
    Returns UNKNOWN_TIME for missing values, anything shorter than
    six characters, and unparsable strings.
    """
    if hms is None or len(str(hms).strip()) < 6:
        return UNKNOWN_TIME
    try:
        parts = str(hms).strip().split(":")
        seconds = int(parts[0]) * 3600 + int(parts[1]) * 60
        if len(parts) > 2 and parts[2]:
            seconds += int(parts[2])
        return seconds
    except (ValueError, IndexError):
        return UNKNOWN_TIME


def seconds_to_hhmm(seconds: float) -> str | None:
    """Format seconds past midnight as HH:MM (wrapping at 24h); None if not finite."""
    if not math.isfinite(seconds) or seconds == UNKNOWN_TIME:
        return None
    total_minutes = int(seconds // 60) % (24 * 60)
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def make_place_time(stop_id: int, arrival_time: str | None, departure_time: str | None) -> PlaceTime:
    """
    Build a visit from raw timetable strings. A missing arrival falls back to
    the departure and vice versa; with neither, the visit is a pass-through.
    """
    arrival = hms_to_seconds(arrival_time)
    departure = hms_to_seconds(departure_time)
    if arrival == UNKNOWN_TIME:
        arrival = departure
    if departure == UNKNOWN_TIME:
        departure = arrival
    return PlaceTime(
        stop_id=stop_id,
        arrival=arrival,
        departure=departure,
        does_stop=arrival != UNKNOWN_TIME,
    )


def reconstruct_journey(visits: list[PlaceTime], stations: Mapping[int, Station]) -> Journey:
    """
    Assign times to every unknown visit of a shape-ordered visit list.

    Visits are updated in place and the same list is returned. Every station
    referenced by a visit must be present in `stations`.

    Raises:
        ReconstructionError: If the list is empty or its first or last visit
            has no known time.
    """
    if not visits:
        raise ReconstructionError("Trip has no stop visits.")
    if not visits[0].is_known:
        raise ReconstructionError(f"First visit (stop {visits[0].stop_id}) has no known time.")
    if not visits[-1].is_known:
        raise ReconstructionError(f"Last visit (stop {visits[-1].stop_id}) has no known time.")

    last_departure = visits[0].departure
    pending: list[int] = []       # indexes of the open run of unknown visits
    run_distance = 0.0

    for i in range(1, len(visits)):
        step = planar_distance(stations[visits[i - 1].stop_id], stations[visits[i].stop_id])
        if not visits[i].is_known:
            pending.append(i)
            run_distance += step
            continue

        if pending:
            run_distance += step
            _time_run(visits, pending, last_departure, visits[i].arrival, run_distance, stations)

        last_departure = visits[i].departure
        pending = []
        run_distance = 0.0

    return visits


def _time_run(
    visits: list[PlaceTime],
    pending: list[int],
    start_time: float,
    end_time: float,
    run_distance: float,
    stations: Mapping[int, Station],
) -> None:
    unit_time = (end_time - start_time) / run_distance if run_distance > 0 else math.nan

    travelled = 0.0
    undefined = 0
    for i in pending:
        step = planar_distance(stations[visits[i - 1].stop_id], stations[visits[i].stop_id])
        travelled += step
        # A point sitting on its predecessor gets no time, unlike plain
        # cumulative-distance interpolation, which would repeat the
        # predecessor's time.
        t = start_time + unit_time * travelled if step > 0 else math.nan
        if not math.isfinite(t):
            undefined += 1
        visits[i].arrival = t
        visits[i].departure = t

    if undefined:
        logger.warning(
            "%d pass-through visit(s) before stop %d sit on zero distance; times left undefined.",
            undefined, visits[pending[-1] + 1].stop_id,
        )


def is_time_resolved(journey: Journey) -> bool:
    """True when no visit still carries the UNKNOWN_TIME sentinel."""
    return all(
        v.arrival != UNKNOWN_TIME and v.departure != UNKNOWN_TIME for v in journey
    )
