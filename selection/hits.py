"""
Resolves a pointer click against rendered stations and trips.

The renderer owns the ray geometry; it is reached through the RayCaster
protocol. Scene objects are identified by name:

  "STATION 5313"   station marker
  "TRAIN01042"     trip 1042 drawn in today's bucket ("TRAIN-1042" yesterday, "TRAIN+1042" tomorrow)
  "MAP"            basemap surface

A thin ray misses lines far from the camera and a thick one grabs the wrong
line close to it, so the click is retried with increasingly tolerant rays
(a crude cone) that also start further out. The first tier yielding a hit
wins. Anything behind the basemap is not selectable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Protocol, Sequence

from config import CLICK_THRESHOLD_MS
from query.state import ViewState
from schedule.window import DAY_SECONDS
from timetable.model import Network

logger = logging.getLogger(__name__)

MAP_OBJECT = "MAP"
STATION_PREFIX = "STATION "
TRIP_PREFIX = "TRAIN"
_OFFSET_CHARS = {"-": -1, "0": 0, "+": 1}


class Tier(NamedTuple):
    tolerance: float      # line hit radius, scene units
    min_distance: float   # ray near plane


TOLERANCE_TIERS: list[Tier] = [
    Tier(0.01, 0.01),
    Tier(0.02, 0.2),
    Tier(0.03, 0.4),
    Tier(0.04, 0.6),
    Tier(0.05, 1.0),
    Tier(0.07, 1.5),
]


class Intersection(NamedTuple):
    name: str
    distance: float


class RayCaster(Protocol):
    def intersect(
        self, pointer: tuple[float, float], tolerance: float, min_distance: float
    ) -> Sequence[Intersection]:
        """Objects hit by a ray through `pointer` (NDC), nearest first."""
        ...


class RecordedCaster:
    """
    RayCaster replaying casts made by the renderer itself, one per tolerance
    tier in tier order. Tiers past the last recorded cast hit nothing.
    """

    def __init__(self, casts: Sequence[Sequence[Intersection]]) -> None:
        self._casts = [list(cast) for cast in casts]
        self._next = 0

    def intersect(
        self, pointer: tuple[float, float], tolerance: float, min_distance: float
    ) -> Sequence[Intersection]:
        if self._next >= len(self._casts):
            return []
        cast = self._casts[self._next]
        self._next += 1
        return cast


@dataclass(frozen=True)
class StationHit:
    station_id: int
    distance: float


@dataclass(frozen=True)
class TripHit:
    trip_id: int
    day_offset: int
    distance: float


Hit = StationHit | TripHit


def station_object_name(station_id: int) -> str:
    return f"{STATION_PREFIX}{station_id}"


def trip_object_name(trip_id: int, day_offset: int) -> str:
    char = "0" if day_offset == 0 else ("-" if day_offset < 0 else "+")
    return f"{TRIP_PREFIX}{char}{trip_id}"


def classify(name: str, distance: float = 0.0) -> Hit | None:
    """Decode a scene object name; None for the map and anything unknown."""
    try:
        if name.startswith(STATION_PREFIX):
            return StationHit(int(name[len(STATION_PREFIX):]), distance)
        if name.startswith(TRIP_PREFIX) and len(name) > len(TRIP_PREFIX) + 1:
            shift = _OFFSET_CHARS.get(name[len(TRIP_PREFIX)])
            if shift is not None:
                return TripHit(int(name[len(TRIP_PREFIX) + 1:]), shift * DAY_SECONDS, distance)
    except ValueError:
        logger.debug("Unparsable scene object name %r.", name)
    return None


def nearest_hit(intersections: Sequence[Intersection]) -> Hit | None:
    """First station/trip in front of the basemap, None if there is none."""
    max_distance = next(
        (i.distance for i in intersections if i.name == MAP_OBJECT), float("inf")
    )
    for intersection in intersections:
        if intersection.distance > max_distance:
            continue
        hit = classify(intersection.name, intersection.distance)
        if hit is not None:
            return hit
    return None


def resolve_pointer(
    caster: RayCaster,
    pointer: tuple[float, float],
    tiers: Sequence[Tier] = TOLERANCE_TIERS,
) -> Hit | None:
    """Cast one ray per tier, most precise first; stop at the first hit."""
    for tier in tiers:
        hit = nearest_hit(caster.intersect(pointer, tier.tolerance, tier.min_distance))
        if hit is not None:
            logger.debug("Pointer %s resolved at tolerance %.2f: %s", pointer, tier.tolerance, hit)
            return hit
    return None


def is_click(pressed_at: datetime, released_at: datetime, threshold_ms: int = CLICK_THRESHOLD_MS) -> bool:
    """A press shorter than the threshold is a click; longer ones are drags."""
    return (released_at - pressed_at).total_seconds() * 1000 < threshold_ms


def apply_hit(network: Network, state: ViewState, hit: Hit | None) -> ViewState:
    """
    State after a click.
      station  → station filter on it, keeping the current role
      trip     → highlight the trip; it is emphasised in every bucket it
                 runs in, not only the one that was clicked
      nothing  → unchanged
    Hits on objects missing from the network also leave the state unchanged.
    """
    if isinstance(hit, StationHit):
        station = network.station(hit.station_id)
        if station is None:
            return state
        return state.with_station(station.name)
    if isinstance(hit, TripHit):
        if network.trip(hit.trip_id) is None:
            return state
        return state.with_highlight(hit.trip_id)
    return state

