"""
Trip selections over a loaded Network.

Two kinds of filter:
  station  — trips that originate at, terminate at, call at, or pass
             through one station (judged on the reconstructed journey).
  line     — trips that share a physical stop location with a reference
             trip ("which trains can I change to from this one").

Both return a set of trip ids. An empty set is a normal result.
"""

import logging
from enum import Enum
from typing import Callable, Iterable

from timetable.model import Network, Station, Trip

logger = logging.getLogger(__name__)

TripPredicate = Callable[[Trip], bool]


class StationRole(str, Enum):
    ORIGINATES = "originates"
    TERMINATES = "terminates"
    CALLS = "calls"
    PASSES = "passes"


def station_predicate(station: Station | None, role: StationRole) -> TripPredicate:
    """Predicate for one station role; with no station every trip passes."""
    if station is None:
        return lambda trip: True
    if role == StationRole.ORIGINATES:
        return lambda trip: bool(trip.journey) and trip.journey[0].stop_id == station.id
    if role == StationRole.TERMINATES:
        return lambda trip: bool(trip.journey) and trip.journey[-1].stop_id == station.id
    if role == StationRole.CALLS:
        return lambda trip: any(v.stop_id == station.id and v.does_stop for v in trip.journey)
    return lambda trip: any(v.stop_id == station.id for v in trip.journey)


def filter_by_station(trips: Iterable[Trip], station: Station | None, role: StationRole) -> set[int]:
    predicate = station_predicate(station, role)
    return {trip.id for trip in trips if predicate(trip)}


def station_selection(network: Network, station_name: str | None, role: StationRole) -> set[int]:
    """
    Station filter keyed by station name. An unknown or empty name selects
    nothing specific, so every trip is returned.
    """
    station = network.station_by_name(station_name)
    if station is None and station_name:
        logger.info("Station %r not found; station filter not applied.", station_name)
    return filter_by_station(network.trips.values(), station, role)


def transfer_correlated(network: Network, trip_id: int) -> set[int] | None:
    """
    Ids of trips touching any station coordinate the reference trip touches,
    including the reference trip itself. None if the trip is unknown.

    Matching is by quantized coordinate, not stop id: two stations sharing a
    coordinate count as one place.
    """
    trip = network.trip(trip_id)
    if trip is None:
        return None
    correlated: set[int] = set()
    for key in network.trip_coords(trip):
        correlated |= network.trips_at(key)
    return correlated
