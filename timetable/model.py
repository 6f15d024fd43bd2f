"""
In-memory timetable entities.

A Network owns every Station and Trip for the lifetime of one load; queries
hand out trip ids (selections) over it and never copy or mutate entities.

Journey — the shape-ordered list of PlaceTime visits of one trip:
  [
    PlaceTime(stop_id=5313, arrival=28800.0, departure=28860.0, does_stop=True),
    PlaceTime(stop_id=5320, arrival=29102.4, departure=29102.4, does_stop=False),
    ...
  ]
Times are seconds past local midnight of the service day and may exceed
86400 for trips running past midnight.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from config import COORD_PRECISION
from timetable.categories import Category, categorize

# Time of a visit that has no timetable record, before reconstruction.
UNKNOWN_TIME = -1

CoordKey = tuple[float, float]


@dataclass(frozen=True)
class Station:
    id: int
    name: str
    lat: float
    lon: float


@dataclass
class PlaceTime:
    stop_id: int
    arrival: float
    departure: float
    does_stop: bool

    @property
    def is_known(self) -> bool:
        return self.arrival != UNKNOWN_TIME


Journey = list[PlaceTime]


@dataclass
class Trip:
    id: int
    service_id: int
    shape_id: int | None
    headsign: str
    short_name: str
    route_name: str
    direction: int
    journey: Journey = field(default_factory=list)
    category: Category = field(init=False)

    def __post_init__(self) -> None:
        self.category = categorize(self.short_name)

    @property
    def origin_id(self) -> int | None:
        return self.journey[0].stop_id if self.journey else None

    @property
    def destination_id(self) -> int | None:
        return self.journey[-1].stop_id if self.journey else None


def coord_key(lat: float, lon: float, precision: int = COORD_PRECISION) -> CoordKey:
    """
    Quantized coordinate used for every coordinate-equality join
    (shape point ↔ station at load time, station ↔ station for transfers).
    """
    return (round(lat, precision), round(lon, precision))


def planar_distance(a: Station, b: Station) -> float:
    """Euclidean distance over raw (lat, lon) degrees. Not a physical distance."""
    return math.sqrt((a.lat - b.lat) ** 2 + (a.lon - b.lon) ** 2)


def haversine_metres(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two (lat, lon) points in metres."""
    R = 6_371_000
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * R * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class Network:
    """Stations and reconstructed trips of one load, with lookup indexes."""

    def __init__(self, stations: Iterable[Station], trips: Iterable[Trip]) -> None:
        self.stations: dict[int, Station] = {s.id: s for s in sorted(stations, key=lambda s: s.id)}
        self.trips: dict[int, Trip] = {t.id: t for t in sorted(trips, key=lambda t: t.id)}

        self._station_by_name: dict[str, Station] = {}
        for station in self.stations.values():
            self._station_by_name.setdefault(station.name, station)

        # coordinate → ids of trips whose journey touches a station there
        self._trips_by_coord: dict[CoordKey, set[int]] = {}
        for trip in self.trips.values():
            for key in self.trip_coords(trip):
                self._trips_by_coord.setdefault(key, set()).add(trip.id)

    def station(self, station_id: int) -> Station | None:
        return self.stations.get(station_id)

    def station_by_name(self, name: str | None) -> Station | None:
        if not name:
            return None
        return self._station_by_name.get(name)

    def trip(self, trip_id: int) -> Trip | None:
        return self.trips.get(trip_id)

    def trip_by_name(self, name: str | None) -> Trip | None:
        """Find a trip by short name, ignoring whitespace ("R612" finds "R 612")."""
        if not name:
            return None
        wanted = "".join(name.split())
        return next(
            (t for t in self.trips.values() if "".join(t.short_name.split()) == wanted),
            None,
        )

    def trip_coords(self, trip: Trip) -> set[CoordKey]:
        return {
            coord_key(self.stations[v.stop_id].lat, self.stations[v.stop_id].lon)
            for v in trip.journey
            if v.stop_id in self.stations
        }

    def trips_at(self, key: CoordKey) -> set[int]:
        return self._trips_by_coord.get(key, set())

    def nearest_station(self, lat: float, lon: float) -> Station | None:
        """Closest station by great-circle distance, None for an empty network."""
        return min(
            self.stations.values(),
            key=lambda s: haversine_metres(lat, lon, s.lat, s.lon),
            default=None,
        )
