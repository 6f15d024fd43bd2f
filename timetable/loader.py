"""
Builds the in-memory timetable Network from the GTFS tables.

Steps:
  1. Stations   — every row of `stops`.
  2. Trips      — `trips` joined to `routes` for the line name.
  3. Visits     — for each trip, walk its shape points in sequence and keep
                  the ones lying on a station (coordinate match via
                  coord_key). The trip's stop_times row at that station, if
                  any, supplies the timetable times; stations the shape only
                  passes through get UNKNOWN_TIME.
  4. Journeys   — reconstruct_journey() fills in the pass-through times.
                  Trips that cannot be reconstructed are logged and left out;
                  one bad trip never aborts the load.

The Network is built once after ingestion and cached at module level. It must
be rebuilt after each GTFS refresh; a rebuild swaps the cache in one step.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy import select as sa_select
from sqlalchemy.orm import Session

from config import EXCLUDE_THROUGH_COACHES
from db.models import Route, ShapePoint, Stop, StopTime, Trip as TripRow
from timetable.model import CoordKey, Network, PlaceTime, Station, Trip, coord_key
from timetable.reconstruction import ReconstructionError, make_place_time, reconstruct_journey

logger = logging.getLogger(__name__)

# Module-level cached network and build timestamp
_network: Optional[Network] = None
_last_built_at: Optional[datetime] = None


def get_network() -> Network:
    """Return the cached network. Raises if not yet built."""
    if _network is None:
        raise RuntimeError("Timetable network has not been built yet. Call build_network() first.")
    return _network


def get_last_built_at() -> Optional[datetime]:
    """Return the UTC timestamp of the last successful build_network() call, or None."""
    return _last_built_at


def build_network(session: Session, exclude_through_coaches: bool = EXCLUDE_THROUGH_COACHES) -> Network:
    """
    Load stations and trips, reconstruct every journey, and cache the result.
    Database errors propagate: without the backend there is nothing to show.
    """
    global _network, _last_built_at

    stations = load_stations(session)
    trips = load_trips(session, exclude_through_coaches)
    visits = load_visits(session, trips, stations)

    kept: list[Trip] = []
    rejected = 0
    for trip in trips:
        try:
            trip.journey = reconstruct_journey(visits.get(trip.id, []), stations)
        except ReconstructionError as exc:
            rejected += 1
            logger.warning("Rejected trip %d (%s): %s", trip.id, trip.short_name, exc)
            continue
        kept.append(trip)

    network = Network(stations.values(), kept)
    _network = network
    _last_built_at = datetime.utcnow()
    logger.info(
        "Network built: %d stations, %d trips (%d rejected).",
        len(network.stations), len(network.trips), rejected,
    )
    return network


def load_stations(session: Session) -> dict[int, Station]:
    rows = session.execute(
        sa_select(Stop.stop_id, Stop.stop_name, Stop.stop_lat, Stop.stop_lon)
        .order_by(Stop.stop_id)
    ).all()
    return {r.stop_id: Station(r.stop_id, r.stop_name, r.stop_lat, r.stop_lon) for r in rows}


def load_trips(session: Session, exclude_through_coaches: bool = EXCLUDE_THROUGH_COACHES) -> list[Trip]:
    """
    Trips with their line name, ordered by trip id. Through coaches carry a
    combined name ("Ex 123 / R 456") and are skipped when requested.
    """
    rows = session.execute(
        sa_select(
            TripRow.trip_id,
            TripRow.service_id,
            TripRow.shape_id,
            TripRow.trip_headsign,
            TripRow.trip_short_name,
            TripRow.direction_id,
            Route.route_long_name,
        )
        .join(Route, TripRow.route_id == Route.route_id)
        .order_by(TripRow.trip_id)
    ).all()

    trips = []
    skipped = 0
    for r in rows:
        short_name = r.trip_short_name or ""
        if exclude_through_coaches and "/" in short_name:
            skipped += 1
            continue
        trips.append(Trip(
            id=r.trip_id,
            service_id=r.service_id,
            shape_id=r.shape_id,
            headsign=r.trip_headsign or "",
            short_name=short_name,
            route_name=r.route_long_name or "",
            direction=r.direction_id or 0,
        ))
    if skipped:
        logger.info("Skipped %d through-coach trips.", skipped)
    return trips


def load_visits(
    session: Session, trips: list[Trip], stations: dict[int, Station]
) -> dict[int, list[PlaceTime]]:
    """
    Shape-ordered, not yet reconstructed visits per trip id.

    Uses two flat queries (shape points, stop times) and joins in Python on
    the quantized coordinate, so the station match is the same one transfer
    correlation uses later.
    """
    by_coord: dict[CoordKey, list[Station]] = defaultdict(list)
    for station in stations.values():
        by_coord[coord_key(station.lat, station.lon)].append(station)

    shape_rows = session.execute(
        sa_select(ShapePoint.shape_id, ShapePoint.shape_pt_lat, ShapePoint.shape_pt_lon)
        .order_by(ShapePoint.shape_id, ShapePoint.shape_pt_sequence)
    ).all()
    # shape_id → stations the shape passes, in shape order
    shape_stations: dict[int, list[Station]] = defaultdict(list)
    for row in shape_rows:
        shape_stations[row.shape_id].extend(by_coord.get(coord_key(row.shape_pt_lat, row.shape_pt_lon), ()))

    time_rows = session.execute(
        sa_select(StopTime.trip_id, StopTime.stop_id, StopTime.arrival_time, StopTime.departure_time)
    ).all()
    times: dict[tuple[int, int], tuple[str | None, str | None]] = {
        (r.trip_id, r.stop_id): (r.arrival_time, r.departure_time) for r in time_rows
    }

    visits: dict[int, list[PlaceTime]] = {}
    for trip in trips:
        visits[trip.id] = [
            make_place_time(station.id, *times.get((trip.id, station.id), (None, None)))
            for station in shape_stations.get(trip.shape_id, [])
        ]
    logger.info("Matched %d shape points to stations.", sum(len(v) for v in shape_stations.values()))
    return visits
