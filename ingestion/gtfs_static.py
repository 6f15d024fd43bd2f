"""
Downloads and parses a railway GTFS static feed into the local database.

Feed contents used:
  stops.txt          → Stop
  routes.txt         → Route
  trips.txt          → Trip
  stop_times.txt     → StopTime
  shapes.txt         → ShapePoint
  calendar_dates.txt → ServiceCalendarDate

calendar.txt (weekly service patterns) is not ingested: trip selection works
from calendar_dates.txt "service added" records only.
"""

import io
import logging
import zipfile

import httpx
import pandas as pd
from sqlalchemy.orm import Session

from config import DATA_DIR, GTFS_STATIC_URL
from db.models import (
    Route, ServiceCalendarDate, ShapePoint, Stop, StopTime, Trip,
)

logger = logging.getLogger(__name__)

GTFS_ZIP_PATH = DATA_DIR / "gtfs_static.zip"


async def download_gtfs_zip(url: str = GTFS_STATIC_URL) -> bytes:
    """Download GTFS zip from the given URL and cache it to disk."""
    if not url:
        raise ValueError("GTFS_STATIC_URL is not configured. Set it in your .env file.")
    logger.info("Downloading GTFS static feed from %s", url)
    async with httpx.AsyncClient(timeout=60) as client:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    GTFS_ZIP_PATH.write_bytes(response.content)
    logger.info("Saved GTFS zip to %s (%d bytes)", GTFS_ZIP_PATH, len(response.content))
    return response.content


def parse_and_store(zip_bytes: bytes, session: Session) -> None:
    """
    Extract GTFS zip and replace all relevant feed data in the database.
    Clears existing data before inserting fresh records.
    """
    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
        names = zf.namelist()
        logger.info("GTFS zip contains: %s", names)

        def read(filename: str) -> pd.DataFrame:
            with zf.open(filename) as f:
                return pd.read_csv(f, dtype=str).fillna("")

        _parse_stops(read("stops.txt"), session)
        _parse_routes(read("routes.txt"), session)
        _parse_trips(read("trips.txt"), session)
        _parse_stop_times(read("stop_times.txt"), session)
        _parse_shapes(read("shapes.txt"), session)

        # Service ids are feed-local; records of a previous feed must not survive.
        session.query(ServiceCalendarDate).delete()
        if "calendar_dates.txt" in names:
            _parse_calendar_dates(read("calendar_dates.txt"), session)
        else:
            logger.warning("Feed has no calendar_dates.txt; no trip will be scheduled.")
        if "calendar.txt" in names:
            logger.info("Skipping calendar.txt: weekly service patterns are not consulted.")

    session.commit()
    logger.info("GTFS static data committed to database.")


def _parse_stops(df: pd.DataFrame, session: Session) -> None:
    session.query(Stop).delete()
    for _, row in df.iterrows():
        session.add(Stop(
            stop_id=int(row["stop_id"]),
            stop_name=row["stop_name"],
            stop_lat=float(row["stop_lat"]),
            stop_lon=float(row["stop_lon"]),
        ))
    logger.info("Loaded %d stops.", len(df))


def _parse_routes(df: pd.DataFrame, session: Session) -> None:
    session.query(Route).delete()
    for _, row in df.iterrows():
        session.add(Route(
            route_id=int(row["route_id"]),
            route_short_name=row.get("route_short_name", ""),
            route_long_name=row.get("route_long_name", ""),
            route_type=int(row.get("route_type") or 2),
        ))
    logger.info("Loaded %d routes.", len(df))


def _parse_trips(df: pd.DataFrame, session: Session) -> None:
    session.query(Trip).delete()
    session.flush()  # ensure route rows from _parse_routes are visible
    valid_routes = {r[0] for r in session.query(Route.route_id).all()}
    skipped = 0
    for _, row in df.iterrows():
        route_id = int(row["route_id"])
        if route_id not in valid_routes:
            skipped += 1
            continue
        session.add(Trip(
            trip_id=int(row["trip_id"]),
            route_id=route_id,
            service_id=int(row["service_id"]),
            trip_headsign=row.get("trip_headsign", ""),
            trip_short_name=row.get("trip_short_name", ""),
            direction_id=int(row["direction_id"]) if row.get("direction_id") else 0,
            shape_id=int(row["shape_id"]) if row.get("shape_id") else None,
        ))
    if skipped:
        logger.warning("Skipped %d trips with invalid route_id.", skipped)
    logger.info("Loaded %d trips.", len(df) - skipped)


def _parse_stop_times(df: pd.DataFrame, session: Session) -> None:
    session.query(StopTime).delete()
    session.flush()  # ensure trip/stop rows from prior parsers are visible
    # The feed occasionally references trips or stops it does not define.
    valid_trips = {r[0] for r in session.query(Trip.trip_id).all()}
    valid_stops = {r[0] for r in session.query(Stop.stop_id).all()}
    records = []
    skipped = 0
    for _, row in df.iterrows():
        trip_id, stop_id = int(row["trip_id"]), int(row["stop_id"])
        if trip_id not in valid_trips or stop_id not in valid_stops:
            skipped += 1
            continue
        records.append(StopTime(
            trip_id=trip_id,
            arrival_time=row["arrival_time"],
            departure_time=row["departure_time"],
            stop_id=stop_id,
            stop_sequence=int(row["stop_sequence"]),
        ))
    if skipped:
        logger.warning("Skipped %d stop_times with invalid trip_id or stop_id.", skipped)
    session.bulk_save_objects(records)
    logger.info("Loaded %d stop times.", len(records))


def _parse_shapes(df: pd.DataFrame, session: Session) -> None:
    session.query(ShapePoint).delete()
    records = [
        ShapePoint(
            shape_id=int(row["shape_id"]),
            shape_pt_sequence=int(row["shape_pt_sequence"]),
            shape_pt_lat=float(row["shape_pt_lat"]),
            shape_pt_lon=float(row["shape_pt_lon"]),
        )
        for _, row in df.iterrows()
    ]
    session.bulk_save_objects(records)
    logger.info("Loaded %d shape points.", len(records))


def _parse_calendar_dates(df: pd.DataFrame, session: Session) -> None:
    for _, row in df.iterrows():
        session.add(ServiceCalendarDate(
            service_id=int(row["service_id"]),
            date=int(row["date"]),
            exception_type=int(row["exception_type"]),
        ))
    logger.info("Loaded %d calendar date exceptions.", len(df))


async def refresh_static_data(session: Session) -> None:
    """Download and ingest a fresh copy of GTFS static data."""
    zip_bytes = await download_gtfs_zip()
    parse_and_store(zip_bytes, session)
