"""
FastAPI application entry point: the surface the 3D front end talks to.

On startup:
  1. Initialise the database schema.
  2. Build the timetable network from stored GTFS data. A database failure
     here aborts startup; an empty database just yields an empty network.
  3. Start the APScheduler daily GTFS static refresh + network rebuild
     (every GTFS_REFRESH_HOURS, default 24h).

Endpoints (v1):
  GET  /health
  GET  /stations
  GET  /stations/nearest?lat=<float>&lon=<float>
  GET  /trips
  GET  /trips/search?name=<short name>&date=<YYYY-MM-DD>
  GET  /trips/{trip_id}
  GET  /trips/{trip_id}/timeline?day_offset=<-86400|0|86400>
  GET  /window?date=<YYYY-MM-DD>&station=&role=&line=&highlight=&hidden=
  GET  /filters/station?name=<station name>&role=<role>
  GET  /filters/line?trip_id=<int>
  POST /hits
  POST /ingest/gtfs-static
"""

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, date as Date
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.schemas import (
    HealthResponse,
    HitAction,
    HitRequest,
    IngestResponse,
    SelectionResponse,
    StationResult,
    TimelinePoint,
    TripDetails,
    TripResult,
    WindowResponse,
)
from config import CORS_ORIGINS, GTFS_REFRESH_HOURS, INGEST_API_KEY
from db.models import ServiceCalendarDate, Stop, Trip as TripRow
from db.session import SessionLocal, get_session, init_db
from ingestion.gtfs_static import refresh_static_data
from query.details import trip_details
from query.filters import StationRole, filter_by_station, transfer_correlated
from query.state import ViewState, search_trip, window_for
from schedule.window import DAY_SECONDS, WINDOW_DAYS, timeline
from selection.hits import (
    Intersection, RecordedCaster, StationHit, TripHit, apply_hit, is_click, resolve_pointer,
)
from timetable.categories import category_by_code
from timetable.loader import build_network, get_last_built_at, get_network
from timetable.model import Network, Station, Trip
from timetable.projection import project

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ingest_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _require_ingest_key(key: str | None = Security(_ingest_key_header)) -> None:
    """
    Optional API-key guard for the ingest endpoint.

    If INGEST_API_KEY is not set the endpoint is open (local dev / testing).
    If it is set, the request must include the matching X-API-Key header.
    """
    if not INGEST_API_KEY:
        return  # no key configured → open
    if key != INGEST_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing X-API-Key header.")


def _require_network() -> Network:
    """Interactive endpoints are gated until the first load has finished."""
    try:
        return get_network()
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


scheduler = AsyncIOScheduler()


async def _daily_gtfs_refresh() -> None:
    """
    Scheduled job: refresh GTFS static data and rebuild the network.

    Opens its own DB session because APScheduler jobs run outside FastAPI's
    DI system. Failures are logged and the previous network stays in place.
    """
    logger.info("Daily GTFS static refresh starting.")
    db = SessionLocal()
    try:
        await refresh_static_data(db)
        build_network(db)
        logger.info("Daily GTFS static refresh complete.")
    except Exception as exc:
        logger.error("Daily GTFS static refresh failed: %s", exc, exc_info=True)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    logger.info("Database initialised.")

    db = SessionLocal()
    try:
        build_network(db)
    finally:
        db.close()

    scheduler.add_job(
        _daily_gtfs_refresh,
        "interval",
        hours=GTFS_REFRESH_HOURS,
        id="daily_gtfs_refresh",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started. Daily GTFS refresh every %dh.", GTFS_REFRESH_HOURS)

    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Space-time Timetable",
    description="Time-resolved railway journeys, calendar windows and trip filters for a 3D timetable view.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _finite(t: float) -> float | None:
    return t if math.isfinite(t) else None


def _station_out(station: Station) -> dict[str, Any]:
    x, z = project(station.lat, station.lon)
    return {"id": station.id, "name": station.name, "lat": station.lat, "lon": station.lon, "x": x, "z": z}


def _trip_out(trip: Trip) -> dict[str, Any]:
    return {
        "id": trip.id,
        "service_id": trip.service_id,
        "name": trip.short_name,
        "headsign": trip.headsign,
        "route_name": trip.route_name,
        "direction": trip.direction,
        "category": trip.category.code,
        "color": f"#{trip.category.color:06x}",
        "journey": [
            {
                "stop_id": v.stop_id,
                "arrival": _finite(v.arrival),
                "departure": _finite(v.departure),
                "does_stop": v.does_stop,
            }
            for v in trip.journey
        ],
    }


def _parse_date(value: str | None) -> Date:
    try:
        return Date.fromisoformat(value) if value else datetime.now().date()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid date parameter: {exc}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health", response_model=HealthResponse)
async def health(session: Session = Depends(get_session)) -> HealthResponse:
    """
    Liveness + data-freshness check: DB record counts, network stats and
    timestamps, so operators can tell whether the timetable is loaded.
    """
    stop_count: int = session.query(func.count(Stop.stop_id)).scalar() or 0
    trip_count: int = session.query(func.count(TripRow.trip_id)).scalar() or 0
    latest_service_date: int | None = session.query(func.max(ServiceCalendarDate.date)).scalar()

    network_built = False
    network_stations = 0
    network_trips = 0
    last_built_at: str | None = None
    try:
        network = get_network()
        network_built = True
        network_stations = len(network.stations)
        network_trips = len(network.trips)
        ts = get_last_built_at()
        last_built_at = ts.isoformat() if ts else None
    except RuntimeError:
        pass

    next_refresh_at: str | None = None
    daily_job = scheduler.get_job("daily_gtfs_refresh")
    if daily_job and daily_job.next_run_time:
        next_refresh_at = daily_job.next_run_time.isoformat()

    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "gtfs": {
            "stops": stop_count,
            "trips": trip_count,
            "latest_service_date": latest_service_date,
            "network_built": network_built,
            "network_stations": network_stations,
            "network_trips": network_trips,
            "last_built_at": last_built_at,
            "next_refresh_at": next_refresh_at,
        },
    }


@app.get("/stations", response_model=list[StationResult])
async def list_stations(network: Network = Depends(_require_network)) -> list[StationResult]:
    return [_station_out(s) for s in network.stations.values()]


@app.get("/stations/nearest", response_model=StationResult)
async def nearest_station(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    network: Network = Depends(_require_network),
) -> StationResult:
    """Closest station to a device location (used to preselect a station)."""
    station = network.nearest_station(lat, lon)
    if station is None:
        raise HTTPException(status_code=404, detail="No stations loaded.")
    return _station_out(station)


@app.get("/trips", response_model=list[TripResult])
async def list_trips(network: Network = Depends(_require_network)) -> list[TripResult]:
    return [_trip_out(t) for t in network.trips.values()]


@app.get("/trips/search", response_model=TripResult)
async def find_trip(
    name: str = Query(..., min_length=1, description="Trip short name, spaces ignored"),
    date: str | None = Query(None, description="Service date as YYYY-MM-DD. Defaults to today."),
    session: Session = Depends(get_session),
    network: Network = Depends(_require_network),
) -> TripResult:
    """Find a trip by name that runs on the given date."""
    state = search_trip(session, network, ViewState(day=_parse_date(date)), name)
    if state is None:
        raise HTTPException(status_code=404, detail=f"No trip named '{name}' runs on that date.")
    return _trip_out(network.trips[state.highlighted_trip_id])


@app.get("/trips/{trip_id}", response_model=TripDetails)
async def get_trip(trip_id: int, network: Network = Depends(_require_network)) -> TripDetails:
    details = trip_details(network, trip_id)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found.")
    return details


@app.get("/trips/{trip_id}/timeline", response_model=list[TimelinePoint])
async def get_trip_timeline(
    trip_id: int,
    day_offset: int = Query(0, description="Bucket offset in seconds: -86400, 0 or 86400"),
    network: Network = Depends(_require_network),
) -> list[TimelinePoint]:
    """
    The trip's journey on the continuous timeline of the window: arrival and
    departure at every visit, shifted by the bucket's day offset.
    """
    if day_offset not in {shift * DAY_SECONDS for shift in WINDOW_DAYS}:
        raise HTTPException(status_code=422, detail=f"Invalid day_offset {day_offset}.")
    trip = network.trip(trip_id)
    if trip is None:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found.")
    return [{"stop_id": stop_id, "t": _finite(t)} for stop_id, t in timeline(trip, day_offset)]


@app.get("/window", response_model=WindowResponse)
async def get_window(
    date: str | None = Query(None, description="Service date as YYYY-MM-DD. Defaults to today."),
    station: str | None = Query(None, description="Station filter: station name"),
    role: StationRole = Query(StationRole.CALLS, description="Station filter role"),
    line: int | None = Query(None, description="Line filter: reference trip id"),
    highlight: int | None = Query(None, description="Trip id to draw emphasised"),
    hidden: str | None = Query(None, description="Comma-separated category codes to hide"),
    session: Session = Depends(get_session),
    network: Network = Depends(_require_network),
) -> WindowResponse:
    """
    Trips to draw around a date: yesterday, today and tomorrow, each with its
    day offset. Station and line filters intersect when both are given.
    """
    day = _parse_date(date)
    codes = {c.strip() for c in (hidden or "").split(",") if c.strip()}
    unknown = sorted(c for c in codes if category_by_code(c) is None)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown category codes: {', '.join(unknown)}.")
    state = (
        ViewState(day=day)
        .with_station(station, role)
        .with_line(line, chain=True)
        .with_hidden_categories(codes)
        .with_highlight(highlight)
    )
    entries = window_for(session, network, state)
    return {
        "date": day.isoformat(),
        "entries": [e._asdict() for e in entries],
    }


@app.get("/filters/station", response_model=SelectionResponse)
async def station_filter(
    name: str = Query(..., min_length=1, description="Station name"),
    role: StationRole = Query(StationRole.CALLS),
    network: Network = Depends(_require_network),
) -> SelectionResponse:
    station = network.station_by_name(name)
    if station is None:
        raise HTTPException(status_code=404, detail=f"Station '{name}' not found.")
    return {"trip_ids": sorted(filter_by_station(network.trips.values(), station, role))}


@app.get("/filters/line", response_model=SelectionResponse)
async def line_filter(
    trip_id: int = Query(..., description="Reference trip id"),
    network: Network = Depends(_require_network),
) -> SelectionResponse:
    correlated = transfer_correlated(network, trip_id)
    if correlated is None:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found.")
    return {"trip_ids": sorted(correlated)}


@app.post("/hits", response_model=HitAction)
async def resolve_hit(
    request: HitRequest,
    network: Network = Depends(_require_network),
) -> HitAction:
    """
    Turn the renderer's ray casts into a selection action. Either a single
    cast (`intersections`) or one cast per tolerance tier (`casts`, most
    precise first); the first tier with a hit wins. A press held for longer
    than the click threshold is a drag and selects nothing.
    """
    if request.pressed_at and request.released_at and not is_click(request.pressed_at, request.released_at):
        return {"action": "none"}

    casts = request.casts if request.casts is not None else [request.intersections]
    caster = RecordedCaster([[Intersection(i.name, i.distance) for i in cast] for cast in casts])
    hit = resolve_pointer(caster, (0.0, 0.0))
    state = apply_hit(network, ViewState(day=datetime.now().date(), role=request.role), hit)

    if isinstance(hit, StationHit) and state.station_name is not None:
        station = network.station(hit.station_id)
        return {
            "action": "station_filter",
            "station": _station_out(station),
            "role": request.role,
            "trip_ids": sorted(filter_by_station(network.trips.values(), station, request.role)),
        }
    if isinstance(hit, TripHit) and state.highlighted_trip_id is not None:
        return {
            "action": "select_trip",
            "trip_id": hit.trip_id,
            "day_offset": hit.day_offset,
            "details": trip_details(network, hit.trip_id),
        }
    return {"action": "none"}


@app.post("/ingest/gtfs-static", response_model=IngestResponse)
async def trigger_gtfs_ingest(
    session: Session = Depends(get_session),
    _: None = Depends(_require_ingest_key),
) -> IngestResponse:
    """
    Manually trigger a GTFS static data refresh and network rebuild.
    (In production this runs on a daily schedule.)
    """
    await refresh_static_data(session)
    network = build_network(session)
    return {
        "status": "ok",
        "message": (
            f"GTFS static data refreshed; network rebuilt with "
            f"{len(network.trips)} trips and {len(network.stations)} stations."
        ),
    }
