from __future__ import annotations
from datetime import datetime
from typing import Annotated, Literal
from pydantic import BaseModel, Field

from query.filters import StationRole


# ---------------------------------------------------------------------------
# GET /stations
# ---------------------------------------------------------------------------

class StationResult(BaseModel):
    id: int
    name: str
    lat: float
    lon: float
    x: float   # display frame
    z: float


# ---------------------------------------------------------------------------
# GET /trips, GET /trips/{id}
# ---------------------------------------------------------------------------

class VisitResult(BaseModel):
    stop_id: int
    arrival: float | None    # seconds past midnight; None when undefined
    departure: float | None
    does_stop: bool


class TripResult(BaseModel):
    id: int
    service_id: int
    name: str
    headsign: str
    route_name: str
    direction: int
    category: str
    color: str   # "#rrggbb"
    journey: list[VisitResult]


class StopDetail(BaseModel):
    stop_id: int
    name: str
    arrival: str | None      # HH:MM, None for pass-through stops
    departure: str | None
    does_stop: bool


class TripDetails(BaseModel):
    trip_id: int
    name: str
    headsign: str
    route_name: str
    category: str
    origin: str
    destination: str
    departure: str | None
    arrival: str | None
    stops: list[StopDetail]


# ---------------------------------------------------------------------------
# GET /window, GET /filters/*
# ---------------------------------------------------------------------------

class WindowEntryResult(BaseModel):
    trip_id: int
    day_offset: int
    highlighted: bool


class WindowResponse(BaseModel):
    date: str
    entries: list[WindowEntryResult]


class TimelinePoint(BaseModel):
    stop_id: int
    t: float | None   # continuous timeline seconds; None when undefined


class SelectionResponse(BaseModel):
    trip_ids: list[int]


# ---------------------------------------------------------------------------
# POST /hits
# ---------------------------------------------------------------------------

class IntersectionIn(BaseModel):
    name: str
    distance: float


class HitRequest(BaseModel):
    intersections: list[IntersectionIn] = []              # a single cast
    casts: list[list[IntersectionIn]] | None = None       # one cast per tolerance tier, most precise first
    pressed_at: datetime | None = None
    released_at: datetime | None = None
    role: StationRole = StationRole.CALLS


class StationAction(BaseModel):
    action: Literal["station_filter"]
    station: StationResult
    role: StationRole
    trip_ids: list[int]


class TripAction(BaseModel):
    action: Literal["select_trip"]
    trip_id: int
    day_offset: int
    details: TripDetails


class NoAction(BaseModel):
    action: Literal["none"]


HitAction = Annotated[StationAction | TripAction | NoAction, Field(discriminator="action")]


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class FeedStats(BaseModel):
    stops: int
    trips: int
    latest_service_date: int | None
    network_built: bool
    network_stations: int
    network_trips: int
    last_built_at: str | None
    next_refresh_at: str | None


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
    gtfs: FeedStats


# ---------------------------------------------------------------------------
# POST /ingest/*
# ---------------------------------------------------------------------------

class IngestResponse(BaseModel):
    status: Literal["ok"]
    message: str
