"""
Explicit view state for one user session.

Everything an interaction depends on (the date, the active filter, the
highlighted trip, hidden categories) lives in an immutable ViewState. Each
operation takes a state and returns a new one, and the caller keeps the latest.

Filters replace each other by default: choosing a station drops the line
filter and choosing a line drops the station filter. Pass chain=True to keep
the other filter, and the two selections are intersected.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date

from sqlalchemy.orm import Session

from query.filters import StationRole, station_selection, transfer_correlated
from schedule.window import WindowEntry, resolve_window, runs_on
from timetable.model import Network, Trip

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewState:
    day: date
    station_name: str | None = None
    role: StationRole = StationRole.CALLS
    line_trip_id: int | None = None
    highlighted_trip_id: int | None = None
    hidden_categories: frozenset[str] = field(default_factory=frozenset)

    def with_station(self, name: str | None, role: StationRole | None = None, chain: bool = False) -> "ViewState":
        return replace(
            self,
            station_name=name or None,
            role=role or self.role,
            line_trip_id=self.line_trip_id if chain else None,
        )

    def with_line(self, trip_id: int | None, chain: bool = False) -> "ViewState":
        return replace(
            self,
            line_trip_id=trip_id,
            station_name=self.station_name if chain else None,
        )

    def with_highlight(self, trip_id: int | None) -> "ViewState":
        return replace(self, highlighted_trip_id=trip_id)

    def with_hidden_categories(self, codes) -> "ViewState":
        return replace(self, hidden_categories=frozenset(codes))


def selected_trip_ids(network: Network, state: ViewState) -> set[int]:
    """Trip ids passing the state's filters (all trips when none is active)."""
    selection = set(network.trips)
    if state.station_name:
        selection &= station_selection(network, state.station_name, state.role)
    if state.line_trip_id is not None:
        correlated = transfer_correlated(network, state.line_trip_id)
        if correlated is not None:
            selection &= correlated
    return selection


def visible_trips(network: Network, state: ViewState) -> list[Trip]:
    """Selected trips whose category is shown, in trip id order."""
    selection = selected_trip_ids(network, state)
    return [
        trip for trip in network.trips.values()
        if trip.id in selection
        and trip.category.shown
        and trip.category.code not in state.hidden_categories
    ]


def window_for(session: Session, network: Network, state: ViewState) -> list[WindowEntry]:
    """
    Window entries for the visible trips. The highlighted trip is emphasised
    in every bucket it runs in, whichever bucket it was selected from.
    """
    return resolve_window(session, state.day, visible_trips(network, state), state.highlighted_trip_id)


def search_trip(session: Session, network: Network, state: ViewState, name: str) -> ViewState | None:
    """
    Select a trip by its short name: line filter on it and highlight it.
    Returns None when the name is unknown or the trip does not run on
    state.day; the caller keeps its current state.
    """
    trip = network.trip_by_name(name)
    if trip is None:
        logger.info("No trip named %r.", name)
        return None
    if not runs_on(session, trip.id, state.day):
        logger.info("Trip %d (%s) does not run on %s.", trip.id, trip.short_name, state.day)
        return None
    return state.with_line(trip.id).with_highlight(trip.id)
