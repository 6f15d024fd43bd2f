"""
Tests for query.filters, query.state and query.details.

Network-level tests use the seeded feed (see feed.py); the correlation
properties are also checked on small hand-built networks.
"""

import math
from datetime import date
from itertools import product

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import timetable.loader as loader
from db.models import Base
from feed import FEED_DAY, seed_feed
from query.details import trip_details
from query.filters import (
    StationRole,
    filter_by_station,
    station_predicate,
    station_selection,
    transfer_correlated,
)
from query.state import ViewState, search_trip, selected_trip_ids, visible_trips, window_for
from schedule.window import DAY_SECONDS, WindowEntry
from timetable.model import Network, PlaceTime, Station, Trip, coord_key


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database, schema pre-created, per test.

    StaticPool is required so that create_all and the session both use
    the same single connection; otherwise each pool checkout gets a new
    in-memory DB that has no tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def seeded_session(db_session):
    seed_feed(db_session)
    return db_session


@pytest.fixture
def network(seeded_session, monkeypatch):
    """Network built from the seeded feed; the module cache is restored afterwards."""
    monkeypatch.setattr(loader, "_network", None)
    monkeypatch.setattr(loader, "_last_built_at", None)
    return loader.build_network(seeded_session)


def _trip(trip_id, *stops, short_name="Os 1"):
    """Trip whose journey visits `stops`; a negative id marks a pass-through."""
    trip = Trip(trip_id, 1, trip_id, "", short_name, "", 0)
    trip.journey = [PlaceTime(abs(s), 60.0 * i, 60.0 * i, s > 0) for i, s in enumerate(stops)]
    return trip


# ---------------------------------------------------------------------------
# Station filter
# ---------------------------------------------------------------------------

class TestStationPredicate:
    station = Station(2, "Beta", 48.0, 17.5)

    def test_originates(self):
        pred = station_predicate(self.station, StationRole.ORIGINATES)
        assert pred(_trip(1, 2, 3))
        assert not pred(_trip(1, 1, 2))

    def test_terminates(self):
        pred = station_predicate(self.station, StationRole.TERMINATES)
        assert pred(_trip(1, 1, 2))
        assert not pred(_trip(1, 2, 3))

    def test_calls_requires_stop(self):
        pred = station_predicate(self.station, StationRole.CALLS)
        assert pred(_trip(1, 1, 2, 3))
        assert not pred(_trip(1, 1, -2, 3))

    def test_passes_ignores_stop_flag(self):
        pred = station_predicate(self.station, StationRole.PASSES)
        assert pred(_trip(1, 1, -2, 3))
        assert pred(_trip(1, 1, 2, 3))
        assert not pred(_trip(1, 1, 3))

    def test_no_station_is_identity(self):
        for role in StationRole:
            assert station_predicate(None, role)(_trip(1, 7, 8))

    def test_empty_journey_never_matches(self):
        for role in StationRole:
            assert not station_predicate(self.station, role)(_trip(1))


class TestFilterByStation:
    def test_originates_at_alpha(self, network):
        alpha = network.station_by_name("Alpha")
        assert filter_by_station(network.trips.values(), alpha, StationRole.ORIGINATES) == {1}

    def test_terminates_at_alpha(self, network):
        alpha = network.station_by_name("Alpha")
        assert filter_by_station(network.trips.values(), alpha, StationRole.TERMINATES) == {3}

    def test_originates_at_gamma(self, network):
        gamma = network.station_by_name("Gamma")
        assert filter_by_station(network.trips.values(), gamma, StationRole.ORIGINATES) == {2, 3}

    def test_calls_and_passes_at_beta(self, network):
        beta = network.station_by_name("Beta")
        assert filter_by_station(network.trips.values(), beta, StationRole.CALLS) == {1}
        assert filter_by_station(network.trips.values(), beta, StationRole.PASSES) == {1, 3}

    def test_station_selection_by_name(self, network):
        assert station_selection(network, "Delta", StationRole.PASSES) == {2}
        assert station_selection(network, "Delta", StationRole.CALLS) == set()

    def test_unknown_station_name_selects_everything(self, network):
        assert station_selection(network, "Nowhere", StationRole.CALLS) == {1, 2, 3}


# ---------------------------------------------------------------------------
# Transfer correlation
# ---------------------------------------------------------------------------

class TestTransferCorrelated:
    def test_reference_trip_one(self, network):
        assert transfer_correlated(network, 1) == {1, 3}

    def test_reference_trip_three(self, network):
        assert transfer_correlated(network, 3) == {1, 2, 3}

    def test_reference_trip_two(self, network):
        assert transfer_correlated(network, 2) == {2, 3}

    def test_unknown_trip_is_none(self, network):
        assert transfer_correlated(network, 999) is None

    def test_reflexive_and_symmetric(self, network):
        for x, y in product(network.trips, repeat=2):
            assert x in transfer_correlated(network, x)
            assert (y in transfer_correlated(network, x)) == (x in transfer_correlated(network, y))

    def test_matches_by_coordinate_not_stop_id(self):
        # stations 1 and 2 are distinct ids on the same platform coordinates
        stations = [Station(1, "Main", 48.0, 17.0), Station(2, "Main (bus)", 48.0, 17.0), Station(3, "Far", 49.0, 18.0)]
        network = Network(stations, [_trip(10, 1, 3), _trip(20, 2, 3), _trip(30, 3)])
        assert transfer_correlated(network, 10) == {10, 20, 30}

    def test_disjoint_trips_do_not_correlate(self):
        stations = [Station(1, "A", 48.0, 17.0), Station(2, "B", 48.0, 17.5), Station(3, "C", 49.0, 18.0), Station(4, "D", 49.0, 18.5)]
        network = Network(stations, [_trip(10, 1, 2), _trip(20, 3, 4)])
        assert transfer_correlated(network, 10) == {10}
        assert transfer_correlated(network, 20) == {20}

    def test_pass_through_counts(self):
        stations = [Station(1, "A", 48.0, 17.0), Station(2, "B", 48.0, 17.5), Station(3, "C", 49.0, 18.0)]
        network = Network(stations, [_trip(10, 1, -2, 3), _trip(20, 2, 3)])
        assert 20 in transfer_correlated(network, 10)

    def test_coord_key_absorbs_rounding_noise(self):
        assert coord_key(48.1 + 0.2, 17.0) == coord_key(48.3, 17.0)


# ---------------------------------------------------------------------------
# ViewState
# ---------------------------------------------------------------------------

class TestViewState:
    def test_no_filter_selects_all(self, network):
        assert selected_trip_ids(network, ViewState(day=FEED_DAY)) == {1, 2, 3}

    def test_station_filter_replaces_line_filter(self, network):
        state = ViewState(day=FEED_DAY).with_line(2).with_station("Alpha", StationRole.ORIGINATES)
        assert state.line_trip_id is None
        assert selected_trip_ids(network, state) == {1}

    def test_line_filter_replaces_station_filter(self, network):
        state = ViewState(day=FEED_DAY).with_station("Alpha").with_line(1)
        assert state.station_name is None
        assert selected_trip_ids(network, state) == {1, 3}

    def test_chained_filters_intersect(self, network):
        state = ViewState(day=FEED_DAY).with_line(3).with_station("Gamma", StationRole.ORIGINATES, chain=True)
        assert state.line_trip_id == 3
        assert selected_trip_ids(network, state) == {2, 3}
        state = state.with_line(1, chain=True)
        assert selected_trip_ids(network, state) == {3}

    def test_role_kept_when_only_name_changes(self):
        state = ViewState(day=FEED_DAY).with_station("Alpha", StationRole.PASSES).with_station("Beta")
        assert state.role == StationRole.PASSES

    def test_empty_name_clears_station_filter(self, network):
        state = ViewState(day=FEED_DAY).with_station("Alpha").with_station("")
        assert state.station_name is None
        assert selected_trip_ids(network, state) == {1, 2, 3}

    def test_unknown_line_trip_does_not_filter(self, network):
        assert selected_trip_ids(network, ViewState(day=FEED_DAY).with_line(999)) == {1, 2, 3}

    def test_states_are_immutable_values(self):
        base = ViewState(day=FEED_DAY)
        changed = base.with_station("Alpha")
        assert base.station_name is None
        assert changed != base

    def test_highlight_survives_filter_changes(self):
        state = ViewState(day=FEED_DAY).with_highlight(1).with_station("Alpha").with_line(2)
        assert state.highlighted_trip_id == 1
        assert state.with_highlight(None).highlighted_trip_id is None

    def test_hidden_categories(self, network):
        state = ViewState(day=FEED_DAY).with_hidden_categories({"Os", "REX"})
        assert [t.id for t in visible_trips(network, state)] == [1]

    def test_window_for_state(self, seeded_session, network):
        state = ViewState(day=FEED_DAY).with_station("Alpha", StationRole.PASSES).with_highlight(3)
        assert window_for(seeded_session, network, state) == [
            WindowEntry(1, -DAY_SECONDS),
            WindowEntry(1, 0),
            WindowEntry(3, DAY_SECONDS),
            WindowEntry(3, DAY_SECONDS, highlighted=True),
        ]


class TestSearchTrip:
    def test_found_and_running(self, seeded_session, network):
        state = search_trip(seeded_session, network, ViewState(day=FEED_DAY), "R601Alpha")
        assert state.line_trip_id == 1
        assert state.highlighted_trip_id == 1

    def test_not_running_that_day(self, seeded_session, network):
        assert search_trip(seeded_session, network, ViewState(day=FEED_DAY), "REX 1701") is None

    def test_unknown_name(self, seeded_session, network):
        assert search_trip(seeded_session, network, ViewState(day=FEED_DAY), "IC 1") is None

    def test_search_replaces_station_filter(self, seeded_session, network):
        state = ViewState(day=date(2026, 2, 12)).with_station("Delta")
        state = search_trip(seeded_session, network, state, "REX 1701")
        assert state.station_name is None
        assert selected_trip_ids(network, state) == {1, 2, 3}


# ---------------------------------------------------------------------------
# Details and lookups
# ---------------------------------------------------------------------------

class TestTripDetails:
    def test_summary(self, network):
        details = trip_details(network, 2)
        assert details["origin"] == "Gamma"
        assert details["destination"] == "Epsilon"
        assert details["departure"] == "10:00"
        assert details["arrival"] == "10:20"
        assert details["category"] == "Os"

    def test_pass_through_has_no_times(self, network):
        stops = trip_details(network, 2)["stops"]
        assert stops[1] == {"stop_id": 4, "name": "Delta", "arrival": None, "departure": None, "does_stop": False}
        assert stops[0]["departure"] == "10:00"

    def test_unknown_trip(self, network):
        assert trip_details(network, 999) is None

    def test_undefined_time_renders_as_none(self):
        trip = Trip(1, 1, 1, "", "Os 1", "", 0)
        trip.journey = [PlaceTime(1, math.nan, math.nan, True), PlaceTime(2, 600, 600, True)]
        network = Network([Station(1, "A", 0, 0), Station(2, "B", 0, 1)], [trip])
        details = trip_details(network, 1)
        assert details["departure"] is None
        assert details["stops"][0]["arrival"] is None


class TestNetworkLookups:
    def test_station_by_name_miss(self, network):
        assert network.station_by_name("Nowhere") is None
        assert network.station_by_name(None) is None

    def test_trip_by_name_ignores_spaces(self, network):
        assert network.trip_by_name(" Os3301 ").id == 2

    def test_duplicate_names_resolve_to_lowest_id(self):
        network = Network([Station(7, "Twin", 0, 0), Station(3, "Twin", 1, 1)], [])
        assert network.station_by_name("Twin").id == 3

    def test_nearest_station(self, network):
        assert network.nearest_station(48.01, 18.24).name == "Delta"

    def test_nearest_station_empty_network(self):
        assert Network([], []).nearest_station(48.0, 17.0) is None

    def test_origin_and_destination(self, network):
        assert (network.trip(3).origin_id, network.trip(3).destination_id) == (3, 1)


@pytest.mark.parametrize("role", list(StationRole))
def test_role_values_round_trip(role):
    assert StationRole(role.value) is role
