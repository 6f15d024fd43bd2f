"""Trip detail lookup for the info panel."""

from typing import Any

from timetable.model import Network
from timetable.reconstruction import seconds_to_hhmm


def trip_details(network: Network, trip_id: int) -> dict[str, Any] | None:
    """
    Summary of one trip:
      {
        "trip_id", "name", "headsign", "route_name", "category",
        "origin", "destination",          # station names
        "departure", "arrival",           # HH:MM of first departure / last arrival
        "stops": [{"stop_id", "name", "arrival", "departure", "does_stop"}, ...]
      }
    Pass-through stops carry no times. Returns None for an unknown trip.
    """
    trip = network.trip(trip_id)
    if trip is None or not trip.journey:
        return None

    def name_of(stop_id: int) -> str:
        station = network.station(stop_id)
        return station.name if station else str(stop_id)

    first, last = trip.journey[0], trip.journey[-1]
    return {
        "trip_id": trip.id,
        "name": trip.short_name,
        "headsign": trip.headsign,
        "route_name": trip.route_name,
        "category": trip.category.code,
        "origin": name_of(first.stop_id),
        "destination": name_of(last.stop_id),
        "departure": seconds_to_hhmm(first.departure),
        "arrival": seconds_to_hhmm(last.arrival),
        "stops": [
            {
                "stop_id": v.stop_id,
                "name": name_of(v.stop_id),
                "arrival": seconds_to_hhmm(v.arrival) if v.does_stop else None,
                "departure": seconds_to_hhmm(v.departure) if v.does_stop else None,
                "does_stop": v.does_stop,
            }
            for v in trip.journey
        ],
    }
