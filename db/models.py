"""
SQLAlchemy ORM models for the GTFS static tables the timetable core reads.

Identifiers are integers (the railway feed uses numeric ids throughout).
GTFS time fields (arrival_time, departure_time) are stored as HH:MM:SS strings
because the GTFS spec allows values >= 24:00:00 for trips crossing midnight,
and because an empty value means "no timetable record at this point".
Application code converts to seconds-past-midnight when needed.

Shape points are linked to stops by coordinate, not by a foreign key.
"""

from sqlalchemy import Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Stop(Base):
    __tablename__ = "stops"

    stop_id = Column(Integer, primary_key=True)
    stop_name = Column(String, nullable=False)
    stop_lat = Column(Float, nullable=False, index=True)
    stop_lon = Column(Float, nullable=False, index=True)

    stop_times = relationship("StopTime", back_populates="stop")


class Route(Base):
    __tablename__ = "routes"

    route_id = Column(Integer, primary_key=True)
    route_short_name = Column(String)
    route_long_name = Column(String)
    route_type = Column(Integer)  # 2 = rail

    trips = relationship("Trip", back_populates="route")


class Trip(Base):
    __tablename__ = "trips"

    trip_id = Column(Integer, primary_key=True)
    route_id = Column(Integer, ForeignKey("routes.route_id"), index=True)
    service_id = Column(Integer, index=True)
    trip_headsign = Column(String)
    trip_short_name = Column(String)  # e.g. "R 612 Tatran"
    direction_id = Column(Integer)
    shape_id = Column(Integer, index=True, nullable=True)

    route = relationship("Route", back_populates="trips")
    stop_times = relationship("StopTime", back_populates="trip", order_by="StopTime.stop_sequence")


class StopTime(Base):
    __tablename__ = "stop_times"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.trip_id"), index=True)
    arrival_time = Column(String)    # HH:MM:SS (may exceed 24:00:00)
    departure_time = Column(String)  # HH:MM:SS (may exceed 24:00:00)
    stop_id = Column(Integer, ForeignKey("stops.stop_id"), index=True)
    stop_sequence = Column(Integer)

    trip = relationship("Trip", back_populates="stop_times")
    stop = relationship("Stop", back_populates="stop_times")


class ShapePoint(Base):
    __tablename__ = "shapes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shape_id = Column(Integer, index=True)
    shape_pt_sequence = Column(Integer)
    shape_pt_lat = Column(Float, nullable=False)
    shape_pt_lon = Column(Float, nullable=False)


class ServiceCalendarDate(Base):
    __tablename__ = "service_calendar_dates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(Integer, index=True)
    date = Column(Integer, index=True)  # YYYYMMDD
    exception_type = Column(Integer)    # 1 = service added, 2 = service removed
