import datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bustrack.models.base import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    routes: Mapped[list["Route"]] = relationship(back_populates="vehicle")


class Route(Base):
    __tablename__ = "routes"
    __table_args__ = (
        Index("ix_routes_vehicle_active", "vehicle_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    vehicle_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("vehicles.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    vehicle: Mapped["Vehicle | None"] = relationship(back_populates="routes")
    stops: Mapped[list["Stop"]] = relationship(back_populates="route", order_by="Stop.stop_order")


class Stop(Base):
    __tablename__ = "stops"
    __table_args__ = (
        UniqueConstraint("route_id", "stop_order", name="uq_stop_route_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    route_id: Mapped[int] = mapped_column(Integer, ForeignKey("routes.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    stop_order: Mapped[int] = mapped_column(Integer, nullable=False)

    route: Mapped["Route"] = relationship(back_populates="stops")


class StopVisit(Base):
    __tablename__ = "stop_visits"
    __table_args__ = (
        UniqueConstraint("vehicle_id", "stop_id", "trip_date", name="uq_stop_visit_day"),
        Index("ix_sv_vehicle_day", "vehicle_id", "trip_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stop_id: Mapped[int] = mapped_column(Integer, ForeignKey("stops.id"), nullable=False)
    route_id: Mapped[int] = mapped_column(Integer, ForeignKey("routes.id"), nullable=False)
    trip_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    visited_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
