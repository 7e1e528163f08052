# Overview: Station lookups used to gate every purchase path.

from __future__ import annotations

from ..extensions import db
from ..models import Station
from .errors import InvalidCheckoutRequestError, UnknownStationError


def normalize_station_id(station_id) -> str:
    value = str(station_id).strip() if station_id is not None else ""
    if not value:
        raise InvalidCheckoutRequestError("station_id is required.")
    return value


def ensure_active_station(station_id) -> Station:
    """
    Basic abuse prevention: purchases and bills are only accepted for known stations.

    Raises:
        InvalidCheckoutRequestError: station_id missing
        UnknownStationError: no such station, or station deactivated
    """
    sid = normalize_station_id(station_id)
    station = db.session.get(Station, sid)
    if station is None or not station.is_active:
        raise UnknownStationError("Unknown stationId.", details={"station_id": sid})
    return station


def create_station(station_id: str, name: str | None = None) -> Station:
    sid = normalize_station_id(station_id)
    if db.session.get(Station, sid) is not None:
        raise ValueError(f"Station {sid} already exists")
    station = Station(id=sid, name=name, is_active=True)
    db.session.add(station)
    db.session.commit()
    return station


def list_stations(include_inactive: bool = False) -> list[Station]:
    query = db.session.query(Station)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Station.id).all()
