# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import station_service
from .services.errors import CheckoutError


def require_station(f):
    """
    Require a known, active kiosk station.

    Reads `station_id` (or the older `stationId`) from the JSON body and sets:
    - g.station: the Station row
    - g.station_id: its id

    Returns 400 when the station id is missing and 403 when the station is
    unknown or deactivated, before the route body runs.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        data = request.get_json(silent=True) or {}
        station_id = data.get("station_id") or data.get("stationId")

        try:
            station = station_service.ensure_active_station(station_id)
        except CheckoutError as e:
            return jsonify(e.to_dict()), e.http_status

        g.station = station
        g.station_id = station.id

        return f(*args, **kwargs)

    return decorated_function
