from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Station(db.Model):
    """
    Self-checkout kiosk station.

    Station management itself lives outside this service; rows exist here
    so purchase paths can reject unknown or retired stations.
    """
    __tablename__ = "stations"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Station id={self.id!r} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
