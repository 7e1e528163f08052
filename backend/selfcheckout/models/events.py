from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .sales import Purchase


TOPIC_PURCHASE_CREATED = "purchase.created"

EVENT_STATUS_PENDING = "PENDING"
EVENT_STATUS_DONE = "DONE"
EVENT_STATUS_FAILED = "FAILED"


class PurchaseEvent(db.Model):
    """
    Transactional outbox for purchase lifecycle events.

    WHY: The inventory safety net must see every purchase, whichever code
    path inserted it. The row is written in the same transaction as the
    purchase (see _emit_purchase_created), so an event exists if and only if
    the purchase committed. Consumers get at-least-once delivery.
    """
    __tablename__ = "purchase_events"
    __table_args__ = (
        db.UniqueConstraint("topic", "purchase_id", name="uq_purchase_events_topic_purchase"),
        db.Index("ix_purchase_events_status_retry", "status", "next_retry_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    topic = db.Column(db.String(64), nullable=False)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=EVENT_STATUS_PENDING)  # PENDING, DONE, FAILED
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    next_retry_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "topic": self.topic,
            "purchase_id": self.purchase_id,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "next_retry_at": to_utc_z(self.next_retry_at) if self.next_retry_at else None,
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
        }


@event.listens_for(Purchase, "after_insert")
def _emit_purchase_created(mapper, connection, target):
    connection.execute(
        PurchaseEvent.__table__.insert().values(
            topic=TOPIC_PURCHASE_CREATED,
            purchase_id=target.id,
            status=EVENT_STATUS_PENDING,
            attempts=0,
            created_at=utcnow(),
            version_id=1,
        )
    )
