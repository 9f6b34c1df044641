"""Payment / mandate event record.

One row per provider resource (payment, mandate or subscription), keyed by
the resource id GoCardless puts in the event links. Each webhook event for
that resource is merged in place: status moves along the transition table,
each action timestamp is written the first time that action is seen, and
event_ids keeps the ordered set of provider event ids already applied.
"""

from relay.extensions import db


class PaymentEvent(db.Model):
    __tablename__ = "payments"

    # Action -> column holding the first time that action was observed.
    TIMESTAMP_FIELDS = {
        "created": "received_at",
        "submitted": "submitted_at",
        "confirmed": "confirmed_at",
        "failed": "failed_at",
        "cancelled": "cancelled_at",
        "paid_out": "paid_out_at",
        "active": "active_at",
        "expired": "expired_at",
    }

    id = db.Column(db.String(255), primary_key=True)  # e.g. "PM123" / "MD123"
    resource_type = db.Column(
        db.String(50), nullable=False
    )  # payments | mandates | subscriptions | unknown
    action = db.Column(db.String(100), nullable=True)  # last action observed
    status = db.Column(db.String(50), nullable=False)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    active_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expired_at = db.Column(db.DateTime(timezone=True), nullable=True)

    failure_reason = db.Column(db.Text, nullable=True)
    event_ids = db.Column(db.JSON, default=list)
    payload = db.Column(db.JSON, default=dict)  # last raw event

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        data = {
            "id": self.id,
            "resourceType": self.resource_type,
            "action": self.action,
            "status": self.status,
            "failureReason": self.failure_reason,
            "eventIds": list(self.event_ids or []),
        }
        for column in self.TIMESTAMP_FIELDS.values():
            value = getattr(self, column)
            data[_camel(column)] = value.isoformat() if value else None
        return data

    def __repr__(self):
        return f"<PaymentEvent {self.id} ({self.resource_type}:{self.status})>"


def _camel(name):
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
