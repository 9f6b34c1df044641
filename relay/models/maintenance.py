"""Maintenance contract signature tracking.

The frontend owns maintenance contracts; the relay only mirrors the
e-signature side: which YouSign request belongs to which maintenance and
where that signature stands.
"""

from relay.extensions import db


class Maintenance(db.Model):
    __tablename__ = "maintenances"

    SIGNATURE_STATUSES = ["pending", "signed", "declined", "expired"]

    id = db.Column(db.String(255), primary_key=True)  # frontend maintenance id
    yousign_request_id = db.Column(db.String(255), nullable=True, index=True)
    signature_status = db.Column(
        db.String(50), nullable=False, default="pending"
    )  # pending | signed | declined | expired
    signature_date = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "yousignRequestId": self.yousign_request_id,
            "signatureStatus": self.signature_status,
            "signatureDate": self.signature_date,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Maintenance {self.id} ({self.signature_status})>"
