"""Maintenance service — signature status for maintenance contracts.

Written from three places: the signature-request route (pending), the
YouSign webhook (signed / declined / expired) and the frontend's manual
PATCH.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from relay.errors import MalformedRequestError, NotFoundError, PersistenceError
from relay.extensions import db
from relay.models.maintenance import Maintenance

logger = logging.getLogger(__name__)

# YouSign webhook event -> local signature status
YOUSIGN_EVENT_STATUS = {
    "signature_request.done": "signed",
    "signature_request.completed": "signed",
    "signature_request.declined": "declined",
    "signature_request.expired": "expired",
}


def _commit(what):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to save {what}: {e}")
        raise PersistenceError(f"Failed to save {what}")


def link_signature_request(maintenance_id, yousign_request_id):
    """Attach a fresh YouSign request to a maintenance (status back to pending)."""
    maintenance = db.session.get(Maintenance, maintenance_id)
    if maintenance is None:
        maintenance = Maintenance(id=maintenance_id)
        db.session.add(maintenance)
    maintenance.yousign_request_id = yousign_request_id
    maintenance.signature_status = "pending"
    maintenance.signature_date = None
    _commit(f"maintenance {maintenance_id}")
    return maintenance


def list_pending_signatures():
    return (
        Maintenance.query
        .filter(Maintenance.signature_status == "pending")
        .filter(Maintenance.yousign_request_id.isnot(None))
        .order_by(Maintenance.created_at.asc())
        .all()
    )


def update_signature_status(maintenance_id, signature_status, signature_date=None):
    if signature_status not in Maintenance.SIGNATURE_STATUSES:
        raise MalformedRequestError(
            f"signatureStatus must be one of {', '.join(Maintenance.SIGNATURE_STATUSES)}"
        )
    maintenance = db.session.get(Maintenance, maintenance_id)
    if maintenance is None:
        raise NotFoundError(f"Maintenance {maintenance_id} not found")

    maintenance.signature_status = signature_status
    if signature_date:
        maintenance.signature_date = signature_date
    _commit(f"maintenance {maintenance_id}")
    logger.info(f"Maintenance {maintenance_id} signature -> {signature_status}")
    return maintenance


def apply_yousign_event(event_name, signature_request):
    """Apply a YouSign webhook to every maintenance tied to the request.

    Returns the number of maintenances updated. Unhandled events are a no-op.
    """
    status = YOUSIGN_EVENT_STATUS.get(event_name)
    request_id = (signature_request or {}).get("id")
    if status is None or not request_id:
        logger.info(f"YouSign event {event_name!r} ignored")
        return 0

    maintenances = Maintenance.query.filter_by(yousign_request_id=request_id).all()
    if not maintenances:
        logger.warning(f"YouSign event {event_name}: no maintenance for request {request_id}")
        return 0

    for maintenance in maintenances:
        maintenance.signature_status = status
        if status == "signed":
            maintenance.signature_date = (
                signature_request.get("signed_at")
                or signature_request.get("updated_at")
                or maintenance.signature_date
            )
    _commit(f"signature status for request {request_id}")
    logger.info(f"YouSign request {request_id} -> {status} ({len(maintenances)} maintenance(s))")
    return len(maintenances)
