"""Event store — the `payments` collection behind the webhook receiver.

Document-store shaped on purpose: get / set / update by document id, so the
receiver doesn't care whether records live in SQL or a hosted document DB.
Every write commits on its own; a failed write rolls back and surfaces as
PersistenceError.
"""

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from relay.errors import PersistenceError
from relay.extensions import db
from relay.models.payment_event import PaymentEvent

logger = logging.getLogger(__name__)

EXTENSION_KEY = "relay.event_store"


class RecordConflict(Exception):
    """set() lost an insert race: a record with that id now exists."""


class EventStore:
    collection = PaymentEvent.__tablename__

    def get(self, doc_id):
        try:
            return db.session.get(PaymentEvent, doc_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to read {self.collection}/{doc_id}: {e}")

    def set(self, doc_id, fields):
        """Create the record. Raises RecordConflict if it already exists."""
        record = PaymentEvent(id=doc_id, **fields)
        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info(f"Concurrent insert for {self.collection}/{doc_id}")
            raise RecordConflict(doc_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to write {self.collection}/{doc_id}: {e}")
        return record

    def update(self, doc_id, fields):
        """Merge fields into an existing record."""
        record = self.get(doc_id)
        if record is None:
            raise PersistenceError(f"{self.collection}/{doc_id} does not exist")
        try:
            for name, value in fields.items():
                setattr(record, name, value)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to update {self.collection}/{doc_id}: {e}")
        return record


def get_event_store():
    return current_app.extensions[EXTENSION_KEY]
