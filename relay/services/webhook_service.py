"""Webhook service — authentication, parsing and event application.

Responsible for:
- Source IP allow-listing (optional, skipped in bypass mode)
- HMAC-SHA256 signature verification over the raw request body
- Parsing a delivery into WebhookEvent values
- Applying each event to its record (idempotent merge)
- Notifying the frontend when a record changes status

The blueprint owns the HTTP side; everything here raises RelayError
subclasses and never builds responses.
"""

import hashlib
import hmac
import ipaddress
import json
import logging
import time
from datetime import datetime, timezone

from relay.errors import AuthenticationError, MalformedRequestError
from relay.models.payment_event import PaymentEvent
from relay.services.event_store import RecordConflict
from relay.services.events import (
    UNKNOWN_STATUS,
    ResourceType,
    WebhookEvent,
    can_transition,
    is_terminal,
    should_notify,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Authentication
# ──────────────────────────────────────────────

def check_source_ip(remote_addr, allowed):
    """Raise AuthenticationError (403) unless remote_addr is allow-listed.

    `allowed` holds plain addresses and/or CIDR ranges. An empty list
    means the gate is off.
    """
    if not allowed:
        return
    try:
        addr = ipaddress.ip_address(remote_addr or "")
    except ValueError:
        raise AuthenticationError("Source address not allowed", status_code=403)

    for entry in allowed:
        try:
            if addr in ipaddress.ip_network(entry, strict=False):
                return
        except ValueError:
            logger.warning(f"Ignoring malformed GOCARDLESS_WEBHOOK_ALLOWED_IPS entry: {entry}")
    raise AuthenticationError("Source address not allowed", status_code=403)


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature_header, secret, prefix=""):
    """Verify a hex HMAC-SHA256 signature of the exact raw body.

    Fails closed: a missing header, a missing secret and a mismatch all
    raise AuthenticationError.
    """
    if not signature_header:
        raise AuthenticationError("Missing signature")
    if not secret:
        logger.warning("Webhook secret not configured — rejecting webhook")
        raise AuthenticationError("Invalid signature")

    expected = prefix + compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected, signature_header.strip()):
        raise AuthenticationError("Invalid signature")


# ──────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────

def parse_events(raw_body: bytes):
    """Decode a delivery into a list of raw event dicts.

    Accepts `{"events": [...]}` or a single event object.
    """
    if not raw_body or not raw_body.strip():
        raise MalformedRequestError("Empty request body")
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedRequestError("Request body is not valid JSON")

    if isinstance(body, dict) and "events" in body:
        events = body["events"]
        if not isinstance(events, list):
            raise MalformedRequestError("'events' must be a list")
        return events
    if isinstance(body, dict) and "resource_type" in body:
        return [body]
    raise MalformedRequestError("Expected an 'events' list or a single event")


# ──────────────────────────────────────────────
# Event application
# ──────────────────────────────────────────────

def process_batch(raw_events, store, notifier, notify_budget=None):
    """Apply every event in order. Returns one result dict per event.

    notify_budget caps the seconds spent on frontend notifications across
    the whole batch. Once it runs out the remaining notifications are
    skipped; the events themselves are still stored.

    PersistenceError from the store propagates and stops the batch; events
    already applied stay committed, which is safe since re-delivery is
    idempotent.
    """
    results = []
    deadline = None if notify_budget is None else time.monotonic() + notify_budget
    for raw in raw_events:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping non-object webhook event: {raw!r}")
            results.append({"id": None, "status": "skipped"})
            continue

        event = WebhookEvent.from_payload(raw)
        logger.info(
            f"Processing webhook event {event.id}: "
            f"{event.raw_resource_type}.{event.raw_action}"
        )
        record, changed = apply_event(event, store)
        if record is None:
            results.append({"id": event.id, "status": "skipped"})
            continue

        results.append({"id": record.id, "status": record.status, "changed": changed})
        if changed and should_notify(event.resource_type, record.status):
            _notify(notifier, event, record, deadline)
    return results


def _notify(notifier, event, record, deadline):
    args = (
        event.resource_type.value,
        record.id,
        record.status,
        _notification_payload(event),
    )
    if deadline is None:
        notifier.notify(*args)
        return
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        logger.warning(
            f"Notification budget spent, not notifying {record.id} ({record.status})"
        )
        return
    notifier.notify(*args, timeout=remaining)


def apply_event(event: WebhookEvent, store):
    """Merge one event into its record.

    Returns (record, status_changed). record is None when the event cannot
    be keyed at all.
    """
    key = event.key
    if key is None:
        logger.warning(
            f"Webhook event without id or resource link, skipping: {event.raw}"
        )
        return None, False

    if event.target_status is None:
        logger.warning(
            f"Unhandled webhook event {event.id}: "
            f"resource_type={event.raw_resource_type!r} action={event.raw_action!r}"
        )

    record = store.get(key)
    if record is None:
        try:
            record = store.set(key, _initial_fields(event))
            return record, event.target_status is not None
        except RecordConflict:
            record = store.get(key)

    return _merge(event, record, store)


def _initial_fields(event):
    now = datetime.now(timezone.utc)
    status = event.target_status or UNKNOWN_STATUS
    fields = {
        "resource_type": event.resource_type.value,
        "action": event.raw_action,
        "status": status,
        "received_at": now,
        "event_ids": [event.id] if event.id else [],
        "payload": event.raw,
    }
    ts_field = PaymentEvent.TIMESTAMP_FIELDS.get(event.action.value)
    if ts_field:
        fields[ts_field] = now
    if status == "failed":
        fields["failure_reason"] = event.failure_reason
    return fields


def _merge(event, record, store):
    seen = list(record.event_ids or [])
    is_new_event = not event.id or event.id not in seen

    changes = {}
    if event.id and is_new_event:
        changes["event_ids"] = seen + [event.id]

    ts_field = PaymentEvent.TIMESTAMP_FIELDS.get(event.action.value)
    if ts_field and getattr(record, ts_field) is None:
        changes[ts_field] = datetime.now(timezone.utc)

    if (
        record.resource_type == ResourceType.UNKNOWN.value
        and event.resource_type is not ResourceType.UNKNOWN
    ):
        changes["resource_type"] = event.resource_type.value

    changed = False
    target = event.target_status
    if target is not None and target != record.status:
        if can_transition(event.resource_type, record.status, target):
            changes["status"] = target
            changed = True
            if target == "failed":
                changes["failure_reason"] = event.failure_reason
        elif is_terminal(event.resource_type, record.status):
            logger.info(
                f"{record.id} is {record.status} (terminal), "
                f"ignoring late {event.raw_action} event {event.id}"
            )
        else:
            logger.warning(
                f"Ignoring {record.status} -> {target} for {record.id} "
                f"(event {event.id})"
            )

    if changed or is_new_event:
        changes["action"] = event.raw_action
        changes["payload"] = event.raw

    if not changes:
        logger.info(f"Duplicate webhook event {event.id} for {record.id}, nothing to apply")
        return record, False

    record = store.update(record.id, changes)
    return record, changed


def _notification_payload(event):
    payload = {
        "eventId": event.id,
        "action": event.raw_action,
        "links": event.links,
        "details": event.details,
    }
    maintenance_id = event.resource_metadata.get("maintenanceId")
    if maintenance_id:
        payload["maintenanceId"] = maintenance_id
    return payload
