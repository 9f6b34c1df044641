"""Webhooks blueprint — inbound provider notifications.

Route Map:
  POST /api/gocardless/webhook  — GoCardless events (alias: POST /webhook)
  POST /api/yousign/webhook     — YouSign signature request events

Both routes authenticate on the raw body (see decorators.signed_webhook)
before anything is parsed or stored. Only GoCardless has an IP allow-list.
The YouSign signature is checked only when YOUSIGN_WEBHOOK_SECRET is set.
"""

import json
import logging

from flask import Blueprint, current_app, g, jsonify

from relay.decorators import signed_webhook
from relay.errors import MalformedRequestError
from relay.services.event_store import get_event_store
from relay.services.maintenance_service import apply_yousign_event
from relay.services.notifier import get_notifier
from relay.services.webhook_service import parse_events, process_batch

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.route("/api/gocardless/webhook", methods=["POST"])
@webhooks_bp.route("/webhook", methods=["POST"])
@signed_webhook(
    "GOCARDLESS_WEBHOOK_SECRET",
    "webhook-signature",
    allowed_ips_key="GOCARDLESS_WEBHOOK_ALLOWED_IPS",
)
def gocardless_webhook():
    """Receive and apply a batch of GoCardless events.

    1. Authenticated by signed_webhook (IP, empty body, signature)
    2. Parse {events: [...]} or a single event
    3. Apply each event in order (idempotent upsert per resource)
    4. Return 200 once the whole batch is stored

    A store failure aborts the batch with 500 so GoCardless re-delivers.
    """
    raw_events = parse_events(g.raw_body)
    logger.info(f"GoCardless webhook: {len(raw_events)} event(s)")

    results = process_batch(
        raw_events,
        get_event_store(),
        get_notifier(),
        notify_budget=current_app.config.get("NOTIFY_BUDGET_SECONDS"),
    )
    return jsonify({"received": True, "processed": results}), 200


@webhooks_bp.route("/api/yousign/webhook", methods=["POST"])
@signed_webhook(
    "YOUSIGN_WEBHOOK_SECRET",
    "X-Yousign-Signature-256",
    prefix="sha256=",
    required=False,
)
def yousign_webhook():
    """Receive a YouSign event and mirror it onto maintenance signature status."""
    try:
        body = json.loads(g.raw_body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedRequestError("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise MalformedRequestError("Expected a JSON object")

    event_name = body.get("event_name") or body.get("event")
    # YouSign v3 nests under data; older payloads put it at the top level
    signature_request = (
        (body.get("data") or {}).get("signature_request")
        or body.get("signature_request")
    )
    logger.info(f"YouSign webhook: {event_name}")

    updated = apply_yousign_event(event_name, signature_request)
    return jsonify({"received": True, "updated": updated}), 200
