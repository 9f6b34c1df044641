"""GoCardless blueprint — /api/gocardless/*

Thin proxy in front of the GoCardless API for the frontend. Legacy paths
from the old backends are kept as aliases so existing frontends keep
working.

Route Map:
  POST /api/gocardless/mandates               — customer + bank account + mandate
  GET  /api/gocardless/mandates/<id>          — mandate lookup
  POST /api/gocardless/payments               — one-off payment
  GET  /api/gocardless/payments               — list payments
  GET  /api/gocardless/payments/<id>          — payment lookup
  GET  /api/gocardless/payment-status/<id>    — normalized payment status
  POST /api/gocardless/payments/<id>/cancel   — cancel a payment
  POST /api/gocardless/subscriptions          — recurring subscription
  GET  /api/gocardless/creditors              — list creditors
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from relay.decorators import require_fields
from relay.errors import MalformedRequestError
from relay.extensions import limiter, proxy_rate_limit
from relay.services.gocardless_service import get_gocardless_client, validate_iban

logger = logging.getLogger(__name__)

gocardless_bp = Blueprint("gocardless", __name__)


# ──────────────────────────────────────────────
# Mandates
# ──────────────────────────────────────────────

@gocardless_bp.route("/api/gocardless/mandates", methods=["POST"])
@gocardless_bp.route("/create-mandate", methods=["POST"])
@limiter.limit(proxy_rate_limit)
@require_fields("account_holder_name", "iban")
def create_mandate():
    """Create customer, bank account and SEPA mandate in one call.

    Body: account_holder_name, iban, reference?, metadata?
    """
    data = request.get_json()
    iban = data["iban"]
    if current_app.config.get("GOCARDLESS_STRICT_IBAN") and not validate_iban(iban):
        raise MalformedRequestError(
            "Invalid IBAN: expected a French IBAN (FR + 25 characters)"
        )

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise MalformedRequestError("metadata must be an object")

    result = get_gocardless_client().create_mandate(
        account_holder_name=data["account_holder_name"],
        iban=iban,
        metadata=metadata,
        reference=data.get("reference"),
    )
    logger.info(f"Mandate {result['mandateId']} created for {data['account_holder_name']}")
    return jsonify(result)


@gocardless_bp.route("/api/gocardless/mandates/<mandate_id>", methods=["GET"])
@gocardless_bp.route("/mandates/<mandate_id>", methods=["GET"])
def get_mandate(mandate_id):
    return jsonify(get_gocardless_client().get_mandate(mandate_id))


# ──────────────────────────────────────────────
# Payments
# ──────────────────────────────────────────────

@gocardless_bp.route("/api/gocardless/payments", methods=["POST"])
@gocardless_bp.route("/api/gocardless/create-payment", methods=["POST"])
@gocardless_bp.route("/create-payment", methods=["POST"])
@limiter.limit(proxy_rate_limit)
@require_fields("amount", "currency", "mandate_id")
def create_payment():
    """Create a one-off payment. Body amount is in euros, sent as cents."""
    data = request.get_json()
    result = get_gocardless_client().create_payment(
        amount=data["amount"],
        currency=data["currency"],
        mandate_id=data["mandate_id"],
        description=data.get("description"),
        reference=data.get("reference"),
    )
    logger.info(f"Payment {result['paymentId']} created on mandate {data['mandate_id']}")
    return jsonify(result)


@gocardless_bp.route("/api/gocardless/payments", methods=["GET"])
@gocardless_bp.route("/payments", methods=["GET"])
def list_payments():
    return jsonify(get_gocardless_client().list_payments())


@gocardless_bp.route("/api/gocardless/payments/<payment_id>", methods=["GET"])
@gocardless_bp.route("/payments/<payment_id>", methods=["GET"])
def get_payment(payment_id):
    return jsonify(get_gocardless_client().get_payment(payment_id))


@gocardless_bp.route("/api/gocardless/payment-status/<payment_id>", methods=["GET"])
def payment_status(payment_id):
    return jsonify(get_gocardless_client().payment_status(payment_id))


@gocardless_bp.route("/api/gocardless/payments/<payment_id>/cancel", methods=["POST"])
@gocardless_bp.route("/payments/<payment_id>/cancel", methods=["POST"])
def cancel_payment(payment_id):
    result = get_gocardless_client().cancel_payment(payment_id)
    logger.info(f"Payment {payment_id} cancelled")
    return jsonify(result)


# ──────────────────────────────────────────────
# Subscriptions & creditors
# ──────────────────────────────────────────────

@gocardless_bp.route("/api/gocardless/subscriptions", methods=["POST"])
@gocardless_bp.route("/create-subscription", methods=["POST"])
@limiter.limit(proxy_rate_limit)
@require_fields("amount", "currency", "mandate_id", "interval_unit", "interval")
def create_subscription():
    data = request.get_json()
    try:
        interval = int(data["interval"])
    except (TypeError, ValueError):
        raise MalformedRequestError("interval must be an integer")
    if data["interval_unit"] not in ("weekly", "monthly", "yearly"):
        raise MalformedRequestError("interval_unit must be weekly, monthly or yearly")

    result = get_gocardless_client().create_subscription(
        amount=data["amount"],
        currency=data["currency"],
        mandate_id=data["mandate_id"],
        interval_unit=data["interval_unit"],
        interval=interval,
        description=data.get("description"),
        metadata=data.get("metadata") or {},
    )
    return jsonify(result)


@gocardless_bp.route("/api/gocardless/creditors", methods=["GET"])
@gocardless_bp.route("/get-creditors", methods=["GET"])
def list_creditors():
    return jsonify(get_gocardless_client().list_creditors())
