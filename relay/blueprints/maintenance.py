"""Maintenance blueprint — /api/maintenance/*

Route Map:
  GET   /api/maintenance/pending-signatures  — contracts still waiting on a signer
  PATCH /api/maintenance/<id>/signature      — set signature status by hand
"""

from flask import Blueprint, jsonify, request

from relay.decorators import require_fields
from relay.services.maintenance_service import (
    list_pending_signatures,
    update_signature_status,
)

maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api/maintenance")


@maintenance_bp.route("/pending-signatures", methods=["GET"])
def pending_signatures():
    maintenances = list_pending_signatures()
    return jsonify({"maintenances": [m.to_dict() for m in maintenances]})


@maintenance_bp.route("/<maintenance_id>/signature", methods=["PATCH"])
@require_fields("signatureStatus")
def update_signature(maintenance_id):
    data = request.get_json()
    maintenance = update_signature_status(
        maintenance_id,
        data["signatureStatus"],
        signature_date=data.get("signatureDate"),
    )
    return jsonify({
        "success": True,
        "message": "Signature status updated",
        "data": maintenance.to_dict(),
    })
