"""YouSign blueprint — /api/yousign/*

Route Map:
  POST /api/yousign/signature-request                — start a contract signature
  GET  /api/yousign/signature-request/<id>           — request + signer status
  GET  /api/yousign/signature-request/<id>/document  — download the (signed) PDF
  GET  /api/yousign/status/<id>                      — raw status + signer timestamps
  GET  /api/yousign/download/<id>                    — signed PDF, via the documents list
"""

import logging

from flask import Blueprint, Response, jsonify, request

from relay.decorators import require_fields
from relay.errors import NotFoundError
from relay.extensions import limiter, proxy_rate_limit
from relay.services.maintenance_service import link_signature_request
from relay.services.yousign_service import (
    format_signature_status,
    get_yousign_client,
    start_signature,
    summarize_signature_request,
)

logger = logging.getLogger(__name__)

yousign_bp = Blueprint("yousign", __name__, url_prefix="/api/yousign")


@yousign_bp.route("/signature-request", methods=["POST"])
@limiter.limit(proxy_rate_limit)
@require_fields("pdfUrl", "signerFirstName", "signerLastName", "signerEmail")
def create_signature_request():
    """Send a maintenance contract out for e-signature.

    Body: pdfUrl, signerFirstName, signerLastName, signerEmail, maintenanceId?

    YouSign emails the signer; no signature link is returned (it is not
    reliably available right after activation).
    """
    data = request.get_json()
    result = start_signature(
        get_yousign_client(),
        pdf_url=data["pdfUrl"],
        first_name=data["signerFirstName"],
        last_name=data["signerLastName"],
        email=data["signerEmail"],
    )

    maintenance_id = data.get("maintenanceId")
    if maintenance_id:
        link_signature_request(str(maintenance_id), result["signatureRequestId"])

    return jsonify(result)


@yousign_bp.route("/signature-request/<request_id>", methods=["GET"])
def get_signature_request(request_id):
    signature_request = get_yousign_client().get_signature_request(request_id)
    return jsonify(summarize_signature_request(signature_request))


@yousign_bp.route("/signature-request/<request_id>/document", methods=["GET"])
def download_document(request_id):
    """Download the first document of the request (signed once completed)."""
    client = get_yousign_client()
    signature_request = client.get_signature_request(request_id)
    documents = signature_request.get("documents") or []
    if not documents:
        raise NotFoundError("No document found for this signature request")

    return _signed_pdf(client, request_id, documents[0]["id"])


# ──────────────────────────────────────────────
# Status and download by request id
# ──────────────────────────────────────────────

@yousign_bp.route("/status/<request_id>", methods=["GET"])
def signature_status(request_id):
    signature_request = get_yousign_client().get_signature_request(request_id)
    return jsonify(format_signature_status(signature_request))


@yousign_bp.route("/download/<request_id>", methods=["GET"])
def download_signed_contract(request_id):
    """Download the first document listed for the request."""
    client = get_yousign_client()
    documents = client.list_documents(request_id)
    if not documents:
        raise NotFoundError("No document found for this signature request")
    return _signed_pdf(client, request_id, documents[0]["id"])


def _signed_pdf(client, request_id, document_id):
    pdf = client.download_document(request_id, document_id)
    logger.info(f"YouSign document {document_id} downloaded for {request_id}")
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="Contrat_Signe_{request_id}.pdf"'
        },
    )
