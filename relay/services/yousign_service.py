"""YouSign service — e-signature requests for maintenance contracts.

Flow for a new contract:
  1. download the contract PDF from the URL the frontend gives us
  2. create a signature request (delivery by email)
  3. upload the PDF as the signable document
  4. add the signer with one signature field on page 1
  5. activate — YouSign then emails the signer itself
"""

import logging

import requests
from flask import current_app

from relay.errors import ConfigurationError, NotFoundError, ProviderError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "relay.yousign"

# Where the signature box goes on the contract's first page.
SIGNATURE_FIELD = {"page": 1, "x": 200, "y": 400}


class YouSignClient:

    def __init__(self, api_url, api_key, timeout=30):
        self.api_url = (api_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _request(self, method, path, raw=False, **kwargs):
        if not self.api_key:
            raise ConfigurationError("YOUSIGN_API_KEY missing")

        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = requests.request(
                method, f"{self.api_url}{path}",
                headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"YouSign {method} {path} failed: {e}")
            raise ProviderError("YouSign request failed", details=str(e))

        if resp.status_code == 404:
            raise NotFoundError("YouSign resource not found")
        if not resp.ok:
            try:
                details = resp.json()
            except ValueError:
                details = resp.text
            logger.error(f"YouSign {method} {path} -> {resp.status_code}: {details}")
            raise ProviderError(f"YouSign returned {resp.status_code}", details=details)
        return resp.content if raw else resp.json()

    def create_signature_request(self, name):
        return self._request("POST", "/signature_requests", json={
            "name": name,
            "delivery_mode": "email",
        })["id"]

    def upload_document(self, signature_request_id, pdf_bytes, filename="contract.pdf"):
        return self._request(
            "POST",
            f"/signature_requests/{signature_request_id}/documents",
            files={"file": (filename, pdf_bytes, "application/pdf")},
            data={"nature": "signable_document"},
        )["id"]

    def add_signer(self, signature_request_id, document_id,
                   first_name, last_name, email):
        return self._request(
            "POST",
            f"/signature_requests/{signature_request_id}/signers",
            json={
                "info": {
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": email,
                    "locale": "fr",
                },
                "signature_level": "electronic_signature",
                "signature_authentication_mode": "no_otp",
                "delivery_mode": "email",
                "fields": [
                    {"type": "signature", "document_id": document_id, **SIGNATURE_FIELD}
                ],
            },
        )

    def activate(self, signature_request_id):
        return self._request(
            "POST", f"/signature_requests/{signature_request_id}/activate"
        )

    def get_signature_request(self, signature_request_id):
        return self._request("GET", f"/signature_requests/{signature_request_id}")

    def list_documents(self, signature_request_id):
        documents = self._request(
            "GET", f"/signature_requests/{signature_request_id}/documents"
        )
        return documents if isinstance(documents, list) else []

    def download_document(self, signature_request_id, document_id):
        return self._request(
            "GET",
            f"/signature_requests/{signature_request_id}/documents/{document_id}/download",
            raw=True,
        )


def download_pdf(pdf_url, timeout=30):
    """Fetch the contract PDF the frontend uploaded (e.g. Firebase Storage)."""
    try:
        resp = requests.get(pdf_url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to download contract PDF from {pdf_url}: {e}")
        raise ProviderError("Could not download contract PDF", details=str(e))
    return resp.content


def start_signature(client, pdf_url, first_name, last_name, email):
    """Run the whole create -> upload -> signer -> activate flow.

    Returns {signatureRequestId, documentId, signerId, status}.
    """
    pdf_bytes = download_pdf(pdf_url, timeout=client.timeout)
    logger.info(f"Contract PDF downloaded ({len(pdf_bytes)} bytes)")

    signature_request_id = client.create_signature_request("Signature contrat")
    document_id = client.upload_document(signature_request_id, pdf_bytes)
    signer = client.add_signer(
        signature_request_id, document_id, first_name, last_name, email
    )
    client.activate(signature_request_id)
    logger.info(f"YouSign request {signature_request_id} activated for {email}")

    return {
        "signatureRequestId": signature_request_id,
        "documentId": document_id,
        "signerId": signer.get("id"),
        "status": "ongoing",
    }


def summarize_signature_request(signature_request):
    """Shape a YouSign signature request for the frontend."""
    signers = []
    for signer in signature_request.get("signers") or []:
        info = signer.get("info") or {}
        signers.append({
            "id": signer.get("id"),
            "firstName": info.get("first_name"),
            "lastName": info.get("last_name"),
            "email": info.get("email"),
            "status": signer.get("status"),
            "signedAt": signer.get("signed_at"),
            "signatureLink": signer.get("signature_link"),
        })

    status = signature_request.get("status")
    return {
        "id": signature_request.get("id"),
        "name": signature_request.get("name"),
        "status": status,
        "createdAt": signature_request.get("created_at"),
        "updatedAt": signature_request.get("updated_at"),
        "signers": signers,
        "isCompleted": status in ("completed", "done"),
        "isExpired": status == "expired",
    }


def format_signature_status(signature_request):
    """Raw status view: {data: {...timestamps}, signers: [...]}, snake_case as
    YouSign sends it."""
    signers = []
    for signer in signature_request.get("signers") or []:
        info = signer.get("info") or {}
        signers.append({
            "id": signer.get("id"),
            "email": signer.get("email") or info.get("email"),
            "status": signer.get("status"),
            "signed_at": signer.get("signed_at"),
            "declined_at": signer.get("declined_at"),
        })

    data = {
        field: signature_request.get(field)
        for field in ("id", "status", "signed_at", "declined_at",
                      "expired_at", "created_at", "updated_at")
    }
    return {"data": data, "signers": signers}


def get_yousign_client():
    return current_app.extensions[EXTENSION_KEY]
