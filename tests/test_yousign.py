"""Tests for the YouSign signature routes and the YouSign webhook."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from relay.extensions import db
from relay.models.maintenance import Maintenance

API = "https://yousign.test/v3"
YS_SECRET = "ys_webhook_secret_test"
PDF_BYTES = b"%PDF-1.4 contrat de maintenance"

SIGNATURE_REQUEST = {
    "id": "SR001",
    "name": "Signature contrat",
    "status": "done",
    "created_at": "2024-05-02T10:00:00+00:00",
    "updated_at": "2024-05-03T09:30:00+00:00",
    "documents": [{"id": "DOC001", "nature": "signable_document"}],
    "signers": [{
        "id": "SG001",
        "status": "signed",
        "signed_at": "2024-05-03T09:29:00+00:00",
        "signature_link": None,
        "info": {"first_name": "Jeanne", "last_name": "Martin", "email": "jeanne@example.com"},
    }],
}


def _response(status_code=200, body=None, content=b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    resp.content = content
    return resp


def _yousign_api(method, url, **kwargs):
    path = url.replace(API, "")
    routes = {
        ("POST", "/signature_requests"): {"id": "SR001", "status": "draft"},
        ("POST", "/signature_requests/SR001/documents"): {"id": "DOC001"},
        ("POST", "/signature_requests/SR001/signers"): {"id": "SG001"},
        ("POST", "/signature_requests/SR001/activate"): {"id": "SR001", "status": "ongoing"},
        ("GET", "/signature_requests/SR001"): SIGNATURE_REQUEST,
        ("GET", "/signature_requests/SR001/documents"): [{"id": "DOC001", "nature": "signable_document"}],
    }
    if (method, path) == ("GET", "/signature_requests/SR001/documents/DOC001/download"):
        return _response(200, content=b"%PDF-1.4 signed")
    body = routes.get((method, path))
    if body is None:
        return _response(404, {"detail": "Not found"})
    return _response(200, body)


@pytest.fixture
def yousign_api():
    with patch("relay.services.yousign_service.requests.request") as mock_request:
        with patch("relay.services.yousign_service.requests.get") as mock_get:
            mock_request.side_effect = _yousign_api
            mock_get.return_value = _response(200, content=PDF_BYTES)
            yield mock_request, mock_get


def _signature_body(**overrides):
    body = {
        "pdfUrl": "https://storage.test/contracts/42.pdf",
        "signerFirstName": "Jeanne",
        "signerLastName": "Martin",
        "signerEmail": "jeanne@example.com",
    }
    body.update(overrides)
    return body


class TestSignatureRequest:
    """POST /api/yousign/signature-request runs the whole signing flow."""

    def test_creates_and_activates(self, client, yousign_api):
        mock_request, mock_get = yousign_api
        resp = client.post("/api/yousign/signature-request", json=_signature_body())

        assert resp.status_code == 200
        assert resp.get_json() == {
            "signatureRequestId": "SR001",
            "documentId": "DOC001",
            "signerId": "SG001",
            "status": "ongoing",
        }
        mock_get.assert_called_once()
        assert mock_get.call_args[0][0] == "https://storage.test/contracts/42.pdf"

        calls = [(c[0][0], c[0][1].replace(API, "")) for c in mock_request.call_args_list]
        assert calls == [
            ("POST", "/signature_requests"),
            ("POST", "/signature_requests/SR001/documents"),
            ("POST", "/signature_requests/SR001/signers"),
            ("POST", "/signature_requests/SR001/activate"),
        ]

        upload = mock_request.call_args_list[1][1]
        assert upload["files"]["file"][1] == PDF_BYTES
        assert upload["data"] == {"nature": "signable_document"}

        signer = mock_request.call_args_list[2][1]["json"]
        assert signer["info"]["email"] == "jeanne@example.com"
        assert signer["fields"][0] == {
            "type": "signature", "document_id": "DOC001", "page": 1, "x": 200, "y": 400,
        }
        assert mock_request.call_args[1]["headers"]["Authorization"] == "Bearer ys_key_test"

    def test_links_maintenance(self, client, yousign_api):
        resp = client.post(
            "/api/yousign/signature-request", json=_signature_body(maintenanceId="MT42")
        )
        assert resp.status_code == 200

        maintenance = db.session.get(Maintenance, "MT42")
        assert maintenance.yousign_request_id == "SR001"
        assert maintenance.signature_status == "pending"

    def test_missing_fields(self, client, yousign_api):
        resp = client.post("/api/yousign/signature-request", json={"pdfUrl": "x"})
        assert resp.status_code == 400
        assert "signerEmail" in resp.get_json()["error"]

    def test_pdf_download_failure(self, client, yousign_api):
        _, mock_get = yousign_api
        mock_get.side_effect = requests.ConnectionError("storage down")
        resp = client.post("/api/yousign/signature-request", json=_signature_body())
        assert resp.status_code == 502
        assert resp.get_json()["error"] == "Could not download contract PDF"


class TestSignatureStatus:

    def test_summary(self, client, yousign_api):
        resp = client.get("/api/yousign/signature-request/SR001")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["isCompleted"] is True
        assert data["isExpired"] is False
        assert data["signers"][0]["firstName"] == "Jeanne"
        assert data["signers"][0]["signedAt"] == "2024-05-03T09:29:00+00:00"

    def test_unknown_request_is_404(self, client, yousign_api):
        resp = client.get("/api/yousign/signature-request/SR404")
        assert resp.status_code == 404

    def test_document_download(self, client, yousign_api):
        resp = client.get("/api/yousign/signature-request/SR001/document")
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data == b"%PDF-1.4 signed"
        assert "Contrat_Signe_SR001.pdf" in resp.headers["Content-Disposition"]

    def test_document_missing(self, client, yousign_api):
        mock_request, _ = yousign_api
        mock_request.side_effect = lambda method, url, **kw: _response(
            200, {"id": "SR002", "documents": []}
        )
        resp = client.get("/api/yousign/signature-request/SR002/document")
        assert resp.status_code == 404


class TestStatusAndDownload:
    """GET /api/yousign/status/<id> and /api/yousign/download/<id>."""

    def test_status(self, client, yousign_api):
        resp = client.get("/api/yousign/status/SR001")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["data"]["id"] == "SR001"
        assert body["data"]["status"] == "done"
        assert body["data"]["created_at"] == "2024-05-02T10:00:00+00:00"
        assert body["data"]["declined_at"] is None
        assert body["signers"] == [{
            "id": "SG001",
            "email": "jeanne@example.com",
            "status": "signed",
            "signed_at": "2024-05-03T09:29:00+00:00",
            "declined_at": None,
        }]

    def test_status_unknown_request_is_404(self, client, yousign_api):
        resp = client.get("/api/yousign/status/SR404")
        assert resp.status_code == 404

    def test_download(self, client, yousign_api):
        mock_request, _ = yousign_api
        resp = client.get("/api/yousign/download/SR001")
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data == b"%PDF-1.4 signed"
        assert "Contrat_Signe_SR001.pdf" in resp.headers["Content-Disposition"]
        paths = [c[0][1].replace(API, "") for c in mock_request.call_args_list]
        assert paths == [
            "/signature_requests/SR001/documents",
            "/signature_requests/SR001/documents/DOC001/download",
        ]

    def test_download_without_documents_is_404(self, client, yousign_api):
        mock_request, _ = yousign_api
        mock_request.side_effect = lambda method, url, **kw: _response(200, [])
        resp = client.get("/api/yousign/download/SR002")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "No document found for this signature request"


class TestYouSignWebhook:
    """POST /api/yousign/webhook, signed with `sha256=<hex>`."""

    def _post(self, client, payload, secret=YS_SECRET):
        body = json.dumps(payload).encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return client.post(
            "/api/yousign/webhook",
            data=body,
            content_type="application/json",
            headers={"X-Yousign-Signature-256": f"sha256={digest}"},
        )

    def _maintenance(self, maintenance_id="MT42", request_id="SR001"):
        maintenance = Maintenance(id=maintenance_id, yousign_request_id=request_id)
        db.session.add(maintenance)
        db.session.commit()
        return maintenance

    def test_done_marks_signed(self, client):
        self._maintenance()
        resp = self._post(client, {
            "event_name": "signature_request.done",
            "data": {"signature_request": {
                "id": "SR001", "status": "done", "signed_at": "2024-05-03T09:29:00+00:00",
            }},
        })
        assert resp.status_code == 200
        assert resp.get_json() == {"received": True, "updated": 1}

        db.session.expire_all()
        maintenance = db.session.get(Maintenance, "MT42")
        assert maintenance.signature_status == "signed"
        assert maintenance.signature_date == "2024-05-03T09:29:00+00:00"

    @pytest.mark.parametrize("event_name, expected", [
        ("signature_request.done", "signed"),
        ("signature_request.completed", "signed"),
        ("signature_request.expired", "expired"),
        ("signature_request.declined", "declined"),
    ])
    def test_terminal_events(self, client, event_name, expected):
        self._maintenance()
        resp = self._post(client, {
            "event_name": event_name,
            "data": {"signature_request": {"id": "SR001"}},
        })
        assert resp.status_code == 200
        assert resp.get_json()["updated"] == 1
        db.session.expire_all()
        assert db.session.get(Maintenance, "MT42").signature_status == expected

    def test_unsigned_accepted_without_secret(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "YOUSIGN_WEBHOOK_SECRET", None)
        self._maintenance()
        resp = client.post("/api/yousign/webhook", json={
            "event_name": "signature_request.done",
            "data": {"signature_request": {"id": "SR001"}},
        })
        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(Maintenance, "MT42").signature_status == "signed"

    def test_unhandled_event_ignored(self, client):
        self._maintenance()
        resp = self._post(client, {
            "event_name": "signer.link_opened",
            "data": {"signature_request": {"id": "SR001"}},
        })
        assert resp.status_code == 200
        assert resp.get_json()["updated"] == 0

    def test_bad_signature(self, client):
        self._maintenance()
        resp = self._post(client, {
            "event_name": "signature_request.done",
            "data": {"signature_request": {"id": "SR001"}},
        }, secret="wrong")
        assert resp.status_code == 401
        db.session.expire_all()
        assert db.session.get(Maintenance, "MT42").signature_status == "pending"

    def test_non_object_body(self, client):
        resp = self._post(client, ["signature_request.done"])
        assert resp.status_code == 400
