"""Tests for the GoCardless proxy routes and GoCardlessClient.

All outbound HTTP goes through requests.request, which is patched here;
nothing reaches the sandbox.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from relay.errors import ConfigurationError, MalformedRequestError
from relay.services.gocardless_service import (
    SANDBOX_API_URL,
    GoCardlessClient,
    to_minor_units,
    validate_iban,
)

VALID_IBAN = "FR1420041010050500013M02606"


def _response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


def _gocardless_api(method, url, **kwargs):
    """Fake GoCardless API keyed on method + path."""
    path = url.replace(SANDBOX_API_URL, "")
    routes = {
        ("GET", "/creditors/CR000TEST"): {"creditors": {
            "id": "CR000TEST", "name": "Syndic Test",
            "activated": True, "collections_permitted": True,
        }},
        ("POST", "/customers"): {"customers": {"id": "CU001"}},
        ("POST", "/customer_bank_accounts"): {"customer_bank_accounts": {"id": "BA001"}},
        ("POST", "/mandates"): {"mandates": {"id": "MD001", "status": "pending_submission"}},
        ("POST", "/mandates/MD001/actions/activate"): {"mandates": {"id": "MD001"}},
        ("POST", "/payments"): {"payments": {
            "id": "PM001", "status": "pending_submission", "amount": 12050,
            "currency": "EUR", "description": "Paiement de maintenance",
        }},
        ("GET", "/payments/PM001"): {"payments": {
            "id": "PM001", "status": "confirmed", "amount": 12050, "currency": "EUR",
            "charge_date": "2024-05-10", "created_at": "2024-05-02T10:00:00.000Z",
            "links": {"mandate": "MD001"},
        }},
        ("POST", "/payments/PM001/actions/cancel"): {"payments": {"id": "PM001", "status": "cancelled"}},
        ("POST", "/subscriptions"): {"subscriptions": {
            "id": "SB001", "status": "active", "amount": 5000, "currency": "EUR",
            "description": "Abonnement maintenance",
        }},
    }
    body = routes.get((method, path))
    if body is None:
        return _response(404, {"error": {"message": "Resource not found"}})
    return _response(200, body)


@pytest.fixture
def gocardless_api():
    with patch("relay.services.gocardless_service.requests.request") as mock_request:
        mock_request.side_effect = _gocardless_api
        yield mock_request


def _sent(mock_request, method, path):
    """Return the JSON payload of the call made to method + path."""
    for call in mock_request.call_args_list:
        if call[0][0] == method and call[0][1].endswith(path):
            return call[1]["json"]
    raise AssertionError(f"no {method} {path} call")


class TestHelpers:

    @pytest.mark.parametrize("amount,cents", [
        (120.5, 12050),
        ("99.99", 9999),
        (0.015, 2),
        (10, 1000),
    ])
    def test_to_minor_units(self, amount, cents):
        assert to_minor_units(amount) == cents

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, "NaN"])
    def test_to_minor_units_rejects(self, amount):
        with pytest.raises(MalformedRequestError):
            to_minor_units(amount)

    def test_validate_iban(self):
        assert validate_iban(VALID_IBAN)
        assert validate_iban("fr14 2004 1010 0505 0001 3M02 606")
        assert not validate_iban("DE89370400440532013000")
        assert not validate_iban("FR14")

    def test_environment_from_token(self):
        assert GoCardlessClient("live_abc").environment == "production"
        assert GoCardlessClient("sandbox_abc").environment == "sandbox"
        assert GoCardlessClient(None).environment == "missing"
        assert GoCardlessClient("live_abc").api_url == "https://api.gocardless.com"


class TestMandates:

    def test_create_mandate_flow(self, client, gocardless_api):
        resp = client.post("/api/gocardless/mandates", json={
            "account_holder_name": "Jeanne Martin",
            "iban": VALID_IBAN,
            "reference": "MAINT-42",
            "metadata": {"maintenanceId": 42, "city": "Lyon"},
        })
        assert resp.status_code == 200
        assert resp.get_json() == {
            "mandateId": "MD001",
            "bankAccountId": "BA001",
            "customerId": "CU001",
            "status": "active",
            "reference": "MAINT-42",
        }

        customer = _sent(gocardless_api, "POST", "/customers")["customers"]
        assert customer["given_name"] == "Jeanne"
        assert customer["family_name"] == "Martin"
        assert customer["city"] == "Lyon"

        mandate = _sent(gocardless_api, "POST", "/mandates")["mandates"]
        assert mandate["scheme"] == "sepa_core"
        assert mandate["links"] == {"customer_bank_account": "BA001", "creditor": "CR000TEST"}
        assert mandate["metadata"] == {"maintenanceId": "42", "city": "Lyon"}

        headers = gocardless_api.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer sandbox_token_test"
        assert headers["GoCardless-Version"] == "2015-07-06"

    def test_activation_failure_is_not_fatal(self, client, gocardless_api):
        def no_activation(method, url, **kwargs):
            if url.endswith("/actions/activate"):
                return _response(422, {"error": {"message": "invalid_state"}})
            return _gocardless_api(method, url, **kwargs)

        gocardless_api.side_effect = no_activation
        resp = client.post("/create-mandate", json={
            "account_holder_name": "Jeanne Martin", "iban": VALID_IBAN,
        })
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "pending_submission"
        assert resp.get_json()["reference"] == "MANDATE_CREATED"

    def test_missing_fields(self, client, gocardless_api):
        resp = client.post("/api/gocardless/mandates", json={"iban": VALID_IBAN})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "account_holder_name required"
        gocardless_api.assert_not_called()

    def test_strict_iban(self, app, client, gocardless_api, monkeypatch):
        monkeypatch.setitem(app.config, "GOCARDLESS_STRICT_IBAN", True)
        resp = client.post("/api/gocardless/mandates", json={
            "account_holder_name": "Jeanne Martin", "iban": "DE89370400440532013000",
        })
        assert resp.status_code == 400
        gocardless_api.assert_not_called()

    def test_metadata_must_be_object(self, client, gocardless_api):
        resp = client.post("/api/gocardless/mandates", json={
            "account_holder_name": "Jeanne Martin", "iban": VALID_IBAN, "metadata": "x",
        })
        assert resp.status_code == 400

    def test_upstream_error_surfaces_as_502(self, client, gocardless_api):
        def rejected(method, url, **kwargs):
            if url.endswith("/customer_bank_accounts"):
                return _response(422, {"error": {"message": "iban is invalid"}})
            return _gocardless_api(method, url, **kwargs)

        gocardless_api.side_effect = rejected
        resp = client.post("/api/gocardless/mandates", json={
            "account_holder_name": "Jeanne Martin", "iban": VALID_IBAN,
        })
        assert resp.status_code == 502
        body = resp.get_json()
        assert body["error"] == "GoCardless returned 422"
        assert body["details"]["error"]["message"] == "iban is invalid"


class TestPayments:

    def test_create_payment_in_cents(self, client, gocardless_api):
        resp = client.post("/api/gocardless/payments", json={
            "amount": 120.5, "currency": "EUR", "mandate_id": "MD001",
        })
        assert resp.status_code == 200
        assert resp.get_json()["paymentId"] == "PM001"

        payment = _sent(gocardless_api, "POST", "/payments")["payments"]
        assert payment["amount"] == 12050
        assert payment["links"] == {"mandate": "MD001"}
        assert payment["description"] == "Paiement de maintenance"

    def test_legacy_create_payment_paths(self, client, gocardless_api):
        body = {"amount": "10", "currency": "EUR", "mandate_id": "MD001"}
        assert client.post("/api/gocardless/create-payment", json=body).status_code == 200
        assert client.post("/create-payment", json=body).status_code == 200

    def test_invalid_amount(self, client, gocardless_api):
        resp = client.post("/api/gocardless/payments", json={
            "amount": -3, "currency": "EUR", "mandate_id": "MD001",
        })
        assert resp.status_code == 400
        gocardless_api.assert_not_called()

    def test_payment_status(self, client, gocardless_api):
        resp = client.get("/api/gocardless/payment-status/PM001")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "confirmed"
        assert data["chargeDate"] == "2024-05-10"
        assert data["links"] == {"mandate": "MD001"}

    def test_unknown_payment_is_provider_error(self, client, gocardless_api):
        resp = client.get("/api/gocardless/payments/PM404")
        assert resp.status_code == 502

    def test_cancel_payment(self, client, gocardless_api):
        resp = client.post("/api/gocardless/payments/PM001/cancel")
        assert resp.status_code == 200
        assert _sent(gocardless_api, "POST", "/payments/PM001/actions/cancel") == {}

    def test_network_failure(self, client, gocardless_api):
        gocardless_api.side_effect = requests.ConnectionError("timed out")
        resp = client.get("/api/gocardless/payments/PM001")
        assert resp.status_code == 502
        assert resp.get_json()["error"] == "GoCardless request failed"


class TestSubscriptions:

    def test_create_subscription(self, client, gocardless_api):
        resp = client.post("/api/gocardless/subscriptions", json={
            "amount": 50, "currency": "EUR", "mandate_id": "MD001",
            "interval_unit": "monthly", "interval": "1",
        })
        assert resp.status_code == 200
        assert resp.get_json()["subscriptionId"] == "SB001"
        sent = _sent(gocardless_api, "POST", "/subscriptions")["subscriptions"]
        assert sent["amount"] == 5000
        assert sent["interval"] == 1

    def test_bad_interval_unit(self, client, gocardless_api):
        resp = client.post("/api/gocardless/subscriptions", json={
            "amount": 50, "currency": "EUR", "mandate_id": "MD001",
            "interval_unit": "daily", "interval": 1,
        })
        assert resp.status_code == 400


class TestMissingCredentials:

    def test_missing_token_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            GoCardlessClient(None).list_payments()

    def test_missing_creditor_blocks_mandates(self, gocardless_api):
        client = GoCardlessClient("sandbox_token_test")
        with pytest.raises(ConfigurationError):
            client.create_mandate("Jeanne Martin", VALID_IBAN)
        gocardless_api.assert_not_called()
