"""GoCardless service — all GoCardless API calls.

Responsible for:
- Picking sandbox vs live API from the access token
- Customer -> bank account -> mandate creation (SEPA core)
- One-off payments, subscriptions, payment cancellation
- Read-through lookups (mandates, payments, creditors)

Every call goes through GoCardlessClient._request, which turns transport
errors and non-2xx responses into ProviderError.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import requests
from flask import current_app

from relay.errors import ConfigurationError, MalformedRequestError, ProviderError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "relay.gocardless"

LIVE_API_URL = "https://api.gocardless.com"
SANDBOX_API_URL = "https://api-sandbox.gocardless.com"

# FR + 2 check digits + 5 bank + 5 branch + 11 account chars + 2 key digits
FRENCH_IBAN_RE = re.compile(r"^FR\d{2}\d{10}[A-Z0-9]{11}\d{2}$")


def validate_iban(iban):
    """Check a French IBAN's shape (not its checksum)."""
    clean = re.sub(r"\s", "", iban or "").upper()
    return len(clean) == 27 and bool(FRENCH_IBAN_RE.match(clean))


def to_minor_units(amount):
    """Euros (number or numeric string) -> integer cents, half-up."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise MalformedRequestError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise MalformedRequestError(f"Invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class GoCardlessClient:

    def __init__(self, access_token, creditor_id=None,
                 api_version="2015-07-06", timeout=30):
        self.access_token = access_token
        self.creditor_id = creditor_id
        self.api_version = api_version
        self.timeout = timeout

    @property
    def environment(self):
        if not self.access_token:
            return "missing"
        return "production" if self.access_token.startswith("live_") else "sandbox"

    @property
    def api_url(self):
        return LIVE_API_URL if self.environment == "production" else SANDBOX_API_URL

    def _request(self, method, path, payload=None):
        if not self.access_token:
            raise ConfigurationError("GOCARDLESS_ACCESS_TOKEN missing")

        url = f"{self.api_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "GoCardless-Version": self.api_version,
            "Content-Type": "application/json",
        }
        try:
            resp = requests.request(
                method, url, headers=headers, json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"GoCardless {method} {path} failed: {e}")
            raise ProviderError("GoCardless request failed", details=str(e))

        if not resp.ok:
            try:
                details = resp.json()
            except ValueError:
                details = resp.text
            logger.error(f"GoCardless {method} {path} -> {resp.status_code}: {details}")
            raise ProviderError(
                f"GoCardless returned {resp.status_code}", details=details
            )
        return resp.json()

    # --- Creditors ---

    def list_creditors(self):
        return self._request("GET", "/creditors")

    def get_creditor(self, creditor_id=None):
        creditor_id = creditor_id or self.creditor_id
        if not creditor_id:
            raise ConfigurationError("GOCARDLESS_CREDITOR_ID missing")
        return self._request("GET", f"/creditors/{creditor_id}")["creditors"]

    def check_creditor(self):
        """Log creditor readiness. Warnings only — never blocks a flow."""
        creditor = self.get_creditor()
        if not creditor.get("activated"):
            logger.warning(f"GoCardless creditor {creditor.get('id')} is not activated")
        if not creditor.get("collections_permitted"):
            logger.warning(f"GoCardless creditor {creditor.get('id')} cannot collect yet")
        return creditor

    # --- Mandates ---

    def create_mandate(self, account_holder_name, iban, metadata=None, reference=None):
        """Customer -> bank account -> sepa_core mandate -> activation.

        Returns {mandateId, bankAccountId, customerId, status, reference}.
        """
        if not self.creditor_id:
            raise ConfigurationError("GOCARDLESS_CREDITOR_ID missing")
        metadata = metadata or {}

        self.check_creditor()

        names = account_holder_name.split(" ")
        given_name = names[0] or account_holder_name
        family_name = " ".join(names[1:]) or account_holder_name
        customer = self._request("POST", "/customers", {
            "customers": {
                "email": metadata.get("email")
                or f"{account_holder_name.lower().replace(' ', '.')}@example.com",
                "given_name": given_name,
                "family_name": family_name,
                "address_line1": metadata.get("address", "Adresse non spécifiée"),
                "city": metadata.get("city", "Ville non spécifiée"),
                "postal_code": metadata.get("postalCode", "00000"),
                "country_code": metadata.get("country", "FR"),
            }
        })["customers"]

        bank_account = self._request("POST", "/customer_bank_accounts", {
            "customer_bank_accounts": {
                "account_holder_name": account_holder_name,
                "iban": iban,
                "links": {"customer": customer["id"]},
            }
        })["customer_bank_accounts"]

        mandate = self._request("POST", "/mandates", {
            "mandates": {
                "scheme": "sepa_core",
                "links": {
                    "customer_bank_account": bank_account["id"],
                    "creditor": self.creditor_id,
                },
                # GoCardless metadata values must be strings
                "metadata": {k: str(v) for k, v in metadata.items()},
            }
        })["mandates"]

        status = mandate.get("status")
        try:
            self._request("POST", f"/mandates/{mandate['id']}/actions/activate", {})
            status = "active"
            logger.info(f"GoCardless mandate activated: {mandate['id']}")
        except ProviderError:
            # Live mandates activate on GoCardless's schedule, not ours
            logger.info(f"Mandate {mandate['id']} not activated now (status={status})")

        return {
            "mandateId": mandate["id"],
            "bankAccountId": bank_account["id"],
            "customerId": customer["id"],
            "status": status,
            "reference": reference or "MANDATE_CREATED",
        }

    def get_mandate(self, mandate_id):
        return self._request("GET", f"/mandates/{mandate_id}")

    # --- Payments ---

    def create_payment(self, amount, currency, mandate_id,
                       description=None, reference=None):
        payment = self._request("POST", "/payments", {
            "payments": {
                "amount": to_minor_units(amount),
                "currency": currency,
                "links": {"mandate": mandate_id},
                "description": description or "Paiement de maintenance",
                "metadata": {"reference": reference or "PAYMENT_CREATED"},
            }
        })["payments"]
        return {
            "paymentId": payment["id"],
            "status": payment.get("status"),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "description": payment.get("description"),
        }

    def list_payments(self):
        return self._request("GET", "/payments")

    def get_payment(self, payment_id):
        return self._request("GET", f"/payments/{payment_id}")

    def payment_status(self, payment_id):
        payment = self.get_payment(payment_id)["payments"]
        return {
            "paymentId": payment["id"],
            "status": payment.get("status"),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "description": payment.get("description"),
            "chargeDate": payment.get("charge_date"),
            "createdAt": payment.get("created_at"),
            "links": payment.get("links", {}),
        }

    def cancel_payment(self, payment_id):
        return self._request("POST", f"/payments/{payment_id}/actions/cancel", {})

    # --- Subscriptions ---

    def create_subscription(self, amount, currency, mandate_id, interval_unit,
                            interval, description=None, metadata=None):
        subscription = self._request("POST", "/subscriptions", {
            "subscriptions": {
                "amount": to_minor_units(amount),
                "currency": currency,
                "interval_unit": interval_unit,  # weekly | monthly | yearly
                "interval": int(interval),
                "links": {"mandate": mandate_id},
                "description": description or "Abonnement maintenance",
                "metadata": {k: str(v) for k, v in (metadata or {}).items()},
            }
        })["subscriptions"]
        return {
            "subscriptionId": subscription["id"],
            "status": subscription.get("status"),
            "amount": subscription.get("amount"),
            "currency": subscription.get("currency"),
            "description": subscription.get("description"),
        }


def get_gocardless_client():
    return current_app.extensions[EXTENSION_KEY]
