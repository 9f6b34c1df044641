"""Frontend notifier — tells the frontend a payment or mandate moved.

Fire-and-forget: a slow or dead frontend must never hold up a webhook
acknowledgement, so every call has a short timeout and every failure is
logged and dropped here.
"""

import logging

import requests
from flask import current_app

from relay.errors import NotificationError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "relay.notifier"

NOTIFY_PATHS = {
    "payments": "/api/gocardless/payment-update",
    "mandates": "/api/gocardless/mandate-update",
}


class FrontendNotifier:

    def __init__(self, base_url, timeout=5):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout

    def notify(self, resource_type, resource_id, status, payload=None, timeout=None):
        """POST {resourceId, status, payload}. Returns True if delivered.

        timeout can only shorten the configured one.
        """
        if timeout is None or timeout > self.timeout:
            timeout = self.timeout
        try:
            self._post(resource_type, {
                "resourceId": resource_id,
                "status": status,
                "payload": payload or {},
            }, timeout)
        except NotificationError as e:
            logger.error(f"Frontend notification failed for {resource_id} ({status}): {e}")
            return False
        logger.info(f"Frontend notified: {resource_type} {resource_id} -> {status}")
        return True

    def _post(self, resource_type, body, timeout):
        if not self.base_url:
            raise NotificationError("FRONTEND_URL not configured")
        path = NOTIFY_PATHS.get(resource_type)
        if path is None:
            raise NotificationError(f"No notification route for {resource_type}")

        try:
            resp = requests.post(
                f"{self.base_url}{path}", json=body, timeout=timeout
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(str(e))


def get_notifier():
    return current_app.extensions[EXTENSION_KEY]
