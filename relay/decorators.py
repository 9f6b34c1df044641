"""
Custom route decorators for access control and input checks.

- signed_webhook: per-provider IP allow-list + non-empty body + HMAC
  signature on the raw body, in that order. Bypass mode skips the network
  and signature checks but never the body check.
- require_fields: 400 unless the JSON body carries every named field.
"""

from functools import wraps

from flask import current_app, g, request

from relay.errors import MalformedRequestError
from relay.services.webhook_service import check_source_ip, verify_signature


def signed_webhook(secret_config_key, header, prefix="", allowed_ips_key=None,
                   required=True):
    """Authenticate a provider webhook before the view runs.

    The raw body is read once, before any JSON parsing, and exposed to the
    view as g.raw_body. allowed_ips_key names the config list for this
    provider's IP gate; routes without one skip it. With required=False an
    unset secret accepts the webhook unsigned.
    """

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            bypass = current_app.config.get("WEBHOOK_SIGNATURE_BYPASS", False)

            if not bypass and allowed_ips_key:
                check_source_ip(
                    request.remote_addr,
                    current_app.config.get(allowed_ips_key) or [],
                )

            raw_body = request.get_data(cache=True)
            if not raw_body or not raw_body.strip():
                raise MalformedRequestError("Empty request body")

            secret = current_app.config.get(secret_config_key)
            if bypass:
                current_app.logger.warning(
                    f"Webhook signature check bypassed for {request.path}"
                )
            elif not secret and not required:
                current_app.logger.warning(
                    f"{secret_config_key} not set, accepting {request.path} unsigned"
                )
            else:
                verify_signature(
                    raw_body,
                    request.headers.get(header),
                    secret,
                    prefix=prefix,
                )

            g.raw_body = raw_body
            return f(*args, **kwargs)

        return decorated

    return decorator


def require_fields(*fields):
    """Require a JSON object body with every field present and non-empty."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                raise MalformedRequestError("JSON body required")
            missing = [name for name in fields if data.get(name) in (None, "")]
            if missing:
                raise MalformedRequestError(f"{', '.join(missing)} required")
            return f(*args, **kwargs)

        return decorated

    return decorator
