"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit — we apply per-route
    storage_uri="memory://",
)


def proxy_rate_limit():
    """Per-route limit for the provider proxy routes, read from config."""
    return current_app.config.get("PROXY_RATE_LIMIT", "30 per minute")
