import os
import logging
from datetime import datetime, timezone

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from relay.config import config_by_name
from relay.errors import RelayError
from relay.extensions import db, migrate, limiter
from relay.services import event_store, gocardless_service, notifier, yousign_service


def create_app(config_name=None, event_store_impl=None, notifier_impl=None,
               gocardless_client=None, yousign_client=None):
    """Application factory.

    Provider clients, the event store and the notifier are built here and
    registered on app.extensions; pass replacements to substitute them.
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # Unsigned webhooks are only ever accepted by debug/testing configs
    if app.config.get("WEBHOOK_SIGNATURE_BYPASS") and not (app.debug or app.testing):
        raise RuntimeError("WEBHOOK_SIGNATURE_BYPASS requires a debug or testing config")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from relay import models  # noqa: F401

    # --- Collaborators ---
    app.extensions[event_store.EXTENSION_KEY] = (
        event_store_impl or event_store.EventStore()
    )
    app.extensions[notifier.EXTENSION_KEY] = notifier_impl or notifier.FrontendNotifier(
        app.config["FRONTEND_URL"],
        timeout=app.config["NOTIFY_TIMEOUT_SECONDS"],
    )
    app.extensions[gocardless_service.EXTENSION_KEY] = (
        gocardless_client or gocardless_service.GoCardlessClient(
            app.config["GOCARDLESS_ACCESS_TOKEN"],
            creditor_id=app.config["GOCARDLESS_CREDITOR_ID"],
            api_version=app.config["GOCARDLESS_API_VERSION"],
            timeout=app.config["PROVIDER_TIMEOUT_SECONDS"],
        )
    )
    app.extensions[yousign_service.EXTENSION_KEY] = (
        yousign_client or yousign_service.YouSignClient(
            app.config["YOUSIGN_API_URL"],
            app.config["YOUSIGN_API_KEY"],
            timeout=app.config["PROVIDER_TIMEOUT_SECONDS"],
        )
    )

    # --- Register blueprints ---
    from relay.blueprints.webhooks import webhooks_bp
    from relay.blueprints.gocardless import gocardless_bp
    from relay.blueprints.yousign import yousign_bp
    from relay.blueprints.maintenance import maintenance_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(gocardless_bp)
    app.register_blueprint(yousign_bp)
    app.register_blueprint(maintenance_bp)

    # --- Operational routes ---
    @app.route("/health")
    def health():
        return jsonify({
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config_name,
            "cors": {"allowedOrigins": app.config["CORS_ALLOWED_ORIGINS"]},
        })

    @app.route("/cors-test")
    def cors_test():
        return jsonify({
            "message": "CORS test successful",
            "origin": request.headers.get("Origin"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cors": {"allowedOrigins": app.config["CORS_ALLOWED_ORIGINS"]},
        })

    # --- Error handlers ---
    @app.errorhandler(RelayError)
    def relay_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(500)
    def server_error(e):
        app.logger.error(f"Unhandled error on {request.path}: {e}")
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security + CORS headers ---
    @app.after_request
    def add_headers(response):
        """Add security headers and CORS headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        origin = request.headers.get("Origin")
        if origin and origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = (
                "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            )
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, Authorization, Accept, Origin"
            )
            response.headers["Vary"] = "Origin"
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("diagnose-gocardless")
    def diagnose_gocardless():
        """Check the GoCardless token mode and creditor readiness.

        Usage:
            flask diagnose-gocardless
        """
        client = app.extensions[gocardless_service.EXTENSION_KEY]

        click.echo(f"GoCardless environment: {client.environment}")
        click.echo(f"API URL:                {client.api_url}")
        click.echo(f"Creditor ID:            {client.creditor_id or '(not set)'}")
        if client.environment == "missing":
            click.echo("ERROR: GOCARDLESS_ACCESS_TOKEN is not set.")
            return
        if not client.creditor_id:
            click.echo("ERROR: GOCARDLESS_CREDITOR_ID is not set.")
            return

        try:
            creditor = client.get_creditor()
        except RelayError as e:
            click.echo(f"ERROR: {e.message}")
            if e.details:
                click.echo(f"  {e.details}")
            return

        click.echo("")
        click.echo(f"  name:                  {creditor.get('name')}")
        click.echo(f"  activated:             {creditor.get('activated')}")
        click.echo(f"  collections_permitted: {creditor.get('collections_permitted')}")
        click.echo(f"  verification_status:   {creditor.get('verification_status')}")
        if not creditor.get("collections_permitted"):
            click.echo("  WARNING: payments will fail until collections are permitted.")
