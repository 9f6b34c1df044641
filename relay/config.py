import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _env_list(name, default=""):
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Base configuration. Shared across all environments."""

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or "sqlite:///relay.db"

    # --- Frontend ---
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
    ADMIN_URL = os.environ.get("ADMIN_URL", "http://localhost:3000")
    CORS_ALLOWED_ORIGINS = _env_list("CORS_ALLOWED_ORIGINS") or [
        FRONTEND_URL,
        ADMIN_URL,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:4173",
    ]
    NOTIFY_TIMEOUT_SECONDS = float(os.environ.get("NOTIFY_TIMEOUT_SECONDS", 5))
    # Total seconds one webhook batch may spend notifying the frontend.
    NOTIFY_BUDGET_SECONDS = float(os.environ.get("NOTIFY_BUDGET_SECONDS", 10))

    # --- Inbound webhooks ---
    GOCARDLESS_WEBHOOK_SECRET = os.environ.get("GOCARDLESS_WEBHOOK_SECRET")
    YOUSIGN_WEBHOOK_SECRET = os.environ.get("YOUSIGN_WEBHOOK_SECRET")
    # Addresses or CIDR ranges; empty list disables the gate.
    GOCARDLESS_WEBHOOK_ALLOWED_IPS = _env_list("GOCARDLESS_WEBHOOK_ALLOWED_IPS")
    # Skips the IP gate AND signature verification. Never on in production.
    WEBHOOK_SIGNATURE_BYPASS = _env_flag("WEBHOOK_SIGNATURE_BYPASS")

    # --- GoCardless ---
    GOCARDLESS_ACCESS_TOKEN = os.environ.get("GOCARDLESS_ACCESS_TOKEN")
    GOCARDLESS_CREDITOR_ID = os.environ.get("GOCARDLESS_CREDITOR_ID")
    GOCARDLESS_API_VERSION = os.environ.get("GOCARDLESS_API_VERSION", "2015-07-06")
    GOCARDLESS_STRICT_IBAN = _env_flag("GOCARDLESS_STRICT_IBAN")

    # --- YouSign ---
    YOUSIGN_API_URL = os.environ.get(
        "YOUSIGN_API_URL", "https://api-sandbox.yousign.app/v3"
    )
    YOUSIGN_API_KEY = os.environ.get("YOUSIGN_API_KEY")

    PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", 30))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Rate limiting (provider proxy routes only) ---
    PROXY_RATE_LIMIT = os.environ.get("PROXY_RATE_LIMIT", "30 per minute")

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "DATABASE_URL",
            "GOCARDLESS_WEBHOOK_SECRET",
            "GOCARDLESS_ACCESS_TOKEN",
            "FRONTEND_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — in-memory SQLite, providers faked."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    FRONTEND_URL = "http://frontend.test"
    CORS_ALLOWED_ORIGINS = ["http://frontend.test"]
    GOCARDLESS_WEBHOOK_SECRET = "gc_webhook_secret_test"
    YOUSIGN_WEBHOOK_SECRET = "ys_webhook_secret_test"
    GOCARDLESS_WEBHOOK_ALLOWED_IPS = []
    WEBHOOK_SIGNATURE_BYPASS = False
    GOCARDLESS_ACCESS_TOKEN = "sandbox_token_test"
    GOCARDLESS_CREDITOR_ID = "CR000TEST"
    GOCARDLESS_STRICT_IBAN = False
    YOUSIGN_API_URL = "https://yousign.test/v3"
    YOUSIGN_API_KEY = "ys_key_test"
    NOTIFY_TIMEOUT_SECONDS = 1
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    WEBHOOK_SIGNATURE_BYPASS = False

    @staticmethod
    def validate():
        Config.validate()
        if _env_flag("WEBHOOK_SIGNATURE_BYPASS"):
            raise RuntimeError(
                "WEBHOOK_SIGNATURE_BYPASS is not allowed in production"
            )


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
