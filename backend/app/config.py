import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class Config:
    # Base directory of the backend (one level above this `app` package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, 'instance')

    ENV = (os.getenv("QUICREFILL_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if ENV in ("prod", "production") else "DEBUG")

    _default_sqlite_path = os.path.join(INSTANCE_DIR, 'customer_service.db').replace('\\', '/')
    _db_url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI") or f"sqlite:///{_default_sqlite_path}"
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS: comma-separated origins for web builds (e.g. https://app.quicrefill.com)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Redirect targets for browser callbacks
    FRONTEND_URL = (os.getenv("FRONTEND_URL") or "https://quicrefill.com").strip().rstrip("/")
    SERVER_URL = (os.getenv("SERVER_URL") or "http://localhost:5000").strip().rstrip("/")

    # Flutterwave
    FLUTTERWAVE_BASE_URL = (os.getenv("FLUTTERWAVE_BASE_URL") or "https://api.flutterwave.com").strip().rstrip("/")
    FLUTTERWAVE_SECRET_KEY = os.getenv("FLUTTERWAVE_SECRET_KEY", "").strip()
    FLUTTERWAVE_ENCRYPTION_KEY = os.getenv("FLUTTERWAVE_ENCRYPTION_KEY", "").strip()
    FLUTTERWAVE_WEBHOOK_SECRET = os.getenv("FLUTTERWAVE_WEBHOOK_SECRET", "").strip()
    GATEWAY_TIMEOUT_SECONDS = _int_env("GATEWAY_TIMEOUT_SECONDS", 15)

    # Stale PENDING payments older than this are re-verified by the reconciler
    PAYMENT_RECONCILE_AFTER_MINUTES = _int_env("PAYMENT_RECONCILE_AFTER_MINUTES", 30)

    # Notifications
    TERMII_API_KEY = os.getenv("TERMII_API_KEY", "").strip()
    TERMII_SENDER_ID = os.getenv("TERMII_SENDER_ID", "Quicrefil")
    MAIL_API_KEY = os.getenv("MAIL_API_KEY", "").strip()
    MAIL_FROM = os.getenv("MAIL_FROM", "Quicrefil <no-reply@quicrefill.com>")


def validate_production_config(config) -> None:
    """Refuse to boot a production app with unsafe defaults."""
    env = (config.get("ENV") or "dev").strip().lower()
    if env not in ("prod", "production"):
        return
    secret = (config.get("SECRET_KEY") or "").strip()
    if not secret or secret == "change-me" or len(secret) < 16:
        raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
    if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
        raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
    if not config.get("FLUTTERWAVE_WEBHOOK_SECRET"):
        raise RuntimeError("FLUTTERWAVE_WEBHOOK_SECRET must be set in production")
