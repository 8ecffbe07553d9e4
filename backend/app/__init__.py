import logging.config
import os

import click
from flask import Flask, jsonify
from sqlalchemy import text

from app.config import Config, validate_production_config
from app.errors import register_error_handlers
from app.extensions import cors, db, login_manager, migrate, socketio


def configure_logging(level: str) -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "werkzeug": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
        },
    })


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))
    validate_production_config(app.config)

    env = app.config["ENV"]
    database_url = app.config["SQLALCHEMY_DATABASE_URI"]
    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        os.makedirs(app.config["INSTANCE_DIR"], exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    if not origins and env not in ("prod", "production"):
        origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from app import auth  # noqa: F401  registers the Flask-Login loaders
    from app.realtime import socket  # noqa: F401  registers Socket.IO handlers
    socketio.init_app(app, cors_allowed_origins=origins or "*")

    if "payment_gateway" not in app.extensions:
        from app.payments.gateway import init_gateway
        init_gateway(app)

    from app.segments.segment_payment_webhooks import webhooks_bp
    from app.segments.segment_payments import payments_bp

    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    register_error_handlers(app)

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except Exception:
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "quicrefill-customer-service",
            "env": env,
            "db": db_state,
        })

    @app.cli.command("reconcile-payments")
    @click.option("--older-than", type=int, default=None, help="Minutes a payment must have been PENDING.")
    @click.option("--limit", type=int, default=200)
    def reconcile_payments_command(older_than, limit):
        """Re-verify stale PENDING payments with the gateway."""
        from app.jobs.payment_reconciler import reconcile_pending_payments

        minutes = older_than if older_than is not None else app.config["PAYMENT_RECONCILE_AFTER_MINUTES"]
        click.echo(reconcile_pending_payments(older_than_minutes=minutes, limit=limit))

    return app
