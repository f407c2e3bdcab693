import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from models import db
from routes import health_bp, auth_bp, admin_bp
from security.access import init_access_control, get_access_control
from security.errors import AccessError
from utils.auth_context import load_current_account


def create_app(config_class=Config, **access_overrides):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=logging.DEBUG if app.config.get("DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Access-control core (store, notifier and clock can be swapped in tests)
    init_access_control(app, **access_overrides)

    @app.before_request
    def _load_account():
        load_current_account()

    @app.errorhandler(AccessError)
    def _access_error(exc):
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", type(exc).__name__, exc.message)
        return jsonify(error=exc.message, **exc.details()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote an account to admin by email (bootstrap)."""
        account = get_access_control().promote_to_admin(email)
        if account is None:
            click.echo("Account not found")
            return
        click.echo(f"{account.email} promoted to admin")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
