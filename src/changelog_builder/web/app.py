"""Flask application factory for the changelog builder API."""

from flask import Flask


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    app.json.sort_keys = False

    from changelog_builder.web.routes import bp
    app.register_blueprint(bp, url_prefix="/api")

    return app
