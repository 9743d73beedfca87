"""
Flask application factory.

Creates and configures the Flask app, registers the scoring blueprint.
"""
import importlib

from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leadscore.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    from leadscore.routes.scoring import bp as scoring_bp
    app.register_blueprint(scoring_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic — no init_db() call.
    importlib.import_module('leadscore.models.lead')
    importlib.import_module('leadscore.models.conversion_rate')
    importlib.import_module('leadscore.models.client_settings')
    importlib.import_module('leadscore.models.job_log')

    return app
