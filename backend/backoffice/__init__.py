# backend/backoffice/__init__.py
from flask import Flask

from .config import Config, IntegrationSettings
from .extensions import EXTENSION_KEY, Collaborators, db, migrate


def build_collaborators(settings: IntegrationSettings) -> Collaborators:
    """Construct each configured client once; unconfigured ones stay None."""
    from .integrations.shipstation import ShipStationClient
    from .integrations.stripe_gateway import StripeGateway

    return Collaborators(
        settings=settings,
        gateway=StripeGateway.from_settings(settings) if settings.stripe_configured else None,
        shipstation=ShipStationClient.from_settings(settings) if settings.shipstation_configured else None,
    )


def create_app(config_object=None, collaborators: Collaborators | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Fails fast on a malformed ORDER_NUMBER_PREFIX
    settings = IntegrationSettings.from_mapping(app.config)
    app.extensions[EXTENSION_KEY] = collaborators or build_collaborators(settings)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.checkout import checkout_bp
    from .routes.webhooks import webhooks_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhooks_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
