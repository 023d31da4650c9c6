# backend/backoffice/config.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .validation import ConfigurationError


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment processor
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    CHECKOUT_SUCCESS_URL = os.environ.get(
        "CHECKOUT_SUCCESS_URL", "http://localhost:3000/checkout/success?session_id={CHECKOUT_SESSION_ID}"
    )
    CHECKOUT_CANCEL_URL = os.environ.get("CHECKOUT_CANCEL_URL", "http://localhost:3000/cart")

    # Fulfillment provider
    SHIPSTATION_API_KEY = os.environ.get("SHIPSTATION_API_KEY")
    SHIPSTATION_API_SECRET = os.environ.get("SHIPSTATION_API_SECRET")
    SHIPSTATION_API_BASE = os.environ.get("SHIPSTATION_API_BASE", "https://ssapi.shipstation.com")

    # Orders
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "ORD")
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    # Package fallbacks (pounds / inches)
    DEFAULT_PACKAGE_WEIGHT_LBS = _env_float("DEFAULT_PACKAGE_WEIGHT_LBS", 5.0)
    DEFAULT_PACKAGE_LENGTH_IN = _env_float("DEFAULT_PACKAGE_LENGTH_IN", 12.0)
    DEFAULT_PACKAGE_WIDTH_IN = _env_float("DEFAULT_PACKAGE_WIDTH_IN", 9.0)
    DEFAULT_PACKAGE_HEIGHT_IN = _env_float("DEFAULT_PACKAGE_HEIGHT_IN", 4.0)

    # Applied to every outbound call (Stripe, ShipStation)
    OUTBOUND_TIMEOUT_SECONDS = _env_float("OUTBOUND_TIMEOUT_SECONDS", 20.0)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    SHIPSTATION_API_KEY = None
    SHIPSTATION_API_SECRET = None
    PUBLIC_BASE_URL = "https://backoffice.test"


ORDER_PREFIX_PATTERN = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class PackageDefaults:
    weight: float = 5.0
    length: float = 12.0
    width: float = 9.0
    height: float = 4.0


@dataclass(frozen=True)
class IntegrationSettings:
    """
    Typed view of the Flask config used to construct collaborator clients once
    at startup. Services receive values from here, never from os.environ.
    """
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    checkout_success_url: str
    checkout_cancel_url: str
    shipstation_api_key: str | None
    shipstation_api_secret: str | None
    shipstation_api_base: str
    order_number_prefix: str
    public_base_url: str
    package_defaults: PackageDefaults
    timeout_seconds: float

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def shipstation_configured(self) -> bool:
        return bool(self.shipstation_api_key and self.shipstation_api_secret)

    @classmethod
    def from_mapping(cls, config) -> "IntegrationSettings":
        prefix = (config.get("ORDER_NUMBER_PREFIX") or "").strip().upper()
        if not ORDER_PREFIX_PATTERN.match(prefix):
            raise ConfigurationError(
                f"ORDER_NUMBER_PREFIX must be exactly three letters, got {config.get('ORDER_NUMBER_PREFIX')!r}"
            )

        return cls(
            stripe_secret_key=config.get("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=config.get("STRIPE_WEBHOOK_SECRET") or None,
            checkout_success_url=config.get("CHECKOUT_SUCCESS_URL") or "",
            checkout_cancel_url=config.get("CHECKOUT_CANCEL_URL") or "",
            shipstation_api_key=config.get("SHIPSTATION_API_KEY") or None,
            shipstation_api_secret=config.get("SHIPSTATION_API_SECRET") or None,
            shipstation_api_base=config.get("SHIPSTATION_API_BASE") or "https://ssapi.shipstation.com",
            order_number_prefix=prefix,
            public_base_url=(config.get("PUBLIC_BASE_URL") or "").rstrip("/"),
            package_defaults=PackageDefaults(
                weight=float(config.get("DEFAULT_PACKAGE_WEIGHT_LBS") or 5.0),
                length=float(config.get("DEFAULT_PACKAGE_LENGTH_IN") or 12.0),
                width=float(config.get("DEFAULT_PACKAGE_WIDTH_IN") or 9.0),
                height=float(config.get("DEFAULT_PACKAGE_HEIGHT_IN") or 4.0),
            ),
            timeout_seconds=float(config.get("OUTBOUND_TIMEOUT_SECONDS") or 20.0),
        )
