# Overview: Shared extension instances (database, migrations) and the per-app collaborator registry.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import current_app
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()

EXTENSION_KEY = "backoffice"


@dataclass
class Collaborators:
    """
    Outbound clients built once in create_app().

    A client is None when its credentials are not configured; operations
    that need it raise ConfigurationError.
    """
    settings: Any
    gateway: Any = None
    shipstation: Any = None


def get_collaborators() -> Collaborators:
    return current_app.extensions[EXTENSION_KEY]
