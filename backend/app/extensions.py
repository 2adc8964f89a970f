# Overview: Flask extension instances for the database, migrations and pluggable collaborators.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

COLLABORATORS_KEY = "fulfillment_collaborators"


def get_collaborator(name: str):
    """Return the collaborator registered by create_app() under `name`."""
    return current_app.extensions[COLLABORATORS_KEY][name]
