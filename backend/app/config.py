# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/requests.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///requests.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Display numbers look like REQ-2026-000042
    REQUEST_NUMBER_PREFIX = os.environ.get("REQUEST_NUMBER_PREFIX", "REQ")

    # Sequence allocation retries the whole unit of work on a unique collision
    SEQUENCE_MAX_ATTEMPTS = int(os.environ.get("SEQUENCE_MAX_ATTEMPTS", "5"))
    SEQUENCE_RETRY_BACKOFF = float(os.environ.get("SEQUENCE_RETRY_BACKOFF", "0.01"))

    # Pluggable collaborators. None selects the built-in default.
    IDENTITY_RESOLVER = None
    PERMISSION_PROVIDER = None
    NOTIFICATION_EMITTER = None
    DOCUMENT_GENERATOR = None
