"""
Ora Scan Platform
SQLAlchemy extension instance shared by every model module.

Model modules import ``db`` from here; ``ora.create_app`` binds it to the
Flask application with ``db.init_app(app)``.
"""

import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_id() -> str:
    """String UUID primary key default."""
    return str(uuid.uuid4())
