from __future__ import annotations

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

__all__ = [
    "db",
    "migrate",
]

db = SQLAlchemy()
migrate = Migrate(compare_type=True, render_as_batch=True)
