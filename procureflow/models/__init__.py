"""
Procurement Workflow Platform
Shared SQLAlchemy handle.

Every model module imports ``db`` from here so that the app factory can bind
one extension instance (``db.init_app(app)``).
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
