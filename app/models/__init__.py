"""
Model Lifecycle Tracking Service
Database extension and table registry.

The Flask-SQLAlchemy ``db`` object owns the engine and connection pool.
Lifecycle tables are tenant-scoped and live on their own MetaData in
``app.models.lifecycle``; they are provisioned per tenant, never by
``db.create_all()``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
