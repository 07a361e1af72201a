"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi lifecycle install acme
"""

from app import create_app

app = create_app()
