"""
WSGI / Flask-Migrate entry point.

Usage:
    FLASK_APP=wsgi flask db upgrade
    gunicorn wsgi:app
"""

from fieldops import create_app

app = create_app()
