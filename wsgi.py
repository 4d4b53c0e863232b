"""
WSGI / Flask-Migrate entry point for the Startup Backoffice Platform.

Usage:
    flask --app wsgi db upgrade                 # apply migrations/
    flask --app wsgi db migrate -m "description"
"""

from app import create_app

app = create_app()
