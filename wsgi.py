"""
WSGI entry point, also used by Flask-Migrate / Alembic.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade          # RECORD_STORE=sql only
    flask --app wsgi seed-roles
    flask --app wsgi backfill-derived-state
"""

from assetdesk import create_app

app = create_app()
