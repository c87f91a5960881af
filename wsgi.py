"""
Flask CLI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi scan-now
    flask --app wsgi scan-status
    flask --app wsgi run-scheduler
"""

from testcraft import create_app

app = create_app()
