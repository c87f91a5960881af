"""
TestCraft Repository Hub Scanner
Model package.

Persistent tables live in ``scanning`` and ``scheduling`` and bind to the
shared ``db`` instance below. ``records`` holds the transient, per-run
aggregate model the scanner builds before anything touches the database.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
