"""
Branch Asset & Payables Desk
Model package.

``db`` backs the SQL record store. Table layouts for every record type
live in ``assetdesk.models.schema`` and are independent of the backend.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
