"""
Branch Asset & Payables Desk
Stored record model for the SQL record store.

Models:
    - StoredRecord: one row per logical record, keyed by (table_name, record_id),
      with the record body held as JSON so absent fields stay absent
"""

from datetime import datetime, timezone

from assetdesk.models import db


class StoredRecord(db.Model):
    """A single record of a logical table (Assets, Bills, ...)."""

    __tablename__ = "stored_records"
    __table_args__ = (
        db.UniqueConstraint("table_name", "record_id", name="uq_stored_records_table_record"),
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(50), nullable=False, index=True)
    record_id = db.Column(db.Integer, nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        body = dict(self.data or {})
        body["id"] = self.record_id
        return body

    def __repr__(self):
        return f"<StoredRecord {self.table_name}#{self.record_id}>"
