"""
SQL record store (Flask-SQLAlchemy).

Every logical table shares the ``stored_records`` table; a record body is a
JSON column so records keep the same open-ended shape as workbook rows.
Each write commits on its own and rolls back on failure.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from assetdesk.core.exceptions import StorageError
from assetdesk.models import db
from assetdesk.models.record import StoredRecord
from assetdesk.store.base import RecordStore

logger = logging.getLogger(__name__)


class SqlStore(RecordStore):
    """Record store backed by the application database."""

    def _fetch(self, table: str) -> list[dict]:
        try:
            rows = (
                StoredRecord.query.filter_by(table_name=table)
                .order_by(StoredRecord.record_id)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s", table)
            raise StorageError(f"Cannot read {table}: {exc}") from exc
        return [r.to_dict() for r in rows]

    def _commit(self, table: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to write %s", table)
            raise StorageError(f"Cannot write {table}: {exc}") from exc

    def _append(self, table: str, record: dict) -> None:
        body = {k: v for k, v in record.items() if k != "id" and v is not None}
        db.session.add(StoredRecord(table_name=table, record_id=record["id"], data=body))
        self._commit(table)

    def _replace(self, table: str, record: dict) -> None:
        row = StoredRecord.query.filter_by(table_name=table, record_id=int(record["id"])).first()
        if row is None:
            raise StorageError(f"{table} row id={record['id']} vanished during update")
        # Assign a new dict so SQLAlchemy sees the JSON column as changed
        row.data = {k: v for k, v in record.items() if k != "id" and v is not None}
        self._commit(table)
