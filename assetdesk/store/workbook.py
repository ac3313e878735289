"""
Workbook record store (openpyxl).

Each logical table is a sheet inside an .xlsx file under DATA_DIR:

    assets.xlsx    Assets, TransferEvents
    payables.xlsx  Agreements, Bills
    users.xlsx     Users, Notifications
    roles.xlsx     Roles

Row 1 of every sheet is the header row. Columns missing from the header
are appended on write. Older workbooks with snake_case or PascalCase
headers are read through ``normalize_header``.

Reads are cached per (file, sheet) and reused while the file's mtime is
unchanged and the entry is younger than its TTL. Any write invalidates
every sheet of the file. Writes go to a temporary file in the same
directory which then replaces the original, so a failed write leaves the
previous file intact.
"""

import logging
import os
import tempfile
import time
from datetime import date, datetime

import openpyxl
from openpyxl import Workbook

from assetdesk.core.exceptions import StorageError
from assetdesk.models.schema import (
    AGREEMENTS, ASSETS, BILLS, NOTIFICATIONS, ROLES, TRANSFER_EVENTS, USERS,
    schema_for,
)
from assetdesk.store.base import RecordStore

logger = logging.getLogger(__name__)

TABLE_FILES = {
    ASSETS: "assets.xlsx",
    TRANSFER_EVENTS: "assets.xlsx",
    AGREEMENTS: "payables.xlsx",
    BILLS: "payables.xlsx",
    USERS: "users.xlsx",
    NOTIFICATIONS: "users.xlsx",
    ROLES: "roles.xlsx",
}

# Legacy PascalCase headers that do not camel-case mechanically
_PASCAL_HEADERS = {
    "PaymentStatus": "paymentStatus",
    "PaymentScheduledDate": "paymentScheduledDate",
    "SecurityDeposit": "securityDeposit",
    "NextRentRateEscalationDate": "nextRentRateEscalationDate",
    "NextEscalationRatePercent": "nextEscalationRatePercent",
    "BillType": "billType",
    "Priority": "priority",
    "ManagerID": "managerId",
    "ReportingTo": "reportingTo",
}


def normalize_header(value) -> str:
    """Map a header cell to the camelCase field name used in records."""
    if value is None:
        return ""
    text = str(value).strip()
    if text in _PASCAL_HEADERS:
        return _PASCAL_HEADERS[text]
    if "_" in text:
        head, *rest = [p for p in text.split("_") if p]
        return head.lower() + "".join(p[:1].upper() + p[1:] for p in rest)
    return text


def _cell_to_value(value):
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class WorkbookStore(RecordStore):
    """Record store backed by .xlsx files in *data_dir*."""

    def __init__(self, data_dir: str, cache_ttl: int = 300, asset_cache_ttl: int = 30):
        super().__init__()
        self.data_dir = data_dir
        self.cache_ttl = cache_ttl
        self.asset_cache_ttl = asset_cache_ttl
        self._cache: dict[tuple[str, str], tuple[float, float, list[dict]]] = {}
        os.makedirs(data_dir, exist_ok=True)

    def _path(self, table: str) -> str:
        try:
            return os.path.join(self.data_dir, TABLE_FILES[table])
        except KeyError:
            raise StorageError(f"No workbook mapped for table {table!r}") from None

    def _lock_key(self, table: str) -> str:
        # Sheets sharing a file share a lock; a write rewrites the whole file
        return TABLE_FILES.get(table, table)

    def _ttl(self, table: str) -> int:
        return self.asset_cache_ttl if table == ASSETS else self.cache_ttl

    # ── Cache ─────────────────────────────────────────────────────────────

    def invalidate(self, table: str | None = None) -> None:
        if table is None:
            self._cache.clear()
            return
        path = self._path(table)
        for key in [k for k in self._cache if k[0] == path]:
            self._cache.pop(key, None)

    # ── Read ──────────────────────────────────────────────────────────────

    def _fetch(self, table: str) -> list[dict]:
        path = self._path(table)
        if not os.path.exists(path):
            return []
        mtime = os.path.getmtime(path)
        key = (path, table)
        entry = self._cache.get(key)
        if entry is not None:
            cached_mtime, loaded_at, rows = entry
            if cached_mtime == mtime and time.monotonic() - loaded_at < self._ttl(table):
                return [dict(r) for r in rows]

        rows = self._read_sheet(path, table)
        self._cache[key] = (mtime, time.monotonic(), rows)
        return [dict(r) for r in rows]

    def _read_sheet(self, path: str, table: str) -> list[dict]:
        try:
            wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
        except Exception as exc:
            logger.exception("Failed to open workbook %s", path)
            raise StorageError(f"Cannot read {os.path.basename(path)}: {exc}") from exc
        try:
            if table not in wb.sheetnames:
                return []
            ws = wb[table]
            row_iter = ws.iter_rows(values_only=True)
            header_row = next(row_iter, None)
            if not header_row:
                return []
            headers = [normalize_header(h) for h in header_row]
            rows = []
            for values in row_iter:
                if not any(v not in (None, "") for v in values):
                    continue
                record = {}
                for name, value in zip(headers, values):
                    if not name or value in (None, ""):
                        continue
                    record[name] = _cell_to_value(value)
                if "id" in record:
                    try:
                        record["id"] = int(record["id"])
                    except (TypeError, ValueError):
                        logger.warning("Skipping %s row with malformed id %r", table, record["id"])
                        continue
                rows.append(record)
            return rows
        finally:
            wb.close()

    # ── Write ─────────────────────────────────────────────────────────────

    def _open_for_write(self, path: str, table: str):
        if os.path.exists(path):
            try:
                wb = openpyxl.load_workbook(path)
            except Exception as exc:
                logger.exception("Failed to open workbook %s for write", path)
                raise StorageError(f"Cannot open {os.path.basename(path)}: {exc}") from exc
        else:
            wb = Workbook()
            wb.remove(wb.active)
        if table in wb.sheetnames:
            ws = wb[table]
        else:
            ws = wb.create_sheet(table)
            ws.append(list(schema_for(table).column_order([])))
        return wb, ws

    @staticmethod
    def _header_index(ws, record: dict) -> dict[str, int]:
        """Map field name -> 1-based column, adding columns for new fields."""
        headers = {}
        max_col = 0
        for cell in ws[1]:
            max_col = max(max_col, cell.column)
            name = normalize_header(cell.value)
            if name and name not in headers:
                headers[name] = cell.column
        for name in record:
            if name not in headers:
                max_col += 1
                ws.cell(row=1, column=max_col, value=name)
                headers[name] = max_col
        return headers

    def _save(self, wb, path: str) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, suffix=".xlsx.tmp")
        os.close(fd)
        try:
            wb.save(tmp_path)
            os.replace(tmp_path, path)
        except Exception as exc:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.exception("Failed to write workbook %s", path)
            raise StorageError(f"Cannot write {os.path.basename(path)}: {exc}") from exc

    def _append(self, table: str, record: dict) -> None:
        path = self._path(table)
        wb, ws = self._open_for_write(path, table)
        headers = self._header_index(ws, record)
        row_idx = ws.max_row + 1
        for name, value in record.items():
            ws.cell(row=row_idx, column=headers[name], value=value)
        self._save(wb, path)

    def _replace(self, table: str, record: dict) -> None:
        path = self._path(table)
        wb, ws = self._open_for_write(path, table)
        headers = self._header_index(ws, record)
        id_col = headers["id"]
        target = None
        for row_idx in range(2, ws.max_row + 1):
            if str(_cell_to_value(ws.cell(row=row_idx, column=id_col).value)) == str(record["id"]):
                target = row_idx
                break
        if target is None:
            raise StorageError(f"{table} row id={record['id']} vanished during update")
        for name, value in record.items():
            ws.cell(row=target, column=headers[name], value=value)
        self._save(wb, path)
