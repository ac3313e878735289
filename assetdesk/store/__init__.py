"""
Branch Asset & Payables Desk
Record store selection.

Usage:
    from assetdesk.store import get_store
    store = get_store()
    assets = store.get_all(ASSETS)
"""

from flask import current_app


def init_store(app):
    """Build the configured record store and attach it to *app*."""
    backend = app.config.get("RECORD_STORE", "workbook")
    if backend == "sql":
        from assetdesk.store.sql import SqlStore
        store = SqlStore()
    elif backend == "workbook":
        from assetdesk.store.workbook import WorkbookStore
        store = WorkbookStore(
            app.config["DATA_DIR"],
            cache_ttl=app.config.get("STORE_CACHE_TTL", 300),
            asset_cache_ttl=app.config.get("ASSET_CACHE_TTL", 30),
        )
    else:
        raise RuntimeError(f"Unknown RECORD_STORE {backend!r}; expected 'workbook' or 'sql'")
    app.extensions["record_store"] = store
    app.logger.info("Record store: %s", backend)
    return store


def get_store():
    """Return the record store of the current app."""
    return current_app.extensions["record_store"]
