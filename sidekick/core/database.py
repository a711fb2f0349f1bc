"""
SQLite persistence for the event store.
Schema: app_state (one JSON snapshot per storage namespace).

The whole state is overwritten on every change and read back on startup.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from sidekick import config
from sidekick.core.models import AppState

log = logging.getLogger("sidekick.db")

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_state (
    namespace   TEXT    PRIMARY KEY,
    payload     TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);
"""


def get_connection() -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode."""
    if not hasattr(_local, "conn") or _local.conn is None:
        config.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(config.DB_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _local.conn = conn
    return _local.conn


def close_connection() -> None:
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
        _local.conn = None


@contextmanager
def db_cursor():
    """Yield a cursor, auto-commit on success, rollback on error."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db():
    """Create tables if they don't exist."""
    with db_cursor() as cur:
        cur.executescript(SCHEMA_SQL)
    log.info("Database initialized at %s", config.DB_PATH)


# --- Snapshot helpers ---

def save_state(state: AppState, namespace: Optional[str] = None) -> None:
    ns = namespace or config.STORAGE_NAMESPACE
    with db_cursor() as cur:
        cur.execute(
            """INSERT INTO app_state (namespace, payload, updated_at)
               VALUES (?,?,?)
               ON CONFLICT(namespace) DO UPDATE SET
                   payload=excluded.payload, updated_at=excluded.updated_at""",
            (ns, state.model_dump_json(), datetime.now().isoformat()),
        )


def load_state(namespace: Optional[str] = None) -> Optional[AppState]:
    """Stored snapshot, or None if there is none or it cannot be read."""
    ns = namespace or config.STORAGE_NAMESPACE
    with db_cursor() as cur:
        cur.execute("SELECT payload FROM app_state WHERE namespace=?", (ns,))
        row = cur.fetchone()
    if not row:
        return None
    try:
        return AppState.model_validate(json.loads(row["payload"]))
    except (ValueError, ValidationError) as e:
        log.error("Stored state for %s is unreadable, starting empty: %s", ns, e)
        return None


def get_state_updated_at(namespace: Optional[str] = None) -> Optional[str]:
    ns = namespace or config.STORAGE_NAMESPACE
    with db_cursor() as cur:
        cur.execute("SELECT updated_at FROM app_state WHERE namespace=?", (ns,))
        row = cur.fetchone()
        return row["updated_at"] if row else None


def clear_state(namespace: Optional[str] = None) -> bool:
    ns = namespace or config.STORAGE_NAMESPACE
    with db_cursor() as cur:
        cur.execute("DELETE FROM app_state WHERE namespace=?", (ns,))
        return cur.rowcount > 0
