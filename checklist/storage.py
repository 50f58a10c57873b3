# checklist/storage.py
import datetime
import json
import os
import sqlite3
from typing import List, Sequence

import pytz

from .logger import DATA_DIR, get_logger
from .models import Item, item_from_dict, item_to_dict

logger = get_logger(__name__)

DB_PATH = os.path.expanduser(
    os.getenv("DB_PATH", os.path.join(DATA_DIR, "checklist.sqlite3"))
)


def _connect():
    os.makedirs(os.path.dirname(os.path.abspath(DB_PATH)), exist_ok=True)
    return sqlite3.connect(DB_PATH)


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def ensure_db():
    with _connect() as con:
        cur = con.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            )
        """
        )
        con.commit()


def decode_items(payload: str | None) -> List[Item]:
    """
    Decode a stored JSON item list. Anything unreadable counts as empty.
    """
    if not payload:
        return []
    try:
        data = json.loads(payload)
        if not isinstance(data, list):
            raise ValueError(f"expected a list, got {type(data).__name__}")
        return [item_from_dict(d) for d in data]
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Stored checklist is corrupt; starting empty: %s", e)
        return []


def encode_items(items: Sequence[Item]) -> str:
    return json.dumps([item_to_dict(it) for it in items], ensure_ascii=False)


def load(key: str) -> List[Item]:
    """
    Return the items stored under key, or [] when the slot is missing or corrupt.
    """
    try:
        ensure_db()
        with _connect() as con:
            cur = con.cursor()
            cur.execute("SELECT value FROM kv WHERE key=?", (key,))
            row = cur.fetchone()
    except sqlite3.DatabaseError as e:
        logger.warning("Checklist database %s is unreadable; starting empty: %s", DB_PATH, e)
        return []

    if row is None:
        logger.debug("No stored checklist under key %s", key)
        return []

    items = decode_items(row[0])
    logger.debug("Loaded %d items from key %s", len(items), key)
    return items


def save(key: str, items: Sequence[Item]) -> None:
    """
    Replace the slot under key with the given items.
    """
    payload = encode_items(items)
    ensure_db()
    with _connect() as con:
        cur = con.cursor()
        cur.execute(
            """
            INSERT INTO kv (key, value, updated_at)
            VALUES (?,?,?)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated_at=excluded.updated_at
        """,
            (key, payload, now_utc_iso()),
        )
        con.commit()
    logger.debug("Saved %d items under key %s", len(items), key)
