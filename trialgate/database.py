"""aiosqlite transcript store: the append-only messages table."""
import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta, timezone

import aiosqlite

from trialgate.config import settings
from trialgate.errors import StoreUnavailable
from trialgate.models.session import Message

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None
_write_lock = asyncio.Lock()
_last_timestamp: datetime | None = None
_location: str | None = None


async def get_db(path: str | None = None) -> aiosqlite.Connection:
    global _db, _write_lock, _location
    if _db is None:
        location = _location = path or settings.database_url
        try:
            db = await aiosqlite.connect(location)
        except (sqlite3.Error, OSError) as exc:
            logger.exception("Cannot open transcript store at %s", location)
            raise StoreUnavailable(f"cannot open transcript store: {exc}") from exc
        db.row_factory = aiosqlite.Row
        try:
            await _create_tables(db)
        except sqlite3.Error as exc:
            await db.close()
            logger.exception("Cannot create messages table at %s", location)
            raise StoreUnavailable(f"cannot initialise transcript store: {exc}") from exc
        if _db is not None:
            # Another caller opened the store while this one was connecting.
            await db.close()
            return _db
        _db = db
        _write_lock = asyncio.Lock()
        logger.info("Transcript store ready at %s", location)
    return _db


async def close_db() -> None:
    global _db, _last_timestamp, _write_lock, _location
    if _db is not None:
        await _db.close()
        _db = None
    _location = None
    _last_timestamp = None
    _write_lock = asyncio.Lock()


def is_ready() -> bool:
    return _db is not None


async def _create_tables(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sender TEXT NOT NULL,
            message TEXT NOT NULL,
            timestamp TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
            session_id TEXT
        )
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_messages_session_id
        ON messages(session_id)
    """)
    await db.commit()


def _next_timestamp() -> datetime:
    """Wall-clock UTC instant, nudged forward so it never repeats or goes back."""
    global _last_timestamp
    now = datetime.now(timezone.utc)
    if _last_timestamp is not None and now <= _last_timestamp:
        now = _last_timestamp + timedelta(microseconds=1)
    _last_timestamp = now
    return now


async def _require_db() -> aiosqlite.Connection:
    """The open connection, reopening it when a previous get_db() failed."""
    if _db is not None:
        return _db
    if _location is None:
        raise StoreUnavailable("transcript store not initialised")
    return await get_db(_location)


async def append_message(sender: str, text: str, session_id: str | None = None) -> Message:
    """Insert one message and commit before returning it."""
    db = await _require_db()
    sender = getattr(sender, "value", sender)
    async with _write_lock:
        timestamp = _next_timestamp().isoformat(timespec="microseconds")
        try:
            cursor = await db.execute(
                """INSERT INTO messages (sender, message, timestamp, session_id)
                   VALUES (?, ?, ?, ?)""",
                (sender, text, timestamp, session_id),
            )
            await db.commit()
        except (sqlite3.Error, ValueError) as exc:
            raise StoreUnavailable(f"failed to append {sender} message: {exc}") from exc
    return Message(
        id=cursor.lastrowid,
        sender=sender,
        message=text,
        timestamp=timestamp,
        session_id=session_id,
    )


async def list_messages(session_id: str | None = None) -> list[Message]:
    db = await _require_db()
    query = "SELECT id, sender, message, timestamp, session_id FROM messages"
    params: tuple = ()
    if session_id is not None:
        query += " WHERE session_id = ?"
        params = (session_id,)
    query += " ORDER BY timestamp ASC, id ASC"
    try:
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
    except (sqlite3.Error, ValueError) as exc:
        raise StoreUnavailable(f"failed to read transcript: {exc}") from exc
    return [Message(**dict(r)) for r in rows]
