import sqlite3
import os
import uuid
import logging
import threading
from datetime import datetime

import config

logger = logging.getLogger(__name__)

DB_PATH = os.path.join(config.BASE_DIR, config.DB_FILE_NAME)

_local = threading.local()

QUEUE_STATUSES = ("pending", "processing", "completed", "failed")


def _now():
    return datetime.now().isoformat()


def get_db():
    # Reuse the thread's connection while it still points at DB_PATH and is usable
    conn = getattr(_local, "connection", None)
    if conn is not None:
        if getattr(_local, "path", None) == DB_PATH:
            try:
                conn.execute("SELECT 1")
                return conn
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                pass
        close_db_cleanup()

    try:
        conn = sqlite3.connect(DB_PATH, timeout=30.0)
        conn.row_factory = sqlite3.Row
        _local.connection = conn
        _local.path = DB_PATH
        return conn
    except sqlite3.Error as e:
        logger.error(f"DB Connection Error: {e}")
        raise


def close_db_cleanup():
    """Close this thread's cached connection, if any."""
    conn = getattr(_local, "connection", None)
    if conn is not None:
        try:
            conn.close()
        except sqlite3.Error:
            pass
        del _local.connection
    if hasattr(_local, "path"):
        del _local.path


def init_db(db_path=None):
    """Creates the queue tables. Optionally repoints the module at a new file."""
    global DB_PATH
    if db_path:
        DB_PATH = db_path

    conn = get_db()
    c = conn.cursor()

    # Queue Table (one row per uploaded video awaiting translation)
    c.execute('''
        CREATE TABLE IF NOT EXISTS video_queue (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            file_name TEXT NOT NULL,
            video_data TEXT NOT NULL,
            status TEXT DEFAULT 'pending',
            retry_count INTEGER DEFAULT 0,
            max_retries INTEGER DEFAULT 3,
            khmer_translation TEXT,
            error_message TEXT,
            processed_at TIMESTAMP,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        )
    ''')

    # Events Table (per-item processing trail)
    c.execute('''
        CREATE TABLE IF NOT EXISTS queue_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_id TEXT,
            message TEXT,
            created_at TIMESTAMP,
            FOREIGN KEY(item_id) REFERENCES video_queue(id)
        )
    ''')

    c.execute('CREATE INDEX IF NOT EXISTS idx_queue_status ON video_queue(status, retry_count, created_at)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_queue_user_id ON video_queue(user_id)')
    c.execute('CREATE INDEX IF NOT EXISTS idx_events_item_id ON queue_events(item_id)')

    conn.commit()
    logger.info(f"Database initialized at {DB_PATH}")

# --- Queue Helpers ---

def create_queue_item(user_id, file_name, video_data, max_retries=config.DEFAULT_MAX_RETRIES):
    item_id = uuid.uuid4().hex
    now = _now()
    conn = get_db()
    c = conn.cursor()
    try:
        c.execute('''
            INSERT INTO video_queue (id, user_id, file_name, video_data, status, retry_count, max_retries, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'pending', 0, ?, ?, ?)
        ''', (item_id, user_id, file_name, video_data, max_retries, now, now))
        conn.commit()
        return item_id
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Error creating queue item: {e}")
        raise


def get_queue_item(item_id):
    c = get_db().cursor()
    c.execute("SELECT * FROM video_queue WHERE id = ?", (item_id,))
    row = c.fetchone()
    if row:
        return dict(row)
    return None


def get_queue_items(user_id=None):
    """Lists queue rows newest first, without the video payload."""
    c = get_db().cursor()
    columns = ("id, user_id, file_name, status, retry_count, max_retries, khmer_translation, "
               "error_message, processed_at, created_at, updated_at")
    if user_id:
        c.execute(f"SELECT {columns} FROM video_queue WHERE user_id = ? ORDER BY created_at DESC", (user_id,))
    else:
        c.execute(f"SELECT {columns} FROM video_queue ORDER BY created_at DESC")
    return [dict(r) for r in c.fetchall()]


def get_pending_items(limit=config.QUEUE_BATCH_SIZE, max_retry_count=config.QUEUE_SELECT_MAX_RETRIES):
    """Oldest-first pending rows still under the selection retry threshold."""
    c = get_db().cursor()
    c.execute('''
        SELECT * FROM video_queue
        WHERE status = 'pending' AND retry_count < ?
        ORDER BY created_at ASC, rowid ASC
        LIMIT ?
    ''', (max_retry_count, limit))
    return [dict(r) for r in c.fetchall()]


def claim_queue_item(item_id, retry_count=None):
    """
    Moves an item from pending to processing.

    When retry_count is given the row must still hold that value, so a row
    another pass has already attempted and requeued is not claimed again
    with a stale count. Returns False when the row was not claimed.
    """
    query = "UPDATE video_queue SET status = 'processing', updated_at = ? WHERE id = ? AND status = 'pending'"
    params = [_now(), item_id]
    if retry_count is not None:
        query += " AND retry_count = ?"
        params.append(retry_count)

    conn = get_db()
    c = conn.cursor()
    c.execute(query, params)
    conn.commit()
    return c.rowcount == 1


_UNSET = object()


def update_queue_item(item_id, status=None, retry_count=None, error_message=_UNSET,
                      khmer_translation=None, processed_at=None):
    if status is not None and status not in QUEUE_STATUSES:
        raise ValueError(f"Unknown queue status: {status}")

    updates = []
    params = []

    if status:
        updates.append("status = ?")
        params.append(status)
    if retry_count is not None:
        updates.append("retry_count = ?")
        params.append(retry_count)
    if error_message is not _UNSET:
        updates.append("error_message = ?")
        params.append(error_message)
    if khmer_translation is not None:
        updates.append("khmer_translation = ?")
        params.append(khmer_translation)
    if processed_at is not None:
        updates.append("processed_at = ?")
        params.append(processed_at)

    updates.append("updated_at = ?")
    params.append(_now())
    params.append(item_id)

    conn = get_db()
    conn.execute(f"UPDATE video_queue SET {', '.join(updates)} WHERE id = ?", params)
    conn.commit()


def delete_queue_item(item_id):
    conn = get_db()
    c = conn.cursor()
    # Cascade manually, SQLite FKs are off by default
    c.execute("DELETE FROM queue_events WHERE item_id = ?", (item_id,))
    c.execute("DELETE FROM video_queue WHERE id = ?", (item_id,))
    deleted = c.rowcount
    conn.commit()
    return deleted > 0

# --- Event Helpers ---

def log_event(item_id, message):
    conn = get_db()
    conn.execute(
        "INSERT INTO queue_events (item_id, message, created_at) VALUES (?, ?, ?)",
        (item_id, message, _now()),
    )
    conn.commit()


def get_events(item_id):
    c = get_db().cursor()
    c.execute("SELECT message, created_at FROM queue_events WHERE item_id = ? ORDER BY id ASC", (item_id,))
    return [dict(r) for r in c.fetchall()]


def get_logs(item_id):
    return [f"[{e['created_at']}] {e['message']}" for e in get_events(item_id)]
