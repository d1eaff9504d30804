"""
proposaldesk/core/db.py: SQLite persistence collaborator

The proposal engine treats storage as an external collaborator with three
operations: create(record) → id, update(id, partial) → None, delete(id) → None.
This module is the concrete implementation: one SQLite file in DATA_DIR,
WAL mode, one lock-guarded connection per call.

Records are stored whole as JSON in `proposals.record`; the handful of columns
next to it (number, status, client, cached totals) exist for listing/search.

TABLES:
  proposals : one row per proposal, full record as JSON
  settings  : key/value (proposal counter)
  products  : product catalog (schema owned by catalog/store.py)
"""

import os
import json
import uuid
import sqlite3
import logging
import threading
from datetime import datetime
from contextlib import contextmanager

from proposaldesk.core import paths
from proposaldesk.core.errors import CollaboratorError

log = logging.getLogger("proposaldesk.db")

DB_PATH = paths.DB_PATH

_db_lock = threading.Lock()

# Columns mirrored out of the JSON record for listing
_INDEXED_FIELDS = ("proposal_number", "template_type", "status", "client_id",
                   "client_name", "client_email", "subtotal", "total_discount",
                   "tax_amount", "grand_total")


# ── Connection factory ────────────────────────────────────────────────────────
@contextmanager
def get_db():
    """Thread-safe SQLite connection with WAL mode."""
    with _db_lock:
        os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
        conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ── Schema ────────────────────────────────────────────────────────────────────
SCHEMA = """
CREATE TABLE IF NOT EXISTS proposals (
    id              TEXT PRIMARY KEY,
    proposal_number TEXT,
    template_type   TEXT,
    status          TEXT DEFAULT 'draft',
    client_id       TEXT,
    client_name     TEXT,
    client_email    TEXT,
    subtotal        REAL DEFAULT 0,
    total_discount  REAL DEFAULT 0,
    tax_amount      REAL DEFAULT 0,
    grand_total     REAL DEFAULT 0,
    record          TEXT NOT NULL,   -- full proposal JSON
    created_at      TEXT NOT NULL,
    updated_at      TEXT
);
CREATE INDEX IF NOT EXISTS idx_proposals_status ON proposals(status);
CREATE INDEX IF NOT EXISTS idx_proposals_number ON proposals(proposal_number);

CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT,
    updated_at  TEXT
);
"""


def init_db():
    """Create all tables if they don't exist. Safe to call multiple times."""
    try:
        with get_db() as conn:
            conn.executescript(SCHEMA)
    except sqlite3.Error as e:
        raise CollaboratorError(f"DB init failed: {e}") from e
    log.info("DB initialized at %s", DB_PATH)
    return True


# ── Helpers ───────────────────────────────────────────────────────────────────
def strip_none(value):
    """Drop None-valued keys recursively; the store rejects undefined values."""
    if isinstance(value, dict):
        return {k: strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_none(v) for v in value if v is not None]
    return value


def _jd(val) -> str:
    """JSON-dump a value for DB storage."""
    return json.dumps(val, default=str)


def _jl(val, default=None):
    """JSON-load a DB column value safely."""
    if val is None:
        return default if default is not None else {}
    try:
        return json.loads(val)
    except (TypeError, ValueError):
        return default if default is not None else {}


def _columns(record: dict) -> tuple:
    return tuple(record.get(k) for k in _INDEXED_FIELDS)


# ── Proposal operations ───────────────────────────────────────────────────────
def create_proposal(record: dict) -> str:
    """Insert a new proposal; returns the store-assigned id."""
    record = strip_none(dict(record))
    pid = uuid.uuid4().hex[:12]
    now = datetime.now().isoformat()
    record["id"] = pid
    record.setdefault("created_at", now)
    record["updated_at"] = now
    try:
        with get_db() as conn:
            conn.execute(f"""
                INSERT INTO proposals
                  (id, {", ".join(_INDEXED_FIELDS)}, record, created_at, updated_at)
                VALUES (?, {", ".join("?" for _ in _INDEXED_FIELDS)}, ?, ?, ?)
            """, (pid, *_columns(record), _jd(record), record["created_at"], now))
    except sqlite3.Error as e:
        log.error("create_proposal %s: %s", record.get("proposal_number"), e)
        raise CollaboratorError(str(e)) from e
    log.info("Proposal %s created (%s)", record.get("proposal_number"), pid,
             extra={"proposal_id": pid, "proposal_number": record.get("proposal_number")})
    return pid


def update_proposal(proposal_id: str, partial: dict) -> None:
    """Merge ``partial`` into the stored record. Unknown id raises."""
    partial = strip_none(dict(partial))
    partial.pop("id", None)
    now = datetime.now().isoformat()
    try:
        with get_db() as conn:
            row = conn.execute("SELECT record FROM proposals WHERE id = ?",
                               (proposal_id,)).fetchone()
            if row is None:
                raise CollaboratorError(f"Proposal {proposal_id} not found")
            record = _jl(row["record"])
            record.update(partial)
            record["updated_at"] = now
            conn.execute(f"""
                UPDATE proposals SET
                  {", ".join(f"{k} = ?" for k in _INDEXED_FIELDS)},
                  record = ?, updated_at = ?
                WHERE id = ?
            """, (*_columns(record), _jd(record), now, proposal_id))
    except sqlite3.Error as e:
        log.error("update_proposal %s: %s", proposal_id, e)
        raise CollaboratorError(str(e)) from e


def delete_proposal(proposal_id: str) -> None:
    try:
        with get_db() as conn:
            conn.execute("DELETE FROM proposals WHERE id = ?", (proposal_id,))
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    log.info("Proposal %s deleted", proposal_id)


def get_proposal(proposal_id: str) -> dict | None:
    try:
        with get_db() as conn:
            row = conn.execute("SELECT record FROM proposals WHERE id = ?",
                               (proposal_id,)).fetchone()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    if row is None:
        return None
    return _jl(row["record"])


def list_proposals(status: str = None, search: str = "", limit: int = 500) -> list:
    """Newest first. ``search`` matches number, client name/email or title."""
    sql = "SELECT record FROM proposals WHERE 1=1"
    args = []
    if status:
        sql += " AND status = ?"
        args.append(status)
    if search:
        q = f"%{search.lower()}%"
        sql += (" AND (lower(proposal_number) LIKE ? OR lower(client_name) LIKE ?"
                " OR lower(client_email) LIKE ? OR lower(record) LIKE ?)")
        args += [q, q, q, q]
    sql += " ORDER BY created_at DESC LIMIT ?"
    args.append(limit)
    try:
        with get_db() as conn:
            rows = conn.execute(sql, args).fetchall()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    return [_jl(r["record"]) for r in rows]


def proposal_stats() -> dict:
    """Counts per status plus total_value = Σ grand_total over every proposal."""
    try:
        with get_db() as conn:
            rows = conn.execute("""
                SELECT status, COUNT(*) AS n, COALESCE(SUM(grand_total), 0) AS value
                FROM proposals GROUP BY status
            """).fetchall()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    stats = {"total": 0, "draft": 0, "sent": 0, "accepted": 0, "expired": 0,
             "total_value": 0.0}
    for r in rows:
        stats["total"] += r["n"]
        stats["total_value"] += r["value"]
        if r["status"] in ("draft", "sent", "accepted", "expired"):
            stats[r["status"]] = r["n"]
    stats["total_value"] = round(stats["total_value"], 2)
    return stats


# ── Settings ──────────────────────────────────────────────────────────────────
def get_setting(key: str, default=None):
    try:
        with get_db() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?",
                               (key,)).fetchone()
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e
    if row is None:
        return default
    return _jl(row["value"], default)


def set_setting(key: str, value) -> None:
    now = datetime.now().isoformat()
    try:
        with get_db() as conn:
            conn.execute("""
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value,
                                               updated_at=excluded.updated_at
            """, (key, _jd(value), now))
    except sqlite3.Error as e:
        raise CollaboratorError(str(e)) from e


def get_db_stats() -> dict:
    """Row counts per table, for /api/health."""
    stats = {"db_path": DB_PATH, "db_size_kb": 0}
    try:
        stats["db_size_kb"] = round(os.path.getsize(DB_PATH) / 1024, 1)
    except FileNotFoundError:
        pass
    with get_db() as conn:
        for table in ("proposals", "products"):
            try:
                stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            except sqlite3.Error:
                stats[table] = 0
    return stats


def startup() -> dict:
    """Initialize DB. Call once at app start."""
    init_db()
    stats = get_db_stats()
    log.info("DB ready: %s", {k: v for k, v in stats.items() if k not in ("db_path", "db_size_kb")})
    return {"ok": True, "db_path": DB_PATH, "stats": stats}
