"""SQLite-backed audit trail store with indexed queries.

Provides functions to initialize the audit table, insert audit entries, and
query the audit trail with flexible filtering. Uses parameterized queries
exclusively (never string concatenation) to prevent SQL injection.

The audit table lives in the same database as the conversations so that an
entry written inside an orchestrator transaction commits or rolls back with
the change it describes.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dealflow.audit.models import AuditEntry
from dealflow.state.database import Database, open_database


def init_audit_table(db: Database) -> None:
    """Create the audit_log table and its indexes if they do not exist.

    Args:
        db: An open ``Database``.
    """
    with db.transaction() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
                event_type TEXT NOT NULL,
                conversation_id TEXT,
                campaign_id TEXT,
                creator_id TEXT,
                direction TEXT,
                message_body TEXT,
                stage TEXT,
                actor TEXT,
                metadata TEXT
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_audit_conversation ON audit_log (conversation_id)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_campaign ON audit_log (campaign_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_creator ON audit_log (creator_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp)")


def init_audit_db(db_path: Path) -> Database:
    """Open a database file and make sure the audit table exists.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open ``Database`` with WAL mode enabled.
    """
    db = open_database(db_path)
    init_audit_table(db)
    return db


def insert_audit_entry(db: Database, entry: AuditEntry) -> int:
    """Insert an audit entry into the database.

    Serializes the metadata dict to a JSON string if present.

    Args:
        db: An open database.
        entry: The audit entry to insert.

    Returns:
        The row ID of the inserted entry.
    """
    metadata_json: str | None = None
    if entry.metadata is not None:
        metadata_json = json.dumps(entry.metadata)

    timestamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

    with db.transaction() as conn:
        cursor = conn.execute(
            """
            INSERT INTO audit_log (
                timestamp, event_type, conversation_id, campaign_id, creator_id,
                direction, message_body, stage, actor, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                timestamp,
                entry.event_type.value,
                entry.conversation_id,
                entry.campaign_id,
                entry.creator_id,
                entry.direction,
                entry.message_body,
                entry.stage,
                entry.actor,
                metadata_json,
            ),
        )
        return cursor.lastrowid or 0


def query_audit_trail(
    db: Database,
    *,
    conversation_id: str | None = None,
    campaign_id: str | None = None,
    creator_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query the audit trail with flexible filtering.

    All filters are optional. Results are ordered newest first.

    Args:
        db: An open database.
        conversation_id: Filter by conversation id (exact match).
        campaign_id: Filter by campaign ID (exact match).
        creator_id: Filter by creator ID (exact match).
        from_date: Filter entries on or after this ISO 8601 date.
        to_date: Filter entries on or before this ISO 8601 date.
        event_type: Filter by event type (exact match).
        limit: Maximum number of results to return (default 50).

    Returns:
        A list of dicts, one per matching audit entry, newest first.
    """
    conditions: list[str] = []
    params: list[str | int] = []

    if conversation_id is not None:
        conditions.append("conversation_id = ?")
        params.append(conversation_id)

    if campaign_id is not None:
        conditions.append("campaign_id = ?")
        params.append(campaign_id)

    if creator_id is not None:
        conditions.append("creator_id = ?")
        params.append(creator_id)

    if from_date is not None:
        conditions.append("timestamp >= ?")
        params.append(from_date)

    if to_date is not None:
        conditions.append("timestamp <= ?")
        params.append(to_date)

    if event_type is not None:
        conditions.append("event_type = ?")
        params.append(event_type)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    query = f"SELECT * FROM audit_log {where_clause} ORDER BY timestamp DESC, id DESC LIMIT ?"
    params.append(limit)

    results: list[dict[str, Any]] = []
    for row in db.fetchall(query, params):
        row_dict = dict(row)
        if row_dict.get("metadata") is not None:
            row_dict["metadata"] = json.loads(row_dict["metadata"])
        results.append(row_dict)

    return results


def close_audit_db(db: Database) -> None:
    """Close the audit database connection."""
    db.close()
