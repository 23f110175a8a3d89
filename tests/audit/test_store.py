"""Tests for SQLite audit store: init, insert, query, and SQL injection prevention."""

from pathlib import Path

import pytest

from dealflow.audit.models import AuditEntry, EventType
from dealflow.audit.store import (
    close_audit_db,
    init_audit_db,
    insert_audit_entry,
    query_audit_trail,
)
from dealflow.state import Database


class TestInitAuditDB:
    """Tests for database initialization."""

    def test_creates_database_file(self, tmp_path: Path):
        db_path = tmp_path / "audit.db"
        db = init_audit_db(db_path)
        assert db_path.exists()
        close_audit_db(db)

    def test_wal_mode_enabled(self, tmp_path: Path):
        db = init_audit_db(tmp_path / "audit.db")
        row = db.fetchone("PRAGMA journal_mode")
        assert row is not None and row[0] == "wal"
        close_audit_db(db)

    def test_indexes_created(self, tmp_path: Path):
        db = init_audit_db(tmp_path / "audit.db")
        rows = db.fetchall(
            "SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'idx_audit_%'"
        )
        indexes = {row[0] for row in rows}
        assert {
            "idx_audit_conversation",
            "idx_audit_campaign",
            "idx_audit_creator",
            "idx_audit_timestamp",
        } <= indexes
        close_audit_db(db)

    def test_init_is_idempotent(self, tmp_path: Path):
        close_audit_db(init_audit_db(tmp_path / "audit.db"))
        db = init_audit_db(tmp_path / "audit.db")
        assert query_audit_trail(db) == []
        close_audit_db(db)


class TestInsertAuditEntry:
    """Tests for inserting audit entries."""

    def test_insert_returns_row_id(self, db: Database):
        entry = AuditEntry(event_type=EventType.MESSAGE_SENT, conversation_id="conv-1")
        assert insert_audit_entry(db, entry) >= 1

    def test_insert_stores_all_fields(self, db: Database):
        entry = AuditEntry(
            event_type=EventType.STATE_TRANSITION,
            conversation_id="conv-1",
            campaign_id="camp_002",
            creator_id="bob",
            direction="received",
            message_body="Test email body",
            stage="replied",
            actor="system",
            metadata={"key": "value"},
        )
        insert_audit_entry(db, entry)

        [row] = query_audit_trail(db)

        assert row["event_type"] == "state_transition"
        assert row["conversation_id"] == "conv-1"
        assert row["campaign_id"] == "camp_002"
        assert row["creator_id"] == "bob"
        assert row["direction"] == "received"
        assert row["message_body"] == "Test email body"
        assert row["stage"] == "replied"
        assert row["actor"] == "system"
        assert row["metadata"] == {"key": "value"}
        assert row["timestamp"].endswith("Z")

    def test_metadata_may_be_absent(self, db: Database):
        insert_audit_entry(db, AuditEntry(event_type=EventType.ERROR))
        assert query_audit_trail(db)[0]["metadata"] is None

    def test_insert_rolls_back_with_outer_transaction(self, db: Database):
        with pytest.raises(RuntimeError), db.transaction():
            insert_audit_entry(db, AuditEntry(event_type=EventType.AGREEMENT))
            raise RuntimeError("write conflict")
        assert query_audit_trail(db) == []


class TestQueryAuditTrail:
    """Filtering and ordering."""

    def _seed(self, db: Database) -> None:
        for conversation_id, campaign_id, creator_id, event_type in [
            ("conv-1", "camp_1", "alice", EventType.MESSAGE_SENT),
            ("conv-1", "camp_1", "alice", EventType.MESSAGE_RECEIVED),
            ("conv-2", "camp_1", "bob", EventType.ESCALATION),
            ("conv-3", "camp_2", "alice", EventType.MESSAGE_SENT),
        ]:
            insert_audit_entry(
                db,
                AuditEntry(
                    event_type=event_type,
                    conversation_id=conversation_id,
                    campaign_id=campaign_id,
                    creator_id=creator_id,
                ),
            )

    def test_newest_first(self, db: Database):
        self._seed(db)
        results = query_audit_trail(db)
        assert [r["conversation_id"] for r in results] == ["conv-3", "conv-2", "conv-1", "conv-1"]

    def test_filter_by_conversation(self, db: Database):
        self._seed(db)
        assert len(query_audit_trail(db, conversation_id="conv-1")) == 2

    def test_filter_by_campaign_and_creator(self, db: Database):
        self._seed(db)
        results = query_audit_trail(db, campaign_id="camp_1", creator_id="alice")
        assert {r["conversation_id"] for r in results} == {"conv-1"}

    def test_filter_by_event_type(self, db: Database):
        self._seed(db)
        results = query_audit_trail(db, event_type="escalation")
        assert [r["creator_id"] for r in results] == ["bob"]

    def test_date_range(self, db: Database):
        self._seed(db)
        assert len(query_audit_trail(db, from_date="2000-01-01")) == 4
        assert query_audit_trail(db, to_date="2000-01-01") == []

    def test_limit(self, db: Database):
        self._seed(db)
        assert len(query_audit_trail(db, limit=1)) == 1

    def test_sql_injection_is_inert(self, db: Database):
        self._seed(db)
        results = query_audit_trail(db, creator_id="alice' OR '1'='1")
        assert results == []
        assert len(query_audit_trail(db)) == 4
