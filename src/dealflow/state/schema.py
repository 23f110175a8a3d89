"""SQLite schema for conversations, the message ledger, and approvals.

Provides the DDL function that creates every table the orchestrator
persists to.  Uniqueness rules that the domain relies on are enforced by
indexes, not only by application code:

- one conversation per ``(campaign_id, creator_id)`` and per ``thread_ref``;
- one message per ``(conversation_id, sequence)`` and per provider message id;
- at most one ``pending`` approval per conversation;
- each lifecycle event claimed once per conversation.
"""

from __future__ import annotations

from dealflow.state.database import Database


def init_dealflow_tables(db: Database) -> None:
    """Create all orchestrator tables and indexes if they do not already exist.

    Args:
        db: An open ``Database``.
    """
    with db.transaction() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                campaign_id TEXT NOT NULL,
                creator_id TEXT NOT NULL,
                creator_address TEXT NOT NULL,
                thread_ref TEXT,
                stage TEXT NOT NULL,
                terms_json TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 0,
                pending_outbound_json TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                stage_entered_at TEXT NOT NULL,
                last_message_at TEXT,
                UNIQUE (campaign_id, creator_id)
            )
        """)
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_conv_thread_ref "
            "ON conversations (thread_ref) WHERE thread_ref IS NOT NULL"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_conv_stage ON conversations (stage)")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                conversation_id TEXT NOT NULL REFERENCES conversations (id),
                sequence INTEGER NOT NULL,
                sender_type TEXT NOT NULL,
                sender_address TEXT NOT NULL,
                body_text TEXT NOT NULL,
                subject TEXT,
                attachments_json TEXT NOT NULL DEFAULT '[]',
                provider_message_id TEXT,
                sent_at TEXT,
                received_at TEXT,
                PRIMARY KEY (conversation_id, sequence)
            )
        """)
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_msg_provider_id "
            "ON messages (conversation_id, provider_message_id) "
            "WHERE provider_message_id IS NOT NULL"
        )

        conn.execute("""
            CREATE TABLE IF NOT EXISTS human_approvals (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL REFERENCES conversations (id),
                summary TEXT NOT NULL,
                proposed_action_json TEXT NOT NULL,
                analysis_json TEXT,
                reasons_json TEXT NOT NULL DEFAULT '[]',
                status TEXT NOT NULL,
                resolution_notes TEXT,
                resolved_by TEXT,
                created_at TEXT NOT NULL,
                resolved_at TEXT
            )
        """)
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_approval_one_pending "
            "ON human_approvals (conversation_id) WHERE status = 'pending'"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_approval_status ON human_approvals (status)"
        )

        conn.execute("""
            CREATE TABLE IF NOT EXISTS stage_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL REFERENCES conversations (id),
                from_stage TEXT NOT NULL,
                event TEXT NOT NULL,
                to_stage TEXT NOT NULL,
                actor TEXT NOT NULL DEFAULT 'system',
                reason TEXT,
                at TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_history_conv ON stage_history (conversation_id)"
        )

        conn.execute("""
            CREATE TABLE IF NOT EXISTS lifecycle_events (
                conversation_id TEXT NOT NULL REFERENCES conversations (id),
                event TEXT NOT NULL,
                claimed_at TEXT NOT NULL,
                completed_at TEXT,
                PRIMARY KEY (conversation_id, event)
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS contracts (
                conversation_id TEXT PRIMARY KEY REFERENCES conversations (id),
                status TEXT NOT NULL,
                details_json TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT NOT NULL
            )
        """)
