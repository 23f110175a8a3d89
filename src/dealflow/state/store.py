"""SQLite-backed conversation store with optimistic versioning.

Accepts a ``Database``, uses parameterized queries exclusively, and writes
inside ``Database.transaction()`` so callers can group several writes into
one commit.  Every successful ``save`` bumps ``version``; a write based on a
stale version raises ``StaleConversationError`` instead of overwriting.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from dealflow.domain.errors import (
    ConversationExistsError,
    ConversationNotFoundError,
    StaleConversationError,
)
from dealflow.domain.models import (
    Contract,
    Conversation,
    ConversationKey,
    NegotiationTerms,
    OutboundDraft,
    StageTransition,
)
from dealflow.domain.types import (
    TERMINAL_STAGES,
    ContractStatus,
    ConversationStage,
    LifecycleEvent,
)
from dealflow.state.database import Database
from dealflow.state.serializers import (
    deserialize_details,
    from_db_time,
    serialize_details,
    to_db_time,
)

_SELECT_CONVERSATION = """
    SELECT c.*, k.status AS contract_status
    FROM conversations c
    LEFT JOIN contracts k ON k.conversation_id = c.id
"""


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    pending = row["pending_outbound_json"]
    return Conversation(
        id=row["id"],
        campaign_id=row["campaign_id"],
        creator_id=row["creator_id"],
        creator_address=row["creator_address"],
        thread_ref=row["thread_ref"],
        stage=ConversationStage(row["stage"]),
        terms=NegotiationTerms.model_validate_json(row["terms_json"]),
        version=row["version"],
        pending_outbound=OutboundDraft.model_validate_json(pending) if pending else None,
        contract_status=ContractStatus(row["contract_status"]) if row["contract_status"] else None,
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        stage_entered_at=from_db_time(row["stage_entered_at"]),
        last_message_at=from_db_time(row["last_message_at"]),
    )


class ConversationStore:
    """Persist and retrieve conversation records, stage history and lifecycle claims."""

    def __init__(self, db: Database) -> None:
        """Initialize with an open database.

        Args:
            db: A ``Database`` whose tables were created by
                ``init_dealflow_tables``.
        """
        self._db = db

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create(self, conversation: Conversation) -> Conversation:
        """Insert a new conversation record.

        Raises:
            ConversationExistsError: If the ``(campaign_id, creator_id)`` pair
                already has a conversation.
        """
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO conversations (
                        id, campaign_id, creator_id, creator_address, thread_ref,
                        stage, terms_json, version, pending_outbound_json,
                        created_at, updated_at, stage_entered_at, last_message_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        conversation.id,
                        conversation.campaign_id,
                        conversation.creator_id,
                        conversation.creator_address,
                        conversation.thread_ref,
                        conversation.stage.value,
                        conversation.terms.model_dump_json(),
                        conversation.version,
                        (
                            conversation.pending_outbound.model_dump_json()
                            if conversation.pending_outbound
                            else None
                        ),
                        to_db_time(conversation.created_at),
                        to_db_time(conversation.updated_at),
                        to_db_time(conversation.stage_entered_at),
                        (
                            to_db_time(conversation.last_message_at)
                            if conversation.last_message_at
                            else None
                        ),
                    ),
                )
        except sqlite3.IntegrityError:
            existing = self.find(
                ConversationKey(
                    campaign_id=conversation.campaign_id,
                    creator_id=conversation.creator_id,
                )
            )
            if existing is None:
                raise
            raise ConversationExistsError(
                conversation.campaign_id, conversation.creator_id, existing.id
            ) from None
        return conversation

    def get(self, conversation_id: str) -> Conversation:
        """Return the conversation with *conversation_id*.

        Raises:
            ConversationNotFoundError: If no such conversation exists.
        """
        row = self._db.fetchone(f"{_SELECT_CONVERSATION} WHERE c.id = ?", (conversation_id,))
        if row is None:
            raise ConversationNotFoundError(conversation_id)
        return _row_to_conversation(row)

    def find(self, key: ConversationKey) -> Conversation | None:
        """Look up a conversation by id, thread reference, or campaign/creator pair.

        The first identifier present on *key* wins; later ones are not tried.
        """
        if key.conversation_id:
            row = self._db.fetchone(
                f"{_SELECT_CONVERSATION} WHERE c.id = ?", (key.conversation_id,)
            )
        elif key.thread_ref:
            row = self._db.fetchone(
                f"{_SELECT_CONVERSATION} WHERE c.thread_ref = ?", (key.thread_ref,)
            )
        else:
            row = self._db.fetchone(
                f"{_SELECT_CONVERSATION} WHERE c.campaign_id = ? AND c.creator_id = ?",
                (key.campaign_id, key.creator_id),
            )
        return _row_to_conversation(row) if row is not None else None

    def save(self, conversation: Conversation) -> Conversation:
        """Write *conversation* back if nobody else changed it in the meantime.

        The row is only updated when its stored ``version`` still equals
        ``conversation.version``.

        Returns:
            The conversation with its ``version`` incremented.

        Raises:
            StaleConversationError: If the stored version moved on.
            ConversationNotFoundError: If the conversation does not exist.
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE conversations SET
                    creator_address = ?,
                    thread_ref = ?,
                    stage = ?,
                    terms_json = ?,
                    pending_outbound_json = ?,
                    updated_at = ?,
                    stage_entered_at = ?,
                    last_message_at = ?,
                    version = version + 1
                WHERE id = ? AND version = ?
                """,
                (
                    conversation.creator_address,
                    conversation.thread_ref,
                    conversation.stage.value,
                    conversation.terms.model_dump_json(),
                    (
                        conversation.pending_outbound.model_dump_json()
                        if conversation.pending_outbound
                        else None
                    ),
                    to_db_time(conversation.updated_at),
                    to_db_time(conversation.stage_entered_at),
                    (
                        to_db_time(conversation.last_message_at)
                        if conversation.last_message_at
                        else None
                    ),
                    conversation.id,
                    conversation.version,
                ),
            )
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM conversations WHERE id = ?", (conversation.id,)
                ).fetchone()
                if exists is None:
                    raise ConversationNotFoundError(conversation.id)
                raise StaleConversationError(conversation.id, conversation.version)
        return conversation.model_copy(update={"version": conversation.version + 1})

    def list_in_stages(self, stages: Iterable[ConversationStage]) -> list[Conversation]:
        """Return every conversation currently in one of *stages*, oldest first."""
        values = [s.value for s in stages]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        rows = self._db.fetchall(
            f"{_SELECT_CONVERSATION} WHERE c.stage IN ({placeholders}) ORDER BY c.created_at",
            values,
        )
        return [_row_to_conversation(row) for row in rows]

    def list_with_pending_outbound(self) -> list[Conversation]:
        """Return conversations holding an outbound message not yet delivered."""
        rows = self._db.fetchall(
            f"{_SELECT_CONVERSATION} WHERE c.pending_outbound_json IS NOT NULL "
            "ORDER BY c.updated_at"
        )
        return [_row_to_conversation(row) for row in rows]

    def count_active(self) -> int:
        """Return the number of conversations not in a terminal stage."""
        terminal_values = [s.value for s in TERMINAL_STAGES]
        placeholders = ", ".join("?" for _ in terminal_values)
        row = self._db.fetchone(
            f"SELECT COUNT(*) FROM conversations WHERE stage NOT IN ({placeholders})",
            terminal_values,
        )
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Stage history
    # ------------------------------------------------------------------

    def record_transition(self, conversation_id: str, transition: StageTransition) -> None:
        """Append one applied transition to the stage history."""
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO stage_history (
                    conversation_id, from_stage, event, to_stage, actor, reason, at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    transition.from_stage.value,
                    transition.event,
                    transition.to_stage.value,
                    transition.actor,
                    transition.reason,
                    to_db_time(transition.at),
                ),
            )

    def history(self, conversation_id: str) -> list[StageTransition]:
        """Return the stage history of a conversation in the order applied."""
        rows = self._db.fetchall(
            "SELECT * FROM stage_history WHERE conversation_id = ? ORDER BY id",
            (conversation_id,),
        )
        return [
            StageTransition(
                from_stage=ConversationStage(row["from_stage"]),
                event=row["event"],
                to_stage=ConversationStage(row["to_stage"]),
                actor=row["actor"],
                reason=row["reason"],
                at=from_db_time(row["at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def claim_lifecycle_event(
        self, conversation_id: str, event: LifecycleEvent, at: datetime
    ) -> bool:
        """Record that *event* fired for a conversation.

        Returns:
            True for the first claim, False if the event was already claimed.
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO lifecycle_events (conversation_id, event, claimed_at)
                VALUES (?, ?, ?)
                """,
                (conversation_id, event.value, to_db_time(at)),
            )
            return cursor.rowcount == 1

    def complete_lifecycle_event(
        self, conversation_id: str, event: LifecycleEvent, at: datetime
    ) -> None:
        """Mark a claimed lifecycle event as handed off successfully."""
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE lifecycle_events SET completed_at = ?
                WHERE conversation_id = ? AND event = ? AND completed_at IS NULL
                """,
                (to_db_time(at), conversation_id, event.value),
            )

    def lifecycle_events(self, conversation_id: str) -> dict[LifecycleEvent, bool]:
        """Return claimed lifecycle events mapped to whether they completed."""
        rows = self._db.fetchall(
            "SELECT event, completed_at FROM lifecycle_events WHERE conversation_id = ?",
            (conversation_id,),
        )
        return {LifecycleEvent(row["event"]): row["completed_at"] is not None for row in rows}

    def incomplete_lifecycle_events(self) -> list[tuple[str, LifecycleEvent]]:
        """Return ``(conversation_id, event)`` pairs claimed but never completed."""
        rows = self._db.fetchall(
            "SELECT conversation_id, event FROM lifecycle_events "
            "WHERE completed_at IS NULL ORDER BY claimed_at"
        )
        return [(row["conversation_id"], LifecycleEvent(row["event"])) for row in rows]

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def set_contract_status(
        self,
        conversation_id: str,
        status: ContractStatus,
        at: datetime,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Create or update the mirrored contract of a conversation.

        Details reported with earlier statuses are kept and overlaid.
        """
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT details_json FROM contracts WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
            merged = deserialize_details(row["details_json"]) if row is not None else {}
            merged.update(details or {})
            conn.execute(
                """
                INSERT INTO contracts (conversation_id, status, details_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (conversation_id) DO UPDATE SET
                    status = excluded.status,
                    details_json = excluded.details_json,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, status.value, serialize_details(merged), to_db_time(at)),
            )

    def get_contract(self, conversation_id: str) -> Contract | None:
        """Return the mirrored contract of a conversation, if one was requested."""
        row = self._db.fetchone(
            "SELECT * FROM contracts WHERE conversation_id = ?", (conversation_id,)
        )
        if row is None:
            return None
        return Contract(
            conversation_id=row["conversation_id"],
            status=ContractStatus(row["status"]),
            details=deserialize_details(row["details_json"]),
            updated_at=from_db_time(row["updated_at"]),
        )
