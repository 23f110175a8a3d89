"""Append-only message ledger, one ordered sequence per conversation.

Sequences start at 1 and are assigned as ``max + 1`` inside the write
transaction; the ``(conversation_id, sequence)`` primary key rejects a
concurrent writer that computed the same number.  Messages are never
updated or deleted.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator

import structlog

from dealflow.domain.errors import DuplicateMessageError, StaleConversationError
from dealflow.domain.models import Attachment, Message, MessageDraft
from dealflow.domain.types import SenderType
from dealflow.state.database import Database
from dealflow.state.serializers import from_db_time, to_db_time

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 50


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        conversation_id=row["conversation_id"],
        sequence=row["sequence"],
        sender_type=SenderType(row["sender_type"]),
        sender_address=row["sender_address"],
        body_text=row["body_text"],
        subject=row["subject"],
        attachments=[Attachment(**a) for a in json.loads(row["attachments_json"])],
        provider_message_id=row["provider_message_id"],
        sent_at=from_db_time(row["sent_at"]),
        received_at=from_db_time(row["received_at"]),
    )


class MessageLedger:
    """Ordered, immutable record of everything said in each conversation."""

    def __init__(self, db: Database, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._db = db
        self._page_size = page_size

    def append(self, conversation_id: str, draft: MessageDraft) -> Message:
        """Append *draft* to the conversation's ledger.

        Args:
            conversation_id: The owning conversation.
            draft: The message to record.

        Returns:
            The stored ``Message`` with its assigned sequence.

        Raises:
            DuplicateMessageError: If ``draft.provider_message_id`` is already
                recorded for this conversation.
            StaleConversationError: If another writer took the same sequence.
        """
        if draft.provider_message_id and self.has_provider_message(
            conversation_id, draft.provider_message_id
        ):
            raise DuplicateMessageError(conversation_id, draft.provider_message_id)

        sequence = 0
        try:
            with self._db.transaction() as conn:
                row = conn.execute(
                    "SELECT COALESCE(MAX(sequence), 0) FROM messages WHERE conversation_id = ?",
                    (conversation_id,),
                ).fetchone()
                sequence = int(row[0]) + 1
                conn.execute(
                    """
                    INSERT INTO messages (
                        conversation_id, sequence, sender_type, sender_address,
                        body_text, subject, attachments_json, provider_message_id,
                        sent_at, received_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        conversation_id,
                        sequence,
                        draft.sender_type.value,
                        draft.sender_address,
                        draft.body_text,
                        draft.subject,
                        json.dumps([a.model_dump() for a in draft.attachments]),
                        draft.provider_message_id,
                        to_db_time(draft.sent_at) if draft.sent_at else None,
                        to_db_time(draft.received_at) if draft.received_at else None,
                    ),
                )
        except sqlite3.IntegrityError:
            if draft.provider_message_id and self.has_provider_message(
                conversation_id, draft.provider_message_id
            ):
                raise DuplicateMessageError(
                    conversation_id, draft.provider_message_id
                ) from None
            raise StaleConversationError(conversation_id, sequence - 1) from None

        logger.debug(
            "Message appended",
            conversation_id=conversation_id,
            sequence=sequence,
            sender_type=draft.sender_type.value,
        )
        return Message(conversation_id=conversation_id, sequence=sequence, **draft.model_dump())

    def has_provider_message(self, conversation_id: str, provider_message_id: str) -> bool:
        """Return True if the provider message id is already in the ledger."""
        row = self._db.fetchone(
            "SELECT 1 FROM messages WHERE conversation_id = ? AND provider_message_id = ?",
            (conversation_id, provider_message_id),
        )
        return row is not None

    def list_since(self, conversation_id: str, sequence: int = 0) -> Iterator[Message]:
        """Yield messages with a sequence greater than *sequence*, in order.

        Messages are fetched lazily in pages; the iterator ends at the last
        message present when the final page is read and can be restarted by
        calling again with the last sequence seen.
        """
        cursor_seq = sequence
        while True:
            rows = self._db.fetchall(
                """
                SELECT * FROM messages
                WHERE conversation_id = ? AND sequence > ?
                ORDER BY sequence
                LIMIT ?
                """,
                (conversation_id, cursor_seq, self._page_size),
            )
            for row in rows:
                message = _row_to_message(row)
                cursor_seq = message.sequence
                yield message
            if len(rows) < self._page_size:
                return

    def latest(
        self, conversation_id: str, sender_type: SenderType | None = None
    ) -> Message | None:
        """Return the most recent message, optionally from one kind of sender."""
        if sender_type is None:
            row = self._db.fetchone(
                "SELECT * FROM messages WHERE conversation_id = ? "
                "ORDER BY sequence DESC LIMIT 1",
                (conversation_id,),
            )
        else:
            row = self._db.fetchone(
                "SELECT * FROM messages WHERE conversation_id = ? AND sender_type = ? "
                "ORDER BY sequence DESC LIMIT 1",
                (conversation_id, sender_type.value),
            )
        return _row_to_message(row) if row is not None else None

    def recent(self, conversation_id: str, limit: int = 10) -> list[Message]:
        """Return up to *limit* most recent messages in chronological order."""
        rows = self._db.fetchall(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY sequence DESC LIMIT ?",
            (conversation_id, limit),
        )
        return [_row_to_message(row) for row in reversed(rows)]

    def count(self, conversation_id: str) -> int:
        """Return the number of messages in the conversation."""
        row = self._db.fetchone(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
        )
        return int(row[0]) if row is not None else 0
