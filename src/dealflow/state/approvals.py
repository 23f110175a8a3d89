"""Human approval queue: one pending item per conversation, resolved once.

A partial unique index keeps a second pending row from ever being written,
and resolution is a conditional update on ``status = 'pending'`` so that of
two concurrent resolutions exactly one wins.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime

from pydantic import BaseModel

from dealflow.domain.errors import (
    AlreadyResolvedError,
    ApprovalAlreadyPendingError,
    ApprovalNotFoundError,
)
from dealflow.domain.models import Analysis, HumanApproval, ProposedAction
from dealflow.domain.types import ApprovalDecision, ApprovalStatus, SenderType
from dealflow.state.database import Database
from dealflow.state.serializers import from_db_time, to_db_time

DECISION_STATUS: dict[ApprovalDecision, ApprovalStatus] = {
    ApprovalDecision.APPROVE: ApprovalStatus.APPROVED,
    ApprovalDecision.REJECT: ApprovalStatus.REJECTED,
    ApprovalDecision.SUBSTITUTE: ApprovalStatus.ACTION_TAKEN,
}


class Resolution(BaseModel):
    """Outcome of resolving an approval.

    ``outbound_text`` is what must be sent to the creator (``None`` for a
    rejection) and ``sender_type`` who it is sent as.
    """

    approval: HumanApproval
    decision: ApprovalDecision
    outbound_text: str | None = None
    sender_type: SenderType | None = None


def _row_to_approval(row: sqlite3.Row) -> HumanApproval:
    analysis = row["analysis_json"]
    return HumanApproval(
        id=row["id"],
        conversation_id=row["conversation_id"],
        summary=row["summary"],
        proposed_action=ProposedAction.model_validate_json(row["proposed_action_json"]),
        analysis=Analysis.model_validate_json(analysis) if analysis else None,
        reasons=json.loads(row["reasons_json"]),
        status=ApprovalStatus(row["status"]),
        resolution_notes=row["resolution_notes"],
        resolved_by=row["resolved_by"],
        created_at=from_db_time(row["created_at"]),
        resolved_at=from_db_time(row["resolved_at"]),
    )


def _merge_reasons(existing: list[str], new: list[str]) -> list[str]:
    merged = list(existing)
    for reason in new:
        if reason not in merged:
            merged.append(reason)
    return merged


class ApprovalQueue:
    """SQLite-backed queue of decisions awaiting a human."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(
        self,
        conversation_id: str,
        summary: str,
        proposed_action: ProposedAction,
        analysis: Analysis | None,
        reasons: list[str],
        at: datetime | None = None,
    ) -> HumanApproval:
        """Queue a new approval for *conversation_id*.

        Raises:
            ApprovalAlreadyPendingError: If the conversation already has a
                pending approval; the error carries its id.
        """
        approval = HumanApproval(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            summary=summary,
            proposed_action=proposed_action,
            analysis=analysis,
            reasons=list(reasons),
            created_at=at or datetime.now(tz=UTC),
        )
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO human_approvals (
                        id, conversation_id, summary, proposed_action_json,
                        analysis_json, reasons_json, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        approval.id,
                        conversation_id,
                        summary,
                        proposed_action.model_dump_json(),
                        analysis.model_dump_json() if analysis else None,
                        json.dumps(approval.reasons),
                        ApprovalStatus.PENDING.value,
                        to_db_time(approval.created_at),
                    ),
                )
        except sqlite3.IntegrityError:
            existing = self.get_pending(conversation_id)
            if existing is None:
                raise
            raise ApprovalAlreadyPendingError(conversation_id, existing.id) from None
        return approval

    def merge(
        self,
        approval_id: str,
        summary: str,
        reasons: list[str],
        analysis: Analysis | None = None,
        proposed_action: ProposedAction | None = None,
    ) -> HumanApproval:
        """Fold a later escalation into a pending approval.

        The summary is extended, new reasons are added once, and a newer
        analysis or proposed action replaces the stored one when given.

        Raises:
            ApprovalNotFoundError: If the id is unknown.
            AlreadyResolvedError: If the approval is no longer pending.
        """
        with self._db.transaction() as conn:
            current = self.get(approval_id)
            if current.status != ApprovalStatus.PENDING:
                raise AlreadyResolvedError(approval_id, current.status)
            merged_summary = f"{current.summary}\n{summary}" if summary else current.summary
            merged_reasons = _merge_reasons(current.reasons, reasons)
            new_analysis = analysis if analysis is not None else current.analysis
            new_action = proposed_action if proposed_action is not None else current.proposed_action
            conn.execute(
                """
                UPDATE human_approvals SET
                    summary = ?, reasons_json = ?, analysis_json = ?, proposed_action_json = ?
                WHERE id = ? AND status = 'pending'
                """,
                (
                    merged_summary,
                    json.dumps(merged_reasons),
                    new_analysis.model_dump_json() if new_analysis else None,
                    new_action.model_dump_json(),
                    approval_id,
                ),
            )
        return current.model_copy(
            update={
                "summary": merged_summary,
                "reasons": merged_reasons,
                "analysis": new_analysis,
                "proposed_action": new_action,
            }
        )

    def get(self, approval_id: str) -> HumanApproval:
        """Return an approval by id.

        Raises:
            ApprovalNotFoundError: If the id is unknown.
        """
        row = self._db.fetchone("SELECT * FROM human_approvals WHERE id = ?", (approval_id,))
        if row is None:
            raise ApprovalNotFoundError(approval_id)
        return _row_to_approval(row)

    def get_pending(self, conversation_id: str) -> HumanApproval | None:
        """Return the conversation's pending approval, if any."""
        row = self._db.fetchone(
            "SELECT * FROM human_approvals WHERE conversation_id = ? AND status = 'pending'",
            (conversation_id,),
        )
        return _row_to_approval(row) if row is not None else None

    def list_pending(self) -> list[HumanApproval]:
        """Return every pending approval, oldest first."""
        rows = self._db.fetchall(
            "SELECT * FROM human_approvals WHERE status = 'pending' ORDER BY created_at"
        )
        return [_row_to_approval(row) for row in rows]

    def list_for_conversation(self, conversation_id: str) -> list[HumanApproval]:
        """Return all approvals of a conversation, oldest first."""
        rows = self._db.fetchall(
            "SELECT * FROM human_approvals WHERE conversation_id = ? ORDER BY created_at",
            (conversation_id,),
        )
        return [_row_to_approval(row) for row in rows]

    def resolve(
        self,
        approval_id: str,
        decision: ApprovalDecision | str,
        human_text: str | None = None,
        notes: str | None = None,
        resolved_by: str | None = None,
        at: datetime | None = None,
    ) -> Resolution:
        """Resolve a pending approval exactly once.

        Args:
            approval_id: The approval to resolve.
            decision: ``approve``, ``reject`` or ``substitute``.
            human_text: Replacement reply; required for ``substitute``.
            notes: Free-form reviewer notes.
            resolved_by: Who made the decision.
            at: Resolution time; defaults to now.

        Returns:
            A ``Resolution`` describing what, if anything, to send.

        Raises:
            ValueError: For an unknown decision, ``substitute`` without text,
                or ``approve`` when there is no proposed reply to send.
            ApprovalNotFoundError: If the id is unknown.
            AlreadyResolvedError: If the approval was already resolved.
        """
        decision = ApprovalDecision(decision)
        if decision == ApprovalDecision.SUBSTITUTE and not (human_text and human_text.strip()):
            raise ValueError("substitute requires human_text")

        current = self.get(approval_id)
        if current.status != ApprovalStatus.PENDING:
            raise AlreadyResolvedError(approval_id, current.status)
        if decision == ApprovalDecision.APPROVE and not current.proposed_action.reply_text:
            raise ValueError(
                "approval has no proposed reply to send; use substitute with human_text"
            )

        status = DECISION_STATUS[decision]
        resolved_at = at or datetime.now(tz=UTC)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE human_approvals SET
                    status = ?, resolution_notes = ?, resolved_by = ?, resolved_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (status.value, notes, resolved_by, to_db_time(resolved_at), approval_id),
            )
            if cursor.rowcount == 0:
                winner = self.get(approval_id)
                raise AlreadyResolvedError(approval_id, winner.status)

        resolved = current.model_copy(
            update={
                "status": status,
                "resolution_notes": notes,
                "resolved_by": resolved_by,
                "resolved_at": resolved_at,
            }
        )
        if decision == ApprovalDecision.APPROVE:
            return Resolution(
                approval=resolved,
                decision=decision,
                outbound_text=current.proposed_action.reply_text,
                sender_type=SenderType.AI_SYSTEM,
            )
        if decision == ApprovalDecision.SUBSTITUTE:
            return Resolution(
                approval=resolved,
                decision=decision,
                outbound_text=human_text,
                sender_type=SenderType.BRAND,
            )
        return Resolution(approval=resolved, decision=decision)
