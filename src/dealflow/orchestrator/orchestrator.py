"""Negotiation orchestrator: the lifecycle state machine wired to its collaborators.

Every operation has the same shape.  The conversation lock is taken to check
idempotency and stage validity and to commit; it is released for any remote
call (classifier, email transport, downstream trigger) and retaken to commit
the outcome.  A commit is one SQLite transaction over a fresh read of the
conversation, retried when the optimistic version check fails.

Work that follows a commit (notifications, trigger calls, delivery of an
outbound message, classification of a new reply) is described by the commit
as ``_Effects`` and carried out once the transaction is closed.
"""

from __future__ import annotations

import asyncio
import functools
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from dealflow.audit.logger import AuditLogger
from dealflow.domain.errors import (
    AlreadyResolvedError,
    ClassifierError,
    ConversationBusyError,
    DeliveryError,
    DownstreamTriggerError,
    DuplicateMessageError,
    InvalidTransitionError,
    MalformedMessageError,
    StaleConversationError,
)
from dealflow.domain.models import (
    Analysis,
    Attachment,
    Contract,
    Conversation,
    ConversationKey,
    HumanApproval,
    Message,
    MessageDraft,
    NegotiationTerms,
    OutboundDraft,
    ProposedAction,
    StageTransition,
)
from dealflow.domain.types import (
    ApprovalDecision,
    ContractStatus,
    ConversationStage,
    DownstreamEvent,
    Intent,
    LifecycleEvent,
    SenderType,
)
from dealflow.downstream.triggers import DownstreamTrigger, TriggerAck, TriggerRequest
from dealflow.email.models import DeliveryReceipt, InboundEmail, OutboundEmail
from dealflow.email.transport import EmailTransport
from dealflow.llm.classifier import ClassifierAdapter
from dealflow.llm.client import TRANSCRIPT_MESSAGE_LIMIT
from dealflow.llm.models import ClassificationFailure, ClassifierResult, FailureKind
from dealflow.observability.metrics import (
    ACTIVE_CONVERSATIONS,
    AGREEMENTS,
    AUTO_REPLIES,
    DUPLICATE_MESSAGES,
    ESCALATIONS,
)
from dealflow.orchestrator.locks import ConversationLocks
from dealflow.orchestrator.results import (
    ApprovalSummary,
    ConversationStateView,
    ConversationView,
    DownstreamResult,
    IngestResult,
    ResolutionResult,
    SweepReport,
)
from dealflow.policy.escalation import EscalationDecision, EscalationPolicy, terms_conflicts
from dealflow.slack.client import ApprovalNotifier
from dealflow.state.approvals import ApprovalQueue
from dealflow.state.database import Database
from dealflow.state.ledger import MessageLedger
from dealflow.state.store import ConversationStore
from dealflow.state_machine import ConversationEvent, ConversationStateMachine

logger = structlog.get_logger()

# Purposes of outbound drafts; each maps to the event applied on delivery.
OUTREACH = "outreach"
AUTO_REPLY = "auto_reply"
APPROVED_REPLY = "approved_reply"

EXCERPT_LENGTH = 200

# Downstream event -> (stage event, mirrored contract status, ledger note)
_DOWNSTREAM: dict[DownstreamEvent, tuple[ConversationEvent, ContractStatus | None, str]] = {
    DownstreamEvent.CONTRACT_DRAFTED: (
        ConversationEvent.CONTRACT_DRAFTED,
        ContractStatus.SENT,
        "Contract drafted and sent to the creator for signature.",
    ),
    DownstreamEvent.CONTRACT_SIGNED: (
        ConversationEvent.CONTRACT_SIGNED,
        ContractStatus.SIGNED_BY_CREATOR,
        "Creator signed the contract; waiting for countersignature.",
    ),
    DownstreamEvent.CONTRACT_ACTIVE: (
        ConversationEvent.CONTRACT_ACTIVATED,
        ContractStatus.ACTIVE,
        "Contract is active. Payment has been requested.",
    ),
    DownstreamEvent.PAYMENT_MILESTONE_COMPLETED: (
        ConversationEvent.PAYMENT_MILESTONE_COMPLETED,
        None,
        "Payment milestone completed.",
    ),
}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _excerpt(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= EXCERPT_LENGTH else flat[: EXCERPT_LENGTH - 3] + "..."


def _recommendation(analysis: Analysis | None) -> str:
    if analysis is None:
        return "Classification failed; read the creator's message and reply manually"
    if analysis.intent == Intent.DECLINING:
        return "Creator appears to decline; reject to close the conversation or reply manually"
    if analysis.suggested_reply.strip():
        return "Review the drafted reply; approve it, substitute your own text, or reject"
    return "No reply was drafted; substitute your own text or reject"


@dataclass
class _Effects:
    """What a commit changed and what must happen once it is durable."""

    conversation: Conversation
    applied: bool = True
    deliver: bool = False
    delivered: bool = False
    analyze: bool = False
    auto_reply: bool = False
    agreed: bool = False
    fire: list[LifecycleEvent] = field(default_factory=list)
    escalation: EscalationDecision | None = None
    approval: HumanApproval | None = None
    merged: bool = False
    creator_quote: str = ""


class NegotiationOrchestrator:
    """Drives conversations through the negotiation lifecycle.

    All collaborators are passed in; nothing is looked up globally.  Use
    :meth:`from_database` to build the SQLite-backed stores from one
    ``Database``.

    Args:
        db: Database shared by the stores; commits span all of them.
        store: Conversation records, stage history and lifecycle events.
        ledger: Append-only message ledger.
        approvals: Human approval queue.
        policy: The escalation policy every entry point consults.
        classifier: Reply classifier (Anthropic-backed or scripted).
        transport: Outbound email transport.
        contract_trigger: Contract Trigger fired on agreement.
        payment_trigger: Payment Trigger fired when the contract is active.
        audit: Audit logger; one is created on *db* if omitted.
        notifier: Optional Slack notifier for new approvals and agreements.
        brand_address: Sender address of brand and AI messages.
        classifier_timeout_seconds: Bound on one classifier call.
        analyzing_timeout_seconds: Age at which the sweep escalates a
            conversation stuck in ``analyzing``.
        abandon_after_hours: Silence after which the sweep abandons a
            conversation waiting for the creator.
        max_write_retries: Attempts before a conflicting write gives up.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        db: Database,
        store: ConversationStore,
        ledger: MessageLedger,
        approvals: ApprovalQueue,
        policy: EscalationPolicy,
        classifier: ClassifierAdapter,
        transport: EmailTransport,
        contract_trigger: DownstreamTrigger,
        payment_trigger: DownstreamTrigger,
        audit: AuditLogger | None = None,
        notifier: ApprovalNotifier | None = None,
        brand_address: str = "partnerships@brand.example",
        classifier_timeout_seconds: float = 60.0,
        analyzing_timeout_seconds: float = 300.0,
        abandon_after_hours: float = 14 * 24.0,
        max_write_retries: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self._store = store
        self._ledger = ledger
        self._approvals = approvals
        self._policy = policy
        self._classifier = classifier
        self._transport = transport
        self._contract_trigger = contract_trigger
        self._payment_trigger = payment_trigger
        self._audit = audit or AuditLogger(db)
        self._notifier = notifier
        self._brand_address = brand_address
        self._classifier_timeout = classifier_timeout_seconds
        self._analyzing_timeout = analyzing_timeout_seconds
        self._abandon_after_hours = abandon_after_hours
        self._max_write_retries = max_write_retries
        self._clock = clock or _utcnow
        self._locks = ConversationLocks()
        self._analyzing: set[str] = set()
        self._delivering: set[str] = set()
        self._in_flight: set[tuple[str, LifecycleEvent]] = set()

    @classmethod
    def from_database(
        cls,
        db: Database,
        policy: EscalationPolicy,
        classifier: ClassifierAdapter,
        transport: EmailTransport,
        contract_trigger: DownstreamTrigger,
        payment_trigger: DownstreamTrigger,
        **options: Any,
    ) -> NegotiationOrchestrator:
        """Build an orchestrator whose stores all live in *db*."""
        return cls(
            db=db,
            store=ConversationStore(db),
            ledger=MessageLedger(db),
            approvals=ApprovalQueue(db),
            policy=policy,
            classifier=classifier,
            transport=transport,
            contract_trigger=contract_trigger,
            payment_trigger=payment_trigger,
            **options,
        )

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def ledger(self) -> MessageLedger:
        return self._ledger

    @property
    def approvals(self) -> ApprovalQueue:
        return self._approvals

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_conversation(
        self,
        campaign_id: str,
        creator_id: str,
        creator_address: str,
        subject: str,
        body_text: str,
        terms: NegotiationTerms,
        thread_ref: str | None = None,
    ) -> ConversationView:
        """Create a conversation and deliver its outreach message.

        The conversation starts in ``initiated`` and moves to ``sent`` once
        the transport confirms delivery.  A failed delivery leaves the
        outreach pending for the sweep.

        Raises:
            MalformedMessageError: If the address or body is blank.
            ConversationExistsError: If the campaign/creator pair already
                has a conversation.
        """
        if not creator_address.strip() or not body_text.strip():
            raise MalformedMessageError("outreach needs a creator address and a body")

        now = self._clock()
        conversation_id = uuid.uuid4().hex
        outreach = OutboundDraft(
            idempotency_key=f"{conversation_id}:{OUTREACH}",
            purpose=OUTREACH,
            sender_type=SenderType.BRAND,
            sender_address=self._brand_address,
            recipient=creator_address,
            subject=subject,
            body_text=body_text,
        )
        self._store.create(
            Conversation(
                id=conversation_id,
                campaign_id=campaign_id,
                creator_id=creator_id,
                creator_address=creator_address,
                thread_ref=thread_ref,
                terms=terms,
                pending_outbound=outreach,
                created_at=now,
                updated_at=now,
                stage_entered_at=now,
            )
        )
        logger.info(
            "Conversation started",
            conversation_id=conversation_id,
            campaign_id=campaign_id,
            creator_id=creator_id,
        )

        await self._deliver(conversation_id)
        self._refresh_active_gauge()
        return ConversationView.from_conversation(self._store.get(conversation_id))

    async def ingest_email(self, inbound: InboundEmail) -> IngestResult:
        """Ingest a provider webhook payload; see :meth:`ingest_inbound_message`."""
        try:
            key = inbound.conversation_key()
        except ValueError:
            reason = "no conversation identifiers"
            logger.warning(
                "Inbound message rejected",
                provider_message_id=inbound.provider_message_id,
                reason=reason,
            )
            self._audit.log_message_rejected("(none)", reason, inbound.provider_message_id)
            return IngestResult(accepted=False, reason=reason)

        return await self.ingest_inbound_message(
            key,
            inbound.provider_message_id,
            inbound.from_email,
            inbound.body_text,
            subject=inbound.subject,
            attachments=inbound.attachments,
            received_at=inbound.received_at,
        )

    async def ingest_inbound_message(
        self,
        key: ConversationKey,
        provider_message_id: str | None,
        sender_address: str | None,
        body_text: str | None,
        subject: str | None = None,
        attachments: Sequence[Attachment] | None = None,
        received_at: datetime | None = None,
    ) -> IngestResult:
        """Record a creator message and take the next step for its conversation.

        A message whose provider id is already in the ledger is a successful
        no-op.  Malformed messages and messages for unknown conversations are
        logged, audited and reported with ``accepted=False``; they never
        raise.

        Returns:
            The outcome, with the stage the conversation ended up in.
        """
        described = key.describe()
        if not (sender_address and sender_address.strip()) or not (
            body_text and body_text.strip()
        ):
            return self._reject_inbound(described, "missing sender or body", provider_message_id)

        conversation = self._store.find(key)
        if conversation is None:
            return self._reject_inbound(described, "unknown conversation", provider_message_id)

        conversation_id = conversation.id
        draft = MessageDraft(
            sender_type=SenderType.CREATOR,
            sender_address=sender_address,
            body_text=body_text,
            subject=subject,
            attachments=list(attachments or []),
            provider_message_id=provider_message_id,
            received_at=received_at or self._clock(),
        )

        async with self._locks.lock_for(conversation_id):
            if provider_message_id and self._ledger.has_provider_message(
                conversation_id, provider_message_id
            ):
                return self._duplicate(conversation_id, provider_message_id)
            try:
                effects = self._commit(
                    conversation_id, functools.partial(self._record_inbound, draft=draft)
                )
            except DuplicateMessageError:
                return self._duplicate(conversation_id, provider_message_id or "")

        await self._after_commit(effects)
        return IngestResult(
            accepted=True,
            conversation_id=conversation_id,
            stage=self._store.get(conversation_id).stage,
        )

    async def resolve_approval(
        self,
        approval_id: str,
        decision: ApprovalDecision | str,
        human_text: str | None = None,
        notes: str | None = None,
        resolved_by: str | None = None,
        revised_terms: NegotiationTerms | None = None,
    ) -> ResolutionResult:
        """Apply a human decision to a pending approval, exactly once.

        ``approve`` sends the drafted reply, ``substitute`` sends
        *human_text* as the brand, and both move the conversation to ``sent``
        once delivered.  ``reject`` declines the conversation.  When
        *revised_terms* is given with a sending decision, it becomes the
        conversation's new baseline offer.

        Raises:
            ApprovalNotFoundError: If the id is unknown.
            AlreadyResolvedError: If the approval was already resolved; the
                error carries the earlier decision and the current stage.
            InvalidTransitionError: If the conversation left human review.
            ValueError: For an unknown decision or missing substitute text.
        """
        decision = ApprovalDecision(decision)
        approval = self._approvals.get(approval_id)
        conversation_id = approval.conversation_id

        async with self._locks.lock_for(conversation_id):
            try:
                effects = self._commit(
                    conversation_id,
                    functools.partial(
                        self._apply_resolution,
                        approval_id=approval_id,
                        decision=decision,
                        human_text=human_text,
                        notes=notes,
                        resolved_by=resolved_by,
                        revised_terms=revised_terms,
                    ),
                )
            except AlreadyResolvedError as exc:
                stage = self._store.get(conversation_id).stage
                logger.warning(
                    "Approval already resolved",
                    approval_id=approval_id,
                    conversation_id=conversation_id,
                    status=exc.status.value,
                    stage=stage.value,
                )
                raise AlreadyResolvedError(exc.approval_id, exc.status, stage) from None

        await self._after_commit(effects)
        return ResolutionResult(
            approval_id=approval_id,
            conversation_id=conversation_id,
            conversation_stage=self._store.get(conversation_id).stage,
            outbound_sent=effects.delivered,
        )

    async def report_downstream_event(
        self,
        conversation_id: str,
        event: DownstreamEvent | str,
        details: dict[str, Any] | None = None,
    ) -> DownstreamResult:
        """Apply a completion event reported by the Contract or Payment system.

        A repeated report is acknowledged with ``applied=False``.  Every
        applied event appends an ``ai-system`` note to the ledger.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
            InvalidTransitionError: If the event does not fit the stage.
            ValueError: For an unknown event name.
        """
        event = DownstreamEvent(event)
        async with self._locks.lock_for(conversation_id):
            effects = self._commit(
                conversation_id,
                functools.partial(self._apply_downstream, event=event, details=details or {}),
            )

        await self._after_commit(effects)
        return DownstreamResult(
            conversation_id=conversation_id,
            stage=self._store.get(conversation_id).stage,
            applied=effects.applied,
        )

    def get_conversation_state(self, conversation_id: str) -> ConversationStateView:
        """Return the stage, full ledger, pending approval, contract and history.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
        """
        conversation = self._store.get(conversation_id)
        return ConversationStateView(
            conversation=ConversationView.from_conversation(conversation),
            stage=conversation.stage,
            messages=list(self._ledger.list_since(conversation_id)),
            pending_approval=self._approvals.get_pending(conversation_id),
            contract_status=conversation.contract_status,
            contract=self._store.get_contract(conversation_id),
            history=self._store.history(conversation_id),
            lifecycle_events={
                event.value: completed
                for event, completed in self._store.lifecycle_events(conversation_id).items()
            },
        )

    def list_pending_approvals(self) -> list[ApprovalSummary]:
        """Return every pending approval with its conversation context, oldest first."""
        summaries: list[ApprovalSummary] = []
        for approval in self._approvals.list_pending():
            conversation = self._store.get(approval.conversation_id)
            summaries.append(
                ApprovalSummary(
                    approval_id=approval.id,
                    conversation_id=conversation.id,
                    campaign_id=conversation.campaign_id,
                    creator_id=conversation.creator_id,
                    stage=conversation.stage,
                    summary=approval.summary,
                    reasons=approval.reasons,
                    proposed_reply=approval.proposed_action.reply_text,
                    recommendation=approval.proposed_action.recommendation,
                    created_at=approval.created_at,
                )
            )
        return summaries

    async def override_stage(
        self,
        conversation_id: str,
        target: ConversationStage | str,
        actor: str,
        reason: str,
    ) -> ConversationView:
        """Move a conversation to *target* regardless of the transition graph.

        The override is recorded in the stage history and the audit trail.
        Entering ``negotiation_agreed`` or ``contract_active`` this way fires
        the matching trigger like any other entry.

        Raises:
            ValueError: For an unknown stage or a blank reason or actor.
            ConversationNotFoundError: If the conversation does not exist.
        """
        target = ConversationStage(target)
        if not actor.strip() or not reason.strip():
            raise ValueError("an override needs an actor and a reason")

        async with self._locks.lock_for(conversation_id):
            effects = self._commit(
                conversation_id,
                functools.partial(self._apply_override, target=target, actor=actor, reason=reason),
            )

        await self._after_commit(effects)
        return ConversationView.from_conversation(self._store.get(conversation_id))

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Apply timeouts, redeliver pending outbound messages, and retry triggers.

        - conversations in ``analyzing`` longer than the analysis timeout are
          escalated;
        - conversations left in ``replied``, or in ``analyzing`` with no
          analysis running, are classified again;
        - conversations in ``initiated`` or ``sent`` with no message for
          ``abandon_after_hours`` are abandoned;
        - outbound messages still awaiting delivery are sent again;
        - lifecycle events whose trigger call never succeeded are retried.
        """
        now = now or self._clock()
        report = SweepReport()

        for conversation in self._store.list_in_stages([ConversationStage.ANALYZING]):
            waited = (now - conversation.stage_entered_at).total_seconds()
            if waited < self._analyzing_timeout:
                continue
            async with self._locks.lock_for(conversation.id):
                effects = self._commit(
                    conversation.id,
                    functools.partial(self._apply_analysis_timeout, waited=waited),
                )
            if effects.escalation is not None:
                report.escalated.append(conversation.id)
            await self._after_commit(effects)

        stalled = [ConversationStage.REPLIED, ConversationStage.ANALYZING]
        for conversation in self._store.list_in_stages(stalled):
            if conversation.id in self._analyzing:
                continue
            try:
                await self._run_analysis(conversation.id)
            except ConversationBusyError:
                logger.warning(
                    "Analysis not resumed, conversation busy", conversation_id=conversation.id
                )
                continue
            report.reanalyzed.append(conversation.id)

        cutoff = now - timedelta(hours=self._abandon_after_hours)
        waiting = [ConversationStage.INITIATED, ConversationStage.SENT]
        for conversation in self._store.list_in_stages(waiting):
            if (conversation.last_message_at or conversation.created_at) > cutoff:
                continue
            async with self._locks.lock_for(conversation.id):
                effects = self._commit(
                    conversation.id, functools.partial(self._apply_abandon, cutoff=cutoff)
                )
            if effects.applied:
                report.abandoned.append(conversation.id)

        for conversation in self._store.list_with_pending_outbound():
            if conversation.id in self._delivering:
                continue
            if await self._deliver(conversation.id):
                report.redelivered.append(conversation.id)
            else:
                report.delivery_failed.append(conversation.id)

        for conversation_id, event in self._store.incomplete_lifecycle_events():
            if event == LifecycleEvent.NEGOTIATION_AGREED:
                continue
            if (conversation_id, event) in self._in_flight:
                continue
            report.triggers_retried.append(f"{conversation_id}:{event.value}")
            await self._fire_trigger(conversation_id, event)

        report.active_conversations = self._refresh_active_gauge()
        logger.info(
            "Sweep finished",
            escalated=len(report.escalated),
            reanalyzed=len(report.reanalyzed),
            abandoned=len(report.abandoned),
            redelivered=len(report.redelivered),
            delivery_failed=len(report.delivery_failed),
            triggers_retried=len(report.triggers_retried),
        )
        return report

    # ------------------------------------------------------------------
    # Commit machinery
    # ------------------------------------------------------------------

    def _commit(
        self, conversation_id: str, mutate: Callable[[Conversation], _Effects]
    ) -> _Effects:
        """Apply *mutate* to a fresh read of the conversation in one transaction.

        Raises:
            ConversationBusyError: If the version check keeps failing.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._max_write_retries),
            wait=wait_random(0, 0.05),
            retry=retry_if_exception_type(StaleConversationError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt, self._db.transaction():
                    effects = mutate(self._store.get(conversation_id))
                    effects.conversation = self._store.save(effects.conversation)
        except StaleConversationError as exc:
            logger.warning(
                "Conversation write kept conflicting",
                conversation_id=conversation_id,
                attempts=self._max_write_retries,
            )
            raise ConversationBusyError(conversation_id, self._max_write_retries) from exc
        return effects

    def _transition(
        self,
        conversation: Conversation,
        event: ConversationEvent,
        actor: str = "system",
        reason: str | None = None,
    ) -> Conversation:
        """Apply *event* to the conversation's stage and record it.

        Raises:
            InvalidTransitionError: If *event* is not allowed from the stage.
        """
        machine = ConversationStateMachine.from_snapshot(conversation.stage)
        try:
            new_stage = machine.trigger(event)
        except InvalidTransitionError:
            logger.warning(
                "Transition rejected",
                conversation_id=conversation.id,
                stage=conversation.stage.value,
                conversation_event=event.value,
                reason=reason,
            )
            raise

        now = self._clock()
        self._store.record_transition(
            conversation.id,
            StageTransition(
                from_stage=conversation.stage,
                event=event.value,
                to_stage=new_stage,
                actor=actor,
                reason=reason,
                at=now,
            ),
        )
        updates: dict[str, Any] = {"stage": new_stage, "updated_at": now}
        if new_stage != conversation.stage:
            updates["stage_entered_at"] = now
        moved = conversation.model_copy(update=updates)
        self._audit.log_state_transition(
            moved, conversation.stage.value, new_stage.value, event.value, actor
        )
        logger.info(
            "Stage transition",
            conversation_id=conversation.id,
            from_stage=conversation.stage.value,
            conversation_event=event.value,
            to_stage=new_stage.value,
        )
        return moved

    def _claim_stage_events(self, effects: _Effects) -> None:
        """Claim the lifecycle events owed for the stage just entered."""
        conversation = effects.conversation
        now = self._clock()
        if conversation.stage == ConversationStage.NEGOTIATION_AGREED:
            if self._store.claim_lifecycle_event(
                conversation.id, LifecycleEvent.NEGOTIATION_AGREED, now
            ):
                self._store.complete_lifecycle_event(
                    conversation.id, LifecycleEvent.NEGOTIATION_AGREED, now
                )
                self._audit.log_agreement(conversation)
                effects.agreed = True
            if self._store.claim_lifecycle_event(
                conversation.id, LifecycleEvent.CONTRACT_REQUESTED, now
            ):
                effects.fire.append(LifecycleEvent.CONTRACT_REQUESTED)
        elif conversation.stage == ConversationStage.CONTRACT_ACTIVE:
            if self._store.claim_lifecycle_event(
                conversation.id, LifecycleEvent.PAYMENT_REQUESTED, now
            ):
                effects.fire.append(LifecycleEvent.PAYMENT_REQUESTED)

    async def _after_commit(self, effects: _Effects) -> None:
        conversation = effects.conversation
        if effects.auto_reply:
            AUTO_REPLIES.inc()
        if effects.escalation is not None:
            for code in dict.fromkeys(effects.escalation.reason_codes):
                ESCALATIONS.labels(reason=code).inc()
        if effects.approval is not None:
            await self._notify_approval(
                conversation, effects.approval, effects.creator_quote, effects.merged
            )
        if effects.agreed:
            AGREEMENTS.inc()
            await self._notify_agreement(conversation)
        for event in effects.fire:
            await self._fire_trigger(conversation.id, event)
        if effects.deliver:
            effects.delivered = await self._deliver(conversation.id)
        if effects.analyze:
            await self._run_analysis(conversation.id)
        self._refresh_active_gauge()

    def _refresh_active_gauge(self) -> int:
        active = self._store.count_active()
        ACTIVE_CONVERSATIONS.set(active)
        return active

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def _reject_inbound(
        self, key: str, reason: str, provider_message_id: str | None
    ) -> IngestResult:
        logger.warning(
            "Inbound message rejected",
            key=key,
            provider_message_id=provider_message_id,
            reason=reason,
        )
        self._audit.log_message_rejected(key, reason, provider_message_id)
        return IngestResult(accepted=False, reason=reason)

    def _duplicate(self, conversation_id: str, provider_message_id: str) -> IngestResult:
        DUPLICATE_MESSAGES.inc()
        conversation = self._store.get(conversation_id)
        self._audit.log_duplicate_message(conversation, provider_message_id)
        logger.info(
            "Duplicate inbound message ignored",
            conversation_id=conversation_id,
            provider_message_id=provider_message_id,
        )
        return IngestResult(
            accepted=True,
            duplicate=True,
            conversation_id=conversation_id,
            stage=conversation.stage,
        )

    def _record_inbound(self, conversation: Conversation, draft: MessageDraft) -> _Effects:
        message = self._ledger.append(conversation.id, draft)
        conversation = conversation.model_copy(
            update={"last_message_at": draft.received_at, "updated_at": self._clock()}
        )
        self._audit.log_message_received(
            conversation, draft.body_text, draft.provider_message_id, message.sequence
        )
        effects = _Effects(conversation=conversation, creator_quote=draft.body_text)

        if conversation.stage == ConversationStage.INITIATED:
            conversation = self._transition(
                conversation,
                ConversationEvent.DELIVERY_CONFIRMED,
                reason="creator replied before delivery was confirmed",
            )
            outreach = conversation.pending_outbound
            if outreach is not None and outreach.purpose == OUTREACH:
                conversation = conversation.model_copy(update={"pending_outbound": None})

        stage = conversation.stage
        if stage == ConversationStage.SENT:
            conversation = self._transition(
                conversation, ConversationEvent.RECEIVE_REPLY, actor=SenderType.CREATOR.value
            )
            effects.analyze = True
        elif stage == ConversationStage.REPLIED:
            effects.analyze = True
        elif stage == ConversationStage.ANALYZING:
            # An analysis in flight picks the message up before it commits.
            effects.analyze = conversation.id not in self._analyzing
        elif stage == ConversationStage.PENDING_HUMAN_REVIEW:
            self._merge_into_review(effects, conversation, message)
        else:
            logger.info(
                "Creator message recorded without stage change",
                conversation_id=conversation.id,
                stage=stage.value,
            )

        effects.conversation = conversation
        return effects

    def _merge_into_review(
        self, effects: _Effects, conversation: Conversation, message: Message
    ) -> None:
        summary = f"Creator wrote again: {_excerpt(message.body_text)}"
        reasons = ["new_message: creator replied while under review"]
        pending = self._approvals.get_pending(conversation.id)
        if pending is not None:
            approval = self._approvals.merge(pending.id, summary, reasons)
            merged = True
        elif conversation.pending_outbound is None:
            approval = self._approvals.create(
                conversation.id,
                summary,
                ProposedAction(recommendation=_recommendation(None)),
                None,
                reasons,
                at=self._clock(),
            )
            merged = False
        else:
            # The approved reply is still being delivered; the new message is
            # classified once it is.
            return
        self._audit.log_escalation(conversation, approval.id, approval.reasons, merged=merged)
        effects.approval = approval
        effects.merged = merged

    # ------------------------------------------------------------------
    # Classification and policy
    # ------------------------------------------------------------------

    async def _run_analysis(self, conversation_id: str) -> None:
        if conversation_id in self._analyzing:
            return
        self._analyzing.add(conversation_id)
        try:
            effects = await self._analyze(conversation_id)
        finally:
            self._analyzing.discard(conversation_id)
        if effects is not None:
            await self._after_commit(effects)

    async def _analyze(self, conversation_id: str) -> _Effects | None:
        """Classify the newest creator message and commit the policy's decision.

        The classifier runs without the lock.  If a newer creator message
        was appended meanwhile, the result is discarded and the conversation
        is classified again.
        """
        while True:
            async with self._locks.lock_for(conversation_id):
                conversation = self._store.get(conversation_id)
                if conversation.stage == ConversationStage.REPLIED:
                    conversation = self._commit(
                        conversation_id,
                        functools.partial(
                            self._apply_event, event=ConversationEvent.BEGIN_ANALYSIS
                        ),
                    ).conversation
                if conversation.stage != ConversationStage.ANALYZING:
                    return None
                messages = self._ledger.recent(conversation_id, TRANSCRIPT_MESSAGE_LIMIT)
                creator_message = self._ledger.latest(conversation_id, SenderType.CREATOR)
                terms = conversation.terms

            result = await self._classify(conversation_id, messages, terms)
            decision = self._policy.decide(result, terms)

            async with self._locks.lock_for(conversation_id):
                if self._store.get(conversation_id).stage != ConversationStage.ANALYZING:
                    logger.info(
                        "Discarding analysis, conversation moved on",
                        conversation_id=conversation_id,
                    )
                    return None
                newest = self._ledger.latest(conversation_id, SenderType.CREATOR)
                if newest is not None and (
                    creator_message is None or newest.sequence != creator_message.sequence
                ):
                    logger.info(
                        "Newer creator message arrived, classifying again",
                        conversation_id=conversation_id,
                        sequence=newest.sequence,
                    )
                    continue
                return self._commit(
                    conversation_id,
                    functools.partial(
                        self._apply_decision,
                        result=result,
                        decision=decision,
                        creator_message=newest,
                    ),
                )

    async def _classify(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        terms: NegotiationTerms,
    ) -> ClassifierResult:
        """Run the classifier with a deadline; every failure becomes a result."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._classifier.classify, messages, terms),
                timeout=self._classifier_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Classifier timed out",
                conversation_id=conversation_id,
                timeout_seconds=self._classifier_timeout,
            )
            return ClassificationFailure(
                kind=FailureKind.TIMEOUT,
                message=f"no answer within {self._classifier_timeout:g}s",
            )
        except ClassifierError as exc:
            logger.warning(
                "Classification failed", conversation_id=conversation_id, error=str(exc)
            )
            return ClassificationFailure.from_error(exc)
        except Exception as exc:
            logger.exception("Classifier raised unexpectedly", conversation_id=conversation_id)
            return ClassificationFailure(kind=FailureKind.UNAVAILABLE, message=str(exc))

    def _apply_event(self, conversation: Conversation, event: ConversationEvent) -> _Effects:
        return _Effects(conversation=self._transition(conversation, event))

    def _apply_decision(
        self,
        conversation: Conversation,
        result: ClassifierResult,
        decision: EscalationDecision,
        creator_message: Message | None,
    ) -> _Effects:
        analysis = result if isinstance(result, Analysis) else None
        effects = _Effects(
            conversation=conversation,
            creator_quote=creator_message.body_text if creator_message else "",
        )
        if decision.escalate or analysis is None:
            self._escalate(effects, decision, analysis)
            return effects

        in_reply_to = creator_message.sequence if creator_message else None
        agreement = analysis.intent == Intent.AGREEMENT and not terms_conflicts(
            analysis.extracted_terms, conversation.terms
        )
        moved = self._transition(
            conversation,
            ConversationEvent.AUTO_REPLY,
            actor=SenderType.AI_SYSTEM.value,
            reason=analysis.intent.value,
        )
        draft = OutboundDraft(
            idempotency_key=f"{conversation.id}:{AUTO_REPLY}:{in_reply_to or 0}",
            purpose=AUTO_REPLY,
            sender_type=SenderType.AI_SYSTEM,
            sender_address=self._brand_address,
            recipient=conversation.creator_address,
            subject=self._reply_subject(conversation.id),
            body_text=analysis.suggested_reply,
            agreement=agreement,
            in_reply_to=in_reply_to,
        )
        effects.conversation = moved.model_copy(update={"pending_outbound": draft})
        effects.auto_reply = True
        effects.deliver = True
        logger.info(
            "Reply approved automatically",
            conversation_id=conversation.id,
            intent=analysis.intent.value,
            agreement=agreement,
        )
        return effects

    def _escalate(
        self,
        effects: _Effects,
        decision: EscalationDecision,
        analysis: Analysis | None,
    ) -> None:
        conversation = self._transition(
            effects.conversation,
            ConversationEvent.ESCALATE,
            reason=", ".join(decision.reason_codes),
        )
        reasons = decision.describe()
        summary = (
            analysis.summary if analysis is not None else f"Needs review: {'; '.join(reasons)}"
        )
        proposed = ProposedAction(
            reply_text=analysis.suggested_reply if analysis is not None else "",
            recommendation=_recommendation(analysis),
        )

        pending = self._approvals.get_pending(conversation.id)
        if pending is None:
            approval = self._approvals.create(
                conversation.id, summary, proposed, analysis, reasons, at=self._clock()
            )
            merged = False
        else:
            approval = self._approvals.merge(
                pending.id,
                summary,
                reasons,
                analysis=analysis,
                proposed_action=proposed if proposed.reply_text else None,
            )
            merged = True

        self._audit.log_escalation(conversation, approval.id, reasons, merged=merged)
        logger.info(
            "Escalated to human review",
            conversation_id=conversation.id,
            approval_id=approval.id,
            reasons=decision.reason_codes,
        )
        effects.conversation = conversation
        effects.escalation = decision
        effects.approval = approval
        effects.merged = merged

    # ------------------------------------------------------------------
    # Outbound delivery
    # ------------------------------------------------------------------

    async def _deliver(self, conversation_id: str) -> bool:
        """Send the conversation's pending outbound message and commit the result.

        Returns:
            True if a message was delivered, False if there was nothing to
            send, a delivery was already running, or the transport failed.
        """
        if conversation_id in self._delivering:
            return False
        self._delivering.add(conversation_id)
        try:
            async with self._locks.lock_for(conversation_id):
                conversation = self._store.get(conversation_id)
                draft = conversation.pending_outbound
                if draft is None:
                    return False
                outbound = OutboundEmail(
                    to=draft.recipient,
                    from_email=draft.sender_address,
                    subject=draft.subject or "",
                    body=draft.body_text,
                    idempotency_key=draft.idempotency_key,
                    thread_ref=conversation.thread_ref,
                )

            try:
                receipt = await asyncio.to_thread(self._transport.send, outbound)
            except DeliveryError as exc:
                logger.warning(
                    "Outbound delivery failed",
                    conversation_id=conversation_id,
                    purpose=draft.purpose,
                    error=str(exc),
                )
                self._audit.log_error(conversation, str(exc), context=f"delivery:{draft.purpose}")
                return False

            async with self._locks.lock_for(conversation_id):
                effects = self._commit(
                    conversation_id,
                    functools.partial(self._record_delivery, draft=draft, receipt=receipt),
                )
        finally:
            self._delivering.discard(conversation_id)

        await self._after_commit(effects)
        return True

    def _delivery_event(self, draft: OutboundDraft) -> ConversationEvent:
        if draft.purpose == OUTREACH:
            return ConversationEvent.DELIVERY_CONFIRMED
        if draft.purpose == APPROVED_REPLY:
            return ConversationEvent.APPROVAL_SENT
        if draft.agreement:
            return ConversationEvent.AGREEMENT_REACHED
        return ConversationEvent.REPLY_SENT

    def _record_delivery(
        self,
        conversation: Conversation,
        draft: OutboundDraft,
        receipt: DeliveryReceipt,
    ) -> _Effects:
        effects = _Effects(conversation=conversation)
        current = conversation.pending_outbound
        if current is None or current.idempotency_key != draft.idempotency_key:
            logger.info(
                "Delivery already recorded",
                conversation_id=conversation.id,
                idempotency_key=draft.idempotency_key,
            )
            effects.applied = False
            return effects

        try:
            self._ledger.append(
                conversation.id,
                MessageDraft(
                    sender_type=draft.sender_type,
                    sender_address=draft.sender_address,
                    body_text=draft.body_text,
                    subject=draft.subject,
                    provider_message_id=receipt.provider_message_id,
                    sent_at=receipt.sent_at,
                ),
            )
        except DuplicateMessageError:
            logger.info(
                "Delivered message already in ledger",
                conversation_id=conversation.id,
                provider_message_id=receipt.provider_message_id,
            )

        updates: dict[str, Any] = {
            "pending_outbound": None,
            "last_message_at": receipt.sent_at,
            "updated_at": self._clock(),
        }
        if conversation.thread_ref is None and receipt.thread_ref:
            updates["thread_ref"] = receipt.thread_ref
        delivered = conversation.model_copy(update=updates)
        self._audit.log_message_sent(
            delivered,
            draft.body_text,
            draft.sender_type.value,
            receipt.provider_message_id,
            draft.purpose,
        )

        event = self._delivery_event(draft)
        if ConversationStateMachine.from_snapshot(delivered.stage).can_trigger(event):
            delivered = self._transition(
                delivered, event, actor=draft.sender_type.value, reason=draft.purpose
            )
        else:
            logger.info(
                "Delivery recorded without stage change",
                conversation_id=conversation.id,
                stage=delivered.stage.value,
                conversation_event=event.value,
            )
        effects.conversation = delivered

        if delivered.stage == ConversationStage.SENT and draft.in_reply_to is not None:
            newest = self._ledger.latest(conversation.id, SenderType.CREATOR)
            if newest is not None and newest.sequence > draft.in_reply_to:
                effects.conversation = self._transition(
                    delivered,
                    ConversationEvent.RECEIVE_REPLY,
                    actor=SenderType.CREATOR.value,
                    reason="creator wrote while the reply was being sent",
                )
                effects.analyze = True

        self._claim_stage_events(effects)
        return effects

    def _reply_subject(self, conversation_id: str) -> str:
        first = next(self._ledger.list_since(conversation_id), None)
        subject = first.subject if first is not None and first.subject else "Our collaboration"
        return subject if subject.lower().startswith("re:") else f"Re: {subject}"

    # ------------------------------------------------------------------
    # Human approval
    # ------------------------------------------------------------------

    def _apply_resolution(
        self,
        conversation: Conversation,
        approval_id: str,
        decision: ApprovalDecision,
        human_text: str | None,
        notes: str | None,
        resolved_by: str | None,
        revised_terms: NegotiationTerms | None,
    ) -> _Effects:
        resolution = self._approvals.resolve(
            approval_id,
            decision,
            human_text=human_text,
            notes=notes,
            resolved_by=resolved_by,
            at=self._clock(),
        )
        self._audit.log_approval_resolved(
            conversation, approval_id, decision.value, resolved_by, notes
        )
        actor = resolved_by or "human"

        if decision == ApprovalDecision.REJECT:
            return _Effects(
                conversation=self._transition(
                    conversation, ConversationEvent.APPROVAL_REJECTED, actor=actor, reason=notes
                )
            )

        if not ConversationStateMachine.from_snapshot(conversation.stage).can_trigger(
            ConversationEvent.APPROVAL_SENT
        ):
            logger.warning(
                "Transition rejected",
                conversation_id=conversation.id,
                stage=conversation.stage.value,
                conversation_event=ConversationEvent.APPROVAL_SENT.value,
                reason="approval resolved outside human review",
            )
            raise InvalidTransitionError(conversation.stage, ConversationEvent.APPROVAL_SENT)

        if revised_terms is not None:
            conversation = conversation.model_copy(update={"terms": revised_terms})
            logger.info(
                "Negotiation terms revised",
                conversation_id=conversation.id,
                compensation=str(revised_terms.compensation),
                deliverable_count=revised_terms.deliverable_count,
            )

        latest = self._ledger.latest(conversation.id, SenderType.CREATOR)
        draft = OutboundDraft(
            idempotency_key=f"{conversation.id}:{APPROVED_REPLY}:{approval_id}",
            purpose=APPROVED_REPLY,
            sender_type=resolution.sender_type or SenderType.BRAND,
            sender_address=self._brand_address,
            recipient=conversation.creator_address,
            subject=self._reply_subject(conversation.id),
            body_text=resolution.outbound_text or "",
            approval_id=approval_id,
            in_reply_to=latest.sequence if latest is not None else None,
        )
        return _Effects(
            conversation=conversation.model_copy(
                update={"pending_outbound": draft, "updated_at": self._clock()}
            ),
            deliver=True,
        )

    # ------------------------------------------------------------------
    # Downstream events and triggers
    # ------------------------------------------------------------------

    @staticmethod
    def _already_applied(
        conversation: Conversation,
        event: DownstreamEvent,
        contract: Contract | None,
        details: dict[str, Any],
    ) -> bool:
        if event == DownstreamEvent.CONTRACT_DRAFTED:
            return conversation.stage in (
                ConversationStage.CONTRACT_PENDING_SIGNATURE,
                ConversationStage.CONTRACT_ACTIVE,
            )
        if event == DownstreamEvent.CONTRACT_SIGNED:
            return conversation.stage == ConversationStage.CONTRACT_ACTIVE or (
                contract is not None and contract.status == ContractStatus.SIGNED_BY_CREATOR
            )
        if event == DownstreamEvent.CONTRACT_ACTIVE:
            return conversation.stage == ConversationStage.CONTRACT_ACTIVE
        milestone = details.get("milestone")
        return (
            milestone is not None
            and contract is not None
            and milestone in contract.details.get("milestones_completed", [])
        )

    def _apply_downstream(
        self,
        conversation: Conversation,
        event: DownstreamEvent,
        details: dict[str, Any],
    ) -> _Effects:
        if (
            event != DownstreamEvent.PAYMENT_MILESTONE_COMPLETED
            and conversation.stage == ConversationStage.NEGOTIATION_AGREED
            and LifecycleEvent.CONTRACT_REQUESTED in self._store.lifecycle_events(conversation.id)
        ):
            # The contract system answered before its request was acknowledged.
            conversation = self._transition(
                conversation,
                ConversationEvent.CONTRACT_REQUESTED,
                actor="downstream",
                reason=f"implied by {event.value}",
            )
            self._store.complete_lifecycle_event(
                conversation.id, LifecycleEvent.CONTRACT_REQUESTED, self._clock()
            )

        stage_event, status, note = _DOWNSTREAM[event]
        contract = self._store.get_contract(conversation.id)
        effects = _Effects(conversation=conversation)

        if self._already_applied(conversation, event, contract, details):
            logger.info(
                "Downstream event already applied",
                conversation_id=conversation.id,
                downstream_event=event.value,
            )
            self._audit.log_downstream_event(conversation, event.value, applied=False)
            effects.applied = False
            return effects

        moved = self._transition(conversation, stage_event, actor="downstream", reason=event.value)
        now = self._clock()

        contract_details = dict(details)
        milestone = details.get("milestone")
        if milestone is not None:
            done = list(contract.details.get("milestones_completed", [])) if contract else []
            contract_details["milestones_completed"] = [*done, milestone]
        new_status = status or (contract.status if contract else ContractStatus.ACTIVE)
        self._store.set_contract_status(conversation.id, new_status, now, contract_details)
        moved = moved.model_copy(update={"contract_status": new_status})

        self._ledger.append(
            conversation.id,
            MessageDraft(
                sender_type=SenderType.AI_SYSTEM,
                sender_address=self._brand_address,
                body_text=note,
                sent_at=now,
            ),
        )
        self._audit.log_downstream_event(moved, event.value, applied=True)
        effects.conversation = moved
        self._claim_stage_events(effects)
        return effects

    async def _fire_trigger(self, conversation_id: str, event: LifecycleEvent) -> None:
        """Call the trigger owed for *event* and commit its acceptance.

        A failed or declined call leaves the lifecycle event incomplete so
        the sweep retries it; the idempotency key lets the downstream system
        discard the repeat.
        """
        key = (conversation_id, event)
        if key in self._in_flight:
            return
        self._in_flight.add(key)
        try:
            conversation = self._store.get(conversation_id)
            request = TriggerRequest(
                event=event,
                conversation_id=conversation.id,
                campaign_id=conversation.campaign_id,
                creator_id=conversation.creator_id,
                creator_address=conversation.creator_address,
                terms=conversation.terms,
                details={"thread_ref": conversation.thread_ref} if conversation.thread_ref else {},
            )
            trigger = (
                self._contract_trigger
                if event == LifecycleEvent.CONTRACT_REQUESTED
                else self._payment_trigger
            )
            try:
                ack = await asyncio.to_thread(trigger.fire, request)
            except DownstreamTriggerError as exc:
                logger.error(
                    "Downstream trigger failed",
                    conversation_id=conversation_id,
                    lifecycle_event=event.value,
                    error=str(exc),
                )
                self._audit.log_error(conversation, str(exc), context=f"trigger:{event.value}")
                return

            self._audit.log_trigger_fired(conversation, event.value, ack.accepted, ack.reference)
            if not ack.accepted:
                logger.warning(
                    "Downstream trigger declined the request",
                    conversation_id=conversation_id,
                    lifecycle_event=event.value,
                    detail=ack.detail,
                )
                return

            async with self._locks.lock_for(conversation_id):
                effects = self._commit(
                    conversation_id,
                    functools.partial(self._record_trigger_ack, event=event, ack=ack),
                )
        finally:
            self._in_flight.discard(key)

        await self._after_commit(effects)

    def _record_trigger_ack(
        self, conversation: Conversation, event: LifecycleEvent, ack: TriggerAck
    ) -> _Effects:
        now = self._clock()
        if event == LifecycleEvent.CONTRACT_REQUESTED:
            if self._store.get_contract(conversation.id) is None:
                details = {"reference": ack.reference} if ack.reference else {}
                self._store.set_contract_status(
                    conversation.id, ContractStatus.DRAFTING, now, details
                )
                conversation = conversation.model_copy(
                    update={"contract_status": ContractStatus.DRAFTING}
                )
            if conversation.stage == ConversationStage.NEGOTIATION_AGREED:
                conversation = self._transition(
                    conversation,
                    ConversationEvent.CONTRACT_REQUESTED,
                    actor="downstream",
                    reason=ack.reference,
                )
        self._store.complete_lifecycle_event(conversation.id, event, now)
        return _Effects(conversation=conversation)

    # ------------------------------------------------------------------
    # Overrides and timeouts
    # ------------------------------------------------------------------

    def _apply_override(
        self,
        conversation: Conversation,
        target: ConversationStage,
        actor: str,
        reason: str,
    ) -> _Effects:
        now = self._clock()
        self._store.record_transition(
            conversation.id,
            StageTransition(
                from_stage=conversation.stage,
                event="override",
                to_stage=target,
                actor=actor,
                reason=reason,
                at=now,
            ),
        )
        self._audit.log_stage_override(
            conversation, conversation.stage.value, target.value, actor, reason
        )
        logger.warning(
            "Stage overridden",
            conversation_id=conversation.id,
            from_stage=conversation.stage.value,
            to_stage=target.value,
            actor=actor,
            reason=reason,
        )
        effects = _Effects(
            conversation=conversation.model_copy(
                update={"stage": target, "stage_entered_at": now, "updated_at": now}
            ),
            analyze=target in (ConversationStage.REPLIED, ConversationStage.ANALYZING),
        )
        self._claim_stage_events(effects)
        return effects

    def _apply_analysis_timeout(self, conversation: Conversation, waited: float) -> _Effects:
        effects = _Effects(conversation=conversation)
        if conversation.stage != ConversationStage.ANALYZING:
            effects.applied = False
            return effects
        creator_message = self._ledger.latest(conversation.id, SenderType.CREATOR)
        effects.creator_quote = creator_message.body_text if creator_message else ""
        self._escalate(effects, self._policy.timeout_decision(waited), None)
        return effects

    def _apply_abandon(self, conversation: Conversation, cutoff: datetime) -> _Effects:
        last_activity = conversation.last_message_at or conversation.created_at
        if conversation.stage not in (
            ConversationStage.INITIATED,
            ConversationStage.SENT,
        ) or last_activity > cutoff:
            return _Effects(conversation=conversation, applied=False)
        abandoned = self._transition(
            conversation,
            ConversationEvent.TIMEOUT,
            reason=f"no reply since {last_activity.isoformat()}",
        )
        return _Effects(conversation=abandoned.model_copy(update={"pending_outbound": None}))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def _notify_approval(
        self,
        conversation: Conversation,
        approval: HumanApproval,
        creator_quote: str,
        merged: bool,
    ) -> None:
        if self._notifier is None:
            return
        try:
            await asyncio.to_thread(
                self._notifier.post_approval, approval, conversation, creator_quote, merged
            )
        except Exception:
            logger.exception(
                "Approval notification failed",
                conversation_id=conversation.id,
                approval_id=approval.id,
            )

    async def _notify_agreement(self, conversation: Conversation) -> None:
        if self._notifier is None:
            return
        try:
            await asyncio.to_thread(self._notifier.post_agreement, conversation)
        except Exception:
            logger.exception("Agreement notification failed", conversation_id=conversation.id)


__all__ = ["NegotiationOrchestrator"]
