"""
Follow-Up Orchestrator
======================
Loads a lead, asks the engine, sends only on SEND, moves the FSM,
and writes an audit record. The engine itself never touches the database.

One lead at a time: the lead row stays locked from evaluation
until the audit record is committed.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select

from followup_gate.config import settings
from followup_gate.core.decision import Decision
from followup_gate.core.engagement_fsm import can_transition
from followup_gate.core.engagement_fsm_db import EngagementFSM, as_lead_uuid
from followup_gate.core.engagement_states import EngagementEvent, LeadEngagementState
from followup_gate.core.engine import ENGINE_VERSION, EngineInput, evaluate
from followup_gate.db.models import (
    DecisionLog,
    Lead as LeadModel,
    LeadMessage,
    as_utc,
)
from followup_gate.followups.senders import DeliveryError, LoggingSender, MessageSender

logger = logging.getLogger(__name__)

OUTBOUND = "OUTBOUND"
INBOUND = "INBOUND"

# States the sweep bothers to evaluate. Everything else is a guaranteed SKIP.
SWEEPABLE_STATES = (LeadEngagementState.NEW.value, LeadEngagementState.CONTACTED.value)


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass
class RegisteredLead:
    lead: LeadModel
    created: bool


@dataclass
class FollowUpResult:
    lead_id: str
    decision: Decision
    outcome: str                  # sent | skipped | failed
    state: LeadEngagementState    # state after processing
    audit_id: str
    error: Optional[str] = None


@dataclass
class SweepSummary:
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


# ── Orchestrator ──────────────────────────────────────────────────────────────

class FollowUpOrchestrator:
    """evaluate → (maybe) send → transition → audit, per lead"""

    def __init__(
        self,
        session,
        sender: MessageSender = None,
        clock: Callable[[], datetime] = None,
        delay_minutes: float = None,
    ):
        self.session = session
        self.sender = sender or LoggingSender()
        self.clock = clock or system_clock
        self.delay_minutes = settings.DEFAULT_DELAY_MINUTES if delay_minutes is None else delay_minutes
        self.fsm = EngagementFSM(session)

    # ── Lead registration ────────────────────────────────────────────────────

    async def register_lead(
        self,
        email: str,
        first_name: str = None,
        last_name: str = None,
        company: str = None,
        source: str = "api",
    ) -> RegisteredLead:
        """Create a NEW lead, or return the existing one for this email."""
        email = email.strip().lower()

        result = await self.session.execute(
            select(LeadModel).where(LeadModel.email == email)
        )
        existing = result.scalar_one_or_none()
        if existing:
            return RegisteredLead(lead=existing, created=False)

        now = self.clock()
        lead = LeadModel(
            id=uuid.uuid4(),
            email=email,
            first_name=first_name,
            last_name=last_name,
            company=company,
            state=LeadEngagementState.NEW.value,
            state_entered_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(lead)
        await self.session.flush()

        await self.fsm.apply_to(lead, EngagementEvent.LEAD_CREATED, {"source": source}, occurred_at=now)
        await self.session.commit()

        return RegisteredLead(lead=lead, created=True)

    # ── Timeline ─────────────────────────────────────────────────────────────

    async def record_inbound(
        self,
        lead_id,
        body: str = None,
        channel: str = "email",
        occurred_at: datetime = None,
    ) -> LeadEngagementState:
        """
        Store a reply from the lead.
        A reply that follows our last outbound moves CONTACTED → ENGAGED.
        In any other state the message is only stored.
        """
        lead = await self.fsm.load_lead(lead_id)
        occurred_at = as_utc(occurred_at) if occurred_at else self.clock()

        last_outbound_at = await self._last_outbound_at(lead.id)

        self.session.add(LeadMessage(
            id=uuid.uuid4(),
            lead_id=lead.id,
            direction=INBOUND,
            channel=channel,
            body=body,
            occurred_at=occurred_at,
        ))

        state = LeadEngagementState(lead.state)
        follows_outbound = last_outbound_at is not None and occurred_at > last_outbound_at
        if follows_outbound and can_transition(state, EngagementEvent.INBOUND_RECEIVED):
            state = await self.fsm.apply_to(
                lead, EngagementEvent.INBOUND_RECEIVED, {"channel": channel}, occurred_at=occurred_at,
            )

        await self.session.commit()
        return state

    async def apply_event(self, lead_id, event: EngagementEvent, payload: dict = None) -> LeadEngagementState:
        """Manual override / termination. InvalidTransition propagates untouched."""
        return await self.fsm.apply_event(
            lead_id, event, payload, commit=True, occurred_at=self.clock(),
        )

    async def build_input(self, lead: LeadModel, now: datetime, delay_minutes: float = None) -> EngineInput:
        result = await self.session.execute(
            select(LeadMessage.direction, LeadMessage.occurred_at)
            .where(LeadMessage.lead_id == lead.id)
        )
        rows = result.all()

        outbound_times = [as_utc(at) for direction, at in rows if direction == OUTBOUND]
        inbound_times = [as_utc(at) for direction, at in rows if direction == INBOUND]

        return EngineInput(
            current_state=LeadEngagementState(lead.state),
            last_outbound_at=max(outbound_times) if outbound_times else None,
            inbound_message_times=tuple(inbound_times),
            delay_minutes=self.delay_minutes if delay_minutes is None else delay_minutes,
            now=now,
        )

    # ── Decisions ────────────────────────────────────────────────────────────

    async def preview(self, lead_id, delay_minutes: float = None) -> Decision:
        """Evaluate without sending, transitioning or persisting anything."""
        lead = await self.fsm.load_lead(lead_id, lock=False)
        engine_input = await self.build_input(lead, self.clock(), delay_minutes)
        decision = evaluate(engine_input)
        logger.info(
            "Preview lead %s: %s (%s) evidence=%s",
            str(lead.id)[:8], decision.action.value, decision.rule.value, decision.evidence.to_dict(),
        )
        return decision

    async def process_lead(
        self,
        lead_id,
        subject: str = "Following up",
        body: str = "",
        channel: str = "email",
        delay_minutes: float = None,
    ) -> FollowUpResult:
        """
        Run the follow-up for one lead.
        Exactly one audit row is written, whatever the outcome.
        """
        lead = await self.fsm.load_lead(lead_id)

        # Captured once; the same instant is used for the decision and the records
        now = self.clock()
        engine_input = await self.build_input(lead, now, delay_minutes)
        decision = evaluate(engine_input)

        logger.info(
            "Lead %s: %s (%s) %s evidence=%s",
            str(lead.id)[:8], decision.action.value, decision.rule.value,
            decision.explanation, decision.evidence.to_dict(),
        )

        outcome, error = "skipped", None

        if decision.should_send:
            try:
                await self.sender.send(lead, subject, body, channel)
            except DeliveryError as e:
                outcome, error = "failed", str(e)
                logger.warning("Lead %s: delivery failed: %s", str(lead.id)[:8], e)
            else:
                outcome = "sent"
                self.session.add(LeadMessage(
                    id=uuid.uuid4(),
                    lead_id=lead.id,
                    direction=OUTBOUND,
                    channel=channel,
                    subject=subject,
                    body=body,
                    occurred_at=now,
                ))
                # First touch moves NEW → CONTACTED; a follow-up leaves CONTACTED as is
                if can_transition(decision.current_state, EngagementEvent.OUTBOUND_SENT):
                    await self.fsm.apply_to(
                        lead,
                        EngagementEvent.OUTBOUND_SENT,
                        {"channel": channel, "rule": decision.rule.value},
                        occurred_at=now,
                    )

        audit = DecisionLog(
            id=uuid.uuid4(),
            lead_id=lead.id,
            action=decision.action.value,
            rule=decision.rule.value,
            explanation=decision.explanation,
            state=decision.current_state.value,
            evidence=decision.evidence.to_dict(),
            delay_minutes=engine_input.delay_minutes,
            engine_version=ENGINE_VERSION,
            outcome=outcome,
            error=error,
            evaluated_at=now,
        )
        self.session.add(audit)
        lead.last_evaluated_at = now
        await self.session.commit()

        return FollowUpResult(
            lead_id=str(lead.id),
            decision=decision,
            outcome=outcome,
            state=LeadEngagementState(lead.state),
            audit_id=str(audit.id),
            error=error,
        )

    async def sweep(
        self,
        subject: str = "Following up",
        body: str = "",
        channel: str = "email",
        limit: int = None,
    ) -> SweepSummary:
        """
        Process every lead that could still be eligible, one lead per transaction.
        Never-evaluated leads go first, then the longest-waiting ones.
        """
        result = await self.session.execute(
            select(LeadModel.id)
            .where(LeadModel.state.in_(SWEEPABLE_STATES))
            .order_by(
                LeadModel.last_evaluated_at.asc().nulls_first(),
                LeadModel.created_at,
                LeadModel.id,
            )
            .limit(limit or settings.SWEEP_BATCH_SIZE)
        )
        lead_ids = result.scalars().all()

        summary = SweepSummary()
        for lead_id in lead_ids:
            outcome = (await self.process_lead(lead_id, subject, body, channel)).outcome
            summary.processed += 1
            if outcome == "sent":
                summary.sent += 1
            elif outcome == "failed":
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info(
            "Sweep done: %d processed, %d sent, %d skipped, %d failed",
            summary.processed, summary.sent, summary.skipped, summary.failed,
        )
        return summary

    async def _last_outbound_at(self, lead_id: uuid.UUID) -> Optional[datetime]:
        result = await self.session.execute(
            select(LeadMessage.occurred_at)
            .where(LeadMessage.lead_id == as_lead_uuid(lead_id), LeadMessage.direction == OUTBOUND)
        )
        times = [as_utc(at) for at in result.scalars().all()]
        return max(times) if times else None
