"""
Database-Backed Engagement FSM
==============================
Same transition table, but every transition is persisted.
The lead row is locked while the event is applied.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from followup_gate.core.engagement_fsm import transition_state
from followup_gate.core.engagement_states import EngagementEvent, LeadEngagementState
from followup_gate.db.models import Lead as LeadModel, LeadEvent as EventModel

logger = logging.getLogger(__name__)


class LeadNotFound(ValueError):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found in database")


def as_lead_uuid(lead_id) -> uuid.UUID:
    if isinstance(lead_id, uuid.UUID):
        return lead_id
    try:
        return uuid.UUID(str(lead_id))
    except ValueError:
        raise LeadNotFound(lead_id) from None


class EngagementFSM:
    """
    FSM that persists to the database.
    Every transition = one lead_events row + a lead state update.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_lead(self, lead_id, lock: bool = True) -> LeadModel:
        """Load a lead, optionally with a row lock to prevent races."""
        query = select(LeadModel).where(LeadModel.id == as_lead_uuid(lead_id))
        if lock:
            query = query.with_for_update()

        result = await self.session.execute(query)
        lead = result.scalar_one_or_none()

        if not lead:
            raise LeadNotFound(lead_id)
        return lead

    async def apply_event(
        self,
        lead_id,
        event: EngagementEvent,
        payload: dict = None,
        commit: bool = False,
        occurred_at: datetime = None,
    ) -> LeadEngagementState:
        """
        Apply an event to a lead.
        Raises InvalidTransition before anything is written if the move is illegal.
        """
        lead = await self.load_lead(lead_id)
        return await self.apply_to(lead, event, payload, commit=commit, occurred_at=occurred_at)

    async def apply_to(
        self,
        lead: LeadModel,
        event: EngagementEvent,
        payload: dict = None,
        commit: bool = False,
        occurred_at: datetime = None,
    ) -> LeadEngagementState:
        """Apply an event to an already-loaded (and locked) lead."""
        payload = payload or {}
        occurred_at = occurred_at or datetime.now(timezone.utc)

        current_state = LeadEngagementState(lead.state)
        next_state = transition_state(current_state, event)

        # Immutable event log entry
        self.session.add(EventModel(
            id=uuid.uuid4(),
            lead_id=lead.id,
            from_state=current_state.value,
            event=EngagementEvent(event).value,
            to_state=next_state.value,
            payload=payload,
            occurred_at=occurred_at,
        ))

        lead.state = next_state.value
        if next_state is not current_state:
            lead.state_entered_at = occurred_at
        lead.updated_at = occurred_at

        if commit:
            await self.session.commit()
        else:
            await self.session.flush()

        logger.info(
            "Lead %s: %s + %s → %s",
            str(lead.id)[:8], current_state.value, EngagementEvent(event).value, next_state.value,
        )
        return next_state
