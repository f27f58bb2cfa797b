"""
Follow-Up Gate - API
====================
FastAPI application for lead engagement and follow-up gating
"""

import logging
import sys
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from followup_gate.config import settings
from followup_gate.core.engagement_fsm import InvalidTransition
from followup_gate.core.engagement_fsm_db import LeadNotFound
from followup_gate.core.engagement_states import (
    EngagementEvent,
    LeadEngagementState,
    STATE_DESCRIPTIONS,
)
from followup_gate.core.engine import ENGINE_VERSION
from followup_gate.db.database import get_session
from followup_gate.db.models import DecisionLog, Lead as LeadModel, LeadEvent as EventModel
from followup_gate.followups.orchestrator import FollowUpOrchestrator
from followup_gate.followups.senders import LoggingSender, MessageSender


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("followup_gate")


app = FastAPI(
    title=settings.APP_NAME,
    description="FSM-driven lead engagement and deterministic follow-up gating",
    version=settings.APP_VERSION,
)


def get_sender() -> MessageSender:
    return LoggingSender()


def get_orchestrator(
    session: AsyncSession = Depends(get_session),
    sender: MessageSender = Depends(get_sender),
) -> FollowUpOrchestrator:
    return FollowUpOrchestrator(session, sender=sender)


# ── Error mapping ─────────────────────────────────────────────────────────────

@app.exception_handler(LeadNotFound)
async def lead_not_found_handler(request: Request, exc: LeadNotFound):
    return JSONResponse(status_code=404, content={"detail": "Lead not found"})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    logger.warning("Rejected transition: %s", exc)
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "state": exc.state.value,
            "event": exc.event.value,
        },
    )


# ── Request Models ────────────────────────────────────────────────────────────

class LeadCreateRequest(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    source_id: str = "api"


class InboundRequest(BaseModel):
    body: Optional[str] = None
    channel: str = "email"


class EventRequest(BaseModel):
    event: EngagementEvent
    payload: dict = Field(default_factory=dict)


class FollowUpRequest(BaseModel):
    subject: str = "Following up"
    body: str = ""
    channel: str = "email"
    delay_minutes: Optional[float] = None


class SweepRequest(BaseModel):
    subject: str = "Following up"
    body: str = ""
    channel: str = "email"
    limit: Optional[int] = Field(default=None, gt=0)


def lead_to_dict(lead: LeadModel) -> dict:
    state = LeadEngagementState(lead.state)
    return {
        "id": str(lead.id),
        "email": lead.email,
        "first_name": lead.first_name,
        "last_name": lead.last_name,
        "company": lead.company,
        "state": state.value,
        "state_description": STATE_DESCRIPTIONS[state],
        "state_entered_at": lead.state_entered_at.isoformat() if lead.state_entered_at else None,
        "created_at": lead.created_at.isoformat(),
        "updated_at": lead.updated_at.isoformat(),
    }


# ── Endpoints ─────────────────────────────────────────────────────────────────

@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "engine_version": ENGINE_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.post("/leads")
async def create_lead(
    lead: LeadCreateRequest,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """
    Register a lead. New leads start in NEW.
    An email we already know returns the existing lead instead.
    """
    registered = await orchestrator.register_lead(
        email=lead.email,
        first_name=lead.first_name,
        last_name=lead.last_name,
        company=lead.company,
        source=lead.source_id,
    )
    return JSONResponse(
        status_code=201 if registered.created else 200,
        content={
            "status": "created" if registered.created else "duplicate",
            "lead": lead_to_dict(registered.lead),
        },
    )


@app.get("/leads")
async def list_leads(
    limit: int = 10,
    state: Optional[LeadEngagementState] = None,
    session: AsyncSession = Depends(get_session),
):
    """List leads with optional state filter"""
    query = select(LeadModel).order_by(LeadModel.created_at).limit(limit)
    if state:
        query = query.where(LeadModel.state == state.value)

    result = await session.execute(query)
    leads = result.scalars().all()

    return {
        "count": len(leads),
        "leads": [lead_to_dict(lead) for lead in leads],
    }


@app.get("/leads/{lead_id}")
async def get_lead(lead_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    """Get current state of a lead"""
    lead = await session.get(LeadModel, lead_id)
    if not lead:
        raise LeadNotFound(lead_id)
    return lead_to_dict(lead)


@app.get("/leads/{lead_id}/history")
async def get_lead_history(lead_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    """Get full transition history for a lead (audit trail)"""
    lead = await session.get(LeadModel, lead_id)
    if not lead:
        raise LeadNotFound(lead_id)

    events_result = await session.execute(
        select(EventModel)
        .where(EventModel.lead_id == lead_id)
        .order_by(EventModel.occurred_at)
    )
    events = events_result.scalars().all()

    return {
        "lead_id": str(lead_id),
        "current_state": lead.state,
        "event_count": len(events),
        "events": [
            {
                "from_state": e.from_state,
                "event": e.event,
                "to_state": e.to_state,
                "payload": e.payload,
                "occurred_at": e.occurred_at.isoformat(),
            }
            for e in events
        ],
    }


@app.get("/leads/{lead_id}/decisions")
async def get_lead_decisions(lead_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    """Every follow-up decision made for this lead, oldest first"""
    lead = await session.get(LeadModel, lead_id)
    if not lead:
        raise LeadNotFound(lead_id)

    result = await session.execute(
        select(DecisionLog)
        .where(DecisionLog.lead_id == lead_id)
        .order_by(DecisionLog.evaluated_at)
    )
    logs = result.scalars().all()

    return {
        "lead_id": str(lead_id),
        "count": len(logs),
        "decisions": [
            {
                "id": str(d.id),
                "action": d.action,
                "rule": d.rule,
                "explanation": d.explanation,
                "state": d.state,
                "evidence": d.evidence,
                "delay_minutes": d.delay_minutes,
                "engine_version": d.engine_version,
                "outcome": d.outcome,
                "error": d.error,
                "evaluated_at": d.evaluated_at.isoformat(),
            }
            for d in logs
        ],
    }


@app.post("/leads/{lead_id}/inbound")
async def record_inbound(
    lead_id: uuid.UUID,
    inbound: InboundRequest,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """Record a reply from the lead"""
    state = await orchestrator.record_inbound(lead_id, body=inbound.body, channel=inbound.channel)
    return {"lead_id": str(lead_id), "state": state.value}


@app.post("/leads/{lead_id}/events")
async def apply_event(
    lead_id: uuid.UUID,
    request: EventRequest,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """Apply an event by hand (pause, resume, terminate). Illegal moves return 409."""
    state = await orchestrator.apply_event(lead_id, request.event, request.payload)
    return {"lead_id": str(lead_id), "state": state.value}


@app.get("/leads/{lead_id}/decision")
async def preview_decision(
    lead_id: uuid.UUID,
    delay_minutes: Optional[float] = None,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """What would the engine decide right now? Nothing is sent or stored."""
    decision = await orchestrator.preview(lead_id, delay_minutes)
    return {"lead_id": str(lead_id), "engine_version": ENGINE_VERSION, **decision.to_dict()}


@app.post("/leads/{lead_id}/follow-up")
async def run_follow_up(
    lead_id: uuid.UUID,
    request: FollowUpRequest,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """Evaluate and, if eligible, send the follow-up"""
    result = await orchestrator.process_lead(
        lead_id,
        subject=request.subject,
        body=request.body,
        channel=request.channel,
        delay_minutes=request.delay_minutes,
    )
    return {
        "lead_id": result.lead_id,
        "outcome": result.outcome,
        "state": result.state.value,
        "audit_id": result.audit_id,
        "error": result.error,
        "engine_version": ENGINE_VERSION,
        "decision": result.decision.to_dict(),
    }


@app.post("/follow-ups/run")
async def run_sweep(
    request: SweepRequest,
    orchestrator: FollowUpOrchestrator = Depends(get_orchestrator),
):
    """Process every lead that might be due for a follow-up"""
    summary = await orchestrator.sweep(
        subject=request.subject,
        body=request.body,
        channel=request.channel,
        limit=request.limit,
    )
    return {
        "processed": summary.processed,
        "sent": summary.sent,
        "skipped": summary.skipped,
        "failed": summary.failed,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
