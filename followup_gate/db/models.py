"""
Database Models
===============
Lead = current engagement state + data
LeadEvent = immutable transition history
LeadMessage = outbound/inbound timeline the engine reads
DecisionLog = immutable audit of every follow-up decision
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Float, Uuid
from sqlalchemy.orm import DeclarativeBase


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Some backends (SQLite) hand back naive datetimes. Treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class Lead(Base):
    """
    The Lead table stores the CURRENT state.
    Think of it as a snapshot: where is this lead RIGHT NOW?
    """
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Lead data
    email = Column(String(320), nullable=True, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    company = Column(String(255), nullable=True)

    # Engagement state - THE SINGLE SOURCE OF TRUTH
    state = Column(String(50), nullable=False, default="NEW")
    state_entered_at = Column(DateTime(timezone=True), default=utcnow)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Last follow-up run for this lead; the sweep serves the oldest first
    last_evaluated_at = Column(DateTime(timezone=True), nullable=True, index=True)


class LeadEvent(Base):
    """
    The Event Log - IMMUTABLE history.
    Every state transition creates a new row here.
    Never updated or deleted - append-only.
    """
    __tablename__ = "lead_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id = Column(Uuid, ForeignKey("leads.id"), nullable=False, index=True)

    from_state = Column(String(50), nullable=False)
    event = Column(String(100), nullable=False)
    to_state = Column(String(50), nullable=False)

    payload = Column(JSON, nullable=True)

    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class LeadMessage(Base):
    """
    One message on the lead's timeline.
    direction is OUTBOUND (we sent it) or INBOUND (they replied).
    """
    __tablename__ = "lead_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id = Column(Uuid, ForeignKey("leads.id"), nullable=False, index=True)

    direction = Column(String(10), nullable=False)
    channel = Column(String(20), nullable=False, default="email")
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)

    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class DecisionLog(Base):
    """
    Audit trail for the follow-up engine. Append-only.
    Holds the full decision, the engine version that made it,
    and what the orchestrator did with it.
    """
    __tablename__ = "decision_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id = Column(Uuid, ForeignKey("leads.id"), nullable=False, index=True)

    action = Column(String(10), nullable=False)
    rule = Column(String(50), nullable=False)
    explanation = Column(Text, nullable=False)
    state = Column(String(50), nullable=False)
    evidence = Column(JSON, nullable=False)

    # As configured, before clamping (evidence holds the clamped value)
    delay_minutes = Column(Float, nullable=False)
    engine_version = Column(String(20), nullable=False)

    outcome = Column(String(10), nullable=False)  # sent | skipped | failed
    error = Column(Text, nullable=True)

    evaluated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
