"""
Follow-Up Decision Engine
=========================
Pure, deterministic gate: should this lead get an automated follow-up now?

No database, no sending, no AI, no clock. Time only enters through
EngineInput.now, so the same input always produces the same Decision.

Rules, first match wins:
    1. PAUSED / CLOSED            -> SKIP  STATE_BLOCK
    2. ENGAGED                    -> SKIP  STATE_BLOCK
    3. inbound after last outbound -> SKIP  RESPONSE_SUPPRESSION
    4. delay window still open    -> SKIP  TIME_GATE
    5. otherwise                  -> SEND  ELIGIBLE

Callers must pass well-formed datetimes. Nothing is validated here.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from followup_gate.core.decision import (
    Decision,
    DecisionAction,
    DecisionRule,
    Evidence,
)
from followup_gate.core.engagement_states import LeadEngagementState


# Stored with every audit record. Bump when a rule or its order changes.
ENGINE_VERSION = "1.0.0"

BLOCKED_STATES = frozenset({LeadEngagementState.PAUSED, LeadEngagementState.CLOSED})

# Longer delays are treated as timedelta.max
MAX_DELAY_MINUTES = timedelta.max // timedelta(minutes=1)
LATEST_UTC = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class EngineInput:
    """Snapshot of one lead, built fresh for a single evaluation."""
    current_state: LeadEngagementState
    delay_minutes: float
    now: datetime
    last_outbound_at: Optional[datetime] = None
    inbound_message_times: Iterable[datetime] = ()

    def __post_init__(self):
        # A generator would be empty on the second evaluation
        object.__setattr__(self, "inbound_message_times", tuple(self.inbound_message_times))


def evaluate(engine_input: EngineInput) -> Decision:
    state = LeadEngagementState(engine_input.current_state)
    last_outbound_at = engine_input.last_outbound_at
    latest_inbound_at = latest_timestamp(engine_input.inbound_message_times)
    delay_minutes = max(0, engine_input.delay_minutes)
    delay = as_delay(delay_minutes)

    def decide(action, rule, explanation, inbound_after_outbound):
        evidence = _build_evidence(
            engine_input.now,
            delay_minutes,
            delay,
            inbound_after_outbound,
            last_outbound_at,
            latest_inbound_at,
        )
        return Decision(
            action=action,
            rule=rule,
            explanation=explanation,
            current_state=state,
            evidence=evidence,
        )

    # 1. Paused or closed
    if state in BLOCKED_STATES:
        return decide(
            DecisionAction.SKIP,
            DecisionRule.STATE_BLOCK,
            f"Outreach blocked because lead state is {state.value}.",
            inbound_after_outbound=False,
        )

    # 2. Engaged: a reply is already on record for this cycle
    if state is LeadEngagementState.ENGAGED:
        return decide(
            DecisionAction.SKIP,
            DecisionRule.STATE_BLOCK,
            "Outreach suppressed because lead is ENGAGED (inbound response received).",
            inbound_after_outbound=True,
        )

    # 3. Response-aware suppression (strict >: equal timestamps do not count)
    inbound_after_outbound = latest_inbound_at is not None and (
        last_outbound_at is None or latest_inbound_at > last_outbound_at
    )

    if inbound_after_outbound:
        return decide(
            DecisionAction.SKIP,
            DecisionRule.RESPONSE_SUPPRESSION,
            "Follow-up suppressed because an inbound response occurred after the last outbound message.",
            inbound_after_outbound=True,
        )

    # 4. Time gating
    if last_outbound_at is not None:
        elapsed = engine_input.now - last_outbound_at
        if elapsed < delay:
            return decide(
                DecisionAction.SKIP,
                DecisionRule.TIME_GATE,
                "Delay window has not elapsed; lead is not yet eligible for follow-up.",
                inbound_after_outbound=False,
            )

    # 5. Eligible
    return decide(
        DecisionAction.SEND,
        DecisionRule.ELIGIBLE,
        "Lead is eligible for follow-up.",
        inbound_after_outbound=False,
    )


def latest_timestamp(timestamps: Iterable[datetime]) -> Optional[datetime]:
    latest = None
    for ts in timestamps:
        if latest is None or ts > latest:
            latest = ts
    return latest


def as_delay(delay_minutes: float) -> timedelta:
    if delay_minutes >= MAX_DELAY_MINUTES:
        return timedelta.max
    return timedelta(minutes=delay_minutes)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def eligible_at(last_outbound_at: datetime, delay: timedelta) -> datetime:
    """last_outbound_at + delay, capped at the last representable instant."""
    try:
        return _utc(last_outbound_at) + delay
    except OverflowError:
        return LATEST_UTC


def to_iso(ts: datetime) -> str:
    """ISO-8601, UTC, millisecond precision, 'Z' suffix. Naive values are read as UTC."""
    return _utc(ts).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _build_evidence(
    now: datetime,
    delay_minutes: float,
    delay: timedelta,
    inbound_after_outbound: bool,
    last_outbound_at: Optional[datetime],
    latest_inbound_at: Optional[datetime],
) -> Evidence:
    extra = {}

    if last_outbound_at is not None:
        extra["last_outbound_at"] = to_iso(last_outbound_at)
        extra["time_since_last_outbound_seconds"] = (now - last_outbound_at) // timedelta(seconds=1)
        extra["next_eligible_at"] = to_iso(eligible_at(last_outbound_at, delay))

    if latest_inbound_at is not None:
        extra["last_inbound_at"] = to_iso(latest_inbound_at)

    return Evidence(
        now=to_iso(now),
        delay_minutes=delay_minutes,
        inbound_after_outbound=inbound_after_outbound,
        **extra,
    )
