"""
Decision Schema
===============
Immutable output of the follow-up engine.
Every decision names exactly one rule, and carries the evidence behind it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from followup_gate.core.engagement_states import LeadEngagementState


class DecisionAction(str, Enum):
    SEND = "SEND"
    SKIP = "SKIP"


class DecisionRule(str, Enum):
    # Listed in evaluation priority order
    STATE_BLOCK = "STATE_BLOCK"
    RESPONSE_SUPPRESSION = "RESPONSE_SUPPRESSION"
    TIME_GATE = "TIME_GATE"
    ELIGIBLE = "ELIGIBLE"


@dataclass(frozen=True)
class Evidence:
    """
    What the engine saw when it decided.
    Timestamps are ISO-8601 UTC strings so the record can be stored as-is.
    """
    now: str
    delay_minutes: float
    inbound_after_outbound: bool
    last_outbound_at: Optional[str] = None
    last_inbound_at: Optional[str] = None
    time_since_last_outbound_seconds: Optional[int] = None
    next_eligible_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "now": self.now,
            "delayMinutes": self.delay_minutes,
            "inboundAfterOutbound": self.inbound_after_outbound,
        }
        optional = {
            "lastOutboundAt": self.last_outbound_at,
            "lastInboundAt": self.last_inbound_at,
            "timeSinceLastOutboundSeconds": self.time_since_last_outbound_seconds,
            "nextEligibleAt": self.next_eligible_at,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass(frozen=True)
class Decision:
    action: DecisionAction
    rule: DecisionRule
    explanation: str
    current_state: LeadEngagementState
    evidence: Evidence

    @property
    def should_send(self) -> bool:
        return self.action is DecisionAction.SEND

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "rule": self.rule.value,
            "explanation": self.explanation,
            "currentState": self.current_state.value,
            "evidence": self.evidence.to_dict(),
        }
