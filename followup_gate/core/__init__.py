from followup_gate.core.decision import Decision, DecisionAction, DecisionRule, Evidence
from followup_gate.core.engagement_fsm import InvalidTransition, can_transition, transition_state
from followup_gate.core.engagement_states import (
    EngagementEvent,
    LeadEngagementState,
    STATE_DESCRIPTIONS,
    TERMINAL_STATES,
    TRANSITIONS,
)
from followup_gate.core.engine import ENGINE_VERSION, EngineInput, evaluate
