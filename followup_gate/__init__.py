"""
Follow-Up Gate
Deterministic, auditable follow-up gating for outbound lead engagement.
"""
