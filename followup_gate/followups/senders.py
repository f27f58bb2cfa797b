"""
Message Senders
===============
The orchestrator only calls send() after the engine says SEND.
Real email/SMS delivery plugs in here.
"""

import logging
from typing import Protocol

from followup_gate.db.models import Lead as LeadModel

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """The message could not be delivered. Nothing should be recorded as sent."""


class MessageSender(Protocol):
    async def send(self, lead: LeadModel, subject: str, body: str, channel: str) -> None:
        ...


class LoggingSender:
    """Default sender: writes the message to the log instead of delivering it."""

    async def send(self, lead: LeadModel, subject: str, body: str, channel: str) -> None:
        logger.info(
            "Sending %s to lead %s <%s>: %s",
            channel, str(lead.id)[:8], lead.email, subject,
        )
