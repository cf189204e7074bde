"""
Outreach: campaign enrollment and provider event handling.

Event handling maps provider events onto lead / channel / enrollment state:
- every event is stored once in comm_events (keyed by external id)
- reply / bounce / unsubscribe close the lead (status = closed, CLOSED_*)
- the lead's email channel status follows the event
- the enrollment's last event and status are updated
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from domain.channel import ChannelType
from domain.lead import LeadStatus
from domain.outreach import (
    Enrollment,
    EnrollmentStatus,
    EventType,
    OutreachEvent,
    channel_status_for,
    closing_routing_status,
    enrollment_status_after,
)
from domain.time import utc_now
from providers.base import OutreachProvider
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository
from repositories.outreach_repository import OutreachRepository

logger = logging.getLogger(__name__)


class EventHandling(str, Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    LEAD_NOT_FOUND = "lead_not_found"


@dataclass(frozen=True, slots=True)
class EventReceipt:
    handling: EventHandling
    lead_id: Optional[str] = None
    event_type: Optional[EventType] = None
    closed: bool = False


class OutreachService:
    def __init__(
        self,
        *,
        leads: LeadRepository,
        channels: ChannelRepository,
        outreach: OutreachRepository,
        provider: OutreachProvider,
    ) -> None:
        self._leads = leads
        self._channels = channels
        self._outreach = outreach
        self._provider = provider

    async def enroll(
        self, lead_id: str, campaign_id: str, variables: Optional[Mapping[str, Any]] = None
    ) -> Enrollment:
        """
        Enroll a lead in a campaign.

        Raises:
        - LookupError if the lead does not exist
        - ValueError if the lead has no email
        - ProviderError if the outreach provider rejects the enrollment
        """

        lead = await self._leads.get_lead(lead_id)
        if lead is None:
            raise LookupError(f"Lead not found: {lead_id}")
        email = lead.email or lead.clean.email_primary
        if not email:
            raise ValueError(f"Lead {lead_id} has no email")

        variables = dict(variables or {})
        provider_lead_id = await self._provider.enroll(
            campaign_id, email=email, business_name=lead.business_name, variables=variables
        )
        enrollment = await self._outreach.create_enrollment(
            lead_id=lead_id,
            campaign_id=campaign_id,
            provider_lead_id=provider_lead_id,
            simulated=self._provider.simulated,
            variables=variables,
        )
        logger.info("Enrolled lead %s in campaign %s (%s)", lead_id, campaign_id, provider_lead_id)

        if self._provider.simulated:
            # the simulation has no provider to report the first send
            await self.apply_event(
                OutreachEvent(
                    event_type=EventType.SENT,
                    lead_email=email,
                    external_id=f"SIM_sent_{enrollment.enrollment_id}",
                    occurred_at=utc_now(),
                    campaign_id=campaign_id,
                    raw={"simulated": True, "enrollment_id": enrollment.enrollment_id},
                )
            )
        return enrollment

    async def _require_enrollment(self, enrollment_id: str) -> Enrollment:
        enrollment = await self._outreach.get_enrollment(enrollment_id)
        if enrollment is None:
            raise LookupError(f"Enrollment not found: {enrollment_id}")
        return enrollment

    async def pause(self, enrollment_id: str) -> Enrollment:
        enrollment = await self._require_enrollment(enrollment_id)
        await self._provider.pause(enrollment)
        await self._outreach.update_enrollment(enrollment_id, status=EnrollmentStatus.PAUSED)
        return await self._require_enrollment(enrollment_id)

    async def resume(self, enrollment_id: str) -> Enrollment:
        enrollment = await self._require_enrollment(enrollment_id)
        await self._provider.resume(enrollment)
        await self._outreach.update_enrollment(enrollment_id, status=EnrollmentStatus.ACTIVE)
        return await self._require_enrollment(enrollment_id)

    async def handle_webhook(self, payload: Mapping[str, Any]) -> EventReceipt:
        """
        Raises:
        - ValueError for an unsupported event type or a payload without email
        """

        return await self.apply_event(OutreachEvent.from_webhook(payload))

    async def apply_event(self, event: OutreachEvent) -> EventReceipt:
        lead = await self._leads.find_by_email(event.lead_email)
        if lead is None:
            logger.warning("Outreach event %s for unknown email %s", event.event_type.value, event.lead_email)
            return EventReceipt(handling=EventHandling.LEAD_NOT_FOUND, event_type=event.event_type)

        enrollment = await self._outreach.find_enrollment(lead.lead_id, event.campaign_id)
        is_new = await self._outreach.record_event(
            lead.lead_id, event, enrollment_id=enrollment.enrollment_id if enrollment else None
        )
        if not is_new:
            logger.info("Duplicate outreach event %s ignored", event.external_id)
            return EventReceipt(
                handling=EventHandling.DUPLICATE, lead_id=lead.lead_id, event_type=event.event_type
            )

        closing = closing_routing_status(event.event_type)
        if closing is not None:
            await self._leads.update_lead(
                lead.lead_id, {"status": LeadStatus.CLOSED.value, "routing_status": closing.value}
            )
            logger.info("Lead %s closed by %s event", lead.lead_id, event.event_type.value)

        channel_status = channel_status_for(event.event_type)
        if channel_status is not None:
            await self._channels.set_channel_status(
                lead.lead_id, ChannelType.EMAIL, event.lead_email, channel_status
            )

        if enrollment is not None:
            await self._outreach.update_enrollment(
                enrollment.enrollment_id,
                status=enrollment_status_after(event.event_type, enrollment.status),
                last_event_type=event.event_type,
            )

        return EventReceipt(
            handling=EventHandling.RECORDED,
            lead_id=lead.lead_id,
            event_type=event.event_type,
            closed=closing is not None,
        )


__all__ = ["EventHandling", "EventReceipt", "OutreachService"]
