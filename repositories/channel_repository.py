"""
Channel and contact repository (persistence).

Uniqueness is enforced by the database:
- lead_channels: (lead_id, type, value)
- contacts: (lead_id, email)
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from domain.channel import Channel, ChannelStatus, ChannelType, Contact

from repositories.client import execute

_CHANNELS_TABLE: str = "lead_channels"
_CONTACTS_TABLE: str = "contacts"

_CHANNEL_CONFLICT = "lead_id,type,value"
_CONTACT_CONFLICT = "lead_id,email"


def _channel_to_row(channel: Channel) -> dict[str, Any]:
    return {
        "lead_id": channel.lead_id,
        "type": channel.type.value,
        "value": channel.value,
        "is_primary": channel.is_primary,
        "status": channel.status.value,
        "meta": dict(channel.meta),
    }


def _row_to_channel(row: Mapping[str, Any]) -> Channel:
    try:
        status = ChannelStatus(row.get("status") or "new")
    except ValueError:
        status = ChannelStatus.NEW
    return Channel(
        lead_id=str(row["lead_id"]),
        type=ChannelType(row["type"]),
        value=str(row["value"]),
        is_primary=bool(row.get("is_primary")),
        status=status,
        meta=dict(row.get("meta") or {}),
    )


def _contact_to_row(contact: Contact) -> dict[str, Any]:
    return {
        "lead_id": contact.lead_id,
        "email": contact.email,
        "name": contact.name,
        "role": contact.role,
        "verified": contact.verified,
        "status": contact.status,
    }


class ChannelRepository:
    """Async persistence for `lead_channels` and `contacts`."""

    def __init__(self, client: Any) -> None:
        self._client = client

    async def list_channels(self, lead_id: str, channel_type: Optional[ChannelType] = None) -> List[Channel]:
        query = self._client.table(_CHANNELS_TABLE).select("*").eq("lead_id", str(lead_id))
        if channel_type is not None:
            query = query.eq("type", channel_type.value)
        rows = await execute(query, "list channels")
        return [_row_to_channel(row) for row in rows]

    async def list_email_values(self, lead_id: str) -> List[str]:
        channels = await self.list_channels(lead_id, ChannelType.EMAIL)
        return [c.value for c in channels]

    async def add_channels(self, channels: Iterable[Channel]) -> None:
        """
        Record discovered channels.

        A channel that already exists is left untouched (first discovery wins),
        so rediscovery never resets a channel's status.
        """

        payload = [_channel_to_row(c) for c in channels]
        if not payload:
            return
        await execute(
            self._client.table(_CHANNELS_TABLE).upsert(
                payload, on_conflict=_CHANNEL_CONFLICT, ignore_duplicates=True
            ),
            f"upsert {len(payload)} channels",
        )

    async def set_channel_status(
        self, lead_id: str, channel_type: ChannelType, value: str, status: ChannelStatus
    ) -> None:
        await execute(
            self._client.table(_CHANNELS_TABLE)
            .update({"status": status.value})
            .eq("lead_id", str(lead_id))
            .eq("type", channel_type.value)
            .eq("value", value),
            "update channel status",
        )

    async def upsert_contacts(self, contacts: Iterable[Contact]) -> None:
        payload = [_contact_to_row(c) for c in contacts]
        if not payload:
            return
        await execute(
            self._client.table(_CONTACTS_TABLE).upsert(payload, on_conflict=_CONTACT_CONFLICT),
            f"upsert {len(payload)} contacts",
        )

    async def list_contacts(self, lead_id: str) -> List[Contact]:
        rows = await execute(
            self._client.table(_CONTACTS_TABLE).select("*").eq("lead_id", str(lead_id)),
            "list contacts",
        )
        return [
            Contact(
                lead_id=str(row["lead_id"]),
                email=str(row["email"]),
                name=str(row.get("name") or ""),
                role=str(row.get("role") or ""),
                verified=bool(row.get("verified")),
                status=str(row.get("status") or "new"),
            )
            for row in rows
        ]


__all__ = ["ChannelRepository"]
