"""Messaging gateway contract and the address-scheme router over transports."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from apexdispatch.models import MessageRef

WHATSAPP_SCHEME = "whatsapp:"


@dataclass(frozen=True)
class Action:
    """Inline button attached to a broadcast: label shown, token sent back on tap."""

    label: str
    token: str


class MessagingGateway(Protocol):
    """Best-effort delivery. Every method raises ``TransportError`` on failure."""

    async def broadcast(self, channel: str, text: str, actions: Sequence[Action]) -> MessageRef: ...

    async def retract(self, ref: MessageRef) -> None: ...

    async def notify(self, address: str, text: str) -> None: ...

    async def ack_action(self, token: str, text: str) -> None: ...

    async def file_url(self, file_id: str) -> str: ...


class RoutingGateway:
    """Sends ``notify`` to WhatsApp for ``whatsapp:`` addresses, everything else to Telegram."""

    def __init__(self, telegram: MessagingGateway, whatsapp) -> None:
        self.telegram = telegram
        self.whatsapp = whatsapp

    async def broadcast(self, channel: str, text: str, actions: Sequence[Action]) -> MessageRef:
        return await self.telegram.broadcast(channel, text, actions)

    async def retract(self, ref: MessageRef) -> None:
        await self.telegram.retract(ref)

    async def notify(self, address: str, text: str) -> None:
        if address.startswith(WHATSAPP_SCHEME):
            await self.whatsapp.notify(address, text)
        else:
            await self.telegram.notify(address, text)

    async def ack_action(self, token: str, text: str) -> None:
        await self.telegram.ack_action(token, text)

    async def file_url(self, file_id: str) -> str:
        return await self.telegram.file_url(file_id)
