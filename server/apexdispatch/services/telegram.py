"""Telegram Bot API transport over httpx."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from apexdispatch.exceptions import TransportError
from apexdispatch.models import MessageRef
from apexdispatch.utils import channel_link
from apexdispatch.services.gateway import Action

logger = logging.getLogger(__name__)


class TelegramGateway:
    """Broadcast offers to channels, DM workers, and answer inline-button taps."""

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        if not self._token:
            raise TransportError("Telegram bot token not configured.")
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(url, json=payload)
            data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransportError(f"Telegram {method} failed: {exc!r}") from exc
        if not data.get("ok"):
            raise TransportError(f"Telegram {method} rejected: {data.get('description') or r.status_code}")
        return data.get("result")

    async def broadcast(self, channel: str, text: str, actions: Sequence[Action]) -> MessageRef:
        result = await self._call(
            "sendMessage",
            {
                "chat_id": channel,
                "text": text,
                "parse_mode": "HTML",
                "reply_markup": {
                    "inline_keyboard": [[{"text": a.label, "callback_data": a.token} for a in actions]]
                },
            },
        )
        message_id = int(result["message_id"])
        logger.info("Broadcast %s to %s", message_id, channel)
        return MessageRef(
            chat_id=str(result["chat"]["id"]),
            message_id=message_id,
            link=channel_link(channel, message_id),
        )

    async def retract(self, ref: MessageRef) -> None:
        await self._call("deleteMessage", {"chat_id": ref.chat_id, "message_id": ref.message_id})

    async def notify(self, address: str, text: str) -> None:
        await self._call("sendMessage", {"chat_id": address, "text": text, "parse_mode": "HTML"})

    async def ack_action(self, token: str, text: str) -> None:
        await self._call("answerCallbackQuery", {"callback_query_id": token, "text": text})

    async def file_url(self, file_id: str) -> str:
        result = await self._call("getFile", {"file_id": file_id})
        return f"{self._api_base}/file/bot{self._token}/{result['file_path']}"
