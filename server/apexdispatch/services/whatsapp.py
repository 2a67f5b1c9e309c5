"""WhatsApp delivery through the Twilio REST API."""
from __future__ import annotations

import asyncio
import html
import logging
import re
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from apexdispatch.exceptions import TransportError

logger = logging.getLogger(__name__)

_BOLD_RE = re.compile(r"</?b>")
_ITALIC_RE = re.compile(r"</?i>")
_TAG_RE = re.compile(r"<[^>]+>")


def html_to_whatsapp(text: str) -> str:
    """Convert the Telegram-HTML subset we emit into WhatsApp markup."""
    text = _BOLD_RE.sub("*", text)
    text = _ITALIC_RE.sub("_", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text)


class WhatsAppNotifier:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[Client] = None,
    ) -> None:
        self._from = from_number
        self._client = client
        if self._client is None and account_sid and auth_token:
            self._client = Client(account_sid, auth_token)

    async def notify(self, address: str, text: str) -> None:
        if not self._client or not self._from:
            raise TransportError("Twilio REST client not configured.")
        to_number = address if address.startswith("whatsapp:") else f"whatsapp:{address}"
        try:
            msg = await asyncio.to_thread(
                self._client.messages.create,
                from_=self._from,
                to=to_number,
                body=html_to_whatsapp(text),
            )
        except (TwilioRestException, OSError) as exc:
            raise TransportError(f"WhatsApp send to {to_number} failed: {exc}") from exc
        logger.info("Notified %s, SID=%s", to_number, msg.sid)
