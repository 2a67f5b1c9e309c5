import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from twilio.twiml.messaging_response import MessagingResponse

from apexdispatch.deps import get_coordinator
from apexdispatch.exceptions import DispatchError
from apexdispatch.models import ClaimOutcome, WorkerRef
from apexdispatch.services import messages
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.services.photos import COMPLETED_OUTCOME, IGNORED, NO_ORDER
from apexdispatch.services.whatsapp import html_to_whatsapp
from apexdispatch.utils import CLAIM_COMMAND_RE, START_COMMAND_RE, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- helpers ----------
def build_twiml_reply(body_text: Optional[str]) -> Response:
    resp = MessagingResponse()
    if body_text:  # empty <Response/> sends nothing back
        resp.message(html_to_whatsapp(body_text))
    xml = str(resp)
    logger.debug("TwiML out: %s", xml)
    return Response(content=xml, media_type="application/xml")


async def _claim(coord: OrderCoordinator, order_id: str, worker: WorkerRef) -> str:
    result = await coord.claim_order(order_id, worker)
    if result.outcome is ClaimOutcome.CONFLICT:
        return messages.ALREADY_TAKEN
    if result.outcome is ClaimOutcome.NOT_FOUND:
        return messages.ORDER_NOT_FOUND
    # the brief itself went out over the REST client
    return messages.TAKEN_ACK if result.notified else messages.TAKEN_ACK_UNREGISTERED


async def _photo(coord: OrderCoordinator, worker_id: str, caption: str, media_url: str) -> Optional[str]:
    async def resolve_ref() -> str:
        return media_url

    receipt = await coord.photos.submit(worker_id, caption, resolve_ref)
    if receipt.outcome == IGNORED:
        return None
    if receipt.outcome == NO_ORDER:
        return messages.NO_ACTIVE_ORDER
    if receipt.outcome == COMPLETED_OUTCOME:
        return f"{messages.PHOTO_SAVED}\n{messages.ORDER_COMPLETED}"
    return messages.PHOTO_SAVED


# ---------- webhook ----------
@router.post("/whatsapp/webhook")
async def whatsapp_webhook(request: Request, coord: OrderCoordinator = Depends(get_coordinator)):
    try:
        form = await request.form()
    except ValueError:
        return PlainTextResponse("Bad Request", status_code=400)

    from_param = form.get("From") or form.get("WaId") or ""
    from_num = normalize_phone(from_param)
    if not from_num:
        return PlainTextResponse("Bad Request", status_code=400)
    body = (form.get("Body") or "").strip()
    try:
        media_count = int(form.get("NumMedia") or 0)
    except (TypeError, ValueError):
        media_count = 0
    logger.info("Incoming from %s (normalized %s), NumMedia=%d", from_param, from_num, media_count)

    worker = WorkerRef(id=from_num, name=form.get("ProfileName") or "")
    try:
        if media_count > 0:
            media_url = form.get("MediaUrl0")
            content_type = form.get("MediaContentType0", "")
            if not media_url or not content_type.startswith("image/"):
                return build_twiml_reply(messages.PHOTO_NOT_SAVED)
            return build_twiml_reply(await _photo(coord, from_num, body, media_url))

        if START_COMMAND_RE.match(body):
            coord.register_worker(from_num, from_num, worker.name)
            return build_twiml_reply(messages.format_greeting(worker.name))

        m = CLAIM_COMMAND_RE.match(body)
        if m:
            return build_twiml_reply(await _claim(coord, m.group(1).upper(), worker))
    except DispatchError as e:
        logger.error("WhatsApp message from %s failed: %s", from_num, e)
        return build_twiml_reply(messages.PHOTO_NOT_SAVED if media_count else messages.WHATSAPP_HELP)
    except Exception as e:
        logger.exception("Unhandled error for WhatsApp message from %s: %s", from_num, e)
        return build_twiml_reply(messages.PHOTO_NOT_SAVED if media_count else messages.WHATSAPP_HELP)

    return build_twiml_reply(messages.WHATSAPP_HELP)
