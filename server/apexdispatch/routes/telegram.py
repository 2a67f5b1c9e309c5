"""Telegram bot webhook: registration, inline take/reject buttons, photo reports.

Telegram retries any non-2xx answer, so every update is acknowledged with
``{"ok": true}`` and failures are turned into chat replies or log lines.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from apexdispatch.deps import get_coordinator
from apexdispatch.exceptions import DispatchError, TransportError
from apexdispatch.models import ClaimOutcome, WorkerRef
from apexdispatch.utils import START_COMMAND_RE
from apexdispatch.services import messages
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.services.photos import COMPLETED_OUTCOME, NO_ORDER, RECORDED

logger = logging.getLogger(__name__)

router = APIRouter()

OK = {"ok": True}


def _display_name(user: Dict[str, Any]) -> str:
    full = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return full or user.get("username") or str(user.get("id", ""))


async def _reply(coord: OrderCoordinator, chat_id: Any, text: str) -> None:
    try:
        await coord.gateway.notify(str(chat_id), text)
    except TransportError as e:
        logger.error("Reply to chat %s failed: %s", chat_id, e)


async def _ack(coord: OrderCoordinator, query_id: str, text: str) -> None:
    try:
        await coord.gateway.ack_action(query_id, text)
    except TransportError as e:
        logger.error("Callback answer %s failed: %s", query_id, e)


# ---------- handlers ----------
async def _handle_start(coord: OrderCoordinator, message: Dict[str, Any]) -> None:
    user = message.get("from") or {}
    chat_id = (message.get("chat") or {}).get("id")
    if not user.get("id") or chat_id is None:
        return
    coord.register_worker(str(user["id"]), str(chat_id), _display_name(user))
    await _reply(coord, chat_id, messages.format_greeting(user.get("first_name") or ""))


async def _handle_callback(coord: OrderCoordinator, query: Dict[str, Any]) -> None:
    data = query.get("data") or ""
    query_id = str(query.get("id", ""))
    user = query.get("from") or {}
    worker = WorkerRef(id=str(user.get("id", "")), name=_display_name(user))

    if data.startswith(messages.TAKE_PREFIX):
        order_id = data[len(messages.TAKE_PREFIX):]
        result = await coord.claim_order(order_id, worker)
        if result.outcome is ClaimOutcome.SUCCESS:
            text = messages.TAKEN_ACK if result.notified else messages.TAKEN_ACK_UNREGISTERED
        elif result.outcome is ClaimOutcome.CONFLICT:
            text = messages.ALREADY_TAKEN
        else:
            text = messages.ORDER_NOT_FOUND
        await _ack(coord, query_id, text)
    elif data.startswith(messages.REJECT_PREFIX):
        await coord.reject_order(data[len(messages.REJECT_PREFIX):], worker)
        await _ack(coord, query_id, messages.REJECTED_ACK)
    else:
        logger.info("Ignoring callback data %r", data)
        await _ack(coord, query_id, "")


async def _handle_photo(coord: OrderCoordinator, message: Dict[str, Any]) -> None:
    user = message.get("from") or {}
    chat_id = (message.get("chat") or {}).get("id")
    # Telegram lists sizes smallest first
    sizes = message.get("photo")
    largest = sizes[-1] if isinstance(sizes, list) and sizes else None
    file_id = largest.get("file_id") if isinstance(largest, dict) else None
    if not file_id:
        logger.warning("Photo from %s carries no file_id; ignored", user.get("id"))
        return

    async def resolve_ref() -> str:
        return await coord.gateway.file_url(file_id)

    try:
        receipt = await coord.photos.submit(str(user.get("id", "")), message.get("caption"), resolve_ref)
    except DispatchError as e:
        logger.error("Photo from %s not recorded: %s", user.get("id"), e)
        await _reply(coord, chat_id, messages.PHOTO_NOT_SAVED)
        return

    if receipt.outcome == NO_ORDER:
        await _reply(coord, chat_id, messages.NO_ACTIVE_ORDER)
    elif receipt.outcome in (RECORDED, COMPLETED_OUTCOME):
        await _reply(coord, chat_id, messages.PHOTO_SAVED)
        if receipt.outcome == COMPLETED_OUTCOME:
            await _reply(coord, chat_id, messages.ORDER_COMPLETED)


# ---------- webhook ----------
@router.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    coord: OrderCoordinator = Depends(get_coordinator),
    secret: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    expected = coord.settings.TELEGRAM_WEBHOOK_SECRET
    if expected and secret != expected:
        raise HTTPException(403, "Bad webhook secret")

    try:
        update = await request.json()
    except ValueError:
        logger.warning("Telegram update is not JSON; ignored")
        return OK
    if not isinstance(update, dict):
        logger.warning("Telegram update is not an object; ignored")
        return OK

    try:
        query = update.get("callback_query")
        if isinstance(query, dict):
            await _handle_callback(coord, query)
            return OK
        message = update.get("message")
        if not isinstance(message, dict):
            return OK
        if message.get("photo"):
            await _handle_photo(coord, message)
        elif START_COMMAND_RE.match(str(message.get("text") or "")):
            await _handle_start(coord, message)
    except DispatchError as e:
        logger.error("Telegram update %s failed: %s", update.get("update_id"), e)
    except Exception as e:
        logger.exception("Unhandled error in Telegram update %s: %s", update.get("update_id"), e)
    return OK
