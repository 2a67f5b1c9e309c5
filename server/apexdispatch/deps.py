import logging

from fastapi import Request

from apexdispatch.config import Settings
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.services.exporter import WorkbookLedger
from apexdispatch.services.gateway import RoutingGateway
from apexdispatch.services.ledger import TabularLedger
from apexdispatch.services.sheets import GoogleSheetsLedger
from apexdispatch.services.telegram import TelegramGateway
from apexdispatch.services.whatsapp import WhatsAppNotifier

logger = logging.getLogger(__name__)


def build_ledger(settings: Settings) -> TabularLedger:
    if settings.GOOGLE_SHEET_ID:
        logger.info("Ledger: Google Sheet %s", settings.GOOGLE_SHEET_ID)
        return GoogleSheetsLedger(
            settings.GOOGLE_SHEET_ID,
            settings.GOOGLE_SHEETS_CREDENTIALS,
            sheet_name=settings.LEDGER_SHEET_NAME,
        )
    logger.info("Ledger: local workbook %s", settings.LEDGER_XLSX_PATH)
    return WorkbookLedger(settings.LEDGER_XLSX_PATH, sheet_name=settings.LEDGER_SHEET_NAME)


def build_coordinator(settings: Settings) -> OrderCoordinator:
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("TELEGRAM_BOT_TOKEN is not set; offers will not be broadcast.")
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN):
        logger.warning("Twilio is not configured; WhatsApp notifications are disabled.")
    gateway = RoutingGateway(
        TelegramGateway(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_API_BASE),
        WhatsAppNotifier(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_WHATSAPP_FROM,
        ),
    )
    return OrderCoordinator(settings, gateway, build_ledger(settings))


def get_coordinator(request: Request) -> OrderCoordinator:
    return request.app.state.coordinator
