"""Application settings and configuration helpers."""
from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_REGION_CHANNELS = (
    "Москва=@apexclean_moscow;"
    "Санкт-Петербург=@apexclean_spb;"
    "Казань=@apexclean_kazan"
)


class Settings:
    """Runtime configuration loaded from environment variables.

    Transport and ledger credentials are optional: a missing Telegram token or
    Twilio account only disables that delivery path, and a missing Google
    sheet id switches the ledger to a local workbook.
    """

    APP_NAME: str = "Apex Dispatch API"
    API_PREFIX: str

    CORS_ORIGINS: List[str]
    LOG_LEVEL: str

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_API_BASE: str
    TELEGRAM_WEBHOOK_SECRET: str

    # Routing
    REGION_CHANNELS: Dict[str, str]
    DEFAULT_REGION: str
    MANAGER_CHANNEL: str

    # Twilio / WhatsApp
    TWILIO_ACCOUNT_SID: str
    TWILIO_AUTH_TOKEN: str
    TWILIO_WHATSAPP_FROM: str

    # Ledger
    GOOGLE_SHEET_ID: str
    GOOGLE_SHEETS_CREDENTIALS: Optional[Dict[str, Any]]
    LEDGER_SHEET_NAME: str
    LEDGER_XLSX_PATH: str

    # Reminders
    ORDER_TIMEZONE: str
    REMINDER_POLL_SECONDS: float
    REMINDERS_CANCEL_ON_COMPLETE: bool

    def __init__(self) -> None:
        load_dotenv(find_dotenv(), override=False)
        self.API_PREFIX = os.getenv("API_PREFIX", "/api")
        self.CORS_ORIGINS = self._get_list("CORS_ORIGINS", default="*")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        self.TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")
        self.TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")

        self.REGION_CHANNELS = self._get_pairs("REGION_CHANNELS", default=DEFAULT_REGION_CHANNELS)
        self.DEFAULT_REGION = os.getenv("DEFAULT_REGION", "Москва")
        self.MANAGER_CHANNEL = os.getenv("MANAGER_CHANNEL", "@apexclean_managers")

        self.TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
        self.TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
        self.TWILIO_WHATSAPP_FROM = os.getenv("TWILIO_WHATSAPP_FROM", "")

        self.GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID", "")
        raw_credentials = os.getenv("GOOGLE_SHEETS_CREDENTIALS", "")
        self.GOOGLE_SHEETS_CREDENTIALS = json.loads(raw_credentials) if raw_credentials else None
        self.LEDGER_SHEET_NAME = os.getenv("LEDGER_SHEET_NAME", "Заявки")
        self.LEDGER_XLSX_PATH = os.getenv("LEDGER_XLSX_PATH", "./_local_ledger/orders.xlsx")

        self.ORDER_TIMEZONE = os.getenv("ORDER_TIMEZONE", "Europe/Moscow")
        self.REMINDER_POLL_SECONDS = float(os.getenv("REMINDER_POLL_SECONDS", "30"))
        self.REMINDERS_CANCEL_ON_COMPLETE = os.getenv("REMINDERS_CANCEL_ON_COMPLETE", "false").lower() == "true"

    @staticmethod
    def _get_list(name: str, default: str = "") -> List[str]:
        raw = os.getenv(name, default)
        return [item.strip() for item in raw.split(",") if item.strip()] or ["*"]

    @staticmethod
    def _get_pairs(name: str, default: str = "") -> Dict[str, str]:
        # "Region=@channel;Region2=@channel2", insertion order is match priority
        raw = os.getenv(name, default)
        pairs: Dict[str, str] = {}
        for item in raw.split(";"):
            key, sep, value = item.partition("=")
            if sep and key.strip() and value.strip():
                pairs[key.strip()] = value.strip()
        return pairs


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
