import re
from typing import Optional

# --- Photo Stage Catalog ---
# Canonical codes drive logic; labels + markers drive UX and caption matching.
# Dict order is the classification priority: first stage whose marker occurs wins.
STAGE_REGISTRY = {
    "on_site": {
        "label": "Прибытие на объект",
        "markers": ("на месте", "on site", "on_site"),
    },
    "chemistry": {
        "label": "Используемая химия",
        "markers": ("химия", "chemistry"),
    },
    "before": {
        "label": "До начала работ",
        "markers": ("до", "before"),
    },
    "after": {
        "label": "После завершения работ",
        "markers": ("после", "after"),
    },
}


def stage_label(stage: str) -> str:
    return STAGE_REGISTRY.get(stage, {}).get("label", stage.replace("_", " ").title())


# --- Regex ---
ORDER_ID_RE = re.compile(r"\bCLN-\d+(?:-\d+)?\b")
CLAIM_COMMAND_RE = re.compile(r"^\s*/?(?:take|взять)[\s_]+(CLN-\d+(?:-\d+)?)\s*$", re.IGNORECASE)
START_COMMAND_RE = re.compile(r"^\s*/?(?:start|старт)\b", re.IGNORECASE)


# --- Helper Functions ---
def normalize_phone(p: str) -> str:
    """Normalize incoming Twilio phone params to canonical 'whatsapp:+<E.164>'."""
    if not p:
        return ""
    digits = re.sub(r'\D', '', p)
    return f"whatsapp:+{digits}" if digits else ""


def find_order_id(text: Optional[str]) -> Optional[str]:
    """First order id mentioned in free text, e.g. a photo caption."""
    if not text:
        return None
    m = ORDER_ID_RE.search(text)
    return m.group(0) if m else None


def channel_link(channel: str, message_id: int) -> Optional[str]:
    """Public t.me link for a message in a channel addressed by @username."""
    if not channel.startswith("@"):
        return None
    return f"https://t.me/{channel[1:]}/{message_id}"
