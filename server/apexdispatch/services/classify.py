from typing import Optional

from apexdispatch.utils import STAGE_REGISTRY


def classify_stage(caption: Optional[str]) -> Optional[str]:
    """
    Heuristic:
      - Walk stages in registry order (on_site, chemistry, before, after)
      - First stage with a marker contained in the caption wins
      - No marker → None (caller discards the photo)
    """
    if not caption:
        return None
    text = caption.casefold()
    for stage, meta in STAGE_REGISTRY.items():
        if any(marker in text for marker in meta["markers"]):
            return stage
    return None
