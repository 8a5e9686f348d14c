"""Owner-provided reviewer context, persisted per repository.

Stored as ``<data dir>/user-context.json`` with ``{message, timestamp}`` and
appended to every system message until cleared.
"""

from __future__ import annotations

import json
import logging
import os

from revgate_core.models import utc_now

logger = logging.getLogger(__name__)

INTENT_FILE = "user-context.json"


def _intent_path(data_dir: str) -> str:
    return os.path.join(data_dir, INTENT_FILE)


def set_intent(data_dir: str, message: str) -> dict:
    os.makedirs(data_dir, exist_ok=True)
    record = {"message": message, "timestamp": utc_now()}
    with open(_intent_path(data_dir), "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2)
    return record


def get_intent(data_dir: str) -> dict | None:
    """Return the stored record, or None when absent or unreadable."""
    path = _intent_path(data_dir)
    if not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            record = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable reviewer context %s: %s", path, e)
        return None
    if not isinstance(record, dict) or not isinstance(record.get("message"), str) or not record["message"].strip():
        logger.warning("Ignoring malformed reviewer context %s", path)
        return None
    return record


def clear_intent(data_dir: str) -> bool:
    """Delete the stored record. Returns False when there was nothing to clear."""
    path = _intent_path(data_dir)
    if not os.path.exists(path):
        return False
    os.remove(path)
    return True
