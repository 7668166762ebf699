# filename: budgetview/services/auto_categorize.py
"""
AI-based category suggestion for the transaction form.

Design goals:
- Safe: never raises exceptions to callers
- Optional: controlled by env var AUTO_CATEGORIZE_AI=1
- Strict: the answer must be one of the user's category names

Public API:
    suggest_category(description, available_categories, amount=None)
        -> (category: str|None, confidence: float, reason: str)
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, Iterable, Optional, Tuple

from openai import OpenAI

import config

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def _env_truthy(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


def _clamp01(x: Any) -> float:
    try:
        f = float(x)
    except (TypeError, ValueError):
        return 0.0
    if f != f:  # NaN
        return 0.0
    return min(max(f, 0.0), 1.0)


def _clean_text(s: Any, max_len: int = 400) -> str:
    t = str(s or "").strip()
    if len(t) > max_len:
        t = t[:max_len].rstrip() + "…"
    return t


def _strip_json_fences(s: str) -> str:
    # Removes leading/trailing ```json fences if the model includes them.
    return _JSON_FENCE_RE.sub("", s).strip()


def _safe_json_loads(s: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(s)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _normalize_allowed(available_categories: Iterable[str]) -> Dict[str, str]:
    """Case-insensitive name -> original name."""
    names = [str(c).strip() for c in available_categories if str(c).strip()]
    return {name.lower(): name for name in sorted(set(names))}


def _build_prompt(description: str, amount: Optional[float], categories: list[str]) -> list[dict]:
    developer = (
        "You are a personal finance assistant.\n"
        "Given a transaction description and a list of available categories, "
        "suggest the most appropriate category.\n"
        "Use ONLY the provided categories, or null if none fits.\n"
        "Return ONLY valid JSON (no markdown, no extra text):\n"
        '{ "category": string|null, "confidence": number, "reason": string }\n'
        "confidence is 0..1; reason is a short keyword cue.\n"
    )
    user = {
        "available_categories": categories,
        "transaction": {"description": description, "amount": amount},
    }
    return [
        {"role": "developer", "content": developer},
        {"role": "user", "content": json.dumps(user, ensure_ascii=False)},
    ]


def _call_openai_once(description: str, amount: Optional[float], categories: list[str]) -> Optional[Dict[str, Any]]:
    """
    Returns parsed JSON dict on success, or None on any failure.
    """
    try:
        # The OpenAI SDK reads OPENAI_API_KEY from env by default.
        client = OpenAI()
        resp = client.responses.create(
            model=config.AUTO_CATEGORIZE_MODEL,
            input=_build_prompt(description, amount, categories),
        )
        text = (getattr(resp, "output_text", "") or "").strip()
    except Exception as e:
        logger.warning("[suggest] OpenAI call failed: %r", e)
        return None

    if not text:
        return None
    return _safe_json_loads(_strip_json_fences(text))


def suggest_category(
    description: str,
    available_categories: Iterable[str] = (),
    amount: Optional[float] = None,
) -> Tuple[Optional[str], float, str]:
    """
    Suggest one of `available_categories` for a transaction description.

    Silent failure:
        On any error or misconfiguration, returns (None, 0.0, <reason>).
    """
    allowed = _normalize_allowed(available_categories)

    # Feature flag
    if not _env_truthy(config.AUTO_CATEGORIZE_AI):
        return None, 0.0, "ai_disabled"

    # If no categories available, never guess.
    if not allowed:
        return None, 0.0, "no_available_categories"

    desc = _clean_text(description, max_len=300)
    if not desc:
        return None, 0.0, "empty_description"

    if not (os.getenv("OPENAI_API_KEY") or "").strip():
        return None, 0.0, "missing_openai_api_key"

    amt = None if amount is None else float(amount)
    data = _call_openai_once(desc, amt, list(allowed.values()))
    if data is None:
        return None, 0.0, "ai_error"

    raw_cat = data.get("category")
    category = allowed.get(str(raw_cat).strip().lower()) if raw_cat is not None else None

    confidence = _clamp01(data.get("confidence", 0.0))
    reason = _clean_text(data.get("reason") or "", max_len=120)

    if category is None:
        return None, confidence, reason or "no_valid_category"
    return category, confidence, reason or "ai_suggested"
