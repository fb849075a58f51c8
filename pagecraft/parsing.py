from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from .errors import ResponseParseError

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json([\s\S]*?)```")


# ============================================================
# Provider text -> JSON (trust boundary)
# ============================================================

def parse_provider_json(text: Optional[str]) -> Any:
    """
    Extract a JSON value from free-form provider text.

    Stages, first success wins:
    1. the whole string
    2. the interior of a ```json fenced block
    3. first '{' .. last '}'
    4. first '[' .. last ']'

    Returns None when every stage fails. NEVER raises.
    """
    if not text or not isinstance(text, str):
        return None

    for stage in _STAGES:
        candidate = stage(text)
        if candidate is None:
            continue
        try:
            return json.loads(candidate)
        except (ValueError, RecursionError):
            continue

    logger.debug("JSON parse failed completely for: %s", text)
    return None


def parse_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    data = parse_provider_json(text)
    return data if isinstance(data, dict) else None


def parse_list(text: Optional[str]) -> Optional[List[Any]]:
    """Parse a JSON array, accepting a lone object wrapped around a single list value."""
    data = parse_provider_json(text)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) == 1:
            return lists[0]
    return None


# ------------------------------------------------------------
# Stages
# ------------------------------------------------------------

def _whole(text: str) -> Optional[str]:
    return text


def _fenced(text: str) -> Optional[str]:
    match = _FENCED_JSON.search(text)
    return match.group(1) if match else None


def _between(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or end < start:
        return None
    return text[start : end + 1]


def _braces(text: str) -> Optional[str]:
    return _between(text, "{", "}")


def _brackets(text: str) -> Optional[str]:
    return _between(text, "[", "]")


_STAGES: List[Callable[[str], Optional[str]]] = [_whole, _fenced, _braces, _brackets]


# ============================================================
# Shape-specific readers (raise ResponseParseError)
# ============================================================

def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def read_page_draft(item: Any) -> Optional[Dict[str, Any]]:
    """Normalise one page object; None when it lacks a name or an image prompt."""
    if not isinstance(item, dict):
        return None
    name = _text(item.get("name"))
    prompt = _text(item.get("imagePrompt") or item.get("image_prompt") or item.get("prompt"))
    if not name or not prompt:
        return None
    return {
        "name": name,
        "description": _text(item.get("description")),
        "image_prompt": prompt,
        "is_cover": item.get("isCover") is True or item.get("is_cover") is True,
    }


def read_plan(text: Optional[str]) -> Dict[str, Any]:
    data = parse_object(text)
    if data is None:
        raise ResponseParseError("Provider response did not contain a plan object.")

    pages = [p for p in (read_page_draft(item) for item in data.get("pages") or []) if p]
    if not pages:
        raise ResponseParseError("Provider plan contained no usable pages.")

    return {
        "title": _text(data.get("title") or data.get("projectTitle")) or "Untitled Project",
        "concept": _text(data.get("concept")),
        "palette": _strings(data.get("palette") or data.get("colorPaletteSuggestions")),
        "monetization_strategies": _strings(data.get("monetizationStrategies")),
        "pages": pages,
    }


def read_page_list(text: Optional[str]) -> List[Dict[str, Any]]:
    items = parse_list(text)
    if items is None:
        raise ResponseParseError("Provider response did not contain a page list.")
    pages = [p for p in (read_page_draft(item) for item in items) if p]
    if not pages:
        raise ResponseParseError("Provider page list contained no usable pages.")
    return pages


def read_single_page(text: Optional[str]) -> Dict[str, Any]:
    page = read_page_draft(parse_object(text))
    if page is None:
        raise ResponseParseError("Provider response did not contain a page object.")
    return page


def read_ideas(text: Optional[str]) -> List[Dict[str, str]]:
    items = parse_list(text)
    if items is None:
        raise ResponseParseError("Provider response did not contain an idea list.")
    ideas = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title, prompt = _text(item.get("title")), _text(item.get("prompt"))
        if title and prompt:
            ideas.append({"title": title, "prompt": prompt})
    if not ideas:
        raise ResponseParseError("Provider idea list was empty.")
    return ideas


__all__ = [
    "parse_provider_json",
    "parse_object",
    "parse_list",
    "read_page_draft",
    "read_plan",
    "read_page_list",
    "read_single_page",
    "read_ideas",
]
