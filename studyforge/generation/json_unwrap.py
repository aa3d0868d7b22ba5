"""
Parsing and unwrapping of model JSON output.

Models wrap the item array inconsistently: a bare array, an object with a
"questions" key, an object with some other array-valued key, or one level
deeper ({"quiz": {"questions": [...]}}). Each shape is handled by a pure
strategy function; locate_items tries them in order and reports which one
matched.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import json_repair

from studyforge.exceptions import ValidationFailed

log = logging.getLogger(__name__)


def parse_llm_json(raw: str) -> Any:
    """Strip markdown fences and parse; malformed JSON goes through json_repair"""
    if raw is None or not raw.strip():
        raise ValidationFailed("Empty model response")
    text = raw.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    repaired = json_repair.loads(text)
    if repaired in ("", None) or (isinstance(repaired, (list, dict)) and not repaired):
        raise ValidationFailed(f"No JSON found in model response: {raw[:200]}")
    return repaired


# ─── Unwrap strategies ────────────────────────────────────────────────────────

@dataclass
class UnwrapMatch:
    strategy: str
    items: List[dict]


def _is_item_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, dict) for v in value)


def _is_wrapper(value: dict, keys: Sequence[str]) -> bool:
    return any(_is_item_list(value.get(key)) for key in keys)


def match_direct(data: Any, keys: Sequence[str]) -> Optional[UnwrapMatch]:
    """A bare array, or an object carrying one of the expected keys"""
    if _is_item_list(data):
        if len(data) == 1 and _is_wrapper(data[0], keys):
            return None
        return UnwrapMatch("direct", data)
    if isinstance(data, dict):
        for key in keys:
            if _is_item_list(data.get(key)):
                return UnwrapMatch("direct", data[key])
    return None


def match_property(data: Any, keys: Sequence[str]) -> Optional[UnwrapMatch]:
    """An object with an array of objects under an unexpected key"""
    if not isinstance(data, dict):
        return None
    for value in data.values():
        if _is_item_list(value):
            return UnwrapMatch("property", value)
    return None


def match_nested(data: Any, keys: Sequence[str]) -> Optional[UnwrapMatch]:
    """The array sits one object deeper, or inside a single-element wrapper array"""
    candidates = []
    if isinstance(data, dict):
        candidates = [v for v in data.values() if isinstance(v, dict)]
    elif isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
        candidates = [data[0]]
    for inner in candidates:
        found = match_direct(inner, keys) or match_property(inner, keys)
        if found:
            return UnwrapMatch("nested", found.items)
    return None


STRATEGIES: List[Callable[[Any, Sequence[str]], Optional[UnwrapMatch]]] = [
    match_direct,
    match_property,
    match_nested,
]


def locate_items(data: Any, keys: Sequence[str]) -> Optional[UnwrapMatch]:
    """First strategy that finds a non-empty array of objects, or None"""
    for strategy in STRATEGIES:
        found = strategy(data, keys)
        if found is not None:
            if found.strategy != "direct":
                log.debug("JSON unwrap: items found via %s strategy", found.strategy)
            return found
    return None
