#!/usr/bin/env python3
"""
Response Parsing - Helpers for pulling structured data out of model output.

Models wrap JSON in markdown fences, surround it with prose, or switch to
camelCase keys. Everything here is tolerant of that and raises ValueError
only when no JSON object can be found at all.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")
_NUMBERED_STEP_RE = re.compile(r"^\s*(?:#+\s*)?(?:step\s*)?(\d+)[.):]\s+(.+)$", re.IGNORECASE)


def find_json_objects(text: str) -> List[Dict[str, Any]]:
    """Return every top-level JSON object embedded in ``text``, in order."""
    decoder = json.JSONDecoder()
    objects = []
    index = 0
    while True:
        start = text.find("{", index)
        if start < 0:
            break
        try:
            obj, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            index = start + 1
            continue
        if isinstance(obj, dict):
            objects.append(obj)
        index = end
    return objects


def extract_json_object(text: str, prefer_last: bool = False) -> Dict[str, Any]:
    """
    Extract a JSON object from model output.

    Args:
        text: Raw completion text
        prefer_last: Take the last object instead of the first (for responses
            that put free text first and a JSON block at the end)

    Raises:
        ValueError: if no JSON object is present
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    candidates = []
    for block in _FENCE_RE.findall(text):
        candidates.extend(find_json_objects(block))
    if not candidates:
        candidates = find_json_objects(text)
    if not candidates:
        raise ValueError("No JSON object found in response")
    return candidates[-1] if prefer_last else candidates[0]


def snake_case(key: str) -> str:
    return _CAMEL_RE.sub(r"_\1", key).lower()


def snake_keys(value: Any) -> Any:
    """Recursively convert dict keys from camelCase to snake_case."""
    if isinstance(value, dict):
        return {snake_case(str(k)): snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snake_keys(v) for v in value]
    return value


def as_number(value: Any) -> Optional[float]:
    """Finite float or None. Accepts numeric strings like '85' or '85%'."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip().rstrip('%'))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def as_score(value: Any) -> Optional[float]:
    """A number in [0, 100], or None when missing or out of range."""
    number = as_number(value)
    if number is None or number < 0 or number > 100:
        return None
    return number


def as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        items = []
        for item in value:
            if isinstance(item, str):
                if item.strip():
                    items.append(item.strip())
            elif isinstance(item, dict):
                text = next((str(v) for v in item.values() if isinstance(v, str) and v.strip()), None)
                if text:
                    items.append(text)
            elif item is not None:
                items.append(str(item))
        return items
    return []


def as_dict_list(value: Any, text_key: str) -> List[Dict[str, Any]]:
    """Normalize a list of dicts or strings; bare strings become ``{text_key: s}``."""
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, dict):
            items.append(item)
        elif isinstance(item, str) and item.strip():
            items.append({text_key: item.strip()})
    return items


def extract_numbered_steps(text: str) -> List[Dict[str, str]]:
    """
    Split free text on numbered headings ("1. ...", "Step 2: ...").

    Each step collects the heading line plus following lines up to the next
    heading. Stops at the first JSON object.
    """
    prose = (text or "").split("{", 1)[0]
    steps = []
    current = None
    for line in prose.splitlines():
        match = _NUMBERED_STEP_RE.match(line)
        if match:
            if current:
                steps.append(current)
            current = {'number': match.group(1), 'heading': match.group(2).strip(), 'body': []}
        elif current is not None and line.strip():
            current['body'].append(line.strip())
    if current:
        steps.append(current)
    return [
        {
            'step': s['heading'].split(':', 1)[0].strip('* ')[:80] or f"Step {s['number']}",
            'analysis': ' '.join([s['heading']] + s['body']),
        }
        for s in steps
    ]
