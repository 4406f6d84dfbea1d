"""Normalization helpers for free-form values coming back from the model."""
from __future__ import annotations

import json
import math
import re
from typing import Any, List, Optional

# C0/C1 control characters except tab, LF and CR.
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_WHITESPACE_RUN_RE = re.compile(r"\s{3,}")
_ARRAY_SPLIT_RE = re.compile(r"[;,\n]")
_NON_NUMERIC_RE = re.compile(r"[^\d.\-+]")
_CODE_FENCE_RE = re.compile(r"^```(?:json)?[ \t]*\n?|\n?```[ \t]*$", re.IGNORECASE | re.MULTILINE)

DEFAULT_MAX_LEN = 120_000
DEFAULT_MAX_ITEMS = 128
# Fits the INTEGER column with room to spare.
MAX_YEARS = 100


def sanitize_string(value: Any, max_len: int = DEFAULT_MAX_LEN) -> Optional[str]:
    """
    Coerce to text, drop control characters, squeeze whitespace runs and truncate.

    Returns None for absent or blank input.
    """
    if value is None:
        return None
    text = str(value)
    text = _CONTROL_CHARS_RE.sub(" ", text)
    text = _WHITESPACE_RUN_RE.sub(" ", text)
    if len(text) > max_len:
        text = text[:max_len]
    text = text.strip()
    return text or None


def sanitize_string_array(value: Any, max_items: int = DEFAULT_MAX_ITEMS) -> Optional[List[str]]:
    """
    Accept a list or a ``;`` / ``,`` / newline delimited string.

    Items are sanitized, blanks dropped and duplicates removed (first seen wins).
    Returns None when nothing survives.
    """
    if not value:
        return None

    if isinstance(value, (list, tuple)):
        raw_items = list(value)
    elif isinstance(value, str):
        raw_items = _ARRAY_SPLIT_RE.split(value)
    else:
        return None

    items: List[str] = []
    seen = set()
    for raw in raw_items:
        item = sanitize_string(raw)
        if not item or item in seen:
            continue
        seen.add(item)
        items.append(item)
        if len(items) >= max_items:
            break

    return items or None


def coerce_int(value: Any) -> Optional[int]:
    """Pull an integer out of values like ``"7+ years"`` or ``5.8``; floors fractions."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return math.floor(value) if math.isfinite(value) else None

    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    match = re.match(r"[+-]?(\d+(\.\d*)?|\.\d+)", cleaned)
    if not match:
        return None
    number = float(match.group(0))
    if not math.isfinite(number):
        return None
    return math.floor(number)


def coerce_years(value: Any) -> Optional[int]:
    """Years of experience as an int in ``0..MAX_YEARS``, else None."""
    years = coerce_int(value)
    if years is None or not 0 <= years <= MAX_YEARS:
        return None
    return years


def safe_json_parse(text: Any) -> Optional[Any]:
    """
    Parse near-valid model output.

    Markdown fences and control characters are removed first. If the whole
    text is not JSON, the slice between the first ``{`` and the last ``}`` is
    tried. Returns None when both attempts fail.
    """
    if not text or not isinstance(text, str):
        return None

    cleaned = _CODE_FENCE_RE.sub("", text).strip()
    cleaned = _CONTROL_CHARS_RE.sub(" ", cleaned)

    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start : end + 1])
        except ValueError:
            pass
    return None
