# belto_grader/services/json_repair.py
"""
Best-effort repair of the JSON-ish text that instruction-following models return.

Only the usual damage is handled: prose or code fences around the object,
smart quotes, JS comments, unquoted keys, single-quoted strings and trailing
commas. Anything beyond that is reported as "no repair" (None), never raised.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from belto_grader.utils.logger import get_logger

logger = get_logger("json_repair")

_TAG_RE = re.compile(r"<json>([\s\S]*?)</json>", re.IGNORECASE)
_FENCE_JSON_RE = re.compile(r"```json([\s\S]*?)```", re.IGNORECASE)
_FENCE_ANY_RE = re.compile(r"```([\s\S]*?)```")

_SMART_DOUBLE_RE = re.compile("[\u201c\u201d\u201e\u201f\u2033]")
_SMART_SINGLE_RE = re.compile("[\u2018\u2019\u2032]")

_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_-]*)(\s*):")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNESCAPED_DQUOTE_RE = re.compile(r'(?<!\\)"')

_CODE = "code"


# ---------------------------
# Helpers
# ---------------------------


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    """
    json.loads that only accepts a JSON object; anything else is None.

    ValueError covers JSONDecodeError and over-long integer literals.
    """
    try:
        value = json.loads(text)
    except (ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def _outer_braces(s: str) -> str:
    """Slice s to its first '{' .. last '}' span, if there is one."""
    i, j = s.find("{"), s.rfind("}")
    if i >= 0 and j > i:
        return s[i : j + 1]
    return s


def _segments(s: str) -> List[Tuple[str, str]]:
    """
    Split s into runs of code and quoted literals.

    Each run is (kind, text) where kind is "code", '"' or "'"; quoted runs keep
    their delimiters. An unterminated literal runs to the end of the text.
    """
    out: List[Tuple[str, str]] = []
    n = len(s)
    i = 0
    start = 0

    while i < n:
        ch = s[i]
        if ch not in "\"'":
            i += 1
            continue

        if i > start:
            out.append((_CODE, s[start:i]))

        j = i + 1
        while j < n:
            if s[j] == "\\":
                j += 2
                continue
            if s[j] == ch:
                break
            j += 1
        end = min(j + 1, n)
        out.append((ch, s[i:end]))
        i = start = end

    if start < n:
        out.append((_CODE, s[start:]))
    return out


def _map_code(s: str, fn: Callable[[str], str]) -> str:
    """Apply fn to the parts of s that are outside string literals."""
    return "".join(fn(text) if kind == _CODE else text for kind, text in _segments(s))


# ---------------------------
# Repair steps
# ---------------------------


def _extract_payload(s: str) -> str:
    tag = _TAG_RE.search(s)
    if tag:
        logger.debug("Payload taken from <json> tag")
        return tag.group(1)

    fence = _FENCE_JSON_RE.search(s) or _FENCE_ANY_RE.search(s)
    if fence:
        logger.debug("Payload taken from code fence")
        return fence.group(1)

    return _outer_braces(s)


def _normalize_quotes(s: str) -> str:
    s = _SMART_DOUBLE_RE.sub('"', s)
    return _SMART_SINGLE_RE.sub("'", s)


def _strip_comments(s: str) -> str:
    """
    Remove /* block */ and // line comments outside string literals.

    A // directly after ':' is kept (http://...). Unclosed block comments are
    left alone.
    """
    out: List[str] = []
    n = len(s)
    i = 0
    quote: Optional[str] = None

    while i < n:
        ch = s[i]

        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(s[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in "\"'":
            quote = ch
            out.append(ch)
            i += 1
            continue

        if s.startswith("/*", i):
            close = s.find("*/", i + 2)
            if close != -1:
                i = close + 2
                continue

        if s.startswith("//", i) and (i == 0 or s[i - 1] != ":"):
            newline = s.find("\n", i)
            i = n if newline == -1 else newline
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def _quote_bare_keys(s: str) -> str:
    return _map_code(s, lambda code: _BARE_KEY_RE.sub(r'\1"\2"\3:', code))


def _single_to_double(s: str) -> str:
    parts: List[str] = []
    for kind, text in _segments(s):
        if kind != "'":
            parts.append(text)
            continue
        closed = len(text) >= 2 and text.endswith("'")
        inner = text[1:-1] if closed else text[1:]
        inner = inner.replace("\\'", "'")
        inner = _UNESCAPED_DQUOTE_RE.sub(r'\\"', inner)
        parts.append(f'"{inner}"')
    return "".join(parts)


def _drop_trailing_commas(s: str) -> str:
    return _map_code(s, lambda code: _TRAILING_COMMA_RE.sub(r"\1", code))


# ---------------------------
# Public API
# ---------------------------


def repair_jsonish(text: Optional[str]) -> Optional[str]:
    """
    Turn a JSON-ish reply into a parseable JSON object string.

    Returns the repaired text, or None when the result still does not parse.
    The first delimited block found is the one repaired; there is no
    backtracking to later blocks.
    """
    if not text:
        return None

    s = _extract_payload(text)

    if _loads_object(s.strip()) is not None:
        logger.debug("Extracted payload is already valid JSON")
        return s.strip()

    s = s.replace("\r", "")
    s = _normalize_quotes(s)
    s = _strip_comments(s)
    s = _quote_bare_keys(s)
    s = _single_to_double(s)
    s = _drop_trailing_commas(s)
    s = _outer_braces(s)

    if _loads_object(s) is None:
        logger.debug(f"Repair failed ({len(text)} chars in, {len(s)} chars after repair)")
        return None

    logger.debug(f"Repair succeeded ({len(s)} chars)")
    return s


def flexible_parse(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Raw parse first, then the repaired form. None means no JSON object could
    be recovered from the text.
    """
    if not text:
        return None

    parsed = _loads_object(text)
    if parsed is not None:
        logger.debug("Direct JSON parsing successful")
        return parsed

    repaired = repair_jsonish(text)
    if repaired is not None:
        return _loads_object(repaired)

    return None


def json_candidates(text: str) -> List[str]:
    """
    Balanced {...} fragments of text in order of appearance (nesting and
    braces inside double-quoted strings are respected).
    """
    s = text or ""
    n = len(s)
    level = 0
    start = -1
    in_str = False
    esc = False
    out: List[str] = []

    for i in range(n):
        ch = s[i]

        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
        else:
            if ch == '"':
                in_str = True
            elif ch == "{":
                if level == 0:
                    start = i
                level += 1
            elif ch == "}":
                if level > 0:
                    level -= 1
                    if level == 0 and start != -1:
                        out.append(s[start : i + 1])
                        start = -1

    logger.debug(f"Found {len(out)} JSON candidates")
    return out
