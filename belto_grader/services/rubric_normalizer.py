# belto_grader/services/rubric_normalizer.py
from __future__ import annotations

import math
import re
from typing import Callable, List, Optional, Tuple

from belto_grader.schemas import Criterion, NormalizedRubric
from belto_grader.utils.logger import get_logger

logger = get_logger("rubric_normalizer")

_DEFAULT_TOTAL = 100

# "1) Name (max 30)" | "2. Name - max: 25" | "3] Name max 10"
_NUMBERED_MAX = re.compile(
    r"^\s*\d+[.)\]]\s*(.+?)\s*(?:\(|-|–|—)?\s*(?:max[:\s]*)(\d{1,6})(?!\d)\)?", re.IGNORECASE
)
# "Name (max 30)"; bullet lines are left to _BULLET
_NAME_MAX = re.compile(r"^(?![-*])(.+?)\s*\(max\s*(\d{1,6})\s*\)$", re.IGNORECASE)
# "Name - 30" | "Name: 30"
_NAME_DASH = re.compile(r"^(.+?)\s*(?:-|:)\s*(\d{1,6})\s*$")
# "- Name (max 20)" | "* Name"
_BULLET = re.compile(r"^[-*]\s*(.+?)\s*(?:\(max\s*(\d{1,6})\))?$", re.IGNORECASE)

# "Passing threshold: 60/100" | "Pass >= 70%" | "pass mark 65"
_PASS = re.compile(
    r"\bpass(?:ing|ed|es)?\b\s*(?:threshold|mark|score|grade)?\s*(?:>=|≥|=|:|is|of|at)?\s*(\d{1,3})(?!\d)\s*(?:/\s*(\d{1,3})(?!\d)|%)?",
    re.IGNORECASE,
)


def _with_max(m: re.Match[str]) -> Criterion:
    return Criterion(criterion=m.group(1).strip(), max_points=int(m.group(2)))


def _with_optional_max(m: re.Match[str]) -> Criterion:
    cap = m.group(2)
    return Criterion(criterion=m.group(1).strip(), max_points=int(cap) if cap else 0)


# Order is precedence: the first rule matching a line wins.
LINE_RULES: List[Tuple[str, re.Pattern[str], Callable[[re.Match[str]], Criterion]]] = [
    ("numbered-max", _NUMBERED_MAX, _with_max),
    ("name-max", _NAME_MAX, _with_max),
    ("name-dash", _NAME_DASH, _with_max),
    ("bullet", _BULLET, _with_optional_max),
]


def classify_line(line: str) -> Optional[Tuple[str, Criterion]]:
    """Return (rule name, criterion) for the first rule matching line, or None."""
    for name, pattern, build in LINE_RULES:
        m = pattern.match(line)
        if m:
            return name, build(m)
    return None


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def extract_pass_threshold(text: str) -> Optional[int]:
    """Pass threshold as a percentage ("60/100" -> 60, "70%" -> 70), or None."""
    m = _PASS.search(text or "")
    if not m:
        return None

    value = int(m.group(1))
    out_of = int(m.group(2)) if m.group(2) else 0
    if out_of:
        return _round_half_up(100 * value / out_of)
    return value


def _fill_missing_caps(criteria: List[Criterion]) -> None:
    """Spread the unallocated budget evenly over criteria that have no cap."""
    zeros = [c for c in criteria if not c.max_points]
    if not zeros:
        return

    known = sum(c.max_points for c in criteria)
    budget = known or _DEFAULT_TOTAL
    remaining = max(budget - known, 0) or max(_DEFAULT_TOTAL - known, 0)
    per = max(1, remaining // len(zeros))

    logger.debug(
        f"Distributing {remaining} points over {len(zeros)} uncapped criteria ({per} each)"
    )
    for c in zeros:
        c.max_points = per


def normalize_rubric(raw: str) -> NormalizedRubric:
    """
    Turn free-text rubric into an ordered list of capped criteria.

    Lines no rule recognises are skipped. Criteria listed without a cap share
    whatever budget the capped ones leave (out of 100), at least one point each.
    """
    text = (raw or "").replace("\r", "").strip()
    lines = [ln.strip() for ln in text.split("\n") if ln.strip()]

    criteria: List[Criterion] = []
    for ln in lines:
        hit = classify_line(ln)
        if hit is None:
            continue
        rule, criterion = hit
        logger.debug(f"Rubric line matched {rule}: {criterion.criterion!r} ({criterion.max_points})")
        criteria.append(criterion)

    _fill_missing_caps(criteria)

    pass_threshold = extract_pass_threshold(text)
    total = sum(c.max_points for c in criteria) or _DEFAULT_TOTAL

    logger.info(
        f"Normalized rubric: {len(criteria)} criteria, totalMax={total}, passThreshold={pass_threshold}"
    )
    return NormalizedRubric(criteria=criteria, passThreshold=pass_threshold, totalMax=total)
