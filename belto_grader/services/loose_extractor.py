# belto_grader/services/loose_extractor.py
"""
Grade/feedback extraction for "loose mode", where the model is not asked for JSON.

Strategies run top-down and the first one that yields a grade in 0..100 wins.
Each result carries the name of the strategy that produced it.
"""
from __future__ import annotations

import json
import math
import re
from typing import Callable, List, Optional, Tuple

from belto_grader.schemas import LooseExtraction
from belto_grader.services.json_repair import json_candidates
from belto_grader.utils.logger import get_logger

logger = get_logger("loose_extractor")

FIRST_NUMBER_NOTE = "low-confidence: first integer between 0 and 100 in the reply"

_GRADE_OVER_100 = re.compile(r"\b(?:grade|score)\b\s*[:=\-]?\s*(\d{1,3})\s*/\s*100\b", re.IGNORECASE)
_GRADE_BARE = re.compile(r"\b(?:grade|score)\b\s*[:=\-]?\s*(\d{1,3})(?!\d)(?!\s*/)", re.IGNORECASE)
# longer digit runs are never 0..100
_ANY_INTEGER = re.compile(r"\b\d{1,3}\b")
_FEEDBACK_LINE = re.compile(r"\bfeedback\b", re.IGNORECASE)
_FEEDBACK_LABEL = re.compile(r"^.*?\bfeedback\b\s*[:\-–—]?\s*", re.IGNORECASE)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _feedback_line(text: str) -> Optional[str]:
    """Text after the label on the first line that mentions feedback."""
    for line in text.split("\n"):
        if _FEEDBACK_LINE.search(line):
            rest = _FEEDBACK_LABEL.sub("", line, count=1).strip()
            return rest or None
    return None


def _from_json(text: str) -> Optional[LooseExtraction]:
    candidates = json_candidates(text)
    if not candidates:
        return None

    try:
        data = json.loads(candidates[0])
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None

    grade = data.get("grade")
    if isinstance(grade, bool) or not isinstance(grade, (int, float)):
        return None
    if not (0 <= grade <= 100):
        return None

    feedback = data.get("feedback")
    return LooseExtraction(
        grade=_round_half_up(grade),
        feedback=feedback if isinstance(feedback, str) else None,
        method="json",
    )


def _labelled(pattern: re.Pattern[str], method: str) -> Callable[[str], Optional[LooseExtraction]]:
    def strategy(text: str) -> Optional[LooseExtraction]:
        m = pattern.search(text)
        if not m:
            return None
        grade = int(m.group(1))
        if grade > 100:
            return None
        return LooseExtraction(grade=grade, feedback=_feedback_line(text), method=method)

    return strategy


def _first_integer(text: str) -> Optional[LooseExtraction]:
    for m in _ANY_INTEGER.finditer(text):
        value = int(m.group(0))
        if value <= 100:
            return LooseExtraction(grade=value, method="first-0-100", note=FIRST_NUMBER_NOTE)
    return None


STRATEGIES: List[Tuple[str, Callable[[str], Optional[LooseExtraction]]]] = [
    ("json", _from_json),
    ("pattern-GradeN/100", _labelled(_GRADE_OVER_100, "pattern-GradeN/100")),
    ("pattern-GradeN", _labelled(_GRADE_BARE, "pattern-GradeN")),
    ("first-0-100", _first_integer),
]


def extract_grade(text: Optional[str]) -> LooseExtraction:
    """Best-effort grade and feedback from free text. Never raises."""
    s = (text or "").replace("\r", "")

    for name, strategy in STRATEGIES:
        result = strategy(s)
        if result is not None:
            logger.debug(f"Loose extraction via {name}: grade={result.grade}")
            return result

    logger.info("Loose extraction found no grade")
    return LooseExtraction(method="none")
