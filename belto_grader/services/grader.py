# belto_grader/services/grader.py
import math
import os
import time
from dataclasses import dataclass
from typing import List, Optional, Any, Dict, Tuple

import requests
from dotenv import load_dotenv

from belto_grader.schemas import GradingResult, LooseExtraction, RubricLine
from belto_grader.services.json_repair import flexible_parse
from belto_grader.services.loose_extractor import extract_grade
from belto_grader.utils.logger import logger

load_dotenv()

# ---------------------------
# Configuration
# ---------------------------

_DEFAULT_MODEL = "local"
_DEFAULT_TIMEOUT_S = 120.0
_REQUEST_TEMPERATURE = 0

_NORMAL_MAX_TOKENS = 900
_NORMAL_STOP = ["</json>", "```", "\n\n\n"]
_STRICT_MAX_TOKENS = 800
_STRICT_STOP = ["\n\n", "```"]
_LOOSE_MAX_TOKENS = 400
_PROBE_MAX_TOKENS = 128

RAW_SNIPPET_LIMIT = 2000
PARSER_FAILED_MARKER = "Parser failed"
PARSER_FAILED_FEEDBACK = (
    f"{PARSER_FAILED_MARKER}: model did not return valid JSON (even after repairs). "
    "Use Force JSON, or fix upstream."
)
DEFAULT_PROBE_PROMPT = 'Return ONLY {"ok":true}'


# ---------------------------
# Custom Exceptions
# ---------------------------


class GradingError(Exception):
    """Base exception for grading errors"""

    pass


class ConfigurationError(GradingError):
    """Generation service address is not configured"""

    pass


class TransportError(GradingError):
    """Generation service unreachable or returned a non-success status"""

    pass


# ---------------------------
# Generation service
# ---------------------------


def completions_url() -> str:
    """
    Raises:
        ConfigurationError: If LLM_COMPLETIONS_URL is not set
    """
    url = (os.getenv("LLM_COMPLETIONS_URL") or "").strip()
    if not url:
        logger.error("LLM_COMPLETIONS_URL is not configured")
        raise ConfigurationError("Server misconfigured: LLM_COMPLETIONS_URL missing")
    return url


def model_name() -> str:
    return os.getenv("LLM_MODEL_NAME") or _DEFAULT_MODEL


def _timeout_s() -> float:
    try:
        return float(os.getenv("LLM_TIMEOUT_S", _DEFAULT_TIMEOUT_S))
    except ValueError:
        logger.warning("Invalid LLM_TIMEOUT_S, using default")
        return _DEFAULT_TIMEOUT_S


def _post_completion(url: str, payload: Dict[str, Any]) -> requests.Response:
    """
    POST one request to the generation service.

    Raises:
        TransportError: If the network call fails
    """
    try:
        return requests.post(url, json=payload, timeout=_timeout_s())
    except requests.exceptions.Timeout as e:
        logger.error(f"Generation service timed out after {_timeout_s()}s")
        raise TransportError(f"Upstream timeout: {e}") from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Generation service call error: {e}", exc_info=True)
        raise TransportError(f"Upstream request failed: {e}") from e


def _reply_text(data: Any) -> str:
    """Completion-style choices[0].text, else chat-style choices[0].message.content, else ""."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""

    choice = choices[0]
    text = choice.get("text")
    if not text:
        message = choice.get("message")
        text = message.get("content") if isinstance(message, dict) else None
    return text if isinstance(text, str) else ""


def complete(payload: Dict[str, Any]) -> str:
    """
    Execute a single generation request and return the generated text.

    Raises:
        ConfigurationError: If the service address is missing
        TransportError: If the call fails or returns a non-success status
    """
    url = completions_url()
    body = {"model": model_name(), **payload}

    logger.debug(
        f"Generation request - Model: {body['model']}, max_tokens: {body.get('max_tokens')}, "
        f"stop: {body.get('stop')}, prompt: {len(body.get('prompt', ''))} chars"
    )

    start_time = time.time()
    resp = _post_completion(url, body)
    elapsed = time.time() - start_time

    if not resp.ok:
        logger.error(f"Generation service returned {resp.status_code} after {elapsed:.2f}s")
        raise TransportError(f"Upstream error {resp.status_code}: {resp.text}")

    try:
        data = resp.json()
    except ValueError as e:
        logger.error("Generation service returned a non-JSON body")
        raise TransportError(f"Upstream returned invalid JSON: {e}") from e

    text = _reply_text(data)
    logger.debug(f"Generation reply received ({len(text)} characters, {elapsed:.2f}s)")
    if not text:
        logger.warning("Generation service returned no text")
    return text


def probe(prompt: Optional[str]) -> Tuple[int, str]:
    """
    Send a tiny request upstream and hand back status code and body untouched.

    Raises:
        ConfigurationError: If the service address is missing
        TransportError: If the network call fails
    """
    url = completions_url()
    payload = {
        "model": model_name(),
        "prompt": prompt or DEFAULT_PROBE_PROMPT,
        "max_tokens": _PROBE_MAX_TOKENS,
        "temperature": _REQUEST_TEMPERATURE,
    }
    resp = _post_completion(url, payload)
    logger.info(f"Probe returned {resp.status_code} ({len(resp.text)} characters)")
    return resp.status_code, resp.text


# ---------------------------
# Prompts
# ---------------------------


def _fmt_number(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else str(x)


def schema_text(max_score: float, pass_threshold: float) -> str:
    return f"""
JSON schema (exact keys):
{{
  "total_score": number,
  "max_score": number,
  "pass_fail": "PASS" | "FAIL",
  "rubric_breakdown": [
    {{ "criterion": string, "max_points": number, "points_awarded": number, "reason": string }}
  ],
  "strengths": string[],
  "weaknesses": string[],
  "deductions": string[],
  "summary_feedback": string
}}
Rules:
- total_score = sum(points_awarded), clamp 0..{_fmt_number(max_score)}
- pass_fail = "PASS" if total_score >= {_fmt_number(pass_threshold)} else "FAIL"
- Return VALID JSON only. No markdown, no prose.
""".strip()


def _context_block(context: str) -> str:
    return f"Assignment context:\n{context}\n\n" if (context or "").strip() else ""


def normal_prompt(rubric: str, answer: str, context: str, max_score: float, pass_threshold: float) -> str:
    return f"""
Act as a strict grader.

Wrap your JSON ONLY inside <json> ... </json>. Do not include anything else.

{schema_text(max_score, pass_threshold)}

Grading policy:
- Grade ONLY what's written; do not infer.
- Obey the rubric literally.
- Never exceed per-criterion or overall max.
- Reasons must be concise and concrete.

{_context_block(context)}Rubric:
{rubric}

Submission:
{answer}

Return:
<json>
{{ ... }}
</json>
""".strip()


def strict_prompt(rubric: str, answer: str, context: str, max_score: float, pass_threshold: float) -> str:
    return f"""
RETURN ONLY THIS JSON OBJECT. NO MARKDOWN. NO PROSE.

{schema_text(max_score, pass_threshold)}

{_context_block(context)}Rubric:
{rubric}

Submission:
{answer}
""".strip()


def loose_prompt(rubric: str, submission: str) -> str:
    return f"""
Grade the submission against the rubric on a 0-100 scale.

Reply with exactly two lines:
Grade: <0-100>/100
Feedback: <one sentence>

Rubric:
{rubric}

Submission:
{submission}
""".strip()


# ---------------------------
# Validation & clamping
# ---------------------------


def _clamp(v: float, lo: float, hi: float) -> float:
    """Clamp value between lo and hi"""
    return max(lo, min(hi, v))


def _as_number(value: Any, default: float = 0.0) -> float:
    """Finite float from an int, float or numeric string; default otherwise."""
    if isinstance(value, bool):
        return default
    if not isinstance(value, (int, float, str)):
        return default
    try:
        v = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return default
    return v if math.isfinite(v) else default


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text_items(value: Any) -> List[str]:
    return [_as_text(v) for v in _as_list(value) if v is not None]


def _breakdown(value: Any) -> List[RubricLine]:
    lines: List[RubricLine] = []
    for idx, it in enumerate(_as_list(value)):
        if not isinstance(it, dict):
            logger.debug(f"Dropping non-object rubric_breakdown entry at index {idx}")
            continue
        lines.append(
            RubricLine(
                criterion=_as_text(it.get("criterion")),
                max_points=_as_number(it.get("max_points")),
                points_awarded=_as_number(it.get("points_awarded")),
                reason=_as_text(it.get("reason")),
            )
        )
    return lines


def pass_fail_for(total_score: float, pass_threshold: float) -> str:
    return "PASS" if total_score >= pass_threshold else "FAIL"


def validate_result(parsed: Any, max_score: float, pass_threshold: float) -> GradingResult:
    """
    Coerce an arbitrarily shaped parsed reply into a GradingResult. Never raises.

    total_score is clamped into 0..max_score and pass_fail is recomputed from it;
    whatever the model said about pass/fail is ignored.
    """
    data: Dict[str, Any] = parsed if isinstance(parsed, dict) else {}
    if not isinstance(parsed, dict):
        logger.warning(f"Parsed reply is not an object ({type(parsed).__name__}), using defaults")

    upper = max(float(max_score), 0.0)
    total = _clamp(_as_number(data.get("total_score")), 0.0, upper)

    claimed = data.get("pass_fail")
    verdict = pass_fail_for(total, pass_threshold)
    if claimed is not None and claimed != verdict:
        logger.info(f"Overriding model pass_fail {claimed!r} with {verdict}")

    return GradingResult(
        total_score=total,
        max_score=max_score,
        pass_fail=verdict,
        rubric_breakdown=_breakdown(data.get("rubric_breakdown")),
        strengths=_text_items(data.get("strengths")),
        weaknesses=_text_items(data.get("weaknesses")),
        deductions=_text_items(data.get("deductions")),
        summary_feedback=_as_text(data.get("summary_feedback")),
    )


def placeholder_result(raw: str, max_score: float) -> GradingResult:
    """Fail-open result for replies that never yielded parseable JSON."""
    return GradingResult(
        total_score=0,
        max_score=max_score,
        pass_fail="FAIL",
        summary_feedback=PARSER_FAILED_FEEDBACK,
        raw_snippet=(raw or "")[:RAW_SNIPPET_LIMIT],
    )


# ---------------------------
# Escalation
# ---------------------------


@dataclass(frozen=True)
class Attempt:
    name: str
    strict: bool
    max_tokens: int
    stop: Tuple[str, ...]


ATTEMPT_NORMAL = Attempt("normal", strict=False, max_tokens=_NORMAL_MAX_TOKENS, stop=tuple(_NORMAL_STOP))
ATTEMPT_STRICT = Attempt("strict", strict=True, max_tokens=_STRICT_MAX_TOKENS, stop=tuple(_STRICT_STOP))
ATTEMPT_FORCED = Attempt("forced-strict", strict=True, max_tokens=_NORMAL_MAX_TOKENS, stop=tuple(_NORMAL_STOP))


def attempt_plan(force: bool) -> Tuple[Attempt, ...]:
    """Two attempts (normal, then strict) unless forced, which is strict only."""
    return (ATTEMPT_FORCED,) if force else (ATTEMPT_NORMAL, ATTEMPT_STRICT)


def _payload_for(
    attempt: Attempt, rubric: str, answer: str, context: str, max_score: float, pass_threshold: float
) -> Dict[str, Any]:
    build = strict_prompt if attempt.strict else normal_prompt
    return {
        "prompt": build(rubric, answer, context, max_score, pass_threshold),
        "max_tokens": attempt.max_tokens,
        "temperature": _REQUEST_TEMPERATURE,
        "stop": list(attempt.stop),
    }


def grade_with_escalation(
    rubric: str,
    answer: str,
    context: str = "",
    max_score: float = 100,
    pass_threshold: float = 60,
    force: bool = False,
) -> GradingResult:
    """
    Grade a submission, escalating to the strict prompt when the first reply
    cannot be parsed.

    A reply that never parses produces the placeholder result; it is not an
    error.

    Raises:
        ConfigurationError: If the generation service address is missing
        TransportError: If a generation request fails
    """
    plan = attempt_plan(force)
    logger.info(
        f"Starting grading (force={force}, attempts={len(plan)}, max_score={max_score}, "
        f"pass_threshold={pass_threshold})"
    )

    text = ""
    for idx, attempt in enumerate(plan, start=1):
        logger.debug(f"Grading attempt {idx}/{len(plan)} ({attempt.name})")
        text = complete(_payload_for(attempt, rubric, answer, context, max_score, pass_threshold))

        parsed = flexible_parse(text)
        if parsed is not None:
            result = validate_result(parsed, max_score, pass_threshold)
            logger.info(
                f"Grading parsed on attempt {idx} ({attempt.name}) - "
                f"Score: {result.total_score}/{max_score} {result.pass_fail}"
            )
            return result

        logger.warning(f"Attempt {idx} ({attempt.name}) reply could not be parsed ({len(text)} characters)")

    logger.warning("All attempts exhausted, returning placeholder result")
    logger.debug(f"Last raw reply: {text[:500]}")
    return placeholder_result(text, max_score)


# ---------------------------
# Loose mode
# ---------------------------


def grade_loose(rubric: str, submission: str) -> Tuple[str, LooseExtraction]:
    """
    One free-text generation plus best-effort grade extraction.

    Raises:
        ConfigurationError: If the generation service address is missing
        TransportError: If the generation request fails
    """
    text = complete(
        {
            "prompt": loose_prompt(rubric, submission),
            "max_tokens": _LOOSE_MAX_TOKENS,
            "temperature": _REQUEST_TEMPERATURE,
        }
    )
    extraction = extract_grade(text)
    logger.info(f"Loose grading - method: {extraction.method}, grade: {extraction.grade}")
    return text, extraction
