# belto_grader/schemas.py
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class GradeRequest(BaseModel):
    """Strict-mode grading request."""
    rubric: str = Field("", description="Rubric text (authoritative)")
    answer: str = Field("", description="Student submission")
    context: str = Field("", description="Optional assignment context")
    maxScore: Optional[float] = Field(100, ge=0, description="Maximum score; 0 or null means the default")
    passThreshold: Optional[float] = Field(60, description="Minimum total score for PASS")
    force: bool = Field(False, description="Skip straight to the strict, schema-only prompt")


class RubricLine(BaseModel):
    """One criterion as scored by the model."""
    criterion: str = ""
    max_points: float = 0.0
    points_awarded: float = 0.0
    reason: str = ""


class GradingResult(BaseModel):
    """Validated grading result. pass_fail is always recomputed server-side."""
    total_score: float = Field(..., ge=0.0, description="Clamped into 0..max_score")
    max_score: float
    pass_fail: Literal["PASS", "FAIL"]
    rubric_breakdown: List[RubricLine] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    deductions: List[str] = Field(default_factory=list)
    summary_feedback: str = ""
    raw_snippet: Optional[str] = Field(None, description="Excerpt of the last model reply (placeholder results only)")


class Criterion(BaseModel):
    criterion: str
    max_points: int


class NormalizeRequest(BaseModel):
    rubric: str = ""


class NormalizedRubric(BaseModel):
    criteria: List[Criterion]
    passThreshold: Optional[int] = Field(None, description="Pass threshold as a percentage, if the rubric states one")
    totalMax: int


class LooseGradeRequest(BaseModel):
    rubric: str = ""
    submission: str = ""


class LooseExtraction(BaseModel):
    """Best-effort grade pulled out of free text; method names the strategy that produced it."""
    grade: Optional[int] = Field(None, ge=0, le=100)
    feedback: Optional[str] = None
    method: str = "none"
    note: Optional[str] = None


class ExtractionTrace(BaseModel):
    method: str
    note: Optional[str] = None


class LooseGradeResponse(BaseModel):
    raw: str
    grade: Optional[int] = None
    feedback: Optional[str] = None
    extracted: ExtractionTrace


class DebugRequest(BaseModel):
    prompt: str = ""


class SystemStatusResponse(BaseModel):
    """Service health and generation-service configuration."""
    system_healthy: bool = Field(..., description="Overall system health status")
    completions_configured: bool = Field(..., description="LLM_COMPLETIONS_URL is set")
    model: str = Field(..., description="Model name sent to the generation service")
    version: str = Field(..., description="Application version")
