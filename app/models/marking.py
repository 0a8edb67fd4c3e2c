"""Pydantic models for local and remote marking results.

Covers answer units produced by the question segmenter, per-unit quality
assessments, aggregated score results and the request bodies accepted by
the marking API.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from app.models.rubric import Rubric


QualityLabel = Literal["excellent", "good", "satisfactory", "poor", "missing"]
AssessmentType = Literal["assessment", "project"]


class AnswerUnit(BaseModel):
    """A detected question/task/section span within a document."""

    label: str = Field(description="Display label, e.g. 'Task 2', 'Q3', 'Section 1'")
    content: str = Field(description="Text of the unit, marker included")
    topic: str = Field(default="General Topic", description="Classified topic")
    max_marks: int = Field(ge=0, description="Nominal marks derived from word count")
    start_offset: int = Field(ge=0, description="Offset of the unit's marker in the document")


class QualityAssessment(BaseModel):
    """Heuristic quality score of one answer."""

    quality: QualityLabel = Field(description="Quality band")
    score: float = Field(ge=0.0, le=0.95, description="Bounded quality multiplier")
    reasoning: str = Field(description="Fixed explanation for the quality band")


class ScoreItem(BaseModel):
    """Marks for one answer unit or one rubric criterion/section."""

    id: str = Field(description="Unit label or rubric section name")
    awarded: float = Field(ge=0, description="Marks awarded")
    max_marks: float = Field(ge=0, description="Marks available")
    topic: Optional[str] = Field(default=None, description="Topic for answer units")
    quality: Optional[QualityLabel] = Field(default=None, description="Quality band for answer units")
    reasoning: str = Field(default="", description="Why the marks were awarded")
    feedback: List[str] = Field(default_factory=list, description="Rubric feedback lines")


class ScoreResult(BaseModel):
    """Aggregated marks across units or rubric sections."""

    kind: Literal["unit", "criterion"] = Field(description="What the items score")
    items: List[ScoreItem] = Field(default_factory=list)
    total_awarded: float = Field(ge=0)
    total_available: float = Field(ge=0)
    percentage: Optional[int] = Field(default=None, description="None when nothing is available")


class LocalMarkingResult(BaseModel):
    """Everything the local rule-based engine produces for one document."""

    student_name: str
    assignment_title: str
    assessment_type: str = Field(description="Detected document type used to pick the rubric")
    rubric: Rubric
    unit_scores: ScoreResult
    rubric_scores: ScoreResult
    grade: str
    marking_method: str = "Improved Local Analysis (Zero AI tokens used)"
    tokens_saved: int = Field(ge=0, description="Estimated tokens a remote call would have used")
    report: str


# =============================================================================
# API REQUEST MODELS
# =============================================================================

class LocalMarkRequest(BaseModel):
    """Request body for local rule-based marking."""
    document_content: str = Field(description="Submission text")
    student_name: str = Field(description="Student name")
    assignment_title: str = Field(description="Assignment title")
    memo: Optional[str] = Field(default=None, description="Optional marking memo")


class RemoteMarkRequest(BaseModel):
    """Request body for language-model marking."""
    prompt: str = Field(description="Marking instructions")
    document_content: str = Field(description="Submission text")
    assessment_type: AssessmentType = Field(description="'assessment' or 'project'")
    memo: Optional[str] = Field(default=None, description="Optional marking memo")
    student_name: Optional[str] = Field(default=None)
    assignment_title: Optional[str] = Field(default=None)


class ProfileRequest(BaseModel):
    """Request body for document size profiling."""
    document_content: str = Field(description="Submission text")
    memo: Optional[str] = Field(default=None, description="Memo that would accompany remote marking")
