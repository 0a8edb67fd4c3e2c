"""Pydantic models for batch marking.

This module defines the batch plan recommended for a document set, the
batch validation report, and the MarkingJob record (progress, outcomes and
errors) mutated by the batch marker as each document completes.
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.models.document import Document


RiskLevel = Literal["low", "medium", "high"]
MarkingMode = Literal["local", "remote"]


class BatchPlan(BaseModel):
    """Recommended processing plan for a set of documents."""

    model_config = ConfigDict(frozen=True)

    recommended_batch_size: int = Field(ge=0, description="Documents per batch; 0 means unprocessable")
    total_batches: int = Field(ge=0, description="ceil(n / batch size), 0 when unprocessable")
    risk_level: RiskLevel = Field(description="Likelihood of resource exhaustion or rate limiting")
    reason: str = Field(description="Why this batch size was chosen")
    estimated_time_per_batch: str = Field(description="Human readable time estimate")

    @property
    def is_processable(self) -> bool:
        return self.recommended_batch_size > 0


class BatchValidation(BaseModel):
    """Issues found in a document set before processing."""
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class JobProgress(BaseModel):
    """Progress of a marking job, updated once per completed document."""
    processed: int = Field(ge=0, default=0, description="Documents finished (ok or failed)")
    total: int = Field(ge=0, description="Documents in the job")
    current_label: str = Field(default="", description="Document currently being marked")
    status: Literal["pending", "processing", "completed", "failed"] = Field(default="pending")


class MarkingOutcome(BaseModel):
    """Result of marking one document in a batch."""
    index: int = Field(ge=0, description="Position of the document in the job")
    student_name: str
    assignment_title: str
    subject: Optional[str] = None
    mode: MarkingMode
    status: Literal["ok", "failed"]
    content: str = Field(description="Marking report, or error text with a suggestion")
    total_marks: Optional[float] = None
    percentage: Optional[int] = None
    marked_file_name: str
    error: Optional[str] = None


class MarkingJob(BaseModel):
    """A batch marking submission and its running state."""
    documents: List[Document]
    mode: MarkingMode
    progress: JobProgress
    plan: Optional[BatchPlan] = None
    outcomes: List[MarkingOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


# =============================================================================
# API REQUEST MODELS
# =============================================================================

class BatchPlanRequest(BaseModel):
    """Request body for batch planning."""
    documents: List[str] = Field(description="Document texts in submission order")
