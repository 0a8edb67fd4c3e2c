"""Pydantic models for documents and their size-derived views.

A Document is the immutable marking input. SizeProfile and Chunk are
derived from its text on demand and never persisted.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


SizeCategory = Literal["small", "medium", "large", "very-large", "too-large"]
DocumentRiskLevel = Literal["low", "medium", "high", "critical"]


class Document(BaseModel):
    """Raw submission text with optional identifiers."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted plain text of the submission")
    student_name: Optional[str] = Field(default=None, description="Declared student name")
    assignment_title: Optional[str] = Field(default=None, description="Declared assignment title")
    file_name: Optional[str] = Field(default=None, description="Original file name, if uploaded")


class SizeProfile(BaseModel):
    """Size classification of a document's text."""

    model_config = ConfigDict(frozen=True)

    estimated_tokens: int = Field(ge=0, description="Estimated token count (ceil(chars / 4))")
    category: SizeCategory = Field(description="Size category")
    estimated_chunks: int = Field(ge=1, description="Number of chunks remote marking would need")
    risk_level: DocumentRiskLevel = Field(description="Likelihood of resource exhaustion")
    will_chunk: bool = Field(description="Whether remote marking splits the document")
    description: str = Field(description="Human readable category description")
    processing_time: str = Field(description="Rough processing time hint")


class Chunk(BaseModel):
    """One bounded slice of a document sized for a single remote request."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Zero-based position in the chunk sequence")
    total_count: int = Field(ge=1, description="Number of chunks in the sequence")
    text: str = Field(description="Chunk text")
    estimated_tokens: int = Field(ge=0, description="Estimated token count of the chunk")


class DocumentMetadata(BaseModel):
    """Student name and subject detected from a document and its file name."""

    student_name: Optional[str] = Field(default=None, description="Detected student name")
    subject: Optional[str] = Field(default=None, description="Detected subject")
    name_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    subject_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    name_method: Optional[Literal["filename", "label", "leading_line"]] = None
    subject_method: Optional[Literal["label", "keyword", "filename"]] = None
