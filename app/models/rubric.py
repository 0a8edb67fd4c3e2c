"""Pydantic models for marking rubrics.

A rubric is either one of the built-in defaults (selected by detected
assessment type) or parsed from a memo. Section totals add up to the
rubric total unless a memo parse falls back to 100.
"""

from typing import Tuple
from pydantic import BaseModel, ConfigDict, Field


class MarkingCriterion(BaseModel):
    """A single keyword-driven marking criterion."""

    model_config = ConfigDict(frozen=True)

    keywords: Tuple[str, ...] = Field(default_factory=tuple, description="Keywords that earn credit")
    required_concepts: Tuple[str, ...] = Field(default_factory=tuple, description="Concept phrases expected in the answer")
    max_marks: float = Field(ge=0, description="Marks available for this criterion")
    weight: float = Field(default=1.0, ge=0, description="Multiplier applied to the raw score")


class RubricSection(BaseModel):
    """A named group of criteria."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Section name")
    criteria: Tuple[MarkingCriterion, ...] = Field(description="Criteria in this section")
    total_marks: float = Field(ge=0, description="Marks available for the section")


class Rubric(BaseModel):
    """Weighted set of sections defining how marks are allocated."""

    model_config = ConfigDict(frozen=True)

    sections: Tuple[RubricSection, ...] = Field(description="Rubric sections in display order")
    total_marks: float = Field(ge=0, description="Total marks available")
    source: str = Field(default="default", description="'default:<type>' or 'memo'")
