"""Marking rubrics: built-in defaults, memo parsing and rubric analysis.

Default rubric selection uses a keyword cascade over the document text
(programming -> essay -> mathematics, essay by default). A memo can
replace the default with an ad hoc rubric parsed from lines ending in
"N marks".
"""

import logging
import re
from types import MappingProxyType
from typing import List, Mapping, Optional

from app.models.marking import ScoreItem, ScoreResult
from app.models.rubric import MarkingCriterion, Rubric, RubricSection
from app.utils.normalizers import compute_percentage


logger = logging.getLogger(__name__)

MIN_MEMO_CHARS = 100
DEFAULT_TOTAL_MARKS = 100

# Academic verbs used as keywords for memo-derived criteria
ACADEMIC_VERBS = (
    "explain", "describe", "analyze", "discuss", "evaluate", "compare",
    "define", "identify", "list", "calculate", "solve", "demonstrate",
    "show", "prove", "justify", "argue", "assess", "review",
)

_MARKS_PATTERN = re.compile(r"(\d+)\s*marks?", re.IGNORECASE)


def _criterion(keywords, concepts, max_marks, weight=1.0) -> MarkingCriterion:
    return MarkingCriterion(
        keywords=tuple(keywords),
        required_concepts=tuple(concepts),
        max_marks=max_marks,
        weight=weight,
    )


DEFAULT_RUBRICS: Mapping[str, Rubric] = MappingProxyType({
    "programming": Rubric(
        source="default:programming",
        total_marks=100,
        sections=[
            RubricSection(name="Code Functionality", total_marks=40, criteria=[
                _criterion(["function", "method", "class", "algorithm", "logic", "works", "runs", "executes"],
                           ["implementation", "functionality"], 20),
                _criterion(["error", "bug", "exception", "debug", "fix", "correct"], ["error handling"], 10, 0.5),
                _criterion(["test", "validate", "check", "verify", "assert"], ["testing"], 10, 0.5),
            ]),
            RubricSection(name="Code Quality", total_marks=30, criteria=[
                _criterion(["comment", "documentation", "explain", "describe", "readable"], ["documentation"], 15),
                _criterion(["structure", "organize", "clean", "format", "style"], ["code structure"], 15),
            ]),
            RubricSection(name="Understanding", total_marks=30, criteria=[
                _criterion(["explain", "analyze", "discuss", "evaluate", "compare"], ["analysis"], 20),
                _criterion(["example", "demonstrate", "show", "illustrate"], ["examples"], 10, 0.5),
            ]),
        ],
    ),
    "essay": Rubric(
        source="default:essay",
        total_marks=100,
        sections=[
            RubricSection(name="Content & Analysis", total_marks=50, criteria=[
                _criterion(["analyze", "discuss", "evaluate", "explain", "argue", "evidence"],
                           ["analysis", "critical thinking"], 30),
                _criterion(["example", "case study", "evidence", "support", "cite"], ["supporting evidence"], 20),
            ]),
            RubricSection(name="Structure & Organization", total_marks=25, criteria=[
                _criterion(["introduction", "conclusion", "paragraph", "structure", "flow"], ["essay structure"], 15),
                _criterion(["transition", "connect", "logical", "coherent", "sequence"], ["logical flow"], 10),
            ]),
            RubricSection(name="Language & Expression", total_marks=25, criteria=[
                _criterion(["grammar", "spelling", "punctuation", "syntax", "correct"], ["language mechanics"], 15),
                _criterion(["clear", "concise", "appropriate", "vocabulary", "style"], ["writing style"], 10),
            ]),
        ],
    ),
    "mathematics": Rubric(
        source="default:mathematics",
        total_marks=100,
        sections=[
            RubricSection(name="Problem Solving", total_marks=60, criteria=[
                _criterion(["solve", "calculate", "compute", "find", "determine"], ["problem solving"], 30),
                _criterion(["method", "approach", "strategy", "technique", "formula"], ["methodology"], 20),
                _criterion(["correct", "accurate", "right", "answer", "solution"], ["accuracy"], 10),
            ]),
            RubricSection(name="Working & Explanation", total_marks=40, criteria=[
                _criterion(["show", "working", "steps", "process", "explain"], ["working shown"], 25),
                _criterion(["reason", "justify", "explain", "because", "therefore"], ["reasoning"], 15),
            ]),
        ],
    ),
})

_TYPE_KEYWORDS = (
    ("programming", ("code", "program", "function", "algorithm")),
    ("essay", ("essay", "discuss", "analyze", "argument")),
    ("mathematics", ("calculate", "solve", "equation", "formula")),
)


def detect_assessment_type(text: str) -> str:
    """Detect the document type used to pick a default rubric."""
    lowered = text.lower()
    for assessment_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return assessment_type
    return "essay"


def extract_keywords(text: str) -> List[str]:
    """Academic verbs present in a line of memo text."""
    lowered = text.lower()
    return [verb for verb in ACADEMIC_VERBS if verb in lowered]


def create_rubric_from_memo(memo: Optional[str]) -> Optional[Rubric]:
    """
    Parse a free-text memo into an ad hoc rubric.

    Every line containing "N marks" starts a section named after the rest
    of the line. Lines without a marks figure are ignored, so a memo with
    no parsable line yields None and the caller keeps the default rubric.

    Args:
        memo: Memo text

    Returns:
        Rubric built from the memo, or None if the memo is too short or
        nothing parses
    """
    if not memo or len(memo) < MIN_MEMO_CHARS:
        return None

    sections: List[RubricSection] = []
    for line in memo.splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue

        match = _MARKS_PATTERN.search(trimmed)
        if not match:
            continue

        name = _MARKS_PATTERN.sub("", trimmed, count=1).strip(" \t-:()[]") or "Section"
        marks = int(match.group(1))
        sections.append(RubricSection(
            name=name,
            total_marks=marks,
            criteria=[_criterion(extract_keywords(trimmed), [name.lower()], marks)],
        ))

    if not sections:
        logger.info("Memo provided but no 'N marks' lines found; using default rubric")
        return None

    total = sum(section.total_marks for section in sections)
    return Rubric(sections=tuple(sections), total_marks=total or DEFAULT_TOTAL_MARKS, source="memo")


def select_rubric(text: str, memo: Optional[str] = None) -> Rubric:
    """Memo-derived rubric when one parses, otherwise the default for the detected type."""
    return create_rubric_from_memo(memo) or DEFAULT_RUBRICS[detect_assessment_type(text)]


def _coverage(found: int, total: int) -> float:
    return found / total if total else 0.0


def analyze_with_rubric(text: str, rubric: Rubric) -> ScoreResult:
    """
    Score a whole document against a rubric's keyword criteria.

    Criterion score is (keyword density * 0.6 + concept coverage * 0.4)
    * max marks * weight, capped at max marks; section scores are capped at
    the section total.

    Args:
        text: Document text
        rubric: Rubric to score against

    Returns:
        ScoreResult with one item per rubric section
    """
    lowered = text.lower()
    items: List[ScoreItem] = []

    for section in rubric.sections:
        section_score = 0.0
        feedback: List[str] = []

        for criterion in section.criteria:
            found_keywords = [k for k in criterion.keywords if k.lower() in lowered]
            found_concepts = [c for c in criterion.required_concepts if c.lower() in lowered]

            keyword_density = _coverage(len(found_keywords), len(criterion.keywords))
            concept_coverage = _coverage(len(found_concepts), len(criterion.required_concepts))

            raw_score = (keyword_density * 0.6 + concept_coverage * 0.4) * criterion.max_marks * criterion.weight
            section_score += min(raw_score, criterion.max_marks)

            if found_keywords:
                feedback.append(f"Good coverage of: {', '.join(found_keywords)}")
            if found_concepts:
                feedback.append(f"Demonstrates understanding of: {', '.join(found_concepts)}")
            if keyword_density < 0.3 and criterion.keywords:
                feedback.append(f"Could improve coverage of: {', '.join(criterion.keywords[:3])}")

        items.append(ScoreItem(
            id=section.name,
            awarded=min(section_score, section.total_marks),
            max_marks=section.total_marks,
            feedback=feedback,
        ))

    total_awarded = sum(item.awarded for item in items)

    return ScoreResult(
        kind="criterion",
        items=items,
        total_awarded=total_awarded,
        total_available=rubric.total_marks,
        percentage=compute_percentage(total_awarded, rubric.total_marks),
    )
