"""Cascade detection of student name and subject.

Used by batch marking when a document arrives without declared
identifiers. Each field is detected by a cascade of cheap text rules,
stopping at the first hit:

Student name:
1. File name prefix ("Jane Doe_essay.pdf", confidence 0.9)
2. Labelled line ("Name:", "Student:", "Submitted by:", ..., confidence 0.8)
3. First short name-like line among the first 10 lines (confidence 0.6)

Subject:
1. Labelled line ("Subject:", "Course:", "Module:", ..., confidence 0.9)
2. Known subject mentioned in the text (confidence 0.7)
3. Known subject mentioned in the file name (confidence 0.6)
"""

import re
from typing import Optional, Tuple

from app.models.document import DocumentMetadata
from app.utils.normalizers import normalize_student_name, normalize_subject


# ---------------------------------------------------------------------------
# Student name
# ---------------------------------------------------------------------------

_FILENAME_NAME_PATTERN = re.compile(r"^([a-zA-Z ]+)_")

_NAME_PATTERNS = [
    re.compile(r"submitted by:[ \t]*([a-zA-Z \t'-]+)", re.IGNORECASE),
    re.compile(r"name:[ \t]*([a-zA-Z \t'-]+)", re.IGNORECASE),
    re.compile(r"student:[ \t]*([a-zA-Z \t'-]+)", re.IGNORECASE),
    re.compile(r"\bby:[ \t]*([a-zA-Z \t'-]+)", re.IGNORECASE),
    re.compile(r"author:[ \t]*([a-zA-Z \t'-]+)", re.IGNORECASE),
]

_VALID_NAME = re.compile(r"^[a-zA-Z\s'-]+$")
_NAME_STOPWORDS = ("assignment", "project", "document")
LEADING_LINES_SCANNED = 10


def is_valid_name(name: str) -> bool:
    """2-50 letters/spaces/apostrophes/hyphens, not an obvious title word."""
    trimmed = name.strip()
    lowered = trimmed.lower()
    return (
        2 <= len(trimmed) <= 50
        and bool(_VALID_NAME.match(trimmed))
        and not any(word in lowered for word in _NAME_STOPWORDS)
    )


def _detect_name(text: str, file_name: Optional[str]) -> Optional[Tuple[str, float, str]]:
    if file_name:
        match = _FILENAME_NAME_PATTERN.match(file_name)
        if match and match.group(1).strip():
            return match.group(1).strip(), 0.9, "filename"

    for pattern in _NAME_PATTERNS:
        match = pattern.search(text)
        if match and is_valid_name(match.group(1)):
            return normalize_student_name(match.group(1)), 0.8, "label"

    for line in text.splitlines()[:LEADING_LINES_SCANNED]:
        trimmed = line.strip()
        if 2 < len(trimmed) < 50 and is_valid_name(trimmed):
            return normalize_student_name(trimmed), 0.6, "leading_line"

    return None


# ---------------------------------------------------------------------------
# Subject
# ---------------------------------------------------------------------------

_SUBJECT_PATTERNS = [
    re.compile(r"subject:[ \t]*([a-zA-Z \t]+)", re.IGNORECASE),
    re.compile(r"course:[ \t]*([a-zA-Z \t]+)", re.IGNORECASE),
    re.compile(r"module:[ \t]*([a-zA-Z \t]+)", re.IGNORECASE),
    re.compile(r"class:[ \t]*([a-zA-Z \t]+)", re.IGNORECASE),
    re.compile(r"assignment for:[ \t]*([a-zA-Z \t]+)", re.IGNORECASE),
]

# Ordered: multi-word and longer names before their substrings
COMMON_SUBJECTS = (
    "computer science", "web development", "data structures", "software engineering",
    "business studies", "physical education", "mathematics", "english", "science",
    "physics", "chemistry", "biology", "history", "geography", "programming",
    "algorithms", "database", "economics", "accounting", "marketing", "psychology",
    "sociology", "philosophy", "music", "math",
)


def _detect_subject(text: str, file_name: Optional[str]) -> Optional[Tuple[str, float, str]]:
    for pattern in _SUBJECT_PATTERNS:
        match = pattern.search(text)
        if match:
            subject = match.group(1).strip()
            if 2 <= len(subject) <= 50:
                return normalize_subject(subject), 0.9, "label"

    lowered = text.lower()
    for subject in COMMON_SUBJECTS:
        if re.search(rf"\b{re.escape(subject)}\b", lowered):
            return normalize_subject(subject), 0.7, "keyword"

    if file_name:
        lowered_name = file_name.lower()
        for subject in COMMON_SUBJECTS:
            if subject in lowered_name:
                return normalize_subject(subject), 0.6, "filename"

    return None


def detect_document_metadata(text: str, file_name: Optional[str] = None) -> DocumentMetadata:
    """
    Detect student name and subject from document text and file name.

    Args:
        text: Document text
        file_name: Original upload file name, if any

    Returns:
        DocumentMetadata; undetected fields are None with confidence 0
    """
    metadata = DocumentMetadata()

    name = _detect_name(text, file_name)
    if name:
        metadata.student_name, metadata.name_confidence, metadata.name_method = name

    subject = _detect_subject(text, file_name)
    if subject:
        metadata.subject, metadata.subject_confidence, metadata.subject_method = subject

    return metadata


def _compact(value: str) -> str:
    return re.sub(r"\s+", "", value)


def generate_marked_file_name(
    original_file_name: str,
    student_name: Optional[str] = None,
    subject: Optional[str] = None,
    prefix: str = "MARKED",
) -> str:
    """
    Build a descriptive file name for a marked report.

    Examples:
        ("essay.pdf", "Jane Doe", "History") -> "MARKED_JaneDoe_History.pdf"
        ("essay.pdf", "Jane Doe")            -> "MARKED_JaneDoe_Assignment.pdf"
        ("essay.pdf")                        -> "MARKED_essay.pdf"
    """
    extension = original_file_name.rsplit(".", 1)[-1] if "." in original_file_name else "pdf"

    if student_name and subject:
        return f"{prefix}_{_compact(student_name)}_{_compact(subject)}.{extension}"
    if student_name:
        return f"{prefix}_{_compact(student_name)}_Assignment.{extension}"
    if subject:
        return f"{prefix}_Student_{_compact(subject)}.{extension}"
    return f"{prefix}_{original_file_name}"
