"""Normalize marks, grades, student names and subjects for marking reports."""

import math
from typing import Optional

SUBJECT_MAPPINGS: dict[str, str] = {
    "maths": "Mathematics",
    "math": "Mathematics",
    "mathematics": "Mathematics",
    "pe": "Physical Education",
    "physical education": "Physical Education",
    "cs": "Computer Science",
    "computer science": "Computer Science",
    "web development": "Web Development",
    "data structures": "Data Structures",
    "software engineering": "Software Engineering",
    "business studies": "Business Studies",
    "bus studies": "Business Studies",
}

# (minimum percentage, grade) in descending order
GRADE_BANDS: tuple[tuple[int, str], ...] = (
    (90, "A+ (Outstanding)"),
    (80, "A (Excellent)"),
    (70, "B (Good)"),
    (60, "C (Satisfactory)"),
    (50, "D (Pass)"),
)
FAIL_GRADE = "F (Fail)"
UNGRADED = "N/A"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return math.floor(value + 0.5)


def compute_percentage(awarded: float, available: float) -> Optional[int]:
    """round(100 * awarded / available); None when nothing is available."""
    if available <= 0:
        return None
    return round_half_up(100 * awarded / available)


def letter_grade(percentage: Optional[int]) -> str:
    """Map a percentage to its letter grade band."""
    if percentage is None:
        return UNGRADED
    for minimum, grade in GRADE_BANDS:
        if percentage >= minimum:
            return grade
    return FAIL_GRADE


def format_marks(value: float) -> str:
    """Render marks without a trailing .0 ('3', '12.5')."""
    return f"{value:g}" if float(value).is_integer() else f"{value:.1f}"


def normalize_student_name(name: str) -> str:
    """Title-case each part of a name ('jane  DOE' -> 'Jane Doe')."""
    return " ".join(part.capitalize() for part in name.split())


def normalize_subject(subject: str) -> str:
    """Normalize subject names. Unknown subjects keep their text with a capitalized first letter."""
    if not subject or not subject.strip():
        return subject.strip() if subject else ""
    key = subject.strip().lower()
    return SUBJECT_MAPPINGS.get(key, key.capitalize())
