"""Question/task segmentation of student submissions.

Partitions a document into answer units by scanning for positional markers
at the start of lines, in priority order:

1. "Task N" / "N. Task"
2. "Section N" / "N. Section"
3. "Question N" / "QN" / "N. Question"
4. Bare numbered items ("N." / "N)")
5. Lettered items ("a." / "a)")

Marker positions from all classes are merged, deduplicated and sorted; the
text between consecutive markers is one unit, labelled by the
highest-priority class matched at its position. Documents with no usable
markers fall back to blank-line paragraphs longer than 50 characters.
"""

import re
from typing import Dict, List, Tuple

from app.models.marking import AnswerUnit
from app.services.topic_classifier import classify_topic


MIN_UNIT_CHARS = 10
MIN_FALLBACK_PARAGRAPH_CHARS = 50

_FLAGS = re.IGNORECASE | re.MULTILINE
_NUMBER = r"(\d+(?:\.\d+)?)"

# (marker class, pattern) in priority order
MARKER_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("task", re.compile(rf"^[ \t]*task[ \t]*{_NUMBER}[:.\s]", _FLAGS)),
    ("task", re.compile(rf"^[ \t]*{_NUMBER}[ \t]*[.)][ \t]*task\b", _FLAGS)),
    ("section", re.compile(rf"^[ \t]*section[ \t]*{_NUMBER}[:.\s]", _FLAGS)),
    ("section", re.compile(rf"^[ \t]*{_NUMBER}[ \t]*[.)][ \t]*section\b", _FLAGS)),
    ("question", re.compile(rf"^[ \t]*(?:question|q)[ \t]*{_NUMBER}[:.\s]", _FLAGS)),
    ("question", re.compile(rf"^[ \t]*{_NUMBER}[ \t]*[.)][ \t]*question\b", _FLAGS)),
    ("numbered", re.compile(rf"^[ \t]*{_NUMBER}[ \t]*[.)]\s+", _FLAGS)),
    ("lettered", re.compile(r"^[ \t]*([a-z])[ \t]*[.)]\s+", _FLAGS)),
)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _format_label(marker_class: str, number: str) -> str:
    if marker_class == "task":
        return f"Task {number}"
    if marker_class == "section":
        return f"Section {number}"
    if marker_class == "question":
        return f"Q{number}"
    return number


def find_markers(text: str) -> List[Tuple[int, str]]:
    """Return (position, label) for every distinct marker, sorted by position."""
    markers: Dict[int, str] = {}
    for marker_class, pattern in MARKER_PATTERNS:
        for match in pattern.finditer(text):
            # Earlier patterns have higher priority at a shared position
            markers.setdefault(match.start(), _format_label(marker_class, match.group(1)))
    return sorted(markers.items())


def estimate_max_marks(content: str) -> int:
    """Nominal marks for a unit from its word count."""
    word_count = len(content.split())
    if word_count < 20:
        return 2
    if word_count < 50:
        return 3
    if word_count < 100:
        return 5
    return 5


def _make_unit(label: str, raw: str, offset: int) -> AnswerUnit:
    content = raw.strip()
    return AnswerUnit(
        label=label,
        content=content,
        topic=classify_topic(content),
        max_marks=estimate_max_marks(content),
        start_offset=offset + len(raw) - len(raw.lstrip()),
    )


def _paragraph_units(text: str) -> List[AnswerUnit]:
    units: List[AnswerUnit] = []
    position = 0
    boundaries = [(m.start(), m.end()) for m in _PARAGRAPH_BREAK.finditer(text)]
    boundaries.append((len(text), len(text)))

    for start, end in boundaries:
        raw = text[position:start]
        if len(raw.strip()) > MIN_FALLBACK_PARAGRAPH_CHARS:
            units.append(_make_unit(f"Section {len(units) + 1}", raw, position))
        position = end
    return units


def segment_document(text: str) -> List[AnswerUnit]:
    """
    Split a document into ordered answer units.

    Args:
        text: Document text

    Returns:
        AnswerUnits in document order; empty if nothing usable is found
    """
    markers = find_markers(text)
    units: List[AnswerUnit] = []

    for i, (position, label) in enumerate(markers):
        end = markers[i + 1][0] if i + 1 < len(markers) else len(text)
        raw = text[position:end]
        if len(raw.strip()) >= MIN_UNIT_CHARS:
            units.append(_make_unit(label, raw, position))

    if not units:
        units = _paragraph_units(text)

    return units
