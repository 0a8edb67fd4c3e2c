"""Structure-preserving document chunking for remote marking.

Splits an oversized document into ordered chunks that each fit one remote
request's token budget. Sections are found with a fallback ladder (the
first rule yielding more than one section wins):

1. Blank-line paragraph boundaries
2. Single newlines
3. Sentence terminators (. ! ?)

Sections are accumulated greedily into chunks. Any chunk still over budget
(one enormous section) is force-sliced at max_tokens * 4 characters.

Chunks are slices of the source text, so concatenating them in order
reproduces the document up to the whitespace dropped at split points.
Chunking never fails; callers bound the resulting chunk count.
"""

import re
from typing import Iterator, List, Tuple

from app.models.document import Chunk
from app.utils.tokens import estimate_tokens, token_budget_to_chars


_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_LINE_BREAK = re.compile(r"\n")
_SENTENCE = re.compile(r"[^.!?]+[.!?]*|[.!?]+")

Span = Tuple[int, int]


def _spans_between(text: str, separator: "re.Pattern[str]") -> Iterator[Span]:
    """Yield the spans of text between separator matches."""
    position = 0
    for match in separator.finditer(text):
        yield position, match.start()
        position = match.end()
    yield position, len(text)


def _non_blank(text: str, spans: Iterator[Span]) -> List[Span]:
    return [(start, end) for start, end in spans if text[start:end].strip()]


def split_sections(text: str) -> List[Span]:
    """Find section spans using the paragraph -> line -> sentence ladder."""
    sections = _non_blank(text, _spans_between(text, _PARAGRAPH_BREAK))
    if len(sections) == 1:
        sections = _non_blank(text, _spans_between(text, _LINE_BREAK))
    if len(sections) == 1:
        sections = _non_blank(text, (m.span() for m in _SENTENCE.finditer(text)))
    return sections


def _force_slice(chunk: str, max_tokens: int) -> List[str]:
    char_limit = token_budget_to_chars(max_tokens)
    return [chunk[i:i + char_limit] for i in range(0, len(chunk), char_limit)]


def chunk_text(text: str, max_tokens_per_chunk: int) -> List[str]:
    """
    Split text into ordered chunks of at most max_tokens_per_chunk tokens.

    Args:
        text: Document text
        max_tokens_per_chunk: Token budget per chunk (must be positive)

    Returns:
        [] for blank input, [text] when it already fits, otherwise the chunks

    Raises:
        ValueError: If max_tokens_per_chunk is not positive
    """
    if max_tokens_per_chunk <= 0:
        raise ValueError(f"max_tokens_per_chunk must be positive (got {max_tokens_per_chunk})")

    if not text.strip():
        return []

    if estimate_tokens(text) <= max_tokens_per_chunk:
        return [text]

    chunks: List[str] = []
    current_start = current_end = None

    for start, end in split_sections(text):
        if current_start is None:
            current_start, current_end = start, end
            continue

        if estimate_tokens(text[current_start:end]) > max_tokens_per_chunk:
            chunks.append(text[current_start:current_end].strip())
            current_start, current_end = start, end
        else:
            current_end = end

    if current_start is not None and text[current_start:current_end].strip():
        chunks.append(text[current_start:current_end].strip())

    result: List[str] = []
    for chunk in chunks:
        if estimate_tokens(chunk) > max_tokens_per_chunk:
            result.extend(_force_slice(chunk, max_tokens_per_chunk))
        else:
            result.append(chunk)
    return result


def chunk_document(text: str, max_tokens_per_chunk: int) -> List[Chunk]:
    """Chunk text and wrap each piece with its position and token estimate."""
    pieces = chunk_text(text, max_tokens_per_chunk)
    return [
        Chunk(
            index=index,
            total_count=len(pieces),
            text=piece,
            estimated_tokens=estimate_tokens(piece),
        )
        for index, piece in enumerate(pieces)
    ]
