"""Document size profiling.

Classifies a document by estimated token count so the batch advisor and
the remote marking path can decide how (and whether) to process it.
"""

import math

from app.models.document import SizeProfile
from app.utils.tokens import estimate_tokens


SMALL_MAX_TOKENS = 3000
MEDIUM_MAX_TOKENS = 6000
LARGE_MAX_TOKENS = 12000
VERY_LARGE_MAX_TOKENS = 30000

# Chunk size assumed when estimating how many chunks a document needs
PROFILE_CHUNK_TOKENS = 6000

# Rough prompt/memo overheads used by will_document_be_chunked()
PROMPT_OVERHEAD_TOKENS = 500
MEMO_OVERHEAD_TOKENS = 1000


def estimate_chunks(tokens: int, max_tokens_per_chunk: int = PROFILE_CHUNK_TOKENS) -> int:
    """Number of chunks a document of `tokens` tokens would be split into."""
    if tokens <= max_tokens_per_chunk:
        return 1
    return math.ceil(tokens / max_tokens_per_chunk)


def profile_document(text: str) -> SizeProfile:
    """
    Classify a document's size.

    Args:
        text: Document text

    Returns:
        SizeProfile with category, chunk estimate and risk level
    """
    tokens = estimate_tokens(text)
    chunks = estimate_chunks(tokens)

    if tokens <= SMALL_MAX_TOKENS:
        return SizeProfile(
            estimated_tokens=tokens,
            category="small",
            estimated_chunks=1,
            risk_level="low",
            will_chunk=False,
            description="Small document",
            processing_time="30-60 seconds",
        )
    if tokens <= MEDIUM_MAX_TOKENS:
        return SizeProfile(
            estimated_tokens=tokens,
            category="medium",
            estimated_chunks=1,
            risk_level="low",
            will_chunk=False,
            description="Medium document",
            processing_time="1-2 minutes",
        )
    if tokens <= LARGE_MAX_TOKENS:
        return SizeProfile(
            estimated_tokens=tokens,
            category="large",
            estimated_chunks=chunks,
            risk_level="medium",
            will_chunk=True,
            description="Large document",
            processing_time=f"{chunks * 2}-{chunks * 3} minutes",
        )
    if tokens <= VERY_LARGE_MAX_TOKENS:
        return SizeProfile(
            estimated_tokens=tokens,
            category="very-large",
            estimated_chunks=chunks,
            risk_level="high",
            will_chunk=True,
            description="Very large document",
            processing_time=f"{chunks * 2}-{chunks * 4} minutes",
        )
    return SizeProfile(
        estimated_tokens=tokens,
        category="too-large",
        estimated_chunks=chunks,
        risk_level="critical",
        will_chunk=False,
        description="Document too large",
        processing_time="Will fail",
    )


def will_document_be_chunked(text: str, has_prompt: bool = True, has_memo: bool = False) -> bool:
    """Whether remote marking is likely to split this document."""
    base_tokens = PROMPT_OVERHEAD_TOKENS if has_prompt else 0
    memo_tokens = MEMO_OVERHEAD_TOKENS if has_memo else 0
    max_content_tokens = LARGE_MAX_TOKENS - base_tokens - memo_tokens
    return estimate_tokens(text) > max_content_tokens
