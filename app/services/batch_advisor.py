"""Batch size and risk advisor.

Recommends how many documents to process per batch so that a submission of
many (or very large) documents does not exhaust shared client resources or
hit remote rate limits. All functions are pure: the plan depends only on
the documents' size profiles.
"""

import math
from typing import List, Sequence, TypeVar

from app.models.batch import BatchPlan, BatchValidation
from app.models.document import SizeProfile
from app.services.document_profiler import VERY_LARGE_MAX_TOKENS, profile_document

T = TypeVar("T")

# Chunk load thresholds
MAX_CHUNKS_PER_DOCUMENT = 10
LARGE_BATCH_CHUNK_THRESHOLD = 30
MAX_TOTAL_CHUNKS = 50
MAX_VERY_LARGE_DOCUMENTS = 3

# Relative time units per file, by dominant document size
TIME_UNITS_VERY_LARGE = 8
TIME_UNITS_LARGE = 4
TIME_UNITS_DEFAULT = 1


def recommend_batch(texts: Sequence[str]) -> BatchPlan:
    """
    Recommend a batch size for a set of documents.

    Rules are evaluated in order and the first match wins: any too-large
    document makes the set unprocessable, then chunk load and very-large /
    large counts, then plain document count.

    Args:
        texts: Document texts

    Returns:
        BatchPlan; recommended_batch_size == 0 means processing is impossible
    """
    return recommend_for_profiles([profile_document(text) for text in texts])


def recommend_for_profiles(profiles: Sequence[SizeProfile]) -> BatchPlan:
    """Recommend a batch size from precomputed size profiles."""
    n = len(profiles)
    if n == 0:
        return BatchPlan(
            recommended_batch_size=0,
            total_batches=0,
            risk_level="low",
            reason="No files to process",
            estimated_time_per_batch="0 minutes",
        )

    too_large_count = sum(1 for p in profiles if p.category == "too-large")
    very_large_count = sum(1 for p in profiles if p.category == "very-large")
    large_count = sum(1 for p in profiles if p.category == "large")
    chunked = [p for p in profiles if p.category in ("medium", "large", "very-large")]
    total_chunks = sum(p.estimated_chunks for p in chunked)
    max_chunks_per_doc = max((p.estimated_chunks for p in chunked), default=0)

    if too_large_count > 0:
        return BatchPlan(
            recommended_batch_size=0,
            total_batches=0,
            risk_level="high",
            reason=(
                f"{too_large_count} document(s) exceed maximum size "
                f"({VERY_LARGE_MAX_TOKENS:,} tokens). Please split or shorten these documents."
            ),
            estimated_time_per_batch="Cannot process",
        )

    if max_chunks_per_doc > MAX_CHUNKS_PER_DOCUMENT:
        batch_size, risk_level = 1, "high"
        reason = (
            f"Some documents are extremely large ({max_chunks_per_doc} chunks). "
            "Process one at a time to avoid resource exhaustion."
        )
    elif very_large_count >= 3:
        batch_size, risk_level = 2, "high"
        reason = (
            f"{very_large_count} very large documents detected. "
            "Process 2 at a time to prevent rate limiting."
        )
    elif very_large_count > 0:
        batch_size, risk_level = 3, "medium"
        reason = (
            f"{very_large_count} very large document(s) detected. "
            "Process 3 at a time for optimal performance."
        )
    elif large_count > 0 and total_chunks > LARGE_BATCH_CHUNK_THRESHOLD:
        batch_size, risk_level = 3, "medium"
        reason = (
            f"{large_count} large document(s) will be chunked. "
            "Process 3 at a time to manage API load."
        )
    elif large_count > 0:
        batch_size, risk_level = 5, "low"
        reason = f"{large_count} large document(s) detected. Process 5 at a time for good performance."
    elif n > 20:
        batch_size, risk_level = 10, "medium"
        reason = f"Large number of files ({n}). Process 10 at a time to avoid overwhelming the system."
    elif n > 10:
        batch_size, risk_level = 8, "low"
        reason = f"Moderate batch size ({n} files). Process 8 at a time for optimal speed."
    else:
        batch_size, risk_level = n, "low"
        reason = f"Small batch size ({n} files). Can process all at once."

    if very_large_count > 0:
        time_per_file = TIME_UNITS_VERY_LARGE
    elif large_count > 0:
        time_per_file = TIME_UNITS_LARGE
    else:
        time_per_file = TIME_UNITS_DEFAULT

    return BatchPlan(
        recommended_batch_size=batch_size,
        total_batches=math.ceil(n / batch_size),
        risk_level=risk_level,
        reason=reason,
        estimated_time_per_batch=f"{math.ceil(time_per_file * batch_size)} minutes",
    )


def validate_batch(texts: Sequence[str]) -> BatchValidation:
    """List issues and recommendations for a document set before processing."""
    issues: List[str] = []
    recommendations: List[str] = []

    too_large_count = 0
    very_large_count = 0
    total_chunks = 0

    for text in texts:
        profile = profile_document(text)
        if profile.category == "too-large":
            too_large_count += 1
            issues.append(f"Document with {profile.estimated_tokens} tokens exceeds maximum size")
        elif profile.category == "very-large":
            very_large_count += 1
            total_chunks += profile.estimated_chunks
        elif profile.will_chunk:
            total_chunks += profile.estimated_chunks

    if too_large_count > 0:
        issues.append(f"{too_large_count} document(s) are too large to process")
        recommendations.append("Split large documents or use shorter excerpts")

    if total_chunks > MAX_TOTAL_CHUNKS:
        issues.append(f"Total chunks ({total_chunks}) may cause resource exhaustion")
        recommendations.append("Process fewer files at once or use smaller documents")

    if very_large_count > MAX_VERY_LARGE_DOCUMENTS:
        issues.append(f"Too many very large documents ({very_large_count})")
        recommendations.append("Process maximum 3 very large documents at once")

    if len(texts) > 20 and total_chunks > 20:
        issues.append("Large batch with complex documents may hit rate limits")
        recommendations.append("Split into smaller batches of 5-10 files")

    return BatchValidation(
        is_valid=not issues,
        issues=issues,
        recommendations=recommendations,
    )


def estimate_processing_time(texts: Sequence[str]) -> str:
    """Rough wall-clock estimate for marking a document set remotely."""
    if not texts:
        return "0 minutes"

    total_minutes = 0.0
    has_large_files = False

    for text in texts:
        profile = profile_document(text)
        if profile.category == "too-large":
            return "Cannot process - documents too large"

        if profile.will_chunk:
            has_large_files = True
            total_minutes += profile.estimated_chunks * 2  # 2 minutes per chunk
        else:
            total_minutes += 1

    # Buffer for delays between files
    total_minutes += len(texts) * 0.2

    if has_large_files:
        return (
            f"{math.ceil(total_minutes)}-{math.ceil(total_minutes * 1.5)} minutes "
            "(includes chunked processing)"
        )
    return f"{math.ceil(total_minutes)} minutes"


def split_into_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of batch_size, preserving order."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive (got {batch_size})")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]
