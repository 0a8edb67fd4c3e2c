"""Tests for document size profiling."""

import pytest

from app.services.document_profiler import (
    estimate_chunks,
    profile_document,
    will_document_be_chunked,
)


def _text_of_tokens(tokens: int) -> str:
    return "x" * (tokens * 4)


@pytest.mark.parametrize(
    "tokens,category,risk,chunks,will_chunk",
    [
        (0, "small", "low", 1, False),
        (3000, "small", "low", 1, False),
        (3001, "medium", "low", 1, False),
        (6000, "medium", "low", 1, False),
        (6001, "large", "medium", 2, True),
        (12000, "large", "medium", 2, True),
        (12001, "very-large", "high", 3, True),
        (30000, "very-large", "high", 5, True),
        (30001, "too-large", "critical", 6, False),
    ],
)
def test_profile_thresholds(tokens, category, risk, chunks, will_chunk):
    profile = profile_document(_text_of_tokens(tokens))

    assert profile.estimated_tokens == tokens
    assert profile.category == category
    assert profile.risk_level == risk
    assert profile.estimated_chunks == chunks
    assert profile.will_chunk is will_chunk


def test_processing_time_hints():
    assert profile_document("short").processing_time == "30-60 seconds"
    assert profile_document(_text_of_tokens(5000)).processing_time == "1-2 minutes"
    assert profile_document(_text_of_tokens(10000)).processing_time == "4-6 minutes"
    assert profile_document(_text_of_tokens(20000)).processing_time == "8-16 minutes"
    assert profile_document(_text_of_tokens(40000)).processing_time == "Will fail"


@pytest.mark.parametrize("tokens,expected", [(1, 1), (6000, 1), (6001, 2), (18000, 3), (18001, 4)])
def test_estimate_chunks(tokens, expected):
    assert estimate_chunks(tokens) == expected


def test_will_document_be_chunked_accounts_for_prompt_and_memo():
    text = _text_of_tokens(11000)

    assert will_document_be_chunked(text, has_prompt=False) is False
    assert will_document_be_chunked(text, has_prompt=True) is False
    assert will_document_be_chunked(text, has_prompt=True, has_memo=True) is True
