"""Token estimation shared by size profiling, chunking and prompt budgeting.

Every size decision in the service goes through estimate_tokens() so the
document profiler and the chunker always agree on how many chunks a text
produces.
"""

import math

# Rough approximation for English text: 1 token ~ 4 characters
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Estimate token count for text.

    Args:
        text: Text to estimate token count for

    Returns:
        ceil(len(text) / 4); 0 for an empty string
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def token_budget_to_chars(max_tokens: int) -> int:
    """Character width that corresponds to a token budget."""
    return max_tokens * CHARS_PER_TOKEN
