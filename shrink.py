"""
shrink.py — Shrink-and-retry policy for summarization calls.

Attempt i (0-indexed) submits the first `L - i*S` characters of the input.
The loop stops at the first success or after R attempts; a unit that never
succeeds yields None and is skipped by the caller.
"""

from __future__ import annotations
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from agents import SummarizationError
from config import TokenProcessingConfig


T = TypeVar("T")


def shrink_attempts(content: str, config: TokenProcessingConfig) -> Iterator[tuple[int, str]]:
    """Yield `(attempt_index, truncated_content)` for every allowed attempt."""
    for attempt in range(config.max_retries):
        limit = max(config.character_limit - attempt * config.reduce_char_per_retry, 0)
        yield attempt, content[:limit]


async def summarize_with_shrink(
    content: str,
    call: Callable[[str], Awaitable[T]],
    config: TokenProcessingConfig,
    *,
    label: str,
    log: Callable[[str], None] = lambda msg: None,
) -> Optional[T]:
    for attempt, truncated in shrink_attempts(content, config):
        try:
            return await call(truncated)
        except SummarizationError as e:
            log(f"  [retry {attempt + 1}/{config.max_retries}] failed summarizing {label}: {e}")
    log(f"  Giving up on {label} after {config.max_retries} attempts")
    return None
