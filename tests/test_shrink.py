import asyncio

import pytest

from agents import SummarizationError, SummaryParseError
from config import TokenProcessingConfig
from shrink import shrink_attempts, summarize_with_shrink


CONFIG = TokenProcessingConfig(character_limit=100, reduce_char_per_retry=30, max_retries=3)


def test_attempt_lengths_shrink_linearly():
    content = "x" * 500
    lengths = [len(text) for _, text in shrink_attempts(content, CONFIG)]
    assert lengths == [100, 70, 40]


def test_short_content_is_not_padded():
    lengths = [len(text) for _, text in shrink_attempts("abc", CONFIG)]
    assert lengths == [3, 3, 3]


def test_stops_on_first_success():
    seen: list[int] = []

    async def call(text: str) -> str:
        seen.append(len(text))
        if len(seen) < 2:
            raise SummarizationError("too long")
        return "ok"

    result = asyncio.run(summarize_with_shrink("y" * 500, call, CONFIG, label="file a.py"))
    assert result == "ok"
    assert seen == [100, 70]


def test_gives_up_after_max_retries():
    seen: list[int] = []
    logs: list[str] = []

    async def call(text: str) -> str:
        seen.append(len(text))
        raise SummaryParseError("not JSON")

    result = asyncio.run(
        summarize_with_shrink("z" * 500, call, CONFIG, label="file b.py", log=logs.append)
    )
    assert result is None
    assert seen == [100, 70, 40]
    assert any("[retry 3/3]" in msg for msg in logs)
    assert logs[-1] == "  Giving up on file b.py after 3 attempts"


def test_unexpected_errors_propagate():
    async def call(text: str) -> str:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        asyncio.run(summarize_with_shrink("a", call, CONFIG, label="file c.py"))
