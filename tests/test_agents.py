import asyncio
import json
from dataclasses import dataclass
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from agents import (
    Summarizer,
    SummarizationError,
    SummaryOutput,
    SummaryParseError,
    parse_summary,
)
from prompts import FILE_SYSTEM_PROMPT, FOLDER_SYSTEM_PROMPT, RepoContext


@dataclass
class _FakeResponse:
    content: list
    usage: object


class _FakeMessagesAPI:
    def __init__(self, responses: list):
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _FakeClient:
    def __init__(self, responses: list):
        self.messages = _FakeMessagesAPI(responses)


def _text_response(text: str) -> _FakeResponse:
    return _FakeResponse(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def _json_reply(usage: str, summary: str) -> _FakeResponse:
    return _text_response(json.dumps({"usage": usage, "summary": summary}))


CONTEXT = RepoContext(owner="octo", repo="demo", commit_sha="abc123", path="src/app.py")


# ---------------------------------------------------------------------------
# parse_summary
# ---------------------------------------------------------------------------

def test_parse_summary_plain_json():
    out = parse_summary('{"usage": "API Requests", "summary": "Does things."}')
    assert out == SummaryOutput(usage="API Requests", summary="Does things.")


def test_parse_summary_strips_code_fence():
    out = parse_summary('```json\n{"usage": "Parsing", "summary": "Parses."}\n```')
    assert out.usage == "Parsing"


@pytest.mark.parametrize("text", [
    "not json at all",
    "[1, 2, 3]",
    '{"summary": "missing usage"}',
    '{"usage": "x", "summary": 3}',
    '{"usage": "x", "summary": "   "}',
])
def test_parse_summary_rejects_bad_replies(text: str):
    with pytest.raises(SummaryParseError):
        parse_summary(text)


# ---------------------------------------------------------------------------
# Summarizer
# ---------------------------------------------------------------------------

def test_summarize_file_sends_annotated_source():
    client = _FakeClient([_json_reply("Server Setup", "Starts the server.")])
    summarizer = Summarizer(api_key="test", client=client, model="m", verbose=False)

    result = asyncio.run(summarizer.summarize_file(CONTEXT, "def main():\n    pass\n"))

    assert result == SummaryOutput(usage="Server Setup", summary="Starts the server.")
    call = client.messages.calls[0]
    assert call["model"] == "m"
    assert call["system"] == FILE_SYSTEM_PROMPT
    prompt = call["messages"][0]["content"]
    assert "// Line 1 - 2\ndef main():" in prompt
    assert "https://github.com/octo/demo/blob/abc123/src/app.py" in prompt
    assert summarizer.tracker.api_calls == 1
    assert summarizer.tracker.input_tokens == 10


def test_summarize_folder_uses_folder_prompt():
    client = _FakeClient([_json_reply("Core Logic", "Holds the core.")])
    summarizer = Summarizer(api_key="test", client=client, verbose=False)
    root = RepoContext(owner="octo", repo="demo", commit_sha="abc123", path="")

    asyncio.run(summarizer.summarize_folder(root, "Summary of file a.py:\nA\n"))

    call = client.messages.calls[0]
    assert call["system"] == FOLDER_SYSTEM_PROMPT
    assert "Folder path: [root]" in call["messages"][0]["content"]
    assert "Summary of file a.py:" in call["messages"][0]["content"]


def test_unparsable_reply_raises_parse_error_and_counts_failure():
    client = _FakeClient([_text_response("Sorry, I can't do that.")])
    summarizer = Summarizer(api_key="test", client=client, verbose=False)

    with pytest.raises(SummaryParseError):
        asyncio.run(summarizer.summarize_file(CONTEXT, "x = 1\n"))
    assert summarizer.tracker.failures == 1


def test_api_error_becomes_summarization_error():
    err = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    client = _FakeClient([err])
    summarizer = Summarizer(api_key="test", client=client, verbose=False)

    with pytest.raises(SummarizationError, match="API error"):
        asyncio.run(summarizer.summarize_file(CONTEXT, "x = 1\n"))
    assert summarizer.tracker.failures == 1


def test_empty_reply_is_an_error():
    client = _FakeClient([_FakeResponse(content=[], usage=SimpleNamespace(input_tokens=1, output_tokens=0))])
    summarizer = Summarizer(api_key="test", client=client, verbose=False)

    with pytest.raises(SummarizationError, match="empty reply"):
        asyncio.run(summarizer.summarize_file(CONTEXT, "x = 1\n"))


def test_unknown_kind_is_rejected():
    summarizer = Summarizer(api_key="test", client=_FakeClient([]), verbose=False)
    with pytest.raises(ValueError):
        asyncio.run(summarizer.summarize("module", CONTEXT, "x"))


def test_concurrency_is_capped():
    active = 0
    peak = 0

    class _SlowMessages:
        async def create(self, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _json_reply("u", "s")

    client = SimpleNamespace(messages=_SlowMessages())
    summarizer = Summarizer(api_key="test", client=client, max_concurrent=2, verbose=False)

    async def run_all():
        await asyncio.gather(*[summarizer.summarize_file(CONTEXT, "x = 1\n") for _ in range(6)])

    asyncio.run(run_all())
    assert peak == 2
