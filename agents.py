"""
agents.py — Async summarization engine for files and folders.

Design:
- One Anthropic model serves both levels; the system prompt switches per kind
- Concurrency is capped by a semaphore so the unbounded file fan-out upstream
  does not open unbounded API requests
- Every reply must parse into {usage, summary}; anything else raises
  SummaryParseError, which the shrink-and-retry loop treats as a failed attempt
"""

from __future__ import annotations
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional
import anthropic

from config import DEFAULT_MODEL
from parser import annotate_source
from prompts import (
    FILE_SYSTEM_PROMPT, FOLDER_SYSTEM_PROMPT,
    RepoContext, file_prompt, folder_prompt,
)


KINDS = ("file", "folder")


class SummarizationError(Exception):
    pass


class SummaryParseError(SummarizationError):
    pass


@dataclass(frozen=True)
class SummaryOutput:
    usage: str
    summary: str


# ---------------------------------------------------------------------------
# Cost tracking
# ---------------------------------------------------------------------------

@dataclass
class CostTracker:
    input_tokens: int = 0
    output_tokens: int = 0
    api_calls: int = 0
    failures: int = 0

    # Approximate Haiku pricing per million tokens
    PRICE_IN  = 0.80
    PRICE_OUT = 4.00

    def add(self, input_tok: int, output_tok: int):
        self.input_tokens += input_tok
        self.output_tokens += output_tok
        self.api_calls += 1

    def estimate_usd(self) -> float:
        return (self.input_tokens * self.PRICE_IN / 1_000_000
                + self.output_tokens * self.PRICE_OUT / 1_000_000)

    def report(self) -> str:
        return (
            f"API calls: {self.api_calls} | Failures: {self.failures} | "
            f"Tokens in: {self.input_tokens:,} | Tokens out: {self.output_tokens:,} | "
            f"Est. cost: ~${self.estimate_usd():.3f}"
        )


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def _strip_json_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        if first_newline != -1 and text.endswith("```"):
            return text[first_newline + 1:-3].strip()
    return text


def parse_summary(text: str) -> SummaryOutput:
    try:
        parsed = json.loads(_strip_json_fence(text))
    except json.JSONDecodeError as e:
        raise SummaryParseError(f"reply is not JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise SummaryParseError("reply is not a JSON object")
    usage = parsed.get("usage")
    summary = parsed.get("summary")
    if not isinstance(usage, str) or not isinstance(summary, str):
        raise SummaryParseError("reply is missing string fields `usage` and `summary`")
    if not summary.strip():
        raise SummaryParseError("reply has an empty summary")
    return SummaryOutput(usage=usage.strip(), summary=summary.strip())


# ---------------------------------------------------------------------------
# Core LLM caller
# ---------------------------------------------------------------------------

class Summarizer:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        max_concurrent: int = 8,
        verbose: bool = False,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self.tracker = CostTracker()
        self.verbose = verbose

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    async def _call(self, prompt: str, *, system_prompt: str, layer: str) -> str:
        async with self.semaphore:
            try:
                response = await self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=system_prompt,
                    messages=[{"role": "user", "content": prompt}],
                )
            except anthropic.APIError as e:
                self.tracker.failures += 1
                raise SummarizationError(f"[{layer}] API error on {self.model}: {e}") from e

        self.tracker.add(response.usage.input_tokens, response.usage.output_tokens)
        chunks = [
            getattr(block, "text", "")
            for block in response.content
            if getattr(block, "type", "text") == "text"
        ]
        text = "".join(chunks).strip()
        if not text:
            self.tracker.failures += 1
            raise SummarizationError(f"[{layer}] empty reply from {self.model}")
        return text

    async def summarize(self, kind: str, context: RepoContext, content: str) -> SummaryOutput:
        """
        Summarize one file (raw source) or one folder (concatenated summaries).

        Raises SummarizationError (or SummaryParseError) on any failure.
        """
        if kind == "file":
            self._log(f"  file: {context.path} ({len(content):,} chars)")
            prompt = file_prompt(
                context=context,
                annotated_source=annotate_source(context.path, content),
            )
            system_prompt = FILE_SYSTEM_PROMPT
        elif kind == "folder":
            self._log(f"  folder: {context.path or '[root]'} ({len(content):,} chars)")
            prompt = folder_prompt(context=context, summaries=content)
            system_prompt = FOLDER_SYSTEM_PROMPT
        else:
            raise ValueError(f"Unknown summary kind: {kind!r} (expected one of {KINDS})")

        text = await self._call(prompt, system_prompt=system_prompt, layer=kind)
        try:
            return parse_summary(text)
        except SummaryParseError:
            self.tracker.failures += 1
            raise

    async def summarize_file(self, context: RepoContext, content: str) -> SummaryOutput:
        return await self.summarize("file", context, content)

    async def summarize_folder(self, context: RepoContext, summaries: str) -> SummaryOutput:
        return await self.summarize("folder", context, summaries)
