"""
config.py — Runtime settings, read from the environment.

Environment:
    PROCESSOR_CHAR_LIMIT                     — base character limit per summarization call
    TOKEN_PROCESSING_REDUCE_CHAR_PER_RETRY   — characters dropped on every retry
    TOKEN_PROCESSING_MAX_RETRIES             — summarization attempts per file/folder
    QUEUE_MAX_SIZE                           — pending repositories allowed in the queue
    RATE_LIMIT_FLOOR                         — pause the queue below this many GitHub calls
    RATE_LIMIT_BUFFER_SECS                   — extra wait after the GitHub reset time
    ANTHROPIC_API_KEY, SUMMARY_MODEL, SUMMARY_MAX_TOKENS, SUMMARY_CONCURRENCY
    GITHUB_TOKEN                             — optional, raises the GitHub rate limit
    DATABASE_URL                             — SQLAlchemy URL (default: local SQLite file)
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


DEFAULT_MODEL = "claude-haiku-4-5-20251001"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class TokenProcessingConfig:
    character_limit: int = 100_000      # ~25k tokens
    reduce_char_per_retry: int = 20_000
    max_retries: int = 3

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("TOKEN_PROCESSING_MAX_RETRIES should be greater than 0")
        if self.character_limit <= self.reduce_char_per_retry:
            raise ValueError(
                "PROCESSOR_CHAR_LIMIT should be greater than "
                "TOKEN_PROCESSING_REDUCE_CHAR_PER_RETRY"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "TokenProcessingConfig":
        env = os.environ if env is None else env
        return cls(
            character_limit=_env_int(env, "PROCESSOR_CHAR_LIMIT", 100_000),
            reduce_char_per_retry=_env_int(env, "TOKEN_PROCESSING_REDUCE_CHAR_PER_RETRY", 20_000),
            max_retries=_env_int(env, "TOKEN_PROCESSING_MAX_RETRIES", 3),
        )


@dataclass(frozen=True)
class QueueConfig:
    max_queue_size: int = 25
    rate_limit_floor: int = 500
    rate_limit_buffer_secs: float = 1.0

    def __post_init__(self):
        if self.max_queue_size < 1:
            raise ValueError("QUEUE_MAX_SIZE should be greater than 0")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "QueueConfig":
        env = os.environ if env is None else env
        return cls(
            max_queue_size=_env_int(env, "QUEUE_MAX_SIZE", 25),
            rate_limit_floor=_env_int(env, "RATE_LIMIT_FLOOR", 500),
            rate_limit_buffer_secs=_env_float(env, "RATE_LIMIT_BUFFER_SECS", 1.0),
        )


@dataclass(frozen=True)
class Settings:
    tokens: TokenProcessingConfig = field(default_factory=TokenProcessingConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    anthropic_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 2048
    concurrency: int = 8
    github_token: Optional[str] = None
    database_url: str = "sqlite:///repo_ingest.db"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            tokens=TokenProcessingConfig.from_env(env),
            queue=QueueConfig.from_env(env),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            model=env.get("SUMMARY_MODEL") or DEFAULT_MODEL,
            max_tokens=_env_int(env, "SUMMARY_MAX_TOKENS", 2048),
            concurrency=_env_int(env, "SUMMARY_CONCURRENCY", 8),
            github_token=env.get("GITHUB_TOKEN") or None,
            database_url=env.get("DATABASE_URL") or "sqlite:///repo_ingest.db",
        )
