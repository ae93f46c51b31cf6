"""
admission.py — Bounded, deduplicating FIFO in front of the orchestrator.

Item lifecycle: absent -> queued -> processing -> absent.

- `admit` rejects duplicates (queued or processing), already-ingested
  repositories, a full queue, repositories the GitHub check cannot see and
  unsupported primary languages; rejections never touch queue state
- One persistent worker task owns the queue; it suspends on an event while
  the queue is empty and runs exactly one ingestion at a time
- Before each dequeue the worker checks the GitHub core rate limit and
  sleeps until the reset time (plus a buffer) when it is below the floor
- A failed ingestion is logged and the worker moves on to the next item
"""

from __future__ import annotations
import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import QueueConfig
from github import GitHubError


ALLOWED_LANGUAGES: frozenset[str] = frozenset({
    "Python", "JavaScript", "TypeScript", "Java", "Scala",
    "C++", "C", "Go", "Ruby", "Rust", "PHP",
})


# ---------------------------------------------------------------------------
# Admission errors
# ---------------------------------------------------------------------------

class AdmissionError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DuplicateInQueueError(AdmissionError):
    pass


class AlreadyIngestedError(AdmissionError):
    pass


class QueueFullError(AdmissionError):
    pass


class RepositoryUnavailableError(AdmissionError):
    pass


class UnsupportedLanguageError(AdmissionError):
    pass


# ---------------------------------------------------------------------------
# Queue shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueueItem:
    owner: str
    repo: str

    @property
    def key(self) -> tuple[str, str]:
        return self.owner.lower(), self.repo.lower()

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class AdmissionResult:
    accepted: bool
    item: QueueItem
    reason: Optional[str] = None


@dataclass(frozen=True)
class QueueStatus:
    pending: list[QueueItem]
    current: Optional[QueueItem]
    started_at: Optional[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------

class AdmissionQueue:
    def __init__(
        self,
        *,
        github,
        store,
        orchestrator,
        config: Optional[QueueConfig] = None,
        allowed_languages: Iterable[str] = ALLOWED_LANGUAGES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
        verbose: bool = True,
    ):
        self.github = github
        self.store = store
        self.orchestrator = orchestrator
        self.config = config or QueueConfig()
        self.allowed_languages = frozenset(allowed_languages)
        self.verbose = verbose
        self._sleep = sleep
        self._now = now

        self._pending: deque[QueueItem] = deque()
        self._current: Optional[QueueItem] = None
        self._started_at: Optional[datetime] = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: Optional[asyncio.Task] = None

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker task if it is not running. Safe to call repeatedly."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._worker(), name="admission-worker")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def join(self) -> None:
        """Wait until nothing is queued or processing."""
        await self._idle.wait()

    # -----------------------------------------------------------------------
    # Admission
    # -----------------------------------------------------------------------

    def _check_local(self, item: QueueItem) -> None:
        if item.key in {p.key for p in self._pending} or (
            self._current is not None and self._current.key == item.key
        ):
            raise DuplicateInQueueError(f"Repository {item} is already in the queue")

    def _check_capacity(self, item: QueueItem) -> None:
        if len(self._pending) >= self.config.max_queue_size:
            raise QueueFullError(
                f"Queue is full ({self.config.max_queue_size} pending), try {item} again later"
            )

    async def _check(self, item: QueueItem) -> None:
        self._check_local(item)
        try:
            exists = await self.store.repository_exists(item.owner, item.repo)
        except SQLAlchemyError as e:
            raise AdmissionError(f"Could not check whether {item} was already ingested: {e}") from e
        if exists:
            raise AlreadyIngestedError(f"Repository {item} has already been ingested")
        self._check_capacity(item)

        try:
            language = await self.github.get_primary_language(item.owner, item.repo)
        except GitHubError as e:
            raise RepositoryUnavailableError(f"Repository {item} could not be found: {e}") from e
        if language not in self.allowed_languages:
            raise UnsupportedLanguageError(
                f"Repository {item} has unsupported primary language: {language or 'unknown'}"
            )

        # State may have moved while the checks above were awaiting.
        self._check_local(item)
        self._check_capacity(item)

    async def admit(self, owner: str, repo: str) -> AdmissionResult:
        item = QueueItem(owner=owner, repo=repo)
        try:
            await self._check(item)
        except AdmissionError as e:
            self._log(f"[queue] rejected {item}: {e.reason}")
            return AdmissionResult(accepted=False, item=item, reason=e.reason)

        self._pending.append(item)
        self._idle.clear()
        self.start()
        self._wakeup.set()
        self._log(f"[queue] admitted {item} ({len(self._pending)} pending)")
        return AdmissionResult(accepted=True, item=item)

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    def inspect(self) -> QueueStatus:
        return QueueStatus(
            pending=list(self._pending),
            current=self._current,
            started_at=self._started_at.isoformat() if self._started_at else None,
        )

    async def ingested(self) -> list:
        """Stored repositories, leaving out the one still being processed."""
        current = self._current
        exclude = (current.owner, current.repo) if current is not None else None
        return await self.store.list_repositories(exclude=exclude)

    # -----------------------------------------------------------------------
    # Worker
    # -----------------------------------------------------------------------

    async def _respect_rate_limit(self) -> None:
        try:
            status = await self.github.get_rate_limit()
        except GitHubError as e:
            self._log(f"[queue] rate limit check failed, continuing: {e}")
            return
        if status.remaining >= self.config.rate_limit_floor:
            return
        wait = max((status.reset_at - self._now()).total_seconds(), 0.0)
        wait += self.config.rate_limit_buffer_secs
        self._log(
            f"[queue] {status.remaining} GitHub calls left (floor {self.config.rate_limit_floor}), "
            f"pausing {wait:.0f}s until reset"
        )
        await self._sleep(wait)

    async def _process(self, item: QueueItem) -> None:
        self._current = item
        self._started_at = self._now()
        self._log(f"[queue] processing {item}")
        try:
            await self.orchestrator.run(item.owner, item.repo)
        except Exception as e:
            self._log(f"[queue] ingestion of {item} failed: {type(e).__name__}: {e}")
        finally:
            self._current = None
            self._started_at = None

    async def _worker(self) -> None:
        while True:
            if not self._pending:
                self._idle.set()
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            try:
                await self._respect_rate_limit()
            except Exception as e:
                self._log(f"[queue] rate limit check failed, continuing: {type(e).__name__}: {e}")
            await self._process(self._pending.popleft())
