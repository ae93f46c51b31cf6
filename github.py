"""
github.py — Read-only GitHub REST client for repository ingestion.

Handles:
- Repository details (metadata + commit SHA of the default branch)
- Recursive tree listing at a commit
- Raw file content at a commit (raw.githubusercontent.com)
- Core rate-limit status
- Token auth via GITHUB_TOKEN
- Typed errors: not found / rate limited / transient
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx

from tree import TreeEntry


API_BASE = "https://api.github.com"
RAW_BASE = "https://raw.githubusercontent.com"


class GitHubError(Exception):
    pass


class RepositoryNotFoundError(GitHubError):
    pass


class RateLimitedError(GitHubError):
    def __init__(self, message: str, reset_at: Optional[datetime] = None):
        super().__init__(message)
        self.reset_at = reset_at


class GitHubTransientError(GitHubError):
    pass


@dataclass(frozen=True)
class RepoDetails:
    owner: str
    name: str
    url: str
    language: Optional[str]
    description: Optional[str]
    default_branch: str
    sha: str
    commit_at: Optional[datetime]
    stars: int = 0
    forks: int = 0
    topics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RateLimitStatus:
    limit: int
    remaining: int
    reset_at: datetime


# ---------------------------------------------------------------------------
# Repo references
# ---------------------------------------------------------------------------

def is_github_url(s: str) -> bool:
    """Return True if the string looks like a GitHub repository URL."""
    patterns = [
        r'^https?://(www\.)?github\.com/',
        r'^git@github\.com:',
        r'^github\.com/',
    ]
    return any(re.match(p, s) for p in patterns)


def parse_repo_ref(ref: str) -> tuple[str, str]:
    """
    Split a repository reference into (owner, repo).

    Accepts:
      owner/repo
      https://github.com/owner/repo(.git)
      github.com/owner/repo
      git@github.com:owner/repo.git
    """
    ref = ref.strip()
    if is_github_url(ref):
        ref = re.sub(r'^(https?://(www\.)?|git@)?github\.com[/:]', '', ref)
    ref = ref.rstrip("/")
    if ref.endswith(".git"):
        ref = ref[:-4]
    parts = ref.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Not a GitHub repository reference: {ref!r} (expected owner/repo)")
    return parts[0], parts[1]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GitHubClient:
    def __init__(
        self,
        *,
        token: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "repo-ingest",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.http = http or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.headers = headers

    async def aclose(self):
        await self.http.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _get(self, url: str, ctx: str, **kwargs) -> httpx.Response:
        try:
            r = await self.http.get(url, headers=self.headers, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubTransientError(f"{ctx}: {e}") from e
        self._raise_for_status(r, ctx)
        return r

    @staticmethod
    def _raise_for_status(r: httpx.Response, ctx: str):
        if r.status_code == 200:
            return
        if r.status_code in (403, 429):
            remaining = r.headers.get("X-RateLimit-Remaining")
            if remaining == "0" or "rate limit" in (r.text or "").lower():
                reset = r.headers.get("X-RateLimit-Reset")
                reset_at = (
                    datetime.fromtimestamp(int(reset), tz=timezone.utc)
                    if reset and reset.isdigit() else None
                )
                raise RateLimitedError(f"GitHub rate limit hit during {ctx}", reset_at)
        if r.status_code == 404:
            raise RepositoryNotFoundError(f"{ctx}: not found")
        raise GitHubTransientError(f"{ctx}: GitHub returned {r.status_code}: {r.text[:300]}")

    async def get_repository(self, owner: str, repo: str) -> RepoDetails:
        ctx = f"repository details for {owner}/{repo}"
        data = (await self._get(f"{API_BASE}/repos/{owner}/{repo}", ctx)).json()
        branch = data["default_branch"]
        commit = (await self._get(
            f"{API_BASE}/repos/{owner}/{repo}/commits/{branch}",
            f"head commit of {owner}/{repo}@{branch}",
        )).json()
        committed = ((commit.get("commit") or {}).get("committer") or {}).get("date")
        return RepoDetails(
            owner=data["owner"]["login"],
            name=data["name"],
            url=data["html_url"],
            language=data.get("language"),
            description=data.get("description"),
            default_branch=branch,
            sha=commit["sha"],
            commit_at=_parse_timestamp(committed or data.get("pushed_at")),
            stars=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            topics=list(data.get("topics") or []),
        )

    async def get_primary_language(self, owner: str, repo: str) -> Optional[str]:
        data = (await self._get(
            f"{API_BASE}/repos/{owner}/{repo}", f"existence check for {owner}/{repo}",
        )).json()
        return data.get("language")

    async def get_tree(self, owner: str, repo: str, sha: str) -> list[TreeEntry]:
        data = (await self._get(
            f"{API_BASE}/repos/{owner}/{repo}/git/trees/{sha}",
            f"tree of {owner}/{repo}@{sha}",
            params={"recursive": "1"},
        )).json()
        entries = []
        for item in data.get("tree", []):
            if item.get("type") == "blob":
                kind = "file"
            elif item.get("type") == "tree":
                kind = "directory"
            else:
                continue  # submodules ("commit")
            entries.append(TreeEntry(path=item["path"], kind=kind, sha=item.get("sha", "")))
        return entries

    async def get_file(self, owner: str, repo: str, sha: str, path: str) -> str:
        r = await self._get(f"{RAW_BASE}/{owner}/{repo}/{sha}/{path}", f"file {path}")
        return r.text

    async def get_rate_limit(self) -> RateLimitStatus:
        r = await self._get(f"{API_BASE}/rate_limit", "rate limit")
        try:
            core = r.json()["resources"]["core"]
            return RateLimitStatus(
                limit=int(core["limit"]),
                remaining=int(core["remaining"]),
                reset_at=datetime.fromtimestamp(int(core["reset"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GitHubTransientError(f"rate limit: unexpected response body: {e!r}") from e
