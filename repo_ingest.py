#!/usr/bin/env python3
"""
repo_ingest.py — CLI entry point.

Usage:
    # One repository
    python repo_ingest.py owner/repo

    # Several, by URL or owner/repo, with a status line every 10 seconds
    python repo_ingest.py https://github.com/owner/a owner/b --status-interval 10

    # Different database
    python repo_ingest.py owner/repo --database-url postgresql+psycopg://localhost/ingest

Environment:
    ANTHROPIC_API_KEY  — required (or pass --api-key)
    GITHUB_TOKEN       — optional, raises the GitHub rate limit (or pass --github-token)
    DATABASE_URL       — SQLAlchemy URL, defaults to sqlite:///repo_ingest.db
    See config.py for the summarization and queue tuning variables.
"""

from __future__ import annotations
import argparse
import asyncio
import sys
from dataclasses import replace

from admission import AdmissionQueue
from agents import Summarizer
from config import Settings
from github import GitHubClient, parse_repo_ref
from orchestrator import IngestionOrchestrator
from store import FolderTree, RepositoryTree, Store


def _first_line(text: str | None, limit: int = 100) -> str:
    stripped = (text or "").strip()
    line = stripped.splitlines()[0] if stripped else ""
    return line if len(line) <= limit else line[: limit - 3] + "..."


def render_tree(tree: RepositoryTree) -> str:
    repo = tree.repository
    lines = [f"# {repo.owner}/{repo.name}", ""]
    if repo.description:
        lines += [repo.description, ""]
    if tree.topics:
        lines += [f"Topics: {', '.join(tree.topics)}", ""]
    if tree.branch is None:
        lines.append("(no branch stored)")
        return "\n".join(lines)
    lines += [f"Branch: {tree.branch.name} @ {tree.branch.commit_sha[:7]}", ""]
    if tree.branch.summary:
        lines += [tree.branch.summary, ""]

    def walk(node: FolderTree, depth: int):
        indent = "  " * depth
        label = f"{node.folder.path}/" if node.folder.path else "/"
        usage = f" — {node.folder.usage}" if node.folder.usage else ""
        lines.append(f"{indent}{label}{usage}")
        for f in node.files:
            lines.append(f"{indent}  {f.name} — {f.usage}: {_first_line(f.summary)}")
        for sub in node.subfolders:
            walk(sub, depth + 1)

    for root in tree.folders:
        walk(root, 0)
    return "\n".join(lines)


async def _report_status(queue: AdmissionQueue, interval: float):
    while True:
        await asyncio.sleep(interval)
        status = queue.inspect()
        current = f"{status.current} since {status.started_at}" if status.current else "idle"
        pending = ", ".join(str(i) for i in status.pending) or "none"
        print(f"[status] processing: {current} | pending: {pending}", flush=True)


async def main():
    parser = argparse.ArgumentParser(
        description="Ingest GitHub repositories into a database of hierarchical LLM summaries.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("repos", nargs="+",
                        help="owner/repo or GitHub URL (e.g. https://github.com/owner/repo)")
    parser.add_argument("--api-key", default=None,
                        help="Anthropic API key (default: ANTHROPIC_API_KEY)")
    parser.add_argument("--github-token", default=None,
                        help="GitHub token (default: GITHUB_TOKEN)")
    parser.add_argument("--database-url", default=None,
                        help="SQLAlchemy database URL (default: DATABASE_URL or local SQLite)")
    parser.add_argument("--model", default=None,
                        help="Summary model (default: SUMMARY_MODEL or a Haiku model)")
    parser.add_argument("--max-concurrent", type=int, default=None,
                        help="Max concurrent summarization calls (default: SUMMARY_CONCURRENCY or 8)")
    parser.add_argument("--status-interval", type=float, default=0.0,
                        help="Print a queue status line every N seconds (0 disables)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only print admission results and the final report")

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    settings = replace(
        settings,
        anthropic_api_key=args.api_key or settings.anthropic_api_key,
        github_token=args.github_token or settings.github_token,
        database_url=args.database_url or settings.database_url,
        model=args.model or settings.model,
        concurrency=args.max_concurrent or settings.concurrency,
    )
    if not settings.anthropic_api_key:
        print("Error: ANTHROPIC_API_KEY environment variable not set.", file=sys.stderr)
        sys.exit(1)

    refs = []
    for raw in args.repos:
        try:
            refs.append(parse_repo_ref(raw))
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    verbose = not args.quiet
    store = Store(settings.database_url)
    store.create_schema()
    summarizer = Summarizer(
        api_key=settings.anthropic_api_key,
        model=settings.model,
        max_tokens=settings.max_tokens,
        max_concurrent=settings.concurrency,
        verbose=verbose,
    )

    async with GitHubClient(token=settings.github_token) as github:
        orchestrator = IngestionOrchestrator(
            github=github,
            summarizer=summarizer,
            store=store,
            tokens=settings.tokens,
            verbose=verbose,
        )
        queue = AdmissionQueue(
            github=github,
            store=store,
            orchestrator=orchestrator,
            config=settings.queue,
            verbose=verbose,
        )

        admitted = []
        for owner, repo in refs:
            result = await queue.admit(owner, repo)
            if result.accepted:
                print(f"✅ Admitted {result.item}", flush=True)
                admitted.append((owner, repo))
            else:
                print(f"❌ Rejected {result.item}: {result.reason}", flush=True)

        reporter = None
        if args.status_interval > 0:
            reporter = asyncio.create_task(_report_status(queue, args.status_interval))
        try:
            await queue.join()
        finally:
            if reporter is not None:
                reporter.cancel()
            await queue.stop()

    for owner, repo in admitted:
        tree = await store.load_repository_tree(owner, repo)
        if tree is None:
            print(f"\n⚠️  {owner}/{repo}: nothing stored (ingestion failed)")
            continue
        print("\n" + render_tree(tree))

    print(f"\n💰 {summarizer.tracker.report()}")
    store.dispose()


def run_cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run_cli()
