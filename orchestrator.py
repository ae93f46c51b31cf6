"""
orchestrator.py — End-to-end ingestion of one GitHub repository.

Execution order:
  1. Fetch repository details (metadata + head commit of the default branch)
  2. Insert the repository row (stop here if it already exists)
  3. Insert or resolve the branch row for the head commit
  4. Fetch the recursive tree at that commit, build and prune it
  5. Persist the folder hierarchy top-down, recording path -> folder id
  6. Fetch every retained file in parallel, summarize each with
     shrink-and-retry, insert the files that produced a summary
  7. Summarize folders bottom-up: every child folder before its parent

Step 5 must finish before step 6 inserts anything, because files find their
folder id purely by parent path. Step 7 relies on the post-order walk: a
folder only sees the summaries of children that were already computed.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from agents import SummaryOutput
from config import TokenProcessingConfig
from github import GitHubError
from prompts import RepoContext
from shrink import summarize_with_shrink
from store import Repository
from tree import RepoTree, TreeFilter, TreeNode, build_tree, parent_path, prune_tree


# ---------------------------------------------------------------------------
# Folder outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Produced:
    summary: str
    usage: str


@dataclass(frozen=True)
class Skipped:
    reason: str


FolderOutcome = Union[Produced, Skipped]


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------

@dataclass
class IngestionRun:
    owner: str
    repo: str
    commit_sha: str
    branch_id: int
    tree: RepoTree
    folder_ids: dict[str, int] = field(default_factory=dict)
    files_fetched: int = 0
    files_inserted: int = 0
    folders_summarized: int = 0

    def context(self, path: str) -> RepoContext:
        return RepoContext(owner=self.owner, repo=self.repo, commit_sha=self.commit_sha, path=path)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class IngestionOrchestrator:
    def __init__(
        self,
        *,
        github,
        summarizer,
        store,
        tokens: Optional[TokenProcessingConfig] = None,
        tree_filter: Optional[TreeFilter] = None,
        verbose: bool = True,
    ):
        self.github = github
        self.summarizer = summarizer
        self.store = store
        self.tokens = tokens or TokenProcessingConfig()
        self.tree_filter = tree_filter or TreeFilter()
        self.verbose = verbose

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    # -----------------------------------------------------------------------
    # Step 5: Folder hierarchy (top-down)
    # -----------------------------------------------------------------------

    async def _persist_hierarchy(
        self,
        run: IngestionRun,
        node: TreeNode,
        parent_id: Optional[int],
    ) -> None:
        self._log(f"  folder '{node.path or '/'}'")
        folder = await self.store.upsert_folder(node.name, node.path, run.branch_id, parent_id)
        run.folder_ids[node.path] = folder.id
        for child in run.tree.children_of(node):
            await self._persist_hierarchy(run, child, folder.id)

    # -----------------------------------------------------------------------
    # Step 6: Files (parallel fetch + summarize)
    # -----------------------------------------------------------------------

    async def _fetch_file(self, run: IngestionRun, path: str) -> Optional[str]:
        try:
            return await self.github.get_file(run.owner, run.repo, run.commit_sha, path)
        except GitHubError as e:
            self._log(f"  Failed fetching file {path}: {e}")
            return None

    async def _summarize_file(self, run: IngestionRun, path: str, content: str) -> Optional[SummaryOutput]:
        context = run.context(path)
        return await summarize_with_shrink(
            content,
            lambda text: self.summarizer.summarize_file(context, text),
            self.tokens,
            label=f"file {path}",
            log=self._log,
        )

    async def _summarize_files(self, run: IngestionRun) -> None:
        paths = list(run.tree.iter_files())
        self._log(f"\n[Step 6] Fetching {len(paths)} files in parallel...")
        contents = await asyncio.gather(*[self._fetch_file(run, p) for p in paths])
        fetched = [(p, c) for p, c in zip(paths, contents) if c]
        run.files_fetched = len(fetched)

        self._log(f"  Summarizing {len(fetched)} files...")
        results = await asyncio.gather(*[self._summarize_file(run, p, c) for p, c in fetched])

        self._log("  Inserting summarized files...")
        for (path, content), result in zip(fetched, results):
            if result is None:
                continue
            folder_id = run.folder_ids.get(parent_path(path))
            if folder_id is None:
                self._log(f"  No folder found for path '{parent_path(path)}' (file '{path}')")
                continue
            name = path.rsplit("/", 1)[-1]
            try:
                row = await self.store.insert_file(name, folder_id, content, result.summary, result.usage)
            except SQLAlchemyError as e:
                self._log(f"  Failed inserting file {path}: {e}")
                continue
            if row is not None:
                run.files_inserted += 1

    # -----------------------------------------------------------------------
    # Step 7: Folders (bottom-up)
    # -----------------------------------------------------------------------

    async def _summarize_folders(self, run: IngestionRun, node: TreeNode) -> FolderOutcome:
        child_summaries: list[str] = []
        for child in run.tree.children_of(node):
            outcome = await self._summarize_folders(run, child)
            if isinstance(outcome, Produced):
                child_summaries.append(f"Summary of folder {child.path}:\n{outcome.summary}\n")

        label = node.path or "/"
        folder_id = run.folder_ids.get(node.path)
        if folder_id is None:
            self._log(f"  No folder id for path '{label}'")
            return Skipped("missing folder id")

        files = await self.store.files_in_folder(folder_id)
        file_summaries = [f"Summary of file {f.name}:\n{f.summary}\n" for f in files]

        if not child_summaries and not file_summaries:
            self._log(f"  Nothing to summarize in '{label}', skipping")
            return Skipped("empty")

        combined = "\n\n".join(child_summaries + file_summaries)
        context = run.context(node.path)
        result = await summarize_with_shrink(
            combined,
            lambda text: self.summarizer.summarize_folder(context, text),
            self.tokens,
            label=f"folder {label}",
            log=self._log,
        )
        if result is None:
            return Skipped("summarization failed")

        try:
            await self.store.update_folder_summary(folder_id, result.summary, result.usage)
        except SQLAlchemyError as e:
            self._log(f"  Failed storing summary for folder '{label}': {e}")
        run.folders_summarized += 1
        self._log(f"  Summarized folder '{label}'")
        return Produced(summary=result.summary, usage=result.usage)

    # -----------------------------------------------------------------------
    # Main entry point
    # -----------------------------------------------------------------------

    async def run(self, owner: str, repo: str) -> Optional[Repository]:
        self._log(f"\n[Step 1] Fetching repository details for {owner}/{repo}...")
        details = await self.github.get_repository(owner, repo)

        self._log(f"[Step 2] Inserting repository {details.owner}/{details.name}...")
        repository = await self.store.insert_repository(details)
        if repository is None:
            self._log(f"  Repository already exists: {details.url}")
            return None

        self._log(f"[Step 3] Inserting branch {details.default_branch} @ {details.sha[:7]}...")
        branch = await self.store.upsert_branch(
            details.sha, details.default_branch, details.url, details.commit_at,
        )

        self._log("[Step 4] Fetching and pruning repository tree...")
        entries = await self.github.get_tree(details.owner, details.name, details.sha)
        tree = prune_tree(build_tree(entries), self.tree_filter)
        run = IngestionRun(
            owner=details.owner,
            repo=details.name,
            commit_sha=details.sha,
            branch_id=branch.id,
            tree=tree,
        )
        self._log(f"  {len(entries)} entries listed, {sum(1 for _ in tree.iter_files())} files retained")

        self._log("\n[Step 5] Inserting folder structure...")
        await self._persist_hierarchy(run, tree.root, None)

        await self._summarize_files(run)

        self._log("\n[Step 7] Summarizing folders bottom-up...")
        outcome = await self._summarize_folders(run, tree.root)
        if isinstance(outcome, Produced):
            try:
                await self.store.update_branch_summary(branch.id, outcome.summary)
            except SQLAlchemyError as e:
                self._log(f"  Failed storing branch summary: {e}")

        tracker = getattr(self.summarizer, "tracker", None)
        self._log(
            f"\n[Done] {details.owner}/{details.name}: "
            f"{run.files_inserted}/{run.files_fetched} files, "
            f"{run.folders_summarized}/{len(run.folder_ids)} folders summarized"
            + (f" | {tracker.report()}" if tracker is not None else "")
        )
        return repository
