"""
store.py — Relational store for ingested repositories.

Tables: repository (+ repository_topic), branch, folder, file.

Natural keys make every write idempotent:
- repository.url               insert, no-op on conflict (returns None)
- branch (repository_url, commit_sha)   insert or fetch existing
- folder (branch_id, path)     insert or fetch existing
- file (folder_id, name)       insert, no-op on conflict (returns None)

SQLAlchemy sessions are synchronous; every public method runs its unit of
work in a worker thread so callers can await it alongside network I/O.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import (
    Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
    create_engine, select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from github import RepoDetails


Base = declarative_base()
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Repository(Base):
    __tablename__ = "repository"

    url = Column(String, primary_key=True)
    owner = Column(String, index=True, nullable=False)
    name = Column(String, index=True, nullable=False)
    language = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    default_branch = Column(String, nullable=False)
    stars = Column(Integer, default=0)
    forks = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Repository(owner='{self.owner}', name='{self.name}')>"


class RepositoryTopic(Base):
    __tablename__ = "repository_topic"

    repository_url = Column(String, ForeignKey("repository.url", ondelete="CASCADE"), primary_key=True)
    topic = Column(String, primary_key=True)


class Branch(Base):
    __tablename__ = "branch"
    __table_args__ = (
        UniqueConstraint("repository_url", "commit_sha", name="uq_branch_commit"),
    )

    id = Column(Integer, primary_key=True)
    commit_sha = Column(String, nullable=False)
    name = Column(String, nullable=False)
    repository_url = Column(String, ForeignKey("repository.url", ondelete="CASCADE"), index=True, nullable=False)
    commit_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    summary = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Branch(name='{self.name}', commit='{self.commit_sha[:7]}')>"


class Folder(Base):
    __tablename__ = "folder"
    __table_args__ = (
        UniqueConstraint("branch_id", "path", name="uq_folder_path"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    parent_id = Column(Integer, ForeignKey("folder.id", ondelete="CASCADE"), nullable=True)
    branch_id = Column(Integer, ForeignKey("branch.id", ondelete="CASCADE"), index=True, nullable=False)
    summary = Column(Text, nullable=True)
    usage = Column(String, nullable=True)

    def __repr__(self):
        return f"<Folder(path='{self.path}')>"


class File(Base):
    __tablename__ = "file"
    __table_args__ = (
        UniqueConstraint("folder_id", "name", name="uq_file_name"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    folder_id = Column(Integer, ForeignKey("folder.id", ondelete="CASCADE"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=False)
    usage = Column(String, nullable=False)

    def __repr__(self):
        return f"<File(name='{self.name}', folder_id={self.folder_id})>"


# ---------------------------------------------------------------------------
# Read-back shapes
# ---------------------------------------------------------------------------

@dataclass
class FolderTree:
    folder: Folder
    files: list[File] = field(default_factory=list)
    subfolders: list["FolderTree"] = field(default_factory=list)


@dataclass
class RepositoryTree:
    repository: Repository
    topics: list[str]
    branch: Optional[Branch]
    folders: list[FolderTree]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def make_engine(url: str):
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if parsed.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


class Store:
    def __init__(self, url: str = "sqlite:///repo_ingest.db", *, engine=None):
        self.engine = engine or make_engine(url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self):
        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.engine.dispose()

    async def _run(self, fn: Callable[[Session], T]) -> T:
        def unit_of_work() -> T:
            with self._sessions() as session:
                return fn(session)
        return await asyncio.to_thread(unit_of_work)

    # -----------------------------------------------------------------------
    # Repository
    # -----------------------------------------------------------------------

    async def insert_repository(self, details: RepoDetails) -> Optional[Repository]:
        """Insert a repository row; None when the url is already stored."""
        def work(session: Session) -> Optional[Repository]:
            row = Repository(
                url=details.url,
                owner=details.owner,
                name=details.name,
                language=details.language,
                description=details.description,
                default_branch=details.default_branch,
                stars=details.stars,
                forks=details.forks,
            )
            session.add(row)
            session.add_all(
                RepositoryTopic(repository_url=details.url, topic=t)
                for t in dict.fromkeys(details.topics)
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return None
            session.refresh(row)
            return row
        return await self._run(work)

    async def get_repository(self, owner: str, name: str) -> Optional[Repository]:
        def work(session: Session) -> Optional[Repository]:
            return session.scalars(
                select(Repository).where(
                    func.lower(Repository.owner) == owner.lower(),
                    func.lower(Repository.name) == name.lower(),
                )
            ).first()
        return await self._run(work)

    async def repository_exists(self, owner: str, name: str) -> bool:
        return await self.get_repository(owner, name) is not None

    async def list_repositories(self, exclude: Optional[tuple[str, str]] = None) -> list[Repository]:
        def work(session: Session) -> list[Repository]:
            rows = session.scalars(select(Repository).order_by(Repository.created_at)).all()
            if exclude is None:
                return list(rows)
            skip = (exclude[0].lower(), exclude[1].lower())
            return [r for r in rows if (r.owner.lower(), r.name.lower()) != skip]
        return await self._run(work)

    # -----------------------------------------------------------------------
    # Branch
    # -----------------------------------------------------------------------

    async def upsert_branch(
        self,
        commit_sha: str,
        name: str,
        repository_url: str,
        commit_at: Optional[datetime],
    ) -> Branch:
        def work(session: Session) -> Branch:
            row = Branch(
                commit_sha=commit_sha,
                name=name,
                repository_url=repository_url,
                commit_at=commit_at,
            )
            session.add(row)
            try:
                session.commit()
                session.refresh(row)
                return row
            except IntegrityError:
                session.rollback()
            return session.scalars(
                select(Branch).where(
                    Branch.repository_url == repository_url,
                    Branch.commit_sha == commit_sha,
                )
            ).one()
        return await self._run(work)

    async def update_branch_summary(self, branch_id: int, summary: str) -> None:
        def work(session: Session) -> None:
            row = session.get(Branch, branch_id)
            if row is None:
                raise LookupError(f"No branch with id {branch_id}")
            row.summary = summary
            session.commit()
        await self._run(work)

    async def latest_branch(self, repository_url: str) -> Optional[Branch]:
        def work(session: Session) -> Optional[Branch]:
            return session.scalars(
                select(Branch)
                .where(Branch.repository_url == repository_url)
                .order_by(Branch.created_at.desc(), Branch.id.desc())
            ).first()
        return await self._run(work)

    # -----------------------------------------------------------------------
    # Folder
    # -----------------------------------------------------------------------

    async def upsert_folder(
        self,
        name: str,
        path: str,
        branch_id: int,
        parent_id: Optional[int],
    ) -> Folder:
        def work(session: Session) -> Folder:
            row = Folder(name=name, path=path, branch_id=branch_id, parent_id=parent_id)
            session.add(row)
            try:
                session.commit()
                return row
            except IntegrityError:
                session.rollback()
            return session.scalars(
                select(Folder).where(Folder.branch_id == branch_id, Folder.path == path)
            ).one()
        return await self._run(work)

    async def update_folder_summary(self, folder_id: int, summary: str, usage: str) -> None:
        def work(session: Session) -> None:
            row = session.get(Folder, folder_id)
            if row is None:
                raise LookupError(f"No folder with id {folder_id}")
            row.summary = summary
            row.usage = usage
            session.commit()
        await self._run(work)

    async def folders_in_branch(self, branch_id: int) -> list[Folder]:
        def work(session: Session) -> list[Folder]:
            return list(session.scalars(
                select(Folder).where(Folder.branch_id == branch_id).order_by(Folder.id)
            ).all())
        return await self._run(work)

    # -----------------------------------------------------------------------
    # File
    # -----------------------------------------------------------------------

    async def insert_file(
        self,
        name: str,
        folder_id: int,
        content: str,
        summary: str,
        usage: str,
    ) -> Optional[File]:
        """Insert a file row; None when (folder, name) is already stored."""
        def work(session: Session) -> Optional[File]:
            row = File(name=name, folder_id=folder_id, content=content, summary=summary, usage=usage)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return None
            return row
        return await self._run(work)

    async def files_in_folder(self, folder_id: int) -> list[File]:
        def work(session: Session) -> list[File]:
            return list(session.scalars(
                select(File).where(File.folder_id == folder_id).order_by(File.id)
            ).all())
        return await self._run(work)

    # -----------------------------------------------------------------------
    # Read-back
    # -----------------------------------------------------------------------

    async def load_repository_tree(self, owner: str, name: str) -> Optional[RepositoryTree]:
        """Repository, latest branch and its nested folder/file tree."""
        def work(session: Session) -> Optional[RepositoryTree]:
            repo = session.scalars(
                select(Repository).where(
                    func.lower(Repository.owner) == owner.lower(),
                    func.lower(Repository.name) == name.lower(),
                )
            ).first()
            if repo is None:
                return None
            topics = list(session.scalars(
                select(RepositoryTopic.topic)
                .where(RepositoryTopic.repository_url == repo.url)
                .order_by(RepositoryTopic.topic)
            ).all())
            branch = session.scalars(
                select(Branch)
                .where(Branch.repository_url == repo.url)
                .order_by(Branch.created_at.desc(), Branch.id.desc())
            ).first()
            if branch is None:
                return RepositoryTree(repository=repo, topics=topics, branch=None, folders=[])

            folders = session.scalars(
                select(Folder).where(Folder.branch_id == branch.id).order_by(Folder.id)
            ).all()
            files = session.scalars(
                select(File).where(File.folder_id.in_([f.id for f in folders])).order_by(File.id)
            ).all() if folders else []

            nodes = {f.id: FolderTree(folder=f) for f in folders}
            for file in files:
                nodes[file.folder_id].files.append(file)
            roots: list[FolderTree] = []
            for f in folders:
                parent = nodes.get(f.parent_id) if f.parent_id is not None else None
                (parent.subfolders if parent else roots).append(nodes[f.id])
            return RepositoryTree(repository=repo, topics=topics, branch=branch, folders=roots)
        return await self._run(work)
