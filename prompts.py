"""
prompts.py — Prompts for file-level and folder-level summaries.

Both levels ask for the same two-field JSON object:
    {"usage": "<under 10 words>", "summary": "<markdown prose with links>"}

Links point at line ranges on GitHub:
    https://github.com/{owner}/{repo}/blob/{commit}/{path}#L{start}-L{end}
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class RepoContext:
    owner: str
    repo: str
    commit_sha: str
    path: str

    def blob_url(self, path: str | None = None) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/blob/{self.commit_sha}/{path or self.path}"


# ---------------------------------------------------------------------------
# Output format
# ---------------------------------------------------------------------------

def format_instructions(kind: str) -> str:
    usage_examples = (
        "Data Parsing, API Requests" if kind == "file"
        else "Server Lifecycle Management, API Utility Functions"
    )
    return f"""Respond with a single JSON object and nothing else:
{{
  "usage": "What the {kind} is used for, in less than 10 words (ex. {usage_examples})",
  "summary": "Summary of the {kind}: its main purpose and its role in the project, at most 2-3 paragraphs"
}}
Inside "summary", link important code blocks with Markdown links of the form
[Description of Code Block](https://github.com/{{owner}}/{{repo}}/blob/{{commitSha}}/{{path}}#L{{startLine}}-L{{endLine}})."""


# ---------------------------------------------------------------------------
# File level
# ---------------------------------------------------------------------------

FILE_SYSTEM_PROMPT = """You are an expert software engineer writing a developer-friendly wiki page for a GitHub repository.
You receive one source file. Each block of the file is preceded by a `// Line a - b` marker giving its line range.
Describe what the file is responsible for, its role in the overall system, its dependencies on other modules,
and the important classes, functions and data structures it defines.
Identify core algorithms, data structures and design patterns, and how data flows through the file.
Link every code block you reference using the line markers."""


def file_prompt(*, context: RepoContext, annotated_source: str) -> str:
    return f"""{format_instructions("file")}

Repository owner: {context.owner}
Repository name: {context.repo}
Commit SHA: {context.commit_sha}
File path: {context.path}
File URL: {context.blob_url()}

Below is the code for your task:
{annotated_source}"""


# ---------------------------------------------------------------------------
# Folder level
# ---------------------------------------------------------------------------

FOLDER_SYSTEM_PROMPT = """You are an expert software engineer writing a developer-friendly wiki page for a GitHub repository.
You receive the summaries of the files and subfolders inside one folder.
Start with the core functionality among them (folders named like the repository, "core" or "src" usually hold it;
utility folders matter only when they carry important information).
Explain the folder's responsibilities, its role in the overall system and its dependencies on other folders,
and highlight the important classes, functions and data structures of its files and subfolders.
Keep the links already present in the summaries you reference."""


def folder_prompt(*, context: RepoContext, summaries: str) -> str:
    folder = context.path or "[root]"
    return f"""{format_instructions("folder")}

Repository owner: {context.owner}
Repository name: {context.repo}
Commit SHA: {context.commit_sha}
Folder path: {folder}

Below are the summaries for the codebase:
{summaries}"""
