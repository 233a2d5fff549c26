"""Where corpus documents come from."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from docseek import config
from docseek.git_utils import get_remote_url, list_tracked_files

logger = logging.getLogger(__name__)

_GITHUB_RE = re.compile(r"github\.com[/:]([^/]+)/([^/]+)")

DEFAULT_CORPUS_ID = "default/default"


@dataclass(frozen=True)
class SourceDocument:
    name: str  # unique within a corpus
    path: str
    content: str
    source_url: str = ""


class DocumentSource(Protocol):
    def fetch_documents(self) -> list[SourceDocument]:
        ...


def corpus_id_from_url(url: str | None) -> str:
    """``owner/repo`` from a GitHub URL, or ``default/default``."""
    if not url:
        return DEFAULT_CORPUS_ID
    m = _GITHUB_RE.search(url)
    if not m:
        return DEFAULT_CORPUS_ID
    repo = m.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return f"{m.group(1)}/{repo}"


def _web_base(url: str) -> str:
    """Turn an SSH or .git remote into a browsable https base URL."""
    url = url.strip().rstrip("/")
    if url.startswith("git@github.com:"):
        url = "https://github.com/" + url[len("git@github.com:"):]
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url


class LocalRepoSource:
    """Markdown files from a local checkout.

    Inside a git work tree only tracked files are read (``git ls-files``);
    otherwise the directory is scanned. Document names are repo-relative
    paths, so they are unique.
    """

    def __init__(
        self,
        repo_path: Path,
        base_url: str | None = None,
        ref: str | None = None,
        patterns: list[str] | None = None,
    ) -> None:
        self._repo_path = Path(repo_path)
        self._ref = ref or config.DOCS_REF
        self._patterns = patterns or ["*.md"]
        if base_url is None:
            base_url = config.DOCS_BASE_URL or get_remote_url(self._repo_path) or ""
        self._base_url = _web_base(base_url) if base_url else ""

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def corpus_id(self) -> str:
        return corpus_id_from_url(self._base_url)

    def source_url(self, path: str) -> str:
        if not self._base_url:
            return ""
        return f"{self._base_url}/blob/{self._ref}/{path}"

    def _list_paths(self) -> list[str]:
        if (self._repo_path / ".git").exists():
            return list_tracked_files(self._repo_path, self._patterns)
        paths: set[str] = set()
        for pattern in self._patterns:
            for p in self._repo_path.rglob(pattern):
                if p.is_file():
                    paths.add(p.relative_to(self._repo_path).as_posix())
        return sorted(paths)

    def fetch_documents(self) -> list[SourceDocument]:
        docs: list[SourceDocument] = []
        for rel in self._list_paths():
            full = self._repo_path / rel
            try:
                content = full.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping %s: %s", rel, e)
                continue
            docs.append(SourceDocument(name=rel, path=rel, content=content, source_url=self.source_url(rel)))
        logger.info("Loaded %d markdown file(s) from %s", len(docs), self._repo_path)
        return docs
