"""Tests for the indexing CLI argument handling."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from scripts import index as index_cli


def _run(argv, docs_path, cache_dir):
    with patch("scripts.index.config") as mock_config, \
         patch("sys.argv", ["index.py", *argv]):
        mock_config.DOCS_PATH = docs_path
        mock_config.CACHE_DIR = cache_dir
        mock_config.LOG_LEVEL = "INFO"
        index_cli.main()


class TestRepoPath:
    def test_unset_docs_path_exits(self, tmp_path, capsys) -> None:
        with pytest.raises(SystemExit) as exc:
            _run([], None, tmp_path / "cache")
        assert exc.value.code == 1
        assert "no docs repository given" in capsys.readouterr().err

    def test_missing_directory_exits(self, tmp_path, capsys) -> None:
        with pytest.raises(SystemExit) as exc:
            _run(["--repo", str(tmp_path / "nope")], None, tmp_path / "cache")
        assert exc.value.code == 1
        assert "is not a valid directory" in capsys.readouterr().err

    def test_dry_run(self, tmp_path, capsys) -> None:
        docs = tmp_path / "docs"
        docs.mkdir()
        (docs / "guide.md").write_text("# Guide\n\n## Setup\n\nInstall it.\n")
        _run(["--repo", str(docs), "--dry-run", "--base-url", "https://github.com/acme/docs"], None, tmp_path / "cache")
        out = capsys.readouterr().out
        assert "corpus acme/docs" in out
        assert "Documents:  1" in out
        assert "Chunks:     1" in out
