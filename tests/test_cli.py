"""Tests for CLI commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from filefinder.cli import ConsoleSink, _resolve_index_dir, _setup_logging, app
from filefinder.index.storage import SQLiteIndexStore
from filefinder.models import Document
from filefinder.search.task import SessionState


runner = CliRunner()


@pytest.fixture
def folder(tmp_path: Path) -> Path:
    root = tmp_path / "files"
    (root / "sub").mkdir(parents=True)
    (root / "report.txt").write_text("r")
    (root / "sub" / "notes.txt").write_text("n")
    (root / "sub" / "image.png").write_bytes(b"x")
    return root


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("filefinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("filefinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestResolveIndexDir:
    """Tests for _resolve_index_dir helper."""

    def test_explicit_absolute(self, tmp_path: Path) -> None:
        assert _resolve_index_dir(tmp_path / "idx") == tmp_path / "idx"

    def test_relative_resolved_against_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)

        assert _resolve_index_dir(Path("idx")) == Path.cwd() / "idx"


class TestConsoleSink:
    """Tests for ConsoleSink."""

    def test_counts_and_prints(self) -> None:
        out = MagicMock()
        sink = ConsoleSink(out)

        sink.on_match("/a/[b].txt")
        sink.on_complete()

        assert sink.count == 1
        assert sink.failure is None
        out.print.assert_called_once_with(
            "/a/[b].txt", markup=False, highlight=False, soft_wrap=True
        )

    def test_failure(self) -> None:
        sink = ConsoleSink(MagicMock())

        sink.on_failure("broken")

        assert sink.failure == "broken"


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_streams_matches(self, folder: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["search", str(folder), "*.txt", "--index-dir", str(tmp_path / "idx")]
        )

        assert result.exit_code == 0
        assert str(folder / "report.txt") in result.stdout
        assert str(folder / "sub" / "notes.txt") in result.stdout
        assert "image.png" not in result.stdout
        assert "Found 2 matches" in result.stdout

    def test_search_ignore_case(self, folder: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["search", str(folder), "REPORT", "--index-dir", str(tmp_path / "idx"), "-i"],
        )

        assert result.exit_code == 0
        assert "Found 1 matches" in result.stdout

    def test_search_not_a_directory(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["search", str(tmp_path / "missing"), "x", "--index-dir", str(tmp_path / "idx")]
        )

        assert result.exit_code != 0

    def test_search_failure_exits_nonzero(self, folder: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        result = runner.invoke(
            app, ["search", str(folder), "*.txt", "--index-dir", str(blocker / "idx")]
        )

        assert result.exit_code == 1
        assert "Search failed" in result.stdout

    @patch("filefinder.cli.SearchTask")
    def test_search_cancelled_summary(self, mock_task_class: MagicMock, folder: Path, tmp_path: Path) -> None:
        task = MagicMock()
        task.start.return_value = task
        task.wait.return_value = True
        task.state = SessionState.CANCELLED
        task.stats.stale_removed = 0
        mock_task_class.return_value = task

        result = runner.invoke(
            app, ["search", str(folder), "x", "--index-dir", str(tmp_path / "idx")]
        )

        assert result.exit_code == 0
        assert "(cancelled)" in result.stdout


class TestIndexCommand:
    """Tests for the index command."""

    def test_index_folder(self, folder: Path, tmp_path: Path) -> None:
        index_dir = tmp_path / "idx"

        result = runner.invoke(app, ["index", str(folder), "--index-dir", str(index_dir)])

        assert result.exit_code == 0
        assert "Inserted: 3" in result.stdout
        assert SQLiteIndexStore.open(index_dir).count() == 3

    def test_index_twice_updates(self, folder: Path, tmp_path: Path) -> None:
        index_dir = tmp_path / "idx"
        runner.invoke(app, ["index", str(folder), "--index-dir", str(index_dir)])

        result = runner.invoke(app, ["index", str(folder), "--index-dir", str(index_dir)])

        assert "Inserted: 0, updated: 3" in result.stdout

    def test_rebuild_discards_old_records(self, folder: Path, tmp_path: Path) -> None:
        index_dir = tmp_path / "idx"
        store = SQLiteIndexStore.open(index_dir)
        with store.writer() as writer:
            writer.upsert(Document(path="/elsewhere/x", filename="x", modified=0.0))

        result = runner.invoke(
            app, ["index", str(folder), "--index-dir", str(index_dir), "--rebuild"]
        )

        assert result.exit_code == 0
        assert SQLiteIndexStore.open(index_dir).count() == 3

    def test_index_open_failure(self, folder: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        result = runner.invoke(app, ["index", str(folder), "--index-dir", str(blocker / "idx")])

        assert result.exit_code == 1


class TestPruneCommand:
    """Tests for the prune command."""

    def test_prune_missing_index(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["prune", "--index-dir", str(tmp_path / "none")])

        assert result.exit_code == 0
        assert "nothing to prune" in result.stdout

    def test_prune_removes_orphans(self, folder: Path, tmp_path: Path) -> None:
        index_dir = tmp_path / "idx"
        runner.invoke(app, ["index", str(folder), "--index-dir", str(index_dir)])
        (folder / "report.txt").unlink()

        result = runner.invoke(app, ["prune", "--index-dir", str(index_dir)])

        assert result.exit_code == 0
        assert "Removed 1 orphaned entries" in result.stdout


class TestStatsCommand:
    """Tests for the stats command."""

    def test_stats_missing_index(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["stats", "--index-dir", str(tmp_path / "none")])

        assert result.exit_code == 0
        assert "Index not found" in result.stdout

    def test_stats_table(self, folder: Path, tmp_path: Path) -> None:
        index_dir = tmp_path / "idx"
        runner.invoke(app, ["index", str(folder), "--index-dir", str(index_dir)])

        result = runner.invoke(app, ["stats", "--index-dir", str(index_dir)])

        assert result.exit_code == 0
        assert "Documents" in result.stdout
        assert "3" in result.stdout


class TestWebCommand:
    """Tests for the web command."""

    def test_web_starts_uvicorn(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        fake_uvicorn = MagicMock()
        monkeypatch.setitem(sys.modules, "uvicorn", fake_uvicorn)
        monkeypatch.setenv("FILEFINDER_INDEX_DIR", str(tmp_path / "placeholder"))

        result = runner.invoke(
            app, ["web", "--port", "9999", "--index-dir", str(tmp_path / "idx")]
        )

        assert result.exit_code == 0
        fake_uvicorn.run.assert_called_once()
        assert fake_uvicorn.run.call_args.kwargs["port"] == 9999
