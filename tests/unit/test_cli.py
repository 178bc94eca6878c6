"""Tests for the `python -m lifelog` entrypoint."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lifelog.__main__ import build_parser, main


class TestParser:
    def test_sync_arguments(self):
        args = build_parser().parse_args(["sync", "demo", "--interactive", "--run-id", "12"])
        assert args.command == "sync"
        assert args.source == "demo"
        assert args.interactive is True
        assert args.run_id == 12

    def test_defaults_to_scheduler(self):
        assert build_parser().parse_args([]).command is None

    def test_sync_requires_source(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync"])


class TestMain:
    def test_sources_lists_registry(self, capsys):
        assert main(["sources"]) == 0
        out = capsys.readouterr().out.split()
        assert "spotify" in out
        assert "demo" in out

    def test_unknown_source(self):
        assert main(["sync", "myspace"]) == 2

    def test_sync_success(self):
        run = SimpleNamespace(
            id=1, status="completed", created_count=3, updated_count=0, skipped_count=1, failed_count=0,
        )
        with patch("lifelog.db.engine.get_engine", return_value=MagicMock()), \
             patch("lifelog.scheduler.jobs.run_sync", new=AsyncMock(return_value=run)) as mock_run:
            assert main(["sync", "demo", "--interactive"]) == 0

        assert mock_run.await_args.args[0] == "demo"
        assert mock_run.await_args.kwargs["interactive"] is True
        assert mock_run.await_args.kwargs["run_id"] is None

    def test_sync_failure(self):
        with patch("lifelog.db.engine.get_engine", return_value=MagicMock()), \
             patch("lifelog.scheduler.jobs.run_sync", new=AsyncMock(side_effect=RuntimeError("boom"))):
            assert main(["sync", "demo"]) == 1

    def test_setup_runs_wizard(self):
        with patch("lifelog.scripts.setup.run_setup") as mock_setup:
            assert main(["setup"]) == 0
        mock_setup.assert_called_once()
