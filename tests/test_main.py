#!/usr/bin/env python3
"""Unit tests for the cleanup CLI.

Tests cover:
    - Argument parsing and flag/env merging
    - Exit codes for configuration errors, failures and partial failures

Note: GraphClient and the use case are mocked; no Graph calls are made.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
import main
from src.intune.cleanup.domain.entities import (
    ActionOutcome,
    CandidateSource,
    CleanupResult,
    RequestedAction,
)
from src.intune.cleanup.domain.errors import InvalidArgumentError
from src.intune.config import CleanupConfig


@pytest.fixture(autouse=True)
def env_vars(monkeypatch):
    monkeypatch.setenv("AZURE_TENANT_ID", "tenant")
    monkeypatch.setenv("AZURE_CLIENT_ID", "client")
    monkeypatch.setenv("AZURE_CLIENT_SECRET", "secret")
    for name in ("CLEANUP_ACTION", "CLEANUP_DRY_RUN", "CLEANUP_STALE_DAYS",
                 "CLEANUP_EXCLUSIONS_FILE", "CLEANUP_INCLUDE_DIRECTORY", "GRAPH_BASE_URL"):
        monkeypatch.delenv(name, raising=False)


def parse(*argv):
    return main.build_parser().parse_args(list(argv))


def make_result(**kwargs) -> CleanupResult:
    defaults = dict(
        success=True,
        requested_action=RequestedAction.DELETE,
        dry_run=False,
        started_at=datetime.now(timezone.utc),
        completed_at=datetime.now(timezone.utc),
    )
    defaults.update(kwargs)
    return CleanupResult(**defaults)


def mock_graph_client():
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


class TestBuildOptions:
    """Test CLI flag merging over environment defaults."""

    def test_defaults_are_safe(self):
        options = main.build_options(parse(), CleanupConfig())

        assert options.requested_action == RequestedAction.EXPORT
        assert options.dry_run is True
        assert options.stale_days == 90
        assert options.exclusions_path is None

    def test_flags_override(self):
        args = parse(
            "--stale-days", "30",
            "--duplicate-threshold", "2",
            "--max-count", "5",
            "--action", "DELETE",
            "--exclusions", "keep.csv",
            "--include-directory",
            "--execute",
        )

        options = main.build_options(args, CleanupConfig())

        assert options.stale_days == 30
        assert options.duplicate_threshold == 2
        assert options.max_count == 5
        assert options.requested_action == RequestedAction.DELETE
        assert options.exclusions_path == Path("keep.csv")
        assert options.include_directory is True
        assert options.dry_run is False

    def test_whatif_beats_env(self, monkeypatch):
        monkeypatch.setenv("CLEANUP_DRY_RUN", "false")

        options = main.build_options(parse("--whatif"), CleanupConfig())

        assert options.dry_run is True

    def test_whatif_and_execute_exclusive(self):
        with pytest.raises(SystemExit):
            parse("--whatif", "--execute")

    def test_zero_stale_days_is_kept(self):
        options = main.build_options(parse("--stale-days", "0"), CleanupConfig())
        assert options.stale_days == 0


class TestRunCleanup:
    """Test exit codes of run_cleanup."""

    @pytest.mark.asyncio
    async def test_missing_credentials_exit_1(self, monkeypatch):
        monkeypatch.delenv("AZURE_CLIENT_SECRET")

        assert await main.run_cleanup(parse()) == main.EXIT_FAILED

    @pytest.mark.asyncio
    async def test_success_exit_0(self, tmp_path):
        use_case = MagicMock()
        use_case.execute = AsyncMock(return_value=make_result())

        with patch("main.GraphClient", return_value=mock_graph_client()), \
                patch("main.CleanupDevicesUseCase", return_value=use_case):
            code = await main.run_cleanup(parse("--output-dir", str(tmp_path)))

        assert code == main.EXIT_OK

    @pytest.mark.asyncio
    async def test_partial_failure_exit_2(self):
        outcomes = [
            ActionOutcome("1", "PC-1", CandidateSource.MANAGED_DEVICE, RequestedAction.DELETE, True),
            ActionOutcome("2", "PC-2", CandidateSource.MANAGED_DEVICE, RequestedAction.DELETE, False, "x"),
        ]
        use_case = MagicMock()
        use_case.execute = AsyncMock(
            return_value=make_result(success=False, executed=True, outcomes=outcomes)
        )

        with patch("main.GraphClient", return_value=mock_graph_client()), \
                patch("main.CleanupDevicesUseCase", return_value=use_case):
            code = await main.run_cleanup(parse("--action", "delete", "--execute"))

        assert code == main.EXIT_PARTIAL

    @pytest.mark.asyncio
    async def test_failed_run_exit_1(self):
        use_case = MagicMock()
        use_case.execute = AsyncMock(
            return_value=make_result(success=False, error_details=["Device fetch failed"])
        )

        with patch("main.GraphClient", return_value=mock_graph_client()), \
                patch("main.CleanupDevicesUseCase", return_value=use_case):
            code = await main.run_cleanup(parse())

        assert code == main.EXIT_FAILED

    @pytest.mark.asyncio
    async def test_invalid_argument_exit_1(self):
        use_case = MagicMock()
        use_case.execute = AsyncMock(
            side_effect=InvalidArgumentError("stale_days", -1, "must be >= 0")
        )

        with patch("main.GraphClient", return_value=mock_graph_client()), \
                patch("main.CleanupDevicesUseCase", return_value=use_case):
            code = await main.run_cleanup(parse("--stale-days", "-1"))

        assert code == main.EXIT_FAILED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
