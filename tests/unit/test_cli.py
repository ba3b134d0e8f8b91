"""Tests for the waxsync command line interface."""

from collections.abc import Callable
from pathlib import Path

import pytest

from waxsync import cli
from waxsync.config import Settings
from waxsync.domain.entities import EntityType


@pytest.fixture
def use_settings(monkeypatch: pytest.MonkeyPatch, settings: Settings) -> Settings:
    """Make main() use the temp-directory settings."""
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return settings


class TestBuildParser:
    """Test argument parsing."""

    def test_import_with_period(self) -> None:
        """--period is passed through as given."""
        args = cli.build_parser().parse_args(["import", "--period", "2026-10"])
        assert args.command == "import"
        assert args.period == "2026-10"

    def test_import_defaults_to_current_month(self) -> None:
        """Without --period the job picks the current month."""
        args = cli.build_parser().parse_args(["import"])
        assert args.period is None

    def test_status_limit_default(self) -> None:
        """status shows five runs unless told otherwise."""
        args = cli.build_parser().parse_args(["status"])
        assert args.limit == 5

    def test_command_is_required(self) -> None:
        """Calling without a subcommand is a usage error."""
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    """Test main() exit codes and output."""

    def test_init_db(self, use_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        """init-db creates the schema and reports where."""
        assert cli.main(["init-db"]) == cli.EXIT_OK
        assert "Schema created" in capsys.readouterr().out

    def test_import_completes(
        self,
        use_settings: Settings,
        write_all_dumps: Callable[..., dict[EntityType, Path]],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A successful import exits 0 and prints the run summary."""
        write_all_dumps("2026-10")
        cli.main(["init-db"])
        capsys.readouterr()

        assert cli.main(["import", "--period", "2026-10"]) == cli.EXIT_OK

        out = capsys.readouterr().out
        assert "2026-10  attempt 1  completed" in out
        assert "releases" in out

    def test_import_without_dumps_fails(self, use_settings: Settings) -> None:
        """A run that ends Failed exits 1."""
        cli.main(["init-db"])
        assert cli.main(["import", "--period", "2026-10"]) == cli.EXIT_FAILED

    def test_bad_period_is_not_started(self, use_settings: Settings) -> None:
        """A malformed period exits 2 without creating a run."""
        cli.main(["init-db"])
        assert cli.main(["import", "--period", "2026-13"]) == cli.EXIT_NOT_STARTED

    def test_status_without_runs(
        self, use_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An empty database says so."""
        cli.main(["init-db"])
        capsys.readouterr()

        assert cli.main(["status"]) == cli.EXIT_OK
        assert "No import runs recorded." in capsys.readouterr().out

    def test_status_for_period(
        self,
        use_settings: Settings,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """status --period shows the latest attempt of that period."""
        cli.main(["init-db"])
        cli.main(["import", "--period", "2026-10"])
        capsys.readouterr()

        assert cli.main(["status", "--period", "2026-10"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "2026-10  attempt 1  failed" in out
        assert "SourceUnavailableError" in out

    def test_status_bad_period(self, use_settings: Settings) -> None:
        """status rejects a malformed period."""
        cli.main(["init-db"])
        assert cli.main(["status", "--period", "oct"]) == cli.EXIT_NOT_STARTED
