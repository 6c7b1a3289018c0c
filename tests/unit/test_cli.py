"""Tests for the click-based CLI."""

import logging
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from ci_log_migrator.cli import commands
from ci_log_migrator.cli.commands import cli, handle_exception
from ci_log_migrator.exceptions import (
    CheckpointError,
    MigrationAbortedError,
    UnexpectedStatusError,
)
from ci_log_migrator.types import MigrationSummary

ENV_VARS = (
    "API_URL",
    "API_KEY",
    "PAGE_SIZE_FOR_PIPELINES_RETRIEVAL",
    "PAGE_SIZE_FOR_MIGRATION",
    "PAGES_TO_MIGRATE_IN_PARALLEL",
    "PIPELINES_TO_MIGRATE_IN_PARALLEL",
    "CHECKPOINT_BACKEND",
    "CONFIG_PATH",
    "CONFIGMAP_NAME",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    # Handlers installed by setup_logger point at CliRunner streams that are closed now
    logging.getLogger("ci_log_migrator").handlers.clear()


def _migrate_args(tmp_path, *extra):
    return [
        "migrate",
        "--api_url",
        "https://ci.example.com",
        "--api_key",
        "secret",
        "--checkpoint_backend",
        "file",
        "--config_path",
        str(tmp_path / "config.yaml"),
        *extra,
    ]


class TestCLIGroup:
    """Tests for the CLI group structure."""

    def test_cli_has_all_subcommands(self):
        assert set(cli.commands.keys()) == {"migrate", "status"}

    def test_version_flag(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "ci-log-migrator" in result.output

    def test_help_output(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "migrate" in result.output
        assert "status" in result.output

    def test_short_help_flag(self):
        result = CliRunner().invoke(cli, ["-h"])
        assert result.exit_code == 0
        assert "migrate" in result.output


class TestMigrateCommand:
    """Tests for the migrate subcommand."""

    def test_help_shows_all_options(self):
        result = CliRunner().invoke(cli, ["migrate", "--help"])
        assert result.exit_code == 0
        for opt in [
            "--api_url",
            "--api_key",
            "--page_size_for_pipelines_retrieval",
            "--page_size_for_migration",
            "--pages_to_migrate_in_parallel",
            "--pipelines_to_migrate_in_parallel",
            "--checkpoint_backend",
            "--config_path",
            "--configmap_name",
            "--dry_run",
            "--verbose",
            "--log_format",
        ]:
            assert opt in result.output, f"Missing option {opt} in help output"

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_runs_migration(self, mock_migrator_cls, tmp_path):
        mock_migrator = mock_migrator_cls.return_value
        mock_migrator.migrate.return_value = MigrationSummary(
            pipelines_listed=2, pipelines_migrated=["x/y/a", "x/y/b"], items_copied=4
        )

        result = CliRunner().invoke(cli, _migrate_args(tmp_path, "--dry_run"))

        assert result.exit_code == 0, result.output
        config = mock_migrator_cls.call_args.args[0]
        assert config.api_url == "https://ci.example.com"
        assert config.checkpoint_backend == "file"
        assert config.dry_run is True
        mock_migrator.migrate.assert_called_once()
        mock_migrator.close.assert_called_once()

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_parameters_logged_through_package_logger(
        self, mock_migrator_cls, tmp_path, caplog
    ):
        mock_migrator_cls.return_value.migrate.return_value = MigrationSummary()

        with caplog.at_level(logging.INFO, logger="ci_log_migrator"):
            result = CliRunner().invoke(cli, _migrate_args(tmp_path))

        assert result.exit_code == 0, result.output
        messages = [
            r.getMessage() for r in caplog.records if r.name == "ci_log_migrator"
        ]
        assert "- API URL: https://ci.example.com" in messages
        assert not any("secret" in message for message in messages)

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_defaults_to_migrate_subcommand(self, mock_migrator_cls, tmp_path):
        mock_migrator_cls.return_value.migrate.return_value = MigrationSummary()

        result = CliRunner().invoke(cli, _migrate_args(tmp_path)[1:])

        assert result.exit_code == 0, result.output
        mock_migrator_cls.assert_called_once()

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_options_read_from_environment(self, mock_migrator_cls, tmp_path):
        mock_migrator_cls.return_value.migrate.return_value = MigrationSummary()
        env = {
            "API_URL": "https://env.example.com/",
            "API_KEY": "from-env",
            "PAGE_SIZE_FOR_PIPELINES_RETRIEVAL": "25",
            "PAGE_SIZE_FOR_MIGRATION": "7",
            "PAGES_TO_MIGRATE_IN_PARALLEL": "3",
            "PIPELINES_TO_MIGRATE_IN_PARALLEL": "2",
            "CHECKPOINT_BACKEND": "file",
            "CONFIG_PATH": str(tmp_path / "config.yaml"),
        }

        result = CliRunner().invoke(cli, [], env=env)

        assert result.exit_code == 0, result.output
        config = mock_migrator_cls.call_args.args[0]
        assert config.api_url == "https://env.example.com"
        assert config.api_key == "from-env"
        assert config.page_size_for_pipelines_retrieval == 25
        assert config.page_size_for_migration == 7
        assert config.pages_to_migrate_in_parallel == 3
        assert config.pipelines_to_migrate_in_parallel == 2

    def test_missing_api_url_is_usage_error(self, tmp_path):
        args = [a for a in _migrate_args(tmp_path) if a not in ("--api_url",)]
        args.remove("https://ci.example.com")

        result = CliRunner().invoke(cli, args)

        assert result.exit_code == 2
        assert "API URL is required" in result.output

    def test_invalid_page_size_is_usage_error(self, tmp_path):
        result = CliRunner().invoke(
            cli, _migrate_args(tmp_path, "--page_size_for_migration", "0")
        )
        assert result.exit_code == 2

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_aborted_migration_exits_1(self, mock_migrator_cls, tmp_path):
        mock_migrator = mock_migrator_cls.return_value
        mock_migrator.migrate.side_effect = MigrationAbortedError(
            "Failed copying logs", pipeline="x/y/a", remaining=3
        )

        result = CliRunner().invoke(cli, _migrate_args(tmp_path))

        assert result.exit_code == 1
        mock_migrator.close.assert_called_once()

    @patch("ci_log_migrator.cli.migrate_cmd.LogMigrator")
    def test_checkpoint_error_exits_1(self, mock_migrator_cls, tmp_path):
        mock_migrator_cls.side_effect = CheckpointError("no cluster")

        result = CliRunner().invoke(cli, _migrate_args(tmp_path))

        assert result.exit_code == 1


class TestStatusCommand:
    """Tests for the status subcommand."""

    def test_reports_finished_pipelines(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("finishedPipelines:\n- x/y/a\n- x/y/b\n")

        result = CliRunner().invoke(
            cli,
            ["status", "--checkpoint_backend", "file", "--config_path", str(path)],
        )

        assert result.exit_code == 0, result.output
        assert "Finished pipelines: 2" in result.output
        assert "x/y/a" not in result.output

    def test_list_prints_every_pipeline(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("finishedPipelines:\n- x/y/a\n- x/y/b\n")

        result = CliRunner().invoke(
            cli,
            [
                "status",
                "--checkpoint_backend",
                "file",
                "--config_path",
                str(path),
                "--list",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "x/y/a" in result.output
        assert "x/y/b" in result.output

    def test_corrupt_checkpoint_exits_1(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("finishedPipelines: 12\n")

        result = CliRunner().invoke(
            cli,
            ["status", "--checkpoint_backend", "file", "--config_path", str(path)],
        )

        assert result.exit_code == 1


class TestHandleException:
    """Tests for handle_exception()."""

    def test_aborted_migration(self, caplog):
        with caplog.at_level(logging.INFO, logger="ci_log_migrator"):
            handle_exception(
                MigrationAbortedError("Failed copying logs", pipeline="x/y/a")
            )
        assert "Failed copying logs" in caplog.text
        assert "rerun the migration" in caplog.text

    def test_unexpected_status(self, caplog):
        error = UnexpectedStatusError(401, "GET", "https://ci/api", [200], b"denied")
        with caplog.at_level(logging.ERROR, logger="ci_log_migrator"):
            handle_exception(error)
        assert "API error during migration" in caplog.text

    def test_keyboard_interrupt(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ci_log_migrator"):
            handle_exception(KeyboardInterrupt())
        assert "interrupted" in caplog.text

    def test_unexpected_exception_logs_traceback(self, caplog):
        with caplog.at_level(logging.ERROR, logger="ci_log_migrator"):
            handle_exception(RuntimeError("kaboom"))
        record = caplog.records[-1]
        assert "Migration failed: kaboom" in record.getMessage()
        assert record.exc_info is not None

    def test_generic_migrator_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="ci_log_migrator"):
            handle_exception(CheckpointError("cannot write"))
        assert "cannot write" in caplog.text


def test_main_invokes_cli():
    with patch.object(commands, "cli", MagicMock()) as mock_cli:
        commands.main()
    mock_cli.assert_called_once()
