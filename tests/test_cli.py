"""
CLI interface tests for dep-bumper.
Tests the command-line interface and main entry points.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from src.dep_bumper.error_handling import ImportMapError
from src.dep_bumper.main import cli
from src.dep_bumper.update import Span, Update, VersionFact

OLD = "https://deno.land/std@0.200.0/version.ts"
NEW = "https://deno.land/std@0.201.0/version.ts"


@pytest.fixture
def module(tmp_path):
    path = tmp_path / "mod.ts"
    path.write_text(f'import {{ VERSION }} from "{OLD}";\n', encoding="utf-8")
    return path


@pytest.fixture
def std_update(module):
    start = module.read_bytes().index(OLD.encode("utf-8"))
    return Update(
        name="deno.land/std",
        version=VersionFact(to="0.201.0", from_="0.200.0"),
        old_specifier=OLD,
        new_specifier=NEW,
        referrer=str(module),
        span=Span(start, start + len(OLD)),
    )


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "dep-bumper" in result.output.lower()

    def test_cli_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_info_command(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["info"])

        assert result.exit_code == 0
        assert "npm:" in result.output


class TestCheckCommand:
    """Test the check command."""

    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_check_no_updates(self, mock_collect, module):
        mock_collect.return_value = []

        runner = CliRunner()
        result = runner.invoke(cli, ["check", str(module)])

        assert result.exit_code == 0
        assert "No updates found" in result.output
        mock_collect.assert_called_once_with((str(module),), None)

    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_check_lists_updates_without_writing(self, mock_collect, module, std_update):
        mock_collect.return_value = [std_update]

        runner = CliRunner()
        result = runner.invoke(cli, ["check", str(module)])

        assert result.exit_code == 0
        assert "deno.land/std" in result.output
        assert "0.201.0" in result.output
        assert OLD in module.read_text(encoding="utf-8")

    def test_check_rejects_non_script_file(self, tmp_path):
        path = tmp_path / "requirements.txt"
        path.write_text("requests==2.0.0\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", str(path)])

        assert result.exit_code == 2

    def test_check_nonexistent_file(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "missing.ts"])

        assert result.exit_code == 2

    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_check_reports_errors(self, mock_collect, module):
        mock_collect.side_effect = ImportMapError("Invalid JSON in import map deno.json")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", str(module)])

        assert result.exit_code == 1


class TestUpdateCommand:
    """Test the update command."""

    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_update_writes_files(self, mock_collect, module, std_update, tmp_path):
        mock_collect.return_value = [std_update]
        summary = tmp_path / "summary.txt"
        report = tmp_path / "report.md"

        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["update", str(module), "--summary", str(summary), "--report", str(report)],
        )

        assert result.exit_code == 0
        assert module.read_text(encoding="utf-8") == f'import {{ VERSION }} from "{NEW}";\n'
        assert summary.read_text(encoding="utf-8") == "Update dependencies"
        assert report.read_text(encoding="utf-8") == "- deno.land/std 0.200.0 => 0.201.0"

    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_update_no_updates(self, mock_collect, module):
        mock_collect.return_value = []

        runner = CliRunner()
        result = runner.invoke(cli, ["update", str(module)])

        assert result.exit_code == 0
        assert "No updates found" in result.output

    def test_commit_options_require_commit(self, module):
        runner = CliRunner()
        result = runner.invoke(cli, ["update", str(module), "--prefix", "chore:"])

        assert result.exit_code == 2

    @patch("src.dep_bumper.main.execute", new_callable=AsyncMock)
    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_update_commit(self, mock_collect, mock_execute, module, std_update, tmp_path):
        mock_collect.return_value = [std_update]
        summary = tmp_path / "summary.txt"
        report = tmp_path / "report.md"

        runner = CliRunner()
        result = runner.invoke(
            cli,
            [
                "update",
                str(module),
                "--commit",
                "--prefix",
                "chore:",
                "--summary",
                str(summary),
                "--report",
                str(report),
            ],
        )

        assert result.exit_code == 0
        mock_execute.assert_called_once()
        (sequence,) = mock_execute.call_args.args
        assert [c.message for c in sequence.commits] == [
            "chore: bump deno.land/std from 0.200.0 to 0.201.0"
        ]
        assert sequence.options.pre_commit is None
        assert summary.read_text(encoding="utf-8") == "chore: bump deno.land/std from 0.200.0 to 0.201.0"
        assert report.read_text(encoding="utf-8") == "- chore: bump deno.land/std from 0.200.0 to 0.201.0"

    @patch("src.dep_bumper.main.execute", new_callable=AsyncMock)
    @patch("src.dep_bumper.main.async_collect_updates", new_callable=AsyncMock)
    def test_update_commit_failure(self, mock_collect, mock_execute, module, std_update):
        mock_collect.return_value = [std_update]
        mock_execute.side_effect = RuntimeError("git failed")

        runner = CliRunner()
        result = runner.invoke(cli, ["update", str(module), "--commit"])

        assert result.exit_code == 1


class TestConfigCommands:
    def test_config_init(self, tmp_path):
        path = tmp_path / "config.json"

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["commit"]["prefix"] == "build(deps):"

    def test_config_init_refuses_overwrite(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{}", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "init", "--path", str(path)])

        assert result.exit_code == 0
        assert path.read_text(encoding="utf-8") == "{}"

    def test_config_show(self, monkeypatch):
        monkeypatch.setenv("DEP_BUMPER_COMMIT_PREFIX", "chore(deps):")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "chore(deps):" in result.output
