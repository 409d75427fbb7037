# tests/test_cli.py
"""Test the command-line entry point"""

import json
import os

import pytest
from click.testing import CliRunner

from tube_mirror import __version__
from tube_mirror.cli import cli
from tube_mirror.core.instance_lock import InstanceLock


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(temp_dir):
    data_dir = temp_dir / "mirror"
    path = temp_dir / "config.yaml"
    path.write_text(f"output:\n  directory: \"{data_dir}\"\n", encoding="utf-8")
    return path


class TestCli:
    """Test exit codes and startup side effects"""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_urls_and_delete_conflict(self, runner, config_file):
        result = runner.invoke(cli, ["--config", str(config_file), "--urls", "x.txt", "--delete"])
        assert result.exit_code == 2

    def test_missing_config(self, runner, temp_dir):
        result = runner.invoke(cli, ["--config", str(temp_dir / "missing.yaml")])
        assert result.exit_code == 1

    def test_missing_url_file(self, runner, config_file, temp_dir):
        """Test an unreadable URL list is a configuration error"""
        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 1
        data_dir = temp_dir / "mirror"
        for name in ("playlists", "channels", "explicit_channels", "execs", "logs"):
            assert (data_dir / name).is_dir()
        stats = json.loads((data_dir / "stats.json").read_text())
        assert stats["instance_count"] == 1

    def test_empty_url_file(self, runner, config_file, temp_dir):
        data_dir = temp_dir / "mirror"
        data_dir.mkdir()
        (data_dir / "urls.txt").write_text("# nothing yet\n")

        result = runner.invoke(cli, ["--config", str(config_file)])
        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 0
        stats = json.loads((data_dir / "stats.json").read_text())
        assert stats["instance_count"] == 2

    def test_delete_with_configured_directory(self, runner, config_file, temp_dir):
        data_dir = temp_dir / "mirror"
        (data_dir / "playlists" / "to_delete").mkdir(parents=True)

        result = runner.invoke(cli, ["--config", str(config_file), "--delete"])

        assert result.exit_code == 0

    def test_delete_with_missing_directory(self, runner, config_file, temp_dir):
        result = runner.invoke(
            cli, ["--config", str(config_file), "--delete", str(temp_dir / "nope")]
        )
        assert result.exit_code == 1

    def test_second_instance_is_refused(self, runner, config_file, temp_dir):
        """Test a live lock holder makes the run exit with 3"""
        data_dir = temp_dir / "mirror"
        data_dir.mkdir()
        (data_dir / "urls.txt").write_text("")

        with InstanceLock(data_dir.resolve()) as lock:
            assert lock.acquire()
            result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 3
        assert not os.path.exists(data_dir / "stats.json")

    def test_corrupt_catalog(self, runner, config_file, temp_dir):
        data_dir = temp_dir / "mirror"
        data_dir.mkdir()
        (data_dir / "urls.txt").write_text("")
        (data_dir / "stats.json").write_text("{not json")

        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 2

    def test_mistyped_catalog(self, runner, config_file, temp_dir):
        """Test a catalog with a null field exits with 2"""
        data_dir = temp_dir / "mirror"
        data_dir.mkdir()
        (data_dir / "urls.txt").write_text("")
        (data_dir / "stats.json").write_text('{"known_videos": null}')

        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 2
