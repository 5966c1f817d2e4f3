"""Tests for command-line parsing and command dispatch."""

import json
import os
from unittest.mock import patch

import pytest

from runpod_boss import main as cli
from runpod_boss.local.console import execute_command
from runpod_boss.local.errors import ConfigurationError, LinkError, ProvisioningError


class TestParseArgs:
    """Test splitting of the command line."""

    def test_defaults_to_start(self):
        assert cli.parse_args([]) == ("start", [], {}, False)

    def test_flags_and_arguments(self, tmp_path):
        command, args, overrides, verbose = cli.parse_args(
            ["provision", "--dry-run", "--verbose", "--workspace", str(tmp_path), "--profile=ComfyUI"]
        )

        assert command == "provision"
        assert args == ["--dry-run"]
        assert overrides == {"WORKSPACE_DIR": str(tmp_path), "APP_PROFILE": "comfyui"}
        assert verbose is True

    def test_flag_missing_value(self):
        with pytest.raises(ConfigurationError, match="--workspace"):
            cli.parse_args(["start", "--workspace"])


class TestMain:
    """Test the entry point with logging set-up stubbed out."""

    @pytest.fixture(autouse=True)
    def _quiet_logging(self):
        with patch.object(cli, "setup_logging"):
            yield

    def test_invalid_profile_exits_1(self, tmp_path):
        assert cli.main(["check", "--workspace", str(tmp_path), "--profile", "invokeai"]) == 1

    def test_check_reports_fresh_workspace(self, tmp_path, capsys):
        assert cli.main(["check", "--workspace", str(tmp_path), "--profile", "a1111"]) == 0

        out = capsys.readouterr().out
        assert "Not provisioned" in out
        assert "a1111-clone" in out

    def test_start_sets_process_title(self, tmp_path):
        with patch.object(cli, "setproctitle") as setproctitle, \
             patch("runpod_boss.local.console.process.startup.run_pod", return_value=0) as run_pod:
            assert cli.main(["--workspace", str(tmp_path)]) == 0

        setproctitle.assert_called_once()
        run_pod.assert_called_once()
        assert run_pod.call_args[0][0].WORKSPACE_DIR == tmp_path

    def test_status_does_not_set_process_title(self, tmp_path):
        with patch.object(cli, "setproctitle") as setproctitle:
            assert cli.main(["status", "--workspace", str(tmp_path)]) == 0
        setproctitle.assert_not_called()


class TestExecuteCommand:
    """Test the command map."""

    def test_unknown_command(self, settings):
        assert execute_command("restart-everything", [], settings) == 2

    def test_help(self, settings, capsys):
        assert execute_command("help", [], settings) == 0
        assert "provision [--dry-run]" in capsys.readouterr().out

    @pytest.mark.parametrize("error", [
        ProvisioningError("a1111-clone", "git failed", 128),
        LinkError("/workspace/ComfyUI/models/loras", "disk full"),
    ])
    def test_errors_exit_1(self, settings, error):
        with patch("runpod_boss.local.console.process.startup.run_pod", side_effect=error):
            assert execute_command("start", [], settings) == 1

    def test_provision_dry_run(self, settings, capsys):
        with patch("runpod_boss.local.console.process.startup.provision") as provision:
            provision.return_value.pending = ["system-packages"]
            assert execute_command("provision", ["--dry-run"], settings) == 0

        provision.assert_called_once_with(settings, dry_run=True)
        assert "system-packages" in capsys.readouterr().out

    def test_link(self, settings):
        (settings.COMFYUI_DIR / "models" / "vae").mkdir(parents=True)

        assert execute_command("link", [], settings) == 0
        assert (settings.COMFYUI_DIR / "models" / "vae").is_symlink()

    def test_status_without_pid_file(self, settings, capsys):
        assert execute_command("status", [], settings) == 0
        assert "STOPPED" in capsys.readouterr().out

    def test_status_with_live_and_stale_pids(self, settings, capsys):
        settings.PID_FILE_PATH.parent.mkdir(parents=True)
        settings.PID_FILE_PATH.write_text(json.dumps({"supervisor": os.getpid(), "ghost": 2 ** 22 + 1}))

        assert execute_command("status", [], settings) == 0

        out = capsys.readouterr().out
        assert "(supervisor)" in out
        assert "ghost" in out and "Stale PID" in out
