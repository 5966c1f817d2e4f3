"""Unit tests for provisioning actions."""

import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest
import requests

from runpod_boss.local.errors import ProvisioningError
from runpod_boss.local.provision import (
    AppendToLastLine, Command, Download, Marker, RemoveFiles, WriteFile,
)
from runpod_boss.local.provision.actions import patch_json_file


class TestCommand:
    """Test the Command action."""

    def test_success(self, tmp_path):
        target = tmp_path / "touched"
        Command((sys.executable, "-c", f"open({str(target)!r}, 'w').close()")).run("step")
        assert target.exists()

    def test_cwd_and_env(self, tmp_path):
        script = "import os; open('out.txt', 'w').write(os.environ['RB_TEST_VALUE'])"
        Command((sys.executable, "-c", script), cwd=tmp_path, env={"RB_TEST_VALUE": "42"}).run("step")
        assert (tmp_path / "out.txt").read_text() == "42"

    def test_non_zero_exit_raises(self):
        with pytest.raises(ProvisioningError) as excinfo:
            Command((sys.executable, "-c", "import sys; sys.exit(3)")).run("failing-step")
        assert excinfo.value.step == "failing-step"
        assert excinfo.value.returncode == 3
        assert "exit status 3" in str(excinfo.value)

    def test_missing_executable_raises(self):
        with pytest.raises(ProvisioningError, match="could not run"):
            Command(("/nonexistent/runpod-boss-binary",)).run("step")


class TestDownload:
    """Test the Download action with a mocked HTTP session."""

    def test_writes_file_and_sets_mode(self, tmp_path):
        response = MagicMock()
        response.iter_content.return_value = [b"#!/bin/sh\n", b"echo hi\n"]
        response.__enter__.return_value = response
        dest = tmp_path / "bin" / "install.sh"

        with patch("runpod_boss.local.provision.actions.requests.get", return_value=response) as get:
            Download("https://example.invalid/install.sh", dest).run("step")

        get.assert_called_once()
        assert dest.read_bytes() == b"#!/bin/sh\necho hi\n"
        assert os.stat(dest).st_mode & 0o777 == 0o755
        assert not (tmp_path / "bin" / "install.sh.part").exists()

    def test_http_error_raises_and_cleans_up(self, tmp_path):
        response = MagicMock()
        response.__enter__.return_value = response
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        dest = tmp_path / "install.sh"

        with patch("runpod_boss.local.provision.actions.requests.get", return_value=response):
            with pytest.raises(ProvisioningError, match="download of"):
                Download("https://example.invalid/install.sh", dest).run("step")

        assert not dest.exists()
        assert not (tmp_path / "install.sh.part").exists()


class TestFileActions:
    """Test the file-editing actions."""

    def test_write_file(self, tmp_path):
        path = tmp_path / "conf" / "webui-user.sh"
        WriteFile(path, "export A=1\n", 0o755).run("step")
        assert path.read_text() == "export A=1\n"
        assert os.stat(path).st_mode & 0o777 == 0o755

    def test_patch_json_merges(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"keep": 1, "sd_checkpoint_autoload": True}))

        merged = patch_json_file(path, {"sd_checkpoint_autoload": False})

        assert merged == {"keep": 1, "sd_checkpoint_autoload": False}
        assert json.loads(path.read_text()) == {"keep": 1, "sd_checkpoint_autoload": False}

    def test_patch_json_rejects_non_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            patch_json_file(path, {"a": 1})

    def test_append_to_last_line_once(self, tmp_path):
        launcher = tmp_path / "run_gpu.sh"
        launcher.write_text("#!/bin/bash\ncd ComfyUI\npython main.py --preview-method auto\n")
        action = AppendToLastLine(launcher, "--listen")

        action.run("step")
        action.run("step")

        lines = launcher.read_text().splitlines()
        assert lines[-1] == "python main.py --preview-method auto --listen"
        assert lines[:2] == ["#!/bin/bash", "cd ComfyUI"]
        assert os.access(launcher, os.X_OK)

    def test_append_to_missing_file_raises(self, tmp_path):
        with pytest.raises(ProvisioningError):
            AppendToLastLine(tmp_path / "missing.sh", "--listen").run("step")

    def test_remove_files_ignores_missing(self, tmp_path):
        present = tmp_path / "leftover.sh"
        present.write_text("x")
        RemoveFiles((present, tmp_path / "never-existed.sh")).run("cleanup")
        assert not present.exists()

    def test_marker(self, tmp_path):
        marker = tmp_path / "state" / "step.done"
        Marker(marker).run("step")
        assert marker.is_file()
