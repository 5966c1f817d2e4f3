"""Unit tests for the configuration object."""

import json
from pathlib import Path

import pytest

from runpod_boss.local.config import MergedSettings, load_settings
from runpod_boss.local.errors import ConfigurationError


class TestWorkspaceRebase:
    """Test that every workspace-relative path follows WORKSPACE_DIR."""

    def test_paths_move_with_workspace(self, tmp_path):
        settings = load_settings(overrides_path=tmp_path / "none.json", WORKSPACE_DIR=tmp_path)

        assert settings.WORKSPACE_DIR == tmp_path
        assert settings.WEBUI_DIR == tmp_path / "stable-diffusion-webui"
        assert settings.COMFYUI_DIR == tmp_path / "ComfyUI"
        assert settings.MODELS_DIR == tmp_path / "models"
        assert settings.FB_DB == tmp_path / ".filebrowser.db"
        assert settings.STATE_DIR == tmp_path / ".runpod_boss"
        assert settings.PID_FILE_PATH == tmp_path / ".runpod_boss" / "services.pid"

    def test_with_overrides_rebases_and_leaves_original(self, settings, tmp_path):
        other = tmp_path / "other"
        clone = settings.with_overrides(WORKSPACE_DIR=other)

        assert clone.COMFYUI_DIR == other / "ComfyUI"
        assert settings.COMFYUI_DIR == tmp_path / "workspace" / "ComfyUI"

    def test_string_paths_are_coerced(self, settings, tmp_path):
        clone = settings.with_overrides(FB_DB=str(tmp_path / "fb.db"))
        assert clone.FB_DB == tmp_path / "fb.db"
        assert isinstance(clone.FB_DB, Path)


class TestOverridesFile:
    """Test loading of overrides.json."""

    def test_only_modifiable_settings_are_applied(self, tmp_path):
        overrides = tmp_path / "overrides.json"
        overrides.write_text(json.dumps({"GRACEFUL_SHUTDOWN_TIMEOUT": 5, "WEBUI_DIR": "/elsewhere"}))

        settings = MergedSettings(overrides_path=overrides, workspace=tmp_path)

        assert settings.GRACEFUL_SHUTDOWN_TIMEOUT == 5
        assert settings.WEBUI_DIR == tmp_path / "stable-diffusion-webui"

    def test_malformed_file_is_ignored(self, tmp_path):
        overrides = tmp_path / "overrides.json"
        overrides.write_text("{not json")

        settings = MergedSettings(overrides_path=overrides, workspace=tmp_path)

        assert settings.GRACEFUL_SHUTDOWN_TIMEOUT == 30


class TestValidation:
    """Test validation of setting values."""

    def test_unknown_setting_rejected(self, settings):
        with pytest.raises(ConfigurationError, match="Unknown setting"):
            settings.with_overrides(NOT_A_SETTING=1)

    @pytest.mark.parametrize(
        "key,value",
        [
            ("APP_PROFILE", "invokeai"),
            ("GPU_PROFILE", "a100"),
            ("LINK_CONFLICT_POLICY", "overwrite"),
            ("GRACEFUL_SHUTDOWN_TIMEOUT", -1),
            ("SUPERVISOR_POLL_INTERVAL", "fast"),
        ],
    )
    def test_invalid_values(self, settings, key, value):
        with pytest.raises(ConfigurationError, match=key):
            settings.with_overrides(**{key: value})


class TestProfiles:
    """Test the profile-derived properties."""

    @pytest.mark.parametrize(
        "profile,a1111,comfyui",
        [
            ("combined", True, True),
            ("a1111", True, False),
            ("comfyui", False, True),
        ],
    )
    def test_managed_applications(self, settings, profile, a1111, comfyui):
        clone = settings.with_overrides(APP_PROFILE=profile)
        assert clone.manages_a1111 is a1111
        assert clone.manages_comfyui is comfyui

    def test_gpu_build(self, settings):
        assert settings.gpu_build["comfyui_python"] is None
        rtx5090 = settings.with_overrides(GPU_PROFILE="rtx5090")
        assert rtx5090.gpu_build["comfyui_python"] == "python3.13"
        assert rtx5090.gpu_build["torch_index_url"].endswith("cu130")
