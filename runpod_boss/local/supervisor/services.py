import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Mapping, Optional, Tuple

from runpod_boss.local.provision.actions import patch_json_file

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceSpec:
    """
    A long-running external application the supervisor launches once.

    `env` holds overrides merged over the supervisor's own environment.
    Services are never restarted.
    """
    name: str
    command: Tuple[str, ...]
    cwd: Path
    env: Mapping[str, str] = field(default_factory=dict)
    restart: str = "no"


def _ollama_env(settings: "MergedSettings") -> dict:
    env = {
        "OLLAMA_HOST": f"{settings.OLLAMA_HOST}:{settings.OLLAMA_PORT}",
        "OLLAMA_MODELS": str(settings.OLLAMA_MODELS_DIR),
    }
    if settings.GPU_PROFILE == "rtx4090" and settings.APP_PROFILE == "combined":
        # ComfyUI's diffusion models fill the 24 GB card; keep the LLM on CPU.
        env["OLLAMA_NUM_GPU"] = "0"
    return env


def build_service_specs(settings: "MergedSettings") -> List[ServiceSpec]:
    """
    Returns the services of the configured APP_PROFILE.

    :param settings: The run's configuration.
    :return list: One ServiceSpec per managed application.
    """
    workspace = settings.WORKSPACE_DIR
    specs: List[ServiceSpec] = []

    if settings.RUNPOD_HANDLER.exists():
        specs.append(ServiceSpec("runpod-handler", (str(settings.RUNPOD_HANDLER),), workspace))
    else:
        log.debug(f"RunPod handler '{settings.RUNPOD_HANDLER}' not present; not supervising it.")

    if settings.manages_a1111:
        specs.append(ServiceSpec("a1111", ("bash", "webui.sh", "-f"), settings.WEBUI_DIR))
    if settings.manages_comfyui:
        specs.append(ServiceSpec("comfyui", (str(settings.COMFYUI_LAUNCHER),), workspace))
        specs.append(ServiceSpec("ollama", ("ollama", "serve"), workspace, _ollama_env(settings)))
    specs.append(ServiceSpec("filebrowser", ("filebrowser", "--database", str(settings.FB_DB)), workspace))
    return specs


def build_warmup_command(settings: "MergedSettings") -> Optional[Tuple[Tuple[str, ...], dict]]:
    """
    Returns the delayed warm-up command (an Ollama model pull) and its env.

    :return: (argv, env) or None when the profile runs no Ollama server.
    """
    if not settings.manages_comfyui or not settings.OLLAMA_WARMUP_MODEL:
        return None
    return ("ollama", "pull", settings.OLLAMA_WARMUP_MODEL), _ollama_env(settings)


def prepare_runtime(settings: "MergedSettings") -> None:
    """
    Applies the per-boot fixes the services expect before they start.

    Failures are logged and do not prevent the launch.
    """
    if settings.manages_comfyui:
        try:
            settings.OLLAMA_MODELS_DIR.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error(f"Could not create Ollama models directory '{settings.OLLAMA_MODELS_DIR}': {e}")

    if settings.APP_PROFILE == "combined" and settings.WEBUI_DIR.is_dir():
        # Stop A1111 loading a checkpoint at boot so ComfyUI keeps the VRAM.
        config_path = settings.WEBUI_DIR / "config.json"
        try:
            patch_json_file(config_path, {"sd_checkpoint_autoload": False})
            log.info(f"Disabled checkpoint autoload in '{config_path}'.")
        except (OSError, ValueError) as e:
            log.error(f"Could not update '{config_path}': {e}")
