"""
This module contains the default configuration settings for runpod_boss.
It defines workspace paths, application profiles, service ports, supervisor
timings and the catalogue of repositories the provisioning steps install.
Values are read once here; the rest of the package receives them through a
`MergedSettings` object (see `runpod_boss.local.config`).
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
WORKSPACE_DIR = pathlib.Path(os.getenv("WORKSPACE_DIR", "/workspace"))
WEBUI_DIR = WORKSPACE_DIR / "stable-diffusion-webui"
COMFYUI_DIR = WORKSPACE_DIR / "ComfyUI"
MODELS_DIR = WORKSPACE_DIR / "models"
FB_DB = WORKSPACE_DIR / ".filebrowser.db"
OLLAMA_MODELS_DIR = WORKSPACE_DIR / ".ollama" / "models"
COMFYUI_LAUNCHER = WORKSPACE_DIR / "run_gpu.sh"
RUNPOD_HANDLER = pathlib.Path(os.getenv("RUNPOD_HANDLER", "/start.sh"))

#* --- State Paths (markers, PID file, overrides) ---
STATE_DIR = WORKSPACE_DIR / ".runpod_boss"
PID_FILE_PATH = STATE_DIR / "services.pid"
OVERRIDES_JSON_PATH = STATE_DIR / "overrides.json"
LOG_FILE_PATH = STATE_DIR / "runpod_boss.log"

#* --- Profiles ---
# APP_PROFILE picks which applications are provisioned and supervised.
# GPU_PROFILE picks the python/torch builds matching the pod's driver.
APP_PROFILES = ("combined", "a1111", "comfyui")
GPU_PROFILES = ("rtx4090", "rtx5090")
APP_PROFILE = os.getenv("APP_PROFILE", "combined").lower()
GPU_PROFILE = os.getenv("GPU_PROFILE", "rtx4090").lower()

#* --- Service Ports ---
WEBUI_PORT = int(os.getenv("WEBUI_PORT", "3000"))
COMFYUI_PORT = int(os.getenv("COMFYUI_PORT", "8188"))
FILEBROWSER_PORT = int(os.getenv("FILEBROWSER_PORT", "8080"))
OLLAMA_HOST = os.getenv("OLLAMA_BIND_HOST", "0.0.0.0")
OLLAMA_PORT = int(os.getenv("OLLAMA_PORT", "11434"))

#* --- Supervisor Settings ---
SUPERVISOR_POLL_INTERVAL = 0.5   # seconds
GRACEFUL_SHUTDOWN_TIMEOUT = 30   # seconds before force-killing
WARMUP_DELAY_SECONDS = 5
OLLAMA_WARMUP_MODEL = os.getenv("OLLAMA_WARMUP_MODEL", "qwen3-vl:4b")
CAPTURE_SERVICE_OUTPUT = os.getenv("CAPTURE_SERVICE_OUTPUT", "True").lower() in ('true', '1', 't')
# Binaries outside the persistent volume (filebrowser, ollama, zstd) vanish when a
# pod restarts; they are reinstalled before the services launch unless disabled.
REINSTALL_RUNTIME_BINARIES = os.getenv("REINSTALL_RUNTIME_BINARIES", "True").lower() in ('true', '1', 't')

#* --- Linker Settings ---
# 'keep-destination': on a name collision the shared copy wins and the
# private copy is discarded. 'fail': refuse to migrate a colliding directory.
LINK_CONFLICT_POLICIES = ("keep-destination", "fail")
LINK_CONFLICT_POLICY = os.getenv("LINK_CONFLICT_POLICY", "keep-destination").lower()

SHARED_MODEL_CATEGORIES = (
    "checkpoints", "vae", "loras", "embeddings",
    "controlnet", "upscale_models", "hypernetworks",
)

# A1111 folder name (under models/) -> shared folder name
A1111_MODEL_MAP = {
    "Stable-diffusion": "checkpoints",
    "VAE": "vae",
    "Lora": "loras",
    "hypernetworks": "hypernetworks",
    "ESRGAN": "upscale_models",
    "ControlNet": "controlnet",
}

#* --- Provisioning Sources ---
SYSTEM_PACKAGES = (
    "wget", "curl", "git", "python3", "python3-venv", "libgl1",
    "libglib2.0-0", "google-perftools", "bc", "zstd",
)
SYSTEM_PACKAGES_RTX5090 = ("python3.13", "python3.13-venv", "python3.13-dev")

A1111_REPO = "https://github.com/AUTOMATIC1111/stable-diffusion-webui.git"
A1111_EXTENSIONS = {
    "lobe-theme": "https://github.com/lobehub/sd-webui-lobe-theme.git",
    "aspect-ratio-helper": "https://github.com/thomasasfk/sd-webui-aspect-ratio-helper.git",
    "ultimate-upscale": "https://github.com/Coyote-A/ultimate-upscale-for-automatic1111.git",
}
CLIP_ARCHIVE_URL = "https://github.com/openai/CLIP/archive/d50d76daa670286dd6cacf3bcd80b5e4823fc8e1.zip"
A1111_SETUPTOOLS_PIN = "setuptools==69.5.1"
A1111_COMMANDLINE_ARGS = (
    "--listen --port {port} --opt-sdp-attention --enable-insecure-extension-access "
    "--no-half-vae --no-download-sd-model --api"
)
# Extra A1111 arguments for the single-application profile, per GPU.
A1111_PROFILE_ARGS = {
    "rtx4090": "--skip-python-version-check --theme=dark",
    "rtx5090": "--skip-python-version-check",
}

COMFYUI_INSTALLER_URL = "https://github.com/ltdrdata/ComfyUI-Manager/raw/main/scripts/install-comfyui-venv-linux.sh"
COMFYUI_CUSTOM_NODES = {
    "comfyui-model-downloader": "https://github.com/dsigmabcn/comfyui-model-downloader.git",
    "ComfyUI-RunpodDirect": "https://github.com/MadiatorLabs/ComfyUI-RunpodDirect.git",
}
COMFYUI_OLLAMA_NODE = {
    "comfyui-ollama": "https://github.com/stavsap/comfyui-ollama.git",
}
COMFYUI_LISTEN_FLAGS = "--listen"
# Blackwell cards gain fp16 accumulation when ComfyUI has the GPU to itself.
COMFYUI_FAST_FLAGS = "--fast fp16_accumulation"

FILEBROWSER_INSTALLER_URL = "https://raw.githubusercontent.com/filebrowser/get/master/get.sh"
FILEBROWSER_ADMIN_USER = os.getenv("FILEBROWSER_ADMIN_USER", "admin")
FILEBROWSER_ADMIN_PASSWORD = os.getenv("FILEBROWSER_ADMIN_PASSWORD", "adminadmin11")
OLLAMA_INSTALLER_URL = "https://ollama.com/install.sh"

# Per-GPU python and torch builds. The rtx5090 ComfyUI venv is rebuilt on
# python3.13 with cu130 wheels for sm_120 kernels.
GPU_BUILDS = {
    "rtx4090": {
        "a1111_python": "python3.11",
        "comfyui_python": None,
        "torch_index_url": "https://download.pytorch.org/whl/cu124",
    },
    "rtx5090": {
        "a1111_python": "python3.11",
        "comfyui_python": "python3.13",
        "torch_index_url": "https://download.pytorch.org/whl/cu130",
    },
}

#* --- MODIFIABLE SETTINGS (Changeable via overrides.json) ---
MODIFIABLE_SETTINGS = {
    "APP_PROFILE", "GPU_PROFILE",
    "GRACEFUL_SHUTDOWN_TIMEOUT", "SUPERVISOR_POLL_INTERVAL",
    "WARMUP_DELAY_SECONDS", "OLLAMA_WARMUP_MODEL",
    "CAPTURE_SERVICE_OUTPUT", "LINK_CONFLICT_POLICY", "REINSTALL_RUNTIME_BINARIES",
}

#* --- Configuration Templates ---
WEBUI_USER_TEMPLATE = """#!/bin/bash
# This file is auto-generated by runpod_boss. Do not edit directly.
python_cmd="{python_cmd}"
venv_dir="venv"
export STABLE_DIFFUSION_REPO="https://github.com/w-e-w/stablediffusion.git"
export TORCH_COMMAND="pip --version"
export COMMANDLINE_ARGS="{commandline_args}"
"""

# VRAM Guard: an A1111 extension adding "Unload Model" / "Load Model" buttons
# next to the quicksettings, backed by two API routes.
VRAM_GUARD_SCRIPT = r'''import gc
import torch
from modules import script_callbacks, shared, sd_models


def _flush():
    gc.collect()
    if torch.cuda.is_available():
        torch.cuda.empty_cache()
        torch.cuda.ipc_collect()


def _vram_str():
    if not torch.cuda.is_available():
        return "CUDA N/A"
    dev = torch.cuda.current_device()
    alloc = torch.cuda.memory_allocated(dev) / 1024**3
    total = torch.cuda.get_device_properties(dev).total_memory / 1024**3
    return f"Used: {alloc:.1f}/{total:.1f} GB"


def _unload_all():
    try:
        sd_models.unload_model_weights()
    except Exception:
        pass
    _flush()
    return _vram_str()


def _reload_model():
    try:
        # Drop the stale reference so the reload does a fresh load after an unload.
        shared.sd_model = None
        _flush()
        sd_models.reload_model_weights()
    except Exception:
        pass
    return _vram_str()


def _add_api(_demo, app):
    @app.post("/vram-guard/unload-all")
    async def api_unload_all():
        return {"vram": _unload_all()}

    @app.post("/vram-guard/reload")
    async def api_reload():
        return {"vram": _reload_model()}

script_callbacks.on_app_started(_add_api)
'''

VRAM_GUARD_JS = r'''onUiLoaded(function () {
    var qs = gradioApp().getElementById("quicksettings");
    if (!qs) return;

    function makeBtn(label, title, bg, bgHover, endpoint) {
        var b = document.createElement("button");
        b.textContent = label;
        b.title = title;
        b.style.cssText =
            "max-height:42px;margin:auto 0 auto 4px;background:" + bg + ";color:#fff;" +
            "border:none;border-radius:8px;padding:8px 16px;font-weight:600;" +
            "font-size:14px;cursor:pointer;white-space:nowrap;";
        b.addEventListener("mouseenter", function () { b.style.background = bgHover; });
        b.addEventListener("mouseleave", function () { b.style.background = bg; });
        b.addEventListener("click", async function () {
            var orig = b.textContent;
            b.textContent = "⏳";
            b.disabled = true;
            try {
                var r = await fetch(endpoint, { method: "POST" });
                var d = await r.json();
                b.textContent = d.vram || "Done";
                setTimeout(function () { b.textContent = orig; b.disabled = false; }, 3000);
            } catch (e) {
                b.textContent = "Error";
                setTimeout(function () { b.textContent = orig; b.disabled = false; }, 2000);
            }
        });
        return b;
    }

    qs.appendChild(makeBtn(
        "Unload Model",
        "Free VRAM: unload the current checkpoint",
        "#dc2626", "#b91c1c",
        "/vram-guard/unload-all"
    ));
    qs.appendChild(makeBtn(
        "Load Model",
        "Reload the selected checkpoint into VRAM",
        "#2563eb", "#1d4ed8",
        "/vram-guard/reload"
    ));
});
'''
