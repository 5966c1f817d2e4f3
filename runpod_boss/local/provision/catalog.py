"""
The concrete provisioning steps for a RunPod GPU pod.

Each application gets its own rank band (system 10s, A1111 20s, ComfyUI 30s,
File Browser 50s, Ollama 60s, cleanup 90s) so independent groups can be
reordered without touching each other. Steps that are not naturally visible
on disk finish with a marker file under STATE_DIR.
"""

from pathlib import Path
from typing import TYPE_CHECKING, List

from .actions import AppendToLastLine, Command, Download, Marker, RemoveFiles, WriteFile
from .steps import (
    ProvisionStep, all_of, dir_exists, executable_on_path, file_exists, negate, any_of, path_exists,
)

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings


def marker_path(settings: "MergedSettings", step_name: str) -> Path:
    return settings.STATE_DIR / f"{step_name}.done"

def _marked(settings: "MergedSettings", name: str, rank: int, *actions) -> ProvisionStep:
    """A step whose completion is recorded only by its marker file."""
    marker = marker_path(settings, name)
    return ProvisionStep(name, rank, file_exists(marker), tuple(actions) + (Marker(marker),))


#* --- System ---
def _system_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    packages = list(settings.SYSTEM_PACKAGES)
    if settings.GPU_PROFILE == "rtx5090" and settings.manages_comfyui:
        packages.extend(settings.SYSTEM_PACKAGES_RTX5090)
    return [
        _marked(
            settings, "system-packages", 10,
            Command(("apt-get", "update")),
            Command(("apt-get", "install", "-y", "--no-install-recommends", *packages)),
        ),
    ]


#* --- AUTOMATIC1111 WebUI ---
def _a1111_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    webui = settings.WEBUI_DIR
    pip = str(webui / "venv" / "bin" / "pip")
    python_cmd = settings.gpu_build["a1111_python"]
    commandline_args = settings.A1111_COMMANDLINE_ARGS.format(port=settings.WEBUI_PORT)
    if settings.APP_PROFILE == "a1111":
        commandline_args = f"{commandline_args} {settings.A1111_PROFILE_ARGS[settings.GPU_PROFILE]}"
    webui_user = settings.WEBUI_USER_TEMPLATE.format(python_cmd=python_cmd, commandline_args=commandline_args)

    steps = [
        ProvisionStep(
            "a1111-clone", 20, dir_exists(webui / ".git"),
            (Command(("git", "clone", settings.A1111_REPO, str(webui))),),
        ),
        _marked(settings, "a1111-user-config", 21, WriteFile(webui / "webui-user.sh", webui_user, 0o755)),
        ProvisionStep(
            "a1111-venv", 22, file_exists(webui / "venv" / "bin" / "python"),
            (Command((python_cmd, "-m", "venv", "--system-site-packages", str(webui / "venv"))),),
        ),
        _marked(
            settings, "a1111-build-deps", 23,
            Command((pip, "install", "--upgrade", "pip", "wheel")),
            # newer setuptools break the pkg_resources imports CLIP needs
            Command((pip, "install", settings.A1111_SETUPTOOLS_PIN)),
            Command((pip, "install", "--no-build-isolation", "--no-deps", settings.CLIP_ARCHIVE_URL)),
            Command((pip, "install", "ftfy", "regex", "tqdm")),
        ),
    ]
    for name, url in settings.A1111_EXTENSIONS.items():
        target = webui / "extensions" / name
        steps.append(ProvisionStep(
            f"a1111-extension-{name}", 24, dir_exists(target),
            (Command(("git", "clone", url, str(target))),),
        ))

    if settings.APP_PROFILE == "a1111" and settings.GPU_PROFILE == "rtx4090":
        guard = webui / "extensions" / "vram-guard"
        steps.append(ProvisionStep(
            "a1111-vram-guard", 25,
            all_of(file_exists(guard / "scripts" / "vram_guard.py"), file_exists(guard / "javascript" / "vram_guard.js")),
            (
                WriteFile(guard / "scripts" / "vram_guard.py", settings.VRAM_GUARD_SCRIPT),
                WriteFile(guard / "javascript" / "vram_guard.js", settings.VRAM_GUARD_JS),
            ),
        ))
    return steps


#* --- ComfyUI ---
def _comfyui_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    comfy = settings.COMFYUI_DIR
    workspace = settings.WORKSPACE_DIR
    installer = workspace / "install-comfyui-venv-linux.sh"
    pip = str(comfy / "venv" / "bin" / "pip")
    build = settings.gpu_build
    launcher_flags = settings.COMFYUI_LISTEN_FLAGS
    if settings.APP_PROFILE == "comfyui" and settings.GPU_PROFILE == "rtx5090":
        launcher_flags = f"{launcher_flags} {settings.COMFYUI_FAST_FLAGS}"

    steps = [
        ProvisionStep(
            "comfyui-install", 30,
            all_of(file_exists(comfy / "main.py"), file_exists(settings.COMFYUI_LAUNCHER)),
            (
                Download(settings.COMFYUI_INSTALLER_URL, installer),
                Command((str(installer),), cwd=workspace),
            ),
        ),
        _marked(
            settings, "comfyui-launcher", 31,
            AppendToLastLine(settings.COMFYUI_LAUNCHER, launcher_flags),
        ),
    ]

    nodes = dict(settings.COMFYUI_CUSTOM_NODES)
    if settings.GPU_PROFILE == "rtx5090":
        nodes.update(settings.COMFYUI_OLLAMA_NODE)
    for name, url in nodes.items():
        target = comfy / "custom_nodes" / name
        steps.append(ProvisionStep(
            f"comfyui-node-{name}", 32, dir_exists(target),
            (Command(("git", "-C", str(comfy / "custom_nodes"), "clone", url)),),
        ))

    if build["comfyui_python"]:
        # Rebuild the venv on the newer interpreter the GPU's kernels need.
        torch_actions = [
            Command((build["comfyui_python"], "-m", "venv", "--clear", str(comfy / "venv"))),
            Command((pip, "install", "--upgrade", "pip", "wheel")),
            Command((pip, "install", "torch", "torchvision", "torchaudio", "--index-url", build["torch_index_url"])),
            Command((pip, "install", "-r", str(comfy / "requirements.txt"))),
        ]
    else:
        torch_actions = [
            Command((pip, "install", "--upgrade", "torch", "torchvision", "torchaudio",
                     "--index-url", build["torch_index_url"])),
        ]
    steps.append(_marked(settings, "comfyui-torch", 33, *torch_actions))

    if settings.GPU_PROFILE == "rtx5090":
        steps.append(_marked(
            settings, "comfyui-ollama-deps", 34,
            Command((pip, "install", "ollama==0.6.0", "python-dotenv")),
        ))
    return steps


#* --- File Browser ---
def filebrowser_binary_step(settings: "MergedSettings") -> ProvisionStep:
    installer = settings.STATE_DIR / "filebrowser-get.sh"
    return ProvisionStep(
        "filebrowser-binary", 50, executable_on_path("filebrowser"),
        (Download(settings.FILEBROWSER_INSTALLER_URL, installer), Command(("bash", str(installer)))),
    )

def _filebrowser_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    db = str(settings.FB_DB)
    return [
        filebrowser_binary_step(settings),
        ProvisionStep(
            "filebrowser-database", 51, file_exists(settings.FB_DB),
            (
                Command(("filebrowser", "config", "init", "--database", db)),
                Command((
                    "filebrowser", "config", "set", "--address", "0.0.0.0",
                    "--port", str(settings.FILEBROWSER_PORT), "--root", str(settings.WORKSPACE_DIR),
                    "--database", db,
                )),
                Command((
                    "filebrowser", "users", "add", settings.FILEBROWSER_ADMIN_USER,
                    settings.FILEBROWSER_ADMIN_PASSWORD, "--perm.admin", "--database", db,
                )),
            ),
        ),
    ]


#* --- Ollama ---
def zstd_step(settings: "MergedSettings") -> ProvisionStep:
    """The Ollama installer unpacks with zstd, which is not kept across pod restarts."""
    return ProvisionStep(
        "ollama-zstd", 60, executable_on_path("zstd"),
        (
            Command(("apt-get", "update")),
            Command(("apt-get", "install", "-y", "--no-install-recommends", "zstd")),
        ),
    )

def ollama_binary_step(settings: "MergedSettings") -> ProvisionStep:
    installer = settings.STATE_DIR / "ollama-install.sh"
    return ProvisionStep(
        "ollama-binary", 61, executable_on_path("ollama"),
        (
            Download(settings.OLLAMA_INSTALLER_URL, installer),
            Command(("sh", str(installer))),
            # The installer starts a GPU-enabled systemd unit; the supervisor owns `ollama serve`.
            Command(("sh", "-c", "systemctl disable ollama 2>/dev/null; systemctl stop ollama 2>/dev/null; true")),
        ),
    )


#* --- Cleanup ---
def _cleanup_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    workspace = settings.WORKSPACE_DIR
    leftovers = (
        workspace / "install_script.sh",
        workspace / "install-comfyui-venv-linux.sh",
        workspace / "run_cpu.sh",
    )
    return [
        ProvisionStep(
            "cleanup", 90, negate(any_of(*(path_exists(p) for p in leftovers))),
            (RemoveFiles(leftovers),),
        ),
    ]


def build_provision_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    """
    Returns every provisioning step for the configured APP_PROFILE and GPU_PROFILE.

    :param settings: The run's configuration.
    :return list: Steps in no particular order; the planner sorts them by rank.
    """
    steps = _system_steps(settings)
    if settings.manages_a1111:
        steps.extend(_a1111_steps(settings))
    if settings.manages_comfyui:
        steps.extend(_comfyui_steps(settings))
        steps.extend((zstd_step(settings), ollama_binary_step(settings)))
    steps.extend(_filebrowser_steps(settings))
    steps.extend(_cleanup_steps(settings))
    return steps


def build_runtime_binary_steps(settings: "MergedSettings") -> List[ProvisionStep]:
    """
    Steps that reinstall binaries living outside the persistent volume.

    They run before every launch while REINSTALL_RUNTIME_BINARIES is enabled;
    each is skipped when its executable is already on PATH.
    """
    steps = [filebrowser_binary_step(settings)]
    if settings.manages_comfyui:
        steps.extend((zstd_step(settings), ollama_binary_step(settings)))
    return steps
