import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from runpod_boss.local.app_process import run_command
from runpod_boss.local.errors import ProvisioningError

log = logging.getLogger(__name__)

USER_AGENT = "runpod-boss/1.0"


class Action:
    """An external effect performed by a provisioning step."""

    def run(self, step_name: str) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class Command(Action):
    """Runs an external command; any non-zero exit fails the step."""
    argv: Tuple[str, ...]
    cwd: Optional[Path] = None
    env: Mapping[str, str] = field(default_factory=dict)

    def run(self, step_name: str) -> None:
        log.debug(f"[{step_name}] $ {self.describe()}")
        try:
            returncode = run_command(list(self.argv), step_name, cwd=self.cwd, env=self.env)
        except OSError as e:
            raise ProvisioningError(step_name, f"could not run '{self.argv[0]}': {e}") from e
        if returncode != 0:
            raise ProvisioningError(step_name, f"command '{self.describe()}' failed", returncode)

    def describe(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class Download(Action):
    """Downloads a file (usually an installer script) over HTTP."""
    url: str
    dest: Path
    mode: Optional[int] = 0o755
    timeout: float = 30

    def run(self, step_name: str) -> None:
        log.info(f"[{step_name}] Downloading {self.url}...")
        partial_path = self.dest.with_name(self.dest.name + ".part")
        try:
            self.dest.parent.mkdir(parents=True, exist_ok=True)
            headers = {"User-Agent": USER_AGENT}
            with requests.get(self.url, stream=True, timeout=self.timeout, headers=headers) as r:
                r.raise_for_status()
                with open(partial_path, "wb") as f:
                    for chunk in r.iter_content(chunk_size=8192):
                        f.write(chunk)
            partial_path.replace(self.dest)
            if self.mode is not None:
                os.chmod(self.dest, self.mode)
        except (requests.RequestException, OSError) as e:
            partial_path.unlink(missing_ok=True)
            raise ProvisioningError(step_name, f"download of {self.url} failed: {e}") from e
        log.info(f"[{step_name}] Saved to '{self.dest}'.")

    def describe(self) -> str:
        return f"download {self.url} -> {self.dest}"


@dataclass(frozen=True)
class WriteFile(Action):
    """Writes a generated file, replacing any previous content."""
    path: Path
    content: str
    mode: Optional[int] = None

    def run(self, step_name: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self.content, encoding="utf-8")
            if self.mode is not None:
                os.chmod(self.path, self.mode)
        except OSError as e:
            raise ProvisioningError(step_name, f"could not write '{self.path}': {e}") from e
        log.info(f"[{step_name}] Wrote '{self.path}'.")

    def describe(self) -> str:
        return f"write {self.path}"


@dataclass(frozen=True)
class AppendToLastLine(Action):
    """Appends `suffix` to the last line of a launcher script, once."""
    path: Path
    suffix: str

    def run(self, step_name: str) -> None:
        try:
            lines = self.path.read_text(encoding="utf-8").rstrip("\n").split("\n")
            if not lines[-1].rstrip().endswith(self.suffix.strip()):
                lines[-1] = f"{lines[-1].rstrip()} {self.suffix.strip()}"
                self.path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            os.chmod(self.path, 0o755)
        except OSError as e:
            raise ProvisioningError(step_name, f"could not patch '{self.path}': {e}") from e

    def describe(self) -> str:
        return f"append '{self.suffix}' to {self.path}"


@dataclass(frozen=True)
class RemoveFiles(Action):
    """Deletes leftover files; missing files are ignored."""
    paths: Tuple[Path, ...]

    def run(self, step_name: str) -> None:
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise ProvisioningError(step_name, f"could not remove '{path}': {e}") from e

    def describe(self) -> str:
        return "remove " + ", ".join(str(p) for p in self.paths)


@dataclass(frozen=True)
class Marker(Action):
    """Touches a marker file recording that a step completed."""
    path: Path

    def run(self, step_name: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
        except OSError as e:
            raise ProvisioningError(step_name, f"could not write marker '{self.path}': {e}") from e

    def describe(self) -> str:
        return f"mark {self.path}"


def patch_json_file(path: Path, updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merges `updates` into the JSON object stored at `path`.

    :return: The merged content that was written.
    :raises ValueError: If the file exists but does not hold a JSON object.
    """
    content: Dict[str, Any] = {}
    if path.exists():
        content = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(content, dict):
            raise ValueError(f"'{path}' does not contain a JSON object")
    content.update(updates)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content, indent=4), encoding="utf-8")
    return content
