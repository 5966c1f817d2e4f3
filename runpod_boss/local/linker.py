import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Tuple

from runpod_boss.local.errors import LinkError

if TYPE_CHECKING:
    from runpod_boss.local.config import MergedSettings

log = logging.getLogger(__name__)

KEEP_DESTINATION = "keep-destination"
FAIL_ON_CONFLICT = "fail"


@dataclass(frozen=True)
class SharedMount:
    """
    A private application directory that must become a symlink into the shared store.

    After reconciliation `source` is a symlink to `destination`, and every
    entry that lived in `source` is present in `destination`.
    """
    source: Path
    destination: Path


@dataclass
class LinkReport:
    """Outcome of one reconciliation pass."""
    linked: List[Path] = field(default_factory=list)
    unchanged: List[Path] = field(default_factory=list)
    discarded: List[Path] = field(default_factory=list)


class SharedResourceLinker:
    """
    Moves per-application model directories into the shared models tree.

    Each mount is migrated with copy-no-clobber, verified, removed and then
    replaced by a symlink. The first failure stops the pass so no further
    shared state is touched.
    """

    def __init__(self, settings: "MergedSettings") -> None:
        self.settings = settings
        self.conflict_policy = settings.LINK_CONFLICT_POLICY

    def reconcile(self, mounts: Iterable[SharedMount]) -> LinkReport:
        """
        Reconciles every mount in order.

        :param mounts: The mounts to reconcile.
        :return LinkReport: Which sources were linked, already linked, and which entries were discarded.
        :raises LinkError: On the first filesystem failure or (with the 'fail' policy) name collision.
        """
        report = LinkReport()
        for mount in mounts:
            self._reconcile_one(mount, report)
        log.info(f"Shared models ready: {len(report.linked)} linked, {len(report.unchanged)} already linked.")
        return report

    def _reconcile_one(self, mount: SharedMount, report: LinkReport) -> None:
        source, destination = mount.source, mount.destination

        if source.is_symlink():
            if _points_at(source, destination):
                log.debug(f"'{source}' already links to '{destination}'.")
                report.unchanged.append(source)
                return
            log.info(f"Re-pointing '{source}' to '{destination}'.")
            self._ensure_destination(destination)
            self._replace_symlink(source, destination)
            report.linked.append(source)
            return

        self._ensure_destination(destination)

        if source.exists():
            if not source.is_dir():
                raise LinkError(source, "exists but is not a directory")
            copies, collisions = _plan_merge(source, destination)
            if collisions and self.conflict_policy == FAIL_ON_CONFLICT:
                names = ", ".join(str(c.relative_to(source)) for c in collisions)
                raise LinkError(source, f"entries already present in '{destination}': {names}")

            self._copy_no_clobber(copies)
            self._verify_copy(copies)
            for entry in collisions:
                log.warning(f"'{destination / entry.relative_to(source)}' already exists; discarding '{entry}'.")
                report.discarded.append(entry)
            self._remove_source(source)

        try:
            source.parent.mkdir(parents=True, exist_ok=True)
            source.symlink_to(destination, target_is_directory=True)
        except OSError as e:
            raise LinkError(source, f"could not create symlink to '{destination}': {e}") from e
        log.info(f"Linked '{source}' -> '{destination}'.")
        report.linked.append(source)

    def _ensure_destination(self, destination: Path) -> None:
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LinkError(destination, f"could not create shared directory: {e}") from e

    def _copy_no_clobber(self, copies: List[Tuple[Path, Path]]) -> None:
        for entry, target in copies:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.copytree(entry, target, symlinks=True)
                else:
                    shutil.copy2(entry, target, follow_symlinks=False)
            except (OSError, shutil.Error) as e:
                raise LinkError(entry, f"copy to '{target}' failed: {e}") from e

    def _verify_copy(self, copies: List[Tuple[Path, Path]]) -> None:
        """Checks that every copied entry, and everything beneath it, exists at its target."""
        for entry, target in copies:
            if not _lexists(target):
                raise LinkError(entry, f"missing at '{target}' after copy; source kept")
            if entry.is_dir() and not entry.is_symlink():
                for root, dirs, files in os.walk(entry):
                    relative = Path(root).relative_to(entry)
                    for name in files + dirs:
                        if not _lexists(target / relative / name):
                            raise LinkError(Path(root) / name, f"missing from '{target}' after copy; source kept")

    def _remove_source(self, source: Path) -> None:
        try:
            shutil.rmtree(source)
        except OSError as e:
            raise LinkError(source, f"could not remove migrated directory: {e}") from e

    def _replace_symlink(self, source: Path, destination: Path) -> None:
        try:
            source.unlink()
            source.symlink_to(destination, target_is_directory=True)
        except OSError as e:
            raise LinkError(source, f"could not re-point symlink to '{destination}': {e}") from e


def _lexists(path: Path) -> bool:
    return path.exists() or path.is_symlink()

def _points_at(link: Path, destination: Path) -> bool:
    target = Path(os.readlink(link))
    if not target.is_absolute():
        target = link.parent / target
    return os.path.normpath(target) == os.path.normpath(destination)

def _plan_merge(source: Path, destination: Path) -> Tuple[List[Tuple[Path, Path]], List[Path]]:
    """
    Works out a recursive no-clobber merge of `source` into `destination`.

    Directories present on both sides are merged entry by entry; any other
    name present on both sides is a collision and the destination copy wins.

    :return: (entries to copy as (source, target) pairs, colliding source entries)
    """
    copies: List[Tuple[Path, Path]] = []
    collisions: List[Path] = []
    for entry in sorted(source.iterdir()):
        target = destination / entry.name
        if not _lexists(target):
            copies.append((entry, target))
        elif entry.is_dir() and not entry.is_symlink() and target.is_dir() and not target.is_symlink():
            sub_copies, sub_collisions = _plan_merge(entry, target)
            copies.extend(sub_copies)
            collisions.extend(sub_collisions)
        else:
            collisions.append(entry)
    return copies, collisions


def build_shared_mounts(settings: "MergedSettings") -> List[SharedMount]:
    """
    Returns the mounts for every managed application in the current profile.

    ComfyUI's model folders are discovered from disk so new categories are
    picked up automatically; A1111 folders are mapped by name.

    :param settings: The run's configuration.
    :return list: SharedMount descriptors, ComfyUI first.
    """
    models_dir = settings.MODELS_DIR
    mounts: List[SharedMount] = []

    if settings.manages_comfyui:
        comfy_models = settings.COMFYUI_DIR / "models"
        if comfy_models.is_dir():
            for subdir in sorted(comfy_models.iterdir()):
                if subdir.is_dir() or subdir.is_symlink():
                    mounts.append(SharedMount(subdir, models_dir / subdir.name))

    if settings.manages_a1111:
        webui_models = settings.WEBUI_DIR / "models"
        for a1111_name, shared_name in settings.A1111_MODEL_MAP.items():
            mounts.append(SharedMount(webui_models / a1111_name, models_dir / shared_name))
        # A1111 embeddings live at the top level, not inside models/
        mounts.append(SharedMount(settings.WEBUI_DIR / "embeddings", models_dir / "embeddings"))

    return mounts


def prepare_shared_store(settings: "MergedSettings") -> None:
    """Creates the shared models root and its fixed category folders."""
    try:
        for category in settings.SHARED_MODEL_CATEGORIES:
            (settings.MODELS_DIR / category).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LinkError(settings.MODELS_DIR, f"could not create shared models tree: {e}") from e
