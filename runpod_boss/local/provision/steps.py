import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Tuple

from .actions import Action

Predicate = Callable[[], bool]


@dataclass(frozen=True)
class ProvisionStep:
    """
    One idempotent install step.

    `check` is a pure filesystem predicate; when it holds the step is skipped.
    `actions` run in order otherwise. Steps are executed in ascending `rank`.
    """
    name: str
    rank: int
    check: Predicate
    actions: Tuple[Action, ...] = field(default_factory=tuple)

    def is_satisfied(self) -> bool:
        return bool(self.check())


#* --- Predicates ---
def path_exists(path: Path) -> Predicate:
    """True if `path` exists (a dangling symlink counts as existing)."""
    return lambda: path.exists() or path.is_symlink()

def dir_exists(path: Path) -> Predicate:
    return lambda: path.is_dir()

def file_exists(path: Path) -> Predicate:
    return lambda: path.is_file()

def executable_on_path(name: str) -> Predicate:
    return lambda: shutil.which(name) is not None

def all_of(*predicates: Predicate) -> Predicate:
    return lambda: all(p() for p in predicates)

def any_of(*predicates: Predicate) -> Predicate:
    return lambda: any(p() for p in predicates)

def negate(predicate: Predicate) -> Predicate:
    return lambda: not predicate()
