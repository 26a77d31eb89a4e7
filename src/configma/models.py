"""Shared models and enums for configma."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import PathResolutionError

HOME_DIR_NAME = "home"


class EntryType(str, Enum):
    """Kinds of filesystem objects configma can manage."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class KeyKind(str, Enum):
    """Which real-world root a relative key hangs off."""

    HOME = "home"
    NON_HOME = "non_home"


@dataclass(frozen=True, slots=True)
class RelativeKey:
    """A managed path relative to either the home directory or ``/``."""

    kind: KeyKind
    path: Path

    def __post_init__(self) -> None:
        if self.path.is_absolute():
            raise PathResolutionError(f"Relative key '{self.path}' must not be absolute")
        if ".." in self.path.parts:
            raise PathResolutionError(f"Relative key '{self.path}' must not contain '..'")
        if not self.path.parts:
            raise PathResolutionError("Relative key must name a path")

    @classmethod
    def home(cls, path: Path | str) -> "RelativeKey":
        return cls(KeyKind.HOME, Path(path))

    @classmethod
    def non_home(cls, path: Path | str) -> "RelativeKey":
        return cls(KeyKind.NON_HOME, Path(path))

    @property
    def is_home(self) -> bool:
        return self.kind is KeyKind.HOME

    @property
    def repo_path(self) -> Path:
        """Location of the key inside a module directory."""

        if self.is_home:
            return Path(HOME_DIR_NAME) / self.path
        return self.path

    def real_path(self, home: Path) -> Path:
        """Real-world location denoted by the key."""

        if self.is_home:
            return home / self.path
        return Path("/") / self.path

    def __str__(self) -> str:
        if self.is_home:
            return f"~/{self.path.as_posix()}"
        return f"/{self.path.as_posix()}"


class SyncAction(str, Enum):
    """Outcome of reconciling a single entry."""

    LINKED = "linked"
    RELINKED = "relinked"
    UNCHANGED = "unchanged"
    DUMPED = "dumped"
    UNLINKED = "unlinked"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Result emitted for each entry touched by sync or unlink."""

    module: str
    key: RelativeKey
    src: Path
    dest: Path
    action: SyncAction
    details: str | None = None


class StatusState(str, Enum):
    """High-level states reported by ``configma status``."""

    LINKED = "linked"
    MISSING = "missing"
    CONFLICT = "conflict"
    SHADOWED = "shadowed"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for a key claimed by a module."""

    module: str
    key: RelativeKey
    state: StatusState
    details: str | None = None
