"""Mapping between real-world paths, relative keys and repository paths."""

from __future__ import annotations

import os
from pathlib import Path

from .errors import AlreadyManagedError, PathResolutionError
from .models import HOME_DIR_NAME, RelativeKey


def expand_user(raw: str | os.PathLike[str], home: Path) -> Path:
    """Expand a leading ``~`` against ``home`` rather than the process environment.

    Under ``sudo`` the environment may describe root, while paths given on the
    command line refer to the invoking user.
    """

    text = os.fspath(raw)
    if text == "~":
        return home
    if text.startswith("~/"):
        return home / text[2:]
    return Path(text)


def resolve_path(raw: str | os.PathLike[str], home: Path) -> Path:
    """Return the canonical absolute form of ``raw``.

    The leaf itself is never dereferenced, so a symlink stays a symlink. The
    parent is canonicalised through its closest existing ancestor, which lets
    paths whose directories do not exist yet still resolve. ``..`` is only
    followed inside the existing part, after symlinks are dereferenced.
    """

    path = expand_user(raw, home)
    if not path.is_absolute():
        path = Path.cwd() / path
    if path == path.parent:
        raise PathResolutionError(f"Cannot manage the filesystem root '{raw}'")
    if path.name == "..":
        raise PathResolutionError(f"'{raw}' must name an entry, not a parent directory")

    missing: list[str] = []
    ancestor = path.parent
    while not ancestor.exists():
        if ancestor == ancestor.parent:
            raise PathResolutionError(f"No ancestor of '{raw}' exists")
        if ancestor.name == "..":
            raise PathResolutionError(f"'{raw}' steps out of a directory that does not exist")
        missing.append(ancestor.name)
        ancestor = ancestor.parent

    resolved = ancestor.resolve(strict=True)
    for name in reversed(missing):
        resolved = resolved / name
    return resolved / path.name


def classify(path: Path, *, canon_home: Path, canon_repo: Path) -> RelativeKey:
    """Return the relative key for a canonical real-world ``path``.

    Paths inside the repository are rejected; they are already managed.
    """

    if path.is_relative_to(canon_repo):
        raise AlreadyManagedError(f"'{path}' is inside the repository '{canon_repo}'")
    if path == canon_home:
        raise PathResolutionError("Cannot manage the home directory itself")
    if path.is_relative_to(canon_home):
        return RelativeKey.home(path.relative_to(canon_home))
    return RelativeKey.non_home(path.relative_to("/"))


def key_from_repo_path(dest: Path, module_dir: Path) -> RelativeKey:
    """Return the relative key a repository path inside ``module_dir`` stands for."""

    if not dest.is_relative_to(module_dir) or dest == module_dir:
        raise PathResolutionError(f"'{dest}' is not an entry of module directory '{module_dir}'")

    relative = dest.relative_to(module_dir)
    if relative.parts[0] == HOME_DIR_NAME:
        if len(relative.parts) == 1:
            raise PathResolutionError(f"'{dest}' is the module's home directory, not an entry")
        return RelativeKey.home(Path(*relative.parts[1:]))
    return RelativeKey.non_home(relative)
