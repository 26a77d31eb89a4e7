"""Filesystem helpers for configma."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from hashlib import blake2b
from pathlib import Path

from .errors import UnsupportedObjectTypeError
from .models import EntryType

logger = logging.getLogger(__name__)


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, is at ``path``."""

    return path.exists() or path.is_symlink()


def detect_entry_type(path: Path) -> EntryType:
    """Determine the ``EntryType`` for ``path`` without following symlinks."""

    mode = path.lstat().st_mode
    if stat.S_ISLNK(mode):
        return EntryType.SYMLINK
    if stat.S_ISDIR(mode):
        return EntryType.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryType.FILE
    raise UnsupportedObjectTypeError(f"Cannot manage '{path}': not a file, directory or symlink")


def nearest_existing(path: Path) -> Path:
    """Return ``path`` or its closest ancestor that exists."""

    candidate = path
    while not lexists(candidate) and candidate != candidate.parent:
        candidate = candidate.parent
    return candidate


def same_device(first: Path, second: Path) -> bool:
    """Return ``True`` when both existing paths live on the same filesystem."""

    return first.stat().st_dev == second.stat().st_dev


def copy_entry(source: Path, destination: Path) -> EntryType:
    """Copy ``source`` into ``destination`` preserving metadata.

    Symlinks are copied as links. A partially written destination is removed
    before the error is re-raised.
    """

    entry_type = detect_entry_type(source)
    if lexists(destination):
        raise FileExistsError(f"Refusing to overwrite existing '{destination}'")
    ensure_parent(destination)

    try:
        if entry_type == EntryType.SYMLINK:
            destination.symlink_to(os.readlink(source))
        elif entry_type == EntryType.DIRECTORY:
            shutil.copytree(
                source,
                destination,
                symlinks=True,
                copy_function=shutil.copy2,
                dirs_exist_ok=False,
            )
        else:
            shutil.copy2(source, destination, follow_symlinks=False)
    except Exception:
        remove_path(destination)
        raise

    return entry_type


def verify_copy(source: Path, destination: Path) -> None:
    """Raise ``OSError`` unless ``destination`` is a faithful copy of ``source``."""

    if not lexists(destination):
        raise OSError(f"Copy of '{source}' is missing at '{destination}'")
    if detect_entry_type(source) != detect_entry_type(destination):
        raise OSError(f"Copy of '{source}' at '{destination}' has a different type")
    if hash_path(source) != hash_path(destination):
        raise OSError(f"Copy of '{source}' at '{destination}' differs from the original")


def move_path(source: Path, destination: Path) -> EntryType:
    """Move ``source`` to ``destination``.

    Symlinks are recreated at the destination and the original link deleted.
    Other objects are renamed when both parents share a device; otherwise they
    are copied, the copy verified, and only then the original deleted.
    """

    entry_type = detect_entry_type(source)
    if lexists(destination):
        raise FileExistsError(f"Refusing to overwrite existing '{destination}'")
    ensure_parent(destination)

    if entry_type == EntryType.SYMLINK:
        destination.symlink_to(os.readlink(source))
        source.unlink()
        return entry_type

    if same_device(source.parent, destination.parent):
        os.rename(source, destination)
        return entry_type

    logger.debug("cross-device move from '%s' to '%s'", source, destination)
    copy_entry(source, destination)
    try:
        verify_copy(source, destination)
    except OSError:
        remove_path(destination)
        raise
    remove_path(source)
    return entry_type


def hash_path(path: Path) -> str:
    """Return a BLAKE2 hash for ``path`` contents and structure."""

    hasher = blake2b(digest_size=32)

    entry_type = detect_entry_type(path)
    hasher.update(entry_type.value.encode())
    if entry_type == EntryType.SYMLINK:
        hasher.update(b"\0")
        hasher.update(os.readlink(path).encode())
        return hasher.hexdigest()

    if entry_type == EntryType.FILE:
        _update_hash_with_file(hasher, path)
        return hasher.hexdigest()

    for child in walk_tree(path):
        rel = child.relative_to(path).as_posix().encode()
        child_type = detect_entry_type(child)
        hasher.update(child_type.value.encode())
        hasher.update(b"\0")
        hasher.update(rel)
        hasher.update(b"\0")
        if child_type == EntryType.FILE:
            _update_hash_with_file(hasher, child)
        elif child_type == EntryType.SYMLINK:
            hasher.update(os.readlink(child).encode())

    return hasher.hexdigest()


def _update_hash_with_file(hasher, path: Path) -> None:
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)


def walk_tree(path: Path) -> list[Path]:
    """Return every path below ``path`` in sorted order, without following links."""

    entries: list[Path] = []
    pending = [path]
    while pending:
        current = pending.pop()
        for child in current.iterdir():
            entries.append(child)
            if child.is_dir() and not child.is_symlink():
                pending.append(child)
    return sorted(entries)


def chown_tree(path: Path, uid: int, gid: int) -> None:
    """Change ownership of ``path`` and everything below it, never following symlinks."""

    os.lchown(path, uid, gid)
    if detect_entry_type(path) != EntryType.DIRECTORY:
        return
    for child in walk_tree(path):
        # sockets and fifos are rejected
        detect_entry_type(child)
        os.lchown(child, uid, gid)


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` is a symlink that resolves to ``target``."""

    if not source.is_symlink():
        return False
    return link_target(source) == target.resolve(strict=False)


def link_target(path: Path) -> Path | None:
    """Return where ``path`` finally points, or ``None`` for a symlink loop."""

    try:
        return path.resolve(strict=False)
    except (OSError, RuntimeError):
        # RuntimeError on 3.11 and 3.12
        return None


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not lexists(path):
        return
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    shutil.rmtree(path)


def prune_empty_parents(path: Path, stop_at: Path) -> None:
    """Remove empty directories from ``path`` upwards, stopping at ``stop_at``.

    ``stop_at`` itself is never removed.
    """

    current = path
    while current != stop_at and current.is_relative_to(stop_at):
        if not current.is_dir() or any(current.iterdir()):
            break
        logger.debug("removing empty directory '%s'", current)
        current.rmdir()
        current = current.parent


def unused_path(path: Path) -> Path:
    """Return ``path``, or the first of ``path.1``, ``path.2``, ... that is free."""

    candidate = path
    counter = 0
    while lexists(candidate):
        counter += 1
        candidate = path.with_name(f"{path.name}.{counter}")
    return candidate
