"""A single managed filesystem object and the operations that move it."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path

from .context import RunContext
from .errors import AlreadyManagedError, ConflictError, NotManagedError, PathResolutionError
from .filesystem import (
    chown_tree,
    copy_entry,
    detect_entry_type,
    lexists,
    move_path,
    nearest_existing,
    symlink_points_to,
    unused_path,
)
from .models import EntryType, RelativeKey
from .paths import classify, key_from_repo_path
from .privilege import ROOT_UID
from .scanner import LEGACY_STUB_NAME, stub_marker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Entry:
    """One managed object.

    ``src`` is the real-world location, ``relative`` the key shared by every
    module, and ``dest`` the location inside one module directory.
    """

    src: Path
    relative: RelativeKey
    dest: Path

    @classmethod
    def from_key(cls, key: RelativeKey, module_dir: Path, ctx: RunContext) -> "Entry":
        return cls(src=key.real_path(ctx.canon_home_dir), relative=key, dest=module_dir / key.repo_path)

    @classmethod
    def from_src(cls, src: Path, module_dir: Path, ctx: RunContext) -> "Entry":
        if src.is_relative_to(module_dir):
            raise AlreadyManagedError(f"'{src}' is inside module directory '{module_dir}'")
        key = classify(src, canon_home=ctx.canon_home_dir, canon_repo=ctx.canon_repo)
        return cls(src=src, relative=key, dest=module_dir / key.repo_path)

    @classmethod
    def from_dest(cls, dest: Path, module_dir: Path, ctx: RunContext) -> "Entry":
        key = key_from_repo_path(dest, module_dir)
        return cls(src=key.real_path(ctx.canon_home_dir), relative=key, dest=dest)

    def dump_path(self, ctx: RunContext) -> Path:
        """Return a free dump location; repeated dumps of a key get numbered suffixes."""

        return unused_path(ctx.dump_dir / self.relative.repo_path)

    def is_linked(self) -> bool:
        """Return ``True`` if ``src`` is a symlink resolving to ``dest``."""

        return symlink_points_to(self.src, self.dest)

    def needs_privilege(self) -> bool:
        """Return ``True`` if touching ``src`` requires root.

        Only non-home entries qualify, and only when the closest existing
        ancestor of ``src`` is owned by root. Evaluate this right before each
        operation; earlier steps may have created directories.
        """

        if self.relative.is_home:
            return False
        anchor = nearest_existing(self.src.parent)
        return anchor.lstat().st_uid == ROOT_UID

    def privilege(self, ctx: RunContext) -> AbstractContextManager[object]:
        return ctx.privileged(self.needs_privilege())

    def ensure_src_parent(self, ctx: RunContext) -> None:
        with self.privilege(ctx):
            self.src.parent.mkdir(parents=True, exist_ok=True)

    def symlink_to_src(self, ctx: RunContext) -> None:
        """Create the link ``src -> dest``."""

        with self.privilege(ctx):
            self.src.symlink_to(self.dest)
        logger.info("linked '%s' -> '%s'", self.src, self.dest)

    def rm_src_file(self, ctx: RunContext) -> None:
        """Delete the object at ``src``, which must not be a directory."""

        with self.privilege(ctx):
            self.src.unlink()
        logger.info("removed '%s'", self.src)

    def dump(self, ctx: RunContext) -> Path:
        """Move whatever occupies ``src`` into the dump directory, then link ``src``."""

        target = self.dump_path(ctx)
        target.parent.mkdir(parents=True, exist_ok=True)

        privileged = self.needs_privilege()
        with ctx.privileged(privileged):
            move_path(self.src, target)
            if privileged:
                chown_tree(target, ctx.user.uid, ctx.user.gid)
            self.src.symlink_to(self.dest)

        logger.warning("moved '%s' to '%s'", self.src, target)
        logger.info("linked '%s' -> '%s'", self.src, self.dest)
        return target

    def add(self, ctx: RunContext, *, origin: Path | None = None) -> EntryType:
        """Take ``src`` into the repository and replace it with a link.

        When ``origin`` is given (another module's copy of the same key), it is
        copied into ``dest`` and the current link at ``src`` is replaced;
        ``origin`` itself is left untouched.
        """

        if origin is None and not lexists(self.src):
            raise PathResolutionError(f"'{self.src}' does not exist")
        if lexists(self.dest):
            raise AlreadyManagedError(f"'{self.dest}' already exists in the repository")

        self.dest.parent.mkdir(parents=True, exist_ok=True)
        privileged = self.needs_privilege()
        with ctx.privileged(privileged):
            if origin is None:
                entry_type = move_path(self.src, self.dest)
            else:
                entry_type = copy_entry(origin, self.dest)
                self.src.unlink()
            if entry_type is EntryType.DIRECTORY:
                stub_marker(self.dest).touch()
            if privileged:
                chown_tree(self.dest, ctx.user.uid, ctx.user.gid)
                if entry_type is EntryType.DIRECTORY:
                    chown_tree(stub_marker(self.dest), ctx.user.uid, ctx.user.gid)
            self.src.symlink_to(self.dest)

        logger.info("moved '%s' to '%s'", origin or self.src, self.dest)
        logger.info("linked '%s' -> '%s'", self.src, self.dest)
        return entry_type

    def remove(self, ctx: RunContext) -> EntryType:
        """Put the repository object back at ``src`` and drop it from the repository."""

        if not lexists(self.dest):
            raise NotManagedError(f"Repository copy '{self.dest}' is missing")
        if lexists(self.src) and not self.is_linked():
            raise ConflictError(f"'{self.src}' is not a link to '{self.dest}'; resolve it manually")

        entry_type = detect_entry_type(self.dest)
        privileged = self.needs_privilege()
        with ctx.privileged(privileged):
            if lexists(self.src):
                self.src.unlink()
            else:
                self.src.parent.mkdir(parents=True, exist_ok=True)
            try:
                move_path(self.dest, self.src)
            except OSError:
                if not lexists(self.src):
                    self.src.symlink_to(self.dest)
                raise
            if entry_type is EntryType.DIRECTORY:
                (self.src / LEGACY_STUB_NAME).unlink(missing_ok=True)
            if privileged and ctx.root_user is not None:
                chown_tree(self.src, ctx.root_user.uid, ctx.root_user.gid)

        if entry_type is EntryType.DIRECTORY:
            stub_marker(self.dest).unlink(missing_ok=True)

        logger.info("restored '%s' from '%s'", self.src, self.dest)
        return entry_type

    def discard(self, ctx: RunContext) -> Path:
        """Move the repository copy into the dump directory without touching ``src``."""

        if not lexists(self.dest):
            raise NotManagedError(f"Repository copy '{self.dest}' is missing")

        target = self.dump_path(ctx)
        entry_type = move_path(self.dest, target)
        if entry_type is EntryType.DIRECTORY:
            stub_marker(self.dest).unlink(missing_ok=True)

        logger.warning("moved repository copy '%s' to '%s'", self.dest, target)
        return target
