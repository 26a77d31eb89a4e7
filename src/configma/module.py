"""A module: one named subtree of managed entries in the repository."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator

from .context import RunContext
from .entry import Entry
from .errors import AlreadyManagedError, ConflictError, NotManagedError
from .filesystem import lexists, link_target, prune_empty_parents
from .models import HOME_DIR_NAME, KeyKind, RelativeKey, SyncAction, SyncResult
from .paths import resolve_path
from .scanner import is_stubbed, scan_entries

logger = logging.getLogger(__name__)


class Module:
    """Entries stored under ``module_dir``.

    Home entries live below ``module_dir/home``; every other top-level child
    mirrors a path below ``/``. The key sets are an index of the directory
    tree, rebuilt by :meth:`load` on every run.
    """

    def __init__(
        self,
        name: str,
        module_dir: Path,
        home_entries: Iterable[Path] = (),
        non_home_entries: Iterable[Path] = (),
    ) -> None:
        self.name = name
        self.module_dir = module_dir
        self.home_entries: set[Path] = set(home_entries)
        self.non_home_entries: set[Path] = set(non_home_entries)

    @classmethod
    def load(cls, name: str, repo_root: Path) -> "Module":
        """Load the module called ``name`` from the repository at ``repo_root``."""

        if not repo_root.is_dir():
            raise NotADirectoryError(f"Repository '{repo_root}' does not exist")
        return cls.from_dir(name, repo_root / name)

    @classmethod
    def from_dir(cls, name: str, module_dir: Path) -> "Module":
        """Scan ``module_dir``, creating it and its ``home`` directory if needed."""

        module_dir.mkdir(parents=True, exist_ok=True)
        module_dir = module_dir.resolve(strict=True)
        home = module_dir / HOME_DIR_NAME
        home.mkdir(exist_ok=True)

        home_entries = scan_entries(home)

        non_home_entries: set[Path] = set()
        for child in module_dir.iterdir():
            if child.name == HOME_DIR_NAME or child.name.startswith("."):
                continue
            if child.is_symlink():
                logger.warning("ignoring symlink '%s'", child)
            elif child.is_file():
                non_home_entries.add(Path(child.name))
            elif child.is_dir():
                if is_stubbed(child):
                    non_home_entries.add(Path(child.name))
                else:
                    non_home_entries.update(Path(child.name) / path for path in scan_entries(child))
            else:
                logger.warning("ignoring unsupported path '%s'", child)

        logger.debug(
            "module '%s': %d home and %d non-home entries",
            name,
            len(home_entries),
            len(non_home_entries),
        )
        return cls(name, module_dir, home_entries, non_home_entries)

    def __repr__(self) -> str:
        return f"Module({self.name!r}, {str(self.module_dir)!r})"

    # ------------------------------------------------------------------
    # Index

    def _key_set(self, key: RelativeKey) -> set[Path]:
        return self.home_entries if key.kind is KeyKind.HOME else self.non_home_entries

    def contains_key(self, key: RelativeKey) -> bool:
        return key.path in self._key_set(key)

    def contains(self, entry: Entry) -> bool:
        return self.contains_key(entry.relative)

    def keys(self) -> Iterator[RelativeKey]:
        for path in sorted(self.home_entries):
            yield RelativeKey.home(path)
        for path in sorted(self.non_home_entries):
            yield RelativeKey.non_home(path)

    def entries(self, ctx: RunContext) -> Iterator[Entry]:
        for key in self.keys():
            yield self.entry_from_key(key, ctx)

    # ------------------------------------------------------------------
    # Entry construction

    def entry_from_key(self, key: RelativeKey, ctx: RunContext) -> Entry:
        return Entry.from_key(key, self.module_dir, ctx)

    def entry_from_src(self, src: Path, ctx: RunContext) -> Entry:
        return Entry.from_src(src, self.module_dir, ctx)

    def entry_from_dest(self, dest: Path, ctx: RunContext) -> Entry:
        return Entry.from_dest(dest, self.module_dir, ctx)

    def entry(self, raw: str | os.PathLike[str], ctx: RunContext) -> Entry:
        """Build an entry from either a real-world path or a path inside this module."""

        path = resolve_path(raw, ctx.canon_home_dir)
        if path.is_relative_to(self.module_dir):
            return self.entry_from_dest(path, ctx)
        return self.entry_from_src(path, ctx)

    def stubbed_ancestor(self, entry: Entry) -> Path | None:
        """Return the first parent of ``entry.dest`` that is managed as a whole."""

        current = self.module_dir
        for part in entry.relative.repo_path.parts[:-1]:
            current = current / part
            if is_stubbed(current):
                return current
        return None

    # ------------------------------------------------------------------
    # Operations

    def add(self, raw: str | os.PathLike[str], ctx: RunContext) -> Entry | None:
        """Move ``raw`` into this module and link it back.

        Returns ``None`` when there is nothing to do.
        """

        path = resolve_path(raw, ctx.canon_home_dir)
        try:
            entry = self.entry_from_src(path, ctx)
        except AlreadyManagedError:
            logger.info("'%s' is already in the repository", path)
            return None
        return self.add_entry(entry, ctx)

    def add_entry(self, entry: Entry, ctx: RunContext, *, origin: Path | None = None) -> Entry | None:
        ancestor = self.stubbed_ancestor(entry)
        if ancestor is not None:
            raise AlreadyManagedError(
                f"'{entry.src}' is inside '{ancestor}', which module '{self.name}' manages as a whole"
            )
        if self.contains(entry):
            logger.info("'%s' is already managed by module '%s'", entry.src, self.name)
            return None

        entry.add(ctx, origin=origin)
        self._key_set(entry.relative).add(entry.relative.path)
        return entry

    def remove(self, raw: str | os.PathLike[str], ctx: RunContext) -> Entry:
        """Restore ``raw`` to its real-world location and stop managing it."""

        return self.remove_entry(self.entry(raw, ctx), ctx)

    def remove_entry(self, entry: Entry, ctx: RunContext) -> Entry:
        self._require(entry)
        entry.remove(ctx)
        self._forget(entry)
        return entry

    def discard_entry(self, entry: Entry, ctx: RunContext) -> Path:
        """Stop managing ``entry`` by moving its repository copy to the dump directory."""

        self._require(entry)
        target = entry.discard(ctx)
        self._forget(entry)
        return target

    def _require(self, entry: Entry) -> None:
        if not self.contains(entry):
            raise NotManagedError(f"'{entry.src}' is not managed by module '{self.name}'")

    def _forget(self, entry: Entry) -> None:
        stop_at = self.module_dir / HOME_DIR_NAME if entry.relative.is_home else self.module_dir
        prune_empty_parents(entry.dest.parent, stop_at)
        self._key_set(entry.relative).discard(entry.relative.path)

    def sync(self, force: bool, ctx: RunContext) -> list[SyncResult]:
        """Make every entry's real-world location a link into this module."""

        return [self.sync_entry(entry, force, ctx) for entry in self.entries(ctx)]

    def sync_entry(
        self,
        entry: Entry,
        force: bool,
        ctx: RunContext,
        *,
        relink_roots: Iterable[Path] = (),
    ) -> SyncResult:
        """Link one entry.

        A symlink at ``src`` that points below this module directory, or below
        any of ``relink_roots``, is configma's own and is replaced silently.
        Anything else at ``src`` is a conflict unless ``force`` is set, in
        which case it is moved to the dump directory.
        """

        entry.ensure_src_parent(ctx)

        if not lexists(entry.src):
            entry.symlink_to_src(ctx)
            return self._result(entry, SyncAction.LINKED)

        if entry.is_linked():
            return self._result(entry, SyncAction.UNCHANGED)

        if entry.src.is_symlink():
            target = link_target(entry.src)
            if target is not None and any(
                target.is_relative_to(root) for root in (self.module_dir, *relink_roots)
            ):
                entry.rm_src_file(ctx)
                entry.symlink_to_src(ctx)
                return self._result(entry, SyncAction.RELINKED)

        if not force:
            raise ConflictError(
                f"There is already a file or directory at '{entry.src}'. "
                "Use --force to move it to the dump directory."
            )

        dumped = entry.dump(ctx)
        return self._result(entry, SyncAction.DUMPED, details=str(dumped))

    def unlink_all(self, ignore_non_links: bool, ctx: RunContext) -> list[SyncResult]:
        """Remove the real-world links of every entry."""

        return [self.unlink_entry(entry, ignore_non_links, ctx) for entry in self.entries(ctx)]

    def unlink_entry(self, entry: Entry, ignore_non_links: bool, ctx: RunContext) -> SyncResult:
        if not lexists(entry.src):
            return self._result(entry, SyncAction.SKIPPED, details="nothing to unlink")

        if not entry.is_linked():
            if ignore_non_links:
                return self._result(entry, SyncAction.SKIPPED, details="not a link into this module")
            raise ConflictError(f"'{entry.src}' is not a link to '{entry.dest}'; refusing to delete it")

        entry.rm_src_file(ctx)
        return self._result(entry, SyncAction.UNLINKED)

    def _result(self, entry: Entry, action: SyncAction, *, details: str | None = None) -> SyncResult:
        return SyncResult(
            module=self.name,
            key=entry.relative,
            src=entry.src,
            dest=entry.dest,
            action=action,
            details=details,
        )
