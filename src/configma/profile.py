"""Profiles: ordered module lists with override precedence."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Sequence

from .config import ProfileDesc
from .context import RunContext
from .entry import Entry
from .errors import NotManagedError, OverlapError, PrecedenceShadowError, UnknownModuleError
from .filesystem import lexists
from .models import RelativeKey, StatusEntry, StatusState, SyncAction, SyncResult
from .module import Module
from .paths import classify, key_from_repo_path, resolve_path
from .state import StateFile

logger = logging.getLogger(__name__)


def discover_modules(ctx: RunContext) -> dict[str, Module]:
    """Load every module in the repository plus those declared with a path."""

    modules: dict[str, Module] = {}
    for child in sorted(ctx.canon_repo.iterdir()):
        if child.name.startswith(".") or child.is_symlink() or not child.is_dir():
            continue
        modules[child.name] = Module.load(child.name, ctx.canon_repo)

    for desc in ctx.config.modules:
        if desc.path is not None:
            modules[desc.name] = Module.from_dir(desc.name, desc.path)
        elif desc.name not in modules:
            raise UnknownModuleError(f"No module named '{desc.name}' found in '{ctx.canon_repo}'")

    return modules


class Profile:
    """Every known module, plus the module lists that are and should be linked.

    In both lists later modules take precedence over earlier ones.
    """

    def __init__(self, modules: dict[str, Module], active_conf: ProfileDesc, required_conf: ProfileDesc) -> None:
        for name in (*active_conf.modules, *required_conf.modules):
            if name not in modules:
                raise UnknownModuleError(f"Module '{name}' does not exist")
        self.modules = modules
        self.active_conf = active_conf
        self.required_conf = required_conf

    @classmethod
    def load(cls, ctx: RunContext, active_conf: ProfileDesc, required_conf: ProfileDesc) -> "Profile":
        return cls(discover_modules(ctx), active_conf, required_conf)

    # ------------------------------------------------------------------
    # Lookup helpers

    def module(self, name: str) -> Module:
        try:
            return self.modules[name]
        except KeyError as exc:
            raise UnknownModuleError(f"Module '{name}' does not exist") from exc

    def _chain(self, names: Sequence[str]) -> list[Module]:
        """Modules of ``names`` from highest to lowest precedence."""

        return [self.modules[name] for name in reversed(names)]

    def owner(self, key: RelativeKey, names: Sequence[str]) -> Module | None:
        """Return the highest-precedence module of ``names`` claiming ``key``."""

        for module in self._chain(names):
            if module.contains_key(key):
                return module
        return None

    def _module_roots(self, names: Iterable[str]) -> list[Path]:
        return [self.modules[name].module_dir for name in names]

    def _profile_roots(self) -> list[Path]:
        """Directories of the active and required modules, whose links sync may replace."""

        names = dict.fromkeys((*self.active_conf.modules, *self.required_conf.modules))
        return self._module_roots(names)

    def key_for(self, raw: str | os.PathLike[str], ctx: RunContext) -> RelativeKey:
        """Return the key for a real-world path or a path inside any module."""

        path = resolve_path(raw, ctx.canon_home_dir)
        for module in self.modules.values():
            if path.is_relative_to(module.module_dir):
                return key_from_repo_path(path, module.module_dir)
        return classify(path, canon_home=ctx.canon_home_dir, canon_repo=ctx.canon_repo)

    # ------------------------------------------------------------------
    # Validation and synchronisation

    def validate(self) -> None:
        """Fail if a directory claimed by one module contains a path claimed by another."""

        directories: dict[Path, str] = {}
        for module in self.modules.values():
            for key in module.keys():
                if (module.module_dir / key.repo_path).is_dir():
                    directories[key.repo_path] = module.name

        for module in self.modules.values():
            for key in module.keys():
                for ancestor in key.repo_path.parents:
                    owner = directories.get(ancestor)
                    if owner is not None and owner != module.name:
                        raise OverlapError(
                            f"Directory '{ancestor}' of module '{owner}' contains "
                            f"'{key.repo_path}' of module '{module.name}'"
                        )

    def sync(self, force: bool, ctx: RunContext) -> list[SyncResult]:
        """Reconcile the filesystem with ``required_conf`` and record it as active."""

        results: list[SyncResult] = []

        retired = [name for name in self.active_conf.modules if name not in self.required_conf.modules]
        for name in retired:
            module = self.modules[name]
            for entry in module.entries(ctx):
                if self.owner(entry.relative, self.active_conf.modules) is not module:
                    continue
                results.append(module.unlink_entry(entry, force, ctx))

        relink_roots = self._profile_roots()
        synced: set[Path] = set()
        for module in self._chain(self.required_conf.modules):
            for entry in module.entries(ctx):
                if entry.src in synced:
                    continue
                synced.add(entry.src)
                results.append(module.sync_entry(entry, force, ctx, relink_roots=relink_roots))

        StateFile(ctx.state_file).save(self.required_conf)
        self.active_conf = self.required_conf
        return results

    def sync_active(self, key: RelativeKey, ctx: RunContext) -> SyncResult | None:
        """Link ``key`` to the active module that now provides it, if any.

        Whatever occupies the real-world path is moved to the dump directory.
        """

        module = self.owner(key, self.active_conf.modules)
        if module is None:
            return None
        entry = module.entry_from_key(key, ctx)
        relink_roots = self._profile_roots()
        return module.sync_entry(entry, True, ctx, relink_roots=relink_roots)

    # ------------------------------------------------------------------
    # Single entry operations

    def add(self, raw: str | os.PathLike[str], ctx: RunContext, module_name: str) -> Entry | None:
        """Add ``raw`` to ``module_name``.

        Fails if a module with higher precedence already provides the path. If a
        lower-precedence module provides it, that module's copy becomes the
        starting point of the new override.
        """

        module = self.module(module_name)
        names = self.required_conf.modules
        if module_name not in names:
            raise UnknownModuleError(f"Module '{module_name}' is not part of profile '{self.required_conf.name}'")

        path = resolve_path(raw, ctx.canon_home_dir)
        if any(path.is_relative_to(root) for root in (ctx.canon_repo, *self._module_roots(self.modules))):
            logger.info("'%s' is already in the repository", path)
            return None

        entry = module.entry_from_src(path, ctx)
        position = names.index(module_name)
        for name in names[position + 1 :]:
            if self.modules[name].contains_key(entry.relative):
                raise PrecedenceShadowError(
                    f"'{entry.src}' is provided by module '{name}', which overrides '{module_name}'"
                )

        origin: Path | None = None
        for lower in self._chain(names[:position]):
            if lower.contains_key(entry.relative):
                lower_entry = lower.entry_from_key(entry.relative, ctx)
                if lower_entry.is_linked():
                    origin = lower_entry.dest
                break

        return module.add_entry(entry, ctx, origin=origin)

    def remove(self, raw: str | os.PathLike[str], ctx: RunContext, module_name: str) -> Entry:
        """Stop managing ``raw`` in ``module_name``.

        If the module currently provides the path, the object is restored and
        any lower-precedence active module that also claims it is linked in its
        place. If a higher-precedence module provides the path, the link is left
        alone and the module's copy is moved to the dump directory.
        """

        module = self.module(module_name)
        entry = module.entry_from_key(self.key_for(raw, ctx), ctx)
        if not module.contains(entry):
            raise NotManagedError(f"'{entry.src}' is not managed by module '{module_name}'")

        winner = self.owner(entry.relative, self.active_conf.modules)
        if winner is not None and winner is not module:
            target = module.discard_entry(entry, ctx)
            logger.warning(
                "'%s' is provided by module '%s'; moved the copy from '%s' to '%s'",
                entry.src,
                winner.name,
                module_name,
                target,
            )
            return entry

        module.remove_entry(entry, ctx)
        revealed = self.sync_active(entry.relative, ctx)
        if revealed is not None:
            logger.warning("'%s' is now provided by module '%s'", entry.src, revealed.module)
        return entry

    def remove_from_active(self, raw: str | os.PathLike[str], ctx: RunContext) -> Entry:
        """Remove ``raw`` from the highest-precedence active module that has it."""

        key = self.key_for(raw, ctx)
        module = self.owner(key, self.active_conf.modules)
        if module is None:
            raise NotManagedError(f"'{raw}' is not managed by any active module")
        return self.remove(raw, ctx, module.name)

    # ------------------------------------------------------------------
    # Reporting

    def status(self, ctx: RunContext) -> list[StatusEntry]:
        """Describe every entry of the required modules."""

        report: list[StatusEntry] = []
        winners: dict[Path, str] = {}
        for module in self._chain(self.required_conf.modules):
            for entry in module.entries(ctx):
                winner = winners.setdefault(entry.src, module.name)
                report.append(self._status_for_entry(module, entry, winner))

        report.sort(key=lambda item: (str(item.key), item.module))
        return report

    def _status_for_entry(self, module: Module, entry: Entry, winner: str) -> StatusEntry:
        if winner != module.name:
            return StatusEntry(module.name, entry.relative, StatusState.SHADOWED, f"overridden by '{winner}'")
        if entry.is_linked():
            return StatusEntry(module.name, entry.relative, StatusState.LINKED)
        if not lexists(entry.src):
            return StatusEntry(module.name, entry.relative, StatusState.MISSING, "run 'configma sync'")
        return StatusEntry(
            module.name,
            entry.relative,
            StatusState.CONFLICT,
            "another object occupies the path",
        )


def changed(results: Iterable[SyncResult]) -> list[SyncResult]:
    """Drop results that did not touch the filesystem."""

    return [result for result in results if result.action not in (SyncAction.UNCHANGED, SyncAction.SKIPPED)]
