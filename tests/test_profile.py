from __future__ import annotations

from pathlib import Path

import pytest

from configma.config import ProfileDesc
from configma.context import RunContext
from configma.errors import (
    ConflictError,
    NotManagedError,
    OverlapError,
    PrecedenceShadowError,
    UnknownModuleError,
)
from configma.models import RelativeKey, StatusState, SyncAction
from configma.profile import Profile, changed, discover_modules
from configma.scanner import stub_marker
from configma.state import StateFile


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _desc(*modules: str, name: str = "work") -> ProfileDesc:
    return ProfileDesc(name=name, modules=modules)


def _profile(ctx: RunContext, active: tuple[str, ...], required: tuple[str, ...]) -> Profile:
    return Profile.load(ctx, _desc(*active), _desc(*required))


@pytest.fixture
def layered(repo: Path) -> Path:
    """Two modules that both provide ``~/.x``; only ``a`` provides ``~/.y``."""

    _write(repo / "a" / "home" / ".x", "from a")
    _write(repo / "a" / "home" / ".y", "only a")
    _write(repo / "b" / "home" / ".x", "from b")
    return repo


def test_later_module_wins(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    profile = _profile(ctx, (), ("a", "b"))

    results = profile.sync(False, ctx)

    assert (fake_home / ".x").read_text() == "from b"
    assert (fake_home / ".y").read_text() == "only a"
    assert sorted((result.module, str(result.key)) for result in results) == [("a", "~/.y"), ("b", "~/.x")]
    assert StateFile(ctx.state_file).load() == _desc("a", "b")


def test_switch_unlinks_retired_module(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    _profile(ctx, (), ("a", "b")).sync(False, ctx)

    profile = _profile(ctx, ("a", "b"), ("a",))
    results = profile.sync(False, ctx)

    assert (fake_home / ".x").resolve() == layered / "a" / "home" / ".x"
    actions = {(result.module, result.action) for result in results}
    assert ("b", SyncAction.UNLINKED) in actions
    assert ("a", SyncAction.LINKED) in actions
    assert StateFile(ctx.state_file).load() == _desc("a")


def test_switch_leaves_modules_not_in_profile_alone(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    _profile(ctx, (), ("a",)).sync(False, ctx)

    results = _profile(ctx, ("a",), ("b",)).sync(False, ctx)

    assert not (fake_home / ".y").exists()
    assert (fake_home / ".x").read_text() == "from b"
    assert [result.action for result in changed(results)] == [
        SyncAction.UNLINKED,
        SyncAction.UNLINKED,
        SyncAction.LINKED,
    ]


def test_validate_rejects_overlapping_modules(ctx: RunContext, repo: Path) -> None:
    nvim = repo / "a" / "home" / ".config" / "nvim"
    _write(nvim / "init.lua", "")
    stub_marker(nvim).touch()
    _write(repo / "b" / "home" / ".config" / "nvim" / "lua" / "extra.lua", "")

    profile = _profile(ctx, (), ("a", "b"))

    with pytest.raises(OverlapError):
        profile.validate()


def test_validate_accepts_disjoint_modules(ctx: RunContext, layered: Path) -> None:
    _profile(ctx, (), ("a", "b")).validate()


def test_add_refuses_path_owned_by_higher_module(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    profile = _profile(ctx, ("a", "b"), ("a", "b"))
    profile.sync(False, ctx)

    with pytest.raises(PrecedenceShadowError):
        profile.add("~/.x", ctx, "a")


def test_add_overrides_lower_module_with_its_copy(ctx: RunContext, repo: Path, fake_home: Path) -> None:
    _write(repo / "a" / "home" / ".gitconfig", "[user]\n")
    (repo / "b").mkdir()
    profile = _profile(ctx, (), ("a", "b"))
    profile.sync(False, ctx)

    entry = profile.add("~/.gitconfig", ctx, "b")

    assert entry is not None
    assert (repo / "b" / "home" / ".gitconfig").read_text() == "[user]\n"
    assert (repo / "a" / "home" / ".gitconfig").read_text() == "[user]\n"
    assert (fake_home / ".gitconfig").resolve() == repo / "b" / "home" / ".gitconfig"


def test_add_requires_module_in_profile(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    _write(fake_home / ".z", "z")
    profile = _profile(ctx, ("a",), ("a",))

    with pytest.raises(UnknownModuleError):
        profile.add("~/.z", ctx, "b")


def test_remove_reveals_lower_module(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    profile = _profile(ctx, (), ("a", "b"))
    profile.sync(False, ctx)

    profile.remove_from_active("~/.x", ctx)

    assert (fake_home / ".x").resolve() == layered / "a" / "home" / ".x"
    assert (ctx.dump_dir / "home" / ".x").read_text() == "from b"
    assert not (layered / "b" / "home" / ".x").exists()


def test_remove_shadowed_entry_moves_copy_to_dump(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    profile = _profile(ctx, (), ("a", "b"))
    profile.sync(False, ctx)

    profile.remove("~/.x", ctx, "a")

    assert not (layered / "a" / "home" / ".x").exists()
    assert (ctx.dump_dir / "home" / ".x").read_text() == "from a"
    assert (fake_home / ".x").read_text() == "from b"


def test_remove_from_active_requires_owner(ctx: RunContext, layered: Path) -> None:
    profile = _profile(ctx, ("a", "b"), ("a", "b"))

    with pytest.raises(NotManagedError):
        profile.remove_from_active("~/.unknown", ctx)


def test_status_reports_every_entry(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    profile = _profile(ctx, (), ("a", "b"))
    profile.sync(False, ctx)
    (fake_home / ".y").unlink()

    report = {(item.module, str(item.key)): item.state for item in profile.status(ctx)}

    assert report == {
        ("a", "~/.x"): StatusState.SHADOWED,
        ("b", "~/.x"): StatusState.LINKED,
        ("a", "~/.y"): StatusState.MISSING,
    }

    _write(fake_home / ".y", "local")
    states = {str(item.key): item.state for item in profile.status(ctx) if item.module == "a"}
    assert states["~/.y"] is StatusState.CONFLICT


def test_unknown_module_in_profile(ctx: RunContext, layered: Path) -> None:
    with pytest.raises(UnknownModuleError):
        _profile(ctx, (), ("a", "ghost"))


def test_discover_skips_hidden_and_loads_external(make_context, repo: Path, tmp_path: Path) -> None:
    (repo / ".git").mkdir()
    (repo / "base").mkdir()
    (repo / "notes.txt").write_text("n")
    external = tmp_path / "external-module"
    _write(external / "home" / ".ext", "e")

    ctx = make_context(
        f"""
        [[modules]]
        name = "ext"
        path = "{external}"
        """
    )
    modules = discover_modules(ctx)

    assert sorted(modules) == ["base", "ext"]
    assert modules["ext"].contains_key(RelativeKey.home(".ext"))


def test_discover_rejects_undeclared_module(make_context, repo: Path) -> None:
    ctx = make_context(
        """
        [[modules]]
        name = "missing"
        """
    )

    with pytest.raises(UnknownModuleError):
        discover_modules(ctx)


def test_link_into_module_outside_profile_is_a_conflict(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    notes = _write(layered / "scratch" / "home" / "notes", "mine")
    (fake_home / ".x").symlink_to(notes)
    profile = _profile(ctx, (), ("a",))

    with pytest.raises(ConflictError):
        profile.sync(False, ctx)

    assert (fake_home / ".x").resolve() == notes


def test_link_into_active_module_is_relinked(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    _profile(ctx, (), ("a", "b")).sync(False, ctx)

    results = _profile(ctx, ("a", "b"), ("b", "a")).sync(False, ctx)

    assert (fake_home / ".x").resolve() == layered / "a" / "home" / ".x"
    assert ("a", SyncAction.RELINKED) in {(result.module, result.action) for result in results}


def test_repeated_removal_keeps_every_dump(ctx: RunContext, layered: Path, fake_home: Path) -> None:
    _write(layered / "c" / "home" / ".x", "from c")
    profile = _profile(ctx, (), ("a", "b", "c"))
    profile.sync(False, ctx)

    profile.remove_from_active("~/.x", ctx)
    profile.remove_from_active("~/.x", ctx)

    assert (fake_home / ".x").resolve() == layered / "a" / "home" / ".x"
    assert (ctx.dump_dir / "home" / ".x").read_text() == "from c"
    assert (ctx.dump_dir / "home" / ".x.1").read_text() == "from b"
    assert not (layered / "b" / "home" / ".x").exists()
