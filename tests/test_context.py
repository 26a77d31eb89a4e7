from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path

import pytest

from configma.config import ConfigError, load_config
from configma.context import RunContext, default_config_dir
from configma.privilege import PrivilegeGuard, UserIdentity


def test_create_derives_paths(ctx: RunContext, config_dir: Path, repo: Path, fake_home: Path) -> None:
    assert ctx.canon_repo == repo
    assert ctx.canon_home_dir == fake_home
    assert ctx.state_file == config_dir / "profile.active.toml"
    assert ctx.dump_dir == config_dir / "dumps" / "1700000000000"


def test_create_requires_repository(
    config_dir: Path, fake_home: Path, identity: UserIdentity, tmp_path: Path
) -> None:
    (config_dir / "config.toml").write_text(f'repo = "{tmp_path / "missing"}"\n')
    config = load_config(config_dir, home=fake_home)

    with pytest.raises(ConfigError, match="does not exist"):
        RunContext.create(config, config_dir=config_dir, user=identity)


def test_privileged_selects_guard(ctx: RunContext) -> None:
    assert isinstance(ctx.privileged(True), PrivilegeGuard)
    assert isinstance(ctx.privileged(False), nullcontext)


def test_default_config_dir(identity: UserIdentity, fake_home: Path) -> None:
    assert default_config_dir(identity) == fake_home / ".config" / "configma"
