from __future__ import annotations

import os
from pathlib import Path
from textwrap import dedent
from typing import Callable

import pytest

from configma.config import CONFIG_FILENAME, load_config
from configma.context import RunContext
from configma.privilege import UserIdentity


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home.resolve()


@pytest.fixture
def identity(fake_home: Path) -> UserIdentity:
    return UserIdentity(name="tester", uid=os.geteuid(), gid=os.getegid(), home=str(fake_home))


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path.resolve()


def write_config(config_dir: Path, body: str) -> Path:
    config_path = config_dir / CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


@pytest.fixture
def make_context(
    config_dir: Path, repo: Path, identity: UserIdentity, fake_home: Path
) -> Callable[..., RunContext]:
    """Build a ``RunContext`` whose root identity is the test process itself.

    Raising privileges then only re-applies the current credentials, which
    works whether or not the suite runs as root.
    """

    def factory(extra: str = "", *, privileged: bool = True) -> RunContext:
        body = f'repo = "{repo}"\n' + dedent(extra)
        write_config(config_dir, body)
        config = load_config(config_dir, home=fake_home)
        return RunContext.create(
            config,
            config_dir=config_dir,
            user=identity,
            root_user=identity if privileged else None,
            timestamp_ms=1700000000000,
        )

    return factory


@pytest.fixture
def ctx(make_context: Callable[..., RunContext]) -> RunContext:
    return make_context()
