from __future__ import annotations

import tomllib
from pathlib import Path
from textwrap import dedent

import pytest

from configma.config import (
    CONFIG_FILENAME,
    ConfigError,
    ProfileDesc,
    load_config,
    render_default_config,
    write_profile,
)


def write_config(config_dir: Path, body: str) -> Path:
    config_path = config_dir / CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


def test_load_config_happy_path(config_dir: Path, fake_home: Path) -> None:
    write_config(
        config_dir,
        """
        repo = "~/dotfiles"
        default_module = "base"

        [[profiles]]
        name = "laptop"
        modules = ["base", "gui"]

        [[modules]]
        name = "secrets"
        path = "~/private/secrets"

        [[modules]]
        name = "gui"
        """,
    )

    config = load_config(config_dir, home=fake_home)

    assert config.config_path == config_dir / CONFIG_FILENAME
    assert config.repo == fake_home / "dotfiles"
    assert config.default_module == "base"
    assert config.profile("laptop").modules == ("base", "gui")

    secrets, gui = config.modules
    assert secrets.path == fake_home / "private" / "secrets"
    assert gui.path is None


def test_relative_paths_resolve_against_config_dir(config_dir: Path, fake_home: Path) -> None:
    write_config(
        config_dir,
        """
        repo = "repo"

        [[modules]]
        name = "ext"
        path = "../elsewhere"
        """,
    )

    config = load_config(config_dir, home=fake_home)

    assert config.repo == config_dir / "repo"
    assert config.modules[0].path == config_dir / ".." / "elsewhere"


def test_load_config_expands_environment(
    config_dir: Path, fake_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DOTFILES", str(fake_home / "from-env"))
    write_config(config_dir, 'repo = "$DOTFILES"\n')

    assert load_config(config_dir, home=fake_home).repo == fake_home / "from-env"


def test_missing_config_mentions_init(config_dir: Path, fake_home: Path) -> None:
    with pytest.raises(ConfigError, match="configma init"):
        load_config(config_dir, home=fake_home)


@pytest.mark.parametrize(
    "body, message",
    [
        ("repo = [", "Cannot parse"),
        ("default_module = 'base'\n", "must set 'repo'"),
        ("repo = 'r'\n[[profiles]]\nname = 'p'\n[[profiles]]\nname = 'p'\n", "defined more than once"),
        ("repo = 'r'\n[[profiles]]\nname = 'p'\nmodules = ['a', 'a']\n", "more than once"),
        ("repo = 'r'\n[[modules]]\nname = 'm'\n[[modules]]\nname = 'm'\n", "declared more than once"),
        ("repo = 'r'\n[[modules]]\nname = 'a/b'\n", "must not contain"),
        ("repo = 'r'\n[[profiles]]\nname = 'p'\nmodules = 'base'\n", "as an array"),
    ],
)
def test_invalid_configs(config_dir: Path, fake_home: Path, body: str, message: str) -> None:
    write_config(config_dir, body)

    with pytest.raises(ConfigError, match=message):
        load_config(config_dir, home=fake_home)


def test_unknown_profile(config_dir: Path, fake_home: Path) -> None:
    write_config(config_dir, 'repo = "r"\n')

    with pytest.raises(ConfigError, match="not defined"):
        load_config(config_dir, home=fake_home).profile("missing")


def test_write_profile_replaces_same_name(config_dir: Path, fake_home: Path) -> None:
    write_config(
        config_dir,
        """
        repo = "r"

        [[profiles]]
        name = "desk"
        modules = ["base"]

        [[profiles]]
        name = "laptop"
        modules = ["base"]
        """,
    )
    config = load_config(config_dir, home=fake_home)

    write_profile(config, ProfileDesc(name="desk", modules=("base", "gui")))

    reloaded = load_config(config_dir, home=fake_home)
    assert {profile.name: profile.modules for profile in reloaded.profiles} == {
        "laptop": ("base",),
        "desk": ("base", "gui"),
    }
    assert reloaded.repo == config_dir / "r"


def test_render_default_config_round_trips(config_dir: Path, fake_home: Path) -> None:
    text = render_default_config("/srv/dotfiles")
    (config_dir / CONFIG_FILENAME).write_text(text)

    config = load_config(config_dir, home=fake_home)

    assert tomllib.loads(text)["default_module"] == "base"
    assert config.repo == Path("/srv/dotfiles")
    assert config.profile("default").modules == ("base",)
