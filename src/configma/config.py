"""TOML configuration loading for configma."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict

from .errors import ConfigmaError

CONFIG_DIR_NAME = Path(".config") / "configma"
CONFIG_FILENAME = "config.toml"
STATE_FILENAME = "profile.active.toml"
DUMPS_DIR_NAME = "dumps"


class ConfigError(ConfigmaError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str], *, home: Path, base_dir: Path) -> Path:
    """Return an absolute ``Path`` expanding env vars and ``~`` against ``home``."""

    text = os.path.expandvars(str(raw))
    if text == "~" or text.startswith("~/"):
        expanded = home / text[2:]
    else:
        expanded = Path(text)
    if expanded.is_absolute():
        return expanded
    return base_dir / expanded


def _require_name(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{what} must be a non-empty string")
    if "/" in value or value.startswith("."):
        raise ConfigError(f"{what} '{value}' must not contain '/' or start with '.'")
    return value


class ProfileDesc(BaseModel):
    """A named, ordered list of modules. Later modules take precedence."""

    model_config = ConfigDict(frozen=True)

    name: str
    modules: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "ProfileDesc":
        name = _require_name(raw.get("name"), "Profile name")
        modules_raw = raw.get("modules", [])
        if not isinstance(modules_raw, list):
            raise ConfigError(f"Profile '{name}' must list its modules as an array")

        modules = tuple(_require_name(module, f"Module in profile '{name}'") for module in modules_raw)
        if len(set(modules)) != len(modules):
            raise ConfigError(f"Profile '{name}' lists a module more than once")
        return cls(name=name, modules=modules)

    def to_raw(self) -> dict[str, object]:
        return {"name": self.name, "modules": list(self.modules)}


class ModuleDesc(BaseModel):
    """A module declaration; ``path`` is set for modules kept outside the repository."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, home: Path, base_dir: Path) -> "ModuleDesc":
        name = _require_name(raw.get("name"), "Module name")
        path_raw = raw.get("path")
        path = _expand_path(path_raw, home=home, base_dir=base_dir) if path_raw is not None else None
        return cls(name=name, path=path)


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    repo: Path
    default_module: str | None = None
    profiles: tuple[ProfileDesc, ...] = ()
    modules: tuple[ModuleDesc, ...] = ()

    def profile(self, name: str) -> ProfileDesc:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        raise ConfigError(f"Profile '{name}' is not defined in '{self.config_path}'")


def load_config(config_dir: Path, *, home: Path) -> Config:
    """Load and validate ``config.toml`` from ``config_dir``.

    Args:
        config_dir: Directory holding the configuration file.
        home: Home directory of the invoking user, used for ``~`` expansion.
    """

    config_path = config_dir / CONFIG_FILENAME
    if not config_path.is_file():
        raise ConfigError(
            f"Configuration file '{config_path}' does not exist. "
            "Create a git repository and run 'configma init --repo <path>'."
        )

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Cannot parse '{config_path}': {exc}") from exc

    repo_raw = data.get("repo")
    if not isinstance(repo_raw, str) or not repo_raw:
        raise ConfigError(f"'{config_path}' must set 'repo' to the repository path")
    repo = _expand_path(repo_raw, home=home, base_dir=config_dir)

    default_module = data.get("default_module")
    if default_module is not None:
        default_module = _require_name(default_module, "default_module")

    profiles: list[ProfileDesc] = []
    for raw in data.get("profiles", []):
        profile = ProfileDesc.from_raw(raw)
        if any(existing.name == profile.name for existing in profiles):
            raise ConfigError(f"Profile '{profile.name}' is defined more than once")
        profiles.append(profile)

    modules: list[ModuleDesc] = []
    for raw in data.get("modules", []):
        module = ModuleDesc.from_raw(raw, home=home, base_dir=config_dir)
        if any(existing.name == module.name for existing in modules):
            raise ConfigError(f"Module '{module.name}' is declared more than once")
        modules.append(module)

    return Config(
        config_path=config_path,
        repo=repo,
        default_module=default_module,
        profiles=tuple(profiles),
        modules=tuple(modules),
    )


def write_profile(config: Config, profile: ProfileDesc) -> None:
    """Add ``profile`` to the configuration file, replacing one with the same name."""

    with config.config_path.open("rb") as handle:
        data = tomllib.load(handle)

    profiles = [raw for raw in data.get("profiles", []) if raw.get("name") != profile.name]
    profiles.append(profile.to_raw())
    data["profiles"] = profiles

    with config.config_path.open("wb") as handle:
        tomli_w.dump(data, handle)


def render_default_config(repo: str, *, default_module: str = "base") -> str:
    """Return the text of a starter ``config.toml``."""

    data = {
        "repo": repo,
        "default_module": default_module,
        "profiles": [{"name": "default", "modules": [default_module]}],
        "modules": [],
    }
    return "# configma configuration\n\n" + tomli_w.dumps(data)
