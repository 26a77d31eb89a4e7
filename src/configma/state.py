"""Persistence of the active profile record."""

from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path

from tomli_w import dump as toml_dump

from .config import ConfigError, ProfileDesc


class StateFile:
    """Records which profile, and which of its modules, are linked on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ProfileDesc | None:
        if not self.path.exists():
            return None

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Cannot parse active profile record '{self.path}': {exc}") from exc

        return ProfileDesc.from_raw(data)

    def save(self, profile: ProfileDesc) -> None:
        """Replace the record atomically."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                toml_dump(profile.to_raw(), handle)
            os.replace(temp_path, self.path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise
