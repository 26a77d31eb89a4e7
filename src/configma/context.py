"""Run-wide context shared by every operation of one invocation."""

from __future__ import annotations

import time
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from pathlib import Path

from .config import CONFIG_DIR_NAME, DUMPS_DIR_NAME, STATE_FILENAME, Config, ConfigError
from .privilege import PrivilegeGuard, UserIdentity


def default_config_dir(user: UserIdentity) -> Path:
    return Path(user.home) / CONFIG_DIR_NAME


@dataclass(frozen=True)
class RunContext:
    """Paths and identities for one invocation. Created once, never mutated."""

    config: Config
    user: UserIdentity
    root_user: UserIdentity | None
    home_dir: Path
    canon_home_dir: Path
    config_dir: Path
    dump_dir: Path
    state_file: Path
    repo: Path
    canon_repo: Path

    @classmethod
    def create(
        cls,
        config: Config,
        *,
        config_dir: Path,
        user: UserIdentity,
        root_user: UserIdentity | None = None,
        timestamp_ms: int | None = None,
    ) -> "RunContext":
        if not config.repo.is_dir():
            raise ConfigError(f"Repository '{config.repo}' does not exist")

        home_dir = Path(user.home)
        if timestamp_ms is None:
            timestamp_ms = time.time_ns() // 1_000_000

        return cls(
            config=config,
            user=user,
            root_user=root_user,
            home_dir=home_dir,
            canon_home_dir=home_dir.resolve(strict=True),
            config_dir=config_dir,
            dump_dir=config_dir / DUMPS_DIR_NAME / str(timestamp_ms),
            state_file=config_dir / STATE_FILENAME,
            repo=config.repo,
            canon_repo=config.repo.resolve(strict=True),
        )

    def escalate(self) -> PrivilegeGuard:
        """Return a guard that runs its body with root effective credentials."""

        return PrivilegeGuard(self.root_user, self.user)

    def privileged(self, needed: bool) -> AbstractContextManager[object]:
        return self.escalate() if needed else nullcontext()
