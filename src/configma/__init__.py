"""Core package for the configma project."""

from .cli import app, run
from .config import Config, ConfigError, ModuleDesc, ProfileDesc, load_config
from .context import RunContext
from .entry import Entry
from .errors import (
    AlreadyManagedError,
    ConfigmaError,
    ConflictError,
    NotManagedError,
    OverlapError,
    PathResolutionError,
    PrecedenceShadowError,
    PrivilegeError,
    UnknownModuleError,
    UnsupportedObjectTypeError,
)
from .models import KeyKind, RelativeKey, StatusEntry, StatusState, SyncAction, SyncResult
from .module import Module
from .privilege import PrivilegeGuard, UserIdentity
from .profile import Profile
from .state import StateFile

__all__ = [
    "Config",
    "ConfigError",
    "ModuleDesc",
    "ProfileDesc",
    "load_config",
    "RunContext",
    "Entry",
    "Module",
    "Profile",
    "PrivilegeGuard",
    "UserIdentity",
    "StateFile",
    "KeyKind",
    "RelativeKey",
    "StatusEntry",
    "StatusState",
    "SyncAction",
    "SyncResult",
    "ConfigmaError",
    "AlreadyManagedError",
    "ConflictError",
    "NotManagedError",
    "OverlapError",
    "PathResolutionError",
    "PrecedenceShadowError",
    "PrivilegeError",
    "UnknownModuleError",
    "UnsupportedObjectTypeError",
    "app",
    "run",
]
