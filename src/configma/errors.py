"""Exception hierarchy for configma.

Operating system failures are not wrapped: they surface as the built-in
``OSError`` family.
"""

from __future__ import annotations


class ConfigmaError(RuntimeError):
    """Base class for errors raised by configma."""


class PathResolutionError(ConfigmaError):
    """A path could not be resolved or lies outside the supported roots."""


class AlreadyManagedError(ConfigmaError):
    """The path already lives in the repository or is already managed."""


class NotManagedError(ConfigmaError):
    """The path is not managed by the module it was looked up in."""


class ConflictError(ConfigmaError):
    """An unexpected object occupies a location configma needs."""


class PrecedenceShadowError(ConfigmaError):
    """An add would be hidden by a module with higher precedence."""


class OverlapError(ConfigmaError):
    """A directory claimed by one module contains a path claimed by another."""


class PrivilegeError(ConfigmaError):
    """Root privileges are required but unavailable, or misused."""


class UnsupportedObjectTypeError(ConfigmaError):
    """The object is neither a regular file, a directory, nor a symlink."""


class UnknownModuleError(ConfigmaError):
    """A module name does not refer to a known module."""
