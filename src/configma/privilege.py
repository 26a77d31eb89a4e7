"""Scoped elevation of effective credentials.

Effective UID/GID are process-wide, so at most one ``PrivilegeGuard`` may be
active at a time and privileged operations must not run in parallel.
"""

from __future__ import annotations

import logging
import os
import pwd
from dataclasses import dataclass
from typing import ClassVar, Mapping

from .errors import PrivilegeError

logger = logging.getLogger(__name__)

ROOT_UID = 0


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """The parts of a passwd record configma needs."""

    name: str
    uid: int
    gid: int
    home: str

    @classmethod
    def from_passwd(cls, record: pwd.struct_passwd) -> "UserIdentity":
        return cls(name=record.pw_name, uid=record.pw_uid, gid=record.pw_gid, home=record.pw_dir)

    @classmethod
    def from_name(cls, name: str) -> "UserIdentity":
        try:
            return cls.from_passwd(pwd.getpwnam(name))
        except KeyError as exc:
            raise PrivilegeError(f"Unknown user '{name}'") from exc

    @classmethod
    def from_uid(cls, uid: int) -> "UserIdentity":
        try:
            return cls.from_passwd(pwd.getpwuid(uid))
        except KeyError as exc:
            raise PrivilegeError(f"No user with uid {uid}") from exc


def detect_identities(environ: Mapping[str, str] | None = None) -> tuple[UserIdentity, UserIdentity | None]:
    """Return ``(invoking user, root identity or None)``.

    When running as root through ``sudo`` the effective credentials are dropped
    to the invoking user straight away; they are only raised again inside a
    ``PrivilegeGuard``.
    """

    environ = os.environ if environ is None else environ
    if os.geteuid() != ROOT_UID:
        return UserIdentity.from_uid(os.getuid()), None

    sudo_user = environ.get("SUDO_USER")
    if not sudo_user:
        raise PrivilegeError("configma must be run as a regular user or through sudo")

    user = UserIdentity.from_name(sudo_user)
    root = UserIdentity.from_uid(ROOT_UID)
    os.setegid(user.gid)
    os.seteuid(user.uid)
    logger.debug("dropped effective credentials to '%s'", user.name)
    return user, root


class PrivilegeGuard:
    """Context manager holding root effective credentials for its body.

    Example::

        with PrivilegeGuard(root, user):
            path.unlink()
    """

    _active: ClassVar["PrivilegeGuard | None"] = None

    def __init__(self, privileged: UserIdentity | None, unprivileged: UserIdentity) -> None:
        self.privileged = privileged
        self.unprivileged = unprivileged

    @classmethod
    def is_active(cls) -> bool:
        return cls._active is not None

    def __enter__(self) -> "PrivilegeGuard":
        if self.privileged is None:
            raise PrivilegeError("Root privileges are required for this path. Re-run configma with sudo.")
        if PrivilegeGuard._active is not None:
            raise PrivilegeError("Privileges are already elevated")

        try:
            os.setegid(self.privileged.gid)
            os.seteuid(self.privileged.uid)
        except OSError:
            self._restore()
            raise
        PrivilegeGuard._active = self
        logger.debug("elevated effective credentials to '%s'", self.privileged.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        PrivilegeGuard._active = None
        self._restore()

    def _restore(self) -> None:
        try:
            os.setegid(self.unprivileged.gid)
            os.seteuid(self.unprivileged.uid)
        except OSError:
            logger.critical("could not drop privileges back to '%s'; aborting", self.unprivileged.name)
            os.abort()
