"""Discovery of managed entries inside a module directory."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path

logger = logging.getLogger(__name__)

STUB_SUFFIX = ".configma.stub"
LEGACY_STUB_NAME = ".configma.stub"


def stub_marker(directory: Path) -> Path:
    """Return the sibling marker that flags ``directory`` as one managed entry."""

    return directory.parent / f".{directory.name}{STUB_SUFFIX}"


def is_stub_marker(path: Path) -> bool:
    return path.name.endswith(STUB_SUFFIX)


def is_stubbed(directory: Path) -> bool:
    """Return ``True`` if ``directory`` is managed as a whole."""

    return stub_marker(directory).is_file() or (directory / LEGACY_STUB_NAME).is_file()


def scan_entries(root: Path) -> set[Path]:
    """Return the managed leaf entries below ``root`` as paths relative to it.

    Regular files are leaves at any depth. Stubbed directories are leaves and
    are not descended into. Symlinks are reported and ignored.
    """

    found: set[Path] = set()
    frontier: deque[Path] = deque([root])

    while frontier:
        directory = frontier.popleft()
        for child in directory.iterdir():
            relative = child.relative_to(root)
            if child.is_symlink():
                logger.warning("ignoring symlink '%s'", child)
            elif child.is_file():
                if not is_stub_marker(child):
                    found.add(relative)
            elif child.is_dir():
                if is_stubbed(child):
                    found.add(relative)
                else:
                    frontier.append(child)
            else:
                logger.warning("ignoring unsupported path '%s'", child)

    return found
