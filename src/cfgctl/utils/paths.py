"""Filesystem path helpers."""

import os
import shutil
from datetime import datetime
from pathlib import Path

from cfgctl.core.exceptions import ConfigurationError


def home_path(*parts: str) -> str:
    """Join parts onto the user's home directory, or return "" when unknown."""
    try:
        home = Path.home()
    except RuntimeError:
        return ""
    return str(home.joinpath(*parts))


def normalize_path(path: str, field: str = "path") -> str:
    """Expand environment variables and ``~`` and require an absolute result.

    Args:
        path: Raw path from configuration
        field: Field name used in error messages

    Returns:
        Normalized absolute path

    Raises:
        ConfigurationError: If the path is empty or not absolute
    """
    if not path or not path.strip():
        raise ConfigurationError(f"{field} cannot be empty")

    expanded = os.path.expanduser(os.path.expandvars(path.strip()))
    expanded = os.path.normpath(expanded)
    if not os.path.isabs(expanded):
        raise ConfigurationError(f"{field} must be absolute: {path}")

    return expanded


def write_private_file(path: str, content: str) -> None:
    """Write a file readable only by the owner, creating parent directories."""
    target = Path(path)
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    target.chmod(0o600)


def backup_file(path: str, now: datetime | None = None) -> str:
    """Copy ``path`` to ``<path>.<YYYYmmdd-HHMMSS>.bak``.

    Returns:
        The backup path, or "" when ``path`` does not exist
    """
    source = Path(path)
    if not source.exists():
        return ""

    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    target = f"{path}.{timestamp}.bak"
    shutil.copy2(source, target)
    return target
