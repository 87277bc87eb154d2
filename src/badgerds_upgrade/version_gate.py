"""Repository version check.

The repository root holds a plain-text version marker. Only one repository
version is upgraded by this tool; anything else, older or newer, is
rejected before the repository is touched.
"""

import logging
import re
from pathlib import Path

from badgerds_upgrade.constants import SUPPORTED_REPO_VERSION, VERSION_FILE
from badgerds_upgrade.errors import MalformedVersion, RepoReadError, UnsupportedRepoVersion

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"[+-]?[0-9]+")

__all__ = ["read_repo_version", "check_repo_version"]


def read_repo_version(repo_root: Path) -> int:
    """Read the repository version marker.

    Args:
        repo_root: Repository root directory.

    Returns:
        The version as an integer.

    Raises:
        RepoReadError: If the marker cannot be read.
        MalformedVersion: If the marker does not hold an integer.
    """
    path = Path(repo_root) / VERSION_FILE
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise RepoReadError(path, str(e)) from e

    text = raw.decode("ascii", errors="replace")
    stripped = text.strip()
    if not _VERSION_RE.fullmatch(stripped):
        raise MalformedVersion(path, text)
    return int(stripped)


def check_repo_version(repo_root: Path, supported: int = SUPPORTED_REPO_VERSION) -> int:
    """Ensure the repository is at the version this tool upgrades from.

    Raises:
        UnsupportedRepoVersion: If the marker holds any other version.
        RepoReadError, MalformedVersion: See read_repo_version().
    """
    version = read_repo_version(repo_root)
    if version != supported:
        raise UnsupportedRepoVersion(version, supported)
    logger.debug(f"Repository at {repo_root} is at version {version}")
    return version
