"""Image tag derivation.

Tags look like ``<repository>:<ref>`` where the repository is the lowercased
working directory name and the ref is the current git branch.
"""

from __future__ import annotations

import os
import re
import subprocess
import uuid

from .constants import UNKNOWN_REPOSITORY
from .logging import get_logger

logger = get_logger(__name__)

_UNSAFE_REF_CHARS = re.compile(r"[^a-zA-Z0-9]")


def random_suffix() -> str:
    """Short random alphanumeric token."""
    return uuid.uuid4().hex[:12]


def _current_repository() -> str:
    try:
        cwd = os.getcwd()
    except OSError:
        return UNKNOWN_REPOSITORY
    # repository name must be lowercase
    return (os.path.basename(cwd) or UNKNOWN_REPOSITORY).lower()


def current_branch() -> str:
    """Return the current git branch, or "" when it cannot be determined."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            capture_output=True,
            text=True,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("git not available: %s", e)
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def sanitize_ref(ref: str) -> str:
    """Replace every character outside [A-Za-z0-9] with '-'."""
    return _UNSAFE_REF_CHARS.sub("-", ref)


def derive_tag(repository: str | None = None, branch: str | None = None) -> str:
    """Derive the image tag for the current directory and branch.

    Never fails: falls back to a placeholder repository and a random ref.

    Args:
        repository: Repository part override (lowercased); defaults to cwd name.
        branch: Ref override; defaults to the current git branch.
    """
    repository = repository.lower() if repository else _current_repository()
    ref = (branch if branch is not None else current_branch()).strip()
    if not ref:
        ref = random_suffix()
    return f"{repository}:{sanitize_ref(ref)}"


def repository_of(tag: str) -> str:
    """Repository part of a tag."""
    return tag.split(":", 1)[0]
