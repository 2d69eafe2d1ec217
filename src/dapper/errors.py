"""Exceptions raised by dapper.

Failures derive from DapperError; the CLI turns them into a red message and
a non-zero exit. Build and container failures carry the docker exit code,
which becomes the exit code of dapper itself.

SkipBuild is not a failure and sits outside the hierarchy: the host
architecture is excluded and there is nothing to build.

Leaf module: imports nothing from dapper.
"""

from __future__ import annotations


class DapperError(Exception):
    """Base exception for all dapper errors."""


class ConfigError(DapperError):
    """Invalid option values or combinations.

    Examples:
        - Contextless build together with a graph build
        - Contextless build together with copy mode
        - Unknown mode name
    """


class DockerfileError(DapperError):
    """Dockerfile lookup errors.

    Examples:
        - Dockerfile missing or unreadable
    """


class DockerError(DapperError):
    """A docker invocation failed or docker is unavailable."""


class DockerNotFoundError(DockerError):
    """The docker binary is not on PATH."""


class ImageBuildError(DockerError):
    """Raised when the backend build command fails."""

    def __init__(self, message: str, returncode: int = 1) -> None:
        super().__init__(message)
        self.returncode = returncode


class ContainerError(DockerError):
    """Raised when the container command exits non-zero."""

    def __init__(self, message: str, returncode: int = 1) -> None:
        super().__init__(message)
        self.returncode = returncode


class RuntimeConfigError(DapperError):
    """Raised when the built image's environment cannot be read back."""


class RuntimeConfigUnavailableError(DapperError):
    """Raised when the runtime config is accessed before a successful build."""


class SkipBuild(Exception):
    """The host architecture is explicitly excluded; there is nothing to build."""

    def __init__(self, arch: str) -> None:
        super().__init__(f"build skipped for architecture {arch}")
        self.arch = arch
