"""Docker process primitives for dapper.

Every interaction with the container engine goes through one of the
functions below. Non-zero exits surface as subprocess.CalledProcessError,
unwrapped and never retried; there is no timeout layer.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import NoReturn

from .errors import DockerNotFoundError
from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "find_docker",
    "docker_exec",
    "docker_exec_with_stdin",
    "docker_output",
    "docker_run_exec",
]


def find_docker() -> str:
    """Locate the docker binary.

    Raises:
        DockerNotFoundError: If docker is not in PATH.
    """
    docker = shutil.which("docker")
    if docker is None:
        raise DockerNotFoundError("Docker not found in PATH")
    return docker


def _run(docker: str, args: tuple[str, ...], **kwargs: object) -> subprocess.CompletedProcess:
    logger.debug("Running %s %s", docker, list(args))
    try:
        return subprocess.run([docker, *args], check=True, **kwargs)  # type: ignore[call-overload]
    except FileNotFoundError as e:
        raise DockerNotFoundError(f"Docker not found: {docker}") from e
    except subprocess.CalledProcessError as e:
        logger.debug("Failed running %s %s: exit=%d", docker, list(args), e.returncode)
        raise


def docker_exec(docker: str, *args: str) -> None:
    """Run a docker command with inherited stdin/stdout/stderr."""
    _run(docker, args)


def docker_exec_with_stdin(docker: str, data: bytes, *args: str) -> None:
    """Run a docker command feeding ``data`` on stdin; stdout/stderr inherited."""
    _run(docker, args, input=data)


def docker_output(docker: str, *args: str) -> str:
    """Run a docker command and return combined stdout+stderr.

    Stdin is detached so the command never takes over the terminal.
    """
    result = _run(
        docker,
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    return result.stdout


def docker_run_exec(docker: str, *args: str) -> NoReturn:
    """Replace the current process with ``docker run <args>``.

    Signals and terminal control pass straight to docker. Nothing after this
    call runs, so callers must release their resources first.
    """
    logger.debug("Exec %s run %s", docker, list(args))
    os.execve(docker, ["docker", "run", *args], os.environ)
