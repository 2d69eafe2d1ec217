"""``docker run`` argument assembly.

The order of the generated arguments is fixed: flags first, then the image
tag, then the command. Docker's parser is positional.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, Sequence

from .constants import (
    DEFAULT_DOCKER_SOCKET,
    DOCKER_HOST_UNIX_PREFIX,
    ENV_GID,
    ENV_UID,
    STDIN_PLACEHOLDER,
)
from .logging import get_logger
from .runtime_config import RuntimeConfig
from .tag import random_suffix, repository_of

logger = get_logger(__name__)


def container_name(tag: str) -> str:
    """Unique container name derived from the tag's repository part."""
    return f"{repository_of(tag)}-{random_suffix()}"


def socket_volume(environ: Mapping[str, str] | None = None) -> str:
    """Volume spec mounting the docker control socket at the same path."""
    environ = os.environ if environ is None else environ
    socket = DEFAULT_DOCKER_SOCKET
    docker_host = environ.get("DOCKER_HOST", "")
    if docker_host.startswith(DOCKER_HOST_UNIX_PREFIX):
        socket = docker_host[len(DOCKER_HOST_UNIX_PREFIX) :]
    return f"{socket}:{socket}"


def _working_directory() -> str | None:
    try:
        return os.getcwd()
    except OSError as e:
        logger.warning("Cannot determine working directory, not mounting source: %s", e)
        return None


def _host_ids() -> tuple[int, int]:
    # Not available on Windows
    geteuid = getattr(os, "geteuid", None)
    getegid = getattr(os, "getegid", None)
    return (geteuid() if geteuid else 0, getegid() if getegid else 0)


def build_run_args(
    tag: str,
    config: RuntimeConfig,
    command_args: Sequence[str] = (),
    *,
    shell: str | None = None,
    socket: bool = False,
    mount_suffix: str | None = None,
    cwd: str | None = None,
    tty: bool | None = None,
    ids: tuple[int, int] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[str, list[str]]:
    """Build the container name and ``docker run`` arguments.

    Args:
        tag: Image to run.
        config: RuntimeConfig read back from the image.
        command_args: Command to run in the container.
        shell: Shell to use as entrypoint for interactive sessions.
        socket: Mount the docker socket even if the image does not ask for it.
        mount_suffix: Suffix appended to the source bind mount (e.g. ``z``).
        cwd: Host working directory (defaults to os.getcwd(); the source
            mount is skipped when that fails).
        tty: Allocate a TTY (defaults to whether stdout is a terminal).
        ids: Host (uid, gid) (defaults to the effective process ids).
        environ: Environment used to locate the docker socket.

    Returns:
        (container name, arguments for ``docker run``)
    """
    name = container_name(tag)
    args = ["-i", "--name", name]

    if tty is None:
        tty = sys.stdout.isatty()
    if tty:
        args.append("-t")

    if config.socket or socket:
        args.extend(["-v", socket_volume(environ)])

    if config.is_bind:
        cwd = cwd or _working_directory()
        if cwd is not None:
            suffix = f":{mount_suffix}" if mount_suffix else ""
            args.extend(["-v", f"{cwd}/{config.cp}:{config.source}{suffix}"])

    uid, gid = ids if ids is not None else _host_ids()
    args.extend(["-e", f"{ENV_UID}={uid}", "-e", f"{ENV_GID}={gid}"])

    for item in config.env:
        args.extend(["-e", item])

    if shell:
        args.extend(["--entrypoint", shell, "-e", "TERM"])

    args.extend(config.run_args)
    args.append(tag)

    if shell and not command_args:
        args.append(STDIN_PLACEHOLDER)
    else:
        args.extend(command_args)

    return name, args
