"""Runtime configuration read back from a built image.

The Dockerfile declares how the environment is meant to run through ``ENV``
variables (``DAPPER_SOURCE``, ``DAPPER_MODE``, ...). After a build, the image's
environment is inspected once and translated into a RuntimeConfig.
"""

from __future__ import annotations

import json
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .constants import (
    DEFAULT_CP,
    DEFAULT_SHELL,
    DEFAULT_SOURCE,
    ENV_CP,
    ENV_ENV,
    ENV_MODE,
    ENV_OUTPUT,
    ENV_RUN_ARGS,
    ENV_SHELL,
    ENV_SOCKET,
    ENV_SOURCE,
    MODE_AUTO,
    MODE_BIND,
    MODE_CP,
    VALID_MODES,
)
from .docker import docker_output
from .errors import ConfigError, RuntimeConfigError
from .logging import get_logger

logger = get_logger(__name__)

_TRUTHY = ("true", "1", "yes")


def resolve_mode(override: str | None, declared: str | None = None) -> str:
    """Resolve the execution mode.

    An explicit ``bind`` or ``cp`` override wins. ``auto`` (or no override)
    defers to the mode declared by the image, and falls back to ``bind``.

    Raises:
        ConfigError: If the override is not a known mode.
    """
    override = (override or MODE_AUTO).lower()
    if override not in VALID_MODES:
        raise ConfigError(f"Unknown mode '{override}' (expected one of auto, bind, cp)")
    if override in (MODE_BIND, MODE_CP):
        return override
    declared = (declared or "").lower()
    if declared in (MODE_BIND, MODE_CP):
        return declared
    return MODE_BIND


@dataclass(frozen=True)
class RuntimeConfig:
    """Typed view over the image-declared DAPPER_* environment.

    Attributes:
        source: In-container source directory (DAPPER_SOURCE, default /source/).
        cp: Host path, relative to the working directory, copied or bound into
            ``source`` (DAPPER_CP, default ".").
        socket: Mount the docker control socket (DAPPER_DOCKER_SOCKET).
        mode: Resolved execution mode, ``bind`` or ``cp``.
        env: Extra ``NAME`` or ``NAME=VALUE`` items for ``docker run -e``
            (DAPPER_ENV, whitespace separated).
        run_args: Extra literal ``docker run`` flags (DAPPER_RUN_ARGS).
        output: In-container paths copied back after a run (DAPPER_OUTPUT).
        shell: Interactive shell binary (DAPPER_SHELL, default /bin/bash).
    """

    source: str = DEFAULT_SOURCE
    cp: str = DEFAULT_CP
    socket: bool = False
    mode: str = MODE_BIND
    env: tuple[str, ...] = ()
    run_args: tuple[str, ...] = ()
    output: tuple[str, ...] = ()
    shell: str = DEFAULT_SHELL

    @property
    def is_bind(self) -> bool:
        return self.mode == MODE_BIND

    @classmethod
    def from_mapping(
        cls, env: Mapping[str, str], mode_override: str | None = None
    ) -> RuntimeConfig:
        """Translate a raw name -> value mapping."""
        return cls(
            source=env.get(ENV_SOURCE) or DEFAULT_SOURCE,
            cp=env.get(ENV_CP) or DEFAULT_CP,
            socket=env.get(ENV_SOCKET, "").lower() in _TRUTHY,
            mode=resolve_mode(mode_override, env.get(ENV_MODE)),
            env=tuple(env.get(ENV_ENV, "").split()),
            run_args=tuple(env.get(ENV_RUN_ARGS, "").split()),
            output=tuple(env.get(ENV_OUTPUT, "").split()),
            shell=env.get(ENV_SHELL) or DEFAULT_SHELL,
        )

    @classmethod
    def from_env_list(
        cls, items: Iterable[str], mode_override: str | None = None
    ) -> RuntimeConfig:
        """Translate ``NAME=VALUE`` strings, as reported by ``docker inspect``."""
        env: dict[str, str] = {}
        for item in items:
            key, _, value = item.partition("=")
            logger.debug("Reading Env: %s=%s", key, value)
            env[key] = value
        return cls.from_mapping(env, mode_override)


def read_runtime_config(docker: str, tag: str, mode_override: str | None = None) -> RuntimeConfig:
    """Inspect ``tag`` and build its RuntimeConfig.

    Raises:
        RuntimeConfigError: If inspection fails or returns malformed JSON.
    """
    args = ("inspect", "-f", "{{json .Config.Env}}", tag)
    try:
        output = docker_output(docker, *args)
    except subprocess.CalledProcessError as e:
        logger.error("Failed to run docker %s: %s", list(args), (e.output or "").strip())
        raise RuntimeConfigError(f"Failed to inspect image {tag}") from e

    try:
        items = json.loads(output)
    except json.JSONDecodeError as e:
        raise RuntimeConfigError(f"Malformed environment for image {tag}: {e}") from e
    if items is None:
        items = []
    if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
        raise RuntimeConfigError(f"Unexpected environment for image {tag}: {output.strip()}")

    config = RuntimeConfig.from_env_list(items, mode_override)
    logger.debug("Source: %s", config.source)
    logger.debug("Cp: %s", config.cp)
    logger.debug("Socket: %s", config.socket)
    logger.debug("Mode: %s", config.mode)
    logger.debug("Env: %s", list(config.env))
    logger.debug("Output: %s", list(config.output))
    return config
