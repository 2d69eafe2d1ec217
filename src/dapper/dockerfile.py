"""Dockerfile preprocessing.

Two passes over a Dockerfile:

* ``harvest_build_args`` collects ``ARG`` values from the host environment and
  resolves the host architecture.
* ``resolve_dockerfile`` rewrites architecture-conditional base images::

      FROM golang:1.22
      # FROM {"arm64": "arm64v8/golang:1.22", "s390x": "skip"}

  The comment line selects the image for the current architecture, or the
  value ``skip`` abandons the build (``SkipBuild``).
"""

from __future__ import annotations

import json
import platform
import shlex
import subprocess
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from .constants import HOST_ARCH_ARG, MACHINE_ARCH_ALIASES, SKIP_ARCH
from .docker import docker_output
from .errors import DockerError, DockerfileError, SkipBuild
from .logging import get_logger

logger = get_logger(__name__)

ARCH_COMMENT_PREFIX = "# FROM"

# Dockerfiles are bytes; undecodable bytes round-trip unchanged
TEXT_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class ArchMap:
    """Architecture name -> base image (or ``skip``), from one comment line."""

    images: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def parse(cls, line: str) -> ArchMap | None:
        """Parse ``# FROM {...}``; return None if the line is not an arch map.

        A comment that looks like a map but does not parse is left alone.
        """
        if not line.startswith(ARCH_COMMENT_PREFIX):
            return None
        body = line[len(ARCH_COMMENT_PREFIX) :].strip()
        if not body.startswith("{"):
            return None
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed architecture map %r: %s", body, e)
            return None
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.warning("Ignoring architecture map without string images: %r", body)
            return None
        return cls(MappingProxyType(dict(data)))

    def image_for(self, arch: str) -> str | None:
        """Image pinned for ``arch``; raises SkipBuild if the arch is excluded."""
        image = self.images.get(arch)
        if image == SKIP_ARCH:
            raise SkipBuild(arch)
        return image


class _State(Enum):
    NORMAL = "normal"
    AWAITING_ARCH_COMMENT = "awaiting_arch_comment"


def _is_plain_from(line: str) -> bool:
    return line.startswith("FROM ") and len(line.split()) == 2


def _decode(line: str | bytes) -> str:
    if isinstance(line, bytes):
        line = line.decode("utf-8", TEXT_ERRORS)
    return line.rstrip("\r\n")


def resolve_dockerfile(lines: Iterable[str | bytes], host_arch: str) -> bytes:
    """Resolve architecture-conditional FROM lines.

    Args:
        lines: Dockerfile lines (an open file, a stream, or a list).
        host_arch: Architecture used to pick images from arch maps.

    Returns:
        The resolved Dockerfile, every line terminated by a single newline.
        Bytes that are not UTF-8 come back unchanged.

    Raises:
        SkipBuild: If the host architecture is marked ``skip``.
    """
    out: list[str] = []
    state = _State.NORMAL
    pending_from = ""

    for raw in lines:
        line = _decode(raw)
        if state is _State.AWAITING_ARCH_COMMENT:
            arch_map = ArchMap.parse(line)
            if arch_map is not None:
                image = arch_map.image_for(host_arch)
                if image:
                    logger.debug("Resolved %r to FROM %s for %s", pending_from, image, host_arch)
                    pending_from = f"FROM {image}"
            out.extend((pending_from, line))
            state = _State.NORMAL
        elif _is_plain_from(line):
            pending_from = line
            state = _State.AWAITING_ARCH_COMMENT
        else:
            out.append(line)

    # EOF right after a FROM line
    if state is _State.AWAITING_ARCH_COMMENT:
        out.append(pending_from)

    return "".join(f"{line}\n" for line in out).encode("utf-8", TEXT_ERRORS)


def read_dockerfile_lines(path: str | Path) -> list[str]:
    """Read a Dockerfile from disk.

    Raises:
        DockerfileError: If the file is missing or unreadable.
    """
    try:
        return Path(path).read_text(encoding="utf-8", errors=TEXT_ERRORS).splitlines()
    except OSError as e:
        raise DockerfileError(f"Cannot read {path}: {e}") from e


def harvest_build_args(
    lines: Iterable[str],
    environ: Mapping[str, str],
    arch_lookup: Callable[[], str],
) -> tuple[dict[str, str], str | None]:
    """Collect build args declared with ``ARG`` and set in the host environment.

    Unset (or empty) variables are left out entirely so the Dockerfile default
    applies. ``DAPPER_HOST_ARCH`` is synthesized via ``arch_lookup`` when unset.

    Returns:
        (build args, host architecture if DAPPER_HOST_ARCH was declared)
    """
    args: dict[str, str] = {}
    host_arch: str | None = None

    for line in lines:
        fields = line.strip().split()
        if len(fields) <= 1 or fields[0] != "ARG":
            continue

        key = fields[1].split("=", 1)[0]
        value = environ.get(key, "")

        if key == HOST_ARCH_ARG:
            if not value:
                value = arch_lookup()
            host_arch = value

        if value:
            args[key] = value

    return args, host_arch


def local_arch() -> str:
    """Local machine architecture using engine naming (amd64, arm64, ...)."""
    machine = platform.machine().lower()
    return MACHINE_ARCH_ALIASES.get(machine, machine)


def detect_host_arch(docker: str) -> str:
    """Architecture reported by the docker server, or the local one on failure."""
    try:
        arch = docker_output(docker, "version", "-f", "{{.Server.Arch}}").strip()
    except (subprocess.CalledProcessError, DockerError) as e:
        logger.debug("Failed to query docker server arch: %s", e)
        return local_arch()
    return arch or local_arch()


def _logical_lines(lines: Iterable[str]) -> Iterable[str]:
    """Join backslash-continued lines and drop comments."""
    buffer = ""
    for line in lines:
        stripped = line.strip()
        if not buffer and (not stripped or stripped.startswith("#")):
            continue
        if stripped.endswith("\\"):
            buffer += stripped[:-1] + " "
            continue
        yield buffer + stripped
        buffer = ""
    if buffer:
        yield buffer


def _parse_env_instruction(rest: str) -> dict[str, str]:
    try:
        tokens = shlex.split(rest)
    except ValueError:
        return {}
    if not tokens:
        return {}
    if "=" not in tokens[0]:
        # Legacy form: ENV NAME value with spaces
        return {tokens[0]: " ".join(tokens[1:])}
    return dict(token.split("=", 1) for token in tokens if "=" in token)


def declared_env(lines: Iterable[str], target: str | None = None) -> dict[str, str]:
    """Best-effort ``ENV`` values of the stage that will be built.

    Follows ``FROM <stage>`` inheritance between named stages and stops at
    ``target`` when given. Values are taken literally, without ``$VAR``
    expansion.
    """
    stages: dict[str, dict[str, str]] = {}
    current: dict[str, str] = {}
    current_name: str | None = None
    target = target.lower() if target else None

    for line in _logical_lines(lines):
        instruction, _, rest = line.partition(" ")
        instruction = instruction.upper()
        if instruction == "FROM":
            if target is not None and current_name == target:
                break
            fields = [f for f in rest.split() if not f.startswith("--")]
            if not fields:
                continue
            current = dict(stages.get(fields[0].lower(), {}))
            current_name = None
            if len(fields) >= 3 and fields[1].upper() == "AS":
                current_name = fields[2].lower()
                stages[current_name] = current
        elif instruction == "ENV":
            current.update(_parse_env_instruction(rest))

    return current
