"""Build strategies for dapper.

Two strategies share one contract: build the environment image, tag it, and,
when the image is about to be run, read back its RuntimeConfig.

* ClassicBuilder uses ``docker build`` and layers the source tree into the
  image with a second, synthetic build when running in copy mode.
* GraphBuilder submits a bake document to ``docker buildx bake`` where the
  copy step is a separate ``stage2`` target built on top of ``stage1``.
"""

from __future__ import annotations

import os
import subprocess
import sys
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO

from .bake import BakeFile
from .constants import MODE_CP
from .docker import docker_exec, docker_exec_with_stdin
from .dockerfile import TEXT_ERRORS, declared_env, read_dockerfile_lines, resolve_dockerfile
from .errors import ConfigError, ImageBuildError
from .logging import get_logger
from .options import BuildDescriptor
from .runtime_config import RuntimeConfig, read_runtime_config
from .tag import derive_tag

logger = get_logger(__name__)

ERR_CONTEXTLESS_GRAPH = "contextless builds are not supported by buildx bake"
ERR_CONTEXTLESS_COPY = (
    "contextless builds cannot copy the source tree into the image; use --mode bind"
)


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a successful build.

    ``runtime_config`` is only set for builds meant to be run.
    """

    tag: str
    runtime_config: RuntimeConfig | None = None


@contextmanager
def scoped_dockerfile(content: bytes) -> Iterator[str]:
    """Write ``content`` to a temporary Dockerfile removed on every exit path."""
    fd, path = tempfile.mkstemp(prefix="Dockerfile.dapper-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        yield path
    finally:
        logger.debug("Deleting tempfile %s", path)
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to delete tempfile %s: %s", path, e)


class Builder(ABC):
    """Base class for build strategies."""

    def __init__(
        self,
        descriptor: BuildDescriptor,
        docker: str,
        *,
        tag_factory: Callable[[], str] = derive_tag,
        stdin: BinaryIO | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.docker = docker
        self.tag_factory = tag_factory
        self.stdin = stdin

    @abstractmethod
    def build(self, extra_args: Sequence[str] = (), *, for_run: bool = False) -> BuildResult:
        """Build the image; with ``for_run`` also read back its RuntimeConfig."""

    def _source_lines(self) -> Iterable[str | bytes]:
        if self.descriptor.no_context:
            return self.stdin if self.stdin is not None else sys.stdin.buffer
        return read_dockerfile_lines(self.descriptor.dockerfile)

    def _build_arg_flags(self) -> list[str]:
        flags: list[str] = []
        for key, value in sorted(self.descriptor.build_args.items()):
            flags.extend(["--build-arg", f"{key}={value}"])
        return flags

    def _exec(self, tag: str, *args: str, stdin: bytes | None = None) -> None:
        try:
            if stdin is None:
                docker_exec(self.docker, *args)
            else:
                docker_exec_with_stdin(self.docker, stdin, *args)
        except subprocess.CalledProcessError as e:
            raise ImageBuildError(f"Failed to build {tag}", e.returncode) from e


class ClassicBuilder(Builder):
    """Single ``docker build`` invocation, plus a copy layer in copy mode."""

    def build(self, extra_args: Sequence[str] = (), *, for_run: bool = False) -> BuildResult:
        d = self.descriptor
        if d.no_context and for_run and d.mode == MODE_CP:
            raise ConfigError(ERR_CONTEXTLESS_COPY)

        content = resolve_dockerfile(self._source_lines(), d.host_arch)

        tag = self.tag_factory()
        logger.debug("Building %s using %s", tag, d.dockerfile)
        args = ["build"]
        # Extra args replace both the tag and the context
        if not extra_args:
            args.extend(["-t", tag])
        if d.quiet:
            args.append("-q")
        if d.target:
            args.extend(["--target", d.target])
        args.extend(self._build_arg_flags())

        if d.no_context:
            self._exec(tag, *args, "-", *extra_args, stdin=content)
        else:
            with scoped_dockerfile(content) as path:
                self._exec(tag, *args, "-f", path, *(extra_args or ["."]))

        if not for_run:
            return BuildResult(tag)

        config = read_runtime_config(self.docker, tag, d.mode)
        if not config.is_bind:
            if d.no_context:
                raise ConfigError(ERR_CONTEXTLESS_COPY)
            self._build_copy_layer(tag, config)
        return BuildResult(tag, config)

    def _build_copy_layer(self, tag: str, config: RuntimeConfig) -> None:
        content = f"FROM {tag}\nCOPY {config.cp} {config.source}".encode("utf-8")
        logger.debug("Copying %s into %s of %s", config.cp, config.source, tag)
        with scoped_dockerfile(content) as path:
            self._exec(tag, "build", "-t", tag, "-f", path, ".")


class GraphBuilder(Builder):
    """``docker buildx bake`` with an optional ``stage2`` copy target."""

    def build(self, extra_args: Sequence[str] = (), *, for_run: bool = False) -> BuildResult:
        d = self.descriptor
        if d.no_context:
            raise ConfigError(ERR_CONTEXTLESS_GRAPH)

        lines = read_dockerfile_lines(d.dockerfile)
        original = "".join(f"{line}\n" for line in lines).encode("utf-8", TEXT_ERRORS)
        resolved = resolve_dockerfile(lines, d.host_arch)

        # The image does not exist yet: plan from the Dockerfile's own ENV lines
        planned = RuntimeConfig.from_mapping(declared_env(lines, d.target), d.mode)

        tag = self.tag_factory()
        logger.debug("Building %s using %s", tag, d.dockerfile)
        bakefile = BakeFile.single(
            tag,
            context=extra_args[0] if extra_args else ".",
            dockerfile="" if resolved != original else str(d.dockerfile),
            dockerfile_inline=resolved.decode("utf-8", TEXT_ERRORS) if resolved != original else "",
            args=dict(d.build_args),
            target=d.target or "",
            cache_from=list(d.cache_from),
            cache_to=list(d.cache_to),
        )

        if for_run and not planned.is_bind:
            bakefile.add_copy_stage(planned.cp, planned.source)

        args = ["buildx", "bake", "-f", "-"]
        if d.quiet:
            args.append("--progress=quiet")
        self._exec(tag, *args, stdin=bakefile.to_json())

        if not for_run:
            return BuildResult(tag)
        return BuildResult(tag, read_runtime_config(self.docker, tag, planned.mode))


def select_builder(descriptor: BuildDescriptor, docker: str, **kwargs: object) -> Builder:
    """Pick the build strategy for ``descriptor``."""
    builder_cls: type[Builder] = GraphBuilder if descriptor.graph else ClassicBuilder
    return builder_cls(descriptor, docker, **kwargs)  # type: ignore[arg-type]
