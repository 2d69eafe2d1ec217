"""Option dataclasses for dapper.

DapperOptions bundles the CLI arguments into a single configuration object;
BuildDescriptor is what a build strategy consumes once the Dockerfile and the
host have been looked at.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from .constants import DEFAULT_DAPPER_FILE, MODE_AUTO, VALID_MODES
from .errors import ConfigError


@dataclass(frozen=True)
class DapperOptions:
    """Configuration for one dapper invocation.

    Immutable dataclass bundling all CLI arguments.
    """

    # Dockerfile and working directory
    file: str = DEFAULT_DAPPER_FILE
    directory: str = "."

    # Build options
    quiet: bool = False
    no_context: bool = False
    target: str | None = None
    bake: bool = False
    cache_from: tuple[str, ...] = ()
    cache_to: tuple[str, ...] = ()

    # Runtime options
    mode: str = MODE_AUTO
    socket: bool = False
    no_out: bool = False
    keep: bool = False
    mount_suffix: str | None = None

    def __post_init__(self) -> None:
        if self.mode not in VALID_MODES:
            raise ConfigError(f"Unknown mode '{self.mode}' (expected one of auto, bind, cp)")
        if self.no_context and self.bake:
            raise ConfigError("contextless builds are not supported by buildx bake")

    @classmethod
    def from_cli(
        cls,
        *,
        file: str = DEFAULT_DAPPER_FILE,
        directory: str = ".",
        quiet: bool = False,
        no_context: bool = False,
        target: str | None = None,
        bake: bool = False,
        cache_from: tuple[str, ...] | list[str] = (),
        cache_to: tuple[str, ...] | list[str] = (),
        mode: str | None = None,
        socket: bool = False,
        no_out: bool = False,
        keep: bool = False,
        mount_suffix: str | None = None,
    ) -> DapperOptions:
        """Create DapperOptions from CLI arguments.

        Handles argument normalization (empty strings -> None, mode casing).
        """
        return cls(
            file=file,
            directory=directory,
            quiet=quiet,
            no_context=no_context,
            target=target or None,
            bake=bake,
            cache_from=tuple(c for c in cache_from if c),
            cache_to=tuple(c for c in cache_to if c),
            mode=(mode or MODE_AUTO).lower(),
            socket=socket,
            no_out=no_out,
            keep=keep,
            mount_suffix=mount_suffix or None,
        )


@dataclass(frozen=True)
class BuildDescriptor:
    """One build unit, constructed once per invocation and read-only after.

    Attributes:
        dockerfile: Source Dockerfile path.
        host_arch: Architecture used to resolve conditional base images.
        build_args: ``--build-arg`` values harvested from the host environment.
        target: Optional build stage.
        cache_from: Cache import locations (graph builds).
        cache_to: Cache export locations (graph builds).
        graph: Build with ``docker buildx bake`` instead of ``docker build``.
        no_context: Stream the Dockerfile on stdin without a build context.
        quiet: Suppress build output.
        mode: Mode override (auto, bind or cp).
    """

    dockerfile: Path
    host_arch: str
    build_args: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    target: str | None = None
    cache_from: tuple[str, ...] = ()
    cache_to: tuple[str, ...] = ()
    graph: bool = False
    no_context: bool = False
    quiet: bool = False
    mode: str = MODE_AUTO

    @classmethod
    def create(
        cls,
        options: DapperOptions,
        dockerfile: Path,
        host_arch: str,
        build_args: Mapping[str, str],
    ) -> BuildDescriptor:
        return cls(
            dockerfile=dockerfile,
            host_arch=host_arch,
            build_args=MappingProxyType(dict(build_args)),
            target=options.target,
            cache_from=options.cache_from,
            cache_to=options.cache_to,
            graph=options.bake,
            no_context=options.no_context,
            quiet=options.quiet,
            mode=options.mode,
        )
