"""Build-and-run orchestration.

A Dapperfile ties everything together: it looks up the Dockerfile and the
docker binary, harvests build args, picks a build strategy, and runs the
resulting image with matching mounts and identity.
"""

from __future__ import annotations

import os
import posixpath
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import NoReturn

from rich.console import Console

from .builder import Builder, select_builder
from .constants import HOST_ARCH_ARG
from .docker import docker_exec, docker_output, docker_run_exec, find_docker
from .dockerfile import detect_host_arch, harvest_build_args, read_dockerfile_lines
from .errors import ContainerError, DockerfileError, RuntimeConfigUnavailableError
from .logging import get_logger
from .options import BuildDescriptor, DapperOptions
from .run_args import build_run_args
from .runtime_config import RuntimeConfig

console = Console(stderr=True)
logger = get_logger(__name__)


class Dapperfile:
    """A Dockerfile-defined environment that can be built, run, or entered."""

    def __init__(
        self,
        options: DapperOptions,
        descriptor: BuildDescriptor,
        docker: str,
        *,
        builder: Builder | None = None,
    ) -> None:
        self.options = options
        self.descriptor = descriptor
        self.docker = docker
        self.builder = builder or select_builder(descriptor, docker)
        self._runtime_config: RuntimeConfig | None = None

    @classmethod
    def lookup(cls, options: DapperOptions, environ: Mapping[str, str] | None = None) -> Dapperfile:
        """Resolve the Dockerfile, docker binary, build args and host arch.

        Raises:
            DockerfileError: If the Dockerfile does not exist or cannot be read.
            DockerNotFoundError: If docker is not in PATH.
        """
        environ = os.environ if environ is None else environ
        path = Path(options.file)
        if not path.is_file():
            raise DockerfileError(f"{path} not found")

        docker = find_docker()
        lines = read_dockerfile_lines(path)

        build_args, host_arch = harvest_build_args(
            lines, environ, lambda: detect_host_arch(docker)
        )
        if not host_arch:
            host_arch = environ.get(HOST_ARCH_ARG) or detect_host_arch(docker)
        logger.debug("Host arch: %s, build args: %s", host_arch, build_args)

        descriptor = BuildDescriptor.create(options, path, host_arch, build_args)
        return cls(options, descriptor, docker)

    @property
    def runtime_config(self) -> RuntimeConfig:
        """RuntimeConfig of the last image built for running.

        Raises:
            RuntimeConfigUnavailableError: If no such build has completed yet.
        """
        if self._runtime_config is None:
            raise RuntimeConfigUnavailableError(
                "Runtime configuration is only available after a successful build"
            )
        return self._runtime_config

    def build(self, args: Sequence[str] = ()) -> str:
        """Build the image only. ``args`` are passed to the build command."""
        return self.builder.build(args).tag

    def _build_for_run(self) -> str:
        result = self.builder.build(for_run=True)
        self._runtime_config = result.runtime_config
        return result.tag

    def _run_args(
        self, tag: str, command_args: Sequence[str], shell: str | None = None
    ) -> tuple[str, list[str]]:
        return build_run_args(
            tag,
            self.runtime_config,
            command_args,
            shell=shell,
            socket=self.options.socket,
            mount_suffix=self.options.mount_suffix,
        )

    def run(self, command_args: Sequence[str] = ()) -> None:
        """Build, run ``command_args`` in a container, and copy outputs back.

        Raises:
            ContainerError: If the container exits non-zero.
        """
        tag = self._build_for_run()
        config = self.runtime_config

        logger.debug("Running build in %s", tag)
        name, args = self._run_args(tag, command_args)
        try:
            try:
                docker_exec(self.docker, "run", *args)
            except subprocess.CalledProcessError as e:
                raise ContainerError(
                    f"Container {name} exited with code {e.returncode}", e.returncode
                ) from e

            if not config.is_bind and not self.options.no_out:
                self.copy_outputs(name, config)
        finally:
            self._remove_container(name)

    def copy_outputs(self, name: str, config: RuntimeConfig) -> None:
        """Copy ``config.output`` paths out of container ``name``.

        Relative paths are resolved against the source directory inside the
        container and land in the matching directory on the host. Failures
        are logged and skipped.
        """
        for item in config.output:
            path = item if item.startswith("/") else posixpath.join(config.source, item)
            target_dir = posixpath.dirname(item) or "."
            try:
                os.makedirs(target_dir, exist_ok=True)
            except OSError as e:
                logger.warning("Cannot create %s for '%s': %s", target_dir, item, e)
                continue

            console.print(f"[dim]docker cp {path} {target_dir}[/dim]", highlight=False)
            try:
                docker_exec(self.docker, "cp", f"{name}:{path}", target_dir)
            except subprocess.CalledProcessError as e:
                logger.warning("Error copying back '%s': exit=%d", item, e.returncode)

    def _remove_container(self, name: str) -> None:
        if self.options.keep:
            console.print(f"[dim]Keeping build container {name}[/dim]", highlight=False)
            return
        logger.debug("Deleting temp container %s", name)
        try:
            docker_output(self.docker, "rm", "-fv", name)
        except subprocess.CalledProcessError as e:
            logger.debug("Error deleting temp container %s: %s", name, (e.output or "").strip())

    def shell(self, command_args: Sequence[str] = ()) -> NoReturn:
        """Build and replace this process with an interactive shell container."""
        tag = self._build_for_run()
        logger.debug("Running shell in %s", tag)
        _, args = self._run_args(tag, command_args, shell=self.runtime_config.shell)
        docker_run_exec(self.docker, "--rm", *args)
