"""CLI for dapper.

``dapper`` builds the environment described by Dockerfile.dapper and runs the
trailing command in it; ``dapper -s`` opens a shell instead, ``dapper -b``
only builds.
"""

from __future__ import annotations

import os
import sys

import click
from rich.console import Console

from .. import __version__
from ..constants import DEFAULT_DAPPER_FILE, MODE_AUTO, VALID_MODES
from ..dapperfile import Dapperfile
from ..errors import ContainerError, DapperError, ImageBuildError, SkipBuild
from ..logging import get_logger, set_debug
from ..options import DapperOptions

console = Console(stderr=True)
logger = get_logger(__name__)


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": ["-h", "--help"],
    }
)
@click.option("--file", "-f", default=DEFAULT_DAPPER_FILE, show_default=True, help="Dapper file")
@click.option("--socket", "-k", is_flag=True, help="Bind in the Docker socket")
@click.option("--build", "-b", is_flag=True, help="Perform dapperfile build only")
@click.option(
    "--directory",
    "-C",
    default=".",
    type=click.Path(exists=True, file_okay=False),
    help="The directory in which to run, --file is relative to this",
)
@click.option("--shell", "-s", "shell", is_flag=True, help="Launch a shell")
@click.option("--debug", "-d", is_flag=True, help="Print debugging")
@click.option("--quiet", "-q", is_flag=True, help="Make Docker build quieter")
@click.option("--keep", is_flag=True, help="Don't remove the container that was used to build")
@click.option("--no-out", "-O", is_flag=True, help="Do not copy the output back (in --mode cp)")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(sorted(VALID_MODES), case_sensitive=False),
    default=MODE_AUTO,
    show_default=True,
    envvar="DAPPER_MODE",
    help="Execution mode for dapper",
)
@click.option(
    "--no-context",
    "-X",
    is_flag=True,
    help="Send the Dockerfile via stdin to docker build, without a context",
)
@click.option(
    "--mount-suffix",
    "-S",
    envvar="DAPPER_MOUNT_SUFFIX",
    help="Add suffix to the source mount (:suffix)",
)
@click.option("--target", help="The multistage build target to use")
@click.option("--bake", is_flag=True, envvar="DAPPER_BAKE", help="Use docker buildx bake")
@click.option(
    "--cache-from", multiple=True, envvar="DAPPER_CACHE_FROM", help="Cache import (bake only)"
)
@click.option("--cache-to", multiple=True, envvar="DAPPER_CACHE_TO", help="Cache export (bake only)")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.version_option(version=__version__, prog_name="dapper")
def cli(
    file: str,
    socket: bool,
    build: bool,
    directory: str,
    shell: bool,
    debug: bool,
    quiet: bool,
    keep: bool,
    no_out: bool,
    mode: str,
    no_context: bool,
    mount_suffix: str | None,
    target: str | None,
    bake: bool,
    cache_from: tuple[str, ...],
    cache_to: tuple[str, ...],
    args: tuple[str, ...],
) -> None:
    """dapper - Docker build wrapper.

    Builds the environment described by the dapper file and runs ARGS in it.
    """
    if debug:
        set_debug(True)

    os.chdir(directory)

    try:
        options = DapperOptions.from_cli(
            file=file,
            directory=directory,
            quiet=quiet,
            no_context=no_context,
            target=target,
            bake=bake,
            cache_from=cache_from,
            cache_to=cache_to,
            mode=mode,
            socket=socket,
            no_out=no_out,
            keep=keep,
            mount_suffix=mount_suffix,
        )
        dapperfile = Dapperfile.lookup(options)

        if shell:
            dapperfile.shell(args)
        elif build:
            dapperfile.build(args)
        else:
            dapperfile.run(args)
    except SkipBuild as e:
        console.print(f"[dim]Skipping build: {e}[/dim]", highlight=False)
    except (ContainerError, ImageBuildError) as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]", highlight=False)
        sys.exit(e.returncode or 1)
    except DapperError as e:
        logger.debug("dapper failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]", highlight=False)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    cli()
