"""Constants module for dapper.

All defaults and well-known names are defined here (SSOT).
"""

from __future__ import annotations

# === Diagnostics ===
LOGGER_NAMESPACE = "dapper"
ENV_DEBUG = "DAPPER_DEBUG"  # 1, true or yes enables debug logging

# === Host side ===
DEFAULT_DAPPER_FILE = "Dockerfile.dapper"  # Looked up relative to --directory
UNKNOWN_REPOSITORY = "dapper-unknown"  # Tag repository when cwd lookup fails
DEFAULT_DOCKER_SOCKET = "/var/run/docker.sock"
DOCKER_HOST_UNIX_PREFIX = "unix://"

# === Build arguments ===
HOST_ARCH_ARG = "DAPPER_HOST_ARCH"  # Synthesized from the engine when unset

# Local machine names -> engine architecture names
MACHINE_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

# Architecture map value that excludes a host from building
SKIP_ARCH = "skip"

# === Image environment (read back after build) ===
ENV_SOURCE = "DAPPER_SOURCE"
ENV_CP = "DAPPER_CP"
ENV_SOCKET = "DAPPER_DOCKER_SOCKET"
ENV_MODE = "DAPPER_MODE"
ENV_ENV = "DAPPER_ENV"
ENV_RUN_ARGS = "DAPPER_RUN_ARGS"
ENV_OUTPUT = "DAPPER_OUTPUT"
ENV_SHELL = "DAPPER_SHELL"

DEFAULT_SOURCE = "/source/"
DEFAULT_CP = "."
DEFAULT_SHELL = "/bin/bash"

# === Modes ===
MODE_AUTO = "auto"
MODE_BIND = "bind"
MODE_CP = "cp"
VALID_MODES = frozenset({MODE_AUTO, MODE_BIND, MODE_CP})

# === Container environment ===
ENV_UID = "DAPPER_UID"
ENV_GID = "DAPPER_GID"
STDIN_PLACEHOLDER = "-"  # Shell entrypoint reads commands from stdin

# === Build graph ===
GRAPH_DEFAULT_GROUP = "default"
GRAPH_STAGE1 = "stage1"
GRAPH_STAGE2 = "stage2"
GRAPH_DOCKER_OUTPUT = "type=docker"
