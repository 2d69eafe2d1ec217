"""Tests for dapper.dockerfile module."""

from __future__ import annotations

import io
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dapper.dockerfile import (
    ArchMap,
    declared_env,
    detect_host_arch,
    harvest_build_args,
    read_dockerfile_lines,
    resolve_dockerfile,
)
from dapper.errors import DockerError, DockerfileError, SkipBuild

ARCH_COMMENT = '# FROM {"amd64": "amd64/golang:1.22", "arm64": "skip"}'
DOCKERFILE = ["FROM golang:1.22", ARCH_COMMENT, "RUN make"]


class TestArchMap:
    """Tests for ArchMap parsing."""

    def test_parse(self) -> None:
        """Parses the JSON object after '# FROM'."""
        arch_map = ArchMap.parse(ARCH_COMMENT)
        assert arch_map is not None
        assert dict(arch_map.images) == {"amd64": "amd64/golang:1.22", "arm64": "skip"}

    def test_not_an_arch_map(self) -> None:
        """Ordinary comments are not arch maps."""
        assert ArchMap.parse("# FROM here on, build tools") is None
        assert ArchMap.parse("RUN make") is None

    @pytest.mark.parametrize("line", ['# FROM {"amd64": ', '# FROM {"amd64": 1}'])
    def test_malformed_is_not_a_map(self, line: str) -> None:
        """Comments that do not parse as a map of images are ignored."""
        assert ArchMap.parse(line) is None

    def test_image_for_skip(self) -> None:
        """'skip' raises SkipBuild carrying the architecture."""
        arch_map = ArchMap.parse(ARCH_COMMENT)
        assert arch_map is not None
        with pytest.raises(SkipBuild) as exc_info:
            arch_map.image_for("arm64")
        assert exc_info.value.arch == "arm64"

    def test_immutable(self) -> None:
        """Parsed maps cannot be modified."""
        arch_map = ArchMap.parse(ARCH_COMMENT)
        assert arch_map is not None
        with pytest.raises(TypeError):
            arch_map.images["s390x"] = "x"  # type: ignore[index]


class TestResolveDockerfile:
    """Tests for resolve_dockerfile function."""

    def test_listed_architecture(self) -> None:
        """The pinned image replaces the FROM image; the comment is kept."""
        resolved = resolve_dockerfile(DOCKERFILE, "amd64")
        assert resolved == (f"FROM amd64/golang:1.22\n{ARCH_COMMENT}\nRUN make\n").encode()

    def test_skipped_architecture(self) -> None:
        """'skip' aborts with SkipBuild."""
        with pytest.raises(SkipBuild):
            resolve_dockerfile(DOCKERFILE, "arm64")

    def test_unlisted_architecture(self) -> None:
        """Unlisted architectures keep the original image."""
        resolved = resolve_dockerfile(DOCKERFILE, "s390x")
        assert resolved.splitlines()[0] == b"FROM golang:1.22"

    def test_eof_after_from(self) -> None:
        """A trailing FROM line without a follow-up is emitted as is."""
        assert resolve_dockerfile(["RUN true", "FROM alpine"], "amd64") == b"RUN true\nFROM alpine\n"

    def test_from_with_stage_name_not_conditional(self) -> None:
        """Only 'FROM <image>' with a single token is architecture-conditional."""
        lines = ["FROM golang AS build", '# FROM {"amd64": "other"}']
        assert resolve_dockerfile(lines, "amd64") == (
            b'FROM golang AS build\n# FROM {"amd64": "other"}\n'
        )

    def test_comment_must_follow_immediately(self) -> None:
        """A blank line between FROM and the comment disables the rewrite."""
        lines = ["FROM golang", "", '# FROM {"amd64": "other"}']
        assert resolve_dockerfile(lines, "amd64").startswith(b"FROM golang\n\n")

    def test_byte_stream_input(self) -> None:
        """Binary streams (piped stdin) are accepted; CRLF is normalized."""
        stream = io.BytesIO(b'FROM alpine\r\n# FROM {"arm64": "arm64v8/alpine"}\r\nRUN ls\r\n')
        assert resolve_dockerfile(stream, "arm64") == (
            b'FROM arm64v8/alpine\n# FROM {"arm64": "arm64v8/alpine"}\nRUN ls\n'
        )

    def test_consecutive_from_lines(self) -> None:
        """The line after a FROM is consumed even when it is another FROM."""
        lines = ["FROM a", "FROM b", '# FROM {"amd64": "c"}']
        assert resolve_dockerfile(lines, "amd64") == b'FROM a\nFROM b\n# FROM {"amd64": "c"}\n'

    def test_malformed_map_passed_through(self) -> None:
        """A broken map leaves both lines untouched."""
        lines = ["FROM golang", '# FROM {"amd64": "other"', "RUN make"]
        assert resolve_dockerfile(lines, "amd64") == (
            b'FROM golang\n# FROM {"amd64": "other"\nRUN make\n'
        )

    def test_non_utf8_bytes_preserved(self) -> None:
        """Bytes that are not UTF-8 come out exactly as they went in."""
        stream = io.BytesIO(b'FROM alpine\n# FROM {"amd64": "amd64/alpine"}\nLABEL a=caf\xe9\n')
        assert resolve_dockerfile(stream, "amd64") == (
            b'FROM amd64/alpine\n# FROM {"amd64": "amd64/alpine"}\nLABEL a=caf\xe9\n'
        )

    def test_idempotent(self) -> None:
        """Same input and architecture give byte-identical output."""
        assert resolve_dockerfile(DOCKERFILE, "amd64") == resolve_dockerfile(DOCKERFILE, "amd64")


class TestReadDockerfileLines:
    """Tests for read_dockerfile_lines function."""

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "Dockerfile.dapper"
        path.write_text("FROM alpine\nRUN ls\n")
        assert read_dockerfile_lines(path) == ["FROM alpine", "RUN ls"]

    def test_non_utf8_file(self, tmp_path: Path) -> None:
        """Non-UTF-8 files are read and resolve back to the same bytes."""
        path = tmp_path / "Dockerfile.dapper"
        path.write_bytes(b"FROM alpine\nLABEL a=caf\xe9\n")
        lines = read_dockerfile_lines(path)
        assert len(lines) == 2
        assert resolve_dockerfile(lines, "amd64") == b"FROM alpine\nLABEL a=caf\xe9\n"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Missing files are Dockerfile errors."""
        with pytest.raises(DockerfileError):
            read_dockerfile_lines(tmp_path / "nope")


class TestHarvestBuildArgs:
    """Tests for harvest_build_args function."""

    def test_set_variable_is_captured(self) -> None:
        """ARG FOO picks up FOO from the host environment."""
        args, host_arch = harvest_build_args(["ARG FOO"], {"FOO": "bar"}, MagicMock())
        assert args == {"FOO": "bar"}
        assert host_arch is None

    def test_unset_variable_is_absent(self) -> None:
        """Unset or empty variables are left out, not passed as empty."""
        args, _ = harvest_build_args(["ARG FOO", "ARG BAR=default"], {"BAR": ""}, MagicMock())
        assert args == {}

    def test_default_value_syntax(self) -> None:
        """The name before '=' is used for lookup."""
        args, _ = harvest_build_args(["  ARG BAR=default  "], {"BAR": "x"}, MagicMock())
        assert args == {"BAR": "x"}

    def test_non_arg_lines_ignored(self) -> None:
        """Comments, bare ARG and other instructions are skipped."""
        lines = ["# ARG FOO", "ARG", "ENV FOO=1", "FROM alpine"]
        args, _ = harvest_build_args(lines, {"FOO": "bar"}, MagicMock())
        assert args == {}

    def test_host_arch_synthesized(self) -> None:
        """DAPPER_HOST_ARCH is queried when unset and becomes the host arch."""
        lookup = MagicMock(return_value="arm64")
        args, host_arch = harvest_build_args(["ARG DAPPER_HOST_ARCH"], {}, lookup)
        assert args == {"DAPPER_HOST_ARCH": "arm64"}
        assert host_arch == "arm64"
        lookup.assert_called_once_with()

    def test_host_arch_from_environment(self) -> None:
        """An explicit DAPPER_HOST_ARCH wins without querying the engine."""
        lookup = MagicMock()
        args, host_arch = harvest_build_args(
            ["ARG DAPPER_HOST_ARCH"], {"DAPPER_HOST_ARCH": "s390x"}, lookup
        )
        assert host_arch == "s390x"
        assert args == {"DAPPER_HOST_ARCH": "s390x"}
        lookup.assert_not_called()


class TestDetectHostArch:
    """Tests for detect_host_arch function."""

    def test_server_arch(self) -> None:
        """Uses the docker server architecture."""
        with patch("dapper.dockerfile.docker_output", return_value="arm64\n") as mock_out:
            assert detect_host_arch("/usr/bin/docker") == "arm64"
            mock_out.assert_called_once_with(
                "/usr/bin/docker", "version", "-f", "{{.Server.Arch}}"
            )

    @pytest.mark.parametrize(
        "error",
        [subprocess.CalledProcessError(1, "docker"), DockerError("gone")],
    )
    def test_falls_back_to_local_arch(self, error: Exception) -> None:
        """Query failures fall back to the local machine architecture."""
        with (
            patch("dapper.dockerfile.docker_output", side_effect=error),
            patch("dapper.dockerfile.platform.machine", return_value="x86_64"),
        ):
            assert detect_host_arch("/usr/bin/docker") == "amd64"

    def test_empty_output_falls_back(self) -> None:
        with (
            patch("dapper.dockerfile.docker_output", return_value="\n"),
            patch("dapper.dockerfile.platform.machine", return_value="aarch64"),
        ):
            assert detect_host_arch("/usr/bin/docker") == "arm64"


class TestDeclaredEnv:
    """Tests for declared_env function."""

    LINES = [
        "FROM golang AS base",
        "ENV DAPPER_SOURCE=/go/src/app DAPPER_MODE=cp",
        "FROM base AS dev",
        "ENV DAPPER_OUTPUT bin dist",
        "FROM alpine",
        "ENV X=1",
    ]

    def test_last_stage(self) -> None:
        """Without a target the final stage's ENV is returned."""
        assert declared_env(self.LINES) == {"X": "1"}

    def test_target_inherits_named_stage(self) -> None:
        """Stages built FROM another stage inherit its ENV."""
        assert declared_env(self.LINES, "dev") == {
            "DAPPER_SOURCE": "/go/src/app",
            "DAPPER_MODE": "cp",
            "DAPPER_OUTPUT": "bin dist",
        }

    def test_line_continuations(self) -> None:
        lines = ["FROM alpine", "ENV A=1 \\", "    B=\"two words\""]
        assert declared_env(lines) == {"A": "1", "B": "two words"}

    def test_platform_flag_ignored(self) -> None:
        lines = ["FROM --platform=$BUILDPLATFORM golang AS base", "ENV A=1", "FROM base", "ENV B=2"]
        assert declared_env(lines) == {"A": "1", "B": "2"}
