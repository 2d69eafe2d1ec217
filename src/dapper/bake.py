"""Build graph documents for ``docker buildx bake``.

The JSON shape is fixed by buildx: a ``group`` table of target lists and a
``target`` table of build definitions. Empty optional fields are omitted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .constants import (
    GRAPH_DEFAULT_GROUP,
    GRAPH_DOCKER_OUTPUT,
    GRAPH_STAGE1,
    GRAPH_STAGE2,
)


@dataclass
class BakeGroup:
    targets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"targets": list(self.targets)}


@dataclass
class BakeTarget:
    """One buildx bake target."""

    context: str = "."
    dockerfile: str = ""
    dockerfile_inline: str = ""
    contexts: dict[str, str] = field(default_factory=dict)
    args: dict[str, str] = field(default_factory=dict)
    outputs: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    cache_from: list[str] = field(default_factory=list)
    cache_to: list[str] = field(default_factory=list)
    target: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"context": self.context}
        optional: dict[str, Any] = {
            "dockerfile": self.dockerfile,
            "dockerfile-inline": self.dockerfile_inline,
            "contexts": dict(self.contexts),
            "args": dict(self.args),
            "output": list(self.outputs),
            "tags": list(self.tags),
            "cache-from": list(self.cache_from),
            "cache-to": list(self.cache_to),
            "target": self.target,
        }
        data.update((key, value) for key, value in optional.items() if value)
        return data


@dataclass
class BakeFile:
    """A bake document: named groups and targets."""

    groups: dict[str, BakeGroup] = field(default_factory=dict)
    targets: dict[str, BakeTarget] = field(default_factory=dict)

    @classmethod
    def single(
        cls,
        tag: str,
        *,
        context: str = ".",
        dockerfile: str = "",
        dockerfile_inline: str = "",
        args: dict[str, str] | None = None,
        target: str = "",
        cache_from: list[str] | None = None,
        cache_to: list[str] | None = None,
    ) -> BakeFile:
        """Default group building one ``stage1`` target tagged ``tag``."""
        stage1 = BakeTarget(
            context=context,
            dockerfile=dockerfile,
            dockerfile_inline=dockerfile_inline,
            args=dict(args or {}),
            outputs=[GRAPH_DOCKER_OUTPUT],
            tags=[tag],
            cache_from=list(cache_from or []),
            cache_to=list(cache_to or []),
            target=target,
        )
        return cls(
            groups={GRAPH_DEFAULT_GROUP: BakeGroup([GRAPH_STAGE1])},
            targets={GRAPH_STAGE1: stage1},
        )

    def add_copy_stage(self, cp: str, source: str) -> BakeTarget:
        """Layer the host tree into ``stage1`` as a separate ``stage2`` target.

        stage2 takes over stage1's outputs, tags and cache settings; stage1 is
        left as an unmaterialized dependency referenced as a named context.
        """
        stage1 = self.targets[GRAPH_STAGE1]
        stage2 = BakeTarget(
            context=stage1.context,
            dockerfile_inline=f"FROM {GRAPH_STAGE1}\nCOPY {cp} {source}",
            contexts={GRAPH_STAGE1: f"target:{GRAPH_STAGE1}"},
            outputs=stage1.outputs,
            tags=stage1.tags,
            cache_from=stage1.cache_from,
            cache_to=stage1.cache_to,
        )
        stage1.outputs = []
        stage1.tags = []
        stage1.cache_from = []
        stage1.cache_to = []

        self.targets[GRAPH_STAGE2] = stage2
        self.groups[GRAPH_DEFAULT_GROUP].targets.append(GRAPH_STAGE2)
        return stage2

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": {name: group.to_dict() for name, group in self.groups.items()},
            "target": {name: target.to_dict() for name, target in self.targets.items()},
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")
