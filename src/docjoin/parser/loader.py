"""YAML loader for schema documents, with source positions for error reporting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.error import YAMLError

from docjoin.models.errors import SourceSpan

_MAX_DOCUMENT_SIZE = 2_000_000  # characters
_MAX_NODE_COUNT = 20_000
_MAX_DEPTH = 32

# Anchor definitions (&name) at line start or after whitespace/indicators.
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:\[,])&(\w+)", re.MULTILINE)


class YAMLSafetyError(Exception):
    """Raised when a schema document is oversized, too deep or uses anchors/aliases."""


class YAMLParseError(Exception):
    """Raised when a schema document is not valid YAML."""

    def __init__(self, message: str, span: SourceSpan | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.span = span


@dataclass
class SourceMap:
    """Maps dotted document paths to their source positions."""

    _positions: dict[str, SourceSpan] = field(default_factory=dict)

    def add(self, path: str, span: SourceSpan) -> None:
        self._positions[path] = span

    def get(self, path: str) -> SourceSpan | None:
        return self._positions.get(path)

    def merge(self, other: SourceMap) -> None:
        self._positions.update(other._positions)

    @property
    def paths(self) -> list[str]:
        return list(self._positions)


class TrackedLoader:
    """Loads schema YAML into plain dicts plus a ``SourceMap``.

    ruamel.yaml keeps line/column information on every mapping and
    sequence it builds; positions are collected for each key so later
    validation errors can point back to the document.
    """

    def __init__(self) -> None:
        self._yaml = YAML(typ="rt")

    def load(self, path: Path) -> tuple[dict[str, Any], SourceMap]:
        """Load one YAML file."""
        return self.load_string(path.read_text(encoding="utf-8"), filename=str(path))

    def load_string(
        self, content: str, filename: str = "<string>"
    ) -> tuple[dict[str, Any], SourceMap]:
        """Load YAML from a string."""
        self._check_document(content)
        try:
            data = self._yaml.load(content)
        except YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            span = None
            if mark is not None:
                span = SourceSpan(file=filename, line=mark.line + 1, column=mark.column + 1)
            raise YAMLParseError(f"Invalid YAML in {filename}: {exc}", span) from exc
        source_map = SourceMap()
        if not isinstance(data, CommentedMap):
            return {}, source_map
        self._check_node_count(data)
        self._collect_positions(data, filename, "", source_map)
        return _plain(data), source_map

    def load_directory(self, root: Path) -> tuple[dict[str, Any], SourceMap]:
        """Merge every ``*.yaml`` file below ``root`` into one ``entities`` mapping.

        Files are read in sorted order; a later file redefining an entity
        replaces the earlier definition.
        """
        entities: dict[str, Any] = {}
        combined = SourceMap()
        for path in sorted(root.rglob("*.yaml")):
            data, source_map = self.load(path)
            section = data.get("entities")
            if isinstance(section, dict):
                entities.update(section)
            combined.merge(source_map)
        return {"entities": entities}, combined

    # -- safety checks -------------------------------------------------------

    @staticmethod
    def _check_document(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise YAMLSafetyError(
                f"Schema document is too large ({len(content):,} > {_MAX_DOCUMENT_SIZE:,} chars)"
            )
        if _ANCHOR_RE.search(content):
            raise YAMLSafetyError("YAML anchors and aliases are not allowed in schema documents")

    @staticmethod
    def _check_node_count(data: Any) -> None:
        count = 0
        pending: list[tuple[Any, int]] = [(data, 1)]
        while pending:
            node, depth = pending.pop()
            count += 1
            if count > _MAX_NODE_COUNT:
                raise YAMLSafetyError(f"Schema document has more than {_MAX_NODE_COUNT:,} nodes")
            if depth > _MAX_DEPTH:
                raise YAMLSafetyError(f"Schema document is nested deeper than {_MAX_DEPTH} levels")
            if isinstance(node, dict):
                pending.extend((value, depth + 1) for value in node.values())
            elif isinstance(node, list):
                pending.extend((item, depth + 1) for item in node)

    def _collect_positions(
        self, node: Any, filename: str, prefix: str, source_map: SourceMap
    ) -> None:
        if isinstance(node, CommentedMap):
            for key, value in node.items():
                path = f"{prefix}.{key}" if prefix else str(key)
                position = node.lc.key(key)
                if position:
                    line, column = position
                    source_map.add(path, SourceSpan(file=filename, line=line + 1, column=column + 1))
                self._collect_positions(value, filename, path, source_map)
        elif isinstance(node, CommentedSeq):
            for index, item in enumerate(node):
                path = f"{prefix}[{index}]"
                position = node.lc.item(index)
                if position:
                    line, column = position
                    source_map.add(path, SourceSpan(file=filename, line=line + 1, column=column + 1))
                self._collect_positions(item, filename, path, source_map)


def _plain(node: Any) -> Any:
    """Convert ruamel.yaml round-trip containers to plain dicts and lists."""
    if isinstance(node, dict):
        return {str(key): _plain(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_plain(item) for item in node]
    return node
