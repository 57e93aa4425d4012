"""
emitter.py

Responsibility: Deterministically serialize a document tree into CloudFormation
JSON or YAML and write it to its destination.

Rules:
- Mapping keys are emitted in the order received; nothing is sorted.
- The tree is validated before serialization so failures name the offending node.
- Output files are written to a temporary sibling and renamed into place, so a
  destination is either fully written or left untouched.

This module intentionally does NOT know about Pkl, subprocesses, or CLI parsing.
"""

from __future__ import annotations

import enum
import json
import math
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

import yaml

from pklformation.log import get_logger

logger = get_logger(__name__)


class SerializationError(ValueError):
    pass


class OutputError(RuntimeError):
    pass


class OutputFormat(str, enum.Enum):
    JSON = "json"
    YAML = "yaml"

    @classmethod
    def from_path(cls, path: str | Path) -> OutputFormat | None:
        """
        Infer a format from a file suffix (.json, .yaml, .yml); None when unknown.
        """
        suffix = Path(path).suffix.lower()
        if suffix == ".json":
            return cls.JSON
        if suffix in (".yaml", ".yml"):
            return cls.YAML
        return None


class _TemplateDumper(yaml.SafeDumper):
    """SafeDumper that never emits anchors/aliases and keeps mapping order."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _represent_mapping(dumper: yaml.SafeDumper, data: dict) -> yaml.MappingNode:
    return dumper.represent_mapping("tag:yaml.org,2002:map", data.items())


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    # multi-line strings (UserData scripts) as literal blocks
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_TemplateDumper.add_multi_representer(dict, _represent_mapping)
_TemplateDumper.add_representer(str, _represent_str)


def _node_path(parent: str, key: object) -> str:
    if isinstance(key, int) and not isinstance(key, bool):
        return f"{parent}[{key}]"
    return f"{parent}.{key}"


def validate_document(document: Any, fmt: OutputFormat) -> None:
    """
    Walk the tree and raise SerializationError on the first node the target
    format cannot represent. Paths are reported as `$.Resources.Bucket[0]`.
    """
    stack: list[tuple[str, Any]] = [("$", document)]
    while stack:
        path, node = stack.pop()
        if node is None or isinstance(node, (str, bool, int)):
            continue
        if isinstance(node, float):
            if fmt is OutputFormat.JSON and not math.isfinite(node):
                raise SerializationError(f"{path}: {node!r} cannot be represented in JSON")
            continue
        if isinstance(node, dict):
            children = []
            for key, value in node.items():
                if not isinstance(key, str):
                    raise SerializationError(
                        f"{path}: mapping key {key!r} is {type(key).__name__}, only string keys are supported"
                    )
                children.append((_node_path(path, key), value))
            stack.extend(reversed(children))
            continue
        if isinstance(node, list):
            stack.extend(reversed([(_node_path(path, i), v) for i, v in enumerate(node)]))
            continue
        raise SerializationError(f"{path}: unsupported value of type {type(node).__name__}")


def _to_json(document: Any) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False, allow_nan=False) + "\n"


def _to_yaml(document: Any) -> str:
    return yaml.dump(
        document,
        Dumper=_TemplateDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )


def emit(document: Any, fmt: OutputFormat | str) -> bytes:
    """
    Serialize a document as UTF-8 encoded JSON or YAML.
    """
    try:
        fmt = OutputFormat(fmt)
    except ValueError as e:
        raise SerializationError(f"Unsupported output format: {fmt!r}") from e

    validate_document(document, fmt)
    try:
        text = _to_json(document) if fmt is OutputFormat.JSON else _to_yaml(document)
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise SerializationError(f"Failed serializing document as {fmt.value}: {e}") from e

    data = text.encode("utf-8")
    logger.debug("Serialized document as %s (%d bytes)", fmt.value, len(data))
    return data


def write_output(data: bytes, destination: str | Path) -> Path:
    """
    Atomically write bytes to destination.

    - Creates parent directories as needed.
    - Keeps the permissions of an existing destination file.
    """
    dst = Path(destination).resolve()
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dst.parent, prefix=f".{dst.name}.", suffix=".tmp")
    except OSError as e:
        raise OutputError(f"Cannot write output file: {dst}: {e.strerror or e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if dst.exists():
            shutil.copymode(dst, tmp_path)
        else:
            os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, dst)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise OutputError(f"Cannot write output file: {dst}: {e.strerror or e}") from e

    logger.debug("Wrote %d bytes to %s", len(data), dst)
    return dst
