"""
evaluator.py

Responsibility: Run the external Pkl evaluator on a `.pkl` source and load its
JSON output into an in-memory document tree.

Rules:
- The source must exist before anything is spawned.
- The evaluator is invoked exactly once; failures are surfaced immediately.
- Mapping order from the evaluator output is preserved; duplicate keys are rejected.

This module intentionally does NOT know about output formats or CLI parsing.
"""

from __future__ import annotations

import json
import os
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from pklformation.log import get_logger

logger = get_logger(__name__)

Document = Union[str, int, float, bool, None, List["Document"], Dict[str, "Document"]]

PKL_BIN_ENV = "PKL_BIN"
DEFAULT_PKL_BIN = "pkl"
PROJECT_FILE = "PklProject"


class EvaluationError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        source: Path | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.source = source
        self.returncode = returncode
        self.stderr = stderr


class _DuplicateKey(ValueError):
    pass


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in pairs:
        if key in out:
            raise _DuplicateKey(key)
        out[key] = value
    return out


def resolve_pkl_bin(pkl_bin: str | None = None) -> str:
    """
    Pick the evaluator binary: explicit argument, then $PKL_BIN, then `pkl` on PATH.
    """
    return pkl_bin or os.environ.get(PKL_BIN_ENV) or DEFAULT_PKL_BIN


def _resolve_project_dir(source: Path, project_dir: str | Path | None) -> Path | None:
    if project_dir is not None:
        return Path(project_dir).resolve()
    if (source.parent / PROJECT_FILE).is_file():
        return source.parent
    return None


def build_command(
    source: Path,
    *,
    pkl_bin: str,
    project_dir: Path | None = None,
    properties: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
) -> list[str]:
    cmd = [pkl_bin, "eval", str(source), "--format", "json"]
    if project_dir is not None:
        cmd += ["--project-dir", str(project_dir)]
    items = properties.items() if isinstance(properties, Mapping) else (properties or [])
    for name, value in items:
        cmd += ["-p", f"{name}={value}"]
    return cmd


def parse_document(text: str, *, source: Path | None = None) -> Document:
    """
    Parse evaluator JSON output into a document, keeping key order as emitted.
    """
    try:
        return json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except _DuplicateKey as e:
        raise EvaluationError(f"Evaluator output contains duplicate key: {e.args[0]!r}", source=source) from e
    except json.JSONDecodeError as e:
        raise EvaluationError(f"Evaluator output is not valid JSON: {e}", source=source) from e


def evaluate(
    source: str | Path,
    *,
    pkl_bin: str | None = None,
    project_dir: str | Path | None = None,
    properties: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
    timeout: float | None = None,
) -> Document:
    """
    Evaluate a Pkl source file and return the resulting document.

    Raises EvaluationError when the source is missing, the evaluator cannot be
    run, exits non-zero, times out, or prints something that is not a JSON document.
    """
    path = Path(source)
    if not path.exists():
        raise EvaluationError(f"Input file does not exist: {path}", source=path)
    if not path.is_file():
        raise EvaluationError(f"Input path is not a file: {path}", source=path)
    path = path.resolve()

    cmd = build_command(
        path,
        pkl_bin=resolve_pkl_bin(pkl_bin),
        project_dir=_resolve_project_dir(path, project_dir),
        properties=properties,
    )
    logger.debug("Running evaluator: %s", " ".join(cmd))

    started = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise EvaluationError(f"Pkl evaluator not found: {cmd[0]} (install pkl or set {PKL_BIN_ENV})", source=path) from e
    except PermissionError as e:
        raise EvaluationError(f"Pkl evaluator is not executable: {cmd[0]}", source=path) from e
    except subprocess.TimeoutExpired as e:
        raise EvaluationError(f"Pkl evaluation timed out after {timeout}s: {path}", source=path) from e

    logger.debug("Evaluator exited with %d after %.2fs", result.returncode, time.monotonic() - started)

    stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
    if result.returncode != 0:
        raise EvaluationError(
            f"Pkl evaluation failed for {path} (exit {result.returncode})" + (f"\n\n{stderr}" if stderr else ""),
            source=path,
            returncode=result.returncode,
            stderr=stderr,
        )

    if stderr:
        # warnings and trace() output from a successful run
        for line in stderr.splitlines():
            logger.warning("pkl: %s", line)

    try:
        stdout = result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EvaluationError(f"Evaluator output is not valid UTF-8: {e}", source=path) from e

    return parse_document(stdout, source=path)
