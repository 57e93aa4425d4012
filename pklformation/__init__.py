"""
pklformation package

This package implements a CLI that turns Pkl configuration into AWS
CloudFormation templates.

Key responsibilities are split across modules:
- `evaluator.py`: run the external `pkl` evaluator and load its output as a document tree
- `template.py`: inspect the CloudFormation shape of a document (sections, resources)
- `emitter.py`: deterministic JSON/YAML serialization and atomic output writes
- `log.py`: console and file logging setup
- `cli.py`: CLI entrypoint and orchestration (evaluate -> inspect -> emit)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
