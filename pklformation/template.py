"""
template.py

Responsibility: Inspect the CloudFormation shape of an evaluated document.

Nothing here is enforced: semantic validity is CloudFormation's job. The checks
only produce advisory warnings and a summary of what the template declares.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

KNOWN_SECTIONS = (
    "AWSTemplateFormatVersion",
    "Description",
    "Metadata",
    "Parameters",
    "Rules",
    "Mappings",
    "Conditions",
    "Transform",
    "Resources",
    "Outputs",
)

UNKNOWN_RESOURCE_TYPE = "<unknown type>"


@dataclass(frozen=True)
class ResourceInfo:
    logical_id: str
    type: str


@dataclass(frozen=True)
class TemplateSummary:
    """What a template declares, in document order."""

    description: str = ""
    sections: list[str] = field(default_factory=list)
    resources: list[ResourceInfo] = field(default_factory=list)
    parameters: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    unknown_sections: list[str] = field(default_factory=list)


def _names(section: Any) -> list[str]:
    return list(section) if isinstance(section, dict) else []


def summarize(document: Any) -> TemplateSummary:
    if not isinstance(document, dict):
        return TemplateSummary()

    resources: list[ResourceInfo] = []
    raw_resources = document.get("Resources")
    if isinstance(raw_resources, dict):
        for logical_id, body in raw_resources.items():
            rtype = body.get("Type") if isinstance(body, dict) else None
            resources.append(
                ResourceInfo(
                    logical_id=str(logical_id),
                    type=rtype if isinstance(rtype, str) else UNKNOWN_RESOURCE_TYPE,
                )
            )

    description = document.get("Description")
    return TemplateSummary(
        description=description if isinstance(description, str) else "",
        sections=[str(k) for k in document],
        resources=resources,
        parameters=_names(document.get("Parameters")),
        outputs=_names(document.get("Outputs")),
        unknown_sections=[str(k) for k in document if k not in KNOWN_SECTIONS],
    )


def check_shape(document: Any) -> list[str]:
    """
    Return warnings about the top-level template shape. An empty list means the
    document looks like a CloudFormation template.
    """
    if not isinstance(document, dict):
        return [f"Template top level is {type(document).__name__}, expected a mapping of sections"]

    warnings: list[str] = []
    for key in document:
        if key not in KNOWN_SECTIONS:
            warnings.append(f"Unknown top-level section: {key!r}")

    if "Resources" not in document:
        warnings.append("Template has no 'Resources' section")
    else:
        resources = document["Resources"]
        if not isinstance(resources, dict):
            warnings.append("'Resources' must be a mapping of logical IDs to resource declarations")
        else:
            if not resources:
                warnings.append("'Resources' section is empty")
            for logical_id, body in resources.items():
                if not isinstance(body, dict):
                    warnings.append(f"Resource {logical_id!r} must be a mapping")
                elif not isinstance(body.get("Type"), str):
                    warnings.append(f"Resource {logical_id!r} has no string 'Type'")
    return warnings


def print_summary(summary: TemplateSummary, console: Console) -> None:
    """Render the resource table, then parameter and output names."""
    title = summary.description or "Template"
    table = Table(title=Text(title), title_justify="left")
    table.add_column("Logical ID", style="bold")
    table.add_column("Type", style="cyan")
    for res in summary.resources:
        table.add_row(Text(res.logical_id), Text(res.type))
    console.print(table)

    if summary.parameters:
        console.print("Parameters: " + ", ".join(summary.parameters), markup=False, highlight=False, soft_wrap=True)
    if summary.outputs:
        console.print("Outputs: " + ", ".join(summary.outputs), markup=False, highlight=False, soft_wrap=True)
