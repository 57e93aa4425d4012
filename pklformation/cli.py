"""
cli.py

Responsibility: CLI entrypoint for pklformation.

High-level flow (single command):
1) Evaluate the `.pkl` source with the external `pkl` binary -> document
2) Inspect the CloudFormation shape (warnings, optional summary)
3) Serialize as JSON or YAML
4) Write the output file atomically, or print to stdout

This module should orchestrate behavior but keep concerns isolated:
- Evaluation: `evaluator.py`
- Shape inspection: `template.py`
- Serialization and writes: `emitter.py`
"""

from __future__ import annotations

import argparse
import sys

from pklformation import __version__
from pklformation.emitter import OutputError, OutputFormat, SerializationError, emit, write_output
from pklformation.evaluator import PKL_BIN_ENV, EvaluationError, evaluate
from pklformation.log import console, get_logger, setup_logging
from pklformation.template import check_shape, print_summary, summarize

logger = get_logger(__name__)


class CLIError(RuntimeError):
    pass


def _parse_property(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise CLIError(f"Invalid property {raw!r}: expected NAME=VALUE")
    return name.strip(), value


def _select_format(requested: str | None, output: str | None) -> OutputFormat:
    if requested:
        return OutputFormat(requested)
    if output:
        inferred = OutputFormat.from_path(output)
        if inferred is not None:
            return inferred
    return OutputFormat.JSON


def _write_stdout(data: bytes) -> None:
    # the template is UTF-8 regardless of the locale's stdout encoding
    stream = getattr(sys.stdout, "buffer", None)
    if stream is None:
        sys.stdout.write(data.decode("utf-8"))
        sys.stdout.flush()
        return
    sys.stdout.flush()
    stream.write(data)
    stream.flush()


def _positive_seconds(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {raw!r}") from e
    if not value > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {raw!r}")
    return value


def generate_cmd(args: argparse.Namespace) -> int:
    properties = [_parse_property(p) for p in args.properties]
    fmt = _select_format(args.format, args.output)

    document = evaluate(
        args.input,
        pkl_bin=args.pkl_bin,
        project_dir=args.project_dir,
        properties=properties,
        timeout=args.timeout,
    )

    warnings = check_shape(document)
    for warning in warnings:
        logger.warning(warning)
    if warnings and args.strict:
        raise CLIError(f"Template has {len(warnings)} shape warning(s) and --strict is set; no output written")

    if args.summary:
        print_summary(summarize(document), console)

    data = emit(document, fmt)

    if args.output:
        written = write_output(data, args.output)
        logger.info("Wrote %s template to %s", fmt.value, written)
    else:
        _write_stdout(data)

    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pklformation",
        description="Generate AWS CloudFormation templates from Pkl configuration",
    )
    p.add_argument("input", help="Path to the .pkl source file")
    p.add_argument("-o", "--output", default=None, help="Output file (default: print to stdout)")
    p.add_argument(
        "-f",
        "--format",
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Output format (default: inferred from --output suffix, else json)",
    )
    p.add_argument("--pkl-bin", default=None, help=f"Pkl evaluator binary (or set env {PKL_BIN_ENV}; default: pkl)")
    p.add_argument(
        "--project-dir",
        default=None,
        help="Pkl project directory (default: the input's directory when it contains a PklProject file)",
    )
    p.add_argument(
        "-p",
        "--property",
        dest="properties",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="External property passed to pkl (repeatable)",
    )
    p.add_argument("--timeout", type=_positive_seconds, default=None, help="Seconds to wait for pkl (default: no limit)")
    p.add_argument("--summary", action="store_true", help="Print declared resources to stderr")
    p.add_argument("--strict", action="store_true", help="Fail when the template shape has warnings")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--log-file", default=None, help="Also write debug logs to this file")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.set_defaults(func=generate_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(verbose=bool(args.verbose), log_file=args.log_file)
    except OSError as e:
        console.print(f"error: cannot open log file: {e}", style="red", markup=False, highlight=False, soft_wrap=True)
        return 1
    try:
        return int(args.func(args))
    except (EvaluationError, SerializationError, OutputError, CLIError) as e:
        logger.debug("Run failed", exc_info=True)
        console.print(f"error: {e}", style="red", markup=False, highlight=False, soft_wrap=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
