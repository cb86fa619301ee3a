"""Command-line interface for csd-graph."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from csd_graph.program import build_program, load_program, render_document
from csd_graph.visualize import result_to_dot, result_to_dot_file

# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_render(args: argparse.Namespace) -> int:
    result = render_document(load_program(args.file))
    text = result.model_dump_json(indent=2) + "\n"
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text)
    else:
        sys.stdout.write(text)
    return 0


def _cmd_dot(args: argparse.Namespace) -> int:
    result = render_document(load_program(args.file))
    if args.output:
        result_to_dot_file(result, args.output)
    else:
        sys.stdout.write(result_to_dot(result))
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    program = load_program(args.file)
    ctx, _outputs = build_program(program)
    print(
        f"valid: {len(program.statements)} statements, "
        f"{len(ctx.graph)} nodes, {len(ctx.effects)} effects"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the csd-graph CLI."""
    parser = argparse.ArgumentParser(
        prog="csd-graph",
        description="Build, check, render and visualize synthesis expression graphs.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # render
    p_render = sub.add_parser("render", help="Render a program to an instruction list")
    p_render.add_argument("file", help="Program JSON file")
    p_render.add_argument("-o", "--output", help="Output JSON file")

    # dot
    p_dot = sub.add_parser("dot", help="Generate DOT visualization")
    p_dot.add_argument("file", help="Program JSON file")
    p_dot.add_argument("-o", "--output", help="Output directory")

    # check
    p_check = sub.add_parser("check", help="Build a program and report errors")
    p_check.add_argument("file", help="Program JSON file")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if not args.command:
        parser.print_help(sys.stderr)
        return 1

    try:
        if args.command == "render":
            return _cmd_render(args)
        elif args.command == "dot":
            return _cmd_dot(args)
        elif args.command == "check":
            return _cmd_check(args)
    except FileNotFoundError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"error: invalid JSON: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"error: invalid program: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0  # pragma: no cover


if __name__ == "__main__":
    sys.exit(main())
