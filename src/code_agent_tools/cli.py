"""
Command line entry point: list tool descriptors or run a script through
the python_interpreter tool.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .core.config import settings
from .core.logging import configure_logging
from .tools import SAFE_STDLIB_IMPORTS, MediaReference, all_descriptors, python_interpreter


def list_tools(args: argparse.Namespace) -> int:
    for descriptor in all_descriptors(output_dir=args.output_dir):
        print(f"{descriptor.name} ({descriptor.output_type}, {descriptor.safety.value})")
        if args.verbose:
            for name, spec in descriptor.inputs.items():
                default = f" [default: {spec.default}]" if spec.default is not None else ""
                print(f"    {name}: {spec.type} - {spec.description}{default}")
    return 0


def run_script(args: argparse.Namespace) -> int:
    script = Path(args.file)
    if not script.exists():
        print(f"Error: File not found at {script}", file=sys.stderr)
        return 1

    if args.safe_imports:
        allowed_imports = list(SAFE_STDLIB_IMPORTS) + (args.allow or [])
    else:
        allowed_imports = args.allow

    tool = python_interpreter(allowed_imports=allowed_imports, output_dir=args.output_dir)
    output = tool(script.read_text(encoding="utf-8"))

    if isinstance(output, MediaReference):
        print(f"{output.kind.value}: {output.path}")
        return 0

    print(output)
    return 1 if output.startswith(("Error:", "Unauthorized imports:")) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="code-agent-tools", description="Tool adapters for code agents")
    parser.add_argument(
        "--output-dir",
        default=settings.output_dir,
        help=f"Managed output directory (default: {settings.output_dir})"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List tool descriptors")
    list_parser.add_argument("-v", "--verbose", action="store_true", help="Show tool inputs")
    list_parser.set_defaults(handler=list_tools)

    run_parser = subparsers.add_parser("run", help="Run a Python file through python_interpreter")
    run_parser.add_argument("file", help="Python source file; set 'result' to return a value")
    run_parser.add_argument(
        "--allow",
        action="append",
        metavar="MODULE",
        help="Allowed import prefix (repeatable; no flag allows every import)"
    )
    run_parser.add_argument(
        "--safe-imports",
        action="store_true",
        help="Start from the safe standard-library allow-list"
    )
    run_parser.set_defaults(handler=run_script)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
