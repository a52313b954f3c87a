#!/usr/bin/env python3
"""Single entry point for the CRX3 tools.

Each subcommand is a module with its own argparse ``main()``; the one-line
summaries in ``crx --help`` come from those modules' docstrings.
"""

from __future__ import annotations

import contextlib
import importlib
import sys
from types import ModuleType
from typing import Iterator, List, Optional

COMMANDS = {
    "pack": "crx_pack",
    "verify": "crx_verify",
    "unpack": "crx_archive",
    "zip": "crx_zip",
}


def _summary(module: ModuleType) -> str:
    doc = (module.__doc__ or "").strip()
    return doc.splitlines()[0].rstrip(".") if doc else ""


def usage() -> str:
    width = max(len(name) for name in COMMANDS)
    rows = [
        f"  {name:<{width}}  {_summary(importlib.import_module(module_name))}"
        for name, module_name in COMMANDS.items()
    ]
    return "\n".join(
        [
            "Usage:",
            "  crx <command> [options]",
            "  crx help <command>",
            "",
            "Commands:",
            *rows,
        ]
    )


@contextlib.contextmanager
def _argv(prog: str, args: List[str]) -> Iterator[None]:
    saved = sys.argv
    sys.argv = [prog, *args]
    try:
        yield
    finally:
        sys.argv = saved


def run(command: str, args: List[str]) -> int:
    """Run one subcommand's main() with args as its command line."""
    module = importlib.import_module(COMMANDS[command])
    entry = getattr(module, "main", None)
    if not callable(entry):
        print(f"Error: {module.__name__} has no main()", file=sys.stderr)
        return 2

    with _argv(f"crx {command}", args):
        try:
            result = entry()
        except SystemExit as exc:
            # argparse exits on --help and on usage errors
            if exc.code is None:
                return 0
            return exc.code if isinstance(exc.code, int) else 1
    return 0 if result is None else int(result)


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)

    if not args or args[0] in ("-h", "--help"):
        print(usage())
        return 0

    if args[0] == "help":
        if len(args) > 1 and args[1] in COMMANDS:
            return run(args[1], ["--help"])
        print(usage())
        return 0

    command, rest = args[0], args[1:]
    if command not in COMMANDS:
        print(f"Unknown command: {command}", file=sys.stderr)
        print(usage())
        return 2
    return run(command, rest)


if __name__ == "__main__":
    sys.exit(main())
