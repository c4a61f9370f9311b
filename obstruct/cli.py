"""Obstruct CLI — check and run .obs files."""

from __future__ import annotations

import logging
import sys

from . import parse, tokenize
from .check import check
from .errors import LexError, ParseError
from .runtime import run

USAGE: str = """\
obstruct [OPTIONS] FILE [ARGS...]

Run an Obstruct (.obs) program. ARGS are passed to main after FILE.

Options:
  --strict-math      Trap integer overflow instead of wrapping
  --stop-at PHASE    Stop after PHASE (lex, parse or check)
  --verbose          Debug logging to stderr
  --help             Show this help message
"""

PHASES = ("lex", "parse", "check")


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    filepath: str = ""
    program_args: list[str] = []
    strict_math = False
    verbose = False
    stop_at = ""
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return 0
        elif arg == "--strict-math":
            strict_math = True
            i += 1
        elif arg == "--verbose":
            verbose = True
            i += 1
        elif arg == "--stop-at":
            if i + 1 >= len(args) or args[i + 1] not in PHASES:
                print(
                    "obstruct: --stop-at expects one of: " + ", ".join(PHASES),
                    file=sys.stderr,
                )
                return 2
            stop_at = args[i + 1]
            i += 2
        elif arg.startswith("-"):
            print("obstruct: unknown flag '" + arg + "'", file=sys.stderr)
            return 2
        else:
            filepath = arg
            program_args = args[i + 1 :]
            break
    if filepath == "":
        print("obstruct: missing file argument", file=sys.stderr)
        return 2

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(name)s: %(message)s",
        )

    try:
        with open(filepath, "rb") as f:
            raw = f.read()
    except FileNotFoundError:
        print("obstruct: " + filepath + ": No such file or directory", file=sys.stderr)
        return 1
    except OSError as e:
        print("obstruct: " + filepath + ": " + str(e), file=sys.stderr)
        return 1
    try:
        source = raw.decode("utf-8")
    except ValueError:
        print("obstruct: " + filepath + ": invalid utf-8", file=sys.stderr)
        return 1

    try:
        if stop_at == "lex":
            tokenize(source)
            return 0
        program = parse(source)
    except LexError as e:
        print("obstruct: lex error: " + str(e), file=sys.stderr)
        return 1
    except ParseError as e:
        print("obstruct: parse error: " + str(e), file=sys.stderr)
        return 1
    if stop_at == "parse":
        return 0

    errors = check(program)
    for err in errors:
        print("obstruct: check error: " + str(err), file=sys.stderr)
    if errors:
        return 1
    if stop_at == "check":
        return 0

    result = run(
        program,
        stdin=sys.stdin,
        args=[filepath] + program_args,
        out=sys.stdout,
        strict_math=strict_math,
    )
    if result.stderr:
        sys.stderr.write("obstruct: " + result.stderr)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
