"""Obstruct lexer, parser, typechecker and interpreter — public API."""

from __future__ import annotations

import logging
from typing import Sequence, TextIO

from .ast import Program
from .check import check as check_program
from .errors import (
    CheckError as CheckError,
    LexError as LexError,
    ObstructError as ObstructError,
    ObstructNameError as ObstructNameError,
    ObstructRuntimeError as ObstructRuntimeError,
    ObstructTypeError as ObstructTypeError,
    ParseError as ParseError,
)
from .parse import parse_tokens
from .runtime import RunResult as RunResult, WindowHost as WindowHost, run as run_program
from .tokens import Token as Token, tokenize as tokenize

logging.getLogger(__name__).addHandler(logging.NullHandler())


def _extract_pragmas(source: str) -> bool:
    """Scan leading comment lines for pragmas. Returns strict_math."""
    strict_math = False
    for line in source.split("\n"):
        stripped = line.strip()
        if stripped == "":
            continue
        if not stripped.startswith("//"):
            break
        if stripped[2:].strip() == "pragma strict-math":
            strict_math = True
    return strict_math


def parse(source: str) -> Program:
    """Parse Obstruct source code into a Program AST."""
    program = parse_tokens(tokenize(source))
    program.strict_math = _extract_pragmas(source)
    return program


def check(source: str | Program) -> list[CheckError]:
    """Parse (if needed) and type-check. Returns list of errors (empty = ok)."""
    program = parse(source) if isinstance(source, str) else source
    return check_program(program)


def run(
    source: str | Program,
    *,
    stdin: str | TextIO = "",
    args: Sequence[str] | None = None,
    out: TextIO | None = None,
    window: WindowHost | None = None,
    strict_math: bool = False,
) -> RunResult:
    """Parse, check and evaluate. Static errors are raised, never run."""
    program = parse(source) if isinstance(source, str) else source
    errors = check_program(program)
    if errors:
        raise errors[0]
    return run_program(
        program, stdin=stdin, args=args, out=out, window=window, strict_math=strict_math
    )
