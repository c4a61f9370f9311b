"""Obstruct diagnostics — one exception hierarchy for every phase."""

from __future__ import annotations

from .ast import Pos


class ObstructError(Exception):
    """Base error for lexing, parsing, checking and evaluation."""

    def __init__(self, msg: str, pos: Pos | None = None):
        if pos is None:
            super().__init__(msg)
        else:
            super().__init__(f"{msg} at line {pos.line} col {pos.col}")
        self.msg = msg
        self.pos = pos


class LexError(ObstructError):
    """Malformed token."""


class ParseError(ObstructError):
    """Unexpected or missing token."""


class CheckError(ObstructError):
    """Static error found before evaluation."""


class ObstructNameError(CheckError):
    """Undefined or deleted identifier."""


class ObstructTypeError(CheckError):
    """Type, arity, mutability or generic inference error."""


class ObstructRuntimeError(ObstructError):
    """Error raised while the program runs."""
