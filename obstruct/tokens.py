"""Obstruct tokenizer — lexes source into a flat token list."""

from __future__ import annotations

from .ast import Pos
from .errors import LexError


# Token type constants
TK_INT = "INT"
TK_FLOAT = "FLOAT"
TK_STRING = "STRING"
TK_CHAR = "CHAR"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "del",
    "false",
    "fn",
    "for",
    "in",
    "lam",
    "quit",
    "ret",
    "true",
}

# Backtick boolean shorthands
BACKTICK_BOOLS: dict[str, str] = {
    "t": "true",
    "f": "false",
}

NUMERIC_SUFFIXES: set[str] = {"i8", "i16", "i32", "i64", "f64"}

# Multi-character symbols, longest first for greedy matching
MULTI_OPS: list[str] = [
    "$$",
    "#@",
    "~?",
    "^^",
    "::",
    "..",
    "<<",
    ">>",
    "->",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
]

SINGLE_OPS: set[str] = {
    "+",
    "-",
    "*",
    "/",
    "%",
    "^",
    "&",
    "|",
    "<",
    ">",
    "=",
    "!",
    "(",
    ")",
    "{",
    "}",
    "[",
    "]",
    ",",
    ":",
    ";",
    "#",
    "@",
    "$",
    "?",
    "~",
}

STRING_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    '"': '"',
}

CHAR_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    "'": "'",
}


class Token:
    """A token with type, value, and position."""

    def __init__(self, type_: str, value: str, line: int, col: int):
        self.type: str = type_
        self.value: str = value
        self.line: int = line
        self.col: int = col
        self.suffix: str = ""

    def __repr__(self) -> str:
        text = "Token(" + self.type + ", " + repr(self.value)
        if self.suffix:
            text += ", suffix=" + self.suffix
        return text + ", " + str(self.line) + ", " + str(self.col) + ")"


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def _error(msg: str, line: int, col: int) -> LexError:
    return LexError(msg, Pos(line, col))


def _process_escape(
    src: str, pos: int, escapes: dict[str, str], line: int, col: int
) -> tuple[str, int]:
    """Process escape after backslash. Returns (resolved_char, new_pos)."""
    if pos >= len(src):
        raise _error("unexpected end of input in escape", line, col)
    c = src[pos]
    if c in escapes:
        return escapes[c], pos + 1
    raise _error("invalid escape: \\" + c, line, col)


def tokenize(source: str) -> list[Token]:
    """Tokenize Obstruct source into a flat list ending with TK_EOF."""
    tokens: list[Token] = []
    pos = 0
    line = 1
    col = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        # Line comment: //
        if c == "/" and pos + 1 < length and source[pos + 1] == "/":
            while pos < length and source[pos] != "\n":
                pos += 1
            continue

        # Block comment: /= ... =/
        if c == "/" and pos + 1 < length and source[pos + 1] == "=":
            comment_line = line
            comment_col = col
            pos += 2
            col += 2
            while pos < length and not (
                source[pos] == "=" and pos + 1 < length and source[pos + 1] == "/"
            ):
                if source[pos] == "\n":
                    line += 1
                    col = 1
                else:
                    col += 1
                pos += 1
            if pos >= length:
                raise _error("unterminated block comment", comment_line, comment_col)
            pos += 2
            col += 2
            continue

        start_pos = pos
        start_line = line
        start_col = col

        # Number: int or float, optional type suffix
        if _is_digit(c):
            while pos < length and _is_digit(source[pos]):
                pos += 1
                col += 1
            is_float = False
            if (
                pos + 1 < length
                and source[pos] == "."
                and _is_digit(source[pos + 1])
            ):
                is_float = True
                pos += 1
                col += 1
                while pos < length and _is_digit(source[pos]):
                    pos += 1
                    col += 1
            raw = source[start_pos:pos]
            suffix = ""
            if pos < length and _is_alpha(source[pos]):
                suffix_start = pos
                while pos < length and _is_alnum(source[pos]):
                    pos += 1
                    col += 1
                suffix = source[suffix_start:pos]
                if suffix not in NUMERIC_SUFFIXES:
                    raise _error(
                        "invalid numeric suffix '" + suffix + "'", start_line, start_col
                    )
                if is_float and suffix != "f64":
                    raise _error(
                        "float literal cannot have suffix '" + suffix + "'",
                        start_line,
                        start_col,
                    )
                if suffix == "f64":
                    is_float = True
            tok = Token(TK_FLOAT if is_float else TK_INT, raw, start_line, start_col)
            tok.suffix = suffix
            tokens.append(tok)
            continue

        # String literal: "..."
        if c == '"':
            pos += 1
            col += 1
            chars: list[str] = []
            while pos < length and source[pos] != '"':
                if source[pos] == "\n":
                    raise _error("unterminated string literal", start_line, start_col)
                if source[pos] == "\\":
                    pos += 1
                    col += 1
                    ch, pos = _process_escape(
                        source, pos, STRING_ESCAPES, start_line, col
                    )
                    chars.append(ch)
                else:
                    chars.append(source[pos])
                    pos += 1
                col += 1
            if pos >= length:
                raise _error("unterminated string literal", start_line, start_col)
            pos += 1  # skip closing "
            col += 1
            tokens.append(Token(TK_STRING, "".join(chars), start_line, start_col))
            continue

        # Char literal: '...'
        if c == "'":
            pos += 1
            col += 1
            if pos >= length or source[pos] == "\n":
                raise _error("unterminated char literal", start_line, start_col)
            if source[pos] == "\\":
                pos += 1
                col += 1
                ch, pos = _process_escape(source, pos, CHAR_ESCAPES, start_line, col)
            elif source[pos] == "'":
                raise _error("empty char literal", start_line, start_col)
            else:
                ch = source[pos]
                pos += 1
            col += 1
            if pos >= length or source[pos] == "\n":
                raise _error("unterminated char literal", start_line, start_col)
            if source[pos] != "'":
                raise _error(
                    "char literal must contain exactly one character",
                    start_line,
                    start_col,
                )
            pos += 1  # skip closing '
            col += 1
            tokens.append(Token(TK_CHAR, ch, start_line, start_col))
            continue

        # Backtick booleans: `t and `f
        if c == "`":
            if pos + 1 < length and source[pos + 1] in BACKTICK_BOOLS:
                if pos + 2 >= length or not _is_alnum(source[pos + 2]):
                    word = BACKTICK_BOOLS[source[pos + 1]]
                    tokens.append(Token(word, word, start_line, start_col))
                    pos += 2
                    col += 2
                    continue
            raise _error("expected `t or `f after backtick", line, col)

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
                col += 1
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, start_line, start_col))
            else:
                tokens.append(Token(TK_IDENT, word, start_line, start_col))
            continue

        # Multi-character operators
        matched = False
        for op in MULTI_OPS:
            op_len = len(op)
            if pos + op_len <= length and source[pos : pos + op_len] == op:
                tokens.append(Token(TK_OP, op, start_line, start_col))
                pos += op_len
                col += op_len
                matched = True
                break
        if matched:
            continue

        # Single-character operators
        if c in SINGLE_OPS:
            tokens.append(Token(TK_OP, c, start_line, start_col))
            pos += 1
            col += 1
            continue

        raise _error("unexpected character: " + repr(c), line, col)

    tokens.append(Token(TK_EOF, "", line, col))
    return tokens
