"""Obstruct operator table — every (operator, left type, right type) the
language accepts, with its result type and implementation.

The checker asks the table whether an operator applies; the evaluator runs the
implementation it finds there. Implementations take runtime values and return
a plain Python result that the evaluator boxes into the result type (integer
results are then wrapped or trapped at the result width). Arithmetic faults
are raised as ArithmeticError with the message shown to the user.
"""

from __future__ import annotations

import math
from typing import Callable

from .types import (
    INT_WIDTHS,
    TY_BOOL,
    TY_CHAR,
    TY_F64,
    TY_STR,
    TY_UNIT,
    Ty,
    TyArr,
    TyFunc,
    TyPrim,
    TyPtr,
    TyRef,
    TyVar,
    TyVec,
    compatible,
)
from .values import Value, values_equal

BinaryImpl = Callable[[Value, Value], object]
UnaryImpl = Callable[[Value], object]

ARITH_OPS = ("+", "-", "*", "/", "%", "^")
EQ_OPS = ("==", "!=")
LOGIC_OPS = ("&", "|")

INT_TYPES: tuple[Ty, ...] = tuple(TyPrim(kind) for kind in INT_WIDTHS)

# Results of an integer power with a large exponent are only ever needed
# modulo 2**64; adding 2**64 keeps the residue and marks it out of range.
_POW_MODULUS = 1 << 64


# ============================================================
# Implementations
# ============================================================


def _payload(v: Value) -> object:
    return v.value  # type: ignore[attr-defined]


def _trunc_divmod(a: int, b: int) -> tuple[int, int]:
    q = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        q = -q
    return q, a - q * b


def _int_div(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    if y == 0:
        raise ArithmeticError("division by zero")
    return _trunc_divmod(x, y)[0]  # type: ignore[arg-type]


def _int_rem(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    if y == 0:
        raise ArithmeticError("remainder by zero")
    return _trunc_divmod(x, y)[1]  # type: ignore[arg-type]


def _int_pow(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    assert isinstance(x, int) and isinstance(y, int)
    if y < 0:
        raise ArithmeticError("negative exponent in integer power")
    if abs(x) > 1 and y > 64:
        return pow(x, y, _POW_MODULUS) + _POW_MODULUS
    return x**y


def _float_div(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    if y == 0.0:
        raise ArithmeticError("division by zero")
    return x / y  # type: ignore[operator]


def _float_rem(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    if y == 0.0:
        raise ArithmeticError("remainder by zero")
    return math.fmod(x, y)  # type: ignore[arg-type]


def _float_pow(a: Value, b: Value) -> object:
    x, y = _payload(a), _payload(b)
    assert isinstance(x, float) and isinstance(y, float)
    try:
        return math.pow(x, y)
    except OverflowError:
        odd = y.is_integer() and int(y) % 2 == 1
        return -math.inf if x < 0 and odd else math.inf
    except ValueError:
        return math.nan


def _add(a: Value, b: Value) -> object:
    return _payload(a) + _payload(b)  # type: ignore[operator]


def _sub(a: Value, b: Value) -> object:
    return _payload(a) - _payload(b)  # type: ignore[operator]


def _mul(a: Value, b: Value) -> object:
    return _payload(a) * _payload(b)  # type: ignore[operator]


def _lt(a: Value, b: Value) -> object:
    return _payload(a) < _payload(b)  # type: ignore[operator]


def _le(a: Value, b: Value) -> object:
    return _payload(a) <= _payload(b)  # type: ignore[operator]


def _gt(a: Value, b: Value) -> object:
    return _payload(a) > _payload(b)  # type: ignore[operator]


def _ge(a: Value, b: Value) -> object:
    return _payload(a) >= _payload(b)  # type: ignore[operator]


def _eq(a: Value, b: Value) -> object:
    return values_equal(a, b)


def _ne(a: Value, b: Value) -> object:
    return not values_equal(a, b)


def _and(a: Value, b: Value) -> object:
    return _payload(a) and _payload(b)


def _or(a: Value, b: Value) -> object:
    return _payload(a) or _payload(b)


def _concat(a: Value, b: Value) -> object:
    return a.to_string() + b.to_string()


def _neg(a: Value) -> object:
    return -_payload(a)  # type: ignore[operator]


def _not(a: Value) -> object:
    return not _payload(a)


# ============================================================
# Table
# ============================================================

_INT_ARITH: dict[str, BinaryImpl] = {
    "+": _add,
    "-": _sub,
    "*": _mul,
    "/": _int_div,
    "%": _int_rem,
    "^": _int_pow,
}

_FLOAT_ARITH: dict[str, BinaryImpl] = {
    "+": _add,
    "-": _sub,
    "*": _mul,
    "/": _float_div,
    "%": _float_rem,
    "^": _float_pow,
}

_ORDER: dict[str, BinaryImpl] = {"<": _lt, "<=": _le, ">": _gt, ">=": _ge}
_EQUALITY: dict[str, BinaryImpl] = {"==": _eq, "!=": _ne}


def _build_binary() -> dict[tuple[str, Ty, Ty], tuple[Ty, BinaryImpl]]:
    table: dict[tuple[str, Ty, Ty], tuple[Ty, BinaryImpl]] = {}
    for t in INT_TYPES:
        for op, impl in _INT_ARITH.items():
            table[(op, t, t)] = (t, impl)
    for op, impl in _FLOAT_ARITH.items():
        table[(op, TY_F64, TY_F64)] = (TY_F64, impl)
    for t in INT_TYPES + (TY_F64, TY_CHAR, TY_STR):
        for op, impl in _ORDER.items():
            table[(op, t, t)] = (TY_BOOL, impl)
    for t in INT_TYPES + (TY_F64, TY_BOOL, TY_CHAR, TY_STR):
        for op, impl in _EQUALITY.items():
            table[(op, t, t)] = (TY_BOOL, impl)
    table[("&", TY_BOOL, TY_BOOL)] = (TY_BOOL, _and)
    table[("|", TY_BOOL, TY_BOOL)] = (TY_BOOL, _or)
    for left, right in ((TY_STR, TY_STR), (TY_STR, TY_CHAR), (TY_CHAR, TY_STR)):
        table[("+", left, right)] = (TY_STR, _concat)
    return table


BINARY_OPS = _build_binary()

UNARY_OPS: dict[tuple[str, Ty], tuple[Ty, UnaryImpl]] = {
    ("!", TY_BOOL): (TY_BOOL, _not),
    **{("-", t): (t, _neg) for t in INT_TYPES + (TY_F64,)},
}


def _structural(t: Ty) -> bool:
    return isinstance(t, (TyVec, TyArr, TyPtr, TyRef, TyVar))


def binary_op(op: str, left: Ty, right: Ty) -> tuple[Ty, BinaryImpl] | None:
    """Result type and implementation of `left op right`, or None.

    Containers, handles and not-yet-known types cannot be listed one by one;
    they compare with `==`/`!=` whenever their types are compatible.
    """
    entry = BINARY_OPS.get((op, left, right))
    if entry is not None:
        return entry
    if op not in EQ_OPS or TY_UNIT in (left, right):
        return None
    if isinstance(left, TyFunc) or isinstance(right, TyFunc):
        return None
    if (_structural(left) or _structural(right)) and compatible(left, right):
        return TY_BOOL, _EQUALITY[op]
    return None


def unary_op(op: str, operand: Ty) -> tuple[Ty, UnaryImpl] | None:
    return UNARY_OPS.get((op, operand))
