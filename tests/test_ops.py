"""Unit tests for the operator table shared by the checker and the evaluator."""

import pytest

import obstruct
from obstruct.ops import binary_op, unary_op
from obstruct.runtime import Runtime
from obstruct.types import (
    TY_BOOL,
    TY_CHAR,
    TY_F64,
    TY_I8,
    TY_I32,
    TY_STR,
    TY_UNKNOWN,
    TyPtr,
    TyVec,
)
from obstruct.values import VChar, VFloat, VInt, VStr


def test_string_plus_integer_is_not_an_operator():
    assert binary_op("+", TY_STR, TY_I32) is None
    assert binary_op("+", TY_I32, TY_STR) is None


def test_concatenation_accepts_chars():
    ty, impl = binary_op("+", TY_STR, TY_CHAR)
    assert ty == TY_STR
    assert impl(VStr("a"), VChar("b")) == "ab"
    assert binary_op("+", TY_CHAR, TY_CHAR) is None


def test_integer_widths_must_match():
    assert binary_op("+", TY_I8, TY_I32) is None
    assert binary_op("+", TY_I8, TY_I8)[0] == TY_I8


def test_structural_types_only_compare_for_equality():
    assert binary_op("==", TyVec(TY_I32), TyVec(TY_I32))[0] == TY_BOOL
    assert binary_op("!=", TyVec(TY_I32), TyVec(TY_UNKNOWN))[0] == TY_BOOL
    assert binary_op("==", TyVec(TY_I32), TyVec(TY_STR)) is None
    assert binary_op("==", TyPtr(TY_I32), TyPtr(TY_I32))[0] == TY_BOOL
    assert binary_op("<", TyVec(TY_I32), TyVec(TY_I32)) is None


def test_logic_operators_take_bools_only():
    assert binary_op("&", TY_BOOL, TY_BOOL)[0] == TY_BOOL
    assert binary_op("|", TY_BOOL, TY_BOOL)[0] == TY_BOOL
    assert binary_op("&", TY_I32, TY_I32) is None
    # the parser rewrites the doubled spellings
    assert binary_op("&&", TY_BOOL, TY_BOOL) is None


def test_integer_division_truncates_and_traps_zero():
    _, div = binary_op("/", TY_I32, TY_I32)
    _, rem = binary_op("%", TY_I32, TY_I32)
    assert div(VInt(-7), VInt(2)) == -3
    assert rem(VInt(-7), VInt(2)) == -1
    with pytest.raises(ArithmeticError, match="division by zero"):
        div(VInt(1), VInt(0))
    with pytest.raises(ArithmeticError, match="remainder by zero"):
        rem(VInt(1), VInt(0))


def test_float_power_overflow_is_infinite():
    _, power = binary_op("^", TY_F64, TY_F64)
    assert power(VFloat(10.0), VFloat(400.0)) == float("inf")


def test_unary_operators():
    assert unary_op("-", TY_F64)[0] == TY_F64
    assert unary_op("!", TY_BOOL)[0] == TY_BOOL
    assert unary_op("-", TY_STR) is None
    assert unary_op("!", TY_I32) is None


def test_evaluator_rejects_what_the_checker_rejects():
    program = obstruct.parse('#s = "a" + 1;\n$$ s;')
    errors = obstruct.check(program)
    assert any("invalid operand types for '+': str and i32" in str(e) for e in errors)
    result = Runtime(program).run_main()
    assert result.exit_code == 1
    assert result.stdout == ""
    assert "invalid operand types for '+': str and i32" in result.stderr
