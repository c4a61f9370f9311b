"""Tests for the public obstruct API."""

import io
import logging

import pytest

import obstruct
from obstruct.ast import Program


def test_parse_returns_program():
    program = obstruct.parse("#x = 1;\nfn main(args: vec<<str>>) {}")
    assert isinstance(program, Program)
    assert [f.name for f in program.functions] == ["main"]
    assert not program.strict_math


def test_pragma_sets_strict_math():
    program = obstruct.parse("// a program\n// pragma strict-math\n#x = 1;")
    assert program.strict_math


def test_check_collects_every_error():
    errors = obstruct.check('#a = missing;\n#b: i32 = "s";')
    assert len(errors) == 2
    assert isinstance(errors[0], obstruct.ObstructNameError)
    assert isinstance(errors[1], obstruct.ObstructTypeError)


def test_check_accepts_a_program_object():
    program = obstruct.parse("#x = 1;")
    assert obstruct.check(program) == []


def test_lex_errors_are_raised():
    with pytest.raises(obstruct.LexError, match="unterminated string literal"):
        obstruct.tokenize('"abc')


def test_parse_errors_are_raised():
    with pytest.raises(obstruct.ParseError, match="expected ';', got end of input"):
        obstruct.parse("#x = 1")


def test_run_raises_static_errors():
    with pytest.raises(obstruct.ObstructTypeError, match="invalid operand types"):
        obstruct.run('$$ "a" * "b";')


def test_strict_math_keyword():
    source = "#x: i8 = 127;\n$$ x + 1;"
    assert obstruct.run(source).stdout == "-128\n"
    result = obstruct.run(source, strict_math=True)
    assert result.exit_code == 1
    assert "integer overflow" in result.stderr


def test_stdin_stream():
    source = "$$ in();\n$$ in();\n$$ len(in());"
    result = obstruct.run(source, stdin=io.StringIO("one\ntwo\n"))
    assert result.stdout == "one\ntwo\n0\n"


def test_args_reach_main():
    source = "fn main(args: vec<<str>>) -> i32 { $$ args; len(args) }"
    result = obstruct.run(source, args=["prog", "a", "b"])
    assert result.stdout == "[prog, a, b]\n"
    assert result.exit_code == 3


def test_exit_code_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="obstruct")
    obstruct.run("quit(2);")
    messages = [r.getMessage() for r in caplog.records]
    assert "quit with code 2" in messages
    assert "program exited with code 2" in messages


def test_generic_instantiation_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="obstruct.check")
    obstruct.check("fn id<<T>>(x: T) -> T { x }\n$$ id('c');")
    messages = [r.getMessage() for r in caplog.records]
    assert "instantiate id with {'T': 'char'}" in messages


def test_deep_unary_nesting_is_a_parse_error():
    with pytest.raises(obstruct.ParseError, match="nested too deeply"):
        obstruct.parse("#x = " + "-" * 3000 + "1;")


def test_deep_block_nesting_is_a_parse_error():
    with pytest.raises(obstruct.ParseError, match="nested too deeply"):
        obstruct.parse("#x = " + "{ " * 3000 + "1" + " }" * 3000 + ";")


def test_deep_type_nesting_is_a_parse_error():
    with pytest.raises(obstruct.ParseError, match="nested too deeply"):
        obstruct.parse("#v: " + "vec<<" * 3000 + "i32" + ">>" * 3000 + ";")


def test_nesting_below_the_limit_runs():
    assert obstruct.run("$$ " + "-" * 201 + "7;").stdout == "-7\n"
    assert obstruct.run("$$ " + "(" * 200 + "7" + ")" * 200 + ";").stdout == "7\n"


def test_checker_bindings_drive_generic_calls():
    source = "fn zero<<T>>() -> T { T::new() }\nquit(zero() + 4);"
    assert obstruct.run(source).exit_code == 4
