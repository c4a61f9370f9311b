"""Unit tests for the scope arena."""

import logging

import pytest

import obstruct
from obstruct.env import GLOBAL_FRAME, Binding, Env
from obstruct.errors import ObstructRuntimeError
from obstruct.runtime import Runtime
from obstruct.types import TY_I32, TY_STR, TyFunc
from obstruct.values import VFunc, VInt, VStr


def _int(name: str, value: int = 0, mutable: bool = False) -> Binding:
    return Binding(name, TY_I32, mutable, VInt(value))


def _env_messages(caplog) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == "obstruct.env"]


def test_resolve_walks_parents():
    env = Env()
    env.bind(GLOBAL_FRAME, _int("x", 1))
    inner = env.push(GLOBAL_FRAME)
    innermost = env.push(inner)
    assert env.lookup(innermost, "x").value == VInt(1)
    assert env.resolve(innermost, "y") is None


def test_shadowing():
    env = Env()
    env.bind(GLOBAL_FRAME, _int("x", 1))
    inner = env.push(GLOBAL_FRAME)
    env.bind(inner, _int("x", 2))
    assert env.lookup(inner, "x").value == VInt(2)
    env.pop(inner)
    assert env.lookup(GLOBAL_FRAME, "x").value == VInt(1)


def test_pop_drops_in_reverse_declaration_order(caplog):
    caplog.set_level(logging.DEBUG, logger="obstruct.env")
    env = Env()
    frame = env.push(GLOBAL_FRAME)
    a = _int("a")
    b = Binding("b", TY_STR, False, VStr("s"))
    env.bind(frame, a)
    env.bind(frame, b)
    env.pop(frame)
    assert not a.alive and not b.alive
    assert _env_messages(caplog) == ["drop b: str", "drop a: i32"]


def test_deleted_bindings_are_not_dropped_twice(caplog):
    caplog.set_level(logging.DEBUG, logger="obstruct.env")
    env = Env()
    frame = env.push(GLOBAL_FRAME)
    env.bind(frame, _int("a"))
    env.bind(frame, _int("b"))
    env.delete(frame, "a")
    env.pop(frame)
    assert _env_messages(caplog) == ["del a", "drop a: i32", "drop b: i32"]


def test_popped_frames_are_reclaimed():
    env = Env()
    first = env.push(GLOBAL_FRAME)
    env.pop(first)
    assert len(env.frames) == 1
    assert env.push(GLOBAL_FRAME) == first


def _closure(frame: int) -> VFunc:
    return VFunc(TyFunc((), (), TY_I32), None, None, frame)  # type: ignore[arg-type]


def test_escaping_closure_keeps_its_frames():
    env = Env()
    outer = env.push(GLOBAL_FRAME)
    x = _int("x", 5)
    env.bind(outer, x)
    inner = env.push(outer)
    closure = _closure(inner)
    env.pop(inner, closure, outer)
    env.pop(outer, closure, GLOBAL_FRAME)
    assert x.alive
    assert env.lookup(inner, "x").value == VInt(5)
    assert len(env.frames) == 3
    env.pop(GLOBAL_FRAME)
    assert not x.alive
    assert len(env.frames) == 1


def test_closure_kept_only_as_long_as_its_holder():
    env = Env()
    holder = env.push(GLOBAL_FRAME)
    inner = env.push(holder)
    env.pop(inner, _closure(inner), holder)
    assert len(env.frames) == 3
    env.pop(holder)
    assert len(env.frames) == 1


def test_closure_bound_in_its_own_frame_does_not_pin_it():
    env = Env()
    frame = env.push(GLOBAL_FRAME)
    env.bind(frame, Binding("f", TyFunc((), (), TY_I32), False, _closure(frame)))
    env.pop(frame)
    assert len(env.frames) == 1


def test_closure_on_the_heap_lives_until_the_end():
    env = Env()
    frame = env.push(GLOBAL_FRAME)
    y = _int("y", 1)
    env.bind(frame, y)
    env.escape(_closure(frame), None)
    env.pop(frame)
    assert y.alive
    env.pop(GLOBAL_FRAME)
    assert not y.alive


def test_reclaimed_slots_are_reused():
    env = Env()
    first = env.push(GLOBAL_FRAME)
    second = env.push(GLOBAL_FRAME)
    env.pop(first)
    assert len(env.frames) == 3
    assert env.push(GLOBAL_FRAME) == first
    env.pop(second)


def test_closures_in_a_long_loop_leave_no_frames_behind():
    program = obstruct.parse(
        "#@total = 0;\n"
        "for i in 0..5000 {\n"
        "    #f = lam(x: i32) -> i32 { x + i };\n"
        "    total = total + f(1);\n"
        "}\n"
        "$$ total;\n"
    )
    assert obstruct.check(program) == []
    rt = Runtime(program)
    result = rt.run_main()
    assert result.stdout == "12502500\n"
    assert len(rt.env.frames) == 1


def test_delete_hides_the_name():
    env = Env()
    env.bind(GLOBAL_FRAME, _int("x", 1))
    inner = env.push(GLOBAL_FRAME)
    env.bind(inner, _int("x", 2))
    env.delete(inner, "x")
    with pytest.raises(ObstructRuntimeError, match="'x' was deleted"):
        env.lookup(inner, "x")
    assert env.lookup(GLOBAL_FRAME, "x").value == VInt(1)


def test_delete_of_outer_binding():
    env = Env()
    x = _int("x")
    env.bind(GLOBAL_FRAME, x)
    inner = env.push(GLOBAL_FRAME)
    env.delete(inner, "x")
    assert not x.alive
    with pytest.raises(ObstructRuntimeError, match="'x' was deleted"):
        env.lookup(GLOBAL_FRAME, "x")


def test_redeclare_after_delete():
    env = Env()
    env.bind(GLOBAL_FRAME, _int("x", 1))
    env.delete(GLOBAL_FRAME, "x")
    env.bind(GLOBAL_FRAME, _int("x", 2))
    assert env.lookup(GLOBAL_FRAME, "x").value == VInt(2)


def test_delete_unknown_name():
    env = Env()
    with pytest.raises(ObstructRuntimeError, match="cannot delete 'y': no such binding"):
        env.delete(GLOBAL_FRAME, "y")


def test_lookup_undefined():
    env = Env()
    with pytest.raises(ObstructRuntimeError, match="undefined name 'nope'"):
        env.lookup(GLOBAL_FRAME, "nope")


def test_alias_shares_the_binding():
    env = Env()
    owner = _int("total", 1, mutable=True)
    env.bind(GLOBAL_FRAME, owner)
    call = env.push(GLOBAL_FRAME)
    env.alias(call, "n", owner)
    env.lookup(call, "n").value = VInt(9)
    env.pop(call)
    assert owner.alive
    assert owner.value == VInt(9)


def test_dropped_binding_is_reported():
    env = Env()
    frame = env.push(GLOBAL_FRAME)
    x = _int("x")
    env.bind(frame, x)
    call = env.push(GLOBAL_FRAME)
    env.alias(call, "x", x)
    env.pop(frame)
    with pytest.raises(ObstructRuntimeError, match="'x' was dropped"):
        env.lookup(call, "x")
