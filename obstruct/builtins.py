"""Obstruct builtin library: one table of static checkers and runtime
implementations, shared by the checker and the evaluator."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .ast import Call, Identifier, Pos
from .errors import ObstructRuntimeError
from .types import (
    INT_WIDTHS,
    TY_BOOL,
    TY_CHAR,
    TY_F64,
    TY_I32,
    TY_STR,
    TY_UNIT,
    TY_UNKNOWN,
    Ty,
    TyArr,
    TyPrim,
    TyPtr,
    TyRef,
    TyVec,
    compatible,
    contains_var,
    has_default,
    int_bounds,
    is_int,
    is_numeric,
)
from .values import (
    UNIT,
    Value,
    VArr,
    VBool,
    VChar,
    VFloat,
    VInt,
    VPtr,
    VRef,
    VStr,
    VVec,
    copy_value,
)

if TYPE_CHECKING:
    from .check import Checker
    from .runtime import Runtime


@dataclass
class CallSite:
    """What a runtime builtin sees besides its argument values."""

    pos: Pos
    call: Call
    frame: int
    generics: list[Ty | int] = field(default_factory=list)
    expected: Ty | None = None


TypeCheckFn = Callable[["Checker", Call, "Ty | None"], "Ty | None"]
RuntimeFn = Callable[["Runtime", list[Value], CallSite], Value]


@dataclass
class Builtin:
    typecheck: TypeCheckFn
    run: RuntimeFn
    raw_args: bool = False
    # literal hints for the evaluated arguments, matching what the checker
    # passes to check_expr
    arg_hints: tuple[Ty, ...] = ()

    def check(self, tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
        return self.typecheck(tc, call, expected)


def type_path(t: Ty) -> tuple[str, list[Ty | int]]:
    """Builtin namespace for a concrete type, plus its implied generic args."""
    if isinstance(t, TyVec):
        return "vec", [t.elem]
    if isinstance(t, TyArr):
        return "arr", [t.elem, t.size]
    if isinstance(t, TyPtr):
        return "ptr", [t.target]
    if isinstance(t, TyRef):
        return "ref", [t.target]
    return t.display(), []


def default_value(t: Ty) -> Value:
    """The value `T::new()` produces; only called for types with a default."""
    if isinstance(t, TyPrim):
        if t.kind in INT_WIDTHS:
            return VInt(0, t.kind)
        if t == TY_F64:
            return VFloat(0.0)
        if t == TY_BOOL:
            return VBool(False)
        if t == TY_CHAR:
            return VChar("\0")
        if t == TY_STR:
            return VStr("")
    if isinstance(t, TyVec):
        return VVec([], t.elem)
    if isinstance(t, TyArr):
        return VArr([default_value(t.elem) for _ in range(t.size)], t.elem)
    raise ObstructRuntimeError(f"type {t.display()} has no default value", None)


# ============================================================
# Static checking helpers
# ============================================================


def _arity(tc: Checker, call: Call, name: str, counts: tuple[int, ...]) -> bool:
    n = len(call.args)
    if n in counts:
        return True
    want = " or ".join(str(c) for c in counts)
    tc.error(f"{name} expects {want} argument(s), got {n}", call.pos)
    for a in call.args:
        tc.check_expr(a, None)
    return False


def _no_generics(tc: Checker, call: Call, name: str) -> bool:
    if call.generics is None:
        return True
    tc.error(f"{name} takes no generic arguments", call.pos)
    return False


class _SimpleTC:
    """Typecheck callable for fixed-signature builtins."""

    def __init__(self, name: str, params: tuple[Ty, ...], ret: Ty) -> None:
        self.name = name
        self.params = params
        self.ret = ret

    def check(self, tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
        if not _no_generics(tc, call, self.name):
            return None
        if not _arity(tc, call, self.name, (len(self.params),)):
            return None
        for i, (a, p) in enumerate(zip(call.args, self.params)):
            aty = tc.check_expr(a, p)
            if aty is not None:
                tc.accept(a, aty, p, f"argument {i + 1} of {self.name}")
        return self.ret


def _tc_from(kind: str) -> TypeCheckFn:
    name = kind + "::from"
    target = TyPrim(kind)

    def check(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
        if not _no_generics(tc, call, name) or not _arity(tc, call, name, (1,)):
            return None
        aty = tc.check_expr(call.args[0], None)
        if aty is None:
            return target
        if not is_numeric(aty) and aty != TY_CHAR:
            tc.error(f"{name} cannot convert from {aty.display()}", call.args[0].pos)
        return target

    return check


def _tc_char_from(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "char::from") or not _arity(tc, call, "char::from", (1,)):
        return None
    aty = tc.check_expr(call.args[0], None)
    if aty is not None and not is_int(aty):
        tc.error(
            "char::from expects an integer code point, got " + aty.display(),
            call.args[0].pos,
        )
    return TY_CHAR


def _tc_str_from(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "str::from") or not _arity(tc, call, "str::from", (1,)):
        return None
    tc.check_expr(call.args[0], None)
    return TY_STR


def _tc_vec_new(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _arity(tc, call, "vec::new", (0,)):
        return None
    if call.generics is not None:
        if len(call.generics) != 1:
            tc.error("vec::new expects one generic argument", call.pos)
            return None
        elem = tc.resolve_generic_arg(call.generics[0], call.pos)
        if not isinstance(elem, Ty):
            if elem is not None:
                tc.error("vec::new generic argument must be a type", call.pos)
            return None
        return TyVec(elem)
    if isinstance(expected, TyVec) and not contains_var(expected):
        return expected
    tc.error("cannot infer element type for vec::new; write vec::new<<T>>()", call.pos)
    return None


def _tc_arr_new(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if call.generics is not None:
        if len(call.generics) != 2:
            tc.error("arr::new expects generic arguments <<T, N>>", call.pos)
            return None
        elem = tc.resolve_generic_arg(call.generics[0], call.pos)
        size = call.generics[1]
        if not isinstance(elem, Ty) or not isinstance(size, int):
            if elem is not None:
                tc.error("arr::new expects generic arguments <<T, N>>", call.pos)
            return None
        if not _arity(tc, call, "arr::new", (0,)):
            return None
        if not has_default(elem):
            tc.error(f"type {elem.display()} has no default value", call.pos)
            return None
        return TyArr(elem, size)
    if call.args:
        want = expected.elem if isinstance(expected, TyArr) else None
        first = tc.check_expr(call.args[0], want)
        if first is None:
            return None
        for a in call.args[1:]:
            aty = tc.check_expr(a, first)
            if aty is not None and not compatible(aty, first):
                tc.error(
                    "arr::new arguments must share one type: "
                    + first.display()
                    + " and "
                    + aty.display(),
                    a.pos,
                )
        return TyArr(first, len(call.args))
    if isinstance(expected, TyArr) and not contains_var(expected):
        return expected
    tc.error("cannot infer type for arr::new; write arr::new<<T, N>>()", call.pos)
    return None


def _tc_ptr_new(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "ptr::new") or not _arity(tc, call, "ptr::new", (1,)):
        return None
    want = expected.target if isinstance(expected, TyPtr) else None
    aty = tc.check_expr(call.args[0], want)
    if aty is None:
        return None
    return TyPtr(aty)


def _tc_pointer_arg(
    tc: Checker, call: Call, name: str, cls: type[TyPtr] | type[TyRef], what: str
) -> Ty | None:
    if not _no_generics(tc, call, name) or not _arity(tc, call, name, (1,)):
        return None
    aty = tc.check_expr(call.args[0], None)
    if aty is None:
        return None
    if not isinstance(aty, cls):
        tc.error(f"{name} expects a {what}, got {aty.display()}", call.args[0].pos)
        return None
    return aty


def _tc_ptr_deref(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    pty = _tc_pointer_arg(tc, call, "ptr::deref", TyPtr, "pointer")
    return pty.target if isinstance(pty, TyPtr) else None


def _tc_ptr_free(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    _tc_pointer_arg(tc, call, "ptr::free", TyPtr, "pointer")
    return TY_UNIT


def _tc_ref_new(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "ref::new") or not _arity(tc, call, "ref::new", (1,)):
        return None
    arg = call.args[0]
    if not isinstance(arg, Identifier):
        tc.error("ref::new expects a variable name", arg.pos)
        return None
    entry = tc.lookup(arg.name, arg.pos)
    if entry is None:
        return None
    if entry.kind == "fn":
        tc.error(f"cannot take a reference to function '{arg.name}'", arg.pos)
        return None
    return TyRef(entry.ty)


def _tc_ref_deref(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    rty = _tc_pointer_arg(tc, call, "ref::deref", TyRef, "reference")
    return rty.target if isinstance(rty, TyRef) else None


def _tc_vec_push(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "vec::push") or not _arity(tc, call, "vec::push", (2,)):
        return None
    hty = tc.check_expr(call.args[0], None)
    if hty is None:
        tc.check_expr(call.args[1], None)
        return TY_UNIT
    if not isinstance(hty, (TyPtr, TyRef)) or not isinstance(hty.target, TyVec):
        tc.error(
            "vec::push expects ptr<<vec<<T>>>> or ref<<vec<<T>>>>, got " + hty.display(),
            call.args[0].pos,
        )
        tc.check_expr(call.args[1], None)
        return TY_UNIT
    elem = hty.target.elem
    aty = tc.check_expr(call.args[1], elem)
    if aty is not None:
        tc.accept(call.args[1], aty, elem, "argument 2 of vec::push")
    return TY_UNIT


def _tc_nth(name: str, accepts: tuple[type, ...], text: bool) -> TypeCheckFn:
    def check(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
        if not _no_generics(tc, call, name) or not _arity(tc, call, name, (2,)):
            return None
        oty = tc.check_expr(call.args[0], None)
        tc.check_index_value(call.args[1])
        if oty is None:
            return None
        if text and oty == TY_STR:
            return TY_CHAR
        if accepts and isinstance(oty, accepts):
            return oty.elem  # type: ignore[attr-defined]
        tc.error(f"{name} not supported for {oty.display()}", call.args[0].pos)
        return None

    return check


def _tc_len(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "len") or not _arity(tc, call, "len", (1,)):
        return None
    aty = tc.check_expr(call.args[0], None)
    if aty is None:
        return TY_I32
    if aty != TY_STR and not isinstance(aty, (TyVec, TyArr)):
        tc.error("len() not supported for " + aty.display(), call.args[0].pos)
    return TY_I32


def _tc_type(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "type") or not _arity(tc, call, "type", (1,)):
        return None
    tc.check_expr(call.args[0], None)
    return TY_STR


def _tc_quit(tc: Checker, call: Call, expected: Ty | None) -> Ty | None:
    if not _no_generics(tc, call, "quit") or not _arity(tc, call, "quit", (0, 1)):
        return None
    if call.args:
        aty = tc.check_expr(call.args[0], TY_I32)
        if aty is not None and not is_int(aty):
            tc.error("quit expects an integer exit code, got " + aty.display(), call.args[0].pos)
    return TY_UNIT


# ============================================================
# Runtime implementations
# ============================================================


def _bi_default(t: Ty) -> RuntimeFn:
    def run(rt: Runtime, args: list[Value], site: CallSite) -> Value:
        return default_value(t)

    return run


def _bi_from(kind: str) -> RuntimeFn:
    def run(rt: Runtime, args: list[Value], site: CallSite) -> Value:
        x = args[0]
        if isinstance(x, VChar):
            n: int | float = ord(x.value)
        elif isinstance(x, (VInt, VFloat)):
            n = x.value
        else:
            raise ObstructRuntimeError(f"{kind}::from cannot convert {x.ty().display()}", site.pos)
        if kind == "f64":
            return VFloat(float(n))
        if isinstance(n, float):
            if math.isnan(n) or math.isinf(n):
                raise ObstructRuntimeError(f"cannot convert {VFloat(n).to_string()} to {kind}", site.pos)
            n = int(n)
        return VInt(rt.fit_int(n, kind, site.pos), kind)

    return run


def _bi_char_from(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    x = args[0]
    if not isinstance(x, VInt):
        raise ObstructRuntimeError("char::from expects an integer", site.pos)
    if x.value < 0 or x.value > 0x10FFFF:
        raise ObstructRuntimeError(f"invalid code point {x.value}", site.pos)
    return VChar(chr(x.value))


def _bi_str_from(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    return VStr(args[0].to_string())


_INT_TEXT = re.compile(r"[+-]?[0-9]+")


def _bi_parse(kind: str) -> RuntimeFn:
    def run(rt: Runtime, args: list[Value], site: CallSite) -> Value:
        s = args[0]
        if not isinstance(s, VStr):
            raise ObstructRuntimeError(f"{kind}::parse expects str", site.pos)
        text = s.value.strip()
        if kind == "f64":
            try:
                return VFloat(float(text))
            except ValueError:
                raise ObstructRuntimeError(f"cannot parse {s.value!r} as f64", site.pos)
        if not _INT_TEXT.fullmatch(text):
            raise ObstructRuntimeError(f"cannot parse {s.value!r} as {kind}", site.pos)
        n = int(text)
        lo, hi = int_bounds(kind)
        if n < lo or n > hi:
            raise ObstructRuntimeError(f"value {n} out of range for {kind}", site.pos)
        return VInt(n, kind)

    return run


def _bi_vec_new(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    if site.generics and isinstance(site.generics[0], Ty):
        return VVec([], site.generics[0])
    if isinstance(site.expected, TyVec):
        return VVec([], site.expected.elem)
    return VVec([], TY_UNKNOWN)


def _bi_arr_new(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    if len(site.generics) == 2:
        elem, size = site.generics
        assert isinstance(elem, Ty) and isinstance(size, int)
        return default_value(TyArr(elem, size))
    if site.call.args:
        want = site.expected.elem if isinstance(site.expected, TyArr) else None
        values: list[Value] = []
        for a in site.call.args:
            v = copy_value(rt.eval(a, site.frame, want))
            if want is None:
                want = v.ty()
            values.append(rt.conform(v, want))
        return VArr(values, want)
    if isinstance(site.expected, TyArr):
        return default_value(site.expected)
    raise ObstructRuntimeError("cannot infer type for arr::new", site.pos)


def _bi_ptr_new(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    want = None
    if isinstance(site.expected, TyPtr) and not contains_var(site.expected):
        want = site.expected.target
    v = copy_value(rt.eval(site.call.args[0], site.frame, want))
    target = v.ty() if want is None else want
    v = rt.conform(v, target)
    rt.env.escape(v, None)
    index, generation = rt.heap.alloc(v)
    return VPtr(index, generation, target)


def _expect_ptr(args: list[Value], name: str, site: CallSite) -> VPtr:
    p = args[0]
    if not isinstance(p, VPtr):
        raise ObstructRuntimeError(f"{name} expects a pointer", site.pos)
    return p


def _bi_ptr_deref(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    p = _expect_ptr(args, "ptr::deref", site)
    return copy_value(rt.heap.load(p.index, p.generation, site.pos))


def _bi_ptr_free(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    p = _expect_ptr(args, "ptr::free", site)
    rt.heap.free(p.index, p.generation, site.pos)
    return UNIT


def _bi_ref_new(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    arg = site.call.args[0]
    if not isinstance(arg, Identifier):
        raise ObstructRuntimeError("ref::new expects a variable name", site.pos)
    binding = rt.env.lookup(site.frame, arg.name, arg.pos)
    return VRef(binding, binding.ty)


def _live_ref(args: list[Value], name: str, site: CallSite) -> VRef:
    r = args[0]
    if not isinstance(r, VRef):
        raise ObstructRuntimeError(f"{name} expects a reference", site.pos)
    if not r.binding.alive:
        raise ObstructRuntimeError(
            f"dangling reference to '{r.binding.name}'", site.pos
        )
    return r


def _bi_ref_deref(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    r = _live_ref(args, "ref::deref", site)
    return copy_value(r.binding.value)


def _bi_vec_push(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    handle = rt.eval(site.call.args[0], site.frame)
    want = None
    if isinstance(handle, (VPtr, VRef)) and isinstance(handle.target, TyVec):
        if handle.target.elem != TY_UNKNOWN and not contains_var(handle.target.elem):
            want = handle.target.elem
    x = copy_value(rt.eval(site.call.args[1], site.frame, want))
    holder: int | None = None
    if isinstance(handle, VPtr):
        target = rt.heap.slot(handle.index, handle.generation, site.pos).value
    elif isinstance(handle, VRef):
        r = _live_ref([handle], "vec::push", site)
        if not r.binding.mutable:
            raise ObstructRuntimeError(
                f"cannot push through a reference to immutable binding '{r.binding.name}'",
                site.pos,
            )
        target = r.binding.value
        holder = r.binding.frame
    else:
        raise ObstructRuntimeError("vec::push expects a pointer or reference", site.pos)
    if not isinstance(target, VVec):
        raise ObstructRuntimeError("vec::push target is not a vec", site.pos)
    if target.elem == TY_UNKNOWN:
        target.elem = x.ty()
    else:
        x = rt.conform(x, target.elem)
    target.elements.append(x)
    rt.env.escape(x, holder)
    return UNIT


def _checked_index(n: Value, length: int, site: CallSite) -> int:
    if not isinstance(n, VInt):
        raise ObstructRuntimeError("index must be an integer", site.pos)
    if n.value < 0 or n.value >= length:
        raise ObstructRuntimeError(
            f"index {n.value} out of bounds for length {length}", site.pos
        )
    return n.value


def _bi_vec_nth(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    v = args[0]
    if not isinstance(v, VVec):
        raise ObstructRuntimeError("vec::nth expects a vec", site.pos)
    return copy_value(v.elements[_checked_index(args[1], len(v.elements), site)])


def _bi_str_nth(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    s = args[0]
    if not isinstance(s, VStr):
        raise ObstructRuntimeError("str::nth expects a str", site.pos)
    return VChar(s.value[_checked_index(args[1], len(s.value), site)])


def _bi_direct_nth(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    v = args[0]
    if not isinstance(v, (VVec, VArr)):
        raise ObstructRuntimeError("direct_nth expects a vec or arr", site.pos)
    return copy_value(v.elements[_checked_index(args[1], len(v.elements), site)])


def _bi_len(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    x = args[0]
    if isinstance(x, VStr):
        return VInt(len(x.value))
    if isinstance(x, (VVec, VArr)):
        return VInt(len(x.elements))
    raise ObstructRuntimeError("len() unsupported for " + x.ty().display(), site.pos)


def _bi_type(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    return VStr(args[0].ty().display())


def _bi_in(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    return VStr(rt.read_line())


def _bi_quit(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    code = 0
    if args:
        c = args[0]
        if not isinstance(c, VInt):
            raise ObstructRuntimeError("quit expects an integer exit code", site.pos)
        code = c.value
    rt.quit(code)
    return UNIT


def _bi_init_window(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    title = args[0]
    assert isinstance(title, VStr)
    rt.window_host(site.pos).init(title.value)
    return UNIT


def _bi_draw_window(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    rt.window_host(site.pos).draw()
    return UNIT


def _bi_is_window_open(rt: Runtime, args: list[Value], site: CallSite) -> Value:
    return VBool(bool(rt.window_host(site.pos).is_open()))


# ============================================================
# Dispatch table
# ============================================================


def _simple(name: str, params: tuple[Ty, ...], ret: Ty, run: RuntimeFn) -> Builtin:
    return Builtin(_SimpleTC(name, params, ret).check, run, arg_hints=params)


def _build_table() -> dict[str, Builtin]:
    table: dict[str, Builtin] = {}
    for kind in ("i8", "i16", "i32", "i64", "f64", "bool", "char", "str"):
        t = TyPrim(kind)
        table[kind + "::new"] = _simple(kind + "::new", (), t, _bi_default(t))
    for kind in ("i8", "i16", "i32", "i64", "f64"):
        table[kind + "::from"] = Builtin(_tc_from(kind), _bi_from(kind))
        table[kind + "::parse"] = _simple(
            kind + "::parse", (TY_STR,), TyPrim(kind), _bi_parse(kind)
        )
    table["char::from"] = Builtin(_tc_char_from, _bi_char_from)
    table["str::from"] = Builtin(_tc_str_from, _bi_str_from)
    table["vec::new"] = Builtin(_tc_vec_new, _bi_vec_new)
    table["arr::new"] = Builtin(_tc_arr_new, _bi_arr_new, raw_args=True)
    table["ptr::new"] = Builtin(_tc_ptr_new, _bi_ptr_new, raw_args=True)
    table["ptr::deref"] = Builtin(_tc_ptr_deref, _bi_ptr_deref)
    table["ptr::free"] = Builtin(_tc_ptr_free, _bi_ptr_free)
    table["ref::new"] = Builtin(_tc_ref_new, _bi_ref_new, raw_args=True)
    table["ref::deref"] = Builtin(_tc_ref_deref, _bi_ref_deref)
    table["vec::push"] = Builtin(_tc_vec_push, _bi_vec_push, raw_args=True)
    table["vec::nth"] = Builtin(_tc_nth("vec::nth", (TyVec,), False), _bi_vec_nth)
    table["str::nth"] = Builtin(_tc_nth("str::nth", (), True), _bi_str_nth)
    table["direct_nth"] = Builtin(
        _tc_nth("direct_nth", (TyVec, TyArr), False), _bi_direct_nth
    )
    table["len"] = Builtin(_tc_len, _bi_len)
    table["type"] = Builtin(_tc_type, _bi_type)
    table["in"] = _simple("in", (), TY_STR, _bi_in)
    table["quit"] = Builtin(_tc_quit, _bi_quit, arg_hints=(TY_I32,))
    table["init_window"] = _simple("init_window", (TY_STR,), TY_UNIT, _bi_init_window)
    table["draw_window"] = _simple("draw_window", (), TY_UNIT, _bi_draw_window)
    table["is_window_open"] = _simple("is_window_open", (), TY_BOOL, _bi_is_window_open)
    return table


BUILTINS: dict[str, Builtin] = _build_table()

