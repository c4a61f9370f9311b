"""Obstruct evaluator — walks the checked AST over the scope arena and heap."""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Protocol, Sequence, TextIO

from .ast import (
    Assignment,
    BinaryExpr,
    Block,
    BoolLit,
    Call,
    CharLit,
    Delete,
    Expr,
    ExprStmt,
    FloatLit,
    ForLoop,
    FuncType,
    FunctionDecl,
    Identifier,
    IfChain,
    Index,
    IntLit,
    LambdaExpr,
    NamedType,
    Param,
    Pos,
    Print,
    Program,
    Return,
    Stmt,
    StrLit,
    TypeNode,
    UnaryExpr,
    UnitType,
    VarDecl,
    VecLit,
    WhileLoop,
)
from .builtins import BUILTINS, CallSite, default_value, type_path
from .env import GLOBAL_FRAME, Binding, Env
from .errors import ObstructRuntimeError
from .heap import Heap
from .ops import ARITH_OPS, LOGIC_OPS, binary_op, unary_op
from .types import (
    PRIMITIVES,
    TY_BOOL,
    TY_F64,
    TY_STR,
    TY_UNIT,
    TY_UNKNOWN,
    Ty,
    TyArr,
    TyFunc,
    TyPrim,
    TyPtr,
    TyRef,
    TyVar,
    TyVec,
    contains_var,
    generic_key,
    int_bounds,
    is_int,
    substitute,
    unify,
    wrap_int,
)
from .values import (
    UNIT,
    Value,
    VArr,
    VBool,
    VChar,
    VFloat,
    VFunc,
    VInt,
    VPtr,
    VStr,
    VVec,
    copy_value,
)

logger = logging.getLogger(__name__)

RECURSION_LIMIT = 10000

# The program runs on its own thread, whose stack and interpreter recursion
# limit leave room for RECURSION_LIMIT nested user calls.
_FRAMES_PER_CALL = 40
_THREAD_STACK_SIZE = 512 * 1024 * 1024


# ============================================================
# Control flow signals (internal)
# ============================================================


class _Signal(Exception):
    pass


@dataclass
class _Return(_Signal):
    value: Value


@dataclass
class _Quit(_Signal):
    code: int


# ============================================================
# Runtime I/O
# ============================================================


class WindowHost(Protocol):
    """What the window builtins talk to."""

    def init(self, title: str) -> None: ...

    def draw(self) -> None: ...

    def is_open(self) -> bool: ...


class _Input:
    """Line reader over either a fixed string or a live text stream."""

    def __init__(self, source: str | TextIO):
        self._text = source if isinstance(source, str) else None
        self._stream = None if isinstance(source, str) else source
        self._pos = 0

    def read_line(self) -> str:
        if self._stream is not None:
            line = self._stream.readline()
        else:
            assert self._text is not None
            if self._pos >= len(self._text):
                return ""
            idx = self._text.find("\n", self._pos)
            end = len(self._text) if idx == -1 else idx + 1
            line = self._text[self._pos : end]
            self._pos = end
        if line.endswith("\n"):
            line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
        return line


@dataclass
class RunResult:
    exit_code: int
    stdout: str
    stderr: str


def _is_untyped_literal(expr: Expr) -> bool:
    if isinstance(expr, IntLit):
        return expr.suffix == ""
    if isinstance(expr, UnaryExpr) and expr.op == "-":
        return _is_untyped_literal(expr.operand)
    return False


# ============================================================
# Runtime
# ============================================================


class Runtime:
    def __init__(
        self,
        program: Program,
        *,
        stdin: str | TextIO = "",
        args: Sequence[str] = (),
        out: TextIO | None = None,
        window: WindowHost | None = None,
        strict_math: bool = False,
    ):
        self.program = program
        self.env = Env()
        self.heap = Heap()
        self.stdin = _Input(stdin)
        self.args = list(args)
        self.out = out
        self.window = window
        self.strict = strict_math or program.strict_math
        self.stdout: list[str] = []
        self.stderr: list[str] = []
        self._generics: list[dict[str, Ty]] = [{}]
        self._ret_types: list[Ty] = []
        self._call_depth = 0
        self.functions: dict[str, VFunc] = {}
        for decl in program.functions:
            sig = self.signature(decl.generics, decl.params, decl.ret)
            self.functions[decl.name] = VFunc(sig, decl.name, decl, GLOBAL_FRAME)

    # ---- Host services used by builtins -----------------------------------

    def write(self, text: str) -> None:
        self.stdout.append(text)
        if self.out is not None:
            self.out.write(text)
            self.out.flush()

    def read_line(self) -> str:
        return self.stdin.read_line()

    def quit(self, code: int) -> None:
        raise _Quit(code)

    def window_host(self, pos: Pos) -> WindowHost:
        if self.window is None:
            raise ObstructRuntimeError("no window host available", pos)
        return self.window

    def fit_int(self, value: int, kind: str, pos: Pos | None) -> int:
        lo, hi = int_bounds(kind)
        if lo <= value <= hi:
            return value
        if self.strict:
            raise ObstructRuntimeError(
                f"integer overflow: {value} does not fit in {kind}", pos
            )
        return wrap_int(value, kind)

    def conform(self, v: Value, t: Ty) -> Value:
        """Retag a value to its declared type (literal kinds, empty vecs)."""
        if isinstance(v, VInt) and is_int(t):
            assert isinstance(t, TyPrim)
            if v.kind != t.kind:
                return VInt(self.fit_int(v.value, t.kind, None), t.kind)
            return v
        if isinstance(v, (VVec, VArr)) and isinstance(t, (TyVec, TyArr)):
            if contains_var(t.elem) or v.elem == t.elem:
                return v
            return type(v)([self.conform(e, t.elem) for e in v.elements], t.elem)
        if isinstance(v, VPtr) and isinstance(t, TyPtr) and not contains_var(t):
            if v.target != t.target:
                return VPtr(v.index, v.generation, t.target)
        if isinstance(v, VFunc) and v.typ.generics and isinstance(t, TyFunc):
            # a generic function stored under a concrete fn type is fixed
            # to that instantiation
            if not t.generics and not contains_var(t):
                mapping: dict[str, Ty] = {}
                unify(v.typ, t, set(v.typ.generics), mapping)
                return VFunc(t, v.name, v.decl, v.frame, {**v.generic_env, **mapping})
        return v

    # ---- Types --------------------------------------------------------------

    def resolve_type(self, t: TypeNode, tvars: frozenset[str] = frozenset()) -> Ty:
        if isinstance(t, UnitType):
            return TY_UNIT
        if isinstance(t, FuncType):
            return TyFunc(
                tuple(self.resolve_type(p, tvars) for p in t.params),
                tuple(t.mutable),
                TY_UNIT if t.ret is None else self.resolve_type(t.ret, tvars),
            )
        assert isinstance(t, NamedType)
        if t.name in tvars:
            return TyVar(t.name)
        mapping = self._generics[-1]
        if t.name in mapping:
            return mapping[t.name]
        if t.name in PRIMITIVES:
            return PRIMITIVES[t.name]
        args = [a if isinstance(a, int) else self.resolve_type(a, tvars) for a in t.args]
        if t.name == "vec":
            assert isinstance(args[0], Ty)
            return TyVec(args[0])
        if t.name == "ptr":
            assert isinstance(args[0], Ty)
            return TyPtr(args[0])
        if t.name == "ref":
            assert isinstance(args[0], Ty)
            return TyRef(args[0])
        if t.name == "arr":
            assert isinstance(args[0], Ty) and isinstance(args[1], int)
            return TyArr(args[0], args[1])
        raise ObstructRuntimeError(f"unknown type '{t.name}'", t.pos)

    def signature(
        self, generics: list[str], params: list[Param], ret: TypeNode | None
    ) -> TyFunc:
        tvars = frozenset(generics)
        return TyFunc(
            tuple(self.resolve_type(p.typ, tvars) for p in params),
            tuple(p.mutable for p in params),
            TY_UNIT if ret is None else self.resolve_type(ret, tvars),
            tuple(generics),
        )

    # ---- Program ------------------------------------------------------------

    def run_main(self) -> RunResult:
        """Run the program on a worker thread sized for deep user recursion."""
        outcome: dict[str, object] = {}

        def target() -> None:
            try:
                outcome["code"] = self._run_guarded()
            except BaseException as e:  # re-raised on the calling thread
                outcome["error"] = e

        saved_limit = sys.getrecursionlimit()
        sys.setrecursionlimit(max(saved_limit, RECURSION_LIMIT * _FRAMES_PER_CALL))
        saved_stack = threading.stack_size(_THREAD_STACK_SIZE)
        try:
            worker = threading.Thread(target=target, name="obstruct-main", daemon=True)
            worker.start()
        finally:
            threading.stack_size(saved_stack)
        try:
            worker.join()
        finally:
            sys.setrecursionlimit(saved_limit)
        if "error" in outcome:
            raise outcome["error"]  # type: ignore[misc]
        code = outcome["code"]
        assert isinstance(code, int)
        logger.debug("program exited with code %d", code)
        return RunResult(code, "".join(self.stdout), "".join(self.stderr))

    def _run_guarded(self) -> int:
        try:
            return self._run_program()
        except _Quit as q:
            logger.debug("quit with code %d", q.code)
            return q.code
        except ObstructRuntimeError as e:
            self._report(str(e))
            return 1
        except RecursionError:
            self._report("maximum recursion depth exceeded")
            return 1

    def _report(self, msg: str) -> None:
        self.stderr.append("runtime error: " + msg + "\n")

    def _run_program(self) -> int:
        for stmt in self.program.stmts:
            if not isinstance(stmt, FunctionDecl):
                self.exec_stmt(stmt, GLOBAL_FRAME)
        code = 0
        main = self.functions.get("main")
        if main is not None:
            argv = VVec([VStr(a) for a in self.args], TY_STR)
            result = self.call_function(main, [argv], {}, main.decl.pos, GLOBAL_FRAME)
            if isinstance(result, VInt):
                code = result.value
        self.env.pop(GLOBAL_FRAME)
        return code

    # ---- Statements ---------------------------------------------------------

    def exec_stmt(self, stmt: Stmt, frame: int) -> None:
        if isinstance(stmt, VarDecl):
            declared = None if stmt.typ is None else self.resolve_type(stmt.typ)
            if stmt.value is None:
                assert declared is not None
                value = default_value(declared)
            else:
                value = copy_value(self.eval(stmt.value, frame, declared))
            ty = declared if declared is not None else value.ty()
            value = self.conform(value, ty)
            self.env.bind(frame, Binding(stmt.name, ty, stmt.mutable, value))
            return
        if isinstance(stmt, Assignment):
            self.exec_assignment(stmt, frame)
            return
        if isinstance(stmt, Delete):
            self.env.delete(frame, stmt.name, stmt.pos)
            return
        if isinstance(stmt, Return):
            want = self._ret_types[-1] if self._ret_types else None
            value = UNIT if stmt.value is None else self.eval(stmt.value, frame, want)
            raise _Return(value)
        if isinstance(stmt, ExprStmt):
            self.eval(stmt.expr, frame, None)
            return
        raise ObstructRuntimeError("unhandled statement", stmt.pos)

    def exec_assignment(self, stmt: Assignment, frame: int) -> None:
        target = stmt.target
        if isinstance(target, Identifier):
            binding = self.env.lookup(frame, target.name, target.pos)
            value = copy_value(self.eval(stmt.value, frame, binding.ty))
            binding.value = self.conform(value, binding.ty)
            self.env.escape(binding.value, binding.frame)
            return
        assert isinstance(target, Index) and isinstance(target.obj, Identifier)
        binding = self.env.lookup(frame, target.obj.name, target.obj.pos)
        container = binding.value
        if not isinstance(container, (VVec, VArr)):
            raise ObstructRuntimeError("index assignment needs a vec or arr", stmt.pos)
        i = self._index(self.eval(target.index, frame, None), len(container.elements), target.pos)
        elem_ty = binding.ty.elem if isinstance(binding.ty, (TyVec, TyArr)) else None
        value = copy_value(self.eval(stmt.value, frame, elem_ty))
        if elem_ty is not None:
            value = self.conform(value, elem_ty)
        container.elements[i] = value
        self.env.escape(value, binding.frame)

    def _index(self, n: Value, length: int, pos: Pos) -> int:
        if not isinstance(n, VInt):
            raise ObstructRuntimeError("index must be an integer", pos)
        if n.value < 0 or n.value >= length:
            raise ObstructRuntimeError(
                f"index {n.value} out of bounds for length {length}", pos
            )
        return n.value

    def eval_block(self, block: Block, parent: int, expected: Ty | None) -> Value:
        frame = self.env.push(parent)
        try:
            for stmt in block.stmts:
                self.exec_stmt(stmt, frame)
            result = UNIT if block.tail is None else self.eval(block.tail, frame, expected)
        except _Return as r:
            self.env.pop(frame, r.value, parent)
            raise
        self.env.pop(frame, result, parent)
        return result

    # ---- Expressions --------------------------------------------------------

    def eval(self, expr: Expr, frame: int, expected: Ty | None = None) -> Value:
        if isinstance(expr, IntLit):
            return self._int_lit(expr.value, expr.suffix, expected, expr.pos)
        if isinstance(expr, FloatLit):
            return VFloat(expr.value)
        if isinstance(expr, BoolLit):
            return VBool(expr.value)
        if isinstance(expr, CharLit):
            return VChar(expr.value)
        if isinstance(expr, StrLit):
            return VStr(expr.value)
        if isinstance(expr, VecLit):
            return self.eval_vec_lit(expr, frame, expected)
        if isinstance(expr, Identifier):
            return self.lookup_value(expr.name, frame, expr.pos)
        if isinstance(expr, BinaryExpr):
            return self.eval_binary(expr, frame, expected)
        if isinstance(expr, UnaryExpr):
            return self.eval_unary(expr, frame, expected)
        if isinstance(expr, Print):
            v = self.eval(expr.expr, frame, expected)
            self.write(v.to_string() + ("\n" if expr.double else ""))
            return v
        if isinstance(expr, Block):
            return self.eval_block(expr, frame, expected)
        if isinstance(expr, IfChain):
            for cond, block in expr.branches:
                if self._truthy(self.eval(cond, frame, None), cond.pos):
                    return self.eval_block(block, frame, expected)
            if expr.else_block is not None:
                return self.eval_block(expr.else_block, frame, expected)
            return UNIT
        if isinstance(expr, WhileLoop):
            while self._truthy(self.eval(expr.cond, frame, None), expr.cond.pos):
                self.eval_block(expr.body, frame, None)
            return UNIT
        if isinstance(expr, ForLoop):
            return self.eval_for(expr, frame)
        if isinstance(expr, LambdaExpr):
            sig = self.signature(expr.generics, expr.params, expr.ret)
            return VFunc(sig, None, expr, frame, dict(self._generics[-1]))
        if isinstance(expr, Index):
            obj = self.eval(expr.obj, frame, None)
            n = self.eval(expr.index, frame, None)
            if isinstance(obj, VStr):
                return VChar(obj.value[self._index(n, len(obj.value), expr.pos)])
            if isinstance(obj, (VVec, VArr)):
                return obj.elements[self._index(n, len(obj.elements), expr.pos)]
            raise ObstructRuntimeError(f"cannot index into {obj.ty().display()}", expr.pos)
        if isinstance(expr, Call):
            return self.eval_call(expr, frame, expected)
        raise ObstructRuntimeError("unhandled expression", expr.pos)

    def _truthy(self, v: Value, pos: Pos) -> bool:
        if not isinstance(v, VBool):
            raise ObstructRuntimeError("condition must be bool", pos)
        return v.value

    def _int_lit(self, value: int, suffix: str, expected: Ty | None, pos: Pos) -> Value:
        if suffix == "f64":
            return VFloat(float(value))
        if suffix:
            kind = suffix
        elif expected is not None and is_int(expected):
            assert isinstance(expected, TyPrim)
            kind = expected.kind
        else:
            kind = "i32"
        return VInt(self.fit_int(value, kind, pos), kind)

    def lookup_value(self, name: str, frame: int, pos: Pos) -> Value:
        binding = self.env.resolve(frame, name, pos)
        if binding is not None:
            return binding.value
        fn = self.functions.get(name)
        if fn is not None:
            return fn
        raise ObstructRuntimeError(f"undefined name '{name}'", pos)

    def eval_vec_lit(self, expr: VecLit, frame: int, expected: Ty | None) -> Value:
        elem: Ty = TY_UNKNOWN
        if isinstance(expected, TyVec) and not contains_var(expected.elem):
            elem = expected.elem
        elements: list[Value] = []
        for e in expr.elements:
            v = copy_value(self.eval(e, frame, None if elem == TY_UNKNOWN else elem))
            if elem == TY_UNKNOWN:
                elem = v.ty()
            elements.append(self.conform(v, elem))
        return VVec(elements, elem)

    def eval_for(self, expr: ForLoop, frame: int) -> Value:
        if _is_untyped_literal(expr.start) and not _is_untyped_literal(expr.end):
            end = self.eval(expr.end, frame, None)
            start = self.eval(expr.start, frame, end.ty())
        else:
            start = self.eval(expr.start, frame, None)
            end = self.eval(expr.end, frame, start.ty())
        if not isinstance(start, VInt) or not isinstance(end, VInt):
            raise ObstructRuntimeError("range bounds must be integers", expr.pos)
        for i in range(start.value, end.value):
            loop_frame = self.env.push(frame)
            self.env.bind(
                loop_frame,
                Binding(expr.name, start.ty(), False, VInt(i, start.kind)),
            )
            try:
                self.eval_block(expr.body, loop_frame, None)
            except _Return as r:
                self.env.pop(loop_frame, r.value, frame)
                raise
            self.env.pop(loop_frame)
        return UNIT

    # ---- Operators ----------------------------------------------------------

    def eval_binary(self, expr: BinaryExpr, frame: int, expected: Ty | None) -> Value:
        op = expr.op
        if op in LOGIC_OPS:
            a = self.eval(expr.left, frame, None)
            if isinstance(a, VBool) and a.value == (op == "|"):
                return a
            return self.binop(op, a, self.eval(expr.right, frame, None), expr.pos)
        hint = expected if op in ARITH_OPS else None
        if _is_untyped_literal(expr.left) and not _is_untyped_literal(expr.right):
            b = self.eval(expr.right, frame, hint)
            a = self.eval(expr.left, frame, b.ty())
        else:
            a = self.eval(expr.left, frame, hint)
            b = self.eval(expr.right, frame, a.ty())
        return self.binop(op, a, b, expr.pos)

    def binop(self, op: str, a: Value, b: Value, pos: Pos) -> Value:
        entry = binary_op(op, a.ty(), b.ty())
        if entry is None:
            raise ObstructRuntimeError(
                f"invalid operand types for '{op}': {a.ty().display()} and {b.ty().display()}",
                pos,
            )
        result_ty, impl = entry
        try:
            raw = impl(a, b)
        except ArithmeticError as e:
            raise ObstructRuntimeError(str(e), pos) from None
        return self.box(raw, result_ty, pos)

    def box(self, raw: object, t: Ty, pos: Pos) -> Value:
        """Wrap an operator result as a value of type t."""
        if is_int(t):
            assert isinstance(t, TyPrim) and isinstance(raw, int)
            return VInt(self.fit_int(raw, t.kind, pos), t.kind)
        if t == TY_F64:
            assert isinstance(raw, float)
            return VFloat(raw)
        if t == TY_BOOL:
            return VBool(bool(raw))
        assert t == TY_STR and isinstance(raw, str)
        return VStr(raw)

    def eval_unary(self, expr: UnaryExpr, frame: int, expected: Ty | None) -> Value:
        if expr.op == "-" and isinstance(expr.operand, IntLit):
            lit = expr.operand
            return self._int_lit(-lit.value, lit.suffix, expected, expr.pos)
        v = self.eval(expr.operand, frame, expected if expr.op == "-" else None)
        entry = unary_op(expr.op, v.ty())
        if entry is None:
            raise ObstructRuntimeError(
                f"invalid operand type for '{expr.op}': {v.ty().display()}", expr.pos
            )
        result_ty, impl = entry
        return self.box(impl(v), result_ty, expr.pos)

    # ---- Calls --------------------------------------------------------------

    def eval_call(self, expr: Call, frame: int, expected: Ty | None) -> Value:
        callee = expr.callee
        if isinstance(callee, Identifier):
            name = callee.name
            if name in BUILTINS:
                return self.call_builtin(name, expr, frame, expected, None)
            if "::" in name:
                return self.call_type_path(expr, frame, expected)
            fn = self.lookup_value(name, frame, callee.pos)
        else:
            fn = self.eval(callee, frame, None)
        if not isinstance(fn, VFunc):
            raise ObstructRuntimeError(
                f"value of type {fn.ty().display()} is not callable", expr.pos
            )
        names = set(fn.typ.generics)
        # the checker recorded the bindings for this call site
        chosen = expr.instances.get(generic_key(self._generics[-1])) if names else None
        mapping: dict[str, Ty] = dict(chosen) if chosen is not None else {}
        infer = bool(names) and chosen is None
        if infer and expr.generics:
            for gname, garg in zip(fn.typ.generics, expr.generics):
                if not isinstance(garg, int):
                    mapping[gname] = self.resolve_type(garg)
        args: list[Value | Binding] = []
        for arg, pty, is_mut in zip(expr.args, fn.typ.params, fn.typ.mutable):
            if is_mut:
                assert isinstance(arg, Identifier)
                binding = self.env.lookup(frame, arg.name, arg.pos)
                args.append(binding)
                actual = binding.ty
            else:
                want = substitute(pty, mapping)
                v = self.eval(arg, frame, None if contains_var(want) else want)
                args.append(v)
                actual = v.ty()
            if infer:
                unify(pty, actual, names, mapping)
        if infer and expected is not None:
            unify(fn.typ.ret, expected, names, mapping)
        for g in names:
            mapping.setdefault(g, TY_UNKNOWN)
        return self.call_function(fn, args, mapping, expr.pos, frame)

    def call_function(
        self,
        fn: VFunc,
        args: Sequence[Value | Binding],
        mapping: dict[str, Ty],
        pos: Pos,
        caller: int,
    ) -> Value:
        if self._call_depth >= RECURSION_LIMIT:
            raise ObstructRuntimeError("maximum recursion depth exceeded", pos)
        decl = fn.decl
        parent = GLOBAL_FRAME if fn.name is not None else fn.frame
        generic_env = dict(fn.generic_env)
        generic_env.update(mapping)
        ret_ty = substitute(fn.typ.ret, generic_env)
        self._generics.append(generic_env)
        self._ret_types.append(ret_ty)
        self._call_depth += 1
        try:
            frame = self.env.push(parent)
            for p, a, pty in zip(decl.params, args, fn.typ.params):
                if isinstance(a, Binding):
                    self.env.alias(frame, p.name, a)
                    continue
                pty = substitute(pty, generic_env)
                value = self.conform(copy_value(a), pty)
                self.env.bind(frame, Binding(p.name, pty, False, value))
            try:
                result = self.eval_block(decl.body, frame, ret_ty)
            except _Return as r:
                result = r.value
            self.env.pop(frame, result, caller)
        finally:
            self._call_depth -= 1
            self._generics.pop()
            self._ret_types.pop()
        if ret_ty == TY_UNIT:
            return UNIT
        return self.conform(result, ret_ty)

    def call_builtin(
        self,
        name: str,
        expr: Call,
        frame: int,
        expected: Ty | None,
        generics: list[Ty | int] | None,
    ) -> Value:
        builtin = BUILTINS[name]
        if generics is None:
            generics = [
                g if isinstance(g, int) else self.resolve_type(g)
                for g in expr.generics or []
            ]
        site = CallSite(expr.pos, expr, frame, generics, expected)
        args: list[Value] = []
        if not builtin.raw_args:
            hints = builtin.arg_hints
            args = [
                self.eval(a, frame, hints[i] if i < len(hints) else None)
                for i, a in enumerate(expr.args)
            ]
        return builtin.run(self, args, site)

    def call_type_path(self, expr: Call, frame: int, expected: Ty | None) -> Value:
        """`T::new()` inside a generic body, with T bound by the current call."""
        assert isinstance(expr.callee, Identifier)
        head, _, method = expr.callee.name.partition("::")
        bound = self._generics[-1].get(head)
        if bound is None or bound == TY_UNKNOWN:
            raise ObstructRuntimeError(
                f"unknown builtin '{expr.callee.name}'", expr.callee.pos
            )
        prefix, implicit = type_path(bound)
        name = prefix + "::" + method
        if name not in BUILTINS:
            raise ObstructRuntimeError(
                f"type {bound.display()} has no builtin '{method}'", expr.callee.pos
            )
        if method == "new":
            expected = bound
        generics = implicit if expr.generics is None and method == "new" else None
        return self.call_builtin(name, expr, frame, expected, generics)


# ============================================================
# Public entry point
# ============================================================


def run(
    program: Program,
    *,
    stdin: str | TextIO = "",
    args: Sequence[str] | None = None,
    out: TextIO | None = None,
    window: WindowHost | None = None,
    strict_math: bool = False,
) -> RunResult:
    """Evaluate a checked Program."""
    rt = Runtime(
        program,
        stdin=stdin,
        args=list(args) if args is not None else [],
        out=out,
        window=window,
        strict_math=strict_math,
    )
    return rt.run_main()
