"""Obstruct typechecker — resolves names, types, mutability and generics
before anything runs."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

from .ast import (
    BLOCK_LIKE,
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
from .builtins import BUILTINS, type_path
from .errors import CheckError, ObstructNameError, ObstructTypeError
from .ops import ARITH_OPS, LOGIC_OPS, binary_op, unary_op
from .parse import PARSE_RECURSION_LIMIT
from .types import (
    PRIMITIVES,
    TY_BOOL,
    TY_CHAR,
    TY_F64,
    TY_I32,
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
    compatible,
    contains_var,
    generic_key,
    has_default,
    int_bounds,
    is_int,
    is_numeric,
    substitute,
    unify,
)

logger = logging.getLogger(__name__)

MAX_INSTANTIATION_DEPTH = 32


# ============================================================
# SCOPES
# ============================================================


@dataclass
class _Entry:
    ty: Ty
    mutable: bool
    kind: str  # "var", "param", "mut_param", "loop", "fn"
    origin: FunctionDecl | LambdaExpr | None = None
    snapshot: list[_Scope] | None = None
    generic_env: dict[str, Ty] | None = None


class _Scope:
    def __init__(self, *, loop_body: bool = False, fn_boundary: bool = False):
        self.names: dict[str, _Entry] = {}
        self.deleted: set[str] = set()
        self.loop_body = loop_body
        self.fn_boundary = fn_boundary


def _diverges(node: Stmt | Expr | None) -> bool:
    """True when control never falls through node (ret, quit, endless loop)."""
    if node is None:
        return False
    if isinstance(node, Return):
        return True
    if isinstance(node, ExprStmt):
        return _diverges(node.expr)
    if isinstance(node, VarDecl):
        return _diverges(node.value)
    if isinstance(node, Block):
        return any(_diverges(s) for s in node.stmts) or _diverges(node.tail)
    if isinstance(node, IfChain):
        if node.else_block is None:
            return False
        return all(_diverges(b) for _, b in node.branches) and _diverges(
            node.else_block
        )
    if isinstance(node, WhileLoop):
        return isinstance(node.cond, BoolLit) and node.cond.value
    if isinstance(node, Call):
        return isinstance(node.callee, Identifier) and node.callee.name == "quit"
    if isinstance(node, Print):
        return _diverges(node.expr)
    return False


def _is_untyped_literal(expr: Expr) -> bool:
    if isinstance(expr, IntLit):
        return expr.suffix == ""
    if isinstance(expr, UnaryExpr) and expr.op == "-":
        return _is_untyped_literal(expr.operand)
    return False


# ============================================================
# CHECKER
# ============================================================


class Checker:
    def __init__(self) -> None:
        self.errors: list[CheckError] = []
        self._seen: set[str] = set()
        self.functions: dict[str, FunctionDecl] = {}
        self.fn_scope = _Scope()
        self.global_scope = _Scope()
        self.scopes: list[_Scope] = [self.fn_scope]
        self.fn_ret: Ty | None = None
        self.generic_env: dict[str, Ty] = {}
        self.type_params: set[str] = set()
        self._instances: set[tuple[int, tuple[tuple[str, Ty], ...]]] = set()
        self._pending: list[tuple[FunctionDecl, dict[str, Ty], int]] = []
        self._depth = 0

    def error(self, msg: str, pos: Pos) -> None:
        self._report(ObstructTypeError(msg, pos))

    def name_error(self, msg: str, pos: Pos) -> None:
        self._report(ObstructNameError(msg, pos))

    def _report(self, err: CheckError) -> None:
        key = str(err)
        if key in self._seen:
            return
        self._seen.add(key)
        self.errors.append(err)

    # ── Scope management ──────────────────────────────────────

    def enter_scope(self, *, loop_body: bool = False, fn_boundary: bool = False) -> None:
        self.scopes.append(_Scope(loop_body=loop_body, fn_boundary=fn_boundary))

    def exit_scope(self) -> None:
        self.scopes.pop()

    def declare(self, name: str, entry: _Entry, pos: Pos) -> None:
        if name in BUILTINS:
            self.error("cannot use builtin name '" + name + "' as a binding", pos)
            return
        scope = self.scopes[-1]
        if name in scope.names:
            self.error("'" + name + "' already declared in this scope", pos)
            return
        scope.deleted.discard(name)
        scope.names[name] = entry

    def find(self, name: str) -> tuple[int, _Entry | None]:
        """Innermost scope index holding name (or its deletion marker)."""
        i = len(self.scopes) - 1
        while i >= 0:
            scope = self.scopes[i]
            if name in scope.deleted:
                return i, None
            if name in scope.names:
                return i, scope.names[name]
            i -= 1
        return -1, None

    def lookup(self, name: str, pos: Pos) -> _Entry | None:
        idx, entry = self.find(name)
        if entry is not None:
            return entry
        if idx >= 0:
            self.name_error("'" + name + "' was deleted", pos)
        elif name in BUILTINS:
            self.error("builtin '" + name + "' can only be called", pos)
        else:
            self.name_error("undefined name '" + name + "'", pos)
        return None

    # ── Type resolution ───────────────────────────────────────

    def resolve_type(self, t: TypeNode) -> Ty | None:
        """Resolve a parse-time type node into a checked Ty."""
        if isinstance(t, UnitType):
            return TY_UNIT
        if isinstance(t, FuncType):
            params: list[Ty] = []
            for p in t.params:
                pt = self.resolve_type(p)
                if pt is None:
                    return None
                params.append(pt)
            ret = TY_UNIT if t.ret is None else self.resolve_type(t.ret)
            if ret is None:
                return None
            return TyFunc(tuple(params), tuple(t.mutable), ret)
        assert isinstance(t, NamedType)
        if t.name in self.generic_env and not t.args:
            return self.generic_env[t.name]
        if t.name in self.type_params and not t.args:
            return TyVar(t.name)
        if t.name in PRIMITIVES:
            if t.args:
                self.error("type '" + t.name + "' takes no type arguments", t.pos)
                return None
            return PRIMITIVES[t.name]
        if t.name in ("vec", "ptr", "ref"):
            if len(t.args) != 1 or isinstance(t.args[0], int):
                self.error(t.name + " expects one type argument", t.pos)
                return None
            inner = self.resolve_type(t.args[0])
            if inner is None:
                return None
            if t.name == "vec":
                return TyVec(inner)
            if t.name == "ptr":
                return TyPtr(inner)
            return TyRef(inner)
        if t.name == "arr":
            if (
                len(t.args) != 2
                or isinstance(t.args[0], int)
                or not isinstance(t.args[1], int)
            ):
                self.error("arr expects a type and a size: arr<<T, N>>", t.pos)
                return None
            inner = self.resolve_type(t.args[0])
            if inner is None:
                return None
            return TyArr(inner, t.args[1])
        self.error("unknown type '" + t.name + "'", t.pos)
        return None

    def resolve_generic_arg(self, arg: TypeNode | int, pos: Pos) -> Ty | int | None:
        if isinstance(arg, int):
            return arg
        return self.resolve_type(arg)

    def signature(
        self, generics: list[str], params: list[Param], ret: TypeNode | None
    ) -> TyFunc | None:
        saved = self.type_params, self.generic_env
        self.type_params = saved[0] | set(generics)
        self.generic_env = {
            k: v for k, v in saved[1].items() if k not in generics
        }
        try:
            ptys: list[Ty] = []
            for p in params:
                pt = self.resolve_type(p.typ)
                if pt is None:
                    return None
                ptys.append(pt)
            rt = TY_UNIT if ret is None else self.resolve_type(ret)
            if rt is None:
                return None
            return TyFunc(
                tuple(ptys), tuple(p.mutable for p in params), rt, tuple(generics)
            )
        finally:
            self.type_params, self.generic_env = saved

    # ── Declarations ──────────────────────────────────────────

    def collect_declarations(self, program: Program) -> None:
        for decl in program.functions:
            if decl.name in BUILTINS:
                self.error("cannot redefine builtin '" + decl.name + "'", decl.pos)
                continue
            if decl.name in self.functions:
                self.error("function '" + decl.name + "' already defined", decl.pos)
                continue
            self._check_param_names(decl.params)
            sig = self.signature(decl.generics, decl.params, decl.ret)
            self.functions[decl.name] = decl
            self.fn_scope.names[decl.name] = _Entry(
                sig if sig is not None else TY_UNKNOWN, False, "fn", origin=decl
            )

    def _check_param_names(self, params: list[Param]) -> None:
        seen: set[str] = set()
        for p in params:
            if p.name in seen:
                self.error("duplicate parameter '" + p.name + "'", p.pos)
            seen.add(p.name)

    def check_program(self, program: Program) -> None:
        self.collect_declarations(program)
        self.scopes = [self.fn_scope, self.global_scope]
        for stmt in program.stmts:
            if not isinstance(stmt, FunctionDecl):
                self.check_stmt(stmt)
        for decl in program.functions:
            if not decl.generics and self.functions.get(decl.name) is decl:
                self.check_fn_body(decl, {})
        while self._pending:
            decl, mapping, depth = self._pending.pop(0)
            self._depth = depth
            self.check_fn_body(decl, mapping)
        self._depth = 0

    def check_fn_body(self, decl: FunctionDecl, mapping: dict[str, Ty]) -> None:
        saved = (self.scopes, self.fn_ret, self.generic_env)
        self.scopes = [self.fn_scope, self.global_scope]
        self.generic_env = mapping
        try:
            sig = self.signature([], decl.params, decl.ret)
            if sig is None:
                return
            self._check_callable_body(decl.name, decl.params, sig, decl.body)
        finally:
            self.scopes, self.fn_ret, self.generic_env = saved

    def _check_callable_body(
        self, name: str, params: list[Param], sig: TyFunc, body: Block
    ) -> None:
        self.enter_scope(fn_boundary=True)
        for p, pt in zip(params, sig.params):
            kind = "mut_param" if p.mutable else "param"
            self.declare(p.name, _Entry(pt, p.mutable, kind), p.pos)
        self.fn_ret = sig.ret
        body_ty = self.check_block(body, sig.ret)
        self.exit_scope()
        if body_ty is None or _diverges(body):
            return
        if not compatible(body_ty, sig.ret):
            self.error(
                name
                + " should return "
                + sig.ret.display()
                + " but its body evaluates to "
                + body_ty.display(),
                body.pos,
            )

    # ── Statements ────────────────────────────────────────────

    def check_block(
        self, block: Block, expected: Ty | None, *, loop_body: bool = False
    ) -> Ty | None:
        self.enter_scope(loop_body=loop_body)
        try:
            for stmt in block.stmts:
                self.check_stmt(stmt)
            if block.tail is None:
                return TY_UNIT
            if expected == TY_UNIT and isinstance(block.tail, BLOCK_LIKE):
                self.check_stmt_expr(block.tail)
                return TY_UNIT
            return self.check_expr(block.tail, expected)
        finally:
            self.exit_scope()

    def check_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, VarDecl):
            self.check_var_decl(stmt)
        elif isinstance(stmt, Assignment):
            self.check_assignment(stmt)
        elif isinstance(stmt, Delete):
            self.check_delete(stmt)
        elif isinstance(stmt, Return):
            self.check_return(stmt)
        elif isinstance(stmt, ExprStmt):
            self.check_stmt_expr(stmt.expr)
        elif isinstance(stmt, FunctionDecl):
            self.error("functions can only be declared at top level", stmt.pos)
        else:
            self.error("unhandled statement", stmt.pos)

    def check_stmt_expr(self, expr: Expr) -> None:
        if isinstance(expr, IfChain):
            self.check_if_chain(expr, None, as_stmt=True)
        else:
            self.check_expr(expr, None)

    def check_var_decl(self, stmt: VarDecl) -> None:
        declared: Ty | None = None
        if stmt.typ is not None:
            declared = self.resolve_type(stmt.typ)
        entry = _Entry(TY_UNKNOWN, stmt.mutable, "var")
        if stmt.value is None:
            if stmt.typ is None:
                self.error(
                    "declaration of '"
                    + stmt.name
                    + "' needs a type annotation or an initializer",
                    stmt.pos,
                )
            elif declared is not None and not has_default(declared):
                self.error(
                    "type "
                    + declared.display()
                    + " has no default value; '"
                    + stmt.name
                    + "' needs an initializer",
                    stmt.pos,
                )
        else:
            vt = self.check_expr(stmt.value, declared)
            if vt is not None and declared is not None:
                self.accept(stmt.value, vt, declared, "'" + stmt.name + "'")
            self._link_origin(entry, stmt.value, vt)
            if declared is None and vt is not None:
                entry.ty = vt
        if declared is not None:
            entry.ty = declared
        self.declare(stmt.name, entry, stmt.pos)

    def _link_origin(self, entry: _Entry, value: Expr, vt: Ty | None) -> None:
        """Remember where a generic function value came from so later calls
        can instantiate its body."""
        if not isinstance(vt, TyFunc) or not vt.generics:
            return
        if isinstance(value, LambdaExpr):
            entry.origin = value
            entry.snapshot = list(self.scopes)
            entry.generic_env = dict(self.generic_env)
        elif isinstance(value, Identifier):
            _, source = self.find(value.name)
            if source is not None:
                entry.origin = source.origin
                entry.snapshot = source.snapshot
                entry.generic_env = source.generic_env

    def check_assignment(self, stmt: Assignment) -> None:
        target = stmt.target
        if isinstance(target, Identifier):
            entry = self.lookup(target.name, target.pos)
            if entry is None:
                self.check_expr(stmt.value, None)
                return
            if entry.kind == "fn":
                self.error("cannot assign to function '" + target.name + "'", stmt.pos)
                return
            if not entry.mutable:
                self.error(
                    "cannot assign to immutable binding '" + target.name + "'",
                    stmt.pos,
                )
            vt = self.check_expr(stmt.value, entry.ty)
            if vt is not None:
                self.accept(stmt.value, vt, entry.ty, "'" + target.name + "'")
            return
        assert isinstance(target, Index)
        if not isinstance(target.obj, Identifier):
            self.error("index assignment needs a named vec or arr", stmt.pos)
            return
        entry = self.lookup(target.obj.name, target.obj.pos)
        if entry is None:
            return
        if not entry.mutable:
            self.error(
                "cannot assign to element of immutable binding '"
                + target.obj.name
                + "'",
                stmt.pos,
            )
        if not isinstance(entry.ty, (TyVec, TyArr)):
            self.error("cannot index-assign into " + entry.ty.display(), stmt.pos)
            return
        self.check_index_value(target.index)
        vt = self.check_expr(stmt.value, entry.ty.elem)
        if vt is not None:
            self.accept(stmt.value, vt, entry.ty.elem, "element")

    def check_delete(self, stmt: Delete) -> None:
        idx, entry = self.find(stmt.name)
        if entry is None:
            if idx >= 0:
                self.name_error("'" + stmt.name + "' was already deleted", stmt.pos)
            else:
                self.name_error("cannot delete undefined name '" + stmt.name + "'", stmt.pos)
            return
        if entry.kind == "fn":
            self.error("cannot delete function '" + stmt.name + "'", stmt.pos)
            return
        if entry.kind == "mut_param":
            self.error("cannot delete mutable parameter '" + stmt.name + "'", stmt.pos)
            return
        for scope in self.scopes[idx + 1 :]:
            if scope.fn_boundary:
                self.error("cannot delete captured binding '" + stmt.name + "'", stmt.pos)
                return
            if scope.loop_body:
                self.error(
                    "cannot delete '"
                    + stmt.name
                    + "' inside a loop; it is declared outside the loop body",
                    stmt.pos,
                )
                return
        owner = self.scopes[idx]
        del owner.names[stmt.name]
        owner.deleted.add(stmt.name)
        self.scopes[-1].deleted.add(stmt.name)

    def check_return(self, stmt: Return) -> None:
        if self.fn_ret is None:
            self.error("'ret' outside of a function", stmt.pos)
            if stmt.value is not None:
                self.check_expr(stmt.value, None)
            return
        if stmt.value is None:
            if self.fn_ret != TY_UNIT:
                self.error("'ret' without a value in function returning " + self.fn_ret.display(), stmt.pos)
            return
        vt = self.check_expr(stmt.value, self.fn_ret)
        if vt is not None:
            self.accept(stmt.value, vt, self.fn_ret, "return value")

    def accept(self, expr: Expr, actual: Ty, expected: Ty, what: str) -> bool:
        """Check actual against expected, instantiating generic function values
        bound to a concrete fn type."""
        if isinstance(actual, TyFunc) and actual.generics and isinstance(expected, TyFunc):
            mapping: dict[str, Ty] = {}
            bare = TyFunc(actual.params, actual.mutable, actual.ret)
            bad = unify(bare, expected, set(actual.generics), mapping)
            if bad is None and len(mapping) == len(actual.generics):
                self.instantiate_value(expr, mapping, expr.pos)
                return True
        if compatible(actual, expected):
            return True
        self.error(
            "type mismatch for "
            + what
            + ": expected "
            + expected.display()
            + ", got "
            + actual.display(),
            expr.pos,
        )
        return False

    # ── Expressions ───────────────────────────────────────────

    def check_expr(self, expr: Expr, expected: Ty | None) -> Ty | None:
        """Type-check an expression and return its type. Returns None on error."""
        if isinstance(expr, IntLit):
            return self.check_int_lit(expr.value, expr.suffix, expected, expr.pos)
        if isinstance(expr, FloatLit):
            return TY_F64
        if isinstance(expr, BoolLit):
            return TY_BOOL
        if isinstance(expr, CharLit):
            return TY_CHAR
        if isinstance(expr, StrLit):
            return TY_STR
        if isinstance(expr, VecLit):
            return self.check_vec_lit(expr, expected)
        if isinstance(expr, Identifier):
            entry = self.lookup(expr.name, expr.pos)
            if entry is None or entry.ty == TY_UNKNOWN:
                return None
            return entry.ty
        if isinstance(expr, BinaryExpr):
            return self.check_binary(expr, expected)
        if isinstance(expr, UnaryExpr):
            return self.check_unary(expr, expected)
        if isinstance(expr, Print):
            return self.check_expr(expr.expr, expected)
        if isinstance(expr, Block):
            return self.check_block(expr, expected)
        if isinstance(expr, IfChain):
            return self.check_if_chain(expr, expected, as_stmt=expected == TY_UNIT)
        if isinstance(expr, WhileLoop):
            self.check_condition(expr.cond)
            self.check_block(expr.body, None, loop_body=True)
            return TY_UNIT
        if isinstance(expr, ForLoop):
            return self.check_for(expr)
        if isinstance(expr, LambdaExpr):
            return self.check_lambda(expr)
        if isinstance(expr, Index):
            return self.check_index(expr)
        if isinstance(expr, Call):
            return self.check_call(expr, expected)
        self.error("unhandled expression type", expr.pos)
        return None

    def check_int_lit(
        self, value: int, suffix: str, expected: Ty | None, pos: Pos
    ) -> Ty | None:
        if suffix == "f64":
            return TY_F64
        if suffix:
            kind = suffix
        elif expected is not None and is_int(expected):
            assert isinstance(expected, TyPrim)
            kind = expected.kind
        else:
            kind = "i32"
        lo, hi = int_bounds(kind)
        if value < lo or value > hi:
            self.error(
                "integer literal " + str(value) + " out of range for " + kind, pos
            )
            return None
        return TyPrim(kind)

    def check_vec_lit(self, expr: VecLit, expected: Ty | None) -> Ty | None:
        elem_expected = expected.elem if isinstance(expected, TyVec) else None
        if not expr.elements:
            if elem_expected is None or contains_var(elem_expected):
                self.error("cannot infer generic type of empty vec literal", expr.pos)
                return None
            return TyVec(elem_expected)
        first = self.check_expr(expr.elements[0], elem_expected)
        if first is None:
            return None
        for e in expr.elements[1:]:
            et = self.check_expr(e, first)
            if et is not None and not compatible(et, first):
                self.error(
                    "vec literal elements must share one type: "
                    + first.display()
                    + " and "
                    + et.display(),
                    e.pos,
                )
        return TyVec(first)

    def check_binary(self, expr: BinaryExpr, expected: Ty | None) -> Ty | None:
        op = expr.op
        if op in LOGIC_OPS:
            lt = self.check_expr(expr.left, TY_BOOL)
            rt = self.check_expr(expr.right, TY_BOOL)
        else:
            hint = expected if expected is not None and is_numeric(expected) else None
            if op not in ARITH_OPS:
                hint = None
            if _is_untyped_literal(expr.left) and not _is_untyped_literal(expr.right):
                rt = self.check_expr(expr.right, hint)
                lt = self.check_expr(expr.left, rt)
            else:
                lt = self.check_expr(expr.left, hint)
                rt = self.check_expr(expr.right, lt)
        if lt is None or rt is None:
            return None
        entry = binary_op(op, lt, rt)
        if entry is None:
            self.error(
                "invalid operand types for '"
                + op
                + "': "
                + lt.display()
                + " and "
                + rt.display(),
                expr.pos,
            )
            return None
        return entry[0]

    def check_unary(self, expr: UnaryExpr, expected: Ty | None) -> Ty | None:
        if expr.op == "-" and isinstance(expr.operand, IntLit):
            lit = expr.operand
            return self.check_int_lit(-lit.value, lit.suffix, expected, expr.pos)
        t = self.check_expr(expr.operand, expected)
        if t is None:
            return None
        entry = unary_op(expr.op, t)
        if entry is None:
            self.error(
                "invalid operand type for '" + expr.op + "': " + t.display(), expr.pos
            )
            return None
        return entry[0]

    def check_condition(self, cond: Expr) -> None:
        ct = self.check_expr(cond, TY_BOOL)
        if ct is not None and ct != TY_BOOL:
            self.error("condition must be bool, got " + ct.display(), cond.pos)

    def check_if_chain(
        self, expr: IfChain, expected: Ty | None, *, as_stmt: bool
    ) -> Ty | None:
        branch_types: list[tuple[Ty | None, Block]] = []
        want = None if as_stmt else expected
        for cond, block in expr.branches:
            self.check_condition(cond)
            bt = self.check_block(block, want)
            if not _diverges(block):
                branch_types.append((bt, block))
        if expr.else_block is not None:
            bt = self.check_block(expr.else_block, want)
            if not _diverges(expr.else_block):
                branch_types.append((bt, expr.else_block))
        if as_stmt or expr.else_block is None:
            return TY_UNIT
        known = [(t, b) for t, b in branch_types if t is not None]
        if not known:
            return expected if expected is not None and not branch_types else None
        first = known[0][0]
        assert first is not None
        for t, block in known[1:]:
            assert t is not None
            if not compatible(t, first):
                self.error(
                    "branches of '?' have different types: "
                    + first.display()
                    + " and "
                    + t.display(),
                    block.pos,
                )
                return None
        return first

    def check_for(self, expr: ForLoop) -> Ty | None:
        if _is_untyped_literal(expr.start) and not _is_untyped_literal(expr.end):
            et = self.check_expr(expr.end, None)
            st = self.check_expr(expr.start, et)
        else:
            st = self.check_expr(expr.start, None)
            et = self.check_expr(expr.end, st)
        var_ty: Ty = TY_I32
        if st is not None and et is not None:
            if not is_int(st) or st != et:
                self.error(
                    "range bounds must be integers of one type, got "
                    + st.display()
                    + " and "
                    + et.display(),
                    expr.pos,
                )
            else:
                var_ty = st
        self.enter_scope(loop_body=True)
        self.declare(expr.name, _Entry(var_ty, False, "loop"), expr.pos)
        self.check_block(expr.body, None)
        self.exit_scope()
        return TY_UNIT

    def check_lambda(self, expr: LambdaExpr) -> Ty | None:
        self._check_param_names(expr.params)
        sig = self.signature(expr.generics, expr.params, expr.ret)
        if sig is None or expr.generics:
            # Generic lambda bodies are checked per instantiation.
            return sig
        saved_ret = self.fn_ret
        try:
            self._check_callable_body("lambda", expr.params, sig, expr.body)
        finally:
            self.fn_ret = saved_ret
        return sig

    def check_index_value(self, index: Expr) -> None:
        it = self.check_expr(index, None)
        if it is not None and not is_int(it):
            self.error("index must be an integer, got " + it.display(), index.pos)

    def check_index(self, expr: Index) -> Ty | None:
        ot = self.check_expr(expr.obj, None)
        self.check_index_value(expr.index)
        if ot is None:
            return None
        if isinstance(ot, (TyVec, TyArr)):
            return ot.elem
        if ot == TY_STR:
            return TY_CHAR
        self.error("cannot index into " + ot.display(), expr.pos)
        return None

    # ── Calls ─────────────────────────────────────────────────

    def check_call(self, expr: Call, expected: Ty | None) -> Ty | None:
        callee = expr.callee
        entry: _Entry | None = None
        if isinstance(callee, Identifier):
            name = callee.name
            if name in BUILTINS:
                return BUILTINS[name].check(self, expr, expected)
            if "::" in name:
                return self.check_type_path_call(expr, expected)
            entry = self.lookup(name, callee.pos)
            if entry is None:
                for a in expr.args:
                    self.check_expr(a, None)
                return None
            fty = entry.ty
            label = "'" + name + "'"
        else:
            ft = self.check_expr(callee, None)
            if ft is None:
                return None
            fty = ft
            label = "function value"
        if fty == TY_UNKNOWN:
            return None
        if not isinstance(fty, TyFunc):
            self.error(label + " is not callable (type " + fty.display() + ")", expr.pos)
            return None
        if len(expr.args) != len(fty.params):
            self.error(
                label
                + " expects "
                + str(len(fty.params))
                + " argument(s), got "
                + str(len(expr.args)),
                expr.pos,
            )
            return None
        names = set(fty.generics)
        mapping: dict[str, Ty] = {}
        if expr.generics is not None:
            if len(expr.generics) != len(fty.generics):
                self.error(
                    label
                    + " expects "
                    + str(len(fty.generics))
                    + " generic argument(s), got "
                    + str(len(expr.generics)),
                    expr.pos,
                )
                return None
            for gname, garg in zip(fty.generics, expr.generics):
                gt = self.resolve_generic_arg(garg, expr.pos)
                if not isinstance(gt, Ty):
                    if gt is not None:
                        self.error("generic argument must be a type", expr.pos)
                    return None
                mapping[gname] = gt
        infer = bool(names) and expr.generics is None
        ok = True
        for i, (arg, pty, is_mut) in enumerate(zip(expr.args, fty.params, fty.mutable)):
            want = substitute(pty, mapping)
            if is_mut:
                ok = self._check_mutable_arg(arg, label, i) and ok
            at = self.check_expr(arg, None if contains_var(want) else want)
            if at is None:
                ok = False
                continue
            if infer:
                bad = unify(pty, at, names, mapping)
                if bad:
                    self.error(
                        "conflicting types for generic '"
                        + bad
                        + "': "
                        + mapping[bad].display()
                        + " and "
                        + at.display(),
                        arg.pos,
                    )
                    ok = False
                    continue
                want = substitute(pty, mapping)
                if bad is None and contains_var(want):
                    continue
            if not self.accept(arg, at, want, "argument " + str(i + 1) + " of " + label):
                ok = False
        if infer and expected is not None and len(mapping) < len(names):
            unify(fty.ret, expected, names, mapping)
        if not ok:
            return None
        if names:
            for g in fty.generics:
                if g not in mapping or contains_var(mapping[g]):
                    self.error(
                        "cannot infer generic type '" + g + "' for call to " + label,
                        expr.pos,
                    )
                    return None
            self.instantiate_value(callee, mapping, expr.pos)
            expr.instances[generic_key(self.generic_env)] = dict(mapping)
        return substitute(fty.ret, mapping)

    def _check_mutable_arg(self, arg: Expr, label: str, i: int) -> bool:
        if not isinstance(arg, Identifier):
            self.error(
                "argument "
                + str(i + 1)
                + " of "
                + label
                + " is a mutable parameter and needs a named binding",
                arg.pos,
            )
            return False
        _, entry = self.find(arg.name)
        if entry is not None and not entry.mutable:
            self.error(
                "cannot pass immutable binding '"
                + arg.name
                + "' as mutable argument "
                + str(i + 1)
                + " of "
                + label,
                arg.pos,
            )
            return False
        return True

    def check_type_path_call(self, expr: Call, expected: Ty | None) -> Ty | None:
        """T::new() and friends where T is a generic parameter."""
        assert isinstance(expr.callee, Identifier)
        head, _, method = expr.callee.name.partition("::")
        bound = self.generic_env.get(head)
        if bound is None:
            self.name_error("unknown builtin '" + expr.callee.name + "'", expr.callee.pos)
            for a in expr.args:
                self.check_expr(a, None)
            return None
        prefix, implicit = type_path(bound)
        name = prefix + "::" + method
        if name not in BUILTINS:
            self.name_error(
                "type " + bound.display() + " has no builtin '" + method + "'",
                expr.callee.pos,
            )
            return None
        resolved = Call(expr.pos, Identifier(expr.callee.pos, name), expr.args, expr.generics)
        if implicit and expr.generics is None:
            return BUILTINS[name].check(self, resolved, bound if method == "new" else expected)
        return BUILTINS[name].check(self, resolved, expected)

    def instantiate_value(self, callee: Expr, mapping: dict[str, Ty], pos: Pos) -> None:
        """Check the body of the generic function or lambda behind callee."""
        origin: FunctionDecl | LambdaExpr | None = None
        entry: _Entry | None = None
        if isinstance(callee, LambdaExpr):
            origin = callee
        elif isinstance(callee, Identifier):
            _, entry = self.find(callee.name)
            if entry is not None:
                origin = entry.origin
        if origin is None:
            self.error(
                "generic function value must be called directly or bound to a concrete fn type",
                pos,
            )
            return
        key = (id(origin), tuple(sorted(mapping.items(), key=lambda kv: kv[0])))
        if key in self._instances:
            return
        self._instances.add(key)
        if self._depth >= MAX_INSTANTIATION_DEPTH:
            self.error("generic instantiation depth exceeded", pos)
            return
        logger.debug(
            "instantiate %s with %s",
            getattr(origin, "name", "lambda"),
            {k: v.display() for k, v in mapping.items()},
        )
        if isinstance(origin, FunctionDecl):
            self._pending.append((origin, dict(mapping), self._depth + 1))
            return
        self._instantiate_lambda(origin, mapping, entry)

    def _instantiate_lambda(
        self, lam: LambdaExpr, mapping: dict[str, Ty], entry: _Entry | None
    ) -> None:
        saved = (self.scopes, self.fn_ret, self.generic_env)
        if entry is not None and entry.snapshot is not None:
            self.scopes = list(entry.snapshot)
            base = dict(entry.generic_env or {})
        else:
            self.scopes = list(self.scopes)
            base = dict(self.generic_env)
        base.update(mapping)
        self.generic_env = base
        self._depth += 1
        try:
            sig = self.signature([], lam.params, lam.ret)
            if sig is not None:
                self._check_callable_body("lambda", lam.params, sig, lam.body)
        finally:
            self._depth -= 1
            self.scopes, self.fn_ret, self.generic_env = saved


# ============================================================
# PUBLIC API
# ============================================================


def check(program: Program) -> list[CheckError]:
    """Type-check a parsed Program. Returns a list of errors (empty = ok)."""
    checker = Checker()
    saved = sys.getrecursionlimit()
    sys.setrecursionlimit(max(saved, PARSE_RECURSION_LIMIT))
    try:
        checker.check_program(program)
        _check_main(checker)
    finally:
        sys.setrecursionlimit(saved)
    return checker.errors


def _check_main(checker: Checker) -> None:
    decl = checker.functions.get("main")
    if decl is None:
        return
    entry = checker.fn_scope.names["main"]
    sig = entry.ty
    if not isinstance(sig, TyFunc):
        return
    if decl.generics:
        checker.error("main cannot be generic", decl.pos)
    if len(sig.params) != 1 or sig.params[0] != TyVec(TY_STR):
        checker.error("main must take exactly one vec<<str>> parameter", decl.pos)
    if sig.ret != TY_UNIT and not is_int(sig.ret):
        checker.error("main must return an integer or nothing", decl.pos)

