"""Obstruct AST — parse-time node definitions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Ty


# ============================================================
# POSITION
# ============================================================


@dataclass
class Pos:
    """Source position, 1-indexed."""

    line: int
    col: int


# ============================================================
# TYPES (parse-time, unresolved)
# ============================================================


@dataclass
class TypeNode:
    """Base for all type annotation nodes."""

    pos: Pos


@dataclass
class NamedType(TypeNode):
    """i32, str, vec<<T>>, arr<<T, 3>>, or a generic parameter name."""

    name: str
    args: list[TypeNode | int] = field(default_factory=list)


@dataclass
class FuncType(TypeNode):
    """fn(T, @U) -> R."""

    params: list[TypeNode]
    mutable: list[bool]
    ret: TypeNode | None


@dataclass
class UnitType(TypeNode):
    """()."""


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass
class Expr:
    """Base for all expressions."""

    pos: Pos


@dataclass
class IntLit(Expr):
    value: int
    suffix: str = ""


@dataclass
class FloatLit(Expr):
    value: float


@dataclass
class BoolLit(Expr):
    value: bool


@dataclass
class CharLit(Expr):
    value: str


@dataclass
class StrLit(Expr):
    value: str


@dataclass
class VecLit(Expr):
    """[a, b, c]."""

    elements: list[Expr]


@dataclass
class Identifier(Expr):
    """A name; builtin paths keep their separators (vec::push)."""

    name: str


@dataclass
class BinaryExpr(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass
class UnaryExpr(Expr):
    op: str
    operand: Expr


@dataclass
class Call(Expr):
    callee: Expr
    args: list[Expr]
    generics: list[TypeNode | int] | None = None
    # Generic bindings chosen by the checker, keyed by the enclosing
    # instantiation (see types.generic_key).
    instances: dict[tuple[tuple[str, Ty], ...], dict[str, Ty]] = field(
        default_factory=dict, repr=False, compare=False, metadata={"checked": True}
    )


@dataclass
class Index(Expr):
    obj: Expr
    index: Expr


@dataclass
class Print(Expr):
    """$ expr or $$ expr; evaluates to the printed value."""

    double: bool
    expr: Expr


@dataclass
class Block(Expr):
    """{ stmts; tail }."""

    stmts: list[Stmt]
    tail: Expr | None


@dataclass
class IfChain(Expr):
    """`? c {} ~? c {} ~ {}`: ordered branches, the first true guard wins."""

    branches: list[tuple[Expr, Block]]
    else_block: Block | None


@dataclass
class WhileLoop(Expr):
    """^^ cond {}."""

    cond: Expr
    body: Block


@dataclass
class ForLoop(Expr):
    """for name in start..end {}."""

    name: str
    start: Expr
    end: Expr
    body: Block


@dataclass
class Param:
    pos: Pos
    name: str
    typ: TypeNode
    mutable: bool


@dataclass
class LambdaExpr(Expr):
    generics: list[str]
    params: list[Param]
    ret: TypeNode | None
    body: Block


# ============================================================
# STATEMENTS
# ============================================================


@dataclass
class Stmt:
    """Base for all statements."""

    pos: Pos


@dataclass
class VarDecl(Stmt):
    """#name: T = value; or #@name ..."""

    name: str
    mutable: bool
    typ: TypeNode | None
    value: Expr | None


@dataclass
class Assignment(Stmt):
    target: Expr
    value: Expr


@dataclass
class Delete(Stmt):
    name: str


@dataclass
class Return(Stmt):
    value: Expr | None


@dataclass
class ExprStmt(Stmt):
    expr: Expr


@dataclass
class FunctionDecl(Stmt):
    name: str
    generics: list[str]
    params: list[Param]
    ret: TypeNode | None
    body: Block


# ============================================================
# PROGRAM
# ============================================================


@dataclass
class Program:
    stmts: list[Stmt]
    strict_math: bool = False

    @property
    def functions(self) -> list[FunctionDecl]:
        return [s for s in self.stmts if isinstance(s, FunctionDecl)]


BLOCK_LIKE = (Block, IfChain, WhileLoop, ForLoop)


def to_dict(node: object) -> object:
    """Render a node tree as nested dicts/lists for inspection."""
    if node is None or isinstance(node, (bool, int, float, str)):
        return node
    if isinstance(node, (list, tuple)):
        return [to_dict(x) for x in node]
    if isinstance(node, Pos):
        return {"line": node.line, "col": node.col}
    out: dict[str, object] = {"_type": type(node).__name__}
    for f in fields(node):  # type: ignore[arg-type]
        if f.metadata.get("checked"):
            continue
        out[f.name] = to_dict(getattr(node, f.name))
    return out
