"""Obstruct runtime values."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .types import (
    TY_BOOL,
    TY_CHAR,
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
    TyVec,
)

if TYPE_CHECKING:
    from .ast import FunctionDecl, LambdaExpr
    from .env import Binding


class Value:
    """A runtime value with a concrete type tag."""

    def ty(self) -> Ty:
        raise NotImplementedError

    def to_string(self) -> str:
        raise NotImplementedError


@dataclass
class VUnit(Value):
    def ty(self) -> Ty:
        return TY_UNIT

    def to_string(self) -> str:
        return "()"


@dataclass
class VBool(Value):
    value: bool

    def ty(self) -> Ty:
        return TY_BOOL

    def to_string(self) -> str:
        return "true" if self.value else "false"


@dataclass
class VInt(Value):
    value: int
    kind: str = "i32"

    def ty(self) -> Ty:
        return TyPrim(self.kind)

    def to_string(self) -> str:
        return str(self.value)


@dataclass
class VFloat(Value):
    value: float

    def ty(self) -> Ty:
        return TY_F64

    def to_string(self) -> str:
        return format_float(self.value)


@dataclass
class VChar(Value):
    value: str

    def ty(self) -> Ty:
        return TY_CHAR

    def to_string(self) -> str:
        return self.value


@dataclass
class VStr(Value):
    value: str

    def ty(self) -> Ty:
        return TY_STR

    def to_string(self) -> str:
        return self.value


@dataclass
class VVec(Value):
    elements: list[Value]
    elem: Ty = TY_UNKNOWN

    def ty(self) -> Ty:
        return TyVec(self.elem)

    def to_string(self) -> str:
        return "[" + ", ".join(e.to_string() for e in self.elements) + "]"


@dataclass
class VArr(Value):
    elements: list[Value]
    elem: Ty = TY_UNKNOWN

    def ty(self) -> Ty:
        return TyArr(self.elem, len(self.elements))

    def to_string(self) -> str:
        return "[" + ", ".join(e.to_string() for e in self.elements) + "]"


@dataclass
class VPtr(Value):
    index: int
    generation: int
    target: Ty

    def ty(self) -> Ty:
        return TyPtr(self.target)

    def to_string(self) -> str:
        return f"ptr(slot {self.index})"


@dataclass
class VRef(Value):
    binding: Binding
    target: Ty

    def ty(self) -> Ty:
        return TyRef(self.target)

    def to_string(self) -> str:
        return f"ref({self.binding.name})"


@dataclass
class VFunc(Value):
    """A named function or a lambda closed over its defining frame."""

    typ: TyFunc
    name: str | None
    decl: FunctionDecl | LambdaExpr
    frame: int
    generic_env: dict[str, Ty] = field(default_factory=dict)

    def ty(self) -> Ty:
        return self.typ

    def to_string(self) -> str:
        if self.name is None:
            return "<lam>"
        return f"<fn {self.name}>"


UNIT = VUnit()


def format_float(x: float) -> str:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    if x == int(x) and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


def copy_value(v: Value) -> Value:
    """Containers have value semantics; everything else is immutable or a handle."""
    if isinstance(v, VVec):
        return VVec([copy_value(e) for e in v.elements], v.elem)
    if isinstance(v, VArr):
        return VArr([copy_value(e) for e in v.elements], v.elem)
    return v


def values_equal(a: Value, b: Value) -> bool:
    if isinstance(a, (VVec, VArr)) and isinstance(b, (VVec, VArr)):
        if len(a.elements) != len(b.elements):
            return False
        return all(values_equal(x, y) for x, y in zip(a.elements, b.elements))
    if isinstance(a, VPtr) and isinstance(b, VPtr):
        return a.index == b.index and a.generation == b.generation
    if isinstance(a, VRef) and isinstance(b, VRef):
        return a.binding is b.binding
    if isinstance(a, (VInt, VFloat, VBool, VChar, VStr)) and type(a) is type(b):
        return a.value == b.value  # type: ignore[attr-defined]
    return isinstance(a, VUnit) and isinstance(b, VUnit)
