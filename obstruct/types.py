"""Obstruct type model shared by the checker and the runtime."""

from __future__ import annotations

from dataclasses import dataclass


# ============================================================
# Types
# ============================================================


class Ty:
    """Base type for checker/runtime."""

    def display(self) -> str:
        raise NotImplementedError


@dataclass(unsafe_hash=True)
class TyPrim(Ty):
    kind: str

    def display(self) -> str:
        return self.kind


@dataclass(unsafe_hash=True)
class TyVec(Ty):
    elem: Ty

    def display(self) -> str:
        return f"vec<<{self.elem.display()}>>"


@dataclass(unsafe_hash=True)
class TyArr(Ty):
    elem: Ty
    size: int

    def display(self) -> str:
        return f"arr<<{self.elem.display()}, {self.size}>>"


@dataclass(unsafe_hash=True)
class TyPtr(Ty):
    target: Ty

    def display(self) -> str:
        return f"ptr<<{self.target.display()}>>"


@dataclass(unsafe_hash=True)
class TyRef(Ty):
    target: Ty

    def display(self) -> str:
        return f"ref<<{self.target.display()}>>"


@dataclass(unsafe_hash=True)
class TyFunc(Ty):
    params: tuple[Ty, ...]
    mutable: tuple[bool, ...]
    ret: Ty
    generics: tuple[str, ...] = ()

    def display(self) -> str:
        parts = []
        for p, m in zip(self.params, self.mutable):
            parts.append(("@" if m else "") + p.display())
        text = "fn(" + ", ".join(parts) + ") -> " + self.ret.display()
        if self.generics:
            text = "<<" + ", ".join(self.generics) + ">>" + text
        return text


@dataclass(unsafe_hash=True)
class TyVar(Ty):
    """Generic placeholder; '_' stands for a not-yet-known element type."""

    name: str

    def display(self) -> str:
        return self.name


TY_I8 = TyPrim("i8")
TY_I16 = TyPrim("i16")
TY_I32 = TyPrim("i32")
TY_I64 = TyPrim("i64")
TY_F64 = TyPrim("f64")
TY_BOOL = TyPrim("bool")
TY_CHAR = TyPrim("char")
TY_STR = TyPrim("str")
TY_UNIT = TyPrim("()")
TY_UNKNOWN = TyVar("_")

INT_WIDTHS: dict[str, int] = {"i8": 8, "i16": 16, "i32": 32, "i64": 64}

PRIMITIVES: dict[str, Ty] = {
    "i8": TY_I8,
    "i16": TY_I16,
    "i32": TY_I32,
    "i64": TY_I64,
    "f64": TY_F64,
    "bool": TY_BOOL,
    "char": TY_CHAR,
    "str": TY_STR,
}


def is_int(t: Ty) -> bool:
    return isinstance(t, TyPrim) and t.kind in INT_WIDTHS


def is_numeric(t: Ty) -> bool:
    return is_int(t) or t == TY_F64


def int_bounds(kind: str) -> tuple[int, int]:
    bits = INT_WIDTHS[kind]
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


def wrap_int(value: int, kind: str) -> int:
    """Two's-complement wrap of value into the given width."""
    bits = INT_WIDTHS[kind]
    mask = (1 << bits) - 1
    value &= mask
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def has_default(t: Ty) -> bool:
    if isinstance(t, TyPrim):
        return t != TY_UNIT
    if isinstance(t, TyVec):
        return True
    if isinstance(t, TyArr):
        return has_default(t.elem)
    return False


# ============================================================
# Generics
# ============================================================


def contains_var(t: Ty) -> bool:
    if isinstance(t, TyVar):
        return True
    if isinstance(t, (TyVec, TyArr)):
        return contains_var(t.elem)
    if isinstance(t, (TyPtr, TyRef)):
        return contains_var(t.target)
    if isinstance(t, TyFunc):
        return any(contains_var(p) for p in t.params) or contains_var(t.ret)
    return False


def substitute(t: Ty, mapping: dict[str, Ty]) -> Ty:
    """Replace generic placeholders by their bound types."""
    if not mapping:
        return t
    if isinstance(t, TyVar):
        return mapping.get(t.name, t)
    if isinstance(t, TyVec):
        return TyVec(substitute(t.elem, mapping))
    if isinstance(t, TyArr):
        return TyArr(substitute(t.elem, mapping), t.size)
    if isinstance(t, TyPtr):
        return TyPtr(substitute(t.target, mapping))
    if isinstance(t, TyRef):
        return TyRef(substitute(t.target, mapping))
    if isinstance(t, TyFunc):
        inner = {k: v for k, v in mapping.items() if k not in t.generics}
        return TyFunc(
            tuple(substitute(p, inner) for p in t.params),
            t.mutable,
            substitute(t.ret, inner),
            t.generics,
        )
    return t


def unify(pattern: Ty, actual: Ty, names: set[str], mapping: dict[str, Ty]) -> str | None:
    """Bind placeholders in `names` so that pattern matches actual.

    Returns None on success, or the name of the placeholder that received two
    different types ("" when the shapes simply don't match).
    """
    if isinstance(pattern, TyVar) and pattern.name in names:
        if actual == TY_UNKNOWN:
            return None
        bound = mapping.get(pattern.name)
        if bound is None or bound == TY_UNKNOWN:
            mapping[pattern.name] = actual
            return None
        if bound != actual:
            return pattern.name
        return None
    if actual == TY_UNKNOWN or pattern == TY_UNKNOWN:
        return None
    if isinstance(pattern, TyVec) and isinstance(actual, TyVec):
        return unify(pattern.elem, actual.elem, names, mapping)
    if isinstance(pattern, TyArr) and isinstance(actual, TyArr):
        if pattern.size != actual.size:
            return ""
        return unify(pattern.elem, actual.elem, names, mapping)
    if isinstance(pattern, TyPtr) and isinstance(actual, TyPtr):
        return unify(pattern.target, actual.target, names, mapping)
    if isinstance(pattern, TyRef) and isinstance(actual, TyRef):
        return unify(pattern.target, actual.target, names, mapping)
    if isinstance(pattern, TyFunc) and isinstance(actual, TyFunc):
        if len(pattern.params) != len(actual.params) or pattern.mutable != actual.mutable:
            return ""
        for p, a in zip(pattern.params, actual.params):
            bad = unify(p, a, names, mapping)
            if bad is not None:
                return bad
        return unify(pattern.ret, actual.ret, names, mapping)
    if pattern == actual:
        return None
    return ""


def compatible(actual: Ty, expected: Ty) -> bool:
    """Exact match, allowing not-yet-known element types on either side."""
    return unify(expected, actual, set(), {}) is None


def generic_key(env: dict[str, Ty]) -> tuple[tuple[str, Ty], ...]:
    """Hashable form of a generic environment, used to look up the bindings
    the checker chose for a call inside one particular instantiation."""
    return tuple(sorted(env.items(), key=lambda kv: kv[0]))


def holds_function(t: Ty) -> bool:
    """Whether a value of type t can contain a function value."""
    if isinstance(t, (TyFunc, TyVar)):
        return True
    if isinstance(t, (TyVec, TyArr)):
        return holds_function(t.elem)
    return False
