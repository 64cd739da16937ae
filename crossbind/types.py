#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Type and identifier model for crossbind.

C++ types are values of a small tagged union: one frozen dataclass per kind
of type. Types never hold entity objects directly; classes, enums, bitspaces
and callbacks are referenced by their external name, and the generators
resolve those names against the Interface being generated. This keeps types
hashable and lets a class mention itself in its own method signatures.

Usage:
    from crossbind.types import const_t, int_t, obj_t, ref_t

    # const IntBox&
    arg = ref_t(const_t(obj_t("IntBox")))
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

from .common import SpecError

_EXT_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


# ============================================================
# External Names
# ============================================================


@dataclass(frozen=True, order=True)
class ExtName:
    """The cross-language name of an export, unique within an interface."""

    name: str

    def __str__(self) -> str:
        return self.name


def to_ext_name(name: str) -> ExtName:
    """
    Validates and wraps an external name.

    External names must be usable as identifiers in every generated language,
    so they are restricted to [A-Za-z0-9_] and must start with a letter.
    """
    if not isinstance(name, str) or not _EXT_NAME_RE.match(name):
        raise SpecError(f"Invalid external name {name!r}: must match [A-Za-z][A-Za-z0-9_]*")
    return ExtName(name)


def ext_name_of(entity: Any) -> ExtName:
    """Returns the external name handle for an entity, an ExtName, or a string."""
    if isinstance(entity, ExtName):
        return entity
    if isinstance(entity, str):
        return to_ext_name(entity)
    ext_name = getattr(entity, "ext_name", None)
    if isinstance(ext_name, ExtName):
        return ext_name
    raise SpecError(f"Can't take an external name from {entity!r}")


# ============================================================
# Types
# ============================================================


class NumKind(Enum):
    """Numeric C++ types, valued by their C++ spelling."""

    CHAR = "char"
    UCHAR = "unsigned char"
    SHORT = "short"
    USHORT = "unsigned short"
    INT = "int"
    UINT = "unsigned int"
    LONG = "long"
    ULONG = "unsigned long"
    LLONG = "long long"
    ULLONG = "unsigned long long"
    FLOAT = "float"
    DOUBLE = "double"
    INT8 = "int8_t"
    INT16 = "int16_t"
    INT32 = "int32_t"
    INT64 = "int64_t"
    WORD8 = "uint8_t"
    WORD16 = "uint16_t"
    WORD32 = "uint32_t"
    WORD64 = "uint64_t"
    PTRDIFF = "ptrdiff_t"
    SIZE = "size_t"
    SSIZE = "ssize_t"


class Type:
    """Base class of all C++ types."""

    def describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class TVoid(Type):
    def describe(self) -> str:
        return "void"


@dataclass(frozen=True)
class TBool(Type):
    def describe(self) -> str:
        return "bool"


@dataclass(frozen=True)
class TNum(Type):
    kind: NumKind

    def describe(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class TEnum(Type):
    name: ExtName

    def describe(self) -> str:
        return f"enum {self.name}"


@dataclass(frozen=True)
class TBitspace(Type):
    name: ExtName

    def describe(self) -> str:
        return f"bitspace {self.name}"


@dataclass(frozen=True)
class TPtr(Type):
    target: Type

    def describe(self) -> str:
        return f"{self.target.describe()}*"


@dataclass(frozen=True)
class TRef(Type):
    target: Type

    def describe(self) -> str:
        return f"{self.target.describe()}&"


@dataclass(frozen=True)
class TConst(Type):
    target: Type

    def describe(self) -> str:
        return f"const {self.target.describe()}"


@dataclass(frozen=True)
class TObj(Type):
    """An object of a class, by value."""

    name: ExtName

    def describe(self) -> str:
        return f"object {self.name}"


@dataclass(frozen=True)
class TObjToHeap(Type):
    """A by-value object copied to the heap, ownership passing to the receiver."""

    name: ExtName

    def describe(self) -> str:
        return f"object-to-heap {self.name}"


@dataclass(frozen=True)
class TToGc(Type):
    """An object handed over to the managed side's garbage collector."""

    target: Type

    def describe(self) -> str:
        return f"to-gc ({self.target.describe()})"


@dataclass(frozen=True)
class TFn(Type):
    params: Tuple[Type, ...]
    ret: Type

    def describe(self) -> str:
        params = ", ".join(p.describe() for p in self.params)
        return f"fn ({params}) -> {self.ret.describe()}"


@dataclass(frozen=True)
class TCallback(Type):
    name: ExtName

    def describe(self) -> str:
        return f"callback {self.name}"


@dataclass(frozen=True)
class TVar(Type):
    """A type variable, replaced by subst_tvar before generation."""

    name: str

    def describe(self) -> str:
        return f"tvar {self.name}"


# ============================================================
# Type Builders
# ============================================================


def void_t() -> Type:
    return TVoid()


def bool_t() -> Type:
    return TBool()


def num_t(kind: NumKind) -> Type:
    return TNum(kind)


def char_t() -> Type:
    return TNum(NumKind.CHAR)


def uchar_t() -> Type:
    return TNum(NumKind.UCHAR)


def short_t() -> Type:
    return TNum(NumKind.SHORT)


def ushort_t() -> Type:
    return TNum(NumKind.USHORT)


def int_t() -> Type:
    return TNum(NumKind.INT)


def uint_t() -> Type:
    return TNum(NumKind.UINT)


def long_t() -> Type:
    return TNum(NumKind.LONG)


def ulong_t() -> Type:
    return TNum(NumKind.ULONG)


def llong_t() -> Type:
    return TNum(NumKind.LLONG)


def ullong_t() -> Type:
    return TNum(NumKind.ULLONG)


def float_t() -> Type:
    return TNum(NumKind.FLOAT)


def double_t() -> Type:
    return TNum(NumKind.DOUBLE)


def int8_t() -> Type:
    return TNum(NumKind.INT8)


def int16_t() -> Type:
    return TNum(NumKind.INT16)


def int32_t() -> Type:
    return TNum(NumKind.INT32)


def int64_t() -> Type:
    return TNum(NumKind.INT64)


def word8_t() -> Type:
    return TNum(NumKind.WORD8)


def word16_t() -> Type:
    return TNum(NumKind.WORD16)


def word32_t() -> Type:
    return TNum(NumKind.WORD32)


def word64_t() -> Type:
    return TNum(NumKind.WORD64)


def ptrdiff_t() -> Type:
    return TNum(NumKind.PTRDIFF)


def size_t() -> Type:
    return TNum(NumKind.SIZE)


def ssize_t() -> Type:
    return TNum(NumKind.SSIZE)


def enum_t(enum: Any) -> Type:
    return TEnum(ext_name_of(enum))


def bitspace_t(bitspace: Any) -> Type:
    return TBitspace(ext_name_of(bitspace))


def ptr_t(t: Type) -> Type:
    return TPtr(t)


def ref_t(t: Type) -> Type:
    return TRef(t)


def const_t(t: Type) -> Type:
    """Const-qualifies a type; const of const collapses to a single const."""
    if isinstance(t, TConst):
        return t
    return TConst(t)


def obj_t(cls: Any) -> Type:
    return TObj(ext_name_of(cls))


def obj_to_heap_t(cls: Any) -> Type:
    return TObjToHeap(ext_name_of(cls))


def to_gc_t(t: Type) -> Type:
    return TToGc(t)


def fn_t(params: Sequence[Type], ret: Type) -> Type:
    return TFn(tuple(params), ret)


def callback_t(callback: Any) -> Type:
    return TCallback(ext_name_of(callback))


def tvar(name: str) -> Type:
    return TVar(name)


# ============================================================
# Predicates and Classifiers
# ============================================================


def strip_const(t: Type) -> Type:
    while isinstance(t, TConst):
        t = t.target
    return t


def object_class_name(t: Type) -> Optional[ExtName]:
    """
    Returns the class passed by an object-passing type, or None.

    Object-passing types are T, const T, T&, const T&, T* and const T* for a
    class T.  Both generators use this to decide that a value crosses the
    boundary as a pointer.
    """
    t = strip_const(t)
    if isinstance(t, (TPtr, TRef)):
        t = strip_const(t.target)
    if isinstance(t, TObj):
        return t.name
    return None


def is_object_passing_type(t: Type) -> bool:
    return object_class_name(t) is not None


def is_const_object_pointer(t: Type) -> bool:
    """True for const T& and const T*."""
    t = strip_const(t)
    return (
        isinstance(t, (TPtr, TRef))
        and isinstance(t.target, TConst)
        and isinstance(strip_const(t.target), TObj)
    )


def is_numeric(t: Type) -> bool:
    return isinstance(strip_const(t), TNum)


def subst_tvar(var: str, value: Type, t: Type) -> Type:
    """Replaces every occurrence of the type variable var in t with value."""
    if isinstance(t, TVar):
        return value if t.name == var else t
    if isinstance(t, TPtr):
        return TPtr(subst_tvar(var, value, t.target))
    if isinstance(t, TRef):
        return TRef(subst_tvar(var, value, t.target))
    if isinstance(t, TConst):
        return const_t(subst_tvar(var, value, t.target))
    if isinstance(t, TToGc):
        return TToGc(subst_tvar(var, value, t.target))
    if isinstance(t, TFn):
        return TFn(
            tuple(subst_tvar(var, value, p) for p in t.params),
            subst_tvar(var, value, t.ret),
        )
    return t


def type_mentions_tvar(var: str, t: Type) -> bool:
    if isinstance(t, TVar):
        return t.name == var
    if isinstance(t, (TPtr, TRef, TConst, TToGc)):
        return type_mentions_tvar(var, t.target)
    if isinstance(t, TFn):
        return any(type_mentions_tvar(var, p) for p in t.params) or type_mentions_tvar(
            var, t.ret
        )
    return False


# ============================================================
# Identifiers
# ============================================================


@dataclass(frozen=True)
class IdPart:
    """One segment of a C++ identifier, optionally with template arguments."""

    name: str
    args: Optional[Tuple[Type, ...]] = None


@dataclass(frozen=True)
class Identifier:
    """A possibly namespace-qualified, possibly templated C++ identifier."""

    parts: Tuple[IdPart, ...]

    def __post_init__(self):
        if not self.parts:
            raise SpecError("An identifier must have at least one part")

    @property
    def last_name(self) -> str:
        return self.parts[-1].name

    def describe(self) -> str:
        rendered = []
        for part in self.parts:
            if part.args is None:
                rendered.append(part.name)
            else:
                args = ", ".join(a.describe() for a in part.args)
                rendered.append(f"{part.name}<{args}>")
        return "::".join(rendered)

    def __str__(self) -> str:
        return self.describe()


def ident(name: str) -> Identifier:
    """foo"""
    return Identifier((IdPart(name),))


def ident1(ns: str, name: str) -> Identifier:
    """ns::foo"""
    return Identifier((IdPart(ns), IdPart(name)))


def ident2(ns1: str, ns2: str, name: str) -> Identifier:
    """ns1::ns2::foo"""
    return Identifier((IdPart(ns1), IdPart(ns2), IdPart(name)))


def ident_t(name: str, args: Sequence[Type]) -> Identifier:
    """foo<args...>"""
    return Identifier((IdPart(name, tuple(args)),))


def ident1_t(ns: str, name: str, args: Sequence[Type]) -> Identifier:
    """ns::foo<args...>"""
    return Identifier((IdPart(ns), IdPart(name, tuple(args))))


def ident2_t(ns1: str, ns2: str, name: str, args: Sequence[Type]) -> Identifier:
    """ns1::ns2::foo<args...>"""
    return Identifier((IdPart(ns1), IdPart(ns2), IdPart(name, tuple(args))))


def ident_parts(parts: Sequence[IdPart]) -> Identifier:
    return Identifier(tuple(parts))


def subst_tvar_identifier(var: str, value: Type, identifier: Identifier) -> Identifier:
    parts = []
    for part in identifier.parts:
        if part.args is None:
            parts.append(part)
        else:
            parts.append(IdPart(part.name, tuple(subst_tvar(var, value, a) for a in part.args)))
    return Identifier(tuple(parts))
