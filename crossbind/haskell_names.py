#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Haskell naming, types and imports for crossbind.

Holds the pieces of the Haskell generator that do not depend on generation
state: how external names become Haskell identifiers, a minimal Haskell type
representation with a renderer, and the import set that each generated module
accumulates.

Generated code refers to library modules through fixed qualified aliases:

    CBP    Prelude
    CBF    Foreign
    CBFC   Foreign.C
    CBR    Foreign.Crossbind.Runtime
    CBSIU  System.IO.Unsafe
    CBDB   Data.Bits
    CBDI   Data.Int
    CBDW   Data.Word
    CBDM   Data.Map
    CBSPT  System.Posix.Types
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .common import lower_first, upper_first
from .types import ExtName, NumKind

RUNTIME_MODULE = "Foreign.Crossbind.Runtime"


# ============================================================
# Names
# ============================================================


def to_hs_fn_name(name: ExtName) -> str:
    return lower_first(str(name))


def to_arg_name(index: int) -> str:
    return f"arg{index}"


def to_hs_data_type_name(const: bool, name: ExtName) -> str:
    base = upper_first(str(name))
    return base + "Const" if const else base


def to_hs_data_ctor_name(managed: bool, const: bool, name: ExtName) -> str:
    ctor = to_hs_data_type_name(const, name)
    return ctor + "Gc" if managed else ctor


def to_hs_value_class_name(name: ExtName) -> str:
    return f"{upper_first(str(name))}Value"


def to_hs_with_value_ptr_name(name: ExtName) -> str:
    return f"with{upper_first(str(name))}Ptr"


def to_hs_ptr_class_name(const: bool, name: ExtName) -> str:
    return f"{to_hs_data_type_name(const, name)}Ptr"


def to_hs_cast_method_name(const: bool, name: ExtName) -> str:
    return f"to{to_hs_data_type_name(const, name)}"


def to_hs_const_cast_fn_name(const: bool, name: ExtName) -> str:
    """castFooToConst (const=True) or castFooToNonconst (const=False)."""
    suffix = "Const" if const else "Nonconst"
    return f"cast{upper_first(str(name))}To{suffix}"


def to_hs_cast_primitive_name(from_name: ExtName, to_name: ExtName) -> str:
    return f"cast{upper_first(str(from_name))}To{upper_first(str(to_name))}"


def to_hs_down_cast_class_name(const: bool, name: ExtName) -> str:
    return f"{upper_first(str(name))}Super{'Const' if const else ''}"


def to_hs_down_cast_method_name(const: bool, name: ExtName) -> str:
    return f"downTo{to_hs_data_type_name(const, name)}"


def to_hs_class_delete_fn_name(name: ExtName) -> str:
    return f"delete'{upper_first(str(name))}"


def to_hs_class_delete_fn_ptr_name(name: ExtName) -> str:
    return f"deletePtr'{upper_first(str(name))}"


def _join_words(words: Iterable[str]) -> str:
    return "".join(upper_first(w) for w in words)


def to_hs_enum_type_name(name: ExtName) -> str:
    return upper_first(str(name))


def to_hs_enum_ctor_name(name: ExtName, words: Sequence[str]) -> str:
    return f"{to_hs_enum_type_name(name)}_{_join_words(words)}"


def to_hs_bitspace_type_name(name: ExtName) -> str:
    return upper_first(str(name))


def to_hs_bitspace_to_num_name(name: ExtName) -> str:
    return f"from{to_hs_bitspace_type_name(name)}"


def to_hs_bitspace_class_name(name: ExtName) -> str:
    return f"Is{to_hs_bitspace_type_name(name)}"


def to_hs_bitspace_from_value_name(name: ExtName) -> str:
    return f"to{to_hs_bitspace_type_name(name)}"


def to_hs_bitspace_value_name(name: ExtName, words: Sequence[str]) -> str:
    return f"{lower_first(str(name))}_{_join_words(words)}"


def to_hs_callback_ctor_name(name: ExtName) -> str:
    return lower_first(str(name))


EXCEPTION_DB_NAME = "exceptionDb'"


# ============================================================
# Haskell Types
# ============================================================


class HsType:
    """Base class of the minimal Haskell type representation."""

    def render(self, precedence: int = 0) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class HsTyCon(HsType):
    name: str

    def render(self, precedence: int = 0) -> str:
        return self.name


@dataclass(frozen=True)
class HsTyVar(HsType):
    name: str

    def render(self, precedence: int = 0) -> str:
        return self.name


@dataclass(frozen=True)
class HsTyApp(HsType):
    fn: HsType
    arg: HsType

    def render(self, precedence: int = 0) -> str:
        text = f"{self.fn.render(1)} {self.arg.render(2)}"
        return f"({text})" if precedence >= 2 else text


@dataclass(frozen=True)
class HsTyFun(HsType):
    arg: HsType
    result: HsType

    def render(self, precedence: int = 0) -> str:
        text = f"{self.arg.render(1)} -> {self.result.render(0)}"
        return f"({text})" if precedence >= 1 else text


HS_UNIT = HsTyCon("()")


def hs_con(name: str) -> HsType:
    return HsTyCon(name)


def hs_app(fn: str, *args: HsType) -> HsType:
    result: HsType = HsTyCon(fn)
    for arg in args:
        result = HsTyApp(result, arg)
    return result


def hs_io(t: HsType) -> HsType:
    return hs_app("CBP.IO", t)


def hs_fun(params: Sequence[HsType], result: HsType) -> HsType:
    for param in reversed(params):
        result = HsTyFun(param, result)
    return result


@dataclass
class HsQualType:
    """A type with a typeclass context, e.g. (FooPtr this) => this -> IO ()."""

    context: List[Tuple[str, str]]
    type: HsType

    def render(self) -> str:
        if not self.context:
            return self.type.render()
        constraints = ", ".join(f"{cls} {var}" for cls, var in self.context)
        if len(self.context) == 1:
            return f"{constraints} => {self.type.render()}"
        return f"({constraints}) => {self.type.render()}"


HS_NUMERIC_TYPES: Dict[NumKind, Tuple[str, str]] = {
    # kind: (type, import alias)
    NumKind.CHAR: ("CBFC.CChar", "CBFC"),
    NumKind.UCHAR: ("CBFC.CUChar", "CBFC"),
    NumKind.SHORT: ("CBFC.CShort", "CBFC"),
    NumKind.USHORT: ("CBFC.CUShort", "CBFC"),
    NumKind.INT: ("CBFC.CInt", "CBFC"),
    NumKind.UINT: ("CBFC.CUInt", "CBFC"),
    NumKind.LONG: ("CBFC.CLong", "CBFC"),
    NumKind.ULONG: ("CBFC.CULong", "CBFC"),
    NumKind.LLONG: ("CBFC.CLLong", "CBFC"),
    NumKind.ULLONG: ("CBFC.CULLong", "CBFC"),
    NumKind.FLOAT: ("CBFC.CFloat", "CBFC"),
    NumKind.DOUBLE: ("CBFC.CDouble", "CBFC"),
    NumKind.INT8: ("CBDI.Int8", "CBDI"),
    NumKind.INT16: ("CBDI.Int16", "CBDI"),
    NumKind.INT32: ("CBDI.Int32", "CBDI"),
    NumKind.INT64: ("CBDI.Int64", "CBDI"),
    NumKind.WORD8: ("CBDW.Word8", "CBDW"),
    NumKind.WORD16: ("CBDW.Word16", "CBDW"),
    NumKind.WORD32: ("CBDW.Word32", "CBDW"),
    NumKind.WORD64: ("CBDW.Word64", "CBDW"),
    NumKind.PTRDIFF: ("CBFC.CPtrdiff", "CBFC"),
    NumKind.SIZE: ("CBFC.CSize", "CBFC"),
    NumKind.SSIZE: ("CBSPT.CSsize", "CBSPT"),
}


# ============================================================
# Imports
# ============================================================


@dataclass(frozen=True)
class HsImportKey:
    module: str
    qualified_as: Optional[str] = None


@dataclass(frozen=True)
class HsImportSpec:
    """
    What is imported from one module.

    names is None for a whole-module import, otherwise the imported names.
    source marks a {-# SOURCE #-} import of the module's boot file.
    """

    names: Optional[frozenset] = None
    source: bool = False

    def merge(self, other: "HsImportSpec") -> "HsImportSpec":
        if self.names is None or other.names is None:
            names = None
        else:
            names = self.names | other.names
        return HsImportSpec(names, self.source or other.source)


@dataclass
class HsImportSet:
    imports: Dict[HsImportKey, HsImportSpec] = field(default_factory=dict)

    def add(self, key: HsImportKey, spec: HsImportSpec) -> None:
        existing = self.imports.get(key)
        self.imports[key] = spec if existing is None else existing.merge(spec)

    def update(self, other: "HsImportSet") -> None:
        for key, spec in other.imports.items():
            self.add(key, spec)

    def __add__(self, other: "HsImportSet") -> "HsImportSet":
        result = HsImportSet(dict(self.imports))
        result.update(other)
        return result

    def modules(self) -> List[str]:
        return sorted({key.module for key in self.imports})

    def with_source_imports(self, modules: Iterable[str]) -> "HsImportSet":
        """A copy in which imports of the given modules are SOURCE imports."""
        targets = set(modules)
        return HsImportSet(
            {
                key: replace(spec, source=True) if key.module in targets else spec
                for key, spec in self.imports.items()
            }
        )

    def render(self) -> List[str]:
        lines = []
        for key in sorted(self.imports, key=lambda k: (k.module, k.qualified_as or "")):
            spec = self.imports[key]
            parts = ["import"]
            if spec.source:
                parts.append("{-# SOURCE #-}")
            if key.qualified_as is not None:
                parts.append("qualified")
            parts.append(key.module)
            if key.qualified_as is not None:
                parts.append(f"as {key.qualified_as}")
            if spec.names is not None:
                parts.append(f"({', '.join(sorted(spec.names))})")
            lines.append(" ".join(parts))
        return lines


def hs_import1(module: str, name: str) -> HsImportSet:
    return hs_imports(module, [name])


def hs_imports(module: str, names: Sequence[str]) -> HsImportSet:
    return HsImportSet({HsImportKey(module): HsImportSpec(frozenset(names))})


def hs_whole_module_import(module: str) -> HsImportSet:
    return HsImportSet({HsImportKey(module): HsImportSpec()})


def hs_qualified_import(module: str, alias: str) -> HsImportSet:
    return HsImportSet({HsImportKey(module, alias): HsImportSpec()})


_ALIAS_MODULES = {
    "CBP": "Prelude",
    "CBF": "Foreign",
    "CBFC": "Foreign.C",
    "CBR": RUNTIME_MODULE,
    "CBSIU": "System.IO.Unsafe",
    "CBDB": "Data.Bits",
    "CBDI": "Data.Int",
    "CBDW": "Data.Word",
    "CBDM": "Data.Map",
    "CBSPT": "System.Posix.Types",
}


def hs_import_for_alias(alias: str) -> HsImportSet:
    return hs_qualified_import(_ALIAS_MODULES[alias], alias)


def import_for_prelude() -> HsImportSet:
    return hs_import_for_alias("CBP")


def import_for_foreign() -> HsImportSet:
    return hs_import_for_alias("CBF")


def import_for_foreign_c() -> HsImportSet:
    return hs_import_for_alias("CBFC")


def import_for_runtime() -> HsImportSet:
    return hs_import_for_alias("CBR")


def import_for_unsafe_io() -> HsImportSet:
    return hs_import_for_alias("CBSIU")


def import_for_bits() -> HsImportSet:
    return hs_import_for_alias("CBDB")


def import_for_map() -> HsImportSet:
    return hs_import_for_alias("CBDM")
