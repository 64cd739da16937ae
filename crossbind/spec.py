#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Specification model for crossbind.

An Interface owns Modules, Modules own Exports (variables, functions, enums,
bitspaces, callbacks and classes), and every export is identified across
languages by its external name. All entities are immutable once built; the
builder functions below return new values, in the style of
dataclasses.replace.

Cross references between entities (a method returning its own class, a
class inheriting from a class in another module) are made by external name
and resolved through the Interface, which validates names and builds the
lookup tables when it is constructed.

Usage:
    from crossbind.spec import make_class, make_interface, make_module, mk_ctor, mk_method
    from crossbind.types import int_t, void_t

    int_box = make_class(ident("IntBox"), None, [],
                         [mk_ctor("new", [int_t()])],
                         [mk_method("set", [int_t()], void_t())])
    module = add_module_exports([int_box], make_module("box", "box.hpp", "box.cpp"))
    interface = make_interface("boxes", [module])
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .common import GenerationError, SpecError, upper_first
from .types import (
    ExtName,
    Identifier,
    TConst,
    Type,
    const_t,
    ext_name_of,
    obj_t,
    ptr_t,
    to_ext_name,
)

logger = logging.getLogger("Crossbind.Spec")


# ============================================================
# Includes and Requirements
# ============================================================


@dataclass(frozen=True, order=True)
class Include:
    """A single #include line."""

    line: str

    def __str__(self) -> str:
        return self.line


def include_std(path: str) -> Include:
    """#include <path>"""
    return Include(f"#include <{path}>")


def include_local(path: str) -> Include:
    """#include "path\""""
    return Include(f'#include "{path}"')


@dataclass(frozen=True)
class ReqBundle:
    """A named group of includes that several exports share, e.g. a helper header set."""

    name: str
    includes: frozenset = frozenset()


def make_req_bundle(name: str, includes: Sequence[Include]) -> ReqBundle:
    return ReqBundle(name, frozenset(includes))


@dataclass(frozen=True)
class Reqs:
    """
    What an entity's generated C++ needs in order to compile.

    Reqs form a monoid under +: the empty Reqs() is the identity and
    combination is set union of each part.

    Attributes:
        includes: Includes needed directly
        exports: External names of other exports the generated code refers to
        bundles: Shared requirement bundles
    """

    includes: frozenset = frozenset()
    exports: frozenset = frozenset()
    bundles: frozenset = frozenset()

    def __add__(self, other: "Reqs") -> "Reqs":
        return Reqs(
            self.includes | other.includes,
            self.exports | other.exports,
            self.bundles | other.bundles,
        )

    @classmethod
    def combine(cls, reqs: Iterable["Reqs"]) -> "Reqs":
        total = cls()
        for r in reqs:
            total = total + r
        return total

    def all_includes(self) -> List[Include]:
        """Direct and bundled includes, sorted."""
        includes = set(self.includes)
        for bundle in self.bundles:
            includes.update(bundle.includes)
        return sorted(includes)


def req_include(include: Include) -> Reqs:
    return Reqs(includes=frozenset([include]))


def req_export(entity: Any) -> Reqs:
    return Reqs(exports=frozenset([ext_name_of(entity)]))


def req_bundle(bundle: ReqBundle) -> Reqs:
    return Reqs(bundles=frozenset([bundle]))


def add_reqs(reqs: Reqs, entity: Any) -> Any:
    """Returns the entity with reqs merged into its own."""
    return replace(entity, reqs=entity.reqs + reqs)


def add_req_includes(includes: Sequence[Include], entity: Any) -> Any:
    return add_reqs(Reqs.combine(req_include(i) for i in includes), entity)


# ============================================================
# Operators, Purity, Applicability
# ============================================================


class OperatorKind(Enum):
    UNARY_PREFIX = "unary prefix"
    UNARY_POSTFIX = "unary postfix"
    BINARY = "binary"
    CALL = "call"
    ARRAY = "array"


class Operator(Enum):
    """Overloadable C++ operators: (C++ symbol, external name word, kind)."""

    CALL = ("()", "CALL", OperatorKind.CALL)
    ARRAY = ("[]", "ARRAY", OperatorKind.ARRAY)
    ASSIGN = ("=", "ASSIGN", OperatorKind.BINARY)
    ADD = ("+", "ADD", OperatorKind.BINARY)
    ADD_ASSIGN = ("+=", "ADDA", OperatorKind.BINARY)
    SUBTRACT = ("-", "SUB", OperatorKind.BINARY)
    SUBTRACT_ASSIGN = ("-=", "SUBA", OperatorKind.BINARY)
    MULTIPLY = ("*", "MUL", OperatorKind.BINARY)
    MULTIPLY_ASSIGN = ("*=", "MULA", OperatorKind.BINARY)
    DIVIDE = ("/", "DIV", OperatorKind.BINARY)
    DIVIDE_ASSIGN = ("/=", "DIVA", OperatorKind.BINARY)
    MODULO = ("%", "MOD", OperatorKind.BINARY)
    MODULO_ASSIGN = ("%=", "MODA", OperatorKind.BINARY)
    NEGATE = ("-", "NEG", OperatorKind.UNARY_PREFIX)
    INC_PRE = ("++", "INC", OperatorKind.UNARY_PREFIX)
    INC_POST = ("++", "INCPOST", OperatorKind.UNARY_POSTFIX)
    DEC_PRE = ("--", "DEC", OperatorKind.UNARY_PREFIX)
    DEC_POST = ("--", "DECPOST", OperatorKind.UNARY_POSTFIX)
    EQ = ("==", "EQ", OperatorKind.BINARY)
    NE = ("!=", "NE", OperatorKind.BINARY)
    LT = ("<", "LT", OperatorKind.BINARY)
    LE = ("<=", "LE", OperatorKind.BINARY)
    GT = (">", "GT", OperatorKind.BINARY)
    GE = (">=", "GE", OperatorKind.BINARY)
    NOT = ("!", "NOT", OperatorKind.UNARY_PREFIX)
    AND = ("&&", "AND", OperatorKind.BINARY)
    OR = ("||", "OR", OperatorKind.BINARY)
    BIT_NOT = ("~", "BITNOT", OperatorKind.UNARY_PREFIX)
    BIT_AND = ("&", "BITAND", OperatorKind.BINARY)
    BIT_AND_ASSIGN = ("&=", "BITANDA", OperatorKind.BINARY)
    BIT_OR = ("|", "BITOR", OperatorKind.BINARY)
    BIT_OR_ASSIGN = ("|=", "BITORA", OperatorKind.BINARY)
    BIT_XOR = ("^", "BITXOR", OperatorKind.BINARY)
    BIT_XOR_ASSIGN = ("^=", "BITXORA", OperatorKind.BINARY)
    SHL = ("<<", "SHL", OperatorKind.BINARY)
    SHL_ASSIGN = ("<<=", "SHLA", OperatorKind.BINARY)
    SHR = (">>", "SHR", OperatorKind.BINARY)
    SHR_ASSIGN = (">>=", "SHRA", OperatorKind.BINARY)
    DEREF = ("*", "DEREF", OperatorKind.UNARY_PREFIX)
    ADDRESS = ("&", "ADDRESS", OperatorKind.UNARY_PREFIX)

    def __init__(self, symbol: str, ext_word: str, kind: OperatorKind):
        self.symbol = symbol
        self.ext_word = ext_word
        self.kind = kind


class Purity(Enum):
    NONPURE = "nonpure"
    PURE = "pure"


class MethodApplicability(Enum):
    NORMAL = "normal"
    CONST = "const"
    STATIC = "static"


FnName = Union[Identifier, Operator]


def describe_fn_name(name: Union[str, Identifier, Operator]) -> str:
    if isinstance(name, Operator):
        return f"operator{name.symbol}"
    return str(name)


def _default_ext_name(name: Union[str, Identifier, Operator]) -> ExtName:
    if isinstance(name, Operator):
        return to_ext_name(name.ext_word)
    if isinstance(name, Identifier):
        return to_ext_name(name.last_name)
    return to_ext_name(name)


def _ext_name_or_default(ext_name: Optional[str], name: Union[str, Identifier, Operator]) -> ExtName:
    if ext_name is None:
        return _default_ext_name(name)
    return ext_name_of(ext_name)


# ============================================================
# Exception Handlers
# ============================================================


@dataclass(frozen=True)
class CatchClass:
    """Catches a specific exception class, by external name."""

    name: Any

    def __post_init__(self):
        object.__setattr__(self, "name", ext_name_of(self.name))


@dataclass(frozen=True)
class CatchAll:
    """Catches anything (catch (...))."""


ExceptionHandler = Union[CatchClass, CatchAll]


def handle_exceptions(handlers: Sequence[ExceptionHandler], entity: Any) -> Any:
    """Adds exception handlers to a function, method, ctor, module or interface."""
    return replace(entity, exception_handlers=tuple(entity.exception_handlers) + tuple(handlers))


def merge_exception_handlers(*handler_lists: Sequence[ExceptionHandler]) -> List[ExceptionHandler]:
    """
    Merges handler lists, most specific first.

    Duplicates are dropped and a catch-all, if any, is moved to the end so
    that it never hides a more specific handler.
    """
    merged: List[ExceptionHandler] = []
    catch_all = False
    for handlers in handler_lists:
        for handler in handlers:
            if isinstance(handler, CatchAll):
                catch_all = True
            elif handler not in merged:
                merged.append(handler)
    if catch_all:
        merged.append(CatchAll())
    return merged


# ============================================================
# Exports
# ============================================================


@dataclass(frozen=True)
class Variable:
    """A C++ variable, exposed through a getter and (unless const) a setter."""

    identifier: Identifier
    ext_name: ExtName
    type: Type
    reqs: Reqs = Reqs()

    @property
    def getter_ext_name(self) -> ExtName:
        return ExtName(f"{self.ext_name}_get")

    @property
    def setter_ext_name(self) -> ExtName:
        return ExtName(f"{self.ext_name}_set")


def make_variable(identifier: Identifier, ext_name: Optional[str], var_type: Type) -> Variable:
    return Variable(identifier, _ext_name_or_default(ext_name, identifier), var_type)


@dataclass(frozen=True)
class Function:
    name: FnName
    ext_name: ExtName
    purity: Purity
    params: Tuple[Type, ...]
    ret: Type
    reqs: Reqs = Reqs()
    exception_handlers: Tuple[ExceptionHandler, ...] = ()


def make_fn(
    name: FnName,
    ext_name: Optional[str],
    purity: Purity,
    params: Sequence[Type],
    ret: Type,
) -> Function:
    return Function(name, _ext_name_or_default(ext_name, name), purity, tuple(params), ret)


@dataclass(frozen=True)
class CppEnum:
    """
    A C++ enum.

    Values are (number, words) pairs; the words are joined in each language's
    naming style to form the value's name.
    """

    identifier: Identifier
    ext_name: ExtName
    values: Tuple[Tuple[int, Tuple[str, ...]], ...]
    reqs: Reqs = Reqs()


def make_enum(
    identifier: Identifier,
    ext_name: Optional[str],
    values: Sequence[Tuple[int, Sequence[str]]],
) -> CppEnum:
    return CppEnum(
        identifier,
        _ext_name_or_default(ext_name, identifier),
        tuple((number, tuple(words)) for number, words in values),
    )


@dataclass(frozen=True)
class Bitspace:
    """A set of numeric bit flags, optionally convertible from an enum."""

    ext_name: ExtName
    type: Type
    values: Tuple[Tuple[int, Tuple[str, ...]], ...]
    enum: Optional[ExtName] = None
    reqs: Reqs = Reqs()


def make_bitspace(
    ext_name: str, numeric_type: Type, values: Sequence[Tuple[int, Sequence[str]]]
) -> Bitspace:
    return Bitspace(
        to_ext_name(ext_name),
        numeric_type,
        tuple((number, tuple(words)) for number, words in values),
    )


def bitspace_add_enum(enum: Any, bitspace: Bitspace) -> Bitspace:
    if bitspace.enum is not None:
        raise SpecError(f"Bitspace {bitspace.ext_name} already has an enum, {bitspace.enum}")
    return replace(bitspace, enum=ext_name_of(enum))


@dataclass(frozen=True)
class Callback:
    """A foreign function that C++ may call, wrapped in a C++ functor."""

    ext_name: ExtName
    params: Tuple[Type, ...]
    ret: Type
    throws: Optional[bool] = None
    reqs: Reqs = Reqs()


def make_callback(ext_name: str, params: Sequence[Type], ret: Type) -> Callback:
    return Callback(to_ext_name(ext_name), tuple(params), ret)


def callback_set_throws(throws: bool, callback: Callback) -> Callback:
    return replace(callback, throws=throws)


# ============================================================
# Classes
# ============================================================


@dataclass(frozen=True)
class RealMethod:
    """A method that exists on the C++ class (named member or operator)."""

    name: Union[str, Operator]


@dataclass(frozen=True)
class FnMethod:
    """A free function presented as a method; it takes the object explicitly."""

    name: FnName


MethodImpl = Union[RealMethod, FnMethod]


@dataclass(frozen=True)
class Method:
    impl: MethodImpl
    ext_name: ExtName
    applicability: MethodApplicability
    purity: Purity
    params: Tuple[Type, ...]
    ret: Type
    exception_handlers: Tuple[ExceptionHandler, ...] = ()

    @property
    def is_static(self) -> bool:
        return self.applicability == MethodApplicability.STATIC

    @property
    def is_const(self) -> bool:
        return self.applicability == MethodApplicability.CONST

    def describe(self) -> str:
        return f"{self.ext_name} ({describe_fn_name(self.impl.name)})"


def make_method(
    name: Union[str, Operator],
    ext_name: Optional[str],
    applicability: MethodApplicability,
    purity: Purity,
    params: Sequence[Type],
    ret: Type,
) -> Method:
    return Method(
        RealMethod(name),
        _ext_name_or_default(ext_name, name),
        applicability,
        purity,
        tuple(params),
        ret,
    )


def make_fn_method(
    name: FnName,
    ext_name: str,
    applicability: MethodApplicability,
    purity: Purity,
    params: Sequence[Type],
    ret: Type,
) -> Method:
    return Method(FnMethod(name), to_ext_name(ext_name), applicability, purity, tuple(params), ret)


def mk_method(name: Union[str, Operator], params: Sequence[Type], ret: Type) -> Method:
    return make_method(name, None, MethodApplicability.NORMAL, Purity.NONPURE, params, ret)


def mk_const_method(name: Union[str, Operator], params: Sequence[Type], ret: Type) -> Method:
    return make_method(name, None, MethodApplicability.CONST, Purity.NONPURE, params, ret)


def mk_static_method(name: Union[str, Operator], params: Sequence[Type], ret: Type) -> Method:
    return make_method(name, None, MethodApplicability.STATIC, Purity.NONPURE, params, ret)


def mk_method_(
    name: Union[str, Operator], ext_name: str, params: Sequence[Type], ret: Type
) -> Method:
    """mk_method with an explicit external name, for overloads."""
    return make_method(name, ext_name, MethodApplicability.NORMAL, Purity.NONPURE, params, ret)


def mk_const_method_(
    name: Union[str, Operator], ext_name: str, params: Sequence[Type], ret: Type
) -> Method:
    return make_method(name, ext_name, MethodApplicability.CONST, Purity.NONPURE, params, ret)


def mk_static_method_(
    name: Union[str, Operator], ext_name: str, params: Sequence[Type], ret: Type
) -> Method:
    return make_method(name, ext_name, MethodApplicability.STATIC, Purity.NONPURE, params, ret)


@dataclass(frozen=True)
class Ctor:
    ext_name: ExtName
    params: Tuple[Type, ...]
    exception_handlers: Tuple[ExceptionHandler, ...] = ()


def mk_ctor(ext_name: str, params: Sequence[Type]) -> Ctor:
    return Ctor(to_ext_name(ext_name), tuple(params))


@dataclass(frozen=True)
class ClassHaskellConversion:
    """
    Converts between a C++ value class and a native Haskell type.

    Attributes:
        type: The Haskell type, as source text (e.g. "CBP.Int")
        imports: Haskell imports the type and conversion functions need
        to_cpp: Haskell expression of type (hsType -> IO Foo) creating a new object
        from_cpp: Haskell expression of type (FooConst -> IO hsType)
    """

    type: str
    imports: Tuple[Any, ...] = ()
    to_cpp: str = ""
    from_cpp: str = ""


@dataclass(frozen=True)
class ClassConversion:
    haskell: Optional[ClassHaskellConversion] = None


@dataclass(frozen=True)
class Class:
    identifier: Identifier
    ext_name: ExtName
    supers: Tuple[ExtName, ...] = ()
    ctors: Tuple[Ctor, ...] = ()
    methods: Tuple[Method, ...] = ()
    conversion: ClassConversion = ClassConversion()
    dtor_is_public: bool = True
    is_exception: bool = False
    monomorphic_superclass: bool = False
    reqs: Reqs = Reqs()

    def classy_ext_name(self, name: ExtName) -> ExtName:
        """The interface-unique name of a member: <Class>_<member>."""
        return ExtName(f"{self.ext_name}_{name}")


def make_class(
    identifier: Identifier,
    ext_name: Optional[str],
    supers: Sequence[Any],
    ctors: Sequence[Ctor],
    methods: Sequence[Method],
) -> Class:
    return Class(
        identifier,
        _ext_name_or_default(ext_name, identifier),
        tuple(ext_name_of(s) for s in supers),
        tuple(ctors),
        tuple(methods),
    )


def class_add_ctors(ctors: Sequence[Ctor], cls: Class) -> Class:
    if not ctors:
        return cls
    return replace(cls, ctors=cls.ctors + tuple(ctors))


def class_add_methods(methods: Sequence[Method], cls: Class) -> Class:
    if not methods:
        return cls
    return replace(cls, methods=cls.methods + tuple(methods))


def class_set_conversion(conversion: ClassConversion, cls: Class) -> Class:
    return replace(cls, conversion=conversion)


def class_set_haskell_conversion(conversion: ClassHaskellConversion, cls: Class) -> Class:
    return replace(cls, conversion=replace(cls.conversion, haskell=conversion))


def class_set_dtor_private(cls: Class) -> Class:
    return replace(cls, dtor_is_public=False)


def class_set_monomorphic_superclass(cls: Class) -> Class:
    """Marks a class as having no virtual methods, so downcasts from it are not offered."""
    return replace(cls, monomorphic_superclass=True)


def class_make_exception(cls: Class) -> Class:
    return replace(cls, is_exception=True)


def method_effective_params(cls: Class, method: Method) -> List[Type]:
    """Parameters of the generated binding, including the object for instance methods."""
    if isinstance(method.impl, RealMethod):
        if method.applicability == MethodApplicability.NORMAL:
            return [ptr_t(obj_t(cls))] + list(method.params)
        if method.applicability == MethodApplicability.CONST:
            return [ptr_t(const_t(obj_t(cls)))] + list(method.params)
    return list(method.params)


Export = Union[Variable, Function, CppEnum, Bitspace, Callback, Class]


def describe_export(export: Export) -> str:
    kind = {
        Variable: "variable",
        Function: "function",
        CppEnum: "enum",
        Bitspace: "bitspace",
        Callback: "callback",
        Class: "class",
    }.get(type(export), "export")
    return f"{kind} {export.ext_name}"


def derived_ext_names(export: Export) -> List[ExtName]:
    """External names an export generates besides its own: accessors and class members."""
    if isinstance(export, Variable):
        if isinstance(export.type, TConst):
            return [export.getter_ext_name]
        return [export.getter_ext_name, export.setter_ext_name]
    if isinstance(export, Class):
        members = list(export.ctors) + list(export.methods)
        return [export.classy_ext_name(m.ext_name) for m in members]
    return []


# ============================================================
# Modules
# ============================================================


@dataclass(frozen=True)
class Module:
    """
    A group of exports generated together.

    Attributes:
        name: Module name, unique within the interface
        header_path: Generated C++ header path, relative to the C++ root
        source_path: Generated C++ source path, relative to the C++ root
        hs_name: Haskell module name component, appended to the interface base
    """

    name: str
    header_path: str
    source_path: str
    exports: Tuple[Export, ...] = ()
    reqs: Reqs = Reqs()
    hs_name: Optional[str] = None
    callbacks_throw: Optional[bool] = None
    exception_handlers: Tuple[ExceptionHandler, ...] = ()

    @property
    def haskell_name(self) -> str:
        if self.hs_name is not None:
            return self.hs_name
        return ".".join(upper_first(part) for part in self.name.split("."))


def make_module(name: str, header_path: str, source_path: str) -> Module:
    return Module(name, header_path, source_path)


def add_module_exports(exports: Sequence[Export], module: Module) -> Module:
    return replace(module, exports=module.exports + tuple(exports))


def module_set_hs_name(hs_name: str, module: Module) -> Module:
    return replace(module, hs_name=hs_name)


def module_set_callbacks_throw(throws: Optional[bool], module: Module) -> Module:
    return replace(module, callbacks_throw=throws)


def module_modify(module: Module, *modifiers: Callable[[Module], Module]) -> Module:
    """Applies each modifier to the module in turn."""
    for modifier in modifiers:
        module = modifier(module)
    return module


# ============================================================
# Interfaces
# ============================================================


@dataclass
class Interface:
    """
    The root of a binding definition.

    Building an Interface validates it: module names and the external names
    of all exports must be unique, and the exception support module (if any)
    must be one of the interface's modules. Lookup tables from external name
    to export and owning module are built here and used by the generators.
    """

    name: str
    modules: Tuple[Module, ...]
    hs_module_base: Tuple[str, ...] = ()
    exception_support_module: Optional[str] = None
    callbacks_throw: bool = False
    exception_handlers: Tuple[ExceptionHandler, ...] = ()

    _exports: Dict[ExtName, Export] = field(init=False, repr=False, compare=False)
    _owners: Dict[ExtName, Module] = field(init=False, repr=False, compare=False)
    _exception_ids: Dict[ExtName, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.modules = tuple(self.modules)
        self.hs_module_base = tuple(self.hs_module_base)
        self._exports = {}
        self._owners = {}
        self._exception_ids = {}

        module_names = set()
        for module in self.modules:
            if module.name in module_names:
                raise SpecError(f"Interface {self.name} has two modules named {module.name!r}")
            module_names.add(module.name)

            for export in module.exports:
                ext_name = export.ext_name
                if ext_name in self._owners:
                    raise SpecError(
                        f"Interface {self.name} defines external name {ext_name} twice: "
                        f"in module {self._owners[ext_name].name!r} and in module {module.name!r}"
                    )
                self._exports[ext_name] = export
                self._owners[ext_name] = module
                if isinstance(export, Class) and export.is_exception:
                    self._exception_ids[ext_name] = len(self._exception_ids) + 1

        # Accessor and class member names share the export namespace. A class
        # may repeat its own member names.
        derived_owners: Dict[ExtName, ExtName] = {}
        for module in self.modules:
            for export in module.exports:
                for derived in derived_ext_names(export):
                    if derived in self._owners:
                        raise SpecError(
                            f"Interface {self.name}: {describe_export(export)} derives external "
                            f"name {derived}, which module {self._owners[derived].name!r} exports"
                        )
                    owner = derived_owners.setdefault(derived, export.ext_name)
                    if owner != export.ext_name:
                        raise SpecError(
                            f"Interface {self.name}: external name {derived} is derived by "
                            f"both {owner} and {export.ext_name}"
                        )

        if (
            self.exception_support_module is not None
            and self.exception_support_module not in module_names
        ):
            raise SpecError(
                f"Interface {self.name}: exception support module "
                f"{self.exception_support_module!r} is not one of its modules"
            )

        logger.debug(
            f"Built interface {self.name}: {len(self.modules)} modules, {len(self._exports)} exports"
        )

    # ------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------

    def lookup_export(self, name: ExtName) -> Export:
        export = self._exports.get(name)
        if export is None:
            raise GenerationError(f"Interface {self.name} has no export named {name}")
        return export

    def _lookup_kind(self, name: ExtName, kind: type, kind_name: str) -> Any:
        export = self.lookup_export(name)
        if not isinstance(export, kind):
            raise GenerationError(f"Expected {name} to be a {kind_name}, found {describe_export(export)}")
        return export

    def lookup_class(self, name: ExtName) -> Class:
        return self._lookup_kind(name, Class, "class")

    def lookup_enum(self, name: ExtName) -> CppEnum:
        return self._lookup_kind(name, CppEnum, "enum")

    def lookup_bitspace(self, name: ExtName) -> Bitspace:
        return self._lookup_kind(name, Bitspace, "bitspace")

    def lookup_callback(self, name: ExtName) -> Callback:
        return self._lookup_kind(name, Callback, "callback")

    def module_for_ext_name(self, name: ExtName) -> Module:
        module = self._owners.get(name)
        if module is None:
            raise GenerationError(f"Interface {self.name} has no module exporting {name}")
        return module

    def lookup_module(self, module_name: str) -> Module:
        for module in self.modules:
            if module.name == module_name:
                return module
        raise GenerationError(f"Interface {self.name} has no module named {module_name!r}")

    # ------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------

    def module_hs_name(self, module: Module) -> str:
        return ".".join(self.hs_module_base + (module.haskell_name,))

    def exception_support(self) -> Optional[Module]:
        if self.exception_support_module is None:
            return None
        return self.lookup_module(self.exception_support_module)

    def exception_classes(self) -> List[Class]:
        """Exception classes in declaration order (their ids are 1, 2, ...)."""
        return [self.lookup_class(name) for name in self._exception_ids]

    def exception_id(self, name: ExtName) -> int:
        exception_id = self._exception_ids.get(name)
        if exception_id is None:
            raise GenerationError(f"{name} is not an exception class in interface {self.name}")
        return exception_id

    def effective_exception_handlers(
        self, module: Module, handlers: Sequence[ExceptionHandler]
    ) -> List[ExceptionHandler]:
        return merge_exception_handlers(handlers, module.exception_handlers, self.exception_handlers)

    def callback_throws(self, module: Module, callback: Callback) -> bool:
        if callback.throws is not None:
            return callback.throws
        if module.callbacks_throw is not None:
            return module.callbacks_throw
        return self.callbacks_throw

    def superclass_chain(self, cls: Class) -> List[Class]:
        """All ancestors of a class, depth first in declared superclass order."""
        result: List[Class] = []

        def visit(c: Class) -> None:
            for super_name in c.supers:
                super_cls = self.lookup_class(super_name)
                result.append(super_cls)
                visit(super_cls)

        visit(cls)
        return result


def make_interface(
    name: str,
    modules: Sequence[Module],
    hs_module_base: Sequence[str] = (),
    exception_support_module: Optional[str] = None,
    callbacks_throw: bool = False,
) -> Interface:
    return Interface(
        name,
        tuple(modules),
        hs_module_base=tuple(hs_module_base),
        exception_support_module=exception_support_module,
        callbacks_throw=callbacks_throw,
    )


def interface_add_haskell_module_base(words: Sequence[str], interface: Interface) -> Interface:
    if interface.hs_module_base:
        raise SpecError(
            f"Interface {interface.name} already has a Haskell module base "
            f"{'.'.join(interface.hs_module_base)}"
        )
    return replace(interface, hs_module_base=tuple(words))


def interface_set_exception_support_module(module: Module, interface: Interface) -> Interface:
    return replace(interface, exception_support_module=module.name)


def interface_set_callbacks_throw(throws: bool, interface: Interface) -> Interface:
    return replace(interface, callbacks_throw=throws)
