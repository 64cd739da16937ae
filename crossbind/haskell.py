#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Haskell Binding Generator for crossbind

Generates the managed half of the bindings: one Haskell module per interface
module, importing the extern "C" functions of the C++ shim and wrapping them
with all the marshaling the user should not have to see.

Every export is emitted in up to three modes:
- Foreign imports: the raw "foreign import ccall" declarations
- Declarations: the user facing types, typeclasses, instances and functions
- Boot: the subset other modules may reference, for .hs-boot files

Types have two Haskell renderings. The C side is what crosses the FFI (raw
pointers, C numbers); the Haskell side is what users see (data types wrapping
pointers, typeclass constrained object arguments, enums, native Haskell
types for convertible classes).

Usage:
    from crossbind.haskell import HaskellGenerator

    result = HaskellGenerator(interface).generate()
    if result.success:
        for path, contents in result.files.items():
            ...
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .common import GenerationError, GenerationResult, GeneratedFile, list_subst, with_error_context
from .cpp import class_cast_fn_cpp_name, class_delete_fn_cpp_name, external_name_to_cpp
from .cycles import resolve_module_cycles
from .haskell_names import (
    EXCEPTION_DB_NAME,
    HS_NUMERIC_TYPES,
    HS_UNIT,
    HsImportSet,
    HsQualType,
    HsType,
    HsTyVar,
    hs_app,
    hs_con,
    hs_fun,
    hs_import1,
    hs_import_for_alias,
    hs_imports,
    hs_io,
    hs_whole_module_import,
    import_for_bits,
    import_for_foreign,
    import_for_foreign_c,
    import_for_map,
    import_for_prelude,
    import_for_runtime,
    import_for_unsafe_io,
    to_arg_name,
    to_hs_bitspace_class_name,
    to_hs_bitspace_from_value_name,
    to_hs_bitspace_to_num_name,
    to_hs_bitspace_type_name,
    to_hs_bitspace_value_name,
    to_hs_callback_ctor_name,
    to_hs_cast_method_name,
    to_hs_cast_primitive_name,
    to_hs_class_delete_fn_name,
    to_hs_class_delete_fn_ptr_name,
    to_hs_const_cast_fn_name,
    to_hs_data_ctor_name,
    to_hs_data_type_name,
    to_hs_down_cast_class_name,
    to_hs_down_cast_method_name,
    to_hs_enum_ctor_name,
    to_hs_enum_type_name,
    to_hs_fn_name,
    to_hs_ptr_class_name,
    to_hs_value_class_name,
    to_hs_with_value_ptr_name,
)
from .spec import (
    Bitspace,
    Callback,
    Class,
    CppEnum,
    ExceptionHandler,
    FnMethod,
    Function,
    Interface,
    MethodApplicability,
    Module,
    Operator,
    Purity,
    RealMethod,
    Variable,
    method_effective_params,
)
from .types import (
    ExtName,
    TBitspace,
    TBool,
    TCallback,
    TConst,
    TEnum,
    TFn,
    TNum,
    TObj,
    TObjToHeap,
    TPtr,
    TRef,
    TToGc,
    TVar,
    TVoid,
    Type,
    const_t,
    fn_t,
    is_object_passing_type,
    obj_t,
    ptr_t,
    ref_t,
    strip_const,
    void_t,
)

logger = logging.getLogger("Crossbind.HaskellGenerator")

LANGUAGE_PRAGMA = (
    "{-# LANGUAGE FlexibleContexts, FlexibleInstances, GeneralizedNewtypeDeriving"
    ", MultiParamTypeClasses, TypeSynonymInstances, UndecidableInstances #-}"
)
GENERATED_HEADER = "-- GENERATED FILE, EDITS WILL BE LOST"
CALLBACK_WRONG_DIRECTION = "Can't receive a callback from C++"


class HsTypeSide(Enum):
    """Which rendering of a C++ type: what crosses the FFI, or what users see."""

    C = "c"
    HS = "hs"


class SayExportMode(Enum):
    FOREIGN_IMPORTS = "foreign imports"
    DECLS = "declarations"
    BOOT = "boot"


class CallDirection(Enum):
    TO_CPP = "to C++"
    FROM_CPP = "from C++"


def _hs_string(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _hs_int(number: int) -> str:
    return f"({number})" if number < 0 else str(number)


# ============================================================
# Partials
# ============================================================


@dataclass
class HsPartial:
    """
    A generated Haskell module (or boot module) whose imports are still open.

    Import cycle breaking needs to see every module's imports and then switch
    some of them to SOURCE imports, so partials are only rendered to text once
    all modules have been generated.
    """

    name: str
    module: Module
    exports: List[str] = field(default_factory=list)
    imports: HsImportSet = field(default_factory=HsImportSet)
    body: List[str] = field(default_factory=list)

    def imported_modules(self) -> List[str]:
        return self.imports.modules()

    def with_source_imports(self, names: Iterable[str]) -> "HsPartial":
        return replace(self, imports=self.imports.with_source_imports(names))

    def file_path(self, is_boot: bool) -> str:
        extension = "hs-boot" if is_boot else "hs"
        return "".join(list_subst(".", "/", list(self.name))) + "." + extension

    def render(self) -> str:
        lines = [LANGUAGE_PRAGMA, "", GENERATED_HEADER, "", f"module {self.name} ("]
        lines.extend(f"  {export}," for export in self.exports)
        lines.append("  ) where")
        lines.append("")
        lines.extend(self.imports.render())
        lines.extend(self.body)
        return "\n".join(lines) + "\n"


# ============================================================
# Generator
# ============================================================


class HaskellGenerator:
    """
    Generates the Haskell side of the bindings for an interface.

    Modules are generated independently into partials, then module import
    cycles are broken with .hs-boot companions before anything is rendered.
    Any failure abandons the whole generation.
    """

    def __init__(self, interface: Interface):
        self.interface = interface

    def generate(self) -> GenerationResult:
        """
        Generate Haskell bindings for every module of the interface.

        Generation is all or nothing: modules are generated independently,
        but the first one that fails abandons the whole interface so callers
        never write a partial set of files.

        Returns:
            GenerationResult mapping relative paths to file contents
        """
        logger.info(f"Generating Haskell bindings for interface {self.interface.name}")
        try:
            partials = []
            for module in self.interface.modules:
                with with_error_context(f"generating Haskell for module {module.name!r}"):
                    partials.append(_HsModuleGenerator(self.interface, module).generate_source())

            resolved = resolve_module_cycles(partials, self._generate_boot)
        except GenerationError as e:
            logger.error(f"Haskell generation failed: {e}")
            return GenerationResult.failure(e)

        files = [
            GeneratedFile(item.partial.file_path(item.is_boot), item.partial.render())
            for item in resolved
        ]
        logger.info(f"Generated {len(files)} Haskell files")
        return GenerationResult.from_files(files)

    def _generate_boot(self, partial: HsPartial) -> HsPartial:
        with with_error_context(f"generating Haskell boot file for module {partial.module.name!r}"):
            return _HsModuleGenerator(self.interface, partial.module).generate_boot()


def generate(interface: Interface) -> GenerationResult:
    return HaskellGenerator(interface).generate()


def cpp_type_to_hs_type(
    interface: Interface, side: HsTypeSide, t: Type, module: Optional[Module] = None
) -> HsType:
    """Renders a C++ type as a Haskell type, as seen from the given module."""
    if module is None:
        if not interface.modules:
            raise GenerationError(f"Interface {interface.name} has no modules to render types in")
        module = interface.modules[0]
    return _HsModuleGenerator(interface, module).cpp_type_to_hs_type(side, t)


class _HsModuleGenerator:
    """Per-module generation state: output lines, imports and exports."""

    def __init__(self, interface: Interface, module: Module):
        self.interface = interface
        self.module = module
        self.hs_name = interface.module_hs_name(module)
        self._partial = HsPartial(self.hs_name, module)
        self._indent_level = 0

    # ------------------------------------------------------------
    # Output
    # ------------------------------------------------------------

    def generate_source(self) -> HsPartial:
        self._add_imports(hs_imports("Prelude", []))
        for export in self.module.exports:
            self._say_export(SayExportMode.FOREIGN_IMPORTS, export)
        for export in self.module.exports:
            self._say_export(SayExportMode.DECLS, export)
        if self._is_exception_support_module():
            self._say_exception_db(SayExportMode.DECLS)
        return self._partial

    def generate_boot(self) -> HsPartial:
        self._add_imports(hs_imports("Prelude", []))
        for export in self.module.exports:
            self._say_export(SayExportMode.BOOT, export)
        if self._is_exception_support_module():
            self._say_exception_db(SayExportMode.BOOT)
        return self._partial

    def _ln(self) -> None:
        self._partial.body.append("")

    def _say(self, *parts: str) -> None:
        self._partial.body.append("  " * self._indent_level + "".join(parts))

    @contextmanager
    def _indent(self, levels: int = 1) -> Iterator[None]:
        self._indent_level += levels
        try:
            yield
        finally:
            self._indent_level -= levels

    def _add_imports(self, imports: HsImportSet) -> None:
        self._partial.imports.update(imports)

    def _add_export(self, name: str) -> None:
        if name not in self._partial.exports:
            self._partial.exports.append(name)

    def _add_export_all(self, name: str) -> None:
        """Exports a type or class with all of its constructors or methods."""
        self._add_export(f"{name} (..)")

    def _import_hs_module_for_ext_name(self, name: ExtName) -> None:
        owner = self.interface.module_for_ext_name(name)
        owner_hs_name = self.interface.module_hs_name(owner)
        if owner_hs_name != self.hs_name:
            self._add_imports(hs_whole_module_import(owner_hs_name))

    def _is_exception_support_module(self) -> bool:
        return self.interface.exception_support_module == self.module.name

    # ------------------------------------------------------------
    # Types
    # ------------------------------------------------------------

    def cpp_type_to_hs_type(self, side: HsTypeSide, t: Type) -> HsType:
        """Renders a C++ type on one side of the FFI, importing what it names."""
        if isinstance(t, TVoid):
            return HS_UNIT
        if isinstance(t, TBool):
            if side == HsTypeSide.C:
                self._add_imports(import_for_foreign_c())
                return hs_con("CBFC.CBool")
            self._add_imports(import_for_prelude())
            return hs_con("CBP.Bool")
        if isinstance(t, TNum):
            type_name, alias = HS_NUMERIC_TYPES[t.kind]
            self._add_imports(hs_import_for_alias(alias))
            return hs_con(type_name)
        if isinstance(t, TEnum):
            if side == HsTypeSide.C:
                self._add_imports(import_for_foreign_c())
                return hs_con("CBFC.CInt")
            self._import_hs_module_for_ext_name(t.name)
            return hs_con(to_hs_enum_type_name(t.name))
        if isinstance(t, TBitspace):
            if side == HsTypeSide.C:
                return self.cpp_type_to_hs_type(side, self.interface.lookup_bitspace(t.name).type)
            self._import_hs_module_for_ext_name(t.name)
            return hs_con(to_hs_bitspace_type_name(t.name))
        if isinstance(t, (TPtr, TRef)):
            target = t.target
            if isinstance(target, TFn):
                self._add_imports(import_for_foreign())
                return hs_app("CBF.FunPtr", self.cpp_type_to_hs_type(HsTypeSide.C, target))
            if isinstance(strip_const(target), TObj):
                cls_name = strip_const(target).name
                const = isinstance(target, TConst)
                self._import_hs_module_for_ext_name(cls_name)
                data_type = hs_con(to_hs_data_type_name(const, cls_name))
                if side == HsTypeSide.HS:
                    return data_type
                self._add_imports(import_for_foreign())
                return hs_app("CBF.Ptr", data_type)
            self._add_imports(import_for_foreign())
            return hs_app("CBF.Ptr", self.cpp_type_to_hs_type(HsTypeSide.C, target))
        if isinstance(t, TConst):
            return self.cpp_type_to_hs_type(side, t.target)
        if isinstance(t, TFn):
            params = [self.cpp_type_to_hs_type(side, p) for p in t.params]
            self._add_imports(import_for_prelude())
            return hs_fun(params, hs_io(self.cpp_type_to_hs_type(side, t.ret)))
        if isinstance(t, TCallback):
            cb = self.interface.lookup_callback(t.name)
            fn = fn_t(cb.params, cb.ret)
            if side == HsTypeSide.HS:
                return self.cpp_type_to_hs_type(side, fn)
            self._add_imports(import_for_runtime())
            return hs_app("CBR.CCallback", self._callback_c_fn_type(cb))
        if isinstance(t, TObj):
            if side == HsTypeSide.C:
                return self.cpp_type_to_hs_type(side, ptr_t(const_t(t)))
            cls = self.interface.lookup_class(t.name)
            conversion = cls.conversion.haskell
            if conversion is None:
                raise GenerationError(
                    f"Expected a Haskell type for {cls.ext_name} but there is none; "
                    f"pass it by pointer or reference, or give it a Haskell conversion"
                )
            for imports in conversion.imports:
                self._add_imports(imports)
            type_text = conversion.type
            if " " in type_text and type_text[0] not in "([":
                type_text = f"({type_text})"
            return hs_con(type_text)
        if isinstance(t, TObjToHeap):
            return self.cpp_type_to_hs_type(side, ptr_t(obj_t(t.name)))
        if isinstance(t, TToGc):
            target = strip_const(t.target)
            if isinstance(target, TCallback):
                raise GenerationError(CALLBACK_WRONG_DIRECTION)
            if isinstance(target, TObj):
                return self.cpp_type_to_hs_type(side, ptr_t(target))
            if is_object_passing_type(target):
                return self.cpp_type_to_hs_type(side, target)
            raise GenerationError(f"toGcT requires an object type, got {t.target}")
        if isinstance(t, TVar):
            raise GenerationError(f"Unsubstituted type variable {t.name}")
        raise GenerationError(f"Unknown type {t!r}")

    def _exception_params(self) -> List[HsType]:
        self._add_imports(import_for_foreign() + import_for_foreign_c())
        return [
            hs_app("CBF.Ptr", hs_con("CBFC.CInt")),
            hs_app("CBF.Ptr", hs_app("CBF.Ptr", HS_UNIT)),
        ]

    def _callback_c_fn_type(self, cb: Callback) -> HsType:
        params = [self.cpp_type_to_hs_type(HsTypeSide.C, p) for p in cb.params]
        owner = self.interface.module_for_ext_name(cb.ext_name)
        if self.interface.callback_throws(owner, cb):
            params += self._exception_params()
        self._add_imports(import_for_prelude())
        return hs_fun(params, hs_io(self.cpp_type_to_hs_type(HsTypeSide.C, cb.ret)))

    def fn_to_hs_type(
        self,
        side: HsTypeSide,
        purity: Purity,
        params: Sequence[Type],
        ret: Type,
        handles_exceptions: bool = False,
    ) -> HsQualType:
        """
        The type of a function binding on one side of the FFI.

        On the Haskell side, object parameters become typeclass constrained
        type variables: FooPtr for nonconst pointers and references, FooValue
        for values and const pointers and references.
        """
        context: List[Tuple[str, str]] = []
        hs_params: List[HsType] = []
        for index, param in enumerate(params, 1):
            constraint, hs_type = self._context_for_param(side, to_arg_name(index), param)
            if constraint is not None:
                context.append(constraint)
            hs_params.append(hs_type)

        if handles_exceptions and side == HsTypeSide.C:
            hs_params += self._exception_params()

        hs_return = self.cpp_type_to_hs_type(side, ret)
        if not (purity == Purity.PURE and side == HsTypeSide.HS):
            self._add_imports(import_for_prelude())
            hs_return = hs_io(hs_return)
        return HsQualType(context, hs_fun(hs_params, hs_return))

    def _context_for_param(
        self, side: HsTypeSide, var: str, t: Type
    ) -> Tuple[Optional[Tuple[str, str]], HsType]:
        t = strip_const(t)
        receive_ptr = isinstance(t, (TPtr, TRef)) and isinstance(t.target, TObj)
        receive_value = isinstance(t, TObj) or (
            isinstance(t, (TPtr, TRef))
            and isinstance(t.target, TConst)
            and isinstance(t.target.target, TObj)
        )
        if side == HsTypeSide.HS and (receive_ptr or receive_value):
            cls_name = strip_const(t if isinstance(t, TObj) else t.target).name
            self._import_hs_module_for_ext_name(cls_name)
            if receive_ptr:
                return (to_hs_ptr_class_name(False, cls_name), var), HsTyVar(var)
            self._add_imports(import_for_runtime())
            return (to_hs_value_class_name(cls_name), var), HsTyVar(var)
        return None, self.cpp_type_to_hs_type(side, t)

    # ------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------

    def _say_export(self, mode: SayExportMode, export) -> None:
        if isinstance(export, Variable):
            self._say_export_variable(mode, export)
        elif isinstance(export, CppEnum):
            self._say_export_enum(mode, export)
        elif isinstance(export, Bitspace):
            self._say_export_bitspace(mode, export)
        elif isinstance(export, Function):
            self._say_export_fn(
                mode,
                export.ext_name,
                export.purity,
                export.params,
                export.ret,
                export.exception_handlers,
            )
        elif isinstance(export, Class):
            self._say_export_class(mode, export)
        elif isinstance(export, Callback):
            self._say_export_callback(mode, export)
        else:
            raise GenerationError(f"Unknown export {export!r}")

    def _say_export_variable(self, mode: SayExportMode, var: Variable) -> None:
        with with_error_context(f"generating variable {var.ext_name}"):
            is_const = isinstance(var.type, TConst)
            value_type = strip_const(var.type)
            self._say_export_fn(mode, var.getter_ext_name, Purity.NONPURE, [], value_type)
            if not is_const:
                self._say_export_fn(mode, var.setter_ext_name, Purity.NONPURE, [value_type], void_t())

    def _say_export_fn(
        self,
        mode: SayExportMode,
        name: ExtName,
        purity: Purity,
        params: Sequence[Type],
        ret: Type,
        handlers: Sequence[ExceptionHandler] = (),
    ) -> None:
        hs_fn_name = to_hs_fn_name(name)
        hs_fn_imported_name = hs_fn_name + "'"
        handlers = self.interface.effective_exception_handlers(self.module, handlers)

        if mode == SayExportMode.FOREIGN_IMPORTS:
            with with_error_context(f"generating imports for function {name}"):
                c_type = self.fn_to_hs_type(HsTypeSide.C, purity, params, ret, bool(handlers))
                self._say(
                    f'foreign import ccall "{external_name_to_cpp(name)}" ',
                    f"{hs_fn_imported_name} :: {c_type.render()}",
                )

        elif mode == SayExportMode.DECLS:
            with with_error_context(f"generating function {name}"):
                self._ln()
                self._add_export(hs_fn_name)
                hs_type = self.fn_to_hs_type(HsTypeSide.HS, purity, params, ret)
                self._say(f"{hs_fn_name} :: {hs_type.render()}")
                if purity == Purity.PURE:
                    self._say(f"{{-# NOINLINE {hs_fn_name} #-}}")

                arg_names = [to_arg_name(i) for i in range(1, len(params) + 1)]
                converted_arg_names = [f"{a}'" for a in arg_names]
                # The last operator on this line must bind more weakly than
                # ($) and (>>=) used below.
                if purity == Purity.PURE:
                    self._add_imports(hs_import1("Prelude", "($)") + import_for_unsafe_io())
                    line_end = " = CBSIU.unsafePerformIO $"
                else:
                    line_end = " ="
                self._say(" ".join([hs_fn_name] + arg_names) + line_end)

                with self._indent():
                    for t, arg_name, converted in zip(params, arg_names, converted_arg_names):
                        self._say_arg_processing(CallDirection.TO_CPP, t, arg_name, converted)

                    call = " ".join([hs_fn_imported_name] + converted_arg_names)
                    if handlers:
                        call = self._handled_call(call)
                    self._say_call_and_process_return(CallDirection.TO_CPP, ret, call)

        # Functions can't be referenced from other exports, so boot files
        # don't need them.

    def _handled_call(self, call: str) -> str:
        support = self.interface.exception_support()
        if support is None:
            raise GenerationError(
                f"Module {self.module.name!r} uses exceptions, but interface "
                f"{self.interface.name} has no exception support module"
            )
        support_hs_name = self.interface.module_hs_name(support)
        if support_hs_name != self.hs_name:
            self._add_imports(hs_import1(support_hs_name, EXCEPTION_DB_NAME))
        self._add_imports(import_for_runtime())
        return f"CBR.internalHandleExceptions {EXCEPTION_DB_NAME} ({call})"

    # ------------------------------------------------------------
    # Argument and return value marshaling
    # ------------------------------------------------------------

    def _say_arg_processing(
        self, direction: CallDirection, t: Type, from_var: str, to_var: str
    ) -> None:
        """Emits one link of the chain that binds to_var to the converted from_var."""
        with with_error_context(f"processing argument of type {t}"):
            to_cpp = direction == CallDirection.TO_CPP

            def no_conversion() -> None:
                self._say(f"let {to_var} = {from_var} in")

            if isinstance(t, TConst):
                self._say_arg_processing(direction, t.target, from_var, to_var)
            elif isinstance(t, TVoid):
                raise GenerationError("TVoid is not a valid argument type")
            elif isinstance(t, TBool):
                if to_cpp:
                    self._say(f"let {to_var} = if {from_var} then 1 else 0 in")
                else:
                    self._add_imports(hs_import1("Prelude", "(/=)"))
                    self._say(f"let {to_var} = {from_var} /= 0 in")
            elif isinstance(t, TNum):
                no_conversion()
            elif isinstance(t, TEnum):
                self._add_imports(hs_import1("Prelude", "($)") + import_for_prelude() + import_for_runtime())
                conversion = (
                    " = CBR.coerceIntegral $ CBP.fromEnum "
                    if to_cpp
                    else " = CBP.toEnum $ CBR.coerceIntegral "
                )
                self._say(f"let {to_var}{conversion}{from_var} in")
            elif isinstance(t, TBitspace):
                self._import_hs_module_for_ext_name(t.name)
                conv = (
                    to_hs_bitspace_to_num_name(t.name)
                    if to_cpp
                    else to_hs_bitspace_from_value_name(t.name)
                )
                self._say(f"let {to_var} = {conv} {from_var} in")
            elif isinstance(t, TPtr) and isinstance(t.target, TObj):
                cls_name = t.target.name
                self._import_hs_module_for_ext_name(cls_name)
                if to_cpp:
                    self._add_imports(hs_import1("Prelude", "($)") + import_for_runtime())
                    self._say(
                        f"CBR.withCppPtr ({to_hs_cast_method_name(False, cls_name)} {from_var}) "
                        f"$ \\{to_var} ->"
                    )
                else:
                    self._say(
                        f"let {to_var} = {to_hs_data_ctor_name(False, False, cls_name)} {from_var} in"
                    )
            elif (
                isinstance(t, TPtr)
                and isinstance(t.target, TConst)
                and isinstance(t.target.target, TObj)
            ):
                cls_name = t.target.target.name
                self._import_hs_module_for_ext_name(cls_name)
                if to_cpp:
                    self._say_with_value_ptr(cls_name, from_var, to_var)
                else:
                    self._say(
                        f"let {to_var} = {to_hs_data_ctor_name(False, True, cls_name)} {from_var} in"
                    )
            elif isinstance(t, TPtr):
                no_conversion()
            elif isinstance(t, TRef):
                self._say_arg_processing(direction, ptr_t(t.target), from_var, to_var)
            elif isinstance(t, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            elif isinstance(t, TCallback):
                if not to_cpp:
                    raise GenerationError(CALLBACK_WRONG_DIRECTION)
                self._add_imports(hs_import1("Prelude", "(>>=)"))
                self._import_hs_module_for_ext_name(t.name)
                self._say(f"{to_hs_callback_ctor_name(t.name)} {from_var} >>= \\{to_var} ->")
            elif isinstance(t, TObj):
                self._import_hs_module_for_ext_name(t.name)
                if to_cpp:
                    self._say_with_value_ptr(t.name, from_var, to_var)
                else:
                    self._add_imports(hs_import1("Prelude", "(>>=)") + import_for_runtime())
                    self._say(
                        f"CBR.decode ({to_hs_data_ctor_name(False, True, t.name)} {from_var}) "
                        f">>= \\{to_var} ->"
                    )
            elif isinstance(t, TObjToHeap):
                if to_cpp:
                    raise GenerationError(
                        f"objToHeapT {t.name} cannot be passed into C++; it only flows from C++"
                    )
                self._say_arg_processing(direction, ptr_t(obj_t(t.name)), from_var, to_var)
            elif isinstance(t, TToGc):
                if to_cpp:
                    raise GenerationError(
                        f"toGcT ({t.target}) cannot be passed into C++; it only flows from C++"
                    )
                self._say_to_gc_arg(t.target, from_var, to_var)
            else:
                raise GenerationError(f"Unsupported argument type {t}")

    def _say_with_value_ptr(self, cls_name: ExtName, from_var: str, to_var: str) -> None:
        self._add_imports(hs_import1("Prelude", "($)") + import_for_prelude() + import_for_runtime())
        self._say(
            f"{to_hs_with_value_ptr_name(cls_name)} {from_var} "
            f"$ CBP.flip CBR.withCppPtr $ \\{to_var} ->"
        )

    def _say_to_gc_arg(self, target: Type, from_var: str, to_var: str) -> None:
        base = strip_const(target)
        if isinstance(base, TCallback):
            raise GenerationError("Can't pass a callback from C++ into a callback")
        if not is_object_passing_type(base):
            raise GenerationError(f"toGcT requires an object type, got {target}")
        if isinstance(base, TObj):
            cls_name, const = base.name, False
        else:
            cls_name, const = strip_const(base.target).name, isinstance(base.target, TConst)
        self._import_hs_module_for_ext_name(cls_name)
        self._add_imports(hs_import1("Prelude", "(>>=)") + import_for_runtime())
        ctor = to_hs_data_ctor_name(False, const, cls_name)
        self._say(f"CBR.toGcPtr ({ctor} {from_var}) >>= \\{to_var} ->")

    def _say_call_and_process_return(self, direction: CallDirection, t: Type, call: str) -> None:
        """
        Emits the call and converts its result.

        The direction is that of the call: TO_CPP returns from C++ into
        Haskell, FROM_CPP returns from a Haskell callback into C++.
        """
        with with_error_context(f"processing return value of type {t}"):
            to_cpp = direction == CallDirection.TO_CPP

            def say_call() -> None:
                self._say(f"({call})")

            if isinstance(t, TConst):
                self._say_call_and_process_return(direction, t.target, call)
            elif isinstance(t, TVoid):
                say_call()
            elif isinstance(t, TBool):
                self._add_imports(import_for_prelude())
                if to_cpp:
                    self._add_imports(hs_import1("Prelude", "(/=)"))
                    self._say("CBP.fmap (/= 0)")
                else:
                    self._say("CBP.fmap (\\x -> if x then 1 else 0)")
                say_call()
            elif isinstance(t, TNum):
                say_call()
            elif isinstance(t, TEnum):
                self._add_imports(hs_import1("Prelude", "(.)") + import_for_prelude() + import_for_runtime())
                if to_cpp:
                    self._say("CBP.fmap (CBP.toEnum . CBR.coerceIntegral)")
                else:
                    self._say("CBP.fmap (CBR.coerceIntegral . CBP.fromEnum)")
                say_call()
            elif isinstance(t, TBitspace):
                self._add_imports(import_for_prelude())
                self._import_hs_module_for_ext_name(t.name)
                conv = (
                    to_hs_bitspace_from_value_name(t.name)
                    if to_cpp
                    else to_hs_bitspace_to_num_name(t.name)
                )
                self._say(f"CBP.fmap {conv}")
                say_call()
            elif isinstance(t, TPtr) and isinstance(strip_const(t.target), TObj):
                cls_name = strip_const(t.target).name
                const = isinstance(t.target, TConst)
                self._import_hs_module_for_ext_name(cls_name)
                self._add_imports(import_for_prelude())
                if to_cpp:
                    self._say(f"CBP.fmap {to_hs_data_ctor_name(False, const, cls_name)}")
                else:
                    self._add_imports(import_for_runtime())
                    self._say("CBP.fmap CBR.toPtr")
                say_call()
            elif isinstance(t, TPtr):
                say_call()
            elif isinstance(t, TRef):
                self._say_call_and_process_return(direction, ptr_t(t.target), call)
            elif isinstance(t, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            elif isinstance(t, TCallback):
                if to_cpp:
                    raise GenerationError(CALLBACK_WRONG_DIRECTION)
                self._add_imports(hs_import1("Prelude", "(=<<)"))
                self._import_hs_module_for_ext_name(t.name)
                self._say(f"{to_hs_callback_ctor_name(t.name)} =<<")
                say_call()
            elif isinstance(t, TObj):
                self._import_hs_module_for_ext_name(t.name)
                self._add_imports(hs_imports("Prelude", ["(.)", "(=<<)"]) + import_for_runtime())
                if to_cpp:
                    self._say(
                        f"(CBR.decodeAndDelete . {to_hs_data_ctor_name(False, True, t.name)}) =<<"
                    )
                else:
                    self._add_imports(import_for_prelude())
                    self._say("(CBP.fmap (CBR.toPtr) . CBR.encode) =<<")
                say_call()
            elif isinstance(t, TObjToHeap):
                if not to_cpp:
                    raise GenerationError(
                        f"objToHeapT {t.name} cannot be returned from a callback; it only flows from C++"
                    )
                self._say_call_and_process_return(direction, ptr_t(obj_t(t.name)), call)
            elif isinstance(t, TToGc):
                if not to_cpp:
                    raise GenerationError(
                        f"toGcT ({t.target}) cannot be returned from a callback; it only flows from C++"
                    )
                target = strip_const(t.target)
                if isinstance(target, TCallback):
                    raise GenerationError(CALLBACK_WRONG_DIRECTION)
                if not is_object_passing_type(target):
                    raise GenerationError(f"toGcT requires an object type, got {t.target}")
                self._add_imports(hs_import1("Prelude", "(=<<)") + import_for_runtime())
                self._say("CBR.toGcPtr =<<")
                # A collected object is a pointer, not a decoded value.
                if isinstance(target, TObj):
                    target = ptr_t(target)
                self._say_call_and_process_return(direction, target, call)
            else:
                raise GenerationError(f"Unsupported return type {t}")

    # ------------------------------------------------------------
    # Enums and bitspaces
    # ------------------------------------------------------------

    def _say_export_enum(self, mode: SayExportMode, enum: CppEnum) -> None:
        with with_error_context(f"generating enum {enum.ext_name}"):
            hs_type_name = to_hs_enum_type_name(enum.ext_name)

            if mode == SayExportMode.DECLS:
                values = [
                    (number, to_hs_enum_ctor_name(enum.ext_name, words))
                    for number, words in enum.values
                ]
                self._add_imports(hs_imports("Prelude", ["($)", "(++)"]) + import_for_prelude())
                self._ln()
                self._add_export_all(hs_type_name)
                self._say(f"data {hs_type_name} =")
                with self._indent():
                    for index, (_, ctor_name) in enumerate(values):
                        self._say("| " if index else "", ctor_name)
                    self._say("deriving (CBP.Bounded, CBP.Eq, CBP.Ord, CBP.Show)")

                self._ln()
                self._say(f"instance CBP.Enum {hs_type_name} where")
                with self._indent():
                    for number, ctor_name in values:
                        self._say(f"fromEnum {ctor_name} = {number}")
                    self._ln()
                    for number, ctor_name in values:
                        self._say(f"toEnum ({number}) = {ctor_name}")
                    message = _hs_string(f"Unknown {hs_type_name} numeric value: ")
                    self._say(f"toEnum n' = CBP.error $ {message} ++ CBP.show n'")

            elif mode == SayExportMode.BOOT:
                self._add_imports(import_for_prelude())
                self._add_export(hs_type_name)
                self._ln()
                self._say(f"data {hs_type_name}")
                for type_class in ("Bounded", "Enum", "Eq", "Ord", "Show"):
                    self._say(f"instance CBP.{type_class} {hs_type_name}")

            # Enums cross the FFI as plain ints; there is nothing to import.

    def _say_export_bitspace(self, mode: SayExportMode, bitspace: Bitspace) -> None:
        with with_error_context(f"generating bitspace {bitspace.ext_name}"):
            if mode == SayExportMode.FOREIGN_IMPORTS:
                return

            name = bitspace.ext_name
            hs_type_name = to_hs_bitspace_type_name(name)
            from_fn_name = to_hs_bitspace_to_num_name(name)
            class_name = to_hs_bitspace_class_name(name)
            to_fn_name = to_hs_bitspace_from_value_name(name)
            decls = mode == SayExportMode.DECLS

            hs_num_type = self.cpp_type_to_hs_type(HsTypeSide.HS, bitspace.type).render()
            self._add_imports(import_for_bits() + import_for_prelude())
            self._add_export_all(hs_type_name)
            self._add_export_all(class_name)
            self._ln()
            self._say(f"newtype {hs_type_name} = {hs_type_name} {{ {from_fn_name} :: {hs_num_type} }}")
            if decls:
                with self._indent():
                    self._say("deriving (CBDB.Bits, CBP.Bounded, CBP.Eq, CBP.Ord, CBP.Show)")
            else:
                self._ln()
                for type_class in ("CBDB.Bits", "CBP.Bounded", "CBP.Eq", "CBP.Ord", "CBP.Show"):
                    self._say(f"instance {type_class} {hs_type_name}")
            self._ln()
            self._say(f"class {class_name} a where")
            with self._indent():
                self._say(f"{to_fn_name} :: a -> {hs_type_name}")
            self._ln()
            if decls:
                self._say(f"instance {class_name} ({hs_num_type}) where")
                with self._indent():
                    self._say(f"{to_fn_name} = {hs_type_name}")
            else:
                self._say(f"instance {class_name} ({hs_num_type})")

            if bitspace.enum is not None:
                enum_type_name = to_hs_enum_type_name(bitspace.enum)
                self._import_hs_module_for_ext_name(bitspace.enum)
                if decls:
                    self._add_imports(hs_import1("Prelude", "(.)") + import_for_runtime())
                    self._ln()
                    self._say(f"instance {class_name} {enum_type_name} where")
                    with self._indent():
                        self._say(
                            f"{to_fn_name} = {hs_type_name} . CBR.coerceIntegral . CBP.fromEnum"
                        )
                else:
                    self._say(f"instance {class_name} {enum_type_name}")

            if decls:
                self._ln()
                for number, words in bitspace.values:
                    value_name = to_hs_bitspace_value_name(name, words)
                    self._add_export(value_name)
                    self._say(f"{value_name} = {hs_type_name} {_hs_int(number)}")

    # ------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------

    def _say_export_callback(self, mode: SayExportMode, cb: Callback) -> None:
        """
        Emits the constructor that wraps a Haskell function as a C++ callback.

        The constructor is only used by bindings that take the callback as an
        argument; users pass plain Haskell functions.
        """
        with with_error_context(f"generating callback {cb.ext_name}"):
            hs_fn_name = to_hs_callback_ctor_name(cb.ext_name)
            new_fun_ptr_name = f"{hs_fn_name}'newFunPtr"
            new_callback_name = f"{hs_fn_name}'newCallback"
            throws = self.interface.callback_throws(self.module, cb)

            hs_fn_c_type = self._callback_c_fn_type(cb)
            hs_fn_hs_type = self.cpp_type_to_hs_type(HsTypeSide.HS, fn_t(cb.params, cb.ret))
            self._add_imports(import_for_prelude() + import_for_runtime())
            whole_fn_type = hs_fun([hs_fn_hs_type], hs_io(hs_app("CBR.CCallback", hs_fn_c_type)))

            if mode == SayExportMode.FOREIGN_IMPORTS:
                self._add_imports(import_for_foreign())
                fun_ptr_type = hs_app("CBF.FunPtr", hs_fn_c_type)
                release_type = hs_app(
                    "CBF.FunPtr", hs_fun([hs_app("CBF.FunPtr", hs_io(HS_UNIT))], hs_io(HS_UNIT))
                )
                new_fun_ptr_type = hs_fun([hs_fn_c_type], hs_io(fun_ptr_type))
                new_callback_type = hs_fun(
                    [fun_ptr_type, release_type, hs_con("CBP.Bool")],
                    hs_io(hs_app("CBR.CCallback", hs_fn_c_type)),
                )
                self._say(f'foreign import ccall "wrapper" {new_fun_ptr_name} :: {new_fun_ptr_type}')
                self._say(
                    f'foreign import ccall "{external_name_to_cpp(cb.ext_name)}" '
                    f"{new_callback_name} :: {new_callback_type}"
                )

            elif mode == SayExportMode.DECLS:
                self._add_export(hs_fn_name)
                arg_names = [to_arg_name(i) for i in range(1, len(cb.params) + 1)]
                c_arg_names = list(arg_names)
                if throws:
                    c_arg_names += ["excId'", "excPtr'"]
                self._ln()
                self._say(f"{hs_fn_name} :: {whole_fn_type}")
                self._say(f"{hs_fn_name} f'hs = do")
                with self._indent():
                    self._say(" ".join(["let f'c"] + c_arg_names + ["="]))
                    with self._indent(3):
                        if throws:
                            self._add_imports(hs_import1("Prelude", "($)"))
                            self._say("CBR.internalHandleCallbackExceptions excId' excPtr' $")
                        for t, arg_name in zip(cb.params, arg_names):
                            self._say_arg_processing(CallDirection.FROM_CPP, t, arg_name, f"{arg_name}'")
                        call = " ".join(["f'hs"] + [f"{a}'" for a in arg_names])
                        self._say_call_and_process_return(CallDirection.FROM_CPP, cb.ret, call)
                    self._say(f"f'p <- {new_fun_ptr_name} f'c")
                    self._say(f"{new_callback_name} f'p CBR.freeHaskellFunPtrFunPtr CBP.False")

            else:
                self._add_export(hs_fn_name)
                self._ln()
                self._say(f"{hs_fn_name} :: {whole_fn_type}")

    # ------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------

    def _say_export_class(self, mode: SayExportMode, cls: Class) -> None:
        with with_error_context(f"generating class {cls.ext_name}"):
            if mode == SayExportMode.FOREIGN_IMPORTS:
                self._say_class_ctors(mode, cls)
                for method in cls.methods:
                    self._say_export_fn(
                        mode,
                        cls.classy_ext_name(method.ext_name),
                        method.purity,
                        method_effective_params(cls, method),
                        method.ret,
                        method.exception_handlers,
                    )
            elif mode == SayExportMode.DECLS:
                self._say_class_hs_class(True, cls, True)
                self._say_class_hs_class(True, cls, False)
                self._say_class_static_methods(cls)
                self._say_class_hs_type(True, cls, True)
                self._say_class_hs_type(True, cls, False)
                self._say_class_ctors(mode, cls)
            else:
                self._say_class_hs_class(False, cls, True)
                self._say_class_hs_class(False, cls, False)
                self._say_class_hs_type(False, cls, True)
                self._say_class_hs_type(False, cls, False)

            self._say_class_cast_primitives(mode, cls)
            self._say_class_special_fns(mode, cls)
            if cls.is_exception:
                self._say_class_exception_instance(mode, cls)

    def _say_class_ctors(self, mode: SayExportMode, cls: Class) -> None:
        for ctor in cls.ctors:
            self._say_export_fn(
                mode,
                cls.classy_ext_name(ctor.ext_name),
                Purity.NONPURE,
                ctor.params,
                ptr_t(obj_t(cls)),
                ctor.exception_handlers,
            )

    def _say_class_static_methods(self, cls: Class) -> None:
        for method in cls.methods:
            if method.is_static:
                self._say_export_fn(
                    SayExportMode.DECLS,
                    cls.classy_ext_name(method.ext_name),
                    method.purity,
                    method.params,
                    method.ret,
                    method.exception_handlers,
                )

    def _say_class_hs_class(self, do_decls: bool, cls: Class, const: bool) -> None:
        """The value class (once, with the const half) and a pointer class."""
        name = cls.ext_name
        hs_type_name = to_hs_data_type_name(const, name)
        value_class_name = to_hs_value_class_name(name)
        with_value_ptr_name = to_hs_with_value_ptr_name(name)
        ptr_class_name = to_hs_ptr_class_name(const, name)
        cast_method_name = to_hs_cast_method_name(const, name)
        where = " where" if do_decls else ""

        for super_name in cls.supers:
            self._import_hs_module_for_ext_name(super_name)
        if const:
            hs_supers = [to_hs_ptr_class_name(True, s) for s in cls.supers]
        else:
            hs_supers = [to_hs_ptr_class_name(True, name)] + [
                to_hs_ptr_class_name(False, s) for s in cls.supers
            ]
        if not hs_supers:
            self._add_imports(import_for_runtime())
            hs_supers = ["CBR.CppPtr"]

        if const:
            self._add_imports(import_for_prelude())
            self._add_export_all(value_class_name)
            self._ln()
            self._say(f"class {value_class_name} a where")
            with self._indent():
                self._say(f"{with_value_ptr_name} :: a -> ({hs_type_name} -> CBP.IO b) -> CBP.IO b")

            self._ln()
            self._say(f"instance {{-# OVERLAPPABLE #-}} {ptr_class_name} a => {value_class_name} a{where}")
            if do_decls:
                self._add_imports(hs_imports("Prelude", ["($)", "(.)"]))
                with self._indent():
                    self._say(f"{with_value_ptr_name} = CBP.flip ($) . {cast_method_name}")

            conversion = cls.conversion.haskell
            if conversion is not None:
                hs_type = self.cpp_type_to_hs_type(HsTypeSide.HS, obj_t(cls)).render()
                self._ln()
                hs_type_text = hs_type if hs_type.startswith("(") else f"({hs_type})"
                self._say(f"instance {{-# OVERLAPPING #-}} {value_class_name} {hs_type_text}{where}")
                if do_decls:
                    self._add_imports(import_for_runtime())
                    with self._indent():
                        self._say(f"{with_value_ptr_name} = CBR.withCppObj")

        self._add_export_all(ptr_class_name)
        self._ln()
        supers_text = ", ".join(f"{s} this" for s in hs_supers)
        self._say(f"class ({supers_text}) => {ptr_class_name} this where")
        with self._indent():
            self._say(f"{cast_method_name} :: this -> {hs_type_name}")

        if do_decls:
            for method in cls.methods:
                if method.is_static or method.is_const != const:
                    continue
                self._say_export_fn(
                    SayExportMode.DECLS,
                    cls.classy_ext_name(method.ext_name),
                    method.purity,
                    method_effective_params(cls, method),
                    method.ret,
                    method.exception_handlers,
                )

    def _say_class_hs_type(self, do_decls: bool, cls: Class, const: bool) -> None:
        """The data type wrapping a (const or nonconst) object pointer, and its instances."""
        name = cls.ext_name
        hs_type_name = to_hs_data_type_name(const, name)
        hs_ctor = to_hs_data_ctor_name(False, const, name)
        hs_ctor_gc = to_hs_data_ctor_name(True, const, name)

        self._add_imports(import_for_foreign() + import_for_prelude() + import_for_runtime())
        # The data constructors must be exported so that GHC can marshal the
        # type in foreign calls in other modules.
        self._add_export_all(hs_type_name)
        self._ln()
        self._say(f"data {hs_type_name} =")
        with self._indent():
            self._say(f"  {hs_ctor} (CBF.Ptr {hs_type_name})")
            self._say(f"| {hs_ctor_gc} (CBF.ForeignPtr ()) (CBF.Ptr {hs_type_name})")
        if do_decls:
            self._add_imports(hs_import1("Prelude", "(==)"))
            with self._indent():
                self._say("deriving (CBP.Show)")
            self._ln()
            self._say(f"instance CBP.Eq {hs_type_name} where")
            with self._indent():
                self._say("x == y = CBR.toPtr x == CBR.toPtr y")
            self._ln()
            self._say(f"instance CBP.Ord {hs_type_name} where")
            with self._indent():
                self._say("compare x y = CBP.compare (CBR.toPtr x) (CBR.toPtr y)")

        # castFooToConst :: Foo -> FooConst, castFooToNonconst :: FooConst -> Foo
        self._ln()
        const_cast_fn_name = to_hs_const_cast_fn_name(const, name)
        self._add_export(const_cast_fn_name)
        self._say(f"{const_cast_fn_name} :: {to_hs_data_type_name(not const, name)} -> {hs_type_name}")
        if do_decls:
            self._add_imports(hs_import1("Prelude", "($)"))
            self._say(
                f"{const_cast_fn_name} ({to_hs_data_ctor_name(False, not const, name)} ptr') = "
                f"{hs_ctor} $ CBF.castPtr ptr'"
            )
            self._say(
                f"{const_cast_fn_name} ({to_hs_data_ctor_name(True, not const, name)} fptr' ptr') = "
                f"{hs_ctor_gc} fptr' $ CBF.castPtr ptr'"
            )

        self._ln()
        if do_decls:
            self._say_cpp_ptr_instance(cls, const)
        else:
            self._say(f"instance CBR.CppPtr {hs_type_name}")
            if cls.dtor_is_public:
                self._say(f"instance CBR.Deletable {hs_type_name}")

        self._say_ptr_class_instances(do_decls, cls, const, [], cls)

    def _say_cpp_ptr_instance(self, cls: Class, const: bool) -> None:
        name = cls.ext_name
        hs_type_name = to_hs_data_type_name(const, name)
        hs_ctor = to_hs_data_ctor_name(False, const, name)
        hs_ctor_gc = to_hs_data_ctor_name(True, const, name)

        self._add_imports(hs_imports("Prelude", ["($)", "(==)"]))
        self._say(f"instance CBR.CppPtr {hs_type_name} where")
        with self._indent():
            self._say(f"nullptr = {hs_ctor} CBF.nullPtr")
            self._ln()
            if cls.dtor_is_public:
                # The delete function takes a const pointer; it is cast to take
                # a Ptr () to match the ForeignPtr ().
                self._say(
                    f"toGcPtr this'@({hs_ctor} ptr') = "
                    f"if ptr' == CBF.nullPtr then CBP.return this' else CBP.fmap "
                    f"(CBP.flip {hs_ctor_gc} ptr') $ CBF.newForeignPtr "
                    f"(CBF.castFunPtr {to_hs_class_delete_fn_ptr_name(name)} "
                    f":: CBF.FunPtr (CBF.Ptr () -> CBP.IO ())) (CBF.castPtr ptr' :: CBF.Ptr ())"
                )
                self._say(f"toGcPtr this'@({hs_ctor_gc} {{}}) = CBP.return this'")
            else:
                message = _hs_string(
                    f"CppPtr.toGcPtr: {hs_type_name} can't be garbage collected, "
                    f"its destructor is not public."
                )
                self._say(f"toGcPtr _ = CBP.fail {message}")
            self._ln()
            self._say(f"withCppPtr ({hs_ctor} ptr') f' = f' ptr'")
            self._say(f"withCppPtr ({hs_ctor_gc} fptr' ptr') f' = CBF.withForeignPtr fptr' $ \\_ -> f' ptr'")
            self._ln()
            self._say(f"toPtr ({hs_ctor} ptr') = ptr'")
            self._say(f"toPtr ({hs_ctor_gc} _ ptr') = ptr'")
            self._ln()
            self._say(f"touchCppPtr ({hs_ctor} _) = CBP.return ()")
            self._say(f"touchCppPtr ({hs_ctor_gc} fptr' _) = CBF.touchForeignPtr fptr'")

        if cls.dtor_is_public:
            delete_fn = to_hs_class_delete_fn_name(name)
            self._ln()
            self._say(f"instance CBR.Deletable {hs_type_name} where")
            with self._indent():
                if const:
                    self._say(f"delete ({hs_ctor} ptr') = {delete_fn} ptr'")
                else:
                    self._say(
                        f"delete ({hs_ctor} ptr') = {delete_fn} $ "
                        f"(CBF.castPtr ptr' :: CBF.Ptr {to_hs_data_type_name(True, name)})"
                    )
                message = _hs_string(hs_type_name)
                self._say(
                    f"delete ({hs_ctor_gc} _ _) = CBP.fail $ CBP.concat "
                    f'["Deletable.delete: Trying to delete GC-managed ", {message}, " object."]'
                )

    def _say_ptr_class_instances(
        self, do_decls: bool, cls: Class, const: bool, path: List[Class], ancestor: Class
    ) -> None:
        """
        Instances of the pointer classes of a class and all of its ancestors.

        Each cast unwraps the pointer, maybe adds const, maybe upcasts, maybe
        removes const, and rewraps it. For Bar inheriting from Foo:

            instance FooPtr Bar where
              toFoo (Bar ptr') = Foo $ (CBF.castPtr :: ...) $ castBarToFoo $ (CBF.castPtr :: ...) ptr'
        """
        hs_type_name = to_hs_data_type_name(const, cls.ext_name)
        self._import_hs_module_for_ext_name(ancestor.ext_name)
        typeclass_consts = [True] if const else [True, False]
        for typeclass_const in typeclass_consts:
            self._ln()
            self._say(
                f"instance {to_hs_ptr_class_name(typeclass_const, ancestor.ext_name)} {hs_type_name}",
                " where" if do_decls else "",
            )
            if not do_decls:
                continue
            with self._indent():
                cast_method_name = to_hs_cast_method_name(typeclass_const, ancestor.ext_name)
                if not path and const == typeclass_const:
                    self._add_imports(import_for_prelude())
                    self._say(f"{cast_method_name} = CBP.id")
                    continue

                add_const = not const
                remove_const = not typeclass_const
                if add_const or remove_const:
                    self._add_imports(import_for_foreign())
                for managed in (False, True):
                    ancestor_ctor = to_hs_data_ctor_name(managed, typeclass_const, ancestor.ext_name)
                    pattern = to_hs_data_ctor_name(managed, const, cls.ext_name)
                    if managed:
                        ancestor_ctor += " fptr'"
                        pattern += " fptr' ptr'"
                    else:
                        pattern += " ptr'"
                    parts = [f"{cast_method_name} ({pattern}) = {ancestor_ctor}"]
                    if remove_const:
                        parts.append(
                            f" $ (CBF.castPtr :: CBF.Ptr {to_hs_data_type_name(True, ancestor.ext_name)}"
                            f" -> CBF.Ptr {to_hs_data_type_name(False, ancestor.ext_name)})"
                        )
                    if path:
                        parts.append(f" $ {to_hs_cast_primitive_name(cls.ext_name, ancestor.ext_name)}")
                    if add_const:
                        parts.append(
                            f" $ (CBF.castPtr :: CBF.Ptr {to_hs_data_type_name(False, cls.ext_name)}"
                            f" -> CBF.Ptr {to_hs_data_type_name(True, cls.ext_name)})"
                        )
                    parts.append(" ptr'")
                    self._add_imports(hs_import1("Prelude", "($)"))
                    self._say(*parts)

        for super_name in ancestor.supers:
            super_cls = self.interface.lookup_class(super_name)
            self._say_ptr_class_instances(do_decls, cls, const, [ancestor] + path, super_cls)

    def _ancestors(self, cls: Class) -> List[Class]:
        result: List[Class] = []

        def visit(c: Class) -> None:
            for super_name in c.supers:
                super_cls = self.interface.lookup_class(super_name)
                if super_cls not in result:
                    result.append(super_cls)
                visit(super_cls)

        visit(cls)
        return result

    def _class_is_subclass_of_monomorphic(self, cls: Class) -> bool:
        return any(a.monomorphic_superclass for a in self.interface.superclass_chain(cls))

    def _say_class_cast_primitives(self, mode: SayExportMode, cls: Class) -> None:
        name = cls.ext_name
        cls_type = to_hs_data_type_name(True, name)

        if mode == SayExportMode.FOREIGN_IMPORTS:
            allow_downcasts = not self._class_is_subclass_of_monomorphic(cls)
            for super_cls in self._ancestors(cls):
                super_type = to_hs_data_type_name(True, super_cls.ext_name)
                cast_fn_name = to_hs_cast_primitive_name(name, super_cls.ext_name)
                self._add_imports(import_for_foreign())
                self._add_export(cast_fn_name)
                self._say(
                    f'foreign import ccall "{class_cast_fn_cpp_name(cls, super_cls)}" '
                    f"{cast_fn_name} :: CBF.Ptr {cls_type} -> CBF.Ptr {super_type}"
                )
                if allow_downcasts and not super_cls.monomorphic_superclass:
                    down_cast_fn_name = to_hs_cast_primitive_name(super_cls.ext_name, name)
                    self._add_export(down_cast_fn_name)
                    self._say(
                        f'foreign import ccall "{class_cast_fn_cpp_name(super_cls, cls)}" '
                        f"{down_cast_fn_name} :: CBF.Ptr {super_type} -> CBF.Ptr {cls_type}"
                    )

        elif mode == SayExportMode.DECLS:
            # Downcasts are not referenced by other bindings, so they stay out
            # of boot files.
            if self._class_is_subclass_of_monomorphic(cls):
                return
            for const in (True, False):
                down_cast_class_name = to_hs_down_cast_class_name(const, name)
                down_cast_method_name = to_hs_down_cast_method_name(const, name)
                self._add_export_all(down_cast_class_name)
                self._ln()
                self._say(f"class {down_cast_class_name} a where")
                with self._indent():
                    self._say(f"{down_cast_method_name} :: a -> {to_hs_data_type_name(const, name)}")
                self._ln()
                for super_cls in self._ancestors(cls):
                    self._say_down_cast_instance(cls, super_cls, const)

        else:
            for super_cls in self._ancestors(cls):
                cast_fn_name = to_hs_cast_primitive_name(name, super_cls.ext_name)
                super_type = to_hs_data_type_name(True, super_cls.ext_name)
                self._add_imports(import_for_foreign())
                self._add_export(cast_fn_name)
                self._say(f"{cast_fn_name} :: CBF.Ptr {cls_type} -> CBF.Ptr {super_type}")

    def _say_down_cast_instance(self, cls: Class, super_cls: Class, const: bool) -> None:
        name = cls.ext_name
        super_type_name = to_hs_data_type_name(const, super_cls.ext_name)
        primitive_cast_fn = to_hs_cast_primitive_name(super_cls.ext_name, name)
        self._import_hs_module_for_ext_name(super_cls.ext_name)
        self._add_imports(hs_imports("Prelude", ["($)", "(.)"]))
        self._say(f"instance {to_hs_down_cast_class_name(const, name)} {super_type_name} where")
        with self._indent():
            method = to_hs_down_cast_method_name(const, name)
            if const:
                self._say(f"{method} = cast'")
            else:
                self._say(
                    f"{method} = {to_hs_const_cast_fn_name(False, name)} . cast' . "
                    f"{to_hs_const_cast_fn_name(True, super_cls.ext_name)}"
                )
            with self._indent():
                self._say("where")
                with self._indent():
                    self._say(
                        f"cast' ({to_hs_data_ctor_name(False, True, super_cls.ext_name)} ptr') = "
                        f"{to_hs_data_ctor_name(False, True, name)} $ {primitive_cast_fn} ptr'"
                    )
                    self._say(
                        f"cast' ({to_hs_data_ctor_name(True, True, super_cls.ext_name)} fptr' ptr') = "
                        f"{to_hs_data_ctor_name(True, True, name)} fptr' $ {primitive_cast_fn} ptr'"
                    )

    def _assignment_methods(self, cls: Class) -> list:
        own_params = [(obj_t(cls),), (ref_t(const_t(obj_t(cls))),)]
        return [
            m
            for m in cls.methods
            if m.applicability == MethodApplicability.NORMAL
            and m.params in own_params
            and isinstance(m.impl, (RealMethod, FnMethod))
            and m.impl.name == Operator.ASSIGN
        ]

    def _say_class_special_fns(self, mode: SayExportMode, cls: Class) -> None:
        """Delete imports, Assignable, Decodable and Encodable instances."""
        name = cls.ext_name
        type_name = to_hs_data_type_name(False, name)
        type_name_const = to_hs_data_type_name(True, name)

        if mode == SayExportMode.FOREIGN_IMPORTS:
            if cls.dtor_is_public:
                self._add_imports(import_for_foreign() + import_for_prelude())
                self._say(
                    f'foreign import ccall "{class_delete_fn_cpp_name(cls)}" '
                    f"{to_hs_class_delete_fn_name(name)} :: CBF.Ptr {type_name_const} -> CBP.IO ()"
                )
                self._say(
                    f'foreign import ccall "&{class_delete_fn_cpp_name(cls)}" '
                    f"{to_hs_class_delete_fn_ptr_name(name)} :: "
                    f"CBF.FunPtr (CBF.Ptr {type_name_const} -> CBP.IO ())"
                )
            return

        if mode == SayExportMode.DECLS:
            self._add_imports(hs_import1("Prelude", "($)") + import_for_foreign() + import_for_runtime())
            self._ln()
            self._say(
                f"instance CBR.Assignable (CBF.Ptr (CBF.Ptr {type_name})) {type_name} where "
                f"assign ptr' value' = CBF.poke ptr' $ CBR.toPtr value'"
            )

            # An assignment operator taking the class's own type gives an
            # Assignable instance for the class.
            assignment_methods = self._assignment_methods(cls)
            if len(assignment_methods) > 1:
                raise GenerationError(
                    f"Can't determine an Assignable instance to generate for {name} because it "
                    f"has multiple assignment operators: "
                    f"{', '.join(m.describe() for m in assignment_methods)}"
                )
            if assignment_methods:
                method = assignment_methods[0]
                self._add_imports(hs_import1("Prelude", "(>>)") + import_for_prelude())
                self._ln()
                self._say(
                    f"instance {to_hs_value_class_name(name)} a => CBR.Assignable {type_name} a where"
                )
                with self._indent():
                    self._say(
                        f"assign x' y' = {to_hs_fn_name(cls.classy_ext_name(method.ext_name))} "
                        f"x' y' >> CBP.return ()"
                    )

            self._add_imports(hs_import1("Prelude", "(.)") + import_for_prelude())
            self._ln()
            self._say(f"instance CBR.Decodable (CBF.Ptr {type_name}) {type_name} where")
            with self._indent():
                self._say(f"decode = CBP.return . {to_hs_data_ctor_name(False, False, name)}")
        else:
            self._add_imports(import_for_foreign() + import_for_runtime())
            self._ln()
            self._say(f"instance CBR.Decodable (CBF.Ptr {type_name}) {type_name}")

        conversion = cls.conversion.haskell
        if conversion is None:
            return
        hs_type = self.cpp_type_to_hs_type(HsTypeSide.HS, obj_t(cls)).render()
        hs_type_text = hs_type if hs_type.startswith("(") else f"({hs_type})"
        self._add_imports(import_for_prelude() + import_for_runtime())

        if mode == SayExportMode.DECLS:
            self._ln()
            self._say(f"instance CBR.Encodable {type_name} {hs_type_text} where")
            with self._indent():
                self._say("encode =")
                with self._indent():
                    self._say(conversion.to_cpp)
            self._ln()
            self._say(f"instance CBR.Encodable {type_name_const} {hs_type_text} where")
            with self._indent():
                self._say(
                    f"encode = CBP.fmap ({to_hs_cast_method_name(True, name)}) . "
                    f"CBR.encodeAs (CBP.undefined :: {type_name})"
                )
            self._ln()
            self._say(f"instance CBR.Decodable {type_name} {hs_type_text} where")
            with self._indent():
                self._say(f"decode = CBR.decode . {to_hs_cast_method_name(True, name)}")
            self._ln()
            self._say(f"instance CBR.Decodable {type_name_const} {hs_type_text} where")
            with self._indent():
                self._say("decode =")
                with self._indent():
                    self._say(conversion.from_cpp)
        else:
            self._ln()
            self._say(f"instance CBR.Encodable {type_name} {hs_type_text}")
            self._say(f"instance CBR.Encodable {type_name_const} {hs_type_text}")
            self._say(f"instance CBR.Decodable {type_name} {hs_type_text}")
            self._say(f"instance CBR.Decodable {type_name_const} {hs_type_text}")

    # ------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------

    def _say_class_exception_instance(self, mode: SayExportMode, cls: Class) -> None:
        """An exception class is thrown to Haskell as a GC-managed object."""
        if mode == SayExportMode.FOREIGN_IMPORTS:
            return
        name = cls.ext_name
        type_name = to_hs_data_type_name(False, name)
        self._add_imports(import_for_runtime())
        self._ln()
        if mode == SayExportMode.BOOT:
            self._say(f"instance CBR.CppException {type_name}")
            return

        if not cls.dtor_is_public:
            raise GenerationError(f"Exception class {name} must have a public destructor")
        self._add_imports(import_for_foreign() + import_for_prelude())
        self._say(f"instance CBR.CppException {type_name} where")
        with self._indent():
            self._say(
                f"cppExceptionInfo _ = CBR.ExceptionClassInfo "
                f"(CBR.ExceptionId {self.interface.exception_id(name)}) "
                f"{_hs_string(str(name))} "
                f"(CBF.castFunPtr {to_hs_class_delete_fn_ptr_name(name)})"
            )
            self._say(
                f"cppExceptionBuild fptr' ptr' = "
                f"{to_hs_data_ctor_name(True, False, name)} fptr' (CBF.castPtr ptr')"
            )

    def _say_exception_db(self, mode: SayExportMode) -> None:
        """The table from exception id to exception class, in the support module."""
        self._add_imports(import_for_runtime())
        self._add_export(EXCEPTION_DB_NAME)
        self._ln()
        self._say(f"{EXCEPTION_DB_NAME} :: CBR.ExceptionDb")
        if mode == SayExportMode.BOOT:
            return

        self._add_imports(hs_import1("Prelude", "($)") + import_for_map() + import_for_prelude())
        classes = self.interface.exception_classes()
        if not classes:
            self._say(f"{EXCEPTION_DB_NAME} = CBR.ExceptionDb CBDM.empty")
            return
        self._say(f"{EXCEPTION_DB_NAME} = CBR.ExceptionDb $ CBDM.fromList")
        with self._indent():
            for index, cls in enumerate(classes):
                self._import_hs_module_for_ext_name(cls.ext_name)
                type_name = to_hs_data_type_name(False, cls.ext_name)
                prefix = "[ " if index == 0 else ", "
                self._say(
                    f"{prefix}(CBR.ExceptionId {self.interface.exception_id(cls.ext_name)}, "
                    f"CBR.cppExceptionInfo (CBP.undefined :: {type_name}))"
                )
            self._say("]")
