#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
C++ Binding Generator for crossbind

Generates the native half of the bindings: a thin layer of extern "C"
functions over the wrapped C++ API, which the Haskell bindings import.

For each module the generator produces:
- A header, holding only what other generated modules may need: the
  callback functor classes (and, in the exception support module, the
  exception rethrow helper)
- A source file with everything else: function, variable, constructor and
  method wrappers, class delete and cast functions, callback construction

Only C types cross the boundary. Objects always travel as pointers, enums as
int, and callbacks as a pointer to a heap allocated invoker that the outer
functor class shares.

Usage:
    from crossbind.cpp import CppGenerator

    result = CppGenerator(interface).generate()
    if result.success:
        for path, contents in result.files.items():
            ...
"""

import logging
import re
from typing import Callable, List, Sequence, Set

from .common import GenerationError, GenerationResult, GeneratedFile, with_error_context
from .spec import (
    Bitspace,
    Callback,
    CatchAll,
    Class,
    CppEnum,
    ExceptionHandler,
    FnMethod,
    Function,
    Include,
    Interface,
    Method,
    MethodApplicability,
    Module,
    Operator,
    OperatorKind,
    RealMethod,
    Reqs,
    Variable,
    describe_fn_name,
    include_local,
    include_std,
    method_effective_params,
)
from .types import (
    ExtName,
    Identifier,
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
    is_object_passing_type,
    obj_t,
    ptr_t,
    ref_t,
    strip_const,
    void_t,
)

logger = logging.getLogger("Crossbind.CppGenerator")

CPP_NAME_PREFIX = "crossbind__"
RETHROW_FN_NAME = "crossbind__rethrow"
EXC_ID_PARAM = "excId"
EXC_PTR_PARAM = "excPtr"
CATCH_ALL_EXCEPTION_ID = -1


# ============================================================
# Names
# ============================================================


def external_name_to_cpp(name: ExtName) -> str:
    """The C name of the binding for an export or class member."""
    return f"{CPP_NAME_PREFIX}{name}"


def class_delete_fn_cpp_name(cls: Class) -> str:
    return f"{CPP_NAME_PREFIX}{cls.ext_name}__delete"


def class_cast_fn_cpp_name(from_cls: Class, to_cls: Class) -> str:
    return f"{CPP_NAME_PREFIX}cast__{from_cls.ext_name}__{to_cls.ext_name}"


def callback_class_name(name: ExtName) -> str:
    return str(name)


def callback_impl_class_name(name: ExtName) -> str:
    return f"{name}_impl"


def _header_guard(path: str) -> str:
    return "CROSSBIND_GEN_" + re.sub(r"[^A-Za-z0-9]", "_", path).upper()


def _arg_names(count: int) -> List[str]:
    return [f"arg{i}" for i in range(1, count + 1)]


def _declarator(base: str, declarator: str) -> str:
    if not declarator:
        return base
    if declarator[0] in "*&":
        return base + declarator
    return f"{base} {declarator}"


def _pointer_declarator(symbol: str, declarator: str) -> str:
    if declarator and declarator[0] not in "*&":
        return f"{symbol} {declarator}"
    return symbol + declarator


# ============================================================
# Generator
# ============================================================


class CppGenerator:
    """
    Generates the C++ side of the bindings for an interface.

    The generator never modifies the interface. Each module is generated
    independently; the first module that fails abandons the whole
    generation and no files are returned.
    """

    def __init__(self, interface: Interface):
        self.interface = interface

    def generate(self) -> GenerationResult:
        """
        Generate C++ bindings for every module of the interface.

        Generation is all or nothing: modules are generated independently,
        but the first one that fails abandons the whole interface so callers
        never write a partial set of files.

        Returns:
            GenerationResult mapping relative paths to file contents
        """
        logger.info(f"Generating C++ bindings for interface {self.interface.name}")
        files: List[GeneratedFile] = []
        try:
            for module in self.interface.modules:
                with with_error_context(f"generating C++ for module {module.name!r}"):
                    files.extend(_CppModuleGenerator(self.interface, module).generate())
        except GenerationError as e:
            logger.error(f"C++ generation failed: {e}")
            return GenerationResult.failure(e)

        logger.info(f"Generated {len(files)} C++ files")
        return GenerationResult.from_files(files)


def generate(interface: Interface) -> GenerationResult:
    return CppGenerator(interface).generate()


class _CppModuleGenerator:
    """Per-module generation state: output lines and accumulated includes."""

    def __init__(self, interface: Interface, module: Module):
        self.interface = interface
        self.module = module
        self._header_lines: List[str] = []
        self._header_includes: Set[Include] = set()
        self._source_lines: List[str] = []
        self._source_extern_lines: List[str] = []
        self._source_includes: Set[Include] = set()
        self._uses_exceptions = False

    # ------------------------------------------------------------
    # Module layout
    # ------------------------------------------------------------

    def generate(self) -> List[GeneratedFile]:
        self._source_includes.update(self._reqs_includes(self.module.reqs))

        for export in self.module.exports:
            self._source_includes.update(self._reqs_includes(export.reqs))
            if isinstance(export, Variable):
                self._say_variable(export)
            elif isinstance(export, Function):
                self._say_function_export(export)
            elif isinstance(export, Class):
                self._say_class(export)
            elif isinstance(export, Callback):
                self._say_callback(export)
            elif isinstance(export, (CppEnum, Bitspace)):
                # Enums and bitspaces cross the boundary as plain numbers.
                pass
            else:
                raise GenerationError(f"Unknown export {export!r}")

        if self.interface.exception_support_module == self.module.name:
            self._say_exception_support()

        if self._uses_exceptions and self.interface.exception_support() is None:
            raise GenerationError(
                f"Module {self.module.name!r} uses exceptions, but interface "
                f"{self.interface.name} has no exception support module"
            )

        header = GeneratedFile(self.module.header_path, self._render_header())
        source = GeneratedFile(self.module.source_path, self._render_source())
        return [header, source]

    def _render_header(self) -> str:
        guard = _header_guard(self.module.header_path)
        lines = [
            "////////// GENERATED FILE, EDITS WILL BE LOST //////////",
            "",
            f"#ifndef {guard}",
            f"#define {guard}",
            "",
        ]
        if self._header_includes:
            lines.extend(str(i) for i in sorted(self._header_includes))
            lines.append("")
        lines.extend(self._header_lines)
        lines.append(f"#endif  // {guard}")
        return "\n".join(lines) + "\n"

    def _render_source(self) -> str:
        lines = [
            "////////// GENERATED FILE, EDITS WILL BE LOST //////////",
            "",
            str(include_local(self.module.header_path)),
        ]
        lines.extend(str(i) for i in sorted(self._source_includes))
        lines.append("")
        lines.extend(self._source_lines)
        lines.append('extern "C" {')
        lines.append("")
        lines.extend(self._source_extern_lines)
        lines.append('}  // extern "C"')
        return "\n".join(lines) + "\n"

    def _extern(self, *lines: str) -> None:
        self._source_extern_lines.extend(lines)

    # ------------------------------------------------------------
    # Type rendering
    # ------------------------------------------------------------

    def render_identifier(self, identifier: Identifier) -> str:
        parts = []
        for part in identifier.parts:
            if part.args is None:
                parts.append(part.name)
                continue
            for arg in part.args:
                self._use_type(arg, self._source_includes)
            args = ", ".join(self.render_type(a) for a in part.args)
            if args.endswith(">"):
                args += " "
            parts.append(f"{part.name}<{args}>")
        return "::".join(parts)

    def render_type(self, t: Type, declarator: str = "") -> str:
        """Renders a C++ type as the real C++ API sees it."""
        if isinstance(t, TVoid):
            return _declarator("void", declarator)
        if isinstance(t, TBool):
            return _declarator("bool", declarator)
        if isinstance(t, TNum):
            return _declarator(t.kind.value, declarator)
        if isinstance(t, TEnum):
            enum = self.interface.lookup_enum(t.name)
            return _declarator(self.render_identifier(enum.identifier), declarator)
        if isinstance(t, TBitspace):
            return self.render_type(self.interface.lookup_bitspace(t.name).type, declarator)
        if isinstance(t, (TObj, TObjToHeap)):
            cls = self.interface.lookup_class(t.name)
            return _declarator(self.render_identifier(cls.identifier), declarator)
        if isinstance(t, TToGc):
            return self.render_type(t.target, declarator)
        if isinstance(t, TCallback):
            return _declarator(callback_class_name(t.name), declarator)
        if isinstance(t, TPtr):
            if isinstance(t.target, TFn):
                return self.render_type(t.target, f"(*{declarator})")
            return self.render_type(t.target, _pointer_declarator("*", declarator))
        if isinstance(t, TRef):
            if isinstance(t.target, TFn):
                return self.render_type(t.target, f"(&{declarator})")
            return self.render_type(t.target, _pointer_declarator("&", declarator))
        if isinstance(t, TConst):
            if isinstance(t.target, TPtr):
                inner = t.target.target
                if isinstance(inner, TFn):
                    return self.render_type(inner, f"(*const{' ' + declarator if declarator else ''})")
                return self.render_type(inner, _pointer_declarator("*const", declarator))
            return "const " + self.render_type(t.target, declarator)
        if isinstance(t, TFn):
            params = ", ".join(self.render_type(p) for p in t.params)
            return self.render_type(t.ret, f"{declarator}({params})")
        if isinstance(t, TVar):
            raise GenerationError(f"Unsubstituted type variable {t.name}")
        raise GenerationError(f"Unknown type {t!r}")

    def render_c_type(self, t: Type, declarator: str = "") -> str:
        """Renders the C type a value of C++ type t crosses the boundary as."""
        if isinstance(t, TConst):
            return self.render_c_type(t.target, declarator)
        if isinstance(t, (TVoid, TBool, TNum)):
            return self.render_type(t, declarator)
        if isinstance(t, TEnum):
            self._use_type(t, self._source_includes)
            return _declarator("int", declarator)
        if isinstance(t, TBitspace):
            return self.render_c_type(self.interface.lookup_bitspace(t.name).type, declarator)
        if isinstance(t, TObj):
            return self.render_type(ptr_t(const_t(t)), declarator)
        if isinstance(t, TObjToHeap):
            return self.render_type(ptr_t(obj_t(t.name)), declarator)
        if isinstance(t, (TPtr, TRef)):
            target = t.target
            if isinstance(strip_const(target), TObj):
                return self.render_type(ptr_t(target), declarator)
            if isinstance(target, TFn):
                self._check_c_fn_type(target)
            return self.render_type(ptr_t(target), declarator)
        if isinstance(t, TToGc):
            target = strip_const(t.target)
            if isinstance(target, TObj):
                return self.render_type(ptr_t(target), declarator)
            if is_object_passing_type(target):
                return self.render_c_type(target, declarator)
            raise GenerationError(f"toGcT requires an object type, got {t.target}")
        if isinstance(t, TCallback):
            return _declarator(callback_impl_class_name(t.name), _pointer_declarator("*", declarator))
        if isinstance(t, TFn):
            raise GenerationError("TFn unimplemented outside of a pointer")
        if isinstance(t, TVar):
            raise GenerationError(f"Unsubstituted type variable {t.name}")
        raise GenerationError(f"Unknown type {t!r}")

    def _check_c_fn_type(self, fn: TFn) -> None:
        for t in list(fn.params) + [fn.ret]:
            base = strip_const(t)
            if isinstance(base, (TPtr, TRef)):
                base = strip_const(base.target)
                if isinstance(base, TObj):
                    continue
            if not isinstance(base, (TVoid, TBool, TNum, TPtr, TFn)):
                raise GenerationError(
                    f"Function pointer types may only use C types, found {t}"
                )

    def _reqs_includes(self, reqs: Reqs) -> List[Include]:
        """Includes of reqs, plus those of the exports it says it uses."""
        includes = set(reqs.all_includes())
        for name in reqs.exports:
            with with_error_context(f"resolving required export {name}"):
                includes.update(self.interface.lookup_export(name).reqs.all_includes())
        return sorted(includes)

    def _use_type(self, t: Type, includes: Set[Include]) -> None:
        """Adds the includes needed to name the entities a type mentions."""
        if isinstance(t, (TPtr, TRef, TConst, TToGc)):
            self._use_type(t.target, includes)
        elif isinstance(t, TFn):
            for p in t.params:
                self._use_type(p, includes)
            self._use_type(t.ret, includes)
        elif isinstance(t, (TObj, TObjToHeap)):
            includes.update(self.interface.lookup_class(t.name).reqs.all_includes())
        elif isinstance(t, TEnum):
            includes.update(self.interface.lookup_enum(t.name).reqs.all_includes())
        elif isinstance(t, TBitspace):
            bitspace = self.interface.lookup_bitspace(t.name)
            includes.update(bitspace.reqs.all_includes())
            self._use_type(bitspace.type, includes)
        elif isinstance(t, TCallback):
            owner = self.interface.module_for_ext_name(t.name)
            if owner.name != self.module.name:
                includes.add(include_local(owner.header_path))

    # ------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------

    def _arg_to_cpp(self, t: Type, name: str) -> str:
        """C++ expression for a C argument passed into a C++ call."""
        with with_error_context(f"processing argument of type {t}"):
            if isinstance(t, TConst):
                return self._arg_to_cpp(t.target, name)
            if isinstance(t, TVoid):
                raise GenerationError("TVoid is not a valid argument type")
            if isinstance(t, (TBool, TNum, TBitspace, TPtr)):
                if isinstance(t, TPtr) and isinstance(t.target, TFn):
                    self._check_c_fn_type(t.target)
                return name
            if isinstance(t, TEnum):
                return f"static_cast<{self.render_type(t)}>({name})"
            if isinstance(t, (TObj, TRef)):
                # By-value objects arrive as const pointers and are copied into
                # the callee's parameter; references arrive as pointers.
                return f"*{name}"
            if isinstance(t, TCallback):
                return f"{callback_class_name(t.name)}({name})"
            if isinstance(t, TObjToHeap):
                raise GenerationError(
                    f"objToHeapT {t.name} cannot be passed into C++; it only flows from C++"
                )
            if isinstance(t, TToGc):
                raise GenerationError(
                    f"toGcT ({t.target}) cannot be passed into C++; it only flows from C++"
                )
            if isinstance(t, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            raise GenerationError(f"Unsupported argument type {t}")

    def _return_from_cpp(self, t: Type, call: str) -> List[str]:
        """Statements returning the result of a C++ call over the C boundary."""
        with with_error_context(f"processing return value of type {t}"):
            base = strip_const(t)
            if isinstance(base, TVoid):
                return [f"{call};"]
            if isinstance(base, (TBool, TNum, TBitspace, TPtr)):
                return [f"return {call};"]
            if isinstance(base, TEnum):
                return [f"return static_cast<int>({call});"]
            if isinstance(base, (TObj, TObjToHeap)):
                cls = self.interface.lookup_class(base.name)
                return [f"return new {self.render_identifier(cls.identifier)}({call});"]
            if isinstance(base, TRef):
                return [f"return &({call});"]
            if isinstance(base, TToGc):
                target = strip_const(base.target)
                if isinstance(target, TCallback):
                    raise GenerationError("Can't return a callback from C++; callbacks only flow into C++")
                if not is_object_passing_type(target):
                    raise GenerationError(f"toGcT requires an object type, got {base.target}")
                return self._return_from_cpp(target, call)
            if isinstance(base, TCallback):
                raise GenerationError("Can't return a callback from C++; callbacks only flow into C++")
            if isinstance(base, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            raise GenerationError(f"Unsupported return type {t}")

    def _arg_from_cpp(self, t: Type, name: str) -> str:
        """C expression for a C++ value passed out to a callback."""
        with with_error_context(f"processing argument of type {t}"):
            base = strip_const(t)
            if isinstance(base, TVoid):
                raise GenerationError("TVoid is not a valid argument type")
            if isinstance(base, (TBool, TNum, TBitspace, TPtr)):
                return name
            if isinstance(base, TEnum):
                return f"static_cast<int>({name})"
            if isinstance(base, (TObj, TRef)):
                return f"&{name}"
            if isinstance(base, TObjToHeap):
                cls = self.interface.lookup_class(base.name)
                return f"new {self.render_identifier(cls.identifier)}({name})"
            if isinstance(base, TToGc):
                target = strip_const(base.target)
                if isinstance(target, TObj):
                    cls = self.interface.lookup_class(target.name)
                    return f"new {self.render_identifier(cls.identifier)}({name})"
                if is_object_passing_type(target):
                    return self._arg_from_cpp(target, name)
                raise GenerationError(f"toGcT requires an object type, got {base.target}")
            if isinstance(base, TCallback):
                raise GenerationError("Can't pass a callback from C++ into a callback")
            if isinstance(base, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            raise GenerationError(f"Unsupported argument type {t}")

    def _return_to_cpp(self, t: Type, result: str) -> List[str]:
        """Statements converting a callback's C result back into C++."""
        with with_error_context(f"processing return value of type {t}"):
            base = strip_const(t)
            if isinstance(base, TVoid):
                return []
            if isinstance(base, (TBool, TNum, TBitspace, TPtr)):
                return [f"return {result};"]
            if isinstance(base, TEnum):
                return [f"return static_cast<{self.render_type(base)}>({result});"]
            if isinstance(base, TObj):
                cls_type = self.render_type(base)
                return [
                    f"{cls_type} value(*{result});",
                    f"delete {result};",
                    "return value;",
                ]
            if isinstance(base, TRef):
                return [f"return *{result};"]
            if isinstance(base, TCallback):
                return [f"return {callback_class_name(base.name)}({result});"]
            if isinstance(base, TObjToHeap):
                raise GenerationError(
                    f"objToHeapT {base.name} cannot be returned from a callback; it only flows from C++"
                )
            if isinstance(base, TToGc):
                raise GenerationError(
                    f"toGcT ({base.target}) cannot be returned from a callback; it only flows from C++"
                )
            if isinstance(base, TFn):
                raise GenerationError("TFn unimplemented outside of a pointer")
            raise GenerationError(f"Unsupported return type {t}")

    # ------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------

    def _say_function(
        self,
        c_name: str,
        param_types: Sequence[Type],
        param_names: Sequence[str],
        ret: Type,
        call: Callable[[List[str]], str],
        handlers: Sequence[ExceptionHandler] = (),
    ) -> None:
        """
        Emits an extern "C" wrapper around a C++ call.

        Args:
            c_name: The C name of the wrapper
            param_types: C++ types of the parameters
            param_names: Names of the parameters in the wrapper
            ret: C++ return type of the call
            call: Builds the C++ call expression from the converted arguments
            handlers: Exceptions to catch and pass back to the caller
        """
        for t in list(param_types) + [ret]:
            self._use_type(t, self._source_includes)

        params = [self.render_c_type(t, n) for t, n in zip(param_types, param_names)]
        if handlers:
            self._uses_exceptions = True
            params += [f"int* {EXC_ID_PARAM}", f"void** {EXC_PTR_PARAM}"]
        args = [self._arg_to_cpp(t, n) for t, n in zip(param_types, param_names)]
        body = self._return_from_cpp(ret, call(args))
        ret_c = self.render_c_type(ret, f"{c_name}({', '.join(params)})")

        self._extern(f"{ret_c} {{")
        if handlers:
            self._extern("    try {", f"        *{EXC_ID_PARAM} = 0;")
            self._extern(*[f"        {line}" for line in body])
            for handler in handlers:
                self._extern(*self._catch_clause(handler))
            self._extern("    }")
            if not isinstance(strip_const(ret), TVoid):
                self._extern("    return {};")
        else:
            self._extern(*[f"    {line}" for line in body])
        self._extern("}", "")

    def _catch_clause(self, handler: ExceptionHandler) -> List[str]:
        if isinstance(handler, CatchAll):
            return [
                "    } catch (...) {",
                f"        *{EXC_ID_PARAM} = {CATCH_ALL_EXCEPTION_ID};",
                f"        *{EXC_PTR_PARAM} = 0;",
            ]
        cls = self.interface.lookup_class(handler.name)
        self._check_exception_class(cls)
        self._source_includes.update(cls.reqs.all_includes())
        cls_type = self.render_identifier(cls.identifier)
        return [
            f"    }} catch (const {cls_type}& e) {{",
            f"        *{EXC_ID_PARAM} = {self.interface.exception_id(cls.ext_name)};",
            f"        *{EXC_PTR_PARAM} = new {cls_type}(e);",
        ]

    def _check_exception_class(self, cls: Class) -> None:
        if not cls.is_exception:
            raise GenerationError(f"Class {cls.ext_name} is caught but is not an exception class")
        copy_params = [(ref_t(const_t(obj_t(cls))),), (obj_t(cls),)]
        if not any(ctor.params in copy_params for ctor in cls.ctors):
            raise GenerationError(
                f"Exception class {cls.ext_name} must have a copy constructor (add the Copyable feature)"
            )

    def _handlers(self, handlers: Sequence[ExceptionHandler]) -> List[ExceptionHandler]:
        return self.interface.effective_exception_handlers(self.module, handlers)

    def _say_function_export(self, fn: Function) -> None:
        with with_error_context(f"generating function {fn.ext_name}"):
            names = _arg_names(len(fn.params))

            def call(args: List[str]) -> str:
                if isinstance(fn.name, Operator):
                    return self._operator_call(fn.name, args)
                return f"{self.render_identifier(fn.name)}({', '.join(args)})"

            self._say_function(
                external_name_to_cpp(fn.ext_name),
                fn.params,
                names,
                fn.ret,
                call,
                self._handlers(fn.exception_handlers),
            )

    def _operator_call(self, op: Operator, operands: List[str]) -> str:
        expected = {
            OperatorKind.UNARY_PREFIX: 1,
            OperatorKind.UNARY_POSTFIX: 1,
            OperatorKind.BINARY: 2,
            OperatorKind.ARRAY: 2,
        }.get(op.kind)
        if expected is not None and len(operands) != expected:
            raise GenerationError(
                f"operator{op.symbol} takes {expected} operands, but {len(operands)} were given"
            )
        if op.kind == OperatorKind.UNARY_PREFIX:
            return f"{op.symbol}({operands[0]})"
        if op.kind == OperatorKind.UNARY_POSTFIX:
            return f"({operands[0]}){op.symbol}"
        if op.kind == OperatorKind.BINARY:
            return f"({operands[0]}) {op.symbol} ({operands[1]})"
        if op.kind == OperatorKind.ARRAY:
            return f"({operands[0]})[{operands[1]}]"
        if not operands:
            raise GenerationError("operator() needs an object to call")
        return f"({operands[0]})({', '.join(operands[1:])})"

    def _say_variable(self, var: Variable) -> None:
        with with_error_context(f"generating variable {var.ext_name}"):
            is_const = isinstance(var.type, TConst)
            value_type = strip_const(var.type)
            identifier = self.render_identifier(var.identifier)
            self._say_function(
                external_name_to_cpp(var.getter_ext_name), [], [], value_type, lambda args: identifier
            )
            if not is_const:
                self._say_function(
                    external_name_to_cpp(var.setter_ext_name),
                    [value_type],
                    ["arg1"],
                    void_t(),
                    lambda args: f"{identifier} = {args[0]}",
                )

    # ------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------

    def _say_class(self, cls: Class) -> None:
        with with_error_context(f"generating class {cls.ext_name}"):
            cls_type = self.render_identifier(cls.identifier)

            for ctor in cls.ctors:
                with with_error_context(f"generating constructor {ctor.ext_name}"):
                    self._say_function(
                        external_name_to_cpp(cls.classy_ext_name(ctor.ext_name)),
                        ctor.params,
                        _arg_names(len(ctor.params)),
                        ptr_t(obj_t(cls)),
                        lambda args: f"new {cls_type}({', '.join(args)})",
                        self._handlers(ctor.exception_handlers),
                    )

            for method in cls.methods:
                with with_error_context(f"generating method {method.describe()}"):
                    self._say_method(cls, cls_type, method)

            if cls.dtor_is_public:
                self._extern(
                    f"void {class_delete_fn_cpp_name(cls)}(const {cls_type}* self) {{",
                    "    delete self;",
                    "}",
                    "",
                )

            self._say_class_casts(cls, cls_type)

    def _say_method(self, cls: Class, cls_type: str, method: Method) -> None:
        params = method_effective_params(cls, method)
        has_self = len(params) > len(method.params)
        names = (["self"] if has_self else []) + _arg_names(len(method.params))
        impl = method.impl

        def call(args: List[str]) -> str:
            if isinstance(impl, RealMethod):
                if method.applicability == MethodApplicability.STATIC:
                    if isinstance(impl.name, Operator):
                        raise GenerationError(
                            f"Static method can't be {describe_fn_name(impl.name)}"
                        )
                    return f"{cls_type}::{impl.name}({', '.join(args)})"
                member_args = args[1:]
                if isinstance(impl.name, Operator):
                    return self._operator_call(impl.name, ["*self"] + member_args)
                return f"self->{impl.name}({', '.join(member_args)})"
            if isinstance(impl, FnMethod):
                if isinstance(impl.name, Operator):
                    return self._operator_call(impl.name, args)
                return f"{self.render_identifier(impl.name)}({', '.join(args)})"
            raise GenerationError(f"Unknown method implementation {impl!r}")

        self._say_function(
            external_name_to_cpp(cls.classy_ext_name(method.ext_name)),
            params,
            names,
            method.ret,
            call,
            self._handlers(method.exception_handlers),
        )

    def _ancestors(self, cls: Class) -> List[Class]:
        seen = []
        for ancestor in self.interface.superclass_chain(cls):
            if ancestor not in seen:
                seen.append(ancestor)
        return seen

    def class_is_subclass_of_monomorphic(self, cls: Class) -> bool:
        return any(a.monomorphic_superclass for a in self.interface.superclass_chain(cls))

    def _say_class_casts(self, cls: Class, cls_type: str) -> None:
        allow_downcasts = not self.class_is_subclass_of_monomorphic(cls)
        for ancestor in self._ancestors(cls):
            self._source_includes.update(ancestor.reqs.all_includes())
            super_type = self.render_identifier(ancestor.identifier)
            self._extern(
                f"const {super_type}* {class_cast_fn_cpp_name(cls, ancestor)}(const {cls_type}* self) {{",
                "    return self;",
                "}",
                "",
            )
            if allow_downcasts and not ancestor.monomorphic_superclass:
                self._extern(
                    f"const {cls_type}* {class_cast_fn_cpp_name(ancestor, cls)}(const {super_type}* self) {{",
                    f"    return dynamic_cast<const {cls_type}*>(self);",
                    "}",
                    "",
                )

    # ------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------

    def _say_callback(self, cb: Callback) -> None:
        with with_error_context(f"generating callback {cb.ext_name}"):
            throws = self.interface.callback_throws(self.module, cb)
            impl_name = callback_impl_class_name(cb.ext_name)
            outer_name = callback_class_name(cb.ext_name)
            names = _arg_names(len(cb.params))

            self._header_includes.add(include_std("memory"))
            for t in list(cb.params) + [cb.ret]:
                self._use_type(t, self._header_includes)

            c_params = [self.render_c_type(t) for t in cb.params]
            if throws:
                self._uses_exceptions = True
                c_params += ["int*", "void**"]
                support = self.interface.exception_support()
                if support is None:
                    raise GenerationError(
                        f"Callback {cb.ext_name} throws, but interface {self.interface.name} "
                        f"has no exception support module"
                    )
                if support.name != self.module.name:
                    self._source_includes.add(include_local(support.header_path))
            c_ret = self.render_c_type(cb.ret, f"(*Callback)({', '.join(c_params)})")
            cpp_params = ", ".join(self.render_type(t, n) for t, n in zip(cb.params, names))
            cpp_ret = self.render_type(cb.ret)
            args = [self._arg_from_cpp(t, n) for t, n in zip(cb.params, names)]
            if throws:
                args += [f"&{EXC_ID_PARAM}", f"&{EXC_PTR_PARAM}"]

            self._header_lines.extend(
                [
                    f"class {impl_name} {{",
                    "public:",
                    f"    typedef {c_ret};",
                    "    typedef void (*Release)(void (*)());",
                    "",
                    f"    {impl_name}(Callback f, Release release, bool releaseRelease);",
                    f"    ~{impl_name}();",
                    "",
                    f"    {cpp_ret} operator()({cpp_params});",
                    "",
                    "private:",
                    f"    {impl_name}(const {impl_name}&);",
                    f"    {impl_name}& operator=(const {impl_name}&);",
                    "",
                    "    Callback const f_;",
                    "    Release const release_;",
                    "    bool const releaseRelease_;",
                    "};",
                    "",
                    f"class {outer_name} {{",
                    "public:",
                    f"    {outer_name}() {{}}",
                    f"    explicit {outer_name}({impl_name}* impl) : impl_(impl) {{}}",
                    "",
                    f"    {cpp_ret} operator()({cpp_params}) const;",
                    "    operator bool() const;",
                    "",
                    "private:",
                    f"    std::shared_ptr<{impl_name}> impl_;",
                    "};",
                    "",
                ]
            )

            call = f"f_({', '.join(args)})"
            returns_value = not isinstance(strip_const(cb.ret), TVoid)
            body = []
            if throws:
                body += [f"int {EXC_ID_PARAM} = 0;", f"void* {EXC_PTR_PARAM} = 0;"]
            if returns_value:
                body.append(f"{self.render_c_type(cb.ret, 'result')} = {call};")
            else:
                body.append(f"{call};")
            if throws:
                body += [
                    f"if ({EXC_ID_PARAM} != 0) {{",
                    f"    {RETHROW_FN_NAME}({EXC_ID_PARAM}, {EXC_PTR_PARAM});",
                    "}",
                ]
            if returns_value:
                body += self._return_to_cpp(cb.ret, "result")

            self._source_lines.extend(
                [
                    f"{impl_name}::{impl_name}(Callback f, Release release, bool releaseRelease) :",
                    "    f_(f), release_(release), releaseRelease_(releaseRelease) {}",
                    "",
                    f"{impl_name}::~{impl_name}() {{",
                    "    if (release_) {",
                    "        release_(reinterpret_cast<void(*)()>(f_));",
                    "        if (releaseRelease_) {",
                    "            release_(reinterpret_cast<void(*)()>(release_));",
                    "        }",
                    "    }",
                    "}",
                    "",
                    f"{cpp_ret} {impl_name}::operator()({cpp_params}) {{",
                ]
                + [f"    {line}" for line in body]
                + [
                    "}",
                    "",
                    f"{cpp_ret} {outer_name}::operator()({cpp_params}) const {{",
                    f"    {'return ' if returns_value else ''}(*impl_)({', '.join(names)});",
                    "}",
                    "",
                    f"{outer_name}::operator bool() const {{",
                    "    return static_cast<bool>(impl_);",
                    "}",
                    "",
                ]
            )

            self._extern(
                f"{impl_name}* {external_name_to_cpp(cb.ext_name)}("
                f"{impl_name}::Callback f, {impl_name}::Release release, bool releaseRelease) {{",
                f"    return new {impl_name}(f, release, releaseRelease);",
                "}",
                "",
            )

    # ------------------------------------------------------------
    # Exception support
    # ------------------------------------------------------------

    def _say_exception_support(self) -> None:
        """Emits the rethrow helper that throwing callbacks use."""
        self._header_lines.extend(
            [
                f"[[noreturn]] void {RETHROW_FN_NAME}(int {EXC_ID_PARAM}, void* {EXC_PTR_PARAM});",
                "",
            ]
        )
        self._source_includes.add(include_std("stdexcept"))
        lines = [
            f"void {RETHROW_FN_NAME}(int {EXC_ID_PARAM}, void* {EXC_PTR_PARAM}) {{",
            f"    switch ({EXC_ID_PARAM}) {{",
        ]
        for cls in self.interface.exception_classes():
            self._check_exception_class(cls)
            self._source_includes.update(cls.reqs.all_includes())
            cls_type = self.render_identifier(cls.identifier)
            lines += [
                f"    case {self.interface.exception_id(cls.ext_name)}: {{",
                f"        {cls_type}* source = static_cast<{cls_type}*>({EXC_PTR_PARAM});",
                f"        {cls_type} copy(*source);",
                "        delete source;",
                "        throw copy;",
                "    }",
            ]
        lines += [
            "    }",
            '    throw std::runtime_error("Unknown exception thrown from a callback.");',
            "}",
            "",
        ]
        self._source_lines.extend(lines)
