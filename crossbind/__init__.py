#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
crossbind Package

Generates bindings that let Haskell programs use C++ libraries: a C++ shim
exposing the library through extern "C" functions, and Haskell modules that
import those functions and wrap them in ordinary Haskell types and classes.

Main modules:
    - types: C++ types, identifiers and external names
    - spec: Functions, classes, enums, bitspaces, callbacks, modules, interfaces
    - features: Standard method sets (assignment, comparison, iterators) for classes
    - cpp: Generates the C++ shim
    - haskell: Generates the Haskell modules
    - cycles: Breaks import cycles between generated Haskell modules
    - main: Command line driver

Usage:
    from crossbind import make_interface, make_module, add_module_exports
    from crossbind.main import run

    module = add_module_exports([...], make_module("foo", "foo.hpp", "foo.cpp"))
    sys.exit(run([make_interface("foo", [module])]))
"""

from .common import (
    CrossbindError,
    GeneratedFile,
    GenerationError,
    GenerationResult,
    SpecError,
    write_file_if_different,
)
from .cpp import CppGenerator
from .features import (
    Assignable,
    BidirectionalIterator,
    Comparable,
    Copyable,
    Equatable,
    ForwardIterator,
    IteratorMutability,
    RandomIterator,
    TrivialIterator,
    class_add_features,
)
from .haskell import HaskellGenerator, HsTypeSide, cpp_type_to_hs_type
from .main import GeneratorConfig, GenerationOrchestrator, run
from .spec import (
    CatchAll,
    CatchClass,
    Interface,
    MethodApplicability,
    Module,
    Operator,
    Purity,
    add_module_exports,
    class_add_ctors,
    class_add_methods,
    class_make_exception,
    class_set_haskell_conversion,
    handle_exceptions,
    include_local,
    include_std,
    make_bitspace,
    make_callback,
    make_class,
    make_enum,
    make_fn,
    make_interface,
    make_method,
    make_module,
    make_variable,
    mk_const_method,
    mk_ctor,
    mk_method,
    mk_static_method,
)
from .types import ExtName, Identifier, ident, ident1, ident2, to_ext_name

__all__ = [
    # Errors and results
    "CrossbindError",
    "SpecError",
    "GenerationError",
    "GeneratedFile",
    "GenerationResult",
    "write_file_if_different",
    # Types and names
    "ExtName",
    "Identifier",
    "to_ext_name",
    "ident",
    "ident1",
    "ident2",
    # Interface definitions
    "Interface",
    "Module",
    "Operator",
    "Purity",
    "MethodApplicability",
    "CatchClass",
    "CatchAll",
    "make_interface",
    "make_module",
    "add_module_exports",
    "make_variable",
    "make_fn",
    "make_enum",
    "make_bitspace",
    "make_callback",
    "make_class",
    "make_method",
    "mk_method",
    "mk_const_method",
    "mk_static_method",
    "mk_ctor",
    "class_add_ctors",
    "class_add_methods",
    "class_make_exception",
    "class_set_haskell_conversion",
    "handle_exceptions",
    "include_std",
    "include_local",
    # Class features
    "Assignable",
    "Comparable",
    "Copyable",
    "Equatable",
    "TrivialIterator",
    "ForwardIterator",
    "BidirectionalIterator",
    "RandomIterator",
    "IteratorMutability",
    "class_add_features",
    # Generators
    "CppGenerator",
    "HaskellGenerator",
    "HsTypeSide",
    "cpp_type_to_hs_type",
    # Main orchestrator
    "GeneratorConfig",
    "GenerationOrchestrator",
    "run",
]

__version__ = "1.0.0"
