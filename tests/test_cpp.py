#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for the C++ shim generator."""

from crossbind import cpp
from crossbind.features import Copyable, class_add_features
from crossbind.spec import (
    CatchAll,
    CatchClass,
    Purity,
    add_module_exports,
    add_req_includes,
    add_reqs,
    callback_set_throws,
    class_make_exception,
    class_set_monomorphic_superclass,
    handle_exceptions,
    include_local,
    include_std,
    make_callback,
    make_class,
    make_fn,
    make_interface,
    make_module,
    make_req_bundle,
    req_bundle,
    req_export,
)
from crossbind.types import callback_t, ident, int_t, to_gc_t, void_t


def _source(result, path="gen/box.cpp"):
    assert result.success, result.error_message
    return result.files[path]


def test_generates_header_and_source(box_interface):
    result = cpp.generate(box_interface)
    assert result.success, result.error_message
    assert sorted(result.files) == ["gen/box.cpp", "gen/box.hpp"]

    header = result.files["gen/box.hpp"]
    assert header.startswith("////////// GENERATED FILE, EDITS WILL BE LOST //////////")
    assert "#ifndef CROSSBIND_GEN_GEN_BOX_HPP" in header

    source = result.files["gen/box.cpp"]
    lines = source.splitlines()
    assert lines[2] == '#include "gen/box.hpp"'
    assert '#include "box/intbox.hpp"' in lines
    assert '#include "box/color.hpp"' in lines
    assert 'extern "C" {' in lines


def test_class_wrappers(box_interface):
    source = _source(cpp.generate(box_interface))
    assert "box::IntBox* crossbind__IntBox_new(int arg1) {" in source
    assert "    return new box::IntBox(arg1);" in source
    assert "box::IntBox* crossbind__IntBox_newCopy(const box::IntBox* arg1) {" in source
    assert "    return new box::IntBox(*arg1);" in source
    assert "int crossbind__IntBox_get(const box::IntBox* self) {" in source
    assert "    return self->get();" in source
    assert "void crossbind__IntBox_set(box::IntBox* self, int arg1) {" in source
    assert "    self->set(arg1);" in source
    assert "void crossbind__IntBox__delete(const box::IntBox* self) {" in source


def test_assignment_operator_returns_reference_as_pointer(box_interface):
    source = _source(cpp.generate(box_interface))
    assert (
        "box::IntBox* crossbind__IntBox_ASSIGN(box::IntBox* self, const box::IntBox* arg1) {"
        in source
    )
    assert "    return &((*self) = (*arg1));" in source


def test_functions_and_variables(box_interface):
    source = _source(cpp.generate(box_interface))
    assert "const box::IntBox* crossbind__makeBox(int arg1) {" in source
    assert "    return new box::IntBox(box::makeBox(arg1));" in source
    assert "int crossbind__favorite() {" in source
    assert "    return static_cast<int>(box::favorite());" in source
    assert "void crossbind__mask(unsigned int arg1) {" in source
    assert "int crossbind__counter_get() {" in source
    assert "    box::counter = arg1;" in source
    assert "crossbind__limit_get" in source
    assert "crossbind__limit_set" not in source


def test_callback_classes(box_interface):
    result = cpp.generate(box_interface)
    header = result.files["gen/box.hpp"]
    assert "#include <memory>" in header
    assert "class IntCallback_impl {" in header
    assert "    typedef int (*Callback)(int);" in header
    assert "class IntCallback {" in header
    assert "    std::shared_ptr<IntCallback_impl> impl_;" in header

    source = result.files["gen/box.cpp"]
    assert "int IntCallback_impl::operator()(int arg1) {" in source
    assert "    int result = f_(arg1);" in source
    assert (
        "IntCallback_impl* crossbind__IntCallback(IntCallback_impl::Callback f, "
        "IntCallback_impl::Release release, bool releaseRelease) {"
    ) in source
    assert "int crossbind__apply(IntCallback_impl* arg1, int arg2) {" in source
    assert "    return box::apply(IntCallback(arg1), arg2);" in source


def _exception_interface(with_support=True, copyable=True):
    error = class_make_exception(make_class(ident("MyError"), None, [], [], []))
    if copyable:
        error = class_add_features([Copyable()], error)
    risky = handle_exceptions(
        [CatchAll(), CatchClass(error)],
        make_fn(ident("risky"), None, Purity.NONPURE, [], int_t()),
    )
    handler = callback_set_throws(True, make_callback("Handler", [], void_t()))
    module = add_module_exports([error, risky, handler], make_module("exc", "exc.hpp", "exc.cpp"))
    return make_interface("exc", [module], exception_support_module="exc" if with_support else None)


def test_exception_handlers_catch_specific_then_all():
    source = _source(cpp.generate(_exception_interface()), "exc.cpp")
    expected = "\n".join(
        [
            "int crossbind__risky(int* excId, void** excPtr) {",
            "    try {",
            "        *excId = 0;",
            "        return risky();",
            "    } catch (const MyError& e) {",
            "        *excId = 1;",
            "        *excPtr = new MyError(e);",
            "    } catch (...) {",
            "        *excId = -1;",
            "        *excPtr = 0;",
            "    }",
            "    return {};",
            "}",
        ]
    )
    assert expected in source


def test_exception_support_and_throwing_callbacks():
    result = cpp.generate(_exception_interface())
    header = result.files["exc.hpp"]
    assert "[[noreturn]] void crossbind__rethrow(int excId, void* excPtr);" in header
    assert "    typedef void (*Callback)(int*, void**);" in header

    source = result.files["exc.cpp"]
    assert "#include <stdexcept>" in source
    assert "    case 1: {" in source
    assert "    f_(&excId, &excPtr);" in source
    assert "        crossbind__rethrow(excId, excPtr);" in source


def test_exceptions_need_a_support_module():
    result = cpp.generate(_exception_interface(with_support=False))
    assert not result.success
    assert "no exception support module" in result.error_message
    assert result.files == {}


def test_exception_classes_need_a_copy_constructor():
    result = cpp.generate(_exception_interface(copyable=False))
    assert not result.success
    assert "copy constructor" in result.error_message


def test_returning_gc_callback_fails(int_callback):
    get_callback = make_fn(ident("getCallback"), None, Purity.NONPURE, [], to_gc_t(callback_t(int_callback)))
    module = add_module_exports([int_callback, get_callback], make_module("cb", "cb.hpp", "cb.cpp"))
    result = cpp.generate(make_interface("cb", [module]))
    assert not result.success
    assert "Can't return a callback from C++" in result.error_message
    assert "generating function getCallback" in result.error_message


def test_casts_between_classes():
    base = make_class(ident("Base"), None, [], [], [])
    frozen = class_set_monomorphic_superclass(make_class(ident("Frozen"), None, [], [], []))
    derived = make_class(ident("Derived"), None, [base], [], [])
    plain = make_class(ident("Plain"), None, [frozen], [], [])
    module = add_module_exports([base, frozen, derived, plain], make_module("cls", "cls.hpp", "cls.cpp"))
    source = _source(cpp.generate(make_interface("cls", [module])), "cls.cpp")

    assert "const Base* crossbind__cast__Derived__Base(const Derived* self) {" in source
    assert "    return dynamic_cast<const Derived*>(self);" in source
    assert "crossbind__cast__Plain__Frozen" in source
    assert "crossbind__cast__Frozen__Plain" not in source


def test_objects_by_value_cross_as_const_pointers(box_interface):
    source = _source(cpp.generate(box_interface))
    assert "void crossbind__consumeBox(const box::IntBox* arg1) {" in source
    assert "    box::consumeBox(*arg1);" in source


def test_callback_objects_are_passed_by_address_and_returned_by_copy(box_interface):
    source = _source(cpp.generate(box_interface))
    lines = source.splitlines()
    start = lines.index("box::IntBox BoxCallback_impl::operator()(box::IntBox arg1) {")
    body = lines[start + 1:start + 5]
    assert body[0].endswith(" result = f_(&arg1);")
    assert body[1:] == [
        "    box::IntBox value(*result);",
        "    delete result;",
        "    return value;",
    ]


def test_bundled_includes_reach_the_source():
    strings = make_req_bundle("strings", [include_std("string")])
    name = add_reqs(req_bundle(strings), make_class(ident("Name"), None, [], [], []))
    module = add_module_exports([name], make_module("names", "names.hpp", "names.cpp"))
    source = _source(cpp.generate(make_interface("names", [module])), "names.cpp")
    assert "#include <string>" in source.splitlines()


def test_required_exports_contribute_their_includes():
    widget = add_req_includes([include_local("widget/Widget.hpp")], make_class(ident("Widget"), None, [], [], []))
    ping = add_reqs(req_export(widget), make_fn(ident("ping"), None, Purity.NONPURE, [], void_t()))
    widgets = add_module_exports([widget], make_module("widgets", "widgets.hpp", "widgets.cpp"))
    pings = add_module_exports([ping], make_module("pings", "pings.hpp", "pings.cpp"))
    source = _source(cpp.generate(make_interface("w", [widgets, pings])), "pings.cpp")
    assert '#include "widget/Widget.hpp"' in source.splitlines()


def test_unknown_required_export_fails():
    ping = add_reqs(req_export("Missing"), make_fn(ident("ping"), None, Purity.NONPURE, [], void_t()))
    module = add_module_exports([ping], make_module("pings", "pings.hpp", "pings.cpp"))
    result = cpp.generate(make_interface("w", [module]))
    assert not result.success
    assert "Missing" in result.error_message
    assert result.files == {}
