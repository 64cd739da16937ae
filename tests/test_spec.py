#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for interface construction and validation."""

import pytest

from crossbind.common import GenerationError, SpecError
from crossbind.spec import (
    CatchAll,
    CatchClass,
    Purity,
    Reqs,
    add_module_exports,
    add_req_includes,
    class_make_exception,
    handle_exceptions,
    include_local,
    include_std,
    interface_add_haskell_module_base,
    make_class,
    make_fn,
    make_interface,
    make_module,
    make_req_bundle,
    make_variable,
    merge_exception_handlers,
    method_effective_params,
    mk_const_method,
    mk_method,
    mk_static_method,
    module_modify,
    module_set_callbacks_throw,
    module_set_hs_name,
    req_bundle,
    req_export,
    req_include,
)
from crossbind.types import ExtName, const_t, ident, int_t, obj_t, ptr_t, void_t


def _module(name, *exports):
    return add_module_exports(exports, make_module(name, f"{name}.hpp", f"{name}.cpp"))


def test_duplicate_ext_names_across_modules_are_rejected():
    first = _module("a", make_fn(ident("run"), None, Purity.NONPURE, [], void_t()))
    second = _module("b", make_fn(ident("run"), None, Purity.NONPURE, [], void_t()))
    with pytest.raises(SpecError, match="run"):
        make_interface("dup", [first, second])


def test_duplicate_module_names_are_rejected():
    with pytest.raises(SpecError):
        make_interface("dup", [_module("a"), _module("a")])


def test_exception_support_module_must_belong_to_interface():
    with pytest.raises(SpecError):
        make_interface("iface", [_module("a")], exception_support_module="missing")


def test_lookups_by_ext_name(int_box, box_interface):
    assert box_interface.lookup_class(int_box.ext_name) == int_box
    assert box_interface.module_for_ext_name(int_box.ext_name).name == "box"
    with pytest.raises(GenerationError):
        box_interface.lookup_enum(int_box.ext_name)
    with pytest.raises(GenerationError):
        box_interface.lookup_export(ExtName("Missing"))


def test_exception_ids_follow_declaration_order():
    first = class_make_exception(make_class(ident("FirstError"), None, [], [], []))
    plain = make_class(ident("Plain"), None, [], [], [])
    second = class_make_exception(make_class(ident("SecondError"), None, [], [], []))
    interface = make_interface("exc", [_module("a", first, plain), _module("b", second)])
    assert interface.exception_id(first.ext_name) == 1
    assert interface.exception_id(second.ext_name) == 2
    assert [c.ext_name for c in interface.exception_classes()] == [first.ext_name, second.ext_name]
    with pytest.raises(GenerationError):
        interface.exception_id(plain.ext_name)


def test_merged_handlers_put_catch_all_last():
    merged = merge_exception_handlers(
        [CatchAll(), CatchClass("FooError")],
        [CatchClass("BarError"), CatchClass("FooError")],
    )
    assert merged == [CatchClass("FooError"), CatchClass("BarError"), CatchAll()]


def test_handle_exceptions_appends():
    fn = make_fn(ident("risky"), None, Purity.NONPURE, [], void_t())
    fn = handle_exceptions([CatchClass("FooError")], fn)
    fn = handle_exceptions([CatchAll()], fn)
    assert fn.exception_handlers == (CatchClass("FooError"), CatchAll())


def test_method_effective_params_add_the_object():
    get = mk_const_method("get", [], int_t())
    make = mk_static_method("make", [int_t()], ptr_t(obj_t("Foo")))
    cls = make_class(ident("Foo"), None, [], [], [get, make])
    assert method_effective_params(cls, get) == [ptr_t(const_t(obj_t(cls)))]
    assert method_effective_params(cls, make) == [int_t()]
    assert cls.classy_ext_name(get.ext_name) == ExtName("Foo_get")


def test_hs_module_names(box_interface, box_module):
    assert box_interface.module_hs_name(box_module) == "Foreign.Box.Box"


def test_variable_accessors_reserve_their_names():
    counter = make_variable(ident("counter"), None, int_t())
    clash = make_fn(ident("readCounter"), "counter_get", Purity.NONPURE, [], int_t())
    with pytest.raises(SpecError, match="counter_get"):
        make_interface("vars", [_module("a", counter), _module("b", clash)])


def test_const_variables_do_not_reserve_a_setter():
    limit = make_variable(ident("limit"), None, const_t(int_t()))
    setter = make_fn(ident("setLimit"), "limit_set", Purity.NONPURE, [int_t()], void_t())
    make_interface("vars", [_module("a", limit, setter)])


def test_class_members_reserve_their_names():
    foo = make_class(ident("Foo"), None, [], [], [mk_method("bar", [], void_t())])
    clash = make_fn(ident("fooBar"), "Foo_bar", Purity.NONPURE, [], void_t())
    with pytest.raises(SpecError, match="Foo_bar"):
        make_interface("cls", [_module("a", foo, clash)])


def test_two_exports_deriving_one_name_are_rejected():
    variable = make_variable(ident("a_b"), None, int_t())
    cls = make_class(ident("a"), None, [], [], [mk_method("b_get", [], int_t())])
    with pytest.raises(SpecError, match="a_b_get"):
        make_interface("derived", [_module("a", variable), _module("b", cls)])


def test_a_class_may_repeat_its_own_member_names():
    get = mk_method("get", [], int_t())
    make_interface("cls", [_module("a", make_class(ident("Foo"), None, [], [], [get, get]))])


def test_reqs_combine_by_union():
    vector = include_std("vector")
    local = include_local("foo.hpp")
    bundle = make_req_bundle("strings", [include_std("string")])

    assert Reqs() + req_include(vector) == req_include(vector)
    assert req_include(vector) + Reqs() == req_include(vector)

    total = req_include(vector) + req_include(local) + req_export("Foo") + req_bundle(bundle)
    assert total.includes == frozenset([vector, local])
    assert total.exports == frozenset([ExtName("Foo")])
    assert total.bundles == frozenset([bundle])
    assert Reqs.combine([req_include(vector), req_include(local), req_export("Foo"), req_bundle(bundle)]) == total
    assert Reqs.combine([]) == Reqs()


def test_all_includes_takes_bundles_into_account():
    bundle = make_req_bundle("strings", [include_std("string"), include_std("vector")])
    reqs = req_include(include_local("foo.hpp")) + req_bundle(bundle) + req_include(include_std("vector"))
    assert [str(i) for i in reqs.all_includes()] == [
        '#include "foo.hpp"',
        "#include <string>",
        "#include <vector>",
    ]


def test_add_req_includes_merges_into_entity():
    fn = add_req_includes(
        [include_std("cmath")], make_fn(ident("sqrt"), None, Purity.PURE, [int_t()], int_t())
    )
    fn = add_req_includes([include_std("cstdlib")], fn)
    assert fn.reqs.includes == frozenset([include_std("cmath"), include_std("cstdlib")])


def test_module_modify_applies_modifiers_in_order():
    module = module_modify(
        make_module("gadgets", "gadgets.hpp", "gadgets.cpp"),
        lambda m: module_set_hs_name("First", m),
        lambda m: module_set_callbacks_throw(True, m),
        lambda m: module_set_hs_name("Gadgets", m),
    )
    assert module.hs_name == "Gadgets"
    assert module.callbacks_throw is True
    interface = make_interface("gadgets", [module], hs_module_base=["Foreign"])
    assert interface.module_hs_name(module) == "Foreign.Gadgets"


def test_haskell_module_base_is_set_once():
    interface = interface_add_haskell_module_base(["Foreign", "Gadgets"], make_interface("g", [_module("g")]))
    assert interface.hs_module_base == ("Foreign", "Gadgets")
    with pytest.raises(SpecError):
        interface_add_haskell_module_base(["Other"], interface)
