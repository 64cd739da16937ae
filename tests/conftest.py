#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Shared interface definitions for the generator tests."""

import pytest

from crossbind.features import Assignable, Copyable, class_add_features
from crossbind.haskell_names import import_for_prelude
from crossbind.spec import (
    ClassHaskellConversion,
    Purity,
    add_module_exports,
    add_req_includes,
    bitspace_add_enum,
    class_set_haskell_conversion,
    include_local,
    make_bitspace,
    make_callback,
    make_class,
    make_enum,
    make_fn,
    make_interface,
    make_module,
    make_variable,
    mk_const_method,
    mk_ctor,
    mk_method,
)
from crossbind.types import (
    bitspace_t,
    callback_t,
    const_t,
    enum_t,
    ident1,
    int_t,
    obj_t,
    uint_t,
    void_t,
)


@pytest.fixture
def int_box():
    """
    A small value class: IntBox(int), get(), set(int), assignable and copyable,
    converting to and from a Haskell Int.
    """
    cls = make_class(
        ident1("box", "IntBox"),
        None,
        [],
        [mk_ctor("new", [int_t()])],
        [
            mk_const_method("get", [], int_t()),
            mk_method("set", [int_t()], void_t()),
        ],
    )
    cls = add_req_includes([include_local("box/intbox.hpp")], cls)
    cls = class_set_haskell_conversion(
        ClassHaskellConversion(
            "CBP.Int",
            (import_for_prelude(),),
            "intBox_new . CBP.fromIntegral",
            "CBP.fmap CBP.fromIntegral . intBox_get",
        ),
        cls,
    )
    return class_add_features([Assignable(), Copyable()], cls)


@pytest.fixture
def color_enum():
    return add_req_includes(
        [include_local("box/color.hpp")],
        make_enum(
            ident1("box", "Color"),
            None,
            [(0, ["red"]), (1, ["light", "green"]), (-1, ["unknown"])],
        ),
    )


@pytest.fixture
def flags_bitspace(color_enum):
    return bitspace_add_enum(
        color_enum,
        make_bitspace("Flags", uint_t(), [(1, ["read"]), (2, ["write"])]),
    )


@pytest.fixture
def int_callback():
    return make_callback("IntCallback", [int_t()], int_t())


@pytest.fixture
def box_callback(int_box):
    return make_callback("BoxCallback", [obj_t(int_box)], obj_t(int_box))


@pytest.fixture
def box_module(int_box, color_enum, flags_bitspace, int_callback, box_callback):
    exports = [
        int_box,
        color_enum,
        flags_bitspace,
        int_callback,
        box_callback,
        make_fn(ident1("box", "apply"), None, Purity.NONPURE, [callback_t(int_callback), int_t()], int_t()),
        make_fn(ident1("box", "makeBox"), None, Purity.NONPURE, [int_t()], obj_t(int_box)),
        make_fn(ident1("box", "consumeBox"), None, Purity.NONPURE, [obj_t(int_box)], void_t()),
        make_fn(ident1("box", "favorite"), None, Purity.PURE, [], enum_t(color_enum)),
        make_fn(ident1("box", "mask"), None, Purity.NONPURE, [bitspace_t(flags_bitspace)], void_t()),
        make_variable(ident1("box", "counter"), None, int_t()),
        make_variable(ident1("box", "limit"), None, const_t(int_t())),
    ]
    return add_module_exports(exports, make_module("box", "gen/box.hpp", "gen/box.cpp"))


@pytest.fixture
def box_interface(box_module):
    return make_interface("box", [box_module], hs_module_base=["Foreign", "Box"])
