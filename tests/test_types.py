#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for types, identifiers and external names."""

import pytest

from crossbind.common import SpecError
from crossbind.types import (
    ExtName,
    IdPart,
    TConst,
    TVar,
    bool_t,
    const_t,
    fn_t,
    ident1,
    ident1_t,
    ident_parts,
    int_t,
    is_const_object_pointer,
    is_numeric,
    is_object_passing_type,
    obj_t,
    ptr_t,
    ref_t,
    strip_const,
    subst_tvar,
    subst_tvar_identifier,
    to_ext_name,
    tvar,
    type_mentions_tvar,
    void_t,
)


@pytest.mark.parametrize("name", ["Foo", "foo_bar", "Vec3", "a"])
def test_valid_ext_names(name):
    assert to_ext_name(name) == ExtName(name)


@pytest.mark.parametrize("name", ["", "1abc", "_foo", "foo-bar", "foo bar", "a::b"])
def test_invalid_ext_names_are_rejected(name):
    with pytest.raises(SpecError):
        to_ext_name(name)


def test_const_of_const_collapses():
    once = const_t(int_t())
    assert const_t(once) == once
    assert isinstance(once, TConst)
    assert strip_const(once) == int_t()


def test_object_passing_types():
    foo = obj_t("Foo")
    assert is_object_passing_type(foo)
    assert is_object_passing_type(ptr_t(foo))
    assert is_object_passing_type(ref_t(const_t(foo)))
    assert not is_object_passing_type(int_t())
    assert not is_object_passing_type(ptr_t(int_t()))


def test_const_object_pointer():
    foo = obj_t("Foo")
    assert is_const_object_pointer(ptr_t(const_t(foo)))
    assert is_const_object_pointer(ref_t(const_t(foo)))
    assert not is_const_object_pointer(ptr_t(foo))


def test_subst_tvar_replaces_nested_occurrences():
    t = fn_t([ptr_t(tvar("T")), int_t()], ref_t(const_t(tvar("T"))))
    result = subst_tvar("T", obj_t("Foo"), t)
    assert result == fn_t([ptr_t(obj_t("Foo")), int_t()], ref_t(const_t(obj_t("Foo"))))
    assert not type_mentions_tvar("T", result)


def test_subst_tvar_twice_is_same_as_once():
    t = ptr_t(const_t(tvar("T")))
    once = subst_tvar("T", int_t(), t)
    assert subst_tvar("T", int_t(), once) == once


def test_subst_tvar_leaves_other_variables():
    t = fn_t([tvar("A")], tvar("B"))
    result = subst_tvar("A", void_t(), t)
    assert result == fn_t([void_t()], TVar("B"))


def test_subst_tvar_into_const_collapses():
    result = subst_tvar("T", const_t(int_t()), const_t(tvar("T")))
    assert result == const_t(int_t())


def test_identifier_describe_and_substitution():
    identifier = ident1_t("std", "vector", [tvar("T")])
    substituted = subst_tvar_identifier("T", int_t(), identifier)
    assert substituted.last_name == "vector"
    assert str(substituted) == "std::vector<int>"
    assert str(ident1("ns", "Foo")) == "ns::Foo"


def test_is_numeric_looks_through_const():
    assert is_numeric(int_t())
    assert is_numeric(const_t(int_t()))
    assert not is_numeric(bool_t())
    assert not is_numeric(ptr_t(int_t()))


def test_identifier_from_parts():
    identifier = ident_parts([IdPart("std"), IdPart("map", (int_t(), bool_t()))])
    assert identifier == ident1_t("std", "map", [int_t(), bool_t()])
    assert identifier.last_name == "map"
