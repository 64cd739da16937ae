#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for stamping class features onto classes."""

from crossbind.features import (
    Assignable,
    Comparable,
    Copyable,
    Equatable,
    ITERATOR_SUPPORT_HEADER,
    IteratorMutability,
    RandomIterator,
    TrivialIterator,
    class_add_features,
    subst_tvar_feature,
)
from crossbind.spec import FnMethod, Operator, RealMethod, include_std, make_class, mk_method
from crossbind.types import const_t, ident, int_t, obj_t, ptr_t, ptrdiff_t, ref_t, tvar, void_t


def _operators(cls):
    return [m.impl.name for m in cls.methods if isinstance(m.impl, RealMethod)]


def _int_box():
    return make_class(ident("IntBox"), None, [], [], [mk_method("get", [], int_t())])


def test_assignable_and_copyable_int_box():
    cls = class_add_features([Assignable(), Copyable()], _int_box())
    const_ref = ref_t(const_t(obj_t(cls)))

    assignments = [m for m in cls.methods if m.impl == RealMethod(Operator.ASSIGN)]
    assert len(assignments) == 1
    assert assignments[0].params == (const_ref,)
    assert assignments[0].ret == ref_t(obj_t(cls))

    assert len(cls.ctors) == 1
    assert cls.ctors[0].params == (const_ref,)


def test_comparable_does_not_add_equality():
    cls = class_add_features([Assignable(), Copyable(), Comparable()], _int_box())
    operators = _operators(cls)
    for op in (Operator.LT, Operator.LE, Operator.GT, Operator.GE):
        assert op in operators
    assert Operator.EQ not in operators
    assert Operator.NE not in operators


def test_equatable_adds_eq_and_ne():
    cls = class_add_features([Equatable()], _int_box())
    assert _operators(cls)[1:] == [Operator.EQ, Operator.NE]


def test_features_append_after_existing_members_in_order():
    original = _int_box()
    cls = class_add_features([Comparable(), Equatable()], original)
    assert cls.methods[0] == original.methods[0]
    assert _operators(cls)[1:] == [
        Operator.LT,
        Operator.LE,
        Operator.GT,
        Operator.GE,
        Operator.EQ,
        Operator.NE,
    ]


def test_feature_application_is_left_associative():
    both = class_add_features([Assignable(), Comparable()], _int_box())
    stepwise = class_add_features([Comparable()], class_add_features([Assignable()], _int_box()))
    assert both == stepwise


def test_random_iterator_mutable():
    cls = make_class(ident("Iter"), None, [], [], [])
    cls = class_add_features(
        [RandomIterator(IteratorMutability.MUTABLE, int_t(), ptrdiff_t())], cls
    )
    operators = _operators(cls)
    for op in (
        Operator.INC_PRE,
        Operator.DEC_PRE,
        Operator.ADD,
        Operator.ADD_ASSIGN,
        Operator.SUBTRACT_ASSIGN,
        Operator.DEREF,
    ):
        assert op in operators
    assert operators.count(Operator.SUBTRACT) == 2

    ext_names = {str(m.ext_name) for m in cls.methods}
    assert {"at", "atRef", "put"} <= ext_names

    put = next(m for m in cls.methods if str(m.ext_name) == "put")
    assert isinstance(put.impl, FnMethod)
    assert put.params == (ptr_t(obj_t(cls)), int_t())
    assert include_std(ITERATOR_SUPPORT_HEADER) in cls.reqs.includes


def test_random_iterator_constant_omits_mutation():
    cls = make_class(ident("ConstIter"), None, [], [], [])
    cls = class_add_features(
        [RandomIterator(IteratorMutability.CONSTANT, int_t(), ptrdiff_t())], cls
    )
    ext_names = {str(m.ext_name) for m in cls.methods}
    assert "at" in ext_names
    assert "atRef" not in ext_names
    assert "put" not in ext_names
    assert not cls.reqs.includes


def test_trivial_iterator_includes_default_ctor_and_copy():
    cls = class_add_features(
        [TrivialIterator(IteratorMutability.CONSTANT, void_t())],
        make_class(ident("It"), None, [], [], []),
    )
    assert [c.params for c in cls.ctors] == [(ref_t(const_t(obj_t(cls))),), ()]


def test_subst_tvar_feature():
    feature = RandomIterator(IteratorMutability.MUTABLE, ref_t(tvar("T")), tvar("D"))
    feature = subst_tvar_feature("T", int_t(), feature)
    feature = subst_tvar_feature("D", ptrdiff_t(), feature)
    assert feature.value_type == ref_t(int_t())
    assert feature.distance_type == ptrdiff_t()
    assert subst_tvar_feature("T", int_t(), Copyable()) == Copyable()
