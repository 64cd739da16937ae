#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Class features for crossbind.

A feature is a reusable bundle of constructors and methods that many classes
share, such as copy construction or the STL iterator operations. Features are
stamped onto a class with class_add_features, which appends the generated
members after the class's own.

Usage:
    from crossbind.features import Assignable, Copyable, RandomIterator, class_add_features

    int_box = class_add_features([Assignable(), Copyable()], int_box)
    iterator = class_add_features(
        [RandomIterator(IteratorMutability.MUTABLE, int_t(), ptrdiff_t())], iterator)
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Sequence, Union

from .spec import (
    Class,
    Ctor,
    Method,
    MethodApplicability,
    Operator,
    Purity,
    Reqs,
    add_reqs,
    class_add_ctors,
    class_add_methods,
    include_std,
    make_fn_method,
    mk_const_method,
    mk_ctor,
    mk_method,
    mk_method_,
    req_include,
)
from .types import (
    Type,
    bool_t,
    const_t,
    ident2,
    obj_t,
    obj_to_heap_t,
    ptr_t,
    ref_t,
    subst_tvar,
    void_t,
)

logger = logging.getLogger("Crossbind.Features")

ITERATOR_SUPPORT_HEADER = "crossbind/iterator.hpp"


class IteratorMutability(Enum):
    CONSTANT = "constant"
    MUTABLE = "mutable"


# ============================================================
# Features
# ============================================================


@dataclass(frozen=True)
class Assignable:
    """Foo& Foo::operator=(const Foo&)"""


@dataclass(frozen=True)
class Comparable:
    """<, <=, > and >= taking const Foo&. Does not include Equatable."""


@dataclass(frozen=True)
class Copyable:
    """Foo::Foo(const Foo&)"""


@dataclass(frozen=True)
class Equatable:
    """== and != taking const Foo&."""


@dataclass(frozen=True)
class TrivialIterator:
    """
    An STL trivial iterator. Includes Assignable and Copyable, and provides
    default construction, dereferencing and, when mutable, assignment through
    the iterator.
    """

    mutability: IteratorMutability
    value_type: Type


@dataclass(frozen=True)
class ForwardIterator:
    """Includes TrivialIterator and provides pre-increment."""

    mutability: IteratorMutability
    value_type: Type


@dataclass(frozen=True)
class BidirectionalIterator:
    """Includes ForwardIterator and provides pre-decrement."""

    mutability: IteratorMutability
    value_type: Type


@dataclass(frozen=True)
class RandomIterator:
    """Includes BidirectionalIterator and provides arithmetic and array access."""

    mutability: IteratorMutability
    value_type: Type
    distance_type: Type


ClassFeature = Union[
    Assignable,
    Comparable,
    Copyable,
    Equatable,
    TrivialIterator,
    ForwardIterator,
    BidirectionalIterator,
    RandomIterator,
]


def subst_tvar_feature(var: str, value: Type, feature: ClassFeature) -> ClassFeature:
    """Substitutes a type variable through the types a feature carries."""
    if isinstance(feature, RandomIterator):
        return replace(
            feature,
            value_type=subst_tvar(var, value, feature.value_type),
            distance_type=subst_tvar(var, value, feature.distance_type),
        )
    if isinstance(feature, (TrivialIterator, ForwardIterator, BidirectionalIterator)):
        return replace(feature, value_type=subst_tvar(var, value, feature.value_type))
    return feature


# ============================================================
# Feature Contents
# ============================================================


@dataclass
class FeatureContents:
    """The members a feature adds to a class."""

    ctors: List[Ctor] = field(default_factory=list)
    methods: List[Method] = field(default_factory=list)
    reqs: Reqs = Reqs()

    def __add__(self, other: "FeatureContents") -> "FeatureContents":
        return FeatureContents(
            self.ctors + other.ctors,
            self.methods + other.methods,
            self.reqs + other.reqs,
        )


def _const_ref(cls: Class) -> Type:
    return ref_t(const_t(obj_t(cls)))


def assignable_contents(cls: Class) -> FeatureContents:
    return FeatureContents(methods=[mk_method(Operator.ASSIGN, [_const_ref(cls)], ref_t(obj_t(cls)))])


def comparable_contents(cls: Class) -> FeatureContents:
    return FeatureContents(
        methods=[
            mk_const_method(Operator.LT, [_const_ref(cls)], bool_t()),
            mk_const_method(Operator.LE, [_const_ref(cls)], bool_t()),
            mk_const_method(Operator.GT, [_const_ref(cls)], bool_t()),
            mk_const_method(Operator.GE, [_const_ref(cls)], bool_t()),
        ]
    )


def copyable_contents(cls: Class) -> FeatureContents:
    return FeatureContents(ctors=[mk_ctor("newCopy", [_const_ref(cls)])])


def equatable_contents(cls: Class) -> FeatureContents:
    return FeatureContents(
        methods=[
            mk_const_method(Operator.EQ, [_const_ref(cls)], bool_t()),
            mk_const_method(Operator.NE, [_const_ref(cls)], bool_t()),
        ]
    )


def trivial_iterator_contents(
    mutability: IteratorMutability, cls: Class, value_type: Type
) -> FeatureContents:
    own = FeatureContents(
        ctors=[mk_ctor("new", [])],
        methods=[mk_const_method(Operator.DEREF, [], value_type)],
    )
    if mutability == IteratorMutability.MUTABLE:
        own.methods.append(
            make_fn_method(
                ident2("crossbind", "iterator", "put"),
                "put",
                MethodApplicability.NORMAL,
                Purity.NONPURE,
                [ptr_t(obj_t(cls)), value_type],
                void_t(),
            )
        )
        own.reqs = req_include(include_std(ITERATOR_SUPPORT_HEADER))
    return assignable_contents(cls) + copyable_contents(cls) + own


def forward_iterator_contents(
    mutability: IteratorMutability, cls: Class, value_type: Type
) -> FeatureContents:
    return trivial_iterator_contents(mutability, cls, value_type) + FeatureContents(
        methods=[mk_method(Operator.INC_PRE, [], ref_t(obj_t(cls)))]
    )


def bidirectional_iterator_contents(
    mutability: IteratorMutability, cls: Class, value_type: Type
) -> FeatureContents:
    return forward_iterator_contents(mutability, cls, value_type) + FeatureContents(
        methods=[mk_method(Operator.DEC_PRE, [], ref_t(obj_t(cls)))]
    )


def random_iterator_contents(
    mutability: IteratorMutability, cls: Class, value_type: Type, distance_type: Type
) -> FeatureContents:
    methods = [
        mk_method(Operator.ADD, [distance_type], obj_to_heap_t(cls)),
        mk_method(Operator.ADD_ASSIGN, [distance_type], ref_t(obj_t(cls))),
        mk_method(Operator.SUBTRACT, [distance_type], obj_to_heap_t(cls)),
        mk_method_(Operator.SUBTRACT, "difference", [obj_t(cls)], distance_type),
        mk_method(Operator.SUBTRACT_ASSIGN, [distance_type], ref_t(obj_t(cls))),
        mk_method_(Operator.ARRAY, "at", [distance_type], value_type),
    ]
    if mutability == IteratorMutability.MUTABLE:
        methods.append(mk_method_(Operator.ARRAY, "atRef", [distance_type], ref_t(value_type)))
    return bidirectional_iterator_contents(mutability, cls, value_type) + FeatureContents(
        methods=methods
    )


def feature_contents(feature: ClassFeature, cls: Class) -> FeatureContents:
    if isinstance(feature, Assignable):
        return assignable_contents(cls)
    if isinstance(feature, Comparable):
        return comparable_contents(cls)
    if isinstance(feature, Copyable):
        return copyable_contents(cls)
    if isinstance(feature, Equatable):
        return equatable_contents(cls)
    if isinstance(feature, TrivialIterator):
        return trivial_iterator_contents(feature.mutability, cls, feature.value_type)
    if isinstance(feature, ForwardIterator):
        return forward_iterator_contents(feature.mutability, cls, feature.value_type)
    if isinstance(feature, BidirectionalIterator):
        return bidirectional_iterator_contents(feature.mutability, cls, feature.value_type)
    if isinstance(feature, RandomIterator):
        return random_iterator_contents(
            feature.mutability, cls, feature.value_type, feature.distance_type
        )
    raise TypeError(f"Not a class feature: {feature!r}")


# ============================================================
# Applying Features
# ============================================================


def class_add_features(features: Sequence[ClassFeature], cls: Class) -> Class:
    """
    Adds the contents of each feature to a class, in list order.

    New members are appended after the class's existing ones. Overlap with
    existing members is not checked: applying a feature twice adds its
    members twice.
    """
    for feature in features:
        contents = feature_contents(feature, cls)
        cls = add_reqs(contents.reqs, class_add_methods(contents.methods, class_add_ctors(contents.ctors, cls)))
        logger.debug(
            f"Added {type(feature).__name__} to {cls.ext_name}: "
            f"{len(contents.ctors)} ctors, {len(contents.methods)} methods"
        )
    return cls
