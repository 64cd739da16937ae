#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for errors, results and file writing."""

from pathlib import Path

import pytest

from crossbind.common import (
    GenerationError,
    GenerationResult,
    list_subst,
    lower_first,
    upper_first,
    with_error_context,
    write_file_if_different,
)


def test_write_file_if_different_writes_once(tmp_path, monkeypatch):
    target = tmp_path / "out" / "Foo.hs"
    writes = []
    real_write_text = Path.write_text

    def counting_write_text(self, *args, **kwargs):
        writes.append(self)
        return real_write_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "write_text", counting_write_text)

    assert write_file_if_different(target, "module Foo where\n")
    assert not write_file_if_different(target, "module Foo where\n")
    assert len(writes) == 1
    assert target.read_text(encoding="utf-8") == "module Foo where\n"


def test_write_file_if_different_overwrites_fully(tmp_path):
    target = tmp_path / "foo.cpp"
    write_file_if_different(target, "a much longer first version\n")
    assert write_file_if_different(str(target), "short\n")
    assert target.read_text(encoding="utf-8") == "short\n"


def test_error_context_trail_reads_outwards():
    with pytest.raises(GenerationError) as exc_info:
        with with_error_context("generating module 'm'"):
            with with_error_context("generating function foo"):
                raise GenerationError("bad type")

    error = exc_info.value
    assert error.context == ["generating function foo", "generating module 'm'"]
    assert str(error) == "bad type\n  while generating function foo\n  while generating module 'm'"


def test_failure_result_carries_trail():
    error = GenerationError("bad type")
    error.add_context("generating function foo")
    result = GenerationResult.failure(error)
    assert not result.success
    assert "generating function foo" in result.error_message
    assert result.files == {}


def test_string_helpers():
    assert list_subst(".", "/", list("A.B.C")) == list("A/B/C")
    assert upper_first("foo") == "Foo"
    assert lower_first("FooBar") == "fooBar"
    assert upper_first("") == ""
