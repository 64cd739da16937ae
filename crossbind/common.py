#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
Shared helpers for crossbind.

Contains the error types raised while building and generating an interface,
the error-context helper used to build readable failure trails, the
generation result containers, and the idempotent file writer used by the
command line front end.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, TypeVar, Union

logger = logging.getLogger("Crossbind.Common")

T = TypeVar("T")


# ============================================================
# Errors
# ============================================================


class CrossbindError(Exception):
    """Base class for all crossbind failures."""


class SpecError(CrossbindError):
    """An interface definition is malformed (bad or duplicate external name, etc.)."""


class GenerationError(CrossbindError):
    """
    Code generation failed for some export.

    The error carries a context trail: each enclosing step of the generator
    that the error propagated through appends a description of itself, so the
    final message reads from the innermost cause outwards.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.context: List[str] = []

    def add_context(self, description: str) -> None:
        self.context.append(description)

    def __str__(self) -> str:
        lines = [self.message]
        for description in self.context:
            lines.append(f"  while {description}")
        return "\n".join(lines)


@contextmanager
def with_error_context(description: str) -> Iterator[None]:
    """Labels any GenerationError raised inside the block with a description."""
    try:
        yield
    except GenerationError as e:
        e.add_context(description)
        raise


# ============================================================
# Generation Results
# ============================================================


@dataclass
class GeneratedFile:
    """A single generated file, relative to a generator's output root."""

    relative_path: str
    content: str


@dataclass
class GenerationResult:
    """Result of running one generator against an interface."""

    success: bool = False
    error_message: str = ""
    files: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: CrossbindError) -> "GenerationResult":
        return cls(success=False, error_message=str(error))

    @classmethod
    def from_files(cls, files: Sequence[GeneratedFile]) -> "GenerationResult":
        result = cls(success=True)
        for generated_file in files:
            result.files[generated_file.relative_path] = generated_file.content
        return result


# ============================================================
# Small Utilities
# ============================================================


def list_subst(old: T, new: T, items: Sequence[T]) -> List[T]:
    """Replaces every element equal to old with new."""
    return [new if item == old else item for item in items]


def upper_first(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]


def lower_first(text: str) -> str:
    if not text:
        return text
    return text[0].lower() + text[1:]


def write_file_if_different(path: Union[str, Path], new_contents: str) -> bool:
    """
    Writes new_contents to path unless the file already holds exactly that text.

    The existing file is read completely and closed before the comparison, so
    the write never races with an open read handle on the same path.

    Returns:
        True if the file was written
    """
    file_path = Path(path)
    if file_path.exists():
        existing_contents = file_path.read_text(encoding="utf-8")
        if existing_contents == new_contents:
            logger.debug(f"Unchanged: {file_path}")
            return False

    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(new_contents, encoding="utf-8")
    logger.debug(f"Wrote: {file_path}")
    return True
