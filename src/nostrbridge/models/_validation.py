"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime type constraints
and null-byte safety.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any


_HEX_RE = re.compile(r"^[0-9a-f]+$")


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_int(value: Any, name: str) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    validate_int(value, name)
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_optional_timestamp(value: Any, name: str) -> None:
    """Like [validate_timestamp][] but accepts ``None``."""
    if value is not None:
        validate_timestamp(value, name)


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    validate_str_no_null(value, name)
    if not value:
        raise ValueError(f"{name} must not be empty")


def validate_hex(value: Any, name: str, length: int | None = None) -> None:
    """Raise if *value* is not a lowercase hex string of the given length."""
    validate_str_not_empty(value, name)
    if not _HEX_RE.match(value):
        raise ValueError(f"{name} must be lowercase hex")
    if length is not None and len(value) != length:
        raise ValueError(f"{name} must be {length} hex characters, got {len(value)}")


def freeze_tags(value: Any, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Validate a tag list and return it as a tuple of string tuples.

    Each tag must be a non-string sequence of strings. Empty tags are
    rejected because the first element is the tag discriminator.
    """
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise TypeError(f"{name} must be a sequence of sequences")
    frozen: list[tuple[str, ...]] = []
    for i, tag in enumerate(value):
        if isinstance(tag, (str, bytes)) or not isinstance(tag, Sequence):
            raise TypeError(f"{name}[{i}] must be a sequence of str")
        if not tag:
            raise ValueError(f"{name}[{i}] must not be empty")
        for item in tag:
            validate_str_no_null(item, f"{name}[{i}]")
        frozen.append(tuple(tag))
    return tuple(frozen)


def freeze_str_tuple(value: Any, name: str) -> tuple[str, ...]:
    """Validate a sequence of strings and return it as a tuple."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence | frozenset | set):
        raise TypeError(f"{name} must be a sequence of str")
    for item in value:
        validate_str_no_null(item, name)
    return tuple(value)
