"""Deep structural comparison used to gate change notifications."""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Sequence


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def structural_equal(a: Any, b: Any) -> bool:
    """Return ``True`` when *a* and *b* describe the same tree.

    Sequences compare element-wise in order, mappings compare by key set and
    per-key value, dataclass instances compare field by field.  Leaves must
    agree in kind as well as value, so ``1``, ``1.0`` and ``True`` are all
    distinct.
    """

    if a is b:
        return True
    if a is None or b is None:
        return False

    if dataclasses.is_dataclass(a) and not isinstance(a, type):
        if type(a) is not type(b):
            return False
        return all(
            structural_equal(getattr(a, f.name), getattr(b, f.name))
            for f in dataclasses.fields(a)
            if f.compare
        )

    if isinstance(a, Mapping):
        if not isinstance(b, Mapping):
            return False
        if a.keys() != b.keys():
            return False
        return all(structural_equal(a[key], b[key]) for key in a)

    if _is_sequence(a):
        if not _is_sequence(b):
            return False
        if len(a) != len(b):
            return False
        return all(structural_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return type(a) is type(b) and a == b
    if type(a) is not type(b) and not (isinstance(a, str) and isinstance(b, str)):
        return False
    return a == b


__all__ = ["structural_equal"]
