from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def to_single(value: T | Sequence[T] | None) -> T | None:
    """Collapse a to-one relation that may arrive as an object, a one-item list, or nothing."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value
