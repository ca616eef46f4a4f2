"""Shared utility modules."""

from .validators import (
    check_cardinality,
    check_type,
    check_values,
    expected_count,
)

__all__ = [
    "check_cardinality",
    "check_type",
    "check_values",
    "expected_count",
]
