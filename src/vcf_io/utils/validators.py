"""Type and cardinality checks for INFO and FORMAT values.

Every function here is pure and reports failure through its return value;
callers attach the field name, offending value and line number.
"""

import logging
import re

logger = logging.getLogger(__name__)

MISSING = "."

INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
FLOAT_PATTERN = re.compile(
    r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$|^[+-]?(inf|infinity|nan)$",
    re.IGNORECASE,
)
CHARACTER_PATTERN = re.compile(r"^[A-Za-z]$")

INFO_TYPES = frozenset({"Integer", "Float", "Flag", "Character", "String"})
FORMAT_TYPES = frozenset({"Integer", "Float", "Character", "String"})


def check_type(value: str, type_name: str) -> bool:
    """Check a single scalar against a declared primitive type.

    Args:
        value: Raw value text
        type_name: Declared Type (Integer, Float, Character, String)

    Returns:
        True if the value is legal for the type. The missing marker ``.`` is
        legal for every type that carries values. Flag carries no values, so
        any value fails.
    """
    if not isinstance(value, str):
        return False
    if type_name == "Flag":
        return False
    if value == MISSING:
        return type_name in INFO_TYPES
    if type_name == "Integer":
        return bool(INTEGER_PATTERN.match(value))
    if type_name == "Float":
        return bool(FLOAT_PATTERN.match(value))
    if type_name == "Character":
        return bool(CHARACTER_PATTERN.match(value))
    if type_name == "String":
        return "\t" not in value and "\n" not in value
    return False


def expected_count(number: str, allele_count: int) -> int | None:
    """Calculate the expected number of values for a Number code.

    Returns None when the count is not checked (``.`` and ``G``).
    """
    if number == "A":
        return allele_count
    if number == "R":
        return allele_count + 1
    if number in ("G", MISSING):
        return None
    try:
        return int(number)
    except ValueError:
        return None


def check_cardinality(values: list[str], number: str, allele_count: int) -> bool:
    """Check a value list against a declared Number code.

    A lone ``.`` stands for a missing value and satisfies any code.
    """
    if number == "G":
        logger.debug("Number=G cardinality is not checked (%d values)", len(values))
        return True
    if values == [MISSING]:
        return True
    expected = expected_count(number, allele_count)
    if expected is None:
        return True
    return len(values) == expected


def check_values(
    values: list[str],
    number: str,
    type_name: str,
    allele_count: int,
) -> str | None:
    """Check cardinality then each value's type.

    Args:
        values: Value list of one INFO key or one sample field
        number: Declared Number code
        type_name: Declared Type
        allele_count: Number of ALT alleles of the record

    Returns:
        None if the values are legal, otherwise a short reason.
    """
    if type_name == "Flag":
        if values:
            return "flag must not carry a value"
        return None

    if not check_cardinality(values, number, allele_count):
        expected = expected_count(number, allele_count)
        return f"expected {expected} values (Number={number}), found {len(values)}"

    for value in values:
        if not check_type(value, type_name):
            return f"value {value!r} is not of type {type_name}"

    return None
