"""Predicates over committed state: collections and the values stored in them."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from .errors import NotFound, not_found, predicate_failed
from .modifiers import Modifiers
from .storage import Collection, KeyValue


def require_collection(operand: Any, step: str) -> Collection:
    if not isinstance(operand, Collection):
        raise TypeError(f"{step}() applies to a collection, not {type(operand).__name__}")
    return operand


async def has_key(
    operand: Any, modifiers: Modifiers, key: str, attributes: Optional[Sequence[str]] = None
) -> Optional[KeyValue]:
    collection = require_collection(operand, "key" if attributes is None else "composite_key")
    full_key = Collection.format_key(key, attributes)
    try:
        value = await collection.get(full_key)
    except NotFound:
        found = None
    else:
        found = KeyValue(full_key, value)
    if not modifiers.passes(found is not None):
        raise predicate_failed(
            f"Key {full_key} {'found' if found is not None else 'not found'}",
            key=full_key,
            collection=collection.name,
        )
    return found


def has_value(operand: Any, modifiers: Modifiers, expected: Any) -> None:
    if not isinstance(operand, KeyValue):
        raise TypeError(f"value() applies to a key, not {type(operand).__name__}")
    if not modifiers.passes(operand.value == expected):
        raise predicate_failed(
            f"Value at {operand.key} {'does' if modifiers.negate else 'does not'} equal expected value",
            key=operand.key,
            expected=expected,
            actual=operand.value,
        )


async def has_key_with_value(
    operand: Any,
    modifiers: Modifiers,
    key: str,
    expected: Any,
    attributes: Optional[Sequence[str]] = None,
) -> None:
    # Existence is always asserted; the modifiers only apply to the comparison.
    found = await has_key(operand, Modifiers(), key, attributes)
    if found is None:
        raise not_found(f"Key {Collection.format_key(key, attributes)} not found")
    has_value(found, modifiers, expected)
