"""Predicates over channels and decoded transactions.

Each check receives the step operand and the modifiers in force for it,
returns normally when the predicate passes and raises PredicateFailed when it
does not. Messages read "<subject> does[ not] <verb> <object>": a positive
failure says "does not", a negated failure says "does".
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from .errors import NotFound, predicate_failed
from .keys import build_composite_key, key_digest
from .ledger import Channel
from .modifiers import READ, WRITE, Modifiers, collections_satisfied, missing, touched
from .record import TransactionRecord


# Phrases per direction: collection verb, exclusive collection verb, key verbs.
_PHRASES = {
    WRITE: {
        "verb": "write to",
        "only_verb": "write only to",
        "key": "write to key in {}",
        "only_key": "write only to key in collection {}",
    },
    READ: {
        "verb": "read from",
        "only_verb": "read only from",
        "key": "read from key in collection {}",
        "only_key": "read only from key in collection {}",
    },
}


def require_record(operand: Any, step: str) -> TransactionRecord:
    if not isinstance(operand, TransactionRecord):
        raise TypeError(f"{step}() applies to a transaction, not {type(operand).__name__}")
    return operand


def _does(modifiers: Modifiers) -> str:
    return "does" if modifiers.negate else "does not"


def _subject(record: TransactionRecord) -> str:
    return f"Transaction {record.transaction_id}"


def text_matches(actual: str, expected: Any) -> bool:
    """Compare response or event text with an expected value.

    Non-text expectations are compared with the text parsed as JSON.
    """
    if isinstance(expected, str):
        return actual == expected
    if isinstance(expected, (bytes, bytearray)):
        return actual == bytes(expected).decode("utf-8", errors="replace")
    try:
        return json.loads(actual) == expected
    except ValueError:
        return False


async def has_transaction(channel: Any, modifiers: Modifiers, transaction_id: str) -> Optional[TransactionRecord]:
    """Look a transaction up; the record is the operand for the rest of the chain."""
    if not isinstance(channel, Channel):
        raise TypeError(f"transaction() applies to a channel, not {type(channel).__name__}")
    try:
        record: Optional[TransactionRecord] = await channel.get(transaction_id)
    except NotFound:
        record = None
    found = record is not None
    if not modifiers.passes(found):
        raise predicate_failed(
            f"Transaction {transaction_id} {'found' if found else 'not found'}",
            transaction_id=transaction_id,
            channel=channel.name,
        )
    return record


def has_function_and_parameters(
    operand: Any, modifiers: Modifiers, function_name: str, parameters: Sequence[str]
) -> None:
    record = require_record(operand, "function_and_parameters")
    expected = tuple(parameters)
    same_function = record.function_name == function_name
    same_parameters = record.parameters == expected
    subject = _subject(record)
    if modifiers.negate:
        if same_function:
            raise predicate_failed(f"{subject} does have function {function_name}")
        if same_parameters:
            raise predicate_failed(f"{subject} does have parameters {list(expected)}")
        return
    if not same_function:
        raise predicate_failed(
            f"{subject} does not have function {function_name}",
            expected=function_name,
            actual=record.function_name,
        )
    if not same_parameters:
        raise predicate_failed(
            f"{subject} does not have parameters {list(expected)}",
            expected=list(expected),
            actual=list(record.parameters),
        )


def touches_collections(operand: Any, modifiers: Modifiers, direction: str, collections: Sequence[str]) -> None:
    step = "write_to" if direction == WRITE else "read_from"
    record = require_record(operand, step)
    if not collections:
        raise ValueError(f"{step}() needs at least one collection name")
    present = record.written_collections if direction == WRITE else record.read_collections
    if collections_satisfied(present, collections, modifiers):
        return

    phrases = _PHRASES[direction]
    subject = _subject(record)
    details = {"expected": list(collections), "actual": sorted(present)}
    if modifiers.only:
        raise predicate_failed(
            f"{subject} {_does(modifiers)} {phrases['only_verb']} collections {', '.join(collections)}",
            **details,
        )
    if modifiers.negate:
        hit = touched(present, collections)
        raise predicate_failed(f"{subject} does {phrases['verb']} collection {hit[0]}", **details)
    absent = missing(present, collections)
    raise predicate_failed(f"{subject} does not {phrases['verb']} collection {absent[0]}", **details)


def _world_state_key(record: TransactionRecord, modifiers: Modifiers, direction: str, key: str) -> None:
    keys = record.public_write_keys if direction == WRITE else record.public_reads
    holds = keys == {key} if modifiers.only else key in keys
    if modifiers.passes(holds):
        return
    verb = _PHRASES[direction]["only_verb" if modifiers.only else "verb"]
    raise predicate_failed(
        f"{_subject(record)} {_does(modifiers)} {verb} key {key} in world state",
        key=key,
        actual=sorted(keys),
    )


def touches_key(
    operand: Any, modifiers: Modifiers, direction: str, key: str, collections: Sequence[str]
) -> None:
    """Check a plaintext key against the public set or the hashed private sets."""
    record = require_record(operand, "write_to_key" if direction == WRITE else "read_from_key")
    if not collections:
        _world_state_key(record, modifiers, direction, key)
        return

    digest = key_digest(key)
    phrases = _PHRASES[direction]
    subject = _subject(record)
    present = record.written_collections if direction == WRITE else record.read_collections

    def hashes(collection: str):
        if direction == WRITE:
            return record.private_write_hashes(collection)
        return record.private_read_hashes(collection)

    if modifiers.negate:
        if modifiers.only:
            if all(c in present and hashes(c) == {digest} for c in collections):
                raise predicate_failed(
                    f"{subject} does {phrases['only_key'].format(', '.join(collections))}",
                    key=key,
                )
            return
        for collection in collections:
            if digest in hashes(collection):
                raise predicate_failed(
                    f"{subject} does {phrases['key'].format(collection)}",
                    key=key,
                    collection=collection,
                )
        return

    for collection in collections:
        if collection not in present:
            raise predicate_failed(
                f"{subject} does not {phrases['verb']} collection {collection}",
                collection=collection,
            )
        if digest not in hashes(collection):
            raise predicate_failed(
                f"{subject} does not {phrases['key'].format(collection)}",
                key=key,
                collection=collection,
            )
        if modifiers.only and hashes(collection) != {digest}:
            raise predicate_failed(
                f"{subject} does not {phrases['only_key'].format(collection)}",
                key=key,
                collection=collection,
                key_count=len(hashes(collection)),
            )


def touches_composite_key(
    operand: Any,
    modifiers: Modifiers,
    direction: str,
    object_type: str,
    attributes: Sequence[str],
    collections: Sequence[str],
) -> None:
    key = build_composite_key(object_type, attributes)
    touches_key(operand, modifiers, direction, key, collections)


def touches_world_state(operand: Any, modifiers: Modifiers) -> None:
    record = require_record(operand, "world_state")
    for direction in modifiers.directions("world_state()"):
        keys = record.public_write_keys if direction == WRITE else record.public_reads
        if not modifiers.passes(bool(keys)):
            raise predicate_failed(
                f"{_subject(record)} {_does(modifiers)} {_PHRASES[direction]['verb']} world state",
                direction=direction,
                keys=sorted(keys),
            )


def emits_any_event(operand: Any, modifiers: Modifiers) -> None:
    record = require_record(operand, "event")
    if not modifiers.passes(record.event is not None):
        raise predicate_failed(f"{_subject(record)} {_does(modifiers)} emit event")


def emits_event(operand: Any, modifiers: Modifiers, name: str, data: Any) -> None:
    record = require_record(operand, "emit")
    event = record.event
    holds = event is not None and event.name == name and text_matches(event.data, data)
    if not modifiers.passes(holds):
        raise predicate_failed(
            f"{_subject(record)} {_does(modifiers)} emit event {name}",
            expected={"name": name, "data": data},
            actual=None if event is None else {"name": event.name, "data": event.data},
        )


def is_successful(operand: Any, modifiers: Modifiers) -> None:
    record = require_record(operand, "successful")
    if not modifiers.passes(record.response.successful):
        state = "is" if modifiers.negate else "is not"
        raise predicate_failed(
            f"{_subject(record)} {state} successful",
            status=record.response.status,
            response_message=record.response.message,
        )


def has_response_text(operand: Any, modifiers: Modifiers, part: str) -> None:
    record = require_record(operand, part)
    text = getattr(record.response, part)
    if not modifiers.passes(bool(text)):
        raise predicate_failed(f"{_subject(record)} {_does(modifiers)} have response {part}")


def has_exact_response_text(operand: Any, modifiers: Modifiers, part: str, expected: Any) -> None:
    record = require_record(operand, f"exact_{part}")
    text = getattr(record.response, part)
    if not modifiers.passes(text_matches(text, expected)):
        raise predicate_failed(
            f"{_subject(record)} {_does(modifiers)} have given response {part}",
            expected=expected,
            actual=text,
        )
