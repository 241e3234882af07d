"""Transaction envelope decoding.

Turns the decoded block that contains a transaction into a `TransactionRecord`.

Input shape (SDK block decoder output, as a mapping or as JSON bytes/text):

    data.data[*].payload.header.channel_header.{tx_id, channel_id}
    data.data[*].payload.data.actions[0].payload
        .chaincode_proposal_payload.input.chaincode_spec
            .chaincode_id.name
            .input.args
        .action.proposal_response_payload.extension
            .results.ns_rwset[*]
                .namespace
                .rwset.{reads, writes}
                .collection_hashed_rwset[*].{collection_name, hashed_rwset}
            .events.{chaincode_id, event_name, payload}
            .response.{status, message, payload}

Only the matching entry is validated, so unrelated entries of the block (config
transactions and the like) never cause a failure. Every structural problem is
reported as `NotFound`: callers only distinguish "found" from "not found".
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import not_found
from .record import ChaincodeEvent, ChaincodeResponse, TransactionRecord

logger = logging.getLogger("ledger_assertions")

RawEnvelope = Union[bytes, bytearray, str, Mapping[str, Any]]


def _as_bytes(value: Any) -> Any:
    # JSON-serialised Node buffers look like {"type": "Buffer", "data": [..]}.
    if isinstance(value, Mapping) and value.get("type") == "Buffer" and isinstance(value.get("data"), list):
        try:
            return bytes(value["data"])
        except (TypeError, ValueError) as e:
            raise ValueError("malformed buffer") from e
    if isinstance(value, bytearray):
        return bytes(value)
    return value


def _text(value: Any) -> Any:
    value = _as_bytes(value)
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _hex(value: Any) -> Any:
    value = _as_bytes(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, str):
        return value.lower()
    return value


# ---------------------------
# Wire models
# ---------------------------

class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ChannelHeader(_Wire):
    tx_id: str
    channel_id: str


class Header(_Wire):
    channel_header: ChannelHeader


class ChaincodeId(_Wire):
    name: str


class ChaincodeInput(_Wire):
    args: List[str] = Field(default_factory=list)

    @field_validator("args", mode="before")
    @classmethod
    def decode_args(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_text(a) for a in v]
        return v


class ChaincodeSpec(_Wire):
    chaincode_id: ChaincodeId
    input: ChaincodeInput = Field(default_factory=ChaincodeInput)


class ChaincodeInvocationSpec(_Wire):
    chaincode_spec: ChaincodeSpec


class ChaincodeProposalPayload(_Wire):
    input: ChaincodeInvocationSpec


class KVRead(_Wire):
    key: str


class KVWrite(_Wire):
    key: str
    is_delete: bool = False
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def decode_value(cls, v: Any) -> Any:
        return _text(v)


class KVRWSet(_Wire):
    reads: List[KVRead] = Field(default_factory=list)
    writes: List[KVWrite] = Field(default_factory=list)


class KVReadHash(_Wire):
    key_hash: str

    @field_validator("key_hash", mode="before")
    @classmethod
    def hex_key(cls, v: Any) -> Any:
        return _hex(v)


class KVWriteHash(_Wire):
    key_hash: str
    is_delete: bool = False
    value_hash: str = ""

    @field_validator("key_hash", "value_hash", mode="before")
    @classmethod
    def hex_hashes(cls, v: Any) -> Any:
        return "" if v is None else _hex(v)


class HashedRWSet(_Wire):
    hashed_reads: List[KVReadHash] = Field(default_factory=list)
    hashed_writes: List[KVWriteHash] = Field(default_factory=list)


class CollectionHashedRWSet(_Wire):
    collection_name: str
    hashed_rwset: HashedRWSet = Field(default_factory=HashedRWSet)


class NsReadWriteSet(_Wire):
    namespace: str
    rwset: KVRWSet = Field(default_factory=KVRWSet)
    collection_hashed_rwset: List[CollectionHashedRWSet] = Field(default_factory=list)


class TxReadWriteSet(_Wire):
    ns_rwset: List[NsReadWriteSet] = Field(default_factory=list)


class EventWire(_Wire):
    chaincode_id: str = ""
    event_name: str = ""
    payload: str = ""

    @field_validator("payload", mode="before")
    @classmethod
    def decode_payload(cls, v: Any) -> Any:
        return _text(v)


class ResponseWire(_Wire):
    status: int = 0
    message: str = ""
    payload: str = ""

    @field_validator("message", "payload", mode="before")
    @classmethod
    def decode_text(cls, v: Any) -> Any:
        return _text(v)


class ChaincodeActionWire(_Wire):
    results: TxReadWriteSet = Field(default_factory=TxReadWriteSet)
    events: Optional[EventWire] = None
    response: ResponseWire = Field(default_factory=ResponseWire)


class ProposalResponsePayload(_Wire):
    extension: ChaincodeActionWire


class ChaincodeEndorsedAction(_Wire):
    proposal_response_payload: ProposalResponsePayload


class ChaincodeActionPayload(_Wire):
    chaincode_proposal_payload: ChaincodeProposalPayload
    action: ChaincodeEndorsedAction


class TransactionAction(_Wire):
    payload: ChaincodeActionPayload


class TransactionWire(_Wire):
    actions: List[TransactionAction] = Field(min_length=1)


class PayloadWire(_Wire):
    header: Header
    data: TransactionWire


class EnvelopeWire(_Wire):
    payload: PayloadWire


# ---------------------------
# Decoding
# ---------------------------

def _load(envelope: RawEnvelope, transaction_id: str) -> Mapping[str, Any]:
    if isinstance(envelope, Mapping):
        return envelope
    try:
        if isinstance(envelope, (bytes, bytearray)):
            envelope = bytes(envelope).decode("utf-8")
        loaded = json.loads(envelope)
    except (UnicodeDecodeError, ValueError) as e:
        raise not_found(f"Transaction {transaction_id} not found", reason=f"unreadable envelope: {e}") from e
    if not isinstance(loaded, Mapping):
        raise not_found(f"Transaction {transaction_id} not found", reason="envelope is not an object")
    return loaded


def _entry_tx_id(entry: Any) -> Optional[str]:
    try:
        return entry["payload"]["header"]["channel_header"]["tx_id"]
    except (KeyError, TypeError):
        return None


def _find_entry(block: Mapping[str, Any], transaction_id: str) -> Mapping[str, Any]:
    data = block.get("data")
    entries = data.get("data") if isinstance(data, Mapping) else None
    if not isinstance(entries, list):
        raise not_found(f"Transaction {transaction_id} not found", reason="envelope has no transaction list")
    for entry in entries:
        if _entry_tx_id(entry) == transaction_id:
            return entry
    raise not_found(f"Transaction {transaction_id} not found", transaction_id=transaction_id)


def _group_private(
    rwset: NsReadWriteSet,
) -> Tuple[Dict[str, FrozenSet[Tuple[str, str]]], Dict[str, FrozenSet[str]]]:
    writes: Dict[str, Set[Tuple[str, str]]] = {}
    reads: Dict[str, Set[str]] = {}
    for coll in rwset.collection_hashed_rwset:
        hashed = coll.hashed_rwset
        for w in hashed.hashed_writes:
            writes.setdefault(coll.collection_name, set()).add((w.key_hash, w.value_hash))
        for r in hashed.hashed_reads:
            reads.setdefault(coll.collection_name, set()).add(r.key_hash)
    # setdefault only creates entries for collections with activity, so
    # empty collections never appear.
    return (
        {name: frozenset(items) for name, items in writes.items()},
        {name: frozenset(items) for name, items in reads.items()},
    )


def decode(envelope: RawEnvelope, transaction_id: str) -> TransactionRecord:
    """Decode the transaction `transaction_id` out of `envelope`.

    Raises NotFound when the id is absent or its entry is malformed.
    """
    block = _load(envelope, transaction_id)
    entry = _find_entry(block, transaction_id)

    try:
        wire = EnvelopeWire.model_validate(entry)
    except ValidationError as e:
        logger.debug("Transaction %s has a malformed entry: %s", transaction_id, e)
        raise not_found(
            f"Transaction {transaction_id} not found",
            transaction_id=transaction_id,
            reason="malformed transaction entry",
            errors=e.error_count(),
        ) from e

    header = wire.payload.header.channel_header
    action = wire.payload.data.actions[0].payload
    invocation = action.chaincode_proposal_payload.input.chaincode_spec
    chaincode_name = invocation.chaincode_id.name
    args = invocation.input.args
    extension = action.action.proposal_response_payload.extension

    ns = next((s for s in extension.results.ns_rwset if s.namespace == chaincode_name), None)
    if ns is not None:
        public_writes = frozenset((w.key, w.value) for w in ns.rwset.writes)
        public_reads = frozenset(r.key for r in ns.rwset.reads)
        private_writes, private_reads = _group_private(ns)
    else:
        public_writes, public_reads = frozenset(), frozenset()
        private_writes, private_reads = {}, {}

    event: Optional[ChaincodeEvent] = None
    if extension.events is not None and extension.events.chaincode_id:
        event = ChaincodeEvent(name=extension.events.event_name, data=extension.events.payload)

    response = ChaincodeResponse(
        status=extension.response.status,
        message=extension.response.message,
        payload=extension.response.payload,
    )

    record = TransactionRecord(
        transaction_id=transaction_id,
        channel_id=header.channel_id,
        chaincode_name=chaincode_name,
        function_name=args[0] if args else "",
        parameters=tuple(args[1:]),
        public_writes=public_writes,
        public_reads=public_reads,
        private_writes=private_writes,
        private_reads=private_reads,
        event=event,
        response=response,
    )
    logger.debug(
        "Decoded transaction %s: %s.%s, %d private write collection(s), event=%s",
        transaction_id,
        chaincode_name,
        record.function_name,
        len(private_writes),
        event.name if event else None,
    )
    return record
