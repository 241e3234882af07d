"""Decoded transaction facts.

A `TransactionRecord` is built once per lookup by `envelope.decode` and never
mutated afterwards. Private collection activity is only known through digests:
`private_writes` maps a collection name to `(key_hash, value_hash)` pairs and
`private_reads` maps it to key hashes. A collection that is missing from these
mappings had no observed activity.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ChaincodeEvent:
    name: str
    data: str


@dataclass(frozen=True)
class ChaincodeResponse:
    status: int
    message: str = ""
    payload: str = ""

    @property
    def successful(self) -> bool:
        # Peers treat anything below 400 as an endorsable response.
        return 200 <= self.status < 400


@dataclass(frozen=True)
class TransactionRecord:
    transaction_id: str
    channel_id: str
    chaincode_name: str
    function_name: str
    parameters: Tuple[str, ...]
    public_writes: FrozenSet[Tuple[str, str]]
    public_reads: FrozenSet[str]
    private_writes: Mapping[str, FrozenSet[Tuple[str, str]]]
    private_reads: Mapping[str, FrozenSet[str]]
    event: Optional[ChaincodeEvent]
    response: ChaincodeResponse

    def __post_init__(self) -> None:
        # Freeze the mappings so callers cannot add or drop collections.
        object.__setattr__(self, "private_writes", MappingProxyType(dict(self.private_writes)))
        object.__setattr__(self, "private_reads", MappingProxyType(dict(self.private_reads)))

    @property
    def written_collections(self) -> FrozenSet[str]:
        return frozenset(self.private_writes)

    @property
    def read_collections(self) -> FrozenSet[str]:
        return frozenset(self.private_reads)

    @property
    def public_write_keys(self) -> FrozenSet[str]:
        return frozenset(key for key, _ in self.public_writes)

    def writes_to(self, collection: str) -> bool:
        return collection in self.private_writes

    def reads_from(self, collection: str) -> bool:
        return collection in self.private_reads

    def private_write_hashes(self, collection: str) -> FrozenSet[str]:
        return frozenset(key_hash for key_hash, _ in self.private_writes.get(collection, ()))

    def private_read_hashes(self, collection: str) -> FrozenSet[str]:
        return self.private_reads.get(collection, frozenset())
