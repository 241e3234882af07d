"""State storage seam.

A `StorageLookup` returns the stored value for a key as an explicit tagged
variant: `Raw` for values kept as opaque bytes, `Document` for values kept as
structured documents. `Collection` wraps a lookup for one world state or
private collection and turns the variant into the value a test compares
against.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Union

from .errors import NotFound
from .keys import build_composite_key


@dataclass(frozen=True)
class Raw:
    data: bytes


@dataclass(frozen=True)
class Document:
    fields: Mapping[str, Any] = field(default_factory=dict)


StoredValue = Union[Raw, Document]


class StorageLookup(Protocol):
    """Returns the stored value for `key`; raises NotFound if absent."""

    def get_value(self, key: str) -> StoredValue:
        ...


@dataclass(frozen=True)
class KeyValue:
    key: str
    value: Any


def _strip_bookkeeping(fields: Mapping[str, Any]) -> Dict[str, Any]:
    # Revision ids, versions and the like are not part of the stored value.
    return {k: v for k, v in fields.items() if not (k.startswith("_") or k.startswith("~"))}


def unwrap(stored: StoredValue) -> Any:
    if isinstance(stored, Raw):
        return stored.data.decode("utf-8", errors="replace")
    if isinstance(stored, Document):
        return _strip_bookkeeping(stored.fields)
    raise TypeError(f"unsupported stored value: {type(stored).__name__}")


class Collection:
    """World state or a private collection of one chaincode.

    `key` is a plain key, or the object type of a composite key when
    `attributes` is given.
    """

    def __init__(self, lookup: StorageLookup, name: str):
        self.lookup = lookup
        self.name = name

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    @staticmethod
    def format_key(key: str, attributes: Optional[Sequence[str]] = None) -> str:
        return key if attributes is None else build_composite_key(key, attributes)

    async def get(self, key: str, attributes: Optional[Sequence[str]] = None) -> Any:
        stored = await asyncio.to_thread(self.lookup.get_value, self.format_key(key, attributes))
        return unwrap(stored)

    async def exists(self, key: str, attributes: Optional[Sequence[str]] = None) -> bool:
        try:
            await self.get(key, attributes)
            return True
        except NotFound:
            return False
