"""Ledger query seam.

`LedgerQuery` is the interface the assertions consume; connecting to a peer
(gateway, wallet, identities) is left to the caller. Implementations are plain
blocking callables: `Channel` runs them in a worker thread so the event loop
stays free while a block is fetched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .envelope import RawEnvelope, decode
from .errors import NotFound
from .record import TransactionRecord

logger = logging.getLogger("ledger_assertions")


class LedgerQuery(Protocol):
    """Fetches the block envelope containing a transaction.

    Must raise NotFound for unknown ids and be free of side effects, so that
    repeated queries for the same id are safe.
    """

    def fetch_envelope(self, transaction_id: str) -> RawEnvelope:
        ...


class Channel:
    """A named channel that transactions can be looked up on."""

    def __init__(self, ledger: LedgerQuery, name: str):
        self.ledger = ledger
        self.name = name

    def __repr__(self) -> str:
        return f"Channel({self.name!r})"

    async def get(self, transaction_id: str) -> TransactionRecord:
        """Fetch and decode a transaction. Records are never cached."""
        envelope = await asyncio.to_thread(self.ledger.fetch_envelope, transaction_id)
        return decode(envelope, transaction_id)

    async def exists(self, transaction_id: str) -> bool:
        try:
            await self.get(transaction_id)
            return True
        except NotFound:
            logger.debug("Transaction %s not found on channel %s", transaction_id, self.name)
            return False
