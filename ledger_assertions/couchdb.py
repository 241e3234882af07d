"""CouchDB state database lookups.

Peers that use CouchDB as their state database keep one database per
namespace:

- world state: "<channel>_<chaincode>"
- private collection: "<channel>_<chaincode>$$p<collection>", where each
  upper-case letter of the collection name is written as "$" + lower-case

JSON values are stored as the document itself. Other values are stored as a
"valueBytes" attachment of the document.

Env:
- LEDGER_ASSERT_COUCHDB_URL (default: http://localhost:5984)
- LEDGER_ASSERT_COUCHDB_USERNAME, LEDGER_ASSERT_COUCHDB_PASSWORD (optional basic auth)
- LEDGER_ASSERT_COUCHDB_TIMEOUT_SECONDS (default: 10)
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import LA_E_STORAGE, LedgerAssertionError, NotFound, not_found
from .storage import Collection, Document, Raw, StoredValue

logger = logging.getLogger("ledger_assertions")

VALUE_ATTACHMENT = "valueBytes"


@dataclass(frozen=True)
class CouchDBConfig:
    url: str = "http://localhost:5984"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "CouchDBConfig":
        url = (os.getenv("LEDGER_ASSERT_COUCHDB_URL", "") or "").strip() or cls.url
        username = (os.getenv("LEDGER_ASSERT_COUCHDB_USERNAME", "") or "").strip() or None
        password = os.getenv("LEDGER_ASSERT_COUCHDB_PASSWORD") or None
        try:
            timeout = float(os.getenv("LEDGER_ASSERT_COUCHDB_TIMEOUT_SECONDS", str(cls.timeout_seconds)))
        except ValueError:
            timeout = cls.timeout_seconds
        if timeout <= 0:
            timeout = cls.timeout_seconds
        return cls(url=url, username=username, password=password, timeout_seconds=timeout)


def database_name(channel: str, chaincode: str, collection: Optional[str] = None) -> str:
    name = f"{channel}_{chaincode}"
    if collection:
        name += "$$p" + "".join("$" + c.lower() if c.isupper() else c for c in collection)
    return name


def _quote(part: str) -> str:
    return urllib.parse.quote(part, safe="")


class CouchDBClient:
    """Minimal read-only HTTP client for a CouchDB server."""

    def __init__(
        self,
        base_url: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_s: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout_s = float(timeout_s)

    @classmethod
    def from_config(cls, config: CouchDBConfig) -> "CouchDBClient":
        return cls(
            config.url,
            username=config.username,
            password=config.password,
            timeout_s=config.timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        h: Dict[str, str] = {"Accept": "application/json"}
        if self.username:
            token = f"{self.username}:{self.password or ''}".encode("utf-8")
            h["Authorization"] = "Basic " + base64.b64encode(token).decode("ascii")
        return h

    def _get(self, path: str) -> bytes:
        url = f"{self.base_url}{path}"
        req = urllib.request.Request(url, headers=self._headers(), method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise not_found(f"{path} not found", path=path, status=404)
            raise LedgerAssertionError(
                LA_E_STORAGE,
                f"CouchDB returned HTTP {e.code}",
                {"path": path, "status": int(e.code)},
            )
        except (urllib.error.URLError, OSError) as e:
            logger.warning("CouchDB request to %s failed: %s", url, e)
            raise LedgerAssertionError(LA_E_STORAGE, f"CouchDB request failed: {e}", {"path": path})

    def _get_json(self, path: str) -> Any:
        body = self._get(path)
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as e:
            raise LedgerAssertionError(LA_E_STORAGE, "CouchDB returned invalid JSON", {"path": path}) from e

    def list_databases(self) -> List[str]:
        return list(self._get_json("/_all_dbs"))

    def get_document(self, database: str, doc_id: str) -> Dict[str, Any]:
        doc = self._get_json(f"/{_quote(database)}/{_quote(doc_id)}")
        if not isinstance(doc, dict):
            raise LedgerAssertionError(LA_E_STORAGE, "CouchDB document is not an object", {"id": doc_id})
        return doc

    def get_attachment(self, database: str, doc_id: str, name: str) -> bytes:
        return self._get(f"/{_quote(database)}/{_quote(doc_id)}/{_quote(name)}")


class CouchDocumentStore:
    """Storage lookup over one CouchDB database."""

    def __init__(self, client: CouchDBClient, database: str):
        self.client = client
        self.database = database

    def get_value(self, key: str) -> StoredValue:
        try:
            data = self.client.get_attachment(self.database, key, VALUE_ATTACHMENT)
        except NotFound:
            # No attachment: the value is the JSON document itself.
            return Document(self.client.get_document(self.database, key))
        return Raw(data)


class StateDatabase:
    """Resolves world state and private collections to `Collection`s."""

    def __init__(self, client: CouchDBClient):
        self.client = client
        self._collections: Dict[str, Collection] = {}

    @classmethod
    def from_env(cls) -> "StateDatabase":
        return cls(CouchDBClient.from_config(CouchDBConfig.from_env()))

    async def get_world_state(self, channel: str, chaincode: str) -> Collection:
        return await self._collection(
            database_name(channel, chaincode),
            f"World state for chaincode {chaincode} in channel {channel}",
        )

    async def get_private_collection(self, channel: str, chaincode: str, collection: str) -> Collection:
        return await self._collection(
            database_name(channel, chaincode, collection),
            f"Collection {collection} for chaincode {chaincode} in channel {channel}",
        )

    async def _collection(self, name: str, description: str) -> Collection:
        cached = self._collections.get(name)
        if cached is not None:
            return cached
        names = await asyncio.to_thread(self.client.list_databases)
        if name not in names:
            raise not_found(f"{description} does not exist in the state database", database=name)
        collection = Collection(CouchDocumentStore(self.client, name), name)
        self._collections[name] = collection
        logger.debug("Using state database %s", name)
        return collection
