import json
import threading
import time

import pytest

from ledger_assertions.errors import not_found
from ledger_assertions.keys import build_composite_key, key_digest, value_digest
from ledger_assertions.ledger import Channel
from ledger_assertions.storage import Collection, Document, Raw


CHANNEL = "mychannel"
CHAINCODE = "keyvalue"

CAR_KEY = build_composite_key("car", ["red", "1"])


def buffer(text: str) -> dict:
    # JSON form of a Node Buffer, as the SDK block decoder emits it.
    return {"type": "Buffer", "data": list(text.encode("utf-8"))}


def make_entry(
    tx_id,
    *,
    function="createKeyValue",
    args=("k1", "100"),
    chaincode=CHAINCODE,
    namespace=None,
    channel=CHANNEL,
    writes=(),
    reads=(),
    private_writes=None,
    private_reads=None,
    event=None,
    status=200,
    message="",
    payload="",
):
    """Build one `data.data[*]` entry of a decoded block."""
    private_writes = private_writes or {}
    private_reads = private_reads or {}
    collections = []
    for name in sorted(set(private_writes) | set(private_reads)):
        collections.append(
            {
                "collection_name": name,
                "hashed_rwset": {
                    "hashed_reads": [
                        {"key_hash": key_digest(k), "version": {"block_num": "3", "tx_num": "0"}}
                        for k in private_reads.get(name, ())
                    ],
                    "hashed_writes": [
                        {
                            "key_hash": {"type": "Buffer", "data": list(bytes.fromhex(key_digest(k)))},
                            "is_delete": False,
                            "value_hash": value_digest(v),
                        }
                        for k, v in private_writes.get(name, ())
                    ],
                },
                "pvt_rwset_hash": "",
            }
        )

    extension = {
        "results": {
            "data_model": "KV",
            "ns_rwset": [
                {"namespace": "_lifecycle", "rwset": {"reads": [{"key": "namespaces/fields/x"}], "writes": []}},
                {
                    "namespace": namespace or chaincode,
                    "rwset": {
                        "reads": [{"key": k, "version": None} for k in reads],
                        "range_queries_info": [],
                        "writes": [{"key": k, "is_delete": False, "value": buffer(v)} for k, v in writes],
                    },
                    "collection_hashed_rwset": collections,
                },
            ],
        },
        "response": {"status": status, "message": message, "payload": buffer(payload)},
        "chaincode_id": {"name": chaincode, "version": "1"},
    }
    if event is not None:
        name, data = event
        extension["events"] = {
            "chaincode_id": chaincode,
            "tx_id": tx_id,
            "event_name": name,
            "payload": buffer(data),
        }

    return {
        "payload": {
            "header": {
                "channel_header": {"type": "ENDORSER_TRANSACTION", "tx_id": tx_id, "channel_id": channel},
                "signature_header": {"creator": {"mspid": "Org1MSP"}},
            },
            "data": {
                "actions": [
                    {
                        "header": {},
                        "payload": {
                            "chaincode_proposal_payload": {
                                "input": {
                                    "chaincode_spec": {
                                        "type": "NODE",
                                        "chaincode_id": {"path": "", "name": chaincode, "version": ""},
                                        "input": {
                                            "args": [buffer(a) for a in (function, *args)],
                                            "decorations": {},
                                        },
                                    }
                                }
                            },
                            "action": {
                                "proposal_response_payload": {
                                    "proposal_hash": "00",
                                    "extension": extension,
                                },
                                "endorsements": [],
                            },
                        },
                    }
                ]
            },
        },
        "signature": "",
    }


def make_block(*entries, number=7):
    return {"header": {"number": str(number)}, "data": {"data": list(entries)}, "metadata": {}}


STANDARD_ENTRIES = [
    make_entry(
        "tx-create",
        writes=[("k1", "100")],
        event=("KeyValueCreated", '{"key":"k1","value":"100"}'),
        payload='{"key":"k1","value":"100"}',
    ),
    make_entry(
        "tx-private",
        function="createPrivateKeyValue",
        args=("k2",),
        reads=["k0"],
        private_writes={
            "org1Collection": [("k2", "secret")],
            "org2Collection": [("k2", "secret"), ("k3", "other")],
        },
        private_reads={"org1Collection": ["k2"]},
        message="stored",
    ),
    make_entry(
        "tx-composite",
        function="createCar",
        args=("red", "1"),
        writes=[(CAR_KEY, '{"colour":"red"}')],
        private_writes={"org1Collection": [(CAR_KEY, "price:100")]},
        private_reads={"org1Collection": [CAR_KEY]},
    ),
    make_entry("tx-failed", function="deleteKeyValue", args=("nope",), status=500, message="key nope does not exist"),
    make_entry("tx-other", namespace="othercc", writes=[("z", "1")]),
]


class FakeLedger:
    """LedgerQuery over in-memory blocks; records every fetch."""

    def __init__(self, *entries, gate=None):
        self.fetches = []
        self.gate = gate
        self._blocks = {}
        for n, entry in enumerate(entries):
            self.add(entry, number=n + 1)

    def add(self, entry, number=1):
        tx_id = entry["payload"]["header"]["channel_header"]["tx_id"]
        self._blocks[tx_id] = make_block(entry, number=number)

    def fetch_envelope(self, transaction_id):
        self.fetches.append(transaction_id)
        if self.gate is not None:
            self.gate.wait(timeout=10)
        block = self._blocks.get(transaction_id)
        if block is None:
            raise not_found(f"Transaction {transaction_id} not found")
        return json.dumps(block)


class FakeStorage:
    """StorageLookup over a dict of stored values; records every lookup."""

    def __init__(self, values=None, delay=0.0):
        self.values = dict(values or {})
        self.lookups = []
        self.delay = delay

    def get_value(self, key):
        self.lookups.append(key)
        if self.delay:
            time.sleep(self.delay)
        if key not in self.values:
            raise not_found(f"Key {key} not found", key=key)
        return self.values[key]


@pytest.fixture
def ledger():
    return FakeLedger(*STANDARD_ENTRIES)


@pytest.fixture
def channel(ledger):
    return Channel(ledger, CHANNEL)


@pytest.fixture
def gated_ledger():
    gate = threading.Event()
    ledger = FakeLedger(*STANDARD_ENTRIES, gate=gate)
    try:
        yield ledger
    finally:
        gate.set()


@pytest.fixture
def storage():
    return FakeStorage(
        {
            "k1": Raw(b"100"),
            "k2": Document({"_id": "k2", "_rev": "1-abc", "~version": "CgMBAQA=", "owner": "alice", "amount": 5}),
            CAR_KEY: Document({"_id": CAR_KEY, "colour": "red", "doors": 4}),
        }
    )


@pytest.fixture
def collection(storage):
    return Collection(storage, f"{CHANNEL}_{CHAINCODE}")
