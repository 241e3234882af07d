import json

import pytest

from conftest import CAR_KEY, CHAINCODE, CHANNEL, STANDARD_ENTRIES, make_block, make_entry
from ledger_assertions.envelope import decode
from ledger_assertions.errors import NotFound
from ledger_assertions.keys import key_digest, value_digest


def _block():
    return make_block(*STANDARD_ENTRIES)


def test_decodes_function_parameters_and_public_writes():
    rec = decode(_block(), "tx-create")

    assert rec.transaction_id == "tx-create"
    assert rec.channel_id == CHANNEL
    assert rec.chaincode_name == CHAINCODE
    assert rec.function_name == "createKeyValue"
    assert rec.parameters == ("k1", "100")
    assert rec.public_writes == {("k1", "100")}
    assert rec.public_reads == frozenset()
    assert rec.private_writes == {}
    assert rec.response.status == 200
    assert rec.response.payload == '{"key":"k1","value":"100"}'


def test_event_payload_is_decoded_as_text():
    rec = decode(_block(), "tx-create")
    assert rec.event is not None
    assert rec.event.name == "KeyValueCreated"
    assert json.loads(rec.event.data) == {"key": "k1", "value": "100"}


def test_missing_event_extension_gives_no_event():
    rec = decode(_block(), "tx-private")
    assert rec.event is None


def test_event_without_chaincode_id_is_ignored():
    entry = make_entry("tx-anon", event=("Ignored", "x"))
    entry["payload"]["data"]["actions"][0]["payload"]["action"]["proposal_response_payload"]["extension"][
        "events"
    ]["chaincode_id"] = ""
    rec = decode(make_block(entry), "tx-anon")
    assert rec.event is None


def test_private_sets_are_grouped_by_collection():
    rec = decode(_block(), "tx-private")

    assert rec.written_collections == {"org1Collection", "org2Collection"}
    assert rec.read_collections == {"org1Collection"}
    assert rec.private_writes["org1Collection"] == {(key_digest("k2"), value_digest("secret"))}
    assert rec.private_write_hashes("org2Collection") == {key_digest("k2"), key_digest("k3")}
    assert rec.private_read_hashes("org1Collection") == {key_digest("k2")}
    assert rec.public_reads == {"k0"}


def test_collections_without_activity_are_dropped():
    entry = make_entry(
        "tx-sparse",
        private_writes={"org1Collection": [("k1", "v")], "emptyCollection": []},
        private_reads={"emptyCollection": []},
    )
    rec = decode(make_block(entry), "tx-sparse")
    assert rec.written_collections == {"org1Collection"}
    assert not rec.reads_from("emptyCollection")
    assert not rec.writes_to("emptyCollection")


def test_composite_keys_survive_decoding():
    rec = decode(_block(), "tx-composite")
    assert rec.public_write_keys == {CAR_KEY}
    assert key_digest(CAR_KEY) in rec.private_write_hashes("org1Collection")


def test_no_matching_namespace_gives_empty_sets():
    rec = decode(_block(), "tx-other")
    assert rec.public_writes == frozenset()
    assert rec.public_reads == frozenset()
    assert rec.private_writes == {}
    assert rec.private_reads == {}
    assert rec.function_name == "createKeyValue"


def test_absent_transaction_is_not_found():
    with pytest.raises(NotFound) as ei:
        decode(_block(), "tx-missing")
    assert "Transaction tx-missing not found" in ei.value.message


def test_malformed_entry_is_not_found():
    entry = make_entry("tx-broken")
    entry["payload"]["data"]["actions"] = []
    with pytest.raises(NotFound):
        decode(make_block(entry), "tx-broken")

    entry = make_entry("tx-broken")
    del entry["payload"]["data"]["actions"][0]["payload"]["chaincode_proposal_payload"]
    with pytest.raises(NotFound):
        decode(make_block(entry), "tx-broken")


def test_unreadable_envelope_is_not_found():
    with pytest.raises(NotFound):
        decode(b"\xff\xfe not json", "tx-create")
    with pytest.raises(NotFound):
        decode("[1, 2, 3]", "tx-create")
    with pytest.raises(NotFound):
        decode({"header": {}}, "tx-create")


def test_malformed_buffer_is_not_found():
    entry = make_entry("tx-bad")
    invocation = entry["payload"]["data"]["actions"][0]["payload"]["chaincode_proposal_payload"]["input"]
    invocation["chaincode_spec"]["input"]["args"][0] = {"type": "Buffer", "data": ["x"]}
    with pytest.raises(NotFound):
        decode(make_block(entry), "tx-bad")

    entry = make_entry("tx-bad", private_writes={"org1Collection": [("k", "v")]})
    action = entry["payload"]["data"]["actions"][0]["payload"]["action"]
    collection = action["proposal_response_payload"]["extension"]["results"]["ns_rwset"][1]["collection_hashed_rwset"][0]
    collection["hashed_rwset"]["hashed_writes"][0]["key_hash"] = {"type": "Buffer", "data": [None]}
    with pytest.raises(NotFound):
        decode(make_block(entry), "tx-bad")


def test_accepts_json_text_and_bytes():
    block = _block()
    from_text = decode(json.dumps(block), "tx-private")
    from_bytes = decode(json.dumps(block).encode("utf-8"), "tx-private")
    assert from_text == from_bytes == decode(block, "tx-private")


def test_decoding_is_deterministic():
    block = _block()
    assert decode(block, "tx-composite") == decode(block, "tx-composite")


def test_response_fields_verbatim():
    rec = decode(_block(), "tx-failed")
    assert rec.response.status == 500
    assert rec.response.message == "key nope does not exist"
    assert rec.response.payload == ""
    assert not rec.response.successful
