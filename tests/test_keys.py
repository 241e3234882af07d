import hashlib

import pytest

from ledger_assertions.errors import LA_E_COMPOSITE_KEY, LedgerAssertionError
from ledger_assertions.keys import (
    build_composite_key,
    key_digest,
    matches,
    split_composite_key,
    value_digest,
)


def test_key_digest_is_lowercase_sha256_hex():
    expected = hashlib.sha256(b"k1").hexdigest()
    assert key_digest("k1") == expected
    assert key_digest(b"k1") == expected
    assert key_digest("k1") == key_digest("k1").lower()
    assert value_digest("100") == hashlib.sha256(b"100").hexdigest()


def test_matches_only_when_digest_is_in_set():
    assert matches("k1", {key_digest("k1")})
    assert matches("k1", {key_digest("k0"), key_digest("k1")})
    assert not matches("k1", set())
    assert not matches("k2", {key_digest("k1")})


def test_composite_key_canonical_form():
    assert build_composite_key("car", ["red", "1"]) == "\x00car\x00red\x001\x00"
    assert build_composite_key("car", []) == "\x00car\x00"


def test_composite_key_is_injective_over_attribute_splits():
    a = build_composite_key("owner", ["ab", "c"])
    b = build_composite_key("owner", ["a", "bc"])
    c = build_composite_key("owner", ["abc"])
    d = build_composite_key("ownerab", ["c"])
    assert len({a, b, c, d}) == 4


@pytest.mark.parametrize(
    "object_type,attributes",
    [
        ("", ["a"]),
        ("car\x00", ["a"]),
        ("car", ["a\x00b"]),
        ("car", ["a\U0010ffff"]),
        ("car", [1]),
    ],
)
def test_composite_key_rejects_reserved_parts(object_type, attributes):
    with pytest.raises(LedgerAssertionError) as ei:
        build_composite_key(object_type, attributes)
    assert ei.value.code == LA_E_COMPOSITE_KEY


def test_split_composite_key_inverts_build():
    key = build_composite_key("car", ["red", "", "1"])
    assert split_composite_key(key) == ("car", ["red", "", "1"])


def test_split_rejects_plain_keys():
    with pytest.raises(LedgerAssertionError) as ei:
        split_composite_key("car:red:1")
    assert ei.value.code == LA_E_COMPOSITE_KEY
