"""Key hashing and composite keys.

Private collection read/write sets only carry SHA-256 digests of keys and
values. A plaintext key supplied by a test can only be checked by hashing it
the same way the peer did and looking the digest up.

Composite keys follow the chaincode shim's canonical form:

    "\\x00" + object_type + "\\x00" + attr_1 + "\\x00" + ... + attr_n + "\\x00"
"""

from __future__ import annotations

import hashlib
from typing import AbstractSet, List, Sequence, Tuple, Union

from .errors import LedgerAssertionError, LA_E_COMPOSITE_KEY


COMPOSITE_KEY_NAMESPACE = "\x00"
MIN_UNICODE_RUNE = "\x00"
MAX_UNICODE_RUNE = "\U0010ffff"


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def key_digest(key: Union[str, bytes]) -> str:
    """Lowercase hex SHA-256 of a key, as recorded in hashed rw-sets."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    return _sha256_hex(key)


# Values are committed with the same digest.
value_digest = key_digest


def matches(candidate_key: Union[str, bytes], hash_set: AbstractSet[str]) -> bool:
    return key_digest(candidate_key) in hash_set


def _validate_part(part: str, what: str) -> None:
    if not isinstance(part, str):
        raise LedgerAssertionError(
            LA_E_COMPOSITE_KEY, f"{what} must be a string", {"got": type(part).__name__}
        )
    for rune in (MIN_UNICODE_RUNE, MAX_UNICODE_RUNE):
        if rune in part:
            raise LedgerAssertionError(
                LA_E_COMPOSITE_KEY,
                f"{what} contains a reserved character",
                {"value": part, "rune": f"U+{ord(rune):04X}"},
            )


def build_composite_key(object_type: str, attributes: Sequence[str]) -> str:
    if not object_type:
        raise LedgerAssertionError(LA_E_COMPOSITE_KEY, "object type must not be empty")
    _validate_part(object_type, "object type")
    parts = [COMPOSITE_KEY_NAMESPACE, object_type, MIN_UNICODE_RUNE]
    for attribute in attributes:
        _validate_part(attribute, "attribute")
        parts.append(attribute)
        parts.append(MIN_UNICODE_RUNE)
    return "".join(parts)


def split_composite_key(key: str) -> Tuple[str, List[str]]:
    if len(key) < 2 or not key.startswith(COMPOSITE_KEY_NAMESPACE) or not key.endswith(MIN_UNICODE_RUNE):
        raise LedgerAssertionError(LA_E_COMPOSITE_KEY, "key is not a composite key", {"key": key})
    # Strip namespace and trailing separator, then split.
    object_type, *attributes = key[1:-1].split(MIN_UNICODE_RUNE)
    if not object_type:
        raise LedgerAssertionError(LA_E_COMPOSITE_KEY, "composite key has no object type", {"key": key})
    return object_type, attributes
