"""Ledger assertions package.

Fluent, awaitable assertions about transactions committed to a permissioned
ledger and about the state they left behind:

    from ledger_assertions import Channel, expect

    channel = Channel(my_ledger_query, "mychannel")
    await expect(channel).to.have.transaction(tx_id).which.does.write_to("org1Collection")

Convenience imports
------------------
Everything below is available at the package root and loaded lazily, so
importing the package does not pull in pydantic or prometheus_client until a
symbol that needs them is used.
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test checkouts."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = _read_version_from_pyproject() or "0.3.0"

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "expect": ("ledger_assertions.assertion", "expect"),
    "Assertion": ("ledger_assertions.assertion", "Assertion"),
    "Outcome": ("ledger_assertions.assertion", "Outcome"),
    "ChainConfig": ("ledger_assertions.chain", "ChainConfig"),
    "Channel": ("ledger_assertions.ledger", "Channel"),
    "LedgerQuery": ("ledger_assertions.ledger", "LedgerQuery"),
    "Collection": ("ledger_assertions.storage", "Collection"),
    "KeyValue": ("ledger_assertions.storage", "KeyValue"),
    "StorageLookup": ("ledger_assertions.storage", "StorageLookup"),
    "TransactionRecord": ("ledger_assertions.record", "TransactionRecord"),
    "decode": ("ledger_assertions.envelope", "decode"),
    "build_composite_key": ("ledger_assertions.keys", "build_composite_key"),
    "key_digest": ("ledger_assertions.keys", "key_digest"),
    "StateDatabase": ("ledger_assertions.couchdb", "StateDatabase"),
    "LedgerAssertionError": ("ledger_assertions.errors", "LedgerAssertionError"),
    "NotFound": ("ledger_assertions.errors", "NotFound"),
    "PredicateFailed": ("ledger_assertions.errors", "PredicateFailed"),
    "ChainTimeout": ("ledger_assertions.errors", "ChainTimeout"),
    "DependencyFailed": ("ledger_assertions.errors", "DependencyFailed"),
    "MissingContext": ("ledger_assertions.errors", "MissingContext"),
}

__all__ = ["__version__", *_LAZY_EXPORTS]


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        value = getattr(import_module(module_name), attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'ledger_assertions' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
