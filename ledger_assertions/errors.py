"""Stable error taxonomy for ledger assertions.

A single base exception carries a machine-readable `code`, a readable
`message` and structured `details`. The kind subclasses exist so that test
code can catch what it cares about:

- `PredicateFailed` is the normal negative outcome of an assertion and is
  also an `AssertionError`, so test runners report it as a failure.
- `NotFound`, `ChainTimeout`, `DependencyFailed` and `MissingContext` abort
  an assertion chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Type, TypeVar


# Lookups
LA_E_NOT_FOUND = "LA_E_NOT_FOUND"
LA_E_STORAGE = "LA_E_STORAGE"

# Predicates / chains
LA_E_PREDICATE_FAILED = "LA_E_PREDICATE_FAILED"
LA_E_CHAIN_TIMEOUT = "LA_E_CHAIN_TIMEOUT"
LA_E_DEPENDENCY_FAILED = "LA_E_DEPENDENCY_FAILED"
LA_E_MISSING_CONTEXT = "LA_E_MISSING_CONTEXT"

# Keys
LA_E_COMPOSITE_KEY = "LA_E_COMPOSITE_KEY"


@dataclass(eq=False)
class LedgerAssertionError(Exception):
    """Base exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFound(LedgerAssertionError):
    """The requested transaction id or storage key is absent."""


class PredicateFailed(LedgerAssertionError, AssertionError):
    """A predicate's expected condition does not hold."""


class ChainTimeout(LedgerAssertionError, TimeoutError):
    """A chain's producer did not settle within the configured wait."""


class DependencyFailed(LedgerAssertionError):
    """An earlier step of the chain failed, so this step was not evaluated."""


class MissingContext(LedgerAssertionError):
    """A context-sensitive check ran without its disambiguating modifier."""


_KIND_CODES: Dict[type, str] = {
    NotFound: LA_E_NOT_FOUND,
    PredicateFailed: LA_E_PREDICATE_FAILED,
    ChainTimeout: LA_E_CHAIN_TIMEOUT,
    DependencyFailed: LA_E_DEPENDENCY_FAILED,
    MissingContext: LA_E_MISSING_CONTEXT,
}

E = TypeVar("E", bound=LedgerAssertionError)


def ledger_error(kind: Type[E], message: str, **details: Any) -> E:
    return kind(code=_KIND_CODES[kind], message=message, details=details)


def not_found(message: str, **details: Any) -> NotFound:
    return ledger_error(NotFound, message, **details)


def predicate_failed(message: str, **details: Any) -> PredicateFailed:
    return ledger_error(PredicateFailed, message, **details)
