"""Assertion modifiers and the set semantics they select.

Modifiers are set by connective words (`not_`, `only`, `read`, `write`) and
apply to the next predicate of a chain.

Collection containment truth table, for a set of collections actually touched
(`present`) and the names supplied by the test (`named`):

    plain,  positive   every name is present
    plain,  negated    no name is present
    only,   positive   present == set(named)
    only,   negated    present != set(named)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import AbstractSet, List, Sequence

from .errors import MissingContext, ledger_error


READ = "read"
WRITE = "write"


@dataclass(frozen=True)
class Modifiers:
    negate: bool = False
    only: bool = False
    read: bool = False
    write: bool = False

    def negated(self) -> "Modifiers":
        return replace(self, negate=True)

    def exclusive(self) -> "Modifiers":
        return replace(self, only=True)

    def reading(self) -> "Modifiers":
        return replace(self, read=True)

    def writing(self) -> "Modifiers":
        return replace(self, write=True)

    def passes(self, holds: bool) -> bool:
        """Whether a predicate whose condition is `holds` passes."""
        return holds != self.negate

    def directions(self, check: str) -> List[str]:
        """Directions a context-free world state check applies to."""
        out = []
        if self.write:
            out.append(WRITE)
        if self.read:
            out.append(READ)
        if not out:
            raise ledger_error(
                MissingContext,
                f"{check} needs .read or .write to know which direction to check",
                check=check,
            )
        return out


def missing(present: AbstractSet[str], named: Sequence[str]) -> List[str]:
    return [n for n in named if n not in present]


def touched(present: AbstractSet[str], named: Sequence[str]) -> List[str]:
    return [n for n in named if n in present]


def exactly(present: AbstractSet[str], named: Sequence[str]) -> bool:
    return set(present) == set(named)


def collections_satisfied(present: AbstractSet[str], named: Sequence[str], modifiers: Modifiers) -> bool:
    if modifiers.only:
        return modifiers.passes(exactly(present, named))
    if modifiers.negate:
        return not touched(present, named)
    return not missing(present, named)
