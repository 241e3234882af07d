"""Prometheus metrics for ledger assertions.

Metrics goals:
- low-cardinality labels (predicate names, never keys or transaction ids)
- visibility into how long chained steps wait on their producers

Set LEDGER_ASSERT_METRICS_ENABLED=0 to turn recording off.
"""
from __future__ import annotations

import os

from prometheus_client import Counter, Histogram


def _env_bool(name: str, default: bool = True) -> bool:
    v = (os.getenv(name, "") or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


PREDICATES_TOTAL = Counter(
    "ledger_assert_predicates_total",
    "Total assertion predicates evaluated",
    ["predicate", "outcome"],
)
CHAIN_WAIT_SECONDS = Histogram(
    "ledger_assert_chain_wait_seconds",
    "Time a chained step waited for the step it depends on",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)


def record_predicate(predicate: str, outcome: str) -> None:
    if not _env_bool("LEDGER_ASSERT_METRICS_ENABLED", True):
        return
    PREDICATES_TOTAL.labels(predicate=str(predicate), outcome=str(outcome)).inc()


def observe_chain_wait(seconds: float) -> None:
    if not _env_bool("LEDGER_ASSERT_METRICS_ENABLED", True):
        return
    CHAIN_WAIT_SECONDS.observe(max(0.0, float(seconds)))
