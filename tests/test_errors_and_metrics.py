import pytest
from prometheus_client import REGISTRY

from ledger_assertions.assertion import expect
from ledger_assertions.errors import (
    LA_E_CHAIN_TIMEOUT,
    LA_E_NOT_FOUND,
    LA_E_PREDICATE_FAILED,
    ChainTimeout,
    DependencyFailed,
    LedgerAssertionError,
    MissingContext,
    NotFound,
    PredicateFailed,
    ledger_error,
    not_found,
    predicate_failed,
)


def _count(predicate, outcome):
    value = REGISTRY.get_sample_value(
        "ledger_assert_predicates_total",
        {"predicate": predicate, "outcome": outcome},
    )
    return value or 0.0


def test_error_envelope():
    err = predicate_failed("Transaction tx-1 does not emit event", transaction_id="tx-1")
    assert err.code == LA_E_PREDICATE_FAILED
    assert str(err) == "LA_E_PREDICATE_FAILED: Transaction tx-1 does not emit event"
    assert err.as_dict() == {
        "code": LA_E_PREDICATE_FAILED,
        "message": "Transaction tx-1 does not emit event",
        "details": {"transaction_id": "tx-1"},
    }
    assert not_found("Key k not found").as_dict() == {"code": LA_E_NOT_FOUND, "message": "Key k not found"}


def test_error_kinds():
    assert isinstance(predicate_failed("x"), AssertionError)
    timeout = ledger_error(ChainTimeout, "slow")
    assert isinstance(timeout, TimeoutError)
    assert timeout.code == LA_E_CHAIN_TIMEOUT
    for kind in (NotFound, PredicateFailed, ChainTimeout, DependencyFailed, MissingContext):
        assert issubclass(kind, LedgerAssertionError)
    assert not issubclass(NotFound, AssertionError)


@pytest.mark.asyncio
async def test_predicate_outcomes_are_counted(channel, monkeypatch):
    monkeypatch.setenv("LEDGER_ASSERT_METRICS_ENABLED", "1")
    record = await channel.get("tx-create")
    passed = _count("event", "passed")
    failed = _count("emit", "failed")

    await expect(record).to.have.event()
    with pytest.raises(PredicateFailed):
        await expect(record).to.emit("Nope", "")

    assert _count("event", "passed") == passed + 1
    assert _count("emit", "failed") == failed + 1


@pytest.mark.asyncio
async def test_metrics_can_be_disabled(channel, monkeypatch):
    monkeypatch.setenv("LEDGER_ASSERT_METRICS_ENABLED", "0")
    record = await channel.get("tx-create")
    before = _count("successful", "passed")
    await expect(record).to.be.successful()
    assert _count("successful", "passed") == before
