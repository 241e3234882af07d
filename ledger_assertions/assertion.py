"""Fluent, awaitable assertions over ledger transactions and state.

    record = await expect(channel).to.have.transaction(tx_id)
    await expect(record).to.write.world_state()
    await expect(channel).to.have.transaction(tx_id).which.does.not_.emit("Deleted", "")
    await expect(private).to.have.key("car1").with_.value({"colour": "red"})

Connective words only make a chain read well. Modifier words (`not_`, `only`,
`read`, `write`) change how the next predicate is evaluated. Every predicate
is scheduled on the running event loop as soon as it is called and returns an
`Outcome`; awaiting the last outcome of a chain is enough to surface a failure
anywhere in it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Coroutine, Optional, Sequence

from . import state_checks, transaction_checks
from .chain import ChainConfig, ChainFlag, await_previous
from .errors import LedgerAssertionError, PredicateFailed, not_found
from .metrics import record_predicate
from .modifiers import READ, WRITE, Modifiers

logger = logging.getLogger("ledger_assertions")


def _record(step: str, outcome: str) -> None:
    try:
        record_predicate(step, outcome)
    except Exception:
        logger.debug("could not record %s outcome for %s", outcome, step, exc_info=True)


async def _call(check: Callable[..., Any], *args: Any) -> Any:
    result = check(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _tracked(step: str, coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        result = await coro
    except PredicateFailed as e:
        _record(step, "failed")
        logger.debug("%s failed: %s", step, e.message)
        raise
    except LedgerAssertionError as e:
        _record(step, "error")
        logger.debug("%s aborted: %s", step, e)
        raise
    except Exception as e:
        _record(step, "error")
        logger.warning("%s raised %s: %s", step, type(e).__name__, e)
        raise
    _record(step, "passed")
    logger.debug("%s passed", step)
    return result


def _schedule(step: str, run: Callable[[], Coroutine[Any, Any, Any]]) -> "asyncio.Task[Any]":
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError(f"{step}() must be called while an event loop is running") from None
    return loop.create_task(_tracked(step, run()))


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # The chained step reports this failure, so the task itself need not.
    if not task.cancelled():
        task.exception()


class _Connectives:
    def _continue(self) -> "Assertion":
        raise NotImplementedError

    @property
    def to(self) -> "Assertion":
        return self._continue()

    @property
    def be(self) -> "Assertion":
        return self._continue()

    @property
    def been(self) -> "Assertion":
        return self._continue()

    @property
    def is_(self) -> "Assertion":
        return self._continue()

    @property
    def that(self) -> "Assertion":
        return self._continue()

    @property
    def which(self) -> "Assertion":
        return self._continue()

    @property
    def and_(self) -> "Assertion":
        return self._continue()

    @property
    def has(self) -> "Assertion":
        return self._continue()

    @property
    def have(self) -> "Assertion":
        return self._continue()

    @property
    def with_(self) -> "Assertion":
        return self._continue()

    @property
    def at(self) -> "Assertion":
        return self._continue()

    @property
    def of(self) -> "Assertion":
        return self._continue()

    @property
    def same(self) -> "Assertion":
        return self._continue()

    @property
    def but(self) -> "Assertion":
        return self._continue()

    @property
    def does(self) -> "Assertion":
        return self._continue()

    @property
    def not_(self) -> "Assertion":
        return self._continue().not_

    @property
    def only(self) -> "Assertion":
        return self._continue().only

    @property
    def read(self) -> "Assertion":
        return self._continue().read

    @property
    def write(self) -> "Assertion":
        return self._continue().write


@dataclass(frozen=True, eq=False, repr=False)
class Assertion(_Connectives):
    """Context of one point in an assertion chain.

    `subject` is what the chain started from. `flag` is the cell of the last
    producer step, if any; when set, its value replaces the subject as the
    operand of the next predicate. `previous` is the step this context was
    continued from.
    """

    subject: Any
    modifiers: Modifiers = field(default_factory=Modifiers)
    flag: Optional[ChainFlag] = None
    previous: Optional["asyncio.Task[Any]"] = None
    config: ChainConfig = field(default_factory=ChainConfig.from_env)

    def __repr__(self) -> str:
        return f"Assertion({self.subject!r}, {self.modifiers})"

    def _continue(self) -> "Assertion":
        return self

    @property
    def not_(self) -> "Assertion":
        return replace(self, modifiers=self.modifiers.negated())

    @property
    def only(self) -> "Assertion":
        return replace(self, modifiers=self.modifiers.exclusive())

    @property
    def read(self) -> "Assertion":
        return replace(self, modifiers=self.modifiers.reading())

    @property
    def write(self) -> "Assertion":
        return replace(self, modifiers=self.modifiers.writing())

    # -- evaluation

    async def _operand(self, step: str) -> Any:
        if self.flag is not None:
            operand = await self.flag.wait(self.config.max_wait_seconds, step=step)
        else:
            operand = self.subject
            if inspect.isawaitable(operand):
                operand = await operand
        if self.previous is not None:
            await await_previous(self.previous, self.config.max_wait_seconds, step=step)
        return operand

    def _consume(self, step: str, check: Callable[..., Any], *args: Any) -> "Outcome":
        modifiers = self.modifiers

        async def run() -> Any:
            operand = await self._operand(step)
            await _call(check, operand, modifiers, *args)
            return operand

        return Outcome(self, _schedule(step, run))

    def _produce(self, step: str, check: Callable[..., Any], *args: Any) -> "Outcome":
        modifiers = self.modifiers
        flag = ChainFlag(step)
        flag.begin()

        async def run() -> Any:
            try:
                operand = await self._operand(step)
                produced = await _call(check, operand, modifiers, *args)
            except BaseException as exc:
                flag.fail(exc)
                raise
            if produced is None:
                flag.fail(not_found(f"{step} passed negated, so there is nothing to chain on", step=step))
            else:
                flag.resolve(produced)
            return produced

        return Outcome(self, _schedule(step, run), flag)

    # -- channel

    def transaction(self, transaction_id: str) -> "Outcome":
        return self._produce("transaction", transaction_checks.has_transaction, transaction_id)

    # -- transaction

    def function_and_parameters(self, function_name: str, parameters: Sequence[str] = ()) -> "Outcome":
        return self._consume(
            "function_and_parameters",
            transaction_checks.has_function_and_parameters,
            function_name,
            tuple(parameters),
        )

    def write_to(self, *collections: str) -> "Outcome":
        return self._consume("write_to", transaction_checks.touches_collections, WRITE, collections)

    def read_from(self, *collections: str) -> "Outcome":
        return self._consume("read_from", transaction_checks.touches_collections, READ, collections)

    def write_to_key(self, key: str, *collections: str) -> "Outcome":
        return self._consume("write_to_key", transaction_checks.touches_key, WRITE, key, collections)

    def read_from_key(self, key: str, *collections: str) -> "Outcome":
        return self._consume("read_from_key", transaction_checks.touches_key, READ, key, collections)

    def write_to_composite_key(self, object_type: str, attributes: Sequence[str], *collections: str) -> "Outcome":
        return self._consume(
            "write_to_composite_key",
            transaction_checks.touches_composite_key,
            WRITE,
            object_type,
            tuple(attributes),
            collections,
        )

    def read_from_composite_key(self, object_type: str, attributes: Sequence[str], *collections: str) -> "Outcome":
        return self._consume(
            "read_from_composite_key",
            transaction_checks.touches_composite_key,
            READ,
            object_type,
            tuple(attributes),
            collections,
        )

    def world_state(self) -> "Outcome":
        return self._consume("world_state", transaction_checks.touches_world_state)

    def event(self) -> "Outcome":
        return self._consume("event", transaction_checks.emits_any_event)

    def emit(self, name: str, data: Any) -> "Outcome":
        return self._consume("emit", transaction_checks.emits_event, name, data)

    def successful(self) -> "Outcome":
        return self._consume("successful", transaction_checks.is_successful)

    def payload(self) -> "Outcome":
        return self._consume("payload", transaction_checks.has_response_text, "payload")

    def message(self) -> "Outcome":
        return self._consume("message", transaction_checks.has_response_text, "message")

    def exact_payload(self, expected: Any) -> "Outcome":
        return self._consume("exact_payload", transaction_checks.has_exact_response_text, "payload", expected)

    def exact_message(self, expected: Any) -> "Outcome":
        return self._consume("exact_message", transaction_checks.has_exact_response_text, "message", expected)

    # -- collection

    def key(self, key: str) -> "Outcome":
        return self._produce("key", state_checks.has_key, key)

    def composite_key(self, object_type: str, attributes: Sequence[str]) -> "Outcome":
        return self._produce("composite_key", state_checks.has_key, object_type, tuple(attributes))

    def key_with_value(self, key: str, expected: Any) -> "Outcome":
        return self._consume("key_with_value", state_checks.has_key_with_value, key, expected)

    def composite_key_with_value(self, object_type: str, attributes: Sequence[str], expected: Any) -> "Outcome":
        return self._consume(
            "composite_key_with_value",
            state_checks.has_key_with_value,
            object_type,
            expected,
            tuple(attributes),
        )

    # -- stored value

    def value(self, expected: Any) -> "Outcome":
        return self._consume("value", state_checks.has_value, expected)


class Outcome(_Connectives):
    """Result of one predicate.

    Awaiting it returns the step's operand (or, for a producer, the object it
    fetched) and raises if the step failed. A connective continues the chain
    with fresh modifiers.
    """

    def __init__(self, context: Assertion, task: "asyncio.Task[Any]", flag: Optional[ChainFlag] = None):
        self.context = context
        self.task = task
        self.flag = flag

    def __repr__(self) -> str:
        state = "done" if self.task.done() else "pending"
        return f"Outcome({self.context.subject!r}, {state})"

    def __await__(self):
        return self.task.__await__()

    def done(self) -> bool:
        return self.task.done()

    def _continue(self) -> Assertion:
        self.task.add_done_callback(_retrieve_exception)
        return Assertion(
            self.context.subject,
            Modifiers(),
            self.flag if self.flag is not None else self.context.flag,
            self.task,
            self.context.config,
        )


def expect(subject: Any, *, config: Optional[ChainConfig] = None) -> Assertion:
    """Start an assertion chain on a channel, record, collection or key value.

    An awaitable subject (for example `channel.get(tx_id)`) is scheduled right
    away and awaited by the first predicate.
    """
    if inspect.isawaitable(subject) and not asyncio.isfuture(subject):
        subject = asyncio.ensure_future(subject, loop=asyncio.get_running_loop())
    if config is None:
        return Assertion(subject)
    return Assertion(subject, config=config)


__all__ = ["Assertion", "Outcome", "expect"]
