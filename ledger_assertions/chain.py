"""Chain coordination between assertion steps.

A fluent chain such as

    await expect(channel).to.have.transaction(tx_id).with_.emit("Created", "{}")

contains a *producer* step (`transaction`) whose result, the decoded record,
is the operand of the *consumer* step after it (`emit`). Both steps are
scheduled immediately and run concurrently on the event loop; ordering between
them comes from a `ChainFlag`, a single-assignment cell owned by the chain:

    UNSET -> PENDING -> RESOLVED(value) | FAILED(error)

The producer marks the flag PENDING before it is scheduled and settles it
exactly once, as the last thing it does. Consumers wait for the flag, bounded
by `ChainConfig.max_wait_seconds`:

- RESOLVED: the value becomes the consumer's operand.
- FAILED: the consumer raises DependencyFailed without evaluating anything.
- still PENDING when the bound elapses: the consumer raises ChainTimeout.

Everything runs on one event loop, and a flag is only written by its producer,
so no locking is needed.

Env:
- LEDGER_ASSERT_MAX_CHAIN_WAIT_SECONDS (default: 5)
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import (
    ChainTimeout,
    DependencyFailed,
    LedgerAssertionError,
    ledger_error,
)
from .metrics import observe_chain_wait

logger = logging.getLogger("ledger_assertions")


@dataclass(frozen=True)
class ChainConfig:
    max_wait_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "ChainConfig":
        raw = (os.getenv("LEDGER_ASSERT_MAX_CHAIN_WAIT_SECONDS", "") or "").strip()
        try:
            wait = float(raw) if raw else cls.max_wait_seconds
        except ValueError:
            wait = cls.max_wait_seconds
        if not math.isfinite(wait):
            wait = cls.max_wait_seconds
        # Clamp to sensible bounds
        wait = max(0.001, min(wait, 3600.0))
        return cls(max_wait_seconds=wait)


class FlagState(str, Enum):
    UNSET = "unset"
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


def _describe(error: BaseException) -> str:
    if isinstance(error, LedgerAssertionError):
        return error.message
    return f"{type(error).__name__}: {error}"


def dependency_failed(step: str, cause: BaseException) -> DependencyFailed:
    return ledger_error(
        DependencyFailed,
        f"{step} was not evaluated: {_describe(cause)}",
        step=step,
        cause=getattr(cause, "code", type(cause).__name__),
    )


def chain_timeout(step: str, waited_on: str, max_wait_seconds: float) -> ChainTimeout:
    return ledger_error(
        ChainTimeout,
        f"Timed out after {max_wait_seconds:g}s waiting for {waited_on} before {step}",
        step=step,
        waited_on=waited_on,
        max_wait_seconds=max_wait_seconds,
    )


def _observe_wait(seconds: float) -> None:
    try:
        observe_chain_wait(seconds)
    except Exception:
        logger.debug("could not record chain wait", exc_info=True)


async def _wait_bounded(
    done: Callable[[], bool],
    waiter: Callable[[], Awaitable[Any]],
    max_wait_seconds: float,
) -> bool:
    """Wait until done() holds. False only once the full bound has elapsed."""
    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = started + max_wait_seconds
    try:
        while not done():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(waiter(), remaining)
            except asyncio.TimeoutError:
                # Loop timers may fire marginally early; re-check the deadline.
                continue
        return True
    finally:
        _observe_wait(loop.time() - started)


class ChainFlag:
    """Single-assignment cell shared by one producer and its consumers."""

    def __init__(self, producer: str = "producer"):
        self.producer = producer
        self._state = FlagState.UNSET
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._settled = asyncio.Event()

    def __repr__(self) -> str:
        return f"ChainFlag({self.producer!r}, {self._state.value})"

    @property
    def state(self) -> FlagState:
        return self._state

    @property
    def value(self) -> Any:
        return self._value

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def begin(self) -> None:
        if self._state is not FlagState.UNSET:
            raise RuntimeError(f"chain flag for {self.producer} already {self._state.value}")
        self._state = FlagState.PENDING

    def resolve(self, value: Any) -> None:
        self._settle(FlagState.RESOLVED)
        self._value = value
        self._settled.set()
        logger.debug("%s resolved", self.producer)

    def fail(self, error: BaseException) -> None:
        self._settle(FlagState.FAILED)
        self._error = error
        self._settled.set()
        logger.debug("%s failed: %s", self.producer, _describe(error))

    def _settle(self, target: FlagState) -> None:
        if self._state is not FlagState.PENDING:
            raise RuntimeError(
                f"chain flag for {self.producer} cannot move from {self._state.value} to {target.value}"
            )
        self._state = target

    async def wait(self, max_wait_seconds: float, *, step: str) -> Any:
        """Return the producer's value for `step`.

        Raises DependencyFailed if the producer failed and ChainTimeout if it
        is still pending after max_wait_seconds.
        """
        if self._state is FlagState.UNSET:
            raise RuntimeError(f"nothing produces the operand for {step}")
        if self._state is FlagState.PENDING:
            settled = await _wait_bounded(self._settled.is_set, self._settled.wait, max_wait_seconds)
            if not settled:
                logger.warning("%s timed out waiting for %s after %gs", step, self.producer, max_wait_seconds)
                raise chain_timeout(step, self.producer, max_wait_seconds)
        if self._state is FlagState.FAILED:
            assert self._error is not None
            raise dependency_failed(step, self._error) from self._error
        return self._value


async def await_previous(previous: "asyncio.Task[Any]", max_wait_seconds: float, *, step: str) -> None:
    """Wait for the step `step` was chained after; re-raise its failure as DependencyFailed."""
    if not previous.done():
        finished = await _wait_bounded(previous.done, lambda: asyncio.wait({previous}), max_wait_seconds)
        if not finished:
            logger.warning("%s timed out waiting for the previous step after %gs", step, max_wait_seconds)
            raise chain_timeout(step, "the previous step", max_wait_seconds)
    if previous.cancelled():
        raise dependency_failed(step, asyncio.CancelledError("previous step was cancelled"))
    error = previous.exception()
    if error is not None:
        raise dependency_failed(step, error) from error
