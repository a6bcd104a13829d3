"""Artificial latency for the local backend.

The local backend awaits a delay strategy before every operation so callers
exercise the same asynchronous paths they would against a remote store.
Tests inject ``NoDelay`` (or a recording strategy) for determinism.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Mapping
from typing import Protocol

from data_provider.domain.enums import Operation


class DelayStrategy(Protocol):
    """Awaited once per operation, before any data is touched."""

    async def __call__(self, operation: str) -> None: ...


class NoDelay:
    async def __call__(self, operation: str) -> None:
        return None


class FixedDelay:
    """Same delay for every operation."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    async def __call__(self, operation: str) -> None:
        await asyncio.sleep(self.seconds)


class RandomDelay:
    """Uniformly random delay in ``[low, high]`` seconds."""

    def __init__(self, low: float, high: float, rng: random.Random | None = None) -> None:
        if low > high:
            raise ValueError("low must not exceed high")
        self.low = low
        self.high = high
        self._rng = rng or random.Random()

    async def __call__(self, operation: str) -> None:
        await asyncio.sleep(self._rng.uniform(self.low, self.high))


DEFAULT_OPERATION_DELAYS: dict[str, float] = {
    Operation.GET_LIST.value: 0.1,
    Operation.GET_ONE.value: 0.05,
    Operation.GET_MANY.value: 0.05,
    Operation.GET_MANY_REFERENCE.value: 0.1,
    Operation.CREATE.value: 0.2,
    Operation.UPDATE.value: 0.2,
    Operation.UPDATE_MANY.value: 0.3,
    Operation.DELETE.value: 0.2,
    Operation.DELETE_MANY.value: 0.3,
}


class OperationDelay:
    """Per-operation delay table; unknown operations use ``default``."""

    def __init__(
        self,
        delays: Mapping[str, float] | None = None,
        default: float = 0.0,
    ) -> None:
        self.delays = dict(DEFAULT_OPERATION_DELAYS if delays is None else delays)
        self.default = default

    async def __call__(self, operation: str) -> None:
        seconds = self.delays.get(operation, self.default)
        if seconds > 0:
            await asyncio.sleep(seconds)
