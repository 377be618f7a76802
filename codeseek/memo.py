"""Compute-once async values.

Used for state that is expensive to resolve and shared across calls on one
instance: a provider's embedding dimension, a collection's load state.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_UNSET: Any = object()


class AsyncOnce(Generic[T]):
    """
    Lazily computed value whose first computation is shared by all callers.

    Concurrent callers of `get()` while the value is unset await the same
    in-flight task instead of starting their own. On success the value is
    stored and returned to every later caller without touching the factory.
    If the computation fails or is cancelled the memo goes back to unset, so
    the next `get()` starts over. A caller cancelled while waiting does not
    cancel the shared computation.

    `set()` and `reset()` detach an in-flight computation without cancelling
    it. Its result is then discarded, and callers that were waiting on it
    return the value given to `set()`, or start over after `reset()`.

    The stored value is kept outside the task, so a memo filled under one event
    loop can be read under another one.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]]) -> None:
        self._factory = factory
        self._value: Any = _UNSET
        self._task: Optional[asyncio.Task] = None
        # Bumped by set()/reset(); waiters compare it to spot a detached task.
        self._generation = 0

    @property
    def is_set(self) -> bool:
        """True once a computation has succeeded (or `set()` was called)."""
        return self._value is not _UNSET

    def peek(self, default: Optional[T] = None) -> Optional[T]:
        """Return the stored value without computing it."""
        return default if self._value is _UNSET else self._value

    def set(self, value: T) -> None:
        """Store a value known from elsewhere, superseding any pending computation."""
        self._detach()
        self._value = value

    def reset(self) -> None:
        """Forget the stored value; the next `get()` recomputes it."""
        self._detach()
        self._value = _UNSET

    async def get(self) -> T:
        """Return the value, computing it at most once across concurrent callers."""
        while True:
            if self._value is not _UNSET:
                return self._value

            generation = self._generation
            task = self._task
            if task is None or task.get_loop() is not asyncio.get_running_loop():
                task = asyncio.ensure_future(self._run())
                self._task = task
            try:
                value = await asyncio.shield(task)
            except Exception:
                if generation == self._generation:
                    raise
                continue
            if generation == self._generation:
                return value

    async def _run(self) -> T:
        me = asyncio.current_task()
        try:
            value = await self._factory()
        except BaseException:
            if self._task is me:
                self._task = None
            raise
        # A detached computation must not overwrite what set()/reset() decided.
        if self._task is me:
            self._task = None
            self._value = value
        return value

    def _detach(self) -> None:
        self._task = None
        self._generation += 1
