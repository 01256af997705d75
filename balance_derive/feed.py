"""
Live feed combinators on top of asyncio.

A feed is any async iterable of values pushed by the chain. The combinators
here own the upstream iterators they open: closing a combined feed cancels
and closes every upstream it started.
"""

import asyncio
import functools
import logging
import weakref
from collections.abc import AsyncIterable, AsyncIterator, Callable, Hashable
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_NOTHING = object()

VALUE = "value"
ERROR = "error"
DONE = "done"


@asynccontextmanager
async def _closing(source: AsyncIterable[T]):
    """Iterate a feed and close its iterator on exit."""
    iterator = aiter(source)
    try:
        yield iterator
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def _cancel(*tasks: asyncio.Task | None):
    pending = [task for task in tasks if task is not None]
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


async def of(*values: T) -> AsyncIterator[T]:
    """Feed that emits the given values and completes."""
    for value in values:
        yield value


async def map_feed(source: AsyncIterable[T], fn: Callable[[T], R]) -> AsyncIterator[R]:
    async with _closing(source) as values:
        async for value in values:
            yield fn(value)


async def combine_latest(*sources: AsyncIterable[Any]) -> AsyncIterator[tuple]:
    """
    Combine feeds into tuples of their latest values.

    A tuple is emitted for every update of any source once all of them have
    emitted at least once. The first source error is raised to the consumer.
    Completes once all sources complete, or as soon as one completes empty.
    """
    if not sources:
        return

    queue: asyncio.Queue = asyncio.Queue()
    latest: list[Any] = [_NOTHING] * len(sources)

    async def pump(index: int, source: AsyncIterable[Any]):
        try:
            async with _closing(source) as values:
                async for value in values:
                    queue.put_nowait((VALUE, index, value))
        except Exception as e:
            queue.put_nowait((ERROR, index, e))
        else:
            queue.put_nowait((DONE, index, None))

    tasks = [asyncio.create_task(pump(i, source)) for i, source in enumerate(sources)]
    try:
        remaining = len(sources)
        while remaining:
            kind, index, payload = await queue.get()
            if kind == ERROR:
                raise payload
            if kind == DONE:
                if latest[index] is _NOTHING:
                    return
                remaining -= 1
                continue
            latest[index] = payload
            if all(value is not _NOTHING for value in latest):
                yield tuple(latest)
    finally:
        await _cancel(*tasks)


async def switch_map(
    source: AsyncIterable[T], project: Callable[[T], AsyncIterable[R]]
) -> AsyncIterator[R]:
    """
    Map each source value to an inner feed, following only the newest one.

    A new source value cancels the previous inner feed; values it had already
    queued are dropped.
    """
    queue: asyncio.Queue = asyncio.Queue()
    generation = 0
    inner_task: asyncio.Task | None = None

    async def pump_inner(gen: int, feed: AsyncIterable[R]):
        try:
            async with _closing(feed) as values:
                async for value in values:
                    queue.put_nowait((gen, VALUE, value))
        except Exception as e:
            queue.put_nowait((gen, ERROR, e))
        else:
            queue.put_nowait((gen, DONE, None))

    async def pump_outer():
        nonlocal generation, inner_task
        try:
            async with _closing(source) as values:
                async for value in values:
                    await _cancel(inner_task)
                    generation += 1
                    queue.put_nowait((generation, "start", None))
                    inner_task = asyncio.create_task(pump_inner(generation, project(value)))
        except Exception as e:
            queue.put_nowait((None, ERROR, e))
        else:
            queue.put_nowait((None, DONE, None))

    outer_task = asyncio.create_task(pump_outer())
    outer_done = False
    inner_done = True
    try:
        while not (outer_done and inner_done):
            gen, kind, payload = await queue.get()
            if gen is None:
                if kind == ERROR:
                    raise payload
                outer_done = True
            elif gen != generation:
                continue
            elif kind == "start":
                inner_done = False
            elif kind == ERROR:
                raise payload
            elif kind == DONE:
                inner_done = True
            else:
                yield payload
    finally:
        await _cancel(outer_task, inner_task)


async def first(source: AsyncIterable[T]) -> T:
    """Await the first value of a feed, then unsubscribe from it."""
    async with _closing(source) as values:
        async for value in values:
            return value
    raise RuntimeError("Feed completed without emitting a value")


class SharedFeed(Generic[T]):
    """
    One upstream iteration shared by any number of subscribers.

    The upstream is started by the first subscriber and cancelled when the
    last one leaves. Late subscribers receive the latest value first.

    `claim` is called before the upstream (re)starts and returns the feed
    that owns the work; when that is another feed, subscribers are forwarded
    to it.
    """

    def __init__(
        self,
        factory: Callable[[], AsyncIterable[T]],
        on_idle: Callable[["SharedFeed[T]"], None] | None = None,
        claim: Callable[["SharedFeed[T]"], "SharedFeed[T]"] | None = None,
    ):
        self._factory = factory
        self._on_idle = on_idle
        self._claim = claim
        self._subscribers: list[asyncio.Queue] = []
        self._latest: Any = _NOTHING
        self._task: asyncio.Task | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._subscribe()

    async def _subscribe(self) -> AsyncIterator[T]:
        if self._task is None and self._claim is not None:
            # an idle feed may have been evicted and its key taken by another
            owner = self._claim(self)
            if owner is not self:
                async with _closing(owner) as values:
                    async for value in values:
                        yield value
                return
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        if self._latest is not _NOTHING:
            queue.put_nowait((VALUE, self._latest))
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        try:
            while True:
                kind, payload = await queue.get()
                if kind == VALUE:
                    yield payload
                elif kind == ERROR:
                    raise payload
                else:
                    return
        finally:
            self._subscribers.remove(queue)
            if not self._subscribers:
                await self._stop()

    def _broadcast(self, message: tuple):
        for queue in self._subscribers:
            queue.put_nowait(message)

    async def _run(self):
        try:
            async with _closing(self._factory()) as values:
                async for value in values:
                    self._latest = value
                    self._broadcast((VALUE, value))
        except Exception as e:
            logger.debug(f"Shared feed failed: {e!r}")
            self._reset()
            self._broadcast((ERROR, e))
        else:
            self._reset()
            self._broadcast((DONE, None))

    def _reset(self):
        self._task = None
        self._latest = _NOTHING

    async def _stop(self):
        task = self._task
        self._reset()
        await _cancel(task)
        if self._on_idle is not None and not self._subscribers:
            self._on_idle(self)


def memo(scope: Hashable, fn: Callable[..., AsyncIterable[T]]) -> Callable[..., SharedFeed[T]]:
    """
    Deduplicate concurrent feeds per (scope, *args).

    Calls with the same key while a feed is alive return the same SharedFeed.
    An entry is dropped when its last subscriber leaves, or once nothing
    references it any more. A dropped feed that is subscribed again takes its
    key back, or forwards to the feed that took the key meanwhile.
    """
    cache: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def evict(key: tuple, feed: SharedFeed[T]):
        if cache.get(key) is feed:
            del cache[key]

    def claim(key: tuple, feed: SharedFeed[T]) -> SharedFeed[T]:
        return cache.setdefault(key, feed)

    @functools.wraps(fn)
    def wrapper(*args: Hashable) -> SharedFeed[T]:
        key = (scope, *args)
        feed = cache.get(key)
        if feed is None:
            feed = SharedFeed(
                functools.partial(fn, *args),
                on_idle=functools.partial(evict, key),
                claim=functools.partial(claim, key),
            )
            cache[key] = feed
        return feed

    wrapper.cache = cache  # type: ignore[attr-defined]
    return wrapper
