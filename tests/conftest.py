"""In-memory chain fakes for the derivation tests."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator, Sequence
from typing import Any

from balance_derive.api import StorageQuery
from balance_derive.types import AccountData

_NOTHING = object()

ALICE = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
BOB = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"


class LiveFeed:
    """Push source. Every subscriber gets the current value, then each push."""

    def __init__(self, *initial: Any) -> None:
        self._queues: list[asyncio.Queue] = []
        self._current: Any = initial[-1] if initial else _NOTHING
        self.subscriptions = 0

    @property
    def active(self) -> int:
        return len(self._queues)

    def push(self, value: Any) -> None:
        self._current = value
        for queue in self._queues:
            queue.put_nowait(("value", value))

    def fail(self, error: Exception) -> None:
        for queue in self._queues:
            queue.put_nowait(("error", error))

    def complete(self) -> None:
        for queue in self._queues:
            queue.put_nowait(("done", None))

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        self.subscriptions += 1
        if self._current is not _NOTHING:
            queue.put_nowait(("value", self._current))
        try:
            while True:
                kind, payload = await queue.get()
                if kind == "value":
                    yield payload
                elif kind == "error":
                    raise payload
                else:
                    return
        finally:
            self._queues.remove(queue)


class FakeChainApi:
    """ChainApi over LiveFeeds, counting every collaborator call."""

    def __init__(
        self,
        storage: set[tuple[str, str]] | None = None,
        instances: Sequence[str] = ("Balances",),
        custom_locks: dict[str, StorageQuery] | None = None,
        spec_name: str = "creditcoin3",
    ) -> None:
        if storage is None:
            storage = {("System", "Account"), ("Balances", "Locks"), ("Vesting", "Vesting")}
        self.storage = set(storage)
        self.instances = list(instances)
        self.custom_locks = custom_locks or {}
        self._spec_name = spec_name
        self.accounts: dict[str, LiveFeed] = {}
        self.best = LiveFeed(100)
        self.multi: dict[str | None, LiveFeed] = {}
        self.multi_calls: list[list[tuple[StorageQuery, str]]] = []
        self.calls: Counter = Counter()

    @property
    def spec_name(self) -> str:
        return self._spec_name

    def has_storage(self, module: str, storage_function: str) -> bool:
        return (module, storage_function) in self.storage

    def module_instances(self, spec_name: str, family: str) -> list[str]:
        self.calls["module_instances"] += 1
        return list(self.instances)

    def custom_lock_query(self, instance: str) -> StorageQuery | None:
        return self.custom_locks.get(instance)

    def account(self, address: str) -> LiveFeed:
        return self.accounts.setdefault(address, LiveFeed())

    def locks(self, address: str | None) -> LiveFeed:
        return self.multi.setdefault(address, LiveFeed())

    def account_balance(self, address: str) -> AsyncIterator[AccountData]:
        self.calls["account_balance"] += 1
        return aiter(self.account(address))

    def best_number(self) -> AsyncIterator[int]:
        self.calls["best_number"] += 1
        return aiter(self.best)

    def query(self, query: StorageQuery, address: str) -> AsyncIterator[Any]:
        self.calls["query"] += 1
        return aiter(self.locks(address))

    def query_multi(self, calls: Sequence[tuple[StorageQuery, str]]) -> AsyncIterator[tuple]:
        self.calls["query_multi"] += 1
        self.multi_calls.append(list(calls))
        address = calls[0][1] if calls else None
        return aiter(self.locks(address))


async def next_value(iterator: AsyncIterator[Any], timeout: float = 1.0) -> Any:
    return await asyncio.wait_for(anext(iterator), timeout)


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
