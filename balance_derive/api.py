"""
Chain collaborator interface consumed by the derivation pipeline.
"""

from collections.abc import AsyncIterator, Sequence
from typing import Any, NamedTuple, Protocol

from balance_derive.types import AccountData


class StorageQuery(NamedTuple):
    """A storage item addressed by pallet and storage function name."""

    module: str
    storage_function: str

    def __str__(self) -> str:
        return f"{self.module}.{self.storage_function}"


class ChainApi(Protocol):
    """Live view of a chain: storage feeds plus runtime capabilities."""

    @property
    def spec_name(self) -> str:
        ...

    def has_storage(self, module: str, storage_function: str) -> bool:
        ...

    def module_instances(self, spec_name: str, family: str) -> list[str]:
        ...

    def custom_lock_query(self, instance: str) -> StorageQuery | None:
        ...

    def account_balance(self, address: str) -> AsyncIterator[AccountData]:
        ...

    def best_number(self) -> AsyncIterator[int]:
        ...

    def query(self, query: StorageQuery, address: str) -> AsyncIterator[Any]:
        ...

    def query_multi(self, calls: Sequence[tuple[StorageQuery, str]]) -> AsyncIterator[tuple]:
        ...
