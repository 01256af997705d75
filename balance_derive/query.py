"""
Lock and vesting queries across runtime versions.

Older runtimes keep locks (with an `until` block) and the vesting schedule in
the Balances pallet. Current runtimes keep locks per balances instance and
vesting in its own pallet, which may be missing altogether. Both are reduced
to one `LocksResult`: the vesting schedule (or None) and one lock list per
balances instance.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from balance_derive.api import ChainApi, StorageQuery
from balance_derive.feed import map_feed, of
from balance_derive.types import BalanceLock, VestingInfo

logger = logging.getLogger(__name__)

LocksResult = tuple[VestingInfo | None, list[list[BalanceLock]]]

LEGACY_LOCKS = StorageQuery("Balances", "Locks")
LEGACY_VESTING = StorageQuery("Balances", "Vesting")
VESTING = StorageQuery("Vesting", "Vesting")
ACCOUNT_STORAGE = (StorageQuery("System", "Account"), StorageQuery("Balances", "Account"))

BALANCES_FAMILY = "balances"


def to_locks(value: Any) -> list[BalanceLock]:
    """Decode a lock list storage value (None for an empty storage entry)."""
    if not value:
        return []
    return [BalanceLock.from_value(item) for item in value]


def to_vesting(value: Any) -> VestingInfo | None:
    """Decode a `Vesting.Vesting` value, a single schedule or a list of them."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        if len(value) > 1:
            logger.warning(f"Account has {len(value)} vesting schedules, using the first one")
        value = value[0]
    return VestingInfo.from_value(value)


class LegacyLocksQuery:
    """Locks and vesting of runtimes before the System.Account migration."""

    def __init__(self, api: ChainApi):
        self.api = api

    def query(self, account_id: str) -> AsyncIterator[LocksResult]:
        calls = [(LEGACY_LOCKS, account_id), (LEGACY_VESTING, account_id)]
        return map_feed(self.api.query_multi(calls), self._normalize)

    @staticmethod
    def _normalize(values: Sequence[Any]) -> LocksResult:
        locks, vesting = values
        schedule = VestingInfo.from_legacy(vesting) if vesting is not None else None
        return schedule, [to_locks(locks)]


class CurrentLocksQuery:
    """Locks per balances instance plus the vesting pallet, when present."""

    def __init__(
        self,
        api: ChainApi,
        instances: Sequence[str],
        lock_queries: Sequence[StorageQuery | None],
        vesting_query: StorageQuery | None,
    ):
        self.api = api
        self.instances = tuple(instances)
        self.lock_queries = tuple(lock_queries)
        self.vesting_query = vesting_query

    def query(self, account_id: str) -> AsyncIterator[LocksResult]:
        calls = [(query, account_id) for query in self.lock_queries if query is not None]

        if self.vesting_query is not None:
            feed = self.api.query_multi([(self.vesting_query, account_id), *calls])
            return map_feed(feed, self._normalize)
        if calls:
            return map_feed(self.api.query_multi(calls), lambda values: self._normalize((None, *values)))
        return of((None, [[] for _ in self.lock_queries]))

    def _normalize(self, values: Sequence[Any]) -> LocksResult:
        vesting, *locks = values
        expected = sum(1 for query in self.lock_queries if query is not None)
        if len(locks) != expected:
            raise ValueError(f"Expected {expected} lock results, got {len(locks)}")

        resolved = iter(locks)
        all_locks = [
            to_locks(next(resolved)) if query is not None else []
            for query in self.lock_queries
        ]
        return to_vesting(vesting), all_locks


def resolve_lock_query(api: ChainApi, instance: str) -> StorageQuery | None:
    """Lock storage of a balances instance: a custom override, `<instance>.Locks`, or none."""
    custom = api.custom_lock_query(instance)
    if custom is not None:
        return custom
    if api.has_storage(instance, "Locks"):
        return StorageQuery(instance, "Locks")
    logger.debug(f"No lock storage for instance {instance}, treating as unlocked")
    return None


def build_locks_query(api: ChainApi) -> LegacyLocksQuery | CurrentLocksQuery:
    """Pick the query shape for the connected runtime."""
    if not any(api.has_storage(*storage) for storage in ACCOUNT_STORAGE):
        logger.debug("Runtime has no account storage, using legacy lock queries")
        return LegacyLocksQuery(api)

    instances = api.module_instances(api.spec_name, BALANCES_FAMILY)
    lock_queries = [resolve_lock_query(api, instance) for instance in instances]
    vesting_query = VESTING if api.has_storage(*VESTING) else None
    if vesting_query is None:
        logger.debug("Runtime has no vesting pallet")

    logger.debug(
        f"Lock queries for {api.spec_name}: "
        f"{[str(query) if query else None for query in lock_queries]}"
    )
    return CurrentLocksQuery(api, instances, lock_queries, vesting_query)
