"""
Derived balances of an account, recomputed as the chain moves.
"""

import logging
from collections.abc import AsyncIterator, Hashable
from dataclasses import fields

from balance_derive.api import ChainApi
from balance_derive.feed import SharedFeed, combine_latest, first, map_feed, memo, of, switch_map
from balance_derive.locks import calc_shared
from balance_derive.query import LocksResult, build_locks_query
from balance_derive.types import AccountData, DerivedBalances
from balance_derive.vesting import calc_vesting

logger = logging.getLogger(__name__)

NO_LOCKS: LocksResult = (None, [])


def _values(obj) -> dict:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def calc_balances(data: AccountData, best_number: int, result: LocksResult) -> DerivedBalances:
    """
    Combine account data, head and lock/vesting state into the derived view.

    The first lock list belongs to the primary balances instance, the rest
    to `data.additional` in order.
    """
    vesting, all_locks = result
    shared = calc_shared(best_number, data, all_locks[0] if all_locks else None)
    progress = calc_vesting(vesting, best_number, shared.vesting_locked)

    additional = []
    for index, locks in enumerate(all_locks[1:]):
        if index < len(data.additional):
            extra = data.additional[index]
        else:
            extra = AccountData(account_id=data.account_id)
        additional.append(calc_shared(best_number, extra, locks))

    return DerivedBalances(
        **_values(shared),
        **_values(progress),
        block_number=best_number,
        additional=tuple(additional),
    )


class BalanceDeriver:
    """Live derived balances for accounts on one chain."""

    def __init__(self, api: ChainApi, scope: Hashable = "default"):
        self.api = api
        self.scope = scope
        self.locks_query = build_locks_query(api)
        self._all = memo(scope, self._derive)

    def all(self, address: str) -> SharedFeed[DerivedBalances]:
        """
        Derived balances of an address, re-emitted whenever the account,
        the best block or its locks/vesting change.

        Concurrent subscribers of the same address share one computation.
        """
        return self._all(address)

    async def snapshot(self, address: str) -> DerivedBalances:
        """Current derived balances of an address."""
        return await first(self.all(address))

    def _derive(self, address: str) -> AsyncIterator[DerivedBalances]:
        logger.debug(f"Deriving balances for {address}")
        return switch_map(self.api.account_balance(address), self._with_locks)

    def _with_locks(self, account: AccountData) -> AsyncIterator[DerivedBalances]:
        if account.is_empty:
            return of(calc_balances(account, 0, NO_LOCKS))

        combined = combine_latest(
            of(account),
            self.api.best_number(),
            self.locks_query.query(account.account_id),
        )
        return map_feed(combined, lambda values: calc_balances(*values))
