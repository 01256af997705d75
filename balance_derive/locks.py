"""
Lock resolution for balance instances.

Locks overlap rather than stack: the locked balance of an account is the
largest active lock, following `pallet_balances::update_locks`.
"""

from collections.abc import Sequence
from typing import NamedTuple

from balance_derive.types import AccountData, BalanceLock, DerivedAccountData


class AllLocked(NamedTuple):
    all_locked: bool
    locked_balance: int
    locked_breakdown: tuple[BalanceLock, ...]
    vesting_locked: int


def is_active(lock: BalanceLock, best_number: int) -> bool:
    """A lock is active while `until` is unset (or zero) or still ahead of the head."""
    return not lock.until or lock.until > best_number


def calc_locked(best_number: int, locks: Sequence[BalanceLock] | None) -> AllLocked:
    """
    Resolve the active locks at a block height.

    Args:
        best_number: Current best block number
        locks: Lock entries of one balance instance (None means no locks)

    Returns:
        AllLocked tuple of (all_locked, locked_balance, locked_breakdown, vesting_locked)
    """
    if not isinstance(locks, Sequence) or isinstance(locks, (str, bytes)):
        return AllLocked(False, 0, (), 0)

    breakdown = tuple(lock for lock in locks if is_active(lock, best_number))
    all_locked = any(lock.is_max for lock in breakdown)
    vesting_locked = sum(lock.amount for lock in breakdown if lock.is_vesting)
    locked_balance = max((lock.amount for lock in breakdown if not lock.is_max), default=0)

    return AllLocked(all_locked, locked_balance, breakdown, vesting_locked)


def calc_shared(
    best_number: int, data: AccountData, locks: Sequence[BalanceLock] | None
) -> DerivedAccountData:
    """Apply the locks of one balance instance to its raw components."""
    all_locked, locked_balance, breakdown, vesting_locked = calc_locked(best_number, locks)

    return DerivedAccountData(
        account_id=data.account_id,
        free_balance=data.free_balance,
        reserved_balance=data.reserved_balance,
        account_nonce=data.account_nonce,
        available_balance=0 if all_locked else max(0, data.free_balance - locked_balance),
        locked_balance=locked_balance,
        locked_breakdown=breakdown,
        vesting_locked=vesting_locked,
    )
