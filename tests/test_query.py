"""Lock/vesting query adapters for legacy and current runtimes."""

import pytest
from conftest import ALICE, FakeChainApi, next_value

from balance_derive import VESTING_ID
from balance_derive.api import StorageQuery
from balance_derive.query import (
    LEGACY_LOCKS,
    LEGACY_VESTING,
    VESTING,
    CurrentLocksQuery,
    LegacyLocksQuery,
    build_locks_query,
    to_vesting,
)
from balance_derive.types import BalanceLock, VestingInfo

VESTING_LOCK = {"id": "0x76657374696e6720", "amount": 500, "reasons": "Misc"}
STAKING_LOCK = {"id": "0x7374616b696e6720", "amount": 300, "reasons": "All"}


def test_legacy_runtime_detected():
    api = FakeChainApi(storage={("Balances", "Locks"), ("Balances", "Vesting"), ("Balances", "FreeBalance")})

    assert isinstance(build_locks_query(api), LegacyLocksQuery)
    assert api.calls["module_instances"] == 0


@pytest.mark.parametrize("account_storage", [("System", "Account"), ("Balances", "Account")])
def test_current_runtime_detected(account_storage):
    api = FakeChainApi(storage={account_storage, ("Balances", "Locks")})

    assert isinstance(build_locks_query(api), CurrentLocksQuery)


@pytest.mark.asyncio
async def test_legacy_query_batches_locks_and_vesting():
    api = FakeChainApi(storage={("Balances", "Locks"), ("Balances", "Vesting")})
    api.locks(ALICE).push((
        [dict(VESTING_LOCK, until=0), dict(STAKING_LOCK, until=200)],
        {"offset": 1000, "perBlock": 10, "startingBlock": 5},
    ))

    feed = build_locks_query(api).query(ALICE)
    vesting, all_locks = await next_value(feed)
    await feed.aclose()

    assert api.multi_calls == [[(LEGACY_LOCKS, ALICE), (LEGACY_VESTING, ALICE)]]
    assert vesting == VestingInfo(locked=1000, per_block=10, starting_block=5)
    assert all_locks == [[
        BalanceLock(id=VESTING_ID, amount=500, until=0),
        BalanceLock(id=b"staking ", amount=300, until=200),
    ]]


@pytest.mark.asyncio
async def test_legacy_query_without_schedule():
    api = FakeChainApi(storage=set())
    api.locks(ALICE).push(([], None))

    feed = build_locks_query(api).query(ALICE)

    assert await next_value(feed) == (None, [[]])
    await feed.aclose()


@pytest.mark.asyncio
async def test_current_query_fills_unresolved_instances():
    api = FakeChainApi(
        storage={("System", "Account"), ("Pool", "Locks")},
        instances=["Balances", "Pool", "Assets"],
    )
    api.locks(ALICE).push(([STAKING_LOCK],))

    query = build_locks_query(api)
    feed = query.query(ALICE)
    vesting, all_locks = await next_value(feed)
    await feed.aclose()

    assert api.multi_calls == [[(StorageQuery("Pool", "Locks"), ALICE)]]
    assert vesting is None
    assert len(all_locks) == 3
    assert all_locks[0] == []
    assert all_locks[1] == [BalanceLock(id=b"staking ", amount=300)]
    assert all_locks[2] == []


@pytest.mark.asyncio
async def test_current_query_puts_vesting_first():
    api = FakeChainApi(instances=["Balances", "Pool"], storage={
        ("System", "Account"), ("Balances", "Locks"), ("Pool", "Locks"), ("Vesting", "Vesting"),
    })
    api.locks(ALICE).push((
        {"locked": 1000, "perBlock": 10, "startingBlock": 5},
        [VESTING_LOCK],
        None,
    ))

    feed = build_locks_query(api).query(ALICE)
    vesting, all_locks = await next_value(feed)
    await feed.aclose()

    assert api.multi_calls == [[
        (VESTING, ALICE),
        (StorageQuery("Balances", "Locks"), ALICE),
        (StorageQuery("Pool", "Locks"), ALICE),
    ]]
    assert vesting == VestingInfo(locked=1000, per_block=10, starting_block=5)
    assert all_locks == [[BalanceLock(id=VESTING_ID, amount=500)], []]


@pytest.mark.asyncio
async def test_custom_lock_query_overrides_instance():
    custom = StorageQuery("PoolDerive", "CustomLocks")
    api = FakeChainApi(
        storage={("System", "Account"), ("Balances", "Locks")},
        instances=["Balances", "Pool"],
        custom_locks={"Pool": custom},
    )
    api.locks(ALICE).push(([], [STAKING_LOCK]))

    feed = build_locks_query(api).query(ALICE)
    _, all_locks = await next_value(feed)
    await feed.aclose()

    assert api.multi_calls[0][1] == (custom, ALICE)
    assert all_locks == [[], [BalanceLock(id=b"staking ", amount=300)]]


@pytest.mark.asyncio
async def test_nothing_to_query_short_circuits():
    api = FakeChainApi(storage={("System", "Account")}, instances=["Balances", "Pool"])

    feed = build_locks_query(api).query(ALICE)

    assert await next_value(feed) == (None, [[], []])
    assert api.calls["query_multi"] == 0
    await feed.aclose()


@pytest.mark.asyncio
async def test_short_reply_is_malformed():
    api = FakeChainApi(storage={("System", "Account"), ("Balances", "Locks"), ("Vesting", "Vesting")})
    api.locks(ALICE).push((None,))

    feed = build_locks_query(api).query(ALICE)
    with pytest.raises(ValueError):
        await next_value(feed)


def test_multiple_schedules_use_first():
    schedules = [
        {"locked": 100, "per_block": 1, "starting_block": 10},
        {"locked": 200, "per_block": 2, "starting_block": 20},
    ]

    assert to_vesting(schedules) == VestingInfo(locked=100, per_block=1, starting_block=10)
    assert to_vesting([]) is None
    assert to_vesting(None) is None
