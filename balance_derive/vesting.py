"""
Vesting progress projection.
"""

from dataclasses import dataclass

from balance_derive.types import VestingInfo


@dataclass(frozen=True)
class VestingProgress:
    """Vesting state of an account at a given block."""

    is_vesting: bool = False
    vested_balance: int = 0
    vested_claimable: int = 0
    vesting_end_block: int = 0
    vesting_per_block: int = 0
    vesting_total: int = 0


def calc_vesting(
    vesting: VestingInfo | None, best_number: int, vesting_locked: int
) -> VestingProgress:
    """
    Project a linear vesting schedule at a block height.

    Args:
        vesting: Normalized schedule, None when the account has none
        best_number: Current best block number
        vesting_locked: Sum of active vesting locks on the primary instance

    Returns:
        VestingProgress for the block

    Raises:
        ValueError: If a running schedule unlocks nothing per block
    """
    if vesting is None:
        return VestingProgress()

    total = vesting.locked
    is_started = best_number > vesting.starting_block
    vested_now = vesting.per_block * (best_number - vesting.starting_block) if is_started else 0
    vested_balance = min(vested_now, total)
    is_vesting = is_started and vesting_locked != 0

    vested_claimable = 0
    vesting_end_block = 0
    if is_vesting:
        if vesting.per_block <= 0:
            raise ValueError(f"Vesting schedule has invalid per_block {vesting.per_block}")
        vested_claimable = vesting_locked - (total - vested_balance)
        vesting_end_block = vesting.starting_block - (-total // vesting.per_block)

    return VestingProgress(
        is_vesting=is_vesting,
        vested_balance=vested_balance,
        vested_claimable=vested_claimable,
        vesting_end_block=vesting_end_block,
        vesting_per_block=vesting.per_block,
        vesting_total=total,
    )
