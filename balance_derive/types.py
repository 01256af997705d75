"""
Balance, lock and vesting data types for derived account views.
"""

from dataclasses import dataclass, field
from typing import Any

from balance_derive import MAX_BALANCE, VESTING_ID


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _to_lock_id(value: Any) -> bytes:
    """Normalize a lock identifier to its raw 8 bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value.startswith("0x"):
            return bytes.fromhex(value[2:])
        return value.encode()
    return bytes(value)


@dataclass(frozen=True)
class BalanceLock:
    """A single balance lock (both the pre- and post-2.12 shapes)."""

    id: bytes
    amount: int
    until: int | None = None  # Only present in the old shape; None/0 is indefinite

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"Lock {self.id!r} has negative amount {self.amount}")

    @classmethod
    def from_value(cls, value: Any) -> "BalanceLock":
        """Build a lock from a decoded storage value."""
        if isinstance(value, BalanceLock):
            return value
        until = value.get("until")
        return cls(
            id=_to_lock_id(value["id"]),
            amount=_to_int(value["amount"]),
            until=_to_int(until) if until is not None else None,
        )

    @property
    def is_max(self) -> bool:
        return self.amount == MAX_BALANCE

    @property
    def is_vesting(self) -> bool:
        return self.id == VESTING_ID

    def to_dict(self) -> dict:
        return {
            "id": "0x" + self.id.hex(),
            "amount": self.amount,
            "until": self.until,
        }


@dataclass(frozen=True)
class VestingInfo:
    """Linear vesting schedule, normalized across runtime versions."""

    locked: int
    per_block: int
    starting_block: int

    @classmethod
    def from_value(cls, value: Any) -> "VestingInfo":
        """Build a schedule from the current `Vesting.Vesting` storage shape."""
        if isinstance(value, VestingInfo):
            return value
        return cls(
            locked=_to_int(value["locked"]),
            per_block=_to_int(value.get("perBlock", value.get("per_block"))),
            starting_block=_to_int(value.get("startingBlock", value.get("starting_block"))),
        )

    @classmethod
    def from_legacy(cls, value: Any) -> "VestingInfo":
        """Build a schedule from the legacy `Balances.Vesting` shape (offset/perBlock)."""
        return cls(
            locked=_to_int(value["offset"]),
            per_block=_to_int(value.get("perBlock", value.get("per_block"))),
            starting_block=_to_int(value.get("startingBlock", value.get("starting_block"))),
        )


@dataclass
class AccountData:
    """Raw balance components of an account, as reported by the chain."""

    account_id: str
    free_balance: int = 0
    reserved_balance: int = 0
    account_nonce: int = 0
    additional: list["AccountData"] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "AccountData":
        return cls(account_id="")

    @property
    def is_empty(self) -> bool:
        return not self.account_id


@dataclass(frozen=True)
class DerivedAccountData:
    """Balance components of one balance instance, with locks applied."""

    account_id: str
    free_balance: int
    reserved_balance: int
    account_nonce: int
    available_balance: int
    locked_balance: int
    locked_breakdown: tuple[BalanceLock, ...]
    vesting_locked: int

    @property
    def total(self) -> int:
        """Total balance (free + reserved)."""
        return self.free_balance + self.reserved_balance

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "free": self.free_balance,
            "reserved": self.reserved_balance,
            "nonce": self.account_nonce,
            "available": self.available_balance,
            "locked": self.locked_balance,
            "locks": [lock.to_dict() for lock in self.locked_breakdown],
            "vesting_locked": self.vesting_locked,
            "total": self.total,
        }


@dataclass(frozen=True)
class DerivedBalances(DerivedAccountData):
    """
    Full derived view: primary instance, vesting progress and secondary instances.

    `block_number` is the head the view was computed at (0 for unknown accounts).
    """

    is_vesting: bool = False
    vested_balance: int = 0
    vested_claimable: int = 0
    vesting_end_block: int = 0
    vesting_per_block: int = 0
    vesting_total: int = 0
    block_number: int = 0
    additional: tuple[DerivedAccountData, ...] = ()

    def to_dict(self) -> dict:
        result = super().to_dict()
        result.update({
            "is_vesting": self.is_vesting,
            "vested_balance": self.vested_balance,
            "vested_claimable": self.vested_claimable,
            "vesting_end_block": self.vesting_end_block,
            "vesting_per_block": self.vesting_per_block,
            "vesting_total": self.vesting_total,
            "block_number": self.block_number,
            "additional": [data.to_dict() for data in self.additional],
        })
        return result
