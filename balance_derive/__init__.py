# CTC Balance Derive - Source Package
from decimal import Decimal

# Shared constants
CTC_DECIMALS = 18
CTC_DIVISOR = 10**CTC_DECIMALS
CTC_DIVISOR_DEC = Decimal(10) ** CTC_DECIMALS  # For precise display of raw amounts

# Balance is a u128 on-chain; a lock of this amount freezes the whole account
MAX_BALANCE = 2**128 - 1

# Lock id used by the vesting pallet
VESTING_ID = b"vesting "

# Balance module instances, per runtime spec name
DEFAULT_BALANCE_INSTANCES = ["Balances"]
MODULE_INSTANCES: dict[str, dict[str, list[str]]] = {
    "creditcoin3": {"balances": ["Balances"]},
}
