"""
Utility functions for CTC Balance Derive.
"""

import functools
import json
import logging
import re
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, TypeVar, cast

from filelock import FileLock

from balance_derive import CTC_DIVISOR_DEC

logger = logging.getLogger(__name__)

T = TypeVar("T")


OUTPUT_DIR = Path(__file__).parent.parent / "output"


def save_json(output_file: Path, data: Any):
    """Save data to a JSON file, guarded by a lock file for concurrent runs."""
    output_file.parent.mkdir(parents=True, exist_ok=True)
    lock_file = output_file.with_suffix(".lock")
    with FileLock(lock_file):
        with open(output_file, "w") as f:
            json.dump(data, f, indent=2)


def retry(
    max_retries: int = 5,
    base_delay: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
):
    """
    Decorator to retry a function on exception, with exponential backoff.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None
            for i in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if i == max_retries - 1:
                        break
                    delay = base_delay * (2**i)
                    logger.debug(f"Retry {i+1}/{max_retries} for {func.__name__} after {delay}s due to: {e}")
                    time.sleep(delay)
            raise cast(Exception, last_exception)

        return wrapper

    return decorator


def to_ctc(amount: int) -> Decimal:
    """Convert a raw planck amount to CTC."""
    return Decimal(amount) / CTC_DIVISOR_DEC


def format_ctc(amount: int) -> str:
    """Format a raw amount as CTC with commas."""
    return f"{to_ctc(amount):,.2f}"


def validate_ss58_address(address: str) -> bool:
    """
    Validate an SS58 address format.

    Returns True if the address appears to be a valid SS58 address.
    Note: This is a basic format check, not a full cryptographic validation.
    """
    if not address:
        return False
    # Base58 alphabet, 47-48 characters for 32-byte account ids
    return re.match(r"^[1-9A-HJ-NP-Za-km-z]{47,48}$", address) is not None
