"""
Chain connection and live storage feeds for Substrate nodes.
"""

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from substrateinterface import SubstrateInterface

from balance_derive import DEFAULT_BALANCE_INSTANCES, MODULE_INSTANCES
from balance_derive.api import StorageQuery
from balance_derive.feed import of
from balance_derive.types import AccountData
from balance_derive.utils import retry


# Creditcoin3 메인넷 설정
NODE_URL = "wss://mainnet3.creditcoin.network"
BLOCK_TIME_SECONDS = 15
POLL_INTERVAL_SECONDS = BLOCK_TIME_SECONDS / 3

logger = logging.getLogger(__name__)

_NOTHING = object()


class ChainConnector:
    """Substrate node connection with retried storage queries."""

    def __init__(self, url: str = NODE_URL):
        self.url = url
        self._substrate = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def substrate(self) -> SubstrateInterface:
        """Lazy connection to substrate node."""
        if self._substrate is None:
            logger.info(f"Connecting to {self.url}")
            self._substrate = SubstrateInterface(url=self.url)
        return self._substrate

    def close(self):
        """Close the connection."""
        if self._substrate:
            try:
                self._substrate.close()
            except Exception as e:
                logger.debug(f"Error closing connection to {self.url}: {e}")
            self._substrate = None

    @retry(max_retries=3)
    def get_chain_info(self) -> dict:
        """Get basic chain information."""
        return {
            "chain": str(self.substrate.chain),
            "version": str(self.substrate.version),
            "genesis_hash": str(self.substrate.get_block_hash(0)),
        }

    @retry(max_retries=3)
    def get_best_block_number(self) -> int:
        """Get the latest (best, not finalized) block number."""
        header = self.substrate.get_block_header()
        return header["header"]["number"]

    @retry(max_retries=3)
    def get_spec_name(self) -> str:
        """Get the runtime spec name of the chain head."""
        version = self.substrate.get_block_runtime_version(self.substrate.get_chain_head())
        return str(version["specName"])

    @retry(max_retries=3)
    def has_storage_function(self, module: str, storage_function: str) -> bool:
        """Check the runtime metadata for a storage function."""
        return self.substrate.get_metadata_storage_function(module, storage_function) is not None

    @retry(max_retries=3)
    def query_storage(self, module: str, storage_function: str, params: list | None = None) -> Any:
        """Query one storage item, returning its decoded value."""
        result = self.substrate.query(
            module=module,
            storage_function=storage_function,
            params=params or [],
        )
        return result.value if result is not None else None

    @retry(max_retries=3)
    def query_storage_multi(self, calls: Sequence[tuple[str, str, list]]) -> tuple:
        """Query several storage items at the same block, returning their decoded values."""
        storage_keys = [
            self.substrate.create_storage_key(module, storage_function, params)
            for module, storage_function, params in calls
        ]
        result = self.substrate.query_multi(storage_keys)
        return tuple(obj.value if obj is not None else None for _, obj in result)


class SubstrateChainApi:
    """
    ChainApi backed by a Substrate node.

    Storage is polled on one worker thread (the websocket connection is not
    thread-safe) and each feed only emits when its value changes.
    """

    def __init__(
        self,
        chain: ChainConnector | None = None,
        instances: list[str] | None = None,
        custom_locks: dict[str, StorageQuery] | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.chain = chain or ChainConnector()
        self.poll_interval = poll_interval
        self._instances = instances
        self._custom_locks = custom_locks or {}
        self._storage: dict[tuple[str, str], bool] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="substrate")

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.chain.close()

    @functools.cached_property
    def spec_name(self) -> str:
        return self.chain.get_spec_name()

    def has_storage(self, module: str, storage_function: str) -> bool:
        key = (module, storage_function)
        if key not in self._storage:
            self._storage[key] = self.chain.has_storage_function(module, storage_function)
        return self._storage[key]

    def module_instances(self, spec_name: str, family: str) -> list[str]:
        if self._instances is not None:
            return list(self._instances)
        return list(MODULE_INSTANCES.get(spec_name, {}).get(family, DEFAULT_BALANCE_INSTANCES))

    def custom_lock_query(self, instance: str) -> StorageQuery | None:
        return self._custom_locks.get(instance)

    def best_number(self) -> AsyncIterator[int]:
        return self._poll(self.chain.get_best_block_number)

    def account_balance(self, address: str) -> AsyncIterator[AccountData]:
        return self._poll(self._fetch_account, address)

    def query(self, query: StorageQuery, address: str) -> AsyncIterator[Any]:
        return self._poll(self.chain.query_storage, query.module, query.storage_function, [address])

    def query_multi(self, calls: Sequence[tuple[StorageQuery, str]]) -> AsyncIterator[tuple]:
        if not calls:
            return of(())
        storage_calls = [(query.module, query.storage_function, [address]) for query, address in calls]
        return self._poll(self.chain.query_storage_multi, storage_calls)

    async def _poll(self, fetch: Callable[..., Any], *args: Any) -> AsyncIterator[Any]:
        loop = asyncio.get_running_loop()
        last = _NOTHING
        while True:
            value = await loop.run_in_executor(self._executor, functools.partial(fetch, *args))
            if last is _NOTHING or value != last:
                last = value
                yield value
            await asyncio.sleep(self.poll_interval)

    def _fetch_account(self, address: str) -> AccountData:
        """Balance components of the primary and secondary balances instances."""
        if self.has_storage("System", "Account"):
            account = self.chain.query_storage("System", "Account", [address])
            data = account["data"]
            nonce = int(account["nonce"])
            exists = any([
                nonce,
                account.get("providers"),
                account.get("sufficients"),
                data.get("free"),
                data.get("reserved"),
            ])
            free, reserved = int(data["free"]), int(data["reserved"])
        else:
            # Runtimes before the System.Account migration
            free = int(self.chain.query_storage("Balances", "FreeBalance", [address]) or 0)
            reserved = int(self.chain.query_storage("Balances", "ReservedBalance", [address]) or 0)
            nonce = int(self.chain.query_storage("System", "AccountNonce", [address]) or 0)
            exists = any([nonce, free, reserved])

        if not exists:
            return AccountData.empty()

        secondary = self.module_instances(self.spec_name, "balances")[1:]
        return AccountData(
            account_id=address,
            free_balance=free,
            reserved_balance=reserved,
            account_nonce=nonce,
            additional=[self._fetch_instance_account(instance, address, nonce) for instance in secondary],
        )

    def _fetch_instance_account(self, instance: str, address: str, nonce: int) -> AccountData:
        if not self.has_storage(instance, "Account"):
            logger.debug(f"No account storage for instance {instance}")
            return AccountData(account_id=address, account_nonce=nonce)
        data = self.chain.query_storage(instance, "Account", [address]) or {}
        return AccountData(
            account_id=address,
            free_balance=int(data.get("free", 0)),
            reserved_balance=int(data.get("reserved", 0)),
            account_nonce=nonce,
        )
