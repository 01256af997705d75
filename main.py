#!/usr/bin/env python3
"""
CTC Balance Derive - Main Script

Shows derived balances of Creditcoin3 (or any Substrate) accounts:
available balance after locks, lock breakdown and vesting progress.

Usage:
    python main.py -f my_accounts.txt
    python main.py -f my_accounts.txt -o output/balances.json --graph
    python main.py -a 5ERZF3... -n MyWallet --watch
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt

from accounts import load_accounts
from balance_derive.chain import NODE_URL, ChainConnector, SubstrateChainApi
from balance_derive.derive import BalanceDeriver
from balance_derive.types import DerivedBalances, VestingInfo
from balance_derive.utils import OUTPUT_DIR, format_ctc, save_json, to_ctc
from balance_derive.vesting import calc_vesting


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

GRAPH_POINTS = 200


def parse_args(argv: list[str] | None = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CTC Balance Derive - Available, locked and vesting balances",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-f", "--file", help="Wallet addresses file")
    source.add_argument("-a", "--address", help="Single wallet address")

    parser.add_argument("-n", "--name", default="wallet", help="Name for single wallet")
    parser.add_argument("--url", default=NODE_URL, help="Node websocket URL")
    parser.add_argument(
        "--instances",
        type=lambda s: [part.strip() for part in s.split(",") if part.strip()],
        help="Comma separated balances instances (default: from runtime registry)",
    )
    parser.add_argument("--scope", help="Deduplication scope (default: node URL)")
    parser.add_argument("--watch", "-w", action="store_true", help="Print every update until Ctrl-C")
    parser.add_argument("-o", "--output", help="Output JSON file")
    parser.add_argument("--graph", "-g", action="store_true", help="Generate vesting graph")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    return parser.parse_args(argv)


def print_balances(name: str, balances: DerivedBalances):
    """Print one account's derived balances."""
    print(f"\n  {name} ({balances.account_id or 'unknown account'})")
    print(f"    Free:      {format_ctc(balances.free_balance):>20} CTC")
    print(f"    Reserved:  {format_ctc(balances.reserved_balance):>20} CTC")
    print(f"    Locked:    {format_ctc(balances.locked_balance):>20} CTC")
    print(f"    Available: {format_ctc(balances.available_balance):>20} CTC")
    for lock in balances.locked_breakdown:
        until = f" until #{lock.until}" if lock.until else ""
        print(f"      - {lock.id.decode(errors='replace')!r}: {format_ctc(lock.amount)} CTC{until}")
    if balances.is_vesting:
        print(f"    Vested:    {format_ctc(balances.vested_balance):>20} / {format_ctc(balances.vesting_total)} CTC")
        print(f"    Claimable: {format_ctc(balances.vested_claimable):>20} CTC (ends #{balances.vesting_end_block})")
    for i, extra in enumerate(balances.additional, 1):
        print(f"    Instance #{i}: free {format_ctc(extra.free_balance)}, available {format_ctc(extra.available_balance)} CTC")


def vesting_schedule(balances: DerivedBalances) -> VestingInfo | None:
    """Rebuild the vesting schedule from a derived view (only while vesting)."""
    if not balances.is_vesting or not balances.vesting_per_block:
        return None
    duration = -(-balances.vesting_total // balances.vesting_per_block)
    return VestingInfo(
        locked=balances.vesting_total,
        per_block=balances.vesting_per_block,
        starting_block=balances.vesting_end_block - duration,
    )


def plot_vesting(results: dict[str, DerivedBalances], best_number: int, output_file: Path) -> Path | None:
    """Plot the unlock curve of every vesting account."""
    schedules = {
        name: (schedule, balances.vesting_locked)
        for name, balances in results.items()
        if (schedule := vesting_schedule(balances)) is not None
    }
    if not schedules:
        return None

    colors = plt.cm.tab10.colors
    fig, ax = plt.subplots(figsize=(12, 6))
    fig.suptitle("CTC Vesting Schedule", fontsize=14, fontweight='bold')

    for i, (name, (schedule, vesting_locked)) in enumerate(schedules.items()):
        end_block = schedule.starting_block - (-schedule.locked // schedule.per_block)
        step = max(1, (end_block - schedule.starting_block) // GRAPH_POINTS)
        blocks = list(range(schedule.starting_block, end_block + step, step))
        vested = [
            float(to_ctc(calc_vesting(schedule, block, vesting_locked).vested_balance))
            for block in blocks
        ]
        ax.plot(blocks, vested, label=name, color=colors[i % len(colors)], linewidth=1.5)

    ax.axvline(best_number, color='gray', linestyle='--', alpha=0.7, label=f"#{best_number}")
    ax.set_xlabel("Block")
    ax.set_ylabel("Vested (CTC)")
    ax.legend(loc='upper left', fontsize=9, ncol=2)
    ax.grid(True, alpha=0.3)
    ax.yaxis.set_major_formatter(plt.FuncFormatter(lambda x, p: f'{x:,.0f}'))

    plt.tight_layout()
    graph_file = output_file.with_suffix('.png')
    graph_file.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(graph_file, dpi=150, bbox_inches='tight')
    plt.close()
    return graph_file


async def derive_all(deriver: BalanceDeriver, accounts: dict[str, str]) -> dict[str, DerivedBalances]:
    """Current derived balances of all accounts."""
    results = await asyncio.gather(*(deriver.snapshot(address) for address in accounts.values()))
    return dict(zip(accounts, results))


async def watch(deriver: BalanceDeriver, accounts: dict[str, str]):
    """Print derived balances of all accounts on every change."""

    async def follow(name: str, address: str):
        async for balances in deriver.all(address):
            print_balances(name, balances)

    await asyncio.gather(*(follow(name, address) for name, address in accounts.items()))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    print("=" * 60)
    print("CTC Balance Derive")
    print("=" * 60)

    # 1. 계정 로드
    print("\n[1/4] Loading accounts...")
    if args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            file_path = Path(__file__).parent / args.file
        accounts = load_accounts(file_path)
        print(f"  Loaded: {len(accounts)} accounts from {file_path.name}")
    else:
        accounts = {args.name: args.address}
        print(f"  Single wallet: {args.name}")

    # 2. 체인 연결
    print("\n[2/4] Connecting to RPC...")
    chain = ChainConnector(args.url)
    try:
        info = chain.get_chain_info()
        print(f"  Chain: {info['chain']} v{info['version']}")
        api = SubstrateChainApi(chain, instances=args.instances)
        deriver = BalanceDeriver(api, scope=args.scope or args.url)
    except Exception as e:
        logger.error(f"Connection failed: {e}")
        print(f"  ERROR: {e}")
        chain.close()
        return 1

    # 3. 잔고 계산
    print("\n[3/4] Deriving balances...")
    try:
        if args.watch:
            asyncio.run(watch(deriver, accounts))
            return 0
        results = asyncio.run(derive_all(deriver, accounts))
    except KeyboardInterrupt:
        print("\n  Stopped.")
        return 0
    except ValueError as e:
        logger.error(f"Malformed chain data: {e}")
        return 1
    finally:
        api.close()

    for name, balances in results.items():
        print_balances(name, balances)
    best_number = max((balances.block_number for balances in results.values()), default=0)

    # 4. 저장
    if args.output or args.graph:
        print("\n[4/4] Saving results...")
        output_file = Path(args.output) if args.output else OUTPUT_DIR / "derived_balances.json"
        if args.output:
            save_json(output_file, {
                "block": best_number,
                "updated_at": datetime.now(timezone.utc).isoformat(),
                "accounts": {name: balances.to_dict() for name, balances in results.items()},
            })
            print(f"  Saved: {output_file}")
        if args.graph:
            graph_file = plot_vesting(results, best_number, output_file)
            if graph_file:
                print(f"  Graph: {graph_file}")
            else:
                print("  No vesting accounts to plot")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
