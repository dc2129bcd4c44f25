#!/usr/bin/env python3
"""CLI entrypoint: fetch listings and run the daily pause -> reprice -> resume batch."""
import argparse
import asyncio
import signal
import sys
import traceback
from pathlib import Path

from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from pricecycle.automation import MarketAutomation
from pricecycle.cancellation import OperationSlot
from pricecycle.errors import LoginRequired, OperationBusy, OperationCanceled
from pricecycle.ledger import ItemStateRepository
from pricecycle.listings import load_listings, save_listings
from pricecycle.run_state import RunStateStore
from pricecycle.runner import BatchRunner, prepare_listings, setup_debug_log
from pricecycle.selector_config import SelectorResolver, default_search_paths
from pricecycle.session import BrowserSession
from pricecycle.settings import DataPaths, load_settings, resolve_data_dir, save_settings
from pricecycle.site import LISTINGS_URL

console = Console()


async def prompt_login() -> None:
    """Block until the operator has logged in inside the opened browser window."""
    await asyncio.to_thread(input, "Log in to the marketplace in the browser window, then press Enter here: ")


def install_stop_handler(slot: OperationSlot) -> None:
    """Ctrl-C requests a cooperative stop of the active operation instead of killing the loop."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, slot.stop)
    except (NotImplementedError, RuntimeError):
        pass  # Windows: KeyboardInterrupt falls through to main()


def build_automation(paths: DataPaths, headless: bool) -> MarketAutomation:
    session = BrowserSession(paths.storage_state, headless=headless, login_prompt=prompt_login)
    selectors = SelectorResolver(default_search_paths(paths.root))
    return MarketAutomation(session, selectors, paths.evidence)


async def cmd_login(paths: DataPaths, slot: OperationSlot) -> int:
    had_state = paths.storage_state.exists()
    session = BrowserSession(paths.storage_state, headless=False, login_prompt=prompt_login)
    try:
        with slot.begin("login"):
            page = await session.open()
            if had_state:
                # Saved login exists; let the operator refresh it anyway
                await page.goto(LISTINGS_URL, wait_until="domcontentloaded", timeout=60000)
                await prompt_login()
                await session.save_storage_state()
    finally:
        await session.close()
    console.print(f"Storage state saved: {paths.storage_state}")
    return 0


async def cmd_fetch(paths: DataPaths, args: argparse.Namespace, slot: OperationSlot) -> int:
    settings = load_settings(paths.settings).with_overrides(start_row=args.start_row, end_row=args.end_row)
    save_settings(paths.settings, settings)
    automation = build_automation(paths, headless=not args.headful)
    try:
        with slot.begin("fetch") as cancel:
            install_stop_handler(slot)
            items = await automation.fetch_listings(settings.start_row, settings.end_row, cancel)
    finally:
        await automation.close()

    if not items:
        # previous listings.json stays in place
        console.print("[yellow]No items fetched.[/yellow] Check login state and the evidence folder:", paths.evidence)
        return 1

    ledger = ItemStateRepository(paths.database)
    try:
        rows = prepare_listings(items, ledger)
    finally:
        ledger.dispose()
    save_listings(paths.listings, [r.item for r in rows])

    table = Table(title=f"Listings {settings.start_row}-{settings.end_row}")
    for col in ("ItemId", "Title", "Price", "Base", "Runs", "Last run", "Last down"):
        table.add_column(col)
    for r in rows:
        table.add_row(
            r.item.item_id,
            r.item.title,
            str(r.item.price),
            str(r.base_price),
            str(r.run_count),
            r.last_run_date or "",
            r.last_down,
        )
    console.print(table)
    console.print(f"{len(rows)} runnable of {len(items)} fetched. Saved to {paths.listings}")
    return 0


async def cmd_run(paths: DataPaths, args: argparse.Namespace, slot: OperationSlot) -> int:
    settings = load_settings(paths.settings).with_overrides(
        rate_percent=args.rate_percent,
        daily_down_yen=args.daily_down_yen,
        wait_after_pause_sec=args.wait_after_pause,
        wait_after_resume_sec=args.wait_after_resume,
        item_gap_sec=args.item_gap,
        retry_count=args.retry_count,
        retry_wait_sec=args.retry_wait,
    )
    save_settings(paths.settings, settings)

    listings = load_listings(paths.listings)
    if args.items:
        wanted = [s.strip() for s in args.items.split(",") if s.strip()]
        by_id = {i.item_id: i for i in listings}
        missing = [w for w in wanted if w not in by_id]
        if missing:
            console.print(f"[red]Not in {paths.listings}:[/red] {', '.join(missing)}. Run fetch first.")
            return 2
        selection = [by_id[w] for w in wanted]
    else:
        selection = listings
    if not selection:
        console.print("[yellow]Nothing selected.[/yellow] Run fetch first.")
        return 2

    automation = build_automation(paths, headless=not args.headful)
    ledger = ItemStateRepository(paths.database)
    runner = BatchRunner(automation, ledger, RunStateStore(paths.run_state), settings, paths.logs)
    try:
        with slot.begin("run") as cancel:
            install_stop_handler(slot)
            summary = await runner.run(selection, cancel)
    finally:
        await automation.close()
        ledger.dispose()

    console.print(summary.line())
    console.print(f"Result log: {summary.result_log}")
    for failure in summary.failures:
        console.print(f"[red]{failure['item_id']}[/red] {failure['message']} evidence: {failure['evidence_path'] or '-'}")
    if not summary.completed:
        console.print("[yellow]Batch stopped before the end.[/yellow] Run again to resume the remaining items.")
    return 0 if summary.failed == 0 else 1


def cmd_ledger(paths: DataPaths, args: argparse.Namespace) -> int:
    ledger = ItemStateRepository(paths.database)
    missing = 0
    try:
        for item_id in args.item_ids:
            if args.command == "reset":
                ok = ledger.reset_item(item_id)
            else:
                ok = ledger.clear_last_run_date(item_id)
            console.print(f"{item_id}: {'ok' if ok else 'not in ledger'}")
            missing += 0 if ok else 1
    finally:
        ledger.dispose()
    return 0 if missing == 0 else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Marketplace listing price-cycle automation")
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory (default: $PRICECYCLE_HOME or .local)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="Open a browser, log in manually and save the storage state")

    p_fetch = sub.add_parser("fetch", help="Fetch listings and save runnable rows to listings.json")
    p_fetch.add_argument("--start-row", type=int, default=None, help="First row (1-based)")
    p_fetch.add_argument("--end-row", type=int, default=None, help="Last row (inclusive)")
    p_fetch.add_argument("--headful", action="store_true", help="Run browser visible")

    p_run = sub.add_parser("run", help="Run the pause -> reprice -> resume batch")
    target = p_run.add_mutually_exclusive_group(required=True)
    target.add_argument("--all", action="store_true", help="Every row in listings.json")
    target.add_argument("--items", type=str, metavar="ID[,ID...]", help="Comma-separated item ids")
    p_run.add_argument("--rate-percent", type=int, default=None, help="Percentage drop from base price")
    p_run.add_argument("--daily-down-yen", type=int, default=None, help="Extra drop per completed cycle (yen)")
    p_run.add_argument("--wait-after-pause", type=int, default=None, metavar="SEC", help="Hold after pausing")
    p_run.add_argument("--wait-after-resume", type=int, default=None, metavar="SEC", help="Hold after resuming")
    p_run.add_argument("--item-gap", type=int, default=None, metavar="SEC", help="Gap after a successful item")
    p_run.add_argument("--retry-count", type=int, default=None, help="Retries per step")
    p_run.add_argument("--retry-wait", type=int, default=None, metavar="SEC", help="Wait between retries")
    p_run.add_argument("--headful", action="store_true", help="Run browser visible")

    for name, help_text in (("reset", "Reset run count and last run date"), ("clear-skip", "Clear today's skip")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("item_ids", nargs="+", metavar="ITEM_ID")

    args = parser.parse_args()

    paths = resolve_data_dir(args.data_dir).ensure()
    setup_debug_log(paths.logs)
    slot = OperationSlot(paths.operation_lock)

    try:
        if args.command == "login":
            return asyncio.run(cmd_login(paths, slot))
        if args.command == "fetch":
            return asyncio.run(cmd_fetch(paths, args, slot))
        if args.command == "run":
            return asyncio.run(cmd_run(paths, args, slot))
        return cmd_ledger(paths, args)
    except (OperationBusy, LoginRequired) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except OperationCanceled:
        print("\nStopped by user.", file=sys.stderr)
        return 130
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        return 130
    except SQLAlchemyError as e:
        print(f"Ledger error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"{args.command} error: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
