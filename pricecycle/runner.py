"""Batch runner: per-item pause -> reprice -> resume cycles over a selection, resumable via runstate.json."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence

from rich.logging import RichHandler
from sqlalchemy.exc import SQLAlchemyError

from .automation import MarketAutomation
from .cancellation import CancelToken
from .errors import LoginRequired, OperationCanceled, StepFailed
from .evidence import evidence_base_name
from .ledger import ItemState, ItemStateRepository
from .listings import ListingItem
from .metrics import (
    STATUS_CANCELED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCESS,
    BatchSummary,
    ItemOutcome,
    PriceUpdateOptions,
    ResultLog,
    write_summary,
)
from .pricing import compute_new_price, last_down_label
from .run_state import RunStateStore
from .settings import COOLDOWN_SECONDS, AppSettings

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_debug_log(log_dir: Path) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("pricecycle")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    fh = logging.FileHandler(log_dir / "debug.log", mode="w", encoding="utf-8")  # fresh log per process
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(fh)
    sh = RichHandler(rich_tracebacks=True, show_path=False)
    sh.setLevel(logging.INFO)
    logger.addHandler(sh)
    return logger


def today_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


@dataclass
class ListingRow:
    """A fetched listing joined with its ledger history, for display and selection."""
    item: ListingItem
    base_price: int = 0
    run_count: int = 0
    last_run_date: Optional[str] = None
    last_down: str = ""


def prepare_listings(listings: Sequence[ListingItem], ledger: ItemStateRepository) -> list[ListingRow]:
    """
    Drop invalid and paused rows, then join each remaining row with the ledger.
    A zero observed price shows the ledger base price instead; a zero ledger base price
    is replaced by a positive observed price. Ledger errors degrade the row to no history.
    """
    rows: list[ListingRow] = []
    for item in listings:
        if not (item.item_id and item.title and item.item_url):
            log.debug("Dropping invalid row: %r", item)
            continue
        if item.is_paused:
            log.debug("Dropping paused row: %s", item.item_id)
            continue

        try:
            state = ledger.get(item.item_id)
        except SQLAlchemyError as e:
            log.warning("Ledger lookup failed for %s: %s", item.item_id, e)
            state = None

        if state is None:
            rows.append(ListingRow(item=item, base_price=item.price))
            continue

        if item.price <= 0 and state.base_price > 0:
            item.price = state.base_price
        if state.base_price <= 0 and item.price > 0:
            state.base_price = item.price
            try:
                ledger.upsert(state)
            except SQLAlchemyError as e:
                log.warning("Ledger base price update failed for %s: %s", item.item_id, e)
        rows.append(
            ListingRow(
                item=item,
                base_price=state.base_price,
                run_count=state.run_count,
                last_run_date=state.last_run_date,
                last_down=last_down_label(
                    state.last_down_rate_percent, state.last_down_daily_down_yen, state.last_down_run_index
                ),
            )
        )
    return rows


class BatchRunner:
    """
    Runs the selection strictly in order, one item at a time, against one MarketAutomation.

    Every item transition is saved to the run-state store before moving on, so a stopped or
    crashed batch resumes with exactly the unresolved items.
    """

    def __init__(
        self,
        automation: MarketAutomation,
        ledger: ItemStateRepository,
        run_state_store: RunStateStore,
        settings: AppSettings,
        log_dir: Path,
        now: Callable[[], datetime] = datetime.now,
        today: Callable[[], str] = today_utc,
        cooldown_seconds: int = COOLDOWN_SECONDS,
    ):
        self.automation = automation
        self.ledger = ledger
        self.store = run_state_store
        self.settings = settings
        self.log_dir = log_dir
        self._now = now
        self._today = today
        self.cooldown_seconds = cooldown_seconds

    async def process_item(self, item: ListingItem, today: str, cancel: CancelToken) -> ItemOutcome:
        """One item: ledger gate, price decision, browser cycle, ledger update on success."""
        if not item.item_id:
            return ItemOutcome(STATUS_SKIPPED, "no item id", 0, 0, "Init")

        try:
            state = self.ledger.get(item.item_id)
            if state is None:
                state = ItemState(
                    item_id=item.item_id,
                    item_url=item.item_url,
                    title=item.title,
                    base_price=max(0, item.price),
                    run_count=1,
                )
                self.ledger.upsert(state)
                log.info("[%s] first seen: base %d", item.item_id, state.base_price)
            elif state.base_price <= 0 and item.price > 0:
                state.base_price = item.price
                self.ledger.upsert(state)
        except SQLAlchemyError as e:
            log.error("[%s] ledger read failed: %s", item.item_id, e)
            return ItemOutcome(STATUS_FAILED, f"Ledger failed: {e}", max(0, item.price), 0, "Ledger")

        if state.last_run_date == today:
            log.info("[%s] already done today, skipping", item.item_id)
            return ItemOutcome(STATUS_SKIPPED, "already done today", state.base_price, 0, "Init")
        if state.base_price <= 0:
            log.warning("[%s] base price unknown, skipping", item.item_id)
            return ItemOutcome(STATUS_SKIPPED, "base price unknown", 0, 0, "Init")

        decision = compute_new_price(
            state.base_price, self.settings.rate_percent, self.settings.daily_down_yen, state.run_count
        )
        log.info(
            "[%s] %s: base %d -> %d (rate -%d, daily -%d, run %d)",
            item.item_id, item.title, decision.base_price, decision.new_price,
            decision.rate_down, decision.daily_down, decision.run_index,
        )
        options = PriceUpdateOptions(
            wait_after_pause_sec=self.settings.wait_after_pause_sec,
            wait_after_resume_sec=self.settings.wait_after_resume_sec,
        )

        try:
            result = await self.automation.run_price_update_cycle(
                state.item_url or item.item_url,
                decision.new_price,
                decision.base_price,
                options,
                self.settings.retry_count,
                self.settings.retry_wait_sec,
                cancel,
            )
        except StepFailed as e:
            evidence = await self.automation.try_save_evidence(evidence_base_name(item.item_id, e.step_name))
            log.error("[%s] %s failed: %s", item.item_id, e.step_name, e.cause_message)
            if evidence:
                log.error("[%s] evidence: %s", item.item_id, evidence)
            return ItemOutcome(
                STATUS_FAILED,
                f"{e.step_name} failed: {e.cause_message}",
                decision.base_price,
                decision.new_price,
                e.step_name,
                e.retries_used,
                evidence,
            )
        except OperationCanceled as e:
            evidence = e.evidence_path or await self.automation.try_save_evidence(
                evidence_base_name("Canceled", e.step or "")
            )
            log.warning("[%s] stop requested during %s", item.item_id, e.step or "cycle")
            return ItemOutcome(
                STATUS_CANCELED, "stop requested", decision.base_price, decision.new_price, "Canceled", 0, evidence
            )
        except LoginRequired:
            raise
        except Exception as e:
            evidence = await self.automation.try_save_evidence(evidence_base_name(item.item_id, "Unexpected"))
            log.exception("[%s] unexpected failure", item.item_id)
            return ItemOutcome(
                STATUS_FAILED, f"Unexpected failed: {e}", decision.base_price, decision.new_price,
                "Unexpected", 0, evidence,
            )

        self._record_success(state, decision.applied_drop, decision.run_index, today)
        return ItemOutcome(
            STATUS_SUCCESS, "ok", decision.base_price, decision.new_price, result.last_step, result.retry_used
        )

    def _record_success(self, state: ItemState, applied_drop: int, run_index: int, today: str) -> None:
        # The browser side already succeeded; a ledger write failure is logged, not turned into an item failure.
        try:
            self.ledger.update_run_count_if_new_day(state.item_id, today)
            fresh = self.ledger.get(state.item_id) or state
            fresh.last_down_amount = applied_drop
            fresh.last_down_at = datetime.now(timezone.utc).isoformat()
            fresh.last_down_rate_percent = self.settings.rate_percent
            fresh.last_down_daily_down_yen = self.settings.daily_down_yen
            fresh.last_down_run_index = run_index
            self.ledger.upsert(fresh)
        except SQLAlchemyError as e:
            log.error("[%s] ledger update after success failed: %s", state.item_id, e)

    async def _wait_after_item(self, index: int, total: int, status: str, cancel: CancelToken) -> None:
        """Gap after a successful non-final item; the fixed cooldown after anything else."""
        if status == STATUS_SUCCESS and index < total - 1:
            seconds, label = self.settings.item_gap_sec, "ItemGap"
        else:
            seconds, label = self.cooldown_seconds, "Cooldown"
        if seconds <= 0:
            return
        log.info("%s: waiting %d s", label, seconds)
        await cancel.sleep(seconds, step=label)

    async def run(self, selection: Sequence[ListingItem], cancel: CancelToken) -> BatchSummary:
        started = self._now()
        result_path = self.log_dir / f"{started.strftime('%Y%m%d-%H%M')}_price-run.csv"
        state, resumed = self.store.load_or_create([(i.item_id, i.title) for i in selection], now=started)
        self.store.save(state)
        if resumed:
            log.info("Resuming batch %s (%d items)", state.session_id, len(state.items))
        else:
            log.info("New batch %s (%d items)", state.session_id, len(state.items))

        summary = BatchSummary(
            session_id=state.session_id,
            started_at=started.strftime(TIMESTAMP_FORMAT),
            total=len(selection),
            result_log=str(result_path),
        )
        today = self._today()
        canceled = False

        with ResultLog(result_path) as result_log:
            for index, item in enumerate(selection):
                entry = state.ensure_item(item.item_id, item.title)
                state.current_index = index
                self.store.save(state)

                if cancel.is_cancelled:
                    canceled = True
                    if not entry.is_resolved:
                        outcome = ItemOutcome(STATUS_CANCELED, "stop requested", max(0, item.price), 0, "Canceled")
                        executed = self._now()
                        entry.resolve(outcome.status, outcome.message, executed.strftime(TIMESTAMP_FORMAT))
                        self.store.save(state)
                        result_log.write(item.item_id, item.title, item.item_url, outcome, executed)
                        summary.count(outcome.status)
                    log.warning("Stop requested; batch halted at item %d/%d", index + 1, len(selection))
                    break

                if entry.is_resolved:
                    log.info("[%s] already %s in this batch, skipping", item.item_id, entry.status)
                    summary.count(entry.status)
                    continue

                log.info("Item %d/%d: %s", index + 1, len(selection), item.item_id)
                outcome = await self.process_item(item, today, cancel)
                executed = self._now()
                entry.resolve(outcome.status, outcome.message, executed.strftime(TIMESTAMP_FORMAT))
                self.store.save(state)
                result_log.write(item.item_id, item.title, item.item_url, outcome, executed)
                summary.count(outcome.status)
                if outcome.status == STATUS_FAILED:
                    summary.failures.append({
                        "item_id": item.item_id,
                        "step": outcome.step,
                        "message": outcome.message,
                        "evidence_path": outcome.evidence_path,
                    })

                if outcome.status == STATUS_CANCELED:
                    canceled = True
                    break
                try:
                    await self._wait_after_item(index, len(selection), outcome.status, cancel)
                except OperationCanceled:
                    log.warning("Stop requested during wait; batch halted after item %d/%d", index + 1, len(selection))
                    canceled = True
                    break

        if not canceled:
            state.is_completed = True
            self.store.save(state)

        summary.completed = not canceled
        summary.finished_at = self._now().strftime(TIMESTAMP_FORMAT)
        try:
            write_summary(self.log_dir, summary)
        except OSError as e:
            log.warning("summary write failed: %s", e)
        log.info(summary.line())
        return summary
