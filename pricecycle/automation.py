"""Marketplace automation host: owns the page and runs fetch / pause-reprice-resume cycles on it."""
import logging
from pathlib import Path

from .actions import await_state, click_first_matching, fill_price, navigate_item
from .cancellation import CancelToken
from .errors import OperationCanceled
from .evidence import evidence_base_name, try_save_evidence
from .listings import (
    ListingItem,
    backfill_prices,
    determine_card_selector,
    extract_listings,
    is_listings_page_ready,
    load_cards,
)
from .metrics import PriceUpdateOptions, PriceUpdateResult
from .selector_config import SelectorResolver
from .session import BrowserSession
from .site import LISTINGS_URL

log = logging.getLogger(__name__)

ZERO_PRICE_EVIDENCE_THRESHOLD = 3


class MarketAutomation:
    """
    Step host for one BrowserSession. All browser work for a batch goes through here,
    strictly one call at a time.
    """

    def __init__(self, session: BrowserSession, selectors: SelectorResolver, evidence_dir: Path):
        self.session = session
        self.selectors = selectors
        self.evidence_dir = evidence_dir

    async def try_save_evidence(self, base_name: str) -> str:
        page = self.session.page if self.session.is_open else None
        return await try_save_evidence(page, self.evidence_dir, base_name)

    async def fetch_listings(self, start_row: int, end_row: int, cancel: CancelToken) -> list[ListingItem]:
        """
        Rows start_row..end_row (1-based, inclusive) of the seller's listings.
        Not-ready page -> evidence + []. Other failures -> evidence, then re-raise.
        """
        start_row = max(1, start_row)
        end_row = max(start_row, end_row)
        page = await self.session.open()
        try:
            await page.goto(LISTINGS_URL, wait_until="domcontentloaded", timeout=60000)
            if not await is_listings_page_ready(page):
                path = await self.try_save_evidence(evidence_base_name("FetchListings", "NotReady", fmt="%Y%m%d-%H%M%S"))
                log.warning("[FetchListings] listings page not ready. evidence: %s", path)
                return []

            card_selector = await determine_card_selector(page, cancel)
            log.info("Card selector: %s", card_selector)
            loaded = await load_cards(page, card_selector, end_row, cancel)
            if loaded < start_row:
                raise RuntimeError(f"Could not load enough listings for the requested range (loaded {loaded}).")

            items = await extract_listings(
                page, card_selector, start_row, end_row, self.selectors.resolve("paused_text"), cancel
            )
            filled = await backfill_prices(page, items, cancel)
            zero = sum(1 for i in items if i.price <= 0)
            log.info("Price summary: total %d, zero %d, filled from item page %d", len(items), zero, filled)
            if zero >= ZERO_PRICE_EVIDENCE_THRESHOLD:
                path = await self.try_save_evidence(evidence_base_name("FetchListings", "ZeroPrice"))
                log.warning("Many zero prices; evidence: %s", path)
            return items
        except OperationCanceled:
            raise
        except Exception as e:
            path = await self.try_save_evidence(evidence_base_name("FetchListings", "Failed", fmt="%Y%m%d-%H%M%S"))
            log.error("[FetchListings] failed: %s: %s", type(e).__name__, e)
            log.error("[FetchListings] evidence: %s", path)
            raise

    async def run_price_update_cycle(
        self,
        item_url: str,
        new_price: int,
        base_price: int,
        options: PriceUpdateOptions,
        retry_count: int,
        retry_wait_sec: float,
        cancel: CancelToken,
    ) -> PriceUpdateResult:
        """
        Lower side: item -> Edit -> price=new_price -> Pause -> confirm -> hold.
        Restore side: item -> Edit -> price=base_price -> Resume -> confirm -> hold.
        Raises StepFailed on a permanent failure; OperationCanceled after saving cancel evidence.
        """
        page = await self.session.open()
        result = PriceUpdateResult()
        edit = self.selectors.resolve("edit")
        price_inputs = self.selectors.resolve("price_input")
        close = self.selectors.resolve("popup_close")
        current = "Init"

        try:
            # 1) lower the price and pause
            current = "NavigateItem"
            await navigate_item(page, item_url, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "EditClick"
            await click_first_matching(page, edit, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "PriceInput"
            await fill_price(page, price_inputs, new_price, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "Pause"
            await click_first_matching(
                page, self.selectors.resolve("pause"), current, close, retry_count, retry_wait_sec, cancel, result
            )
            log.info("[Pause] waiting for success signal")
            await await_state(page, item_url, self.selectors.resolve("paused_text"), edit, cancel)

            current = "WaitAfterPause"
            await self._hold(options.wait_after_pause_sec, current, cancel)
            result.last_step = current

            # 2) restore the base price and resume
            current = "NavigateItemResume"
            await navigate_item(page, item_url, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "EditBeforeResume"
            await click_first_matching(page, edit, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "PriceInputRestore"
            await fill_price(page, price_inputs, base_price, current, close, retry_count, retry_wait_sec, cancel, result)
            current = "Resume"
            await click_first_matching(
                page, self.selectors.resolve("resume"), current, close, retry_count, retry_wait_sec, cancel, result
            )
            log.info("[Resume] waiting for success signal")
            await await_state(page, item_url, [], edit, cancel)

            current = "WaitAfterResume"
            await self._hold(options.wait_after_resume_sec, current, cancel)
            result.last_step = current

            log.info("Price update cycle completed")
            return result
        except OperationCanceled as e:
            e.step = e.step or current
            e.evidence_path = await try_save_evidence(page, self.evidence_dir, evidence_base_name("Canceled", current))
            raise

    async def _hold(self, seconds: int, label: str, cancel: CancelToken) -> None:
        if seconds <= 0:
            return
        log.info("%s: waiting %d s", label, seconds)
        await cancel.sleep(seconds, step=label)

    async def close(self) -> None:
        await self.session.close()
