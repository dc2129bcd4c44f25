"""Navigate, click with obstruction recovery, fill the price field, wait for page state."""
import logging
import math
from typing import Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .cancellation import CancelToken
from .errors import StepFailed
from .metrics import PriceUpdateResult
from .site import MAIN_SELECTOR, is_item_page_url, is_obstruction_message
from .steps import execute_step

log = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 90000
MAIN_READY_TIMEOUT_MS = 30000
CANDIDATE_VISIBLE_TIMEOUT_MS = 30000
RECOVERY_VISIBLE_TIMEOUT_MS = 10000
CLICK_TIMEOUT_MS = 8000
POPUP_VISIBLE_TIMEOUT_MS = 1000
POPUP_CLICK_TIMEOUT_MS = 2000
POPUP_GONE_TIMEOUT_MS = 5000
STATE_TIMEOUT_MS = 30000
STATE_POLL_MS = 500


async def wait_for_locator_to_disappear(locator: Locator) -> None:
    """Wait for detach, else for hidden; give up quietly after both timeouts."""
    try:
        await locator.wait_for(state="detached", timeout=POPUP_GONE_TIMEOUT_MS)
        return
    except PlaywrightError:
        pass
    try:
        await locator.wait_for(state="hidden", timeout=POPUP_GONE_TIMEOUT_MS)
    except PlaywrightError:
        pass


async def dismiss_obstructions(page: Page, close_selectors: Sequence[str], cancel: CancelToken) -> bool:
    """
    Try each popup close selector (short visible wait + click); first one that closes wins.
    When none is present, press Escape. Returns True if a close button was clicked.
    """
    log.debug("[PopupDismiss] start")
    for selector in close_selectors:
        cancel.raise_if_cancelled("PopupDismiss")
        log.debug("[PopupDismiss] try: %s", selector)
        try:
            locator = page.locator(selector).first
            await locator.wait_for(state="visible", timeout=POPUP_VISIBLE_TIMEOUT_MS)
            await locator.click(timeout=POPUP_CLICK_TIMEOUT_MS)
            await wait_for_locator_to_disappear(locator)
            log.debug("[PopupDismiss] closed: %s", selector)
            return True
        except PlaywrightTimeoutError:
            continue
        except PlaywrightError as e:
            log.debug("[PopupDismiss] fail: %s (%s)", selector, e)
    try:
        log.debug("[PopupDismiss] try: Escape")
        await page.keyboard.press("Escape")
        await page.wait_for_timeout(300)
    except PlaywrightError as e:
        log.debug("[PopupDismiss] escape fail: %s", e)
    log.debug("[PopupDismiss] giveup")
    return False


async def click_with_recovery(
    page: Page,
    locator: Locator,
    label: str,
    close_selectors: Sequence[str],
    cancel: CancelToken,
) -> str:
    """
    Normal click; on an obstruction-like failure dismiss popups first, then click once more;
    if that fails too, click through JS (bypasses actionability checks).
    Returns the mode that worked: "normal", "retry" or "js".
    """
    await locator.wait_for(state="visible", timeout=RECOVERY_VISIBLE_TIMEOUT_MS)
    try:
        await locator.click(timeout=CLICK_TIMEOUT_MS)
        log.debug("[%s] click ok (normal)", label)
        return "normal"
    except PlaywrightError as e:
        if is_obstruction_message(str(e)):
            log.debug("[%s] click intercepted -> dismiss then retry", label)
            await dismiss_obstructions(page, close_selectors, cancel)
        else:
            log.debug("[%s] click failed (%s) -> retry", label, e)

    try:
        await locator.click(timeout=CLICK_TIMEOUT_MS)
        log.debug("[%s] click ok (retry)", label)
        return "retry"
    except PlaywrightError as e:
        log.debug("[%s] click retry failed (%s) -> JS click", label, e)
        await locator.evaluate("el => el.click()")
        log.debug("[%s] click ok (js)", label)
        return "js"


async def navigate_item(
    page: Page,
    url: str,
    step: str,
    close_selectors: Sequence[str],
    retry_count: int,
    retry_wait_sec: float,
    cancel: CancelToken,
    result: PriceUpdateResult,
) -> None:
    """Open the item page, wait for main content, clear popups. Retried as one step."""

    async def attempt() -> None:
        log.debug("[%s] navigate: %s", step, url)
        await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        await page.wait_for_selector(MAIN_SELECTOR, timeout=MAIN_READY_TIMEOUT_MS)
        await dismiss_obstructions(page, close_selectors, cancel)

    retries = await execute_step(step, retry_count, retry_wait_sec, attempt, cancel)
    result.last_step = step
    result.retry_used += retries


async def click_first_matching(
    page: Page,
    selectors: Sequence[str],
    label: str,
    close_selectors: Sequence[str],
    retry_count: int,
    retry_wait_sec: float,
    cancel: CancelToken,
    result: PriceUpdateResult,
) -> str:
    """
    Click the first selector whose (retried, recovered) click succeeds and return it.
    A candidate exhausting its retries moves on to the next one.
    """
    for selector in selectors:
        cancel.raise_if_cancelled(label)
        log.debug("[%s] trying selector: %s", label, selector)

        async def attempt(selector: str = selector) -> None:
            locator = page.locator(selector).first
            await locator.wait_for(state="visible", timeout=CANDIDATE_VISIBLE_TIMEOUT_MS)
            await click_with_recovery(page, locator, label, close_selectors, cancel)

        try:
            retries = await execute_step(label, retry_count, retry_wait_sec, attempt, cancel)
        except StepFailed as e:
            log.debug("[%s] selector gave up: %s (%s)", label, selector, e.cause_message)
            continue
        log.info("[%s] success: %s (retries %d)", label, selector, retries)
        result.last_step = label
        result.retry_used += retries
        await page.wait_for_timeout(300)
        return selector
    raise StepFailed(label, 0, RuntimeError(f"no selector succeeded for {label}"))


async def fill_price(
    page: Page,
    selectors: Sequence[str],
    price: int,
    label: str,
    close_selectors: Sequence[str],
    retry_count: int,
    retry_wait_sec: float,
    cancel: CancelToken,
    result: PriceUpdateResult,
) -> str:
    """Focus the first usable price input (via click recovery) and replace its value with `price`."""
    value = str(int(price))
    for selector in selectors:
        cancel.raise_if_cancelled(label)
        log.debug("[%s] trying selector: %s", label, selector)

        async def attempt(selector: str = selector) -> None:
            target = page.locator(selector).first
            await target.wait_for(state="visible", timeout=CANDIDATE_VISIBLE_TIMEOUT_MS)
            await click_with_recovery(page, target, f"{label}/Focus", close_selectors, cancel)
            await target.fill(value)

        try:
            retries = await execute_step(label, retry_count, retry_wait_sec, attempt, cancel)
        except StepFailed as e:
            log.debug("[%s] input gave up: %s (%s)", label, selector, e.cause_message)
            continue
        log.info("[%s] success: %s = %s (retries %d)", label, selector, value, retries)
        result.last_step = label
        result.retry_used += retries
        await page.wait_for_timeout(200)
        return selector
    raise StepFailed(label, 0, RuntimeError("no usable input"))


async def _visible(locator: Locator) -> bool:
    try:
        return await locator.is_visible()
    except PlaywrightError:
        return False


async def await_state(
    page: Page,
    item_url: str,
    success_texts: Sequence[str],
    edit_selectors: Sequence[str],
    cancel: CancelToken,
    timeout_ms: int = STATE_TIMEOUT_MS,
    poll_ms: int = STATE_POLL_MS,
) -> str:
    """
    Poll until one signal confirms the page settled: item-page URL, first success text visible,
    or an edit control visible. Returns the signal name; raises StepFailed("StateCheck") on timeout.
    """
    polls = max(1, math.ceil(timeout_ms / poll_ms))
    for _ in range(polls):
        cancel.raise_if_cancelled("StateCheck")
        if is_item_page_url(page.url):
            log.debug("[StateCheck] back on item page (%s)", item_url)
            return "url"
        if success_texts and await _visible(page.get_by_text(success_texts[0], exact=False).first):
            log.debug("[StateCheck] success text visible: %s", success_texts[0])
            return "text"
        for selector in edit_selectors:
            if await _visible(page.locator(selector).first):
                log.debug("[StateCheck] edit control visible: %s", selector)
                return "edit"
        await cancel.sleep(poll_ms / 1000.0, step="StateCheck")
    raise StepFailed("StateCheck", 0, TimeoutError("could not confirm the page state transition"))

