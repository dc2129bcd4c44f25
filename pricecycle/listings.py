"""Listings page scrape: card detection, lazy-load scrolling, per-card extraction, price back-fill."""
import json
import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .cancellation import CancelToken
from .site import CARD_SELECTOR_CANDIDATES, LISTINGS_READY_SELECTOR, MAIN_SELECTOR, parse_item_id, parse_price_from_text

log = logging.getLogger(__name__)

MAX_SCROLL_LOOPS = 20
SCROLL_PAUSE_MS = 800
MAX_ITEM_PAGE_PRICE_FILLS = 10
READY_TIMEOUT_MS = 5000


@dataclass
class ListingItem:
    item_id: str
    title: str
    price: int
    item_url: str
    status_text: str = ""
    is_paused: bool = False
    raw_text: Optional[str] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("raw_text", None)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ListingItem":
        return cls(
            item_id=str(d.get("item_id") or ""),
            title=str(d.get("title") or ""),
            price=int(d.get("price") or 0),
            item_url=str(d.get("item_url") or ""),
            status_text=str(d.get("status_text") or ""),
            is_paused=bool(d.get("is_paused")),
        )


# Runs inside the page for one card element; paused texts passed as argument
_EXTRACT_CARD_JS = """(node, pausedTexts) => {
    const text = node.innerText || '';
    const findFirst = (root, selectors) => {
        for (const sel of selectors) {
            const el = root.querySelector(sel);
            if (el) return el;
        }
        return null;
    };
    const link = node.tagName === 'A' ? node : findFirst(node, ['a[href*="/item/"]', 'a[data-testid*="item" i]']);
    const itemUrl = link ? (link.href || '') : '';
    const m = itemUrl.match(/item\\/([A-Za-z0-9\\-]+)/);
    const titleEl = findFirst(node, ['[data-testid*="title" i]', 'h3', 'h2', 'h4', 'p']);
    let title = ((titleEl && titleEl.textContent) || '').trim();
    if (!title && link) title = (link.textContent || '').trim();
    const statusEl = findFirst(node, ['[data-testid*="status" i]', '[class*="status" i]', 'button', 'div']);
    let statusText = ((statusEl && statusEl.textContent) || '').trim();
    if (!statusText) {
        const lines = text.split('\\n').map(x => x.trim()).filter(Boolean);
        statusText = lines.find(x => pausedTexts.some(p => x.includes(p))) || lines[0] || '';
    }
    const combined = statusText + ' ' + text;
    return {
        item_id: m ? m[1] : '',
        title: title,
        item_url: itemUrl,
        status_text: statusText,
        is_paused: pausedTexts.some(p => combined.includes(p)),
        raw_text: text,
    };
}"""


async def is_listings_page_ready(page: Page) -> bool:
    try:
        await page.wait_for_selector(LISTINGS_READY_SELECTOR, timeout=READY_TIMEOUT_MS)
        return True
    except PlaywrightError:
        log.warning("[FetchListings] listings page not ready (no item anchor). Login expired or fetch failed.")
        return False


async def determine_card_selector(page: Page, cancel: CancelToken) -> str:
    for selector in CARD_SELECTOR_CANDIDATES:
        cancel.raise_if_cancelled("FetchListings")
        if await page.locator(selector).count() > 0:
            return selector
    return CARD_SELECTOR_CANDIDATES[-1]


async def load_cards(page: Page, card_selector: str, target_count: int, cancel: CancelToken) -> int:
    """Scroll until target_count cards are present or the scroll budget runs out. Returns loaded count."""
    count = await page.locator(card_selector).count()
    for i in range(MAX_SCROLL_LOOPS):
        if count >= target_count:
            break
        cancel.raise_if_cancelled("FetchListings")
        await page.evaluate("window.scrollBy(0, document.body.scrollHeight)")
        await page.wait_for_timeout(SCROLL_PAUSE_MS)
        count = await page.locator(card_selector).count()
        log.info("Scroll %d/%d: loaded %d", i + 1, MAX_SCROLL_LOOPS, count)
    return count


def listing_from_card_data(data: dict[str, Any]) -> ListingItem:
    raw = data.get("raw_text") or ""
    item_url = str(data.get("item_url") or "")
    return ListingItem(
        item_id=str(data.get("item_id") or "") or parse_item_id(item_url),
        title=str(data.get("title") or "").strip(),
        price=parse_price_from_text(raw),
        item_url=item_url,
        status_text=str(data.get("status_text") or ""),
        is_paused=bool(data.get("is_paused")),
        raw_text=raw,
    )


def fill_prices_from_next_data(items: Sequence[ListingItem], script: str) -> int:
    """Back-fill zero prices from the __NEXT_DATA__ JSON text. Returns how many were filled."""
    filled = 0
    for item in items:
        if item.price > 0 or not item.item_id:
            continue
        pattern = r'"' + re.escape(item.item_id) + r'"[^{}]*?"price":\s*(\d+)'
        m = re.search(pattern, script, re.S)
        if m and int(m.group(1)) > 0:
            item.price = int(m.group(1))
            filled += 1
            log.debug("[NEXT_DATA] price filled for %s: %d", item.item_id, item.price)
    return filled


def price_from_ld_json(text: str) -> int:
    """offers.price from an application/ld+json document, 0 when absent/unparseable."""
    try:
        doc = json.loads(text)
    except ValueError:
        return 0
    offers = doc.get("offers") if isinstance(doc, dict) else None
    if not isinstance(offers, dict):
        return 0
    price = offers.get("price")
    try:
        return int(price) if price is not None else 0
    except (TypeError, ValueError):
        return 0


async def fetch_price_from_item_page(page: Page, item_url: str) -> int:
    try:
        await page.goto(item_url, wait_until="domcontentloaded", timeout=60000)
        await page.wait_for_selector(MAIN_SELECTOR, timeout=30000)
        text = await page.locator('script[type="application/ld+json"]').first.inner_text()
        return price_from_ld_json(text) if text and text.strip() else 0
    except PlaywrightError as e:
        log.debug("[ItemPagePrice] fail %s: %s", item_url, e)
        return 0


async def extract_listings(
    page: Page,
    card_selector: str,
    start_row: int,
    end_row: int,
    paused_texts: Sequence[str],
    cancel: CancelToken,
) -> list[ListingItem]:
    handles = await page.locator(card_selector).element_handles()
    sliced = handles[start_row - 1:end_row]
    results: list[ListingItem] = []
    for handle in sliced:
        cancel.raise_if_cancelled("FetchListings")
        data = await handle.evaluate(_EXTRACT_CARD_JS, list(paused_texts))
        results.append(listing_from_card_data(data or {}))
    return results


async def backfill_prices(page: Page, items: list[ListingItem], cancel: CancelToken) -> int:
    """__NEXT_DATA__ first, then up to MAX_ITEM_PAGE_PRICE_FILLS item pages. Returns item-page fills."""
    try:
        script_loc = page.locator("script#__NEXT_DATA__").first
        if await script_loc.count() > 0:
            script = await script_loc.inner_text()
            if script:
                fill_prices_from_next_data(items, script)
        else:
            log.debug("[NEXT_DATA] not found, skip")
    except PlaywrightError as e:
        log.debug("[NEXT_DATA] parse skip: %s", e)

    zero = [i for i in items if i.price <= 0 and i.item_url][:MAX_ITEM_PAGE_PRICE_FILLS]
    return_url = page.url
    filled = 0
    for item in zero:
        cancel.raise_if_cancelled("FetchListings")
        price = await fetch_price_from_item_page(page, item.item_url)
        if price > 0:
            item.price = price
            filled += 1
    if zero and return_url:
        await page.goto(return_url, wait_until="domcontentloaded", timeout=60000)
    return filled


def save_listings(path: Path, items: Sequence[ListingItem]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([i.to_dict() for i in items], f, indent=2, ensure_ascii=False)


def load_listings(path: Path) -> list[ListingItem]:
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log.warning("listings load failed: %s", e)
        return []
    return [ListingItem.from_dict(d) for d in data if isinstance(d, dict)]
