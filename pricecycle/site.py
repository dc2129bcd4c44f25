"""URLs, built-in selector defaults and text helpers for the marketplace pages."""
import re
from typing import Optional

LISTINGS_URL = "https://jp.mercari.com/mypage/listings"

# Any URL containing this marker is a canonical item page
ITEM_PAGE_MARKER = "/item/"
ITEM_ID_PATTERN = re.compile(r"item/([A-Za-z0-9\-]+)")

# Item / edit pages render their content under this element
MAIN_SELECTOR = "main#main"
LISTINGS_READY_SELECTOR = 'a[href*="/item/"]'

# Yen price in card text: "¥1,234" or "￥ 980"
PRICE_TEXT_PATTERN = re.compile(r"[¥￥]\s*([0-9]{1,3}(?:,[0-9]{3})+|[0-9]+)")

# Built-in defaults per logical action, keyed by their SELECTORS.md heading.
# Order matters: the first candidate that works wins.
DEFAULT_SELECTORS: dict[str, list[str]] = {
    "PausedTextCandidates": [
        "公開停止中",
        "出品を再開する",
        "停止中",
    ],
    "EditButtonSelectors": [
        'a[href^="/sell/edit/"]',
        'a:has-text("商品の編集")',
        'button:has-text("商品の編集")',
        '[data-testid="edit-button"]',
    ],
    "PriceInputSelectors": [
        'input[name="price"]',
        'input[data-testid*="price"]',
        'input[type="number"]',
    ],
    "PauseSelectors": [
        'button:has-text("出品を一時停止")',
        'a:has-text("出品を一時停止")',
        '[role="button"]:has-text("出品を一時停止")',
        '[data-testid*="pause"]',
    ],
    "ResumeSelectors": [
        'button:has-text("出品を再開")',
        'a:has-text("出品を再開")',
        '[role="button"]:has-text("出品を再開")',
        '[data-testid*="resume"]',
    ],
    "PopupCloseSelectors": [
        'button[aria-label="閉じる"]',
        '[data-testid="modal-close"]',
        '[data-testid="close"]',
        'button:has-text("閉じる")',
        'button:has-text("×")',
    ],
}

# Listing cards on the listings page, most specific first
CARD_SELECTOR_CANDIDATES = [
    "[data-testid='mypage-item-card']",
    "[data-testid='mypage-item']",
    "li[data-testid='mypage-item']",
    "section a[href*='/item/']",
    "a[href*='/item/']",
]

# Playwright error phrases meaning something sits on top of / replaced the target
OBSTRUCTION_PHRASES = (
    "not visible",
    "intercept",
    "other element would receive the click",
    "element is detached",
    "not attached",
)


def is_item_page_url(url: str) -> bool:
    return ITEM_PAGE_MARKER in (url or "").lower()


def parse_item_id(url: str) -> str:
    m = ITEM_ID_PATTERN.search(url or "")
    return m.group(1) if m else ""


def parse_price_from_text(text: str) -> int:
    """First yen amount in text, or 0 if none."""
    if not text or not text.strip():
        return 0
    m = PRICE_TEXT_PATTERN.search(text.replace("\u00a0", " "))
    if not m:
        return 0
    try:
        price = int(m.group(1).replace(",", ""))
    except ValueError:
        return 0
    return price if price > 0 else 0


def is_obstruction_message(message: Optional[str]) -> bool:
    lowered = (message or "").lower()
    return any(phrase in lowered for phrase in OBSTRUCTION_PHRASES)
