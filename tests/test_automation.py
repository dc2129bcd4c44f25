"""
tests/test_automation.py

MarketAutomation over a fake session/page: the two-phase price cycle and the
listings-page readiness path.

Coverage
--------
- Full cycle: lowered price then base price restored, last step reached
- Cancellation during a hold carries step name and evidence path
- Permanent step failure surfaces as StepFailed
- Listings page not ready -> evidence + empty result
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricecycle.automation import MarketAutomation
from pricecycle.cancellation import CancelToken
from pricecycle.errors import OperationCanceled, StepFailed
from pricecycle.metrics import PriceUpdateOptions
from pricecycle.selector_config import SelectorResolver

from .conftest import FakePage

ITEM_URL = "https://jp.mercari.com/item/m100"

SELECTORS = """### EditButtonSelectors
- edit
### PriceInputSelectors
- price
### PauseSelectors
- pause
### ResumeSelectors
- resume
### PopupCloseSelectors
- close
### PausedTextCandidates
- paused
"""


class FakeSession:
    def __init__(self, page: FakePage):
        self._page = page
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    @property
    def page(self) -> FakePage:
        return self._page

    async def open(self) -> FakePage:
        return self._page

    async def close(self) -> None:
        self.closed = True


class NotReadyPage(FakePage):
    async def wait_for_selector(self, selector, timeout=None) -> None:
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")


@pytest.fixture()
def automation_for(tmp_path: Path):
    doc = tmp_path / "SELECTORS.md"
    doc.write_text(SELECTORS, encoding="utf-8")

    def build(page: FakePage) -> MarketAutomation:
        return MarketAutomation(FakeSession(page), SelectorResolver([doc]), tmp_path / "evidence")
    return build


def ready_page() -> FakePage:
    page = FakePage()
    for selector in ("edit", "price", "pause", "resume"):
        page.add(selector, visible=True)
    return page


class TestPriceCycle:
    def test_full_cycle(self, automation_for, sleeps) -> None:
        page = ready_page()
        automation = automation_for(page)
        result = asyncio.run(
            automation.run_price_update_cycle(ITEM_URL, 900, 1000, PriceUpdateOptions(30, 10), 2, 2, CancelToken())
        )
        assert result.last_step == "WaitAfterResume"
        assert result.retry_used == 0
        assert page.locators["price"].filled == ["900", "1000"]
        assert page.locators["pause"].clicks == 1
        assert page.locators["resume"].clicks == 1
        assert page.visited == [ITEM_URL, ITEM_URL]
        assert sleeps.total == 40

    def test_cancel_during_hold(self, automation_for, sleeps, tmp_path) -> None:
        page = ready_page()
        automation = automation_for(page)
        token = CancelToken()
        sleeps.on_sleep = lambda _: token.cancel()
        with pytest.raises(OperationCanceled) as exc:
            asyncio.run(automation.run_price_update_cycle(ITEM_URL, 900, 1000, PriceUpdateOptions(30, 10), 2, 2, token))
        assert exc.value.step == "WaitAfterPause"
        assert exc.value.evidence_path.endswith("_Canceled_WaitAfterPause.html")
        assert page.locators["resume"].clicks == 0
        assert len(list((tmp_path / "evidence").iterdir())) == 2

    def test_missing_pause_button(self, automation_for, sleeps) -> None:
        page = ready_page()
        page.locators["pause"].visible = False
        automation = automation_for(page)
        with pytest.raises(StepFailed) as exc:
            asyncio.run(automation.run_price_update_cycle(ITEM_URL, 900, 1000, PriceUpdateOptions(0, 0), 1, 1, CancelToken()))
        assert exc.value.step_name == "Pause"
        assert page.locators["price"].filled == ["900"]


class TestFetchListings:
    def test_not_ready_returns_empty(self, automation_for, tmp_path) -> None:
        automation = automation_for(NotReadyPage())
        assert asyncio.run(automation.fetch_listings(1, 10, CancelToken())) == []
        names = sorted(p.name for p in (tmp_path / "evidence").iterdir())
        assert len(names) == 2
        assert all("_FetchListings_NotReady." in n for n in names)
