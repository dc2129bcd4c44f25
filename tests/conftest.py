"""
tests/conftest.py

Shared fakes for the browser-facing code: a scriptable Page / Locator pair that
mimics the parts of the Playwright async API the automation touches, plus a
fixture that replaces asyncio.sleep so retry delays and holds cost nothing.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


# ---------------------------------------------------------------------------
# Fake Playwright objects
# ---------------------------------------------------------------------------


class FakeLocator:
    """One element. `click_errors` are raised by successive click() calls before clicks succeed."""

    def __init__(self, name: str, visible: bool = False, click_errors: Optional[list] = None):
        self.name = name
        self.visible = visible
        self.click_errors = list(click_errors or [])
        self.clicks = 0
        self.js_clicks = 0
        self.filled: list[str] = []

    @property
    def first(self) -> "FakeLocator":
        return self

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        if state == "visible" and not self.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.name}")

    async def is_visible(self) -> bool:
        return self.visible

    async def click(self, timeout: Optional[float] = None) -> None:
        if self.click_errors:
            raise self.click_errors.pop(0)
        self.clicks += 1

    async def evaluate(self, expression: str, arg=None):
        self.js_clicks += 1

    async def fill(self, value: str) -> None:
        self.filled.append(value)

    async def count(self) -> int:
        return 1 if self.visible else 0


class FakeKeyboard:
    def __init__(self) -> None:
        self.pressed: list[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class FakePage:
    """Selectors not registered with add() resolve to an invisible element."""

    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.keyboard = FakeKeyboard()
        self.locators: dict[str, FakeLocator] = {}
        self.texts: dict[str, FakeLocator] = {}
        self.visited: list[str] = []
        self.screenshots: list[str] = []
        self.html = "<html><body>page</body></html>"

    def add(self, selector: str, **kwargs) -> FakeLocator:
        loc = FakeLocator(selector, **kwargs)
        self.locators[selector] = loc
        return loc

    def locator(self, selector: str) -> FakeLocator:
        if selector not in self.locators:
            self.locators[selector] = FakeLocator(selector)
        return self.locators[selector]

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return self.texts.get(text) or FakeLocator(f"text={text}")

    async def goto(self, url: str, **kwargs) -> None:
        self.visited.append(url)
        self.url = url

    async def wait_for_selector(self, selector: str, timeout: Optional[float] = None) -> None:
        return None

    async def wait_for_timeout(self, ms: float) -> None:
        return None

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        with open(path, "wb") as f:
            f.write(b"\x89PNG")
        self.screenshots.append(path)

    async def content(self) -> str:
        return self.html


class BrokenPage(FakePage):
    async def screenshot(self, path: str, full_page: bool = False) -> None:
        raise PlaywrightError("Target page, context or browser has been closed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


class SleepRecorder:
    """Replacement for asyncio.sleep: records delays, optionally runs a hook per call."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self.on_sleep: Optional[Callable[[float], None]] = None

    @property
    def total(self) -> float:
        return sum(self.calls)

    async def __call__(self, delay: float, result=None):
        self.calls.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(delay)
        return result


@pytest.fixture()
def sleeps(monkeypatch) -> SleepRecorder:
    recorder = SleepRecorder()
    monkeypatch.setattr(asyncio, "sleep", recorder)
    return recorder


@pytest.fixture()
def page() -> FakePage:
    return FakePage()
