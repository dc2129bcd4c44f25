"""
tests/test_session.py

BrowserSession lifecycle over a stand-in for async_playwright.

Coverage
--------
- Saved login is loaded into the context, no prompt
- Headed first run prompts for manual login and saves the storage state
- Headless without a saved login fails fast: no browser, no prompt, no file
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

import pricecycle.session as session_module
from pricecycle.errors import LoginRequired
from pricecycle.session import BrowserSession
from pricecycle.site import LISTINGS_URL

from .conftest import FakePage


class FakeContext:
    def __init__(self, kwargs: dict):
        self.kwargs = kwargs
        self.page = FakePage()

    async def new_page(self) -> FakePage:
        return self.page

    async def storage_state(self, path: str) -> None:
        Path(path).write_text(json.dumps({"cookies": []}), encoding="utf-8")

    async def close(self) -> None:
        pass


class FakeBrowser:
    def __init__(self) -> None:
        self.contexts: list[FakeContext] = []

    async def new_context(self, **kwargs) -> FakeContext:
        self.contexts.append(FakeContext(kwargs))
        return self.contexts[-1]

    async def close(self) -> None:
        pass


class FakePlaywright:
    def __init__(self) -> None:
        self.launches: list[dict] = []
        self.browser = FakeBrowser()
        self.chromium = self

    async def launch(self, **kwargs) -> FakeBrowser:
        self.launches.append(kwargs)
        return self.browser

    async def start(self) -> "FakePlaywright":
        return self

    async def stop(self) -> None:
        pass


@pytest.fixture()
def driver(monkeypatch) -> FakePlaywright:
    fake = FakePlaywright()
    monkeypatch.setattr(session_module, "async_playwright", lambda: fake)
    return fake


class Prompt:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


class TestBrowserSession:
    def test_saved_login_is_reused(self, tmp_path: Path, driver) -> None:
        state = tmp_path / "storageState.json"
        state.write_text("{}", encoding="utf-8")
        prompt = Prompt()

        async def scenario() -> None:
            async with BrowserSession(state, headless=True, login_prompt=prompt):
                pass

        asyncio.run(scenario())
        assert driver.launches == [{"headless": True}]
        assert driver.browser.contexts[0].kwargs["storage_state"] == str(state)
        assert prompt.calls == 0

    def test_headed_first_run_prompts_and_saves(self, tmp_path: Path, driver) -> None:
        state = tmp_path / "storageState.json"
        prompt = Prompt()
        session = BrowserSession(state, headless=False, login_prompt=prompt)

        async def scenario() -> FakePage:
            try:
                return await session.open()
            finally:
                await session.close()

        page = asyncio.run(scenario())
        assert page.visited == [LISTINGS_URL]
        assert prompt.calls == 1
        assert state.exists()
        assert "storage_state" not in driver.browser.contexts[0].kwargs

    def test_headless_without_login_fails_fast(self, tmp_path: Path, driver) -> None:
        state = tmp_path / "storageState.json"
        prompt = Prompt()
        session = BrowserSession(state, headless=True, login_prompt=prompt)
        with pytest.raises(LoginRequired, match="login"):
            asyncio.run(session.open())
        assert driver.launches == []
        assert prompt.calls == 0
        assert not state.exists()
        assert not session.is_open
