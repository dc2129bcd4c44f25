"""Browser session: one Playwright browser/context/page with an explicit open/close lifecycle."""
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .errors import LoginRequired
from .site import LISTINGS_URL

log = logging.getLogger(__name__)

LoginPrompt = Callable[[], Awaitable[None]]


class BrowserSession:
    """
    Owns the single page every automation step runs against.
    Reuses storageState.json (saved login) when present; otherwise waits on the
    manual-login prompt once and saves the storage state for the next run.
    A headless session without a saved login raises LoginRequired instead.
    """

    def __init__(
        self,
        storage_state_path: Path,
        headless: bool = False,
        login_prompt: Optional[LoginPrompt] = None,
    ):
        self.storage_state_path = storage_state_path
        self.headless = headless
        self.login_prompt = login_prompt
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not open.")
        return self._page

    async def open(self) -> Page:
        if self._page is not None:
            return self._page
        has_state = self.storage_state_path.exists()
        log.info("[StorageState] path=%s exists=%s", self.storage_state_path, has_state)
        if not has_state and self.headless:
            raise LoginRequired(
                f"No saved login at {self.storage_state_path}. Run `main.py login` first, or pass --headful."
            )
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        context_kwargs: dict = {"viewport": {"width": 1280, "height": 900}}
        if has_state:
            context_kwargs["storage_state"] = str(self.storage_state_path)
        self._context = await self._browser.new_context(**context_kwargs)
        self._page = await self._context.new_page()

        if not has_state:
            await self._page.goto(LISTINGS_URL, wait_until="domcontentloaded", timeout=60000)
            if self.login_prompt is not None:
                await self.login_prompt()
            await self.save_storage_state()
        return self._page

    async def save_storage_state(self) -> None:
        if self._context is None:
            return
        self.storage_state_path.parent.mkdir(parents=True, exist_ok=True)
        await self._context.storage_state(path=str(self.storage_state_path))
        log.info("[StorageState] saved %s", self.storage_state_path)

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None
            self._browser = None
            self._context = None
            self._page = None

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
