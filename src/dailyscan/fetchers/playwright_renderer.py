from __future__ import annotations

from dataclasses import dataclass

from dailyscan.config import DEFAULT_USER_AGENT


@dataclass
class PlaywrightRenderer:
    """
    Headless browser renderer for pages that build their content with JavaScript.

    Notes:
    - Requires the optional `playwright` dependency and a browser install
      (e.g. via `playwright install chromium`).
    - After navigation the page is given `settle_seconds` to hydrate before the
      DOM is serialized.
    """

    name: str = "playwright"
    timeout_s: float = 30.0
    settle_seconds: float = 3.0
    browser: str = "chromium"
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    async def render(self, url: str) -> str:
        # Lazy import so the package remains optional.
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            browser_type = getattr(p, self.browser)
            browser = await browser_type.launch(headless=self.headless)
            try:
                page = await browser.new_page(user_agent=self.user_agent)
                await page.goto(url, wait_until="load", timeout=int(self.timeout_s * 1000))
                await page.wait_for_timeout(int(self.settle_seconds * 1000))
                return await page.content()
            finally:
                await browser.close()
