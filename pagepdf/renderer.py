from typing import List

from playwright.async_api import Error as PWError, TimeoutError as PWTimeoutError, async_playwright

from .errors import NavigationError
from .utils import json_log


IMG_SOURCES_JS = "imgs => imgs.map(img => img.src)"


class PageRenderer:
    """
    Loads a URL in headless Chromium and returns the src of every <img> in DOM order.
    A fresh browser is launched per call and always closed, whatever happens.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless

    async def render(self, url: str, max_wait_ms: int = 120000) -> List[str]:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.headless)
            try:
                page = await browser.new_page()
                try:
                    # DOM parsed is enough; full network idle is not awaited
                    await page.goto(url, wait_until="domcontentloaded", timeout=max_wait_ms)
                except PWTimeoutError as e:
                    raise NavigationError(url, f"timed out after {max_wait_ms}ms") from e
                except PWError as e:
                    raise NavigationError(url, str(e)) from e
                sources = await page.eval_on_selector_all("img", IMG_SOURCES_JS)
                json_log("page_rendered", url=url, images=len(sources))
                return [s for s in sources if isinstance(s, str)]
            finally:
                await browser.close()
