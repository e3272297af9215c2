from __future__ import annotations

import asyncio

import pytest
from playwright.async_api import Error as PWError, TimeoutError as PWTimeoutError

from pagepdf import renderer as renderer_mod
from pagepdf.errors import NavigationError
from pagepdf.renderer import IMG_SOURCES_JS, PageRenderer


class FakePage:
    def __init__(self, sources=None, goto_error=None, eval_error=None):
        self.sources = sources or []
        self.goto_error = goto_error
        self.eval_error = eval_error
        self.goto_calls = []
        self.eval_calls = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error

    async def eval_on_selector_all(self, selector, expression):
        self.eval_calls.append((selector, expression))
        if self.eval_error is not None:
            raise self.eval_error
        return list(self.sources)


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = 0

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed += 1


class FakeChromium:
    def __init__(self, browser):
        self.browser = browser
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        return self.browser


class FakePlaywright:
    def __init__(self, page):
        self.browser = FakeBrowser(page)
        self.chromium = FakeChromium(self.browser)
        self.stopped = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.stopped = True
        return False


@pytest.fixture
def install(monkeypatch):
    def _install(page):
        pw = FakePlaywright(page)
        monkeypatch.setattr(renderer_mod, "async_playwright", lambda: pw)
        return pw

    return _install


def test_render_returns_string_sources_in_dom_order(install):
    page = FakePage(sources=["https://x.test/a.jpg", None, "https://x.test/b.webp", 42])
    pw = install(page)

    sources = asyncio.run(PageRenderer().render("https://x.test/", 5000))

    assert sources == ["https://x.test/a.jpg", "https://x.test/b.webp"]
    assert page.goto_calls == [("https://x.test/", "domcontentloaded", 5000)]
    assert page.eval_calls == [("img", IMG_SOURCES_JS)]
    assert pw.chromium.launch_kwargs == {"headless": True}
    assert pw.browser.closed == 1
    assert pw.stopped


@pytest.mark.parametrize("error", [PWTimeoutError("Timeout 5000ms exceeded"), PWError("net::ERR_NAME_NOT_RESOLVED")])
def test_navigation_failures_become_navigation_error_and_close_browser(install, error):
    page = FakePage(goto_error=error)
    pw = install(page)

    with pytest.raises(NavigationError) as exc:
        asyncio.run(PageRenderer().render("https://down.test/", 5000))

    assert exc.value.url == "https://down.test/"
    assert page.eval_calls == []
    assert pw.browser.closed == 1
    assert pw.stopped


def test_timeout_reason_mentions_bound(install):
    install(FakePage(goto_error=PWTimeoutError("Timeout")))
    with pytest.raises(NavigationError) as exc:
        asyncio.run(PageRenderer().render("https://slow.test/", 120000))
    assert "120000ms" in exc.value.reason


def test_browser_closed_when_extraction_fails(install):
    page = FakePage(eval_error=RuntimeError("page crashed"))
    pw = install(page)

    with pytest.raises(RuntimeError):
        asyncio.run(PageRenderer().render("https://x.test/", 5000))

    assert pw.browser.closed == 1
    assert pw.stopped
