"""Add backend to path so tests can use direct imports (models, reporting.*) when run from project root."""
import os
import sys

_backend_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from reporting import engine as engine_module

FAKE_PDF = b"%PDF-1.4\n% fake pdf body\n%%EOF"
FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-png"


class FakeElement:
    async def screenshot(self, **kwargs):
        return FAKE_PNG


class FakePage:
    def __init__(self, engine):
        self.engine = engine
        self.calls = []
        self.html = None
        self.closed = False

    async def set_viewport_size(self, size):
        self.calls.append(("viewport", size))

    async def set_content(self, html, wait_until=None, timeout=None):
        self.calls.append(("set_content", wait_until, timeout))
        self.html = html
        if self.engine.fail_on == "set_content":
            raise PlaywrightTimeoutError("Timeout exceeded while loading content")

    async def wait_for_function(self, expression, timeout=None, polling=None):
        self.calls.append(("wait_for_function", expression, timeout))
        if self.engine.fail_on == "wait_for_function":
            raise PlaywrightTimeoutError("Timeout exceeded while waiting for function")

    async def evaluate(self, expression):
        return self.engine.page_state

    async def emulate_media(self, media=None):
        self.calls.append(("emulate_media", media))

    async def pdf(self, **kwargs):
        self.calls.append(("pdf", kwargs))
        if self.engine.fail_on == "pdf":
            raise PlaywrightError("Target page, context or browser has been closed")
        return FAKE_PDF

    async def screenshot(self, **kwargs):
        self.calls.append(("screenshot", kwargs))
        return FAKE_PNG

    async def wait_for_timeout(self, ms):
        self.calls.append(("wait_for_timeout", ms))

    async def query_selector(self, selector):
        self.calls.append(("query_selector", selector))
        return None if self.engine.fail_on == "query_selector" else FakeElement()

    async def close(self):
        self.closed = True
        if self.engine.page_close_fails:
            raise PlaywrightError("page close failed")


class FakeContext:
    def __init__(self, engine):
        self.engine = engine
        self.closed = False

    async def new_page(self):
        page = FakePage(self.engine)
        self.engine.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, engine):
        self.engine = engine
        self.closed = False

    async def new_context(self):
        context = FakeContext(self.engine)
        self.engine.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, engine):
        self.engine = engine

    async def launch(self, headless=True, args=None):
        self.engine.launch_args.append(args)
        if self.engine.fail_on == "launch":
            raise PlaywrightError("Executable doesn't exist")
        browser = FakeBrowser(self.engine)
        self.engine.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, engine):
        self.chromium = FakeChromium(engine)


class FakePlaywrightManager:
    def __init__(self, engine):
        self.engine = engine

    async def __aenter__(self):
        return FakePlaywright(self.engine)

    async def __aexit__(self, *exc):
        self.engine.stopped += 1
        return False


class FakeEngine:
    """Stands in for `async_playwright`; records every browser, context and page it hands out."""

    def __init__(self):
        self.fail_on = None
        self.page_close_fails = False
        self.page_state = None
        self.launch_args = []
        self.browsers = []
        self.contexts = []
        self.pages = []
        self.stopped = 0

    def __call__(self):
        return FakePlaywrightManager(self)

    @property
    def launches(self):
        return len(self.launch_args)

    @property
    def page(self):
        return self.pages[-1]

    def all_closed(self):
        return (
            all(b.closed for b in self.browsers)
            and all(c.closed for c in self.contexts)
            and all(p.closed for p in self.pages)
        )


@pytest.fixture
def fake_engine(monkeypatch):
    fake = FakeEngine()
    monkeypatch.setattr(engine_module, "async_playwright", fake)
    return fake
