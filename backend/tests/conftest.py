import asyncio
import io

import pytest
from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from errors import CannotOpenPageError
from models import CaptureFrame, CaptureJob, NavigationKind
from services.browser import Browser
from services.file_store import FileStore

HASS_URL = "http://hass.local:8123"


def make_png(width=40, height=20, color=(255, 255, 255), mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_job(name="kitchen", path="/lovelace/0", **overrides) -> CaptureJob:
    data = {
        "name": name,
        "path": path,
        "viewport": {"width": 200, "height": 120},
        "interval": 60,
        "wait": 0,
    }
    data.update(overrides)
    return CaptureJob.model_validate(data)


class FakeResponse:
    def __init__(self, status=200):
        self.status = status

    @property
    def ok(self):
        return 200 <= self.status < 300


class FakePage:
    """Just enough of playwright's Page for the browser controller."""

    def __init__(self):
        self.viewport_size = None
        self.url = "about:blank"
        self.events = []
        self.init_scripts = []
        self.evaluated = []
        self.statuses = {}
        self.toast = False
        self.ready = True
        self.fail_screenshot = False
        self.fail_close = False
        self.crashed = False
        self.closed = False

    def is_closed(self):
        return self.closed or self.crashed

    async def set_viewport_size(self, viewport):
        self.viewport_size = dict(viewport)
        self.events.append(("viewport", viewport["width"], viewport["height"]))

    async def add_init_script(self, script=None, path=None):
        self.init_scripts.append(script)

    async def goto(self, url, **kwargs):
        self.events.append(("goto", url, kwargs.get("wait_until")))
        if self.crashed:
            raise RuntimeError("Target page, context or browser has been closed")
        # Give other tasks a chance to interleave
        await asyncio.sleep(0)
        self.url = url
        return FakeResponse(self.statuses.get(url, 200))

    async def evaluate(self, expression, arg=None):
        self.evaluated.append((expression, arg))
        if "notification-manager" in expression:
            return self.toast
        return None

    async def wait_for_function(self, expression, arg=None, timeout=None, polling=None):
        self.events.append(("ready", timeout, polling))
        await asyncio.sleep(0)
        if not self.ready:
            raise PlaywrightTimeoutError("Timeout 15000ms exceeded.")

    async def screenshot(self, type="png", clip=None):
        await asyncio.sleep(0)
        if self.fail_screenshot or self.crashed:
            raise RuntimeError("Target closed")
        self.events.append(("screenshot", self.url, clip))
        return make_png(int(clip["width"]), int(clip["height"]))

    async def close(self):
        if self.fail_close:
            raise RuntimeError("page already closed")
        self.closed = True


class FakeChromium:
    def __init__(self, fail_close=False):
        self.fail_close = fail_close
        self.closed = False
        self.connected = True

    def is_connected(self):
        return self.connected and not self.closed

    async def close(self):
        if self.fail_close:
            raise RuntimeError("browser crashed")
        self.closed = True


class FakeBrowser:
    """Stands in for services.browser.Browser in scheduler tests."""

    def __init__(self, failing_paths=()):
        self.failing_paths = set(failing_paths)
        self.calls = []
        self.shutdown_called = False

    async def navigate_and_capture(self, job):
        self.calls.append(job.name)
        await asyncio.sleep(0)
        if job.path in self.failing_paths:
            raise CannotOpenPageError(404, f"{HASS_URL}{job.path}")
        return CaptureFrame(
            image=make_png(job.viewport.width, job.viewport.height),
            navigation=NavigationKind.SAME_PAGE,
        )

    async def shutdown(self):
        self.shutdown_called = True


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def fake_chromium():
    return FakeChromium()


@pytest.fixture
def browser(fake_page, fake_chromium):
    async def launcher():
        return fake_chromium, fake_page

    b = Browser(HASS_URL, "secret-token", launcher=launcher)
    b.settle_seconds = 0
    return b


@pytest.fixture
def file_store(tmp_path):
    return FileStore(str(tmp_path / "output"), "/local/screenshots")
