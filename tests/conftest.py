import sys
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from wfpilot.config import Settings, reload_settings
from wfpilot.teams import TeamDirectory, set_team_directory


class FakeElement:
    """A DOM node as seen through a locator."""

    def __init__(self, text="", visible=True, attrs=None, evaluate=None, click_errors=0, on_click=None, children=None):
        self.text = text
        self.visible = visible
        self.attrs = attrs or {}
        self.evaluate_fn = evaluate
        self.click_errors = click_errors
        self.on_click = on_click
        self.children = children or {}
        self.value = ""
        self.clicks = []
        self.fills = []
        self.typed = []
        self.pressed = []
        self.evaluations = []


class FakeLocator:
    def __init__(self, elements, selector=""):
        self.elements = list(elements)
        self.selector = selector

    def _element(self):
        if not self.elements:
            raise TimeoutError(f"No element matches {self.selector}")
        return self.elements[0]

    @property
    def first(self):
        return FakeLocator(self.elements[:1], self.selector)

    def nth(self, index):
        return FakeLocator(self.elements[index:index + 1], self.selector)

    def locator(self, selector):
        if not self.elements:
            return FakeLocator([], selector)
        return FakeLocator(self.elements[0].children.get(selector, []), selector)

    async def count(self):
        return len(self.elements)

    async def is_visible(self):
        return bool(self.elements) and self.elements[0].visible

    async def click(self, **kwargs):
        element = self._element()
        element.clicks.append(kwargs)
        if element.click_errors > 0:
            element.click_errors -= 1
            raise RuntimeError("Element click intercepted")
        if element.on_click:
            element.on_click()

    async def fill(self, value):
        element = self._element()
        element.value = value
        element.fills.append(value)

    async def type(self, text):
        element = self._element()
        element.value += text
        element.typed.append(text)

    async def press(self, key):
        self._element().pressed.append(key)

    async def evaluate(self, script, arg=None):
        element = self._element()
        element.evaluations.append((script, arg))
        if callable(element.evaluate_fn):
            return element.evaluate_fn(script, arg)
        return element.evaluate_fn

    async def text_content(self):
        return self._element().text

    async def get_attribute(self, name):
        return self._element().attrs.get(name)

    async def wait_for(self, timeout=None):
        self._element()


class FakeScope:
    """Page, Frame or FrameLocator stand-in: selectors map to elements."""

    def __init__(self):
        self.elements = {}

    def add(self, selector, element=None, **kwargs):
        element = element or FakeElement(**kwargs)
        self.elements.setdefault(selector, []).append(element)
        return element

    def locator(self, selector):
        return FakeLocator(self.elements.get(selector, []), selector)

    def get_by_role(self, role, name=None):
        return self.locator(f"role={role}")


class FakeKeyboard:
    def __init__(self):
        self.pressed = []
        self.inserted = []

    async def press(self, key):
        self.pressed.append(key)

    async def insert_text(self, text):
        self.inserted.append(text)


class FakeFileChooser:
    def __init__(self):
        self.files = None

    async def set_files(self, files):
        self.files = files


class FakeEventInfo:
    def __init__(self, value):
        self._value = value

    @property
    def value(self):
        async def resolve():
            return self._value
        return resolve()


class FakeContext:
    def __init__(self, cookies=None):
        self._cookies = cookies or []

    async def cookies(self):
        return self._cookies


class FakeFrame(FakeScope):
    def __init__(self, url):
        super().__init__()
        self.url = url


class FakePage(FakeScope):
    def __init__(self, url="https://experience.adobe.com/#/@acme/so:acme-Production/workfront/project/abc123def4567/documents"):
        super().__init__()
        self.url = url
        self.frames = []
        self.context = FakeContext()
        self.keyboard = FakeKeyboard()
        self.waits = []
        self.gotos = []
        self.reloads = 0
        self.redirect_to = None
        self.screenshots = []
        self.file_chooser = FakeFileChooser()
        self.evaluate_result = None
        self.frame_scope = FakeScope()

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)

    async def goto(self, url, **kwargs):
        self.gotos.append(url)
        self.url = self.redirect_to or url

    async def reload(self, **kwargs):
        self.reloads += 1

    async def wait_for_selector(self, selector, timeout=None):
        if selector not in self.elements:
            raise TimeoutError(f"Timeout waiting for {selector}")

    async def evaluate(self, script, arg=None):
        return self.evaluate_result

    async def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)
        Path(path).write_bytes(b"png")

    def frame_locator(self, selector):
        return self

    @property
    def first(self):
        return self.frame_scope

    @asynccontextmanager
    async def expect_file_chooser(self, timeout=None):
        yield FakeEventInfo(self.file_chooser)


def fake_project_page(page, scope=None):
    """Replacement for Automation.project_page that yields a prepared page."""
    calls = []

    @asynccontextmanager
    async def project_page(project_url, headless=None, settle_ms=3000):
        calls.append({"project_url": project_url, "headless": headless, "settle_ms": settle_ms})
        yield page, scope or page

    project_page.calls = calls
    return project_page


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every test at a throwaway data dir and the built-in test team."""
    monkeypatch.setenv("WF_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("WF_STATE_FILE", str(tmp_path / "wf_state.json"))
    monkeypatch.delenv("WF_TEAMS_FILE", raising=False)
    monkeypatch.delenv("WF_FORCE_VISIBLE", raising=False)
    monkeypatch.delenv("WF_HEADLESS_DEFAULT", raising=False)
    monkeypatch.delenv("WF_WORKFRONT_HOST", raising=False)
    reload_settings()
    set_team_directory(TeamDirectory())
    yield
    set_team_directory(None)
    reload_settings()


@pytest.fixture
def fast_settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        state_file=tmp_path / "wf_state.json",
        folder_attempts=2,
        folder_delay_ms=10,
        doc_attempts=3,
        doc_delay_ms=5,
    )


@pytest.fixture
def page():
    return FakePage()
