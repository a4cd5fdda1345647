import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from wfpilot.browser.locators import (
    click_first,
    first_present,
    first_visible,
    force_click,
    is_present,
    retry,
    sleep_ms,
)
from wfpilot.browser.manager import (
    BrowserManager,
    _safe_identifier,
    browser_session,
    workfront_session_config,
)
from wfpilot.browser.models import (
    BrowserSession,
    BrowserSessionConfig,
    BrowserSessionStatus,
    ConsoleLogEntry,
    RouteDecision,
    match_glob,
    route_decision,
)
from wfpilot.config import Settings
from wfpilot.errors import SessionNotFoundError


class TestBrowserSessionConfig:
    def test_headful_has_no_viewport(self):
        assert BrowserSessionConfig(headless=False).viewport is None
        assert BrowserSessionConfig(headless=True).viewport == {"width": 1366, "height": 900}

    def test_needs_routing(self):
        assert BrowserSessionConfig().needs_routing is False
        assert BrowserSessionConfig(short_circuit_globs=["**/beacon*"]).needs_routing is True
        assert BrowserSessionConfig.optimized().needs_routing is True

    def test_round_trip_ignores_unknown_keys(self):
        config = BrowserSessionConfig(headless=False, extra_block_domains=["ads.example.com"])
        data = config.to_dict()
        data["unexpected"] = 1
        restored = BrowserSessionConfig.from_dict(data)
        assert restored.headless is False
        assert restored.extra_block_domains == ["ads.example.com"]

    def test_optimized_profile(self):
        config = BrowserSessionConfig.optimized(headless=True, storage_state_path="/tmp/state.json")
        assert config.block_heavy is True
        assert config.extra_headers == {"Save-Data": "on"}
        assert config.storage_state_path == "/tmp/state.json"


class TestRouting:
    def test_match_glob(self):
        assert match_glob("https://cdn.example.com/beacon.js", "*beacon*")
        assert not match_glob("https://cdn.example.com/app.js", "*beacon*")
        assert not match_glob("https://a.com/x?y=1", "https://a.com/x")

    def test_short_circuit_first(self):
        config = BrowserSessionConfig(short_circuit_globs=["*telemetry*"], block_heavy=True)
        assert route_decision("https://x.com/telemetry", "image", config) == RouteDecision.FULFILL

    def test_heavy_resources_aborted(self):
        config = BrowserSessionConfig(block_heavy=True)
        assert route_decision("https://x.com/a.png", "image", config) == RouteDecision.ABORT
        assert route_decision("https://x.com/app.js", "script", config) == RouteDecision.CONTINUE

    def test_analytics_blocked_whenever_routing(self):
        url = "https://www.google-analytics.com/collect"
        assert route_decision(url, "xhr", BrowserSessionConfig(short_circuit_globs=["*beacon*"])) == RouteDecision.ABORT
        assert route_decision(url, "xhr", BrowserSessionConfig.optimized()) == RouteDecision.ABORT
        extra = BrowserSessionConfig(extra_block_domains=["ads.example.com"])
        assert route_decision("https://ads.example.com/pixel", "xhr", extra) == RouteDecision.ABORT
        assert route_decision("https://wf.test/api", "xhr", extra) == RouteDecision.CONTINUE

    @pytest.mark.asyncio
    async def test_handle_route_applies_decision(self):
        manager = BrowserManager()
        route = MagicMock()
        route.request.url = "https://x.com/photo.jpg"
        route.request.resource_type = "image"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await manager._handle_route(BrowserSessionConfig(block_heavy=True), route)

        route.abort.assert_awaited_once()
        route.continue_.assert_not_called()


class TestBrowserSession:
    def test_console_logs_are_bounded(self):
        session = BrowserSession(id="s1", name="test", config=BrowserSessionConfig(), _max_console_logs=3)
        for i in range(5):
            session.add_console_log(ConsoleLogEntry(level="log", text=f"line {i}"))
        assert [e.text for e in session.console_logs] == ["line 2", "line 3", "line 4"]

    def test_to_dict_counts(self):
        session = BrowserSession(id="s1", name="test", config=BrowserSessionConfig())
        session.add_console_log(ConsoleLogEntry(level="error", text="boom"))
        data = session.to_dict()
        assert data["console_log_count"] == 1
        assert data["status"] == "starting"


class TestBrowserManager:
    def test_safe_identifier(self):
        assert _safe_identifier("no add/new button!") == "no-add-new-button"
        assert _safe_identifier("///") == "page"

    @pytest.mark.asyncio
    async def test_capture_debug_screenshot(self, tmp_path, page):
        manager = BrowserManager(screenshots_dir=tmp_path)
        manager.sessions["s1"] = BrowserSession(id="s1", name="test", config=BrowserSessionConfig())

        record = await manager.capture_debug_screenshot(page, "no-add-new", "Add new not found", session_id="s1")

        assert record is not None
        assert record.file_path.startswith(str(tmp_path))
        assert record.url == page.url
        assert manager.sessions["s1"].screenshots == [record]

    @pytest.mark.asyncio
    async def test_capture_debug_screenshot_never_raises(self, tmp_path):
        manager = BrowserManager(screenshots_dir=tmp_path)
        broken = MagicMock()
        broken.screenshot = AsyncMock(side_effect=RuntimeError("page closed"))
        assert await manager.capture_debug_screenshot(broken, "x") is None

    def test_console_logs_filtered_by_level(self):
        manager = BrowserManager()
        manager.sessions["s1"] = BrowserSession(id="s1", name="test", config=BrowserSessionConfig())
        manager._on_console("s1", MagicMock(type="error", text="boom"))
        manager._on_console("s1", MagicMock(type="log", text="hello"))
        assert [e["text"] for e in manager.get_console_logs("s1", level="error")] == ["boom"]
        assert manager.get_console_logs("missing") == []

    def test_network_logs_record_failures(self):
        manager = BrowserManager()
        manager.sessions["s1"] = BrowserSession(id="s1", name="test", config=BrowserSessionConfig())
        response = MagicMock(url="https://wf.test/api", status=200)
        response.request.method = "GET"
        response.request.resource_type = "xhr"
        manager._on_response("s1", response)
        manager._on_request_failed("s1", MagicMock(
            method="POST", url="https://wf.test/upload", resource_type="fetch", failure="net::ERR_ABORTED",
        ))

        logs = manager.get_network_logs("s1")
        assert [(e["url"], e["status"]) for e in logs] == [("https://wf.test/api", 200), ("https://wf.test/upload", 0)]
        assert logs[1]["failed"] is True
        assert manager.get_network_logs("s1", limit=1) == logs[1:]

    @pytest.mark.asyncio
    async def test_close_session_notifies_callbacks(self):
        manager = BrowserManager()
        manager.sessions["s1"] = BrowserSession(id="s1", name="test", config=BrowserSessionConfig())
        seen = []

        async def on_status(session_id, status):
            seen.append((session_id, status))

        manager.add_status_callback(MagicMock(side_effect=RuntimeError("listener broke")))
        manager.add_status_callback(on_status)

        assert await manager.close_session("s1") is True
        assert seen == [("s1", BrowserSessionStatus.CLOSED)]
        assert manager.get_session("s1").status == BrowserSessionStatus.CLOSED
        assert await manager.close_session("missing") is False

    @pytest.mark.asyncio
    async def test_browser_session_always_closes(self, page):
        manager = MagicMock()
        manager.create_session = AsyncMock(return_value=MagicMock(id="s1"))
        manager.get_page = MagicMock(return_value=page)
        manager.close_session = AsyncMock()

        with pytest.raises(RuntimeError):
            async with browser_session(BrowserSessionConfig(), name="test", manager=manager) as (session, opened):
                assert opened is page
                raise RuntimeError("step failed")

        manager.close_session.assert_awaited_once_with("s1")

    def test_workfront_config_requires_login_state(self, tmp_path):
        settings = Settings(state_file=tmp_path / "missing.json")
        with patch("wfpilot.browser.manager.get_settings", return_value=settings):
            with pytest.raises(SessionNotFoundError):
                workfront_session_config(headless=True)

    def test_workfront_config_uses_state(self, tmp_path):
        state = tmp_path / "wf_state.json"
        state.write_text("{}")
        with patch("wfpilot.browser.manager.get_settings", return_value=Settings(state_file=state)):
            config = workfront_session_config(headless=False)
        assert config.storage_state_path == str(state)
        assert config.headless is False
        assert config.needs_routing is False

    def test_workfront_config_optimized(self, tmp_path):
        state = tmp_path / "wf_state.json"
        state.write_text("{}")
        with patch("wfpilot.browser.manager.get_settings", return_value=Settings(state_file=state)):
            config = workfront_session_config(headless=True, optimized=True)
        assert config.block_heavy is True
        assert config.needs_routing is True
        assert config.storage_state_path == str(state)


def _launched_manager():
    manager = BrowserManager()
    context = MagicMock()
    context.add_init_script = AsyncMock()
    context.route = AsyncMock()
    context.new_page = AsyncMock(return_value=MagicMock())
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    manager._playwright = MagicMock()
    manager._playwright.chromium.launch = AsyncMock(return_value=browser)
    manager._initialized = True
    return manager, browser, context


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_headful_context_follows_maximized_window(self):
        manager, browser, _ = _launched_manager()

        await manager.create_session(config=BrowserSessionConfig(headless=False))

        launch = manager._playwright.chromium.launch.await_args.kwargs
        assert "--start-maximized" in launch["args"]
        options = browser.new_context.await_args.kwargs
        assert options["no_viewport"] is True
        assert "viewport" not in options
        assert "device_scale_factor" not in options

    @pytest.mark.asyncio
    async def test_headless_context_uses_fixed_viewport(self):
        manager, browser, context = _launched_manager()

        session = await manager.create_session(config=BrowserSessionConfig.optimized(storage_state_path="/tmp/state.json"))

        options = browser.new_context.await_args.kwargs
        assert options["viewport"] == {"width": 1366, "height": 900}
        assert options["device_scale_factor"] == 1
        assert "no_viewport" not in options
        assert options["storage_state"] == "/tmp/state.json"
        assert manager._playwright.chromium.launch.await_args.kwargs["args"] == []
        context.route.assert_awaited_once()
        assert session.status == BrowserSessionStatus.READY


class TestLocators:
    @pytest.mark.asyncio
    async def test_is_present(self, page):
        page.add("#shown")
        page.add("#hidden", visible=False)
        assert await is_present(page.locator("#shown")) is True
        assert await is_present(page.locator("#hidden")) is False
        assert await is_present(page.locator("#missing")) is False

    @pytest.mark.asyncio
    async def test_first_visible_skips_hidden(self, page):
        page.add("#hidden", visible=False)
        page.add("#shown")
        selector, _ = await first_visible(page, ["#missing", "#hidden", "#shown"])
        assert selector == "#shown"
        assert await first_visible(page, ["#missing"]) is None

    @pytest.mark.asyncio
    async def test_first_present_accepts_hidden(self, page):
        page.add("#hidden", visible=False)
        selector, _ = await first_present(page, ["#missing", "#hidden"])
        assert selector == "#hidden"

    @pytest.mark.asyncio
    async def test_click_first_moves_past_failing_click(self, page):
        broken = page.add("#broken", click_errors=1)
        working = page.add("#working")

        used = await click_first(page, page, ["#broken", "#working"], settle_ms=250)

        assert used == "#working"
        assert len(broken.clicks) == 1
        assert len(working.clicks) == 1
        assert page.waits == [250]

    @pytest.mark.asyncio
    async def test_click_first_none(self, page):
        assert await click_first(page, page, ["#missing"], settle_ms=250) is None
        assert page.waits == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("errors,strategy", [(0, "normal"), (1, "force"), (2, "javascript")])
    async def test_force_click_strategies(self, page, errors, strategy):
        button = page.add("#summary", click_errors=errors)
        assert await force_click(page.locator("#summary")) == strategy
        if strategy == "javascript":
            assert button.evaluations

    @pytest.mark.asyncio
    async def test_retry_returns_first_success(self, page):
        outcomes = [None, RuntimeError("stale"), "found"]

        async def attempt(n):
            outcome = outcomes[n - 1]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await retry(4, 100, attempt, page=page) == "found"
        assert page.waits == [100, 100]

    @pytest.mark.asyncio
    async def test_retry_exhausted(self, page):
        async def attempt(n):
            return False

        assert await retry(3, 50, attempt, page=page) is None
        assert page.waits == [50, 50]

    @pytest.mark.asyncio
    async def test_sleep_ms(self, page):
        await sleep_ms(page, 0)
        await sleep_ms(page, 300)
        assert page.waits == [300]
