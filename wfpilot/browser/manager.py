"""
BrowserManager - Manages Playwright browser sessions.

Launches Chromium with the storage state of a logged-in Workfront user,
applies request routing and light anti-detection, and keeps console/network
logs for diagnostics.
"""
import asyncio
import functools
import re
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Dict, Callable, Any, List

from ..config import get_settings
from ..logging_config import get_logger

from .models import (
    BrowserSession,
    BrowserSessionConfig,
    BrowserSessionStatus,
    ConsoleLogEntry,
    NetworkLogEntry,
    RouteDecision,
    ScreenshotRecord,
    route_decision,
)

logger = get_logger("wfpilot.browser")

HEADFUL_ARGS = ["--start-maximized", "--disable-blink-features=AutomationControlled"]

# Masks the most common automation fingerprints before any page script runs.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en', 'pt-BR', 'pt'] });
window.chrome = { runtime: {} };
"""


def _safe_identifier(identifier: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", identifier).strip("-") or "page"


class BrowserManager:
    """Manages Playwright browser sessions used by the automations."""

    def __init__(self, screenshots_dir: Optional[Path] = None):
        self.sessions: Dict[str, BrowserSession] = {}
        self._playwright = None
        self._browsers: Dict[str, Any] = {}
        self._contexts: Dict[str, Any] = {}
        self._pages: Dict[str, Any] = {}
        self._status_callbacks: List[Callable] = []
        self._initialized = False
        self._screenshots_dir = screenshots_dir

    @property
    def screenshots_dir(self) -> Path:
        return self._screenshots_dir or get_settings().screenshots_dir

    async def _ensure_playwright(self):
        """Lazy-init Playwright on first use."""
        if not self._initialized:
            from playwright.async_api import async_playwright
            self._playwright = await async_playwright().start()
            self._initialized = True
            logger.info("Playwright initialized")

    def add_status_callback(self, callback: Callable):
        self._status_callbacks.append(callback)

    async def _notify_status(self, session_id: str, status: BrowserSessionStatus):
        for callback in self._status_callbacks:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(session_id, status)
                else:
                    callback(session_id, status)
            except Exception as e:
                logger.error(f"Browser status callback error: {e}")

    # ==================== Session Lifecycle ====================

    async def create_session(
        self,
        name: Optional[str] = None,
        config: Optional[BrowserSessionConfig] = None,
    ) -> BrowserSession:
        """Launch Chromium and open a single page with the configured context."""
        await self._ensure_playwright()

        session_id = uuid.uuid4().hex[:8]
        if name is None:
            name = f"Browser {session_id}"
        if config is None:
            config = BrowserSessionConfig()

        session = BrowserSession(id=session_id, name=name, config=config)
        self.sessions[session_id] = session

        try:
            browser = await self._playwright.chromium.launch(
                headless=config.headless,
                args=[] if config.headless else HEADFUL_ARGS,
            )
            self._browsers[session_id] = browser

            context_options = {
                "user_agent": config.user_agent,
                "locale": config.locale,
                "timezone_id": config.timezone_id,
                "extra_http_headers": config.extra_headers,
                "reduced_motion": "reduce" if config.block_heavy else "no-preference",
                "service_workers": "block" if config.block_heavy else "allow",
            }
            if config.viewport is None:
                # Headful: the page follows the maximized window.
                context_options["no_viewport"] = True
            else:
                context_options["viewport"] = config.viewport
                context_options["device_scale_factor"] = 1
            if config.storage_state_path:
                context_options["storage_state"] = config.storage_state_path

            context = await browser.new_context(**context_options)
            await context.add_init_script(STEALTH_INIT_SCRIPT)
            if config.needs_routing:
                await context.route("**/*", functools.partial(self._handle_route, config))
            self._contexts[session_id] = context

            page = await context.new_page()
            page.set_default_timeout(config.timeout_ms)
            self._pages[session_id] = page

            if config.record_console:
                page.on("console", lambda msg: self._on_console(session_id, msg))

            if config.record_network:
                page.on("response", lambda res: self._on_response(session_id, res))
                page.on("requestfailed", lambda req: self._on_request_failed(session_id, req))

            session.status = BrowserSessionStatus.READY
            await self._notify_status(session_id, session.status)
            logger.info(f"Created browser session {session_id}: {name} (headless={config.headless})")
            return session

        except Exception as e:
            session.status = BrowserSessionStatus.ERROR
            await self._notify_status(session_id, session.status)
            logger.error(f"Failed to create browser session: {e}")
            await self.close_session(session_id)
            session.status = BrowserSessionStatus.ERROR
            raise

    async def close_session(self, session_id: str) -> bool:
        """Close a browser session and clean up resources."""
        session = self.sessions.get(session_id)
        if not session:
            return False

        try:
            if session_id in self._contexts:
                await self._contexts[session_id].close()
            if session_id in self._browsers:
                await self._browsers[session_id].close()
        except Exception as e:
            logger.error(f"Error closing browser session {session_id}: {e}")

        self._pages.pop(session_id, None)
        self._contexts.pop(session_id, None)
        self._browsers.pop(session_id, None)

        session.status = BrowserSessionStatus.CLOSED
        await self._notify_status(session_id, session.status)
        logger.info(f"Closed browser session {session_id}")
        return True

    async def close_all(self):
        """Close all browser sessions and stop Playwright."""
        for session_id in list(self.sessions.keys()):
            if self.sessions[session_id].status != BrowserSessionStatus.CLOSED:
                await self.close_session(session_id)
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
            self._initialized = False
            logger.info("Playwright stopped")

    def get_session(self, session_id: str) -> Optional[BrowserSession]:
        return self.sessions.get(session_id)

    def get_page(self, session_id: str):
        """Get the Playwright page for a session."""
        page = self._pages.get(session_id)
        if not page:
            raise ValueError(f"Browser session not found or closed: {session_id}")
        return page

    # ==================== Diagnostics ====================

    async def capture_debug_screenshot(
        self,
        page,
        identifier: str,
        description: str = "",
        session_id: Optional[str] = None,
    ) -> Optional[ScreenshotRecord]:
        """Save a full-page screenshot; never raises."""
        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            screenshot_id = uuid.uuid4().hex[:8]
            file_path = self.screenshots_dir / f"{_safe_identifier(identifier)}-{screenshot_id}.png"
            await page.screenshot(path=str(file_path), full_page=True)
            record = ScreenshotRecord(
                id=screenshot_id,
                identifier=identifier,
                description=description,
                url=page.url,
                file_path=str(file_path),
            )
            session = self.sessions.get(session_id) if session_id else None
            if session:
                session.screenshots.append(record)
            logger.info(f"Debug screenshot saved: {file_path} ({description})")
            return record
        except Exception as e:
            logger.warning(f"Could not capture debug screenshot '{identifier}': {e}")
            return None

    def get_console_logs(self, session_id: str, level: Optional[str] = None, limit: int = 100) -> List[dict]:
        session = self.sessions.get(session_id)
        if not session:
            return []
        logs = session.console_logs
        if level:
            logs = [entry for entry in logs if entry.level == level]
        return [entry.to_dict() for entry in logs[-limit:]]

    def get_network_logs(self, session_id: str, limit: int = 100) -> List[dict]:
        session = self.sessions.get(session_id)
        if not session:
            return []
        return [entry.to_dict() for entry in session.network_logs[-limit:]]

    # ==================== Internal Helpers ====================

    async def _handle_route(self, config: BrowserSessionConfig, route):
        try:
            request = route.request
            decision = route_decision(request.url, request.resource_type, config)
            if decision == RouteDecision.FULFILL:
                await route.fulfill(status=204, body="")
            elif decision == RouteDecision.ABORT:
                await route.abort()
            else:
                await route.continue_()
        except Exception:
            # The route may already be handled when the page navigates away.
            logger.debug("Route handling failed, continuing request")
            try:
                await route.continue_()
            except Exception:
                pass

    def _on_console(self, session_id: str, msg):
        session = self.sessions.get(session_id)
        if session:
            session.add_console_log(ConsoleLogEntry(level=msg.type, text=msg.text))

    def _on_response(self, session_id: str, response):
        session = self.sessions.get(session_id)
        if session:
            entry = NetworkLogEntry(
                method=response.request.method,
                url=response.url,
                status=response.status,
                resource_type=response.request.resource_type,
            )
            session.add_network_log(entry)

    def _on_request_failed(self, session_id: str, request):
        session = self.sessions.get(session_id)
        if session:
            failure = request.failure or ""
            entry = NetworkLogEntry(
                method=request.method,
                url=request.url,
                resource_type=request.resource_type,
                failed=True,
                failure_text=failure,
            )
            session.add_network_log(entry)


# Global singleton instance
browser_manager = BrowserManager()


@asynccontextmanager
async def browser_session(
    config: BrowserSessionConfig,
    name: Optional[str] = None,
    manager: Optional[BrowserManager] = None,
):
    """Open a session for the duration of a block and always close it."""
    manager = manager or browser_manager
    session = await manager.create_session(name=name, config=config)
    try:
        yield session, manager.get_page(session.id)
    finally:
        await manager.close_session(session.id)


def workfront_session_config(headless: bool, optimized: bool = False) -> BrowserSessionConfig:
    """
    Session profile for Workfront with the logged-in state. The optimized
    profile drops images, media and fonts.
    """
    state_path = str(get_settings().ensure_state_file())
    if optimized:
        return BrowserSessionConfig.optimized(headless=headless, storage_state_path=state_path)
    return BrowserSessionConfig(headless=headless, storage_state_path=state_path)

