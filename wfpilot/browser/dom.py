"""
Workfront page knowledge: URL shapes, the embedding iframe, the sidebar,
folder navigation and document selection.

Workfront is usually rendered inside an ``experience.adobe.com`` shell
through an iframe, but can also be opened directly on its own host. All
lookup helpers therefore accept any "scope" (Page, Frame or FrameLocator).
"""
import json
import re
from typing import Any, Dict, List, Optional

from ..config import Settings, get_settings
from ..errors import (
    DocumentNotFoundError,
    FolderNotFoundError,
    FrameNotFoundError,
    SessionExpiredError,
)
from ..logging_config import get_logger
from .locators import click_first, first_visible, is_present, retry, scroll_by

logger = get_logger("wfpilot.dom")

WORKFRONT_IFRAME_SELECTOR = 'iframe[src*="workfront"], iframe[src*="experience"], iframe'
WORKFRONT_FRAME_URL = re.compile(r"\.workfront\.adobe\.com/project/")
WORKFRONT_HOST_URL = re.compile(r"https?://[^/]*\.my\.workfront\.adobe\.com", re.IGNORECASE)
PROJECT_ID = re.compile(r"project/([a-f0-9]{10,})", re.IGNORECASE)
LOGIN_URL_HINTS = ("auth.services.adobe.com", "/login", "adobelogin.com", "ims-na1.adobelogin")

SIDEBAR_SELECTOR = '#page-sidebar [data-testid="minix-container"]'
SIDEBAR_CLOSE_SELECTOR = 'button[data-testid="minix-header-close-btn"]'
DOCUMENT_TILE_SELECTOR = ".doc-detail-view"

FOLDER_NUMBER_PREFIXES = ("13", "14", "15")


def css_text(value: str) -> str:
    """
    Quote a value for use inside :has-text() or an attribute selector.

    Non-ASCII text stays literal: the selector engine reads CSS escapes, not
    JSON ``\\uXXXX`` escapes.
    """
    return json.dumps(value, ensure_ascii=False)


# ==================== URLs ====================

def _rewrite_tab(url: str, tab: str, fallback_append: bool) -> str:
    if re.search(rf"/{tab}", url):
        return url
    for other in ("tasks", "overview", "documents"):
        if other != tab and re.search(rf"/{other}", url):
            return re.sub(rf"/{other}.*", f"/{tab}", url)
    if re.search(r"/project/[a-f0-9]+$", url, re.IGNORECASE):
        return f"{url}/{tab}"
    if fallback_append:
        return url.rstrip("/") + f"/{tab}"
    return url


def ensure_tasks_url(url: str) -> str:
    """Normalize any project URL to its Tasks tab."""
    return _rewrite_tab(url, "tasks", fallback_append=True)


def ensure_overview_url(url: str) -> str:
    """Normalize a project URL to its Overview tab; unknown shapes are kept."""
    return _rewrite_tab(url, "overview", fallback_append=False)


def ensure_documents_url(url: str) -> str:
    return _rewrite_tab(url, "documents", fallback_append=True)


def extract_project_id(url: str) -> Optional[str]:
    match = PROJECT_ID.search(url or "")
    return match.group(1) if match else None


def direct_documents_url(project_url: str, settings: Optional[Settings] = None) -> Optional[str]:
    """Documents URL on the Workfront host itself, bypassing the shell."""
    settings = settings or get_settings()
    project_id = extract_project_id(project_url)
    if not project_id or not settings.workfront_host:
        return None
    return f"{settings.workfront_host}/project/{project_id}/documents"


def is_workfront_host(url: str) -> bool:
    return bool(WORKFRONT_HOST_URL.match(url or ""))


def is_login_url(url: str) -> bool:
    lowered = (url or "").lower()
    return any(hint in lowered for hint in LOGIN_URL_HINTS)


# ==================== Frame Resolution ====================

def frame_locator(page):
    """Default locator for the iframe that hosts Workfront."""
    return page.frame_locator(WORKFRONT_IFRAME_SELECTOR).first


def find_workfront_frame(page):
    for frame in page.frames:
        if WORKFRONT_FRAME_URL.search(frame.url or ""):
            return frame
    return None


def resolve_workfront_context(page):
    """Page when on the Workfront host, the live frame if present, else a frame locator."""
    if is_workfront_host(page.url):
        logger.info("Using page directly (Workfront host)")
        return page
    frame = find_workfront_frame(page)
    if frame is not None:
        logger.info("Using Workfront frame inside the experience shell")
        return frame
    logger.warning("Workfront frame not found, falling back to frame locator")
    return frame_locator(page)


def check_authenticated(page):
    if is_login_url(page.url):
        raise SessionExpiredError(page.url)


async def wait_for_workfront_frame(page, timeout_ms: int = 15000, settings: Optional[Settings] = None, manager=None):
    """
    Poll for the live Workfront frame, once per second.

    On the fifth poll, if the shell is still showing and a direct host is
    configured, navigate straight to the documents URL once.
    """
    settings = settings or get_settings()
    if is_workfront_host(page.url):
        return page

    attempts = max(1, timeout_ms // 1000)
    direct_tried = False
    for attempt in range(1, attempts + 1):
        check_authenticated(page)
        frame = find_workfront_frame(page)
        if frame is not None:
            cookies = await page.context.cookies()
            if not any(c.get("name") == "wf-auth" for c in cookies):
                logger.warning("wf-auth cookie missing; session may be partial, consider logging in again")
            logger.info(f"Workfront frame found: {frame.url}")
            return frame

        if is_workfront_host(page.url):
            return page

        if not direct_tried and attempt == 5 and "experience.adobe.com" in page.url:
            direct_tried = True
            direct_url = direct_documents_url(page.url, settings)
            if direct_url:
                logger.warning(f"Frame still missing, trying direct navigation: {direct_url}")
                try:
                    await page.goto(direct_url, wait_until="domcontentloaded", timeout=30000)
                    continue
                except Exception as e:
                    logger.error(f"Direct navigation failed: {e}")

        await page.wait_for_timeout(1000)

    if manager is not None:
        await manager.capture_debug_screenshot(page, "no-workfront-frame", "Workfront frame not found")
    raise FrameNotFoundError(f"Workfront frame not found after {timeout_ms}ms")


async def close_sidebar_if_open(scope, page):
    try:
        sidebar = scope.locator(SIDEBAR_SELECTOR).first
        if await is_present(sidebar):
            close_btn = scope.locator(SIDEBAR_CLOSE_SELECTOR).first
            if (await close_btn.count()) > 0:
                await close_btn.click()
                await page.wait_for_timeout(600)
    except Exception as e:
        logger.debug(f"Sidebar close skipped: {e}")


# ==================== Folders ====================

def folder_selectors(folder: str) -> List[str]:
    quoted = css_text(folder)
    numbered = [f'button:has-text({css_text(f"{n}. {folder}")})' for n in FOLDER_NUMBER_PREFIXES]
    return numbered + [
        f"button:has-text({quoted})",
        f"a:has-text({quoted})",
        f'[role="button"]:has-text({quoted})',
        f'*[data-testid*="item"]:has-text({quoted})',
    ]


def folder_fallback_selectors(folder: str) -> List[str]:
    normalized = folder.lower().replace("'", "")
    return [
        f"text={css_text(folder)}",
        f"text=/^{re.escape(folder)}$/i",
        "xpath=//div[contains(@class,'folder')]"
        f"[contains(translate(.,'ABCDEFGHIJKLMNOPQRSTUVWXYZ','abcdefghijklmnopqrstuvwxyz'),'{normalized}')]",
        f'[data-testid*="folder"]:has-text({css_text(folder)})',
    ]


async def navigate_to_folder(scope, page, folder: str, settings: Optional[Settings] = None) -> Optional[str]:
    """
    Open a document folder by name, scrolling between rounds so lazily
    rendered folders get a chance to appear. ``root`` means stay put.
    """
    if not folder or folder == "root":
        return None
    settings = settings or get_settings()
    selectors = folder_selectors(folder)
    attempts = settings.folder_attempts

    async def open_once(attempt: int) -> Optional[str]:
        used = await click_first(scope, page, selectors, settle_ms=1200)
        if used:
            logger.info(f"Opened folder '{folder}' via {used} (attempt {attempt})")
            return used
        await scroll_by(scope, 400)
        return None

    used = await retry(attempts, settings.folder_delay_ms, open_once, page, description=f"folder '{folder}'")
    if used is None:
        raise FolderNotFoundError(folder, selectors, attempts)
    return used


async def navigate_to_folder_robust(scope, page, folder: str, settings: Optional[Settings] = None) -> Optional[str]:
    """navigate_to_folder, then a looser set of text/XPath strategies."""
    try:
        await scope.locator('[data-testid="add-new"], button[class*="add"]').first.wait_for(timeout=5000)
    except Exception:
        logger.warning("Add new button not visible before folder navigation")

    try:
        return await navigate_to_folder(scope, page, folder, settings)
    except FolderNotFoundError:
        logger.info(f"Using fallback strategies for folder '{folder}'")

    selectors = folder_fallback_selectors(folder)
    found = await first_visible(scope, selectors)
    if found:
        selector, locator = found
        await locator.click(delay=50)
        await page.wait_for_timeout(1000)
        logger.info(f"Opened folder '{folder}' via fallback {selector}")
        return selector
    raise FolderNotFoundError(folder, folder_selectors(folder) + selectors)


# ==================== Documents ====================

FIND_DOCUMENTS_SCRIPT = """
(body, target) => {
    const out = [];
    body.querySelectorAll('.doc-detail-view').forEach((el, i) => {
        const aria = el.getAttribute('aria-label') || '';
        const txt = (el.textContent || '').toLowerCase();
        if (aria.includes(target) || txt.includes(target.toLowerCase())) {
            out.push({ index: i, ariaLabel: aria, isVisible: el.offsetWidth > 0 && el.offsetHeight > 0 });
        }
    });
    return out;
}
"""


def pick_document_candidate(candidates: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Prefer a visible tile; otherwise the first match."""
    if not candidates:
        return None
    for candidate in candidates:
        if candidate.get("isVisible"):
            return candidate
    return candidates[0]


async def find_document_candidates(scope, file_name: str) -> List[Dict[str, Any]]:
    try:
        return await scope.locator("body").evaluate(FIND_DOCUMENTS_SCRIPT, file_name) or []
    except Exception as e:
        logger.debug(f"Document scan failed: {e}")
        return []


async def select_document(scope, page, file_name: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Click the document tile whose aria-label or text mentions ``file_name``."""
    settings = settings or get_settings()
    await close_sidebar_if_open(scope, page)
    attempts = settings.doc_attempts

    async def select_once(attempt: int) -> Optional[Dict[str, Any]]:
        target = pick_document_candidate(await find_document_candidates(scope, file_name))
        if target is not None:
            try:
                if target.get("ariaLabel"):
                    await scope.locator(f"[aria-label={css_text(target['ariaLabel'])}]").first.click()
                else:
                    index = int(target.get("index") or 0) + 1
                    await scope.locator(f"{DOCUMENT_TILE_SELECTOR}:nth-of-type({index})").click()
                await page.wait_for_timeout(600)
                logger.info(f"Selected document '{file_name}' (attempt {attempt})")
                return target
            except Exception as e:
                logger.debug(f"Click on document '{file_name}' failed: {e}")
        if attempt < attempts:
            await scroll_by(scope, 500)
        return None

    target = await retry(attempts, settings.doc_delay_ms, select_once, page, description=f"document '{file_name}'")
    if target is None:
        raise DocumentNotFoundError(file_name, attempts)
    return target


async def open_project(page, project_url: str, settle_ms: int = 3000):
    """Go to a project page and return the scope that holds Workfront's UI."""
    await page.goto(project_url, wait_until="domcontentloaded")
    await page.wait_for_timeout(settle_ms)
    check_authenticated(page)
    try:
        await page.wait_for_selector('iframe[src*="workfront"], iframe[src*="experience"]', timeout=10000)
    except Exception:
        logger.debug("Workfront iframe selector not seen; page may be on the direct host")
    scope = resolve_workfront_context(page)
    await close_sidebar_if_open(scope, page)
    return scope
