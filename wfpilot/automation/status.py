"""
Deliverable status updates on the project overview's ``loc | Status`` field.
"""
from typing import Optional

from ..browser.dom import close_sidebar_if_open, css_text, ensure_overview_url, resolve_workfront_context
from ..logging_config import get_logger
from .base import ActionResult, Automation

logger = get_logger("wfpilot.automation.status")

ALLOWED_DELIVERABLE_STATUSES = (
    "Round 1 Review",
    "Round 2 Review",
    "Extra Round Review",
    "Delivered",
)

ACCORDION_BUTTON_SELECTOR = 'button[aria-controls*="accordion-"]:has-text("loc | Statuses")'
ACCORDION_HEADING_SELECTOR = 'h2:has-text("loc | Statuses")'
FIELD_VIEW_SELECTOR = '[data-testid="field-DE:Loc | Status"] [data-testid="view-component-wrapper"]'
FIELD_CONTENT_SELECTOR = '[data-testid="field-DE:Loc | Status-content"]'
FIELD_INPUT_SELECTOR = '[data-testid="DE:Loc | Status-input"]'
SAVE_CHANGES_SELECTOR = 'button[data-testid="save-changes-button"]'

IS_FOCUSED_SCRIPT = "el => document.activeElement === el"
SET_VALUE_SCRIPT = """
(el, value) => {
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}
"""


def validate_status(status: str) -> Optional[str]:
    """Return an error message for a status outside the allowed list."""
    if status in ALLOWED_DELIVERABLE_STATUSES:
        return None
    return f"Invalid status '{status}'. Allowed: {', '.join(ALLOWED_DELIVERABLE_STATUSES)}"


class StatusAutomation(Automation):
    name = "status"
    lean_session = True

    async def update_deliverable_status(
        self,
        project_url: str,
        status: str,
        max_attempts: int = 4,
        retry_delay_ms: int = 3500,
        headless: Optional[bool] = None,
    ) -> ActionResult:
        error = validate_status(status)
        if error:
            return ActionResult.failed(error, status=status)

        url = ensure_overview_url(project_url)
        logger.info(f"Setting deliverable status to '{status}'")
        async with self.project_page(url, headless, settle_ms=5500) as (page, scope):
            last_error = None
            for attempt in range(1, max_attempts + 1):
                try:
                    if attempt > 1:
                        await page.goto(url, wait_until="domcontentloaded")
                        await page.wait_for_timeout(5500)
                        scope = resolve_workfront_context(page)
                        await close_sidebar_if_open(scope, page)
                    confirmed = await self.apply_status(scope, page, status)
                    logger.info(f"Status set to '{status}' (attempt {attempt})")
                    return ActionResult(
                        success=True,
                        message=f"Deliverable status changed to '{status}'",
                        details={"status": status, "attempts": attempt, "confirmed": confirmed},
                    )
                except Exception as e:
                    last_error = e
                    logger.error(f"Status attempt {attempt}/{max_attempts} failed: {e}")
                    if attempt < max_attempts:
                        await self._reload(page, retry_delay_ms)
            return ActionResult.failed(f"{last_error} after {max_attempts} attempts", status=status)

    async def update_in_session(
        self,
        page,
        scope,
        project_url: str,
        status: str,
        max_attempts: int = 4,
        retry_delay_ms: int = 3000,
    ) -> ActionResult:
        error = validate_status(status)
        if error:
            return ActionResult.failed(error, status=status)

        url = ensure_overview_url(project_url)
        last_error = None
        for attempt in range(1, max_attempts + 1):
            try:
                if not page.url.startswith(url):
                    try:
                        await page.goto(url, wait_until="domcontentloaded")
                    except Exception as e:
                        logger.warning(f"Navigation to overview failed: {e}")
                    await page.wait_for_timeout(2500)
                    scope = resolve_workfront_context(page)
                await close_sidebar_if_open(scope, page)
                confirmed = await self.apply_status(scope, page, status)
                return ActionResult(
                    success=True,
                    message=f"Deliverable status changed to '{status}' (shared session)",
                    details={"status": status, "attempts": attempt, "confirmed": confirmed},
                )
            except Exception as e:
                last_error = e
                logger.error(f"In-session status attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts:
                    await self._reload(page, retry_delay_ms)
        return ActionResult.failed(f"{last_error} after {max_attempts} attempts", status=status)

    async def _reload(self, page, delay_ms: int):
        logger.info(f"Reloading and waiting {delay_ms}ms before retrying")
        try:
            await page.reload(wait_until="domcontentloaded")
        except Exception as e:
            logger.debug(f"Reload failed: {e}")
        await page.wait_for_timeout(delay_ms)

    # ==================== Field Steps ====================

    async def apply_status(self, scope, page, status: str) -> bool:
        """Write ``status`` into the field and save; returns whether the view confirms it."""
        await self.open_status_accordion(scope, page)
        field_input = await self.enter_edit_mode(scope, page)
        await self.ensure_focus(scope, page, field_input)

        try:
            await field_input.click(force=True)
            await field_input.fill("")
            await field_input.fill(status)
            await field_input.evaluate(SET_VALUE_SCRIPT, status)
            await page.wait_for_timeout(80)
        except Exception as e:
            logger.warning(f"Direct fill failed, typing instead: {e}")
            await page.keyboard.press("Control+A")
            await page.keyboard.press("Delete")
            await page.wait_for_timeout(60)
            await page.keyboard.insert_text(status)
            await page.wait_for_timeout(200)
        await page.keyboard.press("Escape")
        await page.wait_for_timeout(60)

        return await self.save_and_confirm(scope, page, status)

    async def open_status_accordion(self, scope, page):
        header = scope.locator(ACCORDION_BUTTON_SELECTOR).first
        if (await header.count()) > 0:
            if await header.get_attribute("aria-expanded") == "false":
                await header.click(force=True)
                await page.wait_for_timeout(1200)
            return
        heading = scope.locator(ACCORDION_HEADING_SELECTOR).first
        if (await heading.count()) > 0:
            await heading.click(force=True)
            await page.wait_for_timeout(1000)
        else:
            logger.warning("Statuses accordion not found; it may already be expanded")

    async def enter_edit_mode(self, scope, page):
        field_input = scope.locator(FIELD_INPUT_SELECTOR).first
        if (await field_input.count()) > 0:
            await field_input.click(force=True)
            await page.wait_for_timeout(150)
            return field_input

        for selector in (FIELD_VIEW_SELECTOR, FIELD_CONTENT_SELECTOR):
            wrapper = scope.locator(selector).first
            if (await wrapper.count()) > 0:
                await wrapper.click(force=True)
                await page.wait_for_timeout(800)
                break
        else:
            raise RuntimeError("Status field not found")

        try:
            await field_input.wait_for(timeout=4000)
        except Exception as e:
            raise RuntimeError("Status edit input did not appear") from e
        return field_input

    async def ensure_focus(self, scope, page, field_input):
        try:
            if not await field_input.evaluate(IS_FOCUSED_SCRIPT):
                await field_input.click(force=True)
                await page.wait_for_timeout(120)
            if not await field_input.evaluate(IS_FOCUSED_SCRIPT):
                wrapper = scope.locator(FIELD_VIEW_SELECTOR).first
                if (await wrapper.count()) > 0:
                    await wrapper.click(force=True)
                    await page.wait_for_timeout(350)
                    await field_input.click(force=True)
                    await page.wait_for_timeout(350)
            if not await field_input.evaluate(IS_FOCUSED_SCRIPT):
                logger.warning("Status input not focused; continuing")
        except Exception as e:
            logger.warning(f"Could not focus status input: {e}")

    async def save_and_confirm(self, scope, page, status: str) -> bool:
        save = scope.locator(SAVE_CHANGES_SELECTOR).first
        if (await save.count()) > 0 and await save.is_visible():
            await save.click()
            await page.wait_for_timeout(1800)
        else:
            logger.info("No Save Changes button; assuming auto-save")

        view = scope.locator(f"{FIELD_VIEW_SELECTOR} span:has-text({css_text(status)})").first
        confirmed = (await view.count()) > 0
        if not confirmed:
            logger.warning(f"Field view does not show '{status}' after saving")
        return confirmed
