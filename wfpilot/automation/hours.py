"""
Time logging on the project's Tasks grid.
"""
import re
from typing import Optional

from ..browser.dom import close_sidebar_if_open, css_text, ensure_tasks_url, resolve_workfront_context
from ..browser.locators import first_visible
from ..logging_config import get_logger
from .base import ActionResult, Automation

logger = get_logger("wfpilot.automation.hours")

HOURS_CELL_SELECTORS = [
    '[data-testid*="Actual Hours"]',
    '[data-testid*="Hours"]',
    '[aria-label*="Hours" i]',
    'div:has-text("Hours")',
]
EDIT_INPUT_SELECTORS = [
    'input[type="text"]:not([readonly])',
    'input[role="spinbutton"]',
    "input",
    '[contenteditable="true"]',
]
NOTE_SELECTORS = [
    'textarea[aria-label*="Note" i]',
    '[contenteditable="true"]:has-text("Add note")',
]
HOUR_TEXT = re.compile(r"hour", re.IGNORECASE)


def task_row_selectors(task_name: str):
    quoted = css_text(task_name)
    return [f'[role="row"]:has-text({quoted})', f"tr:has-text({quoted})", f"div:has-text({quoted})"]


def validate_hours(hours: float) -> Optional[str]:
    if hours is None or hours <= 0:
        return "Hours must be greater than 0"
    return None


class HoursAutomation(Automation):
    name = "hours"

    async def log_hours(
        self,
        project_url: str,
        hours: float,
        note: Optional[str] = None,
        task_name: Optional[str] = None,
        headless: Optional[bool] = None,
    ) -> ActionResult:
        error = validate_hours(hours)
        if error:
            return ActionResult.failed(error, hours=hours)

        logger.info(f"Logging {hours}h" + (f" on task {task_name}" if task_name else ""))
        async with self.project_page(ensure_tasks_url(project_url), headless, settle_ms=5000) as (page, scope):
            try:
                await self.fill_hours(scope, page, hours, note, task_name)
            except Exception as e:
                logger.error(f"Logging hours failed: {e}")
                return ActionResult.failed(str(e), hours=hours)
        return ActionResult(success=True, message=f"Logged {hours}h", details={"logged_hours": hours})

    async def log_hours_in_session(
        self,
        page,
        scope,
        project_url: str,
        hours: float,
        note: Optional[str] = None,
        task_name: Optional[str] = None,
        max_attempts: int = 3,
        retry_delay_ms: int = 2500,
    ) -> ActionResult:
        error = validate_hours(hours)
        if error:
            return ActionResult.failed(error, hours=hours)

        url = ensure_tasks_url(project_url)
        last_error = None
        for attempt in range(1, max_attempts + 1):
            try:
                if not page.url.startswith(url):
                    await page.goto(url, wait_until="domcontentloaded")
                    await page.wait_for_timeout(3000)
                    scope = resolve_workfront_context(page)
                await close_sidebar_if_open(scope, page)
                await self.fill_hours(scope, page, hours, note, task_name)
                return ActionResult(
                    success=True,
                    message=f"Logged {hours}h (shared session)",
                    details={"logged_hours": hours, "attempts": attempt},
                )
            except Exception as e:
                last_error = e
                logger.error(f"In-session hours attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts:
                    try:
                        await page.reload(wait_until="domcontentloaded")
                    except Exception as reload_error:
                        logger.debug(f"Reload failed: {reload_error}")
                    await page.wait_for_timeout(retry_delay_ms)
        return ActionResult.failed(f"{last_error} after {max_attempts} attempts", hours=hours)

    # ==================== Grid Steps ====================

    async def find_task_row(self, scope, task_name: Optional[str] = None):
        if task_name:
            found = await first_visible(scope, task_row_selectors(task_name))
            if found:
                return found[1]
        rows = scope.locator('[role="row"]')
        if (await rows.count()) > 1:
            # row 0 is the header
            return rows.nth(1)
        raise RuntimeError("Task row not found")

    async def find_hours_cell(self, row):
        found = await first_visible(row, HOURS_CELL_SELECTORS)
        if found:
            return found[1]
        cells = row.locator('[role="gridcell"]')
        for index in range(await cells.count()):
            cell = cells.nth(index)
            text = (await cell.text_content()) or ""
            if not text.strip() or HOUR_TEXT.search(text):
                return cell
        raise RuntimeError("Hours cell not found")

    async def fill_hours(self, scope, page, hours: float, note: Optional[str] = None, task_name: Optional[str] = None):
        row = await self.find_task_row(scope, task_name)
        cell = await self.find_hours_cell(row)
        await cell.click(force=True)
        await page.wait_for_timeout(800)

        found = await first_visible(scope, EDIT_INPUT_SELECTORS)
        if not found:
            raise RuntimeError("Hours input not found")
        _, hours_input = found
        await hours_input.click(force=True)
        await page.keyboard.press("Control+A")
        await page.keyboard.press("Delete")
        await hours_input.fill(str(hours))
        await page.wait_for_timeout(300)
        await page.keyboard.press("Enter")
        await page.wait_for_timeout(1200)

        if note:
            await self.add_note(scope, page, note)

    async def add_note(self, scope, page, note: str) -> bool:
        found = await first_visible(scope, NOTE_SELECTORS)
        if not found:
            logger.warning("Note field not found; hours logged without a note")
            return False
        _, field = found
        await field.click()
        await page.wait_for_timeout(150)
        try:
            await field.fill(note)
        except Exception:
            await page.keyboard.insert_text(note)
        await page.keyboard.press("Enter")
        await page.wait_for_timeout(400)
        return True
