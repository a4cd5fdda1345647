"""
Document comments with @mentions for a team.
"""
from typing import Optional

from ..browser.dom import css_text, navigate_to_folder, select_document
from ..browser.locators import first_visible, force_click, is_present
from ..logging_config import get_logger
from ..teams import CommentDraft, TeamDirectory, build_comment, get_team_directory
from .base import ActionResult, Automation

logger = get_logger("wfpilot.automation.comment")

MODE_PLAIN = "plain"
MODE_RAW = "raw"
COMMENT_MODES = (MODE_PLAIN, MODE_RAW)

SUMMARY_BUTTON_SELECTOR = 'button[data-testid="open-summary"]'
SUMMARY_PANEL_SELECTORS = [
    "#page-sidebar",
    ".wf-mfe_project",
    '[data-testid*="summary"]',
]
COMMENT_FIELD_SELECTORS = [
    'input[data-omega-element="add-comment-input"]',
    'input[aria-label="Add comment"]',
    'input[name="comment"]',
    'label:has-text("New comment") + div input',
    'label:has-text("Add comment") + div input',
    '.react-spectrum-RichTextEditor-input[contenteditable="true"]',
    'div[contenteditable="true"][data-lexical-editor="true"]',
    '[aria-label="New comment"]',
    '[aria-label*="comment" i]',
    '[placeholder*="comment" i]',
    'textarea[aria-label*="comment" i]',
    "#page-sidebar textarea",
    '#page-sidebar input[type="text"]',
]
SUBMIT_BUTTON_SELECTORS = [
    'button[data-omega-action="submit"]',
    'button[data-omega-element="submit"]',
    'button[data-variant="accent"]:has-text("Submit")',
    'button:has-text("Submit")',
]

FIELD_KIND_SCRIPT = "el => el.isContentEditable ? 'editable' : el.tagName.toLowerCase()"
INJECT_HTML_SCRIPT = """
(el, html) => {
    el.focus();
    el.innerHTML = html;
    el.dispatchEvent(new InputEvent('input', { bubbles: true }));
}
"""


class CommentAutomation(Automation):
    name = "comment"

    def __init__(self, teams: Optional[TeamDirectory] = None, **kwargs):
        super().__init__(**kwargs)
        self._teams = teams

    @property
    def teams(self) -> TeamDirectory:
        return self._teams or get_team_directory()

    def preview(self, comment_type: str, team_key: str) -> CommentDraft:
        return build_comment(comment_type, self.teams.get(team_key))

    async def add_comment(
        self,
        project_url: str,
        folder: str,
        file_name: str,
        comment_type: str,
        team_key: str,
        mode: str = MODE_PLAIN,
        raw_html: Optional[str] = None,
        headless: Optional[bool] = None,
    ) -> ActionResult:
        if not project_url:
            raise ValueError("Project URL is required")
        draft = self._draft(comment_type, team_key, mode, raw_html)
        async with self.project_page(project_url, headless) as (page, scope):
            return await self._comment(page, scope, folder, file_name, draft, mode, raw_html)

    async def add_comment_in_session(
        self,
        page,
        scope,
        folder: str,
        file_name: str,
        comment_type: str,
        team_key: str,
        mode: str = MODE_PLAIN,
        raw_html: Optional[str] = None,
    ) -> ActionResult:
        draft = self._draft(comment_type, team_key, mode, raw_html)
        return await self._comment(page, scope, folder, file_name, draft, mode, raw_html)

    def _draft(self, comment_type, team_key, mode, raw_html) -> CommentDraft:
        if mode not in COMMENT_MODES:
            raise ValueError(f"Unknown comment mode: {mode}")
        if mode == MODE_RAW and not raw_html:
            raise ValueError("raw_html is required when mode is 'raw'")
        return self.preview(comment_type, team_key)

    async def _comment(self, page, scope, folder, file_name, draft, mode, raw_html) -> ActionResult:
        if folder and folder != "root":
            await navigate_to_folder(scope, page, folder, self.settings)
        await select_document(scope, page, file_name, self.settings)
        await self.open_summary(scope, page)
        if mode == MODE_RAW:
            await self.inject_html(scope, page, raw_html)
        else:
            await self.type_comment(scope, page, draft)
        await self.submit(scope, page)
        logger.info_with("Comment added", file_name=file_name, comment_type=draft.comment_type.value)
        return ActionResult(
            success=True,
            message=f"Comment added to {file_name}",
            details={"comment": draft.to_dict(), "mode": mode},
        )

    # ==================== Panel and Field ====================

    async def comment_field_available(self, scope) -> bool:
        return await first_visible(scope, COMMENT_FIELD_SELECTORS) is not None

    async def open_summary(self, scope, page):
        """Open the document summary panel unless it already shows a comment field."""
        panel = await first_visible(scope, SUMMARY_PANEL_SELECTORS)
        if panel:
            await page.wait_for_timeout(1000)
            if await self.comment_field_available(scope):
                return
            logger.debug("Summary open without a comment field, reopening")

        button = scope.locator(SUMMARY_BUTTON_SELECTOR).first
        if (await button.count()) > 0:
            strategy = await force_click(button)
            logger.debug(f"Summary button clicked ({strategy})")
            await page.wait_for_timeout(3000)
        else:
            logger.warning("Summary button not found")
        await page.wait_for_timeout(2000)

    async def find_comment_field(self, scope):
        found = await first_visible(scope, COMMENT_FIELD_SELECTORS)
        if not found:
            raise RuntimeError("Comment field not found")
        selector, field = found
        logger.debug(f"Comment field via {selector}")
        return field

    async def type_comment(self, scope, page, draft: CommentDraft):
        field = await self.find_comment_field(scope)
        kind = await field.evaluate(FIELD_KIND_SCRIPT)
        await field.click()
        await page.wait_for_timeout(500)

        if kind != "editable":
            await field.fill("")
            await field.fill(draft.text)
            return

        await field.fill("")
        for index, name in enumerate(draft.mentions):
            await field.type("@")
            await page.wait_for_timeout(1000)
            await field.type(name)
            await page.wait_for_timeout(1000)
            option = scope.locator(f'[role="option"]:has-text({css_text(name)})').first
            if await is_present(option):
                await option.click()
            else:
                await page.keyboard.press("Enter")
            if index < len(draft.mentions) - 1:
                await field.type(" ")
            await page.wait_for_timeout(300)

        body = draft.body if draft.mentions else draft.text
        await field.type((", " if draft.mentions else "") + body)
        await page.wait_for_timeout(1000)

    async def inject_html(self, scope, page, html: str):
        field = await self.find_comment_field(scope)
        await field.evaluate(INJECT_HTML_SCRIPT, html)
        await page.wait_for_timeout(500)

    async def submit(self, scope, page):
        found = await first_visible(scope, SUBMIT_BUTTON_SELECTORS)
        if not found:
            raise RuntimeError("Comment submit button not found")
        await found[1].click()
        await page.wait_for_timeout(2000)
