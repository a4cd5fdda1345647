"""
Document sharing: open the share dialog for a document, add every member
of a team and give each the right permission.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..browser.dom import css_text, navigate_to_folder, select_document
from ..browser.locators import click_first, first_visible, is_present, press_escape
from ..logging_config import get_logger
from ..teams import PERMISSION_MANAGE, PERMISSION_VIEW, TeamDirectory, TeamMember, get_team_directory
from .base import Automation

logger = get_logger("wfpilot.automation.share")

SHARE_BUTTON_SELECTORS = [
    'button[data-testid="share"]',
    'button:has-text("Share")',
    'button:has-text("Compart")',
    '[aria-label*="Share"]',
]
SHARE_DIALOG_SELECTORS = ['[data-testid="unified-share-dialog"]', '[role="dialog"]']
STALE_DIALOG_CLOSE_SELECTOR = '[data-testid="unified-share-dialog"] button:has-text("Close")'
EMAIL_INPUT_SELECTORS = ['input[role="combobox"]', 'input[aria-autocomplete="list"]', 'input[type="text"]']
ROLE_BUTTON_SELECTORS = [
    'button:has-text("View")',
    'button:has-text("Manage")',
    'button[aria-expanded="false"]:has(svg)',
    'button[data-variant]',
]

PERMISSION_LABELS = {PERMISSION_MANAGE: "Manage", PERMISSION_VIEW: "View"}
SAVE_BUTTON_NAME = re.compile(r"save|share|send", re.IGNORECASE)


def access_row_selectors(email: str) -> List[str]:
    quoted = css_text(email)
    return [
        f'[data-testid="access-rule-row"]:has-text({quoted})',
        f'[data-testid="access-rule"]:has-text({quoted})',
        f".access-rule:has-text({quoted})",
        f"div:has-text({quoted})",
    ]


def permission_option_selectors(permission: str) -> List[str]:
    label = css_text(PERMISSION_LABELS[permission])
    data_key = "EDIT" if permission == PERMISSION_MANAGE else "VIEW"
    return [
        f'[role="menuitemradio"]:has-text({label})',
        f'[data-key="{data_key}"]',
        f'div[role="menuitemradio"] span:has-text({label})',
        f'[role="option"]:has-text({label})',
    ]


@dataclass
class ShareSelection:
    folder: str
    file_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareSelection":
        return cls(folder=data.get("folder") or "root", file_name=data.get("file_name") or data["fileName"])

    def to_dict(self) -> Dict[str, Any]:
        return {"folder": self.folder, "file_name": self.file_name}


@dataclass
class ShareItemResult:
    folder: str
    file_name: str
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folder": self.folder,
            "file_name": self.file_name,
            "success": self.success,
            "message": self.message,
            "error": self.error,
        }


@dataclass
class ShareBatchResult:
    results: List[ShareItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def error_count(self) -> int:
        return self.total - self.success_count

    @property
    def success(self) -> bool:
        return self.error_count == 0

    def summary(self) -> Dict[str, int]:
        return {"total": self.total, "success": self.success_count, "errors": self.error_count}

    def to_dict(self) -> Dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results], "summary": self.summary()}


def validate_share_inputs(project_url: str, selections: Sequence[ShareSelection]):
    if not project_url:
        raise ValueError("Project URL is required")
    if not selections:
        raise ValueError("At least one document selection is required")


class ShareAutomation(Automation):
    name = "share"

    def __init__(self, teams: Optional[TeamDirectory] = None, **kwargs):
        super().__init__(**kwargs)
        self._teams = teams

    @property
    def teams(self) -> TeamDirectory:
        return self._teams or get_team_directory()

    def team_members(self, team_key: str) -> List[TeamMember]:
        return self.teams.get(team_key).members

    # ==================== Entry Points ====================

    async def share_documents(
        self,
        project_url: str,
        selections: Sequence[ShareSelection],
        team_key: str,
        headless: Optional[bool] = None,
    ) -> ShareBatchResult:
        """Open the project once and share every selected document."""
        validate_share_inputs(project_url, selections)
        members = self.team_members(team_key)
        async with self.project_page(project_url, headless) as (page, scope):
            return await self._share_batch(page, scope, selections, members)

    async def share_in_session(
        self,
        page,
        scope,
        selections: Sequence[ShareSelection],
        team_key: str,
    ) -> ShareBatchResult:
        """Share documents using a page that is already on the project."""
        if not selections:
            raise ValueError("At least one document selection is required")
        return await self._share_batch(page, scope, selections, self.team_members(team_key))

    async def share_selected(self, page, scope, team_key: str):
        """Share the document that is currently selected."""
        await self.open_share_modal(scope, page, ensure_fresh=True)
        await self.add_users(scope, page, self.team_members(team_key))
        await self.save_share(scope, page)

    async def _share_batch(self, page, scope, selections, members) -> ShareBatchResult:
        batch = ShareBatchResult()
        current_folder = None
        for index, selection in enumerate(selections, start=1):
            logger.info(f"[{index}/{len(selections)}] Sharing {selection.file_name} (folder {selection.folder})")
            try:
                if selection.folder and selection.folder != "root" and selection.folder != current_folder:
                    await navigate_to_folder(scope, page, selection.folder, self.settings)
                    current_folder = selection.folder
                await select_document(scope, page, selection.file_name, self.settings)
                await self.open_share_modal(scope, page, ensure_fresh=True)
                await self.add_users(scope, page, members)
                await self.save_share(scope, page)
                batch.results.append(ShareItemResult(
                    folder=selection.folder, file_name=selection.file_name, success=True, message="Shared",
                ))
            except Exception as e:
                logger.error(f"Sharing {selection.file_name} failed: {e}")
                batch.results.append(ShareItemResult(
                    folder=selection.folder, file_name=selection.file_name, success=False, error=str(e),
                ))
            await page.wait_for_timeout(500)
        logger.info_with("Share batch finished", **batch.summary())
        return batch

    # ==================== Dialog Steps ====================

    async def verify_share_modal(self, scope) -> bool:
        return await first_visible(scope, SHARE_DIALOG_SELECTORS) is not None

    async def open_share_modal(self, scope, page, ensure_fresh: bool = False):
        if ensure_fresh:
            stale = scope.locator(STALE_DIALOG_CLOSE_SELECTOR).first
            if await is_present(stale):
                try:
                    await stale.click()
                    await page.wait_for_timeout(500)
                except Exception as e:
                    logger.debug(f"Could not close stale share dialog: {e}")

        for selector in SHARE_BUTTON_SELECTORS:
            used = await click_first(scope, page, [selector], settle_ms=2000)
            if used and await self.verify_share_modal(scope):
                logger.debug(f"Share dialog opened via {used}")
                return
        raise RuntimeError("Share dialog did not open")

    async def add_users(self, scope, page, members: Sequence[TeamMember]) -> List[str]:
        """Add each member to the share list; returns the emails that were added."""
        found = await first_visible(scope, EMAIL_INPUT_SELECTORS)
        if not found:
            raise RuntimeError("Share email field not found")
        _, email_input = found

        added = []
        for member in members:
            try:
                await email_input.click()
                await email_input.fill("")
                await email_input.fill(member.email)
                await page.wait_for_timeout(600)
                option = scope.locator(f'[role="option"]:has-text({css_text(member.email)})').first
                if (await option.count()) > 0:
                    await option.click()
                else:
                    await email_input.press("Enter")
                await page.wait_for_timeout(250)
                await self.set_user_permission(scope, page, member.email, member.role)
                added.append(member.email)
            except Exception as e:
                logger.warning(f"Could not add {member.email} to share: {e}")
        return added

    async def set_user_permission(self, scope, page, email: str, permission: str, attempts: int = 3) -> bool:
        for attempt in range(1, attempts + 1):
            if await self._set_user_permission_once(scope, page, email, permission):
                logger.info(f"Permission {permission} applied for {email} (attempt {attempt})")
                return True
            logger.warning(f"Could not apply {permission} for {email} (attempt {attempt})")
            await page.wait_for_timeout(300)
        return False

    async def _set_user_permission_once(self, scope, page, email: str, permission: str) -> bool:
        try:
            await page.wait_for_timeout(300)
            row = await first_visible(scope, access_row_selectors(email))
            if not row:
                return False
            button = await first_visible(row[1], ROLE_BUTTON_SELECTORS)
            if not button:
                return False
            _, role_button = button

            current = (await role_button.text_content()) or ""
            wanted = PERMISSION_LABELS[permission]
            if wanted in current:
                return True

            await role_button.click()
            await page.wait_for_timeout(300)
            option = await first_visible(scope, permission_option_selectors(permission))
            if option:
                await option[1].click()
                await press_escape(page)
                await page.wait_for_timeout(200)
                return True
            await press_escape(page)
            return False
        except Exception as e:
            logger.debug(f"Permission change for {email} failed: {e}")
            await press_escape(page)
            return False

    async def save_share(self, scope, page):
        button = scope.get_by_role("button", name=SAVE_BUTTON_NAME).first
        if (await button.count()) > 0:
            await button.click()
            await page.wait_for_timeout(1200)
