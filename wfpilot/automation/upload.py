"""
Upload plans: an asset ZIP into "Asset Release" and final materials into
"Final Materials", each file shared after upload and the last PDF
commented.

Files produced by the staging step are named ``<digits>_<id>__<original>``;
they are copied under their original name before upload so Workfront shows
the name people expect.
"""
import os
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..browser.dom import (
    css_text,
    navigate_to_folder,
    navigate_to_folder_robust,
    select_document,
    wait_for_workfront_frame,
)
from ..browser.locators import first_present, first_visible
from ..browser.manager import browser_manager
from ..errors import ElementNotFoundError, FrameNotFoundError
from ..logging_config import get_logger
from ..teams import CommentType
from .base import ActionResult, Automation
from .comment import CommentAutomation
from .share import ShareAutomation

logger = get_logger("wfpilot.automation.upload")

ASSET_RELEASE_FOLDER = "Asset Release"
FINAL_MATERIALS_FOLDER = "Final Materials"

KIND_ASSET_RELEASE = "asset-release"
KIND_FINAL_MATERIALS = "final-materials"

# One weight unit is this many seconds of upload time.
BASE_SECONDS = 30
EXTENSION_WEIGHTS = {
    ".mp4": 5,
    ".mov": 5,
    ".mkv": 5,
    ".zip": 3,
    ".pdf": 1,
    ".png": 0.7,
    ".jpg": 0.7,
    ".jpeg": 0.7,
    ".webp": 0.7,
    ".gif": 0.7,
}

STAGED_NAME = re.compile(r"^[0-9]+_[a-z0-9]+__(.+)$")

ADD_NEW_SELECTORS = [
    'button[data-testid="add-new"]',
    "#add-new-button",
    "#doc-central-add-new-dropdown-react-container button.add-new-react-button",
    "button.add-new-react-button",
    'button:has-text("Add new")',
]
DOCUMENT_OPTION_SELECTORS = [
    'li[data-test-id="upload-file"]',
    "li.select-files-button",
    'li:has-text("Document")',
    '[role="menuitem"]:has-text("Document")',
]


def original_file_name(path: str) -> str:
    """Strip the staging prefix from a file name, if present."""
    base = os.path.basename(path)
    match = STAGED_NAME.match(base)
    return match.group(1) if match else base


def is_pdf(path: str) -> bool:
    return path.lower().endswith(".pdf")


def split_final_materials(paths: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Return ``(others, pdfs)`` preserving input order; others upload first."""
    others = [p for p in paths if not is_pdf(p)]
    pdfs = [p for p in paths if is_pdf(p)]
    return others, pdfs


@dataclass
class FileEstimate:
    seconds: int
    cumulative: int

    def to_dict(self) -> Dict[str, int]:
        return {"seconds": self.seconds, "cumulative": self.cumulative}


@dataclass
class UploadEstimate:
    per_file: Dict[str, FileEstimate] = field(default_factory=dict)
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"per_file": {k: v.to_dict() for k, v in self.per_file.items()}, "total": self.total}


def compute_upload_estimates(paths: Sequence[str]) -> UploadEstimate:
    estimate = UploadEstimate()
    for path in paths:
        base = os.path.basename(path)
        weight = EXTENSION_WEIGHTS.get(os.path.splitext(base)[1].lower(), 1)
        seconds = int(round(weight * BASE_SECONDS))
        estimate.total += seconds
        estimate.per_file[base] = FileEstimate(seconds=seconds, cumulative=estimate.total)
    return estimate


def format_seconds(total: int) -> str:
    """``3723`` -> ``1h 2m 3s``; zero hours and minutes are left out."""
    hours, rest = divmod(int(total), 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


@dataclass
class UploadItemResult:
    kind: str
    file_name: str
    upload_success: bool = False
    share_success: bool = False
    comment_success: bool = False
    message: Optional[str] = None
    error: Optional[str] = None
    estimated_upload_seconds: Optional[int] = None
    cumulative_estimated_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "file_name": self.file_name,
            "upload_success": self.upload_success,
            "share_success": self.share_success,
            "comment_success": self.comment_success,
            "message": self.message,
            "error": self.error,
            "estimated_upload_seconds": self.estimated_upload_seconds,
            "cumulative_estimated_seconds": self.cumulative_estimated_seconds,
        }


@dataclass
class UploadPlanResult:
    results: List[UploadItemResult] = field(default_factory=list)
    errors: int = 0
    estimated_total_seconds: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.errors == 0

    def summary(self) -> Dict[str, int]:
        return {
            "total_files": len(self.results),
            "upload_successes": sum(1 for r in self.results if r.upload_success),
            "share_successes": sum(1 for r in self.results if r.share_success),
            "comment_successes": sum(1 for r in self.results if r.comment_success),
            "errors": self.errors,
            "estimated_total_seconds": self.estimated_total_seconds,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary(),
        }


class UploadAutomation(Automation):
    name = "upload"
    lean_session = True

    def __init__(
        self,
        share: Optional[ShareAutomation] = None,
        comment: Optional[CommentAutomation] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.share = share or ShareAutomation(settings=self._settings, manager=self.manager)
        self.comment = comment or CommentAutomation(settings=self._settings, manager=self.manager)

    # ==================== Standalone Plan ====================

    async def execute_upload_plan(
        self,
        project_url: str,
        team_key: str,
        asset_zip_path: Optional[str],
        final_material_paths: Sequence[str],
        headless: Optional[bool] = None,
    ) -> UploadPlanResult:
        if not project_url:
            raise ValueError("Project URL is required")
        if not asset_zip_path and not final_material_paths:
            raise ValueError("Nothing to upload")

        others, pdfs = split_final_materials(final_material_paths)
        assets = [asset_zip_path] if asset_zip_path else []
        estimate = compute_upload_estimates(assets + others + pdfs)
        logger.info(f"Estimated upload time: {format_seconds(estimate.total)} ({estimate.total}s)")

        plan = UploadPlanResult(estimated_total_seconds=estimate.total)
        try:
            async with self.project_page(project_url, headless) as (page, scope):
                if asset_zip_path:
                    await navigate_to_folder(scope, page, ASSET_RELEASE_FOLDER, self.settings)
                    await self._upload_and_share(
                        page, scope, plan, estimate, KIND_ASSET_RELEASE, asset_zip_path, team_key,
                    )
                else:
                    logger.info("No asset ZIP given, skipping Asset Release")

                if final_material_paths:
                    await navigate_to_folder(scope, page, FINAL_MATERIALS_FOLDER, self.settings)
                    for path in others + pdfs:
                        await self._upload_and_share(
                            page, scope, plan, estimate, KIND_FINAL_MATERIALS, path, team_key,
                        )
                        if is_pdf(path):
                            await page.wait_for_timeout(1500)

                if pdfs:
                    await self._comment_last_pdf(page, scope, plan, pdfs[-1], team_key)
        except Exception as e:
            logger.error(f"Upload plan failed: {e}")
            plan.errors += 1
            plan.message = str(e)
            return plan

        plan.message = "Upload and share complete" if plan.success else "Upload and share finished with errors"
        logger.info_with("Upload plan finished", **plan.summary())
        return plan

    async def _upload_and_share(self, page, scope, plan, estimate, kind, path, team_key):
        base = os.path.basename(path)
        file_estimate = estimate.per_file.get(base)
        item = UploadItemResult(
            kind=kind,
            file_name=base,
            estimated_upload_seconds=file_estimate.seconds if file_estimate else None,
            cumulative_estimated_seconds=file_estimate.cumulative if file_estimate else None,
        )
        plan.results.append(item)

        try:
            await self.upload_files(scope, page, [path], settle_ms=3500)
            item.upload_success = True
        except Exception as e:
            logger.error(f"Upload of {base} failed: {e}")
            item.error = str(e)
            plan.errors += 1
            return

        try:
            await select_document(scope, page, original_file_name(path), self.settings)
            await self.share.share_selected(page, scope, team_key)
            item.share_success = True
        except Exception as e:
            logger.warning(f"Share after upload failed for {base}: {e}")

    async def _comment_last_pdf(self, page, scope, plan, pdf_path, team_key):
        base = os.path.basename(pdf_path)
        item = next((r for r in plan.results if r.kind == KIND_FINAL_MATERIALS and r.file_name == base), None)
        try:
            result = await self.comment.add_comment_in_session(
                page, scope, "root", original_file_name(pdf_path), CommentType.FINAL_MATERIALS, team_key,
            )
            if item:
                item.comment_success = result.success
                item.message = result.message
            if not result.success:
                plan.errors += 1
        except Exception as e:
            logger.warning(f"Final materials comment failed: {e}")
            if item:
                item.error = str(e)
            plan.errors += 1

    # ==================== Shared Session ====================

    async def upload_in_session(
        self,
        page,
        scope,
        asset_zip_path: Optional[str],
        final_material_paths: Sequence[str],
    ) -> ActionResult:
        """Upload into an open project: non-PDFs through one chooser, PDFs one by one."""
        if not asset_zip_path and not final_material_paths:
            return ActionResult.failed("No files to upload")

        others, pdfs = split_final_materials(final_material_paths)
        uploaded = 0
        try:
            scope = await self._live_scope(page, scope)
            if asset_zip_path:
                await navigate_to_folder_robust(scope, page, ASSET_RELEASE_FOLDER, self.settings)
                await self.upload_files(scope, page, [asset_zip_path], settle_ms=self._robust_wait(1))
                uploaded += 1
            if others or pdfs:
                await navigate_to_folder_robust(scope, page, FINAL_MATERIALS_FOLDER, self.settings)
            if others:
                await self.upload_files(scope, page, others, settle_ms=self._robust_wait(len(others)))
                uploaded += len(others)
            for pdf in pdfs:
                await self.upload_files(scope, page, [pdf], settle_ms=self._robust_wait(1))
                uploaded += 1
                if not await self.verify_uploaded(scope, original_file_name(pdf)):
                    logger.warning(f"{original_file_name(pdf)} not visible yet after upload")
        except Exception as e:
            logger.error(f"In-session upload failed: {e}")
            return ActionResult.failed(str(e), uploaded=uploaded)
        return ActionResult(
            success=True,
            message=f"Uploaded {uploaded} file(s) in shared session",
            details={"uploaded": uploaded},
        )

    async def _live_scope(self, page, scope):
        """The live Workfront frame once it has loaded; the given scope if it never shows."""
        try:
            return await wait_for_workfront_frame(page, settings=self.settings, manager=self.manager or browser_manager)
        except FrameNotFoundError as e:
            logger.warning(f"{e}, uploading through the current scope")
            return scope

    @staticmethod
    def _robust_wait(file_count: int) -> int:
        return max(5000, file_count * 3000)

    # ==================== Dialog Mechanics ====================

    def stage_file(self, path: str) -> str:
        """Return a path whose basename is the original file name."""
        if not Path(path).exists():
            raise FileNotFoundError(f"File not found: {path}")
        original = original_file_name(path)
        if os.path.basename(path) == original:
            return path
        tmp_dir = self.settings.upload_tmp_dir
        tmp_dir.mkdir(parents=True, exist_ok=True)
        target = tmp_dir / original
        if target.exists():
            target.unlink()
        shutil.copyfile(path, target)
        logger.debug(f"Staged {path} as {target}")
        return str(target)

    async def open_add_new(self, scope, page):
        found = await first_visible(scope, ADD_NEW_SELECTORS)
        if not found:
            await (self.manager or browser_manager).capture_debug_screenshot(page, "no-add-new", "Add new not found")
            raise ElementNotFoundError("Add new button", ADD_NEW_SELECTORS)
        selector, button = found
        await button.click(delay=30)
        await page.wait_for_timeout(400)
        logger.debug(f"Add new opened via {selector}")

    async def upload_files(self, scope, page, paths: Sequence[str], settle_ms: int = 3500):
        """Pick files through Add new > Document and wait for processing."""
        upload_paths = [self.stage_file(p) for p in paths]
        await self.open_add_new(scope, page)

        found = await first_visible(scope, DOCUMENT_OPTION_SELECTORS)
        if not found:
            raise ElementNotFoundError("Document upload option", DOCUMENT_OPTION_SELECTORS)
        _, option = found
        async with page.expect_file_chooser(timeout=10000) as chooser_info:
            await option.click()
        chooser = await chooser_info.value
        await chooser.set_files(upload_paths)
        logger.info(f"Sent {len(upload_paths)} file(s), waiting {settle_ms}ms for processing")
        await page.wait_for_timeout(settle_ms)

    async def verify_uploaded(self, scope, file_name: str) -> bool:
        """True when a tile for the file is in the DOM, even below the fold."""
        quoted = css_text(file_name)
        selectors = [f"text={quoted}", f"[aria-label*={quoted}]", f".doc-detail-view:has-text({quoted})"]
        return await first_present(scope, selectors) is not None
