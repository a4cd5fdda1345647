"""
Timeline runner: executes a workflow's steps in order against one project,
sharing a single browser session between them when it can be opened.
"""
import time
from contextlib import AsyncExitStack
from typing import Callable, Optional, Tuple

from pydantic import ValidationError

from ..automation.comment import CommentAutomation
from ..automation.hours import HoursAutomation
from ..automation.share import ShareAutomation, ShareSelection
from ..automation.status import StatusAutomation
from ..automation.upload import UploadAutomation
from ..browser.dom import (
    check_authenticated,
    close_sidebar_if_open,
    direct_documents_url,
    resolve_workfront_context,
)
from ..browser.locators import sleep_ms
from ..browser.manager import BrowserManager, browser_session, workfront_session_config
from ..config import Settings, get_settings
from ..logging_config import get_logger, log_context
from ..teams import TeamDirectory
from .jobs import UploadJobStore
from .models import (
    StepResult,
    TimelineConfig,
    WorkflowAction,
    WorkflowRunResult,
    WorkflowStep,
)
from .progress import ProgressBus
from .schemas import CommentParams, HoursParams, ShareParams, StatusParams, UploadParams

logger = get_logger("wfpilot.timeline")

PARAM_MODELS = {
    WorkflowAction.SHARE: ShareParams,
    WorkflowAction.UPLOAD: UploadParams,
    WorkflowAction.COMMENT: CommentParams,
    WorkflowAction.STATUS: StatusParams,
    WorkflowAction.HOURS: HoursParams,
}
WAITS_FOR_UPLOAD = (WorkflowAction.SHARE, WorkflowAction.COMMENT)

WORKFRONT_READY_SELECTOR = '[data-testid="add-new"], button[class*="add"], #add-new-button'
INTERFACE_CHECK_SCRIPT = """
() => ({
    hasAddButton: !!document.querySelector('[data-testid="add-new"], button[class*="add-new"]'),
    hasTables: document.querySelectorAll('table, [class*="table"]').length > 0
})
"""


def validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "params"
        parts.append(f"{location}: {item.get('msg')}")
    return "Invalid parameters: " + "; ".join(parts)


class TimelineRunner:
    def __init__(
        self,
        progress: Optional[ProgressBus] = None,
        jobs: Optional[UploadJobStore] = None,
        settings: Optional[Settings] = None,
        manager: Optional[BrowserManager] = None,
        teams: Optional[TeamDirectory] = None,
        share: Optional[ShareAutomation] = None,
        comment: Optional[CommentAutomation] = None,
        status: Optional[StatusAutomation] = None,
        hours: Optional[HoursAutomation] = None,
        upload: Optional[UploadAutomation] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.progress = progress or ProgressBus()
        self._jobs = jobs
        self.settings = settings or get_settings()
        self.manager = manager
        common = {"settings": self.settings, "manager": manager}
        self.share = share or ShareAutomation(teams=teams, **common)
        self.comment = comment or CommentAutomation(teams=teams, **common)
        self.status = status or StatusAutomation(**common)
        self.hours = hours or HoursAutomation(**common)
        self.upload = upload or UploadAutomation(share=self.share, comment=self.comment, **common)
        self._clock = clock

    @property
    def jobs(self) -> UploadJobStore:
        if self._jobs is None:
            self._jobs = UploadJobStore(self.settings.jobs_file)
        return self._jobs

    # ==================== Run ====================

    async def execute(self, config: TimelineConfig) -> WorkflowRunResult:
        run = WorkflowRunResult(job_id=config.job_id or self._auto_create_job(config))
        run.summary.total = len(config.enabled_steps)
        headless = self.settings.resolve_headless(config.headless, allow_override=config.headless is not None)
        total = len(config.steps)
        url = config.project_url

        logger.info(f"Starting workflow on {url} ({total} steps)")
        plan = [
            {"action": s.action.value, "step_index": i}
            for i, s in enumerate(config.steps) if s.enabled
        ]
        await self.progress.publish(
            "plan", "Workflow plan computed", project_url=url, action="workflow",
            extra={"tasks": plan, "total_tasks": len(plan)},
        )

        upload_finished_at: Optional[float] = None
        upload_delay_ms = 0

        async with AsyncExitStack() as stack:
            stack.enter_context(log_context(job_id=run.job_id, project_url=url))
            page, scope = None, None
            if config.enabled_steps:
                page, scope = await self._open_shared_session(stack, url, headless)

            for index, step in enumerate(config.steps):
                if not step.enabled:
                    run.summary.skipped += 1
                    await self.progress.publish(
                        "skip", "Step skipped", project_url=url, action=step.action.value,
                        step_index=index, total_steps=total,
                    )
                    continue

                if upload_finished_at is not None and step.action in WAITS_FOR_UPLOAD:
                    elapsed_ms = int((self._clock() - upload_finished_at) * 1000)
                    remaining = upload_delay_ms - elapsed_ms
                    if remaining > 0:
                        await self.progress.publish(
                            "delay", f"Waiting {remaining}ms for uploads to settle", project_url=url,
                            action=step.action.value, step_index=index, total_steps=total,
                            extra={"remaining": remaining, "planned": upload_delay_ms},
                        )
                        await sleep_ms(page, remaining)

                await self.progress.publish(
                    "start", "Step started", project_url=url, action=step.action.value,
                    step_index=index, total_steps=total, extra={"params": step.params},
                )
                if step.action == WorkflowAction.UPLOAD and run.job_id:
                    self.jobs.mark_executing(run.job_id)

                started = self._clock()
                with log_context(step=step.action.value, step_index=index):
                    try:
                        success, message = await self._run_step(config, step, headless, page, scope)
                        error = None if success else message
                    except Exception as e:
                        logger.error(f"Step {step.action.value} raised: {e}")
                        success, message, error = False, None, str(e)
                duration_ms = int((self._clock() - started) * 1000)

                run.results.append(StepResult(
                    action=step.action, success=success, message=message, error=error, duration_ms=duration_ms,
                ))

                if success:
                    run.summary.successful += 1
                    await self.progress.publish(
                        "success", message or "Step finished", project_url=url, action=step.action.value,
                        step_index=index, total_steps=total, duration_ms=duration_ms,
                    )
                    if step.action == WorkflowAction.UPLOAD:
                        file_count = self._upload_file_count(step)
                        upload_finished_at = self._clock()
                        upload_delay_ms = self.settings.post_upload_delay_ms(file_count)
                        if run.job_id:
                            self.jobs.mark_completed(run.job_id, {"message": message, "file_count": file_count})
                        await self.progress.publish(
                            "info", "Upload finished, later steps wait for it to settle", project_url=url,
                            action=step.action.value, step_index=index, total_steps=total,
                            extra={"file_count": file_count, "planned_delay": upload_delay_ms},
                        )
                    continue

                run.summary.failed += 1
                if step.action == WorkflowAction.UPLOAD and run.job_id:
                    self.jobs.mark_failed(run.job_id, error)
                await self.progress.publish(
                    "error", error or "Step failed", project_url=url, action=step.action.value,
                    step_index=index, total_steps=total, duration_ms=duration_ms,
                )
                if config.stop_on_error:
                    logger.warning("Stopping workflow after failed step")
                    await self.progress.publish(
                        "error", "Workflow stopped after error", project_url=url, action="workflow",
                        step_index=index, total_steps=total,
                    )
                    break

        logger.info_with("Workflow finished", **run.summary.to_dict())
        await self.progress.publish(
            "success", "Workflow finished", project_url=url, action="workflow",
            extra={"summary": run.summary.to_dict()},
        )
        return run

    def _auto_create_job(self, config: TimelineConfig) -> Optional[str]:
        if not config.user_id:
            return None
        step = next((s for s in config.enabled_steps if s.action == WorkflowAction.UPLOAD), None)
        if step is None:
            return None
        asset_zip = step.params.get("asset_zip_path")
        finals = step.params.get("final_material_paths") or []
        if not asset_zip and not finals:
            return None
        job = self.jobs.create(config.user_id, config.project_url, asset_zip=asset_zip, final_materials=finals)
        logger.info(f"Upload job {job.id} created for workflow")
        return job.id

    @staticmethod
    def _upload_file_count(step: WorkflowStep) -> int:
        asset = step.params.get("asset_zip_path")
        finals = step.params.get("final_material_paths") or []
        return (1 if asset and str(asset).strip() else 0) + len(finals)

    # ==================== Shared Session ====================

    async def _open_shared_session(self, stack: AsyncExitStack, project_url: str, headless: bool):
        """Open the session every step shares; ``(None, None)`` when setup fails."""
        try:
            config = workfront_session_config(headless)
            _, page = await stack.enter_async_context(
                browser_session(config, name="wfpilot workflow", manager=self.manager)
            )
            await self._navigate(page, project_url)
            try:
                await page.wait_for_selector(WORKFRONT_READY_SELECTOR, timeout=30000)
            except Exception:
                logger.warning("Workfront controls did not appear, continuing")
            check_authenticated(page)
            scope = resolve_workfront_context(page)
            await close_sidebar_if_open(scope, page)
            return page, scope
        except Exception as e:
            logger.error(f"Could not prepare shared session, steps will open their own: {e}")
            return None, None

    async def _navigate(self, page, project_url: str):
        direct = direct_documents_url(project_url, self.settings)
        if direct:
            logger.info(f"Opening Workfront directly: {direct}")
            try:
                await page.goto(direct, wait_until="networkidle", timeout=60000)
                await page.wait_for_timeout(5000)
                found = await page.evaluate(INTERFACE_CHECK_SCRIPT)
                if found.get("hasAddButton") or found.get("hasTables"):
                    return
                logger.warning("Direct Workfront page looks empty, using the project URL")
            except Exception as e:
                logger.warning(f"Direct navigation failed ({e}), using the project URL")
        await page.goto(project_url, wait_until="domcontentloaded", timeout=60000)
        await page.wait_for_timeout(5000)

    # ==================== Steps ====================

    async def _run_step(self, config: TimelineConfig, step: WorkflowStep, headless, page, scope) -> Tuple[bool, str]:
        try:
            params = PARAM_MODELS[step.action].model_validate(step.params)
        except ValidationError as e:
            return False, validation_message(e)

        in_session = page is not None and scope is not None
        handler = getattr(self, f"_run_{step.action.value}")
        return await handler(config.project_url, params, headless, page, scope, in_session)

    async def _run_share(self, url, params: ShareParams, headless, page, scope, in_session):
        selections = [ShareSelection(folder=s.folder, file_name=s.file_name) for s in params.selections]
        if in_session:
            batch = await self.share.share_in_session(page, scope, selections, params.team)
        else:
            batch = await self.share.share_documents(url, selections, params.team, headless=headless)
        return batch.success, f"{batch.success_count} ok / {batch.error_count} errors"

    async def _run_upload(self, url, params: UploadParams, headless, page, scope, in_session):
        if in_session:
            result = await self.upload.upload_in_session(
                page, scope, params.asset_zip_path, params.final_material_paths,
            )
            return result.success, result.message
        plan = await self.upload.execute_upload_plan(
            url, params.team, params.asset_zip_path, params.final_material_paths, headless=headless,
        )
        return plan.success, plan.message

    async def _run_comment(self, url, params: CommentParams, headless, page, scope, in_session):
        args = (params.folder, params.file_name, params.comment_type, params.team, params.mode, params.raw_html)
        if in_session:
            result = await self.comment.add_comment_in_session(page, scope, *args)
        else:
            result = await self.comment.add_comment(url, *args, headless=headless)
        return result.success, result.message

    async def _run_status(self, url, params: StatusParams, headless, page, scope, in_session):
        if in_session:
            result = await self.status.update_in_session(
                page, scope, url, params.status, params.max_attempts, params.retry_delay_ms,
            )
        else:
            result = await self.status.update_deliverable_status(url, params.status, headless=headless)
        return result.success, result.message

    async def _run_hours(self, url, params: HoursParams, headless, page, scope, in_session):
        if in_session:
            result = await self.hours.log_hours_in_session(
                page, scope, url, params.hours, params.note, params.task_name,
                params.max_attempts, params.retry_delay_ms,
            )
        else:
            result = await self.hours.log_hours(url, params.hours, params.note, params.task_name, headless=headless)
        return result.success, result.message
