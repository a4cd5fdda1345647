from contextlib import asynccontextmanager

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import FakeElement, FakePage, fake_project_page

from wfpilot.automation.base import ActionResult
from wfpilot.automation.comment import CommentAutomation, COMMENT_FIELD_SELECTORS, SUBMIT_BUTTON_SELECTORS
from wfpilot.automation.hours import (
    EDIT_INPUT_SELECTORS,
    HOURS_CELL_SELECTORS,
    NOTE_SELECTORS,
    HoursAutomation,
    task_row_selectors,
    validate_hours,
)
from wfpilot.automation.share import (
    EMAIL_INPUT_SELECTORS,
    ROLE_BUTTON_SELECTORS,
    SHARE_DIALOG_SELECTORS,
    STALE_DIALOG_CLOSE_SELECTOR,
    ShareAutomation,
    ShareSelection,
    access_row_selectors,
    permission_option_selectors,
    validate_share_inputs,
)
from wfpilot.automation.status import (
    ACCORDION_BUTTON_SELECTOR,
    FIELD_INPUT_SELECTOR,
    FIELD_VIEW_SELECTOR,
    IS_FOCUSED_SCRIPT,
    SAVE_CHANGES_SELECTOR,
    StatusAutomation,
    validate_status,
)
from wfpilot.teams import PERMISSION_MANAGE, PERMISSION_VIEW, TeamMember

PROJECT = "https://experience.adobe.com/#/@acme/workfront/project/64f1a2b3c4d5e6f7a8b9c0d1"


class TestActionResult:
    def test_failed(self):
        result = ActionResult.failed("Status field not found", status="Delivered")
        assert result.success is False
        assert result.error == "Status field not found"
        assert result.to_dict()["details"] == {"status": "Delivered"}


class TestProjectPage:
    @pytest.mark.parametrize("automation_cls,optimized", [
        (StatusAutomation, True),
        (ShareAutomation, False),
    ])
    @pytest.mark.asyncio
    async def test_session_profile(self, page, automation_cls, optimized):
        @asynccontextmanager
        async def opened(config, name=None, manager=None):
            yield MagicMock(id="s1"), page

        with patch("wfpilot.automation.base.workfront_session_config", return_value=MagicMock()) as profile, \
                patch("wfpilot.automation.base.browser_session", opened), \
                patch("wfpilot.automation.base.open_project", new=AsyncMock(return_value=page)):
            async with automation_cls().project_page(PROJECT, headless=False) as (p, scope):
                assert p is page
                assert scope is page

        profile.assert_called_once_with(False, optimized=optimized)


# ==================== Share ====================

class TestShareInputs:
    def test_selection_from_dict(self):
        assert ShareSelection.from_dict({"fileName": "a.pdf"}) == ShareSelection("root", "a.pdf")
        assert ShareSelection.from_dict({"folder": "Final Materials", "file_name": "b.pdf"}).folder == "Final Materials"

    def test_validate(self):
        with pytest.raises(ValueError):
            validate_share_inputs("", [ShareSelection("root", "a.pdf")])
        with pytest.raises(ValueError):
            validate_share_inputs(PROJECT, [])
        validate_share_inputs(PROJECT, [ShareSelection("root", "a.pdf")])

    def test_selectors(self):
        assert access_row_selectors("a@example.com")[0] == '[data-testid="access-rule-row"]:has-text("a@example.com")'
        assert '[data-key="EDIT"]' in permission_option_selectors(PERMISSION_MANAGE)
        assert '[data-key="VIEW"]' in permission_option_selectors(PERMISSION_VIEW)


class TestShareBatch:
    @pytest.fixture
    def automation(self, fast_settings):
        automation = ShareAutomation(settings=fast_settings)
        automation.open_share_modal = AsyncMock()
        automation.add_users = AsyncMock(return_value=["test.user@example.com"])
        automation.save_share = AsyncMock()
        return automation

    @pytest.mark.asyncio
    async def test_batch_continues_after_failure(self, automation, page):
        selections = [
            ShareSelection("Asset Release", "a.zip"),
            ShareSelection("Asset Release", "missing.zip"),
            ShareSelection("root", "c.pdf"),
        ]

        async def select(scope, page, file_name, settings):
            if file_name == "missing.zip":
                raise RuntimeError("Document not found")

        with patch("wfpilot.automation.share.navigate_to_folder", new=AsyncMock()) as navigate, \
                patch("wfpilot.automation.share.select_document", new=select):
            batch = await automation.share_in_session(page, page, selections, "test")

        navigate.assert_awaited_once()
        assert batch.summary() == {"total": 3, "success": 2, "errors": 1}
        assert batch.success is False
        assert batch.results[1].error == "Document not found"
        assert automation.save_share.await_count == 2

    @pytest.mark.asyncio
    async def test_share_documents_opens_project_once(self, automation, page):
        automation.project_page = fake_project_page(page)
        with patch("wfpilot.automation.share.navigate_to_folder", new=AsyncMock()), \
                patch("wfpilot.automation.share.select_document", new=AsyncMock()):
            batch = await automation.share_documents(
                PROJECT, [ShareSelection("root", "a.pdf"), ShareSelection("root", "b.pdf")], "test",
            )
        assert batch.success
        assert len(automation.project_page.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_team_rejected_before_browser(self, automation):
        automation.project_page = MagicMock()
        with pytest.raises(ValueError):
            await automation.share_documents(PROJECT, [ShareSelection("root", "a.pdf")], "nope")
        automation.project_page.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_in_session_rejected(self, automation, page):
        with pytest.raises(ValueError):
            await automation.share_in_session(page, page, [], "test")


class TestShareDialog:
    @pytest.mark.asyncio
    async def test_open_modal_closes_stale_dialog(self, page):
        stale = page.add(STALE_DIALOG_CLOSE_SELECTOR)
        page.add('button:has-text("Share")', on_click=lambda: page.add(SHARE_DIALOG_SELECTORS[0]))

        await ShareAutomation().open_share_modal(page, page, ensure_fresh=True)

        assert len(stale.clicks) == 1
        assert await ShareAutomation().verify_share_modal(page)

    @pytest.mark.asyncio
    async def test_open_modal_fails_without_dialog(self, page):
        page.add('button:has-text("Share")')
        with pytest.raises(RuntimeError):
            await ShareAutomation().open_share_modal(page, page)

    @pytest.mark.asyncio
    async def test_add_users(self, page):
        email_input = page.add(EMAIL_INPUT_SELECTORS[0])
        option = page.add('[role="option"]:has-text("ana@example.com")')
        automation = ShareAutomation()
        automation.set_user_permission = AsyncMock(return_value=True)
        members = [TeamMember("Ana", "ana@example.com"), TeamMember("Leo", "leo@example.com", role=PERMISSION_VIEW)]

        added = await automation.add_users(page, page, members)

        assert added == ["ana@example.com", "leo@example.com"]
        assert email_input.fills == ["", "ana@example.com", "", "leo@example.com"]
        assert len(option.clicks) == 1
        assert email_input.pressed == ["Enter"]
        automation.set_user_permission.assert_any_await(page, page, "leo@example.com", PERMISSION_VIEW)

    @pytest.mark.asyncio
    async def test_add_users_requires_email_field(self, page):
        with pytest.raises(RuntimeError):
            await ShareAutomation().add_users(page, page, [TeamMember("Ana", "ana@example.com")])

    @pytest.mark.asyncio
    async def test_permission_already_set(self, page):
        role_button = FakeElement(text="View")
        page.add(access_row_selectors("leo@example.com")[0], children={ROLE_BUTTON_SELECTORS[0]: [role_button]})

        assert await ShareAutomation().set_user_permission(page, page, "leo@example.com", PERMISSION_VIEW)
        assert role_button.clicks == []

    @pytest.mark.asyncio
    async def test_permission_changed_through_menu(self, page):
        role_button = FakeElement(text="View")
        page.add(access_row_selectors("ana@example.com")[0], children={ROLE_BUTTON_SELECTORS[0]: [role_button]})
        option = page.add(permission_option_selectors(PERMISSION_MANAGE)[0])

        assert await ShareAutomation().set_user_permission(page, page, "ana@example.com", PERMISSION_MANAGE)
        assert len(role_button.clicks) == 1
        assert len(option.clicks) == 1
        assert "Escape" in page.keyboard.pressed

    @pytest.mark.asyncio
    async def test_permission_gives_up(self, page):
        assert not await ShareAutomation().set_user_permission(page, page, "x@example.com", PERMISSION_MANAGE, attempts=2)

    @pytest.mark.asyncio
    async def test_save_share(self, page):
        button = page.add("role=button")
        await ShareAutomation().save_share(page, page)
        assert len(button.clicks) == 1


# ==================== Comment ====================

class TestComment:
    def test_preview(self):
        draft = CommentAutomation().preview("assetRelease", "test")
        assert draft.text == "@Test User, here is the folder with the final assets for this task."

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            CommentAutomation()._draft("assetRelease", "test", "markdown", None)
        with pytest.raises(ValueError):
            CommentAutomation()._draft("assetRelease", "test", "raw", None)

    @pytest.mark.asyncio
    async def test_type_into_plain_input(self, page):
        field = page.add(COMMENT_FIELD_SELECTORS[0], evaluate="input")
        automation = CommentAutomation()
        await automation.type_comment(page, page, automation.preview("finalMaterials", "test"))
        assert field.value == "@Test User, here are the final materials for this task."

    @pytest.mark.asyncio
    async def test_type_into_editor_with_mentions(self, page):
        field = page.add('div[contenteditable="true"][data-lexical-editor="true"]', evaluate="editable")
        option = page.add('[role="option"]:has-text("Test User")')
        automation = CommentAutomation()

        await automation.type_comment(page, page, automation.preview("assetRelease", "test"))

        assert field.typed == ["@", "Test User", ", here is the folder with the final assets for this task."]
        assert len(option.clicks) == 1

    @pytest.mark.asyncio
    async def test_add_comment_in_session_raw(self, page):
        field = page.add(COMMENT_FIELD_SELECTORS[0])
        submit = page.add(SUBMIT_BUTTON_SELECTORS[0])
        automation = CommentAutomation()
        automation.open_summary = AsyncMock()

        with patch("wfpilot.automation.comment.navigate_to_folder", new=AsyncMock()) as navigate, \
                patch("wfpilot.automation.comment.select_document", new=AsyncMock()) as select:
            result = await automation.add_comment_in_session(
                page, page, "root", "brief.pdf", "approval", "test", mode="raw", raw_html="<p>Hi</p>",
            )

        navigate.assert_not_called()
        select.assert_awaited_once()
        assert field.evaluations[0][1] == "<p>Hi</p>"
        assert len(submit.clicks) == 1
        assert result.success
        assert result.details["mode"] == "raw"
        assert result.details["comment"]["comment_type"] == "approval"

    @pytest.mark.asyncio
    async def test_add_comment_navigates_to_folder(self, page):
        automation = CommentAutomation()
        automation.project_page = fake_project_page(page)
        automation.open_summary = AsyncMock()
        automation.type_comment = AsyncMock()
        automation.submit = AsyncMock()

        with patch("wfpilot.automation.comment.navigate_to_folder", new=AsyncMock()) as navigate, \
                patch("wfpilot.automation.comment.select_document", new=AsyncMock()):
            result = await automation.add_comment(PROJECT, "Final Materials", "brief.pdf", "finalMaterials", "test")

        assert navigate.await_args.args[2] == "Final Materials"
        assert result.message == "Comment added to brief.pdf"

    @pytest.mark.asyncio
    async def test_submit_requires_button(self, page):
        with pytest.raises(RuntimeError):
            await CommentAutomation().submit(page, page)

    @pytest.mark.asyncio
    async def test_open_summary_uses_button(self, page):
        button = page.add('button[data-testid="open-summary"]', click_errors=1)
        await CommentAutomation().open_summary(page, page)
        assert button.clicks == [{}, {"force": True}]


# ==================== Status ====================

class TestStatus:
    def test_validate(self):
        assert validate_status("Delivered") is None
        assert "Allowed: Round 1 Review" in validate_status("Done")

    @pytest.mark.asyncio
    async def test_invalid_status_skips_browser(self):
        automation = StatusAutomation()
        automation.project_page = MagicMock()
        result = await automation.update_deliverable_status(PROJECT, "Done")
        assert result.success is False
        automation.project_page.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply_status(self, page):
        header = page.add(ACCORDION_BUTTON_SELECTOR, attrs={"aria-expanded": "false"})
        field_input = page.add(FIELD_INPUT_SELECTOR, evaluate=lambda script, arg: script == IS_FOCUSED_SCRIPT or None)
        save = page.add(SAVE_CHANGES_SELECTOR)
        page.add(f'{FIELD_VIEW_SELECTOR} span:has-text("Round 2 Review")')

        confirmed = await StatusAutomation().apply_status(page, page, "Round 2 Review")

        assert confirmed is True
        assert len(header.clicks) == 1
        assert field_input.value == "Round 2 Review"
        assert len(save.clicks) == 1
        assert "Escape" in page.keyboard.pressed

    @pytest.mark.asyncio
    async def test_enter_edit_mode_requires_field(self, page):
        with pytest.raises(RuntimeError):
            await StatusAutomation().enter_edit_mode(page, page)

    @pytest.mark.asyncio
    async def test_in_session_retries_after_reload(self):
        page = FakePage(url=PROJECT + "/overview")
        automation = StatusAutomation()
        automation.apply_status = AsyncMock(side_effect=[RuntimeError("Status field not found"), True])

        result = await automation.update_in_session(page, page, PROJECT, "Delivered", retry_delay_ms=1500)

        assert result.success
        assert result.details["attempts"] == 2
        assert page.reloads == 1
        assert 1500 in page.waits
        assert page.gotos == []

    @pytest.mark.asyncio
    async def test_in_session_gives_up(self):
        page = FakePage(url=PROJECT + "/overview")
        automation = StatusAutomation()
        automation.apply_status = AsyncMock(side_effect=RuntimeError("Status field not found"))

        result = await automation.update_in_session(page, page, PROJECT, "Delivered", max_attempts=2)

        assert result.success is False
        assert result.message == "Status field not found after 2 attempts"

    @pytest.mark.asyncio
    async def test_standalone_opens_overview(self, page):
        automation = StatusAutomation()
        automation.project_page = fake_project_page(page)
        automation.apply_status = AsyncMock(return_value=True)

        result = await automation.update_deliverable_status(PROJECT + "/tasks", "Delivered")

        assert result.success
        assert result.details["confirmed"] is True
        assert automation.project_page.calls[0]["project_url"] == PROJECT + "/overview"
        assert automation.project_page.calls[0]["settle_ms"] == 5500


# ==================== Hours ====================

class TestHours:
    def test_validate(self):
        assert validate_hours(0) is not None
        assert validate_hours(-1) is not None
        assert validate_hours(0.5) is None

    @pytest.mark.asyncio
    async def test_invalid_hours_skip_browser(self):
        automation = HoursAutomation()
        automation.project_page = MagicMock()
        result = await automation.log_hours(PROJECT, 0)
        assert result.success is False
        automation.project_page.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_task_row_by_name(self, page):
        row = page.add(task_row_selectors("Design")[0])
        found = await HoursAutomation().find_task_row(page, "Design")
        assert found.elements == [row]

    @pytest.mark.asyncio
    async def test_find_task_row_skips_header(self, page):
        page.add('[role="row"]', text="Header")
        body_row = page.add('[role="row"]', text="Design")
        found = await HoursAutomation().find_task_row(page, "Missing")
        assert found.elements == [body_row]

    @pytest.mark.asyncio
    async def test_find_task_row_none(self, page):
        page.add('[role="row"]', text="Header")
        with pytest.raises(RuntimeError):
            await HoursAutomation().find_task_row(page)

    @pytest.mark.asyncio
    async def test_hours_cell_fallback(self, page):
        cells = [FakeElement(text="Design"), FakeElement(text="  "), FakeElement(text="2 Hours")]
        page.add('[role="row"]', children={'[role="gridcell"]': cells})
        found = await HoursAutomation().find_hours_cell(page.locator('[role="row"]'))
        assert found.elements == [cells[1]]

    @pytest.mark.asyncio
    async def test_hours_cell_missing(self, page):
        page.add('[role="row"]', children={'[role="gridcell"]': [FakeElement(text="Design")]})
        with pytest.raises(RuntimeError):
            await HoursAutomation().find_hours_cell(page.locator('[role="row"]'))

    @pytest.mark.asyncio
    async def test_fill_hours_with_note(self, page):
        cell = FakeElement()
        page.add('[role="row"]', text="Header")
        page.add('[role="row"]', children={HOURS_CELL_SELECTORS[0]: [cell]})
        hours_input = page.add(EDIT_INPUT_SELECTORS[0])
        note = page.add(NOTE_SELECTORS[0])

        await HoursAutomation().fill_hours(page, page, 1.5, note="Upload completed")

        assert cell.clicks == [{"force": True}]
        assert hours_input.value == "1.5"
        assert note.value == "Upload completed"
        assert page.keyboard.pressed[:3] == ["Control+A", "Delete", "Enter"]

    @pytest.mark.asyncio
    async def test_in_session_navigates_to_tasks(self, page):
        automation = HoursAutomation()
        automation.fill_hours = AsyncMock()

        result = await automation.log_hours_in_session(page, page, PROJECT + "/overview", 0.3, note="QA")

        assert result.success
        assert page.gotos == [PROJECT + "/tasks"]
        automation.fill_hours.assert_awaited_once_with(page.frame_scope, page, 0.3, "QA", None)

    @pytest.mark.asyncio
    async def test_standalone_reports_failure(self, page):
        automation = HoursAutomation()
        automation.project_page = fake_project_page(page)
        automation.fill_hours = AsyncMock(side_effect=RuntimeError("Task row not found"))

        result = await automation.log_hours(PROJECT, 2)

        assert result.success is False
        assert result.error == "Task row not found"
        assert automation.project_page.calls[0]["project_url"] == PROJECT + "/tasks"
