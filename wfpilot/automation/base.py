"""
Shared pieces for the Workfront automations.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..browser.dom import open_project
from ..browser.manager import BrowserManager, browser_session, workfront_session_config
from ..config import Settings, get_settings
from ..logging_config import get_logger

logger = get_logger("wfpilot.automation")


@dataclass
class ActionResult:
    """Outcome of a single automation call."""
    success: bool
    message: str = ""
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "details": self.details,
        }

    @classmethod
    def failed(cls, message: str, **details) -> "ActionResult":
        return cls(success=False, message=message, error=message, details=details)


class Automation:
    """Base class holding the collaborators every automation needs."""

    name = "automation"
    # Standalone runs of this automation use the lean session profile.
    lean_session = False

    def __init__(self, settings: Optional[Settings] = None, manager: Optional[BrowserManager] = None):
        self._settings = settings
        self.manager = manager

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def resolve_headless(self, headless: Optional[bool]) -> bool:
        return self.settings.resolve_headless(headless, allow_override=headless is not None)

    @asynccontextmanager
    async def project_page(self, project_url: str, headless: Optional[bool] = None, settle_ms: int = 3000):
        """Open a fresh browser on ``project_url`` and yield ``(page, scope)``."""
        config = workfront_session_config(self.resolve_headless(headless), optimized=self.lean_session)
        async with browser_session(config, name=f"wfpilot {self.name}", manager=self.manager) as (session, page):
            logger.info(f"Opening project for {self.name}: {project_url}")
            scope = await open_project(page, project_url, settle_ms=settle_ms)
            yield page, scope
