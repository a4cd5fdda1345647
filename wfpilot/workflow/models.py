"""
Workflow Data Models

This module defines the data structures for:
- Workflow steps (an action plus its parameters)
- Timeline configs (ordered steps run against one project)
- Step results and the run summary
- Upload jobs (tracked per user across runs)
"""
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


class WorkflowAction(Enum):
    """Automations a workflow step can run"""
    SHARE = "share"
    UPLOAD = "upload"
    COMMENT = "comment"
    STATUS = "status"
    HOURS = "hours"


class UploadJobStatus(Enum):
    """Lifecycle of an upload job"""
    STAGED = "staged"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_JOB_STATUSES = (UploadJobStatus.COMPLETED, UploadJobStatus.FAILED, UploadJobStatus.CANCELED)
ACTIVE_JOB_STATUSES = (UploadJobStatus.STAGED, UploadJobStatus.EXECUTING)


def generate_id() -> str:
    return str(uuid.uuid4())


@dataclass
class WorkflowStep:
    """One action in a timeline"""
    action: WorkflowAction
    enabled: bool = True
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "enabled": self.enabled, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        return cls(
            action=WorkflowAction(data["action"]),
            enabled=data.get("enabled", True),
            params=dict(data.get("params") or {}),
        )


@dataclass
class TimelineConfig:
    """Ordered steps to run against one project"""
    project_url: str
    steps: List[WorkflowStep] = field(default_factory=list)
    headless: Optional[bool] = None
    stop_on_error: bool = False
    user_id: Optional[str] = None
    job_id: Optional[str] = None

    @property
    def enabled_steps(self) -> List[WorkflowStep]:
        return [s for s in self.steps if s.enabled]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_url": self.project_url,
            "steps": [s.to_dict() for s in self.steps],
            "headless": self.headless,
            "stop_on_error": self.stop_on_error,
            "user_id": self.user_id,
            "job_id": self.job_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineConfig":
        return cls(
            project_url=data["project_url"],
            steps=[WorkflowStep.from_dict(s) for s in data.get("steps", [])],
            headless=data.get("headless"),
            stop_on_error=data.get("stop_on_error", False),
            user_id=data.get("user_id"),
            job_id=data.get("job_id"),
        )


def load_timeline_config(path) -> TimelineConfig:
    """Read a TimelineConfig from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "project_url" not in data:
        raise ValueError(f"Workflow file {path} must be a JSON object with a project_url")
    return TimelineConfig.from_dict(data)


@dataclass
class StepResult:
    """Outcome of one executed step"""
    action: WorkflowAction
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class WorkflowSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class WorkflowRunResult:
    results: List[StepResult] = field(default_factory=list)
    summary: WorkflowSummary = field(default_factory=WorkflowSummary)
    job_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.summary.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
            "job_id": self.job_id,
        }


@dataclass
class UploadJob:
    """A staged upload tracked for one user"""
    id: str
    user_id: str
    project_url: str
    asset_zip: Optional[str] = None
    final_materials: List[str] = field(default_factory=list)
    status: UploadJobStatus = UploadJobStatus.STAGED
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    error: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    project_title: Optional[str] = None
    dsid: Optional[str] = None
    file_names: List[str] = field(default_factory=list)

    def searchable_values(self) -> List[str]:
        return [v for v in [self.project_url, self.project_title, self.dsid, *self.file_names] if v]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_url": self.project_url,
            "asset_zip": self.asset_zip,
            "final_materials": list(self.final_materials),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "error": self.error,
            "summary": self.summary,
            "project_title": self.project_title,
            "dsid": self.dsid,
            "file_names": list(self.file_names),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadJob":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            project_url=data["project_url"],
            asset_zip=data.get("asset_zip"),
            final_materials=data.get("final_materials", []),
            status=UploadJobStatus(data.get("status", "staged")),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            error=data.get("error"),
            summary=data.get("summary"),
            project_title=data.get("project_title"),
            dsid=data.get("dsid"),
            file_names=data.get("file_names", []),
        )


# ==================== Presets ====================

def share_and_comment_workflow(
    project_url: str,
    selections: Sequence[Dict[str, str]],
    team: str = "test",
) -> TimelineConfig:
    """Share the selections, then post an asset-release comment on the first one."""
    first = selections[0] if selections else {}
    return TimelineConfig(
        project_url=project_url,
        steps=[
            WorkflowStep(WorkflowAction.SHARE, True, {"selections": list(selections), "team": team}),
            WorkflowStep(WorkflowAction.COMMENT, True, {
                "folder": first.get("folder"),
                "file_name": first.get("file_name"),
                "comment_type": "assetRelease",
                "team": team,
            }),
        ],
        headless=False,
        stop_on_error=False,
    )


def upload_workflow(
    project_url: str,
    asset_zip_path: Optional[str],
    final_material_paths: Sequence[str],
    team: str = "test",
) -> TimelineConfig:
    """Upload plan with status and hours steps present but disabled."""
    return TimelineConfig(
        project_url=project_url,
        steps=[
            WorkflowStep(WorkflowAction.UPLOAD, True, {
                "asset_zip_path": asset_zip_path,
                "final_material_paths": list(final_material_paths),
                "team": team,
            }),
            WorkflowStep(WorkflowAction.STATUS, False, {"status": "Delivered"}),
            WorkflowStep(WorkflowAction.HOURS, False, {"hours": 1, "note": "Upload completed"}),
        ],
        headless=False,
        stop_on_error=True,
    )


def save_timeline_config(config: TimelineConfig, path) -> Path:
    path = Path(path)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    return path
