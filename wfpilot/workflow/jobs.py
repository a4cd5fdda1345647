"""
Upload job tracking, persisted as JSON under the data directory.

A user only sees their own jobs; admins see every job.
"""
import json
import os
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..config import get_settings
from ..logging_config import get_logger
from .models import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    UploadJob,
    UploadJobStatus,
    generate_id,
)

logger = get_logger("wfpilot.jobs")

COMPLETED_RETENTION_SECONDS = 24 * 60 * 60
SEARCH_LIMIT = 100


def file_name(path: str) -> str:
    """Last path segment, for paths sent from either Windows or POSIX clients."""
    return re.split(r"[\\/]", path)[-1]


class UploadJobStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_settings().jobs_file
        self.jobs: List[UploadJob] = []
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.jobs = [UploadJob.from_dict(j) for j in data.get("upload_jobs", [])]
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Could not load upload jobs from {self.path}: {e}")

    def _persist(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"upload_jobs": [j.to_dict() for j in self.jobs]}, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error(f"Could not persist upload jobs: {e}")

    def _find(self, job_id: str) -> Optional[UploadJob]:
        return next((j for j in self.jobs if j.id == job_id), None)

    def create(
        self,
        user_id: str,
        project_url: str,
        asset_zip: Optional[str] = None,
        final_materials: Optional[Sequence[str]] = None,
        project_title: Optional[str] = None,
        dsid: Optional[str] = None,
    ) -> UploadJob:
        final_materials = list(final_materials or [])
        names = ([file_name(asset_zip)] if asset_zip else []) + [file_name(p) for p in final_materials]
        job = UploadJob(
            id=generate_id(),
            user_id=user_id,
            project_url=project_url,
            asset_zip=asset_zip,
            final_materials=final_materials,
            project_title=project_title,
            dsid=dsid,
            file_names=[n for n in names if n],
        )
        cutoff = time.time() - COMPLETED_RETENTION_SECONDS
        self.jobs = [
            j for j in self.jobs
            if not (j.status == UploadJobStatus.COMPLETED and j.updated_at < cutoff)
        ]
        self.jobs.append(job)
        self._persist()
        logger.info_with("Upload job created", job_id=job.id, user_id=user_id, files=len(job.file_names))
        return job

    def get(self, job_id: str, user_id: str, is_admin: bool = False) -> Optional[UploadJob]:
        job = self._find(job_id)
        if job is None or (job.user_id != user_id and not is_admin):
            return None
        return job

    def get_active_for_user(self, user_id: str) -> Optional[UploadJob]:
        return next(
            (j for j in self.jobs if j.user_id == user_id and j.status in ACTIVE_JOB_STATUSES),
            None,
        )

    def list_for_user(self, user_id: Optional[str], is_admin: bool = False) -> List[UploadJob]:
        if is_admin:
            return list(self.jobs)
        return [j for j in self.jobs if j.user_id == user_id]

    def mark_executing(self, job_id: str):
        self._update(job_id, UploadJobStatus.EXECUTING)

    def mark_completed(self, job_id: str, summary: Optional[Dict[str, Any]] = None):
        self._update(job_id, UploadJobStatus.COMPLETED, summary=summary)

    def mark_failed(self, job_id: str, error: Optional[str] = None):
        self._update(job_id, UploadJobStatus.FAILED, error=error)

    def cancel(self, job_id: str, user_id: str, is_admin: bool = False) -> bool:
        job = self.get(job_id, user_id, is_admin)
        if job is None or job.status in TERMINAL_JOB_STATUSES:
            return False
        job.status = UploadJobStatus.CANCELED
        job.updated_at = time.time()
        self._persist()
        return True

    def _update(self, job_id: str, status: UploadJobStatus, error: Optional[str] = None, summary=None):
        job = self._find(job_id)
        if job is None:
            logger.warning(f"Upload job not found: {job_id}")
            return
        job.status = status
        job.updated_at = time.time()
        if error:
            job.error = error
        if summary is not None:
            job.summary = summary
        self._persist()

    def search(self, query: str, user_id: Optional[str] = None, is_admin: bool = False) -> List[UploadJob]:
        term = (query or "").strip().lower()
        if not term:
            return []
        matches = [
            j for j in self.list_for_user(user_id, is_admin)
            if any(term in value.lower() for value in j.searchable_values())
        ]
        return matches[:SEARCH_LIMIT]
