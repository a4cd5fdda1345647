"""
Parameter models for workflow steps.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..automation.status import ALLOWED_DELIVERABLE_STATUSES


class SelectionParams(BaseModel):
    folder: str = Field("root", max_length=200)
    file_name: str = Field(..., min_length=1, max_length=500)


class ShareParams(BaseModel):
    selections: List[SelectionParams] = Field(..., min_length=1)
    team: str = Field("test", min_length=1, max_length=100)


class UploadParams(BaseModel):
    asset_zip_path: Optional[str] = None
    final_material_paths: List[str] = Field(default_factory=list)
    team: str = Field("test", min_length=1, max_length=100)

    @model_validator(mode="after")
    def has_files(self):
        if not self.asset_zip_path and not self.final_material_paths:
            raise ValueError("No files to upload")
        return self

    @property
    def file_count(self) -> int:
        return (1 if self.asset_zip_path else 0) + len(self.final_material_paths)


class CommentParams(BaseModel):
    folder: str = Field(..., min_length=1, max_length=200)
    file_name: str = Field(..., min_length=1, max_length=500)
    comment_type: str = Field("assetRelease", max_length=50)
    team: str = Field("test", min_length=1, max_length=100)
    mode: str = Field("plain", pattern="^(plain|raw)$")
    raw_html: Optional[str] = Field(None, max_length=50000)

    @model_validator(mode="after")
    def raw_needs_html(self):
        if self.mode == "raw" and not self.raw_html:
            raise ValueError("raw_html is required when mode is 'raw'")
        return self


class StatusParams(BaseModel):
    status: str
    max_attempts: int = Field(4, ge=1, le=10)
    retry_delay_ms: int = Field(3000, ge=0, le=60000)

    @field_validator("status")
    @classmethod
    def allowed_status(cls, value: str) -> str:
        if value not in ALLOWED_DELIVERABLE_STATUSES:
            raise ValueError(f"must be one of: {', '.join(ALLOWED_DELIVERABLE_STATUSES)}")
        return value


class HoursParams(BaseModel):
    hours: float = Field(0.3, gt=0, le=24)
    note: Optional[str] = Field(None, max_length=2000)
    task_name: Optional[str] = Field(None, max_length=500)
    max_attempts: int = Field(3, ge=1, le=10)
    retry_delay_ms: int = Field(2500, ge=0, le=60000)
