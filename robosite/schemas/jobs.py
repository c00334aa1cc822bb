# =========================================================
# FILE: /robosite/schemas/jobs.py
# =========================================================

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


JobStatus = Literal["queued", "active", "completed", "failed"]

JobStep = Literal[
    "prepare",
    "generate",
    "install",
    "build",
    "upload-src",
    "upload-build",
    "completed",
    "failed",
]

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class JobResult(BaseModel):
    """Stored on the job record once the site is published."""
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientId")
    src_prefix: str = Field(..., alias="srcPrefix")
    build_prefix: str = Field(..., alias="buildPrefix")
    build_url: str = Field(..., alias="buildUrl")
    s3_src: str = Field(..., alias="s3Src")
    s3_build: str = Field(..., alias="s3Build")

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class JobLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message: str
    created_at: datetime = Field(..., serialization_alias="createdAt")
