# =========================================================
# FILE: /robosite/schemas/generate.py
# =========================================================

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkItem(BaseModel):
    """Payload dispatched by the queue for one job."""
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientId")
    prompt: str

    @field_validator("client_id", "prompt", mode="before")
    @classmethod
    def _require_text(cls, v: Any):
        v = "" if v is None else str(v)
        if not v.strip():
            raise ValueError("clientId and prompt are required.")
        return v


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def add(self, other: Optional["TokenUsage"]) -> "TokenUsage":
        if other is None:
            return self
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
            total=self.total + other.total,
        )


class GenerationResult(BaseModel):
    site_title: Optional[str] = None
    # raw entries as returned by the model; the materializer filters them
    files: List[Any] = Field(default_factory=list)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None
