"""Dead-letter: failed ARQ jobs for inspection."""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class FailedJob(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    job_name: str
    job_id: str
    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    retries: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
