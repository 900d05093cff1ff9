from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Draft(BaseModel):
    id: str
    transaction_id: str | None = None
    step: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    saved_at: datetime
