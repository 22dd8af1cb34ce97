from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


class EncodingDiagnosis(BaseModel):
    attribute: str
    object_type: str
    offset: Optional[int] = Field(default=None, examples=[3])
    reason: Optional[str] = Field(default=None, examples=["invalid continuation byte"])
    detected: Optional[str] = Field(
        default=None,
        description="Best-guess charset of the raw bytes. Informational only, never used to repair data.",
    )
    length: int = 0
