# deepguard/core/schemas.py
import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, field_validator, model_validator


class AnalysisState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    REQUESTING = "requesting"
    INTERPRETING = "interpreting"
    DONE = "done"
    ERRORED = "errored"


class Verdict(BaseModel):
    isAuthentic: bool
    confidence: int
    issues: List[str] = []
    details: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> int:
        # Clamped to [0, 100]; booleans and non-numeric values are rejected.
        if isinstance(value, bool):
            raise ValueError("confidence must be a number, not a boolean")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"confidence must be numeric, got {value!r}")
        if not math.isfinite(number):
            raise ValueError("confidence must be finite")
        return int(round(min(max(number, 0.0), 100.0)))

    @field_validator("issues", mode="before")
    @classmethod
    def _null_issues(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("details", mode="before")
    @classmethod
    def _null_details(cls, value: Any) -> Any:
        return "" if value is None else value


class ErrorDescriptor(BaseModel):
    code: str
    message: str


class AnalysisOutcome(BaseModel):
    verdict: Optional[Verdict] = None
    error: Optional[ErrorDescriptor] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "AnalysisOutcome":
        if (self.verdict is None) == (self.error is None):
            raise ValueError("An outcome carries either a verdict or an error")
        return self

    @property
    def ok(self) -> bool:
        return self.verdict is not None


class FrameAnalysisRequest(BaseModel):
    frames: List[str]  # base64 data URLs sampled by the client


class ErrorResponse(BaseModel):
    error: str
