from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class StatusCode(str, Enum):
    SUCCESS = "Success"
    ERROR = "Error"
    UNSCHEDULABLE = "Unschedulable"
    UNSCHEDULABLE_AND_UNRESOLVABLE = "UnschedulableAndUnresolvable"
    WAIT = "Wait"
    SKIP = "Skip"


class AdmissionStatus(BaseModel):
    """Outcome of one admission check (pre-filter or a single filter plugin)."""
    model_config = ConfigDict(frozen=True)

    code: StatusCode = StatusCode.SUCCESS
    reasons: List[str] = Field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.code == StatusCode.SUCCESS

    @classmethod
    def success(cls) -> "AdmissionStatus":
        return cls(code=StatusCode.SUCCESS)

    @classmethod
    def unschedulable(cls, *reasons: str) -> "AdmissionStatus":
        return cls(code=StatusCode.UNSCHEDULABLE, reasons=list(reasons))

    @classmethod
    def error(cls, *reasons: str) -> "AdmissionStatus":
        return cls(code=StatusCode.ERROR, reasons=list(reasons))

    def __hash__(self):
        return hash((self.code, tuple(self.reasons)))
