"""Clock integrity check result."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict


class TamperReason(str, Enum):
    """Why a clock check failed."""

    BACKWARD = "backward"  # Device clock moved behind the watermark
    OFFSET = "offset"  # Device clock disagrees with the server


class TimeCheckResult(BaseModel):
    """Outcome of one clock integrity check. Recomputed on every check."""

    model_config = ConfigDict(frozen=True)

    tampered: bool = False
    reason: TamperReason | None = None
    device_time: datetime | None = None
    server_time: datetime | None = None
