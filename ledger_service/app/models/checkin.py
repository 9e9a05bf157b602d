from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from common.types.datetime import UtcDateTime


class CheckInType(StrEnum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    GYM = "gym"
    PROTEIN = "protein"


class CheckInStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CheckIn(BaseModel):
    """打卡 기록 도메인 모델. timestamp 의 로컬 날짜에 속한다."""

    id: str | None = None
    user_id: str
    contract_id: str
    type: CheckInType
    timestamp: UtcDateTime
    status: CheckInStatus = CheckInStatus.PENDING
    image_url: str | None = None
    created_at: UtcDateTime
    updated_at: UtcDateTime
