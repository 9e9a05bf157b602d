from __future__ import annotations

from common.mongo.types import BaseDocument, MongoDateTime, from_object_id

from ...models.checkin import CheckIn


class CheckInDocument(BaseDocument):
    """MongoDB check_ins 컬렉션 도큐먼트 모델."""

    user_id: str
    contract_id: str
    type: str
    timestamp: MongoDateTime
    status: str
    image_url: str | None = None

    @classmethod
    def from_domain(cls, check_in: CheckIn) -> "CheckInDocument":
        data = check_in.model_dump()
        data["_id"] = data.pop("id", None)
        return cls.model_validate(data)

    def to_domain(self) -> CheckIn:
        return CheckIn(
            id=from_object_id(self.id),
            user_id=self.user_id,
            contract_id=self.contract_id,
            type=self.type,
            timestamp=self.timestamp,
            status=self.status,
            image_url=self.image_url,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
