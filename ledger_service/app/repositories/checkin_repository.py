from __future__ import annotations

from datetime import datetime, timezone

from bson.errors import InvalidId
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database

from common.mongo.types import to_object_id

from ..models.checkin import CheckIn, CheckInStatus
from .documents.checkin_document import CheckInDocument
from .interfaces import CheckInRepositoryInterface


class CheckInRepository(CheckInRepositoryInterface):
    """check_ins 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["check_ins"]

    def insert(self, check_in: CheckIn) -> CheckIn:
        payload = CheckInDocument.from_domain(check_in).to_mongo_record()
        result = self._col.insert_one(payload)
        return check_in.model_copy(update={"id": str(result.inserted_id)})

    def find_by_id(self, check_in_id: str) -> CheckIn | None:
        try:
            oid = to_object_id(check_in_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return CheckInDocument.model_validate(doc).to_domain()

    def update_status(
        self, check_in_id: str, status: CheckInStatus
    ) -> CheckIn | None:
        try:
            oid = to_object_id(check_in_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one_and_update(
            {"_id": oid},
            {
                "$set": {
                    "status": str(status),
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return CheckInDocument.model_validate(doc).to_domain()

    def list_for_contract_between(
        self, contract_id: str, start: datetime, end: datetime
    ) -> list[CheckIn]:
        cursor = self._col.find(
            {"contract_id": contract_id, "timestamp": {"$gte": start, "$lt": end}},
            sort=[("timestamp", ASCENDING)],
        )
        return [CheckInDocument.model_validate(raw).to_domain() for raw in cursor]
