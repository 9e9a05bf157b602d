"""보증금 레포지토리 구현체.

레코드 단위 저장은 version 필드를 이용한 compare-and-swap 으로 처리해
여러 프로세스가 같은 레코드를 동시에 고쳐도 한쪽만 성공하도록 한다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.database import Database

from common.mongo.types import to_object_id

from ..exceptions import ConcurrentModificationError
from ..models.deposit import DepositRecord, PaymentStatus
from .documents.deposit_document import DepositDocument
from .interfaces import DepositRepositoryInterface


MAX_PAGE_SIZE = 100


class DepositRepository(DepositRepositoryInterface):
    """deposits 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["deposits"]

    def insert(self, record: DepositRecord) -> DepositRecord:
        payload = DepositDocument.from_domain(record).to_mongo_record()
        result = self._col.insert_one(payload)
        return record.model_copy(update={"id": str(result.inserted_id)})

    def find_by_id(self, deposit_id: str) -> DepositRecord | None:
        try:
            oid = to_object_id(deposit_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return DepositDocument.model_validate(doc).to_domain()

    def save(self, record: DepositRecord) -> DepositRecord:
        if record.id is None:
            raise ValueError("cannot save a deposit record without id")

        saved = record.model_copy(update={"version": record.version + 1})
        payload = DepositDocument.from_domain(saved).to_mongo_record()
        payload.pop("_id", None)

        result = self._col.replace_one(
            {"_id": to_object_id(record.id), "version": record.version},
            payload,
        )
        if result.matched_count == 0:
            raise ConcurrentModificationError(
                f"deposit {record.id} was modified concurrently (version={record.version})"
            )
        return saved

    def list_by_user(
        self,
        user_id: str,
        *,
        payment_status: PaymentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DepositRecord], int]:
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            limit = 20
        if offset < 0:
            offset = 0

        query = _build_user_query(user_id, payment_status, start, end)
        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            skip=offset,
            limit=limit,
        )
        items = [DepositDocument.model_validate(raw).to_domain() for raw in cursor]
        return items, total

    def list_all_by_user(self, user_id: str) -> list[DepositRecord]:
        cursor = self._col.find(
            {"user_id": user_id}, sort=[("created_at", DESCENDING)]
        )
        return [DepositDocument.model_validate(raw).to_domain() for raw in cursor]


def _build_user_query(
    user_id: str,
    payment_status: PaymentStatus | None,
    start: datetime | None,
    end: datetime | None,
) -> dict[str, Any]:
    query: dict[str, Any] = {"user_id": user_id}
    if payment_status is not None:
        query["payment.payment_status"] = str(payment_status)
    if start is not None or end is not None:
        created: dict[str, Any] = {}
        if start is not None:
            created["$gte"] = start
        if end is not None:
            created["$lte"] = end
        query["created_at"] = created
    return query
