from __future__ import annotations

from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.database import Database

from common.mongo.types import to_object_id

from ..exceptions import ConcurrentModificationError
from ..models.contract import Contract, ContractStatus
from .documents.contract_document import ContractDocument
from .interfaces import ContractRepositoryInterface


class ContractRepository(ContractRepositoryInterface):
    """contracts 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["contracts"]

    def insert(self, contract: Contract) -> Contract:
        payload = ContractDocument.from_domain(contract).to_mongo_record()
        result = self._col.insert_one(payload)
        return contract.model_copy(update={"id": str(result.inserted_id)})

    def find_by_id(self, contract_id: str) -> Contract | None:
        try:
            oid = to_object_id(contract_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return ContractDocument.model_validate(doc).to_domain()

    def save(self, contract: Contract) -> Contract:
        """version 이 일치할 때만 덮어쓴다."""
        if contract.id is None:
            raise ValueError("cannot save a contract without id")

        saved = contract.model_copy(update={"version": contract.version + 1})
        payload = ContractDocument.from_domain(saved).to_mongo_record()
        payload.pop("_id", None)

        result = self._col.replace_one(
            {"_id": to_object_id(contract.id), "version": contract.version},
            payload,
        )
        if result.matched_count == 0:
            raise ConcurrentModificationError(
                f"contract {contract.id} was modified concurrently (version={contract.version})"
            )
        return saved

    def list_by_status(self, status: ContractStatus) -> list[Contract]:
        cursor = self._col.find(
            {"status": str(status)}, sort=[("start_date", ASCENDING)]
        )
        return [ContractDocument.model_validate(raw).to_domain() for raw in cursor]
