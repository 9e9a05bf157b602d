from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from bson import ObjectId
from bson.decimal128 import Decimal128
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from common.types.datetime import ensure_utc


def to_object_id(value: Any) -> ObjectId:
    """여러 타입(str, ObjectId 등)을 MongoDB ObjectId 로 변환한다."""

    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise TypeError("ObjectId cannot be None")
    return ObjectId(str(value))


def from_object_id(value: Optional[ObjectId]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def to_bson_value(value: Any) -> Any:
    """Decimal 을 Decimal128 로 바꾸는 재귀 변환. dict/list 내부까지 따라 내려간다."""

    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return {key: to_bson_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_bson_value(item) for item in value]
    return value


def from_bson_value(value: Any) -> Any:
    """to_bson_value 의 역변환. Decimal128 을 Decimal 로 되돌린다."""

    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {key: from_bson_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [from_bson_value(item) for item in value]
    return value


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]
MongoDateTime = Annotated[datetime, BeforeValidator(ensure_utc)]


class BaseDocument(BaseModel):
    """MongoDB 도큐먼트용 공통 베이스 모델.

    - ObjectId 같은 임의 타입을 허용
    - 금액 필드는 도메인에서는 Decimal, 저장 시에는 Decimal128 로 다룬다.
    - version 필드로 낙관적 동시성 제어(compare-and-swap 저장)를 한다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    version: int = 0
    created_at: MongoDateTime
    updated_at: MongoDateTime

    @model_validator(mode="before")
    @classmethod
    def _decode_bson_values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return from_bson_value(data)
        return data

    def to_mongo_record(self) -> dict[str, Any]:
        """MongoDB 저장에 사용할 표준 레코드(dict) 직렬화.

        - by_alias=True 로 id -> _id 등의 Mongo 필드 이름과 일치시킨다.
        - _id 가 None 이면 제거해 Mongo 가 ObjectId 를 생성하도록 한다.
        """

        record = self.model_dump(by_alias=True)
        if record.get("_id") is None:
            record.pop("_id", None)
        return to_bson_value(record)
