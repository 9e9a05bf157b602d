from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic.functional_serializers import PlainSerializer


ZERO = Decimal("0")


def serialize_decimal(value: Decimal) -> str:
    """금액은 JSON 에서 부동소수점 오차 없이 문자열로 내보낸다."""
    return format(value, "f")


Money = Annotated[
    Decimal,
    PlainSerializer(serialize_decimal, return_type=str, when_used="json"),
]
