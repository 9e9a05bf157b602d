from __future__ import annotations

import os
from dataclasses import dataclass


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"
MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV = "MONGO_SERVER_SELECTION_TIMEOUT_MS"

DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000


@dataclass(slots=True, frozen=True)
class MongoConfig:
    """MongoDB 접속 설정."""

    uri: str
    db_name: str | None
    server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS


def load_mongo_config() -> MongoConfig:
    """환경 변수에서 MongoDB 설정을 읽는다.

    - MONGO_URI 는 필수이며 없으면 RuntimeError 로 즉시 실패한다.
    - MONGO_DB_NAME 이 비어 있으면 None 을 두고, 클라이언트가 URI 의 기본 DB 를 쓴다.
    """

    uri = os.getenv(MONGO_URI_ENV)
    if not uri:
        raise RuntimeError(
            f"{MONGO_URI_ENV} environment variable is required for MongoDB",
        )

    db_name = os.getenv(MONGO_DB_NAME_ENV, "").strip() or None

    timeout_raw = os.getenv(MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV, "").strip()
    if not timeout_raw:
        timeout_ms = DEFAULT_SERVER_SELECTION_TIMEOUT_MS
    else:
        try:
            timeout_ms = int(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV} must be an integer, got: {timeout_raw!r}"
            ) from exc

    return MongoConfig(
        uri=uri,
        db_name=db_name,
        server_selection_timeout_ms=timeout_ms,
    )
