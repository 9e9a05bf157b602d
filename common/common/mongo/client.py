from __future__ import annotations

import logging
import threading
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import load_mongo_config


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - 최초 호출 시 ping 으로 연결을 확인하고 필수 인덱스를 생성한다.
    - DB 이름은 MONGO_DB_NAME 우선, 없으면 URI 의 기본 DB 를 사용한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        cfg = load_mongo_config()
        client: MongoClient = MongoClient(
            cfg.uri,
            serverSelectionTimeoutMS=cfg.server_selection_timeout_ms,
            tz_aware=True,
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        try:
            db = client[cfg.db_name] if cfg.db_name else client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        try:
            ensure_indexes(db)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            client.close()
            raise

        _client = client
        _db = db
        logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    if _db is None:
        get_client()
    assert _db is not None
    return _db


def ensure_indexes(db: Database) -> None:
    """장부 서비스가 사용하는 컬렉션 인덱스를 생성한다. 여러 번 호출해도 안전하다."""

    deposits = db["deposits"]
    deposits.create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_user_created_at",
    )
    deposits.create_index(
        [("user_id", ASCENDING), ("status", ASCENDING)],
        name="idx_user_status",
    )
    deposits.create_index([("contract_id", ASCENDING)], name="idx_contract_id")
    # 같은 결제 건이 두 레코드에 반영되지 않도록 한다.
    deposits.create_index(
        [("payment.transaction_id", ASCENDING)],
        name="uniq_transaction_id",
        unique=True,
        partialFilterExpression={"payment.transaction_id": {"$type": "string"}},
    )
    deposits.create_index(
        [("expiry_date", ASCENDING)],
        name="idx_expiry_date",
        sparse=True,
    )

    contracts = db["contracts"]
    contracts.create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_user_created_at",
    )
    contracts.create_index([("status", ASCENDING)], name="idx_status")
    contracts.create_index([("deposit_id", ASCENDING)], name="idx_deposit_id")

    check_ins = db["check_ins"]
    check_ins.create_index(
        [("contract_id", ASCENDING), ("timestamp", ASCENDING)],
        name="idx_contract_timestamp",
    )
    check_ins.create_index(
        [("user_id", ASCENDING), ("timestamp", DESCENDING)],
        name="idx_user_timestamp",
    )
