import json
import logging
import os
import sys


# JSON 로그에 그대로 실어 보낼 extra 필드 목록.
# 장부/계약 추적에 필요한 식별자 위주로 구성한다.
STRUCTURED_EXTRA_KEYS: tuple[str, ...] = (
    "user_id",
    "deposit_id",
    "contract_id",
    "check_in_id",
    "event_id",
    "amount",
    "outcome",
)


def setup_logger(name: str = "fitpact", level: str | None = None) -> logging.Logger:
    """서비스 전역 로거를 설정하고 반환한다.

    Args:
        name: 로거 이름 (SERVICE_NAME 환경변수가 있으면 그 값을 우선 사용)
        level: 로그 레벨 (None 이면 LOG_LEVEL 환경변수, 없으면 INFO)

    Returns:
        설정된 logging.Logger 인스턴스
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")

    log_level = getattr(logging, level.upper(), logging.INFO)

    service_name = os.getenv("SERVICE_NAME", name)
    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)

    # 재호출 시 핸들러 중복 방지
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter(service_name=service_name))
    logger.addHandler(handler)

    # 모듈 로거(logging.getLogger(__name__))는 루트로 전파되므로 루트에도 같은 핸들러를 건다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
        root_logger.setLevel(log_level)

    return logger


class JsonFormatter(logging.Formatter):
    """구조화 로그 수집용 JSON 포맷터.

    - datetime, level, logger, message 를 기본 필드로 둔다.
    - STRUCTURED_EXTRA_KEYS 에 해당하는 extra 값은 최상위 필드로 올린다.
    - 예외 정보는 exc_info 필드에 문자열로 남긴다.
    """

    def __init__(self, service_name: str | None = None) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, object] = {
            "datetime": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in STRUCTURED_EXTRA_KEYS:
            if hasattr(record, key):
                # Decimal 등 JSON 비호환 값은 문자열로 내린다.
                log_record[key] = _jsonable(getattr(record, key))

        service_name = getattr(record, "service_name", None) or self._service_name
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False)


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
