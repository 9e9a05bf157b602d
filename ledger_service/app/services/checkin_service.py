from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, tzinfo

from common.types.datetime import ensure_utc, to_local_date, utcnow

from ..exceptions import CheckInNotFound
from ..models.checkin import CheckIn, CheckInStatus, CheckInType
from ..repositories.interfaces import CheckInRepositoryInterface
from .progress_service import ProgressTrackerService


logger = logging.getLogger(__name__)


class CheckInService:
    """체크인 기록과 심사. 승인되면 해당 로컬 날짜를 다시 판정한다."""

    def __init__(
        self,
        check_in_repo: CheckInRepositoryInterface,
        tracker: ProgressTrackerService,
        local_tz: tzinfo,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = check_in_repo
        self._tracker = tracker
        self._tz = local_tz
        self._clock = clock

    def record(
        self,
        user_id: str,
        contract_id: str,
        type: CheckInType | str,
        timestamp: datetime | None = None,
        image_url: str | None = None,
        status: CheckInStatus | str = CheckInStatus.PENDING,
    ) -> CheckIn:
        now = self._clock()
        check_in = self._repo.insert(
            CheckIn(
                user_id=user_id,
                contract_id=contract_id,
                type=CheckInType(type),
                timestamp=ensure_utc(timestamp) if timestamp else now,
                status=CheckInStatus(status),
                image_url=image_url,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "check-in recorded id=%s contract_id=%s type=%s status=%s",
            check_in.id,
            contract_id,
            check_in.type,
            check_in.status,
            extra={"check_in_id": check_in.id, "contract_id": contract_id, "user_id": user_id},
        )
        if check_in.status == CheckInStatus.APPROVED:
            self._evaluate(check_in)
        return check_in

    def review(self, check_in_id: str, status: CheckInStatus | str) -> CheckIn:
        decision = CheckInStatus(status)
        if decision == CheckInStatus.PENDING:
            raise ValueError("review decision must be approved or rejected")

        check_in = self._repo.update_status(check_in_id, decision)
        if check_in is None:
            raise CheckInNotFound(check_in_id)
        logger.info(
            "check-in reviewed id=%s status=%s",
            check_in_id,
            decision,
            extra={"check_in_id": check_in_id, "contract_id": check_in.contract_id},
        )
        if decision == CheckInStatus.APPROVED:
            self._evaluate(check_in)
        return check_in

    def _evaluate(self, check_in: CheckIn) -> None:
        day = to_local_date(check_in.timestamp, self._tz)
        outcome = self._tracker.evaluate_day(check_in.contract_id, day)
        logger.debug("check-in %s re-evaluated %s as %s", check_in.id, day, outcome)
