from __future__ import annotations

from .core import Topic


# 결제사 콜백(결제 결과, 환불 결과)이 들어오는 토픽
TOPIC_PAYMENT = Topic("fitpact.payment")
# 알림 전송 서비스가 구독하는 토픽
TOPIC_NOTIFICATION = Topic("fitpact.notification")
