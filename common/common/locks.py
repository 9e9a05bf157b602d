"""키 단위 상호 배제.

보증금 레코드나 계약처럼 "한 건"을 단위로 읽기-수정-저장을 직렬화할 때 쓴다.
서로 다른 키는 완전히 병렬로 진행된다.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """키별 재진입 가능 락 레지스트리.

    사용 중인 키만 레지스트리에 남도록 참조 카운트로 관리한다.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._refs: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)
