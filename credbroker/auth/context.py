# credbroker/auth/context.py
"""
credbroker/auth/context.py - 취소/마감 시간 컨텍스트

네트워크를 기다리는 모든 단계(클라이언트 등록, 폴링, STS 홉)는
Context를 받아 취소와 마감 시간을 확인합니다.

사용 예시:
    ctx = Context(timeout=30)
    ctx.check("assume_role")   # 취소/마감 시 예외
    ctx.wait(5)                # 취소되면 즉시 깨어남
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from credbroker.auth.types import CancelledError, DeadlineExceededError


class Context:
    """취소 가능한 실행 컨텍스트

    Args:
        timeout: 현재 시점부터의 마감 시간 (초, None이면 무제한)
        clock: 단조 시계 함수 (테스트에서 가짜 시계 주입)
        waiter: 대기 함수 (seconds -> None, 기본은 취소 이벤트 대기)
    """

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        waiter: Callable[[float], None] | None = None,
    ):
        self._clock = clock
        self._waiter = waiter
        self._cancel_event = threading.Event()
        self._deadline = clock() + timeout if timeout is not None else None

    @classmethod
    def background(cls) -> Context:
        """마감 시간이 없는 기본 컨텍스트"""
        return cls()

    def now(self) -> float:
        return self._clock()

    def cancel(self) -> None:
        """컨텍스트 취소 (대기 중인 wait()가 즉시 반환됨)"""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def remaining(self) -> float | None:
        """마감까지 남은 초 (마감 없으면 None)"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def check(self, step: str, completed_step: str | None = None) -> None:
        """취소/마감 확인

        Args:
            step: 시작하려는 단계 이름
            completed_step: 마지막으로 완료된 단계 이름

        Raises:
            CancelledError: 취소된 경우
            DeadlineExceededError: 마감 시간이 지난 경우
        """
        if self.cancelled:
            raise CancelledError(step)
        if self.expired:
            raise DeadlineExceededError(step, completed_step)

    def wait(self, seconds: float) -> None:
        """최대 seconds 동안 대기

        마감 시간까지만 대기하며, 취소되면 즉시 반환합니다.
        반환 후 상태 확인은 호출자가 check()로 수행합니다.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds <= 0:
            return
        if self._waiter is not None:
            self._waiter(seconds)
        else:
            self._cancel_event.wait(seconds)
