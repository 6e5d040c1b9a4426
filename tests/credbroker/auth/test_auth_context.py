# tests/credbroker/auth/test_auth_context.py
"""
credbroker/auth/context.py 테스트

테스트 대상:
- Context: 취소, 마감 시간, 대기 시간 제한
"""

import pytest

from credbroker.auth.context import Context
from credbroker.auth.types import CancelledError, DeadlineExceededError


class TestContext:
    """Context 테스트"""

    def test_background_never_expires(self):
        ctx = Context.background()
        assert ctx.remaining() is None
        assert ctx.expired is False
        ctx.check("step")

    def test_cancel(self):
        ctx = Context.background()
        ctx.cancel()
        with pytest.raises(CancelledError) as exc_info:
            ctx.check("poll_token")
        assert exc_info.value.step == "poll_token"

    def test_deadline(self, fake_clock):
        ctx = fake_clock.context(timeout=10)
        ctx.check("first")
        fake_clock.advance(10)
        with pytest.raises(DeadlineExceededError) as exc_info:
            ctx.check("second", completed_step="first")
        assert exc_info.value.completed_step == "first"

    def test_wait_clamped_to_deadline(self, fake_clock):
        ctx = fake_clock.context(timeout=3)
        ctx.wait(5)
        assert fake_clock.waits == [3]
        assert ctx.expired is True

    def test_wait_after_deadline_returns_immediately(self, fake_clock):
        ctx = fake_clock.context(timeout=1)
        fake_clock.advance(2)
        ctx.wait(5)
        assert fake_clock.waits == []

    def test_cancelled_wait_returns(self):
        """취소된 컨텍스트의 기본 대기는 즉시 반환"""
        ctx = Context.background()
        ctx.cancel()
        ctx.wait(30)
        assert ctx.cancelled is True
