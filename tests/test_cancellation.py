"""
测试 restflex.cancellation 模块
"""

import threading
import time

import pytest

from restflex.cancellation import CancellationToken
from restflex.exceptions import APIClientCancelledError, APIClientTimeoutError


class TestCancellationToken:
    """测试取消令牌"""

    @pytest.mark.unit
    def test_initial_state(self):
        token = CancellationToken()

        assert token.is_cancelled is False
        token.raise_if_cancelled()

    @pytest.mark.unit
    def test_cancel_invokes_callbacks_once(self):
        # Arrange
        token = CancellationToken()
        calls = []
        token.register(lambda: calls.append(1))

        # Act
        token.cancel()
        token.cancel()

        # Assert
        assert token.is_cancelled
        assert calls == [1]

    @pytest.mark.unit
    def test_register_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.register(lambda: calls.append(1))

        assert calls == [1]

    @pytest.mark.unit
    def test_unregister(self):
        token = CancellationToken()
        calls = []
        unregister = token.register(lambda: calls.append(1))

        unregister()
        token.cancel()

        assert calls == []

    @pytest.mark.unit
    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        calls = []
        token.register(lambda: 1 / 0)
        token.register(lambda: calls.append(1))

        token.cancel()

        assert calls == [1]

    @pytest.mark.unit
    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(APIClientCancelledError):
            token.raise_if_cancelled()

    @pytest.mark.unit
    def test_deadline_is_timeout(self):
        """到达截止时间视为超时取消"""
        token = CancellationToken(timeout=0.01)
        time.sleep(0.02)

        assert token.is_cancelled
        assert token.timed_out
        with pytest.raises(APIClientTimeoutError):
            token.raise_if_cancelled()

    @pytest.mark.unit
    def test_deadline_runs_callbacks_without_polling(self):
        """截止时间到达时主动触发回调，无需查询 is_cancelled"""
        # Arrange
        token = CancellationToken(timeout=0.05)
        fired = threading.Event()

        # Act
        token.register(fired.set)

        # Assert
        assert fired.wait(timeout=2)
        assert token.timed_out

    @pytest.mark.unit
    def test_cancel_stops_deadline(self):
        token = CancellationToken(timeout=0.05)
        token.cancel()
        time.sleep(0.1)

        assert token.timed_out is False
        with pytest.raises(APIClientCancelledError):
            token.raise_if_cancelled()


class TestLink:
    """测试子令牌"""

    @pytest.mark.unit
    def test_parent_cancel_propagates(self):
        parent = CancellationToken()
        child, _ = parent.link()

        parent.cancel()

        assert child.is_cancelled
        assert child.timed_out is False

    @pytest.mark.unit
    def test_child_cancel_does_not_propagate(self):
        parent = CancellationToken()
        child, _ = parent.link()

        child.cancel()

        assert not parent.is_cancelled

    @pytest.mark.unit
    def test_unlink(self):
        parent = CancellationToken()
        child, unlink = parent.link()

        unlink()
        parent.cancel()

        assert not child.is_cancelled

    @pytest.mark.unit
    def test_child_own_timeout(self):
        parent = CancellationToken()
        child, _ = parent.link(timeout=0.01)
        time.sleep(0.02)

        assert child.is_cancelled
        assert child.timed_out
        assert not parent.is_cancelled

    @pytest.mark.unit
    def test_parent_deadline_propagates(self):
        """父令牌截止时间到达时子令牌以超时状态取消"""
        parent = CancellationToken(timeout=0.05)
        child, _ = parent.link()
        fired = threading.Event()
        child.register(fired.set)

        assert fired.wait(timeout=2)
        assert child.timed_out

    @pytest.mark.unit
    def test_unlink_stops_child_deadline(self):
        parent = CancellationToken()
        child, unlink = parent.link(timeout=0.05)
        calls = []
        child.register(lambda: calls.append(1))

        unlink()
        time.sleep(0.1)

        assert calls == []
