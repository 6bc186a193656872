"""
取消令牌模块

为同步与异步执行路径提供统一的取消信号

    - cancel() 标记取消并依次调用已注册的回调（引擎借此中止进行中的传输连接）
    - 超时是取消的特例：令牌可携带截止时间，到期时由计时线程主动触发"超时取消"
    - link() 创建子令牌，父令牌取消（包括父令牌超时）时子令牌随之取消
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from restflex.exceptions import APIClientCancelledError, APIClientTimeoutError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    线程安全的取消令牌

    参数:
        timeout: 截止时长（秒），None 表示不设截止时间；设置后到期会自动取消并触发回调

    使用示例:
        >>> token = CancellationToken()
        >>> task = asyncio.create_task(client.execute_async(request, cancellation_token=token))
        >>> token.cancel()
        >>> response = await task
        >>> response.response_status
        <ResponseStatus.ABORTED: 'aborted'>
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._deadline = time.monotonic() + timeout if timeout else None
        self._timeout = timeout
        self._timer: threading.Timer | None = None
        self.timed_out = False

        if timeout:
            self._timer = threading.Timer(timeout, self._cancel, kwargs={"timed_out": True})
            self._timer.daemon = True
            self._timer.start()

    @property
    def is_cancelled(self) -> bool:
        """是否已取消（截止时间到达也视为取消）"""
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._cancel(timed_out=True)
            return True
        return False

    def cancel(self) -> None:
        """取消令牌，重复调用无副作用"""
        self._cancel(timed_out=False)

    def dispose(self) -> None:
        """停止截止时间计时，不改变取消状态"""
        if self._timer is not None:
            self._timer.cancel()

    def _cancel(self, timed_out: bool) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.timed_out = timed_out
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        self.dispose()

        if timed_out:
            logger.debug(f"Cancellation token deadline of {self._timeout}s reached")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        注册取消回调

        令牌已取消时立即调用回调

        参数:
            callback: 无参回调函数

        返回:
            注销函数，调用后回调不再触发
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def link(self, timeout: float | None = None) -> tuple[CancellationToken, Callable[[], None]]:
        """
        创建子令牌

        子令牌在以下任一情况下取消：自身截止时间到达、父令牌被取消、父令牌截止时间到达

        参数:
            timeout: 子令牌自身的截止时长（秒）

        返回:
            (子令牌, 解除关联函数)；解除关联同时停止子令牌的计时
        """
        child = CancellationToken(timeout=timeout)
        unregister = self.register(lambda: child._cancel(timed_out=self.timed_out))

        def unlink() -> None:
            unregister()
            child.dispose()

        return child, unlink

    def raise_if_cancelled(self) -> None:
        """
        已取消时抛出异常

        异常:
            APIClientTimeoutError: 因截止时间到达而取消
            APIClientCancelledError: 被调用方主动取消
        """
        if not self.is_cancelled:
            return
        if self.timed_out:
            suffix = f" after {self._timeout}s" if self._timeout else ""
            raise APIClientTimeoutError(f"Request timed out{suffix}")
        raise APIClientCancelledError("Request was cancelled")
