"""
可中止的传输适配器模块

requests 的 Session.send 在建立连接、上传请求体、等待响应头期间一直阻塞，
响应对象此时还不存在，关闭响应无法打断这些阶段。本模块让连接池把取出的连接
登记到当前线程的 ConnectionTracker 中，取消时直接关闭底层套接字的读写方向，
阻塞中的 send/recv 随即返回，requests 抛出连接异常并由引擎记录为取消

    - CancellableHTTPAdapter: 挂载到 Session 的 HTTPAdapter，使用下面的连接池
    - TrackingHTTPConnectionPool / TrackingHTTPSConnectionPool: 取出连接时登记，归还时注销
    - ConnectionTracker: 单次调用的连接登记表，abort() 中止全部已登记连接

使用示例:
    >>> session = requests.Session()
    >>> adapter = CancellableHTTPAdapter()
    >>> session.mount("http://", adapter)
    >>> session.mount("https://", adapter)
    >>> tracker = ConnectionTracker()
    >>> unregister = token.register(tracker.abort)
    >>> with tracker:
    ...     session.send(prepared)
"""

from __future__ import annotations

import logging
import socket
import threading

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.poolmanager import ProxyManager

from restflex.exceptions import APIClientCancelledError

logger = logging.getLogger(__name__)

_local = threading.local()


def current_tracker() -> ConnectionTracker | None:
    """当前线程正在使用的连接登记表"""
    return getattr(_local, "tracker", None)


def _shutdown(conn) -> None:
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        # 绕过 SSLSocket.shutdown，直接关闭底层 TCP 连接
        socket.socket.shutdown(sock, socket.SHUT_RDWR)
    except OSError as e:
        logger.debug(f"Socket shutdown failed: {e}")


class ConnectionTracker:
    """
    单次调用的连接登记表

    进入上下文时成为当前线程的登记表，连接池在此期间取出的连接都会登记进来；
    abort() 可在任意线程调用，已登记及之后登记的连接都会被中止
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: list = []
        self._previous: ConnectionTracker | None = None
        self.aborted = False

    def __enter__(self) -> ConnectionTracker:
        self._previous = current_tracker()
        _local.tracker = self
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _local.tracker = self._previous
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.tracker = None

    @property
    def connections(self) -> list:
        with self._lock:
            return list(self._connections)

    def add(self, conn) -> None:
        with self._lock:
            conn.tracker = self
            self._connections.append(conn)
            aborted = self.aborted
        if aborted:
            _shutdown(conn)

    def discard(self, conn) -> None:
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)
        conn.tracker = None

    def abort(self) -> None:
        """中止全部已登记连接，重复调用无副作用"""
        with self._lock:
            if self.aborted:
                return
            self.aborted = True
            connections = list(self._connections)
        for conn in connections:
            _shutdown(conn)


class TrackingConnectionMixin:
    """建立连接后检查登记表，连接期间发生的取消在此生效"""

    tracker: ConnectionTracker | None = None

    def connect(self):
        super().connect()
        if self.tracker is not None and self.tracker.aborted:
            self.close()
            raise APIClientCancelledError("Request was cancelled while connecting")


class TrackingHTTPConnection(TrackingConnectionMixin, HTTPConnection):
    pass


class TrackingHTTPSConnection(TrackingConnectionMixin, HTTPSConnection):
    pass


class TrackingPoolMixin:
    """取出连接时登记到当前线程的登记表，归还时注销"""

    def _get_conn(self, timeout=None):
        conn = super()._get_conn(timeout=timeout)
        tracker = current_tracker()
        if tracker is not None:
            tracker.add(conn)
        return conn

    def _put_conn(self, conn):
        tracker = getattr(conn, "tracker", None)
        if tracker is not None:
            tracker.discard(conn)
        super()._put_conn(conn)


class TrackingHTTPConnectionPool(TrackingPoolMixin, HTTPConnectionPool):
    ConnectionCls = TrackingHTTPConnection


class TrackingHTTPSConnectionPool(TrackingPoolMixin, HTTPSConnectionPool):
    ConnectionCls = TrackingHTTPSConnection


TRACKING_POOL_CLASSES = {
    "http": TrackingHTTPConnectionPool,
    "https": TrackingHTTPSConnectionPool,
}


class CancellableHTTPAdapter(HTTPAdapter):
    """
    使用可登记连接池的 HTTPAdapter

    直连与 HTTP 代理都使用可登记连接池，SOCKS 代理保持 urllib3 默认连接池
    """

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = TRACKING_POOL_CLASSES

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        if isinstance(manager, ProxyManager):
            manager.pool_classes_by_scheme = TRACKING_POOL_CLASSES
        return manager
