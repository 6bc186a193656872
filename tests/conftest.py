"""
通用测试 Fixture 定义

提供测试所需的客户端、注册表、Mock 传输响应等 Fixture
"""

import io

import pytest
import requests

from restflex import RestClient
from restflex.registry import SerializerRegistry
from restflex.response import ResponseStatus, RestResponse

BASE_URL = "https://api.example.com"


class RecordingRaw:
    """
    记录读取与关闭次数的原始响应流

    没有 stream 方法，引擎会退化为分块调用 read
    """

    def __init__(self, chunks, on_read=None):
        self._chunks = list(chunks)
        self.on_read = on_read
        self.read_calls = 0
        self.closed = False

    def read(self, amt=None):
        self.read_calls += 1
        if self.on_read is not None:
            self.on_read(self.read_calls)
        if self.closed or not self._chunks:
            return b""
        return self._chunks.pop(0)

    def close(self):
        self.closed = True


def make_transport_response(raw, status_code=200, headers=None, url=f"{BASE_URL}/stream"):
    """构造由自定义原始流支撑的 requests.Response"""
    response = requests.Response()
    response.status_code = status_code
    response.reason = "OK"
    response.headers.update(headers or {"Content-Type": "application/octet-stream"})
    response.raw = raw
    response.url = url
    return response


@pytest.fixture
def client():
    """基础配置的 RestClient 实例"""
    with RestClient(base_url=BASE_URL) as instance:
        yield instance


@pytest.fixture
def mocked_client(requests_mock):
    """预置 /test 端点 Mock 的 RestClient 实例"""
    requests_mock.get(f"{BASE_URL}/test", json={"result": True})
    requests_mock.post(f"{BASE_URL}/test", json={"result": True}, status_code=201)
    with RestClient(base_url=BASE_URL) as instance:
        yield instance


@pytest.fixture
def registry():
    """预置 JSON/XML 处理器的注册表"""
    return SerializerRegistry.with_defaults()


@pytest.fixture
def json_response():
    """返回构造 JSON RestResponse 的工厂函数"""

    def factory(body: bytes, status_code: int = 200, content_type: str = "application/json"):
        return RestResponse(
            status_code=status_code,
            raw_bytes=body,
            content_type=content_type,
            response_status=ResponseStatus.COMPLETED,
        )

    return factory


@pytest.fixture
def bytes_stream():
    """内存中的二进制流"""
    return io.BytesIO(b"hello world")


@pytest.fixture
def recording_raw():
    """返回 RecordingRaw 类"""
    return RecordingRaw


@pytest.fixture
def transport_response():
    """返回构造 requests.Response 的工厂函数"""
    return make_transport_response
