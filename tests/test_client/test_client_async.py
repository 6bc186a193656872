"""
测试 RestClient 的异步执行与取消

包括:
- 异步执行与带类型的异步执行
- 取消令牌（发送前、传输中）
- 协程被取消时中止传输
- 截止时间到达时中止传输
"""

import asyncio
import threading

import pytest
import responses
from pydantic import BaseModel

from restflex.cancellation import CancellationToken
from restflex.client import RestClient
from restflex.exceptions import APIClientCancelledError, APIClientTimeoutError
from restflex.request import RestRequest
from restflex.response import ResponseStatus

BASE_URL = "https://api.example.com"


class Item(BaseModel):
    id: int
    name: str


class BlockingRaw:
    """read 会阻塞直到流被关闭的原始响应流"""

    def __init__(self):
        self.read_started = threading.Event()
        self._closed = threading.Event()
        self.read_calls = 0

    @property
    def closed(self):
        return self._closed.is_set()

    def read(self, amt=None):
        self.read_calls += 1
        self.read_started.set()
        self._closed.wait(timeout=5)
        return b""

    def close(self):
        self._closed.set()


async def wait_for(event: threading.Event, timeout: float = 5):
    """在事件循环中轮询等待线程事件"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not event.is_set():
        if loop.time() > deadline:
            raise AssertionError("event was not set in time")
        await asyncio.sleep(0.01)


class TestExecuteAsync:
    """测试异步执行"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    @responses.activate
    async def test_execute_async(self, client):
        # Arrange
        responses.add(responses.GET, f"{BASE_URL}/items/1", json={"id": 1, "name": "a"})

        # Act
        response = await client.execute_async(RestRequest("items/{id}").add_url_segment("id", 1))

        # Assert
        assert response.response_status is ResponseStatus.COMPLETED
        assert response.status_code == 200
        assert response.raw_bytes == b'{"id": 1, "name": "a"}'

    @pytest.mark.unit
    @pytest.mark.asyncio
    @responses.activate
    async def test_execute_typed_async(self, client):
        responses.add(responses.GET, f"{BASE_URL}/items/1", json={"id": 1, "name": "a"})

        response = await client.execute_get_typed_async(RestRequest("items/1"), Item)

        assert response.data == Item(id=1, name="a")

    @pytest.mark.unit
    @pytest.mark.asyncio
    @responses.activate
    async def test_verb_async(self, client):
        responses.add(responses.POST, f"{BASE_URL}/items", json={"id": 2, "name": "b"}, status=201)

        response = await client.post_async(RestRequest("items").add_json_body({"name": "b"}), Item)

        assert response.status_code == 201
        assert response.data.id == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    @responses.activate
    async def test_concurrent_requests(self, client):
        for index in range(5):
            responses.add(responses.GET, f"{BASE_URL}/items/{index}", json={"id": index, "name": str(index)})

        results = await asyncio.gather(
            *(client.get_async(RestRequest("items/{id}").add_url_segment("id", i), Item) for i in range(5))
        )

        assert [r.data.id for r in results] == [0, 1, 2, 3, 4]

    @pytest.mark.unit
    @pytest.mark.asyncio
    @responses.activate
    async def test_download_data_async(self, client):
        responses.add(responses.GET, f"{BASE_URL}/files/1", body=b"bytes")

        assert await client.download_data_async(RestRequest("files/1")) == b"bytes"


class TestCancellation:
    """测试取消"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_before_send(self, client, mocker):
        send = mocker.patch.object(client.session, "send")
        token = CancellationToken()
        token.cancel()

        response = await client.execute_async(RestRequest("items"), cancellation_token=token)

        assert response.response_status is ResponseStatus.ABORTED
        assert isinstance(response.error_exception, APIClientCancelledError)
        send.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_mid_transfer(self, client, mocker, recording_raw, transport_response):
        """传输中取消：返回 ABORTED，连接被关闭且不再继续读取"""
        # Arrange
        token = CancellationToken()
        raw = recording_raw(
            [b"chunk-1", b"chunk-2", b"chunk-3"],
            on_read=lambda calls: token.cancel() if calls == 2 else None,
        )
        mocker.patch.object(client.session, "send", return_value=transport_response(raw))
        errors = []
        client.register_hook("on_request_error", lambda c, request_id, error: errors.append(error))

        # Act
        response = await client.execute_async(RestRequest("stream"), cancellation_token=token)

        # Assert
        assert response.response_status is ResponseStatus.ABORTED
        assert raw.closed
        assert raw.read_calls == 2
        assert response.raw_bytes is None
        assert errors == [response.error_exception]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_token_cancelled_from_event_loop(self, client, mocker, transport_response):
        raw = BlockingRaw()
        mocker.patch.object(client.session, "send", return_value=transport_response(raw))
        token = CancellationToken()

        task = asyncio.create_task(client.execute_async(RestRequest("stream"), cancellation_token=token))
        await wait_for(raw.read_started)
        token.cancel()
        response = await task

        assert response.response_status is ResponseStatus.ABORTED
        assert raw.closed

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_task_cancellation_aborts_transfer(self, client, mocker, transport_response):
        """协程被取消时中止传输并继续传播 CancelledError"""
        raw = BlockingRaw()
        mocker.patch.object(client.session, "send", return_value=transport_response(raw))

        task = asyncio.create_task(client.execute_async(RestRequest("stream")))
        await wait_for(raw.read_started)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert raw.closed
        assert raw.read_calls == 1


class TestTimeout:
    """截止时间到达时主动中止传输"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_token_deadline_closes_stream(self, client, mocker, transport_response):
        # Arrange
        raw = BlockingRaw()
        mocker.patch.object(client.session, "send", return_value=transport_response(raw))
        token = CancellationToken(timeout=0.2)

        # Act
        response = await client.execute_async(RestRequest("stream"), cancellation_token=token)

        # Assert
        assert response.response_status is ResponseStatus.TIMED_OUT
        assert isinstance(response.error_exception, APIClientTimeoutError)
        assert raw.closed

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_client_timeout_closes_stream(self, mocker, transport_response):
        raw = BlockingRaw()

        with RestClient(base_url=BASE_URL, timeout=0.2) as client:
            mocker.patch.object(client.session, "send", return_value=transport_response(raw))
            response = await client.execute_async(RestRequest("stream"))

        assert response.response_status is ResponseStatus.TIMED_OUT
        assert raw.closed
        assert raw.read_calls == 1

    @pytest.mark.unit
    def test_client_timeout_sync(self, mocker, transport_response):
        raw = BlockingRaw()

        with RestClient(base_url=BASE_URL, timeout=0.2) as client:
            mocker.patch.object(client.session, "send", return_value=transport_response(raw))
            response = client.execute(RestRequest("stream"))

        assert response.response_status is ResponseStatus.TIMED_OUT
        assert raw.closed
