"""HTTP 执行引擎模块

负责单次调用的请求组装（请求头、请求体、文件、Cookie）、传输以及响应读取：
- 每个 HTTP 动词的同步执行，以及可取消的异步执行
- multipart/form-data 与 application/x-www-form-urlencoded 请求体编码
- 可配置的透明解压
- 原始响应流写入器（普通/高级）
- 发送前的传输请求配置器

同步与异步共用同一套传输算法：异步路径只是把同步路径放到工作线程中执行，
并把协程取消转换为取消令牌信号，由令牌回调关闭进行中的传输连接

失败语义:
    网络层失败（连接拒绝、超时、协议错误、TLS 校验失败、DNS 失败）被捕获并记录在
    返回的 RestResponse 中，而不是抛给调用方；取消单独记录为 ABORTED 状态
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import requests
import urllib3
from requests.structures import CaseInsensitiveDict
from urllib3.filepost import encode_multipart_formdata

from restflex.cancellation import CancellationToken
from restflex.constants import (
    CONTENT_TYPE_FORM_URLENCODED,
    CONTENT_TYPE_OCTET_STREAM,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DECOMPRESSION_METHODS,
    DEFAULT_TIMEOUT,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_HEAD,
    HTTP_METHOD_MERGE,
    HTTP_METHOD_OPTIONS,
    HTTP_METHOD_PATCH,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
)
from restflex.exceptions import (
    APIClientCancelledError,
    APIClientNetworkError,
    APIClientTimeoutError,
    APIClientValidationError,
)
from restflex.parameters import FileParameter, Parameter, value_to_text
from restflex.response import ResponseStatus, RestResponse
from restflex.transport import ConnectionTracker

logger = logging.getLogger(__name__)


@dataclass
class TransportRequest:
    """
    即将发送的传输层请求

    交给请求配置器做最后的定制（代理、超时、证书校验等），配置器在引擎设置完
    自身默认值之后调用，因此调用方的修改总是生效

    属性:
        prepared: requests 预处理请求，可修改请求头、请求体、URL
        timeout: requests 超时设置（秒或 (connect, read) 元组）
        verify: 证书校验开关或 CA 证书路径
        proxies: 代理配置
        cert: 客户端证书
        allow_redirects: 是否跟随重定向
    """

    prepared: requests.PreparedRequest
    timeout: float | tuple[float, float] | None = DEFAULT_TIMEOUT
    verify: bool | str = True
    proxies: dict[str, str] = field(default_factory=dict)
    cert: str | tuple[str, str] | None = None
    allow_redirects: bool = True

    def send_kwargs(self) -> dict[str, Any]:
        return {
            "stream": True,
            "timeout": self.timeout,
            "verify": self.verify,
            "proxies": self.proxies,
            "cert": self.cert,
            "allow_redirects": self.allow_redirects,
        }


RequestConfigurator = Callable[[TransportRequest], None]


class HttpEngine:
    """
    单次 HTTP 调用的执行引擎

    每次调用创建一个新的引擎实例，持有该次调用独占的组装状态；
    requests.Session（连接池、Cookie 存储）在同一客户端的多次调用之间共享

    参数:
        session: 共享的 requests.Session
        session_lock: 保护 Session 共享状态（请求预处理时合并 Cookie/请求头）的锁
        request_id: 日志追踪用的请求 ID

    属性:
        url: 已解析的最终请求地址
        headers: 请求头列表 [(name, value)]
        parameters: GetOrPost 表单参数
        files: 文件参数
        cookies: Cookie 列表 [(name, value)]
        request_body: 已序列化的请求体
        request_content_type: 请求体内容类型
        always_multipart_form_data: 无文件时也使用 multipart 编码
        allowed_decompression_methods: 允许透明解压的内容编码，空列表表示只接受服务器默认编码
        response_writer: 原始响应流写入器
        advanced_response_writer: 接收响应流和响应元数据的写入器
        request_configurator: 发送前的传输请求配置器
    """

    def __init__(
        self,
        session: requests.Session,
        session_lock: threading.RLock | None = None,
        request_id: str = "",
    ):
        self.session = session
        self._session_lock = session_lock or threading.RLock()
        self.request_id = request_id

        self.url = ""
        self.headers: list[tuple[str, str]] = []
        self.parameters: list[Parameter] = []
        self.files: list[FileParameter] = []
        self.cookies: list[tuple[str, str]] = []
        self.request_body: str | bytes | None = None
        self.request_content_type: str | None = None
        self.always_multipart_form_data = False
        self.allowed_decompression_methods: list[str] = list(DEFAULT_DECOMPRESSION_METHODS)

        self.response_writer: Callable | None = None
        self.advanced_response_writer: Callable | None = None
        self.request_configurator: RequestConfigurator | None = None

        self.timeout: float | None = DEFAULT_TIMEOUT
        self.verify: bool | str = True
        self.proxies: dict[str, str] = {}
        self.cert: str | tuple[str, str] | None = None
        self.follow_redirects = True
        self.chunk_size = DEFAULT_CHUNK_SIZE

    @property
    def has_files(self) -> bool:
        return bool(self.files)

    @property
    def has_body(self) -> bool:
        return self.request_body is not None

    @property
    def has_parameters(self) -> bool:
        return bool(self.parameters)

    # ========== 同步动词 ==========

    def get(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_get(HTTP_METHOD_GET, token)

    def head(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_get(HTTP_METHOD_HEAD, token)

    def options(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_get(HTTP_METHOD_OPTIONS, token)

    def delete(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_get(HTTP_METHOD_DELETE, token)

    def post(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_post(HTTP_METHOD_POST, token)

    def put(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_post(HTTP_METHOD_PUT, token)

    def patch(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_post(HTTP_METHOD_PATCH, token)

    def merge(self, token: CancellationToken | None = None) -> RestResponse:
        return self.as_post(HTTP_METHOD_MERGE, token)

    def as_get(self, http_method: str, token: CancellationToken | None = None) -> RestResponse:
        """以 GET 风格（不携带请求体）执行任意方法"""
        return self.perform(http_method, with_body=False, token=token)

    def as_post(self, http_method: str, token: CancellationToken | None = None) -> RestResponse:
        """以 POST 风格（携带请求体）执行任意方法"""
        return self.perform(http_method, with_body=True, token=token)

    # ========== 异步执行 ==========

    async def perform_async(
        self, http_method: str, with_body: bool, token: CancellationToken | None = None
    ) -> RestResponse:
        """
        异步执行请求，不阻塞事件循环

        令牌被取消时返回 ABORTED 状态的响应；协程本身被取消时先通知令牌中止传输，
        再继续向上传播 CancelledError
        """
        call_token, unlink = (token or CancellationToken()).link()
        try:
            return await asyncio.to_thread(self.perform, http_method, with_body, call_token)
        except asyncio.CancelledError:
            logger.info(f"[{self.request_id}] Coroutine cancelled, aborting in-flight request")
            call_token.cancel()
            raise
        finally:
            unlink()

    # ========== 核心执行流程 ==========

    def perform(self, http_method: str, with_body: bool, token: CancellationToken | None = None) -> RestResponse:
        """
        执行请求并读取响应

        参数:
            http_method: HTTP 方法
            with_body: 是否按 POST 风格携带请求体
            token: 取消令牌

        返回:
            RestResponse；传输失败、超时与取消记录在 response_status 与 error_exception 中

        执行步骤:
            1. 创建带截止时间的子令牌（超时即取消）
            2. 组装传输请求并调用请求配置器（组装失败属于调用方配置错误，直接抛出）
            3. 发送请求，注册令牌回调以便取消时关闭连接
            4. 读取状态、响应头，再读取响应体或交给响应写入器
            5. 在所有退出路径上释放连接
        """
        http_method = http_method.upper()
        call_token, unlink = (token or CancellationToken()).link(timeout=self.timeout)
        try:
            transport_request = self.build_transport_request(http_method, with_body)
            return self._send(transport_request, call_token)
        finally:
            unlink()

    def _send(self, transport_request: TransportRequest, token: CancellationToken) -> RestResponse:
        response = RestResponse()
        transport_response: requests.Response | None = None
        unregister: Callable[[], None] = lambda: None  # noqa: E731

        # 在 send 之前注册，连接建立与等待响应头期间的取消同样会中止连接
        tracker = ConnectionTracker()
        unregister_abort = token.register(tracker.abort)

        try:
            token.raise_if_cancelled()
            with tracker:
                transport_response = self.session.send(transport_request.prepared, **transport_request.send_kwargs())
                unregister = token.register(transport_response.close)
                token.raise_if_cancelled()

                self._read_metadata(response, transport_response)
                self._read_body(response, transport_response, token)
            response.response_status = ResponseStatus.COMPLETED

        except APIClientTimeoutError as e:
            self._capture(response, e, ResponseStatus.TIMED_OUT)
        except APIClientCancelledError:
            self._capture_cancelled(response, token)
        except (requests.exceptions.Timeout, urllib3.exceptions.TimeoutError) as e:
            if token.is_cancelled and not token.timed_out:
                self._capture_cancelled(response, token)
            else:
                error = APIClientTimeoutError(f"Request to {self.url} timed out: {e}", cause=e)
                error.__cause__ = e
                self._capture(response, error, ResponseStatus.TIMED_OUT)
        except (requests.exceptions.RequestException, urllib3.exceptions.HTTPError, OSError) as e:
            if token.is_cancelled:
                self._capture_cancelled(response, token)
            else:
                error = APIClientNetworkError(f"Request to {self.url} failed: {e}", cause=e)
                error.__cause__ = e
                self._capture(response, error, ResponseStatus.ERROR)
        except Exception:
            # 响应被关闭后写入器读取失败属于取消，其余异常原样抛出
            if not token.is_cancelled:
                raise
            self._capture_cancelled(response, token)
        finally:
            unregister()
            unregister_abort()
            if transport_response is not None:
                transport_response.close()

        return response

    def _capture(self, response: RestResponse, error: Exception, status: ResponseStatus) -> None:
        response.set_error(error, status)
        if status is ResponseStatus.ABORTED:
            logger.info(f"[{self.request_id}] Request aborted: {error}")
        else:
            logger.error(f"[{self.request_id}] Request failed: {error}")

    def _capture_cancelled(self, response: RestResponse, token: CancellationToken) -> None:
        if token.timed_out:
            self._capture(response, APIClientTimeoutError(f"Request to {self.url} timed out"), ResponseStatus.TIMED_OUT)
        else:
            self._capture(response, APIClientCancelledError("Request was cancelled"), ResponseStatus.ABORTED)

    def build_transport_request(self, http_method: str, with_body: bool) -> TransportRequest:
        """
        组装传输请求

        执行步骤:
            1. 写入请求头与 Accept-Encoding
            2. POST 风格请求按 multipart > 显式请求体 > 表单参数 的优先级生成唯一的请求体
            3. 预处理请求（合并 Session 级请求头、Cookie、认证）
            4. 调用请求配置器
        """
        headers: CaseInsensitiveDict = CaseInsensitiveDict()
        for name, value in self.headers:
            headers[name] = value

        if "Accept-Encoding" not in headers:
            # 值为 None 时 requests 会移除 Session 的默认 Accept-Encoding
            methods = ", ".join(self.allowed_decompression_methods)
            headers["Accept-Encoding"] = methods or None

        data: Any = None
        if with_body:
            data, content_type = self._build_body()
            if content_type and (content_type.startswith("multipart/") or "Content-Type" not in headers):
                headers["Content-Type"] = content_type
        elif self.has_body or self.has_files:
            logger.warning(f"[{self.request_id}] {http_method} is sent GET-style, request body and files are ignored")

        request = requests.Request(
            method=http_method,
            url=self.url,
            headers=headers,
            data=data,
            cookies=dict(self.cookies),
        )
        with self._session_lock:
            prepared = self.session.prepare_request(request)

        transport_request = TransportRequest(
            prepared=prepared,
            timeout=self.timeout,
            verify=self.verify,
            proxies=dict(self.proxies),
            cert=self.cert,
            allow_redirects=self.follow_redirects,
        )
        if self.request_configurator is not None:
            self.request_configurator(transport_request)
        return transport_request

    def _build_body(self) -> tuple[Any, str | None]:
        """生成请求体，返回 (请求体, 内容类型)"""
        if self.has_files or self.always_multipart_form_data:
            return self._build_multipart_body()
        if self.has_body:
            if self.has_parameters:
                # 显式请求体优先，表单参数由客户端移至查询字符串，此处不应出现
                raise APIClientValidationError("Request has both an explicit body and form parameters")
            content_type = self.request_content_type
            if content_type is None:
                content_type = CONTENT_TYPE_OCTET_STREAM if isinstance(self.request_body, bytes) else "text/plain"
            return self.request_body, content_type
        if self.has_parameters:
            return [(p.name, value_to_text(p.value)) for p in self.parameters], CONTENT_TYPE_FORM_URLENCODED
        return None, None

    def _build_multipart_body(self) -> tuple[bytes, str]:
        """所有参数、请求体与文件都编码为表单字段，边界由 urllib3 随机生成"""
        fields: list[tuple[str, Any]] = [(p.name, value_to_text(p.value)) for p in self.parameters]
        if self.has_body:
            body_name = self.request_content_type or "body"
            fields.append((body_name, (None, self.request_body, self.request_content_type)))
        for file in self.files:
            fields.append((file.name, (file.file_name, file.read(), file.content_type)))
        return encode_multipart_formdata(fields)

    def _read_metadata(self, response: RestResponse, transport_response: requests.Response) -> None:
        headers = transport_response.headers
        response.status_code = transport_response.status_code
        response.status_description = transport_response.reason or ""
        response.headers = CaseInsensitiveDict(headers)
        response.cookies = transport_response.cookies.get_dict()
        response.content_type = headers.get("Content-Type")
        response.content_encoding = headers.get("Content-Encoding")
        content_length = headers.get("Content-Length")
        response.content_length = int(content_length) if content_length and content_length.isdigit() else None
        response.response_uri = transport_response.url
        response.server = headers.get("Server")
        logger.debug(f"[{self.request_id}] Response headers: {dict(headers)}")

    def _should_decode(self, transport_response: requests.Response) -> bool:
        """仅当响应使用的全部内容编码都在允许列表中时才透明解压"""
        encoding = (transport_response.headers.get("Content-Encoding") or "").strip().lower()
        if not encoding or encoding == "identity":
            return True
        allowed = {m.strip().lower() for m in self.allowed_decompression_methods}
        return all(part.strip() in allowed for part in encoding.split(","))

    def _read_body(
        self,
        response: RestResponse,
        transport_response: requests.Response,
        token: CancellationToken,
    ) -> None:
        """读取响应体；设置了写入器时将原始流交给写入器，不再缓冲响应体"""
        raw = transport_response.raw
        decode = self._should_decode(transport_response)

        if self.response_writer is not None or self.advanced_response_writer is not None:
            if hasattr(raw, "decode_content"):
                raw.decode_content = decode
            if self.advanced_response_writer is not None:
                self.advanced_response_writer(raw, response)
            else:
                self.response_writer(raw)
            token.raise_if_cancelled()
            return

        chunks = []
        for chunk in self._iter_raw(raw, decode):
            token.raise_if_cancelled()
            chunks.append(chunk)
        token.raise_if_cancelled()
        response.raw_bytes = b"".join(chunks)

    def _iter_raw(self, raw, decode: bool):
        if hasattr(raw, "stream"):
            yield from raw.stream(self.chunk_size, decode_content=decode)
            return
        while True:
            chunk = raw.read(self.chunk_size)
            if not chunk:
                break
            yield chunk
