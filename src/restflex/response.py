"""
响应模型模块

定义执行结果 RestResponse 与携带反序列化值的 TypedResponse

传输失败、取消与超时不会以异常形式抛给调用方，而是记录在 response_status
与 error_exception 中，调用方只需检查响应即可区分传输失败与 HTTP 错误状态
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from restflex.constants import DEFAULT_ENCODING
from restflex.exceptions import APIClientDeserializationError, APIClientHTTPError

if TYPE_CHECKING:
    from restflex.request import RestRequest

T = TypeVar("T")


class ResponseStatus(enum.Enum):
    """请求执行结果状态（与 HTTP 状态码无关）"""

    NONE = "none"  # 尚未执行
    COMPLETED = "completed"  # 已完整收到响应（包括 4xx/5xx）
    ERROR = "error"  # 网络传输失败或反序列化失败
    TIMED_OUT = "timed_out"  # 超时
    ABORTED = "aborted"  # 被调用方取消


@dataclass
class RestResponse:
    """
    HTTP 响应

    属性:
        request: 产生该响应的请求描述
        status_code: HTTP 状态码，传输失败时为 0
        status_description: 状态描述（reason phrase）
        headers: 响应头（大小写不敏感）
        cookies: 响应设置的 Cookie
        raw_bytes: 原始响应体；使用响应写入器时为 None
        content_type: 响应声明的内容类型
        content_encoding: 响应内容编码
        content_length: 响应声明的长度
        response_uri: 最终响应地址（跟随重定向后）
        server: Server 响应头
        response_status: 执行结果状态
        error_message: 错误描述
        error_exception: 捕获到的异常
    """

    request: RestRequest | None = None
    status_code: int = 0
    status_description: str = ""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    cookies: dict[str, str] = field(default_factory=dict)
    raw_bytes: bytes | None = None
    content_type: str | None = None
    content_encoding: str | None = None
    content_length: int | None = None
    response_uri: str | None = None
    server: str | None = None
    response_status: ResponseStatus = ResponseStatus.NONE
    error_message: str | None = None
    error_exception: Exception | None = None

    @property
    def content(self) -> str:
        """按响应声明的字符集解码后的响应体文本"""
        if not self.raw_bytes:
            return ""
        encoding = DEFAULT_ENCODING
        if self.content_type:
            encoding = get_encoding_from_headers({"content-type": self.content_type}) or DEFAULT_ENCODING
            if encoding == "ISO-8859-1" and "charset" not in self.content_type.lower():
                # 未声明字符集的 text/* 响应按 UTF-8 解码
                encoding = DEFAULT_ENCODING
        try:
            return self.raw_bytes.decode(encoding, errors="replace")
        except LookupError:
            return self.raw_bytes.decode(DEFAULT_ENCODING, errors="replace")

    @property
    def is_successful(self) -> bool:
        """传输完成且状态码为 2xx"""
        return self.response_status is ResponseStatus.COMPLETED and 200 <= self.status_code < 300

    def set_error(self, exception: Exception, status: ResponseStatus = ResponseStatus.ERROR) -> None:
        """记录执行错误"""
        self.response_status = status
        self.error_exception = exception
        self.error_message = str(exception)

    def raise_for_status(self) -> None:
        """
        存在错误时抛出异常

        异常:
            捕获到的传输异常（原样抛出）
            APIClientHTTPError: 状态码为 4xx 或 5xx 时抛出
        """
        if self.error_exception is not None:
            raise self.error_exception
        if 400 <= self.status_code < 600:
            raise APIClientHTTPError(f"HTTP {self.status_code}: {self.status_description}", response=self)


@dataclass
class TypedResponse(Generic[T]):
    """
    带类型的响应

    独占反序列化得到的值，借用原始 RestResponse 以便查看状态码与响应头。
    即使反序列化失败，原始响应也始终保留，便于诊断 4xx/5xx 响应

    属性:
        response: 原始响应
        data: 反序列化后的值，无响应体或失败时为 None
        deserialization_error: 反序列化失败时的异常
    """

    response: RestResponse
    data: T | None = None
    deserialization_error: APIClientDeserializationError | None = None

    @property
    def request(self) -> RestRequest | None:
        return self.response.request

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def status_description(self) -> str:
        return self.response.status_description

    @property
    def headers(self) -> CaseInsensitiveDict:
        return self.response.headers

    @property
    def cookies(self) -> dict[str, str]:
        return self.response.cookies

    @property
    def raw_bytes(self) -> bytes | None:
        return self.response.raw_bytes

    @property
    def content(self) -> str:
        return self.response.content

    @property
    def content_type(self) -> str | None:
        return self.response.content_type

    @property
    def response_status(self) -> ResponseStatus:
        if self.deserialization_error is not None:
            return ResponseStatus.ERROR
        return self.response.response_status

    @property
    def error_exception(self) -> Exception | None:
        return self.deserialization_error or self.response.error_exception

    @property
    def error_message(self) -> str | None:
        if self.deserialization_error is not None:
            return str(self.deserialization_error)
        return self.response.error_message

    @property
    def is_successful(self) -> bool:
        return self.deserialization_error is None and self.response.is_successful

    def raise_for_status(self) -> None:
        if self.deserialization_error is not None:
            raise self.deserialization_error
        self.response.raise_for_status()
