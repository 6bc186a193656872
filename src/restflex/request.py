"""
请求描述模块

RestRequest 描述一次 HTTP 调用：资源路径、方法、参数、文件、请求体以及响应写入器。
它是可变对象，由调用方构建，在执行时与客户端默认参数合并

使用示例:
    >>> request = RestRequest("users/{id}", method="GET")
    >>> request.add_url_segment("id", 42).add_query_parameter("active", True)
    >>> request = RestRequest("users", method="POST").add_json_body({"name": "Alice"})
    >>> request = RestRequest("upload", method="POST").add_file_bytes("file", b"...", "a.txt", "text/plain")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import IO, Any

from restflex.constants import CONTENT_TYPE_JSON, CONTENT_TYPE_XML, HTTP_METHOD_GET
from restflex.parameters import FileParameter, Parameter, ParameterType, add_or_update, find_parameter
from restflex.serializer import DATA_FORMAT_CONTENT_TYPES, DataFormat

ResponseWriter = Callable[[IO[bytes]], None]
AdvancedResponseWriter = Callable[[IO[bytes], "RestResponse"], None]  # noqa: F821


class RestRequest:
    """
    HTTP 请求描述

    参数:
        resource: 资源路径，可包含 {placeholder} 片段
        method: HTTP 方法
        request_format: add_body 使用的请求体格式
        timeout: 单次请求超时时间（秒），None 时使用客户端配置

    属性:
        parameters: 有序参数列表（参数名不要求唯一）
        files: 有序文件参数列表
        always_multipart_form_data: 无文件时也强制使用 multipart/form-data
        on_before_deserialization: 反序列化前调用的回调，接收 RestResponse
    """

    def __init__(
        self,
        resource: str = "",
        method: str = HTTP_METHOD_GET,
        request_format: DataFormat = DataFormat.JSON,
        timeout: float | None = None,
    ):
        self.resource = resource
        self.method = method.upper()
        self.request_format = request_format
        self.timeout = timeout
        self.parameters: list[Parameter] = []
        self.files: list[FileParameter] = []
        self.always_multipart_form_data = False
        self.on_before_deserialization: Callable[[Any], None] | None = None
        self._response_writer: ResponseWriter | None = None
        self._advanced_response_writer: AdvancedResponseWriter | None = None

    def __repr__(self) -> str:
        return f"<RestRequest {self.method} {self.resource!r}>"

    # ========== 响应写入器 ==========
    # 普通写入器与高级写入器互斥，设置其中一个会清除另一个

    @property
    def response_writer(self) -> ResponseWriter | None:
        return self._response_writer

    @response_writer.setter
    def response_writer(self, writer: ResponseWriter | None) -> None:
        self._response_writer = writer
        if writer is not None:
            self._advanced_response_writer = None

    @property
    def advanced_response_writer(self) -> AdvancedResponseWriter | None:
        return self._advanced_response_writer

    @advanced_response_writer.setter
    def advanced_response_writer(self, writer: AdvancedResponseWriter | None) -> None:
        self._advanced_response_writer = writer
        if writer is not None:
            self._response_writer = None

    # ========== 参数 ==========

    def add_parameter(
        self,
        name: str,
        value: Any,
        type: ParameterType = ParameterType.GET_OR_POST,
        encode: bool = True,
    ) -> RestRequest:
        """
        添加参数

        单例类型（请求头、URL 片段、Cookie、请求体）同名时替换，其余类型追加
        """
        add_or_update(self.parameters, Parameter(name, value, type, encode=encode))
        return self

    def add_or_update_parameter(self, parameter: Parameter) -> RestRequest:
        """按名称和类型添加或替换参数"""
        if parameter.merge_key() is None:
            existing = find_parameter(self.parameters, parameter.name, parameter.type)
            if existing is not None:
                self.parameters[self.parameters.index(existing)] = parameter
                return self
        add_or_update(self.parameters, parameter)
        return self

    def remove_parameter(self, name: str, type: ParameterType | None = None) -> RestRequest:
        """删除指定名称（及类型）的全部参数"""
        self.parameters = [p for p in self.parameters if not (p.name == name and (type is None or p.type is type))]
        return self

    def add_query_parameter(self, name: str, value: Any, encode: bool = True) -> RestRequest:
        return self.add_parameter(name, value, ParameterType.QUERY_STRING, encode=encode)

    def add_url_segment(self, name: str, value: Any, encode: bool = True) -> RestRequest:
        return self.add_parameter(name, value, ParameterType.URL_SEGMENT, encode=encode)

    def add_header(self, name: str, value: str) -> RestRequest:
        return self.add_parameter(name, value, ParameterType.HTTP_HEADER)

    def add_headers(self, headers: dict[str, str] | Iterable[tuple[str, str]]) -> RestRequest:
        items = headers.items() if isinstance(headers, dict) else headers
        for name, value in items:
            self.add_header(name, value)
        return self

    def add_cookie(self, name: str, value: str) -> RestRequest:
        return self.add_parameter(name, value, ParameterType.COOKIE)

    @property
    def cookies(self) -> list[Parameter]:
        return [p for p in self.parameters if p.type is ParameterType.COOKIE]

    # ========== 请求体 ==========
    # 一个请求只保留一个请求体参数，后设置的请求体替换先前的

    @property
    def body(self) -> Parameter | None:
        return next((p for p in self.parameters if p.type is ParameterType.REQUEST_BODY), None)

    def add_body(self, obj: Any, content_type: str | None = None) -> RestRequest:
        """
        设置请求体

        参数:
            obj: 待序列化对象，或已序列化的 str/bytes
            content_type: 内容类型；为 None 时按 request_format 推断
        """
        if content_type is None:
            content_type = DATA_FORMAT_CONTENT_TYPES.get(self.request_format)
        if content_type is None and not isinstance(obj, (str, bytes, bytearray)):
            raise ValueError("content_type is required when request_format is DataFormat.NONE")
        name = content_type or ""
        add_or_update(
            self.parameters,
            Parameter(name, obj, ParameterType.REQUEST_BODY, content_type=content_type),
        )
        return self

    def add_json_body(self, obj: Any, content_type: str = CONTENT_TYPE_JSON) -> RestRequest:
        self.request_format = DataFormat.JSON
        return self.add_body(obj, content_type)

    def add_xml_body(self, obj: Any, content_type: str = CONTENT_TYPE_XML) -> RestRequest:
        self.request_format = DataFormat.XML
        return self.add_body(obj, content_type)

    # ========== 文件 ==========

    def add_file(self, name: str, path: str, content_type: str | None = None) -> RestRequest:
        self.files.append(FileParameter.from_path(name, path, content_type))
        return self

    def add_file_bytes(self, name: str, data: bytes, file_name: str, content_type: str | None = None) -> RestRequest:
        self.files.append(FileParameter.from_bytes(name, data, file_name, content_type))
        return self

    def add_file_stream(
        self,
        name: str,
        getter: Callable[[], IO[bytes]],
        file_name: str,
        content_type: str | None = None,
        content_length: int | None = None,
    ) -> RestRequest:
        self.files.append(FileParameter.from_stream(name, getter, file_name, content_type, content_length))
        return self
