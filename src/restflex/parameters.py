"""
请求参数模块

定义带类型的参数条目（查询、URL 片段、请求头、Cookie、请求体、GetOrPost）、
文件参数以及参数合并规则

合并规则:
    - 单例类型（请求头、URL 片段、Cookie 按名称；请求体按类型）后出现的条目
      原位替换先出现的条目，保留第一次出现的位置
    - 可重复类型（查询参数、GetOrPost）依次累加
"""

from __future__ import annotations

import enum
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import IO, Any

from restflex.constants import CONTENT_TYPE_OCTET_STREAM


class ParameterType(enum.Enum):
    """参数类型"""

    QUERY_STRING = "query_string"
    URL_SEGMENT = "url_segment"
    HTTP_HEADER = "http_header"
    COOKIE = "cookie"
    REQUEST_BODY = "request_body"
    GET_OR_POST = "get_or_post"


# 同名时替换的参数类型
SINGLETON_PARAMETER_TYPES = frozenset(
    {
        ParameterType.HTTP_HEADER,
        ParameterType.URL_SEGMENT,
        ParameterType.COOKIE,
        ParameterType.REQUEST_BODY,
    }
)


@dataclass
class Parameter:
    """
    请求参数

    属性:
        name: 参数名称；请求体参数使用内容类型作为名称
        value: 参数值；请求体参数可以是待序列化的对象，也可以是原始 str/bytes
        type: 参数类型
        content_type: 内容类型（仅请求体参数使用）
        encode: 是否对 URL 片段/查询参数进行百分号编码
    """

    name: str
    value: Any
    type: ParameterType = ParameterType.GET_OR_POST
    content_type: str | None = None
    encode: bool = True

    def merge_key(self) -> tuple | None:
        """返回单例类型的合并键，可重复类型返回 None"""
        if self.type not in SINGLETON_PARAMETER_TYPES:
            return None
        if self.type is ParameterType.REQUEST_BODY:
            # 一个请求只允许一个请求体
            return (self.type,)
        if self.type is ParameterType.HTTP_HEADER:
            return (self.type, self.name.lower())
        return (self.type, self.name)

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


FileGetter = Callable[[], "bytes | IO[bytes]"]


@dataclass
class FileParameter:
    """
    文件参数

    存在任意文件参数时，整个请求会以 multipart/form-data 编码发送

    属性:
        name: 表单字段名
        file_name: 文件名
        getter: 返回 bytes 或可读二进制流的函数，在发送时才调用
        content_type: 文件内容类型
        content_length: 文件长度（未知时为 None）
    """

    name: str
    file_name: str
    getter: FileGetter
    content_type: str = CONTENT_TYPE_OCTET_STREAM
    content_length: int | None = None

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        file_name: str,
        content_type: str | None = None,
    ) -> FileParameter:
        """使用内存中的字节数据创建文件参数"""
        return cls(
            name=name,
            file_name=file_name,
            getter=lambda: data,
            content_type=content_type or CONTENT_TYPE_OCTET_STREAM,
            content_length=len(data),
        )

    @classmethod
    def from_path(cls, name: str, path: str, content_type: str | None = None) -> FileParameter:
        """使用磁盘文件路径创建文件参数，文件在发送时才打开"""
        return cls(
            name=name,
            file_name=os.path.basename(path),
            getter=lambda: open(path, "rb"),
            content_type=content_type or CONTENT_TYPE_OCTET_STREAM,
            content_length=os.path.getsize(path),
        )

    @classmethod
    def from_stream(
        cls,
        name: str,
        getter: FileGetter,
        file_name: str,
        content_type: str | None = None,
        content_length: int | None = None,
    ) -> FileParameter:
        """使用流获取函数创建文件参数"""
        return cls(
            name=name,
            file_name=file_name,
            getter=getter,
            content_type=content_type or CONTENT_TYPE_OCTET_STREAM,
            content_length=content_length,
        )

    def read(self) -> bytes:
        """
        读取文件全部内容

        getter 返回流时，读取完成后关闭该流
        """
        source = self.getter()
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        try:
            return source.read()
        finally:
            source.close()


def add_or_update(parameters: list[Parameter], parameter: Parameter) -> list[Parameter]:
    """
    向参数列表中加入参数（原地修改）

    单例类型的同名参数原位替换，可重复类型直接追加

    参数:
        parameters: 参数列表
        parameter: 要加入的参数

    返回:
        传入的参数列表
    """
    key = parameter.merge_key()
    if key is not None:
        for index, existing in enumerate(parameters):
            if existing.merge_key() == key:
                parameters[index] = parameter
                return parameters
    parameters.append(parameter)
    return parameters


def merge_parameters(defaults: Iterable[Parameter], request_specific: Iterable[Parameter]) -> list[Parameter]:
    """
    合并客户端默认参数与请求参数

    先遍历默认参数，再遍历请求参数；单例类型后者覆盖前者且保留首次出现的位置，
    可重复类型依次累加。不修改传入的集合

    参数:
        defaults: 客户端级别的默认参数
        request_specific: 请求级别的参数

    返回:
        合并后的新参数列表
    """
    merged: list[Parameter] = []
    for parameter in [*defaults, *request_specific]:
        add_or_update(merged, parameter)
    return merged


def filter_parameters(parameters: Iterable[Parameter], *types: ParameterType) -> list[Parameter]:
    """按类型筛选参数，保持原有顺序"""
    return [p for p in parameters if p.type in types]


def find_parameter(parameters: Iterable[Parameter], name: str, type: ParameterType) -> Parameter | None:
    """按名称和类型查找第一个匹配的参数"""
    probe = Parameter(name, None, type)
    key = probe.merge_key() or (type, name)
    for p in parameters:
        if (p.merge_key() or (p.type, p.name)) == key:
            return p
    return None


def value_to_text(value: Any) -> str:
    """将参数值转换为线上传输的文本形式，None 转为空字符串，布尔值转为小写"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
