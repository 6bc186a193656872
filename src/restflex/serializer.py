"""
请求体序列化器模块

提供将 Python 对象序列化为请求体文本的基类和 JSON/XML 实现

对象到内置类型的转换统一交给 pydantic 的 TypeAdapter 完成，
因此 BaseModel、dataclass、TypedDict、容器与基本类型都可以直接作为请求体

使用示例:
    >>> serializer = JsonSerializer()
    >>> serializer.serialize({"name": "Alice"})
    '{"name":"Alice"}'
"""

from __future__ import annotations

import enum
import functools
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any

from pydantic import TypeAdapter

from restflex.constants import CONTENT_TYPE_JSON, CONTENT_TYPE_XML


class DataFormat(enum.Enum):
    """请求体格式"""

    NONE = "none"
    JSON = "json"
    XML = "xml"


DATA_FORMAT_CONTENT_TYPES = {
    DataFormat.JSON: CONTENT_TYPE_JSON,
    DataFormat.XML: CONTENT_TYPE_XML,
}


@functools.lru_cache(maxsize=256)
def get_type_adapter(target_type: Any) -> TypeAdapter:
    """获取（并缓存）目标类型的 TypeAdapter"""
    return TypeAdapter(target_type)


def to_builtin(obj: Any) -> Any:
    """将任意受支持的对象转换为 JSON 兼容的内置类型"""
    return get_type_adapter(type(obj)).dump_python(obj, mode="json")


class BaseSerializer(ABC):
    """
    请求体序列化器基类

    子类需设置 content_type 并实现 serialize 方法
    """

    content_type: str = ""

    @abstractmethod
    def serialize(self, obj: Any) -> str:
        """
        将对象序列化为请求体文本

        参数:
            obj: 待序列化的对象

        返回:
            序列化后的文本
        """


class JsonSerializer(BaseSerializer):
    """JSON 序列化器，str 类型的值视为已序列化的 JSON 原样发送"""

    content_type = CONTENT_TYPE_JSON

    def serialize(self, obj: Any) -> str:
        if isinstance(obj, str):
            return obj
        return get_type_adapter(type(obj)).dump_json(obj).decode("utf-8")


class XmlSerializer(BaseSerializer):
    """
    XML 序列化器

    对象先转换为内置类型再生成 XML：字典生成子元素，列表生成同名兄弟元素，
    None 生成空元素，布尔值输出为 true/false

    参数:
        root_element: 根元素名称，默认使用对象的类名（字典需只有一个顶层键）
    """

    content_type = CONTENT_TYPE_XML

    def __init__(self, root_element: str | None = None):
        self.root_element = root_element

    def serialize(self, obj: Any) -> str:
        if isinstance(obj, str):
            return obj

        data = to_builtin(obj)
        root_tag = self.root_element
        if root_tag is None:
            if isinstance(obj, dict):
                if len(obj) != 1:
                    raise ValueError(
                        f"XmlSerializer expects a dict with exactly one top-level key, got {len(obj)} keys"
                    )
                root_tag, data = next(iter(data.items()))
            else:
                root_tag = type(obj).__name__

        root = self._to_element(root_tag, data)
        return ET.tostring(root, encoding="unicode")

    def _to_element(self, tag: str, value: Any) -> ET.Element:
        element = ET.Element(tag)
        if value is None:
            pass
        elif isinstance(value, dict):
            for key, child in value.items():
                if isinstance(child, list):
                    for item in child:
                        element.append(self._to_element(key, item))
                else:
                    element.append(self._to_element(key, child))
        elif isinstance(value, list):
            for item in value:
                element.append(self._to_element("item", item))
        elif isinstance(value, bool):
            element.text = "true" if value else "false"
        else:
            element.text = str(value)
        return element
