"""
响应反序列化器模块

提供将响应体解析为目标类型的基类和 JSON/XML 实现

目标类型为 None 或 Any 时返回解析后的内置类型（dict/list/str 等），
否则使用 pydantic 的 TypeAdapter 校验并转换为目标类型
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any

from restflex.serializer import get_type_adapter

logger = logging.getLogger(__name__)


def _is_untyped(response_type: Any) -> bool:
    return response_type is None or response_type is Any


class BaseDeserializer(ABC):
    """响应反序列化器基类，定义解析 RestResponse 的接口。"""

    @abstractmethod
    def deserialize(self, response: RestResponse, response_type: Any = None) -> Any:  # noqa: F821
        """
        解析响应体

        参数:
            response: 原始响应
            response_type: 目标类型

        返回:
            目标类型的值

        异常:
            解析或校验失败时抛出底层异常，由调用方统一包装
        """


class JsonDeserializer(BaseDeserializer):
    """解析 JSON 响应体"""

    def deserialize(self, response: RestResponse, response_type: Any = None) -> Any:  # noqa: F821
        logger.debug("Deserializing response as JSON")
        if _is_untyped(response_type):
            return json.loads(response.content)
        return get_type_adapter(response_type).validate_json(response.raw_bytes)


class XmlDeserializer(BaseDeserializer):
    """
    解析 XML 响应体

    根元素的内容映射到目标类型：属性变为 "@name" 键，重复的子元素变为列表，
    纯文本叶子元素变为字符串，空元素变为 None

    参数:
        force_list: 始终按列表处理的元素名集合
    """

    def __init__(self, force_list: set[str] | None = None):
        self.force_list = force_list or set()

    def deserialize(self, response: RestResponse, response_type: Any = None) -> Any:  # noqa: F821
        logger.debug("Deserializing response as XML")
        root = ET.fromstring(response.raw_bytes)
        data = self._element_to_value(root)
        if _is_untyped(response_type):
            return {self._strip_ns(root.tag): data}
        return get_type_adapter(response_type).validate_python(data)

    @staticmethod
    def _strip_ns(tag: str) -> str:
        """去除命名空间前缀: {http://...}Name -> Name"""
        if tag.startswith("{"):
            return tag.split("}", 1)[1]
        return tag

    def _element_to_value(self, element: ET.Element) -> dict[str, Any] | str | None:
        result: dict[str, Any] = {}

        for attr_name, attr_value in element.attrib.items():
            if attr_name.startswith("xmlns") or attr_name.startswith("{"):
                continue
            result[f"@{attr_name}"] = attr_value

        children: dict[str, list[Any]] = {}
        for child in element:
            children.setdefault(self._strip_ns(child.tag), []).append(self._element_to_value(child))

        for tag, values in children.items():
            result[tag] = values if tag in self.force_list or len(values) > 1 else values[0]

        text = (element.text or "").strip()
        if text:
            if not result:
                return text
            result["#text"] = text

        return result or None
