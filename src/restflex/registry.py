"""
序列化器注册表模块

按内容类型维护 {序列化器工厂, 反序列化器工厂} 能力对，支持默认项与按类型覆盖

解析顺序:
    1. 精确匹配（如 "application/json; charset=utf-8"）
    2. 去除参数后的媒体类型（如 "application/json"）
    3. 结构化语法后缀通配（如 "application/vnd.api+json" -> "*+json"）
    4. 通配项 "*"
    5. 指定的默认项

注册表由每个客户端实例独立持有，不存在进程级的全局状态。
读操作无需加锁；写操作加锁并整体替换映射（写时复制），
因此并发读取永远不会看到更新到一半的注册表
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from restflex.constants import CONTENT_TYPE_WILDCARD, JSON_CONTENT_TYPES, XML_CONTENT_TYPES
from restflex.deserializer import BaseDeserializer, JsonDeserializer, XmlDeserializer
from restflex.exceptions import APIClientUnsupportedContentTypeError
from restflex.serializer import BaseSerializer, JsonSerializer, XmlSerializer

logger = logging.getLogger(__name__)

SerializerFactory = Callable[[], BaseSerializer]
DeserializerFactory = Callable[[], BaseDeserializer]


@dataclass(frozen=True)
class SerializerRegistration:
    """内容类型与序列化/反序列化能力对的注册项"""

    content_type: str
    serializer_factory: SerializerFactory | None = None
    deserializer_factory: DeserializerFactory | None = None


def normalize_content_type(content_type: str | None) -> str:
    """统一内容类型的大小写与空白"""
    return (content_type or "").strip().lower()


def media_type(content_type: str | None) -> str:
    """去除内容类型中的参数部分，如 "text/xml; charset=utf-8" -> "text/xml" """
    return normalize_content_type(content_type).split(";", 1)[0].strip()


def candidate_keys(content_type: str | None) -> list[str]:
    """按解析顺序列出内容类型的候选键"""
    exact = normalize_content_type(content_type)
    base = media_type(content_type)
    candidates = [exact, base]
    if "+" in base:
        candidates.append("*" + base[base.rindex("+"):])
    candidates.append(CONTENT_TYPE_WILDCARD)

    seen: list[str] = []
    for key in candidates:
        if key and key not in seen:
            seen.append(key)
    return seen


class SerializerRegistry:
    """
    内容类型到序列化器/反序列化器的注册表

    使用示例:
        >>> registry = SerializerRegistry.with_defaults()
        >>> registry.resolve_deserializer("application/json; charset=utf-8")
        <restflex.deserializer.JsonDeserializer object at ...>
    """

    def __init__(self):
        self._registrations: dict[str, SerializerRegistration] = {}
        self._default_content_type: str | None = None
        self._lock = threading.RLock()

    @classmethod
    def with_defaults(cls) -> SerializerRegistry:
        """创建预置 JSON（默认项）与 XML 处理器的注册表"""
        registry = cls()
        for content_type in JSON_CONTENT_TYPES:
            registry.register(content_type, JsonSerializer, JsonDeserializer)
        for content_type in XML_CONTENT_TYPES:
            registry.register(content_type, XmlSerializer, XmlDeserializer)
        registry.set_default(JSON_CONTENT_TYPES[0])
        return registry

    @property
    def default_content_type(self) -> str | None:
        return self._default_content_type

    @property
    def content_types(self) -> list[str]:
        """已注册的内容类型（按注册顺序）"""
        return list(self._registrations)

    def get(self, content_type: str) -> SerializerRegistration | None:
        """按内容类型精确获取注册项"""
        return self._registrations.get(normalize_content_type(content_type))

    def register(
        self,
        content_type: str,
        serializer_factory: SerializerFactory | None = None,
        deserializer_factory: DeserializerFactory | None = None,
        default: bool = False,
    ) -> None:
        """
        注册（或替换）内容类型的能力对

        参数:
            content_type: 内容类型，支持 "*+json" 形式的后缀通配与 "*" 通配
            serializer_factory: 序列化器工厂
            deserializer_factory: 反序列化器工厂
            default: 是否设为默认项

        异常:
            ValueError: 当内容类型为空或两个工厂都为 None 时抛出
        """
        key = normalize_content_type(content_type)
        if not key:
            raise ValueError("content_type must not be empty")
        if serializer_factory is None and deserializer_factory is None:
            raise ValueError("At least one of serializer_factory or deserializer_factory is required")

        registration = SerializerRegistration(key, serializer_factory, deserializer_factory)
        with self._lock:
            registrations = dict(self._registrations)
            registrations[key] = registration
            self._registrations = registrations
            if default:
                self._default_content_type = key
        logger.debug(f"Registered handler for content type: {key}")

    def unregister(self, content_type: str) -> None:
        """移除内容类型的注册项；若为默认项则同时清除默认设置"""
        key = normalize_content_type(content_type)
        with self._lock:
            if key not in self._registrations:
                return
            registrations = dict(self._registrations)
            del registrations[key]
            self._registrations = registrations
            if self._default_content_type == key:
                self._default_content_type = None
        logger.debug(f"Unregistered handler for content type: {key}")

    def clear(self) -> None:
        """移除所有注册项（包括默认项）"""
        with self._lock:
            self._registrations = {}
            self._default_content_type = None
        logger.debug("Cleared all content type handlers")

    def set_default(self, content_type: str) -> None:
        """
        将已注册的内容类型设为默认项

        异常:
            APIClientUnsupportedContentTypeError: 当内容类型未注册时抛出
        """
        key = normalize_content_type(content_type)
        with self._lock:
            if key not in self._registrations:
                raise APIClientUnsupportedContentTypeError(
                    f"Cannot use unregistered content type as default: {content_type}", content_type=content_type
                )
            self._default_content_type = key

    def resolve_serializer(self, content_type: str | None = None) -> BaseSerializer:
        """
        解析请求体序列化器

        参数:
            content_type: 请求体内容类型；为 None 时直接使用默认项

        返回:
            序列化器实例

        异常:
            APIClientUnsupportedContentTypeError: 无匹配项且无可用默认项时抛出
        """
        registration = self._resolve(content_type, "serializer_factory")
        return registration.serializer_factory()

    def resolve_deserializer(self, content_type: str | None) -> BaseDeserializer:
        """
        解析响应反序列化器

        参数:
            content_type: 响应声明的内容类型

        返回:
            反序列化器实例

        异常:
            APIClientUnsupportedContentTypeError: 无匹配项且无可用默认项时抛出
        """
        registration = self._resolve(content_type, "deserializer_factory")
        return registration.deserializer_factory()

    def _resolve(self, content_type: str | None, factory_attr: str) -> SerializerRegistration:
        # 取一次快照，保证单次解析过程中看到一致的注册表
        registrations = self._registrations
        default_key = self._default_content_type

        keys = candidate_keys(content_type) if content_type else []
        if default_key:
            keys.append(default_key)

        for key in keys:
            registration = registrations.get(key)
            if registration is not None and getattr(registration, factory_attr) is not None:
                return registration

        raise APIClientUnsupportedContentTypeError(
            f"No {factory_attr.replace('_factory', '')} registered for content type "
            f"'{content_type}' and no default is available",
            content_type=content_type,
        )
