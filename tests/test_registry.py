"""
测试 restflex.registry 模块

- 默认注册项
- 解析顺序：精确 -> 媒体类型 -> 后缀通配 -> "*" -> 默认项
- 注册、注销、清空与默认项
"""

import pytest

from restflex.deserializer import JsonDeserializer, XmlDeserializer
from restflex.exceptions import APIClientUnsupportedContentTypeError
from restflex.registry import SerializerRegistry, candidate_keys, media_type
from restflex.serializer import JsonSerializer, XmlSerializer


class PlainTextDeserializer(JsonDeserializer):
    """测试用的文本反序列化器"""

    def deserialize(self, response, response_type=None):
        return response.content


class TestHelpers:
    """测试内容类型辅助函数"""

    @pytest.mark.unit
    def test_media_type_strips_parameters(self):
        assert media_type("Text/XML; charset=utf-8") == "text/xml"

    @pytest.mark.unit
    def test_candidate_keys_order(self):
        keys = candidate_keys("application/vnd.api+json; charset=utf-8")

        assert keys == [
            "application/vnd.api+json; charset=utf-8",
            "application/vnd.api+json",
            "*+json",
            "*",
        ]


class TestDefaults:
    """测试预置注册项"""

    @pytest.mark.unit
    def test_json_is_default(self, registry):
        assert registry.default_content_type == "application/json"

    @pytest.mark.unit
    @pytest.mark.parametrize("content_type", ["application/json", "text/json", "application/problem+json"])
    def test_json_types_resolve_to_json(self, registry, content_type):
        assert isinstance(registry.resolve_deserializer(content_type), JsonDeserializer)

    @pytest.mark.unit
    @pytest.mark.parametrize("content_type", ["application/xml", "text/xml; charset=utf-8", "application/atom+xml"])
    def test_xml_types_resolve_to_xml(self, registry, content_type):
        assert isinstance(registry.resolve_deserializer(content_type), XmlDeserializer)

    @pytest.mark.unit
    def test_serializer_without_content_type_uses_default(self, registry):
        assert isinstance(registry.resolve_serializer(), JsonSerializer)

    @pytest.mark.unit
    def test_unknown_type_falls_back_to_default(self, registry):
        """未注册的类型回退到默认项"""
        assert isinstance(registry.resolve_deserializer("text/html"), JsonDeserializer)


class TestResolution:
    """测试解析顺序"""

    @pytest.mark.unit
    def test_exact_match_wins_over_media_type(self):
        # Arrange
        registry = SerializerRegistry()
        registry.register("text/plain", deserializer_factory=JsonDeserializer)
        registry.register("text/plain; charset=latin-1", deserializer_factory=PlainTextDeserializer)

        # Act & Assert
        assert isinstance(registry.resolve_deserializer("text/plain; charset=latin-1"), PlainTextDeserializer)
        assert isinstance(registry.resolve_deserializer("text/plain; charset=utf-8"), JsonDeserializer)

    @pytest.mark.unit
    def test_wildcard_before_default(self):
        registry = SerializerRegistry()
        registry.register("application/json", JsonSerializer, JsonDeserializer, default=True)
        registry.register("*", deserializer_factory=PlainTextDeserializer)

        assert isinstance(registry.resolve_deserializer("text/html"), PlainTextDeserializer)

    @pytest.mark.unit
    def test_entry_without_needed_factory_skipped(self):
        """只注册了反序列化器的类型不会被用作序列化器"""
        registry = SerializerRegistry()
        registry.register("text/csv", deserializer_factory=PlainTextDeserializer)
        registry.register("application/xml", XmlSerializer, XmlDeserializer, default=True)

        assert isinstance(registry.resolve_serializer("text/csv"), XmlSerializer)

    @pytest.mark.unit
    def test_unregistered_without_default_raises(self):
        """无匹配项且无默认项时失败，注册默认项后成功"""
        # Arrange
        registry = SerializerRegistry()
        registry.register("application/xml", XmlSerializer, XmlDeserializer)

        # Act & Assert
        with pytest.raises(APIClientUnsupportedContentTypeError) as exc_info:
            registry.resolve_deserializer("text/html")
        assert exc_info.value.content_type == "text/html"

        registry.register("application/json", JsonSerializer, JsonDeserializer, default=True)
        assert isinstance(registry.resolve_deserializer("text/html"), JsonDeserializer)


class TestMutation:
    """测试注册表修改"""

    @pytest.mark.unit
    def test_register_replaces_existing(self, registry):
        registry.register("application/json", JsonSerializer, PlainTextDeserializer)

        assert isinstance(registry.resolve_deserializer("application/json"), PlainTextDeserializer)

    @pytest.mark.unit
    def test_unregister_default_clears_default(self, registry):
        registry.unregister("application/json")

        assert registry.default_content_type is None
        assert registry.get("application/json") is None

    @pytest.mark.unit
    def test_unregister_unknown_is_noop(self, registry):
        before = registry.content_types

        registry.unregister("application/unknown")

        assert registry.content_types == before

    @pytest.mark.unit
    def test_clear(self, registry):
        registry.clear()

        assert registry.content_types == []
        with pytest.raises(APIClientUnsupportedContentTypeError):
            registry.resolve_deserializer("application/json")

    @pytest.mark.unit
    def test_set_default_requires_registration(self):
        registry = SerializerRegistry()

        with pytest.raises(APIClientUnsupportedContentTypeError):
            registry.set_default("application/json")

    @pytest.mark.unit
    def test_register_requires_a_factory(self):
        with pytest.raises(ValueError):
            SerializerRegistry().register("application/json")

    @pytest.mark.unit
    def test_content_types_normalized(self):
        registry = SerializerRegistry()
        registry.register(" Application/JSON ", JsonSerializer, JsonDeserializer)

        assert registry.content_types == ["application/json"]
