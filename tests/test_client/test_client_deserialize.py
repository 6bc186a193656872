"""
测试 RestClient 的响应反序列化

包括带类型的结果、空响应体、解析失败的捕获、内容类型匹配与处理器配置
"""

import pytest
import responses
from pydantic import BaseModel

from restflex.client import RestClient
from restflex.deserializer import BaseDeserializer, JsonDeserializer
from restflex.exceptions import APIClientDeserializationError, APIClientUnsupportedContentTypeError
from restflex.request import RestRequest
from restflex.response import ResponseStatus, RestResponse

BASE_URL = "https://api.example.com"


class User(BaseModel):
    id: int
    name: str


class CsvDeserializer(BaseDeserializer):
    """测试用的 CSV 反序列化器"""

    def deserialize(self, response, response_type=None):
        return [line.split(",") for line in response.content.splitlines()]


class TestTypedResults:
    """测试带类型的反序列化结果"""

    @pytest.mark.unit
    @responses.activate
    def test_pydantic_model(self, client):
        # Arrange
        responses.add(responses.GET, f"{BASE_URL}/users/1", json={"id": 1, "name": "Alice"})

        # Act
        response = client.execute_typed(RestRequest("users/{id}").add_url_segment("id", 1), User)

        # Assert
        assert response.data == User(id=1, name="Alice")
        assert response.deserialization_error is None
        assert response.is_successful

    @pytest.mark.unit
    @responses.activate
    def test_list_of_models(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])

        response = client.execute_get_typed(RestRequest("users"), list[User])

        assert [user.id for user in response.data] == [1, 2]

    @pytest.mark.unit
    @responses.activate
    def test_untyped_returns_builtin(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", json={"total": 3})

        assert client.execute_typed(RestRequest("users"), None).data == {"total": 3}

    @pytest.mark.unit
    @responses.activate
    def test_content_type_with_parameters(self, client):
        responses.add(
            responses.GET,
            f"{BASE_URL}/users/1",
            body=b'{"id": 1, "name": "a"}',
            content_type="application/json; charset=utf-8",
        )

        assert client.execute_typed(RestRequest("users/1"), User).data.id == 1

    @pytest.mark.unit
    @responses.activate
    def test_vendor_suffix(self, client):
        """application/vnd.x+json 通过 *+json 后缀匹配"""
        responses.add(
            responses.GET,
            f"{BASE_URL}/users/1",
            body=b'{"id": 1, "name": "a"}',
            content_type="application/vnd.example.v2+json",
        )

        assert client.execute_typed(RestRequest("users/1"), User).data.name == "a"

    @pytest.mark.unit
    @responses.activate
    def test_xml(self, client):
        responses.add(
            responses.GET,
            f"{BASE_URL}/users/1",
            body=b"<User><id>1</id><name>Alice</name></User>",
            content_type="application/xml",
        )

        response = client.execute_typed(RestRequest("users/1"), User)

        assert response.data == User(id=1, name="Alice")

    @pytest.mark.unit
    @responses.activate
    def test_post_typed(self, client):
        responses.add(responses.POST, f"{BASE_URL}/users", json={"id": 9, "name": "new"}, status=201)

        response = client.execute_post_typed(RestRequest("users").add_json_body({"name": "new"}), User)

        assert response.status_code == 201
        assert response.data.id == 9


class TestEmptyAndFailedBodies:
    """测试空响应体与解析失败"""

    @pytest.mark.unit
    @responses.activate
    def test_empty_body_gives_none(self, client):
        responses.add(responses.DELETE, f"{BASE_URL}/users/1", status=204)

        response = client.delete(RestRequest("users/1"), User)

        assert response.data is None
        assert response.deserialization_error is None
        assert response.status_code == 204

    @pytest.mark.unit
    @responses.activate
    def test_server_error_with_invalid_body(self, client):
        """500 且响应体无法解析：不抛出，保留原始响应并记录反序列化错误"""
        responses.add(
            responses.GET,
            f"{BASE_URL}/users/1",
            body=b"<html>Internal Error</html>",
            status=500,
            content_type="application/json",
        )

        response = client.execute_typed(RestRequest("users/1"), User)

        assert response.status_code == 500
        assert response.raw_bytes == b"<html>Internal Error</html>"
        assert response.data is None
        assert isinstance(response.deserialization_error, APIClientDeserializationError)
        assert response.response_status is ResponseStatus.ERROR
        assert response.response.response_status is ResponseStatus.COMPLETED

    @pytest.mark.unit
    @responses.activate
    def test_validation_failure_captured(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users/1", json={"id": "not-a-number"})

        response = client.execute_typed(RestRequest("users/1"), User)

        assert response.data is None
        assert isinstance(response.deserialization_error.__cause__, Exception)

    @pytest.mark.unit
    @responses.activate
    def test_failure_raises_with_throw_on_any_error(self):
        responses.add(responses.GET, f"{BASE_URL}/users/1", body=b"{", content_type="application/json")

        with RestClient(BASE_URL, throw_on_any_error=True) as client:
            with pytest.raises(APIClientDeserializationError):
                client.execute_typed(RestRequest("users/1"), User)

    @pytest.mark.unit
    @responses.activate
    def test_transport_error_has_no_data(self, client):
        import requests

        responses.add(responses.GET, f"{BASE_URL}/users/1", body=requests.exceptions.ConnectionError("down"))

        response = client.execute_typed(RestRequest("users/1"), User)

        assert response.data is None
        assert response.response_status is ResponseStatus.ERROR


class TestContentTypeResolution:
    """测试内容类型匹配与默认项"""

    @pytest.mark.unit
    def test_unregistered_type_without_default_raises(self, client):
        client.registry.unregister("application/json")
        response = RestResponse(status_code=200, raw_bytes=b"a,b", content_type="text/csv")

        with pytest.raises(APIClientUnsupportedContentTypeError):
            client.deserialize(response, list)

    @pytest.mark.unit
    def test_default_used_for_unregistered_type(self, client):
        client.registry.unregister("application/json")
        client.registry.register("application/json", None, JsonDeserializer, default=True)
        response = RestResponse(status_code=200, raw_bytes=b"[1]", content_type="text/plain")

        assert client.deserialize(response, list[int]).data == [1]

    @pytest.mark.unit
    def test_missing_content_type_uses_default(self, client):
        response = RestResponse(status_code=200, raw_bytes=b'{"a": 1}')

        assert client.deserialize(response).data == {"a": 1}


class TestHandlers:
    """测试处理器配置对反序列化的影响"""

    @pytest.mark.unit
    @responses.activate
    def test_add_handler(self, client):
        responses.add(responses.GET, f"{BASE_URL}/report", body=b"a,b\nc,d", content_type="text/csv")
        client.add_handler("text/csv", CsvDeserializer)

        response = client.execute_typed(RestRequest("report"), list)

        assert response.data == [["a", "b"], ["c", "d"]]

    @pytest.mark.unit
    @responses.activate
    def test_added_handler_advertised_in_accept(self, client):
        responses.add(responses.GET, f"{BASE_URL}/report")
        client.add_handler("text/csv", CsvDeserializer)

        client.execute(RestRequest("report"))

        assert "text/csv" in responses.calls[0].request.headers["Accept"]

    @pytest.mark.unit
    def test_remove_handler_falls_back_to_default(self, client):
        client.remove_handler("application/xml")
        response = RestResponse(status_code=200, raw_bytes=b"<a/>", content_type="application/xml")

        result = client.deserialize(response, dict)

        # 回退到默认的 JSON 处理器，解析失败被记录
        assert isinstance(result.deserialization_error, APIClientDeserializationError)


class TestBeforeDeserialization:
    """测试 on_before_deserialization 回调"""

    @pytest.mark.unit
    @responses.activate
    def test_callback_can_fix_content_type(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users/1", body=b'{"id": 1, "name": "a"}', content_type="text/plain")
        request = RestRequest("users/1")
        seen = []

        def fix(response):
            seen.append(response.status_code)
            response.content_type = "application/json"

        request.on_before_deserialization = fix
        client.clear_handlers().add_handler("application/json", JsonDeserializer)

        response = client.execute_typed(request, User)

        assert seen == [200]
        assert response.data.id == 1
