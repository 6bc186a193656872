"""
测试 restflex.authenticators 模块

- 内置认证器写入的请求头/参数
- 重复调用结果不变
- 认证器组合
"""

import base64

import pytest

from restflex.authenticators import (
    HttpBasicAuthenticator,
    JwtAuthenticator,
    OAuth2AuthorizationRequestHeaderAuthenticator,
    OAuth2UriQueryParameterAuthenticator,
    SimpleAuthenticator,
    chain_authenticators,
)
from restflex.parameters import ParameterType
from restflex.request import RestRequest


def snapshot(request):
    return [(p.name, p.value, p.type) for p in request.parameters]


class TestBuiltinAuthenticators:
    """测试内置认证器"""

    @pytest.mark.unit
    def test_http_basic(self):
        request = RestRequest("users")

        HttpBasicAuthenticator("user", "pass")(None, request)

        expected = "Basic " + base64.b64encode(b"user:pass").decode()
        assert snapshot(request) == [("Authorization", expected, ParameterType.HTTP_HEADER)]

    @pytest.mark.unit
    def test_jwt_strips_bearer_prefix(self):
        request = RestRequest("users")

        JwtAuthenticator("Bearer abc")(None, request)

        assert request.parameters[0].value == "Bearer abc"

    @pytest.mark.unit
    def test_jwt_token_refresh(self):
        """刷新令牌后使用新令牌"""
        authenticator = JwtAuthenticator("old")
        request = RestRequest("users")
        authenticator(None, request)

        authenticator.set_bearer_token("new")
        authenticator(None, request)

        assert snapshot(request) == [("Authorization", "Bearer new", ParameterType.HTTP_HEADER)]

    @pytest.mark.unit
    def test_simple_authenticator(self):
        request = RestRequest("login")

        SimpleAuthenticator("user", "alice", "pwd", "secret")(None, request)

        assert snapshot(request) == [
            ("user", "alice", ParameterType.GET_OR_POST),
            ("pwd", "secret", ParameterType.GET_OR_POST),
        ]

    @pytest.mark.unit
    def test_oauth2_query_parameter(self):
        request = RestRequest("me")

        OAuth2UriQueryParameterAuthenticator("tok")(None, request)

        assert snapshot(request) == [("oauth_token", "tok", ParameterType.QUERY_STRING)]

    @pytest.mark.unit
    def test_oauth2_header_token_type(self):
        request = RestRequest("me")

        OAuth2AuthorizationRequestHeaderAuthenticator("tok", token_type="Bearer")(None, request)

        assert request.parameters[0].value == "Bearer tok"


class TestIdempotence:
    """对已认证的请求重复调用，结果与调用一次相同"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "authenticator",
        [
            HttpBasicAuthenticator("user", "pass"),
            JwtAuthenticator("token"),
            SimpleAuthenticator("u", "alice", "p", "secret"),
            OAuth2UriQueryParameterAuthenticator("tok"),
            OAuth2AuthorizationRequestHeaderAuthenticator("tok"),
        ],
    )
    def test_twice_equals_once(self, authenticator):
        # Arrange
        once = RestRequest("users").add_header("Accept", "application/json")
        twice = RestRequest("users").add_header("Accept", "application/json")

        # Act
        authenticator(None, once)
        authenticator(None, twice)
        authenticator(None, twice)

        # Assert
        assert snapshot(once) == snapshot(twice)


class TestChain:
    """测试认证器组合"""

    @pytest.mark.unit
    def test_chain_runs_in_order(self):
        calls = []
        chained = chain_authenticators(
            lambda client, request: calls.append("first"),
            lambda client, request: calls.append("second"),
        )

        chained(None, RestRequest())

        assert calls == ["first", "second"]

    @pytest.mark.unit
    def test_chain_with_builtin(self):
        request = RestRequest()
        chained = chain_authenticators(
            JwtAuthenticator("token"),
            lambda client, req: req.add_header("X-Tenant", "acme"),
        )

        chained(None, request)

        assert {p.name for p in request.parameters} == {"Authorization", "X-Tenant"}
