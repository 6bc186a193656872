"""
认证器模块

认证器是单一能力：authenticate(client, request)，在请求即将组装发送之前调用，
可原地添加或替换请求上的请求头/参数。任意 (client, request) -> None 的可调用对象
都可以作为认证器使用；不设置认证器（匿名请求）是合法状态

内置认证器全部使用"添加或替换"语义，对同一请求重复调用结果不变

使用示例:
    >>> client = RestClient("https://api.example.com", authenticator=JwtAuthenticator("token"))
    >>> client.authenticator = chain_authenticators(
    ...     HttpBasicAuthenticator("user", "pass"),
    ...     lambda client, request: request.add_header("X-Tenant", "acme"),
    ... )
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from collections.abc import Callable

from restflex.parameters import Parameter, ParameterType
from restflex.request import RestRequest

Authenticator = Callable[["RestClient", RestRequest], None]  # noqa: F821


class BaseAuthenticator(ABC):
    """认证器基类，实例可直接作为认证器调用"""

    @abstractmethod
    def authenticate(self, client: RestClient, request: RestRequest) -> None:  # noqa: F821
        """
        对请求进行认证

        参数:
            client: 发起请求的客户端，可用于读取配置或复用缓存的令牌
            request: 待发送的请求描述（原地修改）
        """

    def __call__(self, client: RestClient, request: RestRequest) -> None:  # noqa: F821
        self.authenticate(client, request)


class HttpBasicAuthenticator(BaseAuthenticator):
    """HTTP Basic 认证，设置 Authorization: Basic <base64(username:password)>"""

    def __init__(self, username: str, password: str, encoding: str = "utf-8"):
        token = base64.b64encode(f"{username}:{password}".encode(encoding)).decode("ascii")
        self._header_value = f"Basic {token}"

    def authenticate(self, client, request):
        request.add_or_update_parameter(Parameter("Authorization", self._header_value, ParameterType.HTTP_HEADER))


class JwtAuthenticator(BaseAuthenticator):
    """Bearer 令牌认证，设置 Authorization: Bearer <token>"""

    def __init__(self, access_token: str):
        self.set_bearer_token(access_token)

    def set_bearer_token(self, access_token: str) -> None:
        """更新令牌（例如刷新后），之后的请求使用新令牌"""
        access_token = access_token.strip()
        if access_token.lower().startswith("bearer "):
            access_token = access_token[len("bearer ") :]
        self._header_value = f"Bearer {access_token}"

    def authenticate(self, client, request):
        request.add_or_update_parameter(Parameter("Authorization", self._header_value, ParameterType.HTTP_HEADER))


class SimpleAuthenticator(BaseAuthenticator):
    """将用户名与密码作为 GetOrPost 参数发送"""

    def __init__(self, username_key: str, username: str, password_key: str, password: str):
        self.username_key = username_key
        self.username = username
        self.password_key = password_key
        self.password = password

    def authenticate(self, client, request):
        request.add_or_update_parameter(Parameter(self.username_key, self.username, ParameterType.GET_OR_POST))
        request.add_or_update_parameter(Parameter(self.password_key, self.password, ParameterType.GET_OR_POST))


class OAuth2UriQueryParameterAuthenticator(BaseAuthenticator):
    """以 oauth_token 查询参数携带 OAuth2 访问令牌"""

    def __init__(self, access_token: str):
        self.access_token = access_token

    def authenticate(self, client, request):
        request.add_or_update_parameter(Parameter("oauth_token", self.access_token, ParameterType.QUERY_STRING))


class OAuth2AuthorizationRequestHeaderAuthenticator(BaseAuthenticator):
    """
    以 Authorization 请求头携带 OAuth2 访问令牌

    参数:
        access_token: 访问令牌
        token_type: 令牌类型，默认为 "OAuth"
    """

    def __init__(self, access_token: str, token_type: str = "OAuth"):
        self._header_value = f"{token_type} {access_token}"

    def authenticate(self, client, request):
        request.add_or_update_parameter(Parameter("Authorization", self._header_value, ParameterType.HTTP_HEADER))


def chain_authenticators(*authenticators: Authenticator) -> Authenticator:
    """将多个认证器按顺序组合为一个认证器"""

    def authenticate(client, request: RestRequest) -> None:
        for authenticator in authenticators:
            authenticator(client, request)

    return authenticate
