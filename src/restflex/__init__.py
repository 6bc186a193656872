"""
restflex 声明式 REST 客户端

以声明方式描述请求（基础地址、资源路径、参数、请求体、认证），
获得按内容类型反序列化的带类型响应

主要组件:
    - RestClient: 客户端，负责参数合并、URI 构建、执行与反序列化
    - RestRequest: 请求描述
    - RestResponse / TypedResponse: 响应
    - SerializerRegistry: 内容类型到序列化器/反序列化器的注册表
    - 认证器: HttpBasicAuthenticator, JwtAuthenticator 等
    - 写入器: FileResponseWriter, DownloadResponseWriter
    - 异常类: APIClientError 及其子类

使用示例:
    >>> from restflex import RestClient, RestRequest
    >>>
    >>> class MyAPIClient(RestClient):
    ...     base_url = "https://api.example.com"
    >>>
    >>> client = MyAPIClient()
    >>> request = RestRequest("users/{id}").add_url_segment("id", 42)
    >>> response = client.execute_typed(request, dict)
"""

# 核心客户端
from restflex.client import RestClient

# 请求与响应
from restflex.request import RestRequest
from restflex.response import ResponseStatus, RestResponse, TypedResponse

# 参数
from restflex.parameters import FileParameter, Parameter, ParameterType, merge_parameters

# 序列化
from restflex.registry import SerializerRegistration, SerializerRegistry
from restflex.serializer import BaseSerializer, DataFormat, JsonSerializer, XmlSerializer
from restflex.deserializer import BaseDeserializer, JsonDeserializer, XmlDeserializer

# URI 构建
from restflex.uri import UriBuilder

# 认证器
from restflex.authenticators import (
    BaseAuthenticator,
    HttpBasicAuthenticator,
    JwtAuthenticator,
    OAuth2AuthorizationRequestHeaderAuthenticator,
    OAuth2UriQueryParameterAuthenticator,
    SimpleAuthenticator,
    chain_authenticators,
)

# 执行引擎与取消
from restflex.cancellation import CancellationToken
from restflex.engine import HttpEngine, TransportRequest
from restflex.transport import CancellableHTTPAdapter

# 响应写入器
from restflex.writers import DownloadResponseWriter, FileResponseWriter

# 异常类
from restflex.exceptions import (
    APIClientCancelledError,
    APIClientDeserializationError,
    APIClientError,
    APIClientHTTPError,
    APIClientMissingUrlSegmentError,
    APIClientNetworkError,
    APIClientTimeoutError,
    APIClientUnsupportedContentTypeError,
    APIClientValidationError,
)

# 工具函数
from restflex.utils import sanitize_headers, sanitize_parameters, sanitize_url

# 常量配置
from restflex.constants import (
    DEFAULT_TIMEOUT,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_HEAD,
    HTTP_METHOD_MERGE,
    HTTP_METHOD_OPTIONS,
    HTTP_METHOD_PATCH,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
)

__all__ = [
    # 核心类
    "RestClient",
    "RestRequest",
    "RestResponse",
    "TypedResponse",
    "ResponseStatus",
    # 参数
    "Parameter",
    "ParameterType",
    "FileParameter",
    "merge_parameters",
    # 序列化
    "SerializerRegistry",
    "SerializerRegistration",
    "BaseSerializer",
    "JsonSerializer",
    "XmlSerializer",
    "BaseDeserializer",
    "JsonDeserializer",
    "XmlDeserializer",
    "DataFormat",
    # URI
    "UriBuilder",
    # 认证器
    "BaseAuthenticator",
    "HttpBasicAuthenticator",
    "JwtAuthenticator",
    "SimpleAuthenticator",
    "OAuth2UriQueryParameterAuthenticator",
    "OAuth2AuthorizationRequestHeaderAuthenticator",
    "chain_authenticators",
    # 执行
    "CancellationToken",
    "HttpEngine",
    "TransportRequest",
    "CancellableHTTPAdapter",
    # 写入器
    "FileResponseWriter",
    "DownloadResponseWriter",
    # 异常
    "APIClientError",
    "APIClientValidationError",
    "APIClientMissingUrlSegmentError",
    "APIClientUnsupportedContentTypeError",
    "APIClientNetworkError",
    "APIClientTimeoutError",
    "APIClientCancelledError",
    "APIClientDeserializationError",
    "APIClientHTTPError",
    # 工具函数
    "sanitize_headers",
    "sanitize_url",
    "sanitize_parameters",
    # 常量
    "DEFAULT_TIMEOUT",
    "HTTP_METHOD_GET",
    "HTTP_METHOD_POST",
    "HTTP_METHOD_PUT",
    "HTTP_METHOD_DELETE",
    "HTTP_METHOD_PATCH",
    "HTTP_METHOD_HEAD",
    "HTTP_METHOD_OPTIONS",
    "HTTP_METHOD_MERGE",
]

__version__ = "0.1.0"
