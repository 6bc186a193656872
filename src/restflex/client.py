"""HTTP 客户端核心模块

提供声明式的 REST 客户端，支持：
- 客户端级默认参数与请求参数的分层合并
- 按内容类型插拔的序列化器/反序列化器注册表
- 发送前认证器与请求钩子
- 同步执行与可取消的异步执行
- 带类型的响应反序列化
- 传输失败记录在响应中而不是抛出

请求执行顺序:
    before_request 钩子 -> 认证器 -> 参数合并 -> URI 构建 -> 引擎组装与传输
    -> after_request / on_request_error 钩子 -> （可选）反序列化
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

import requests
from requests.auth import AuthBase

from restflex.authenticators import Authenticator, BaseAuthenticator
from restflex.cancellation import CancellationToken
from restflex.constants import (
    CONTENT_TYPE_WILDCARD,
    DEFAULT_DECOMPRESSION_METHODS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    GET_STYLE_METHODS,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_HEAD,
    HTTP_METHOD_MERGE,
    HTTP_METHOD_OPTIONS,
    HTTP_METHOD_PATCH,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
)
from restflex.engine import HttpEngine, RequestConfigurator
from restflex.exceptions import APIClientDeserializationError, APIClientValidationError
from restflex.parameters import (
    Parameter,
    ParameterType,
    add_or_update,
    filter_parameters,
    merge_parameters,
    value_to_text,
)
from restflex.registry import DeserializerFactory, SerializerFactory, SerializerRegistry
from restflex.request import RestRequest
from restflex.response import RestResponse, TypedResponse
from restflex.transport import CancellableHTTPAdapter
from restflex.uri import QueryEncoder, UriBuilder, UrlEncoder
from restflex.utils import (
    DEFAULT_SENSITIVE_HEADERS,
    DEFAULT_SENSITIVE_PARAMS,
    sanitize_headers,
    sanitize_parameters,
    sanitize_url,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RestClient:
    """
    REST 客户端

    类属性提供默认配置，构造函数参数覆盖类属性；通过子类固定配置是推荐用法

    类属性:
        base_url: API 基础地址，资源路径为绝对地址时可为空
        default_timeout: 默认超时时间（秒）
        verify: SSL 证书验证开关
        default_headers: 默认请求头，作为客户端默认参数参与合并
        user_agent: 请求未设置 User-Agent 时使用的值
        follow_redirects: 是否跟随重定向
        max_redirects: 最大重定向次数
        allowed_decompression_methods: 允许透明解压的内容编码
        always_multipart_form_data: 所有携带请求体的请求都使用 multipart/form-data
        authenticator_class: 认证器类或实例
        throw_on_any_error: 传输失败与反序列化失败时直接抛出，而不是记录在响应中

    使用示例:
        >>> class GitHubClient(RestClient):
        ...     base_url = "https://api.github.com"
        ...     default_headers = {"Accept": "application/vnd.github+json"}
        >>> with GitHubClient(authenticator=JwtAuthenticator("token")) as client:
        ...     request = RestRequest("repos/{owner}/{repo}").add_url_segment("owner", "psf").add_url_segment(
        ...         "repo", "requests"
        ...     )
        ...     response = client.execute_typed(request, dict)
        ...     response.data["full_name"]
        'psf/requests'
    """

    # ========== 基础配置 ==========
    # API 基础地址，资源路径中的 {placeholder} 也可以出现在这里
    base_url: str = ""

    # SSL 证书验证开关，也可以是 CA 证书路径
    verify: bool | str = True

    # 默认请求超时时间（秒），同时作为单次调用的截止时间
    default_timeout: float = DEFAULT_TIMEOUT

    # 默认请求头，所有请求都会携带（请求上的同名请求头优先）
    default_headers: dict[str, str] = {}

    user_agent: str = DEFAULT_USER_AGENT

    # ========== 传输配置 ==========
    follow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS

    # 允许透明解压的内容编码，空列表表示不声明 Accept-Encoding，只接受服务器默认编码
    allowed_decompression_methods: tuple[str, ...] = DEFAULT_DECOMPRESSION_METHODS

    always_multipart_form_data: bool = False

    # ========== 安全性配置 ==========
    # 敏感请求头名称集合，这些头在日志中会被脱敏
    sensitive_headers: set[str] = DEFAULT_SENSITIVE_HEADERS

    # 敏感 URL 参数名称集合，这些参数在日志中会被脱敏
    sensitive_params: set[str] = DEFAULT_SENSITIVE_PARAMS

    # 是否启用敏感信息脱敏
    enable_sanitization: bool = True

    # ========== 可插拔组件配置 ==========
    # 认证器类或实例，None 表示匿名请求
    authenticator_class: type[BaseAuthenticator] | BaseAuthenticator | None = None

    # ========== 错误处理 ==========
    throw_on_any_error: bool = False

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        verify: bool | str | None = None,
        authenticator: Authenticator | type[BaseAuthenticator] | None = None,
        credentials: AuthBase | tuple[str, str] | None = None,
        proxies: dict[str, str] | None = None,
        cert: str | tuple[str, str] | None = None,
        user_agent: str | None = None,
        follow_redirects: bool | None = None,
        max_redirects: int | None = None,
        allowed_decompression_methods: list[str] | tuple[str, ...] | None = None,
        always_multipart_form_data: bool | None = None,
        throw_on_any_error: bool | None = None,
        url_encoder: UrlEncoder | None = None,
        query_encoder: QueryEncoder | None = None,
        request_configurator: RequestConfigurator | None = None,
        registry: SerializerRegistry | None = None,
    ):
        """
        初始化 REST 客户端实例

        参数:
            base_url: 基础地址（覆盖类属性）
            headers: 额外的默认请求头，与类属性 default_headers 合并
            timeout: 超时时间（秒）
            verify: SSL 证书验证开关
            authenticator: 认证器类、实例或 (client, request) -> None 的可调用对象
            credentials: 传输层凭据，requests.auth.AuthBase 实例或 (用户名, 密码) 元组
            proxies: 代理配置
            cert: 客户端证书
            user_agent: User-Agent
            follow_redirects: 是否跟随重定向
            max_redirects: 最大重定向次数
            allowed_decompression_methods: 允许透明解压的内容编码
            always_multipart_form_data: 强制使用 multipart/form-data
            throw_on_any_error: 是否直接抛出传输与反序列化错误
            url_encoder: URL 片段编码函数
            query_encoder: 查询参数编码函数
            request_configurator: 发送前的传输请求配置器
            registry: 序列化器注册表，None 时创建预置 JSON/XML 的注册表

        执行步骤:
            1. 合并类属性与构造参数
            2. 解析认证器
            3. 初始化注册表、URI 构建器与默认参数
            4. 创建并配置 requests.Session
            5. 初始化锁与请求钩子

        异常:
            APIClientValidationError: 认证器配置无效时抛出
        """
        # ========== 步骤1: 合并配置 ==========
        self.base_url = base_url if base_url is not None else self.base_url
        self.timeout = timeout if timeout is not None else self.default_timeout
        self.verify = verify if verify is not None else self.verify
        self.user_agent = user_agent or self.user_agent
        self.follow_redirects = follow_redirects if follow_redirects is not None else self.follow_redirects
        self.max_redirects = max_redirects if max_redirects is not None else self.max_redirects
        if allowed_decompression_methods is None:
            allowed_decompression_methods = self.allowed_decompression_methods
        self.allowed_decompression_methods = list(allowed_decompression_methods)
        if always_multipart_form_data is not None:
            self.always_multipart_form_data = always_multipart_form_data
        if throw_on_any_error is not None:
            self.throw_on_any_error = throw_on_any_error
        self.proxies = dict(proxies or {})
        self.cert = cert
        self.credentials = credentials
        self.request_configurator = request_configurator

        # ========== 步骤2: 解析认证器 ==========
        self.authenticator = self._resolve_authenticator(authenticator)

        # ========== 步骤3: 注册表、URI 构建器与默认参数 ==========
        self.registry = registry if registry is not None else SerializerRegistry.with_defaults()
        self.uri_builder = UriBuilder(url_encoder=url_encoder, query_encoder=query_encoder)

        # 默认参数列表写时复制，执行中的请求始终读取一致的快照
        self._default_parameters: list[Parameter] = []
        self._defaults_lock = threading.RLock()
        for name, value in {**self.default_headers, **(headers or {})}.items():
            self.add_default_header(name, value)

        # ========== 步骤4: 创建 Session ==========
        self.session = self._create_session()
        self._session_lock = threading.RLock()

        # ========== 步骤5: 初始化请求钩子 ==========
        self._hooks: dict[str, list[Callable]] = {
            "before_request": [],
            "after_request": [],
            "on_request_error": [],
        }

    # ========== 钩子机制 ==========

    def register_hook(self, hook_name: str, callback: Callable) -> None:
        """
        注册钩子函数

        参数:
            hook_name: 钩子名称，可选值："before_request", "after_request", "on_request_error"
            callback: 钩子回调函数
                - before_request(client, request_id, request) -> RestRequest | None
                - after_request(client, request_id, response) -> RestResponse | None
                - on_request_error(client, request_id, error) -> None

        异常:
            ValueError: 当钩子名称不合法时抛出
        """
        if hook_name not in self._hooks:
            raise ValueError(f"Invalid hook name: {hook_name}. Must be one of: {list(self._hooks.keys())}")
        self._hooks[hook_name].append(callback)
        logger.debug(f"Registered hook: {hook_name}")

    def before_request(self, request_id: str, request: RestRequest) -> RestRequest:
        """
        请求组装前的钩子方法，在认证器之前调用

        子类可以重写此方法，例如添加请求签名、修改请求头

        返回:
            修改后的请求描述
        """
        for hook in self._hooks["before_request"]:
            try:
                result = hook(self, request_id, request)
                if result is not None:
                    request = result
            except Exception as e:
                logger.exception(f"[{request_id}] before_request hook failed, {e}")
        return request

    def after_request(self, request_id: str, response: RestResponse) -> RestResponse:
        """
        传输完成后的钩子方法（包括 4xx/5xx 响应）

        返回:
            修改后的响应
        """
        for hook in self._hooks["after_request"]:
            try:
                result = hook(self, request_id, response)
                if result is not None:
                    response = result
            except Exception:
                logger.exception(f"[{request_id}] after_request hook failed")
        return response

    def on_request_error(self, request_id: str, error: Exception) -> None:
        """传输失败、超时或取消时的钩子方法"""
        for hook in self._hooks["on_request_error"]:
            try:
                hook(self, request_id, error)
            except Exception:
                logger.exception(f"[{request_id}] on_request_error hook failed")

    # ========== 组件解析 ==========

    def _resolve_component(self, component, class_attr_name, base_class, **init_kwargs):
        """
        统一的组件解析方法

        参数:
            component: 传入的组件配置（类或实例），None 时读取同名类属性
            class_attr_name: 类属性名称
            base_class: 基类类型
            **init_kwargs: 实例化时的额外参数

        返回:
            组件实例，未配置时返回 None

        异常:
            APIClientValidationError: 实例化失败或类型不合法
        """
        source = component if component is not None else getattr(self, class_attr_name, None)

        if source is None:
            return None

        if isinstance(source, type) and issubclass(source, base_class):
            try:
                return source(**init_kwargs)
            except Exception as e:
                logger.error(f"Failed to instantiate {source.__name__}: {e}")
                raise APIClientValidationError(f"{class_attr_name} instantiation failed: {e}") from e

        if isinstance(source, base_class):
            return source

        raise APIClientValidationError(f"{class_attr_name} must be a {base_class.__name__} subclass or instance")

    def _resolve_authenticator(self, authenticator) -> Authenticator | None:
        """
        解析认证器配置

        除 BaseAuthenticator 的类和实例外，也接受任意 (client, request) -> None 的可调用对象
        """
        if authenticator is not None and not isinstance(authenticator, type) and callable(authenticator):
            return authenticator
        return self._resolve_component(authenticator, "authenticator_class", BaseAuthenticator)

    def _create_session(self) -> requests.Session:
        """
        创建并配置 requests.Session 对象

        默认请求头不写入 Session，而是作为客户端默认参数参与合并，
        因此请求上的同名请求头总能覆盖它们；挂载可中止的适配器，取消可以打断连接建立与响应头等待
        """
        session = requests.Session()
        adapter = CancellableHTTPAdapter()
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.max_redirects = self.max_redirects
        if self.credentials is not None:
            session.auth = self.credentials
        return session

    # ========== 客户端配置 ==========

    @property
    def default_parameters(self) -> list[Parameter]:
        """客户端默认参数的快照"""
        return list(self._default_parameters)

    def add_default_parameter(
        self,
        name: str,
        value: Any,
        type: ParameterType = ParameterType.GET_OR_POST,
        encode: bool = True,
    ) -> RestClient:
        """添加客户端默认参数，单例类型同名时替换"""
        with self._defaults_lock:
            parameters = list(self._default_parameters)
            add_or_update(parameters, Parameter(name, value, type, encode=encode))
            self._default_parameters = parameters
        return self

    def add_default_header(self, name: str, value: str) -> RestClient:
        return self.add_default_parameter(name, value, ParameterType.HTTP_HEADER)

    def add_default_query_parameter(self, name: str, value: Any) -> RestClient:
        return self.add_default_parameter(name, value, ParameterType.QUERY_STRING)

    def add_default_url_segment(self, name: str, value: Any) -> RestClient:
        return self.add_default_parameter(name, value, ParameterType.URL_SEGMENT)

    def remove_default_parameter(self, name: str, type: ParameterType | None = None) -> RestClient:
        """删除指定名称（及类型）的默认参数"""
        with self._defaults_lock:
            self._default_parameters = [
                p for p in self._default_parameters if not (p.name == name and (type is None or p.type is type))
            ]
        return self

    def use_serializer(
        self,
        serializer_factory: SerializerFactory,
        deserializer_factory: DeserializerFactory | None = None,
        content_types: list[str] | None = None,
    ) -> RestClient:
        """
        使用单一序列化器替换全部处理器，第一个内容类型成为默认项

        参数:
            serializer_factory: 序列化器工厂
            deserializer_factory: 反序列化器工厂
            content_types: 处理的内容类型，None 时使用序列化器声明的 content_type
        """
        content_types = content_types or [serializer_factory().content_type]
        self.registry.clear()
        for index, content_type in enumerate(content_types):
            self.registry.register(content_type, serializer_factory, deserializer_factory, default=index == 0)
        return self

    def add_handler(self, content_type: str, deserializer_factory: DeserializerFactory) -> RestClient:
        """为内容类型注册（或替换）反序列化器，保留已注册的序列化器"""
        existing = self.registry.get(content_type)
        serializer_factory = existing.serializer_factory if existing is not None else None
        self.registry.register(content_type, serializer_factory, deserializer_factory)
        return self

    def remove_handler(self, content_type: str) -> RestClient:
        self.registry.unregister(content_type)
        return self

    def clear_handlers(self) -> RestClient:
        self.registry.clear()
        return self

    def use_url_encoder(self, encoder: UrlEncoder) -> RestClient:
        self.uri_builder.url_encoder = encoder
        return self

    def use_query_encoder(self, encoder: QueryEncoder) -> RestClient:
        self.uri_builder.query_encoder = encoder
        return self

    def configure_transport_request(self, configurator: RequestConfigurator | None) -> RestClient:
        """设置发送前的传输请求配置器，在引擎设置完自身默认值之后调用"""
        self.request_configurator = configurator
        return self

    # ========== URI ==========

    def build_uri(self, request: RestRequest) -> str:
        """构建请求的完整 URI（合并默认参数，不调用认证器）"""
        parameters = merge_parameters(self._default_parameters, request.parameters)
        uri_parameters, _ = self._split_get_or_post(request, parameters, self._is_body_method(request.method))
        return self.uri_builder.build(self.base_url, request.resource, uri_parameters)

    def build_uri_without_query(self, request: RestRequest) -> str:
        """构建不含查询字符串的 URI"""
        parameters = merge_parameters(self._default_parameters, request.parameters)
        return self.uri_builder.build_without_query(self.base_url, request.resource, parameters)

    @staticmethod
    def _is_body_method(method: str) -> bool:
        return method.upper() not in GET_STYLE_METHODS

    @staticmethod
    def _split_get_or_post(
        request: RestRequest, parameters: list[Parameter], with_body: bool
    ) -> tuple[list[Parameter], list[Parameter]]:
        """
        划分 URI 参数与表单参数

        GetOrPost 参数在以下情况移至查询字符串：GET 风格请求，或非 multipart 请求已有显式请求体

        返回:
            (参与 URI 构建的参数, 表单参数)
        """
        multipart = bool(request.files) or request.always_multipart_form_data
        has_body = any(p.type is ParameterType.REQUEST_BODY for p in parameters)
        move_to_query = not with_body or (has_body and not multipart)

        uri_parameters = []
        form_parameters = []
        for p in parameters:
            if p.type in (ParameterType.URL_SEGMENT, ParameterType.QUERY_STRING):
                uri_parameters.append(p)
            elif p.type is ParameterType.GET_OR_POST:
                if move_to_query:
                    uri_parameters.append(dataclasses.replace(p, type=ParameterType.QUERY_STRING))
                else:
                    form_parameters.append(p)
        return uri_parameters, form_parameters

    # ========== 请求组装 ==========

    def generate_request_id(self, suffix=None) -> str:
        """生成全局唯一的请求 ID"""
        timestamp = int(time.time() * 1000)
        short_uuid = uuid.uuid4().hex[:8]
        if suffix is None:
            return f"REQ-{timestamp}-{short_uuid}"
        return f"REQ-{timestamp}-{short_uuid}-{suffix}"

    def _serialize_body(self, body: Parameter) -> tuple[str | bytes, str | None]:
        """
        序列化请求体参数

        str/bytes 视为已序列化的内容原样发送，其余对象按内容类型从注册表解析序列化器

        异常:
            APIClientUnsupportedContentTypeError: 无可用序列化器时抛出
        """
        if isinstance(body.value, (str, bytes, bytearray)):
            value = bytes(body.value) if isinstance(body.value, bytearray) else body.value
            return value, body.content_type
        serializer = self.registry.resolve_serializer(body.content_type)
        return serializer.serialize(body.value), body.content_type or serializer.content_type

    def _accept_header(self) -> str | None:
        """由注册表中可反序列化的内容类型生成 Accept 请求头"""
        accepted = []
        for content_type in self.registry.content_types:
            registration = self.registry.get(content_type)
            if registration.deserializer_factory is None or CONTENT_TYPE_WILDCARD in content_type:
                continue
            accepted.append(content_type)
        return ", ".join(accepted) or None

    def _prepare(self, request_id: str, request: RestRequest, http_method: str, with_body: bool) -> HttpEngine:
        """
        组装单次调用的执行引擎

        执行步骤:
            1. 调用 before_request 钩子与认证器
            2. 合并默认参数与请求参数
            3. 构建 URI（URL 片段、查询参数以及移至查询字符串的 GetOrPost 参数）
            4. 序列化请求体，补全 Accept 与 User-Agent 请求头
            5. 将请求头、Cookie、表单参数、文件、写入器与传输配置交给引擎

        异常:
            APIClientMissingUrlSegmentError: URL 片段无法解析
            APIClientUnsupportedContentTypeError: 请求体内容类型没有可用的序列化器
            APIClientValidationError: 无法得到绝对地址
        """
        # 步骤1: 钩子与认证器
        request = self.before_request(request_id, request)
        if self.authenticator is not None:
            self.authenticator(self, request)

        # 步骤2: 合并参数
        parameters = merge_parameters(self._default_parameters, request.parameters)

        # 步骤3: 构建 URI
        uri_parameters, form_parameters = self._split_get_or_post(request, parameters, with_body)
        url = self.uri_builder.build(self.base_url, request.resource, uri_parameters)

        engine = HttpEngine(self.session, self._session_lock, request_id)
        engine.url = url
        engine.parameters = form_parameters
        engine.files = list(request.files)
        engine.headers = [
            (p.name, value_to_text(p.value)) for p in filter_parameters(parameters, ParameterType.HTTP_HEADER)
        ]
        engine.cookies = [(p.name, value_to_text(p.value)) for p in filter_parameters(parameters, ParameterType.COOKIE)]

        # 步骤4: 请求体与协商请求头
        body = next((p for p in parameters if p.type is ParameterType.REQUEST_BODY), None)
        if body is not None:
            engine.request_body, engine.request_content_type = self._serialize_body(body)

        header_names = {name.lower() for name, _ in engine.headers}
        if "accept" not in header_names and (accept := self._accept_header()):
            engine.headers.append(("Accept", accept))
        if "user-agent" not in header_names and self.user_agent:
            engine.headers.append(("User-Agent", self.user_agent))

        # 步骤5: 传输配置
        engine.always_multipart_form_data = request.always_multipart_form_data or self.always_multipart_form_data
        engine.allowed_decompression_methods = list(self.allowed_decompression_methods)
        engine.response_writer = request.response_writer
        engine.advanced_response_writer = request.advanced_response_writer
        engine.request_configurator = self.request_configurator
        engine.timeout = request.timeout if request.timeout is not None else self.timeout
        engine.verify = self.verify
        engine.proxies = dict(self.proxies)
        engine.cert = self.cert
        engine.follow_redirects = self.follow_redirects

        self._log_request(request_id, http_method, url, engine.headers, parameters)
        return engine

    def _log_request(
        self,
        request_id: str,
        http_method: str,
        url: str,
        headers: list[tuple[str, str]],
        parameters: list[Parameter],
    ) -> None:
        safe_url = sanitize_url(url, self.sensitive_params) if self.enable_sanitization else url
        logger.info(f"[{request_id}] Starting {http_method} request to {safe_url}")

        if logger.isEnabledFor(logging.DEBUG):
            if self.enable_sanitization:
                logger.debug(f"[{request_id}] Request headers: {sanitize_headers(headers, self.sensitive_headers)}")
                described = sanitize_parameters(parameters, self.sensitive_headers, self.sensitive_params)
                logger.debug(f"[{request_id}] Request parameters: {described}")
            else:
                logger.debug(f"[{request_id}] Request headers: {dict(headers)}")
                logger.debug(f"[{request_id}] Request parameters: {[str(p) for p in parameters]}")

    def _complete(self, request_id: str, request: RestRequest, response: RestResponse) -> RestResponse:
        """记录结果、调用钩子，按需抛出捕获的错误"""
        response.request = request
        if response.error_exception is not None:
            self.on_request_error(request_id, response.error_exception)
            if self.throw_on_any_error:
                raise response.error_exception
            return response

        logger.info(f"[{request_id}] Received {response.status_code} response")
        return self.after_request(request_id, response)

    def _resolve_method(self, request: RestRequest, http_method: str | None) -> str:
        return (http_method or request.method).upper()

    # ========== 同步执行 ==========

    def execute(self, request: RestRequest, method: str | None = None) -> RestResponse:
        """
        执行请求

        参数:
            request: 请求描述
            method: HTTP 方法，None 时使用 request.method

        返回:
            RestResponse；传输失败、超时记录在 response_status 与 error_exception 中

        异常:
            APIClientMissingUrlSegmentError / APIClientUnsupportedContentTypeError /
            APIClientValidationError: 配置错误，在任何网络活动之前抛出
        """
        http_method = self._resolve_method(request, method)
        return self._execute(request, http_method, self._is_body_method(http_method))

    def execute_as_get(self, request: RestRequest, http_method: str) -> RestResponse:
        """以 GET 风格（不携带请求体）执行任意方法"""
        return self._execute(request, http_method.upper(), with_body=False)

    def execute_as_post(self, request: RestRequest, http_method: str) -> RestResponse:
        """以 POST 风格（携带请求体）执行任意方法"""
        return self._execute(request, http_method.upper(), with_body=True)

    def execute_get(self, request: RestRequest) -> RestResponse:
        return self.execute(request, HTTP_METHOD_GET)

    def execute_post(self, request: RestRequest) -> RestResponse:
        return self.execute(request, HTTP_METHOD_POST)

    def _execute(
        self,
        request: RestRequest,
        http_method: str,
        with_body: bool,
        token: CancellationToken | None = None,
    ) -> RestResponse:
        request_id = self.generate_request_id()
        engine = self._prepare(request_id, request, http_method, with_body)
        response = engine.perform(http_method, with_body, token)
        return self._complete(request_id, request, response)

    def execute_typed(
        self, request: RestRequest, response_type: type[T] | Any, method: str | None = None
    ) -> TypedResponse[T]:
        """执行请求并将响应体反序列化为 response_type"""
        return self.deserialize(self.execute(request, method), response_type)

    def execute_as_get_typed(
        self, request: RestRequest, http_method: str, response_type: type[T] | Any
    ) -> TypedResponse[T]:
        return self.deserialize(self.execute_as_get(request, http_method), response_type)

    def execute_as_post_typed(
        self, request: RestRequest, http_method: str, response_type: type[T] | Any
    ) -> TypedResponse[T]:
        return self.deserialize(self.execute_as_post(request, http_method), response_type)

    def execute_get_typed(self, request: RestRequest, response_type: type[T] | Any) -> TypedResponse[T]:
        return self.execute_typed(request, response_type, HTTP_METHOD_GET)

    def execute_post_typed(self, request: RestRequest, response_type: type[T] | Any) -> TypedResponse[T]:
        return self.execute_typed(request, response_type, HTTP_METHOD_POST)

    # ========== 异步执行 ==========

    async def execute_async(
        self,
        request: RestRequest,
        method: str | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> RestResponse:
        """
        异步执行请求

        参数:
            request: 请求描述
            method: HTTP 方法，None 时使用 request.method
            cancellation_token: 取消令牌，取消后返回 ABORTED 状态的响应

        使用示例:
            >>> token = CancellationToken()
            >>> task = asyncio.create_task(client.execute_async(request, cancellation_token=token))
            >>> token.cancel()
            >>> (await task).response_status
            <ResponseStatus.ABORTED: 'aborted'>
        """
        http_method = self._resolve_method(request, method)
        return await self._execute_async(request, http_method, self._is_body_method(http_method), cancellation_token)

    async def execute_as_get_async(
        self, request: RestRequest, http_method: str, cancellation_token: CancellationToken | None = None
    ) -> RestResponse:
        return await self._execute_async(request, http_method.upper(), False, cancellation_token)

    async def execute_as_post_async(
        self, request: RestRequest, http_method: str, cancellation_token: CancellationToken | None = None
    ) -> RestResponse:
        return await self._execute_async(request, http_method.upper(), True, cancellation_token)

    async def execute_get_async(
        self, request: RestRequest, cancellation_token: CancellationToken | None = None
    ) -> RestResponse:
        return await self.execute_async(request, HTTP_METHOD_GET, cancellation_token)

    async def execute_post_async(
        self, request: RestRequest, cancellation_token: CancellationToken | None = None
    ) -> RestResponse:
        return await self.execute_async(request, HTTP_METHOD_POST, cancellation_token)

    async def _execute_async(
        self,
        request: RestRequest,
        http_method: str,
        with_body: bool,
        token: CancellationToken | None = None,
    ) -> RestResponse:
        request_id = self.generate_request_id()
        engine = self._prepare(request_id, request, http_method, with_body)
        response = await engine.perform_async(http_method, with_body, token)
        return self._complete(request_id, request, response)

    async def execute_typed_async(
        self,
        request: RestRequest,
        response_type: type[T] | Any,
        method: str | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> TypedResponse[T]:
        response = await self.execute_async(request, method, cancellation_token)
        return self.deserialize(response, response_type)

    async def execute_get_typed_async(
        self,
        request: RestRequest,
        response_type: type[T] | Any,
        cancellation_token: CancellationToken | None = None,
    ) -> TypedResponse[T]:
        return await self.execute_typed_async(request, response_type, HTTP_METHOD_GET, cancellation_token)

    async def execute_post_typed_async(
        self,
        request: RestRequest,
        response_type: type[T] | Any,
        cancellation_token: CancellationToken | None = None,
    ) -> TypedResponse[T]:
        return await self.execute_typed_async(request, response_type, HTTP_METHOD_POST, cancellation_token)

    # ========== HTTP 动词 ==========
    # 指定 response_type 时返回 TypedResponse，否则返回 RestResponse

    def _call(self, request: RestRequest, http_method: str, response_type: Any):
        response = self.execute(request, http_method)
        return response if response_type is None else self.deserialize(response, response_type)

    async def _call_async(
        self, request: RestRequest, http_method: str, response_type: Any, token: CancellationToken | None
    ):
        response = await self.execute_async(request, http_method, token)
        return response if response_type is None else self.deserialize(response, response_type)

    def get(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_GET, response_type)

    def post(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_POST, response_type)

    def put(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_PUT, response_type)

    def patch(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_PATCH, response_type)

    def delete(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_DELETE, response_type)

    def head(self, request: RestRequest):
        return self._call(request, HTTP_METHOD_HEAD, None)

    def options(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_OPTIONS, response_type)

    def merge(self, request: RestRequest, response_type: Any = None):
        return self._call(request, HTTP_METHOD_MERGE, response_type)

    async def get_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_GET, response_type, cancellation_token)

    async def post_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_POST, response_type, cancellation_token)

    async def put_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_PUT, response_type, cancellation_token)

    async def patch_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_PATCH, response_type, cancellation_token)

    async def delete_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_DELETE, response_type, cancellation_token)

    async def head_async(self, request: RestRequest, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_HEAD, None, cancellation_token)

    async def options_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_OPTIONS, response_type, cancellation_token)

    async def merge_async(self, request: RestRequest, response_type: Any = None, cancellation_token=None):
        return await self._call_async(request, HTTP_METHOD_MERGE, response_type, cancellation_token)

    # ========== 反序列化 ==========

    def deserialize(self, response: RestResponse, response_type: type[T] | Any = None) -> TypedResponse[T]:
        """
        将响应体反序列化为目标类型

        参数:
            response: 原始响应
            response_type: 目标类型，None 时返回解析后的内置类型

        返回:
            TypedResponse；无响应体时 data 为 None，解析失败时携带 deserialization_error，
            原始响应始终保留

        执行步骤:
            1. 调用请求上的 on_before_deserialization 回调
            2. 无响应体（含传输失败、使用写入器）时直接返回
            3. 按响应内容类型从注册表解析反序列化器
            4. 解析响应体，失败时包装为 APIClientDeserializationError

        异常:
            APIClientUnsupportedContentTypeError: 响应内容类型无匹配项且无默认项
        """
        request = response.request
        if request is not None and request.on_before_deserialization is not None:
            request.on_before_deserialization(response)

        if not response.raw_bytes:
            return TypedResponse(response)

        deserializer = self.registry.resolve_deserializer(response.content_type)
        try:
            data = deserializer.deserialize(response, response_type)
        except Exception as e:
            type_name = getattr(response_type, "__name__", repr(response_type))
            error = APIClientDeserializationError(
                f"Failed to deserialize {response.content_type or 'response'} body as {type_name}: {e}",
                content_type=response.content_type,
                target_type=response_type,
            )
            error.__cause__ = e
            logger.error(f"Response deserialization failed (HTTP {response.status_code}): {error}")
            if self.throw_on_any_error:
                raise error
            return TypedResponse(response, deserialization_error=error)

        return TypedResponse(response, data=data)

    # ========== 下载 ==========

    def download_data(self, request: RestRequest, throw_on_error: bool = False) -> bytes | None:
        """
        执行请求并返回原始响应体

        参数:
            request: 请求描述
            throw_on_error: 传输失败时是否抛出；False 时返回 None

        异常:
            APIClientNetworkError / APIClientTimeoutError / APIClientCancelledError:
                throw_on_error 为 True 且传输失败时抛出
        """
        return self._download_result(self.execute(request), throw_on_error)

    async def download_data_async(
        self,
        request: RestRequest,
        throw_on_error: bool = False,
        cancellation_token: CancellationToken | None = None,
    ) -> bytes | None:
        response = await self.execute_async(request, cancellation_token=cancellation_token)
        return self._download_result(response, throw_on_error)

    @staticmethod
    def _download_result(response: RestResponse, throw_on_error: bool) -> bytes | None:
        if response.error_exception is not None:
            if throw_on_error:
                raise response.error_exception
            return None
        return response.raw_bytes

    # ========== 生命周期 ==========

    def close(self):
        """关闭 Session 会话，释放连接池资源"""
        if self.session:
            self.session.close()
            logger.info("Session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
