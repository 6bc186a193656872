"""
HTTP 客户端异常模块

定义所有 API 客户端相关的异常类，提供统一的错误处理机制

传播策略:
    - 配置类错误（URL 片段缺失、内容类型不受支持、请求体冲突）在发起网络请求前直接抛出
    - 传输类错误（连接失败、超时、取消）与反序列化错误被捕获并记录到响应对象中
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from restflex.response import RestResponse


class APIClientError(Exception):
    """
    API 客户端异常基类

    所有自定义异常的基类，用于统一捕获和处理客户端相关错误
    """


class APIClientValidationError(APIClientError):
    """
    输入验证异常

    当请求描述、客户端配置等输入数据验证失败时抛出此异常
    """


class APIClientMissingUrlSegmentError(APIClientValidationError):
    """
    URL 片段解析异常

    当资源路径中的 {placeholder} 没有对应的 URL_SEGMENT 参数，
    或 URL_SEGMENT 参数在资源路径中找不到对应占位符时抛出

    参数:
        message: 错误描述信息
        segment_name: 出错的片段名称

    属性:
        segment_name: 出错的片段名称
    """

    def __init__(self, message: str, segment_name: str | None = None):
        super().__init__(message)
        self.segment_name = segment_name


class APIClientUnsupportedContentTypeError(APIClientValidationError):
    """
    内容类型不受支持异常

    当序列化器注册表中既没有匹配项也没有默认项时抛出

    属性:
        content_type: 无法解析的内容类型
    """

    def __init__(self, message: str, content_type: str | None = None):
        super().__init__(message)
        self.content_type = content_type


class APIClientNetworkError(APIClientError):
    """
    网络传输异常

    当连接失败、DNS 解析失败、TLS 校验失败、协议错误等网络层面问题发生时使用。
    引擎不会直接抛出此异常，而是将其记录在 RestResponse.error_exception 中

    属性:
        cause: 底层传输库抛出的原始异常
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class APIClientTimeoutError(APIClientNetworkError):
    """
    请求超时异常

    当请求执行时间超过设定的超时时间时使用
    """


class APIClientCancelledError(APIClientError):
    """
    请求取消异常

    调用方通过取消令牌主动放弃请求时使用，与网络失败相互独立，
    便于区分"我放弃了"与"网络出错了"
    """


class APIClientDeserializationError(APIClientError):
    """
    反序列化异常

    当响应体无法解析为目标类型时使用，记录在 TypedResponse.error_exception 中

    属性:
        content_type: 响应声明的内容类型
        target_type: 期望的目标类型
    """

    def __init__(self, message: str, content_type: str | None = None, target_type: type | None = None):
        super().__init__(message)
        self.content_type = content_type
        self.target_type = target_type


class APIClientHTTPError(APIClientError):
    """
    HTTP 错误响应异常

    由 RestResponse.raise_for_status() 在状态码为 4xx 或 5xx 时抛出

    参数:
        message: 错误描述信息
        response: 原始的 RestResponse 对象（可选）

    属性:
        response: 保存原始响应对象，便于获取详细错误信息
        status_code: HTTP 状态码
    """

    def __init__(self, message: str, response: RestResponse | None = None):
        super().__init__(message)
        self.response = response
        self.status_code = response.status_code if response is not None else None
