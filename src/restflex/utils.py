"""工具函数模块

提供日志输出前的敏感信息脱敏功能
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from restflex.parameters import Parameter, ParameterType

# 默认敏感请求头名称集合
DEFAULT_SENSITIVE_HEADERS = {
    "Authorization",
    "Proxy-Authorization",
    "Cookie",
    "Set-Cookie",
    "X-API-Key",
    "X-Auth-Token",
    "X-Access-Token",
}

# 默认敏感URL参数名称集合
DEFAULT_SENSITIVE_PARAMS = {
    "token",
    "password",
    "secret",
    "key",
    "api_key",
    "apikey",
    "access_token",
    "oauth_token",
    "auth_token",
    "pwd",
}

DEFAULT_MASK = "***"


def sanitize_headers(
    headers: Mapping[str, str] | Iterable[tuple[str, str]],
    sensitive_keys: set[str] | None = None,
    mask: str = DEFAULT_MASK,
) -> dict[str, str]:
    """
    脱敏请求头中的敏感信息

    参数:
        headers: 原始请求头（字典或 (name, value) 序列）
        sensitive_keys: 敏感键名集合，不区分大小写。None 时使用默认集合
        mask: 脱敏后的替换字符串

    返回:
        脱敏后的请求头字典（新字典，不修改原数据）

    示例:
        >>> sanitize_headers({"Authorization": "Bearer token123", "Content-Type": "application/json"})
        {"Authorization": "***", "Content-Type": "application/json"}
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_HEADERS

    sensitive_keys_lower = {k.lower() for k in sensitive_keys}
    items = headers.items() if isinstance(headers, Mapping) else headers
    return {k: mask if k.lower() in sensitive_keys_lower else v for k, v in items}


def sanitize_url(
    url: str,
    sensitive_params: set[str] | None = None,
    mask: str = DEFAULT_MASK,
) -> str:
    """
    脱敏 URL 中的敏感查询参数，保持参数顺序

    示例:
        >>> sanitize_url("https://api.example.com/user?token=abc123&page=1")
        "https://api.example.com/user?token=%2A%2A%2A&page=1"
    """
    if sensitive_params is None:
        sensitive_params = DEFAULT_SENSITIVE_PARAMS

    parsed = urlsplit(url)
    if not parsed.query:
        return url

    sensitive_params_lower = {p.lower() for p in sensitive_params}
    pairs = [
        (key, mask if key.lower() in sensitive_params_lower else value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
    ]
    return urlunsplit(parsed._replace(query=urlencode(pairs)))


def sanitize_parameters(
    parameters: Iterable[Parameter],
    sensitive_headers: set[str] | None = None,
    sensitive_params: set[str] | None = None,
    mask: str = DEFAULT_MASK,
) -> list[str]:
    """
    生成用于日志输出的参数描述列表，敏感请求头与参数值被替换为 mask，请求体只输出内容类型

    返回:
        形如 "http_header:Authorization=***" 的字符串列表
    """
    if sensitive_headers is None:
        sensitive_headers = DEFAULT_SENSITIVE_HEADERS
    if sensitive_params is None:
        sensitive_params = DEFAULT_SENSITIVE_PARAMS

    headers_lower = {h.lower() for h in sensitive_headers}
    params_lower = {p.lower() for p in sensitive_params}

    described = []
    for p in parameters:
        if p.type is ParameterType.REQUEST_BODY:
            described.append(f"{p.type.value}:<{p.content_type or 'raw'}>")
            continue
        sensitive = headers_lower if p.type in (ParameterType.HTTP_HEADER, ParameterType.COOKIE) else params_lower
        value = mask if p.name.lower() in sensitive else p.value
        described.append(f"{p.type.value}:{p.name}={value}")
    return described
