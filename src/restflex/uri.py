"""
URI 构建模块

将基础地址、资源路径模板与查询/URL 片段参数组合成最终请求 URI

构建步骤:
    1. 使用同名 URL_SEGMENT 参数替换资源路径中的 {name} 占位符（经 URL 编码器编码）
    2. 占位符缺少对应参数，或参数找不到对应占位符时抛出 APIClientMissingUrlSegmentError
    3. 按参数顺序追加查询字符串，空值参数输出为 "name="
    4. 拼接基础地址与资源路径，两者之间保留且仅保留一个斜杠
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from urllib.parse import quote, quote_plus

from restflex.constants import DEFAULT_ENCODING
from restflex.exceptions import APIClientMissingUrlSegmentError, APIClientValidationError
from restflex.parameters import Parameter, ParameterType, value_to_text

UrlEncoder = Callable[[str], str]
QueryEncoder = Callable[[str, str], str]

# 匹配 {variable_name} 格式的占位符
PLACEHOLDER_PATTERN = re.compile(r"\{([\w.\-]+)\}")


def default_url_encoder(value: str) -> str:
    """URL 片段默认编码：除非保留字符外全部百分号编码"""
    return quote(value, safe="")


def default_query_encoder(value: str, encoding: str = DEFAULT_ENCODING) -> str:
    """查询参数默认编码：空格编码为 "+"，其余同表单编码"""
    return quote_plus(value, safe="", encoding=encoding)


class UriBuilder:
    """
    URI 构建器

    编码策略可插拔，默认对 URL 片段使用 quote、对查询参数使用 quote_plus

    参数:
        url_encoder: URL 片段编码函数 (value) -> str
        query_encoder: 查询参数编码函数 (value, encoding) -> str
        encoding: 查询参数字符集

    使用示例:
        >>> builder = UriBuilder()
        >>> builder.build(
        ...     "http://x/api",
        ...     "users/{id}",
        ...     [Parameter("id", 42, ParameterType.URL_SEGMENT), Parameter("active", True, ParameterType.QUERY_STRING)],
        ... )
        'http://x/api/users/42?active=true'
    """

    def __init__(
        self,
        url_encoder: UrlEncoder | None = None,
        query_encoder: QueryEncoder | None = None,
        encoding: str = DEFAULT_ENCODING,
    ):
        self.url_encoder = url_encoder or default_url_encoder
        self.query_encoder = query_encoder or default_query_encoder
        self.encoding = encoding

    def build(self, base_url: str, resource: str, parameters: Iterable[Parameter]) -> str:
        """
        构建完整请求 URI

        参数:
            base_url: 基础地址
            resource: 资源路径模板，可包含 {placeholder}
            parameters: 参数列表，仅使用 URL_SEGMENT 与 QUERY_STRING 类型

        返回:
            完整 URI

        异常:
            APIClientMissingUrlSegmentError: URL 片段无法解析时抛出
            APIClientValidationError: 无法得到绝对地址时抛出
        """
        parameters = list(parameters)
        url = self.build_without_query(base_url, resource, parameters)
        query = self.build_query_string(parameters)
        if not query:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{query}"

    def build_without_query(self, base_url: str, resource: str, parameters: Iterable[Parameter]) -> str:
        """构建不含查询字符串的 URI，用于缓存键、日志等需要忽略查询参数的场景"""
        segments = [p for p in parameters if p.type is ParameterType.URL_SEGMENT]
        base_url = base_url or ""
        resource = resource or ""

        placeholders = set(PLACEHOLDER_PATTERN.findall(base_url)) | set(PLACEHOLDER_PATTERN.findall(resource))
        for segment in segments:
            if segment.name not in placeholders:
                raise APIClientMissingUrlSegmentError(
                    f"URL segment '{segment.name}' does not match any placeholder in '{base_url}' or '{resource}'",
                    segment_name=segment.name,
                )

        base_url = self._substitute(base_url, segments)
        resource = self._substitute(resource, segments)
        return self._combine(base_url, resource)

    def build_query_string(self, parameters: Iterable[Parameter]) -> str:
        """按参数顺序生成查询字符串"""
        pairs = []
        for parameter in parameters:
            if parameter.type is not ParameterType.QUERY_STRING:
                continue
            value = value_to_text(parameter.value)
            if parameter.encode:
                pairs.append(
                    f"{self.query_encoder(parameter.name, self.encoding)}={self.query_encoder(value, self.encoding)}"
                )
            else:
                pairs.append(f"{parameter.name}={value}")
        return "&".join(pairs)

    def _substitute(self, template: str, segments: list[Parameter]) -> str:
        values = {s.name: s for s in segments}

        def replace(match: re.Match) -> str:
            name = match.group(1)
            segment = values.get(name)
            if segment is None:
                raise APIClientMissingUrlSegmentError(
                    f"No URL segment parameter supplied for placeholder '{{{name}}}' in '{template}'",
                    segment_name=name,
                )
            value = value_to_text(segment.value)
            return self.url_encoder(value) if segment.encode else value

        return PLACEHOLDER_PATTERN.sub(replace, template)

    @staticmethod
    def _combine(base_url: str, resource: str) -> str:
        if resource and "://" in resource.split("?", 1)[0]:
            # 资源路径本身是绝对地址时忽略基础地址
            return resource
        if not base_url:
            raise APIClientValidationError(
                f"Cannot build an absolute URI: base_url is empty and resource is '{resource}'"
            )
        if not resource:
            return base_url
        return f"{base_url.rstrip('/')}/{resource.lstrip('/')}"
