"""
HTTP 客户端常量配置模块

定义客户端使用的常量、默认配置等
"""

# HTTP 方法常量
HTTP_METHOD_GET = "GET"
HTTP_METHOD_POST = "POST"
HTTP_METHOD_PUT = "PUT"
HTTP_METHOD_DELETE = "DELETE"
HTTP_METHOD_PATCH = "PATCH"
HTTP_METHOD_HEAD = "HEAD"
HTTP_METHOD_OPTIONS = "OPTIONS"
HTTP_METHOD_MERGE = "MERGE"

# 不携带请求体的方法（GET 风格），其余方法按 POST 风格携带请求体
GET_STYLE_METHODS = {HTTP_METHOD_GET, HTTP_METHOD_HEAD, HTTP_METHOD_OPTIONS, HTTP_METHOD_DELETE}
POST_STYLE_METHODS = {HTTP_METHOD_POST, HTTP_METHOD_PUT, HTTP_METHOD_PATCH, HTTP_METHOD_MERGE}

# 默认配置
DEFAULT_TIMEOUT = 30  # 默认超时时间（秒）
DEFAULT_MAX_REDIRECTS = 30  # 默认最大重定向次数
DEFAULT_CHUNK_SIZE = 8192  # 默认分块大小（字节）
DEFAULT_USER_AGENT = "restflex/1.0"
DEFAULT_ENCODING = "utf-8"

# 默认允许透明解压的内容编码
DEFAULT_DECOMPRESSION_METHODS = ("gzip", "deflate")

# 内容类型
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_XML = "application/xml"
CONTENT_TYPE_FORM_URLENCODED = "application/x-www-form-urlencoded"
CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"
CONTENT_TYPE_WILDCARD = "*"

JSON_CONTENT_TYPES = (
    CONTENT_TYPE_JSON,
    "text/json",
    "text/x-json",
    "text/javascript",
    "*+json",
)
XML_CONTENT_TYPES = (
    CONTENT_TYPE_XML,
    "text/xml",
    "*+xml",
)

# 文件下载配置
DEFAULT_DOWNLOAD_PATH = "./downloads"  # 默认下载路径
DEFAULT_FILENAME = "downloaded_file"  # 默认文件名
