"""
响应写入器模块

提供可直接赋给 RestRequest.response_writer / advanced_response_writer 的写入器，
以流式方式处理响应体，避免将大响应整体读入内存
"""

from __future__ import annotations

import logging
import os
from typing import IO
from urllib.parse import urlsplit

from restflex.constants import DEFAULT_CHUNK_SIZE, DEFAULT_DOWNLOAD_PATH, DEFAULT_FILENAME
from restflex.response import RestResponse

logger = logging.getLogger(__name__)


def copy_stream(source: IO[bytes], target: IO[bytes], chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """分块复制流，返回写入的字节数"""
    written = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        target.write(chunk)
        written += len(chunk)
    return written


class FileResponseWriter:
    """
    文件写入器（普通写入器）

    将响应流写入指定文件

    参数:
        file_path: 目标文件路径，所在目录不存在时自动创建
        chunk_size: 分块读取大小（字节）

    使用示例:
        >>> request = RestRequest("files/report.pdf")
        >>> request.response_writer = FileResponseWriter("./downloads/report.pdf")
        >>> client.execute(request)
    """

    def __init__(self, file_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.file_path = file_path
        self.chunk_size = chunk_size
        self.bytes_written = 0

    def __call__(self, stream: IO[bytes]) -> None:
        directory = os.path.dirname(self.file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        logger.debug(f"Writing response stream to file: {self.file_path}")
        with open(self.file_path, "wb") as f:
            self.bytes_written = copy_stream(stream, f, self.chunk_size)


class DownloadResponseWriter:
    """
    下载写入器（高级写入器）

    根据响应元数据决定文件名后写入下载目录：优先使用 Content-Disposition 中的文件名，
    其次使用响应地址的最后一段路径。仅在状态码为 2xx 时写入文件

    参数:
        base_path: 文件保存的基础路径
        chunk_size: 分块读取大小（字节）
        default_filename: 无法推断文件名时使用的默认文件名

    属性:
        file_path: 最近一次写入的文件路径，未写入时为 None
    """

    def __init__(
        self,
        base_path: str = DEFAULT_DOWNLOAD_PATH,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_filename: str = DEFAULT_FILENAME,
    ):
        self.base_path = base_path
        self.chunk_size = chunk_size
        self.default_filename = default_filename
        self.file_path: str | None = None

    def __call__(self, stream: IO[bytes], response: RestResponse) -> None:
        if not 200 <= response.status_code < 300:
            logger.warning(f"Skipping download, server responded with {response.status_code}")
            return

        os.makedirs(self.base_path, exist_ok=True)
        file_path = os.path.join(self.base_path, self._filename(response))
        logger.debug(f"Writing response stream to file: {file_path}")
        with open(file_path, "wb") as f:
            copy_stream(stream, f, self.chunk_size)
        self.file_path = file_path

    def _filename(self, response: RestResponse) -> str:
        disposition = response.headers.get("Content-Disposition") or ""
        for part in disposition.split(";"):
            key, _, value = part.strip().partition("=")
            if key.lower() == "filename" and value:
                return os.path.basename(value.strip('"'))

        if response.response_uri:
            name = urlsplit(response.response_uri).path.rstrip("/").split("/")[-1]
            if name:
                return name
        return self.default_filename
