from __future__ import annotations

from typing import Optional


class WMAEncoderError(Exception):
    """所有业务异常的基类。"""


class ProbeError(WMAEncoderError):
    """ffprobe 无法启动或超时。"""


class PathError(WMAEncoderError):
    """输出路径解析失败。"""


class MissingOutputDirectoryError(PathError):
    """自定义输出模式下未提供输出目录（或子文件夹名为空）。"""


class DirectoryCreateError(PathError):
    """输出目录创建失败（权限等）。"""


class EncodeError(WMAEncoderError):
    """ffmpeg 返回非零退出码或无法启动。

    - `returncode`: 进程退出码；进程未能启动时为 None。
    - `output`: 合并后的 stdout/stderr 末尾内容，仅用于诊断。
    """

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class InvalidTransitionError(WMAEncoderError):
    """文件任务的非法状态迁移。"""


class JobAlreadyRunningError(WMAEncoderError):
    """已有任务在运行时再次启动。"""
