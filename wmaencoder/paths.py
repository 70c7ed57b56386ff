from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

from loguru import logger

from .errors import DirectoryCreateError, MissingOutputDirectoryError
from .model import OutputMode

AUDIO_EXTENSIONS = frozenset({
    "mp3", "wav", "aiff", "aif", "m4a", "flac", "ogg", "wma", "aac", "alac",
})

OUTPUT_SUFFIX = ".wma"


def is_supported_audio(path: Path) -> bool:
    return path.suffix.lower().lstrip(".") in AUDIO_EXTENSIONS


def _ensure_dir(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreateError(f"无法创建输出目录 {directory}: {exc}") from exc


def resolve_output_path(
    input_path: Path,
    mode: OutputMode,
    *,
    directory: Optional[Path] = None,
    subfolder_name: Optional[str] = None,
) -> Path:
    """计算输出文件路径，必要时创建目录。

    文件名总是输入文件去掉扩展名再加 `.wma`；已存在的输出会被 ffmpeg 覆盖。
    """
    out_name = f"{input_path.stem}{OUTPUT_SUFFIX}"
    if mode is OutputMode.CUSTOM:
        if directory is None or not str(directory):
            raise MissingOutputDirectoryError("未选择输出目录")
        target_dir = Path(directory)
    elif mode is OutputMode.SAME_AS_INPUT:
        return input_path.parent / out_name
    elif mode is OutputMode.SUBFOLDER:
        name = (subfolder_name or "").strip()
        if not name:
            raise MissingOutputDirectoryError("子文件夹名称为空")
        target_dir = input_path.parent / name
    else:
        raise ValueError(f"unknown output mode: {mode!r}")
    _ensure_dir(target_dir)
    return target_dir / out_name


def collect_audio_files(
    paths: Iterable[Union[str, Path]],
    existing: Iterable[Path] = (),
) -> List[Path]:
    """把拖入/选择的文件和文件夹展开为音频文件列表。

    文件夹递归扫描（按名称排序）；只保留受支持扩展名的文件；
    同一路径（解析后）只出现一次，包括已在 `existing` 中的文件。
    """
    seen = {Path(p).expanduser().resolve() for p in existing}
    found: List[Path] = []

    def _add(candidate: Path) -> None:
        resolved = candidate.resolve()
        if resolved in seen or not is_supported_audio(resolved):
            return
        seen.add(resolved)
        found.append(resolved)

    for raw_path in paths:
        path = Path(raw_path).expanduser()
        if path.is_dir():
            for root, dirs, files in os.walk(path):
                dirs.sort()
                for name in sorted(files):
                    _add(Path(root) / name)
        elif path.is_file():
            _add(path)
        else:
            logger.debug("Skipping missing path {}", path)
    return found
