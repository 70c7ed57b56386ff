from __future__ import annotations

import os
import shutil
import sys
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..errors import EncodeError, ProbeError
from ..model import AudioProperties

DEFAULT_BIT_DEPTH = 16
DEFAULT_SAMPLE_RATE = 48000

# 只保留 ffmpeg 输出末尾，用于失败诊断
_OUTPUT_TAIL_CHARS = 2000


def _is_windows() -> bool:
    return os.name == "nt" or sys.platform.startswith("win")


def _binary_name(base: str) -> str:
    return f"{base}.exe" if _is_windows() else base


def _subprocess_kwargs() -> Dict[str, Any]:
    """Windows 下隐藏控制台窗口。"""
    if not _is_windows():
        return {}
    startupinfo = subprocess.STARTUPINFO()
    startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
    return {"creationflags": subprocess.CREATE_NO_WINDOW, "startupinfo": startupinfo}


def resolve_ffmpeg_binaries(
    ffmpeg_path: Optional[str] = None,
    ffprobe_path: Optional[str] = None,
) -> dict[str, str]:
    """解析 ffmpeg/ffprobe 的可执行路径。

    优先级（随程序打包的二进制优先）：
    1. 设置中显式指定的路径
    2. 环境变量 `FFMPEG_BIN_DIR`
    3. PyInstaller `_MEIPASS` 下的 `ffmpeg/`
    4. 项目根目录下的 `ffmpeg/`
    5. `PATH` 中可执行文件
    6. 回退为命令名（期望已在 PATH）
    """

    candidates: list[Path] = []
    env_dir = os.environ.get("FFMPEG_BIN_DIR")
    if env_dir:
        candidates.append(Path(env_dir))

    meipass_dir = getattr(sys, "_MEIPASS", None)
    if meipass_dir:
        candidates.append(Path(meipass_dir) / "ffmpeg")

    project_root = Path(__file__).resolve().parent.parent.parent
    candidates.append(project_root / "ffmpeg")

    explicit = {"ffmpeg": ffmpeg_path, "ffprobe": ffprobe_path}
    results: dict[str, str] = {}
    for name in ("ffmpeg", "ffprobe"):
        if explicit[name]:
            results[name] = str(explicit[name])
            continue
        exe = _binary_name(name)
        for base in candidates:
            if (base / exe).exists():
                results[name] = str(base / exe)
                break
        else:
            path_in_path = shutil.which(exe)
            results[name] = path_in_path or exe
    return results


# ========== ffprobe ==========
def build_probe_command(ffprobe: str, input_path: Path) -> List[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-select_streams",
        "a:0",
        "-show_entries",
        "stream=bits_per_sample,sample_rate",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]


def parse_probe_output(text: str) -> AudioProperties:
    """从 ffprobe 逐行输出中识别位深与采样率。

    >10000 视为采样率，0<x<1000 视为位深（0 表示 ffprobe 未知），
    同类取第一个；无法识别时回退为 16-bit / 48000 Hz。
    """
    bit_depth: Optional[int] = None
    sample_rate: Optional[int] = None
    for line in text.splitlines():
        try:
            value = int(line.strip())
        except ValueError:
            continue
        if value > 10_000:
            if sample_rate is None:
                sample_rate = value
        elif 0 < value < 1_000:
            if bit_depth is None:
                bit_depth = value
    return AudioProperties(
        bit_depth=bit_depth if bit_depth is not None else DEFAULT_BIT_DEPTH,
        sample_rate=sample_rate if sample_rate is not None else DEFAULT_SAMPLE_RATE,
    )


def probe_audio_properties(
    input_path: Path,
    *,
    ffprobe: Optional[str] = None,
    timeout: Optional[float] = None,
) -> AudioProperties:
    """使用 ffprobe 读取第一条音轨的位深与采样率。"""
    ffprobe = ffprobe or resolve_ffmpeg_binaries()["ffprobe"]
    cmd = build_probe_command(ffprobe, input_path)
    logger.debug("$ {}", " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            **_subprocess_kwargs(),
        )
    except subprocess.TimeoutExpired as exc:
        raise ProbeError(f"ffprobe 超时: {input_path.name}") from exc
    except OSError as exc:
        raise ProbeError(f"ffprobe 无法启动: {exc}") from exc
    if completed.returncode != 0:
        logger.debug("ffprobe exited with {} for {}", completed.returncode, input_path.name)
    return parse_probe_output(completed.stdout or "")


# ========== ffmpeg ==========
def build_encode_command(
    ffmpeg: str,
    input_path: Path,
    output_path: Path,
    bit_depth: int,
    sample_rate_khz: int,
) -> List[str]:
    return [
        ffmpeg,
        "-i",
        str(input_path),
        "-c:a",
        "wmalossless",
        "-ar",
        str(sample_rate_khz * 1000),
        "-bits_per_raw_sample",
        str(bit_depth),
        "-y",
        str(output_path),
    ]


def encode_wma_lossless(
    input_path: Path,
    output_path: Path,
    bit_depth: int,
    sample_rate_khz: int,
    *,
    ffmpeg: Optional[str] = None,
    timeout: Optional[float] = None,
) -> None:
    """执行一次 WMA Lossless 编码；退出码非 0 时抛出 `EncodeError`。"""
    ffmpeg = ffmpeg or resolve_ffmpeg_binaries()["ffmpeg"]
    cmd = build_encode_command(ffmpeg, input_path, output_path, bit_depth, sample_rate_khz)
    logger.debug("$ {}", " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            **_subprocess_kwargs(),
        )
    except subprocess.TimeoutExpired as exc:
        raise EncodeError(f"ffmpeg 超时: {input_path.name}") from exc
    except OSError as exc:
        raise EncodeError(f"ffmpeg 无法启动: {exc}") from exc

    output = (completed.stdout or "")[-_OUTPUT_TAIL_CHARS:]
    if completed.returncode != 0:
        raise EncodeError(
            f"ffmpeg 退出码 {completed.returncode}: {input_path.name}",
            returncode=completed.returncode,
            output=output,
        )
