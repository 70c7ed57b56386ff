from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

from loguru import logger


def settings_file() -> Path:
    """设置文件位置：环境变量 `WMAENCODER_SETTINGS` 优先，否则 ~/.wmaencoder/settings.json。"""
    override = os.environ.get("WMAENCODER_SETTINGS")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".wmaencoder" / "settings.json"


DEFAULT_SETTINGS: Dict[str, Any] = {
    # 编码
    "encoding_mode": "manual",      # "manual" or "auto"
    "bit_depth": 16,
    "sample_rate_khz": 48,
    "concurrency": 4,

    # 输出
    "output_mode": "custom",        # "custom" / "sameAsInput" / "subfolder"
    "output_dir": "",
    "subfolder_name": "WMA",

    # 外部工具（留空则自动查找）
    "ffmpeg_path": "",
    "ffprobe_path": "",
    "probe_timeout_seconds": 60,
    "encode_timeout_seconds": None,

    # 日志
    "log_level": "INFO",
    "log_file": "",
}


def load_settings() -> Dict[str, Any]:
    p = settings_file()
    if p.exists():
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file {}: {}", p, exc)
        else:
            if isinstance(data, dict):
                return {**DEFAULT_SETTINGS, **data}
            logger.warning("Ignoring settings file {}: not a JSON object", p)
    return DEFAULT_SETTINGS.copy()


def save_settings(data: Dict[str, Any]) -> None:
    p = settings_file()
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not save settings to {}: {}", p, exc)
