from __future__ import annotations

from pathlib import Path
from typing import Callable, Tuple

from loguru import logger

from .errors import ProbeError
from .model import AudioProperties, EncodeJob, EncodingMode, EncodingParameters


def round_up(bit_depth: int, sample_rate_hz: int) -> EncodingParameters:
    """把任意源属性向上取整到最近的受支持档位。

    位深 >16 取 24，否则 16；采样率按 kHz（向下取整）分档：
    <44 → 44，44~48 → 48，>48 → 96。
    """
    depth = 24 if bit_depth > 16 else 16
    khz = sample_rate_hz // 1000
    if khz < 44:
        tier = 44
    elif khz <= 48:
        tier = 48
    else:
        tier = 96
    return EncodingParameters(bit_depth=depth, sample_rate_khz=tier)


def resolve_parameters(
    job: EncodeJob,
    input_path: Path,
    probe: Callable[[Path], AudioProperties],
) -> Tuple[EncodingParameters, str]:
    """决定某个文件最终使用的编码参数。

    返回 `(parameters, note)`；`note` 非空表示发生了回退。
    """
    if job.encoding_mode is EncodingMode.MANUAL:
        return job.parameters, ""
    try:
        props = probe(input_path)
    except ProbeError as exc:
        logger.warning("Probe failed for {}, using {}: {}", input_path.name, job.parameters.describe(), exc)
        return job.parameters, f"probe failed, used {job.parameters.describe()}"
    params = round_up(props.bit_depth, props.sample_rate)
    logger.debug(
        "{}: {}-bit/{} Hz -> {}", input_path.name, props.bit_depth, props.sample_rate, params.describe()
    )
    return params, ""
