"""WMA Lossless Encoder 包。

采用 MVC 架构：模型（model）、视图（view）、控制器（controller）；
批量编码核心在 runner，ffmpeg/ffprobe 调用在 utils.ffmpeg。
"""

__all__ = [
    "model",
    "view",
    "controller",
    "runner",
]
