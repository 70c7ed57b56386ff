from __future__ import annotations

import sys

from loguru import logger

from wmaencoder.controller import AppController
from wmaencoder.logging_setup import configure_logging
from wmaencoder.settings import load_settings
from wmaencoder.view import AppView


def main() -> None:
    """应用入口：读取设置、配置日志、构建 MVC 并启动主循环。"""
    settings = load_settings()
    configure_logging(settings.get("log_level", "INFO"), settings.get("log_file") or None)
    view = AppView(theme="darkly", settings=settings)
    controller = AppController(view=view, settings=settings)
    view.bind_controller(controller)
    view.start_ui_update_loop()
    view.run()


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001 - 顶层保护，记录异常
        logger.exception("程序异常退出: {}", exc)
        sys.exit(1)
