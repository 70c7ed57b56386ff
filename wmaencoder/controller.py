from __future__ import annotations

import queue
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .model import EncodeJob, EncodingMode, EncodingParameters, OutputMode
from .paths import collect_audio_files
from .runner import EncodeJobRunner, ProgressEvent
from .settings import load_settings, save_settings
from .utils.ffmpeg import encode_wma_lossless, probe_audio_properties, resolve_ffmpeg_binaries


def build_runner(settings: Dict[str, Any]) -> EncodeJobRunner:
    """按设置中的工具路径与超时构建任务执行器。"""
    bins = resolve_ffmpeg_binaries(settings.get("ffmpeg_path") or None, settings.get("ffprobe_path") or None)
    logger.debug("Using ffmpeg={} ffprobe={}", bins["ffmpeg"], bins["ffprobe"])
    probe = partial(probe_audio_properties, ffprobe=bins["ffprobe"], timeout=settings.get("probe_timeout_seconds"))
    encoder = partial(encode_wma_lossless, ffmpeg=bins["ffmpeg"], timeout=settings.get("encode_timeout_seconds"))
    return EncodeJobRunner(probe=probe, encoder=encoder)


class AppController:
    """应用控制器：协调视图与编码执行器，管理文件列表与后台任务。"""

    def __init__(
        self,
        view: "AppView",
        settings: Optional[Dict[str, Any]] = None,
        runner: Optional[EncodeJobRunner] = None,
    ) -> None:
        self.view = view
        self.settings = settings if settings is not None else load_settings()
        self.files: list[Path] = []
        self.ui_queue: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.runner = runner or build_runner(self.settings)
        self.runner.subscribe(self._on_progress_event)
        # 批次本身在单独的后台线程运行，界面线程只轮询 ui_queue
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wma-job")
        self._job_future: Optional[Future] = None

    # ========== 视图调用的接口 ==========
    def handle_file_drop(self, file_paths: Iterable[str]) -> List[Path]:
        new_files = collect_audio_files(file_paths, existing=self.files)
        for path in new_files:
            self.files.append(path)
            self.view.add_file_to_list(path)
        if new_files:
            logger.info("Added {} file(s), {} selected", len(new_files), len(self.files))
        return new_files

    def remove_files(self, paths: Iterable[str]) -> None:
        for raw_path in paths:
            path = Path(raw_path)
            if path in self.files:
                self.files.remove(path)
                self.view.remove_file_from_list(path)

    def reset(self) -> None:
        if self.is_busy:
            return
        self.files.clear()
        self.view.clear_file_list()

    def request_cancel(self) -> None:
        self.runner.cancel()

    @property
    def is_busy(self) -> bool:
        """已提交但尚未结束的任务（包括还在排队、runner 尚未加锁的情况）。"""
        return self.runner.is_running or (self._job_future is not None and not self._job_future.done())

    def start_encoding(self) -> Optional[Future]:
        if self.is_busy:
            self.view.show_error("An encoding job is already running.")
            return None
        if not self.files:
            self.view.show_error("Add some audio files first.")
            return None
        try:
            job = self.build_job()
        except ValueError as exc:
            self.view.show_error(str(exc))
            return None
        self._remember_choices(job)
        # 只有校验通过后才清空上一轮的结果
        self.view.prepare_for_run()
        self._job_future = self.executor.submit(self.runner.run, job)
        return self._job_future

    def build_job(self) -> EncodeJob:
        """根据视图当前选项构建 `EncodeJob`；选项无效时抛出 ValueError。"""
        output_mode = OutputMode(self.view.get_output_mode())
        output_dir = self.view.get_output_directory().strip()
        subfolder_name = self.view.get_subfolder_name().strip()
        if output_mode is OutputMode.CUSTOM and not output_dir:
            raise ValueError("Choose an output folder.")
        if output_mode is OutputMode.SUBFOLDER and not subfolder_name:
            raise ValueError("Enter a subfolder name.")
        return EncodeJob(
            files=tuple(self.files),
            concurrency=int(self.view.get_concurrency()),
            output_mode=output_mode,
            encoding_mode=EncodingMode(self.view.get_encoding_mode()),
            parameters=EncodingParameters(
                bit_depth=int(self.view.get_bit_depth()),
                sample_rate_khz=int(self.view.get_sample_rate_khz()),
            ),
            output_dir=Path(output_dir).expanduser() if output_dir else None,
            subfolder_name=subfolder_name,
        )

    def shutdown(self) -> None:
        self.runner.cancel()
        self.executor.shutdown(wait=False)

    # ========== 进度转发 ==========
    def _on_progress_event(self, event: ProgressEvent) -> None:
        # 运行在工作线程中，只能通过队列与界面通信
        if event.task_path is not None and event.task_state is not None:
            self._enqueue({"id": str(event.task_path), "type": "task", "value": event.task_state.value})
        if event.error:
            self._enqueue({"id": str(event.task_path), "type": "error", "value": event.error})
        if event.kind in ("job_started", "job_completed"):
            self._enqueue({"id": None, "type": "job", "value": event.snapshot.state.value})
        self._enqueue({"id": None, "type": "progress", "value": event.snapshot})

    # ========== 辅助 ==========
    def _enqueue(self, message: Dict[str, Any]) -> None:
        self.ui_queue.put(message)

    def _remember_choices(self, job: EncodeJob) -> None:
        self.settings.update({
            "encoding_mode": job.encoding_mode.value,
            "bit_depth": job.parameters.bit_depth,
            "sample_rate_khz": job.parameters.sample_rate_khz,
            "concurrency": job.concurrency,
            "output_mode": job.output_mode.value,
            "output_dir": str(job.output_dir) if job.output_dir else "",
            "subfolder_name": job.subfolder_name,
        })
        save_settings(self.settings)
