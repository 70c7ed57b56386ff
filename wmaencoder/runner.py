from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from .errors import EncodeError, JobAlreadyRunningError, PathError
from .model import (
    AudioProperties,
    EncodeJob,
    EncodingMode,
    FileTask,
    JobProgress,
    ProgressSnapshot,
    TaskState,
)
from .paths import resolve_output_path
from .policy import resolve_parameters
from .utils.ffmpeg import encode_wma_lossless, probe_audio_properties

ProbeFn = Callable[[Path], AudioProperties]
EncodeFn = Callable[[Path, Path, int, int], None]


@dataclass(frozen=True)
class ProgressEvent:
    """每次状态迁移时发给订阅者的事件。

    `kind`: 'job_started' | 'task_state' | 'task_finished' | 'job_completed'
    """

    kind: str
    snapshot: ProgressSnapshot
    task_path: Optional[Path] = None
    task_state: Optional[TaskState] = None
    error: str = ""


class EncodeJobRunner:
    """有界并发的批量编码器。

    `run()` 阻塞直到所有文件处理完毕；进度通过 `subscribe()` 的回调
    和 `snapshot()` 对外可见。单个文件的失败不会中断整个批次。
    """

    def __init__(self, probe: Optional[ProbeFn] = None, encoder: Optional[EncodeFn] = None) -> None:
        self._probe: ProbeFn = probe or probe_audio_properties
        self._encode: EncodeFn = encoder or encode_wma_lossless
        self._progress = JobProgress()
        self._listeners: list[Callable[[ProgressEvent], None]] = []
        self._listeners_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()

    # ========== 订阅与查询 ==========
    def subscribe(self, callback: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def snapshot(self) -> ProgressSnapshot:
        return self._progress.snapshot()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> None:
        """请求取消：尚未开始的文件不再处理，正在运行的进程会跑完。"""
        if self.is_running:
            logger.warning("Cancel requested")
            self._cancel_event.set()

    # ========== 运行 ==========
    def run(self, job: EncodeJob) -> List[FileTask]:
        if not self._run_lock.acquire(blocking=False):
            raise JobAlreadyRunningError("an encode job is already running")
        try:
            self._cancel_event.clear()
            tasks = [FileTask(input_path=path) for path in job.files]
            logger.info(
                "Encoding {} file(s) with {} worker(s), {} mode, output {}",
                len(tasks),
                job.concurrency,
                job.encoding_mode.value,
                job.output_mode.value,
            )
            self._publish(ProgressEvent("job_started", self._progress.reset(len(tasks))))

            with ThreadPoolExecutor(max_workers=job.concurrency, thread_name_prefix="wma-encode") as pool:
                futures = [pool.submit(self._worker_run_task, job, task) for task in tasks]
                wait(futures)

            # 工作线程崩溃的文件同样算作失败
            failed = 0
            for task, future in zip(tasks, futures):
                exc = future.exception()
                if exc is not None:
                    logger.opt(exception=exc).error("Worker crashed while handling {}", task.input_path.name)
                    failed += 1
                elif task.state is TaskState.FAILED:
                    failed += 1
            if self._cancel_event.is_set():
                message = "Encoding cancelled"
            elif failed:
                message = f"Encoding completed with {failed} failed file(s)"
            else:
                message = "Encoding completed!"
            logger.info(message)
            self._publish(ProgressEvent("job_completed", self._progress.finish(message)))
            return tasks
        finally:
            self._run_lock.release()

    # ========== 工作线程 ==========
    def _worker_run_task(self, job: EncodeJob, task: FileTask) -> None:
        name = task.input_path.name
        try:
            if self._cancelled(task):
                return

            self._transition(task, TaskState.RESOLVING)
            task.output_path = resolve_output_path(
                task.input_path,
                job.output_mode,
                directory=job.output_dir,
                subfolder_name=job.subfolder_name,
            )
            if self._cancelled(task):
                return

            if job.encoding_mode is EncodingMode.AUTO:
                self._transition(task, TaskState.PROBING)
            task.parameters, task.note = resolve_parameters(job, task.input_path, self._probe)
            if self._cancelled(task):
                return

            task.advance(TaskState.ENCODING)
            self._publish(ProgressEvent(
                "task_state",
                self._progress.set_current(name, f"Encoding: {name}..."),
                task.input_path,
                task.state,
            ))
            self._encode(task.input_path, task.output_path, task.parameters.bit_depth, task.parameters.sample_rate_khz)
            task.advance(TaskState.SUCCEEDED)
            logger.info("✓ {} -> {} ({})", name, task.output_path, task.parameters.describe())
        except (PathError, EncodeError) as exc:
            self._fail(task, str(exc))
            if isinstance(exc, EncodeError) and exc.output:
                logger.debug("ffmpeg output for {}:\n{}", name, exc.output)
        except Exception as exc:  # noqa: BLE001 - 工作线程边界，单个文件失败不影响批次
            logger.exception("Unexpected error while encoding {}", name)
            self._fail(task, str(exc) or exc.__class__.__name__)
        self._finish(task)

    def _cancelled(self, task: FileTask) -> bool:
        if not self._cancel_event.is_set():
            return False
        task.advance(TaskState.CANCELLED)
        self._finish(task)
        return True

    def _transition(self, task: FileTask, state: TaskState) -> None:
        task.advance(state)
        self._publish(ProgressEvent("task_state", self._progress.snapshot(), task.input_path, state))

    def _fail(self, task: FileTask, reason: str) -> None:
        task.error_message = reason
        task.advance(TaskState.FAILED)
        logger.warning("✗ {}: {}", task.input_path.name, reason)

    def _finish(self, task: FileTask) -> None:
        snapshot = self._progress.record(task)
        self._publish(ProgressEvent("task_finished", snapshot, task.input_path, task.state, task.error_message))

    def _publish(self, event: ProgressEvent) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception:  # noqa: BLE001 - 订阅者异常不能打断工作线程
                logger.exception("Progress listener failed")
