from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

from .errors import InvalidTransitionError

SUPPORTED_BIT_DEPTHS: Tuple[int, ...] = (16, 24)
SUPPORTED_SAMPLE_RATES_KHZ: Tuple[int, ...] = (44, 48, 96)


class OutputMode(str, Enum):
    CUSTOM = "custom"
    SAME_AS_INPUT = "sameAsInput"
    SUBFOLDER = "subfolder"


class EncodingMode(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class TaskState(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    PROBING = "probing"
    ENCODING = "encoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED)


# 合法迁移表；任何非终态都可以直接失败
_TRANSITIONS: Dict[TaskState, Tuple[TaskState, ...]] = {
    TaskState.PENDING: (TaskState.RESOLVING, TaskState.FAILED, TaskState.CANCELLED),
    TaskState.RESOLVING: (TaskState.PROBING, TaskState.ENCODING, TaskState.FAILED, TaskState.CANCELLED),
    TaskState.PROBING: (TaskState.ENCODING, TaskState.FAILED, TaskState.CANCELLED),
    TaskState.ENCODING: (TaskState.SUCCEEDED, TaskState.FAILED),
}


@dataclass(frozen=True)
class EncodingParameters:
    """编码参数：位深 16/24，采样率档位 44/48/96 kHz。"""

    bit_depth: int = 16
    sample_rate_khz: int = 48

    def __post_init__(self) -> None:
        if self.bit_depth not in SUPPORTED_BIT_DEPTHS:
            raise ValueError(f"unsupported bit depth: {self.bit_depth}")
        if self.sample_rate_khz not in SUPPORTED_SAMPLE_RATES_KHZ:
            raise ValueError(f"unsupported sample rate: {self.sample_rate_khz} kHz")

    @property
    def sample_rate_hz(self) -> int:
        return self.sample_rate_khz * 1000

    def describe(self) -> str:
        return f"{self.bit_depth}-bit · {self.sample_rate_khz} kHz"


@dataclass(frozen=True)
class AudioProperties:
    """ffprobe 读取到的源文件属性（采样率单位 Hz）。"""

    bit_depth: int = 16
    sample_rate: int = 48000


@dataclass(frozen=True)
class EncodeJob:
    """一次用户发起的批量编码。

    - `files`: 输入文件（有序，运行期间不可变）。
    - `concurrency`: 同时运行的 ffmpeg 进程上限。
    - `output_mode` / `output_dir` / `subfolder_name`: 输出位置。
    - `encoding_mode` / `parameters`: 手动模式直接使用 `parameters`；
      自动模式逐个探测，探测失败时回退到 `parameters`。
    """

    files: Tuple[Path, ...]
    concurrency: int = 4
    output_mode: OutputMode = OutputMode.CUSTOM
    encoding_mode: EncodingMode = EncodingMode.MANUAL
    parameters: EncodingParameters = field(default_factory=EncodingParameters)
    output_dir: Optional[Path] = None
    subfolder_name: str = "WMA"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        object.__setattr__(self, "files", tuple(Path(p) for p in self.files))


@dataclass
class FileTask:
    """单个文件的编码任务，由处理它的工作线程独占。"""

    input_path: Path
    output_path: Optional[Path] = None
    parameters: Optional[EncodingParameters] = None
    state: TaskState = TaskState.PENDING
    error_message: str = ""
    note: str = ""

    def advance(self, new_state: TaskState) -> None:
        allowed = _TRANSITIONS.get(self.state, ())
        if new_state not in allowed:
            raise InvalidTransitionError(
                f"{self.input_path.name}: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state


@dataclass(frozen=True)
class ProgressSnapshot:
    """`JobProgress` 的只读快照，供界面随时读取。"""

    state: JobState = JobState.IDLE
    completed: int = 0
    total: int = 0
    fraction: float = 0.0
    current_file: str = ""
    status_message: str = ""
    succeeded: FrozenSet[Path] = frozenset()
    failures: Tuple[Tuple[Path, str], ...] = ()

    @property
    def percent(self) -> int:
        return int(round(self.fraction * 100))


class JobProgress:
    """所有工作线程共享的聚合进度。

    计数器、状态行由 `_lock` 保护；成功集合与失败原因由 `_files_lock` 保护。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files_lock = threading.Lock()
        self._state = JobState.IDLE
        self._completed = 0
        self._total = 0
        self._fraction = 0.0
        self._current_file = ""
        self._status_message = ""
        self._succeeded: set[Path] = set()
        self._failures: dict[Path, str] = {}

    def reset(self, total: int) -> ProgressSnapshot:
        with self._files_lock:
            self._succeeded.clear()
            self._failures.clear()
        with self._lock:
            self._state = JobState.RUNNING
            self._completed = 0
            self._total = total
            self._fraction = 0.0 if total else 1.0
            self._current_file = ""
            self._status_message = "Starting…"
        return self.snapshot()

    def set_current(self, name: str, message: str) -> ProgressSnapshot:
        with self._lock:
            self._current_file = name
            self._status_message = message
        return self.snapshot()

    def record(self, task: FileTask) -> ProgressSnapshot:
        """记录一个已到达终态的任务，并原子地递增完成计数。"""
        if not task.state.is_terminal:
            raise InvalidTransitionError(f"{task.input_path.name} is not finished ({task.state.value})")
        with self._files_lock:
            if task.state is TaskState.SUCCEEDED:
                self._succeeded.add(task.input_path)
            elif task.state is TaskState.FAILED:
                self._failures[task.input_path] = task.error_message
        with self._lock:
            if self._completed >= self._total:
                raise RuntimeError("completed count would exceed total")
            self._completed += 1
            self._fraction = self._completed / self._total
            if task.state is TaskState.SUCCEEDED and task.output_path is not None:
                self._status_message = f"✓ Completed: {task.output_path.name}"
            elif task.state is TaskState.FAILED:
                self._status_message = f"✗ Failed: {task.input_path.name}"
        return self.snapshot()

    def finish(self, message: str) -> ProgressSnapshot:
        with self._lock:
            self._state = JobState.COMPLETED
            self._fraction = 1.0
            self._current_file = ""
            self._status_message = message
        return self.snapshot()

    def snapshot(self) -> ProgressSnapshot:
        with self._files_lock:
            succeeded = frozenset(self._succeeded)
            failures = tuple(self._failures.items())
        with self._lock:
            return ProgressSnapshot(
                state=self._state,
                completed=self._completed,
                total=self._total,
                fraction=self._fraction,
                current_file=self._current_file,
                status_message=self._status_message,
                succeeded=succeeded,
                failures=failures,
            )
