"""Unit tests for model types and shared progress state."""

from pathlib import Path
from typing import FrozenSet, get_type_hints

import pytest

from wmaencoder.errors import InvalidTransitionError
from wmaencoder.model import (
    EncodeJob,
    EncodingParameters,
    FileTask,
    JobProgress,
    JobState,
    ProgressSnapshot,
    TaskState,
)


class TestEncodingParameters:
    """Tests for EncodingParameters."""

    def test_sample_rate_hz(self):
        assert EncodingParameters(16, 44).sample_rate_hz == 44000

    @pytest.mark.parametrize(("bit_depth", "khz"), [(20, 48), (16, 32), (32, 96)])
    def test_rejects_unsupported_values(self, bit_depth, khz):
        with pytest.raises(ValueError):
            EncodingParameters(bit_depth, khz)


class TestEncodeJob:
    """Tests for EncodeJob."""

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            EncodeJob(files=(Path("a.wav"),), concurrency=0)

    def test_files_are_paths(self):
        job = EncodeJob(files=("a.wav", "b.wav"))
        assert job.files == (Path("a.wav"), Path("b.wav"))


class TestFileTask:
    """Tests for FileTask state transitions."""

    def test_happy_path_with_probe(self):
        task = FileTask(Path("a.wav"))
        for state in (TaskState.RESOLVING, TaskState.PROBING, TaskState.ENCODING, TaskState.SUCCEEDED):
            task.advance(state)
        assert task.state is TaskState.SUCCEEDED

    def test_manual_mode_skips_probing(self):
        task = FileTask(Path("a.wav"))
        task.advance(TaskState.RESOLVING)
        task.advance(TaskState.ENCODING)
        assert task.state is TaskState.ENCODING

    def test_terminal_state_is_final(self):
        """A finished task cannot transition again."""
        task = FileTask(Path("a.wav"))
        task.advance(TaskState.FAILED)
        with pytest.raises(InvalidTransitionError):
            task.advance(TaskState.RESOLVING)
        with pytest.raises(InvalidTransitionError):
            task.advance(TaskState.FAILED)

    def test_cannot_skip_resolving(self):
        task = FileTask(Path("a.wav"))
        with pytest.raises(InvalidTransitionError):
            task.advance(TaskState.ENCODING)


def _finished(name: str, state: TaskState, error: str = "") -> FileTask:
    task = FileTask(Path(name), output_path=Path(name).with_suffix(".wma"))
    task.advance(TaskState.RESOLVING)
    task.advance(TaskState.ENCODING)
    task.advance(state)
    task.error_message = error
    return task


class TestJobProgress:
    """Tests for JobProgress."""

    def test_reset_starts_running(self):
        progress = JobProgress()
        snap = progress.reset(3)
        assert snap.state is JobState.RUNNING
        assert (snap.completed, snap.total, snap.fraction) == (0, 3, 0.0)

    def test_record_updates_counts_and_status(self):
        progress = JobProgress()
        progress.reset(2)
        snap = progress.record(_finished("a.flac", TaskState.SUCCEEDED))
        assert snap.completed == 1
        assert snap.fraction == 0.5
        assert snap.status_message == "✓ Completed: a.wma"
        assert Path("a.flac") in snap.succeeded

        snap = progress.record(_finished("b.flac", TaskState.FAILED, "boom"))
        assert snap.completed == 2
        assert snap.status_message == "✗ Failed: b.flac"
        assert dict(snap.failures) == {Path("b.flac"): "boom"}

    def test_completed_never_exceeds_total(self):
        progress = JobProgress()
        progress.reset(1)
        progress.record(_finished("a.flac", TaskState.SUCCEEDED))
        with pytest.raises(RuntimeError):
            progress.record(_finished("b.flac", TaskState.SUCCEEDED))

    def test_record_rejects_unfinished_task(self):
        progress = JobProgress()
        progress.reset(1)
        with pytest.raises(InvalidTransitionError):
            progress.record(FileTask(Path("a.flac")))

    def test_finish_forces_full_progress(self):
        progress = JobProgress()
        progress.reset(4)
        snap = progress.finish("Encoding completed!")
        assert snap.state is JobState.COMPLETED
        assert snap.fraction == 1.0
        assert snap.percent == 100

    def test_snapshot_succeeded_is_typed(self):
        """The succeeded collection is declared as a set of paths."""
        assert get_type_hints(ProgressSnapshot)["succeeded"] == FrozenSet[Path]
