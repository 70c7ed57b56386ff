"""Unit tests for AppController, using a fake view."""

import json
import threading
from pathlib import Path

import pytest

from wmaencoder.controller import AppController
from wmaencoder.model import AudioProperties, ProgressSnapshot
from wmaencoder.runner import EncodeJobRunner
from wmaencoder.settings import DEFAULT_SETTINGS


class FakeView:
    """Stands in for the tkinter view."""

    def __init__(self, output_dir: str = "") -> None:
        self.rows: list[Path] = []
        self.errors: list[str] = []
        self.encoding_mode = "manual"
        self.bit_depth = 16
        self.sample_rate_khz = 48
        self.concurrency = "2"
        self.output_mode = "custom"
        self.output_dir = output_dir
        self.subfolder_name = "WMA"
        self.prepare_runs = 0

    def add_file_to_list(self, path: Path) -> None:
        self.rows.append(path)

    def remove_file_from_list(self, path: Path) -> None:
        self.rows.remove(path)

    def clear_file_list(self) -> None:
        self.rows.clear()

    def prepare_for_run(self) -> None:
        self.prepare_runs += 1

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def get_encoding_mode(self) -> str:
        return self.encoding_mode

    def get_bit_depth(self) -> int:
        return self.bit_depth

    def get_sample_rate_khz(self) -> int:
        return self.sample_rate_khz

    def get_concurrency(self) -> str:
        return self.concurrency

    def get_output_mode(self) -> str:
        return self.output_mode

    def get_output_directory(self) -> str:
        return self.output_dir

    def get_subfolder_name(self) -> str:
        return self.subfolder_name


@pytest.fixture
def calls():
    return []


@pytest.fixture
def controller(tmp_path: Path, calls):
    lock = threading.Lock()

    def encoder(input_path, output_path, bit_depth, sample_rate_khz):
        with lock:
            calls.append((input_path, output_path, bit_depth, sample_rate_khz))

    runner = EncodeJobRunner(probe=lambda _p: AudioProperties(), encoder=encoder)
    ctrl = AppController(FakeView(str(tmp_path / "out")), settings=dict(DEFAULT_SETTINGS), runner=runner)
    yield ctrl
    ctrl.shutdown()


def _drain(ctrl: AppController) -> list[dict]:
    messages = []
    while not ctrl.ui_queue.empty():
        messages.append(ctrl.ui_queue.get_nowait())
    return messages


class TestFileSelection:
    """Tests for adding and removing files."""

    def test_drop_adds_supported_files_once(self, controller, audio_files, tmp_path):
        (tmp_path / "src" / "readme.txt").write_text("")

        added = controller.handle_file_drop([str(tmp_path / "src")])
        again = controller.handle_file_drop([str(audio_files[0])])

        assert len(added) == 5
        assert again == []
        assert controller.view.rows == controller.files

    def test_remove_and_reset(self, controller, audio_files):
        controller.handle_file_drop([str(p) for p in audio_files])

        controller.remove_files([str(controller.files[0])])
        assert len(controller.files) == 4

        controller.reset()
        assert controller.files == []
        assert controller.view.rows == []


class TestStartEncoding:
    """Tests for start_encoding."""

    def test_requires_files(self, controller):
        assert controller.start_encoding() is None
        assert controller.view.errors

    def test_requires_output_folder_in_custom_mode(self, controller, audio_files):
        controller.handle_file_drop([str(p) for p in audio_files])
        controller.view.output_dir = ""

        assert controller.start_encoding() is None
        assert controller.view.errors == ["Choose an output folder."]
        assert controller.view.prepare_runs == 0

    def test_rejects_bad_concurrency(self, controller, audio_files):
        controller.handle_file_drop([str(p) for p in audio_files])
        controller.view.concurrency = "0"

        assert controller.start_encoding() is None
        assert len(controller.view.errors) == 1

    def test_runs_job_and_forwards_progress(self, controller, audio_files, calls, tmp_path):
        controller.handle_file_drop([str(p) for p in audio_files])
        controller.view.bit_depth = 24
        controller.view.sample_rate_khz = 96

        future = controller.start_encoding()
        tasks = future.result(timeout=10)

        assert len(tasks) == 5
        assert {(c[2], c[3]) for c in calls} == {(24, 96)}
        messages = _drain(controller)
        jobs = [m["value"] for m in messages if m["type"] == "job"]
        assert jobs == ["running", "completed"]
        finished = [m for m in messages if m["type"] == "task" and m["value"] == "succeeded"]
        assert {m["id"] for m in finished} == {str(p) for p in controller.files}
        last = [m["value"] for m in messages if m["type"] == "progress"][-1]
        assert isinstance(last, ProgressSnapshot)
        assert last.fraction == 1.0

    def test_choices_are_saved(self, controller, audio_files, isolated_settings):
        controller.handle_file_drop([str(p) for p in audio_files])
        controller.view.output_mode = "subfolder"
        controller.view.subfolder_name = "Lossless"

        controller.start_encoding().result(timeout=10)

        saved = json.loads(isolated_settings.read_text())
        assert saved["output_mode"] == "subfolder"
        assert saved["subfolder_name"] == "Lossless"
        assert saved["concurrency"] == 2

    def test_rows_reset_only_for_accepted_start(self, controller, audio_files):
        """A rejected start keeps the previous results on screen."""
        controller.handle_file_drop([str(p) for p in audio_files])
        controller.view.concurrency = "abc"
        assert controller.start_encoding() is None
        assert controller.view.prepare_runs == 0

        controller.view.concurrency = "2"
        controller.start_encoding().result(timeout=10)
        assert controller.view.prepare_runs == 1

    def test_second_start_while_queued_is_refused(self, tmp_path, audio_files):
        """Two quick starts never queue the same batch twice."""
        release = threading.Event()
        calls = []

        def encoder(input_path, *_args):
            calls.append(input_path)
            release.wait(5)

        runner = EncodeJobRunner(probe=lambda _p: AudioProperties(), encoder=encoder)
        ctrl = AppController(FakeView(str(tmp_path / "out")), settings=dict(DEFAULT_SETTINGS), runner=runner)
        try:
            ctrl.handle_file_drop([str(audio_files[0])])
            first = ctrl.start_encoding()
            second = ctrl.start_encoding()
            assert ctrl.is_busy
            release.set()
            first.result(timeout=10)
        finally:
            release.set()
            ctrl.shutdown()

        assert second is None
        assert ctrl.view.errors == ["An encoding job is already running."]
        assert len(calls) == 1
        assert not ctrl.is_busy

    def test_failure_reason_is_forwarded(self, tmp_path, audio_files):
        def encoder(input_path, *_args):
            from wmaencoder.errors import EncodeError

            raise EncodeError(f"ffmpeg 退出码 1: {input_path.name}", returncode=1)

        runner = EncodeJobRunner(probe=lambda _p: AudioProperties(), encoder=encoder)
        ctrl = AppController(FakeView(str(tmp_path / "out")), settings=dict(DEFAULT_SETTINGS), runner=runner)
        try:
            ctrl.handle_file_drop([str(audio_files[0])])
            ctrl.start_encoding().result(timeout=10)
        finally:
            ctrl.shutdown()

        errors = [m for m in _drain(ctrl) if m["type"] == "error"]
        assert len(errors) == 1
        assert "a.flac" in errors[0]["value"]
