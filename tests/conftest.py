"""Shared fixtures for wmaencoder tests."""

from pathlib import Path

import pytest

from wmaencoder.model import EncodeJob, EncodingMode, OutputMode


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the settings file at a temporary location."""
    path = tmp_path / "settings" / "settings.json"
    monkeypatch.setenv("WMAENCODER_SETTINGS", str(path))
    return path


@pytest.fixture
def audio_files(tmp_path: Path) -> list[Path]:
    """Create a handful of (empty) source audio files."""
    src = tmp_path / "src"
    src.mkdir()
    files = []
    for name in ("a.flac", "b.wav", "c.mp3", "d.aiff", "e.m4a"):
        path = src / name
        path.write_bytes(b"")
        files.append(path)
    return files


@pytest.fixture
def make_job(tmp_path: Path):
    """Build an EncodeJob writing into tmp_path/out by default."""

    def _make(files, **kwargs) -> EncodeJob:
        kwargs.setdefault("output_mode", OutputMode.CUSTOM)
        kwargs.setdefault("encoding_mode", EncodingMode.MANUAL)
        if kwargs["output_mode"] is OutputMode.CUSTOM:
            kwargs.setdefault("output_dir", tmp_path / "out")
        return EncodeJob(files=tuple(files), **kwargs)

    return _make
