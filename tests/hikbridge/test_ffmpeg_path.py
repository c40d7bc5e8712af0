"""Tests for ffmpeg location and availability checks."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from hikbridge.ffmpeg.path import check_ffmpeg_available, resolve_ffmpeg_path, resolve_ffprobe_path


def test_resolve_ffmpeg_path_defaults_to_path_lookup() -> None:
    assert resolve_ffmpeg_path(None) == "ffmpeg"
    assert resolve_ffmpeg_path("") == "ffmpeg"


def test_resolve_ffmpeg_path_keeps_missing_custom_path() -> None:
    assert resolve_ffmpeg_path("/opt/ffmpeg/bin/ffmpeg") == "/opt/ffmpeg/bin/ffmpeg"


def test_resolve_ffprobe_next_to_ffmpeg(tmp_path: Path) -> None:
    # Given: ffmpeg and ffprobe installed side by side
    (tmp_path / "ffmpeg").write_text("")
    (tmp_path / "ffprobe").write_text("")

    # When/Then: ffprobe is taken from the same directory
    assert resolve_ffprobe_path(str(tmp_path / "ffmpeg")) == str(tmp_path / "ffprobe")


def test_resolve_ffprobe_falls_back_to_path(tmp_path: Path) -> None:
    (tmp_path / "ffmpeg").write_text("")

    assert resolve_ffprobe_path(str(tmp_path / "ffmpeg")) == "ffprobe"
    assert resolve_ffprobe_path("ffmpeg") == "ffprobe"


def test_check_available_parses_version(monkeypatch: pytest.MonkeyPatch) -> None:
    def _run(cmd: Sequence[str], **_kwargs: object) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(
            args=list(cmd),
            returncode=0,
            stdout="ffmpeg version 6.1.1-3ubuntu5 Copyright (c) 2000-2023 the FFmpeg developers\n",
            stderr="",
        )

    monkeypatch.setattr("hikbridge.ffmpeg.path.subprocess.run", _run)

    availability = check_ffmpeg_available("ffmpeg")

    assert availability.available
    assert availability.version == "6.1.1-3ubuntu5"


def test_check_available_reports_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(*_args: object, **_kwargs: object) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError("ffmpeg not found")

    monkeypatch.setattr("hikbridge.ffmpeg.path.subprocess.run", _missing)

    availability = check_ffmpeg_available("ffmpeg")

    assert not availability.available
    assert availability.error == "ffmpeg not found"


def test_check_available_reports_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(cmd: Sequence[str], **_kwargs: object) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(args=list(cmd), returncode=127, stdout="", stderr="")

    monkeypatch.setattr("hikbridge.ffmpeg.path.subprocess.run", _fail)

    availability = check_ffmpeg_available("ffmpeg")

    assert not availability.available
    assert availability.error == "Exit code: 127"
