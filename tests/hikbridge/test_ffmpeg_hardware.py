"""Tests for hardware encoder detection."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

import pytest

from hikbridge.ffmpeg.hardware import HardwareEncoderDetector, parse_encoder_list
from hikbridge.models.enums import AccelerationMode

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC (codec h264)
 V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)
 V....D h264_vaapi           H.264/AVC (VAAPI) (codec h264)
 A....D libopus              libopus Opus (codec opus)
"""


def _fake_run(encoders: str, *, nvidia: bool) -> object:
    def _run(cmd: Sequence[str], **_kwargs: object) -> subprocess.CompletedProcess[str]:
        if cmd[0] == "nvidia-smi":
            if not nvidia:
                raise FileNotFoundError("nvidia-smi")
            return subprocess.CompletedProcess(args=list(cmd), returncode=0, stdout="", stderr="")
        return subprocess.CompletedProcess(args=list(cmd), returncode=0, stdout=encoders, stderr="")

    return _run


def test_parse_encoder_list() -> None:
    names = parse_encoder_list(ENCODERS_OUTPUT)

    assert names == frozenset({"libx264", "h264_nvenc", "h264_vaapi", "libopus"})


def test_vaapi_preferred_when_device_exists(monkeypatch: pytest.MonkeyPatch) -> None:
    # Given: ffmpeg with VAAPI and NVENC, and a render node present
    monkeypatch.setattr(
        "hikbridge.ffmpeg.hardware.subprocess.run", _fake_run(ENCODERS_OUTPUT, nvidia=True)
    )
    monkeypatch.setattr("hikbridge.ffmpeg.hardware.Path.exists", lambda _p: True)

    # When: detecting
    support = HardwareEncoderDetector("ffmpeg", vaapi_device="/dev/dri/renderD129").detect()

    # Then: VAAPI wins and carries the device
    assert support.mode == AccelerationMode.VAAPI
    assert support.hwaccel_device == "/dev/dri/renderD129"
    assert support.is_hardware


def test_nvenc_requires_nvidia_gpu(monkeypatch: pytest.MonkeyPatch) -> None:
    # Given: no render node and no nvidia-smi
    monkeypatch.setattr(
        "hikbridge.ffmpeg.hardware.subprocess.run", _fake_run(ENCODERS_OUTPUT, nvidia=False)
    )
    monkeypatch.setattr("hikbridge.ffmpeg.hardware.Path.exists", lambda _p: False)

    # When: detecting
    support = HardwareEncoderDetector().detect()

    # Then: software encoding is chosen
    assert support.mode == AccelerationMode.SOFTWARE
    assert not support.is_hardware
    assert "h264_nvenc" in support.available_encoders


def test_nvenc_selected_when_gpu_responds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "hikbridge.ffmpeg.hardware.subprocess.run", _fake_run(ENCODERS_OUTPUT, nvidia=True)
    )
    monkeypatch.setattr("hikbridge.ffmpeg.hardware.Path.exists", lambda _p: False)

    support = HardwareEncoderDetector().detect()

    assert support.mode == AccelerationMode.NVENC


def test_missing_ffmpeg_means_software(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(*_args: object, **_kwargs: object) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError("ffmpeg not found")

    monkeypatch.setattr("hikbridge.ffmpeg.hardware.subprocess.run", _missing)

    support = HardwareEncoderDetector().detect()

    assert support.mode == AccelerationMode.SOFTWARE
    assert support.available_encoders == frozenset()
