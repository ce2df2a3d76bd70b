"""Tests for ffmpeg/ffprobe helpers."""

import json
import subprocess

import pytest

import media_services
from exceptions import DurationProbeError
from media_services import EngineOutcome


class Result:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def fake_ffprobe(monkeypatch, result=None, exc=None):
    calls = []

    def fake_run(cmd, capture_output, text, timeout):
        calls.append(cmd)
        assert capture_output is True
        assert text is True
        if exc is not None:
            raise exc
        return result

    monkeypatch.setattr(media_services.subprocess, "run", fake_run)
    return calls


def test_tool_cmd_plain(monkeypatch):
    monkeypatch.delenv("FLATPAK_ID", raising=False)
    assert media_services.tool_cmd("ffmpeg") == ["ffmpeg"]


def test_tool_cmd_inside_flatpak(monkeypatch):
    monkeypatch.setenv("FLATPAK_ID", "io.github.recrop.Recrop")
    monkeypatch.setattr(media_services.shutil, "which", lambda name: "/usr/bin/flatpak-spawn")
    assert media_services.tool_cmd("ffprobe") == ["flatpak-spawn", "--host", "ffprobe"]


def test_probe_video_metadata(monkeypatch):
    monkeypatch.delenv("FLATPAK_ID", raising=False)
    payload = {"format": {"duration": "60.000000"}, "streams": [{"width": 1280, "height": 720}]}
    calls = fake_ffprobe(monkeypatch, Result(stdout=json.dumps(payload)))
    assert media_services.probe_video_metadata("in.mp4", 10) == (60_000, 1280, 720)
    assert calls[0][0] == "ffprobe"
    assert calls[0][-1] == "in.mp4"


def test_probe_duration_ms(monkeypatch):
    fake_ffprobe(monkeypatch, Result(stdout=json.dumps({"format": {"duration": "12.3456"}})))
    assert media_services.probe_duration_ms("in.mp4") == 12_346


@pytest.mark.parametrize(
    "result",
    [
        Result(returncode=1, stderr="in.mp4: Invalid data found when processing input"),
        Result(stdout="not json"),
        Result(stdout=json.dumps({"format": {}})),
        Result(stdout=json.dumps({"format": {"duration": "N/A"}})),
        Result(stdout=json.dumps({"format": {"duration": "0.0"}})),
    ],
)
def test_probe_duration_failures(monkeypatch, result):
    fake_ffprobe(monkeypatch, result)
    with pytest.raises(DurationProbeError):
        media_services.probe_duration_ms("broken.mp4")


@pytest.mark.parametrize(
    "exc",
    [FileNotFoundError("ffprobe"), subprocess.TimeoutExpired(["ffprobe"], 10)],
)
def test_probe_duration_tool_errors(monkeypatch, exc):
    fake_ffprobe(monkeypatch, exc=exc)
    with pytest.raises(DurationProbeError):
        media_services.probe_duration_ms("in.mp4")


def test_check_encoder_available(monkeypatch):
    listing = " V....D libopenh264          OpenH264 H.264 / AVC / MPEG-4 AVC encoder\n"
    fake_ffprobe(monkeypatch, Result(stdout=listing))
    assert media_services.check_encoder_available("libopenh264", 2) is True
    assert media_services.check_encoder_available("libx265", 2) is False


def test_launch_ffmpeg(monkeypatch):
    monkeypatch.delenv("FLATPAK_ID", raising=False)
    seen = {}

    def fake_popen(cmd, **kwargs):
        seen["cmd"] = cmd
        seen.update(kwargs)
        return "proc"

    monkeypatch.setattr(media_services.subprocess, "Popen", fake_popen)
    assert media_services.launch_ffmpeg(["-y", "out.mp4"]) == "proc"
    assert seen["cmd"] == ["ffmpeg", "-y", "out.mp4"]
    assert seen["stderr"] is subprocess.PIPE
    assert seen["text"] is True
    assert seen["encoding"] == "utf-8"
    assert seen["errors"] == "replace"


@pytest.mark.parametrize(
    "returncode, cancel_requested, expected",
    [
        (0, False, EngineOutcome.SUCCESS),
        (0, True, EngineOutcome.SUCCESS),
        (255, True, EngineOutcome.CANCELLED),
        (-15, True, EngineOutcome.CANCELLED),
        (1, False, EngineOutcome.ERROR),
        (-9, False, EngineOutcome.ERROR),
    ],
)
def test_classify_exit(returncode, cancel_requested, expected):
    assert media_services.classify_exit(returncode, cancel_requested) is expected
