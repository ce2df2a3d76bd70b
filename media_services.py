"""Service helpers for ffmpeg/ffprobe operations."""

import enum
import json
import logging
import os
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple

from constants import FFPROBE_TIMEOUT
from exceptions import DurationProbeError

log = logging.getLogger("Recrop")


class EngineOutcome(enum.Enum):
    """How a finished ffmpeg invocation ended."""

    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


def tool_cmd(tool: str) -> List[str]:
    """Use host tool inside Flatpak when available."""
    if os.environ.get("FLATPAK_ID") and shutil.which("flatpak-spawn"):
        return ["flatpak-spawn", "--host", tool]
    return [tool]


def check_encoder_available(encoder: str, timeout: int) -> bool:
    """Return True when the encoder is listed by ffmpeg."""
    result = subprocess.run(
        tool_cmd("ffmpeg") + ["-hide_banner", "-encoders"],
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    return encoder in result.stdout


def probe_video_metadata(path: str, timeout: int) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """Return (duration_ms, width, height) parsed from ffprobe JSON output."""
    result = subprocess.run(
        tool_cmd("ffprobe") + [
            "-v",
            "error",
            "-show_entries",
            "format=duration:stream=width,height",
            "-select_streams",
            "v:0",
            "-of",
            "json",
            path,
        ],
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    if result.returncode != 0:
        raise RuntimeError(result.stderr.strip())

    data = json.loads(result.stdout)

    duration_ms = None
    width = None
    height = None

    if "format" in data and "duration" in data["format"]:
        try:
            duration_ms = int(round(float(data["format"]["duration"]) * 1000))
        except (TypeError, ValueError):
            duration_ms = None

    if "streams" in data and data["streams"]:
        stream = data["streams"][0]
        if "width" in stream:
            width = int(stream["width"])
        if "height" in stream:
            height = int(stream["height"])

    return duration_ms, width, height


def probe_duration_ms(path: str, timeout: int = FFPROBE_TIMEOUT) -> int:
    """Return the playback length of ``path`` in milliseconds.

    Every way of not getting a usable duration is reported as
    DurationProbeError; a zero duration is never returned.
    """
    try:
        duration_ms, _, _ = probe_video_metadata(path, timeout)
    except subprocess.TimeoutExpired as e:
        raise DurationProbeError(f"ffprobe timed out reading {path}") from e
    except json.JSONDecodeError as e:
        raise DurationProbeError(f"Failed to parse metadata of {path}: {e}") from e
    except FileNotFoundError as e:
        raise DurationProbeError("ffprobe is not installed or not found in PATH") from e
    except RuntimeError as e:
        raise DurationProbeError(f"ffprobe error: {e}") from e

    if duration_ms is None or duration_ms <= 0:
        raise DurationProbeError(f"No duration reported for {path}")
    log.debug("Probed duration of %s: %d ms", path, duration_ms)
    return duration_ms


def launch_ffmpeg(args: Sequence[str]) -> subprocess.Popen:
    """Start ffmpeg with ``args``; status lines are read from stderr."""
    cmd = tool_cmd("ffmpeg") + list(args)
    # metadata echoed by ffmpeg is not always UTF-8
    return subprocess.Popen(
        cmd, stderr=subprocess.PIPE, stdout=subprocess.DEVNULL,
        text=True, encoding="utf-8", errors="replace", bufsize=1,
    )


def classify_exit(returncode: Optional[int], cancel_requested: bool) -> EngineOutcome:
    if returncode == 0:
        return EngineOutcome.SUCCESS
    if cancel_requested:
        return EngineOutcome.CANCELLED
    return EngineOutcome.ERROR
