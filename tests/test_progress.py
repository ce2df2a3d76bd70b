"""Tests for ffmpeg progress parsing."""

import pytest

from progress import ProgressTracker, parse_elapsed_ms


@pytest.mark.parametrize(
    "line",
    [
        "",
        "Stream mapping:",
        "  Stream #0:0 -> #0:0 (h264 (libopenh264) -> h264 (libopenh264))",
        "frame=    0 fps=0.0 q=0.0 size=       0kB time=N/A bitrate=N/A speed=N/A",
        "time=00:00:05",
        "time=00:05.250",
        "elapsed 00:00:05.250",
    ],
)
def test_lines_without_timestamp_give_no_match(line):
    assert parse_elapsed_ms(line) is None
    assert ProgressTracker(60_000).percent_for_line(line) is None


def test_parse_full_timestamp():
    assert parse_elapsed_ms("time=01:02:03.456") == 3_723_456


def test_parse_timestamp_inside_status_line():
    line = "frame=  750 fps= 48 q=-0.0 size=    1024kB time=00:00:30.000 bitrate= 279.6kbits/s speed=1.9x"
    assert parse_elapsed_ms(line) == 30_000


def test_fraction_is_taken_as_literal_milliseconds():
    assert parse_elapsed_ms("time=00:00:05.7") == 5_007
    assert parse_elapsed_ms("time=00:00:05.07") == 5_007


def test_first_marker_wins():
    assert parse_elapsed_ms("time=00:00:01.000 time=00:00:02.000") == 1_000


def test_only_first_marker_is_read():
    line = "frame=    0 time=N/A bitrate=N/A out_time=00:00:01.000"
    assert parse_elapsed_ms(line) is None
    assert parse_elapsed_ms("time=-00:00:00.040 time=00:00:01.000") is None


def test_malformed_timestamp_is_absorbed():
    assert parse_elapsed_ms("time=00:00:05.1.2") is None
    assert parse_elapsed_ms("time=1:2:3:4.5") is None
    assert parse_elapsed_ms("time=::.") is None


def test_tracker_floors_percentage():
    assert ProgressTracker(10_000_000).percent(3_723_456) == 37


def test_tracker_uses_exact_integer_math():
    assert ProgressTracker(100).percent(29) == 29


@pytest.mark.parametrize("elapsed", [60_000, 60_001, 10 * 60_000])
def test_tracker_caps_at_100(elapsed):
    assert ProgressTracker(60_000).percent(elapsed) == 100


def test_tracker_clamps_negative_to_zero():
    assert ProgressTracker(60_000).percent(-5_000) == 0


@pytest.mark.parametrize("duration", [None, 0, -1])
def test_tracker_without_duration_gives_no_update(duration):
    tracker = ProgressTracker(duration)
    assert not tracker.ready
    assert tracker.percent(1_000) is None


def test_tracker_percent_for_line():
    tracker = ProgressTracker(60_000)
    assert tracker.percent_for_line("frame=1 time=00:00:00.000 speed=1x") == 0
    assert tracker.percent_for_line("frame=2 time=00:00:30.000 speed=1x") == 50
    assert tracker.percent_for_line("frame=3 time=00:01:00.000 speed=1x") == 100
