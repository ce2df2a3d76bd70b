"""Crop jobs and the single-slot runner that drives ffmpeg for them.

A JobRunner owns one background thread at a time. It probes the input
duration when the job does not carry one, launches ffmpeg, turns stderr
status lines into percentages, and reports the end of the job exactly once.
Callbacks go through the runner's ``dispatch`` callable so a GUI can have
them delivered on its main loop (see ``utils.idle_dispatch``).
"""

import collections
import dataclasses
import enum
import logging
import os
import subprocess
import threading
from typing import Callable, List, Optional

from constants import (
    CROP_DEFAULT_WIDTH, CROP_DEFAULT_HEIGHT, CROP_DEFAULT_X, CROP_DEFAULT_Y,
    DECODER, ENCODER, STRICT_LEVEL, MAX_MUXING_QUEUE_SIZE, LOG_TAIL_LINES,
    PROCESS_STOP_TIMEOUT,
)
from exceptions import AlreadyRunningError, DurationProbeError
from media_services import EngineOutcome, classify_exit, launch_ffmpeg, probe_duration_ms
from progress import ProgressTracker

log = logging.getLogger("Recrop")


@dataclasses.dataclass(frozen=True)
class CropRect:
    width: int
    height: int
    x: int
    y: int

    @classmethod
    def default(cls) -> "CropRect":
        return cls(CROP_DEFAULT_WIDTH, CROP_DEFAULT_HEIGHT, CROP_DEFAULT_X, CROP_DEFAULT_Y)

    def filter_expression(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"


@dataclasses.dataclass(frozen=True)
class TranscodeJob:
    """One crop invocation. Out-of-frame rectangles are passed to ffmpeg as is."""

    input_path: str
    output_path: str
    crop: CropRect
    total_duration_ms: Optional[int] = None
    decoder: str = DECODER
    encoder: str = ENCODER
    max_muxing_queue_size: int = MAX_MUXING_QUEUE_SIZE
    strict: str = STRICT_LEVEL

    def with_duration(self, duration_ms: int) -> "TranscodeJob":
        return dataclasses.replace(self, total_duration_ms=duration_ms)

    def arguments(self) -> List[str]:
        """Return the ffmpeg arguments, one list item per argument."""
        return [
            "-y",
            "-c:v", self.decoder,
            "-i", os.fspath(self.input_path),
            "-filter:v", self.crop.filter_expression(),
            "-max_muxing_queue_size", str(self.max_muxing_queue_size),
            "-c:v", self.encoder,
            "-strict", str(self.strict),
            os.fspath(self.output_path),
        ]


class JobState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureReason(enum.Enum):
    PROBE = "probe"
    TOOL_MISSING = "tool_missing"
    ENGINE = "engine"


@dataclasses.dataclass
class JobResult:
    job: TranscodeJob
    state: JobState
    returncode: Optional[int] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    log_tail: List[str] = dataclasses.field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.state is JobState.CANCELLED


_OUTCOME_STATES = {
    EngineOutcome.SUCCESS: JobState.SUCCEEDED,
    EngineOutcome.CANCELLED: JobState.CANCELLED,
    EngineOutcome.ERROR: JobState.FAILED,
}


def call_now(fn, *args):
    fn(*args)


ProgressCallback = Callable[[int], None]
CompleteCallback = Callable[[JobResult], None]


class JobRunner:
    def __init__(self, launcher=None, probe=None, dispatch=None):
        self._launcher = launcher or launch_ffmpeg
        self._probe = probe or probe_duration_ms
        self._dispatch = dispatch or call_now
        self._lock = threading.Lock()
        self._state = JobState.IDLE
        self._job: Optional[TranscodeJob] = None
        self._process = None
        self._thread: Optional[threading.Thread] = None
        self._cancel_event = threading.Event()

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is JobState.RUNNING

    @property
    def current_job(self) -> Optional[TranscodeJob]:
        return self._job

    def start(self, job: TranscodeJob, on_progress: ProgressCallback, on_complete: CompleteCallback) -> None:
        """Run ``job`` in the background; raises AlreadyRunningError if busy."""
        with self._lock:
            if self._state is JobState.RUNNING:
                raise AlreadyRunningError(f"A crop job is already running for {self._job.output_path}")
            self._state = JobState.RUNNING
            self._job = job
            self._process = None
            self._cancel_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(job, self._cancel_event, on_progress, on_complete),
                daemon=True,
            )
            thread = self._thread
        log.info("Starting crop job %s -> %s (%s)", job.input_path, job.output_path, job.crop.filter_expression())
        thread.start()

    def cancel(self) -> bool:
        """Ask the running job to stop. Returns False when nothing is running."""
        with self._lock:
            if self._state is not JobState.RUNNING:
                return False
            self._cancel_event.set()
            proc = self._process
        log.info("User requested crop cancellation")
        if proc is not None:
            self._stop_process(proc)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker thread; True when it has finished."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _stop_process(self, proc):
        try:
            proc.terminate()
        except OSError:
            log.debug("ffmpeg already exited")

    def _reap_process(self, proc):
        try:
            if proc.stderr:
                proc.stderr.close()
        except OSError:
            log.debug("ffmpeg stderr already closed")
        try:
            proc.wait(timeout=PROCESS_STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            log.warning("ffmpeg did not stop after terminate; killing it")
            proc.kill()
            proc.wait()

    def _run(self, job, cancel, on_progress, on_complete):
        try:
            result = self._execute(job, cancel, on_progress)
        except Exception as e:
            log.exception("Error running ffmpeg")
            proc = self._process
            if proc is not None:
                try:
                    self._stop_process(proc)
                finally:
                    self._reap_process(proc)
            result = JobResult(job, JobState.FAILED, reason=FailureReason.ENGINE, error=str(e))

        with self._lock:
            self._state = result.state
            self._process = None
            self._job = None
        log.info("Crop job finished: %s", result.state.value)
        self._dispatch(on_complete, result)

    def _execute(self, job, cancel, on_progress) -> JobResult:
        if job.total_duration_ms is None:
            try:
                job = job.with_duration(self._probe(job.input_path))
            except DurationProbeError as e:
                if cancel.is_set():
                    log.info("Crop cancelled while probing duration")
                    return JobResult(job, JobState.CANCELLED)
                log.error("Duration probe failed: %s", e)
                return JobResult(job, JobState.FAILED, reason=FailureReason.PROBE, error=str(e))
        tracker = ProgressTracker(job.total_duration_ms)
        if not tracker.ready:
            return JobResult(
                job, JobState.FAILED, reason=FailureReason.PROBE,
                error=f"Invalid duration {job.total_duration_ms!r} for {job.input_path}",
            )

        with self._lock:
            if cancel.is_set():
                log.info("Crop cancelled before ffmpeg started")
                return JobResult(job, JobState.CANCELLED)
            try:
                proc = self._launcher(job.arguments())
            except FileNotFoundError:
                log.error("ffmpeg not found")
                return JobResult(
                    job, JobState.FAILED, reason=FailureReason.TOOL_MISSING,
                    error="ffmpeg is not installed or not found in PATH",
                )
            self._process = proc
        log.info("Started ffmpeg (pid=%s)", getattr(proc, "pid", "<unknown>"))

        tail = collections.deque(maxlen=LOG_TAIL_LINES)
        if proc.stderr:
            for raw_line in proc.stderr:
                if cancel.is_set():
                    break
                line = raw_line.strip()
                if not line:
                    continue
                tail.append(line)
                percent = tracker.percent_for_line(line)
                if percent is not None:
                    self._dispatch(on_progress, percent)
            if cancel.is_set():
                proc.stderr.close()

        returncode = proc.wait()
        outcome = classify_exit(returncode, cancel.is_set())
        state = _OUTCOME_STATES[outcome]
        if state is JobState.FAILED:
            log.error("ffmpeg exited with code %s", returncode)
            return JobResult(
                job, state, returncode=returncode, reason=FailureReason.ENGINE,
                error=f"ffmpeg exited with code {returncode}", log_tail=list(tail),
            )
        if state is JobState.CANCELLED:
            log.info("Crop cancelled by user")
        return JobResult(job, state, returncode=returncode, log_tail=list(tail))
