# ViewModel fuer den Konvertierungs-Job.
# Erzwingt "hoechstens ein Job gleichzeitig", treibt die Zustandsmaschine
# IDLE -> SUBMITTING -> RUNNING -> {SUCCEEDED, FAILED} -> IDLE und meldet
# Fortschritt, Log-Zeilen und Ergebnisse per Qt-Signal an die Oberflaeche.

from __future__ import annotations

import logging
import math
from concurrent.futures import Future
from typing import Iterable, Optional

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from ts2mp4.errors import ChannelCrash, NotReadyError
from ts2mp4.ipc.protocol import (
    ConvertCompleteEvent,
    ConvertErrorEvent,
    ConvertRequest,
    CrashedEvent,
    InitErrorEvent,
    LogEvent,
    ProgressEvent,
    ReadyEvent,
)
from ts2mp4.models.files import InputFile, PayloadEntry, is_ts_file
from ts2mp4.models.job import (
    ConversionOptions,
    Deliverable,
    FailureKind,
    Job,
    JobState,
    WorkerState,
)
from ts2mp4.services.marshal import marshal_files
from ts2mp4.services.packager import package_outputs
from ts2mp4.workers.task_runner import BackgroundRunner

log = logging.getLogger(__name__)


def clamp_fraction(value) -> float:
    """Coerce a worker progress value into [0, 1]; garbage becomes 0."""
    try:
        fraction = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(fraction):
        return 0.0
    return max(0.0, min(1.0, fraction))


class JobController(QObject):
    """Sequences one conversion at a time against the worker channel."""

    log_message = pyqtSignal(str)
    progress_changed = pyqtSignal(float)        # 0..1
    status_changed = pyqtSignal(object)         # JobState
    deliverable_ready = pyqtSignal(object)      # Deliverable
    no_output = pyqtSignal()
    job_failed = pyqtSignal(object, str)        # FailureKind, message
    can_submit_changed = pyqtSignal(bool)

    def __init__(self, channel, runner=None, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._channel = channel
        self._runner = runner or BackgroundRunner()
        self._job: Optional[Job] = None
        self._packaging: Optional[Job] = None
        self._state = JobState.IDLE
        self._selection: list[InputFile] = []
        self._can_submit = False
        channel.worker_event.connect(self.handle_event)
        channel.state_changed.connect(self._on_worker_state_changed)

    # -- public API -------------------------------------------------------------

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def job(self) -> Optional[Job]:
        return self._job

    @property
    def selection(self) -> list[InputFile]:
        return list(self._selection)

    def select_files(self, files: Iterable[InputFile]) -> int:
        """Replace the current selection with the TS files among `files`.

        Keeps the previous selection if none of them is a TS file.
        """
        ts_files = [f for f in files if is_ts_file(f)]
        if not ts_files:
            self.log_message.emit("No .ts files in selection.")
            return 0
        self._selection = ts_files
        self.log_message.emit(f"Selected {len(ts_files)} file(s).")
        self._refresh_can_submit()
        return len(ts_files)

    def can_submit(self) -> bool:
        return self._job is None and self._channel.is_ready and bool(self._selection)

    def submit(self, files: Iterable[InputFile], options: Optional[ConversionOptions] = None) -> bool:
        """Start converting `files`. Returns immediately.

        Returns False (and logs why) if a job is already active or no files
        were given. Raises NotReadyError if the worker has already failed;
        the worker is not contacted in that case.
        """
        files = list(files)
        if self._job is not None:
            log.info("Submit ignored: job %s is %s", self._job.id, self._job.state.value)
            self.log_message.emit("A conversion is already running; request ignored.")
            return False
        if not files:
            self.log_message.emit("No files selected; nothing to convert.")
            return False
        if self._channel.state == WorkerState.FAILED:
            raise NotReadyError(f"ffmpeg is not available: {self._channel.failure}") from self._channel.failure

        job = Job(files=files, options=options or ConversionOptions())
        self._job = job
        self._set_state(JobState.SUBMITTING)
        self._refresh_can_submit()
        self.progress_changed.emit(0.0)

        if self._channel.state == WorkerState.UNINITIALIZED:
            self._channel.start()
        if not self._channel.is_ready:
            self.log_message.emit("Waiting for ffmpeg to load…")
        self._channel.ready_future().add_done_callback(lambda fut: self._on_channel_ready(job, fut))
        return True

    # -- transition function ----------------------------------------------------

    @pyqtSlot(object)
    def handle_event(self, event: object) -> None:
        """Apply one worker event. Every event type is handled or ignored here."""
        if isinstance(event, ProgressEvent):
            if self._job is None:
                return
            fraction = clamp_fraction(event.fraction)
            self._job.progress = fraction
            self.progress_changed.emit(fraction)
        elif isinstance(event, LogEvent):
            if event.message:
                self.log_message.emit(event.message)
        elif isinstance(event, ConvertCompleteEvent):
            self._on_convert_complete(event)
        elif isinstance(event, ConvertErrorEvent):
            if self._job is None or self._job.state != JobState.RUNNING:
                log.info("Ignoring convert-error without running job: %s", event.message)
                return
            self._fail_job(self._job, FailureKind.CONVERSION, event.message)
        elif isinstance(event, CrashedEvent):
            self.log_message.emit(f"Worker error: {event.message}")
            if self._job is not None:
                self._fail_job(self._job, FailureKind.CRASH, event.message)
        elif isinstance(event, ReadyEvent):
            self.log_message.emit("ffmpeg loaded.")
        elif isinstance(event, InitErrorEvent):
            self.log_message.emit(f"ffmpeg failed to load: {event.message}")
        else:
            log.warning("Unhandled event: %r", event)

    # -- job steps --------------------------------------------------------------

    def _on_channel_ready(self, job: Job, future: Future) -> None:
        if job is not self._job:
            return
        error = future.exception()
        if error is not None:
            kind = FailureKind.CRASH if isinstance(error, ChannelCrash) else FailureKind.INIT
            self._fail_job(job, kind, f"ffmpeg failed to initialize: {error}")
            return
        self.log_message.emit("Starting conversion…")
        self._runner.run(
            lambda: marshal_files(job.files),
            lambda payload: self._on_marshaled(job, payload),
            lambda err: self._on_marshal_failed(job, err),
        )

    def _on_marshaled(self, job: Job, payload: list[PayloadEntry]) -> None:
        if job is not self._job:
            for entry in payload:
                entry.release()
            return
        request = ConvertRequest(files=payload, options=job.options)
        try:
            self._channel.send(request)
        except ChannelCrash as e:
            self._fail_job(job, FailureKind.CRASH, str(e))
            return
        except NotReadyError as e:
            self._fail_job(job, FailureKind.INIT, str(e))
            return
        job.state = JobState.RUNNING
        self._set_state(JobState.RUNNING)

    def _on_marshal_failed(self, job: Job, error: BaseException) -> None:
        self._fail_job(job, FailureKind.MARSHAL, str(error))

    def _on_convert_complete(self, event: ConvertCompleteEvent) -> None:
        job = self._job
        if job is None or job.state != JobState.RUNNING:
            log.info("Ignoring convert-complete without running job")
            return
        if self._packaging is job:
            log.warning("Ignoring duplicate convert-complete for job %s", job.id)
            return
        self._packaging = job
        outputs = event.outputs
        self._runner.run(
            lambda: package_outputs(outputs),
            lambda deliverable: self._succeed_job(job, deliverable),
            lambda err: self._fail_job(job, FailureKind.PACKAGING, f"Post-processing failed: {err}"),
        )

    # -- terminal outcomes (each destroys the job exactly once) -----------------

    def _succeed_job(self, job: Job, deliverable: Optional[Deliverable]) -> None:
        if job is not self._job:
            return
        self._job = None
        self._packaging = None
        job.state = JobState.SUCCEEDED
        job.progress = 1.0
        self._set_state(JobState.SUCCEEDED)
        if deliverable is None:
            self.log_message.emit("Conversion finished but produced no outputs.")
            self.no_output.emit()
        else:
            self.log_message.emit(f"Done in {job.elapsed:.1f}s: {deliverable.filename}")
            self.deliverable_ready.emit(deliverable)
        self._settle()

    def _fail_job(self, job: Job, kind: FailureKind, message: str) -> None:
        if job is not self._job:
            return
        self._job = None
        self._packaging = None
        message = message or "Unknown error"
        job.state = JobState.FAILED
        job.error = message
        log.error("Conversion failed (%s): %s", kind.value, message)
        self._set_state(JobState.FAILED)
        self.log_message.emit(f"Conversion failed: {message}")
        self.job_failed.emit(kind, message)
        self._settle()

    def _settle(self) -> None:
        # a slot may already have started the next job
        if self._job is None:
            self._set_state(JobState.IDLE)
        self._refresh_can_submit()

    # -- helpers ----------------------------------------------------------------

    def _set_state(self, state: JobState) -> None:
        if state == self._state:
            return
        self._state = state
        self.status_changed.emit(state)

    def _refresh_can_submit(self) -> None:
        value = self.can_submit()
        if value != self._can_submit:
            self._can_submit = value
            self.can_submit_changed.emit(value)

    def _on_worker_state_changed(self, _state: object) -> None:
        self._refresh_can_submit()
