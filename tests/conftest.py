"""
Pytest configuration and shared fakes.

Nothing here starts ffmpeg or a real event loop: background work runs
inline, and the worker channel is replaced by a scriptable fake.
"""

from concurrent.futures import Future

import pytest
from PyQt6.QtCore import QCoreApplication, QObject, pyqtSignal

from ts2mp4.errors import ChannelCrash, InitFailure, NotReadyError
from ts2mp4.ipc.protocol import ConvertRequest, CrashedEvent, InitErrorEvent, ReadyEvent
from ts2mp4.models.job import WorkerState


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One QCoreApplication for the whole session (no widgets needed)."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


class FakeInputFile:
    def __init__(self, name, data=b"", content_type="video/mp2t", error=None):
        self.name = name
        self.content_type = content_type
        self._data = data
        self._error = error
        self.reads = 0

    def read_bytes(self):
        self.reads += 1
        if self._error is not None:
            raise self._error
        return self._data


class InlineRunner:
    """Runs background tasks synchronously."""

    def run(self, fn, on_done, on_error):
        try:
            result = fn()
        except Exception as e:
            on_error(e)
            return
        on_done(result)


class ManualRunner:
    """Holds background tasks until the test releases them."""

    def __init__(self):
        self.pending = []

    def run(self, fn, on_done, on_error):
        self.pending.append((fn, on_done, on_error))

    def run_next(self):
        fn, on_done, on_error = self.pending.pop(0)
        InlineRunner().run(fn, on_done, on_error)

    def run_all(self):
        while self.pending:
            self.run_next()


class FakeChannel(QObject):
    """Stands in for WorkerChannel; records what would go to the worker."""

    worker_event = pyqtSignal(object)
    state_changed = pyqtSignal(object)

    def __init__(self, state=WorkerState.INITIALIZING):
        super().__init__()
        self.state = state
        self.failure = None
        self.sent = []
        self.start_calls = 0
        self.send_error = None
        self._ready = Future()
        if state == WorkerState.READY:
            self._ready.set_result(None)

    @property
    def is_ready(self):
        return self.state == WorkerState.READY

    def ready_future(self):
        return self._ready

    def start(self):
        self.start_calls += 1
        if self.state == WorkerState.UNINITIALIZED:
            self._set_state(WorkerState.INITIALIZING)

    def send(self, request):
        try:
            if self.state != WorkerState.READY:
                raise NotReadyError(f"Worker is {self.state.value}") from self.failure
            if self.send_error is not None:
                raise self.send_error
            self.sent.append({
                "message": request.to_dict(),
                "attachments": [(name, bytes(buf)) for name, buf in request.attachments()],
            })
        finally:
            if isinstance(request, ConvertRequest):
                request.release()

    # -- test helpers -----------------------------------------------------------

    def become_ready(self):
        self._set_state(WorkerState.READY)
        self._ready.set_result(None)
        self.worker_event.emit(ReadyEvent())

    def fail_init(self, message="ffmpeg not found"):
        self.failure = InitFailure(message)
        self._ready.set_exception(self.failure)
        self._set_state(WorkerState.FAILED)
        self.worker_event.emit(InitErrorEvent(message))

    def crash(self, message="Worker exited unexpectedly (exit code 1)"):
        self.failure = ChannelCrash(message)
        if self._ready.done():
            self._ready = Future()
        self._ready.set_exception(self.failure)
        self._set_state(WorkerState.FAILED)
        self.worker_event.emit(CrashedEvent(message))

    def _set_state(self, state):
        self.state = state
        self.state_changed.emit(state)


@pytest.fixture
def inline_runner():
    return InlineRunner()


@pytest.fixture
def manual_runner():
    return ManualRunner()


@pytest.fixture
def make_file():
    return FakeInputFile


@pytest.fixture
def ready_channel():
    return FakeChannel(state=WorkerState.READY)


@pytest.fixture
def loading_channel():
    return FakeChannel(state=WorkerState.INITIALIZING)


@pytest.fixture
def make_channel():
    return FakeChannel
