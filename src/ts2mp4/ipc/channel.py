# WorkerChannel: Besitzt genau einen Worker-Prozess, verfolgt dessen Zustand
# und stellt die Bereitschaft als Future zur Verfuegung.

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Optional

from PyQt6.QtCore import QObject, QThreadPool, pyqtSignal, pyqtSlot

from ts2mp4.errors import ChannelCrash, ConverterError, InitFailure, NotReadyError
from ts2mp4.ipc.client import IpcClient
from ts2mp4.ipc.protocol import (
    ConvertRequest,
    CrashedEvent,
    InitErrorEvent,
    InitRequest,
    ReadyEvent,
    ShutdownRequest,
)
from ts2mp4.models.job import WorkerState
from ts2mp4.workers.channel_reader import ChannelReader

log = logging.getLogger(__name__)


class WorkerChannel(QObject):
    """Lifecycle and messaging boundary of the single worker process.

    All state lives on the thread that owns this object (the GUI thread);
    the reader relays worker output through queued signals. The channel is
    started once and never re-initialised: READY is left only towards
    FAILED, and FAILED is final.
    """

    worker_event = pyqtSignal(object)          # typed event from ipc.protocol
    state_changed = pyqtSignal(object)  # WorkerState

    def __init__(
        self,
        client: IpcClient,
        thread_pool: Optional[QThreadPool] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._client = client
        if thread_pool is None:
            # the reader holds its thread for the worker's whole lifetime
            thread_pool = QThreadPool(self)
            thread_pool.setMaxThreadCount(1)
        self._pool = thread_pool
        self._state = WorkerState.UNINITIALIZED
        self._failure: Optional[ConverterError] = None
        self._ready: Future = Future()
        self._reader: Optional[ChannelReader] = None
        self._stopping = False

    # -- public API -------------------------------------------------------------

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == WorkerState.READY

    @property
    def failure(self) -> Optional[ConverterError]:
        """The InitFailure or ChannelCrash that put the channel into FAILED."""
        return self._failure

    def start(self) -> None:
        """Spawn the worker and send init. Effects arrive as events."""
        if self._state != WorkerState.UNINITIALIZED:
            return
        self._set_state(WorkerState.INITIALIZING)
        try:
            self._client.start()
        except OSError as e:
            failure = InitFailure(f"Could not start worker: {e}")
            log.error("%s", failure)
            self._fail(failure)
            self.worker_event.emit(InitErrorEvent(str(failure)))
            return

        self._reader = ChannelReader(self._client)
        self._reader.signals.message.connect(self.handle_message)
        self._reader.signals.connection_lost.connect(self.handle_connection_lost)
        self._pool.start(self._reader)

        try:
            self._client.send(InitRequest())
        except (OSError, RuntimeError) as e:
            self._crash(ChannelCrash(f"Could not send init to worker: {e}"))

    def ready_future(self) -> Future:
        """Shared readiness future; every waiter sees the same outcome.

        Already resolved when READY, already failed when FAILED.
        """
        return self._ready

    def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Block until READY. Raises InitFailure/ChannelCrash on failure.

        Readiness is resolved on the channel's own thread, so only call this
        from a different thread.
        """
        self._ready.result(timeout)

    def send(self, request) -> None:
        """Send a request to the worker.

        A ConvertRequest is consumed: its buffers are released afterwards,
        whether or not the write succeeded.
        """
        try:
            if not isinstance(request, (InitRequest, ShutdownRequest)) and self._state != WorkerState.READY:
                raise NotReadyError(f"Worker is {self._state.value}") from self._failure
            try:
                self._client.send(request)
            except (OSError, RuntimeError) as e:
                crash = ChannelCrash(f"Could not write to worker: {e}")
                self._crash(crash)
                raise crash from e
        finally:
            if isinstance(request, ConvertRequest):
                request.release()

    def stop(self) -> None:
        """Shut the worker down. Not treated as a crash."""
        self._stopping = True
        if self._reader is not None:
            self._reader.stop()
        self._client.stop()

    # -- slots from reader signals ----------------------------------------------

    @pyqtSlot(object)
    def handle_message(self, event: object) -> None:
        if isinstance(event, ReadyEvent):
            if self._state != WorkerState.INITIALIZING:
                log.warning("Ignoring ready from worker in state %s", self._state.value)
                return
            self._set_state(WorkerState.READY)
            self._ready.set_result(None)
        elif isinstance(event, InitErrorEvent):
            if self._state != WorkerState.INITIALIZING:
                log.warning("Ignoring init-error in state %s: %s", self._state.value, event.message)
                return
            log.error("Worker failed to initialise: %s", event.message)
            self._fail(InitFailure(event.message))
        self.worker_event.emit(event)

    @pyqtSlot(str)
    def handle_connection_lost(self, reason: str) -> None:
        if self._stopping:
            return
        self._crash(ChannelCrash(reason))

    # -- internal ---------------------------------------------------------------

    def _crash(self, crash: ChannelCrash) -> None:
        if self._state == WorkerState.FAILED:
            log.info("Worker went away after failure: %s", crash)
            return
        log.error("Worker channel crashed: %s", crash)
        self._fail(crash)
        self.worker_event.emit(CrashedEvent(str(crash)))

    def _fail(self, error: ConverterError) -> None:
        self._failure = error
        if self._ready.done():
            # READY is not revisited: later waiters must see the failure
            self._ready = Future()
        self._ready.set_exception(error)
        self._set_state(WorkerState.FAILED)

    def _set_state(self, state: WorkerState) -> None:
        if state == self._state:
            return
        self._state = state
        self.state_changed.emit(state)
