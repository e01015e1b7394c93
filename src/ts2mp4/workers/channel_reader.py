# Worker: Liest kontinuierlich Nachrichten vom Worker-Prozess und leitet sie
# als Qt-Signals an den WorkerChannel weiter.  Laeuft in QThreadPool.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PyQt6.QtCore import QObject, QRunnable, pyqtSignal, pyqtSlot

if TYPE_CHECKING:
    from ts2mp4.ipc.client import IpcClient

log = logging.getLogger(__name__)


class ReaderSignals(QObject):
    """Signals emitted by ChannelReader (must be on QObject, not QRunnable)."""

    message = pyqtSignal(object)        # typed event from ipc.protocol
    connection_lost = pyqtSignal(str)   # reason


class ChannelReader(QRunnable):
    """Reads events from the IPC client in a background thread."""

    def __init__(self, ipc_client: IpcClient) -> None:
        super().__init__()
        self.signals = ReaderSignals()
        self._client = ipc_client
        self._running = True
        self.setAutoDelete(False)

    def stop(self) -> None:
        self._running = False

    @pyqtSlot()
    def run(self) -> None:
        """Main loop: read events and relay them until the worker goes away."""
        reason = "Worker closed its output stream"
        try:
            for event in self._client.read_messages():
                if not self._running:
                    break
                self.signals.message.emit(event)
        except Exception as e:
            log.exception("Worker reader error")
            reason = f"Worker reader error: {e}"
        finally:
            if self._running:
                code = self._client.wait_exit()
                if code is not None:
                    reason = f"Worker exited unexpectedly (exit code {code})"
                self.signals.connection_lost.emit(reason)
            log.info("Worker reader stopped")
