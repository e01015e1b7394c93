# Hintergrund-Aufgaben: blockierende Hilfsarbeit (Dateien lesen, ZIP bauen)
# im QThreadPool ausfuehren, Ergebnis per Signal im GUI-Thread abliefern.

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from PyQt6.QtCore import QObject, QRunnable, QThreadPool, pyqtSignal, pyqtSlot

log = logging.getLogger(__name__)


class TaskSignals(QObject):
    finished = pyqtSignal(object)  # return value
    failed = pyqtSignal(object)    # exception instance


class FunctionTask(QRunnable):
    """Runs a single callable on a pool thread."""

    def __init__(self, fn: Callable[[], Any]) -> None:
        super().__init__()
        self.signals = TaskSignals()
        self._fn = fn
        self.setAutoDelete(False)

    @pyqtSlot()
    def run(self) -> None:
        try:
            result = self._fn()
        except Exception as e:
            log.debug("Background task failed: %r", e)
            self.signals.failed.emit(e)
            return
        self.signals.finished.emit(result)


class BackgroundRunner:
    """Schedules FunctionTasks and keeps them alive until they report back."""

    def __init__(self, thread_pool: Optional[QThreadPool] = None) -> None:
        self._pool = thread_pool
        self._tasks: set[FunctionTask] = set()

    def run(
        self,
        fn: Callable[[], Any],
        on_done: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        task = FunctionTask(fn)
        self._tasks.add(task)
        task.signals.finished.connect(lambda _result: self._tasks.discard(task))
        task.signals.failed.connect(lambda _error: self._tasks.discard(task))
        task.signals.finished.connect(on_done)
        task.signals.failed.connect(on_error)
        (self._pool or QThreadPool.globalInstance()).start(task)
