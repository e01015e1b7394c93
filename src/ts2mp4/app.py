# App-Factory: Baut Worker-Kanal, JobController und Hauptfenster und
# verbindet sie miteinander.

import logging
from typing import Optional

from PyQt6.QtWidgets import QMessageBox

from ts2mp4.i18n import tr
from ts2mp4.ipc.channel import WorkerChannel
from ts2mp4.ipc.client import IpcClient, find_backend_command
from ts2mp4.models.job import WorkerState
from ts2mp4.viewmodels.job_controller import JobController
from ts2mp4.views.main_window import MainWindow

log = logging.getLogger(__name__)


def create_app() -> Optional[MainWindow]:
    """Erzeugt und konfiguriert das Hauptfenster.

    Returns None if the worker process cannot be spawned (shows error dialog).
    """
    command = find_backend_command()
    channel = WorkerChannel(IpcClient(command))

    window = MainWindow()
    controller = JobController(channel, parent=window)
    channel.setParent(window)
    window.set_controller(controller, channel)

    channel.start()
    if channel.state == WorkerState.FAILED:
        QMessageBox.critical(
            None,
            tr("dlg.backend_title"),
            f"{tr('dlg.backend_msg')}{channel.failure}\n\n{' '.join(command)}",
        )
        return None

    return window
