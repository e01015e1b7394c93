# Hauptfenster der Anwendung.
# Dateiauswahl (Drag & Drop), Kodier-Optionen, Fortschritt und Protokoll.
# Haelt keinen Job-Zustand; alles laeuft ueber den JobController.

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QSettings
from PyQt6.QtWidgets import (
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSpinBox,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)

from ts2mp4.errors import ChannelCrash, NotReadyError
from ts2mp4.i18n import get_language, set_language, tr
from ts2mp4.models.files import LocalInputFile, TS_EXTENSION
from ts2mp4.models.job import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_CRF,
    DEFAULT_PRESET,
    ConversionOptions,
    FailureKind,
    JobState,
    WorkerState,
)
from ts2mp4.services.download import save_deliverable

PRESETS = [
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
]
AUDIO_BITRATES = ["96k", "128k", "160k", "192k", "256k", "320k"]

_WORKER_STATUS_KEY = {
    WorkerState.UNINITIALIZED: "status.loading",
    WorkerState.INITIALIZING:  "status.loading",
    WorkerState.READY:         "status.ready",
    WorkerState.FAILED:        "status.init_failed",
}


def failure_status_key(kind: FailureKind) -> str:
    """Status line shown after a failed job."""
    if kind == FailureKind.CRASH:
        return "status.crashed"
    elif kind == FailureKind.INIT:
        return "status.init_failed"
    else:
        return "status.error"


class MainWindow(QMainWindow):
    """Hauptfenster des TS→MP4-Konverters."""

    def __init__(self) -> None:
        super().__init__()
        self._controller = None  # set via set_controller
        self._channel = None
        self._status_key = "status.loading"
        self._settings = QSettings("ts2mp4", "TS2MP4")
        self.setMinimumSize(640, 560)
        self.setAcceptDrops(True)

        self._build_central()
        self._build_statusbar()
        self._load_settings()
        self.retranslate_ui()
        self._set_busy(False)

    # -- public -----------------------------------------------------------------

    def set_controller(self, controller, channel) -> None:
        self._controller = controller
        self._channel = channel
        controller.log_message.connect(self.append_log)
        controller.progress_changed.connect(self._on_progress)
        controller.status_changed.connect(self._on_status_changed)
        controller.deliverable_ready.connect(self._on_deliverable)
        controller.no_output.connect(lambda: self._set_status("status.done"))
        controller.job_failed.connect(self._on_job_failed)
        controller.can_submit_changed.connect(self._btn_start.setEnabled)
        channel.state_changed.connect(self._on_worker_state_changed)
        self._on_worker_state_changed(channel.state)
        self._btn_start.setEnabled(controller.can_submit())

    def append_log(self, message: str) -> None:
        stamp = time.strftime("%H:%M:%S")
        self._log_view.appendPlainText(f"[{stamp}] {message}")
        bar = self._log_view.verticalScrollBar()
        bar.setValue(bar.maximum())

    # -- central widget ---------------------------------------------------------

    def _build_central(self) -> None:
        container = QWidget()
        layout = QVBoxLayout(container)
        self.setCentralWidget(container)

        # -- Drop zone ----------------------------------------------------------
        self._btn_drop = QPushButton("")
        self._btn_drop.setMinimumHeight(90)
        self._btn_drop.clicked.connect(self._on_pick_files)
        layout.addWidget(self._btn_drop)

        # -- Encoding options ---------------------------------------------------
        self._grp_encoding = QGroupBox("")
        fl = QFormLayout(self._grp_encoding)
        self._lbl_crf = QLabel("")
        self._spin_crf = QSpinBox()
        self._spin_crf.setRange(0, 51)
        self._spin_crf.setValue(DEFAULT_CRF)
        fl.addRow(self._lbl_crf, self._spin_crf)
        self._lbl_preset = QLabel("")
        self._combo_preset = QComboBox()
        self._combo_preset.addItems(PRESETS)
        fl.addRow(self._lbl_preset, self._combo_preset)
        self._lbl_abitrate = QLabel("")
        self._combo_abitrate = QComboBox()
        self._combo_abitrate.addItems(AUDIO_BITRATES)
        fl.addRow(self._lbl_abitrate, self._combo_abitrate)
        layout.addWidget(self._grp_encoding)

        # -- Output directory ---------------------------------------------------
        self._grp_output = QGroupBox("")
        gl = QHBoxLayout(self._grp_output)
        self._output_dir_edit = QLineEdit()
        gl.addWidget(self._output_dir_edit)
        self._btn_browse = QPushButton("")
        self._btn_browse.clicked.connect(self._on_browse_output)
        gl.addWidget(self._btn_browse)
        layout.addWidget(self._grp_output)

        # -- Language -----------------------------------------------------------
        self._grp_lang = QGroupBox("")
        ll = QHBoxLayout(self._grp_lang)
        self._combo_lang = QComboBox()
        self._combo_lang.addItems(["Deutsch", "English"])
        self._combo_lang.currentIndexChanged.connect(self._on_language_changed)
        ll.addWidget(self._combo_lang)
        layout.addWidget(self._grp_lang)

        # -- Start / progress ---------------------------------------------------
        self._btn_start = QPushButton("")
        self._btn_start.setEnabled(False)
        self._btn_start.clicked.connect(self._on_start)
        layout.addWidget(self._btn_start)

        self._progress = QProgressBar()
        self._progress.setRange(0, 100)
        layout.addWidget(self._progress)

        # -- Log ----------------------------------------------------------------
        self._grp_log = QGroupBox("")
        lgl = QVBoxLayout(self._grp_log)
        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        lgl.addWidget(self._log_view)
        layout.addWidget(self._grp_log, stretch=1)

    # -- statusbar --------------------------------------------------------------

    def _build_statusbar(self) -> None:
        self._statusbar = QStatusBar()
        self.setStatusBar(self._statusbar)
        self._status_label = QLabel("")
        self._statusbar.addPermanentWidget(self._status_label)

    # -- retranslate ------------------------------------------------------------

    def retranslate_ui(self) -> None:
        """Alle sichtbaren Texte in der aktuellen Sprache setzen."""
        self.setWindowTitle("TS → MP4")
        self._update_drop_label()
        self._grp_encoding.setTitle(tr("grp.encoding"))
        self._lbl_crf.setText(tr("lbl.crf"))
        self._lbl_preset.setText(tr("lbl.preset"))
        self._lbl_abitrate.setText(tr("lbl.abitrate"))
        self._grp_output.setTitle(tr("grp.output"))
        self._output_dir_edit.setPlaceholderText(tr("placeholder.output"))
        self._btn_browse.setText(tr("btn.browse"))
        self._grp_lang.setTitle(tr("grp.lang"))
        self._btn_start.setText(tr("btn.start"))
        self._grp_log.setTitle(tr("grp.log"))
        self._status_label.setText(tr(self._status_key))

    # -- file selection ---------------------------------------------------------

    def _on_pick_files(self) -> None:
        paths, _ = QFileDialog.getOpenFileNames(
            self,
            tr("fdlg.select_files"),
            "",
            f"{tr('fdlg.ts_filter')} (*{TS_EXTENSION});;{tr('fdlg.all_files')} (*)",
        )
        if paths:
            self._select_paths(paths)

    def _select_paths(self, paths: list[str]) -> None:
        if self._controller is None:
            return
        count = self._controller.select_files(LocalInputFile(p) for p in paths)
        if count == 0:
            QMessageBox.information(self, tr("dlg.pick_ts_title"), tr("dlg.pick_ts_msg"))
        self._update_drop_label()

    def _update_drop_label(self) -> None:
        count = len(self._controller.selection) if self._controller is not None else 0
        if count:
            self._btn_drop.setText(tr("drop.selected").format(count=count))
        else:
            self._btn_drop.setText(tr("drop.empty"))

    # -- actions ----------------------------------------------------------------

    def _gather_options(self) -> ConversionOptions:
        """Liest die aktuellen Kodier-Einstellungen aus der UI."""
        return ConversionOptions(
            crf=self._spin_crf.value(),
            preset=self._combo_preset.currentText() or DEFAULT_PRESET,
            audio_bitrate=self._combo_abitrate.currentText() or DEFAULT_AUDIO_BITRATE,
        )

    def _check_output_dir(self) -> Optional[str]:
        output_dir = self._output_dir_edit.text().strip()
        if not output_dir:
            QMessageBox.warning(self, tr("dlg.output_title"), tr("dlg.output_choose"))
            return None
        if not os.path.isdir(output_dir):
            QMessageBox.warning(self, tr("dlg.output_title"),
                                tr("dlg.output_not_found") + output_dir)
            return None
        if not os.access(output_dir, os.W_OK):
            QMessageBox.warning(self, tr("dlg.output_title"),
                                tr("dlg.output_no_write") + output_dir)
            return None
        return output_dir

    def _on_start(self) -> None:
        if self._controller is None:
            return
        if self._check_output_dir() is None:
            return
        try:
            self._controller.submit(self._controller.selection, self._gather_options())
        except NotReadyError as e:
            self.append_log(str(e))
            QMessageBox.critical(self, tr("dlg.error_title"), tr("dlg.init_failed"))

    def _on_browse_output(self) -> None:
        start = self._output_dir_edit.text().strip() or str(Path.home())
        folder = QFileDialog.getExistingDirectory(self, tr("fdlg.output_folder"), start)
        if folder:
            self._output_dir_edit.setText(folder)

    def _on_language_changed(self, index: int) -> None:
        lang = "de" if index == 0 else "en"
        set_language(lang)
        self._settings.setValue("language", lang)
        self.retranslate_ui()

    # -- controller / channel signals -------------------------------------------

    def _on_progress(self, fraction: float) -> None:
        self._progress.setValue(round(fraction * 100))

    def _on_status_changed(self, state: JobState) -> None:
        if state in (JobState.SUBMITTING, JobState.RUNNING):
            self._set_busy(True)
            self._set_status("status.converting")
        elif state == JobState.SUCCEEDED:
            self._set_status("status.done")
        elif state == JobState.FAILED:
            self._set_status("status.error")
        elif state == JobState.IDLE:
            self._set_busy(False)

    def _on_deliverable(self, deliverable) -> None:
        output_dir = self._output_dir_edit.text().strip() or str(Path.home())
        try:
            path = save_deliverable(deliverable, output_dir)
        except OSError as e:
            self.append_log(f"{tr('dlg.save_failed').strip()} {e}")
            self._set_status("status.error")
            QMessageBox.warning(self, tr("dlg.error_title"), tr("dlg.save_failed") + str(e))
            return
        self.append_log(tr("log.saved").format(path=path))

    def _on_job_failed(self, kind: FailureKind, message: str) -> None:
        self._set_status(failure_status_key(kind))
        if kind == FailureKind.INIT:
            QMessageBox.critical(self, tr("dlg.error_title"), tr("dlg.init_failed"))
        else:
            QMessageBox.warning(self, tr("dlg.error_title"), tr("dlg.job_failed") + message)

    def _on_worker_state_changed(self, state: WorkerState) -> None:
        if self._channel is not None and state == WorkerState.FAILED:
            if isinstance(self._channel.failure, ChannelCrash):
                self._set_status("status.crashed")
                return
        self._set_status(_WORKER_STATUS_KEY.get(state, "status.loading"))

    # -- helpers ----------------------------------------------------------------

    def _set_status(self, key: str) -> None:
        self._status_key = key
        self._status_label.setText(tr(key))

    def _set_busy(self, busy: bool) -> None:
        self._btn_drop.setEnabled(not busy)
        self._progress.setVisible(busy)
        if not busy:
            self._progress.setValue(0)
        self._update_drop_label()

    # -- settings persistence ---------------------------------------------------

    def _load_settings(self) -> None:
        self._output_dir_edit.setText(
            self._settings.value("output_dir", str(Path.home())))
        try:
            crf = int(self._settings.value("crf", DEFAULT_CRF))
        except (ValueError, TypeError):
            crf = DEFAULT_CRF
        self._spin_crf.setValue(crf)
        idx = self._combo_preset.findText(self._settings.value("preset", DEFAULT_PRESET))
        self._combo_preset.setCurrentIndex(idx if idx >= 0 else PRESETS.index(DEFAULT_PRESET))
        idx = self._combo_abitrate.findText(self._settings.value("abitrate", DEFAULT_AUDIO_BITRATE))
        self._combo_abitrate.setCurrentIndex(
            idx if idx >= 0 else AUDIO_BITRATES.index(DEFAULT_AUDIO_BITRATE))
        # Language (must be loaded before retranslate_ui is called)
        lang = self._settings.value("language", "de")
        set_language(lang)
        self._combo_lang.blockSignals(True)
        self._combo_lang.setCurrentIndex(0 if get_language() == "de" else 1)
        self._combo_lang.blockSignals(False)

    def _save_settings(self) -> None:
        self._settings.setValue("output_dir", self._output_dir_edit.text())
        self._settings.setValue("crf", self._spin_crf.value())
        self._settings.setValue("preset", self._combo_preset.currentText())
        self._settings.setValue("abitrate", self._combo_abitrate.currentText())
        self._settings.setValue("language", get_language())

    # -- drag & drop ------------------------------------------------------------

    def dragEnterEvent(self, event) -> None:
        if event.mimeData().hasUrls() and self._btn_drop.isEnabled():
            event.acceptProposedAction()

    def dropEvent(self, event) -> None:
        paths = []
        for url in event.mimeData().urls():
            path = url.toLocalFile()
            if path and Path(path).is_file():
                paths.append(path)
        if paths:
            self._select_paths(paths)

    # -- cleanup ----------------------------------------------------------------

    def closeEvent(self, event) -> None:
        self._save_settings()
        if self._channel is not None:
            self._channel.stop()
        super().closeEvent(event)
