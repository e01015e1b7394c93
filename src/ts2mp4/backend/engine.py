# Worker-Prozess: beantwortet init/convert/shutdown auf stdin/stdout.
# Laeuft isoliert vom GUI-Prozess; Diagnose geht ueber logging auf stderr.

from __future__ import annotations

import logging
import sys
import tempfile
from pathlib import Path, PurePath
from typing import BinaryIO

from ts2mp4.backend.ffmpeg import FfmpegTranscoder
from ts2mp4.errors import ConversionFailure, InitFailure, ProtocolError
from ts2mp4.ipc.protocol import (
    ConvertCompleteEvent,
    ConvertErrorEvent,
    ConvertRequest,
    InitErrorEvent,
    InitRequest,
    LogEvent,
    ProgressEvent,
    ReadyEvent,
    ShutdownRequest,
    parse_request,
    read_message,
    write_message,
)
from ts2mp4.models.job import OutputItem

log = logging.getLogger(__name__)

# smallest progress step worth a message
PROGRESS_STEP = 0.005


def output_name(input_name: str) -> str:
    """'clip.ts' -> 'clip.mp4'; directory parts are dropped."""
    stem = PurePath(input_name.replace("\\", "/")).stem or "output"
    return f"{stem}.mp4"


class BackendEngine:
    """Handles requests one at a time and writes events to `out`."""

    def __init__(self, out: BinaryIO, transcoder) -> None:
        self._out = out
        self._transcoder = transcoder
        self._ready = False
        self._last_progress = -1.0

    def serve(self, stdin: BinaryIO) -> None:
        """Main loop: read requests until shutdown or EOF."""
        while True:
            try:
                data = read_message(stdin)
            except ProtocolError as e:
                log.warning("Invalid request: %s", e)
                continue
            if data is None:
                log.info("stdin closed, exiting")
                return
            request = parse_request(data)
            if request is None:
                log.warning("Unknown request type: %s", data.get("type"))
                self.emit(LogEvent(f"Unknown request type: {data.get('type')}"))
                continue
            if isinstance(request, ShutdownRequest):
                log.info("Shutdown requested")
                return
            self.handle(request)

    def handle(self, request: object) -> None:
        if isinstance(request, InitRequest):
            self._init()
        elif isinstance(request, ConvertRequest):
            self._convert(request)
        else:
            log.warning("Unhandled request: %r", request)

    def emit(self, event) -> None:
        attachments = event.attachments() if hasattr(event, "attachments") else ()
        write_message(self._out, event.to_dict(), attachments)

    # -- requests ---------------------------------------------------------------

    def _init(self) -> None:
        try:
            version = self._transcoder.check()
        except InitFailure as e:
            log.error("Init failed: %s", e)
            self.emit(InitErrorEvent(str(e)))
            return
        self._ready = True
        self.emit(LogEvent(version))
        self.emit(ReadyEvent())

    def _convert(self, request: ConvertRequest) -> None:
        if not self._ready:
            self.emit(ConvertErrorEvent("ffmpeg is not initialized"))
            return
        files = request.files
        total = len(files)
        outputs: list[OutputItem] = []
        self._last_progress = -1.0
        self._progress(0.0)

        with tempfile.TemporaryDirectory(prefix="ts2mp4-") as tmp:
            workdir = Path(tmp)
            for index, entry in enumerate(files):
                name = entry.name
                src = workdir / f"input_{index}.ts"
                dst = workdir / f"output_{index}.mp4"
                self.emit(LogEvent(f"Converting {name} ({index + 1}/{total})…"))

                def on_progress(fraction: float, index: int = index) -> None:
                    self._progress((index + fraction) / total)

                try:
                    src.write_bytes(entry.buffer)
                    entry.release()
                    self._transcoder.transcode(src, dst, request.options, on_progress, self._log_line)
                    data = dst.read_bytes()
                except (ConversionFailure, OSError) as e:
                    log.error("Conversion of %s failed: %s", name, e)
                    self.emit(ConvertErrorEvent(f"{name}: {e}"))
                    return
                finally:
                    src.unlink(missing_ok=True)
                    dst.unlink(missing_ok=True)
                outputs.append(OutputItem(name=output_name(name), data=data))
                self.emit(LogEvent(f"Finished {name} -> {outputs[-1].name}"))

        self._progress(1.0)
        self.emit(ConvertCompleteEvent(outputs))

    # -- helpers ----------------------------------------------------------------

    def _progress(self, fraction: float) -> None:
        fraction = max(0.0, min(1.0, fraction))
        if fraction < 1.0 and fraction - self._last_progress < PROGRESS_STEP:
            return
        if fraction <= self._last_progress:
            return
        self._last_progress = fraction
        self.emit(ProgressEvent(round(fraction, 4)))

    def _log_line(self, line: str) -> None:
        self.emit(LogEvent(line))


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    engine = BackendEngine(sys.stdout.buffer, FfmpegTranscoder())
    try:
        engine.serve(sys.stdin.buffer)
    except BrokenPipeError:
        log.info("Orchestrator went away, exiting")


if __name__ == "__main__":
    main()
