# IPC-Client: Startet den Worker-Prozess und kommuniziert mit ihm ueber
# gerahmte JSON-Nachrichten auf stdin/stdout.

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from typing import Generator, Optional

from ts2mp4.errors import ProtocolError
from ts2mp4.ipc.protocol import ShutdownRequest, parse_response, read_message, write_message

log = logging.getLogger(__name__)


def _find_backend_command() -> list[str]:
    """Build the command line for the worker process.

    Resolution order:
      1. TS2MP4_BACKEND environment variable (split like a shell would)
      2. The bundled worker module, run with the current interpreter
    """
    env = os.environ.get("TS2MP4_BACKEND")
    if env:
        return shlex.split(env)
    return [sys.executable, "-m", "ts2mp4.backend"]


def find_backend_command() -> list[str]:
    """Public wrapper: Locate the worker command. See _find_backend_command for details."""
    return _find_backend_command()


class IpcClient:
    """Manages the worker subprocess and provides framed IPC over its pipes."""

    def __init__(self, command: Optional[list[str]] = None) -> None:
        self._command = list(command) if command else _find_backend_command()
        self._process: Optional[subprocess.Popen] = None

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def returncode(self) -> Optional[int]:
        if self._process is None:
            return None
        return self._process.poll()

    def wait_exit(self, timeout: float = 1.0) -> Optional[int]:
        """Wait briefly for the process to exit and return its exit code."""
        if self._process is None:
            return None
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def start(self) -> None:
        """Start the worker subprocess. Raises OSError if it cannot be spawned."""
        if self.is_running:
            return
        log.info("Starting worker: %s", " ".join(self._command))
        self._process = subprocess.Popen(
            self._command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None,  # worker logs go to our stderr
        )

    def stop(self) -> None:
        """Send shutdown command and terminate the worker."""
        if self._process is None:
            return
        if self.is_running:
            try:
                self.send(ShutdownRequest())
            except (BrokenPipeError, OSError, RuntimeError):
                pass
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.terminate()
                try:
                    self._process.wait(timeout=3)
                except subprocess.TimeoutExpired:
                    self._process.kill()
        for pipe in (self._process.stdin, self._process.stdout):
            if pipe is not None:
                try:
                    pipe.close()
                except OSError:
                    pass
        self._process = None

    def send(self, request) -> None:
        """Write a request and its attachments to the worker's stdin."""
        if self._process is None or self._process.stdin is None:
            raise RuntimeError("Worker not running")
        write_message(self._process.stdin, request.to_dict(), request.attachments())

    def read_messages(self) -> Generator:
        """Blocking generator: yields parsed events from the worker's stdout.

        This should be called from a worker thread, not the main thread.
        Ends when the worker closes its stdout.
        """
        if self._process is None or self._process.stdout is None:
            return
        stdout = self._process.stdout
        while True:
            try:
                data = read_message(stdout)
            except ProtocolError as e:
                log.warning("Invalid message from worker: %s", e)
                continue
            except (OSError, ValueError):
                # pipe closed underneath us during stop()
                return
            if data is None:
                return
            event = parse_response(data)
            if event is not None:
                yield event
            else:
                log.warning("Unknown message type: %s", data.get("type"))
