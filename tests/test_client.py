"""
IpcClient and ChannelReader against real subprocesses.

The worker stand-ins are tiny scripts run with the current interpreter, so
nothing here needs ffmpeg.
"""

import os
import sys
import textwrap
from pathlib import Path

import pytest

from ts2mp4.ipc.client import IpcClient, find_backend_command
from ts2mp4.ipc.protocol import (
    ConvertRequest,
    InitErrorEvent,
    InitRequest,
    LogEvent,
    ReadyEvent,
)
from ts2mp4.models.files import PayloadEntry
from ts2mp4.workers.channel_reader import ChannelReader

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_WORKER = textwrap.dedent("""
    import json, sys
    stdin, stdout = sys.stdin.buffer, sys.stdout.buffer
    for line in iter(stdin.readline, b""):
        msg = json.loads(line)
        if msg["type"] == "init":
            stdout.write(b'{"type":"ready"}\\n')
        elif msg["type"] == "convert":
            sizes = [f["size"] for f in msg["files"]]
            total = sum(len(stdin.read(n)) for n in sizes)
            stdout.write(json.dumps({"type": "log", "message": "got %d" % total}).encode() + b"\\n")
            stdout.write(b"this is not json\\n")
            stdout.write(b'{"type":"mystery"}\\n')
            stdout.write(b'{"type":"progress","progress":0.5}\\n')
        elif msg["type"] == "shutdown":
            break
        stdout.flush()
""")


def _script(tmp_path, name, body):
    path = tmp_path / name
    path.write_text(body)
    return [sys.executable, str(path)]


@pytest.fixture
def echo_client(tmp_path):
    client = IpcClient(_script(tmp_path, "echo_worker.py", ECHO_WORKER))
    yield client
    client.stop()


# =============================================================================
# Command resolution
# =============================================================================

def test_default_backend_command(monkeypatch):
    monkeypatch.delenv("TS2MP4_BACKEND", raising=False)
    assert find_backend_command() == [sys.executable, "-m", "ts2mp4.backend"]


def test_backend_command_from_env(monkeypatch):
    monkeypatch.setenv("TS2MP4_BACKEND", "/opt/py/bin/python -m 'my worker'")
    assert find_backend_command() == ["/opt/py/bin/python", "-m", "my worker"]


# =============================================================================
# IpcClient
# =============================================================================

def test_send_before_start_raises():
    with pytest.raises(RuntimeError):
        IpcClient(["unused"]).send(InitRequest())


def test_start_missing_executable_raises_oserror(tmp_path):
    client = IpcClient([str(tmp_path / "does-not-exist")])
    with pytest.raises(OSError):
        client.start()


def test_round_trip_skips_bad_and_unknown_messages(echo_client):
    echo_client.start()
    echo_client.send(InitRequest())
    echo_client.send(ConvertRequest(files=[PayloadEntry("a.ts", b"x" * 1000), PayloadEntry("b.ts", b"\n" * 24)]))

    messages = echo_client.read_messages()
    assert isinstance(next(messages), ReadyEvent)
    assert next(messages) == LogEvent("got 1024")
    # the garbage line and the unknown type are dropped
    assert next(messages).fraction == 0.5


def test_stop_shuts_down_cleanly(echo_client):
    echo_client.start()
    assert echo_client.is_running

    echo_client.stop()

    assert not echo_client.is_running
    assert echo_client.returncode is None


def test_crashed_worker_reports_exit_code(tmp_path):
    client = IpcClient(_script(tmp_path, "crash.py", "import sys; sys.exit(3)\n"))
    client.start()

    assert list(client.read_messages()) == []
    assert client.wait_exit(timeout=5) == 3
    client.stop()


# =============================================================================
# ChannelReader
# =============================================================================

def _run_reader(client):
    reader = ChannelReader(client)
    messages, lost = [], []
    reader.signals.message.connect(messages.append)
    reader.signals.connection_lost.connect(lost.append)
    reader.run()
    return messages, lost


def test_reader_reports_crash_with_exit_code(tmp_path):
    client = IpcClient(_script(tmp_path, "crash.py", "import sys; sys.exit(7)\n"))
    client.start()

    messages, lost = _run_reader(client)

    assert messages == []
    assert lost == ["Worker exited unexpectedly (exit code 7)"]
    client.stop()


def test_reader_relays_events_until_eof(tmp_path):
    body = 'import sys; sys.stdout.write(\'{"type":"log","message":"hi"}\\n\'); sys.exit(0)\n'
    client = IpcClient(_script(tmp_path, "one_shot.py", body))
    client.start()

    messages, lost = _run_reader(client)

    assert messages == [LogEvent("hi")]
    assert len(lost) == 1
    client.stop()


def test_stopped_reader_does_not_report_loss(tmp_path):
    client = IpcClient(_script(tmp_path, "crash.py", "import sys; sys.exit(1)\n"))
    client.start()
    reader = ChannelReader(client)
    lost = []
    reader.signals.connection_lost.connect(lost.append)

    reader.stop()
    reader.run()

    assert lost == []
    client.stop()


# =============================================================================
# The bundled worker module
# =============================================================================

def test_backend_reports_init_error_without_ffmpeg(tmp_path, monkeypatch):
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(filter(None, [str(SRC_DIR), os.environ.get("PYTHONPATH")])))
    monkeypatch.setenv("TS2MP4_FFMPEG", str(tmp_path / "no-ffmpeg-here"))
    client = IpcClient([sys.executable, "-m", "ts2mp4.backend"])
    client.start()
    try:
        client.send(InitRequest())
        event = next(client.read_messages())
    finally:
        client.stop()

    assert isinstance(event, InitErrorEvent)
    assert "no-ffmpeg-here" in event.message
