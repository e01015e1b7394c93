"""
Full pipeline: real WorkerChannel, ChannelReader, BackgroundRunner and
JobController against a scripted worker subprocess.

The global thread pool is capped at one thread, as on a single-core host,
and queued signals are delivered by pumping the Qt event loop.
"""

import io
import sys
import textwrap
import time
import zipfile

import pytest
from PyQt6.QtCore import QCoreApplication, QThreadPool

from ts2mp4.ipc.channel import WorkerChannel
from ts2mp4.ipc.client import IpcClient
from ts2mp4.models.job import JobState
from ts2mp4.viewmodels.job_controller import JobController

SCRIPTED_WORKER = textwrap.dedent(r'''
    import json, sys
    stdin, stdout = sys.stdin.buffer, sys.stdout.buffer

    def send(msg, blobs=()):
        stdout.write(json.dumps(msg).encode() + b"\n")
        for blob in blobs:
            stdout.write(blob)
        stdout.flush()

    for line in iter(stdin.readline, b""):
        if not line.strip():
            continue
        msg = json.loads(line)
        if msg["type"] == "init":
            send({"type": "ready"})
        elif msg["type"] == "convert":
            outputs, blobs = [], []
            for f in msg["files"]:
                data = stdin.read(f["size"]) + b"!"
                outputs.append({"name": f["name"].rsplit(".", 1)[0] + ".mp4", "size": len(data)})
                blobs.append(data)
            send({"type": "progress", "progress": 7})
            send({"type": "convert-complete", "outputs": outputs}, blobs)
        elif msg["type"] == "shutdown":
            break
''')


@pytest.fixture
def single_thread_pool():
    pool = QThreadPool.globalInstance()
    previous = pool.maxThreadCount()
    pool.setMaxThreadCount(1)
    yield pool
    pool.waitForDone(5000)
    pool.setMaxThreadCount(previous)


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_three_files_round_trip_on_one_pool_thread(tmp_path, single_thread_pool, make_file):
    script = tmp_path / "worker.py"
    script.write_text(SCRIPTED_WORKER)
    channel = WorkerChannel(IpcClient([sys.executable, str(script)]))
    controller = JobController(channel)
    deliverables, progress, failures = [], [], []
    controller.deliverable_ready.connect(deliverables.append)
    controller.progress_changed.connect(progress.append)
    controller.job_failed.connect(lambda kind, msg: failures.append((kind, msg)))

    channel.start()
    try:
        assert _wait_for(lambda: channel.is_ready)
        files = [make_file("a.ts", b"A"), make_file("b.ts", b"B"), make_file("c.ts", b"C")]
        assert controller.submit(files)
        assert _wait_for(lambda: controller.state == JobState.IDLE)
    finally:
        channel.stop()

    assert failures == []
    assert progress == [0.0, 1.0]
    assert len(deliverables) == 1
    assert deliverables[0].filename == "converted_videos.zip"
    with zipfile.ZipFile(io.BytesIO(deliverables[0].data)) as zf:
        assert {name: zf.read(name) for name in zf.namelist()} == {
            "a.mp4": b"A!",
            "b.mp4": b"B!",
            "c.mp4": b"C!",
        }
    assert controller.job is None
