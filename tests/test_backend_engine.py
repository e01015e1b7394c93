"""
Worker-side request handling, driven through in-memory streams with a fake
transcoder.
"""

import io

import pytest

from ts2mp4.backend.engine import BackendEngine, output_name
from ts2mp4.errors import ConversionFailure, InitFailure
from ts2mp4.ipc.protocol import (
    ConvertRequest,
    InitRequest,
    ShutdownRequest,
    parse_response,
    read_message,
    write_message,
)
from ts2mp4.models.files import PayloadEntry
from ts2mp4.models.job import ConversionOptions


class FakeTranscoder:
    def __init__(self, init_error=None, fail_on=None):
        self.init_error = init_error
        self.fail_on = fail_on
        self.calls = []

    def check(self):
        if self.init_error:
            raise InitFailure(self.init_error)
        return "ffmpeg version 6.1-test"

    def transcode(self, src, dst, options, on_progress, on_log):
        data = src.read_bytes()
        self.calls.append((src.name, data, options.to_dict()))
        if self.fail_on is not None and data == self.fail_on:
            raise ConversionFailure("ffmpeg failed: Invalid data found when processing input")
        on_log("frame=1")
        on_progress(0.5)
        on_progress(0.25)   # must not go backwards on the wire
        on_progress(1.0)
        dst.write_bytes(b"MP4:" + data)


def _requests(*requests):
    stream = io.BytesIO()
    for request in requests:
        write_message(stream, request.to_dict(), request.attachments())
    stream.seek(0)
    return stream


def _events(out):
    out.seek(0)
    events = []
    while True:
        data = read_message(out)
        if data is None:
            return events
        events.append(parse_response(data))


def _serve(transcoder, *requests):
    out = io.BytesIO()
    BackendEngine(out, transcoder).serve(_requests(*requests))
    return _events(out)


def _convert(*files, options=None):
    return ConvertRequest(
        files=[PayloadEntry(name, data) for name, data in files],
        options=options or ConversionOptions(),
    )


def _types(events):
    return [e.to_dict()["type"] for e in events]


# =============================================================================
# init
# =============================================================================

def test_init_reports_version_then_ready():
    events = _serve(FakeTranscoder(), InitRequest())

    assert _types(events) == ["log", "ready"]
    assert events[0].message == "ffmpeg version 6.1-test"


def test_init_failure_reports_init_error():
    events = _serve(FakeTranscoder(init_error="ffmpeg not found"), InitRequest())

    assert _types(events) == ["init-error"]
    assert events[0].message == "ffmpeg not found"


def test_convert_before_init_is_an_error():
    transcoder = FakeTranscoder()
    events = _serve(transcoder, _convert(("a.ts", b"x")))

    assert _types(events) == ["convert-error"]
    assert transcoder.calls == []


# =============================================================================
# convert
# =============================================================================

def test_convert_returns_outputs_in_input_order():
    transcoder = FakeTranscoder()
    events = _serve(
        transcoder,
        InitRequest(),
        _convert(("b.ts", b"BBB"), ("dir/a.TS", b"A"), options=ConversionOptions(crf=18)),
    )

    complete = events[-1]
    assert _types([complete]) == ["convert-complete"]
    assert [(o.name, o.data) for o in complete.outputs] == [("b.mp4", b"MP4:BBB"), ("a.mp4", b"MP4:A")]
    assert [c[1] for c in transcoder.calls] == [b"BBB", b"A"]
    assert transcoder.calls[0][2]["crf"] == "18"


def test_progress_is_monotone_and_ends_at_one():
    events = _serve(FakeTranscoder(), InitRequest(), _convert(("a.ts", b"1"), ("b.ts", b"2")))

    progress = [e.fraction for e in events if _types([e]) == ["progress"]]
    assert progress == sorted(progress)
    assert progress[0] == 0.0
    assert progress[-1] == 1.0
    assert all(0.0 <= p <= 1.0 for p in progress)
    # second file starts at the halfway mark
    assert 0.5 in progress


def test_transcoder_output_is_forwarded_as_log():
    events = _serve(FakeTranscoder(), InitRequest(), _convert(("a.ts", b"1")))
    assert "frame=1" in [e.message for e in events if _types([e]) == ["log"]]


def test_conversion_failure_stops_the_batch():
    transcoder = FakeTranscoder(fail_on=b"bad")
    events = _serve(transcoder, InitRequest(), _convert(("a.ts", b"ok"), ("b.ts", b"bad"), ("c.ts", b"never")))

    assert "convert-complete" not in _types(events)
    error = events[-1]
    assert _types([error]) == ["convert-error"]
    assert error.message.startswith("b.ts: ")
    assert len(transcoder.calls) == 2


def test_empty_convert_completes_without_outputs():
    events = _serve(FakeTranscoder(), InitRequest(), _convert())
    assert events[-1].outputs == []


# =============================================================================
# serve loop
# =============================================================================

def test_shutdown_stops_serving():
    transcoder = FakeTranscoder()
    events = _serve(transcoder, InitRequest(), ShutdownRequest(), _convert(("a.ts", b"x")))

    assert _types(events) == ["log", "ready"]
    assert transcoder.calls == []


def test_bad_and_unknown_requests_are_skipped():
    stream = io.BytesIO(b'not json\n{"type":"dance"}\n{"type":"init"}\n')
    out = io.BytesIO()

    BackendEngine(out, FakeTranscoder()).serve(stream)

    events = _events(out)
    assert _types(events) == ["log", "log", "ready"]
    assert "dance" in events[0].message


@pytest.mark.parametrize("name, expected", [
    ("clip.ts", "clip.mp4"),
    ("Clip.TS", "Clip.mp4"),
    ("C:\\videos\\rec.ts", "rec.mp4"),
    ("noext", "noext.mp4"),
    ("", "output.mp4"),
])
def test_output_name(name, expected):
    assert output_name(name) == expected
