# IPC-Protokoll: Nachrichten-Typen fuer die Kommunikation mit dem Worker-Prozess.
# Jede Nachricht ist eine JSON-Zeile; Binaeranhaenge folgen direkt dahinter
# (Groessen stehen im Header, Reihenfolge wie in der Liste).

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Optional, Sequence

from ts2mp4.errors import ProtocolError
from ts2mp4.models.files import PayloadEntry
from ts2mp4.models.job import ConversionOptions, OutputItem

# Message types carrying binary attachments, mapped to the list field that
# describes them in the header.
ATTACHMENT_FIELDS = {
    "convert": "files",
    "convert-complete": "outputs",
}


# ---------------------------------------------------------------------------
# Requests (orchestrator -> worker)
# ---------------------------------------------------------------------------

@dataclass
class InitRequest:
    def to_dict(self) -> dict:
        return {"type": "init"}

    def attachments(self) -> list:
        return []

    @classmethod
    def from_dict(cls, data: dict) -> InitRequest:
        return cls()


@dataclass
class ConvertRequest:
    files: list[PayloadEntry]
    options: ConversionOptions = field(default_factory=ConversionOptions)

    def to_dict(self) -> dict:
        return {"type": "convert", "options": self.options.to_dict()}

    def attachments(self) -> list:
        return [(entry.name, entry.buffer) for entry in self.files]

    def release(self) -> None:
        """Hand the buffers over: the sender must not touch them afterwards."""
        for entry in self.files:
            entry.release()

    @classmethod
    def from_dict(cls, data: dict) -> ConvertRequest:
        files = [PayloadEntry(f["name"], f["data"]) for f in data.get("files", [])]
        return cls(files=files, options=ConversionOptions.from_dict(data.get("options")))


@dataclass
class ShutdownRequest:
    def to_dict(self) -> dict:
        return {"type": "shutdown"}

    def attachments(self) -> list:
        return []

    @classmethod
    def from_dict(cls, data: dict) -> ShutdownRequest:
        return cls()


# ---------------------------------------------------------------------------
# Events (worker -> orchestrator)
# ---------------------------------------------------------------------------

@dataclass
class ReadyEvent:
    def to_dict(self) -> dict:
        return {"type": "ready"}

    @classmethod
    def from_dict(cls, data: dict) -> ReadyEvent:
        return cls()


@dataclass
class InitErrorEvent:
    message: str

    def to_dict(self) -> dict:
        return {"type": "init-error", "error": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> InitErrorEvent:
        return cls(message=str(data.get("error") or "Unknown error"))


@dataclass
class LogEvent:
    message: str

    def to_dict(self) -> dict:
        return {"type": "log", "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> LogEvent:
        return cls(message=str(data.get("message") or ""))


@dataclass
class ProgressEvent:
    # Raw value as sent by the worker; the controller clamps it.
    fraction: Any

    def to_dict(self) -> dict:
        return {"type": "progress", "progress": self.fraction}

    @classmethod
    def from_dict(cls, data: dict) -> ProgressEvent:
        return cls(fraction=data.get("progress", 0.0))


@dataclass
class ConvertCompleteEvent:
    outputs: list[OutputItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"type": "convert-complete"}

    def attachments(self) -> list:
        return [(item.name, item.data) for item in self.outputs]

    @classmethod
    def from_dict(cls, data: dict) -> ConvertCompleteEvent:
        outputs = [OutputItem(name=o["name"], data=o["data"]) for o in data.get("outputs", [])]
        return cls(outputs=outputs)


@dataclass
class ConvertErrorEvent:
    message: str

    def to_dict(self) -> dict:
        return {"type": "convert-error", "error": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> ConvertErrorEvent:
        return cls(message=str(data.get("error") or "Unknown error"))


@dataclass
class CrashedEvent:
    """Synthesised by the channel when the worker process dies. Never on the wire."""

    message: str


# ---------------------------------------------------------------------------
# Dispatcher: raw dict -> typed message
# ---------------------------------------------------------------------------

_RESPONSE_MAP = {
    "ready": ReadyEvent,
    "init-error": InitErrorEvent,
    "log": LogEvent,
    "progress": ProgressEvent,
    "convert-complete": ConvertCompleteEvent,
    "convert-error": ConvertErrorEvent,
}

_REQUEST_MAP = {
    "init": InitRequest,
    "convert": ConvertRequest,
    "shutdown": ShutdownRequest,
}


def parse_response(data: dict) -> Optional[object]:
    """Parse a raw message dict from the worker into a typed event."""
    cls = _RESPONSE_MAP.get(data.get("type"))
    if cls is None:
        return None
    return cls.from_dict(data)


def parse_request(data: dict) -> Optional[object]:
    """Parse a raw message dict from the orchestrator into a typed request."""
    cls = _REQUEST_MAP.get(data.get("type"))
    if cls is None:
        return None
    return cls.from_dict(data)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

def write_message(stream: BinaryIO, msg: dict, attachments: Sequence = ()) -> None:
    """Write one message and its (name, buffer) attachments, then flush."""
    header = dict(msg)
    buffers = []
    if attachments:
        list_field = ATTACHMENT_FIELDS.get(header.get("type"))
        if list_field is None:
            raise ProtocolError(f"Message type {header.get('type')!r} cannot carry attachments")
        entries = []
        for name, buf in attachments:
            view = memoryview(buf)
            entries.append({"name": name, "size": view.nbytes})
            buffers.append(view)
        header[list_field] = entries
    elif header.get("type") in ATTACHMENT_FIELDS:
        header.setdefault(ATTACHMENT_FIELDS[header["type"]], [])

    line = json.dumps(header, separators=(",", ":")) + "\n"
    try:
        stream.write(line.encode("utf-8"))
        for view in buffers:
            stream.write(view)
        stream.flush()
    finally:
        for view in buffers:
            view.release()


def read_message(stream: BinaryIO) -> Optional[dict]:
    """Read the next message. Returns None on a clean EOF.

    Attachment entries get a "data" key holding their bytes. Raises
    ProtocolError for undecodable headers or truncated attachments.
    """
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if line:
            break

    try:
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid message header: {line[:200]!r}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Message header is not an object: {line[:200]!r}")

    list_field = ATTACHMENT_FIELDS.get(data.get("type"))
    if list_field is not None:
        entries = data.get(list_field) or []
        for entry in entries:
            size = entry.get("size") if isinstance(entry, dict) else None
            if not isinstance(size, int) or size < 0:
                raise ProtocolError(f"Invalid attachment size in {data.get('type')!r} message")
            entry["data"] = _read_exact(stream, size)
        data[list_field] = entries
    return data


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise ProtocolError(f"Stream ended {remaining} bytes before end of attachment")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)
