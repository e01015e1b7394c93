# Datei-Abstraktion fuer Eingaben und die uebertragbaren Payload-Eintraege.

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Optional, Protocol

TS_EXTENSION = ".ts"
TS_CONTENT_TYPE = "video/mp2t"


class InputFile(Protocol):
    """Anything the user can hand us as a conversion input."""

    @property
    def name(self) -> str: ...

    @property
    def content_type(self) -> str: ...

    def read_bytes(self) -> bytes: ...


class LocalInputFile:
    """InputFile backed by a path on the local filesystem."""

    def __init__(self, path) -> None:
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def content_type(self) -> str:
        if self.path.suffix.lower() == TS_EXTENSION:
            return TS_CONTENT_TYPE
        guessed, _ = mimetypes.guess_type(self.path.name)
        return guessed or "application/octet-stream"

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def __repr__(self) -> str:
        return f"LocalInputFile({str(self.path)!r})"


def is_ts_file(f: InputFile) -> bool:
    return f.name.lower().endswith(TS_EXTENSION) or f.content_type == TS_CONTENT_TYPE


class PayloadEntry:
    """A named buffer on its way to the worker.

    The buffer is moved, not copied: once the channel has written it,
    release() is called and any further access raises ValueError.
    """

    __slots__ = ("name", "_view")

    def __init__(self, name: str, data) -> None:
        self.name = name
        self._view: Optional[memoryview] = memoryview(data)

    @property
    def buffer(self) -> memoryview:
        if self._view is None:
            raise ValueError(f"Payload buffer for {self.name} was already transferred")
        return self._view

    @property
    def size(self) -> int:
        return self.buffer.nbytes

    @property
    def released(self) -> bool:
        return self._view is None

    def release(self) -> None:
        if self._view is not None:
            self._view.release()
            self._view = None

    def __repr__(self) -> str:
        state = "released" if self._view is None else f"{self._view.nbytes} bytes"
        return f"PayloadEntry({self.name!r}, {state})"

