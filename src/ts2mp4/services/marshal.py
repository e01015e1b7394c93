# Payload-Marshaler: liest die Eingabedateien vollstaendig ein und erzeugt
# uebertragbare (Name, Puffer)-Eintraege in Eingabereihenfolge.

from __future__ import annotations

import logging
from typing import Iterable

from ts2mp4.errors import MarshalFailure
from ts2mp4.models.files import InputFile, PayloadEntry

log = logging.getLogger(__name__)


def marshal_files(files: Iterable[InputFile]) -> list[PayloadEntry]:
    """Read every file into a PayloadEntry, preserving order.

    All or nothing: if one file cannot be read the already-read buffers are
    dropped and MarshalFailure is raised, so no partial payload ever reaches
    the worker.
    """
    payload: list[PayloadEntry] = []
    for f in files:
        try:
            data = f.read_bytes()
        except Exception as e:
            for entry in payload:
                entry.release()
            if isinstance(e, (OSError, ValueError)):
                raise MarshalFailure(f.name, str(e)) from e
            raise
        payload.append(PayloadEntry(f.name, data))
    log.debug("Marshaled %d file(s), %d bytes", len(payload), sum(e.size for e in payload))
    return payload
