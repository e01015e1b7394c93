# Output-Packager: macht aus den Ergebnissen eines Jobs genau ein Artefakt.
# Eine Datei wird direkt geliefert, mehrere werden als ZIP gebuendelt.

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from typing import Optional, Sequence

from ts2mp4.errors import PackagingFailure
from ts2mp4.models.job import MP4_CONTENT_TYPE, ZIP_CONTENT_TYPE, Deliverable, OutputItem

log = logging.getLogger(__name__)

ARCHIVE_NAME = "converted_videos.zip"


def package_outputs(outputs: Sequence[OutputItem]) -> Optional[Deliverable]:
    """Turn a job's outputs into a single Deliverable.

    Returns None when there is nothing to deliver (a successful job that
    produced no outputs). Raises PackagingFailure if the archive cannot be
    built.

    Archive entries are stored flat: directory parts of OutputItem.name are
    dropped and repeated names become "name (n).ext", so an entry name can
    differ from the name the worker reported.
    """
    if not outputs:
        return None
    if len(outputs) == 1:
        item = outputs[0]
        return Deliverable(filename=item.name, data=bytes(item.data), content_type=MP4_CONTENT_TYPE)
    try:
        data = build_archive(outputs)
    except (MemoryError, OSError, ValueError, zipfile.LargeZipFile) as e:
        raise PackagingFailure(f"Could not build {ARCHIVE_NAME}: {e}") from e
    log.info("Packaged %d outputs into %s (%d bytes)", len(outputs), ARCHIVE_NAME, len(data))
    return Deliverable(filename=ARCHIVE_NAME, data=data, content_type=ZIP_CONTENT_TYPE)


def build_archive(outputs: Sequence[OutputItem]) -> bytes:
    """Build a deflated ZIP holding every output under its own name."""
    buf = io.BytesIO()
    used: set[str] = set()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for item in outputs:
            name = _unique_name(posixpath.basename(item.name.replace("\\", "/")) or "output", used)
            zf.writestr(name, bytes(item.data))
    return buf.getvalue()


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    stem, ext = posixpath.splitext(name)
    n = 1
    while candidate in used:
        candidate = f"{stem} ({n}){ext}"
        n += 1
    used.add(candidate)
    return candidate
