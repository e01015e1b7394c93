# Speichert ein fertiges Artefakt im Ausgabe-Ordner, ohne vorhandene
# Dateien zu ueberschreiben.

from __future__ import annotations

import logging
import os
from pathlib import Path

from ts2mp4.models.job import Deliverable

log = logging.getLogger(__name__)


def unique_path(directory: Path, filename: str) -> Path:
    """Return directory/filename, or 'name (n).ext' if that already exists."""
    candidate = directory / filename
    stem, suffix = os.path.splitext(filename)
    n = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({n}){suffix}"
        n += 1
    return candidate


def save_deliverable(deliverable: Deliverable, directory) -> Path:
    """Write the deliverable into directory and return the path written."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    filename = Path(deliverable.filename).name or "output"
    target = unique_path(directory, filename)
    with open(target, "xb") as fh:
        fh.write(deliverable.data)
    log.info("Saved %s (%d bytes)", target, len(deliverable.data))
    return target
