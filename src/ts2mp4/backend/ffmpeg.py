# FFmpeg-Anbindung des Worker-Prozesses: Binaries finden, Dauer ermitteln,
# Transkodierung starten und Fortschritt aus stderr lesen.

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from collections import deque
from pathlib import Path
from typing import Callable, Optional

from ts2mp4.errors import ConversionFailure, InitFailure
from ts2mp4.models.job import ConversionOptions

log = logging.getLogger(__name__)

# Matches time=00:00:01.00, time=01:23:45.678
TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

_COMMON_DIRS = ["/usr/local/bin", "/usr/bin", "/opt/homebrew/bin"]

# stderr lines kept for the error message of a failed run
_TAIL_LINES = 15


def find_executable(name: str, env_var: str) -> Optional[str]:
    """Locate an ffmpeg tool.

    Resolution order:
      1. The given environment variable
      2. On PATH
      3. Common install locations
    """
    env = os.environ.get(env_var)
    if env:
        return env
    found = shutil.which(name)
    if found:
        return found
    for directory in _COMMON_DIRS:
        path = os.path.join(directory, name)
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
    return None


def parse_time(line: str) -> Optional[float]:
    """Return the position in seconds from an ffmpeg stats line, if any."""
    match = TIME_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class ProgressParser:
    """Turns ffmpeg stats lines into a fraction of the clip duration."""

    def __init__(self, duration: float) -> None:
        self.duration = duration
        self.fraction = 0.0

    def parse_line(self, line: str) -> Optional[float]:
        position = parse_time(line)
        if position is None:
            return None
        if self.duration > 0:
            # never move backwards
            self.fraction = max(self.fraction, min(1.0, position / self.duration))
        return self.fraction


def build_command(ffmpeg: str, src: Path, dst: Path, options: ConversionOptions) -> list[str]:
    opts = options.to_dict()
    return [
        ffmpeg, "-hide_banner", "-nostdin", "-y",
        "-loglevel", "error", "-stats",
        "-i", str(src),
        "-c:v", "libx264",
        "-preset", opts["preset"],
        "-crf", opts["crf"],
        "-c:a", "aac",
        "-b:a", opts["abitrate"],
        "-movflags", "+faststart",
        str(dst),
    ]


class FfmpegTranscoder:
    """Runs the ffmpeg/ffprobe executables for the worker."""

    def __init__(self, ffmpeg: Optional[str] = None, ffprobe: Optional[str] = None) -> None:
        self._ffmpeg = ffmpeg
        self._ffprobe = ffprobe

    def check(self) -> str:
        """Make sure ffmpeg runs. Returns its version line, raises InitFailure."""
        ffmpeg = self._ffmpeg or find_executable("ffmpeg", "TS2MP4_FFMPEG")
        if ffmpeg is None:
            raise InitFailure("ffmpeg not found (set TS2MP4_FFMPEG or install ffmpeg)")
        try:
            result = subprocess.run(
                [ffmpeg, "-hide_banner", "-version"],
                capture_output=True, text=True, timeout=15,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise InitFailure(f"Could not run {ffmpeg}: {e}") from e
        if result.returncode != 0:
            raise InitFailure(f"{ffmpeg} -version exited with code {result.returncode}")
        self._ffmpeg = ffmpeg
        if self._ffprobe is None:
            self._ffprobe = find_executable("ffprobe", "TS2MP4_FFPROBE")
        lines = result.stdout.splitlines()
        return lines[0] if lines else ffmpeg

    def probe_duration(self, path: Path) -> float:
        """Duration in seconds, or 0.0 if ffprobe is missing or fails."""
        if not self._ffprobe:
            return 0.0
        try:
            result = subprocess.run(
                [self._ffprobe, "-v", "error", "-show_entries", "format=duration",
                 "-of", "default=noprint_wrappers=1:nokey=1", str(path)],
                capture_output=True, text=True, timeout=30,
            )
            return max(0.0, float(result.stdout.strip()))
        except (OSError, subprocess.TimeoutExpired, ValueError):
            log.debug("ffprobe could not determine duration of %s", path)
            return 0.0

    def transcode(
        self,
        src: Path,
        dst: Path,
        options: ConversionOptions,
        on_progress: Callable[[float], None],
        on_log: Callable[[str], None],
    ) -> None:
        """Convert src to dst. Raises ConversionFailure with ffmpeg's last words."""
        if self._ffmpeg is None:
            raise ConversionFailure("ffmpeg was not initialized")
        parser = ProgressParser(self.probe_duration(src))
        cmd = build_command(self._ffmpeg, src, dst, options)
        log.info("Running: %s", " ".join(cmd))
        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,  # universal newlines: ffmpeg's \r stats become lines
                errors="replace",
            )
        except OSError as e:
            raise ConversionFailure(f"Could not run ffmpeg: {e}") from e

        assert process.stderr is not None
        for line in process.stderr:
            line = line.strip()
            if not line:
                continue
            fraction = parser.parse_line(line)
            if fraction is not None:
                on_progress(fraction)
                continue
            tail.append(line)
            on_log(line)
        returncode = process.wait()
        if returncode != 0:
            detail = "\n".join(tail) or f"exit code {returncode}"
            raise ConversionFailure(f"ffmpeg failed: {detail}")
        if not dst.is_file():
            raise ConversionFailure("ffmpeg finished without writing an output file")
        on_progress(1.0)
