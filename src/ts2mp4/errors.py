# Fehlertypen der Job-Orchestrierung.
# Jede Fehlerklasse entspricht genau einer FailureKind (siehe models/job.py).

from __future__ import annotations


class ConverterError(Exception):
    """Base exception for all orchestration failures."""


class InitFailure(ConverterError):
    """The worker never became usable. Fatal for the process lifetime."""


class ChannelCrash(ConverterError):
    """The worker process died or its pipe broke."""


class ConversionFailure(ConverterError):
    """The worker reported a codec-level error for the current batch."""


class MarshalFailure(ConverterError):
    """An input file could not be read; nothing was sent to the worker."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not read {name}: {reason}")


class PackagingFailure(ConverterError):
    """Post-processing of successful outputs failed (e.g. building the archive)."""


class NotReadyError(ConverterError):
    """The worker channel is not ready and cannot become ready."""


class ProtocolError(ConverterError):
    """A framed message could not be decoded."""
