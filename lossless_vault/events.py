"""
Progress events passed to caller-supplied callbacks.

The engine and the application never draw progress themselves; the CLI turns
these into tqdm bars, tests simply collect them.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional


@dataclass(frozen=True)
class PhaseComplete:
    phase: str
    group_count: int


@dataclass(frozen=True)
class SourceStart:
    source: Path
    file_count: int


@dataclass(frozen=True)
class FileProcessed:
    path: Path


@dataclass(frozen=True)
class TransferStart:
    total: int


@dataclass(frozen=True)
class FileCopied:
    source: Path
    target: Path


@dataclass(frozen=True)
class FileSkipped:
    path: Path


@dataclass(frozen=True)
class FileRemoved:
    path: Path


@dataclass(frozen=True)
class TransferComplete:
    done: int
    skipped: int
    removed: int = 0


EventCallback = Optional[Callable[[object], None]]


def emit(callback: EventCallback, event: object):
    if callback is not None:
        callback(event)
