"""Data models for the screen mirroring subsystem."""

from __future__ import annotations

import datetime as dt
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class ConnectionState(Enum):
    """High-level device connection states surfaced to the UI."""

    NO_DEVICE = 'NO_DEVICE'
    UNAUTHORIZED = 'UNAUTHORIZED'
    OFFLINE = 'OFFLINE'
    CONNECTED = 'CONNECTED'
    MULTIPLE_DEVICES = 'MULTIPLE_DEVICES'
    BRIDGE_UNAVAILABLE = 'BRIDGE_UNAVAILABLE'
    MIRROR_TOOL_UNAVAILABLE = 'MIRROR_TOOL_UNAVAILABLE'
    MIRRORING = 'MIRRORING'


class QualityPreset(Enum):
    """scrcpy quality presets as (video bitrate, max size, max fps)."""

    LOW = ('4M', 1024, 30)
    BALANCED = ('8M', 1280, 60)
    HIGH = ('16M', 1920, 60)

    @property
    def bit_rate(self) -> str:
        return self.value[0]

    @property
    def max_size(self) -> int:
        return self.value[1]

    @property
    def max_fps(self) -> int:
        return self.value[2]

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_value(cls, value) -> 'QualityPreset':
        """Return the preset named by *value* (case-insensitive), BALANCED otherwise."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            member = cls.__members__.get(value.strip().upper())
            if member is not None:
                return member
        return cls.BALANCED


class SessionStatus(Enum):
    """Lifecycle states of the mirror session manager."""

    IDLE = 'IDLE'
    STARTING = 'STARTING'
    ACTIVE = 'ACTIVE'


@dataclass(frozen=True)
class Device:
    """A device reported by ``adb devices -l``."""

    serial: str
    state_raw: str
    model: str = ''

    @property
    def display_name(self) -> str:
        return self.model or self.serial


@dataclass(frozen=True)
class LogEntry:
    """One error-level logcat line."""

    timestamp: dt.datetime
    level: str
    tag: str
    message: str

    def format_line(self) -> str:
        millis = self.timestamp.microsecond // 1000
        return f'[{self.timestamp:%H:%M:%S}.{millis:03d}] {self.level}/{self.tag}: {self.message}'


@dataclass
class MirrorSession:
    """Handle for one scrcpy subprocess.

    ``ended`` resolves exactly once with the exit message when the process
    terminates for any reason.
    """

    serial: str
    preset: QualityPreset
    executable: str
    arguments: List[str]
    ended: 'Future[str]' = field(default_factory=Future)
    stdout_lines: List[str] = field(default_factory=list)
    stderr_lines: List[str] = field(default_factory=list)
    process: Optional[object] = None
    _output_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def append_stdout(self, line: str) -> None:
        with self._output_lock:
            self.stdout_lines.append(line)

    def append_stderr(self, line: str) -> None:
        with self._output_lock:
            self.stderr_lines.append(line)

    def captured_output(self) -> Tuple[str, str]:
        with self._output_lock:
            return '\n'.join(self.stdout_lines).strip(), '\n'.join(self.stderr_lines).strip()

    def wait_ended(self, timeout: Optional[float] = None) -> Optional[str]:
        """Block until the session ended; return the exit message or ``None`` on timeout."""
        try:
            return self.ended.result(timeout=timeout)
        except FutureTimeoutError:
            return None


__all__ = [
    'ConnectionState',
    'Device',
    'LogEntry',
    'MirrorSession',
    'QualityPreset',
    'SessionStatus',
]
