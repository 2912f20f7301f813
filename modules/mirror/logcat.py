"""Session-scoped capture of error-level logcat output."""

from __future__ import annotations

import datetime as dt
import threading
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional

from config.constants import ADBConstants, LogcatConstants
from utils import common
from utils.process_runner import run_with_callbacks
from utils.tool_locator import ADB_TOOL, ToolLocator

from .models import LogEntry
from .parser import AdbOutputParser


logger = common.get_logger('logcat_capture')


Clock = Callable[[], dt.datetime]


def format_errors(
    entries: Iterable[LogEntry],
    window_seconds: int = LogcatConstants.RECENT_WINDOW_SECONDS,
) -> str:
    """Render *entries* as clipboard-ready text; empty input gives an empty string."""
    entries = list(entries)
    if not entries:
        return ''
    lines = [f'=== {len(entries)} Recent Errors (last {window_seconds} seconds) ===', '']
    lines.extend(entry.format_line() for entry in entries)
    return '\n'.join(lines) + '\n'


class LogCapture:
    """Streams ``adb logcat *:E`` for one device into a bounded buffer.

    Appends come from the reader thread of the logcat process while the UI
    reads snapshots, so every buffer access goes through a lock.
    """

    def __init__(
        self,
        locator: Optional[ToolLocator] = None,
        parser: Optional[AdbOutputParser] = None,
        clock: Optional[Clock] = None,
        max_entries: int = LogcatConstants.MAX_ENTRIES,
        runner: Optional[Callable[..., int]] = None,
    ) -> None:
        self._locator = locator or ToolLocator(ADB_TOOL)
        self._parser = parser or AdbOutputParser()
        self._clock = clock or dt.datetime.now
        self._runner = runner or run_with_callbacks

        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._buffer_lock = threading.Lock()

        self._control_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._cancel_event: Optional[threading.Event] = None
        self._serial: Optional[str] = None

    # ------------------------------------------------------------------
    # Capture control
    # ------------------------------------------------------------------
    @property
    def is_capturing(self) -> bool:
        thread = self._thread
        cancel_event = self._cancel_event
        return (
            thread is not None
            and thread.is_alive()
            and cancel_event is not None
            and not cancel_event.is_set()
        )

    @property
    def serial(self) -> Optional[str]:
        return self._serial

    def start_capture(self, serial: str) -> None:
        """Begin capturing for *serial*, replacing any running capture."""
        if not serial:
            raise ValueError('Device serial cannot be empty.')

        with self._control_lock:
            self._stop_locked()
            self.clear_errors()

            adb_path = self._locator.resolve()
            arguments = [ADBConstants.FLAG_SERIAL, serial, ADBConstants.CMD_LOGCAT, LogcatConstants.ERROR_FILTER]
            cancel_event = threading.Event()
            thread = threading.Thread(
                target=self._capture_loop,
                args=(adb_path, arguments, serial, cancel_event),
                name=f'{serial}-logcat',
                daemon=True,
            )
            self._cancel_event = cancel_event
            self._thread = thread
            self._serial = serial
            thread.start()
            logger.info('Started logcat capture for %s', serial)

    def stop_capture(self) -> None:
        """Stop the running capture; safe to call repeatedly."""
        with self._control_lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        thread, cancel_event, serial = self._thread, self._cancel_event, self._serial
        self._thread = None
        self._cancel_event = None
        self._serial = None

        if cancel_event is not None:
            cancel_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=LogcatConstants.JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning('logcat capture thread for %s did not stop in time', serial)
            else:
                logger.info('Stopped logcat capture for %s', serial)

    def _capture_loop(
        self,
        adb_path: str,
        arguments: List[str],
        serial: str,
        cancel_event: threading.Event,
    ) -> None:
        try:
            exit_code = self._runner(adb_path, arguments, self._handle_line, None, cancel_event)
        except Exception as exc:
            logger.error('logcat capture for %s failed: %s', serial, exc)
            return
        if not cancel_event.is_set():
            logger.info('logcat for %s exited with code %s', serial, exit_code)

    def _handle_line(self, line: str) -> None:
        entry = self._parser.parse_logcat_line(line, year=self._clock().year)
        if entry is not None:
            self.add_entry(entry)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------
    def add_entry(self, entry: LogEntry) -> None:
        with self._buffer_lock:
            self._entries.append(entry)

    def all_errors(self) -> List[LogEntry]:
        with self._buffer_lock:
            return list(self._entries)

    def recent_errors(self, window_seconds: float = LogcatConstants.RECENT_WINDOW_SECONDS) -> List[LogEntry]:
        cutoff = self._clock() - dt.timedelta(seconds=window_seconds)
        return [entry for entry in self.all_errors() if entry.timestamp >= cutoff]

    def clear_errors(self) -> None:
        with self._buffer_lock:
            self._entries.clear()

    def format_recent_errors(self, window_seconds: int = LogcatConstants.RECENT_WINDOW_SECONDS) -> str:
        return format_errors(self.recent_errors(window_seconds), window_seconds)


__all__ = ['LogCapture', 'format_errors']
