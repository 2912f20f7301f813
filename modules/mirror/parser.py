"""Parsing helpers for adb text output."""

from __future__ import annotations

import datetime as dt
import re
from typing import Iterable, List, Optional, Union

from config.constants import ADBConstants

from .models import Device, LogEntry


class AdbOutputParser:
    """Transforms raw ``adb devices -l`` and logcat output into models."""

    _RE_LOGCAT_LINE = re.compile(
        r'^(\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}\.\d{3})\s+([VDIWEF])/([^:]+):\s*(.*)$'
    )
    _RE_TIMESTAMP = re.compile(r'^(\d{2})-(\d{2})\s+(\d{2}):(\d{2}):(\d{2})\.(\d{3})$')

    def parse_devices(self, output: Union[str, Iterable[str]]) -> List[Device]:
        """Parse the output of ``adb devices -l``.

        Blank lines, the "List of devices" header and daemon start-up chatter
        (lines beginning with ``*``) are skipped, as are lines with fewer than
        two tokens.
        """
        lines = output.splitlines() if isinstance(output, str) else output
        header = ADBConstants.DEVICES_HEADER.lower()
        devices: List[Device] = []

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.lower().startswith(header) or line.startswith('*'):
                continue

            parts = line.split()
            if len(parts) < 2:
                continue

            serial, state = parts[0], parts[1]
            model = ''
            for token in parts[2:]:
                if token.lower().startswith(ADBConstants.MODEL_PREFIX):
                    model = token[len(ADBConstants.MODEL_PREFIX):]
                    break

            devices.append(Device(serial=serial, state_raw=state, model=model))

        return devices

    def parse_logcat_line(self, line: str, year: Optional[int] = None) -> Optional[LogEntry]:
        """Parse one ``MM-dd HH:mm:ss.fff L/Tag: message`` line.

        logcat omits the year, so *year* (default: the current year) is
        assumed. Lines that do not match, or whose date does not exist in
        that year, return ``None``.
        """
        if not line:
            return None
        match = self._RE_LOGCAT_LINE.match(line.rstrip('\r\n'))
        if not match:
            return None

        timestamp = self._parse_timestamp(match.group(1), year or dt.datetime.now().year)
        if timestamp is None:
            return None

        return LogEntry(
            timestamp=timestamp,
            level=match.group(2),
            tag=match.group(3).strip(),
            message=match.group(4),
        )

    def _parse_timestamp(self, raw: str, year: int) -> Optional[dt.datetime]:
        match = self._RE_TIMESTAMP.match(raw)
        if not match:
            return None
        month, day, hour, minute, second, millis = (int(part) for part in match.groups())
        try:
            return dt.datetime(year, month, day, hour, minute, second, millis * 1000)
        except ValueError:
            # e.g. 02-29 when the assumed year is not a leap year
            return None


__all__ = ['AdbOutputParser']
