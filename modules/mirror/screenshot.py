"""Device screenshots through ``adb exec-out screencap -p``."""

from __future__ import annotations

import os
import tempfile
import threading
from typing import Callable, Optional, Tuple, Union

from config.constants import ADBConstants, PathConstants, ProcessConstants
from utils import common
from utils.process_runner import ProcessOutcome, run_process
from utils.tool_locator import ADB_TOOL, ToolLocator


logger = common.get_logger('screenshot')


PNG_SIGNATURE = b'\x89PNG'
_MIN_PNG_LENGTH = 8

ScreenshotResult = Tuple[Optional[bytes], Optional[str]]


def is_png(data: Optional[bytes]) -> bool:
    return bool(data) and len(data) >= _MIN_PNG_LENGTH and data.startswith(PNG_SIGNATURE)


def _as_text(value: Union[str, bytes, None]) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace').strip()
    return (value or '').strip()


class ScreenshotCapture:
    """Captures PNG screenshots; every failure is returned as an error message."""

    def __init__(
        self,
        locator: Optional[ToolLocator] = None,
        runner: Optional[Callable[..., ProcessOutcome]] = None,
        timeout: float = ADBConstants.SCREENSHOT_TIMEOUT,
    ) -> None:
        self._locator = locator or ToolLocator(ADB_TOOL)
        self._runner = runner or run_process
        self._timeout = timeout

    def capture(self, serial: str, cancel_event: Optional[threading.Event] = None) -> ScreenshotResult:
        """Return ``(png_bytes, None)`` or ``(None, error_message)``."""
        if not serial:
            return None, 'No device serial provided'

        adb_path = self._locator.resolve()
        if not adb_path:
            return None, 'ADB not available'

        arguments = [ADBConstants.FLAG_SERIAL, serial] + ADBConstants.CMD_SCREENCAP
        try:
            outcome = self._runner(
                adb_path,
                arguments,
                timeout=self._timeout,
                cancel_event=cancel_event,
                text=False,
            )
        except Exception as exc:
            logger.error('Screenshot capture for %s failed: %s', serial, exc)
            return None, f'Screenshot capture error: {exc}'

        if outcome.failure == ProcessConstants.FAILURE_CANCELLED:
            return None, 'Screenshot capture cancelled'
        if outcome.failure == ProcessConstants.FAILURE_TIMEOUT:
            return None, 'Screenshot capture timed out'
        if outcome.failure == ProcessConstants.FAILURE_LAUNCH:
            return None, f'Screenshot capture error: {_as_text(outcome.stderr)}'

        if not outcome.success:
            return None, f'ADB screencap failed: {_as_text(outcome.stderr)}'

        data = outcome.stdout if isinstance(outcome.stdout, bytes) else b''
        if not is_png(data):
            logger.warning('Screenshot for %s is not PNG data (%s bytes)', serial, len(data))
            return None, 'Invalid screenshot data received'

        logger.info('Captured %s byte screenshot from %s', len(data), serial)
        return data, None


def save_png(data: bytes, directory: Optional[str] = None) -> str:
    """Write *data* to a timestamped PNG file and return its path."""
    target_dir = directory or tempfile.gettempdir()
    os.makedirs(target_dir, exist_ok=True)
    filename = f'{PathConstants.SCREENSHOT_PREFIX}{common.timestamp_time()}{PathConstants.SCREENSHOT_EXT}'
    path = os.path.join(target_dir, filename)
    with open(path, 'wb') as handle:
        handle.write(data)
    logger.info('Screenshot saved to %s', path)
    return path


__all__ = ['PNG_SIGNATURE', 'ScreenshotCapture', 'is_png', 'save_png']
