"""Android screen mirroring subsystem."""

from .models import (
    ConnectionState,
    Device,
    LogEntry,
    MirrorSession,
    QualityPreset,
    SessionStatus,
)
from .parser import AdbOutputParser
from .bundled import BundledToolDirectory, BundledToolProvider
from .discovery import DeviceDiscovery
from .session import MirrorSessionManager, build_scrcpy_arguments, compose_exit_message
from .logcat import LogCapture, format_errors
from .screenshot import ScreenshotCapture, save_png

__all__ = [
    'AdbOutputParser',
    'BundledToolDirectory',
    'BundledToolProvider',
    'ConnectionState',
    'Device',
    'DeviceDiscovery',
    'LogCapture',
    'LogEntry',
    'MirrorSession',
    'MirrorSessionManager',
    'QualityPreset',
    'ScreenshotCapture',
    'SessionStatus',
    'build_scrcpy_arguments',
    'compose_exit_message',
    'format_errors',
    'save_png',
]
