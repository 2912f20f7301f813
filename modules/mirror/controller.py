"""Qt-facing coordinator for device polling, mirroring and log capture."""

from __future__ import annotations

import threading
from typing import Optional, Tuple

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from config.config_manager import ConfigManager
from utils import common

from .discovery import DeviceDiscovery
from .logcat import LogCapture
from .models import ConnectionState, Device, QualityPreset
from .screenshot import ScreenshotCapture, save_png
from .session import MirrorSessionManager


logger = common.get_logger('mirror_controller')


def derive_state(
    state: ConnectionState,
    mirroring: bool,
    mirror_tool_available: bool,
) -> ConnectionState:
    """Fold the mirroring facts into the polled connection state.

    Only a connected device can be mirroring or be missing the mirror tool.
    """
    if state != ConnectionState.CONNECTED:
        return state
    if mirroring:
        return ConnectionState.MIRRORING
    if not mirror_tool_available:
        return ConnectionState.MIRROR_TOOL_UNAVAILABLE
    return state


class DeviceStateWorker(QThread):
    """Background thread running the device polling loop."""

    state_computed = pyqtSignal(object, object)  # ConnectionState, Optional[Device]

    def __init__(self, discovery: DeviceDiscovery, interval_s: float, parent=None):
        super().__init__(parent)
        self._discovery = discovery
        self._interval_s = interval_s
        self._stop_event = threading.Event()

    def run(self) -> None:  # type: ignore[override]
        self._discovery.poll_state(self._interval_s, self._emit_state, self._stop_event)

    def _emit_state(self, state: ConnectionState, device: Optional[Device]) -> None:
        self.state_computed.emit(state, device)

    def stop(self) -> None:
        self._stop_event.set()
        self.requestInterruption()
        if self.isRunning():
            if not self.wait(5000):
                logger.warning('DeviceStateWorker did not stop within timeout')


class MirrorController(QObject):
    """Wires discovery, the session manager and log capture to Qt signals."""

    state_changed = pyqtSignal(object, object)  # ConnectionState, Optional[Device]
    session_started = pyqtSignal(str)
    session_ended = pyqtSignal(str, str)
    error_occurred = pyqtSignal(str)
    screenshot_saved = pyqtSignal(str)

    # Re-emitted on the controller's thread; session exits arrive on a watcher thread.
    _session_exit_reported = pyqtSignal(str, str)

    def __init__(
        self,
        discovery: Optional[DeviceDiscovery] = None,
        sessions: Optional[MirrorSessionManager] = None,
        log_capture: Optional[LogCapture] = None,
        config_manager: Optional[ConfigManager] = None,
        screenshots: Optional[ScreenshotCapture] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self._discovery = discovery or DeviceDiscovery()
        self._sessions = sessions or MirrorSessionManager()
        self._log_capture = log_capture or LogCapture(locator=self._discovery.locator)
        self._config_manager = config_manager or ConfigManager()
        self._screenshots = screenshots or ScreenshotCapture(locator=self._discovery.locator)

        self._worker: Optional[DeviceStateWorker] = None
        self._polled_state: Optional[ConnectionState] = None
        self._device: Optional[Device] = None
        self._published: Optional[Tuple[ConnectionState, Optional[Device]]] = None

        self._session_exit_reported.connect(self._on_session_ended)
        self._sessions.add_session_ended_listener(self._session_exit_reported.emit)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def current_state(self) -> Optional[ConnectionState]:
        return self._published[0] if self._published else None

    @property
    def current_device(self) -> Optional[Device]:
        return self._device

    @property
    def log_capture(self) -> LogCapture:
        return self._log_capture

    @property
    def is_monitoring(self) -> bool:
        return self._worker is not None and self._worker.isRunning()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_monitoring(self) -> None:
        if self._worker is not None:
            return
        interval = self._config_manager.get_device_settings().poll_interval_seconds
        worker = DeviceStateWorker(self._discovery, interval)
        worker.state_computed.connect(self._on_state_computed)
        self._worker = worker
        worker.start()
        logger.info('Device monitoring started (interval %ss)', interval)

    def stop_monitoring(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.stop()
            logger.info('Device monitoring stopped')

    def shutdown(self) -> None:
        self.stop_monitoring()
        self._sessions.stop_session()
        self._log_capture.stop_capture()

    def refresh_tools(self) -> None:
        """Forget cached tool paths, e.g. after the user installed scrcpy."""
        self._discovery.locator.refresh()
        self._sessions.locator.refresh()
        self._republish()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def start_mirroring(self, serial: Optional[str] = None, preset=None) -> bool:
        serial = serial or (self._device.serial if self._device else None)
        if not serial:
            self.error_occurred.emit('No device connected')
            return False

        settings = self._config_manager.get_mirror_settings()
        quality = QualityPreset.from_value(preset if preset is not None else settings.default_preset)
        ok, error = self._sessions.start_session(
            serial,
            quality,
            keep_awake=settings.keep_screen_awake,
            fullscreen=settings.start_fullscreen,
        )
        if not ok:
            self.error_occurred.emit(error or 'Failed to start mirroring')
            return False

        self._log_capture.start_capture(serial)
        self.session_started.emit(serial)
        self._republish()
        return True

    def stop_mirroring(self) -> None:
        self._sessions.stop_session()

    def capture_screenshot(self, serial: Optional[str] = None) -> Tuple[Optional[bytes], Optional[str]]:
        serial = serial or (self._device.serial if self._device else '')
        data, error = self._screenshots.capture(serial)
        if error:
            self.error_occurred.emit(error)
        return data, error

    def save_screenshot(self, directory: Optional[str] = None, serial: Optional[str] = None) -> Optional[str]:
        """Capture the device screen into *directory* and return the PNG path, or None on failure."""
        data, error = self.capture_screenshot(serial)
        if error:
            return None
        try:
            path = save_png(data, directory)
        except OSError as exc:
            logger.error('Failed to save screenshot: %s', exc)
            self.error_occurred.emit(f'Failed to save screenshot: {exc}')
            return None
        self.screenshot_saved.emit(path)
        return path

    def recent_errors_text(self) -> str:
        return self._log_capture.format_recent_errors()

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------
    def _on_state_computed(self, state: ConnectionState, device: Optional[Device]) -> None:
        previous = self._polled_state
        self._polled_state = state
        self._device = device
        self._republish()

        if state == ConnectionState.CONNECTED and previous != ConnectionState.CONNECTED and device is not None:
            self._maybe_auto_mirror(device)

    def _maybe_auto_mirror(self, device: Device) -> None:
        settings = self._config_manager.get_mirror_settings()
        if not settings.auto_mirror_on_connect or self._sessions.is_mirroring:
            return
        if not self._sessions.is_available():
            return
        logger.info('Auto-mirroring newly connected device %s', device.display_name)
        self.start_mirroring(device.serial)

    def _on_session_ended(self, serial: str, message: str) -> None:
        # A replacement session may already be running with its own capture.
        if not self._sessions.is_mirroring:
            self._log_capture.stop_capture()
        self.session_ended.emit(serial, message)
        self._republish()

    def _republish(self) -> None:
        if self._polled_state is None:
            return
        derived = derive_state(
            self._polled_state,
            mirroring=self._sessions.is_mirroring,
            mirror_tool_available=self._sessions.is_available(),
        )
        snapshot = (derived, self._device)
        if snapshot == self._published:
            return
        self._published = snapshot
        logger.info('Connection state: %s (%s)', derived.name, self._device.display_name if self._device else '-')
        self.state_changed.emit(derived, self._device)


__all__ = ['DeviceStateWorker', 'MirrorController', 'derive_state']
