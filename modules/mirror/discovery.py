"""Device discovery and connection state polling through adb."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional, Tuple

from config.constants import ADBConstants
from utils import common
from utils.process_runner import ProcessOutcome, run_process
from utils.tool_locator import ADB_TOOL, ToolLocator

from .models import ConnectionState, Device
from .parser import AdbOutputParser


logger = common.get_logger('device_discovery')


ProcessRunner = Callable[..., ProcessOutcome]
StateObserver = Callable[[ConnectionState, Optional[Device]], None]

_STATE_BY_TOKEN = {
    ADBConstants.DEVICE_STATE_DEVICE: ConnectionState.CONNECTED,
    ADBConstants.DEVICE_STATE_UNAUTHORIZED: ConnectionState.UNAUTHORIZED,
    ADBConstants.DEVICE_STATE_OFFLINE: ConnectionState.OFFLINE,
}


class DeviceDiscovery:
    """Lists attached devices and turns them into a single connection state."""

    def __init__(
        self,
        locator: Optional[ToolLocator] = None,
        runner: Optional[ProcessRunner] = None,
        parser: Optional[AdbOutputParser] = None,
    ) -> None:
        self._locator = locator or ToolLocator(ADB_TOOL)
        self._runner = runner or run_process
        self._parser = parser or AdbOutputParser()

    @property
    def locator(self) -> ToolLocator:
        return self._locator

    @property
    def adb_path(self) -> str:
        return self._locator.resolve()

    def _run(
        self,
        arguments: List[str],
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessOutcome:
        return self._runner(self.adb_path, arguments, timeout=timeout, cancel_event=cancel_event)

    def is_available(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """Return True when ``adb version`` succeeds."""
        outcome = self._run(ADBConstants.CMD_VERSION, ADBConstants.VERSION_TIMEOUT, cancel_event)
        if not outcome.success:
            logger.debug('adb version check failed (%s): %s', outcome.exit_code, outcome.stderr)
        return outcome.success

    def ensure_server_running(self, cancel_event: Optional[threading.Event] = None) -> None:
        """Start the adb server if needed; failures are only logged."""
        outcome = self._run(ADBConstants.CMD_START_SERVER, ADBConstants.DEFAULT_COMMAND_TIMEOUT, cancel_event)
        if not outcome.success:
            logger.warning('adb start-server failed (%s): %s', outcome.exit_code, outcome.stderr)

    def list_devices(self, cancel_event: Optional[threading.Event] = None) -> List[Device]:
        outcome = self._run(ADBConstants.CMD_DEVICES, ADBConstants.DEFAULT_COMMAND_TIMEOUT, cancel_event)
        if not outcome.success:
            logger.warning('adb devices failed (%s): %s', outcome.exit_code, outcome.stderr)
            return []
        return self._parser.parse_devices(outcome.stdout)

    def compute_state(
        self, cancel_event: Optional[threading.Event] = None
    ) -> Tuple[ConnectionState, Optional[Device]]:
        """Evaluate the current connection state from scratch."""
        if not self.is_available(cancel_event):
            return ConnectionState.BRIDGE_UNAVAILABLE, None

        self.ensure_server_running(cancel_event)

        devices = self.list_devices(cancel_event)
        if not devices:
            return ConnectionState.NO_DEVICE, None
        if len(devices) > 1:
            # adb gives no stable ordering, the first listed device is used.
            return ConnectionState.MULTIPLE_DEVICES, devices[0]

        device = devices[0]
        state = _STATE_BY_TOKEN.get(device.state_raw.lower(), ConnectionState.OFFLINE)
        return state, device

    def poll_state(
        self,
        interval: float,
        observer: StateObserver,
        cancel_event: threading.Event,
    ) -> None:
        """Compute and report the state every *interval* seconds until cancelled.

        Ticks never overlap. Errors from a tick or from the observer are
        logged and the loop continues.
        """
        logger.info('Starting device polling every %ss', interval)
        while not cancel_event.is_set():
            with common.trace_id_scope(common.generate_trace_id()):
                try:
                    state, device = self.compute_state(cancel_event)
                    if not cancel_event.is_set():
                        observer(state, device)
                except Exception as exc:
                    logger.error('Device poll tick failed: %s', exc, exc_info=True)

            if cancel_event.wait(interval):
                break
        logger.info('Device polling stopped')


__all__ = ['DeviceDiscovery', 'StateObserver']
