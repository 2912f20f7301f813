"""Headless entry point for Phone Mirror.

Polls adb for the attached device, prints every connection state change and
optionally mirrors the device with scrcpy as soon as it is connected.
"""

import argparse
import signal
import sys
from typing import List, Optional

from PyQt6.QtCore import QCoreApplication, QTimer

from config.config_manager import ConfigManager
from config.constants import ApplicationConstants, LoggingConstants
from modules.mirror.controller import MirrorController
from modules.mirror.models import ConnectionState, QualityPreset
from utils import common

logger = common.get_logger('phone_mirror')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=ApplicationConstants.APP_DESCRIPTION)
    parser.add_argument(
        '--mirror',
        action='store_true',
        help='Start mirroring whenever a device becomes connected',
    )
    parser.add_argument(
        '--preset',
        choices=[preset.label for preset in QualityPreset],
        help='Quality preset to use instead of the saved default',
    )
    parser.add_argument(
        '--screenshot',
        metavar='DIR',
        help='Save one screenshot into DIR once a device is connected',
    )
    parser.add_argument('--config', help='Path to an alternative settings.json')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=ApplicationConstants.APP_VERSION)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Main application entry point."""
    args = parse_args(argv)

    config_manager = ConfigManager(args.config)
    log_level = LoggingConstants.DEBUG_LOG_LEVEL if args.debug else config_manager.get_logging_settings().log_level
    common.set_log_level(log_level)

    if args.mirror:
        config_manager.get_mirror_settings().auto_mirror_on_connect = True
    if args.preset:
        config_manager.get_mirror_settings().default_preset = args.preset

    app = QCoreApplication(sys.argv if argv is None else [sys.argv[0]] + list(argv))
    app.setApplicationName(ApplicationConstants.APP_NAME)
    app.setApplicationVersion(ApplicationConstants.APP_VERSION)

    controller = MirrorController(config_manager=config_manager)
    controller.state_changed.connect(
        lambda state, device: print(f'{state.name}: {device.display_name if device else "-"}', flush=True)
    )
    controller.session_started.connect(lambda serial: print(f'Mirroring {serial}', flush=True))
    controller.session_ended.connect(lambda serial, message: print(f'{serial}: {message}', flush=True))
    controller.error_occurred.connect(lambda message: print(f'Error: {message}', file=sys.stderr, flush=True))
    controller.screenshot_saved.connect(lambda path: print(f'Screenshot saved to {path}', flush=True))

    if args.screenshot:
        pending = {'screenshot': True}

        def take_screenshot(state, device) -> None:
            if not pending['screenshot'] or device is None:
                return
            if state in (ConnectionState.CONNECTED, ConnectionState.MIRRORING,
                         ConnectionState.MIRROR_TOOL_UNAVAILABLE):
                pending['screenshot'] = False
                controller.save_screenshot(args.screenshot, device.serial)

        controller.state_changed.connect(take_screenshot)

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Give the Python interpreter a chance to run signal handlers.
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)

    app.aboutToQuit.connect(controller.shutdown)
    controller.start_monitoring()
    logger.info('%s %s started', ApplicationConstants.APP_NAME, ApplicationConstants.APP_VERSION)

    sys.exit(app.exec())


if __name__ == "__main__":  # pragma: no cover
    main()
