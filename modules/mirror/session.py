"""scrcpy mirroring session lifecycle."""

from __future__ import annotations

import functools
import os
import shlex
import threading
from typing import Callable, List, Optional, Tuple

from config.constants import ScrcpyConstants
from utils import common
from utils.process_runner import ManagedProcess
from utils.tool_locator import SCRCPY_TOOL, ToolLocator

from .models import MirrorSession, QualityPreset, SessionStatus


logger = common.get_logger('mirror_session')


SessionEndedListener = Callable[[str, str], None]


def build_scrcpy_arguments(
    serial: str,
    preset: QualityPreset,
    keep_awake: bool,
    fullscreen: bool,
) -> List[str]:
    """Construct the scrcpy argument list for one session."""
    args: List[str] = [ScrcpyConstants.FLAG_SERIAL, serial]
    args.extend([
        ScrcpyConstants.FLAG_BIT_RATE, preset.bit_rate,
        ScrcpyConstants.FLAG_MAX_SIZE, str(preset.max_size),
        ScrcpyConstants.FLAG_MAX_FPS, str(preset.max_fps),
    ])

    if keep_awake:
        args.append(ScrcpyConstants.FLAG_STAY_AWAKE)

    if fullscreen:
        args.append(ScrcpyConstants.FLAG_FULLSCREEN)

    args.append(ScrcpyConstants.FLAG_TURN_SCREEN_OFF)
    return args


def compose_exit_message(returncode: int, stdout: str, stderr: str) -> str:
    """Describe how scrcpy ended, quoting stderr (or stdout when stderr is empty)."""
    if returncode == 0:
        message = 'scrcpy exited.'
    else:
        message = f'scrcpy failed with code {returncode}.'

    if stderr:
        message += f' stderr: {stderr}'
    elif stdout:
        message += f' stdout: {stdout}'
    return message


class MirrorSessionManager:
    """Owns at most one scrcpy subprocess at a time.

    Status moves IDLE -> STARTING -> ACTIVE -> IDLE. The exit handler of the
    subprocess is the only place a session-ended notification comes from, so
    stopping an idle manager never notifies anybody.
    """

    def __init__(self, locator: Optional[ToolLocator] = None) -> None:
        self._locator = locator or ToolLocator(SCRCPY_TOOL)
        # Serialises start/stop requests from different callers.
        self._session_lock = threading.Lock()
        # Guards the session handle, shared with the exit watcher thread.
        self._state_lock = threading.Lock()
        self._session: Optional[MirrorSession] = None
        self._status = SessionStatus.IDLE
        self._listeners: List[SessionEndedListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_session_ended_listener(self, listener: SessionEndedListener) -> None:
        self._listeners.append(listener)

    def remove_session_ended_listener(self, listener: SessionEndedListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def locator(self) -> ToolLocator:
        return self._locator

    @property
    def status(self) -> SessionStatus:
        with self._state_lock:
            return self._status

    @property
    def is_mirroring(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def current_session(self) -> Optional[MirrorSession]:
        with self._state_lock:
            return self._session

    def is_available(self) -> bool:
        return self._locator.locate() is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_session(
        self,
        serial: str,
        preset: QualityPreset = QualityPreset.BALANCED,
        keep_awake: bool = True,
        fullscreen: bool = False,
    ) -> Tuple[bool, Optional[str]]:
        """Start mirroring *serial*, replacing any running session.

        Returns ``(True, None)`` on success or ``(False, message)`` when scrcpy
        cannot be found or launched.
        """
        if not serial:
            raise ValueError('Device serial cannot be empty.')
        preset = QualityPreset.from_value(preset)

        with common.trace_id_scope(common.generate_trace_id()), self._session_lock:
            previous = self._terminate_current()
            if previous is not None:
                logger.info('Stopping previous session for %s before starting %s', previous.serial, serial)
                if previous.wait_ended(ScrcpyConstants.SUPERSEDE_WAIT_TIMEOUT) is None:
                    logger.warning('Previous session for %s did not report its exit in time', previous.serial)

            scrcpy_path = self._locator.locate()
            if not scrcpy_path:
                message = (
                    f'scrcpy not found. Please ensure {self._locator.executable_name} '
                    'is available in the application directory or in PATH.'
                )
                logger.warning(message)
                return False, message
            # scrcpy runs from its own directory, so relative paths would break.
            scrcpy_path = os.path.abspath(scrcpy_path)

            arguments = build_scrcpy_arguments(serial, preset, keep_awake, fullscreen)
            session = MirrorSession(serial=serial, preset=preset, executable=scrcpy_path, arguments=arguments)

            with self._state_lock:
                self._status = SessionStatus.STARTING
                try:
                    session.process = ManagedProcess.launch(
                        scrcpy_path,
                        arguments,
                        on_stdout_line=session.append_stdout,
                        on_stderr_line=session.append_stderr,
                        on_exit=functools.partial(self._handle_exit, session),
                        cwd=os.path.dirname(scrcpy_path),
                        name='scrcpy',
                    )
                except (OSError, ValueError) as exc:
                    self._status = SessionStatus.IDLE
                    message = (
                        f'Failed to start scrcpy: {exc}\n'
                        f'Path: {scrcpy_path}\n'
                        f'Args: {shlex.join(arguments)}'
                    )
                    logger.error(message)
                    return False, message

                self._session = session
                self._status = SessionStatus.ACTIVE

            logger.info('Started scrcpy for %s (%s preset): %s', serial, preset.label, shlex.join(arguments))
            return True, None

    def stop_session(self) -> None:
        """Kill the running scrcpy process, if any.

        The session-ended notification follows from the exit handler.
        """
        with self._session_lock:
            session = self._terminate_current()
        if session is None:
            logger.debug('stop_session called with no active session')
        else:
            logger.info('Stopped scrcpy session for %s', session.serial)

    def _terminate_current(self) -> Optional[MirrorSession]:
        with self._state_lock:
            session = self._session
            process = session.process if session is not None else None
        if process is not None:
            process.kill()
        return session

    def _handle_exit(self, session: MirrorSession, returncode: int) -> None:
        stdout, stderr = session.captured_output()
        message = compose_exit_message(returncode, stdout, stderr)

        with self._state_lock:
            if self._session is session:
                self._session = None
                self._status = SessionStatus.IDLE
            session.process = None

        logger.info('scrcpy session for %s ended: %s', session.serial, message)
        try:
            for listener in list(self._listeners):
                try:
                    listener(session.serial, message)
                except Exception:
                    logger.exception('Session ended listener failed')
        finally:
            session.ended.set_result(message)


__all__ = [
    'MirrorSessionManager',
    'SessionEndedListener',
    'build_scrcpy_arguments',
    'compose_exit_message',
]
