"""External process execution without pipe deadlocks.

Every helper here drains stdout and stderr concurrently and never waits for
process exit before draining. OS pipe buffers are small, so a child that
fills one pipe while the parent blocks on ``wait()`` never finishes.

Two styles are provided:

* :func:`run_process` accumulates output and enforces a timeout.
* :func:`run_with_callbacks` / :class:`ManagedProcess` deliver output one
  line at a time for long running or streaming tools.

Cancellation tokens are plain :class:`threading.Event` objects. Timeouts and
cancellation kill the whole process tree and report exit code ``-1``.
"""

from __future__ import annotations

import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from config.constants import ProcessConstants
from utils import common


logger = common.get_logger('process_runner')


CommandArgs = Union[str, Sequence[str], None]
LineCallback = Optional[Callable[[str], None]]
ExitCallback = Optional[Callable[[int], None]]


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of one completed external process invocation.

    ``stdout`` and ``stderr`` are ``str`` for text runs and ``bytes`` when the
    process was run with ``text=False``. When the process could not be
    launched, timed out or was cancelled, ``failure`` names the reason and
    ``stderr`` holds the explanatory message as text.
    """

    exit_code: int
    stdout: Union[str, bytes] = ''
    stderr: Union[str, bytes] = ''
    failure: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def normalize_arguments(arguments: CommandArgs) -> List[str]:
    """Return the argument list for *arguments* (strings are split like a shell would)."""
    if arguments is None:
        return []
    if isinstance(arguments, str):
        return shlex.split(arguments)
    return [str(item) for item in arguments]


def build_command(executable: str, arguments: CommandArgs) -> List[str]:
    if not executable or not str(executable).strip():
        raise ValueError('Executable path cannot be empty.')
    return [str(executable)] + normalize_arguments(arguments)


def _popen_kwargs(text: bool, cwd: Optional[str] = None) -> dict:
    """Keyword arguments shared by every launch: pipes, no shell, own process group."""
    popen_kwargs: dict = {
        'stdin': subprocess.DEVNULL,
        'stdout': subprocess.PIPE,
        'stderr': subprocess.PIPE,
        'shell': False,
    }
    if text:
        popen_kwargs['text'] = True
        popen_kwargs['encoding'] = 'utf-8'
        popen_kwargs['errors'] = 'replace'
    if cwd:
        popen_kwargs['cwd'] = cwd

    if os.name == 'nt':
        flags = getattr(subprocess, 'CREATE_NEW_PROCESS_GROUP', 0)
        flags |= getattr(subprocess, 'CREATE_NO_WINDOW', 0)
        popen_kwargs['creationflags'] = flags
    else:
        # A new session makes the child the leader of its own process group,
        # so the whole tree can be signalled at once.
        popen_kwargs['start_new_session'] = True
    return popen_kwargs


def kill_process_tree(process: subprocess.Popen) -> None:
    """Forcibly terminate *process* and every descendant sharing its group."""
    if process.poll() is not None:
        return

    if os.name == 'nt':
        try:
            subprocess.run(
                ['taskkill', '/PID', str(process.pid), '/T', '/F'],
                capture_output=True,
                timeout=5,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug('taskkill failed for pid %s: %s', process.pid, exc)
    else:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except OSError as exc:
            logger.debug('killpg failed for pid %s: %s', process.pid, exc)

    if process.poll() is None:
        try:
            process.kill()
        except OSError:
            # Already gone between the poll and the kill.
            pass


def _abort(process: subprocess.Popen, failure: str, message: str, text: bool) -> ProcessOutcome:
    kill_process_tree(process)
    empty: Union[str, bytes] = '' if text else b''
    try:
        stdout, _stderr = process.communicate(timeout=ProcessConstants.KILL_GRACE_TIMEOUT)
    except subprocess.TimeoutExpired:
        # A grandchild escaped the group and still holds the pipe open.
        stdout = None
    return ProcessOutcome(ProcessConstants.EXIT_CODE_FAILED, stdout or empty, message, failure)


def run_process(
    executable: str,
    arguments: CommandArgs = None,
    timeout: Optional[float] = ProcessConstants.DEFAULT_TIMEOUT,
    cancel_event: Optional[threading.Event] = None,
    *,
    text: bool = True,
    cwd: Optional[str] = None,
) -> ProcessOutcome:
    """Run *executable* with *arguments* and capture its output.

    Args:
      executable: Absolute path (or bare name) of the program.
      arguments: Argument string or sequence; never interpreted by a shell.
      timeout: Seconds before the process tree is killed; ``None`` disables it.
      cancel_event: Setting the event kills the process tree.
      text: Decode output as UTF-8 (``False`` returns raw bytes).
      cwd: Optional working directory.

    Returns:
      A :class:`ProcessOutcome`. Launch failure, timeout and cancellation all
      yield exit code ``-1`` with an explanatory ``stderr``.
    """
    try:
        command = build_command(executable, arguments)
        logger.debug('Running command: %s', command)
        process = subprocess.Popen(command, **_popen_kwargs(text, cwd))
    except (OSError, ValueError) as exc:
        logger.debug('Failed to launch %s: %s', executable, exc)
        return ProcessOutcome(
            ProcessConstants.EXIT_CODE_FAILED,
            '' if text else b'',
            ProcessConstants.MESSAGE_LAUNCH_FAILED.format(reason=exc),
            ProcessConstants.FAILURE_LAUNCH,
        )

    deadline = time.monotonic() + timeout if timeout is not None else None

    while True:
        if cancel_event is not None and cancel_event.is_set():
            logger.info('Cancelled command: %s', command)
            return _abort(process, ProcessConstants.FAILURE_CANCELLED, ProcessConstants.MESSAGE_CANCELLED, text)

        wait_slice = ProcessConstants.COMMUNICATE_SLICE
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning('Command timed out after %ss: %s', timeout, command)
                return _abort(
                    process,
                    ProcessConstants.FAILURE_TIMEOUT,
                    ProcessConstants.MESSAGE_TIMEOUT.format(seconds=timeout),
                    text,
                )
            wait_slice = min(wait_slice, remaining)

        # communicate() drains both pipes together; retrying after a timeout
        # keeps everything read so far.
        try:
            stdout, stderr = process.communicate(timeout=wait_slice)
        except subprocess.TimeoutExpired:
            continue

        empty: Union[str, bytes] = '' if text else b''
        outcome = ProcessOutcome(process.returncode, stdout or empty, stderr or empty)
        logger.debug('Command finished with code %s: %s', outcome.exit_code, command)
        return outcome


class ManagedProcess:
    """A launched process whose pipes are pumped by background threads.

    Each stream has its own reader thread delivering complete lines to a
    callback. When *on_exit* is given a watcher thread waits for the process,
    lets both readers reach end-of-stream and then calls ``on_exit(returncode)``
    exactly once.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        on_stdout_line: LineCallback = None,
        on_stderr_line: LineCallback = None,
        on_exit: ExitCallback = None,
        name: str = 'process',
    ) -> None:
        self._process = process
        self._name = name
        self._readers: List[threading.Thread] = []

        for stream, callback, label in (
            (process.stdout, on_stdout_line, 'stdout'),
            (process.stderr, on_stderr_line, 'stderr'),
        ):
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._pump,
                args=(stream, callback),
                name=f'{name}-{label}',
                daemon=True,
            )
            self._readers.append(reader)
            reader.start()

        self._watcher: Optional[threading.Thread] = None
        if on_exit is not None:
            self._watcher = threading.Thread(
                target=self._watch,
                args=(on_exit,),
                name=f'{name}-exit',
                daemon=True,
            )
            self._watcher.start()

    @classmethod
    def launch(
        cls,
        executable: str,
        arguments: CommandArgs = None,
        on_stdout_line: LineCallback = None,
        on_stderr_line: LineCallback = None,
        on_exit: ExitCallback = None,
        *,
        cwd: Optional[str] = None,
        name: Optional[str] = None,
    ) -> 'ManagedProcess':
        """Start the process; raises ``OSError`` or ``ValueError`` when it cannot be launched."""
        command = build_command(executable, arguments)
        logger.debug('Launching managed process: %s', command)
        process = subprocess.Popen(command, bufsize=1, **_popen_kwargs(True, cwd))
        label = name or os.path.basename(str(executable)) or 'process'
        return cls(process, on_stdout_line, on_stderr_line, on_exit, name=label)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    def is_running(self) -> bool:
        return self._process.poll() is None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for exit; return ``True`` once the process has exited."""
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def kill(self) -> None:
        kill_process_tree(self._process)

    def join_readers(self, timeout: float = ProcessConstants.READER_JOIN_TIMEOUT) -> None:
        for reader in self._readers:
            reader.join(timeout=timeout)

    def _pump(self, stream, callback: LineCallback) -> None:
        try:
            for raw_line in iter(stream.readline, ''):
                if callback is None:
                    continue
                try:
                    callback(raw_line.rstrip('\r\n'))
                except Exception:
                    logger.exception('Line callback failed for %s', self._name)
        except (OSError, ValueError) as exc:
            # The stream was closed underneath us during teardown.
            logger.debug('Reader for %s stopped: %s', self._name, exc)
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _watch(self, on_exit: Callable[[int], None]) -> None:
        returncode = self._process.wait()
        self.join_readers()
        try:
            on_exit(returncode)
        except Exception:
            logger.exception('Exit handler failed for %s', self._name)


def run_with_callbacks(
    executable: str,
    arguments: CommandArgs,
    on_stdout_line: LineCallback,
    on_stderr_line: LineCallback,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Run *executable* streaming each output line to the callbacks.

    Returns the exit code, or ``-1`` when the launch fails or *cancel_event*
    is set (in which case the process tree is killed first).
    """
    try:
        managed = ManagedProcess.launch(executable, arguments, on_stdout_line, on_stderr_line)
    except (OSError, ValueError) as exc:
        logger.warning('Failed to start %s: %s', executable, exc)
        return ProcessConstants.EXIT_CODE_FAILED

    while not managed.wait(timeout=ProcessConstants.COMMUNICATE_SLICE):
        if cancel_event is not None and cancel_event.is_set():
            logger.info('Cancelling streaming process %s (pid %s)', executable, managed.pid)
            managed.kill()
            managed.wait(timeout=ProcessConstants.KILL_GRACE_TIMEOUT)
            managed.join_readers()
            return ProcessConstants.EXIT_CODE_FAILED

    managed.join_readers()
    returncode = managed.returncode
    return ProcessConstants.EXIT_CODE_FAILED if returncode is None else returncode


__all__ = [
    'CommandArgs',
    'ManagedProcess',
    'ProcessOutcome',
    'build_command',
    'kill_process_tree',
    'normalize_arguments',
    'run_process',
    'run_with_callbacks',
]
