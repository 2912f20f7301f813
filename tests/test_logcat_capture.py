#!/usr/bin/env python3
"""Tests for logcat parsing and the bounded error buffer."""

import datetime as dt
import os
import sys
import tempfile
import threading
import unittest
from unittest.mock import patch

# Redirect HOME so loggers write inside a throwaway location before imports
TEST_HOME = tempfile.mkdtemp(prefix='phone_mirror_test_home_')
os.environ['HOME'] = TEST_HOME
os.environ.pop('XDG_DATA_HOME', None)

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.mirror.logcat import LogCapture, format_errors
from modules.mirror.models import LogEntry
from modules.mirror.parser import AdbOutputParser


NOW = dt.datetime(2024, 5, 1, 12, 0, 0)


class StubLocator:
    def resolve(self) -> str:
        return '/fake/adb'


class ScriptedLogcat:
    """Stands in for run_with_callbacks, replaying canned lines."""

    def __init__(self, lines=(), block_until_cancelled: bool = False) -> None:
        self.lines = list(lines)
        self.block_until_cancelled = block_until_cancelled
        self.calls = []
        self.replayed = threading.Event()
        self.finished = threading.Event()

    def __call__(self, executable, arguments, on_stdout_line, on_stderr_line, cancel_event=None) -> int:
        self.calls.append((executable, list(arguments), on_stderr_line))
        for line in self.lines:
            on_stdout_line(line)
        self.replayed.set()
        if self.block_until_cancelled:
            cancel_event.wait(5)
            self.finished.set()
            return -1
        self.finished.set()
        return 0


def _line(seconds_before_now: int, tag: str = 'AndroidRuntime', message: str = 'boom') -> str:
    stamp = NOW - dt.timedelta(seconds=seconds_before_now)
    return f'{stamp:%m-%d %H:%M:%S}.000 E/{tag}: {message}'


class LogcatParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = AdbOutputParser()

    def test_parses_matching_line(self) -> None:
        entry = self.parser.parse_logcat_line('05-01 11:59:58.250 E/ActivityManager : ANR in com.example', 2024)

        self.assertEqual(entry, LogEntry(dt.datetime(2024, 5, 1, 11, 59, 58, 250000), 'E', 'ActivityManager', 'ANR in com.example'))

    def test_discards_non_matching_lines(self) -> None:
        for line in (
            '',
            '--------- beginning of crash',
            '05-01 11:59:58.250  1234  5678 E ActivityManager: threadtime format',
            '05-01 11:59:58.250 X/Tag: unknown level',
        ):
            with self.subTest(line=line):
                self.assertIsNone(self.parser.parse_logcat_line(line, 2024))

    def test_february_29_depends_on_assumed_year(self) -> None:
        line = '02-29 08:00:00.000 F/libc: Fatal signal 11'
        self.assertIsNotNone(self.parser.parse_logcat_line(line, 2024))
        self.assertIsNone(self.parser.parse_logcat_line(line, 2023))


class LogCaptureTests(unittest.TestCase):
    def _capture(self, runner: ScriptedLogcat) -> LogCapture:
        return LogCapture(locator=StubLocator(), clock=lambda: NOW, runner=runner)

    def test_runs_filtered_logcat_for_serial(self) -> None:
        runner = ScriptedLogcat([_line(1)])
        capture = self._capture(runner)

        capture.start_capture('SERIAL1')
        self.assertTrue(runner.finished.wait(5))
        capture.stop_capture()

        executable, arguments, on_stderr_line = runner.calls[0]
        self.assertEqual(executable, '/fake/adb')
        self.assertEqual(arguments, ['-s', 'SERIAL1', 'logcat', '*:E'])
        self.assertIsNone(on_stderr_line)
        self.assertEqual(len(capture.all_errors()), 1)

    def test_buffer_is_bounded_and_evicts_oldest(self) -> None:
        lines = [_line(1, message=f'error {index}') for index in range(1500)]
        runner = ScriptedLogcat(lines)
        capture = self._capture(runner)

        capture.start_capture('SERIAL1')
        self.assertTrue(runner.finished.wait(5))
        capture.stop_capture()

        entries = capture.all_errors()
        self.assertEqual(len(entries), 1000)
        self.assertEqual(entries[0].message, 'error 500')
        self.assertEqual(entries[-1].message, 'error 1499')

    def test_recent_errors_respects_window(self) -> None:
        runner = ScriptedLogcat([
            _line(15, message='too old'),
            _line(10, message='edge'),
            _line(2, message='fresh'),
            'garbage line',
        ])
        capture = self._capture(runner)

        capture.start_capture('SERIAL1')
        self.assertTrue(runner.finished.wait(5))
        capture.stop_capture()

        self.assertEqual([entry.message for entry in capture.recent_errors()], ['edge', 'fresh'])
        self.assertEqual(len(capture.all_errors()), 3)

    def test_stop_capture_cancels_running_stream(self) -> None:
        runner = ScriptedLogcat(block_until_cancelled=True)
        capture = self._capture(runner)

        capture.start_capture('SERIAL1')
        self.assertTrue(capture.is_capturing)

        capture.stop_capture()
        self.assertTrue(runner.finished.is_set())
        self.assertFalse(capture.is_capturing)

        # Idempotent
        capture.stop_capture()

    def test_restart_clears_previous_entries(self) -> None:
        runner = ScriptedLogcat([_line(1)])
        capture = self._capture(runner)
        capture.start_capture('SERIAL1')
        self.assertTrue(runner.finished.wait(5))
        capture.stop_capture()
        self.assertEqual(len(capture.all_errors()), 1)

        blocking = ScriptedLogcat(block_until_cancelled=True)
        capture._runner = blocking
        capture.start_capture('SERIAL2')
        self.assertEqual(capture.all_errors(), [])
        capture.stop_capture()

    def test_clear_errors_keeps_capture_running(self) -> None:
        runner = ScriptedLogcat([_line(1)], block_until_cancelled=True)
        capture = self._capture(runner)
        capture.start_capture('SERIAL1')
        self.assertTrue(runner.replayed.wait(5))
        self.assertEqual(len(capture.all_errors()), 1)

        capture.clear_errors()

        self.assertTrue(capture.is_capturing)
        self.assertEqual(capture.all_errors(), [])
        capture.stop_capture()

    def test_empty_serial_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._capture(ScriptedLogcat()).start_capture('')

    def test_missing_adb_is_swallowed(self) -> None:
        missing = StubLocator()
        missing.resolve = lambda: os.path.join(os.sep, 'definitely', 'missing', 'adb')
        capture = LogCapture(locator=missing, clock=lambda: NOW)

        capture.start_capture('SERIAL1')
        thread = capture._thread
        thread.join(timeout=5)

        self.assertFalse(thread.is_alive())
        self.assertFalse(capture.is_capturing)
        self.assertEqual(capture.all_errors(), [])
        capture.stop_capture()

    def test_failing_runner_does_not_escape_capture_thread(self) -> None:
        def exploding_runner(executable, arguments, on_stdout_line, on_stderr_line, cancel_event=None):
            raise RuntimeError('adb exploded')

        capture = self._capture(exploding_runner)
        with patch('threading.excepthook') as excepthook:
            capture.start_capture('SERIAL1')
            thread = capture._thread
            thread.join(timeout=5)

        self.assertFalse(thread.is_alive())
        excepthook.assert_not_called()
        self.assertEqual(capture.all_errors(), [])
        capture.stop_capture()


class FormatErrorsTests(unittest.TestCase):
    def test_clipboard_format(self) -> None:
        entries = [
            LogEntry(dt.datetime(2024, 5, 1, 9, 5, 7, 42000), 'E', 'AndroidRuntime', 'FATAL EXCEPTION: main'),
            LogEntry(dt.datetime(2024, 5, 1, 9, 5, 8, 0), 'F', 'libc', 'Fatal signal 6'),
        ]

        self.assertEqual(
            format_errors(entries),
            '=== 2 Recent Errors (last 10 seconds) ===\n'
            '\n'
            '[09:05:07.042] E/AndroidRuntime: FATAL EXCEPTION: main\n'
            '[09:05:08.000] F/libc: Fatal signal 6\n',
        )

    def test_no_entries_gives_empty_text(self) -> None:
        self.assertEqual(format_errors([]), '')


if __name__ == '__main__':
    unittest.main()
