#!/usr/bin/env python3
"""Tests for tool path resolution."""

import os
import sys
import tempfile
import unittest
from pathlib import Path

# Redirect HOME so loggers write inside a throwaway location before imports
TEST_HOME = tempfile.mkdtemp(prefix='phone_mirror_test_home_')
os.environ['HOME'] = TEST_HOME
os.environ.pop('XDG_DATA_HOME', None)

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.mirror.bundled import BundledToolDirectory
from utils.platform_info import PlatformInfo
from utils.tool_locator import ADB_TOOL, SCRCPY_TOOL, ToolLocator


LINUX = PlatformInfo('linux')
WINDOWS = PlatformInfo('windows')


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('#!/bin/sh\n', encoding='utf-8')
    return path


class ToolLocatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.home = self.root / 'home'
        self.app_dir = self.root / 'opt' / 'phone_mirror'
        self.app_dir.mkdir(parents=True)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _locator(self, spec=ADB_TOOL, environ=None, platform=LINUX, bundled=None) -> ToolLocator:
        return ToolLocator(
            spec,
            bundled_provider=bundled,
            platform=platform,
            app_dir=self.app_dir,
            environ=environ if environ is not None else {},
            home=self.home,
        )

    def test_candidate_order_for_adb(self) -> None:
        environ = {
            'ANDROID_HOME': str(self.root / 'sdk'),
            'PATH': f'{self.root / "bin1"}:{self.root / "bin2"}',
        }
        candidates = self._locator(environ=environ).candidates()

        expected_prefix = [
            str(self.app_dir / 'platform-tools' / 'adb'),
            str(self.app_dir / 'adb'),
            str(self.home / '.config' / 'PhoneMirror' / 'platform-tools' / 'adb'),
            str(self.app_dir.parent / 'platform-tools' / 'adb'),
        ]
        self.assertEqual(candidates[:4], expected_prefix)

        sdk_index = candidates.index(str(self.root / 'sdk' / 'platform-tools' / 'adb'))
        default_index = candidates.index(str(self.home / 'Android' / 'Sdk' / 'platform-tools' / 'adb'))
        path_index = candidates.index(str(self.root / 'bin1' / 'adb'))
        self.assertLess(sdk_index, default_index)
        self.assertLess(default_index, path_index)
        self.assertEqual(candidates[-1], str(self.root / 'bin2' / 'adb'))

    def test_ancestor_search_is_limited(self) -> None:
        self.app_dir = self.root / 'a' / 'b' / 'c' / 'd' / 'e' / 'f' / 'g'
        candidates = self._locator().candidates()

        self.assertIn(str(self.root / 'a' / 'b' / 'platform-tools' / 'adb'), candidates)
        self.assertNotIn(str(self.root / 'a' / 'platform-tools' / 'adb'), candidates)

    def test_android_home_takes_precedence_over_sdk_root(self) -> None:
        environ = {
            'ANDROID_HOME': str(self.root / 'home_sdk'),
            'ANDROID_SDK_ROOT': str(self.root / 'root_sdk'),
        }
        candidates = self._locator(environ=environ).candidates()

        self.assertIn(str(self.root / 'home_sdk' / 'platform-tools' / 'adb'), candidates)
        self.assertNotIn(str(self.root / 'root_sdk' / 'platform-tools' / 'adb'), candidates)

    def test_scrcpy_skips_sdk_locations(self) -> None:
        environ = {'ANDROID_HOME': str(self.root / 'sdk')}
        candidates = self._locator(spec=SCRCPY_TOOL, environ=environ).candidates()

        self.assertEqual(candidates[0], str(self.app_dir / 'scrcpy' / 'scrcpy'))
        self.assertFalse(any(candidate.startswith(str(self.root / 'sdk')) for candidate in candidates))
        self.assertNotIn(str(self.home / 'Android' / 'Sdk' / 'scrcpy' / 'scrcpy'), candidates)

    def test_windows_suffix_and_quoted_path_entries(self) -> None:
        environ = {
            'LOCALAPPDATA': str(self.root / 'local'),
            'PATH': f'"{self.root / "quoted"}";;{self.root / "plain"}',
        }
        candidates = self._locator(environ=environ, platform=WINDOWS).candidates()

        self.assertTrue(all(candidate.endswith('adb.exe') for candidate in candidates))
        self.assertIn(str(self.root / 'quoted' / 'adb.exe'), candidates)
        self.assertIn(str(self.root / 'local' / 'Android' / 'Sdk' / 'platform-tools' / 'adb.exe'), candidates)
        self.assertFalse(any('"' in candidate for candidate in candidates))

    def test_resolve_finds_tool_on_path(self) -> None:
        tool = _touch(self.root / 'bin' / 'adb')
        locator = self._locator(environ={'PATH': str(self.root / 'bin')})

        self.assertEqual(locator.resolve(), str(tool))
        self.assertEqual(locator.locate(), str(tool))

    def test_app_relative_copy_wins_over_path(self) -> None:
        bundled = _touch(self.app_dir / 'platform-tools' / 'adb')
        _touch(self.root / 'bin' / 'adb')
        locator = self._locator(environ={'PATH': str(self.root / 'bin')})

        self.assertEqual(locator.resolve(), str(bundled))

    def test_missing_tool_falls_back_to_bare_name(self) -> None:
        locator = self._locator(environ={'PATH': str(self.root / 'empty')})

        self.assertIsNone(locator.locate())
        self.assertEqual(locator.resolve(), 'adb')
        self.assertEqual(self._locator(platform=WINDOWS).resolve(), 'adb.exe')

    def test_result_is_cached_until_refresh(self) -> None:
        locator = self._locator(environ={'PATH': str(self.root / 'bin')})
        self.assertEqual(locator.resolve(), 'adb')

        tool = _touch(self.root / 'bin' / 'adb')
        self.assertEqual(locator.resolve(), 'adb')
        self.assertEqual(locator.refresh(), str(tool))

    def test_bundled_provider_has_highest_priority(self) -> None:
        extracted = _touch(self.root / 'extracted' / 'scrcpy' / 'scrcpy')
        _touch(self.app_dir / 'scrcpy' / 'scrcpy')
        provider = BundledToolDirectory(self.root / 'extracted', platform=LINUX)
        locator = self._locator(spec=SCRCPY_TOOL, bundled=provider)

        self.assertEqual(locator.candidates()[0], str(extracted))
        self.assertEqual(locator.resolve(), str(extracted))

    def test_bundled_provider_without_copy_is_skipped(self) -> None:
        provider = BundledToolDirectory(self.root / 'nothing', platform=LINUX)
        locator = self._locator(bundled=provider)

        self.assertEqual(locator.candidates()[0], str(self.app_dir / 'platform-tools' / 'adb'))


class PlatformInfoTests(unittest.TestCase):
    def test_executable_suffix_and_separator(self) -> None:
        self.assertEqual(WINDOWS.executable_name('scrcpy'), 'scrcpy.exe')
        self.assertEqual(LINUX.executable_name('scrcpy'), 'scrcpy')
        self.assertEqual(WINDOWS.path_separator, ';')
        self.assertEqual(LINUX.path_separator, ':')

    def test_app_data_dir_per_platform(self) -> None:
        home = Path('/home/tester')
        self.assertEqual(
            LINUX.app_data_dir({'XDG_CONFIG_HOME': '/xdg'}, home),
            Path('/xdg') / 'PhoneMirror',
        )
        self.assertEqual(LINUX.app_data_dir({}, home), home / '.config' / 'PhoneMirror')
        self.assertEqual(
            PlatformInfo('darwin').app_data_dir({}, home),
            home / 'Library' / 'Application Support' / 'PhoneMirror',
        )
        self.assertEqual(WINDOWS.app_data_dir({'LOCALAPPDATA': '/appdata'}, home), Path('/appdata') / 'PhoneMirror')

    def test_default_sdk_root(self) -> None:
        home = Path('/home/tester')
        self.assertEqual(LINUX.default_sdk_root({}, home), home / 'Android' / 'Sdk')
        self.assertEqual(PlatformInfo('darwin').default_sdk_root({}, home), home / 'Library' / 'Android' / 'sdk')
        self.assertIsNone(WINDOWS.default_sdk_root({}, home))


if __name__ == '__main__':
    unittest.main()
