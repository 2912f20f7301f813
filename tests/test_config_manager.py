"""Unit tests for ConfigManager."""

import json
import os
import shutil
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

from config.config_manager import AppConfig, ConfigManager, DeviceSettings, MirrorSettings
from modules.mirror.models import QualityPreset


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "settings.json"
        self.config_manager = ConfigManager(str(self.config_path))

    def tearDown(self):
        """Clean up test environment."""
        if Path(self.temp_dir).exists():
            shutil.rmtree(self.temp_dir)

    def _write(self, payload, path=None):
        with open(path or self.config_path, 'w', encoding='utf-8') as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)

    def test_create_default_config(self):
        """Missing file yields defaults without writing anything."""
        config = self.config_manager.load_config()

        self.assertIsInstance(config, AppConfig)
        self.assertIsInstance(config.mirror, MirrorSettings)
        self.assertIsInstance(config.device, DeviceSettings)

        self.assertEqual(config.mirror.default_preset, 'balanced')
        self.assertFalse(config.mirror.auto_mirror_on_connect)
        self.assertFalse(config.mirror.start_fullscreen)
        self.assertTrue(config.mirror.keep_screen_awake)
        self.assertEqual(config.device.poll_interval_seconds, 2.0)
        self.assertEqual(config.logging.log_level, 'INFO')
        self.assertFalse(self.config_path.exists())

    def test_save_and_load_config(self):
        """Test configuration saving and loading."""
        config = self.config_manager.load_config()
        config.mirror.default_preset = 'high'
        config.mirror.start_fullscreen = True
        config.device.poll_interval_seconds = 3.5

        self.assertTrue(self.config_manager.save_config(config))

        loaded_config = ConfigManager(str(self.config_path)).load_config()
        self.assertEqual(loaded_config.mirror.default_preset, 'high')
        self.assertTrue(loaded_config.mirror.start_fullscreen)
        self.assertEqual(loaded_config.device.poll_interval_seconds, 3.5)

    def test_config_validation(self):
        """Invalid values are reset to their defaults."""
        self._write({
            "mirror": {
                "default_preset": "ultra",
                "auto_mirror_on_connect": "yes",
            },
            "device": {
                "poll_interval_seconds": 0.1
            },
            "logging": {
                "log_level": "chatty"
            },
            "unknown_section": {"x": 1},
        })

        config = self.config_manager.load_config()
        self.assertEqual(config.mirror.default_preset, 'balanced')
        self.assertFalse(config.mirror.auto_mirror_on_connect)
        self.assertEqual(config.device.poll_interval_seconds, 2.0)
        self.assertEqual(config.logging.log_level, 'INFO')

    def test_legacy_flat_keys_are_migrated(self):
        """Settings files from earlier releases used flat PascalCase keys."""
        self._write({
            "DefaultPreset": 2,
            "AutoMirrorOnConnect": True,
            "StartFullscreen": True,
            "KeepScreenAwake": False,
        })

        mirror = self.config_manager.get_mirror_settings()
        self.assertEqual(mirror.default_preset, 'high')
        self.assertTrue(mirror.auto_mirror_on_connect)
        self.assertTrue(mirror.start_fullscreen)
        self.assertFalse(mirror.keep_screen_awake)

    def test_corrupt_file_falls_back_to_backup(self):
        """A broken settings file is replaced by the backup copy."""
        self._write({"mirror": {"default_preset": "low"}}, self.config_manager.backup_path)
        self._write("{ not json")

        config = self.config_manager.load_config()
        self.assertEqual(config.mirror.default_preset, 'low')

    def test_corrupt_file_without_backup_uses_defaults(self):
        self._write("[1, 2, 3]")

        config = self.config_manager.load_config()
        self.assertEqual(config.mirror.default_preset, 'balanced')

    def test_save_creates_backup_of_previous_file(self):
        self.config_manager.update_mirror_settings(default_preset='low')
        self.config_manager.update_mirror_settings(default_preset='high')

        with open(self.config_manager.backup_path, encoding='utf-8') as f:
            backup = json.load(f)
        self.assertEqual(backup['mirror']['default_preset'], 'low')

    def test_update_settings(self):
        """Updates persist only when a value actually changes."""
        self.assertFalse(self.config_manager.update_mirror_settings(keep_screen_awake=True))
        self.assertFalse(self.config_manager.update_mirror_settings(unknown_key=1))
        self.assertFalse(self.config_manager.update_mirror_settings(default_preset='BALANCED'))
        self.assertFalse(self.config_manager.update_mirror_settings(default_preset=QualityPreset.BALANCED))
        self.assertFalse(self.config_manager.update_device_settings(poll_interval_seconds=2.0))
        self.assertFalse(self.config_manager.update_device_settings())
        self.assertFalse(self.config_manager.update_mirror_settings())
        self.assertFalse(self.config_path.exists())

        self.assertTrue(self.config_manager.update_mirror_settings(default_preset=QualityPreset.HIGH))
        self.assertTrue(self.config_manager.update_device_settings(poll_interval_seconds=5.0))

        reloaded = ConfigManager(str(self.config_path)).load_config()
        self.assertEqual(reloaded.mirror.default_preset, 'high')
        self.assertEqual(reloaded.device.poll_interval_seconds, 5.0)

    def test_save_failure_is_reported(self):
        """An unwritable location keeps the in-memory settings."""
        blocker = Path(self.temp_dir) / "blocker"
        blocker.write_text("file, not a directory", encoding='utf-8')
        manager = ConfigManager(str(blocker / "settings.json"))

        self.assertFalse(manager.update_mirror_settings(start_fullscreen=True))
        self.assertTrue(manager.get_mirror_settings().start_fullscreen)

    def test_reset_to_defaults(self):
        self.config_manager.update_mirror_settings(default_preset='low', start_fullscreen=True)

        self.config_manager.reset_to_defaults()

        reloaded = ConfigManager(str(self.config_path)).load_config()
        self.assertEqual(reloaded.mirror.default_preset, 'balanced')
        self.assertFalse(reloaded.mirror.start_fullscreen)


if __name__ == '__main__':
    unittest.main()
