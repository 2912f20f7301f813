"""Configuration management module for application settings."""

import json
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from config.constants import DeviceConstants, LoggingConstants, PathConstants
from utils import common
from utils.platform_info import current_platform

logger = common.get_logger('config_manager')


_VALID_PRESETS = ('low', 'balanced', 'high')

# Flat keys used by settings files from earlier releases
_LEGACY_MIRROR_KEYS = {
    'DefaultPreset': 'default_preset',
    'AutoMirrorOnConnect': 'auto_mirror_on_connect',
    'StartFullscreen': 'start_fullscreen',
    'KeepScreenAwake': 'keep_screen_awake',
}


@dataclass
class MirrorSettings:
    """Mirroring preferences shown in the toolbar."""
    default_preset: str = 'balanced'
    auto_mirror_on_connect: bool = False
    start_fullscreen: bool = False
    keep_screen_awake: bool = True


@dataclass
class DeviceSettings:
    """Device polling settings."""
    poll_interval_seconds: float = DeviceConstants.DEFAULT_POLL_INTERVAL_S


@dataclass
class LoggingSettings:
    """Logging configuration."""
    log_level: str = LoggingConstants.DEFAULT_LOG_LEVEL


@dataclass
class AppConfig:
    """Main application configuration."""
    mirror: MirrorSettings
    device: DeviceSettings
    logging: LoggingSettings
    version: str = "1.0.0"


def default_config_path() -> Path:
    """Return settings.json inside the per-user application data directory."""
    return current_platform().app_data_dir() / PathConstants.SETTINGS_FILE_NAME


class ConfigManager:
    """Manages application configuration persistence and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path).expanduser() if config_path else default_config_path()
        self.backup_path = self.config_path.with_name(PathConstants.SETTINGS_BACKUP_FILE_NAME)
        self._config: Optional[AppConfig] = None

    def _ensure_config_dir(self):
        """Ensure configuration directory exists."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

    def _create_default_config(self) -> AppConfig:
        """Create default configuration."""
        return AppConfig(
            mirror=MirrorSettings(),
            device=DeviceSettings(),
            logging=LoggingSettings(),
        )

    def _validate_config(self, config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and clean configuration dictionary."""
        if not isinstance(config_dict, dict):
            raise ValueError('Configuration root must be a JSON object')

        # Normalize legacy flat keys before merging
        normalized: Dict[str, Any] = dict(config_dict)
        mirror_section = normalized.get('mirror')
        mirror_section = dict(mirror_section) if isinstance(mirror_section, dict) else {}
        for legacy_key, key in _LEGACY_MIRROR_KEYS.items():
            if legacy_key in normalized:
                mirror_section.setdefault(key, normalized.pop(legacy_key))
        normalized['mirror'] = mirror_section

        # Ensure all required sections exist
        default_config = asdict(self._create_default_config())

        # Merge with defaults for missing keys
        def merge_dict(default: Dict, user: Dict) -> Dict:
            result = default.copy()
            for key, value in user.items():
                if key in result:
                    if isinstance(value, dict) and isinstance(result[key], dict):
                        result[key] = merge_dict(result[key], value)
                    elif not isinstance(result[key], dict):
                        result[key] = value
            return result

        validated = merge_dict(default_config, normalized)
        defaults = MirrorSettings()

        # Validate specific constraints
        mirror_settings = validated['mirror']
        preset = mirror_settings.get('default_preset')
        if isinstance(preset, int) and not isinstance(preset, bool) and 0 <= preset < len(_VALID_PRESETS):
            # Older files stored the preset as its index
            preset = _VALID_PRESETS[preset]
        if not isinstance(preset, str) or preset.strip().lower() not in _VALID_PRESETS:
            mirror_settings['default_preset'] = defaults.default_preset
            logger.warning('Unknown default preset %r, reset to %s', preset, defaults.default_preset)
        else:
            mirror_settings['default_preset'] = preset.strip().lower()

        for flag in ('auto_mirror_on_connect', 'start_fullscreen', 'keep_screen_awake'):
            if not isinstance(mirror_settings.get(flag), bool):
                mirror_settings[flag] = getattr(defaults, flag)
                logger.warning('Mirror setting %s invalid, reset to %s', flag, mirror_settings[flag])

        device_settings = validated['device']
        interval = device_settings.get('poll_interval_seconds')
        if (
            isinstance(interval, bool)
            or not isinstance(interval, (int, float))
            or interval < DeviceConstants.MIN_POLL_INTERVAL_S
        ):
            device_settings['poll_interval_seconds'] = DeviceConstants.DEFAULT_POLL_INTERVAL_S
            logger.warning('Poll interval invalid, reset to %s seconds', DeviceConstants.DEFAULT_POLL_INTERVAL_S)
        else:
            device_settings['poll_interval_seconds'] = float(interval)

        logging_settings = validated['logging']
        level = str(logging_settings.get('log_level', '')).upper()
        if level not in LoggingConstants.VALID_LOG_LEVELS:
            level = LoggingConstants.DEFAULT_LOG_LEVEL
            logger.warning('Log level invalid, reset to %s', level)
        logging_settings['log_level'] = level

        return validated

    def _config_from_file(self, path: Path) -> AppConfig:
        with open(path, 'r', encoding='utf-8') as f:
            config_dict = json.load(f)

        validated_dict = self._validate_config(config_dict)
        return AppConfig(
            mirror=MirrorSettings(**validated_dict['mirror']),
            device=DeviceSettings(**validated_dict['device']),
            logging=LoggingSettings(**validated_dict['logging']),
            version=str(validated_dict.get('version', '1.0.0')),
        )

    def load_config(self) -> AppConfig:
        """Load configuration from file; never raises."""
        if self._config is not None:
            return self._config

        try:
            if self.config_path.exists():
                self._config = self._config_from_file(self.config_path)
                logger.info(f'Configuration loaded from {self.config_path}')
            else:
                self._config = self._create_default_config()
                logger.info('Created default configuration')

        except (OSError, ValueError, TypeError) as e:
            logger.error(f'Failed to load config: {e}')
            # Try backup if available
            if self.backup_path.exists():
                try:
                    logger.info('Attempting to load from backup')
                    self._config = self._config_from_file(self.backup_path)
                    logger.info('Configuration loaded from backup')
                except (OSError, ValueError, TypeError) as backup_error:
                    logger.error(f'Backup config also failed: {backup_error}')
                    self._config = self._create_default_config()
            else:
                self._config = self._create_default_config()

        return self._config

    def save_config(self, config: Optional[AppConfig] = None) -> bool:
        """Save configuration to file; returns False when writing failed."""
        if config is None:
            config = self._config

        if config is None:
            logger.warning('No configuration to save')
            return False

        try:
            self._ensure_config_dir()

            # Create backup of existing config
            if self.config_path.exists():
                try:
                    shutil.copy2(self.config_path, self.backup_path)
                except OSError as e:
                    logger.warning(f'Failed to create config backup: {e}')

            # Save new config
            config_dict = asdict(config)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=4, ensure_ascii=False)

            self._config = config
            logger.info(f'Configuration saved to {self.config_path}')
            return True

        except OSError as e:
            # Settings persistence is optional; the in-memory copy stays usable.
            self._config = config
            logger.error(f'Failed to save config: {e}')
            return False

    def get_mirror_settings(self) -> MirrorSettings:
        """Get mirroring settings."""
        return self.load_config().mirror

    def get_device_settings(self) -> DeviceSettings:
        """Get device settings."""
        return self.load_config().device

    def get_logging_settings(self) -> LoggingSettings:
        """Get logging settings."""
        return self.load_config().logging

    def _update_section(self, section: Any, values: Dict[str, Any]) -> bool:
        changed = False
        for key, value in values.items():
            if not hasattr(section, key):
                logger.warning('Ignoring unknown setting %s', key)
                continue
            if getattr(section, key) != value:
                setattr(section, key, value)
                changed = True
        return changed

    def update_mirror_settings(self, **kwargs) -> bool:
        """Update mirroring settings, saving only when something changed."""
        config = self.load_config()
        if 'default_preset' in kwargs:
            preset = kwargs['default_preset']
            kwargs['default_preset'] = getattr(preset, 'label', str(preset).lower())
        if not self._update_section(config.mirror, kwargs):
            return False
        return self.save_config(config)

    def update_device_settings(self, **kwargs) -> bool:
        """Update device settings, saving only when something changed."""
        config = self.load_config()
        if not self._update_section(config.device, kwargs):
            return False
        return self.save_config(config)

    def reset_to_defaults(self):
        """Reset configuration to defaults."""
        self._config = self._create_default_config()
        self.save_config()
        logger.info('Configuration reset to defaults')
