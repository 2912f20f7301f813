"""Operating system helpers used when locating and launching external tools."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from config.constants import PathConstants


WINDOWS = 'windows'
DARWIN = 'darwin'
LINUX = 'linux'


@dataclass(frozen=True)
class PlatformInfo:
    """Snapshot of the platform facts that drive path resolution."""

    system: str = field(default_factory=lambda: platform.system().lower())

    @property
    def is_windows(self) -> bool:
        return self.system == WINDOWS

    @property
    def is_macos(self) -> bool:
        return self.system == DARWIN

    @property
    def executable_suffix(self) -> str:
        """Return '.exe' on Windows and an empty string elsewhere."""
        return '.exe' if self.is_windows else ''

    @property
    def path_separator(self) -> str:
        return ';' if self.is_windows else ':'

    def executable_name(self, tool_name: str) -> str:
        return f'{tool_name}{self.executable_suffix}'

    def app_data_dir(self, environ: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Path:
        """Return the per-user application data directory.

        Windows: %LOCALAPPDATA%/PhoneMirror
        macOS:   ~/Library/Application Support/PhoneMirror
        Linux:   $XDG_CONFIG_HOME/PhoneMirror or ~/.config/PhoneMirror
        """
        env = os.environ if environ is None else environ
        home_dir = home or Path.home()

        if self.is_windows:
            local_app_data = env.get('LOCALAPPDATA')
            base = Path(local_app_data) if local_app_data else home_dir / 'AppData' / 'Local'
        elif self.is_macos:
            base = home_dir / 'Library' / 'Application Support'
        else:
            xdg_config = env.get('XDG_CONFIG_HOME')
            base = Path(xdg_config) if xdg_config else home_dir / '.config'

        return base / PathConstants.APP_DATA_FOLDER

    def default_sdk_root(self, environ: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Optional[Path]:
        """Return the conventional Android SDK install location for this OS."""
        env = os.environ if environ is None else environ
        home_dir = home or Path.home()

        if self.is_windows:
            local_app_data = env.get('LOCALAPPDATA')
            if not local_app_data:
                return None
            return Path(local_app_data) / 'Android' / 'Sdk'
        if self.is_macos:
            return home_dir / 'Library' / 'Android' / 'sdk'
        return home_dir / 'Android' / 'Sdk'


def current_platform() -> PlatformInfo:
    """Return platform facts for the running interpreter."""
    return PlatformInfo()


__all__ = [
    'DARWIN',
    'LINUX',
    'PlatformInfo',
    'WINDOWS',
    'current_platform',
]
