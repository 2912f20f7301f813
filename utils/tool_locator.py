"""Helpers for locating the external adb and scrcpy executables."""

from __future__ import annotations

import os
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional

from config.constants import ADBConstants, PathConstants, ScrcpyConstants
from utils import common
from utils.platform_info import PlatformInfo, current_platform


logger = common.get_logger('tool_locator')


@dataclass(frozen=True)
class ToolSpec:
    """Describes where a command line tool is conventionally installed."""

    name: str
    folder: str
    # Tools shipped with the Android SDK are also looked up under SDK roots.
    sdk_managed: bool = False


ADB_TOOL = ToolSpec(ADBConstants.TOOL_NAME, ADBConstants.TOOLS_FOLDER, sdk_managed=True)
SCRCPY_TOOL = ToolSpec(ScrcpyConstants.TOOL_NAME, ScrcpyConstants.TOOLS_FOLDER)


def default_app_dir() -> Path:
    """Return the directory the application runs from.

    PyInstaller bundles expose their unpack directory through ``sys._MEIPASS``;
    other frozen builds live next to the executable; a source checkout uses
    the repository root.
    """
    bundle_root = getattr(sys, '_MEIPASS', None)
    if bundle_root:
        return Path(bundle_root)
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


def _is_file(candidate: Path) -> bool:
    try:
        return candidate.is_file()
    except OSError:
        # Unreadable PATH entries or permission problems are not fatal.
        return False


class ToolLocator:
    """Resolve the absolute path of one external tool.

    The first existing candidate wins; ``resolve()`` falls back to the bare
    tool name so the process layer reports a clear launch failure. Results
    are cached until :meth:`refresh` is called.
    """

    def __init__(
        self,
        spec: ToolSpec,
        bundled_provider=None,
        platform: Optional[PlatformInfo] = None,
        app_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> None:
        self.spec = spec
        self._bundled_provider = bundled_provider
        self._platform = platform or current_platform()
        self._app_dir = Path(app_dir) if app_dir is not None else default_app_dir()
        self._environ = environ
        self._home = home
        self._lock = threading.Lock()
        self._cached: Optional[str] = None
        self._resolved = False

    @property
    def executable_name(self) -> str:
        return self._platform.executable_name(self.spec.name)

    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def _bundled_candidate(self) -> Optional[Path]:
        if self._bundled_provider is None:
            return None
        try:
            bundled = self._bundled_provider.tool_path(self.spec)
        except OSError as exc:
            logger.warning('Bundled %s lookup failed: %s', self.spec.name, exc)
            return None
        return Path(bundled) if bundled else None

    def _iter_candidates(self) -> Iterator[Path]:
        exe = self.executable_name
        env = self._env()

        bundled = self._bundled_candidate()
        if bundled is not None:
            yield bundled

        # Locations relative to the application
        yield self._app_dir / self.spec.folder / exe
        yield self._app_dir / exe
        yield self._platform.app_data_dir(env, self._home) / self.spec.folder / exe
        for ancestor in list(self._app_dir.parents)[:PathConstants.TOOL_SEARCH_DEPTH]:
            yield ancestor / self.spec.folder / exe

        if self.spec.sdk_managed:
            for var_name in ADBConstants.SDK_ENV_VARS:
                sdk_root = env.get(var_name)
                if sdk_root:
                    yield Path(sdk_root) / self.spec.folder / exe
                    break

            default_sdk = self._platform.default_sdk_root(env, self._home)
            if default_sdk is not None:
                yield default_sdk / self.spec.folder / exe

        for raw_dir in env.get('PATH', '').split(self._platform.path_separator):
            directory = raw_dir.strip().strip('"')
            if directory:
                yield Path(directory) / exe

    def candidates(self) -> List[str]:
        """Return every candidate path in priority order, without duplicates."""
        seen: set[str] = set()
        ordered: List[str] = []
        for candidate in self._iter_candidates():
            key = str(candidate)
            if key in seen:
                continue
            seen.add(key)
            ordered.append(key)
        return ordered

    def locate(self) -> Optional[str]:
        """Return the first existing candidate, or ``None`` when nothing exists."""
        with self._lock:
            if self._resolved:
                return self._cached
            found = next((path for path in self.candidates() if _is_file(Path(path))), None)
            self._cached = found
            self._resolved = True

        if found:
            logger.info('Resolved %s at %s', self.spec.name, found)
        else:
            logger.warning('%s was not found in any known location', self.executable_name)
        return found

    def resolve(self) -> str:
        """Return the tool path, falling back to the bare executable name."""
        return self.locate() or self.executable_name

    def refresh(self) -> str:
        """Drop the cached result and resolve again."""
        with self._lock:
            self._cached = None
            self._resolved = False
        return self.resolve()


__all__ = [
    'ADB_TOOL',
    'SCRCPY_TOOL',
    'ToolLocator',
    'ToolSpec',
    'default_app_dir',
]
