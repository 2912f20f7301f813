"""Providers for tool copies shipped alongside the application."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Union

from utils import common
from utils.platform_info import PlatformInfo, current_platform
from utils.tool_locator import ToolSpec


logger = common.get_logger('bundled_tools')


class BundledToolProvider(Protocol):
    """Anything that can report a pre-extracted copy of a tool."""

    def tool_path(self, spec: ToolSpec) -> Optional[str]:
        ...


class BundledToolDirectory:
    """Serves tools unpacked under ``<root>/<tool folder>/<executable>``.

    Extraction itself happens elsewhere; this only reports what exists.
    """

    def __init__(self, root: Union[str, Path], platform: Optional[PlatformInfo] = None) -> None:
        self._root = Path(root)
        self._platform = platform or current_platform()

    @property
    def root(self) -> Path:
        return self._root

    def tool_path(self, spec: ToolSpec) -> Optional[str]:
        candidate = self._root / spec.folder / self._platform.executable_name(spec.name)
        if candidate.is_file():
            logger.debug('Using bundled %s at %s', spec.name, candidate)
            return str(candidate)
        return None


__all__ = ['BundledToolDirectory', 'BundledToolProvider']
