"""
Git binary manager for worksnap.

This module discovers the git executable the checkpoint store delegates to:
- Multiple discovery strategies (configured path, which, search paths)
- Version detection and minimum version validation
- Cached discovery results with expiry
"""

import os
import re
import shutil
import asyncio
import subprocess
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple, Callable, Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from packaging import version

from .base import BaseManager
from ..utils.config import GitBinaryConfig
from ..utils.errors import StoreUnavailable, ErrorSeverity, handle_errors
from ..utils.notifications import EventBus, EventCategory
from ..utils.logging import get_logger


logger = get_logger("worksnap.git")

_VERSION_RE = re.compile(r'(\d+\.\d+(?:\.\d+)?)')

DEFAULT_SEARCH_PATHS = [
    Path("/usr/local/bin"),
    Path("/usr/bin"),
    Path("/opt/homebrew/bin"),
    Path("/opt/local/bin"),
]


@dataclass
class GitBinaryInfo:
    """Information about a discovered git executable."""
    path: Path
    version: str
    discovery_method: str = "unknown"
    discovered_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": str(self.path),
            "version": self.version,
            "discovery_method": self.discovery_method,
            "discovered_at": self.discovered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GitBinaryInfo':
        """Create from dictionary."""
        return cls(
            path=Path(data["path"]),
            version=data["version"],
            discovery_method=data.get("discovery_method", "unknown"),
            discovered_at=datetime.fromisoformat(data["discovered_at"]),
        )


class GitBinaryManager(BaseManager[GitBinaryInfo]):
    """Discovers and validates the git executable."""

    def __init__(
        self,
        config: Optional[GitBinaryConfig] = None,
        event_bus: Optional[EventBus] = None
    ):
        """Initialize git binary manager."""
        self.git_config = config or GitBinaryConfig()
        super().__init__("git_binary")

        self._event_bus = event_bus
        self._binary_cache: Optional[GitBinaryInfo] = None
        self._cache_expires: Optional[datetime] = None
        self._discovery_lock = asyncio.Lock()

        self.binary_name = "git.exe" if os.name == "nt" else "git"

    async def _initialize(self) -> None:
        # Discovery happens on first use
        logger.info("binary_discovery_deferred")

    async def _start(self) -> None:
        pass

    async def _stop(self) -> None:
        await self.invalidate_cache()

    async def _health_check(self) -> Dict[str, Any]:
        binary = await self.get_binary()
        return {
            "healthy": binary is not None,
            "binary_path": str(binary.path) if binary else None,
            "binary_version": binary.version if binary else None,
            "cache_valid": self._is_cache_valid(),
        }

    def _search_paths(self) -> List[Path]:
        """Configured search paths first, then platform defaults."""
        paths = list(self.git_config.search_paths)
        paths.extend(p for p in DEFAULT_SEARCH_PATHS if p not in paths)
        return paths

    async def discover_binary(self, force: bool = False) -> GitBinaryInfo:
        """
        Discover git using multiple strategies.

        Args:
            force: Force rediscovery even if cached

        Returns:
            Binary information

        Raises:
            StoreUnavailable: If no usable git executable was found
        """
        async with self._discovery_lock:
            if not force and self._is_cache_valid() and self._binary_cache:
                return self._binary_cache

            strategies: List[Tuple[str, Callable[[], Awaitable[Optional[GitBinaryInfo]]]]] = [
                ("configured", self._discover_configured),
                ("which", self._discover_which),
                ("path", self._discover_path),
            ]

            for name, strategy in strategies:
                logger.debug("trying_discovery_strategy", strategy=name)
                try:
                    binary = await strategy()
                except OSError as e:
                    logger.debug("discovery_strategy_failed", strategy=name, error=str(e))
                    continue

                if binary is None:
                    continue

                self._binary_cache = binary
                self._cache_expires = datetime.utcnow() + timedelta(
                    seconds=self.git_config.cache_timeout
                )

                logger.info(
                    "binary_discovered",
                    path=str(binary.path),
                    version=binary.version,
                    method=name
                )

                if self._event_bus is not None:
                    await self._event_bus.emit(
                        "binary_discovered",
                        EventCategory.BINARY,
                        binary.to_dict(),
                        source=self.name
                    )

                return binary

            raise StoreUnavailable(
                f"No usable git executable found (git >= {self.git_config.min_version} required)",
                reason="tool_missing"
            )

    async def _discover_configured(self) -> Optional[GitBinaryInfo]:
        """Use the explicitly configured binary path."""
        if self.git_config.binary_path is None:
            return None
        return await self._create_binary_info(self.git_config.binary_path, "configured")

    async def _discover_which(self) -> Optional[GitBinaryInfo]:
        """Discover using the PATH lookup."""
        found = shutil.which(self.binary_name)
        if not found:
            return None
        return await self._create_binary_info(Path(found), "which")

    async def _discover_path(self) -> Optional[GitBinaryInfo]:
        """Discover in search paths."""
        for path_dir in self._search_paths():
            binary_path = path_dir / self.binary_name
            binary = await self._create_binary_info(binary_path, "path")
            if binary is not None:
                return binary
        return None

    async def _create_binary_info(self, path: Path, method: str) -> Optional[GitBinaryInfo]:
        """Validate a candidate and build its info, or None when unusable."""
        path = path.expanduser()
        if not path.is_file() or not os.access(path, os.X_OK):
            return None

        version_str = await self._get_binary_version(path)
        if version_str is None:
            return None

        if not self._check_version_allowed(version_str):
            logger.warning(
                "version_not_allowed",
                path=str(path),
                version=version_str,
                min_version=self.git_config.min_version
            )
            return None

        return GitBinaryInfo(
            path=path.absolute(),
            version=version_str,
            discovery_method=method
        )

    async def _get_binary_version(self, path: Path) -> Optional[str]:
        """Run ``git --version`` and extract the version number."""
        try:
            process = await asyncio.create_subprocess_exec(
                str(path), "--version",
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE
            )
            stdout, _ = await process.communicate()
        except OSError as e:
            logger.warning("version_check_failed", path=str(path), error=str(e))
            return None

        if process.returncode != 0 or not stdout:
            return None

        # "git version 2.39.3 (Apple Git-146)", "git version 2.41.0.windows.1"
        match = _VERSION_RE.search(stdout.decode(errors="replace"))
        return match.group(1) if match else None

    def _check_version_allowed(self, version_str: str) -> bool:
        """Check the version against the configured minimum."""
        try:
            return version.parse(version_str) >= version.parse(self.git_config.min_version)
        except version.InvalidVersion:
            # If we can't parse, allow it
            return True

    def _is_cache_valid(self) -> bool:
        """Check if cache is still valid."""
        return (
            self._binary_cache is not None and
            self._cache_expires is not None and
            datetime.utcnow() < self._cache_expires
        )

    @handle_errors(StoreUnavailable, reraise=False, log_level=ErrorSeverity.WARNING)
    async def get_binary(self) -> Optional[GitBinaryInfo]:
        """Get cached binary or discover; None when git is unavailable."""
        return await self.discover_binary()

    async def invalidate_cache(self) -> None:
        """Invalidate binary cache."""
        self._binary_cache = None
        self._cache_expires = None
        logger.info("binary_cache_invalidated")


__all__ = [
    'GitBinaryManager',
    'GitBinaryInfo',
    'DEFAULT_SEARCH_PATHS',
]
