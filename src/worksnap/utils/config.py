"""
Configuration for worksnap.

``WorksnapConfig`` is assembled from prioritised sources: in-memory dicts
and ``.json``/``.yaml``/``.toml``/``.env`` files, deep-merged lowest
priority first, then ``WORKSNAP_*`` environment variables on top. The
result is validated by pydantic. With ``enable_hot_reload`` a watchdog
observer reloads when a source file changes.
"""

import os
import json
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Union, Callable
import toml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileSystemEvent
import asyncio

from .logging import get_logger
from .errors import ConfigurationError
from .notifications import EventBus, get_event_bus, EventCategory, EventPriority


logger = get_logger("worksnap.config")

ENV_PREFIX = "WORKSNAP_"

# Nested sections; ``SNAPSHOT_DATA_ROOT`` splits into snapshot.data_root.
_SECTIONS = ("snapshot", "git", "logging")

# Sources above this priority must load, or ``load`` fails.
CRITICAL_PRIORITY = 100


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"
    directory: Path = Field(default_factory=lambda: Path.home() / ".worksnap" / "logs")
    max_size: int = 10 * 1024 * 1024
    backup_count: int = 10
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v not in ("json", "console"):
            raise ValueError(f"Invalid log format: {v}")
        return v


class GitBinaryConfig(BaseModel):
    """Where to look for git and which versions are acceptable."""
    binary_path: Optional[Path] = None
    search_paths: List[Path] = Field(default_factory=list)
    min_version: str = "2.20.0"
    cache_timeout: int = 3600

    @field_validator('search_paths', mode='before')
    @classmethod
    def split_search_paths(cls, v):
        """Accept a single os.pathsep-separated string as well as a list."""
        if isinstance(v, (str, Path)):
            return [Path(p.strip()) for p in str(v).split(os.pathsep) if p.strip()]
        if isinstance(v, (list, tuple)):
            return [Path(p) for p in v]
        return v

    @field_validator('min_version', mode='before')
    @classmethod
    def coerce_min_version(cls, v):
        # Env values such as "2.30" arrive as floats
        return str(v)


class SnapshotConfig(BaseModel):
    """Snapshot engine configuration."""
    enabled: bool = True
    data_root: Path = Field(default_factory=lambda: Path.home() / ".worksnap" / "data")
    require_vcs: bool = True
    command_timeout: Optional[float] = None

    @field_validator('data_root')
    @classmethod
    def absolute_data_root(cls, v):
        return Path(v).expanduser().absolute()

    @field_validator('command_timeout')
    @classmethod
    def positive_timeout(cls, v):
        if v is not None and v <= 0:
            raise ValueError("command_timeout must be positive")
        return v


class WorksnapConfig(BaseModel):
    """Main worksnap configuration."""
    app_name: str = "worksnap"
    debug: bool = False

    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    git: GitBinaryConfig = Field(default_factory=GitBinaryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    enable_hot_reload: bool = False
    config_paths: List[Path] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)


def coerce_env_value(value: str) -> Any:
    """
    Turn an environment string into bool, list or Path where it looks like one.

    Numbers stay strings; the models convert them by field type, so a
    version such as "2.30" keeps its trailing zero.
    """
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False

    if "," in value:
        return [part.strip() for part in value.split(",")]
    if value.startswith(("/", "~")):
        return Path(value).expanduser()
    return value


def place_env_key(target: Dict[str, Any], key: str, value: Any) -> None:
    """Put ``SECTION_FIELD`` into ``target[section][field]``; other keys stay top-level."""
    key = key.lower()
    section, _, rest = key.partition("_")
    if section in _SECTIONS and rest:
        target.setdefault(section, {})[rest] = value
    else:
        target[key] = value


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``update`` into a copy of ``base``; nested dicts merge, everything else is replaced."""
    merged = dict(base)
    for key, value in update.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_env_file(text: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if key.upper().startswith(ENV_PREFIX):
            key = key[len(ENV_PREFIX):]
        place_env_key(result, key, coerce_env_value(value.strip("'\"")))
    return result


_READERS: Dict[str, Callable[[str], Dict[str, Any]]] = {
    "json": json.loads,
    "yaml": lambda text: yaml.safe_load(text) or {},
    "toml": toml.loads,
    "env": _read_env_file,
}


def source_type_for(path: Path) -> str:
    """Reader name for a configuration file, from its suffix."""
    suffix = path.suffix.lower()
    if path.name == ".env" or suffix == ".env":
        return "env"
    kind = {".json": "json", ".yaml": "yaml", ".yml": "yaml", ".toml": "toml"}.get(suffix)
    if kind is None:
        raise ConfigurationError(f"Unknown config file type: {path.name}")
    return kind


@dataclass
class ConfigSource:
    """A dict or a file contributing to the configuration."""
    priority: int = 0
    path: Optional[Path] = None
    data: Dict[str, Any] = field(default_factory=dict)
    source_type: str = "dict"

    @property
    def label(self) -> str:
        return str(self.path) if self.path else "dict"

    def read(self) -> Dict[str, Any]:
        if self.path is None:
            return self.data
        if not self.path.exists():
            logger.warning("config_file_not_found", path=str(self.path))
            return {}
        return _READERS[self.source_type](self.path.read_text(encoding="utf-8"))


class ConfigLoader:
    """Merges configuration sources into a validated ``WorksnapConfig``."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self._sources: List[ConfigSource] = []
        self._config: Optional[WorksnapConfig] = None
        self._observers: List[Observer] = []
        self._callbacks: List[Callable[[WorksnapConfig], Any]] = []
        self._lock = asyncio.Lock()
        self._event_bus = event_bus
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def _bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add a configuration source.

        Args:
            source: File path or dict
            priority: Higher priorities override lower ones
            source_type: Reader for a file (detected from the suffix if None)

        Raises:
            ConfigurationError: the file type is not recognised
        """
        if isinstance(source, dict):
            entry = ConfigSource(priority=priority, data=source)
        else:
            path = Path(source)
            entry = ConfigSource(
                priority=priority,
                path=path,
                source_type=source_type or source_type_for(path)
            )
            if entry.source_type not in _READERS:
                raise ConfigurationError(f"Unknown source type: {entry.source_type}")

        self._sources.append(entry)
        self._sources.sort(key=lambda s: s.priority)

    def _merged(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for source in self._sources:
            try:
                merged = deep_merge(merged, source.read())
            except Exception as e:
                logger.error("failed_to_load_source", source=source.label, error=str(e))
                if source.priority > CRITICAL_PRIORITY:
                    raise ConfigurationError(
                        f"Failed to load critical config source {source.label}: {e}",
                        cause=e
                    ) from e

        from_env: Dict[str, Any] = {}
        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX):
                place_env_key(from_env, key[len(ENV_PREFIX):], coerce_env_value(value))
        return deep_merge(merged, from_env)

    async def load(self) -> WorksnapConfig:
        """
        Load and validate the configuration from every source.

        Raises:
            ConfigurationError: a critical source failed, or validation
                failed (every failing field is listed)
        """
        async with self._lock:
            try:
                self._config = WorksnapConfig(**self._merged())
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                    for error in e.errors()
                )
                raise ConfigurationError(f"Configuration validation failed: {problems}") from e

            logger.info("configuration_loaded", sources=len(self._sources))
            await self._bus.emit(
                "config_loaded",
                EventCategory.CONFIG,
                {"config": self._config.model_dump(mode="json")},
                priority=EventPriority.HIGH
            )

            if self._config.enable_hot_reload and not self._observers:
                self._watch_sources()

            return self._config

    def _watch_sources(self) -> None:
        self._loop = asyncio.get_running_loop()
        for source in self._sources:
            if source.path is None or not source.path.exists():
                continue
            observer = Observer()
            observer.schedule(ConfigFileHandler(self, source.path), str(source.path.parent), recursive=False)
            observer.start()
            self._observers.append(observer)
            logger.info("hot_reload_enabled", path=str(source.path))

    def register_callback(self, callback: Callable[[WorksnapConfig], Any]) -> None:
        """Call ``callback(new_config)`` after a reload that changed the configuration."""
        self._callbacks.append(callback)

    async def reload(self) -> None:
        """Reload; callbacks and ``config_changed`` fire only when the result differs."""
        previous = self._config
        try:
            current = await self.load()
        except ConfigurationError as e:
            logger.error("reload_failed", error=str(e))
            return

        if previous == current:
            return
        logger.info("configuration_changed")

        for callback in self._callbacks:
            try:
                result = callback(current)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    "callback_error",
                    callback=getattr(callback, '__name__', repr(callback)),
                    error=str(e)
                )

        await self._bus.emit(
            "config_changed",
            EventCategory.CONFIG,
            {
                "old_config": previous.model_dump(mode="json") if previous else None,
                "new_config": current.model_dump(mode="json")
            },
            priority=EventPriority.HIGH
        )

    def schedule_reload(self) -> None:
        """Reload from a non-event-loop thread (the watchdog observer)."""
        if self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(self.reload(), self._loop)

    def get_config(self) -> WorksnapConfig:
        """
        Current configuration.

        Raises:
            ConfigurationError: nothing has been loaded yet
        """
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config

    def shutdown(self) -> None:
        """Stop file watchers."""
        for observer in self._observers:
            observer.stop()
            observer.join()
        self._observers.clear()


class ConfigFileHandler(FileSystemEventHandler):
    """Schedules a reload when one watched file is modified."""

    def __init__(self, loader: ConfigLoader, path: Path):
        self.loader = loader
        self.path = path

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and Path(str(event.src_path)) == self.path:
            logger.info("config_file_modified", path=str(event.src_path))
            self.loader.schedule_reload()


_config_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Process-wide configuration loader."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


async def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> WorksnapConfig:
    """
    Load configuration from the standard locations.

    ``~/.worksnap/config.{yaml,json}`` and ``./worksnap.{yaml,json}`` are
    read when present, then ``config_paths`` in order, then
    ``extra_config``; environment variables override all of them.
    """
    loader = get_config_loader()

    for path in (
        Path.home() / ".worksnap" / "config.yaml",
        Path.home() / ".worksnap" / "config.json",
        Path("worksnap.yaml"),
        Path("worksnap.json"),
    ):
        if path.exists():
            loader.add_source(path, priority=10)

    for offset, path in enumerate(config_paths or []):
        loader.add_source(path, priority=20 + offset)

    if extra_config:
        loader.add_source(extra_config, priority=CRITICAL_PRIORITY)

    return await loader.load()


def get_config() -> WorksnapConfig:
    """Current configuration of the process-wide loader."""
    return get_config_loader().get_config()


__all__ = [
    'WorksnapConfig',
    'SnapshotConfig',
    'GitBinaryConfig',
    'LoggingConfig',
    'ConfigLoader',
    'get_config_loader',
    'load_config',
    'get_config',
]
