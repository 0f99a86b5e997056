import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

# Records logged outside a session scope carry this placeholder.
NO_SESSION = "-"

_PACKAGE = "helix_workbench"

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[session_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session_id]} | "
    "{name}:{function}:{line} - {message}"
)


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    """stderr sink. Restricted to this package unless ``all_modules`` is set."""

    def __init__(self, all_modules: bool = False):
        self._all_modules = all_modules

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format=_CONSOLE_FORMAT,
            filter=None if self._all_modules else _PACKAGE,
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "helix-workbench.log",
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
        )

    def describe(self, level: str) -> str:
        kind = "json" if self._serialize else "text"
        return f"file ({self._path}, {kind}, {level})"


class SessionAuditLogConsumer(FileLogConsumer):
    """JSON-lines record of session-scoped events only: loads, switches, stream outcomes."""

    def __init__(self, path: str = "helix-sessions.jsonl", rotation: str = "10 MB", retention: int = 3):
        super().__init__(path=path, rotation=rotation, retention=retention, serialize=True)

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            rotation=self._rotation,
            retention=self._retention,
            serialize=True,
            filter=lambda record: record["extra"].get("session_id", NO_SESSION) != NO_SESSION,
        )

    def describe(self, level: str) -> str:
        return f"session audit ({self._path}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "session_audit": SessionAuditLogConsumer,
}

# Console stays at WARNING by default so log lines do not interleave with streamed tokens.
_DEFAULT_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def _resolve_level(name: Any, fallback: str) -> str:
    candidate = str(name or fallback).upper()
    try:
        logger.level(candidate)
    except ValueError:
        logger.warning(f"Unknown log level {name!r}; using {fallback}")
        return fallback
    return candidate


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any] | str] | None = None,
) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    Each entry is either a consumer type name or a dict with ``type``, an
    optional ``level`` and consumer-specific options. Returns one description
    per registered consumer.
    """
    logger.remove()
    logger.configure(extra={"session_id": NO_SESSION})

    default_level = _resolve_level(level, "INFO")
    descriptions: list[str] = []

    for entry in _DEFAULT_CONSUMERS if consumers is None else consumers:
        config = {"type": entry} if isinstance(entry, str) else dict(entry)
        sink_type = config.pop("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        sink_level = _resolve_level(config.pop("level", None), default_level)
        try:
            consumer = cls(**config)
        except TypeError as ex:
            logger.warning(f"Invalid options for {sink_type} log consumer: {ex}")
            continue
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
