"""Channel logging via loguru.

The package logs under the ``sshchannel`` namespace, which stays disabled
until a transport asks for it. Transports take ``logging=True`` or a
LogConfig, attach sinks when constructed and detach them on shutdown:

    transport = AsyncSSHTransport(conn, logging=LogConfig(level="DEBUG"))
    ...
    transport.shutdown()

Per-event receive records and window grants are logged at TRACE and only
reach a sink when ``LogConfig.events`` is set. Several transports can log
at once; the namespace is disabled again when the last one shuts down.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

NAMESPACE = "sshchannel"

logger.disable(NAMESPACE)

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]
type LoggingOption = bool | LogConfig

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{module}</magenta> - <level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} - {message}"

_active_sessions = 0


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where channel activity is logged.

    Attributes:
        level: Minimum level for the console sink.
        file: Optional log file; it receives DEBUG and above.
        console: Log to stderr.
        events: Also emit TRACE records for every received event and
            window grant. Noisy on busy channels.
        rotation: File rotation policy (e.g. "50 MB", "1 day").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    events: bool = False
    rotation: str = "50 MB"
    retention: int = 10


def resolve(option: LoggingOption | None) -> LogConfig | None:
    """Turn a transport's ``logging=`` argument into a LogConfig (or None)."""
    match option:
        case LogConfig():
            return option
        case True:
            return LogConfig()
        case _:
            return None


def _channel_filter(config: LogConfig):
    def accept(record: Record) -> bool:
        if not (record["name"] or "").startswith(NAMESPACE):
            return False
        return config.events or record["level"].name != "TRACE"

    return accept


def enable_logging(config: LogConfig | None = None) -> list[int]:
    """Attach sinks for channel logging.

    Returns:
        Handler ids, to be passed to ``disable_logging``.
    """
    global _active_sessions

    config = config or LogConfig()
    accept = _channel_filter(config)
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level="TRACE" if config.events else config.level,
                format=CONSOLE_FORMAT,
                colorize=True,
                filter=accept,
            )
        )

    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level="TRACE" if config.events else "DEBUG",
                format=FILE_FORMAT,
                rotation=config.rotation,
                retention=config.retention,
                diagnose=False,
                enqueue=True,
                filter=accept,
            )
        )

    _active_sessions += 1
    logger.enable(NAMESPACE)
    return handler_ids


def disable_logging(handler_ids: list[int]) -> None:
    """Detach sinks added by ``enable_logging``.

    The namespace is disabled once every enabled session has been torn down.
    """
    global _active_sessions

    for hid in handler_ids:
        logger.remove(hid)

    _active_sessions = max(0, _active_sessions - 1)
    if _active_sessions == 0:
        logger.disable(NAMESPACE)
