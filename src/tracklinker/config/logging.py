"""Loguru setup for TrackLinker.

Every module asks for its own logger and tags it with the component it
belongs to:

```python
from tracklinker.config import get_logger

logger = get_logger(__name__).bind(service="odesli")
logger.info("Resolved link", track_id="6rqhFgbb", via="youtubeMusic")
```

Connector methods that talk to remote APIs are wrapped with
``@resilient_operation("youtube_search")`` so failures are logged once, at
the boundary, before they propagate to the orchestrator.
"""

from functools import wraps
from pathlib import Path
import re
import sys
from typing import Any

from loguru import logger

from .settings import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<level>{message}</level>"
)

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")


def redact_tokens(record: dict[str, Any]) -> None:
    """Mask bearer tokens that end up in log messages (e.g. echoed request headers)."""
    record["message"] = _BEARER_PATTERN.sub(r"\1***", record["message"])


def setup_loguru_logger(verbose: bool = False) -> None:
    """Replace Loguru's default sink with a console sink and a JSON log file.

    Args:
        verbose: Log DEBUG to the console and include variable values in tracebacks
    """
    logger.remove()
    logger.configure(
        extra={"service": "tracklinker", "module": "root"},
        patcher=redact_tokens,
    )

    logger.add(
        sink=sys.stderr,
        level="DEBUG" if verbose else settings.logging.console_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=verbose,
        diagnose=verbose,
    )

    log_file = Path(settings.logging.log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        sink=str(log_file),
        level=settings.logging.file_level,
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        serialize=True,
        # Background writer unless debugging needs lines flushed immediately
        enqueue=not settings.logging.real_time_debug,
        catch=True,
    )


def get_logger(name: str) -> Any:
    """Logger bound to ``name``; callers add ``service`` themselves."""
    return logger.bind(module=name, service="tracklinker")


def resilient_operation(operation_name=None):
    """Log failures of an async remote call, then re-raise them unchanged.

    Example:
        >>> @resilient_operation("youtube_create_playlist")
        >>> async def create_playlist(self, name): ...
    """

    def decorator(func):
        name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.opt(exception=e).warning(f"{name} failed: {e!s}")
                raise

        return wrapper

    return decorator
