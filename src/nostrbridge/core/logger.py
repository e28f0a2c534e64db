"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so every component logs a
short event name plus keyword fields:

```python
logger = Logger("sync")
logger.info("event_skipped", event_id="ab12...", reason="reply")
# info sync event_skipped event_id=ab12... reason=reply
```

Components take a [Logger][nostrbridge.core.logger.Logger] in their
constructor (defaulting to one named after the component), so tests can pass
a ``MagicMock`` and assert on emitted events, or use ``caplog`` and read
``record.structured_kv``.

[bind()][nostrbridge.core.logger.Logger.bind] returns a child logger that
adds fixed context fields (for example the relay URL) to every call.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values that are
    empty or contain whitespace, equals signs, or quotes are escaped and
    wrapped in double quotes.

    Returns:
        Formatted string, e.g. ``' url=wss://nos.lol reason="timed out"'``,
        or an empty string if *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for key, value in kwargs.items():
        text = _truncate(str(value), max_value_length)
        if not text or any(ch in text for ch in ' ="\''):
            escaped = text.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={text}")

    return prefix + " ".join(parts)


def _truncate(text: str, max_length: int | None) -> str:
    if max_length and len(text) > max_length:
        return text[:max_length] + f"...<truncated {len(text) - max_length} chars>"
    return text


class StructuredFormatter(logging.Formatter):
    """Formats log records as ``level name message key=value ...``.

    Reads structured fields from the ``structured_kv`` extra attached by
    [Logger][nostrbridge.core.logger.Logger]. Records from plain
    ``logging.getLogger()`` calls are emitted with the same prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    Args:
        name: Logger name, typically the component name. Maps to
            ``logging.getLogger(name)``.
        json_output: Emit one JSON object per line instead of key=value.
        max_value_length: Truncate individual values beyond this length.
        context: Fields added to every record (see
            [bind()][nostrbridge.core.logger.Logger.bind]).
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger with the same settings and extra context fields."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        if self._json_output:
            payload = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self._logger.name,
                "message": msg,
                **fields,
            }
            self._logger.log(level, json.dumps(payload, default=str), exc_info=exc_info)
            return
        extra = {
            "structured_kv": {
                key: _truncate(str(value), self._max_value_length)
                if isinstance(value, str)
                else value
                for key, value in fields.items()
            }
        }
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


def configure_logging(level: str = "INFO") -> None:
    """Install a [StructuredFormatter][nostrbridge.core.logger.StructuredFormatter] on the root logger.

    Replaces existing root handlers so repeated calls (tests, CLI re-entry)
    do not duplicate output.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))
