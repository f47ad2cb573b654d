# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Structured lifecycle logging for :mod:`jailfs`.

Library modules emit DEBUG records shaped like::

    logger.debug(
        "file_stream.source_opened",
        event="file_stream.source_opened",
        context={"path": path},
    )

Every record carries an ``event`` name and a ``context`` mapping that
starts from the component the logger was created for. Applications that
want to see them call :func:`configure_logging` or attach their own
handlers to the ``jailfs`` logger.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any, cast, override

__all__ = [
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

_LOG_LEVEL_ENV = "JAILFS_LOG_LEVEL"
_LOG_FORMAT_ENV = "JAILFS_LOG_FORMAT"
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(event)s] %(message)s %(context)s"


class StructuredLogger(logging.LoggerAdapter[logging.Logger]):
    """Adapter turning ``event=`` and ``context=`` keywords into record fields."""

    def __init__(
        self, logger: logging.Logger, context: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(logger, dict(context or {}))

    @override
    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        event = kwargs.pop("event", None)
        if not isinstance(event, str):
            raise TypeError("Structured logs require an 'event' name.")
        context = kwargs.pop("context", None)
        if context is None:
            context = {}
        elif not isinstance(context, Mapping):
            raise TypeError("context must be a mapping when provided.")
        component = cast(Mapping[str, object], self.extra)
        kwargs["extra"] = {"event": event, "context": {**component, **context}}
        return msg, kwargs


def get_logger(
    name: str, *, context: Mapping[str, object] | None = None
) -> StructuredLogger:
    """Return a :class:`StructuredLogger` for ``name`` seeded with ``context``."""
    return StructuredLogger(logging.getLogger(name), context)


class _EventDefaults(logging.Filter):
    """Give records from plain loggers the fields the text format expects."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "event"):
            record.event = "-"
        if not hasattr(record, "context"):
            record.context = {}
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "time": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None),
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=repr, separators=(",", ":"))


def configure_logging(
    *,
    level: int | str | None = None,
    json_mode: bool | None = None,
    env: Mapping[str, str] | None = None,
    force: bool = False,
) -> None:
    """Install a stderr handler on the root logger.

    ``level`` falls back to ``JAILFS_LOG_LEVEL`` and then INFO; ``json_mode``
    falls back to ``JAILFS_LOG_FORMAT=json``. When the root logger already
    has handlers only its level is changed, unless ``force`` is set.
    """
    env = os.environ if env is None else env
    resolved_level = _coerce_level(level or env.get(_LOG_LEVEL_ENV) or logging.INFO)
    if json_mode is None:
        json_mode = env.get(_LOG_FORMAT_ENV, "").strip().lower() == "json"

    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(resolved_level)
        return

    formatter: dict[str, object] = (
        {"()": _JsonFormatter} if json_mode else {"format": _TEXT_FORMAT}
    )
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"jailfs": formatter},
            "filters": {"event_defaults": {"()": _EventDefaults}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "jailfs",
                    "filters": ["event_defaults"],
                }
            },
            "root": {"handlers": ["stderr"], "level": resolved_level},
        }
    )


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelNamesMapping().get(level.strip().upper())
    if resolved is None:
        raise TypeError(f"Unknown log level: {level!r}")
    return resolved
