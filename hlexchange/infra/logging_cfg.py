"""
Structured logging for the action pipeline.

Every pipeline event is a single JSON object ({"event": ..., **fields}) so
one submission can be followed from encoding to the venue's answer by nonce.

- Rich console handler for humans
- JSON-lines file sink, written by a background thread so signing and
  submission coroutines never block on disk
- Cooldown on repeated transport warnings for the same endpoint
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from rich.logging import RichHandler

from hlexchange.core.json_utils import dumps, loads

LOGGER_NAME = "hlexchange"

# Events that can repeat in bursts while an endpoint is down.
NOISY_EVENTS = frozenset({"transport_error", "meta_fetch_error"})

_STOP = object()


def _as_event(message: str) -> Optional[Dict[str, Any]]:
    """Decode a log_event() message; None for plain text."""
    if not message.startswith("{"):
        return None
    try:
        data = loads(message)
    except ValueError:
        return None
    return data if isinstance(data, dict) and "event" in data else None


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Structured events are merged into the top level so their fields
    (nonce, action_type, stage, ...) can be filtered on directly. Plain
    messages land under "msg".
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        out: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
        }
        event = _as_event(message)
        if event is not None:
            out.update(event)
        else:
            out["msg"] = message
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return dumps(out)


class AsyncQueueHandler(logging.Handler):
    """
    Hands records to a writer thread that owns the target handler.

    emit() never blocks; when the buffer is full the record is dropped and
    counted. close() drains what is queued, then closes the target.
    """

    def __init__(self, target: logging.Handler, capacity: int = 10_000) -> None:
        super().__init__()
        self.target = target
        self._records: queue.Queue = queue.Queue(maxsize=capacity)
        self._dropped = 0
        self._closed = False
        self._writer = threading.Thread(target=self._drain, name="hlexchange-log-writer", daemon=True)
        self._writer.start()
        atexit.register(self.close)

    @property
    def dropped(self) -> int:
        return self._dropped

    def emit(self, record: logging.LogRecord) -> None:
        if self._closed:
            return
        try:
            self._records.put_nowait(record)
        except queue.Full:
            self._dropped += 1

    def _drain(self) -> None:
        while True:
            item = self._records.get()
            if item is _STOP:
                return
            self.target.handle(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # blocking put: the stop marker must not be dropped on a full queue
        self._records.put(_STOP)
        self._writer.join(timeout=2.0)
        if self._dropped:
            print(f"hlexchange: {self._dropped} log records dropped (queue full)", file=sys.stderr)
        self.target.close()
        super().close()


class ThrottledFilter(logging.Filter):
    """
    Lets one noisy event per (event, url) through every cooldown_sec.

    Anything that is not a structured event, or not in `events`, passes.
    """

    def __init__(self, cooldown_sec: float = 30.0, events: Optional[Iterable[str]] = None) -> None:
        super().__init__()
        self.cooldown_sec = cooldown_sec
        self.events = frozenset(events) if events is not None else NOISY_EVENTS
        self._last_emit: Dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        event = _as_event(record.getMessage())
        if event is None or event["event"] not in self.events:
            return True

        key = f"{event['event']}|{event.get('url', '')}"
        now = time.monotonic()
        last = self._last_emit.get(key)
        if last is not None and now - last < self.cooldown_sec:
            return False
        self._last_emit[key] = now
        return True


def _level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def build_logger(
    name: str = LOGGER_NAME,
    level: Union[int, str] = logging.INFO,
    file_path: Optional[str] = None,
    async_file: bool = True,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Configure the package logger. Calling it again only updates levels.

    Args:
        name: Logger name (modules log to "hlexchange")
        level: Level as int or name, e.g. "DEBUG"
        file_path: JSON-lines log file; None for console only
        async_file: Write the file from a background thread
        throttle_warnings: Apply ThrottledFilter on the console
    """
    lvl = _level(level)
    logger = logging.getLogger(name)
    logger.setLevel(lvl)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(lvl)
        return logger

    console = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
    console.setFormatter(logging.Formatter("%(message)s"))
    console.setLevel(lvl)
    if throttle_warnings:
        console.addFilter(ThrottledFilter())
    logger.addHandler(console)

    if file_path:
        sink: logging.Handler = logging.FileHandler(file_path, encoding="utf-8")
        sink.setFormatter(JsonFormatter())
        if async_file:
            sink = AsyncQueueHandler(sink)
        sink.setLevel(lvl)
        logger.addHandler(sink)

    logger.propagate = False
    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """
    Emit one structured event.

        log_event(log, "action_submitted", action_type="order", nonce=nonce)
    """
    if logger.isEnabledFor(level):
        logger.log(level, dumps({"event": event, **fields}))
