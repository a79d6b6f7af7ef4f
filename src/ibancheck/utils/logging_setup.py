from __future__ import annotations

import json
import logging
import os
import socket
import threading
import traceback
from collections import deque
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict

from ibancheck.utils.request_context import get_request_fields

_FALSY = {"0", "false", "no", "off"}
_TRUTHY = {"1", "true", "yes", "on"}


class LineCappedFileHandler(logging.Handler):
    """
    Single log file with "ring buffer" behavior: appends normally and, once it
    grows beyond max_lines plus a small slack, keeps only the last max_lines.
    """

    def __init__(self, filename: Path, *, max_lines: int = 5000, encoding: str = "utf-8"):
        super().__init__()
        self._filename = Path(filename)
        self._encoding = encoding
        self.max_lines = int(max_lines)
        # trim every N extra lines to avoid rewriting on every emit
        self._trim_chunk = max(10, self.max_lines // 100)
        self._mtx = threading.RLock()
        self._stream = None
        self._line_count = 0
        self._open_and_count()

    def _open_and_count(self) -> None:
        self._filename.parent.mkdir(parents=True, exist_ok=True)
        if self._filename.exists():
            with open(self._filename, "r", encoding=self._encoding, errors="ignore") as rf:
                self._line_count = sum(1 for _ in rf)
        else:
            self._line_count = 0
        self._stream = open(self._filename, "a", encoding=self._encoding, errors="backslashreplace")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if not msg.endswith("\n"):
                msg += "\n"
            with self._mtx:
                if self._stream is None:
                    self._open_and_count()
                self._stream.write(msg)
                self._stream.flush()
                self._line_count += msg.count("\n")
                if self._line_count >= self.max_lines + self._trim_chunk:
                    self._trim_to_last_max_lines()
        except Exception:
            self.handleError(record)

    def _trim_to_last_max_lines(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        try:
            with open(self._filename, "r", encoding=self._encoding, errors="ignore") as rf:
                tail = deque(rf, maxlen=self.max_lines)
            with open(self._filename, "w", encoding=self._encoding, errors="backslashreplace") as wf:
                wf.writelines(tail)
            self._line_count = len(tail)
        finally:
            # reopen for append
            self._stream = open(self._filename, "a", encoding=self._encoding, errors="backslashreplace")

    def close(self) -> None:
        with self._mtx:
            if self._stream is not None:
                self._stream.close()
            self._stream = None
        super().close()


_ROOT_CONFIGURED = False
_ROOT_CONFIG_LOCK = threading.Lock()


class RequestContextFilter(logging.Filter):
    """Stamps every record with host name and the current request context."""

    def __init__(self) -> None:
        super().__init__()
        self._hostname = socket.gethostname()

    def filter(self, record: logging.LogRecord) -> bool:
        record.hostname = self._hostname
        record.request = get_request_fields()
        record.correlation_id = record.request.get("correlation_id") or "-"
        return True


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, for machine reading of the event log."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "funcName": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "threadName": record.threadName,
            "hostname": getattr(record, "hostname", None),
            "event_name": getattr(record, "event_name", None),
            "request": getattr(record, "request", None) or get_request_fields(),
        }

        extra_obj = getattr(record, "extra_payload", None)
        if extra_obj:
            payload["extra"] = extra_obj

        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, ensure_ascii=False, default=str)


def _env_flag(name: str, default: bool) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default


def _compute_max_lines() -> int:
    """IBANCHECK_LOG_MAX_LINES when it is a positive integer, otherwise 5000."""
    env_max = os.environ.get("IBANCHECK_LOG_MAX_LINES")
    if env_max:
        try:
            val = int(env_max)
            if val > 0:
                return val
        except ValueError:
            pass
    return 5000


def setup_logging(log_dir: Path, name: str = "ibancheck") -> logging.Logger:
    """
    Configures the root logger once per process:
      <log_dir>/ibancheck.log            text lines, capped ring file
      <log_dir>/ibancheck_events.jsonl   one JSON object per record

    Console output is off by default. Enable via IBANCHECK_LOG_CONSOLE=1.
    """
    global _ROOT_CONFIGURED

    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    max_lines = _compute_max_lines()
    detail = _env_flag("IBANCHECK_LOG_DETAIL", True)

    with _ROOT_CONFIG_LOCK:
        if not _ROOT_CONFIGURED:
            root = logging.getLogger()
            root.setLevel(logging.DEBUG)

            fmt = logging.Formatter(
                "%(asctime)s.%(msecs)03d %(levelname)s "
                "pid=%(process)d tid=%(threadName)s corr=%(correlation_id)s "
                "[%(name)s:%(funcName)s:%(lineno)d] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            context_filter = RequestContextFilter()

            fh = LineCappedFileHandler(log_dir / "ibancheck.log", max_lines=max_lines)
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(fmt)
            fh.addFilter(context_filter)
            root.addHandler(fh)

            fh_json = LineCappedFileHandler(log_dir / "ibancheck_events.jsonl", max_lines=max_lines * 2)
            fh_json.setLevel(logging.DEBUG)
            fh_json.setFormatter(JsonLineFormatter())
            fh_json.addFilter(context_filter)
            root.addHandler(fh_json)

            if _env_flag("IBANCHECK_LOG_CONSOLE", False):
                ch = logging.StreamHandler()
                ch.setLevel(logging.INFO)
                ch.setFormatter(fmt)
                ch.addFilter(context_filter)
                root.addHandler(ch)

            setattr(root, "_ibancheck_log_detail", detail)
            _ROOT_CONFIGURED = True

    # let everything propagate into the root handlers
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    logger.debug(
        "Logging initialized: log_dir=%s pid=%s max_lines=%s detail=%s",
        log_dir,
        os.getpid(),
        max_lines,
        int(detail),
        extra={"event_name": "logging.start"},
    )
    return logger


def log_event(logger: logging.Logger, event_name: str, message: str, **extra: Any) -> None:
    """
    Structured log helper: attaches event_name and extra_payload and appends a
    readable key=value suffix to the text message.
    """
    extra_payload: Dict[str, Any] = extra or {}
    detail_enabled = bool(getattr(logging.getLogger(), "_ibancheck_log_detail", True))

    if not detail_enabled:
        # without detail, drop values whose repr is large (e.g. whole batches)
        extra_payload = {k: v for k, v in extra_payload.items() if len(repr(v)) <= 400}

    suffix = ""
    if extra_payload:
        suffix = " | " + " ".join(f"{k}={extra_payload[k]!r}" for k in sorted(extra_payload))
    logger.info(
        f"{message}{suffix}",
        extra={"event_name": event_name, "extra_payload": extra_payload},
    )
