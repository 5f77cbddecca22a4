"""Logging setup for the gateway.

Messages carry an upper-case tag, `[STATE] Issued state key ...`. Records
logged with `extra={"path": ..., "status": ...}` (the request log line) keep
those fields in the structured output.

Structured output goes either to stderr (LOG_FORMAT=json) or, when Supabase
is configured, to the `logs` table in batches.
"""

import atexit
import json
import logging
import re
import sys
import threading
from datetime import datetime, timezone
from typing import Optional


TAG_PATTERN = re.compile(r'\[([A-Z_]+)\]\s*(.*)', re.DOTALL)

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def mask(secret: Optional[str], keep: int = 8) -> str:
    """Shorten a token to a loggable prefix."""
    if not secret:
        return "<none>"
    return f"{secret[:keep]}..."


def split_tag(message: str) -> tuple[Optional[str], str]:
    match = TAG_PATTERN.match(message)
    if not match:
        return None, message
    return match.group(1), match.group(2)


def log_row(record: logging.LogRecord, service_name: str) -> dict:
    """Flatten a record into the shape stored in the `logs` table."""
    tag, message = split_tag(record.getMessage())
    row = {
        "created_at": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "service": service_name,
        "level": record.levelname,
        "tag": tag,
        "message": message,
        "logger": record.name,
        "path": getattr(record, "path", None),
        "status": getattr(record, "status", None),
        "exception": None,
    }
    if record.exc_info:
        row["exception"] = logging.Formatter().formatException(record.exc_info)
    return row


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, service_name: str = None):
        super().__init__()
        self.service_name = service_name or "oauth-gate"

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(log_row(record, self.service_name))


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SupabaseHandler(logging.Handler):
    """Ships rows to Supabase in batches.

    A batch goes out when it reaches batch_size, or flush_interval seconds
    after its first row, whichever comes first.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str,
        batch_size: int = 20,
        flush_interval: float = 10.0,
        table: str = "logs",
    ):
        super().__init__()
        self.supabase = supabase_client
        self.service_name = service_name
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.table = table

        self._rows: list[dict] = []
        self._rows_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            row = log_row(record, self.service_name)
        except Exception:
            self.handleError(record)
            return

        batch = None
        with self._rows_lock:
            self._rows.append(row)
            if len(self._rows) >= self.batch_size:
                batch = self._take_rows()
            elif self._timer is None:
                self._timer = threading.Timer(self.flush_interval, self.flush)
                self._timer.daemon = True
                self._timer.start()
        if batch:
            self._send(batch)

    def _take_rows(self) -> list[dict]:
        # Caller holds _rows_lock
        rows, self._rows = self._rows, []
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return rows

    def _send(self, rows: list[dict]):
        try:
            self.supabase.table(self.table).insert(rows).execute()
        except Exception as e:
            # Logging from a log handler would recurse
            print(f"[WARNING] Dropped {len(rows)} log rows: {e}", file=sys.stderr)

    def flush(self):
        with self._rows_lock:
            rows = self._take_rows()
        if rows:
            self._send(rows)

    def close(self):
        self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    service_name: str = None,
    supabase_client=None,
    level: int = logging.INFO,
    json_output: bool = False,
) -> logging.Logger:
    """Configure the root logger once at startup.

    stderr always gets a handler (JSON lines when json_output is set). A
    Supabase handler is added when a client is given; if that fails the
    gateway keeps running with stderr only.
    """
    global _supabase_handler

    service_name = service_name or "oauth-gate"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(JSONFormatter(service_name) if json_output else PlainFormatter())
    root_logger.addHandler(stderr_handler)

    _supabase_handler = None
    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(supabase_client, service_name=service_name)
            root_logger.addHandler(_supabase_handler)
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # Provider calls go through httpx; its request lines would leak query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if _supabase_handler:
        logger.info(f"[STARTUP] Sending logs to Supabase as {service_name}")
    else:
        logger.info("[STARTUP] Logging to stderr only")

    return root_logger
