"""Logging setup for task-calendar-mcp.

Local output is plain text on stderr. When a Supabase client is configured,
records are also shipped in batches to a ``logs`` table as structured rows:

    {service, level, tag, message, client_id, session_id, logged_at, module, extra}

``tag`` comes from the ``[TAG] message`` prefix every module uses.
``client_id`` and ``session_id`` are taken from ``extra=`` on the log call
when the caller has them.
"""

import atexit
import logging
import re
import sys
import threading
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from typing import Optional

SERVICE_NAME = "task-calendar-mcp"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_TAG_RE = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)

# Record attributes promoted to their own columns
CONTEXT_FIELDS = ("client_id", "session_id")


def split_tag(message: str) -> tuple[Optional[str], str]:
    """``"[TOKEN] issued"`` -> ``("TOKEN", "issued")``."""
    match = _TAG_RE.match(message)
    if match is None:
        return None, message
    return match.group(1), match.group(2)


class JSONFormatter(logging.Formatter):
    """Turns a record into a row dict for the ``logs`` table."""

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> dict:
        tag, message = split_tag(record.getMessage())
        row = {
            "service": self.service_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "logged_at": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "module": record.module,
            "extra": {
                "logger": record.name,
                "function": record.funcName,
                "line": record.lineno,
            },
        }
        for name in CONTEXT_FIELDS:
            row[name] = getattr(record, name, None)

        if record.exc_info:
            row["extra"]["exception"] = self.formatException(record.exc_info)
        return row


class PlainFormatter(logging.Formatter):
    """Human-readable stderr lines."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class SupabaseHandler(logging.Handler):
    """Ships formatted rows to Supabase in batches.

    Rows are queued by ``emit`` and sent when ``batch_size`` rows are waiting
    or every ``flush_interval`` seconds from a daemon thread. When the queue
    is full new rows are dropped and counted; the count is reported on the
    next successful send.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str = SERVICE_NAME,
        table: str = "logs",
        batch_size: int = 20,
        flush_interval: float = 10.0,
        max_queue: int = 10_000,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.dropped = 0
        self.setFormatter(JSONFormatter(service_name))

        self._queue: Queue = Queue(maxsize=max_queue)
        self._send_lock = threading.RLock()
        self._stopped = threading.Event()
        self._worker = threading.Thread(target=self._run, name="supabase-log-shipper", daemon=True)
        self._worker.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            self._queue.put_nowait(self.format(record))
        except Full:
            self.dropped += 1
            return
        except Exception:
            self.handleError(record)
            return

        if self._queue.qsize() >= self.batch_size:
            self.flush()

    def format(self, record: logging.LogRecord) -> dict:
        return self.formatter.format(record)

    def _run(self):
        while not self._stopped.wait(self.flush_interval):
            self.flush()

    def _take_batch(self) -> list[dict]:
        rows = []
        while len(rows) < self.batch_size * 2:
            try:
                rows.append(self._queue.get_nowait())
            except Empty:
                break
        return rows

    def flush(self):
        """Send one batch of queued rows."""
        with self._send_lock:
            rows = self._take_batch()
            if not rows:
                return
            try:
                self.supabase.table(self.table).insert(rows).execute()
            except Exception as e:
                # stderr, not logging: this handler is on the root logger
                print(f"[WARNING] Failed to send {len(rows)} log rows to Supabase: {e}", file=sys.stderr)
                return
            if self.dropped:
                print(f"[WARNING] {self.dropped} log rows dropped (queue full)", file=sys.stderr)
                self.dropped = 0

    def close(self):
        """Stop the shipper thread and send everything still queued."""
        self._stopped.set()
        while not self._queue.empty():
            before = self._queue.qsize()
            self.flush()
            if self._queue.qsize() >= before:
                break
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    service_name: str = SERVICE_NAME,
    level: str = "info",
    supabase_client=None,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        service_name: Value of the ``service`` column in shipped rows.
        level: One of debug/info/warning/error; unknown names mean info.
        supabase_client: When given, rows at INFO and above are shipped.

    Returns:
        The root logger.
    """
    global _supabase_handler

    log_level = LEVELS.get(level.lower(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(log_level)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    if _supabase_handler is not None:
        _supabase_handler.close()
        _supabase_handler = None

    if supabase_client is not None:
        _supabase_handler = SupabaseHandler(supabase_client, service_name=service_name)
        _supabase_handler.setLevel(max(log_level, logging.INFO))
        root_logger.addHandler(_supabase_handler)

    # Supabase talks through httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if _supabase_handler is not None:
        logger.info(f"[STARTUP] Shipping logs to Supabase as service: {service_name}")
    else:
        logger.info("[STARTUP] Supabase log shipping disabled")
    return root_logger


def flush_logs():
    """Send any rows still queued for Supabase."""
    if _supabase_handler is not None:
        _supabase_handler.flush()
