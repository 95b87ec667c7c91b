"""
Core logging infrastructure for the transcript extractor.

Provides single-line JSON logging with per-session context, rate limiting,
and third-party library noise suppression.
"""

import json
import logging
import threading
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Set
from collections import defaultdict


# Session context follows asyncio tasks, not threads
_session_ctx: ContextVar[Optional[Dict[str, str]]] = ContextVar("session_ctx", default=None)


def set_session_ctx(session_id: str = None, video_id: str = None):
    """
    Set context for session correlation.

    Args:
        session_id: Extraction session identifier
        video_id: YouTube video ID being extracted
    """
    context = dict(_session_ctx.get() or {})

    if session_id is not None:
        context['session_id'] = session_id
    if video_id is not None:
        context['video_id'] = video_id

    _session_ctx.set(context)


def clear_session_ctx():
    """Clear session context."""
    _session_ctx.set(None)


def get_session_ctx() -> Dict[str, str]:
    """Get current session context."""
    return dict(_session_ctx.get() or {})


class JsonFormatter(logging.Formatter):
    """
    JSON formatter with standardized field order and context injection.

    Produces single-line JSON with stable schema:
    ts, lvl, session_id, video_id, stage, event, outcome, dur_ms, detail
    """

    STANDARD_FIELDS = {
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'taskName', 'getMessage',
        'exc_info', 'exc_text', 'stack_info', 'ts', 'lvl', 'session_id', 'video_id',
        'stage', 'event', 'outcome', 'dur_ms', 'detail', 'strategy', 'state'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as single-line JSON."""
        try:
            # Millisecond precision timestamp
            dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
            timestamp = dt.strftime('%Y-%m-%dT%H:%M:%S') + f'.{int(dt.microsecond / 1000):03d}Z'

            log_data = {
                'ts': timestamp,
                'lvl': record.levelname
            }

            context = get_session_ctx()
            if 'session_id' in context:
                log_data['session_id'] = context['session_id']
            if 'video_id' in context:
                log_data['video_id'] = context['video_id']

            # Record attributes in stable order; explicit fields override context
            for field in ['session_id', 'video_id', 'stage', 'event', 'outcome', 'dur_ms', 'detail']:
                if getattr(record, field, None) is not None:
                    log_data[field] = getattr(record, field)

            for field in ['strategy', 'state']:
                if getattr(record, field, None) is not None:
                    log_data[field] = getattr(record, field)

            # Any other extra fields passed via logger.info(extra=...)
            for attr_name, attr_value in record.__dict__.items():
                if (not attr_name.startswith('_') and
                        attr_name not in self.STANDARD_FIELDS and
                        attr_value is not None and
                        not callable(attr_value)):
                    log_data[attr_name] = attr_value

            if 'detail' not in log_data and record.getMessage():
                log_data['detail'] = record.getMessage()

            if record.exc_info and record.exc_info[0] is not None:
                log_data['exc_type'] = record.exc_info[0].__name__

            return json.dumps(log_data, separators=(',', ':'), ensure_ascii=False, default=str)

        except Exception:
            # Fallback to basic formatting on any error
            return json.dumps({
                'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'lvl': record.levelname,
                'detail': str(record.msg),
            })


class RateLimitFilter(logging.Filter):
    """
    Rate limiting filter to prevent log spam.

    Limits messages to `per_key` per key per sliding window and emits a
    single suppression marker when the limit is exceeded. Structured events
    are keyed by event name, so a chatty poll loop cannot flood the log.
    """

    def __init__(self, per_key: int = 20, window_sec: int = 60):
        super().__init__()
        self.per_key = per_key
        self.window_sec = window_sec
        self.counts: Dict[str, list] = defaultdict(list)
        self.suppressed: Set[str] = set()
        self._lock = threading.Lock()

    def _get_message_key(self, record: logging.LogRecord) -> str:
        event = getattr(record, 'event', None)
        if event:
            return f"{record.levelname}:evt:{event}"
        return f"{record.levelname}:{record.getMessage()[:100]}"

    def _cleanup_old_entries(self, key: str, now: float):
        cutoff = now - self.window_sec
        self.counts[key] = [ts for ts in self.counts[key] if ts > cutoff]

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Filter log record based on rate limits.

        Returns:
            True if record should be logged, False otherwise
        """
        try:
            key = self._get_message_key(record)
            now = time.time()

            with self._lock:
                self._cleanup_old_entries(key, now)

                if len(self.counts[key]) < self.per_key:
                    self.counts[key].append(now)
                    self.suppressed.discard(key)
                    return True

                if key not in self.suppressed:
                    # First time over the limit in this window
                    self.suppressed.add(key)
                    record.msg = f"{record.getMessage()} [suppressed]"
                    record.args = ()
                    return True

                return False

        except Exception:
            return True


def configure_logging(log_level: str = "INFO", use_json: bool = True) -> logging.Logger:
    """
    Configure application logging with JSON formatting and noise suppression.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Whether to use JSON formatting (True) or basic formatting (False)

    Returns:
        Configured root logger
    """
    try:
        root_logger = logging.getLogger()

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        handler = logging.StreamHandler()

        if use_json:
            formatter = JsonFormatter()
            handler.addFilter(RateLimitFilter())
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )

        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

        _suppress_library_noise()

        return root_logger

    except Exception as e:
        logging.basicConfig(
            level=getattr(logging, log_level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        logging.error(f"Failed to configure structured logging: {e}")
        return logging.getLogger()


def _suppress_library_noise():
    """Suppress verbose logging from third-party libraries."""
    library_levels = {
        'playwright': logging.WARNING,
        'asyncio': logging.WARNING,
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
        'openai': logging.WARNING,
    }

    for library, level in library_levels.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (defaults to calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
