"""Per-session log stamping.

ChatService binds the session key for the duration of a turn; every record
emitted while that turn runs, from any module, carries it as
``record.session_id`` so one customer's conversation can be grepped out of
an interleaved log. ``load_config()`` installs the filter on the root
handlers and puts ``%(session_id)s`` in LOG_FORMAT.
"""

import logging
from contextvars import ContextVar
from typing import Optional

NO_SESSION = "-"
LOG_FORMAT = "%(asctime)s [%(name)s] [%(session_id)s] %(levelname)s: %(message)s"

_current_session: ContextVar[str] = ContextVar("carinsight_session", default=NO_SESSION)


def set_session_id(session_id: str) -> None:
    """Bind ``session_id`` to the running task's log records."""
    _current_session.set(session_id)


def current_session_id() -> str:
    return _current_session.get()


class SessionIdFilter(logging.Filter):
    """Stamps the bound session key, keeping one passed through ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _current_session.get()  # type: ignore[attr-defined]
        return True


def _has_session_filter(filterer: logging.Filterer) -> bool:
    return any(isinstance(f, SessionIdFilter) for f in filterer.filters)


def install_session_filter(logger: Optional[logging.Logger] = None) -> None:
    """Attach SessionIdFilter to every handler of ``logger`` (root by default).

    Records propagated from loggers without the filter still get stamped.
    """
    target = logger if logger is not None else logging.getLogger()
    for handler in target.handlers:
        if not _has_session_filter(handler):
            handler.addFilter(SessionIdFilter())


def get_session_logger(name: str) -> logging.Logger:
    """``logging.getLogger(name)`` with SessionIdFilter on the logger itself."""
    logger = logging.getLogger(name)
    if not _has_session_filter(logger):
        logger.addFilter(SessionIdFilter())
    return logger
