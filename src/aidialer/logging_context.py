"""Call-id aware logging.

Every turn runs inside its own asyncio task, so a ``ContextVar`` is enough to
tag each log line with the Twilio CallSid it belongs to.  The filter is
installed on the root handler by ``configure_logging`` so records from every
module (and from httpx) carry ``%(call_id)s``.
"""

import logging
from contextvars import ContextVar

NO_CALL_ID = "-"

_call_id: ContextVar[str] = ContextVar("call_id", default=NO_CALL_ID)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(call_id)s] %(name)s: %(message)s"


def set_call_id(call_id: str) -> None:
    _call_id.set(call_id or NO_CALL_ID)


def get_call_id() -> str:
    return _call_id.get()


class CallIdFilter(logging.Filter):
    """Injects call_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = _call_id.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler with the call-id filter on the root logger."""
    handler = logging.StreamHandler()
    handler.addFilter(CallIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
