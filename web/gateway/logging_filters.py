"""Logging filters for enriching log records with request context.

Adding ``RequestIdFilter`` to a handler lets formatters reference
``%(request_id)s`` so every line written while serving a request can be
correlated with the ``X-Request-ID`` the client saw.
"""

from logging import Filter, LogRecord
from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX``; outside a request it is the
    ContextVar default ("-"). A ``request_id`` passed explicitly through
    ``extra=`` wins.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
