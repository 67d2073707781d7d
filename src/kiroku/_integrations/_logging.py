from __future__ import annotations

import logging
from json import dumps
from logging import CRITICAL, ERROR, WARNING, Formatter, Handler, LogRecord

from .._env_helpers import parse_level
from .._log import LOG, is_transport_record

# stdlib level -> ingest severity
_SEVERITY_BY_LEVEL = {
    CRITICAL: 'ERROR',
    ERROR: 'ERROR',
    WARNING: 'WARN',
}


def severity_for(record: LogRecord) -> str:
    return _SEVERITY_BY_LEVEL.get(record.levelno, record.levelname)


class DropInternalFilter(logging.Filter):
    """
    Filter that drops records with `kiroku_internal`, and anything the
    HTTP client logs while delivering (httpx, httpcore)
    """
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, 'kiroku_internal', False):
            return False
        return not is_transport_record(record.name)


class ForwardingHandler(Handler):
    """
    Forwards log records (WARNING+ by default) to a Kiroku forwarder.

    Records logged by the forwarder itself, or by its HTTP client, are
    dropped, so a failing backend can't feed on its own diagnostics.
    """

    def __init__(
        self,
        forwarder,  # Forwarder
        *,
        min_level: str | int = WARNING,
        attributes_getter=None,  # fn(record) -> dict
    ):
        if isinstance(min_level, str):
            min_level = parse_level(min_level, default=WARNING)

        super().__init__(level=min_level)  # logging will filter by level for us
        self._forwarder = forwarder
        self._attributes_getter = attributes_getter

        self.addFilter(DropInternalFilter())

    @property
    def forwarder(self):
        return self._forwarder

    def emit(self, record: LogRecord) -> None:
        # noinspection PyBroadException
        try:
            attributes: dict = {}
            if self._attributes_getter:
                attributes = self._attributes_getter(record) or {}

            # Add call-site info
            attributes.update({
                'log.logger': record.name,
                'code.filepath': record.filename,
                'code.lineno': record.lineno,
                'code.function': record.funcName,
            })

            if record.exc_info and record.exc_info[1] is not None:
                exc = record.exc_info[1]
                attributes['exception.type'] = type(exc).__name__
                attributes['exception.message'] = str(exc)

            # carry through any structured extra the user attached
            extra = getattr(record, 'kiroku_attributes', None)
            if isinstance(extra, dict):
                attributes.update(extra)

            self._forwarder.submit(record.getMessage(),
                                   severity_for(record),
                                   attributes)

        except Exception:
            # never raise from logging handler
            # noinspection PyBroadException
            try:
                LOG.debug(
                    f'{self.__class__.__name__} failed', exc_info=True,
                    extra={'kiroku_internal': True},
                )
            except Exception:
                pass


class KirokuJSONFormatter(Formatter):

    def format(self, record: LogRecord) -> str:
        base = {
            'ts': record.created,
            'fn': record.funcName,
            'file': record.filename,
            'lineno': record.lineno,
            'level': record.levelname.lower(),
            'msg': record.getMessage(),
            'logger': record.name,
        }
        if record.stack_info:
            base['stack'] = record.stack_info
        if getattr(record, 'kiroku_internal', False):
            base['kind'] = 'kiroku.diagnostic'

        extra = getattr(record, 'kiroku', None)
        if extra:
            base['kiroku'] = extra
        if record.exc_info:
            base['exc'] = self.formatException(record.exc_info)

        return dumps(base, ensure_ascii=False, default=str)
